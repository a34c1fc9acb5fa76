"""Unit tests for OAuth2 file loading."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from auth import (
    GOOGLE_TOKEN_URI,
    SCOPES,
    AuthError,
    FileConfigProvider,
    FileTokenProvider,
    Token,
    load_client_config,
    load_token,
)


def _write(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


class TestClientConfig:
    def test_installed_layout(self, tmp_path):
        path = _write(tmp_path / "config.json", {
            "installed": {"client_id": "cid", "client_secret": "secret",
                          "token_uri": "https://example.test/token"},
        })
        cfg = load_client_config(path)
        assert cfg.client_id == "cid"
        assert cfg.client_secret == "secret"
        assert cfg.token_uri == "https://example.test/token"
        assert cfg.scopes == SCOPES

    def test_web_layout_defaults_token_uri(self, tmp_path):
        path = _write(tmp_path / "config.json", {"web": {"client_id": "cid", "client_secret": "s"}})
        assert FileConfigProvider(path).config().token_uri == GOOGLE_TOKEN_URI

    def test_missing_file(self, tmp_path):
        with pytest.raises(AuthError, match="failed to read oauth config"):
            load_client_config(str(tmp_path / "nope.json"))

    def test_bad_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(AuthError, match="failed to parse"):
            load_client_config(str(path))

    def test_no_section(self, tmp_path):
        path = _write(tmp_path / "config.json", {"other": {}})
        with pytest.raises(AuthError):
            load_client_config(path)

    def test_missing_secret(self, tmp_path):
        path = _write(tmp_path / "config.json", {"installed": {"client_id": "cid"}})
        with pytest.raises(AuthError, match="client_secret"):
            load_client_config(path)


class TestToken:
    def test_load(self, tmp_path):
        path = _write(tmp_path / "token.json", {
            "access_token": "at", "refresh_token": "rt",
            "token_type": "Bearer", "expiry": "2030-01-01T00:00:00Z",
        })
        token = load_token(path)
        assert token.access_token == "at"
        assert token.refresh_token == "rt"
        assert token.expiry == datetime(2030, 1, 1, tzinfo=timezone.utc)

    def test_load_without_expiry(self, tmp_path):
        path = _write(tmp_path / "token.json", {"access_token": "at"})
        token = load_token(path)
        assert token.expiry is None
        assert token.token_type == "Bearer"
        assert not token.expired()

    def test_missing_access_token(self, tmp_path):
        path = _write(tmp_path / "token.json", {"refresh_token": "rt"})
        with pytest.raises(AuthError, match="access_token"):
            load_token(path)

    def test_expired_with_skew(self):
        now = datetime(2030, 1, 1, tzinfo=timezone.utc)
        assert Token("at", expiry=now + timedelta(seconds=30)).expired(now)
        assert not Token("at", expiry=now + timedelta(minutes=5)).expired(now)

    def test_store_round_trip(self, tmp_path):
        provider = FileTokenProvider(str(tmp_path / "nested" / "token.json"))
        token = Token("at", "rt", expiry=datetime(2030, 1, 1, 12, tzinfo=timezone.utc))
        provider.store(token)
        assert provider.token() == token
