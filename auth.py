# auth.py — OAuth2 client config + stored token, kept as JSON files
import json
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
SCOPES = [
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
]
EXPIRY_SKEW = timedelta(seconds=60)

_lock = threading.Lock()


class AuthError(Exception):
    pass


@dataclass
class ClientConfig:
    client_id: str
    client_secret: str
    token_uri: str = GOOGLE_TOKEN_URI
    scopes: list[str] = field(default_factory=lambda: list(SCOPES))


@dataclass
class Token:
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    expiry: Optional[datetime] = None

    def expired(self, now: Optional[datetime] = None) -> bool:
        if self.expiry is None:
            return False
        now = now or datetime.now(timezone.utc)
        return self.expiry - EXPIRY_SKEW <= now

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expiry": self.expiry.isoformat() if self.expiry else None,
        }


def _read_json(path: str, what: str) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except OSError as e:
        raise AuthError(f"failed to read {what} file {path!r}") from e
    except ValueError as e:
        raise AuthError(f"failed to parse {what} file {path!r}") from e


def _parse_expiry(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def load_client_config(path: str) -> ClientConfig:
    """
    Read a Google client secret file. Both the "installed" and "web"
    layouts are accepted.
    """
    data = _read_json(path, "oauth config")
    section = data.get("installed") or data.get("web")
    if not section:
        raise AuthError(f"oauth config file {path!r} has no 'installed' or 'web' section")
    try:
        return ClientConfig(
            client_id=section["client_id"],
            client_secret=section["client_secret"],
            token_uri=section.get("token_uri") or GOOGLE_TOKEN_URI,
        )
    except KeyError as e:
        raise AuthError(f"oauth config file {path!r} is missing {e.args[0]}") from e


def load_token(path: str) -> Token:
    data = _read_json(path, "token")
    try:
        return Token(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type") or "Bearer",
            expiry=_parse_expiry(data.get("expiry")),
        )
    except KeyError as e:
        raise AuthError(f"token file {path!r} is missing {e.args[0]}") from e
    except ValueError as e:
        raise AuthError(f"token file {path!r} has a bad expiry") from e


def save_token(path: str, token: Token) -> None:
    with _lock:
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(token.to_dict(), f, indent=2)


class FileConfigProvider:
    def __init__(self, path: str):
        self.path = path

    def config(self) -> ClientConfig:
        return load_client_config(self.path)


class FileTokenProvider:
    def __init__(self, path: str):
        self.path = path

    def token(self) -> Token:
        return load_token(self.path)

    def store(self, token: Token) -> None:
        save_token(self.path, token)
