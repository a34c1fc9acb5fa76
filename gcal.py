# gcal.py — Google Calendar v3 over httpx
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import quote

import httpx

from auth import AuthError, Token

API_BASE = "https://www.googleapis.com/calendar/v3"

log = logging.getLogger(__name__)


@dataclass
class Event:
    id: str
    summary: str
    start: datetime
    end: datetime
    all_day: bool = False
    description: str = ""
    html_link: str = ""


def rfc3339(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat(timespec="seconds")


def _parse_when(when: dict) -> tuple[datetime, bool]:
    if when.get("dateTime"):
        return datetime.fromisoformat(when["dateTime"].replace("Z", "+00:00")), False
    # all-day events only carry a date
    d = datetime.strptime(when["date"], "%Y-%m-%d")
    return d.replace(tzinfo=timezone.utc), True


def parse_event(item: dict) -> Event:
    start, all_day = _parse_when(item.get("start", {}))
    end, _ = _parse_when(item.get("end", {}))
    return Event(
        id=item["id"],
        summary=item.get("summary") or "(no title)",
        start=start,
        end=end,
        all_day=all_day,
        description=item.get("description") or "",
        html_link=item.get("htmlLink") or "",
    )


class GoogleCalendar:
    """Read-only calendar client. Refreshes the stored token when it expires."""

    def __init__(self, config_provider, token_provider, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config_provider = config_provider
        self.token_provider = token_provider
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=15, follow_redirects=True, transport=self._transport)

    async def _refresh(self, token: Token) -> Token:
        if not token.refresh_token:
            raise AuthError("token expired and no refresh token is stored")
        cfg = self.config_provider.config()
        data = {
            "client_id": cfg.client_id,
            "client_secret": cfg.client_secret,
            "refresh_token": token.refresh_token,
            "grant_type": "refresh_token",
        }
        async with self._client() as s:
            r = await s.post(cfg.token_uri, data=data)
            r.raise_for_status()
            body = r.json()
        fresh = Token(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token") or token.refresh_token,
            token_type=body.get("token_type") or token.token_type,
            expiry=datetime.now(timezone.utc) + timedelta(seconds=int(body.get("expires_in", 3600))),
        )
        self.token_provider.store(fresh)
        log.info("[auth] refreshed access token")
        return fresh

    async def access_token(self) -> str:
        token = self.token_provider.token()
        if token.expired():
            token = await self._refresh(token)
        return token.access_token

    async def list_events(self, calendar_id: str, time_min: datetime, time_max: datetime,
                          order_by: Optional[str] = None) -> list[Event]:
        url = f"{API_BASE}/calendars/{quote(calendar_id, safe='')}/events"
        headers = {"Authorization": f"Bearer {await self.access_token()}"}
        params = {
            "timeMin": rfc3339(time_min),
            "timeMax": rfc3339(time_max),
            "singleEvents": "true",
        }
        if order_by:
            params["orderBy"] = order_by

        events: list[Event] = []
        async with self._client() as s:
            while True:
                r = await s.get(url, params=params, headers=headers)
                r.raise_for_status()
                body = r.json()
                events.extend(parse_event(item) for item in body.get("items", [])
                              if item.get("status") != "cancelled")
                page = body.get("nextPageToken")
                if not page:
                    break
                params["pageToken"] = page
        log.debug(f"[gcal] {len(events)} events in {params['timeMin']}..{params['timeMax']}")
        return events
