# notifier.py — calendar events -> chat posts, de-duplicated through EventCache
import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Awaitable, Callable, Optional

import discord

from cache import EntryExists, EventCache, is_cache_miss

DEFAULT_COOLDOWN = timedelta(minutes=15)
MARKER = b"\x01"

COLORS = {
    "event":  0x3182CE,   # lighter blue
    "digest": 0x2B6CB0,   # blue
}

log = logging.getLogger(__name__)

PostFn = Callable[[str, discord.Embed], Awaitable[None]]


class NotifierError(Exception):
    pass


class Notifier:
    def __init__(self, calendar, post: PostFn, cache: Optional[EventCache] = None,
                 calendar_id: str = "primary", thumb_url: Optional[str] = None,
                 cooldown: timedelta = DEFAULT_COOLDOWN, tz: tzinfo = timezone.utc,
                 now: Optional[Callable[[], datetime]] = None):
        self.calendar = calendar
        self.post = post
        self.cache = cache if cache is not None else EventCache()
        self.calendar_id = calendar_id
        self.thumb_url = thumb_url
        self.cooldown = cooldown
        self.tz = tz
        self._now = now or (lambda: datetime.now(timezone.utc))

    async def _list(self, start: datetime, delta: timedelta, order_by: Optional[str] = None):
        try:
            return await self.calendar.list_events(self.calendar_id, start, start + delta, order_by=order_by)
        except Exception as e:
            raise NotifierError("failed to list events") from e

    async def _post(self, content: str, embed: discord.Embed, post: Optional[PostFn] = None) -> None:
        try:
            await (post or self.post)(content, embed)
        except Exception as e:
            raise NotifierError("failed to post message") from e

    def _remember(self, event_id: str) -> None:
        try:
            self.cache.add(event_id, MARKER, self.cooldown.total_seconds())
        except EntryExists:
            # someone else recorded it, or an expired entry was just dropped
            log.debug(f"[cache] {event_id} already recorded")

    def _hhmm(self, dt: datetime) -> str:
        return dt.astimezone(self.tz).strftime("%H:%M")

    def build_event_embed(self, event) -> discord.Embed:
        em = discord.Embed(title=event.summary, url=event.html_link or None, color=COLORS["event"])
        em.add_field(name="Start Time", value=self._hhmm(event.start), inline=True)
        if event.description:
            em.add_field(name="Description", value=event.description[:1024], inline=False)
        if self.thumb_url:
            em.set_thumbnail(url=self.thumb_url)
        return em

    async def notify_individual_events(self, start: datetime, delta: timedelta) -> int:
        """
        Post one message per event starting within [start, start+delta).
        Events already posted within the cooldown are skipped. Returns the
        number of messages posted.
        """
        events = await self._list(start, delta)
        now = self._now()
        posted = 0
        for event in events:
            try:
                self.cache.get(event.id)
                log.debug(f"[cache] hit {event.id}, processed recently")
                continue
            except Exception as e:
                if not is_cache_miss(e):
                    raise NotifierError("failed to communicate with cache") from e

            if event.all_day:
                log.debug(f"skipping all-day event {event.id}")
                continue

            diff = event.start - now
            if diff < timedelta(0):
                log.debug(f"event {event.id} already started, skipping")
                self._remember(event.id)
                continue

            minutes = int(diff.total_seconds() // 60)
            await self._post(f"This event starts in {minutes} minutes", self.build_event_embed(event))
            log.info(f"notified {event.id} ({event.summary!r}), starts in {minutes} min")
            posted += 1

            self._remember(event.id)
        return posted

    def build_digest_embed(self, events, start: datetime, delta: timedelta) -> discord.Embed:
        fmt = "%Y %b %d %H:%M"
        title = (f"Upcoming events between {start.astimezone(self.tz).strftime(fmt)} "
                 f"to {(start + delta).astimezone(self.tz).strftime(fmt)}")
        lines = []
        for event in events:
            when = "All day" if event.all_day else f"{self._hhmm(event.start)}-{self._hhmm(event.end)}"
            label = f"[{event.summary}]({event.html_link})" if event.html_link else event.summary
            lines.append(f"{when}: {label}")
        em = discord.Embed(title=title, description="\n".join(lines)[:4096], color=COLORS["digest"])
        if self.thumb_url:
            em.set_thumbnail(url=self.thumb_url)
        return em

    async def notify_upcoming_events(self, start: datetime, delta: timedelta,
                                     post: Optional[PostFn] = None) -> bool:
        """
        Post a single digest of everything between start and start+delta.
        `post` overrides the default destination (e.g. a slash command reply).
        """
        events = await self._list(start, delta, order_by="startTime")
        if not events:
            return False
        await self._post("", self.build_digest_embed(events, start, delta), post)
        log.info(f"posted digest with {len(events)} events")
        return True
