# main.py — calbot (Google Calendar -> Discord reminders)
import os
import logging
from datetime import datetime, timedelta, time as dtime, timezone
from zoneinfo import ZoneInfo
from typing import Optional

import httpx
from dotenv import load_dotenv

import discord
from discord import app_commands
from discord.ext import commands, tasks

from auth import FileConfigProvider, FileTokenProvider
from cache import EventCache
from gcal import GoogleCalendar
from notifier import Notifier, NotifierError


def _env_int(name: str, default: Optional[int], lo: Optional[int] = None, hi: Optional[int] = None) -> Optional[int]:
    """Read a non-negative int from env; junk or out-of-range values fall back to default."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    if not raw.isdigit():
        logging.warning(f"{name}={raw!r} is not a whole number (using {default})")
        return default
    val = int(raw)
    if (lo is not None and val < lo) or (hi is not None and val > hi):
        logging.warning(f"{name}={val} outside {lo}..{hi} (using {default})")
        return default
    return val

# ----------------------------- Config / Env -----------------------------
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")
GUILD_ID = _env_int("GUILD_ID", None)
CHANNEL_NAME = os.getenv("CHANNEL_NAME", "general")

CALENDAR_ID       = os.getenv("CALENDAR_ID", "primary")
OAUTH_CONFIG_FILE = os.getenv("OAUTH_CONFIG_FILE", "config.json")
OAUTH_TOKEN_FILE  = os.getenv("OAUTH_TOKEN_FILE", "token.json")
THUMB_URL         = os.getenv("THUMB_URL") or None
TZ_NAME           = os.getenv("TZ", "UTC")

POLL_MINUTES      = _env_int("POLL_MINUTES", 5, lo=1)
LOOKAHEAD_MINUTES = _env_int("LOOKAHEAD_MINUTES", 15, lo=1)
COOLDOWN_MINUTES  = _env_int("COOLDOWN_MINUTES", 15, lo=1)
DIGEST_HOUR       = _env_int("DIGEST_HOUR", None, lo=0, hi=23)   # 0-23, daily agenda post; unset = off

try:
    LOCAL_TZ = ZoneInfo(TZ_NAME)
except Exception as e:
    logging.warning(f"Could not load timezone '{TZ_NAME}': {e} (falling back to UTC)")
    LOCAL_TZ = ZoneInfo("UTC")

# ----------------------------- Discord setup -----------------------------
intents = discord.Intents.default()  # slash commands only; no message content needed
client = commands.Bot(command_prefix="!", intents=intents)
tree = client.tree

# ----------------------------- Calendar + notifier -----------------------------
calendar = GoogleCalendar(FileConfigProvider(OAUTH_CONFIG_FILE), FileTokenProvider(OAUTH_TOKEN_FILE))


def find_channel(guilds, name: str):
    """Text channels first, then threads; the first name match wins."""
    for g in guilds:
        for ch in g.text_channels:
            if ch.name == name:
                return ch
    for g in guilds:
        for th in g.threads:
            if th.name == name:
                return th
    raise LookupError(f"failed to find channel or thread named '{name}'")


async def post_to_channel(content: str, embed: discord.Embed) -> None:
    channel = find_channel(client.guilds, CHANNEL_NAME)
    await channel.send(content=content or None, embed=embed)


notifier = Notifier(
    calendar,
    post_to_channel,
    cache=EventCache(),
    calendar_id=CALENDAR_ID,
    thumb_url=THUMB_URL,
    cooldown=timedelta(minutes=COOLDOWN_MINUTES),
    tz=LOCAL_TZ,
)

# ----------------------------- Background loops -----------------------------
@tasks.loop(minutes=POLL_MINUTES)
async def poll_events():
    try:
        n = await notifier.notify_individual_events(datetime.now(timezone.utc), timedelta(minutes=LOOKAHEAD_MINUTES))
        if n:
            logging.info(f"[poll] posted {n} reminder(s)")
    except NotifierError as e:
        logging.error(f"[poll] {e}: {e.__cause__}")
    except Exception:
        logging.exception("[poll] unexpected error")


@poll_events.before_loop
async def _wait_ready():
    await client.wait_until_ready()


@tasks.loop(time=dtime(hour=DIGEST_HOUR or 0, tzinfo=LOCAL_TZ))
async def daily_digest():
    try:
        await notifier.notify_upcoming_events(datetime.now(timezone.utc), timedelta(hours=24))
    except NotifierError as e:
        logging.error(f"[digest] {e}: {e.__cause__}")
    except Exception:
        logging.exception("[digest] unexpected error")


@daily_digest.before_loop
async def _wait_ready_digest():
    await client.wait_until_ready()

# ----------------------------- Events -----------------------------
@client.event
async def on_connect():
    logging.info("Connected to Discord Gateway.")

@client.event
async def on_ready():
    logging.info(f"Logged in as {client.user} (ID: {client.user.id})")
    logging.info("Guilds: " + ", ".join(f"{g.name} ({g.id})" for g in client.guilds))

    try:
        if GUILD_ID:
            guild = discord.Object(id=GUILD_ID)
            tree.copy_global_to(guild=guild)
            synced = await tree.sync(guild=guild)
            logging.info(f"Guild sync ok: {[c.name for c in synced]}")
        else:
            synced = await tree.sync()
            logging.info(f"Global sync ok: {[c.name for c in synced]}")
    except discord.HTTPException as e:
        logging.error(f"Sync error: {e}")

    if not poll_events.is_running():
        poll_events.start()
        logging.info(f"Polling '{CALENDAR_ID}' every {POLL_MINUTES} min, {LOOKAHEAD_MINUTES} min ahead -> #{CHANNEL_NAME}")
    if DIGEST_HOUR is not None and not daily_digest.is_running():
        daily_digest.start()
        logging.info(f"Daily agenda at {DIGEST_HOUR:02d}:00 {LOCAL_TZ.key}")

# ----------------------------- Commands -----------------------------
@tree.command(name="ping", description="Health check")
async def ping(interaction: discord.Interaction):
    await interaction.response.send_message("pong")

@tree.command(name="agenda", description="Upcoming calendar events")
@app_commands.describe(hours="How far ahead to look (default 24)")
async def agenda(interaction: discord.Interaction, hours: app_commands.Range[int, 1, 168] = 24):
    await interaction.response.defer(thinking=True)

    async def reply(content: str, embed: discord.Embed) -> None:
        await interaction.followup.send(content=content or None, embed=embed)

    try:
        posted = await notifier.notify_upcoming_events(datetime.now(timezone.utc), timedelta(hours=hours), post=reply)
        if not posted:
            await interaction.followup.send(f"Nothing on the calendar for the next {hours}h.")
    except NotifierError as e:
        cause = e.__cause__
        if isinstance(cause, httpx.HTTPStatusError):
            await interaction.followup.send(f"Error from Google Calendar: {cause.response.status_code}")
        else:
            await interaction.followup.send(f"Calendar error: {cause or e}")
    except Exception as e:
        await interaction.followup.send(f"Unexpected error: {e}")

# ----------------------------- Main -----------------------------
if __name__ == "__main__":
    if not DISCORD_TOKEN:
        logging.error("❌ DISCORD_TOKEN not set. Put it in your .env.")
    else:
        client.run(DISCORD_TOKEN)
