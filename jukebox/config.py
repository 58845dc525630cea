"""Configuration loading from environment variables."""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

from jukebox.music.player import PlaybackMode

# Written to .env on first start so operators have something to edit
DEFAULT_ENV = {
    "DISCORD_TOKEN": "",
    "TEST_GUILD_ID": "",
    "JUKEBOX_DB_PATH": "jukebox.db",
    "JUKEBOX_PLAYBACK_MODE": "buffered",
    "JUKEBOX_CLOCK_INTERVAL": "1",
    "JUKEBOX_TRACK_END_BUFFER": "2",
    "JUKEBOX_PERSIST_INTERVAL": "10",
    "LOG_LEVEL": "INFO",
    "LOG_FILE": "",
}


@dataclass(frozen=True)
class JukeboxConfig:
    discord_token: str
    test_guild_id: int | None
    db_path: str
    playback_mode: PlaybackMode
    clock_interval_seconds: float
    track_end_buffer_seconds: float
    persist_interval_seconds: float
    log_level: str
    log_file: str


def write_default_env(path: Path) -> bool:
    """Create a .env with defaults if none exists. Returns True if one was written."""
    if path.exists():
        return False
    path.write_text("".join(f"{key}={value}\n" for key, value in DEFAULT_ENV.items()))
    return True


def _parse_float_env(name: str, default: float, min_value: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"{name}={raw!r} is not a number, using {default}")
        return default
    if value < min_value:
        logger.warning(f"{name}={raw!r} is below {min_value}, using {default}")
        return default
    return value


def _parse_playback_mode(raw: str) -> PlaybackMode:
    try:
        return PlaybackMode(raw.strip().lower())
    except ValueError:
        logger.warning(f"JUKEBOX_PLAYBACK_MODE={raw!r} is not stream/buffered, using buffered")
        return PlaybackMode.BUFFERED


def load_config(env_path: Path | None = None) -> JukeboxConfig:
    env_path = env_path or Path(".env")
    if write_default_env(env_path):
        logger.info(f"Created default {env_path}")
    load_dotenv(env_path)

    guild = os.getenv("TEST_GUILD_ID", "").strip()
    return JukeboxConfig(
        discord_token=os.getenv("DISCORD_TOKEN", "").strip(),
        test_guild_id=int(guild) if guild.isdigit() else None,
        db_path=os.getenv("JUKEBOX_DB_PATH", "").strip() or DEFAULT_ENV["JUKEBOX_DB_PATH"],
        playback_mode=_parse_playback_mode(os.getenv("JUKEBOX_PLAYBACK_MODE", "buffered")),
        clock_interval_seconds=_parse_float_env("JUKEBOX_CLOCK_INTERVAL", 1.0, 0.1),
        track_end_buffer_seconds=_parse_float_env("JUKEBOX_TRACK_END_BUFFER", 2.0, 0.0),
        persist_interval_seconds=_parse_float_env("JUKEBOX_PERSIST_INTERVAL", 10.0, 0.5),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        log_file=os.getenv("LOG_FILE", "").strip(),
    )
