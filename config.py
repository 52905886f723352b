"""
Centralized configuration for the lobby service.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _parse_int(env_var: str, default: int) -> int:
    raw = os.getenv(env_var)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _parse_float(env_var: str, default: float) -> float:
    raw = os.getenv(env_var)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _parse_bool(env_var: str, default: bool) -> bool:
    raw = os.getenv(env_var)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def _parse_float_list(env_var: str, default: list[float]) -> list[float]:
    raw = os.getenv(env_var)
    if raw is None:
        return default
    try:
        return [float(x.strip()) for x in raw.split(",") if x.strip()]
    except ValueError:
        return default


def _parse_str_list(env_var: str, default: list[str]) -> list[str]:
    raw = os.getenv(env_var)
    if raw is None:
        return default
    return [x.strip() for x in raw.split(",") if x.strip()]


DB_PATH = os.getenv("DB_PATH", "lobby_service.db")
SERVER_HOST = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT = _parse_int("SERVER_PORT", 3001)
CORS_ORIGINS = _parse_str_list("CORS_ORIGINS", ["*"])

# Presence collaborator (voice channel membership). Unset token = everyone present.
DISCORD_BOT_TOKEN = os.getenv("DISCORD_BOT_TOKEN")
DISCORD_GUILD_ID: int | None = None
DISCORD_VOICE_CHANNEL_ID: int | None = None
_guild_raw = os.getenv("DISCORD_GUILD_ID")
if _guild_raw:
    try:
        DISCORD_GUILD_ID = int(_guild_raw.strip())
    except ValueError:
        DISCORD_GUILD_ID = None
_voice_raw = os.getenv("DISCORD_VOICE_CHANNEL_ID")
if _voice_raw:
    try:
        DISCORD_VOICE_CHANNEL_ID = int(_voice_raw.strip())
    except ValueError:
        DISCORD_VOICE_CHANNEL_ID = None

# Lobby settings
LOBBY_CODE_LENGTH = _parse_int("LOBBY_CODE_LENGTH", 6)
LOBBY_MIN_PLAYERS = _parse_int("LOBBY_MIN_PLAYERS", 4)
LOBBY_DEFAULT_MAX_PLAYERS = _parse_int("LOBBY_DEFAULT_MAX_PLAYERS", 10)
LOBBY_MAX_PLAYERS_LIMIT = _parse_int("LOBBY_MAX_PLAYERS_LIMIT", 32)
LOBBY_OVERFLOW_SLOTS = _parse_int("LOBBY_OVERFLOW_SLOTS", 4)  # Extra joins trimmed by the purge
DISCONNECT_GRACE_SECONDS = _parse_float("DISCONNECT_GRACE_SECONDS", 60.0)
HOST_DISCONNECT_GRACE_SECONDS = _parse_float("HOST_DISCONNECT_GRACE_SECONDS", 120.0)
DEFAULT_ROUNDS_TO_WIN = _parse_int("DEFAULT_ROUNDS_TO_WIN", 3)  # 0 disables auto-win on score

# Market (auction) configuration
MARKET_STARTING_BUDGET = _parse_int("MARKET_STARTING_BUDGET", 1000)
MARKET_BID_WINDOW_SECONDS = _parse_float("MARKET_BID_WINDOW_SECONDS", 30.0)
MARKET_BID_EXTENSION_SECONDS = _parse_float("MARKET_BID_EXTENSION_SECONDS", 0.0)  # 0 = fixed deadline

# Purge configuration
PURGE_COUNTDOWN_SECONDS = _parse_float("PURGE_COUNTDOWN_SECONDS", 5.0)
PURGE_ELIMINATION_INTERVAL_SECONDS = _parse_float("PURGE_ELIMINATION_INTERVAL_SECONDS", 1.5)
PURGE_IMMUNITY_ENABLED = _parse_bool("PURGE_IMMUNITY_ENABLED", True)

# ELO configuration
DEFAULT_ELO = _parse_int("DEFAULT_ELO", 500)
ELO_K_FACTOR = _parse_float("ELO_K_FACTOR", 32.0)

# Moderation
TIMEOUT_MAX_MINUTES = _parse_int("TIMEOUT_MAX_MINUTES", 1440)  # 24 hours

# Storage retry backoff used by match finalization (seconds)
FINALIZE_RETRY_DELAYS = _parse_float_list("FINALIZE_RETRY_DELAYS", [1.0, 5.0, 20.0])

# Socket intent rate limiting (per player)
INTENT_RATE_LIMIT = _parse_int("INTENT_RATE_LIMIT", 20)
INTENT_RATE_WINDOW = _parse_int("INTENT_RATE_WINDOW", 5)
