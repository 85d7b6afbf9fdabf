from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from .sessions import DEFAULT_COOKIE_NAME

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


@dataclass(frozen=True)
class Settings:
    db_path: str | None = None
    session_secret: str = "dev-secret"
    session_cookie: str = DEFAULT_COOKIE_NAME
    session_ttl_s: int = 24 * 60 * 60
    outbound_queue_size: int = 1000
    max_msg_size: int = 1_048_576
    heartbeat_s: int = 30
    close_superseded: bool = False
    log_level: str = "INFO"

    @property
    def session_ttl_ms(self) -> int:
        return self.session_ttl_s * 1000

    @property
    def heartbeat(self) -> float | None:
        return float(self.heartbeat_s) if self.heartbeat_s > 0 else None


def _parse_non_negative_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if parsed < 0:
        raise ValueError(f"{name} must be non-negative")
    return parsed


def _parse_positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    parsed = _parse_non_negative_int(env, name, default)
    if parsed == 0:
        raise ValueError(f"{name} must be positive")
    return parsed


def _parse_bool01(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    if raw not in {"0", "1"}:
        raise ValueError(f"{name} must be 0 or 1")
    return raw == "1"


def _parse_log_level(env: Mapping[str, str], name: str, default: str) -> str:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    level = raw.upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"{name} must be one of {', '.join(sorted(_LOG_LEVELS))}")
    return level


def load_settings_from_env(env: Mapping[str, str] | None = None) -> Settings:
    if env is None:
        env = os.environ
    secret = env.get("FEEDWIRE_SESSION_SECRET") or Settings.session_secret
    return Settings(
        db_path=env.get("FEEDWIRE_DB_PATH") or None,
        session_secret=secret,
        session_cookie=env.get("FEEDWIRE_SESSION_COOKIE") or DEFAULT_COOKIE_NAME,
        session_ttl_s=_parse_positive_int(env, "FEEDWIRE_SESSION_TTL_S", Settings.session_ttl_s),
        outbound_queue_size=_parse_positive_int(env, "FEEDWIRE_OUTBOUND_QUEUE_SIZE", Settings.outbound_queue_size),
        max_msg_size=_parse_positive_int(env, "FEEDWIRE_MAX_MSG_SIZE", Settings.max_msg_size),
        heartbeat_s=_parse_non_negative_int(env, "FEEDWIRE_HEARTBEAT_S", Settings.heartbeat_s),
        close_superseded=_parse_bool01(env, "FEEDWIRE_CLOSE_SUPERSEDED", Settings.close_superseded),
        log_level=_parse_log_level(env, "FEEDWIRE_LOG_LEVEL", Settings.log_level),
    )
