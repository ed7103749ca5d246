"""Centralised configuration for the Lifestyle Planner API."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv


_DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def _int_setting(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer, got {value!r}") from exc


def _str_setting(name: str, default: str) -> str:
    return os.getenv(name, default)


def _bool_setting(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _optional_float_setting(name: str, default: Optional[float]) -> Optional[float]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a number, got {value!r}") from exc


def parse_duration(value: str) -> int:
    """Convert ``"3600"``, ``"30m"``, ``"1h"`` or ``"7d"`` into seconds."""
    match = _DURATION_PATTERN.match(value)
    if not match:
        raise ValueError(f"Invalid duration {value!r}; expected seconds or <n>s/m/h/d")
    amount, unit = match.groups()
    seconds = int(amount) * _DURATION_UNITS[unit]
    if seconds <= 0:
        raise ValueError(f"Duration must be positive, got {value!r}")
    return seconds


def _duration_setting(name: str, default: str) -> int:
    value = _str_setting(name, default)
    try:
        return parse_duration(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name}: {exc}") from exc


@dataclass(frozen=True)
class Settings:
    """Runtime settings, read once from the environment."""

    database_url: str = "sqlite:///./lifeplanner.db"
    jwt_secret: str = "dev-only-change-in-production"
    jwt_expires_in_seconds: int = 3600
    bcrypt_rounds: int = 10
    ai_url: str = "http://localhost:1234"
    ai_model: str = "deepseek-r1-distill-qwen-7b"
    ai_structured_output: bool = False
    ai_timeout_seconds: Optional[float] = None
    cors_allow_origins: Tuple[str, ...] = ("*",)
    port: int = 4000
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Build ``Settings`` from the process environment and an optional ``.env`` file."""
    load_dotenv()
    defaults = Settings()
    origins = _str_setting("CORS_ALLOW_ORIGINS", ",".join(defaults.cors_allow_origins))
    return Settings(
        database_url=_str_setting("DATABASE_URL", defaults.database_url),
        jwt_secret=_str_setting("JWT_SECRET", defaults.jwt_secret),
        jwt_expires_in_seconds=_duration_setting("JWT_EXPIRES_IN", "1h"),
        bcrypt_rounds=_int_setting("BCRYPT_ROUNDS", defaults.bcrypt_rounds),
        ai_url=_str_setting("AI_URL", defaults.ai_url).rstrip("/"),
        ai_model=_str_setting("AI_MODEL", defaults.ai_model),
        ai_structured_output=_bool_setting("AI_STRUCTURED_OUTPUT", defaults.ai_structured_output),
        ai_timeout_seconds=_optional_float_setting("AI_TIMEOUT_SECONDS", defaults.ai_timeout_seconds),
        cors_allow_origins=tuple(origin.strip() for origin in origins.split(",") if origin.strip()),
        port=_int_setting("PORT", defaults.port),
        log_level=_str_setting("LOG_LEVEL", defaults.log_level).upper(),
    )
