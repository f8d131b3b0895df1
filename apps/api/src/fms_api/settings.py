from __future__ import annotations

import os
from dataclasses import dataclass


def _env_or_default(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    trimmed = value.strip()
    return trimmed if trimmed else default


def _env_optional(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def _env_log_level(name: str, default: str) -> str:
    value = _env_or_default(name, default).upper()
    return value if value in _LOG_LEVELS else default


def _parse_csv_env(name: str, default: str = "") -> list[str]:
    value = _env_or_default(name, default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    state_file: str | None = None
    activity_log_file: str | None = None
    step_gating: bool = False
    directory_file: str | None = None
    directory_url: str | None = None
    directory_timeout_seconds: float = 5.0
    log_level: str = "INFO"
    log_dir: str | None = None
    cors_allow_origins: tuple[str, ...] = ("null",)
    cors_allow_origin_regex: str = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

    @staticmethod
    def from_env() -> "Settings":
        return Settings(
            state_file=_env_optional("FMS_STATE_FILE"),
            activity_log_file=_env_optional("FMS_ACTIVITY_LOG_FILE"),
            step_gating=_env_bool("FMS_STEP_GATING", False),
            directory_file=_env_optional("FMS_DIRECTORY_FILE"),
            directory_url=_env_optional("FMS_DIRECTORY_URL"),
            directory_timeout_seconds=_env_float("FMS_DIRECTORY_TIMEOUT_SECONDS", 5.0),
            log_level=_env_log_level("FMS_LOG_LEVEL", "INFO"),
            log_dir=_env_optional("FMS_LOG_DIR"),
            cors_allow_origins=tuple(_parse_csv_env("FMS_CORS_ALLOW_ORIGINS", default="null")),
            cors_allow_origin_regex=_env_or_default(
                "FMS_CORS_ALLOW_ORIGIN_REGEX",
                r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
            ),
        )
