# src/todo_bot/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time; credentials are checked at startup.
- TODO_* names first, then the conventional Slack names (SLACK_BOT_TOKEN, ...).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .core.errors import ConfigError

ENV_PREFIX = "TODO"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Slack ----
    slack_bot_token: str
    slack_signing_secret: str
    slack_app_token: str
    http_port: int

    # ---- Console connector ----
    console_enabled: bool
    console_user_id: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path

    # ---- Tasks / reminders ----
    timezone: str
    list_limit: int
    reminder_interval_seconds: float
    reminder_retry_seconds: float
    reminder_batch_limit: int

    @property
    def socket_mode(self) -> bool:
        return bool(self.slack_app_token)

    def missing_credentials(self) -> list[str]:
        missing: list[str] = []
        if not self.slack_bot_token:
            missing.append(_k("SLACK_BOT_TOKEN"))
        if not self.slack_signing_secret and not self.socket_mode:
            missing.append(_k("SLACK_SIGNING_SECRET"))
        return missing

    def require_slack_credentials(self) -> None:
        missing = self.missing_credentials()
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)} (see .env.example)")

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "todo-bot")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        slack_bot_token = (_first_env(_k("SLACK_BOT_TOKEN"), "SLACK_BOT_TOKEN", default="") or "").strip()
        slack_signing_secret = (
            _first_env(_k("SLACK_SIGNING_SECRET"), "SLACK_SIGNING_SECRET", default="") or ""
        ).strip()
        slack_app_token = (_first_env(_k("SLACK_APP_TOKEN"), "SLACK_APP_TOKEN", default="") or "").strip()
        http_port = _env_int(_k("HTTP_PORT"), _env_int("PORT", 3000))

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), False)
        console_user_id = _env(_k("CONSOLE_USER_ID"), "console").strip() or "console"

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/todo"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            slack_bot_token=slack_bot_token,
            slack_signing_secret=slack_signing_secret,
            slack_app_token=slack_app_token,
            http_port=http_port,
            console_enabled=console_enabled,
            console_user_id=console_user_id,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            timezone=_env(_k("TIMEZONE"), "UTC"),
            list_limit=max(1, _env_int(_k("LIST_LIMIT"), 50)),
            reminder_interval_seconds=max(1.0, _env_float(_k("REMINDER_INTERVAL_SECONDS"), 60.0)),
            reminder_retry_seconds=max(1.0, _env_float(_k("REMINDER_RETRY_SECONDS"), 300.0)),
            reminder_batch_limit=max(1, _env_int(_k("REMINDER_BATCH_LIMIT"), 32)),
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
