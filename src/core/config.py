from __future__ import annotations

import os
from dataclasses import dataclass

from licensing.client import DEFAULT_BASE_URL, DEFAULT_CATEGORY_CODE

CHAT_PLATFORMS = ("telegram", "line", "webhook")


def _get_bool(env_key: str, default: bool) -> bool:
    raw = os.getenv(env_key)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_int(env_key: str, default: int) -> int:
    raw = os.getenv(env_key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float(env_key: str, default: float) -> float:
    raw = os.getenv(env_key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_opt(env_key: str) -> str | None:
    """Return a trimmed string or None if the env var is not set / empty."""
    raw = os.getenv(env_key)
    if raw is None:
        return None
    s = raw.strip()
    return s or None


def _get_choice(env_key: str, choices: tuple[str, ...], default: str) -> str:
    raw = (_get_opt(env_key) or default).lower()
    return raw if raw in choices else default


@dataclass(frozen=True)
class AppConfig:
    chat_platform: str

    bot_token: str
    public_base_url: str
    webhook_secret_path: str
    webhook_secret_token: str | None

    line_channel_access_token: str | None
    line_channel_secret: str | None

    notify_webhook_url: str | None
    notify_lang: str

    database_url: str | None
    storage_path: str

    log_level: str

    server_host: str
    server_port: int

    sweep_enabled: bool
    sweep_interval_secs: int
    sweep_first_delay_secs: int
    verbose_negative_notifications: bool

    registry_base_url: str
    registry_timeout_secs: float
    registry_category_code: str


def load_config() -> AppConfig:
    return AppConfig(
        chat_platform=_get_choice("CHAT_PLATFORM", CHAT_PLATFORMS, "telegram"),
        bot_token=os.getenv("TELEGRAM_BOT_TOKEN", "").strip(),
        public_base_url=os.getenv("PUBLIC_BASE_URL", "").rstrip("/"),
        webhook_secret_path=os.getenv("WEBHOOK_SECRET_PATH", "webhook").strip("/"),
        webhook_secret_token=_get_opt("WEBHOOK_SECRET_TOKEN"),
        line_channel_access_token=_get_opt("LINE_CHANNEL_ACCESS_TOKEN"),
        line_channel_secret=_get_opt("LINE_CHANNEL_SECRET"),
        notify_webhook_url=_get_opt("NOTIFY_WEBHOOK_URL"),
        notify_lang=(_get_opt("NOTIFY_LANG") or "ja").lower(),
        database_url=_get_opt("DATABASE_URL"),
        storage_path=_get_opt("STORAGE_PATH") or "data/tracking.json",
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        server_host=(_get_opt("APP_HOST") or _get_opt("HOST") or "0.0.0.0"),
        server_port=_get_int("APP_PORT", _get_int("PORT", 3000)),
        sweep_enabled=_get_bool("SWEEP_ENABLED", True),
        sweep_interval_secs=_get_int("SWEEP_INTERVAL_SECS", 3600),
        sweep_first_delay_secs=_get_int("SWEEP_FIRST_DELAY_SECS", 5),
        verbose_negative_notifications=_get_bool("VERBOSE_NEGATIVE_NOTIFICATIONS", True),
        registry_base_url=_get_opt("REGISTRY_BASE_URL") or DEFAULT_BASE_URL,
        registry_timeout_secs=_get_float("REGISTRY_TIMEOUT_SECS", 20.0),
        registry_category_code=_get_opt("REGISTRY_CATEGORY_CODE") or DEFAULT_CATEGORY_CODE,
    )
