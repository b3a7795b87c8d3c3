"""Application configuration module.

Reads settings from environment variables with sane defaults for a single
process running the Telegram bot, the admin panel and the auto-finish sweep.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from core.constants import (
    AdminPanelDefaults,
    AutoFinishDefaults,
    RateLimitDefaults,
    ReferralDefaults,
)
from core.exceptions import ConfigurationError

# Values from .env never override variables already set in the environment
load_dotenv()


def _get_bool(name: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _get_int(name: str, default: int) -> int:
    """Get integer from environment variable with fallback."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_str(name: str, default: str = "") -> str:
    """Get string from environment variable."""
    return os.getenv(name, default)


def _get_optional_str(name: str) -> Optional[str]:
    """Get string from environment variable, treating blank as unset."""
    value = os.getenv(name, "").strip()
    return value or None


def _parse_str_set(value: str) -> frozenset[str]:
    """Parse comma-separated identifiers."""
    if not value:
        return frozenset()
    return frozenset(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Config:
    bot_token: str
    enable_bot: bool
    owner_user_id: Optional[str]
    admin_user_ids: frozenset[str]
    moderator_user_ids: frozenset[str]
    storage_path: str
    referral_bonus_tickets: int
    referral_max_bonus_tickets: int
    log_path: str
    log_level: str
    environment: str
    debug: bool
    admin_panel_url: Optional[str]
    admin_panel_secret: Optional[str]
    admin_panel_host: str
    admin_panel_port: int
    admin_panel_token_ttl_ms: int
    admin_panel_rate_limit_window_ms: int
    admin_panel_rate_limit_max: int
    admin_panel_ip_allowlist: frozenset[str]
    admin_panel_max_body_bytes: int
    admin_alert_digest_interval_ms: int
    auto_finish_interval_seconds: int

    @property
    def signing_secret(self) -> str:
        """Secret used to sign admin panel links."""
        return self.admin_panel_secret or self.bot_token

    @property
    def admin_panel_base_path(self) -> str:
        """URL path the admin panel is mounted under."""
        if not self.admin_panel_url:
            return AdminPanelDefaults.BASE_PATH
        path = urlparse(self.admin_panel_url).path.rstrip("/")
        return path or AdminPanelDefaults.BASE_PATH

    def validate(self) -> None:
        """Fail fast on settings the application cannot start with."""
        if self.enable_bot and len(self.bot_token) < 10:
            raise ConfigurationError("Invalid environment: BOT_TOKEN is required")
        if self.referral_bonus_tickets < 0 or self.referral_max_bonus_tickets < 0:
            raise ConfigurationError("Invalid environment: referral bonuses must be >= 0")
        if self.admin_panel_url and not self.signing_secret:
            raise ConfigurationError("Invalid environment: ADMIN_PANEL_SECRET or BOT_TOKEN is required")


def load_config() -> Config:
    """Load application configuration from environment variables.

    Returns:
        Config: Application configuration with validated values
    """
    config = Config(
        bot_token=_get_str("BOT_TOKEN", ""),
        enable_bot=_get_bool("ENABLE_BOT", True),
        owner_user_id=_get_optional_str("OWNER_USER_ID"),
        admin_user_ids=_parse_str_set(_get_str("ADMIN_USER_IDS", "")),
        moderator_user_ids=_parse_str_set(_get_str("MODERATOR_USER_IDS", "")),
        storage_path=_get_str("STORAGE_PATH", "data/contests.db"),
        referral_bonus_tickets=_get_int("REFERRAL_BONUS_TICKETS", ReferralDefaults.BONUS_TICKETS),
        referral_max_bonus_tickets=_get_int(
            "REFERRAL_MAX_BONUS_TICKETS", ReferralDefaults.MAX_BONUS_TICKETS
        ),
        log_path=_get_str("LOG_PATH", "data/bot.log"),
        log_level=_get_str("LOG_LEVEL", "INFO").upper(),
        environment=_get_str("ENVIRONMENT", "development"),
        debug=_get_bool("DEBUG", False),
        admin_panel_url=_get_optional_str("ADMIN_PANEL_URL"),
        admin_panel_secret=_get_optional_str("ADMIN_PANEL_SECRET"),
        admin_panel_host=_get_str("ADMIN_PANEL_HOST", "0.0.0.0"),
        admin_panel_port=_get_int("ADMIN_PANEL_PORT", AdminPanelDefaults.PORT),
        admin_panel_token_ttl_ms=_get_int("ADMIN_PANEL_TOKEN_TTL_MS", AdminPanelDefaults.TOKEN_TTL_MS),
        admin_panel_rate_limit_window_ms=_get_int(
            "ADMIN_PANEL_RATE_LIMIT_WINDOW_MS", RateLimitDefaults.WINDOW_MS
        ),
        admin_panel_rate_limit_max=_get_int("ADMIN_PANEL_RATE_LIMIT_MAX", RateLimitDefaults.MAX_REQUESTS),
        admin_panel_ip_allowlist=_parse_str_set(_get_str("ADMIN_PANEL_IP_ALLOWLIST", "")),
        admin_panel_max_body_bytes=_get_int(
            "ADMIN_PANEL_MAX_BODY_BYTES", AdminPanelDefaults.MAX_BODY_BYTES
        ),
        admin_alert_digest_interval_ms=_get_int(
            "ADMIN_ALERT_DIGEST_INTERVAL_MS", AutoFinishDefaults.ALERT_DIGEST_INTERVAL_MS
        ),
        auto_finish_interval_seconds=_get_int(
            "AUTO_FINISH_INTERVAL_SECONDS", AutoFinishDefaults.INTERVAL_SECONDS
        ),
    )

    return config
