"""Application-wide constants and configuration values."""

from __future__ import annotations

from enum import Enum


# Telegram limits
class TelegramLimits:
    """Telegram API limits."""
    MESSAGE_MAX_LENGTH = 4096
    START_PAYLOAD_MAX_LENGTH = 64


# Status enums
class ContestStatus(str, Enum):
    """Contest lifecycle status."""
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"


class AuditAction(str, Enum):
    """Action tags recorded in a contest audit log."""
    CREATED = "created"
    EDITED = "edited"
    CLOSED = "closed"
    REOPENED = "reopened"
    DRAW = "draw"
    REROLL = "reroll"
    AUTOFINISH = "autofinish"
    JOIN = "join"


class Role(str, Enum):
    """Fixed role ladder, highest first."""
    OWNER = "owner"
    ADMIN = "admin"
    MODERATOR = "moderator"
    USER = "user"


# Draw constants
class DrawDefaults:
    """Draw engine and draw lock configuration."""
    SEED_FORMULA = "sha256(contest.id|endsAt|participants.length)"
    LOCK_TTL_SECONDS = 10.0
    SYSTEM_ACTOR = "system"


# Referral constants
class ReferralDefaults:
    """Referral bonus configuration."""
    BONUS_TICKETS = 1
    MAX_BONUS_TICKETS = 5


# Admin panel constants
class AdminPanelDefaults:
    """Admin panel HTTP surface configuration."""
    BASE_PATH = "/adminpanel"
    PORT = 8787
    TOKEN_TTL_MS = 10 * 60 * 1000
    MAX_BODY_BYTES = 64 * 1024
    DEFAULT_PAGE_SIZE = 10
    MAX_PAGE_SIZE = 100
    STATUS_FILTER_ALL = "all"


# Rate limiting
class RateLimitDefaults:
    """Rate limiting configuration."""
    WINDOW_MS = 60_000
    MAX_REQUESTS = 120
    COMMAND_COOLDOWN_SECONDS = 1.5


# Abuse signals
class SuspiciousActivityDefaults:
    """Repeat-offender alerting thresholds."""
    WINDOW_SECONDS = 5 * 60
    THRESHOLD = 3
    ALERT_COOLDOWN_SECONDS = 5 * 60


# Background sweep
class AutoFinishDefaults:
    """Auto-finish and alert digest scheduling."""
    INTERVAL_SECONDS = 15
    ALERT_DIGEST_INTERVAL_MS = 300_000
    MIN_ALERT_DIGEST_INTERVAL_SECONDS = 60
