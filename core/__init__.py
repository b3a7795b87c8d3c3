"""Core application components."""

from core.logger import setup_logger, get_logger
from core.constants import (
    TelegramLimits,
    ContestStatus,
    AuditAction,
    Role,
    DrawDefaults,
    ReferralDefaults,
    AdminPanelDefaults,
    RateLimitDefaults,
    SuspiciousActivityDefaults,
    AutoFinishDefaults,
)
from core.exceptions import (
    ApplicationError,
    ConfigurationError,
    DatabaseError,
    StoreError,
)

__all__ = [
    # Logging
    'setup_logger',
    'get_logger',
    # Constants
    'TelegramLimits',
    'ContestStatus',
    'AuditAction',
    'Role',
    'DrawDefaults',
    'ReferralDefaults',
    'AdminPanelDefaults',
    'RateLimitDefaults',
    'SuspiciousActivityDefaults',
    'AutoFinishDefaults',
    # Exceptions
    'ApplicationError',
    'ConfigurationError',
    'DatabaseError',
    'StoreError',
]

# ApplicationInitializer lives in core.app_initializer; it pulls in the bot
# and web stacks, so it is not re-exported here.
