"""Bot middleware package."""

from .cooldown import CommandCooldownMiddleware, setup_cooldown_middleware

__all__ = [
    "CommandCooldownMiddleware",
    "setup_cooldown_middleware",
]
