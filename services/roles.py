"""Fixed owner/admin/moderator/user role ladder."""

from __future__ import annotations

from typing import AbstractSet, Optional

from core.constants import Role


class RoleResolver:
    """Resolve a user id to its role from configured id sets."""

    def __init__(
        self,
        owner_user_id: Optional[str] = None,
        admin_user_ids: AbstractSet[str] = frozenset(),
        moderator_user_ids: AbstractSet[str] = frozenset(),
    ) -> None:
        self.owner_user_id = owner_user_id
        self.admin_user_ids = frozenset(admin_user_ids)
        self.moderator_user_ids = frozenset(moderator_user_ids)

    @classmethod
    def from_config(cls, config) -> "RoleResolver":
        return cls(
            owner_user_id=config.owner_user_id,
            admin_user_ids=config.admin_user_ids,
            moderator_user_ids=config.moderator_user_ids,
        )

    def role_of(self, user_id: str) -> Role:
        if self.owner_user_id and self.owner_user_id == user_id:
            return Role.OWNER
        if user_id in self.admin_user_ids:
            return Role.ADMIN
        if user_id in self.moderator_user_ids:
            return Role.MODERATOR
        return Role.USER

    def can_manage(self, user_id: str) -> bool:
        """Create, edit, reopen and publish contests."""
        return self.role_of(user_id) in (Role.OWNER, Role.ADMIN)

    def can_moderate(self, user_id: str) -> bool:
        """Close, draw and reroll contests; read admin reports."""
        return self.role_of(user_id) in (Role.OWNER, Role.ADMIN, Role.MODERATOR)

    def notification_targets(self) -> list[int]:
        """Numeric ids of the owner and admins, for direct notifications."""
        targets: list[int] = []
        candidates = ([self.owner_user_id] if self.owner_user_id else []) + sorted(self.admin_user_ids)
        for value in candidates:
            try:
                chat_id = int(value)
            except ValueError:
                continue
            if chat_id not in targets:
                targets.append(chat_id)
        return targets
