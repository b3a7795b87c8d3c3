"""Contest data model and its JSON wire encoding."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple

from core.constants import AuditAction, ContestStatus


@dataclass(frozen=True, slots=True)
class Participant:
    user_id: str
    joined_at: str
    tickets: int = 1
    username: Optional[str] = None
    referred_by: Optional[str] = None
    referrals_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "userId": self.user_id,
            "joinedAt": self.joined_at,
            "tickets": self.tickets,
        }
        if self.username is not None:
            data["username"] = self.username
        if self.referred_by is not None:
            data["referredBy"] = self.referred_by
        if self.referrals_count:
            data["referralsCount"] = self.referrals_count
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Participant":
        return cls(
            user_id=str(data["userId"]),
            joined_at=str(data.get("joinedAt", "")),
            tickets=max(1, int(data.get("tickets", 1))),
            username=data.get("username"),
            referred_by=data.get("referredBy"),
            referrals_count=int(data.get("referralsCount", 0) or 0),
        )


@dataclass(frozen=True, slots=True)
class AuditEntry:
    at: str
    action: AuditAction
    actor_id: str
    details: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "at": self.at,
            "action": self.action.value,
            "actorId": self.actor_id,
        }
        if self.details is not None:
            data["details"] = self.details
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditEntry":
        return cls(
            at=str(data["at"]),
            action=AuditAction(data["action"]),
            actor_id=str(data.get("actorId", "")),
            details=data.get("details"),
        )


@dataclass(frozen=True, slots=True)
class Contest:
    id: str
    title: str
    created_by: str
    created_at: str
    ends_at: str
    max_winners: int
    status: ContestStatus = ContestStatus.ACTIVE
    required_chats: Tuple[int, ...] = ()
    participants: Tuple[Participant, ...] = ()
    winners: Tuple[str, ...] = ()
    draw_seed: Optional[str] = None
    publish_chat_id: Optional[int] = None
    publish_message_id: Optional[str] = None
    audit_log: Tuple[AuditEntry, ...] = field(default=())

    def find_participant(self, user_id: str) -> Optional[Participant]:
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None

    def has_participant(self, user_id: str) -> bool:
        return self.find_participant(user_id) is not None

    def with_audit(self, entry: AuditEntry, **changes: Any) -> "Contest":
        """Return a copy with ``changes`` applied and ``entry`` appended."""
        return replace(self, audit_log=self.audit_log + (entry,), **changes)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "createdBy": self.created_by,
            "createdAt": self.created_at,
            "endsAt": self.ends_at,
            "maxWinners": self.max_winners,
            "status": self.status.value,
            "requiredChats": list(self.required_chats),
            "participants": [p.to_dict() for p in self.participants],
            "winners": list(self.winners),
        }
        if self.draw_seed is not None:
            data["drawSeed"] = self.draw_seed
        if self.publish_chat_id is not None:
            data["publishChatId"] = self.publish_chat_id
        if self.publish_message_id is not None:
            data["publishMessageId"] = self.publish_message_id
        data["auditLog"] = [entry.to_dict() for entry in self.audit_log]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Contest":
        publish_chat_id = data.get("publishChatId")
        publish_message_id = data.get("publishMessageId")
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            created_by=str(data.get("createdBy", "")),
            created_at=str(data.get("createdAt", "")),
            ends_at=str(data.get("endsAt", "")),
            max_winners=max(1, int(data.get("maxWinners", 1))),
            status=ContestStatus(data.get("status", ContestStatus.ACTIVE.value)),
            required_chats=tuple(int(chat) for chat in data.get("requiredChats") or ()),
            participants=tuple(Participant.from_dict(p) for p in data.get("participants") or ()),
            winners=tuple(str(w) for w in data.get("winners") or ()),
            draw_seed=data.get("drawSeed"),
            publish_chat_id=int(publish_chat_id) if publish_chat_id is not None else None,
            publish_message_id=str(publish_message_id) if publish_message_id is not None else None,
            audit_log=tuple(AuditEntry.from_dict(e) for e in data.get("auditLog") or ()),
        )
