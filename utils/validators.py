"""Input validation and timestamp helpers."""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Optional


CONTEST_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
CHAT_ID_SPLIT_RE = re.compile(r"[,\s]+")
IPV4_MAPPED_PREFIX = "::ffff:"


def to_iso(moment: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with millisecond precision."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return to_iso(utc_now())


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string into an aware UTC datetime.

    Accepts a trailing ``Z``, explicit offsets and naive values (treated as
    UTC). Returns None when the value cannot be parsed.
    """
    if not value:
        return None
    raw = value.strip()
    if not raw:
        return None
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_positive_int(raw: Optional[str], fallback: int) -> int:
    """Parse a positive integer (floored), falling back on bad input."""
    if raw is None:
        return fallback
    try:
        parsed = float(raw)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(parsed):
        return fallback
    normalized = math.floor(parsed)
    if normalized < 1:
        return fallback
    return normalized


def parse_max_winners(raw: Optional[str], default: int) -> Optional[int]:
    """Parse a winner count; None means the value is invalid."""
    if raw is None or not str(raw).strip():
        return default
    try:
        parsed = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(parsed) or parsed < 1:
        return None
    return math.floor(parsed)


def validate_contest_id(value: str) -> bool:
    return bool(value and CONTEST_ID_RE.match(value))


def parse_chat_ids(raw: str) -> list[int]:
    """Parse a comma or space separated list of numeric chat ids, deduplicated."""
    result: list[int] = []
    for part in CHAT_ID_SPLIT_RE.split(raw or ""):
        part = part.strip()
        if not part:
            continue
        try:
            chat_id = int(part)
        except ValueError:
            continue
        if chat_id not in result:
            result.append(chat_id)
    return result


def normalize_ip(raw_ip: Optional[str]) -> str:
    """Strip whitespace and the IPv4-mapped IPv6 prefix."""
    if not raw_ip:
        return ""
    value = raw_ip.strip()
    if value.lower().startswith(IPV4_MAPPED_PREFIX):
        return value[len(IPV4_MAPPED_PREFIX):]
    return value
