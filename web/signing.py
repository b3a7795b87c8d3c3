"""Signed, time-boxed capability links for the admin panel.

A link carries ``uid``, ``ts`` (epoch milliseconds) and ``sig``, the hex
HMAC-SHA256 of ``"{uid}:{ts}"`` under the panel secret. Nothing is stored
server side; a link is valid while ``|now - ts|`` stays within the TTL.
"""

from __future__ import annotations

import hashlib
import hmac
import math
import time
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


@dataclass(frozen=True, slots=True)
class SignatureCheck:
    ok: bool
    user_id: Optional[str] = None


def now_ms() -> int:
    return int(time.time() * 1000)


def build_signature(user_id: str, ts: str, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), f"{user_id}:{ts}".encode("utf-8"), hashlib.sha256).hexdigest()


def build_admin_panel_url(base_url: str, user_id: str, secret: str, ts_ms: Optional[int] = None) -> str:
    """Return ``base_url`` with ``uid``, ``ts`` and ``sig`` query parameters set."""
    ts = str(now_ms() if ts_ms is None else ts_ms)
    parts = urlsplit(base_url)
    query = [(key, value) for key, value in parse_qsl(parts.query) if key not in ("uid", "ts", "sig")]
    query += [("uid", user_id), ("ts", ts), ("sig", build_signature(user_id, ts, secret))]
    return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", urlencode(query), parts.fragment))


def verify_signature(
    params: Mapping[str, str],
    secret: str,
    ttl_ms: int,
    current_ms: Optional[int] = None,
) -> SignatureCheck:
    """Check presence, freshness and authenticity of a signed link."""
    user_id = params.get("uid") or ""
    ts = params.get("ts") or ""
    sig = params.get("sig") or ""
    if not user_id or not ts or not sig or not secret:
        return SignatureCheck(ok=False)

    try:
        ts_value = float(ts)
    except ValueError:
        return SignatureCheck(ok=False)
    if not math.isfinite(ts_value):
        return SignatureCheck(ok=False)
    current = now_ms() if current_ms is None else current_ms
    if abs(current - ts_value) > ttl_ms:
        return SignatureCheck(ok=False)

    expected = build_signature(user_id, ts, secret)
    try:
        provided = bytes.fromhex(sig)
    except ValueError:
        return SignatureCheck(ok=False)
    if not provided or len(provided) != len(bytes.fromhex(expected)):
        return SignatureCheck(ok=False)
    if not hmac.compare_digest(provided, bytes.fromhex(expected)):
        return SignatureCheck(ok=False)
    return SignatureCheck(ok=True, user_id=user_id)
