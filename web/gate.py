"""Admission checks for every administrative HTTP request.

Order matters and the first failure wins: unknown route (404), IP not on
the allow-list (403), rate limit (429), missing/stale/forged signature
(401), insufficient role (403).
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Mapping, Optional

from core.logger import get_logger
from services.roles import RoleResolver
from utils.validators import normalize_ip
from web.signing import verify_signature

logger = get_logger(__name__)

ADMIN_SUBROUTES = ("", "/action", "/export", "/audit", "/metrics", "/metrics.csv", "/alerts", "/prometheus")
MANAGE_ACTIONS = frozenset({"create", "edit", "reopen"})
# Windows that have run out are swept once the limiter tracks this many keys
RATE_LIMIT_PRUNE_THRESHOLD = 1024


@dataclass(frozen=True)
class AdminRequest:
    path: str
    method: str
    client_ip: str
    params: Mapping[str, str] = field(default_factory=dict)
    action: Optional[str] = None


@dataclass(frozen=True, slots=True)
class GateDecision:
    ok: bool
    status: int
    reason: str = ""
    user_id: Optional[str] = None
    retry_after: Optional[int] = None


@dataclass
class _Window:
    count: int
    window_start: float


class FixedWindowRateLimiter:
    """Counts hits per key in fixed windows; the window restarts once elapsed."""

    def __init__(self, window_ms: int, max_requests: int) -> None:
        self.window_ms = window_ms
        self.max_requests = max_requests
        self._state: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    @property
    def retry_after_seconds(self) -> int:
        return math.ceil(self.window_ms / 1000)

    def hit(self, key: str, now_ms: float) -> bool:
        with self._lock:
            current = self._state.get(key)
            if current is None or now_ms - current.window_start >= self.window_ms:
                self._prune(now_ms)
                self._state[key] = _Window(count=1, window_start=now_ms)
                return True
            if current.count >= self.max_requests:
                return False
            current.count += 1
            return True

    def _prune(self, now_ms: float) -> None:
        if len(self._state) < RATE_LIMIT_PRUNE_THRESHOLD:
            return
        expired = [key for key, window in self._state.items() if now_ms - window.window_start >= self.window_ms]
        for key in expired:
            del self._state[key]


class AdminAccessGate:
    """Authenticate admin panel requests against the configured policy."""

    def __init__(
        self,
        config,
        roles: Optional[RoleResolver] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.base_path = config.admin_panel_base_path
        self.secret = config.signing_secret
        self.ttl_ms = config.admin_panel_token_ttl_ms
        self.ip_allowlist = frozenset(config.admin_panel_ip_allowlist)
        self.roles = roles or RoleResolver.from_config(config)
        self.rate_limiter = FixedWindowRateLimiter(
            config.admin_panel_rate_limit_window_ms,
            config.admin_panel_rate_limit_max,
        )
        self._clock = clock
        self.routes = frozenset(f"{self.base_path}{suffix}" for suffix in ADMIN_SUBROUTES)

    def is_admin_route(self, path: str) -> bool:
        return path in self.routes

    def authenticate(self, request: AdminRequest) -> GateDecision:
        if not self.is_admin_route(request.path):
            return GateDecision(ok=False, status=404, reason="not_found")

        client_ip = normalize_ip(request.client_ip)
        if self.ip_allowlist and client_ip not in self.ip_allowlist:
            logger.warning("admin_gate_rejected reason=ip_forbidden ip=%s path=%s", client_ip, request.path)
            return GateDecision(ok=False, status=403, reason="ip_forbidden")

        now_ms = self._clock() * 1000
        if not self.rate_limiter.hit(f"{client_ip}:{request.path}", now_ms):
            logger.warning("admin_gate_rejected reason=rate_limited ip=%s path=%s", client_ip, request.path)
            return GateDecision(
                ok=False,
                status=429,
                reason="rate_limited",
                retry_after=self.rate_limiter.retry_after_seconds,
            )

        check = verify_signature(request.params, self.secret, self.ttl_ms, current_ms=int(now_ms))
        if not check.ok:
            logger.warning("admin_gate_rejected reason=unauthorized ip=%s path=%s", client_ip, request.path)
            return GateDecision(ok=False, status=401, reason="unauthorized")

        if not self._role_allows(check.user_id, request):
            logger.warning(
                "admin_gate_rejected reason=role_forbidden uid=%s path=%s action=%s",
                check.user_id, request.path, request.action,
            )
            return GateDecision(ok=False, status=403, reason="role_forbidden", user_id=check.user_id)

        return GateDecision(ok=True, status=200, user_id=check.user_id)

    def _role_allows(self, user_id: str, request: AdminRequest) -> bool:
        if request.path == f"{self.base_path}/action" and (request.action or "") in MANAGE_ACTIONS:
            return self.roles.can_manage(user_id)
        return self.roles.can_moderate(user_id)
