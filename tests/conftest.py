"""Pytest configuration and fixtures."""

import itertools
import os
import sys
from dataclasses import replace
from datetime import datetime, timezone

import pytest

# Добавляем корневую директорию проекта в sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from config import Config  # noqa: E402
from core.constants import AuditAction, ContestStatus  # noqa: E402
from database.models import AuditEntry, Contest, Participant  # noqa: E402
from database.repository import ContestRepository  # noqa: E402
from services.actions import ContestActionDispatcher  # noqa: E402
from services.cooldown import CooldownTracker  # noqa: E402

FIXED_NOW = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
SECRET = "panel-secret-for-tests"

BASE_CONFIG = Config(
    bot_token="123456:TEST-TOKEN-VALUE",
    enable_bot=False,
    owner_user_id="1",
    admin_user_ids=frozenset({"2"}),
    moderator_user_ids=frozenset({"3"}),
    storage_path="data/test-contests.json",
    referral_bonus_tickets=1,
    referral_max_bonus_tickets=5,
    log_path="data/test.log",
    log_level="INFO",
    environment="test",
    debug=False,
    admin_panel_url="https://panel.example.com/adminpanel",
    admin_panel_secret=SECRET,
    admin_panel_host="127.0.0.1",
    admin_panel_port=8787,
    admin_panel_token_ttl_ms=600_000,
    admin_panel_rate_limit_window_ms=60_000,
    admin_panel_rate_limit_max=120,
    admin_panel_ip_allowlist=frozenset(),
    admin_panel_max_body_bytes=65_536,
    admin_alert_digest_interval_ms=300_000,
    auto_finish_interval_seconds=15,
)


def make_participant(user_id, tickets=1, joined_at="2025-12-31T10:00:00.000Z", **kwargs):
    return Participant(user_id=str(user_id), joined_at=joined_at, tickets=tickets, **kwargs)


def make_contest(contest_id="c1", participants=(), **kwargs):
    values = {
        "id": contest_id,
        "title": f"Contest {contest_id}",
        "created_by": "1",
        "created_at": "2025-12-30T00:00:00.000Z",
        "ends_at": "2026-01-02T00:00:00.000Z",
        "max_winners": 1,
        "status": ContestStatus.ACTIVE,
        "participants": tuple(participants),
        "audit_log": (AuditEntry("2025-12-30T00:00:00.000Z", AuditAction.CREATED, "1", "created"),),
    }
    values.update(kwargs)
    return Contest(**values)


@pytest.fixture
def config_factory(tmp_path):
    """Build a Config with test defaults; keyword arguments override fields."""
    def factory(**overrides):
        overrides.setdefault("storage_path", str(tmp_path / "contests.json"))
        return replace(BASE_CONFIG, **overrides)
    return factory


@pytest.fixture
def test_config(config_factory):
    return config_factory()


@pytest.fixture(params=["contests.json", "contests.db"])
def repository(request, tmp_path):
    """Repository on each backend, selected by file suffix."""
    repo = ContestRepository(tmp_path / request.param)
    yield repo
    repo.close()


@pytest.fixture
def json_repository(tmp_path):
    repo = ContestRepository(tmp_path / "contests.json")
    yield repo
    repo.close()


@pytest.fixture
def clock():
    """Mutable clock: set ``clock.now`` to move time."""
    class Clock:
        now = FIXED_NOW

        def __call__(self):
            return self.now

    return Clock()


@pytest.fixture
def dispatcher(json_repository, clock):
    ids = (f"k{index}" for index in itertools.count(1))
    return ContestActionDispatcher(
        json_repository,
        draw_locks=CooldownTracker(0),
        clock=clock,
        id_factory=lambda: next(ids),
    )
