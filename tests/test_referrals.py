"""Tests for referral ticket accrual."""

from conftest import make_contest, make_participant
from core.constants import AuditAction
from services.referrals import JoiningUser, build_join_mutator, inspect_join, referral_bonus_for

NOW = "2026-01-01T12:00:00.000Z"


def join(contest, user_id, referrer_id=None, bonus=1, cap=5):
    mutator = build_join_mutator(
        JoiningUser(id=user_id), referrer_id, bonus_tickets=bonus, max_bonus_tickets=cap, now=NOW,
    )
    return mutator(contest)


def test_plain_join_adds_one_ticket_and_audit_entry():
    contest = join(make_contest(), "u1")

    participant = contest.find_participant("u1")
    assert participant.tickets == 1
    assert participant.joined_at == NOW
    assert participant.referred_by is None
    assert contest.audit_log[-1].action == AuditAction.JOIN
    assert contest.audit_log[-1].details == "join"


def test_existing_participant_is_returned_unchanged():
    contest = make_contest(participants=[make_participant("u1")])

    assert join(contest, "u1", referrer_id="u2") is contest


def test_referrer_gets_bonus_and_referral_count():
    contest = join(make_contest(participants=[make_participant("ref")]), "u1", referrer_id="ref")

    referrer = contest.find_participant("ref")
    assert referrer.tickets == 2
    assert referrer.referrals_count == 1
    assert contest.find_participant("u1").referred_by == "ref"
    assert contest.find_participant("u1").tickets == 1


def test_self_referral_grants_nothing():
    contest = join(make_contest(), "u1", referrer_id="u1")

    participant = contest.find_participant("u1")
    assert participant.tickets == 1
    assert participant.referred_by is None


def test_unknown_referrer_is_recorded_in_audit_only():
    contest = join(make_contest(), "u1", referrer_id="ghost")

    assert contest.find_participant("u1").referred_by is None
    assert "referrer not found=ghost" in contest.audit_log[-1].details


def test_bonus_is_capped():
    contest = make_contest(participants=[make_participant("ref")])
    for index in range(8):
        contest = join(contest, f"u{index}", referrer_id="ref", bonus=1, cap=5)

    referrer = contest.find_participant("ref")
    assert referrer.tickets == 6
    assert referrer.referrals_count == 5
    assert "лимит бонуса достигнут" in contest.audit_log[-1].details
    assert contest.find_participant("u7").referred_by == "ref"


def test_partial_bonus_fills_remaining_cap():
    referrer = make_participant("ref", tickets=5)

    assert referral_bonus_for(referrer, bonus_tickets=3, max_bonus_tickets=5) == 1


def test_inspect_join_reports_bonus():
    before = make_contest(participants=[make_participant("ref")])
    after = join(before, "u1", referrer_id="ref", bonus=2)

    outcome = inspect_join(before, after, "u1")

    assert outcome.joined
    assert outcome.referred_by == "ref"
    assert outcome.bonus == 2
