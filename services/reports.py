"""Read-only admin reports over a contest collection.

Filtering, pagination, CSV exports and the JSON documents served by the
admin panel. Everything here is a pure function of the contest list (and
the current time for alerts), so the same reports feed the web panel and the
alert digest sent to admins.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from core.constants import AdminPanelDefaults, AuditAction, ContestStatus
from database.models import Contest
from utils.validators import parse_iso_datetime, parse_positive_int, to_iso, utc_now

RECENT_AUDIT_LIMIT = 50
TOP_CONTESTS_LIMIT = 5
STATUS_FILTERS = (
    AdminPanelDefaults.STATUS_FILTER_ALL,
    ContestStatus.ACTIVE.value,
    ContestStatus.COMPLETED.value,
    ContestStatus.DRAFT.value,
)


@dataclass(frozen=True, slots=True)
class Page:
    items: List[Contest]
    page: int
    page_size: int
    total_pages: int


def parse_status_filter(value: Optional[str]) -> str:
    if value in STATUS_FILTERS:
        return value
    return AdminPanelDefaults.STATUS_FILTER_ALL


def apply_contest_filters(contests: Sequence[Contest], query: str, status: str) -> List[Contest]:
    """Keep contests matching ``status`` whose id or title contains ``query``."""
    needle = (query or "").strip().lower()
    result = []
    for contest in contests:
        if status != AdminPanelDefaults.STATUS_FILTER_ALL and contest.status.value != status:
            continue
        if needle and needle not in contest.id.lower() and needle not in contest.title.lower():
            continue
        result.append(contest)
    return result


def paginate_contests(contests: Sequence[Contest], page_raw: Optional[str], page_size_raw: Optional[str]) -> Page:
    page_size = min(
        parse_positive_int(page_size_raw, AdminPanelDefaults.DEFAULT_PAGE_SIZE),
        AdminPanelDefaults.MAX_PAGE_SIZE,
    )
    total_pages = max(1, math.ceil(len(contests) / page_size))
    page = min(parse_positive_int(page_raw, 1), total_pages)
    start = (page - 1) * page_size
    return Page(items=list(contests[start:start + page_size]), page=page, page_size=page_size, total_pages=total_pages)


def _csv_value(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def build_contest_csv(contests: Sequence[Contest]) -> str:
    header = "id,title,status,participants,maxWinners,winners,endsAt,createdAt"
    rows = [
        ",".join([
            _csv_value(contest.id),
            _csv_value(contest.title),
            _csv_value(contest.status.value),
            str(len(contest.participants)),
            str(contest.max_winners),
            _csv_value("|".join(contest.winners)),
            _csv_value(contest.ends_at),
            _csv_value(contest.created_at),
        ])
        for contest in contests
    ]
    return "\n".join([header, *rows])


def _count_actions(contests: Sequence[Contest], action: AuditAction) -> int:
    return sum(1 for contest in contests for entry in contest.audit_log if entry.action == action)


def build_audit_report(contests: Sequence[Contest]) -> Dict[str, Any]:
    """Totals plus the most recent audit entries across ``contests``."""
    recent = sorted(
        (
            {
                "contestId": contest.id,
                "at": entry.at,
                "action": entry.action.value,
                "actorId": entry.actor_id,
            }
            for contest in contests
            for entry in contest.audit_log
        ),
        key=lambda row: row["at"],
        reverse=True,
    )[:RECENT_AUDIT_LIMIT]

    by_action: Dict[str, int] = {}
    for row in recent:
        by_action[row["action"]] = by_action.get(row["action"], 0) + 1

    return {
        "totals": {
            "contests": len(contests),
            "participants": sum(len(contest.participants) for contest in contests),
            "completed": sum(1 for contest in contests if contest.status == ContestStatus.COMPLETED),
        },
        "byAction": by_action,
        "recent": recent,
    }


def build_metrics_report(contests: Sequence[Contest]) -> Dict[str, Any]:
    total = len(contests)
    participants = sum(len(contest.participants) for contest in contests)
    with_participants = sum(1 for contest in contests if contest.participants)

    def with_status(status: ContestStatus) -> int:
        return sum(1 for contest in contests if contest.status == status)

    top = sorted(contests, key=lambda contest: len(contest.participants), reverse=True)[:TOP_CONTESTS_LIMIT]

    return {
        "totals": {
            "contests": total,
            "active": with_status(ContestStatus.ACTIVE),
            "completed": with_status(ContestStatus.COMPLETED),
            "draft": with_status(ContestStatus.DRAFT),
            "participants": participants,
        },
        "engagement": {
            "contestsWithParticipants": with_participants,
            "participationRatePct": round(with_participants / total * 100) if total else 0,
            "avgParticipantsPerContest": round(participants / total, 2) if total else 0,
            "contestsWithRequiredChats": sum(1 for contest in contests if contest.required_chats),
        },
        "draws": {
            "drawActions": _count_actions(contests, AuditAction.DRAW),
            "rerollActions": _count_actions(contests, AuditAction.REROLL),
            "totalWinners": sum(len(contest.winners) for contest in contests),
        },
        "referrals": {
            "participantsWithReferrer": sum(
                1 for contest in contests for participant in contest.participants if participant.referred_by
            ),
            "sumReferralCounters": sum(
                participant.referrals_count for contest in contests for participant in contest.participants
            ),
        },
        "topContestsByParticipants": [
            {
                "id": contest.id,
                "title": contest.title,
                "participants": len(contest.participants),
                "status": contest.status.value,
            }
            for contest in top
        ],
    }


def build_metrics_csv(report: Dict[str, Any]) -> str:
    rows: List[tuple] = []
    for section in ("totals", "engagement", "draws", "referrals"):
        for key, value in report[section].items():
            rows.append((f"{section}.{key}", str(value)))
    for index, item in enumerate(report["topContestsByParticipants"]):
        prefix = f"topContestsByParticipants.{index}"
        rows.append((f"{prefix}.id", item["id"]))
        rows.append((f"{prefix}.title", item["title"]))
        rows.append((f"{prefix}.participants", str(item["participants"])))
        rows.append((f"{prefix}.status", item["status"]))
    return "\n".join(["metric,value", *(f"{_csv_value(m)},{_csv_value(v)}" for m, v in rows)])


def build_alerts_report(contests: Sequence[Contest], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Heuristic anomaly alerts for operators.

    Args:
        contests: Contests to inspect
        now: Reference time for the past-due check (defaults to current UTC)

    Returns:
        Dict with ``generatedAt``, ``totals`` and a list of ``alerts``, each
        carrying ``code``, ``severity``, ``value`` and ``message``
    """
    now = now or utc_now()
    active = [contest for contest in contests if contest.status == ContestStatus.ACTIVE]
    completed = [contest for contest in contests if contest.status == ContestStatus.COMPLETED]
    draws = _count_actions(contests, AuditAction.DRAW)
    rerolls = _count_actions(contests, AuditAction.REROLL)

    past_due = 0
    for contest in active:
        ends_at = parse_iso_datetime(contest.ends_at)
        if ends_at is not None and ends_at < now:
            past_due += 1

    max_referrals = max(
        (participant.referrals_count for contest in contests for participant in contest.participants),
        default=0,
    )

    alerts: List[Dict[str, Any]] = []
    if rerolls >= 3 and rerolls > draws:
        alerts.append({
            "code": "high_reroll_activity",
            "severity": "high",
            "value": rerolls,
            "message": "Reroll действий больше draw. Проверьте качество условий конкурса и риск абьюза.",
        })
    elif rerolls >= 2:
        alerts.append({
            "code": "elevated_reroll_activity",
            "severity": "medium",
            "value": rerolls,
            "message": "Наблюдается повышенное число reroll.",
        })

    if past_due > 0:
        alerts.append({
            "code": "past_due_active_contests",
            "severity": "high" if past_due > 3 else "medium",
            "value": past_due,
            "message": "Есть active конкурсы с прошедшей датой окончания. Проверьте автофиниш.",
        })

    if max_referrals >= 10:
        alerts.append({
            "code": "referral_outlier",
            "severity": "medium",
            "value": max_referrals,
            "message": "Найден участник с очень высоким referral count. Проверьте источник трафика.",
        })

    if len(completed) >= 5:
        empty = sum(1 for contest in completed if not contest.participants)
        pct = round(empty / len(completed) * 100)
        if pct >= 40:
            alerts.append({
                "code": "low_completion_quality",
                "severity": "low",
                "value": pct,
                "message": "Большая доля завершенных конкурсов без участников.",
            })

    return {
        "generatedAt": to_iso(now),
        "totals": {
            "contests": len(contests),
            "active": len(active),
            "completed": len(completed),
        },
        "alerts": alerts,
    }


def alert_digest_signature(alerts: Sequence[Dict[str, Any]]) -> str:
    return "|".join(sorted(f"{alert['code']}:{alert['severity']}:{alert['value']}" for alert in alerts))


def format_alert_digest(alerts: Sequence[Dict[str, Any]]) -> str:
    lines = [
        f"- [{alert['severity']}] {alert['code']}: {alert['message']} (value={alert['value']})"
        for alert in alerts
    ]
    return "\n".join(["[ALERT DIGEST] Обнаружены аномалии конкурсов:", *lines])


def dashboard_summary(contests: Sequence[Contest]) -> Dict[str, Any]:
    """Headline numbers shown above the dashboard table."""
    total = len(contests)
    participants = sum(len(contest.participants) for contest in contests)
    completed = sum(1 for contest in contests if contest.status == ContestStatus.COMPLETED)
    return {
        "total": total,
        "active": sum(1 for contest in contests if contest.status == ContestStatus.ACTIVE),
        "completed": completed,
        "participants": participants,
        "avg_participants": f"{participants / total:.1f}" if total else "0.0",
        "draw_ops": _count_actions(contests, AuditAction.DRAW) + _count_actions(contests, AuditAction.REROLL),
        "completion_rate": round(completed / total * 100) if total else 0,
    }
