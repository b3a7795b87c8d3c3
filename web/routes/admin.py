"""Admin panel views: dashboard, reports and the action endpoint.

Every view here runs after the access gate, which stores the verified
caller in ``g.admin_user_id``.
"""

from __future__ import annotations

import time
from urllib.parse import urlencode

from flask import Blueprint, Response, current_app, g, jsonify, redirect, render_template, request
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from core.constants import AdminPanelDefaults
from core.logger import get_logger
from services.actions import BULK_ACTIONS, SINGLE_ACTIONS
from services.reports import (
    apply_contest_filters,
    build_alerts_report,
    build_audit_report,
    build_contest_csv,
    build_metrics_csv,
    build_metrics_report,
    dashboard_summary,
    paginate_contests,
    parse_status_filter,
)
from utils.validators import parse_iso_datetime, parse_positive_int, utc_now_iso
from web.config_middleware import ADMIN_ACTIONS, EXTENSION_KEY

logger = get_logger(__name__)

admin_bp = Blueprint("admin", __name__)

SIGNED_PARAMS = ("uid", "ts", "sig")


def _services() -> dict:
    return current_app.extensions[EXTENSION_KEY]


def _signed_params() -> dict:
    return {key: request.args.get(key, "") for key in SIGNED_PARAMS}


def _filters() -> tuple:
    query = request.args.get("q", "")
    status = parse_status_filter(request.args.get("status"))
    return query, status


def _filtered_contests():
    query, status = _filters()
    return apply_contest_filters(_services()["repository"].list(), query, status)


def _csv_response(body: str, prefix: str) -> Response:
    response = Response(body, mimetype="text/csv")
    response.headers["Content-Disposition"] = f'attachment; filename="{prefix}-{int(time.time() * 1000)}.csv"'
    return response


def _datetime_local(value: str) -> str:
    parsed = parse_iso_datetime(value)
    if parsed is None:
        return ""
    return parsed.strftime("%Y-%m-%dT%H:%M")


@admin_bp.route("", methods=["GET"])
def dashboard():
    query, status = _filters()
    contests = _filtered_contests()
    paging = paginate_contests(contests, request.args.get("page"), request.args.get("pageSize"))
    base_path = current_app.config["ADMIN_BASE_PATH"]
    page_query = urlencode({
        **_signed_params(),
        "q": query,
        "status": status,
        "pageSize": paging.page_size,
    })

    return render_template(
        "dashboard.html",
        base_path=base_path,
        signed=_signed_params(),
        page_query=page_query,
        query=query,
        status=status,
        paging=paging,
        prev_page=max(1, paging.page - 1),
        next_page=min(paging.total_pages, paging.page + 1),
        summary=dashboard_summary(contests),
        flash_message=request.args.get("m"),
        max_page_size=AdminPanelDefaults.MAX_PAGE_SIZE,
        datetime_local=_datetime_local,
    )


@admin_bp.route("/export", methods=["GET"])
def export_contests():
    return _csv_response(build_contest_csv(_filtered_contests()), "contests")


@admin_bp.route("/audit", methods=["GET"])
def audit_report():
    query, status = _filters()
    return jsonify({
        "generatedAt": utc_now_iso(),
        "filters": {"query": query, "status": status},
        **build_audit_report(_filtered_contests()),
    })


@admin_bp.route("/metrics", methods=["GET"])
def metrics_report():
    query, status = _filters()
    return jsonify({
        "generatedAt": utc_now_iso(),
        "filters": {"query": query, "status": status},
        **build_metrics_report(_filtered_contests()),
    })


@admin_bp.route("/metrics.csv", methods=["GET"])
def metrics_csv():
    return _csv_response(build_metrics_csv(build_metrics_report(_filtered_contests())), "metrics")


@admin_bp.route("/alerts", methods=["GET"])
def alerts_report():
    query, status = _filters()
    return jsonify({
        "filters": {"query": query, "status": status},
        **build_alerts_report(_filtered_contests()),
    })


@admin_bp.route("/prometheus", methods=["GET"])
def prometheus_metrics():
    """Expose Prometheus metrics."""
    return generate_latest(), 200, {"Content-Type": CONTENT_TYPE_LATEST}


@admin_bp.route("/action", methods=["POST"])
def perform_action():
    dispatcher = _services()["dispatcher"]
    action = request.form.get("action", "")
    fields = {
        "title": request.form.get("title") or None,
        "ends_at": request.form.get("endsAt") or None,
        "max_winners": request.form.get("maxWinners") or None,
        "contest_ids": [value.strip() for value in request.form.getlist("contestIds") if value.strip()],
    }
    result = dispatcher.perform(action, request.form.get("contestId"), g.admin_user_id, fields)
    label = action if action in SINGLE_ACTIONS or action in BULK_ACTIONS else "unknown"
    ADMIN_ACTIONS.labels(action=label, ok=str(result.ok).lower()).inc()
    logger.info(
        "admin_panel_action action=%s contest_id=%s actor_id=%s ok=%s",
        action, request.form.get("contestId"), g.admin_user_id, result.ok,
    )

    location = current_app.config["ADMIN_BASE_PATH"] + "?" + urlencode({
        **_signed_params(),
        "q": request.args.get("q", ""),
        "status": request.args.get("status", AdminPanelDefaults.STATUS_FILTER_ALL),
        "page": parse_positive_int(request.args.get("page"), 1),
        "pageSize": parse_positive_int(request.args.get("pageSize"), AdminPanelDefaults.DEFAULT_PAGE_SIZE),
        "m": result.message,
    })
    return redirect(location, code=302)
