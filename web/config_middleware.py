"""Flask application configuration and middleware setup."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from flask import Flask, g, request
from prometheus_client import Counter, Histogram

if TYPE_CHECKING:
    from config import Config

EXTENSION_KEY = "giveaway"

# Prometheus metrics
REQUEST_LATENCY = Histogram(
    "admin_panel_request_latency_seconds",
    "Admin panel HTTP request latency",
    ["method", "path"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5),
)
REQUEST_ERRORS = Counter(
    "admin_panel_request_errors_total",
    "Total number of 5xx responses",
    ["method", "path"],
)
GATE_REJECTIONS = Counter(
    "admin_panel_gate_rejections_total",
    "Admin requests rejected by the access gate",
    ["reason"],
)
ADMIN_ACTIONS = Counter(
    "admin_panel_actions_total",
    "Contest actions submitted through the admin panel",
    ["action", "ok"],
)


def configure_app(app: Flask, config: Config, testing: bool = False) -> None:
    """Configure Flask application settings.

    Args:
        app: Flask application instance
        config: Application configuration
        testing: Whether running in testing mode
    """
    app.config.update(
        MAX_CONTENT_LENGTH=config.admin_panel_max_body_bytes,
        ADMIN_BASE_PATH=config.admin_panel_base_path,
        STORAGE_PATH=config.storage_path,
        TESTING=testing,
    )

    # Warn if insecure defaults detected
    if config.environment == "production":
        if not config.admin_panel_secret:
            app.logger.warning("ADMIN_PANEL_SECRET is not set; links are signed with BOT_TOKEN")
        if not config.admin_panel_ip_allowlist:
            app.logger.warning("ADMIN_PANEL_IP_ALLOWLIST is empty; panel reachable from any address")


def setup_security_headers(app: Flask) -> None:
    """Setup security headers middleware.

    Args:
        app: Flask application instance
    """
    @app.after_request
    def add_security_headers(response):
        """Add security headers to all responses."""
        csp = (
            "default-src 'self'; "
            "style-src 'self' 'unsafe-inline'; "
            "form-action 'self'; "
            "frame-ancestors 'none'"
        )
        if not response.headers.get("Content-Security-Policy"):
            response.headers["Content-Security-Policy"] = csp

        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        # Signed links carry credentials in the query string
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault("Cache-Control", "no-store")
        return response


def setup_metrics(app: Flask) -> None:
    """Setup Prometheus metrics middleware.

    Args:
        app: Flask application instance
    """
    @app.before_request
    def before_metrics():
        """Store request start time."""
        g._metrics_start = time.time()

    @app.after_request
    def after_metrics(response):
        """Record request metrics."""
        start = getattr(g, "_metrics_start", None)
        path = getattr(request.url_rule, "rule", "unmatched")
        if start is not None:
            REQUEST_LATENCY.labels(method=request.method, path=path).observe(time.time() - start)
        if response.status_code >= 500:
            REQUEST_ERRORS.labels(method=request.method, path=path).inc()
        return response
