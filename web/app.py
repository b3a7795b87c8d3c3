"""Flask application factory for the admin panel."""

from __future__ import annotations

from typing import Optional

from flask import Flask, Response, g, request
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from core.exceptions import StoreError
from core.logger import get_logger
from database.repository import ContestRepository
from services.actions import ContestActionDispatcher
from services.roles import RoleResolver
from web.config_middleware import (
    EXTENSION_KEY,
    GATE_REJECTIONS,
    configure_app,
    setup_metrics,
    setup_security_headers,
)
from web.gate import AdminAccessGate, AdminRequest
from web.routes import register_routes

logger = get_logger(__name__)

PUBLIC_PATHS = frozenset({"/health"})
GATE_BODIES = {
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not found",
    429: "Too Many Requests",
}


def create_app(
    config,
    repository: Optional[ContestRepository] = None,
    dispatcher: Optional[ContestActionDispatcher] = None,
    gate: Optional[AdminAccessGate] = None,
    testing: bool = False,
) -> Flask:
    """Create and configure Flask application.

    Args:
        config: Application configuration
        repository: Shared contest repository (opened from config when omitted)
        dispatcher: Shared action dispatcher, so the bot and the panel share draw locks
        gate: Access gate override, mostly for tests with an injected clock
        testing: Whether running in testing mode

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)

    # Configure application
    configure_app(app, config, testing)

    repository = repository or ContestRepository(config.storage_path)
    dispatcher = dispatcher or ContestActionDispatcher(
        repository,
        referral_bonus_tickets=config.referral_bonus_tickets,
        referral_max_bonus_tickets=config.referral_max_bonus_tickets,
    )
    app.extensions[EXTENSION_KEY] = {
        "config": config,
        "repository": repository,
        "dispatcher": dispatcher,
        "roles": RoleResolver.from_config(config),
        "gate": gate or AdminAccessGate(config),
    }

    # Setup middleware
    setup_metrics(app)
    setup_security_headers(app)
    _setup_access_gate(app)

    # Register routes
    register_routes(app, config.admin_panel_base_path)

    _setup_error_handlers(app)

    return app


def _plain(body: str, status: int, **headers: str) -> Response:
    response = Response(body, status=status, mimetype="text/plain")
    response.headers.update(headers)
    return response


def _setup_access_gate(app: Flask) -> None:
    """Run every non-public request through the admin access gate."""
    @app.before_request
    def authenticate_admin_request():
        if request.path in PUBLIC_PATHS:
            return None

        gate: AdminAccessGate = app.extensions[EXTENSION_KEY]["gate"]
        action = None
        if (
            request.method == "POST"
            and gate.is_admin_route(request.path)
            and request.path.endswith("/action")
        ):
            # Touching the form enforces MAX_CONTENT_LENGTH before the body is read
            action = request.form.get("action", "")

        decision = gate.authenticate(AdminRequest(
            path=request.path,
            method=request.method,
            client_ip=request.remote_addr or "",
            params=request.args.to_dict(),
            action=action,
        ))
        if decision.ok:
            g.admin_user_id = decision.user_id
            return None

        GATE_REJECTIONS.labels(reason=decision.reason).inc()
        if decision.status == 429:
            return _plain(GATE_BODIES[429], 429, **{"Retry-After": str(decision.retry_after)})
        return _plain(GATE_BODIES.get(decision.status, "Forbidden"), decision.status)


def _setup_error_handlers(app: Flask) -> None:
    """Setup error handlers.

    Args:
        app: Flask application instance
    """
    @app.errorhandler(RequestEntityTooLarge)
    def payload_too_large(error):
        return _plain("Payload Too Large", 413)

    @app.errorhandler(404)
    def not_found(error):
        return _plain("Not found", 404)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return _plain("Method Not Allowed", 405)

    @app.errorhandler(StoreError)
    def store_error(error):
        logger.error("admin_panel_store_error path=%s error=%s", request.path, error)
        return _plain("Internal Server Error", 500)

    @app.errorhandler(500)
    def internal_error(error):
        logger.error("admin_panel_internal_error path=%s error=%s", request.path, error)
        return _plain("Internal Server Error", 500)

    @app.errorhandler(HTTPException)
    def http_error(error):
        return _plain(error.name, error.code or 500)
