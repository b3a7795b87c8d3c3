"""Health check blueprint."""

from __future__ import annotations

from flask import Blueprint, Response, current_app

from web.config_middleware import EXTENSION_KEY

health_bp = Blueprint("health", __name__)


@health_bp.route("/health")
def health_check():
    repository = current_app.extensions[EXTENSION_KEY]["repository"]
    response = Response("ok", mimetype="text/plain")
    response.headers["X-Store-Backend"] = repository.backend
    if repository.corrupt_detected:
        response.headers["X-Store-Corrupt"] = "1"
    return response
