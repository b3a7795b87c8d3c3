"""Route registration for the Flask app."""

from __future__ import annotations

from flask import Flask

from .admin import admin_bp
from .health import health_bp


def register_routes(app: Flask, admin_base_path: str) -> None:
    app.register_blueprint(admin_bp, url_prefix=admin_base_path)
    app.register_blueprint(health_bp)
