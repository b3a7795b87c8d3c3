"""Direct Flask server runner for the admin panel alone (no bot, no sweep)."""

from __future__ import annotations

import logging

from config import load_config
from core import setup_logger
from web.app import create_app

if __name__ == "__main__":
    # Load configuration
    config = load_config()
    config.validate()
    setup_logger(level=getattr(logging, config.log_level, logging.INFO), log_file=config.log_path)

    # Create Flask application
    app = create_app(config)

    # Run Flask server
    app.run(host=config.admin_panel_host, port=config.admin_panel_port, debug=config.debug)
