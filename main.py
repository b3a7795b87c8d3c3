"""Application entry point."""

from __future__ import annotations

import asyncio
import logging

from config import load_config
from core import setup_logger
from core.app_initializer import ApplicationInitializer


async def main() -> None:
    config = load_config()
    setup_logger(
        name="giveaway",
        level=getattr(logging, config.log_level, logging.INFO),
        log_file=config.log_path,
        colored=True,
    )

    app = ApplicationInitializer(config)
    await app.initialize()
    await app.run()


def cli() -> None:
    logger = logging.getLogger("giveaway")
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Application stopped by user")
    except Exception as e:
        logger.error(f"Application failed: {e}", exc_info=True)
        raise SystemExit(1)


if __name__ == "__main__":
    cli()
