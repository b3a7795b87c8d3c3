"""Application initialization orchestrator."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import Optional

from aiohttp import web as aiohttp_web
from aiohttp_wsgi import WSGIHandler

from config import Config, load_config
from core.logger import get_logger
from database.repository import ContestRepository
from services.actions import ContestActionDispatcher
from services.auto_finish import AlertDigest, AutoFinishScheduler
from services.roles import RoleResolver

logger = get_logger(__name__)


class ApplicationInitializer:
    """Wires the contest store, bot, admin panel and auto-finish sweep.

    All three front ends share one repository and one action dispatcher, so
    draw locks and the update lock cover bot commands and panel actions alike.
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or load_config()
        self.repository: Optional[ContestRepository] = None
        self.dispatcher: Optional[ContestActionDispatcher] = None
        self.roles = RoleResolver.from_config(self.config)
        self.bot = None
        self.notifier = None
        self.scheduler: Optional[AutoFinishScheduler] = None
        self.web_runner = None

    async def initialize(self) -> None:
        """Initialize all application components."""
        self.config.validate()

        self._init_store()

        if self._should_enable_bot():
            await self._init_bot()
        else:
            logger.info("Running in admin-only mode (web interface only)")

        self._init_scheduler()

        await self._init_web_server()

    async def run(self) -> None:
        """Run until the bot stops or the task is cancelled."""
        await self.scheduler.start()

        bot_task = None
        if self.bot:
            bot_task = asyncio.create_task(self.bot.start())
            logger.info("Telegram bot started")

        try:
            if bot_task:
                await bot_task
            else:
                logger.info("Admin-only mode: web interface running...")
                while True:
                    await asyncio.sleep(1)
        finally:
            if bot_task and not bot_task.done():
                bot_task.cancel()
                with suppress(asyncio.CancelledError):
                    await bot_task
            await self.cleanup()

    async def cleanup(self) -> None:
        """Release resources; each step runs even if an earlier one failed."""
        if self.scheduler:
            with suppress(Exception):
                await self.scheduler.stop()
        if self.bot:
            with suppress(Exception):
                await self.bot.stop()
        if self.web_runner:
            with suppress(Exception):
                await self.web_runner.cleanup()
        if self.repository:
            self.repository.close()
        logger.info("Application stopped")

    def _init_store(self) -> None:
        self.repository = ContestRepository(self.config.storage_path)
        self.dispatcher = ContestActionDispatcher(
            self.repository,
            referral_bonus_tickets=self.config.referral_bonus_tickets,
            referral_max_bonus_tickets=self.config.referral_max_bonus_tickets,
        )
        logger.info(
            "Contest store ready backend=%s path=%s", self.repository.backend, self.config.storage_path,
        )

    def _should_enable_bot(self) -> bool:
        return bool(self.config.enable_bot and self.config.bot_token)

    async def _init_bot(self) -> None:
        from bot.initializer import BotInitializer

        self.bot, self.notifier = await BotInitializer(self.config, self.dispatcher, self.roles).initialize()
        logger.info("Bot initialized successfully")

    def _init_scheduler(self) -> None:
        digest_seconds = self.config.admin_alert_digest_interval_ms / 1000
        self.scheduler = AutoFinishScheduler(
            self.dispatcher,
            interval_seconds=self.config.auto_finish_interval_seconds,
            digest_interval_seconds=digest_seconds,
            publish_results=self.notifier.publish_results if self.notifier else None,
            notify_admins=self.notifier.notify_admins if self.notifier else None,
            digest=AlertDigest(),
        )

    async def _init_web_server(self) -> None:
        """Serve the Flask admin panel from this event loop."""
        from web.app import create_app

        flask_app = create_app(self.config, repository=self.repository, dispatcher=self.dispatcher)

        # Oversized bodies are refused before they are spooled for the WSGI app
        wsgi_handler = WSGIHandler(flask_app, max_request_body_size=self.config.admin_panel_max_body_bytes)
        aio_app = aiohttp_web.Application()
        aio_app.router.add_route("*", "/{path_info:.*}", wsgi_handler)

        self.web_runner = aiohttp_web.AppRunner(aio_app)
        await self.web_runner.setup()

        host = self.config.admin_panel_host
        port = self.config.admin_panel_port
        site = aiohttp_web.TCPSite(self.web_runner, host, port)
        await site.start()

        logger.info("Web server started on http://%s:%s", host, port)
        logger.info("Admin panel: http://%s:%s%s", host, port, self.config.admin_panel_base_path)
