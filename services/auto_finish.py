"""Background sweep that completes expired contests and sends alert digests."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, List, Optional

from core.constants import AutoFinishDefaults
from core.logger import get_logger
from database.models import Contest
from services.actions import ContestActionDispatcher
from services.reports import alert_digest_signature, build_alerts_report, format_alert_digest

logger = get_logger(__name__)

ResultPublisher = Callable[[Contest], Awaitable[None]]
AdminNotifier = Callable[[str], Awaitable[None]]


class AlertDigest:
    """Decide when the current set of alerts is worth sending to admins.

    A digest goes out only when the alert set changed since the last one and
    at least ``min_interval_seconds`` have passed.
    """

    def __init__(
        self,
        min_interval_seconds: float = AutoFinishDefaults.MIN_ALERT_DIGEST_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.min_interval_seconds = min_interval_seconds
        self._clock = clock
        self.last_signature = ""
        self.last_sent_at: Optional[float] = None

    def next_message(self, contests: List[Contest]) -> Optional[str]:
        alerts = build_alerts_report(contests)["alerts"]
        if not alerts:
            return None
        signature = alert_digest_signature(alerts)
        if signature == self.last_signature:
            return None
        now = self._clock()
        if self.last_sent_at is not None and now - self.last_sent_at < self.min_interval_seconds:
            return None
        self.last_signature = signature
        self.last_sent_at = now
        logger.warning("alert_digest_ready signature=%s", signature)
        return format_alert_digest(alerts)


class AutoFinishScheduler:
    """Periodic asyncio tasks around ``ContestActionDispatcher.auto_finish_expired``."""

    def __init__(
        self,
        dispatcher: ContestActionDispatcher,
        *,
        interval_seconds: float = AutoFinishDefaults.INTERVAL_SECONDS,
        digest_interval_seconds: float = AutoFinishDefaults.ALERT_DIGEST_INTERVAL_MS / 1000,
        publish_results: Optional[ResultPublisher] = None,
        notify_admins: Optional[AdminNotifier] = None,
        digest: Optional[AlertDigest] = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.interval_seconds = interval_seconds
        self.digest_interval_seconds = digest_interval_seconds
        self.publish_results = publish_results
        self.notify_admins = notify_admins
        self.digest = digest or AlertDigest()
        self.running = False
        self._tasks: List[asyncio.Task] = []

    async def run_once(self) -> List[Contest]:
        """Finish expired contests and publish each result."""
        finished = await asyncio.to_thread(self.dispatcher.auto_finish_expired)
        for contest in finished:
            if self.publish_results is None:
                continue
            try:
                await self.publish_results(contest)
            except Exception as e:
                logger.error("autofinish_publish_failed contest_id=%s error=%s", contest.id, e)
        return finished

    async def send_alert_digest(self) -> bool:
        if self.notify_admins is None:
            return False
        contests = await asyncio.to_thread(self.dispatcher.repository.list)
        message = self.digest.next_message(contests)
        if message is None:
            return False
        await self.notify_admins(message)
        return True

    async def _finish_loop(self) -> None:
        logger.info("autofinish_loop_started interval=%ss", self.interval_seconds)
        while self.running:
            try:
                await asyncio.sleep(self.interval_seconds)
                if self.running:
                    await self.run_once()
            except asyncio.CancelledError:
                logger.info("autofinish_loop_cancelled")
                break
            except Exception as e:
                # Keep sweeping; a failed write leaves the contest active for the next pass
                logger.error("autofinish_loop_error error=%s", e)

    async def _digest_loop(self) -> None:
        logger.info("alert_digest_loop_started interval=%ss", self.digest_interval_seconds)
        while self.running:
            try:
                await asyncio.sleep(self.digest_interval_seconds)
                if self.running:
                    await self.send_alert_digest()
            except asyncio.CancelledError:
                logger.info("alert_digest_loop_cancelled")
                break
            except Exception as e:
                logger.error("alert_digest_loop_error error=%s", e)

    async def start(self) -> None:
        if self.running:
            logger.warning("Auto-finish scheduler is already running")
            return

        self.running = True
        self._tasks.append(asyncio.create_task(self._finish_loop()))
        if self.digest_interval_seconds > 0 and self.notify_admins is not None:
            self._tasks.append(asyncio.create_task(self._digest_loop()))
        logger.info("Auto-finish scheduler started")

    async def stop(self) -> None:
        if not self.running:
            return

        self.running = False
        for task in self._tasks:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()
        logger.info("Auto-finish scheduler stopped")
