"""Background maintenance: snapshot flush, retention cleanup, watchdog and payment polling."""

import asyncio
from datetime import timedelta
from typing import Awaitable, Callable, List, Optional, Tuple

from app.config import Settings
from app.logging_config import get_logger
from app.services.health_service import check_and_heal_sessions

logger = get_logger("scheduler")

Job = Callable[[], Awaitable[Optional[dict]]]


class MaintenanceScheduler:
    def __init__(self, conversations, reconciler, settings: Settings):
        self.conversations = conversations
        self.reconciler = reconciler
        self.settings = settings
        self._tasks: List[asyncio.Task] = []

    @property
    def watchdog_window(self) -> timedelta:
        return timedelta(seconds=self.settings.analysis_watchdog_seconds)

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def jobs(self) -> List[Tuple[str, float, Job]]:
        return [
            ("flush", self.settings.flush_interval_seconds, self.flush),
            ("cleanup", self.settings.cleanup_interval_seconds, self.cleanup),
            ("watchdog", self.settings.watchdog_interval_seconds, self.watchdog),
            ("payment_poll", self.settings.payment_poll_interval_seconds, self.poll_payments),
        ]

    async def flush(self) -> Optional[dict]:
        self.conversations.sessions.flush()
        self.conversations.payments.orders.flush()
        return None

    async def cleanup(self) -> Optional[dict]:
        sessions = self.conversations.sessions.cleanup(timedelta(days=self.settings.session_retention_days))
        orders = self.conversations.payments.cleanup(timedelta(days=self.settings.order_retention_days))
        if sessions or orders:
            return {"sessions_removed": sessions, "orders_removed": orders}
        return None

    async def watchdog(self) -> Optional[dict]:
        report = await check_and_heal_sessions(self.conversations, self.watchdog_window)
        return report if report["healed_count"] else None

    async def poll_payments(self) -> Optional[dict]:
        report = await self.reconciler.reconcile_pending(
            timedelta(seconds=self.settings.payment_poll_min_age_seconds)
        )
        return report if report["checked"] else None

    async def _loop(self, name: str, interval_seconds: float, job: Job) -> None:
        interval_seconds = max(interval_seconds, 0.1)
        while True:
            try:
                await asyncio.sleep(interval_seconds)
                result = await job()
                if result:
                    logger.info(f"Maintenance job {name} ran", extra={"context": result})
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error(
                    f"Maintenance job {name} failed",
                    extra={"context": {"error": str(exc)}},
                )

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [asyncio.create_task(self._loop(name, interval, job)) for name, interval, job in self.jobs()]
        logger.info("Maintenance scheduler started", extra={"context": {"jobs": [name for name, _, _ in self.jobs()]}})

    async def stop(self) -> None:
        if not self._tasks:
            return
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        await self.flush()
        logger.info("Maintenance scheduler stopped")
