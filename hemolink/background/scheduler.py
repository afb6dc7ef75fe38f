# hemolink/background/scheduler.py
"""
Periodic background work, owned by the application lifespan.

Each PeriodicTask runs its job in a worker thread with a fresh session, so a
slow job never blocks the event loop. A failing tick is logged and the task
sleeps until the next one; it never stops on its own.
"""

import asyncio
import logging
from typing import Any, Callable

from sqlalchemy.orm import Session

from hemolink.background.jobs import (
    run_expiry_sweep,
    run_future_shortage_sweep,
    run_shortage_sweep,
    run_unmet_demand_recheck,
)
from hemolink.core.config import Settings
from hemolink.notifications.notifier import NotificationOutbox, Notifier

logger = logging.getLogger(__name__)

Job = Callable[..., Any]


class PeriodicTask:
    def __init__(
        self,
        name: str,
        interval_seconds: float,
        job: Job,
        *,
        session_factory: Callable[[], Session],
        notifier: Notifier,
    ) -> None:
        self.name = name
        self.interval_seconds = interval_seconds
        self.job = job
        self.session_factory = session_factory
        self.notifier = notifier
        self._task: asyncio.Task | None = None

    def run_once(self) -> Any:
        """
        One tick: run the job in its own session and commit, then deliver the
        notifications it queued. Never raises.
        """
        db = self.session_factory()
        outbox = NotificationOutbox()
        try:
            result = self.job(db, notifier=outbox)
            db.commit()
            outbox.dispatch(self.notifier)
            logger.debug(f"[{self.name}] tick done: {result}")
            return result
        except Exception:
            db.rollback()
            logger.exception(f"[{self.name}] tick failed")
            return None
        finally:
            db.close()

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await asyncio.to_thread(self.run_once)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"[{self.name}] tick crashed")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info(f"[{self.name}] started with interval {self.interval_seconds}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"[{self.name}] stopped")


class Scheduler:
    """Composition root for the four periodic tasks."""

    def __init__(
        self,
        *,
        session_factory: Callable[[], Session],
        notifier: Notifier,
        settings: Settings,
    ) -> None:
        def task(name: str, interval: float, job: Job) -> PeriodicTask:
            return PeriodicTask(
                name,
                interval,
                job,
                session_factory=session_factory,
                notifier=notifier,
            )

        self.tasks: list[PeriodicTask] = [
            task("UNMET_DEMAND_RECHECK", settings.recheck_interval_seconds, run_unmet_demand_recheck),
            task("EXPIRY_SWEEP", settings.expiry_sweep_interval_seconds, run_expiry_sweep),
            task("SHORTAGE_SWEEP", settings.shortage_sweep_interval_seconds, run_shortage_sweep),
            task(
                "FUTURE_SHORTAGE_SWEEP",
                settings.future_shortage_sweep_interval_seconds,
                run_future_shortage_sweep,
            ),
        ]

    def start(self) -> None:
        for periodic in self.tasks:
            periodic.start()

    async def stop(self) -> None:
        for periodic in self.tasks:
            await periodic.stop()
