"""APScheduler wrapper for periodic maintenance jobs."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

_LOG = logging.getLogger(__name__)


class JobScheduler:
    """Runs async maintenance jobs on fixed intervals, one instance at a time."""

    def __init__(self) -> None:
        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        if not self._started:
            self._scheduler.start()
            self._started = True

    def shutdown(self) -> None:
        if self._started:
            self._scheduler.shutdown(wait=False)
            self._started = False

    def schedule_every(self, job_id: str, func: Callable[[], Awaitable[object]], *, hours: int = 1) -> None:
        async def _run() -> None:
            try:
                await func()
            except Exception:
                _LOG.exception("scheduled job failed", extra={"job_id": job_id})

        self._scheduler.add_job(
            _run,
            trigger=IntervalTrigger(hours=hours),
            id=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )


__all__ = ["JobScheduler"]
