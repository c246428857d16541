from __future__ import annotations

import asyncio
import logging
import threading
from contextlib import suppress
from datetime import datetime, time, timedelta, timezone
from typing import Optional

from orphan_sweeper import RetentionSweeper, SweepResult

logger = logging.getLogger(__name__)


def parse_run_at(value: str) -> time:
    hours, minutes = value.split(":")
    return time(hour=int(hours), minute=int(minutes))


def seconds_until(run_at: time, now: datetime) -> float:
    """Seconds from ``now`` until the next occurrence of ``run_at`` (same timezone)."""
    target = now.replace(hour=run_at.hour, minute=run_at.minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


class CleanupScheduler:
    """Runs the retention sweep once a day on the application's event loop."""

    def __init__(self, sweeper: RetentionSweeper, days: int = 1, run_at: str = "02:00") -> None:
        self.sweeper = sweeper
        self.days = days
        self.run_at = parse_run_at(run_at)
        self._task: Optional[asyncio.Task[None]] = None
        self._stop_event = threading.Event()

    def start(self) -> None:
        if self._task is None:
            self._stop_event.clear()
            self._task = asyncio.create_task(self._daily_loop())

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def run_once(self) -> Optional[SweepResult]:
        try:
            result = await asyncio.to_thread(
                self.sweeper.run, self.days, False, None, self._stop_event
            )
        except Exception:
            logger.exception("Orphaned files cleanup failed")
            return None
        logger.info(
            "Orphaned files cleanup completed successfully (%d file(s), %d bytes)",
            result.file_count,
            result.total_bytes,
        )
        return result

    async def _daily_loop(self) -> None:
        try:
            while True:
                delay = seconds_until(self.run_at, datetime.now(timezone.utc))
                logger.debug("Next orphaned files cleanup in %.0f seconds", delay)
                await asyncio.sleep(delay)
                await self.run_once()
        except asyncio.CancelledError:
            return
