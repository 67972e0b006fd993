"""Periodic, single-flight sweep jobs."""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


class SweepJob:
    """
    Runs a sweep every ``interval_seconds``.

    A trigger that fires while the previous run is still in flight is skipped,
    so at most one instance of the sweep runs at a time. Stopping the job
    prevents new triggers; an in-flight run is allowed to finish.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        interval_seconds: float,
        enabled: bool = True,
        prometheus_exporter=None,
    ):
        self.name = name
        self.func = func
        self.interval_seconds = interval_seconds
        self.enabled = enabled
        self.prometheus_exporter = prometheus_exporter
        self.running = False
        self._lock = asyncio.Lock()
        self._ticker: Optional[asyncio.Task] = None
        self._runs: Set[asyncio.Task] = set()
        self.stats: Dict[str, Any] = {
            "runs_completed": 0,
            "runs_failed": 0,
            "runs_skipped": 0,
            "last_started": None,
            "last_duration_sec": None,
        }

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    async def trigger(self) -> bool:
        """
        Run the sweep once unless a run is already in progress.

        Returns:
            True if the sweep ran, False if the trigger was skipped
        """
        if self._lock.locked():
            self.stats["runs_skipped"] += 1
            logger.info(f"sweep={self.name} event=skipped reason=already_running")
            if self.prometheus_exporter:
                self.prometheus_exporter.record_sweep(self.name, "skipped")
            return False

        async with self._lock:
            started = time.monotonic()
            self.stats["last_started"] = datetime.now(timezone.utc).isoformat()
            outcome = "completed"
            try:
                await self.func()
                self.stats["runs_completed"] += 1
            except Exception as e:
                outcome = "failed"
                self.stats["runs_failed"] += 1
                logger.error(f"sweep={self.name} event=error error={e!r}", exc_info=True)
            finally:
                duration = time.monotonic() - started
                self.stats["last_duration_sec"] = round(duration, 2)
                logger.info(f"sweep={self.name} event=finished outcome={outcome} duration_s={duration:.2f}")
                if self.prometheus_exporter:
                    self.prometheus_exporter.record_sweep(self.name, outcome, duration)
        return True

    def _spawn_run(self) -> None:
        task = asyncio.get_running_loop().create_task(self.trigger())
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)

    async def _tick_forever(self) -> None:
        logger.info(f"Starting {self.name} job, interval: {self.interval_seconds}s")
        try:
            while self.running:
                self._spawn_run()
                await asyncio.sleep(self.interval_seconds)
        except asyncio.CancelledError:
            logger.info(f"{self.name} job schedule cancelled")

    def start(self) -> None:
        if not self.enabled:
            logger.info(f"{self.name} job is disabled")
            return
        if self.running:
            return
        self.running = True
        self._ticker = asyncio.get_running_loop().create_task(self._tick_forever())

    async def stop(self) -> None:
        """Stop scheduling new runs and wait for the in-flight run, if any."""
        self.running = False
        if self._ticker is not None:
            self._ticker.cancel()
            await asyncio.gather(self._ticker, return_exceptions=True)
            self._ticker = None
        if self._runs:
            logger.info(f"Waiting for in-flight {self.name} run to finish")
            await asyncio.gather(*list(self._runs), return_exceptions=True)
        logger.info(
            f"{self.name} job stopped after {self.stats['runs_completed']} runs "
            f"({self.stats['runs_failed']} failed, {self.stats['runs_skipped']} skipped)"
        )

    def status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "enabled": self.enabled,
            "scheduled": self.running,
            "in_flight": self.in_flight,
            "interval_sec": self.interval_seconds,
            **self.stats,
        }


class JobScheduler:
    """Owns the set of sweep jobs for the daemon."""

    def __init__(self, jobs: List[SweepJob]):
        self.jobs = {job.name: job for job in jobs}

    def start(self) -> None:
        for job in self.jobs.values():
            job.start()
        enabled = [name for name, job in self.jobs.items() if job.enabled]
        logger.info(f"Job scheduler started with jobs: {', '.join(enabled) or 'none'}")

    async def stop(self) -> None:
        await asyncio.gather(*(job.stop() for job in self.jobs.values()))
        logger.info("Job scheduler stopped")

    def status(self) -> List[Dict[str, Any]]:
        return [job.status() for job in self.jobs.values()]
