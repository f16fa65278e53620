"""
In-process incident work queue.

Jobs are keyed by incident ID and delivered at least once to a single handler.
A failed job is retried with exponential backoff; after the last retry it is
recorded as failed and dropped. A bounded pool of worker tasks consumes the
queue, and job starts are throttled by a rolling-window rate limit.
"""

import asyncio
import json
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from responder.incidents.models import IncidentJob

logger = logging.getLogger(__name__)

JobHandler = Callable[[IncidentJob], Awaitable[None]]


class RateLimiter:
    """Allows at most ``max_starts`` acquisitions per rolling ``window_seconds``."""

    def __init__(
        self,
        max_starts: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_starts = max_starts
        self.window_seconds = window_seconds
        self._clock = clock
        self._starts: deque[float] = deque()

    async def acquire(self) -> None:
        while True:
            now = self._clock()
            while self._starts and self._starts[0] <= now - self.window_seconds:
                self._starts.popleft()

            if len(self._starts) < self.max_starts:
                self._starts.append(now)
                return

            wait = self._starts[0] + self.window_seconds - now
            logger.debug(f"Rate limit reached, waiting {wait:.1f}s")
            await asyncio.sleep(wait)


class IncidentQueue:
    """Work queue delivering incident jobs to the pipeline handler."""

    def __init__(
        self,
        handler: JobHandler,
        concurrency: int = 2,
        rate_limit_max: int = 5,
        rate_limit_window: float = 60.0,
        max_retries: int = 3,
        backoff_seconds: float = 30.0,
        journal_path: str | None = None,
    ) -> None:
        """Initialize the queue.

        Args:
            handler: Coroutine run once per delivery. Raising schedules a retry.
            concurrency: Number of jobs processed at the same time.
            rate_limit_max: Job starts allowed per rate limit window.
            rate_limit_window: Length of the rolling window in seconds.
            max_retries: Retries after the first attempt before a job is failed.
            backoff_seconds: Delay before the first retry; doubled for each
                             following retry.
            journal_path: JSON file keeping pending jobs across restarts.
                          If None, pending jobs are kept in memory only.
        """
        self.handler = handler
        self.concurrency = concurrency
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.journal_path = journal_path
        self.rate_limiter = RateLimiter(rate_limit_max, rate_limit_window)

        self._queue: asyncio.Queue[IncidentJob] = asyncio.Queue()
        # Every job that is queued, running or waiting on a retry delay
        self._pending: dict[str, IncidentJob] = {}
        self._attempts: dict[str, int] = {}
        self._running: set[str] = set()
        self._delayed: dict[str, asyncio.Task[None]] = {}
        self._workers: list[asyncio.Task[None]] = []
        self._idle = asyncio.Event()
        self._idle.set()

        self.completed = 0
        self.failed: dict[str, str] = {}

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying a job whose ``attempt``-th run just failed."""
        return self.backoff_seconds * 2 ** (attempt - 1)

    def enqueue(self, job: IncidentJob) -> bool:
        """Add a job to the queue.

        Returns:
            False if a job for the same incident is already pending, True otherwise.
        """
        if job.incident_id in self._pending:
            logger.info(f"Job for incident {job.incident_id} already pending, skipping")
            return False

        self._pending[job.incident_id] = job
        self._idle.clear()
        self.failed.pop(job.incident_id, None)
        self._queue.put_nowait(job)
        self._save_journal()

        logger.info(f"Enqueued incident {job.incident_id}")
        return True

    def is_pending(self, incident_id: str) -> bool:
        return incident_id in self._pending

    async def start(self) -> None:
        """Reload journaled jobs and start the worker tasks."""
        if self._workers:
            return

        for job, attempts in self._load_journal():
            if self.enqueue(job):
                self._attempts[job.incident_id] = attempts

        self._workers = [
            asyncio.create_task(self._worker(n), name=f"incident-worker-{n}")
            for n in range(self.concurrency)
        ]
        logger.info(f"Incident queue started with {self.concurrency} workers")

    async def stop(self) -> None:
        """Cancel workers and retry timers. Pending jobs stay in the journal."""
        tasks = [*self._workers, *self._delayed.values()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._workers = []
        self._delayed.clear()
        self._save_journal()
        logger.info(f"Incident queue stopped ({len(self._pending)} jobs pending)")

    async def join(self) -> None:
        """Wait until no job is queued, running or waiting on a retry."""
        await self._idle.wait()

    def stats(self) -> dict[str, int]:
        return {
            "pending": len(self._pending),
            "queued": self._queue.qsize(),
            "running": len(self._running),
            "delayed": len(self._delayed),
            "completed": self.completed,
            "failed": len(self.failed),
        }

    async def _worker(self, worker_id: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self.rate_limiter.acquire()
                await self._run(job)
            finally:
                self._queue.task_done()

    async def _run(self, job: IncidentJob) -> None:
        incident_id = job.incident_id
        attempt = self._attempts.get(incident_id, 0) + 1
        self._attempts[incident_id] = attempt
        self._running.add(incident_id)

        try:
            await self.handler(job)
        except Exception as e:
            if attempt <= self.max_retries:
                delay = self.backoff_delay(attempt)
                logger.error(
                    f"Job for incident {incident_id} failed on attempt {attempt}: {e}. "
                    f"Retrying in {delay:.0f}s"
                )
                self._delayed[incident_id] = asyncio.create_task(self._retry_later(job, delay))
            else:
                logger.error(
                    f"Job for incident {incident_id} failed after {attempt} attempts: {e}"
                )
                self.failed[incident_id] = str(e) or type(e).__name__
                self._finish(incident_id)
        else:
            logger.info(f"Job for incident {incident_id} completed")
            self.completed += 1
            self._finish(incident_id)
        finally:
            self._running.discard(incident_id)
            self._save_journal()

    async def _retry_later(self, job: IncidentJob, delay: float) -> None:
        await asyncio.sleep(delay)
        self._delayed.pop(job.incident_id, None)
        self._queue.put_nowait(job)

    def _finish(self, incident_id: str) -> None:
        self._pending.pop(incident_id, None)
        self._attempts.pop(incident_id, None)
        if not self._pending:
            self._idle.set()

    def _load_journal(self) -> list[tuple[IncidentJob, int]]:
        if not self.journal_path:
            return []

        file_path = Path(self.journal_path)
        if not file_path.exists():
            return []

        try:
            with open(file_path) as f:
                data = json.load(f)

            entries = [
                (IncidentJob.model_validate(entry["job"]), int(entry.get("attempts", 0)))
                for entry in data
            ]
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.error(f"Failed to parse queue journal: {e}")
            return []

        logger.info(f"Reloaded {len(entries)} pending jobs from queue journal")
        return entries

    def _save_journal(self) -> None:
        if not self.journal_path:
            return

        file_path = Path(self.journal_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = file_path.with_suffix(file_path.suffix + ".tmp")

        data: list[dict[str, Any]] = [
            {"job": job.model_dump(mode="json"), "attempts": self._attempts.get(incident_id, 0)}
            for incident_id, job in self._pending.items()
        ]
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        tmp_path.replace(file_path)
