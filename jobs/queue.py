"""In-process job queue with per-kind worker pools, priorities and backoff."""

import asyncio
import itertools
import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from models.constants import PRIORITY_DETAIL
from models.job import Job, JobKind, JobStatus
from utils.errors import ListingRemovedError, ScraperError, ValidationError, classify_error

logger = logging.getLogger(__name__)

Handler = Callable[[Job], Awaitable[Any]]
FailureListener = Callable[[Job, ScraperError], Any]
StaleCheck = Callable[[Job], bool]

DEFAULT_CONCURRENCY: Dict[JobKind, int] = {
    JobKind.SEARCH: 1,
    JobKind.DETAIL: 3,
    JobKind.RETRY: 3,
}


class JobQueue:
    """
    Priority job queue consumed by a fixed-size worker pool per job kind.

    Lower priority numbers run first; equal priorities run in enqueue order.
    Priorities only order jobs within one kind: each kind has its own queue
    and pool, so search scans and manual requests get ahead of routine detail
    jobs by running in a separate pool, not by priority comparison. A failed
    attempt is rescheduled after `backoff_delay * 2^(attempt-1)`
    seconds while attempts remain and the error is retriable; otherwise the
    job fails terminally and every registered failure listener is called.

    Args:
        concurrency: Workers per job kind (defaults: search 1, detail 3, retry 3)
        max_attempts: Default attempt budget per job
        backoff_delay: Default base delay in seconds
        sleep: Awaitable sleep used for backoff (injectable for tests)
    """

    def __init__(
        self,
        concurrency: Optional[Dict[JobKind, int]] = None,
        max_attempts: int = 3,
        backoff_delay: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.concurrency: Dict[JobKind, int] = dict(DEFAULT_CONCURRENCY)
        self.concurrency.update(concurrency or {})
        self.max_attempts = max_attempts
        self.backoff_delay = backoff_delay
        self._sleep = sleep

        self._handlers: Dict[JobKind, Handler] = {}
        self._failure_listeners: List[FailureListener] = []
        self._stale_check: Optional[StaleCheck] = None

        self._queues: Dict[JobKind, asyncio.PriorityQueue] = {
            kind: asyncio.PriorityQueue() for kind in JobKind
        }
        self._jobs: Dict[str, Job] = {}
        self._seq = itertools.count()
        self._workers: Dict[JobKind, List[asyncio.Task]] = {kind: [] for kind in JobKind}
        self._delayed: Set[asyncio.Task] = set()

        self._outstanding = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self.state = "idle"
        self.last_activity: Optional[str] = None

    # Registration

    def register(self, kind: JobKind, handler: Handler) -> None:
        self._handlers[kind] = handler

    def on_failed(self, listener: FailureListener) -> None:
        """Subscribe to terminal failures (attempts exhausted or not retriable)."""
        self._failure_listeners.append(listener)

    def set_stale_check(self, check: StaleCheck) -> None:
        """Jobs for which check(job) is True are skipped instead of run."""
        self._stale_check = check

    # Producing

    async def enqueue(
        self,
        kind: JobKind,
        payload: Optional[Dict[str, Any]] = None,
        priority: Optional[int] = None,
        max_attempts: Optional[int] = None,
        backoff_delay: Optional[float] = None,
    ) -> Job:
        """
        Add a job and return its handle.

        Raises:
            ValidationError: If the queue is stopped or a detail/retry job has no URL
        """
        if self.state == "stopped":
            raise ValidationError("Queue is stopped", {"kind": kind.value})
        payload = dict(payload or {})
        if kind in (JobKind.DETAIL, JobKind.RETRY) and not payload.get("url"):
            raise ValidationError(f"{kind.value} job requires a url", {"payload": payload})

        job = Job(
            kind=kind,
            payload=payload,
            priority=PRIORITY_DETAIL if priority is None else priority,
            max_attempts=max_attempts or self.max_attempts,
            backoff_delay=self.backoff_delay if backoff_delay is None else backoff_delay,
        )
        self._jobs[job.id] = job
        self._outstanding += 1
        self._idle.clear()
        self._push(job)
        logger.info(f"job {job.id} [{kind.value}] enqueued (priority {job.priority}) {job.url or ''}".rstrip())
        return job

    def _push(self, job: Job) -> None:
        job.status = JobStatus.WAITING
        self._queues[job.kind].put_nowait((job.priority, next(self._seq), job.id))

    # Consuming

    async def start(self) -> None:
        """Spawn the worker pools."""
        if self.state == "running":
            return
        self.state = "running"
        for kind in JobKind:
            self._ensure_workers(kind)
        logger.info(
            "Job queue started: "
            + ", ".join(f"{k.value}={self.concurrency[k]}" for k in JobKind)
        )

    def set_concurrency(self, kind: JobKind, workers: int) -> None:
        """Resize a pool. Surplus workers exit after their current job."""
        self.concurrency[kind] = max(1, int(workers))
        if self.state == "running":
            self._ensure_workers(kind)

    def _ensure_workers(self, kind: JobKind) -> None:
        alive = [t for t in self._workers[kind] if not t.done()]
        self._workers[kind] = alive
        for index in range(len(alive), self.concurrency[kind]):
            task = asyncio.ensure_future(self._worker(kind, index))
            self._workers[kind].append(task)

    async def _worker(self, kind: JobKind, index: int) -> None:
        queue = self._queues[kind]
        while index < self.concurrency[kind]:
            _, _, job_id = await queue.get()
            try:
                await self._process(self._jobs[job_id])
            finally:
                queue.task_done()

    async def _process(self, job: Job) -> None:
        tag = f"job {job.id} [{job.kind.value}]"

        try:
            stale = self._stale_check is not None and self._stale_check(job)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # a failing check uses up an attempt
            job.attempts += 1
            await self._handle_failure(job, classify_error(e))
            return
        if stale:
            job.status = JobStatus.SKIPPED
            logger.info(f"{tag} skipped: listing {job.listing_id} already removed")
            self._settle(job)
            return

        handler = self._handlers.get(job.kind)
        job.attempts += 1
        job.status = JobStatus.ACTIVE
        self.last_activity = datetime.now(timezone.utc).isoformat()
        logger.info(f"{tag} started (attempt {job.attempts}/{job.max_attempts})")

        try:
            if handler is None:
                raise ValidationError(f"No handler registered for {job.kind.value}")
            job.result = await handler(job)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._handle_failure(job, classify_error(e))
            return

        job.status = JobStatus.COMPLETED
        logger.info(f"{tag} completed")
        self._settle(job)

    async def _handle_failure(self, job: Job, error: ScraperError) -> None:
        tag = f"job {job.id} [{job.kind.value}]"
        job.failed_reason = error.message

        if isinstance(error, ListingRemovedError):
            job.status = JobStatus.COMPLETED
            job.result = {"status": "removed", "reason": error.message}
            logger.info(f"{tag} completed: listing removed ({error.message})")
            self._settle(job)
            return

        if error.retriable and job.attempts < job.max_attempts:
            delay = job.backoff_for(job.attempts)
            job.status = JobStatus.DELAYED
            logger.warning(
                f"{tag} retried in {delay:.1f}s after {error.error_type.value} error "
                f"(attempt {job.attempts}/{job.max_attempts}): {error.message}"
            )
            task = asyncio.ensure_future(self._requeue_after(job, delay))
            self._delayed.add(task)
            task.add_done_callback(self._delayed.discard)
            return

        job.status = JobStatus.FAILED
        logger.error(
            f"{tag} failed after {job.attempts} attempt(s) "
            f"[{error.error_type.value}]: {error.message}"
        )
        for listener in self._failure_listeners:
            try:
                result = listener(job, error)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"{tag} failure listener raised: {e}")
        self._settle(job)

    async def _requeue_after(self, job: Job, delay: float) -> None:
        await self._sleep(delay)
        if self.state == "stopped":
            return
        self._push(job)

    def _settle(self, job: Job) -> None:
        job.finished_at = datetime.now(timezone.utc).isoformat()
        self._outstanding -= 1
        if self._outstanding <= 0:
            self._outstanding = 0
            self._idle.set()

    # Lifecycle

    async def join(self) -> None:
        """Wait until every enqueued job has completed, failed or been skipped."""
        await self._idle.wait()

    async def stop(self) -> None:
        """Cancel workers and pending retries."""
        self.state = "stopped"
        tasks = [t for workers in self._workers.values() for t in workers] + list(self._delayed)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for kind in JobKind:
            self._workers[kind] = []
        logger.info("Job queue stopped")

    # Inspection

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def jobs(self, status: Optional[JobStatus] = None) -> List[Job]:
        return [j for j in self._jobs.values() if status is None or j.status == status]

    def counts(self) -> Dict[str, Any]:
        """Job counts by status, overall and per kind."""
        by_status = Counter(job.status.value for job in self._jobs.values())
        by_kind: Dict[str, Dict[str, int]] = {}
        for job in self._jobs.values():
            by_kind.setdefault(job.kind.value, Counter())[job.status.value] += 1
        return {
            "active": by_status[JobStatus.ACTIVE.value],
            "waiting": by_status[JobStatus.WAITING.value] + by_status[JobStatus.DELAYED.value],
            "delayed": by_status[JobStatus.DELAYED.value],
            "completed": by_status[JobStatus.COMPLETED.value],
            "failed": by_status[JobStatus.FAILED.value],
            "skipped": by_status[JobStatus.SKIPPED.value],
            "by_kind": {kind: dict(counter) for kind, counter in by_kind.items()},
        }
