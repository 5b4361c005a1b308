"""
Client side of job status observation.

After checkout the client only knows a payment session id. It first resolves
that to a job (the webhook may not have been processed yet), then watches the
job until it reaches a terminal state. Watching prefers the server-sent event
stream and falls back to fixed-interval polling; a single background task owns
the attempt budget and the timer for both.
"""
from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import httpx

from ..logger import client_logger as logger
from .api import JobApiClient, JobDict

STILL_PROCESSING_MESSAGE = (
    "Your images are still being processed. We'll email you as soon as they're ready."
)

SESSION_RESOLVE_ATTEMPTS = 10
SESSION_RESOLVE_DELAY = 3.0
POLL_INTERVAL = 5.0
MAX_POLL_ATTEMPTS = 360
PUSH_GRACE = 10.0


class ObservationOutcome(str, enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    STILL_PROCESSING = "still_processing"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ObservationResult:
    outcome: ObservationOutcome
    job: Optional[JobDict] = None
    message: Optional[str] = None


def is_terminal(job: Optional[JobDict]) -> bool:
    if not job:
        return False
    status = job.get("status")
    if status == "failed":
        return True
    return status == "completed" and bool(job.get("processedImages"))


def _result_for(job: JobDict) -> ObservationResult:
    if job.get("status") == "failed":
        return ObservationResult(ObservationOutcome.FAILED, job, job.get("error") or "Job processing failed.")
    return ObservationResult(ObservationOutcome.COMPLETED, job)


async def resolve_job(
    api: JobApiClient,
    session_id: str,
    attempts: int = SESSION_RESOLVE_ATTEMPTS,
    delay: float = SESSION_RESOLVE_DELAY,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Optional[JobDict]:
    """
    Find the job for a payment session, retrying on a fixed delay.

    Returns None once the attempt budget is spent; not found yet and never
    created cannot be told apart, so callers must treat None as "still working".
    """
    for attempt in range(1, attempts + 1):
        try:
            job = await api.find_by_session(session_id)
        except httpx.HTTPError as e:
            logger.warning(
                f"Job lookup failed: {e}",
                extra={"session_id": session_id, "attempt": attempt},
            )
            job = None
        if job:
            return job
        logger.info(
            "Job not found yet for session",
            extra={"session_id": session_id, "attempt": attempt, "max_attempts": attempts},
        )
        if attempt < attempts:
            await sleep(delay)
    return None


class JobObserver:
    def __init__(
        self,
        api: JobApiClient,
        job_id: str,
        *,
        on_update: Optional[Callable[[JobDict], None]] = None,
        poll_interval: float = POLL_INTERVAL,
        max_attempts: int = MAX_POLL_ATTEMPTS,
        push_grace: float = PUSH_GRACE,
        use_push: bool = True,
    ):
        self.api = api
        self.job_id = job_id
        self.on_update = on_update
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.push_grace = push_grace
        self.use_push = use_push
        self.job: Optional[JobDict] = None
        self.attempts = 0
        self.push_events = 0
        self._task: Optional[asyncio.Task] = None

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(self._run())
        return self._task

    async def wait(self) -> ObservationResult:
        task = self.start()
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled():
                return ObservationResult(ObservationOutcome.CANCELLED, self.job)
            raise

    async def stop(self) -> None:
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def __aenter__(self) -> "JobObserver":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def _refresh(self) -> Optional[JobDict]:
        try:
            job = await self.api.get_job(self.job_id)
        except httpx.HTTPError as e:
            logger.warning(f"Job refresh failed: {e}", extra={"job_id": self.job_id, "attempt": self.attempts})
            return self.job
        if job is not None and job != self.job:
            self.job = job
            if self.on_update:
                self.on_update(job)
        return self.job

    async def _read_push(self, events: asyncio.Queue) -> None:
        try:
            async for event in self.api.stream_events(self.job_id):
                self.push_events += 1
                events.put_nowait(event)
        except httpx.HTTPError as e:
            logger.info(
                f"Push channel unavailable, polling instead: {e}",
                extra={"job_id": self.job_id},
            )

    async def _run(self) -> ObservationResult:
        events: asyncio.Queue = asyncio.Queue()
        reader = asyncio.create_task(self._read_push(events)) if self.use_push else None
        try:
            job = await self._refresh()
            if is_terminal(job):
                return _result_for(job)

            timeout = self.push_grace if reader else self.poll_interval
            while self.attempts < self.max_attempts:
                if reader is not None and reader.done():
                    timeout = min(timeout, self.poll_interval)
                try:
                    await asyncio.wait_for(events.get(), timeout=timeout)
                except asyncio.TimeoutError:
                    # only polls spend the budget, pushed changes are free
                    self.attempts += 1
                job = await self._refresh()
                if is_terminal(job):
                    return _result_for(job)
                timeout = self.poll_interval

            logger.info(
                "Giving up on job observation",
                extra={"job_id": self.job_id, "attempts": self.attempts},
            )
            return ObservationResult(ObservationOutcome.STILL_PROCESSING, self.job, STILL_PROCESSING_MESSAGE)
        finally:
            if reader is not None:
                reader.cancel()
                await asyncio.gather(reader, return_exceptions=True)


async def observe_checkout(
    api: JobApiClient,
    session_id: str,
    *,
    resolve_attempts: int = SESSION_RESOLVE_ATTEMPTS,
    resolve_delay: float = SESSION_RESOLVE_DELAY,
    **observer_options,
) -> ObservationResult:
    """Resolve the job of a completed checkout and watch it to a terminal state."""
    if not session_id:
        raise ValueError("session_id is required")

    job = await resolve_job(api, session_id, attempts=resolve_attempts, delay=resolve_delay)
    if job is None:
        return ObservationResult(ObservationOutcome.STILL_PROCESSING, None, STILL_PROCESSING_MESSAGE)
    if is_terminal(job):
        return _result_for(job)

    async with JobObserver(api, job["id"], **observer_options) as observer:
        return await observer.wait()
