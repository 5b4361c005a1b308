from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Set

from ..logger import logger


class JobEventBus:
    """
    In-process fan-out of job change notifications, keyed by job id.

    Subscribers only learn *that* a job changed; they are expected to re-read the
    job from the query API rather than trust the notification payload.
    """

    def __init__(self, queue_size: int = 32):
        self._queue_size = queue_size
        self._subscribers: Dict[str, Set[asyncio.Queue]] = defaultdict(set)

    def publish(self, job_id: str, status: str) -> int:
        queues = list(self._subscribers.get(job_id, ()))
        for queue in queues:
            try:
                queue.put_nowait({"jobId": job_id, "status": status})
            except asyncio.QueueFull:
                # a slow reader only needs to know something changed
                logger.debug("Dropping job event for slow subscriber", extra={"job_id": job_id})
        return len(queues)

    @asynccontextmanager
    async def subscribe(self, job_id: str) -> AsyncIterator[asyncio.Queue]:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers[job_id].add(queue)
        try:
            yield queue
        finally:
            subscribers = self._subscribers.get(job_id)
            if subscribers is not None:
                subscribers.discard(queue)
                if not subscribers:
                    self._subscribers.pop(job_id, None)

    def subscriber_count(self, job_id: str) -> int:
        return len(self._subscribers.get(job_id, ()))


event_bus = JobEventBus()
