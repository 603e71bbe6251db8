"""Per-job progress publishing.

The orchestrator publishes a job snapshot after every state change. Delivery
to clients is out of scope; `JobEventBus` fans snapshots out to in-process
asyncio queues.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from .models import AnalysisJob

logger = logging.getLogger(__name__)


class ProgressSink(Protocol):
    def publish(self, job: AnalysisJob) -> None:
        """Accept a job-state snapshot. Must not block."""
        ...


class NullProgressSink:
    def publish(self, job: AnalysisJob) -> None:
        return None


class JobEventBus:
    """In-memory pub/sub keyed by job id. Each subscriber gets its own queue."""

    def __init__(self, *, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._subscribers: dict[str, list[asyncio.Queue[AnalysisJob]]] = {}

    def subscribe(self, job_id: str) -> asyncio.Queue[AnalysisJob]:
        queue: asyncio.Queue[AnalysisJob] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.setdefault(job_id, []).append(queue)
        return queue

    def unsubscribe(self, job_id: str, queue: asyncio.Queue[AnalysisJob]) -> None:
        queues = self._subscribers.get(job_id)
        if not queues:
            return
        try:
            queues.remove(queue)
        except ValueError:
            return
        if not queues:
            del self._subscribers[job_id]

    def subscriber_count(self, job_id: str) -> int:
        return len(self._subscribers.get(job_id, ()))

    def publish(self, job: AnalysisJob) -> None:
        for queue in list(self._subscribers.get(job.id, ())):
            if queue.full():
                # Slow consumer: keep the newest snapshot.
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
            try:
                queue.put_nowait(job)
            except asyncio.QueueFull:
                logger.warning("Dropping progress update for job %s", job.id)
