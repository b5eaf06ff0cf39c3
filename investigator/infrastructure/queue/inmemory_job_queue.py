"""
In-memory implementation of IJobQueue interface.

Single-process queue with the same deduplication semantics as the Redis
queue: an investigation id stays reserved from enqueue until ack.
"""

import asyncio
from collections import deque
from typing import Deque, Dict, Optional, Set

from investigator.models.interfaces import IJobQueue
from investigator.models.investigation import InvestigationJob


class InMemoryJobQueue(IJobQueue):
    """Deque-backed job queue guarded by an asyncio.Condition"""

    def __init__(self):
        self._pending: Deque[InvestigationJob] = deque()
        self._processing: Dict[str, InvestigationJob] = {}
        self._reserved: Set[str] = set()
        self._condition = asyncio.Condition()
        self._closed = False
        self.enqueue_count = 0
        self.duplicate_count = 0

    async def enqueue(self, job: InvestigationJob) -> bool:
        async with self._condition:
            if job.investigation_id in self._reserved:
                self.duplicate_count += 1
                return False
            self._reserved.add(job.investigation_id)
            self._pending.append(job)
            self.enqueue_count += 1
            self._condition.notify()
            return True

    async def dequeue(self, timeout: float) -> Optional[InvestigationJob]:
        async with self._condition:
            try:
                await asyncio.wait_for(
                    self._condition.wait_for(lambda: bool(self._pending) or self._closed),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                return None
            if not self._pending:
                return None
            job = self._pending.popleft()
            self._processing[job.investigation_id] = job
            return job

    async def ack(self, job: InvestigationJob) -> None:
        async with self._condition:
            self._processing.pop(job.investigation_id, None)
            self._reserved.discard(job.investigation_id)

    async def nack(self, job: InvestigationJob) -> None:
        async with self._condition:
            self._processing.pop(job.investigation_id, None)
            self._pending.appendleft(job)
            self._condition.notify()

    async def recover_inflight(self) -> int:
        async with self._condition:
            recovered = list(self._processing.values())
            self._processing.clear()
            for job in reversed(recovered):
                self._pending.appendleft(job)
            self._condition.notify_all()
            return len(recovered)

    async def depth(self) -> int:
        return len(self._pending)

    @property
    def in_flight(self) -> int:
        return len(self._processing)

    async def close(self) -> None:
        async with self._condition:
            self._closed = True
            self._condition.notify_all()
