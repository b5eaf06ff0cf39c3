"""Redis Job Queue Implementation

Durable, at-least-once investigation queue deduplicated by investigation id.

Redis Key Schema:
- {queue}:pending                     → List (job JSON; LPUSH in, consumed from the right)
- {queue}:processing                  → List (jobs handed to a worker, not yet acked)
- {queue}:dedup:{investigation_id}    → String with TTL (set NX on enqueue)

A job moves atomically from ``pending`` to ``processing`` on dequeue, so a
worker crash leaves it in ``processing``; ``recover_inflight()`` moves such
jobs back to ``pending`` at startup and they are redelivered from the start.
The dedup key lives until ack, so enqueuing an investigation that is queued
or in flight is a no-op.
"""

import logging
from typing import Dict, Optional

import redis.asyncio as redis
from pydantic import ValidationError

from investigator.exceptions import PersistenceFailure
from investigator.infrastructure.observability import metrics
from investigator.models.interfaces import IJobQueue
from investigator.models.investigation import InvestigationJob

logger = logging.getLogger(__name__)


class RedisJobQueue(IJobQueue):
    """Redis list-based queue with SET NX deduplication."""

    def __init__(self, redis_client: redis.Redis, queue_name: str = "investigations",
                 dedup_ttl_seconds: int = 86400):
        self.redis = redis_client
        self.queue_name = queue_name
        self.dedup_ttl_seconds = dedup_ttl_seconds

        self.pending_key = f"{queue_name}:pending"
        self.processing_key = f"{queue_name}:processing"
        # investigation_id -> exact payload moved to processing, needed for LREM
        self._inflight: Dict[str, str] = {}

    def _dedup_key(self, investigation_id: str) -> str:
        return f"{self.queue_name}:dedup:{investigation_id}"

    async def enqueue(self, job: InvestigationJob) -> bool:
        try:
            acquired = await self.redis.set(
                self._dedup_key(job.investigation_id), "1",
                nx=True, ex=self.dedup_ttl_seconds,
            )
            if not acquired:
                logger.info(f"Duplicate enqueue ignored for investigation {job.investigation_id}")
                return False
            await self.redis.lpush(self.pending_key, job.model_dump_json())
        except redis.RedisError as e:
            raise PersistenceFailure(
                f"Failed to enqueue investigation {job.investigation_id}: {e}",
                details={"queue": self.queue_name},
            ) from e

        logger.info(f"Enqueued investigation {job.investigation_id} on {self.queue_name}")
        return True

    async def dequeue(self, timeout: float) -> Optional[InvestigationJob]:
        raw = await self.redis.blmove(self.pending_key, self.processing_key, timeout, "RIGHT", "LEFT")
        if raw is None:
            return None
        raw = raw.decode() if isinstance(raw, bytes) else raw

        try:
            job = InvestigationJob.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Dropping malformed job payload from {self.queue_name}: {e}")
            await self.redis.lrem(self.processing_key, 1, raw)
            return None

        self._inflight[job.investigation_id] = raw
        return job

    async def ack(self, job: InvestigationJob) -> None:
        raw = self._inflight.pop(job.investigation_id, None) or job.model_dump_json()
        await self.redis.lrem(self.processing_key, 1, raw)
        await self.redis.delete(self._dedup_key(job.investigation_id))

    async def nack(self, job: InvestigationJob) -> None:
        raw = self._inflight.pop(job.investigation_id, None) or job.model_dump_json()
        await self.redis.lrem(self.processing_key, 1, raw)
        await self.redis.rpush(self.pending_key, raw)
        logger.warning(f"Requeued investigation {job.investigation_id} for redelivery")

    async def recover_inflight(self) -> int:
        """Move jobs abandoned in ``processing`` back to the head of ``pending``."""
        recovered = 0
        while await self.redis.lmove(self.processing_key, self.pending_key, "RIGHT", "RIGHT") is not None:
            recovered += 1
        if recovered:
            logger.warning(f"Recovered {recovered} in-flight job(s) on {self.queue_name} for redelivery")
        return recovered

    async def depth(self) -> int:
        size = await self.redis.llen(self.pending_key)
        metrics.QUEUE_DEPTH.labels(queue=self.queue_name).set(size)
        return size

    async def close(self) -> None:
        await self.redis.aclose()
