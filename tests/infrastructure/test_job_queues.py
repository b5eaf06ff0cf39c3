"""Tests for the in-memory and Redis job queues."""

import asyncio
from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis

from investigator.exceptions import PersistenceFailure
from investigator.infrastructure.queue.inmemory_job_queue import InMemoryJobQueue
from investigator.infrastructure.queue.redis_job_queue import RedisJobQueue
from investigator.models.investigation import InvestigationJob


def job(investigation_id: str, **kwargs) -> InvestigationJob:
    kwargs.setdefault("ticket_id", f"T-{investigation_id}")
    return InvestigationJob(investigation_id=investigation_id, **kwargs)


class TestInMemoryJobQueue:

    @pytest.mark.asyncio
    async def test_fifo_delivery(self, job_queue):
        await job_queue.enqueue(job("a"))
        await job_queue.enqueue(job("b"))

        first = await job_queue.dequeue(timeout=0.1)
        second = await job_queue.dequeue(timeout=0.1)

        assert [first.investigation_id, second.investigation_id] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_duplicate_enqueue_is_noop_until_ack(self, job_queue):
        assert await job_queue.enqueue(job("a")) is True
        assert await job_queue.enqueue(job("a")) is False
        assert await job_queue.depth() == 1

        delivered = await job_queue.dequeue(timeout=0.1)
        assert await job_queue.enqueue(job("a")) is False

        await job_queue.ack(delivered)
        assert await job_queue.enqueue(job("a")) is True
        assert job_queue.duplicate_count == 2

    @pytest.mark.asyncio
    async def test_dequeue_times_out_empty(self, job_queue):
        assert await job_queue.dequeue(timeout=0.01) is None

    @pytest.mark.asyncio
    async def test_dequeue_wakes_on_enqueue(self, job_queue):
        waiter = asyncio.create_task(job_queue.dequeue(timeout=1.0))
        await asyncio.sleep(0)
        await job_queue.enqueue(job("late"))

        delivered = await waiter
        assert delivered.investigation_id == "late"

    @pytest.mark.asyncio
    async def test_nack_redelivers_first(self, job_queue):
        await job_queue.enqueue(job("a"))
        await job_queue.enqueue(job("b"))
        delivered = await job_queue.dequeue(timeout=0.1)

        await job_queue.nack(delivered)

        assert (await job_queue.dequeue(timeout=0.1)).investigation_id == "a"

    @pytest.mark.asyncio
    async def test_recover_inflight_requeues_unacked(self, job_queue):
        await job_queue.enqueue(job("a"))
        await job_queue.enqueue(job("b"))
        await job_queue.dequeue(timeout=0.1)
        assert job_queue.in_flight == 1

        assert await job_queue.recover_inflight() == 1
        assert job_queue.in_flight == 0
        assert await job_queue.depth() == 2
        assert (await job_queue.dequeue(timeout=0.1)).investigation_id == "a"

    @pytest.mark.asyncio
    async def test_close_releases_waiters(self):
        queue = InMemoryJobQueue()
        waiter = asyncio.create_task(queue.dequeue(timeout=5.0))
        await asyncio.sleep(0)

        await queue.close()

        assert await asyncio.wait_for(waiter, timeout=1.0) is None


class MockRedisClient:
    """AsyncMock-backed stand-in for ``redis.asyncio.Redis``."""

    def __init__(self):
        self.set = AsyncMock(return_value=True)
        self.lpush = AsyncMock(return_value=1)
        self.blmove = AsyncMock(return_value=None)
        self.lrem = AsyncMock(return_value=1)
        self.delete = AsyncMock(return_value=1)
        self.rpush = AsyncMock(return_value=1)
        self.lmove = AsyncMock(return_value=None)
        self.llen = AsyncMock(return_value=0)
        self.aclose = AsyncMock()


@pytest.fixture
def redis_client():
    return MockRedisClient()


@pytest.fixture
def redis_queue(redis_client):
    return RedisJobQueue(redis_client, queue_name="investigations", dedup_ttl_seconds=600)


class TestRedisJobQueue:

    @pytest.mark.asyncio
    async def test_enqueue_reserves_dedup_key_then_pushes(self, redis_queue, redis_client):
        payload = job("inv-1", domain="payments")

        assert await redis_queue.enqueue(payload) is True

        redis_client.set.assert_awaited_once_with("investigations:dedup:inv-1", "1", nx=True, ex=600)
        redis_client.lpush.assert_awaited_once_with("investigations:pending", payload.model_dump_json())

    @pytest.mark.asyncio
    async def test_duplicate_enqueue_does_not_push(self, redis_queue, redis_client):
        redis_client.set.return_value = None

        assert await redis_queue.enqueue(job("inv-1")) is False
        redis_client.lpush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_enqueue_redis_error_becomes_persistence_failure(self, redis_queue, redis_client):
        redis_client.set.side_effect = redis.ConnectionError("connection lost")

        with pytest.raises(PersistenceFailure, match="inv-1") as exc_info:
            await redis_queue.enqueue(job("inv-1"))

        assert isinstance(exc_info.value.__cause__, redis.ConnectionError)

    @pytest.mark.asyncio
    async def test_dequeue_moves_to_processing(self, redis_queue, redis_client):
        payload = job("inv-1")
        redis_client.blmove.return_value = payload.model_dump_json().encode()

        delivered = await redis_queue.dequeue(timeout=2.0)

        assert delivered == payload
        redis_client.blmove.assert_awaited_once_with(
            "investigations:pending", "investigations:processing", 2.0, "RIGHT", "LEFT"
        )

    @pytest.mark.asyncio
    async def test_dequeue_timeout_returns_none(self, redis_queue):
        assert await redis_queue.dequeue(timeout=0.1) is None

    @pytest.mark.asyncio
    async def test_malformed_payload_is_dropped(self, redis_queue, redis_client):
        redis_client.blmove.return_value = b'{"not": "a job"}'

        assert await redis_queue.dequeue(timeout=0.1) is None
        redis_client.lrem.assert_awaited_once_with("investigations:processing", 1, '{"not": "a job"}')

    @pytest.mark.asyncio
    async def test_ack_removes_exact_payload_and_releases_dedup(self, redis_queue, redis_client):
        raw = '{"investigation_id": "inv-1", "ticket_id": "T-1"}'
        redis_client.blmove.return_value = raw
        delivered = await redis_queue.dequeue(timeout=0.1)

        await redis_queue.ack(delivered)

        redis_client.lrem.assert_awaited_once_with("investigations:processing", 1, raw)
        redis_client.delete.assert_awaited_once_with("investigations:dedup:inv-1")

    @pytest.mark.asyncio
    async def test_nack_requeues_without_releasing_dedup(self, redis_queue, redis_client):
        payload = job("inv-1")
        redis_client.blmove.return_value = payload.model_dump_json()
        delivered = await redis_queue.dequeue(timeout=0.1)

        await redis_queue.nack(delivered)

        redis_client.rpush.assert_awaited_once_with("investigations:pending", payload.model_dump_json())
        redis_client.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_recover_inflight_drains_processing(self, redis_queue, redis_client):
        redis_client.lmove.side_effect = ["job-a", "job-b", None]

        assert await redis_queue.recover_inflight() == 2
        redis_client.lmove.assert_awaited_with(
            "investigations:processing", "investigations:pending", "RIGHT", "RIGHT"
        )

    @pytest.mark.asyncio
    async def test_depth_and_close(self, redis_queue, redis_client):
        redis_client.llen.return_value = 4

        assert await redis_queue.depth() == 4
        await redis_queue.close()
        redis_client.aclose.assert_awaited_once()
