"""Worker pool consuming investigation jobs.

Each worker pulls one job at a time from the durable queue and runs the
investigation's phases sequentially; separate workers process separate
investigations concurrently. A job is acknowledged once the engine finishes
with it, successfully or not. A worker killed mid-investigation leaves its
job unacknowledged, and it is redelivered from ``intake`` on the next start.
"""

import asyncio
import logging
from typing import List, Optional

from investigator.core.orchestrator.engine import OrchestratorEngine
from investigator.exceptions import PhaseFailure
from investigator.infrastructure.observability import metrics
from investigator.infrastructure.observability.tracing import inject_trace_context
from investigator.models.interfaces import IJobQueue
from investigator.models.investigation import InvestigationJob

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 3
DEFAULT_POLL_TIMEOUT = 5.0


async def enqueue_investigation(
    queue: IJobQueue,
    investigation_id: str,
    ticket_id: str,
    domain: Optional[str] = None,
    mode: str = "standard",
    callback_url: Optional[str] = None,
    requested_by: str = "system",
) -> bool:
    """Queue an investigation, carrying the caller's trace context along.

    Returns:
        False when a job for ``investigation_id`` is already in flight
    """
    job = InvestigationJob(
        investigation_id=investigation_id,
        ticket_id=ticket_id,
        domain=domain,
        mode=mode,
        callback_url=callback_url,
        requested_by=requested_by,
        trace_carrier=inject_trace_context(),
    )
    queued = await queue.enqueue(job)
    if not queued:
        logger.info(f"Investigation {investigation_id} already queued, skipping duplicate")
    return queued


class WorkerPool:
    """N concurrent consumers of an IJobQueue feeding the engine."""

    def __init__(
        self,
        queue: IJobQueue,
        engine: OrchestratorEngine,
        concurrency: int = DEFAULT_CONCURRENCY,
        poll_timeout: float = DEFAULT_POLL_TIMEOUT,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.queue = queue
        self.engine = engine
        self.concurrency = concurrency
        self.poll_timeout = poll_timeout
        self._stopping = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self.processed = 0

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def start(self) -> None:
        """Requeue jobs orphaned by a previous process, then spawn workers."""
        if self.running:
            return
        self._stopping.clear()

        recovered = await self.queue.recover_inflight()
        if recovered:
            logger.warning(f"Requeued {recovered} unacknowledged investigation job(s) for redelivery")

        self._tasks = [
            asyncio.create_task(self._work(index), name=f"investigation-worker-{index}")
            for index in range(self.concurrency)
        ]
        logger.info(f"Worker pool started with {self.concurrency} worker(s)")

    async def stop(self, graceful: bool = True) -> None:
        """Stop the workers.

        Graceful stop lets in-flight investigations finish. Otherwise workers
        are cancelled and their jobs stay unacknowledged for redelivery.
        """
        self._stopping.set()
        if not graceful:
            for task in self._tasks:
                task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Worker pool stopped")

    async def _work(self, index: int) -> None:
        while not self._stopping.is_set():
            try:
                job = await self.queue.dequeue(self.poll_timeout)
            except Exception as e:
                logger.error(f"Worker {index} failed to poll the queue: {e}")
                await asyncio.sleep(self.poll_timeout)
                continue

            if job is None:
                continue
            await self._process(index, job)

    async def _process(self, index: int, job: InvestigationJob) -> None:
        logger.info(f"Worker {index} picked up investigation {job.investigation_id}")
        metrics.ACTIVE_WORKERS.inc()
        try:
            await self.engine.execute(job)
        except PhaseFailure as e:
            logger.warning(f"Investigation {job.investigation_id} failed in phase {e.phase}: {e}")
        except Exception as e:
            logger.error(f"Investigation {job.investigation_id} aborted: {e}", exc_info=True)
        finally:
            metrics.ACTIVE_WORKERS.dec()

        self.processed += 1
        try:
            await self.queue.ack(job)
        except Exception as e:
            logger.error(f"Failed to acknowledge job {job.job_id}: {e}")
