"""main.py

Purpose: Process entry point for the investigation engine

Commands:
--------------------------------------------------------------------------------
  worker   start the metrics server and the worker pool (default)
  health   connect every configured tool provider and print their health
  enqueue  queue one investigation job

Workers stop on SIGINT / SIGTERM: in-flight investigations finish, tool
providers are disconnected, connections closed.
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import List, Optional

from investigator.config.settings import InvestigatorSettings, StorageBackend, get_settings
from investigator.container import InvestigatorContainer
from investigator.core.orchestrator.worker import enqueue_investigation
from investigator.exceptions import ConfigurationException
from investigator.infrastructure.logging.config import configure_logging, get_logger
from investigator.infrastructure.observability.metrics import start_metrics_server
from investigator.infrastructure.observability.tracing import setup_tracing

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="investigator", description="Incident investigation engine")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("worker", help="Run the worker pool until interrupted")
    subparsers.add_parser("health", help="Report tool provider health")

    enqueue = subparsers.add_parser("enqueue", help="Queue an investigation")
    enqueue.add_argument("--investigation-id", required=True)
    enqueue.add_argument("--ticket-id", required=True)
    enqueue.add_argument("--domain")
    enqueue.add_argument("--mode", default="standard")
    enqueue.add_argument("--callback-url")
    enqueue.add_argument("--requested-by", default="cli")
    return parser


def _bootstrap(settings: InvestigatorSettings) -> None:
    configure_logging(level=settings.logging.level.value, structured=settings.logging.structured_logging)
    setup_tracing(settings.observability)


async def run_worker(settings: InvestigatorSettings) -> int:
    container = InvestigatorContainer()
    await container.initialize(settings)

    if settings.observability.metrics_enabled:
        start_metrics_server(settings.observability.metrics_port)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    pool = container.get_worker_pool()
    await pool.start()
    logger.info("Investigation workers running", concurrency=pool.concurrency)

    try:
        await stop_event.wait()
        logger.info("Shutdown signal received, draining workers")
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await container.shutdown(graceful=True)
    return 0


async def run_health(settings: InvestigatorSettings) -> int:
    from investigator.infrastructure.tools.registry import ToolProviderRegistry

    registry = ToolProviderRegistry.from_settings(settings.tool_providers)
    try:
        report = await registry.health_check()
    finally:
        await registry.disconnect_all()

    print(json.dumps(report, indent=2))
    return 0 if report["healthy"] else 1


async def run_enqueue(settings: InvestigatorSettings, args: argparse.Namespace) -> int:
    if settings.queue.backend is StorageBackend.MEMORY:
        logger.error("enqueue needs a shared queue; STORAGE_BACKEND=memory is process-local")
        return 2

    container = InvestigatorContainer()
    await container.initialize(settings)
    try:
        queued = await enqueue_investigation(
            container.get_job_queue(),
            investigation_id=args.investigation_id,
            ticket_id=args.ticket_id,
            domain=args.domain,
            mode=args.mode,
            callback_url=args.callback_url,
            requested_by=args.requested_by,
        )
    finally:
        await container.shutdown()

    print("queued" if queued else "duplicate")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    command = args.command or "worker"

    try:
        settings = get_settings()
    except ConfigurationException as e:
        logging.basicConfig(level=logging.ERROR)
        logging.getLogger(__name__).error(f"Invalid configuration: {e}")
        return 2

    _bootstrap(settings)

    if command == "health":
        return asyncio.run(run_health(settings))
    if command == "enqueue":
        return asyncio.run(run_enqueue(settings, args))
    return asyncio.run(run_worker(settings))


if __name__ == "__main__":
    sys.exit(main())
