"""Orchestrator Module

Components:
- dispatcher: one agent run with tracing, metrics and persistence
- hypothesis_loop: generate / verify root-cause iterations
- engine: the fixed phase pipeline for one investigation
- delivery: completion callback
- worker: worker pool over the durable job queue
"""

from investigator.core.orchestrator.delivery import CallbackNotifier
from investigator.core.orchestrator.dispatcher import Dispatcher
from investigator.core.orchestrator.engine import OrchestratorEngine
from investigator.core.orchestrator.hypothesis_loop import (
    HypothesisLoop,
    extract_json_object,
    parse_hypothesis_output,
    parse_verification_output,
)
from investigator.core.orchestrator.worker import WorkerPool, enqueue_investigation

__all__ = [
    "CallbackNotifier",
    "Dispatcher",
    "OrchestratorEngine",
    "HypothesisLoop",
    "extract_json_object",
    "parse_hypothesis_output",
    "parse_verification_output",
    "WorkerPool",
    "enqueue_investigation",
]
