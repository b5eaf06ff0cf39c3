"""
In-memory implementation of IInvestigationStore interface.

RAM-based investigation store for development and testing. Data is held in
Python dictionaries and lost on restart.
"""

import asyncio
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional

from investigator.exceptions import PersistenceFailure
from investigator.models.interfaces import IInvestigationStore
from investigator.models.investigation import (
    AgentOutput,
    AgentRunRecord,
    Hypothesis,
    Investigation,
    InvestigationReport,
    InvestigationStatus,
    Phase,
    PhaseResult,
    utc_now,
)


class InMemoryInvestigationStore(IInvestigationStore):
    """In-memory implementation of IInvestigationStore using Python dicts"""

    def __init__(self):
        self._investigations: Dict[str, Investigation] = {}
        self._phase_results: Dict[str, List[PhaseResult]] = defaultdict(list)
        self._agent_outputs: Dict[str, List[AgentOutput]] = defaultdict(list)
        self._agent_runs: Dict[str, List[AgentRunRecord]] = defaultdict(list)
        self._hypotheses: Dict[str, List[Hypothesis]] = defaultdict(list)
        self._reports: Dict[str, InvestigationReport] = {}
        # Every status written, in order; lets callers observe transitions
        self.status_history: Dict[str, List[str]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def create_investigation(self, investigation: Investigation) -> None:
        async with self._lock:
            self._investigations[investigation.id] = investigation.model_copy()

    async def get_investigation(self, investigation_id: str) -> Optional[Investigation]:
        async with self._lock:
            investigation = self._investigations.get(investigation_id)
            return investigation.model_copy() if investigation else None

    async def _update(self, investigation_id: str, **fields) -> None:
        investigation = self._investigations.get(investigation_id)
        if investigation is None:
            raise PersistenceFailure(f"Investigation {investigation_id} not found")
        self._investigations[investigation_id] = investigation.model_copy(
            update={**fields, "updated_at": utc_now()}
        )
        if "status" in fields:
            self.status_history[investigation_id].append(fields["status"])

    async def update_status(self, investigation_id: str, status: str, phase: Optional[Phase] = None) -> None:
        async with self._lock:
            fields = {"status": status}
            if phase is not None:
                fields["current_phase"] = phase
            await self._update(investigation_id, **fields)

    async def mark_completed(self, investigation_id: str, completed_at: datetime) -> None:
        async with self._lock:
            await self._update(
                investigation_id,
                status=InvestigationStatus.COMPLETED.value,
                completed_at=completed_at,
                error=None,
            )

    async def mark_failed(self, investigation_id: str, error: str) -> None:
        async with self._lock:
            await self._update(investigation_id, status=InvestigationStatus.FAILED.value, error=error)

    async def append_phase_result(self, investigation_id: str, result: PhaseResult) -> None:
        async with self._lock:
            self._phase_results[investigation_id].append(result)

    async def append_agent_output(self, investigation_id: str, output: AgentOutput) -> None:
        async with self._lock:
            self._agent_outputs[investigation_id].append(output)

    async def append_agent_run(self, investigation_id: str, record: AgentRunRecord) -> None:
        async with self._lock:
            self._agent_runs[investigation_id].append(record)

    async def append_hypothesis(self, investigation_id: str, hypothesis: Hypothesis) -> None:
        async with self._lock:
            self._hypotheses[investigation_id].append(hypothesis)

    async def save_report(self, report: InvestigationReport) -> None:
        async with self._lock:
            self._reports[report.investigation_id] = report

    async def get_phase_results(self, investigation_id: str) -> List[PhaseResult]:
        async with self._lock:
            return list(self._phase_results.get(investigation_id, []))

    async def get_agent_outputs(self, investigation_id: str) -> List[AgentOutput]:
        async with self._lock:
            return list(self._agent_outputs.get(investigation_id, []))

    async def get_agent_runs(self, investigation_id: str) -> List[AgentRunRecord]:
        async with self._lock:
            return list(self._agent_runs.get(investigation_id, []))

    async def get_hypotheses(self, investigation_id: str) -> List[Hypothesis]:
        async with self._lock:
            return list(self._hypotheses.get(investigation_id, []))

    async def get_report(self, investigation_id: str) -> Optional[InvestigationReport]:
        async with self._lock:
            return self._reports.get(investigation_id)
