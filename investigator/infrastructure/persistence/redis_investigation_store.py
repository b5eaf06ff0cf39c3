"""Redis Investigation Store Implementation

Purpose: Redis implementation of IInvestigationStore

Redis Key Schema:
- investigation:{id}                  → Hash (investigation record fields)
- investigation:{id}:phases           → List (PhaseResult JSON, append-only)
- investigation:{id}:agent_outputs    → List (AgentOutput JSON, append-only)
- investigation:{id}:agent_runs       → List (AgentRunRecord JSON, append-only)
- investigation:{id}:hypotheses       → List (Hypothesis JSON, append-only)
- investigation:{id}:report           → String (InvestigationReport JSON)

Every Redis error is surfaced as PersistenceFailure so the engine can apply
its best-effort / fatal policy uniformly.
"""

import logging
from datetime import datetime
from typing import Any, Awaitable, Dict, List, Optional, Type, TypeVar

import redis.asyncio as redis
from pydantic import BaseModel

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

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

# Optional investigation fields stored as "" when unset
_NULLABLE_FIELDS = {"domain", "current_phase", "error", "completed_at"}


def _decode(value: Any) -> Any:
    return value.decode() if isinstance(value, bytes) else value


class RedisInvestigationStore(IInvestigationStore):
    """Redis-backed investigation records with append-only child lists."""

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "investigation"):
        self.redis = redis_client
        self.key_prefix = key_prefix

    def _key(self, investigation_id: str, suffix: Optional[str] = None) -> str:
        base = f"{self.key_prefix}:{investigation_id}"
        return f"{base}:{suffix}" if suffix else base

    async def _run(self, operation: str, investigation_id: str, awaitable: Awaitable[Any]) -> Any:
        try:
            return await awaitable
        except redis.RedisError as e:
            logger.error(f"Redis {operation} failed for investigation {investigation_id}: {e}")
            raise PersistenceFailure(
                f"Failed to {operation} for investigation {investigation_id}: {e}",
                details={"operation": operation, "investigation_id": investigation_id},
            ) from e

    @staticmethod
    def _serialize_investigation(investigation: Investigation) -> Dict[str, str]:
        data = investigation.model_dump(mode="json")
        return {key: "" if value is None else str(value) for key, value in data.items()}

    @staticmethod
    def _deserialize_investigation(raw: Dict[Any, Any]) -> Investigation:
        data = {_decode(k): _decode(v) for k, v in raw.items()}
        for field in _NULLABLE_FIELDS:
            if data.get(field) == "":
                data[field] = None
        return Investigation.model_validate(data)

    async def create_investigation(self, investigation: Investigation) -> None:
        await self._run(
            "create investigation",
            investigation.id,
            self.redis.hset(self._key(investigation.id), mapping=self._serialize_investigation(investigation)),
        )

    async def get_investigation(self, investigation_id: str) -> Optional[Investigation]:
        raw = await self._run("read investigation", investigation_id, self.redis.hgetall(self._key(investigation_id)))
        if not raw:
            return None
        return self._deserialize_investigation(raw)

    async def _update_fields(self, operation: str, investigation_id: str, fields: Dict[str, str]) -> None:
        fields = {**fields, "updated_at": utc_now().isoformat()}
        await self._run(operation, investigation_id, self.redis.hset(self._key(investigation_id), mapping=fields))

    async def update_status(self, investigation_id: str, status: str, phase: Optional[Phase] = None) -> None:
        fields = {"status": status}
        if phase is not None:
            fields["current_phase"] = phase.value
        await self._update_fields("update status", investigation_id, fields)

    async def mark_completed(self, investigation_id: str, completed_at: datetime) -> None:
        await self._update_fields("mark completed", investigation_id, {
            "status": InvestigationStatus.COMPLETED.value,
            "completed_at": completed_at.isoformat(),
            "error": "",
        })

    async def mark_failed(self, investigation_id: str, error: str) -> None:
        await self._update_fields("mark failed", investigation_id, {
            "status": InvestigationStatus.FAILED.value,
            "error": error,
        })

    async def _append(self, suffix: str, investigation_id: str, record: BaseModel) -> None:
        await self._run(
            f"append {suffix}",
            investigation_id,
            self.redis.rpush(self._key(investigation_id, suffix), record.model_dump_json()),
        )

    async def _read_list(self, suffix: str, investigation_id: str, model: Type[M]) -> List[M]:
        raw_items = await self._run(
            f"read {suffix}",
            investigation_id,
            self.redis.lrange(self._key(investigation_id, suffix), 0, -1),
        )
        return [model.model_validate_json(_decode(item)) for item in raw_items or []]

    async def append_phase_result(self, investigation_id: str, result: PhaseResult) -> None:
        await self._append("phases", investigation_id, result)

    async def append_agent_output(self, investigation_id: str, output: AgentOutput) -> None:
        await self._append("agent_outputs", investigation_id, output)

    async def append_agent_run(self, investigation_id: str, record: AgentRunRecord) -> None:
        await self._append("agent_runs", investigation_id, record)

    async def append_hypothesis(self, investigation_id: str, hypothesis: Hypothesis) -> None:
        await self._append("hypotheses", investigation_id, hypothesis)

    async def save_report(self, report: InvestigationReport) -> None:
        await self._run(
            "save report",
            report.investigation_id,
            self.redis.set(self._key(report.investigation_id, "report"), report.model_dump_json()),
        )

    async def get_phase_results(self, investigation_id: str) -> List[PhaseResult]:
        return await self._read_list("phases", investigation_id, PhaseResult)

    async def get_hypotheses(self, investigation_id: str) -> List[Hypothesis]:
        return await self._read_list("hypotheses", investigation_id, Hypothesis)

    async def get_report(self, investigation_id: str) -> Optional[InvestigationReport]:
        raw = await self._run("read report", investigation_id, self.redis.get(self._key(investigation_id, "report")))
        if raw is None:
            return None
        return InvestigationReport.model_validate_json(_decode(raw))
