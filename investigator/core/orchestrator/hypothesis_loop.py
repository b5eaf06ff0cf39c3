"""Hypothesis / Verification Loop

Iterative root-cause search used by the ``hypothesize`` phase:

1. Generate: the ``hypothesize`` agent proposes a root cause from the
   gathered evidence plus the history of earlier iterations
2. Parse the proposal (best-effort JSON extraction from free text)
3. Verify: the ``verification`` agent re-scores the candidate
4. Track the best candidate, persist the iteration
5. Stop as soon as a verified confidence reaches the threshold

Without convergence the highest-confidence candidate is accepted.

The history of earlier iterations is re-sent on every generate step, so the
prompt grows linearly with the iteration count.
"""

import json
import logging
import math
from typing import Any, Dict, List, Optional

from investigator.exceptions import ParseFailure, PersistenceFailure
from investigator.infrastructure.observability import metrics
from investigator.infrastructure.observability.tracing import record_span_error, start_hypothesis_span
from investigator.models.interfaces import IInvestigationStore
from investigator.models.investigation import Hypothesis, HypothesisLoopResult

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD = 0.8
DEFAULT_MAX_ITERATIONS = 5

HYPOTHESIZE_AGENT = "hypothesize"
VERIFICATION_AGENT = "verification"

_decoder = json.JSONDecoder()


def extract_json_object(text: str, required_key: str) -> Dict[str, Any]:
    """Find the first JSON object in ``text`` that contains ``required_key``.

    Raises:
        ParseFailure: No such object could be decoded
    """
    index = text.find("{")
    while index != -1:
        try:
            value, _ = _decoder.raw_decode(text, index)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict) and required_key in value:
            return value
        index = text.find("{", index + 1)
    raise ParseFailure(f'No JSON object with key "{required_key}" found in agent output')


def _confidence(value: Any, default: float) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return default
    return confidence if math.isfinite(confidence) else default


def parse_hypothesis_output(content: str, iteration: int) -> Hypothesis:
    """Build a candidate from generator output, falling back to the raw text."""
    try:
        parsed = extract_json_object(content, "hypothesis")
    except ParseFailure as e:
        logger.debug(f"Hypothesis output not parseable, using raw text: {e}")
        return Hypothesis(iteration=iteration, hypothesis=content, confidence=0.0)

    return Hypothesis(
        iteration=iteration,
        hypothesis=str(parsed.get("hypothesis") or content),
        confidence=_confidence(parsed.get("confidence"), 0.0),
        evidence_summary=str(parsed.get("evidence_summary") or ""),
    )


def parse_verification_output(content: str, candidate: Hypothesis) -> Hypothesis:
    """Merge a verifier's verdict onto ``candidate``; always marks it verified."""
    try:
        parsed = extract_json_object(content, "confidence")
    except ParseFailure as e:
        logger.debug(f"Verification output not parseable, keeping confidence: {e}")
        return candidate.model_copy(update={"verified": True})

    evidence = parsed.get("evidence_summary")
    return Hypothesis(
        iteration=candidate.iteration,
        hypothesis=candidate.hypothesis,
        confidence=_confidence(parsed.get("confidence"), candidate.confidence),
        evidence_summary=str(evidence) if evidence is not None else candidate.evidence_summary,
        verified=True,
    )


def serialize_history(hypotheses: List[Hypothesis]) -> str:
    return json.dumps([h.model_dump() for h in hypotheses], separators=(",", ":"))


class HypothesisLoop:
    """Generate-then-verify loop over the dispatcher."""

    def __init__(
        self,
        dispatcher,
        store: IInvestigationStore,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ):
        self.dispatcher = dispatcher
        self.store = store
        self.confidence_threshold = confidence_threshold
        self.max_iterations = max_iterations

    async def run(
        self,
        investigation_id: str,
        gather_context: str,
        domain: Optional[str] = None,
    ) -> HypothesisLoopResult:
        logger.info(
            f"Starting hypothesis loop for {investigation_id} "
            f"(max_iterations={self.max_iterations}, threshold={self.confidence_threshold})"
        )

        history: List[Hypothesis] = []
        best: Optional[Hypothesis] = None

        for iteration in range(1, self.max_iterations + 1):
            with start_hypothesis_span(investigation_id, iteration) as span:
                try:
                    verified = await self._iterate(investigation_id, gather_context, domain, iteration, history)
                except Exception as e:
                    record_span_error(span, e)
                    raise
                span.set_attribute("hypothesis.confidence", verified.confidence)
                span.set_attribute("hypothesis.verified", verified.verified)

            history.append(verified)
            if best is None or verified.confidence > best.confidence:
                best = verified

            await self._persist(investigation_id, verified)

            if verified.confidence >= self.confidence_threshold:
                logger.info(
                    f"Hypothesis loop for {investigation_id} converged at iteration "
                    f"{iteration} with confidence {verified.confidence}"
                )
                metrics.record_hypothesis_outcome(iteration, verified.confidence)
                return HypothesisLoopResult(
                    accepted_hypothesis=verified,
                    all_hypotheses=history,
                    iterations=iteration,
                    converged=True,
                )

        logger.warning(
            f"Hypothesis loop for {investigation_id} did not converge after "
            f"{self.max_iterations} iterations, accepting best (confidence {best.confidence})"
        )
        metrics.record_hypothesis_outcome(self.max_iterations, best.confidence)
        return HypothesisLoopResult(
            accepted_hypothesis=best,
            all_hypotheses=history,
            iterations=self.max_iterations,
            converged=False,
        )

    async def _iterate(self, investigation_id: str, gather_context: str, domain: Optional[str],
                       iteration: int, history: List[Hypothesis]) -> Hypothesis:
        generate_context = gather_context
        if history:
            generate_context += (
                "\n\nPrevious hypotheses and their verification results:\n" + serialize_history(history)
            )

        generated = await self.dispatcher.dispatch(
            investigation_id, HYPOTHESIZE_AGENT, generate_context, domain=domain
        )
        candidate = parse_hypothesis_output(generated.content, iteration)
        logger.info(f"Hypothesis {iteration} generated with initial confidence {candidate.confidence}")

        verify_context = (
            f"Hypothesis to verify:\n{candidate.model_dump_json()}\n\nGathered evidence:\n{gather_context}"
        )
        verification = await self.dispatcher.dispatch(
            investigation_id, VERIFICATION_AGENT, verify_context, domain=domain
        )
        verified = parse_verification_output(verification.content, candidate)
        logger.info(f"Hypothesis {iteration} verified with confidence {verified.confidence}")
        return verified

    async def _persist(self, investigation_id: str, hypothesis: Hypothesis) -> None:
        try:
            await self.store.append_hypothesis(investigation_id, hypothesis)
        except PersistenceFailure as e:
            logger.error(f"Failed to persist hypothesis iteration {hypothesis.iteration}: {e}")
