"""
Hypothesis Lifecycle Tracker.

A hypothesis moves through four states, and every move is recorded as an
audit event:

    proposed ──► tested ──► falsified
        │          │
        ├──────────┴──► retracted
        └──► falsified

falsified and retracted are terminal.  The current state is the state of
the most recent event; history is append-only and deduplicated by content,
so re-running the lifecycle on the same hypothesis never adds events.

Hypotheses are immutable: every operation returns a new ``Hypothesis``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

from causalprobe.config import Config, get_config
from causalprobe.exceptions import LifecycleTransitionError

logger = logging.getLogger(__name__)


class HypothesisState(str, Enum):
    PROPOSED = "proposed"
    TESTED = "tested"
    FALSIFIED = "falsified"
    RETRACTED = "retracted"

    @property
    def is_terminal(self) -> bool:
        return self in (HypothesisState.FALSIFIED, HypothesisState.RETRACTED)


class AuditTrigger(str, Enum):
    GENERATION = "generation"
    INTERVENTION_RESULT = "intervention_result"
    COUNTERFACTUAL_FAILURE = "counterfactual_failure"
    MANUAL_REVIEW = "manual_review"


TRANSITIONS: dict[HypothesisState | None, frozenset[HypothesisState]] = {
    None: frozenset({HypothesisState.PROPOSED}),
    HypothesisState.PROPOSED: frozenset({
        HypothesisState.TESTED,
        HypothesisState.FALSIFIED,
        HypothesisState.RETRACTED,
    }),
    HypothesisState.TESTED: frozenset({
        HypothesisState.FALSIFIED,
        HypothesisState.RETRACTED,
    }),
    HypothesisState.FALSIFIED: frozenset(),
    HypothesisState.RETRACTED: frozenset(),
}

# Lower sorts first in recommendations
STATE_PRIORITY: dict[HypothesisState, int] = {
    HypothesisState.TESTED: 0,
    HypothesisState.PROPOSED: 1,
    HypothesisState.RETRACTED: 2,
    HypothesisState.FALSIFIED: 3,
}

RECOMMENDATION_ELIGIBLE = frozenset({HypothesisState.PROPOSED, HypothesisState.TESTED})


def _unique_refs(values: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(v.strip() for v in values if v and v.strip()))


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of the latest validation run against a hypothesis."""

    success: bool
    p_value: float | None = None
    conclusion_valid: bool | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ValidationResult":
        """Read ``success`` plus optional metrics (camelCase or snake_case)."""
        metrics = data.get("metrics") or {}
        if not isinstance(metrics, Mapping):
            metrics = {}

        def pick(*names: str) -> Any:
            for name in names:
                for source in (metrics, data):
                    if name in source:
                        return source[name]
            return None

        p_value = pick("pValue", "p_value")
        conclusion_valid = pick("conclusionValid", "conclusion_valid")
        return cls(
            success=data.get("success") is True,
            p_value=float(p_value) if isinstance(p_value, (int, float)) and not isinstance(p_value, bool) else None,
            conclusion_valid=conclusion_valid if isinstance(conclusion_valid, bool) else None,
        )

    def passes(self, max_p_value: float = 0.05) -> bool:
        if not self.success:
            return False
        if self.conclusion_valid is False:
            return False
        if self.p_value is not None and self.p_value > max_p_value:
            return False
        return True


@dataclass(frozen=True)
class HypothesisAuditEvent:
    """One append-only entry in a hypothesis's history."""

    hypothesis_id: str
    state: HypothesisState
    trigger: AuditTrigger
    rationale: str
    evidence_refs: tuple[str, ...] = ()
    timestamp: datetime | None = None

    @property
    def dedupe_key(self) -> tuple[str, str, str, str, tuple[str, ...]]:
        """Content identity; the timestamp is not part of it."""
        return (
            self.hypothesis_id,
            self.state.value,
            self.trigger.value,
            self.rationale,
            tuple(sorted(self.evidence_refs)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "hypothesis_id": self.hypothesis_id,
            "state": self.state.value,
            "trigger": self.trigger.value,
            "rationale": self.rationale,
            "evidence_refs": list(self.evidence_refs),
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], hypothesis_id: str | None = None) -> "HypothesisAuditEvent":
        """
        Restore an event written by ``to_dict`` (camelCase keys accepted).

        Raises:
            ValueError: Unknown state or trigger, or a malformed timestamp.
        """
        timestamp = data.get("timestamp") or data.get("createdAt")
        if timestamp is not None and not isinstance(timestamp, datetime):
            timestamp = datetime.fromisoformat(str(timestamp))
        if timestamp is not None and timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        refs = data.get("evidence_refs") or data.get("evidenceRefs") or ()
        return cls(
            hypothesis_id=str(data.get("hypothesis_id") or data.get("hypothesisId") or hypothesis_id or ""),
            state=HypothesisState(data.get("state") or data.get("toState")),
            trigger=AuditTrigger(data.get("trigger")),
            rationale=str(data.get("rationale") or "").strip(),
            evidence_refs=_unique_refs(str(r) for r in refs),
            timestamp=timestamp,
        )


@dataclass(frozen=True)
class Hypothesis:
    """
    A generated hypothesis and its lifecycle history.

    Score components default to 0 when absent and only matter for
    recommendation ordering.
    """

    id: str
    statement: str = ""
    falsifier: str | None = None
    validation_result: ValidationResult | None = None
    intervention_value: float = 0.0
    identifiability: float = 0.0
    falsifiability: float = 0.0
    novelty: float = 0.0
    confidence: float = 0.0
    events: tuple[HypothesisAuditEvent, ...] = ()

    @property
    def state(self) -> HypothesisState | None:
        """State of the most recent event, or None before the first one."""
        return self.events[-1].state if self.events else None

    @property
    def effective_state(self) -> HypothesisState:
        return self.state or HypothesisState.PROPOSED

    @property
    def recommendation_score(self) -> float:
        return (
            self.intervention_value * 100
            + self.identifiability * 20
            + self.falsifiability * 10
            + self.novelty * 0.25
            + self.confidence
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Hypothesis":
        """Build from a loosely shaped mapping (camelCase or snake_case keys)."""

        def number(*names: str) -> float:
            for name in names:
                value = data.get(name)
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    return float(value)
            return 0.0

        hypothesis_id = str(data["id"])
        validation = data.get("validation_result") or data.get("validationResult")
        falsifier = data.get("falsifier")
        raw_events = data.get("events") or data.get("hypothesisAuditEvents") or ()
        return cls(
            id=hypothesis_id,
            statement=str(data.get("statement") or data.get("description") or ""),
            falsifier=str(falsifier) if falsifier is not None else None,
            validation_result=(
                ValidationResult.from_mapping(validation)
                if isinstance(validation, Mapping) else None
            ),
            intervention_value=number("intervention_value", "interventionValueScore"),
            identifiability=number("identifiability", "identifiabilityScore"),
            falsifiability=number("falsifiability", "falsifiabilityScore"),
            novelty=number("novelty", "noveltyScore"),
            confidence=number("confidence"),
            events=tuple(
                HypothesisAuditEvent.from_dict(event, hypothesis_id)
                for event in raw_events
                if isinstance(event, Mapping)
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "statement": self.statement,
            "falsifier": self.falsifier,
            "state": self.effective_state.value,
            "recommendation_score": round(self.recommendation_score, 4),
            "events": [e.to_dict() for e in self.events],
        }


def add_audit_event(
    hypothesis: Hypothesis,
    state: HypothesisState,
    trigger: AuditTrigger,
    rationale: str,
    evidence_refs: Sequence[str] = (),
    timestamp: datetime | None = None,
) -> Hypothesis:
    """
    Append an event if it is new and the transition is permitted.

    An event whose content matches an existing one is a no-op.

    Raises:
        LifecycleTransitionError: The transition is not in the state table.
    """
    event = HypothesisAuditEvent(
        hypothesis_id=hypothesis.id,
        state=state,
        trigger=trigger,
        rationale=rationale.strip(),
        evidence_refs=_unique_refs(evidence_refs),
        timestamp=timestamp or datetime.now(timezone.utc),
    )

    if any(existing.dedupe_key == event.dedupe_key for existing in hypothesis.events):
        return hypothesis

    current = hypothesis.state
    if state not in TRANSITIONS[current]:
        raise LifecycleTransitionError(
            hypothesis.id,
            current.value if current else None,
            state.value,
        )

    logger.debug(
        "Hypothesis %s: %s -> %s (%s)",
        hypothesis.id, current.value if current else "-", state.value, trigger.value,
    )
    return replace(hypothesis, events=(*hypothesis.events, event))


def ensure_hypothesis_lifecycle(
    hypothesis: Hypothesis,
    now: datetime | None = None,
    config: Config | None = None,
) -> Hypothesis:
    """
    Apply the automatic lifecycle rules, in order:

    1. Enter the ledger as proposed (once).
    2. Stop at a terminal state.
    3. Retract when the falsifier is missing or too short.
    4. Move to tested or falsified on the latest validation result.
    """
    settings = (config or get_config()).lifecycle
    refs = (hypothesis.id,)
    h = hypothesis

    if not h.events:
        h = add_audit_event(
            h, HypothesisState.PROPOSED, AuditTrigger.GENERATION,
            "Hypothesis generated and entered lifecycle ledger.", refs, now,
        )

    state = h.effective_state
    if state.is_terminal:
        return h

    if len((h.falsifier or "").strip()) < settings.min_falsifier_length:
        return add_audit_event(
            h, HypothesisState.RETRACTED, AuditTrigger.MANUAL_REVIEW,
            "Missing concrete falsifier; hypothesis cannot remain production-eligible.",
            refs, now,
        )

    if h.validation_result is None:
        return h

    if h.validation_result.passes(settings.max_p_value):
        if state is HypothesisState.TESTED:
            return h
        return add_audit_event(
            h, HypothesisState.TESTED, AuditTrigger.INTERVENTION_RESULT,
            "Validation run is consistent with falsifier threshold.", refs, now,
        )

    return add_audit_event(
        h, HypothesisState.FALSIFIED, AuditTrigger.INTERVENTION_RESULT,
        "Validation run failed falsifier threshold; hypothesis demoted.", refs, now,
    )


def mark_retracted(
    hypothesis: Hypothesis,
    rationale: str,
    evidence_refs: Sequence[str] = (),
    now: datetime | None = None,
) -> Hypothesis:
    """Manually retract a proposed or tested hypothesis."""
    return add_audit_event(
        hypothesis, HypothesisState.RETRACTED, AuditTrigger.MANUAL_REVIEW,
        rationale, evidence_refs, now,
    )


def mark_counterfactual_failure(
    hypothesis: Hypothesis,
    rationale: str,
    evidence_refs: Sequence[str] = (),
    now: datetime | None = None,
) -> Hypothesis:
    """Falsify a hypothesis whose counterfactual prediction failed."""
    return add_audit_event(
        hypothesis, HypothesisState.FALSIFIED, AuditTrigger.COUNTERFACTUAL_FAILURE,
        rationale, evidence_refs, now,
    )


def is_recommendation_eligible(hypothesis: Hypothesis) -> bool:
    return hypothesis.effective_state in RECOMMENDATION_ELIGIBLE


def order_for_recommendation(
    hypotheses: Iterable[Hypothesis],
    now: datetime | None = None,
    config: Config | None = None,
) -> list[Hypothesis]:
    """Run the lifecycle on each, then sort by state priority, score (desc), id."""
    processed = [ensure_hypothesis_lifecycle(h, now, config) for h in hypotheses]
    return sorted(
        processed,
        key=lambda h: (STATE_PRIORITY[h.effective_state], -h.recommendation_score, h.id),
    )


def select_recommendations(
    hypotheses: Iterable[Hypothesis],
    max_count: int,
    now: datetime | None = None,
    config: Config | None = None,
) -> list[Hypothesis]:
    """Top ``max_count`` eligible hypotheses in recommendation order."""
    if max_count <= 0:
        return []
    ordered = order_for_recommendation(hypotheses, now, config)
    return [h for h in ordered if is_recommendation_eligible(h)][:max_count]
