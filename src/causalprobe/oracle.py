"""
Oracle Phase Detector.

Tracks a stream of scored reasoning observations and decides when the
session has entered (or left) a sustained high-confidence phase.

Detection uses a Beta-Binomial posterior:

- Beta(alpha, beta), prior Beta(1, 9): a skeptical 10% starting belief
- a qualifying observation (score 3, confidence above threshold) adds to alpha
- anything else adds to beta
- P(oracle) = alpha / (alpha + beta)

Activation happens at P >= 0.95 and, once active, deactivation only below
P < 0.90, so a single weak observation does not flicker the phase.

A streak counter (consecutive qualifying observations, broken by a
non-qualifying one or by a long time gap) is kept for display only; it
never gates activation.

``OracleState`` is an immutable value threaded through every call.  The
caller owns it and must serialize writes per session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Mapping

from causalprobe.config import Config, OracleSettings, get_config

logger = logging.getLogger(__name__)

ENTERED_MESSAGE = "Oracle phase activated: sustained high-confidence reasoning detected"
EXITED_MESSAGE = "Oracle phase deactivated: returning to standard reasoning"


@dataclass(frozen=True)
class Observation:
    """One scored reasoning step (score is a causal depth level, 1-3)."""

    score: int
    confidence: float
    label: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Observation":
        return cls(
            score=int(data["score"]),
            confidence=float(data.get("confidence", 0.0)),
            label=data.get("label"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"score": self.score, "confidence": self.confidence, "label": self.label}


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def parse_timestamp(value: Any) -> datetime | None:
    """
    Read a timestamp from a datetime or an ISO 8601 string.

    Raises:
        ValueError: The string is not ISO 8601.
    """
    if value is None:
        return None
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(str(value))
    return as_utc(value)


@dataclass(frozen=True)
class OracleState:
    """
    Per-session detector state.

    Attributes:
        session_id: Owning session, if any.
        is_active: Whether the oracle phase is on.
        activation_time: When the current phase began.
        consecutive_count: Current qualifying streak (display only).
        average_confidence: Mean confidence over the current streak.
        alpha: Beta posterior success count (prior included).
        beta: Beta posterior failure count (prior included).
        history: Most recent observations, oldest first.
        total_activations: Phases entered this session.
        last_observation_time: Timestamp of the previous observation.
    """

    session_id: str | None = None
    is_active: bool = False
    activation_time: datetime | None = None
    consecutive_count: int = 0
    average_confidence: float = 0.0
    alpha: float = 1.0
    beta: float = 9.0
    history: tuple[Observation, ...] = field(default=())
    total_activations: int = 0
    last_observation_time: datetime | None = None

    @property
    def posterior(self) -> float:
        return self.alpha / (self.alpha + self.beta)

    def to_dict(self) -> dict[str, Any]:
        """Checkpoint shape for external storage."""
        return {
            "session_id": self.session_id,
            "is_active": self.is_active,
            "activation_time": self.activation_time.isoformat() if self.activation_time else None,
            "consecutive_count": self.consecutive_count,
            "average_confidence": self.average_confidence,
            "alpha": self.alpha,
            "beta": self.beta,
            "posterior": self.posterior,
            "history": [o.to_dict() for o in self.history],
            "total_activations": self.total_activations,
            "last_observation_time": (
                self.last_observation_time.isoformat() if self.last_observation_time else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OracleState":
        """Restore a checkpoint written by ``to_dict``."""
        return cls(
            session_id=data.get("session_id"),
            is_active=bool(data.get("is_active", False)),
            activation_time=parse_timestamp(data.get("activation_time")),
            consecutive_count=int(data.get("consecutive_count", 0)),
            average_confidence=float(data.get("average_confidence", 0.0)),
            alpha=float(data.get("alpha", 1.0)),
            beta=float(data.get("beta", 9.0)),
            history=tuple(Observation.from_dict(o) for o in data.get("history") or ()),
            total_activations=int(data.get("total_activations", 0)),
            last_observation_time=parse_timestamp(data.get("last_observation_time")),
        )


@dataclass(frozen=True)
class OracleTransition:
    """Result of processing one observation."""

    entered: bool
    exited: bool
    state: OracleState
    message: str | None
    posterior: float


def initial_state(session_id: str | None = None, settings: OracleSettings | None = None) -> OracleState:
    settings = settings or get_config().oracle
    return OracleState(session_id=session_id, alpha=settings.prior_alpha, beta=settings.prior_beta)


def is_qualifying(observation: Observation, settings: OracleSettings) -> bool:
    return (
        observation.score == settings.qualifying_score
        and observation.confidence >= settings.confidence_threshold
    )


def process_observation(
    state: OracleState,
    observation: Observation,
    timestamp: datetime | None = None,
    settings: OracleSettings | None = None,
) -> OracleTransition:
    """
    Fold one observation into ``state`` and report any phase change.

    Pure: the input state is not modified.
    """
    settings = settings or get_config().oracle
    timestamp = as_utc(timestamp) if timestamp else datetime.now(timezone.utc)

    count, average = state.consecutive_count, state.average_confidence
    if state.last_observation_time is not None:
        gap_minutes = (timestamp - state.last_observation_time).total_seconds() / 60
        if gap_minutes > settings.max_time_gap_minutes:
            count, average = 0, 0.0

    history = (*state.history, observation)[-settings.history_size:]

    alpha, beta = state.alpha, state.beta
    if is_qualifying(observation, settings):
        alpha += 1
        count += 1
        average = observation.confidence if count == 1 else (average * (count - 1) + observation.confidence) / count
    else:
        beta += 1
        count, average = 0, 0.0

    next_state = replace(
        state,
        alpha=alpha,
        beta=beta,
        consecutive_count=count,
        average_confidence=average,
        history=history,
        last_observation_time=timestamp,
    )
    posterior = next_state.posterior

    if not state.is_active and posterior >= settings.activation_threshold:
        next_state = replace(
            next_state,
            is_active=True,
            activation_time=timestamp,
            total_activations=state.total_activations + 1,
        )
        logger.info(
            "Oracle phase activated (session=%s, posterior=%.4f)", state.session_id, posterior,
        )
    elif state.is_active and posterior < settings.deactivation_threshold:
        next_state = replace(next_state, is_active=False, activation_time=None)
        logger.info(
            "Oracle phase deactivated (session=%s, posterior=%.4f)", state.session_id, posterior,
        )

    entered = not state.is_active and next_state.is_active
    exited = state.is_active and not next_state.is_active
    return OracleTransition(
        entered=entered,
        exited=exited,
        state=next_state,
        message=ENTERED_MESSAGE if entered else EXITED_MESSAGE if exited else None,
        posterior=posterior,
    )


class OracleDetector:
    """
    Convenience wrapper binding the detector to one configuration.

    Usage::

        detector = OracleDetector()
        state = detector.initial_state("session-1")
        for obs in stream:
            transition = detector.process(state, obs)
            state = transition.state
    """

    def __init__(self, config: Config | None = None) -> None:
        self.config = config or get_config()

    @property
    def settings(self) -> OracleSettings:
        return self.config.oracle

    def initial_state(self, session_id: str | None = None) -> OracleState:
        return initial_state(session_id, self.settings)

    def process(
        self,
        state: OracleState,
        observation: Observation,
        timestamp: datetime | None = None,
    ) -> OracleTransition:
        return process_observation(state, observation, timestamp, self.settings)

    def reset(self, session_id: str | None = None) -> OracleState:
        """Fresh state back at the prior."""
        return self.initial_state(session_id)

    def force_activate(self, state: OracleState, timestamp: datetime | None = None) -> OracleState:
        """Turn the phase on without touching the posterior."""
        timestamp = as_utc(timestamp) if timestamp else datetime.now(timezone.utc)
        logger.info("Oracle phase force-activated (session=%s)", state.session_id)
        return replace(
            state,
            is_active=True,
            activation_time=timestamp,
            total_activations=state.total_activations + 1,
        )

    def streak_summary(self, state: OracleState) -> dict[str, Any]:
        return {
            "count": state.consecutive_count,
            "average_confidence": state.average_confidence,
            "needed": max(0, self.settings.streak_threshold - state.consecutive_count),
        }
