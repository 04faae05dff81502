"""
Tests for Oracle phase detection.

These tests verify:
- The posterior starts at the Beta(1, 9) prior
- Activation only once the posterior reaches 0.95
- Hysteresis: deactivation only below 0.90
- Streak bookkeeping and time-gap resets
- Bounded history
- Checkpoint round trip
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from causalprobe.config import Config, OracleSettings
from causalprobe.oracle import (
    ENTERED_MESSAGE,
    EXITED_MESSAGE,
    Observation,
    OracleDetector,
    OracleState,
    is_qualifying,
    parse_timestamp,
)

START = datetime(2024, 1, 1, tzinfo=timezone.utc)
STRONG = Observation(score=3, confidence=0.9)
WEAK = Observation(score=1, confidence=0.9)


@pytest.fixture
def detector() -> OracleDetector:
    return OracleDetector(Config())


def feed(
    detector: OracleDetector,
    state: OracleState,
    observations: list[Observation],
    start: datetime = START,
    step: timedelta = timedelta(seconds=30),
):
    """Process observations in order; return final state and every transition."""
    transitions = []
    for index, observation in enumerate(observations):
        transition = detector.process(state, observation, start + index * step)
        transitions.append(transition)
        state = transition.state
    return state, transitions


def activated_state(detector: OracleDetector) -> OracleState:
    state, _ = feed(detector, detector.initial_state("s1"), [STRONG] * 170)
    return state


class TestQualification:

    @pytest.mark.parametrize("observation,expected", [
        (Observation(score=3, confidence=0.8), True),
        (Observation(score=3, confidence=0.79), False),
        (Observation(score=2, confidence=0.99), False),
    ])
    def test_is_qualifying(self, observation: Observation, expected: bool) -> None:
        assert is_qualifying(observation, OracleSettings()) is expected


class TestPosterior:

    def test_prior(self, detector: OracleDetector) -> None:
        state = detector.initial_state("s1")
        assert state.session_id == "s1"
        assert state.posterior == pytest.approx(0.1)
        assert not state.is_active

    def test_twenty_strong_observations_do_not_activate(self, detector: OracleDetector) -> None:
        state, transitions = feed(detector, detector.initial_state(), [STRONG] * 20)
        assert state.posterior == pytest.approx(21 / 30)
        assert not state.is_active
        assert not any(t.entered for t in transitions)

    def test_activates_when_posterior_reaches_threshold(self, detector: OracleDetector) -> None:
        state, transitions = feed(detector, detector.initial_state(), [STRONG] * 170)
        assert not transitions[168].state.is_active
        assert transitions[169].entered
        assert transitions[169].message == ENTERED_MESSAGE
        assert state.is_active
        assert state.activation_time == START + 169 * timedelta(seconds=30)
        assert state.total_activations == 1

    def test_single_weak_observation_keeps_phase(self, detector: OracleDetector) -> None:
        state = activated_state(detector)
        transition = detector.process(state, WEAK, START + timedelta(hours=2))
        assert transition.posterior == pytest.approx(171 / 181)
        assert transition.state.is_active
        assert transition.message is None

    def test_deactivates_below_lower_threshold(self, detector: OracleDetector) -> None:
        state = activated_state(detector)
        state, transitions = feed(detector, state, [WEAK] * 11, start=START + timedelta(hours=2))
        assert not any(t.exited for t in transitions[:10])
        assert transitions[10].exited
        assert transitions[10].message == EXITED_MESSAGE
        assert not state.is_active
        assert state.activation_time is None

    def test_process_is_pure(self, detector: OracleDetector) -> None:
        state = detector.initial_state()
        detector.process(state, STRONG, START)
        assert state.alpha == 1.0
        assert state.history == ()


class TestStreak:

    def test_streak_counts_and_averages(self, detector: OracleDetector) -> None:
        observations = [Observation(score=3, confidence=0.8), Observation(score=3, confidence=1.0)]
        state, _ = feed(detector, detector.initial_state(), observations)
        assert state.consecutive_count == 2
        assert state.average_confidence == pytest.approx(0.9)

    def test_weak_observation_breaks_streak(self, detector: OracleDetector) -> None:
        state, _ = feed(detector, detector.initial_state(), [STRONG, STRONG, WEAK])
        assert state.consecutive_count == 0
        assert state.average_confidence == 0.0

    def test_time_gap_resets_streak(self, detector: OracleDetector) -> None:
        state, _ = feed(detector, detector.initial_state(), [STRONG, STRONG])
        transition = detector.process(state, STRONG, START + timedelta(minutes=20))
        assert transition.state.consecutive_count == 1
        assert transition.state.alpha == 4.0

    def test_streak_summary(self, detector: OracleDetector) -> None:
        state, _ = feed(detector, detector.initial_state(), [STRONG])
        assert detector.streak_summary(state) == {
            "count": 1,
            "average_confidence": 0.9,
            "needed": 2,
        }


class TestStateManagement:

    def test_history_bounded(self, detector: OracleDetector) -> None:
        observations = [Observation(score=3, confidence=0.9, label=str(i)) for i in range(15)]
        state, _ = feed(detector, detector.initial_state(), observations)
        assert len(state.history) == 10
        assert state.history[0].label == "5"
        assert state.history[-1].label == "14"

    def test_checkpoint_round_trip(self, detector: OracleDetector) -> None:
        state = activated_state(detector)
        restored = OracleState.from_dict(state.to_dict())
        assert restored == state

    def test_reset(self, detector: OracleDetector) -> None:
        assert detector.reset("s2") == OracleState(session_id="s2")

    def test_force_activate(self, detector: OracleDetector) -> None:
        state = detector.force_activate(detector.initial_state(), START)
        assert state.is_active
        assert state.activation_time == START
        assert state.total_activations == 1
        assert state.posterior == pytest.approx(0.1)

    def test_forced_phase_exits_on_next_observation(self, detector: OracleDetector) -> None:
        state = detector.force_activate(detector.initial_state(), START)
        transition = detector.process(state, STRONG, START + timedelta(seconds=5))
        assert transition.exited

    def test_naive_timestamp_read_as_utc(self, detector: OracleDetector) -> None:
        state, _ = feed(detector, detector.initial_state(), [STRONG])
        transition = detector.process(state, STRONG, datetime(2024, 1, 1, 0, 1))
        assert transition.state.consecutive_count == 2
        assert transition.state.last_observation_time == START + timedelta(minutes=1)
        assert transition.state.last_observation_time.tzinfo is not None

    @pytest.mark.parametrize("value,expected", [
        (None, None),
        ("2024-01-01T00:00:00", START),
        ("2024-01-01T00:00:00+00:00", START),
        (datetime(2024, 1, 1), START),
    ])
    def test_parse_timestamp(self, value: object, expected: datetime | None) -> None:
        assert parse_timestamp(value) == expected

    def test_parse_timestamp_rejects_free_text(self) -> None:
        with pytest.raises(ValueError):
            parse_timestamp("yesterday")
