"""Tests for gait transition recording and quality scoring."""

import pytest

from ride_gait import EngineConfig, GaitTransition, GaitType, TransitionTracker, transition_quality


def test_too_few_speeds_score_neutral():
    assert transition_quality([]) == 0.5
    assert transition_quality([1.0, 1.5, 2.0, 2.5]) == 0.5


def test_steady_acceleration_scores_full_quality():
    assert transition_quality([0.0, 0.5, 1.0, 1.5, 2.0, 2.5]) == pytest.approx(1.0)
    assert transition_quality([3.0] * 8) == pytest.approx(1.0)


def test_erratic_speed_scores_zero():
    assert transition_quality([0.0, 2.0, 0.0, 2.0, 0.0, 2.0]) == pytest.approx(0.0)


def test_partial_jerk():
    # Deltas 0.2, 0.2, 0.6, 0.2: mean jerk 0.8 / 3, spread sqrt(0.03)
    quality = transition_quality([1.0, 1.2, 1.4, 2.0, 2.2])
    assert 0.0 < quality < 1.0
    assert quality == pytest.approx(0.6 * (1.0 - 0.8 / 3) + 0.4 * (1.0 - 0.03 ** 0.5 / 0.5))


def test_only_recent_speeds_are_scored():
    erratic = [0.0, 2.0] * 10
    steady = [1.0 + 0.1 * i for i in range(10)]
    assert transition_quality(erratic + steady) == pytest.approx(1.0)


def test_records_transitions_with_quality():
    tracker = TransitionTracker()
    for speed in (1.0, 1.3, 1.6, 1.9, 2.2, 2.5):
        tracker.update_speed(speed)

    transition = tracker.record(GaitType.WALK, GaitType.TROT, 12.0)

    assert transition == GaitTransition(GaitType.WALK, GaitType.TROT, 12.0, pytest.approx(1.0))
    assert transition.is_upward and not transition.is_downward
    assert tracker.transitions == [transition]


def test_same_gait_is_not_a_transition():
    tracker = TransitionTracker()
    assert tracker.record(GaitType.WALK, GaitType.WALK, 1.0) is None
    assert tracker.transitions == []


def test_short_gait_is_debounced():
    tracker = TransitionTracker()
    assert tracker.record(GaitType.WALK, GaitType.TROT, 10.0) is not None
    assert tracker.record(GaitType.TROT, GaitType.CANTER, 10.5) is None
    assert tracker.record(GaitType.TROT, GaitType.CANTER, 11.0) is not None
    assert [t.to_gait for t in tracker.transitions] == [GaitType.TROT, GaitType.CANTER]


def test_debounce_is_configurable():
    tracker = TransitionTracker(EngineConfig(TRANSITION_MIN_GAIT_SECONDS=0.0))
    tracker.record(GaitType.WALK, GaitType.TROT, 10.0)
    tracker.record(GaitType.TROT, GaitType.WALK, 10.1)
    assert len(tracker.transitions) == 2


def test_counts_and_average_quality():
    tracker = TransitionTracker()
    assert tracker.average_quality == 0.0

    tracker.record(GaitType.STATIONARY, GaitType.WALK, 0.0)
    tracker.record(GaitType.WALK, GaitType.TROT, 5.0)
    tracker.record(GaitType.TROT, GaitType.WALK, 10.0)

    assert tracker.upward_count == 2
    assert tracker.downward_count == 1
    assert tracker.average_quality == pytest.approx(0.5)


def test_invalid_speeds_are_skipped_and_history_is_bounded():
    tracker = TransitionTracker(EngineConfig(TRANSITION_SPEED_HISTORY=5))
    for speed in (None, float("nan"), -1.0):
        tracker.update_speed(speed)
    assert len(tracker.speeds) == 0

    for i in range(8):
        tracker.update_speed(float(i))
    assert list(tracker.speeds) == [3.0, 4.0, 5.0, 6.0, 7.0]

    tracker.record(GaitType.WALK, GaitType.TROT, 1.0)
    tracker.reset()
    assert tracker.transitions == []
    assert len(tracker.speeds) == 0
    assert tracker.record(GaitType.TROT, GaitType.WALK, 1.2) is not None
