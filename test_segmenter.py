"""Tests for segment accumulation, tiling and distance estimation."""

import numpy as np
import pytest

from conftest import classified, features
from ride_gait import GaitType, HorseProfile, Lead, Segmenter, estimate_stride_length, priors_for
from ride_gait.priors import HANDS_TO_METRES


def _feed(segmenter, schedule, step=0.25, **kwargs):
    """Feed windows every ``step`` seconds; schedule is [(until, gait)]."""
    closed = []
    t = 0.0
    previous = None
    for until, gait in schedule:
        while t + step <= until + 1e-9:
            transitioned = previous is not None and gait != previous
            result = segmenter.update(classified(t, t + step, gait, transitioned=transitioned, **kwargs))
            if result is not None:
                closed.append(result)
            previous = gait
            t += step
    return closed


def test_segments_tile_the_ride(profile):
    segmenter = Segmenter(profile)
    segmenter.start(0.0)
    closed = _feed(segmenter, [(5.0, GaitType.WALK), (12.0, GaitType.TROT), (20.0, GaitType.WALK)])
    segmenter.close(20.0)

    segments = segmenter.segments
    assert [s.gait for s in segments] == [GaitType.WALK, GaitType.TROT, GaitType.WALK]
    assert len(closed) == 2
    assert segments[0].start_time == 0.0
    assert segments[-1].end_time == 20.0
    for before, after in zip(segments, segments[1:]):
        assert before.end_time == after.start_time
        assert after.start_time > before.start_time
    assert sum(s.duration for s in segments) == pytest.approx(20.0)


def test_transition_closes_at_window_start(profile):
    segmenter = Segmenter(profile)
    segmenter.start(0.0)
    closed = _feed(segmenter, [(5.0, GaitType.WALK), (6.0, GaitType.TROT)])

    assert closed[0].gait == GaitType.WALK
    assert closed[0].end_time == pytest.approx(5.0)
    assert segmenter.current_gait == GaitType.TROT


def test_gps_distance_when_trustworthy(profile):
    segmenter = Segmenter(profile)
    segmenter.start(0.0)
    _feed(segmenter, [(10.0, GaitType.WALK)], gps_speed=1.5, gps_accuracy=5.0)
    segment = segmenter.close(10.0)

    assert segment.distance == pytest.approx(15.0)
    assert segment.average_speed == pytest.approx(1.5)


def test_stride_model_distance_without_gps(profile):
    feats = features(2.0, 1.8, 0.5, 0.45, rms=0.2)
    segmenter = Segmenter(profile)
    segmenter.start(0.0)
    _feed(segmenter, [(10.0, GaitType.TROT)], feats=feats, gps_speed=3.0, gps_accuracy=50.0)
    segment = segmenter.close(10.0)

    stride = 2.7 * 15.2 * HANDS_TO_METRES * 0.2 ** 0.25
    assert segment.distance == pytest.approx(stride * 2.0 * 10.0)


def test_stride_length_model():
    priors = priors_for("unknown")
    assert estimate_stride_length(GaitType.STATIONARY, 0.3, priors) == 0.0
    assert estimate_stride_length(GaitType.WALK, 0.3, priors) == pytest.approx(
        estimate_stride_length(GaitType.WALK, 0.3, priors, height_hands=15.2)
    )
    # RMS is floored
    assert estimate_stride_length(GaitType.TROT, 0.0, priors) == pytest.approx(
        2.7 * 15.2 * HANDS_TO_METRES * 0.01 ** 0.25
    )
    assert estimate_stride_length(GaitType.GALLOP, 0.3, priors, 17.0) > estimate_stride_length(
        GaitType.GALLOP, 0.3, priors, 13.0
    )


def test_stationary_covers_no_distance(profile):
    segmenter = Segmenter(profile)
    segmenter.start(0.0)
    _feed(segmenter, [(5.0, GaitType.STATIONARY)], gps_speed=0.3, gps_accuracy=5.0)
    assert segmenter.close(5.0).distance == 0.0


def test_lead_votes(profile):
    segmenter = Segmenter(profile)
    segmenter.start(0.0)
    _feed(segmenter, [(5.0, GaitType.CANTER)], lead=Lead.LEFT, lead_confidence=0.9)
    segment = segmenter.close(5.0)

    assert segment.lead == Lead.LEFT
    assert segment.lead_confidence == pytest.approx(0.9)
    assert segment.has_known_lead


def test_weak_lead_votes_are_ignored(profile):
    segmenter = Segmenter(profile)
    segmenter.start(0.0)
    _feed(segmenter, [(5.0, GaitType.CANTER)], lead=Lead.RIGHT, lead_confidence=0.65)
    segment = segmenter.close(5.0)

    assert segment.lead == Lead.UNKNOWN
    assert not segment.has_known_lead


def test_lead_diluted_by_unknown_windows_is_unknown(profile):
    segmenter = Segmenter(profile)
    segmenter.start(0.0)
    for i in range(10):
        lead, confidence = (Lead.LEFT, 0.9) if i < 6 else (Lead.UNKNOWN, 0.0)
        segmenter.update(
            classified(i * 0.25, (i + 1) * 0.25, GaitType.CANTER, lead=lead, lead_confidence=confidence)
        )
    segment = segmenter.close(2.5)

    assert segment.lead_confidence == pytest.approx(0.54)
    assert segment.lead == Lead.UNKNOWN
    assert not segment.has_known_lead


@pytest.mark.parametrize("speed", [float("nan"), float("inf")])
def test_non_finite_gps_speed_uses_stride_model(profile, speed):
    feats = features(2.0, 1.8, 0.5, 0.45, rms=0.2)
    segmenter = Segmenter(profile)
    segmenter.start(0.0)
    _feed(segmenter, [(10.0, GaitType.TROT)], feats=feats, gps_speed=speed, gps_accuracy=5.0)
    segment = segmenter.close(10.0)

    stride = 2.7 * 15.2 * HANDS_TO_METRES * 0.2 ** 0.25
    assert np.isfinite(segment.distance)
    assert segment.distance == pytest.approx(stride * 2.0 * 10.0)


def test_gap_windows_extend_without_counting(profile):
    segmenter = Segmenter(profile)
    segmenter.start(0.0)
    _feed(segmenter, [(5.0, GaitType.WALK)])
    segmenter.update(classified(5.0, 8.0, GaitType.WALK, spans_gap=True))
    segment = segmenter.close(8.0)

    assert segment.window_count == 20
    assert segment.end_time == 8.0


def test_observations_summarise_confident_windows(profile):
    feats = features(2.6, 1.9, 0.5, 0.4, rms=0.25)
    segmenter = Segmenter(profile)
    segmenter.start(0.0)
    _feed(segmenter, [(5.0, GaitType.TROT)], feats=feats)

    observations = segmenter.observations()
    trot = observations[GaitType.TROT]
    assert trot.window_count == 20
    assert trot.mean_frequency == pytest.approx(2.6)
    assert trot.mean_h2 == pytest.approx(1.9)
    assert trot.duration == pytest.approx(5.0)
    assert GaitType.STATIONARY not in observations


def test_close_without_open_segment(profile):
    segmenter = Segmenter(profile)
    assert segmenter.close(1.0) is None
    assert segmenter.segments == []


def test_pony_weight_normalises_stride_rms():
    pony = HorseProfile(horse_id="pip", breed="shetland")
    feats = features(3.0, 1.8, 0.5, 0.45, rms=0.1)
    segmenter = Segmenter(pony)
    segmenter.start(0.0)
    _feed(segmenter, [(4.0, GaitType.TROT)], feats=feats)
    segment = segmenter.close(4.0)

    rms = 0.1 * 500.0 / 200.0
    stride = 2.4 * 15.2 * HANDS_TO_METRES * rms ** 0.25
    assert segment.distance == pytest.approx(stride * 3.0 * 4.0)
    assert np.isfinite(segment.average_speed)
