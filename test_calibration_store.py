"""Tests for horse profiles, learned parameters and the effective gait model."""

import logging

import numpy as np
import pytest

from ride_gait import (
    CalibrationStore,
    CalibrationUpdate,
    GaitObservation,
    GaitTuning,
    GaitType,
    GPSQuality,
    HorseBreed,
    HorseProfile,
    LearnedGaitParameters,
    LearnedGaitStats,
    build_effective_model,
    priors_for,
)
from ride_gait.gait_model import BASE_SPEED_BOUNDARIES, blend_weight
from ride_gait.priors import DEFAULT_PRIORS


def _trot_update(horse_id="bramble", frequency=3.2, windows=20):
    return CalibrationUpdate(
        horse_id=horse_id,
        observations={
            GaitType.TROT: GaitObservation(
                mean_frequency=frequency,
                mean_h2=1.9,
                mean_h3=0.5,
                mean_entropy=0.45,
                window_count=windows,
                duration=windows * 0.25,
            ),
        },
        timestamp=100.0,
    )


def test_cold_start_blends_with_prior_center():
    store = CalibrationStore()
    learned = store.apply_update(_trot_update())

    assert learned.ride_count == 1
    # Default trot range (2.0, 3.8) centres at 2.9; first ride weighs 1/2
    assert learned.stats(GaitType.TROT).frequency == pytest.approx(3.05)
    assert learned.stats(GaitType.TROT).window_count == 20
    assert learned.stats(GaitType.WALK) is None


def test_learning_converges_on_consistent_rides():
    store = CalibrationStore()
    for _ in range(30):
        store.apply_update(_trot_update(frequency=3.2))

    learned = store.profile("bramble").learned
    assert learned.ride_count == 30
    assert learned.stats(GaitType.TROT).frequency == pytest.approx(3.2, abs=0.05)


def test_gaits_with_few_windows_are_not_learned():
    store = CalibrationStore()
    assert store.apply_update(_trot_update(windows=3)) is None
    assert store.profile("bramble").learned is None


def test_stationary_observations_are_ignored():
    store = CalibrationStore()
    update = CalibrationUpdate(
        horse_id="bramble",
        observations={GaitType.STATIONARY: GaitObservation(0.0, 0.0, 0.0, 1.0, 40, 10.0)},
    )
    assert store.apply_update(update) is None


def test_reset_clears_learning_and_tuning():
    store = CalibrationStore()
    store.register(HorseProfile(horse_id="bramble", breed=HorseBreed.ARABIAN))
    store.set_tuning("bramble", GaitTuning(frequency_offset=0.2, is_active=True))
    store.apply_update(_trot_update())

    profile = store.reset("bramble")
    assert profile.learned is None
    assert profile.tuning == GaitTuning()
    assert profile.breed == HorseBreed.ARABIAN


def test_unknown_horse_gets_default_profile():
    profile = CalibrationStore().profile("stranger")
    assert profile.breed == HorseBreed.UNKNOWN
    assert profile.priors is DEFAULT_PRIORS


def test_export_and_import_state():
    store = CalibrationStore()
    store.register(HorseProfile(horse_id="bramble", breed=HorseBreed.COB, height_hands=15.0))
    store.apply_update(_trot_update())

    restored = CalibrationStore()
    assert restored.import_state(store.export_state()) == 1
    assert restored.profile("bramble") == store.profile("bramble")


def test_corrupt_learned_state_falls_back_to_cold_start(caplog):
    state = {
        "bramble": {
            "breed": "cob",
            "learned": {
                "ride_count": 4,
                "gaits": {"trot": {"frequency": float("nan"), "h2": 1.8, "h3": 0.5, "entropy": 0.4}},
            },
        },
        "pip": {"breed": "shetland", "learned": {"gaits": "garbage"}},
    }
    store = CalibrationStore()
    with caplog.at_level(logging.WARNING, logger="ride_gait.calibration_store"):
        assert store.import_state(state) == 2

    assert store.profile("bramble").learned is None
    assert store.profile("bramble").breed == HorseBreed.COB
    assert store.profile("pip").learned is None
    assert "corrupt learned gait state" in caplog.text


def test_learned_parameters_reject_negative_ride_count():
    with pytest.raises(ValueError):
        LearnedGaitParameters.from_dict({"ride_count": -1, "gaits": {}})


def test_breed_parsing_and_priors():
    assert HorseBreed.parse("Dutch Warmblood") == HorseBreed.DUTCH_WARMBLOOD
    assert HorseBreed.parse("irish-draught") == HorseBreed.IRISH_DRAUGHT
    assert HorseBreed.parse("zebra") == HorseBreed.UNKNOWN
    assert HorseBreed.parse(None) == HorseBreed.UNKNOWN

    assert priors_for("zebra") is DEFAULT_PRIORS
    assert priors_for("shetland").trot_range[0] > DEFAULT_PRIORS.trot_range[0]
    assert DEFAULT_PRIORS.speed_scale == pytest.approx(1.0)
    assert priors_for("shetland").speed_scale < 1.0


def test_tuning_validation_and_self_transition():
    assert GaitTuning().self_transition == pytest.approx(0.85)
    assert GaitTuning(transition_responsiveness=3.0).self_transition == pytest.approx(0.75)
    assert GaitTuning(transition_responsiveness=0.0).self_transition == pytest.approx(0.90)

    with pytest.raises(ValueError):
        GaitTuning(canter_sensitivity=0.0)
    with pytest.raises(ValueError):
        GaitTuning(transition_responsiveness=-1.0)


def test_neutral_model_uses_reference_boundaries():
    model = build_effective_model(DEFAULT_PRIORS)
    assert model.speed_boundaries == pytest.approx(BASE_SPEED_BOUNDARIES)
    assert model.frequency_ranges[GaitType.TROT] == pytest.approx((2.0, 3.8))
    assert model.self_transition == pytest.approx(0.85)
    assert model.canter_multiplier == 1.0


def test_frequency_offset_applies_only_when_active():
    active = build_effective_model(DEFAULT_PRIORS, GaitTuning(frequency_offset=0.3, is_active=True))
    inactive = build_effective_model(DEFAULT_PRIORS, GaitTuning(frequency_offset=0.3))

    assert active.frequency_ranges[GaitType.WALK] == pytest.approx((1.3, 2.5))
    assert inactive.frequency_ranges[GaitType.WALK] == pytest.approx((1.0, 2.2))


def test_speed_boundaries_stay_strictly_increasing():
    tuning = GaitTuning(walk_trot_shift=2.5, is_active=True)
    bounds = build_effective_model(DEFAULT_PRIORS, tuning).speed_boundaries

    assert bounds[1] == pytest.approx(4.2)
    assert all(b > a for a, b in zip(bounds, bounds[1:]))


def test_speed_sensitivity_lowers_upper_boundaries():
    bounds = build_effective_model(DEFAULT_PRIORS, GaitTuning(speed_sensitivity=1.0, is_active=True)).speed_boundaries
    assert bounds[0] == pytest.approx(0.4)
    assert bounds[1:] == pytest.approx((1.53, 3.15, 4.95))


def test_canter_sensitivity_sets_multiplier():
    model = build_effective_model(DEFAULT_PRIORS, GaitTuning(canter_sensitivity=2.0, is_active=True))
    assert model.canter_multiplier == pytest.approx(0.5)


def _learned(ride_count, frequency=3.5):
    return LearnedGaitParameters(
        gaits={GaitType.TROT: LearnedGaitStats(frequency, 1.85, 0.55, 0.45, 200)},
        ride_count=ride_count,
    )


def test_learned_parameters_need_three_rides():
    assert blend_weight(None) == 0.0
    assert blend_weight(_learned(2)) == 0.0
    assert blend_weight(_learned(4)) == pytest.approx(0.2)
    assert blend_weight(_learned(40)) == 0.5

    early = build_effective_model(DEFAULT_PRIORS, learned=_learned(2))
    assert np.mean(early.frequency_ranges[GaitType.TROT]) == pytest.approx(2.9)

    settled = build_effective_model(DEFAULT_PRIORS, learned=_learned(10))
    assert np.mean(settled.frequency_ranges[GaitType.TROT]) == pytest.approx(3.2)
    # Range width is kept
    low, high = settled.frequency_ranges[GaitType.TROT]
    assert high - low == pytest.approx(1.8)


@pytest.mark.parametrize("accuracy, quality", [
    (3.0, GPSQuality.EXCELLENT),
    (5.0, GPSQuality.EXCELLENT),
    (12.0, GPSQuality.GOOD),
    (15.0, GPSQuality.GOOD),
    (25.0, GPSQuality.FAIR),
    (40.0, GPSQuality.POOR),
    (100.0, GPSQuality.NONE),
    (None, GPSQuality.NONE),
    (-1.0, GPSQuality.NONE),
    (float("nan"), GPSQuality.NONE),
])
def test_gps_quality_tiers(accuracy, quality):
    assert GPSQuality.from_accuracy(accuracy) == quality
    assert GPSQuality.from_accuracy(accuracy).is_trustworthy == (quality >= GPSQuality.GOOD)
