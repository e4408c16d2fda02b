"""Shared fixtures and synthetic signal helpers for the gait engine tests."""

from typing import List, Optional, Sequence, Tuple

import numpy as np
import pytest

from ride_gait import (
    ClassifiedWindow,
    GaitDecision,
    GaitType,
    HorseProfile,
    Lead,
    MotionSample,
    SpectralFeatures,
    build_effective_model,
    priors_for,
)

FS = 100


def features(
    frequency: float,
    h2: float,
    h3: float,
    entropy: float,
    coherence: float = 0.0,
    rms: float = 0.25,
    timestamp: float = 0.0,
) -> SpectralFeatures:
    return SpectralFeatures(
        timestamp=timestamp,
        stride_frequency=frequency,
        spectral_entropy=entropy,
        h2_ratio=h2,
        h3_ratio=h3,
        coherence=coherence,
        vertical_rms=rms,
        sample_count=256,
        low_confidence=False,
    )


# Feature sets typical of each gait for the default horse
WALK_FEATURES = features(1.6, 0.5, 0.35, 0.35, 0.3, rms=0.1)
TROT_FEATURES = features(2.8, 1.8, 0.55, 0.45, 0.25, rms=0.25)
CANTER_FEATURES = features(2.4, 0.7, 1.5, 0.55, 0.75, rms=0.35)
GALLOP_FEATURES = features(4.5, 0.5, 0.6, 0.75, 0.85, rms=0.5)
STANDING_FEATURES = features(1.0, 0.1, 0.1, 0.9, 0.0, rms=0.01)


# kind -> (stride frequency Hz, amplitude g, H2 amplitude, H3 amplitude).
# Trot puts most power in H2, canter in H3 (above the stride search band).
GAIT_SIGNALS = {
    "walk": (1.8, 0.15, 0.7, 0.6),
    "trot": (2.6, 0.12, 1.3, 0.75),
    "canter": (2.2, 0.15, 0.8, 1.2),
}


def gait_signal(t: np.ndarray, kind: str) -> np.ndarray:
    """Vertical bounce with the harmonic content of one gait."""
    frequency, amplitude, h2, h3 = GAIT_SIGNALS[kind]
    return amplitude * (
        np.sin(2 * np.pi * frequency * t)
        + h2 * np.sin(2 * np.pi * 2 * frequency * t)
        + h3 * np.sin(2 * np.pi * 3 * frequency * t)
    )


def make_ride(
    phases: Sequence[Tuple[float, str, Optional[float]]],
    fs: int = FS,
    gps_every: int = 100,
    gps_accuracy: float = 5.0,
    seed: int = 0,
) -> List[MotionSample]:
    """
    Build a ride from (duration, kind, gps_speed) phases.

    ``kind`` is "stand" or one of ``GAIT_SIGNALS``. Gravity is along +z; GPS
    fixes arrive every ``gps_every`` samples.
    """
    rng = np.random.default_rng(seed)
    samples = []
    t0 = 0.0
    index = 0
    for duration, kind, speed in phases:
        n = int(round(duration * fs))
        t = t0 + np.arange(n) / fs
        if kind in GAIT_SIGNALS:
            bounce = gait_signal(t, kind)
        else:
            bounce = np.zeros(n)
        noise = rng.normal(0.0, 0.003, size=(n, 3))
        for i in range(n):
            has_fix = speed is not None and index % gps_every == 0
            samples.append(MotionSample(
                timestamp=float(t[i]),
                acceleration=(noise[i, 0], noise[i, 1], 1.0 + bounce[i] + noise[i, 2]),
                gps_speed=speed if has_fix else None,
                gps_accuracy=gps_accuracy if has_fix else None,
            ))
            index += 1
        t0 += n / fs
    return samples


def classified(
    start: float,
    end: float,
    gait: GaitType,
    transitioned: bool = False,
    feats: Optional[SpectralFeatures] = None,
    gps_speed: Optional[float] = None,
    gps_accuracy: Optional[float] = None,
    lead: Lead = Lead.UNKNOWN,
    lead_confidence: float = 0.0,
    spans_gap: bool = False,
    rhythm: float = 80.0,
) -> ClassifiedWindow:
    return ClassifiedWindow(
        start_time=start,
        end_time=end,
        decision=GaitDecision(gait=gait, confidence=0.9, transitioned=transitioned, rhythm_score=rhythm),
        features=feats or features(2.0, 1.0, 0.5, 0.4, rms=0.2, timestamp=end),
        gps_speed=gps_speed,
        gps_accuracy=gps_accuracy,
        lead=lead,
        lead_confidence=lead_confidence,
        spans_gap=spans_gap,
    )


@pytest.fixture
def default_model():
    return build_effective_model(priors_for("unknown"))


@pytest.fixture
def profile():
    return HorseProfile(horse_id="bramble")


@pytest.fixture
def walk_ride():
    return make_ride([(10.0, "stand", 0.0), (20.0, "walk", 1.3), (10.0, "stand", 0.0)])
