"""Configuration settings for the ride gait engine."""

from dataclasses import dataclass
from pathlib import Path
from enum import Enum
from typing import Dict


@dataclass
class EngineConfig:
    """Configuration for sample streaming and window analysis."""

    DATA_DIR: Path = Path("data/rides")
    DEFAULT_SPEED: float = 1.0  # Playback speed multiplier (1 = real-time)
    SAMPLING_RATE: int = 100  # Hz
    WINDOW_SIZE: int = 256  # Samples per spectral window (2.56 s)
    MIN_WINDOW_SAMPLES: int = 128  # Below this the window is low confidence
    SLIDE_INTERVAL: float = 0.25  # Seconds between window analyses
    GAP_THRESHOLD: float = 0.5  # Seconds without samples that count as a gap
    GPS_HOLD_SECONDS: float = 3.0  # How long a GPS fix is held for later samples
    MIN_STRIDE_FREQUENCY: float = 0.5  # Hz, lower edge of the stride search band
    MAX_STRIDE_FREQUENCY: float = 6.0  # Hz, upper edge of the stride search band
    COHERENCE_SEGMENT: int = 128  # Welch segment length for coherence
    COHERENCE_OVERLAP: int = 64
    STATIONARY_RMS: float = 0.05  # g, vertical RMS below which the horse is standing
    DRIFT_CHECK_INTERVAL: int = 100  # Samples between orientation drift checks
    GRAVITY_ALPHA: float = 0.02  # EMA alpha of the gravity tracker
    LEAD_CONFIDENCE_THRESHOLD: float = 0.7
    LEAD_WINDOW_SIZE: int = 200  # Lateral samples used for lead detection
    QUEUE_MAXSIZE: int = 512  # Pending samples before the pipeline coalesces
    MIN_TRANSITION_WINDOWS: int = 2  # Consecutive windows a new gait must lead before it is adopted
    TRANSITION_MIN_GAIT_SECONDS: float = 1.0  # Time in a gait before a transition out of it is recorded
    TRANSITION_SPEED_HISTORY: int = 20  # GPS fixes kept for transition quality


class MountPosition(str, Enum):
    """Where the phone is carried on the rider."""

    JODHPUR_THIGH = "jodhpur_thigh"
    JACKET_CHEST = "jacket_chest"


@dataclass(frozen=True)
class MountCalibration:
    """Per-mount calibration constants, fixed for the whole ride."""

    settle_samples: int  # Samples averaged into the gravity baseline
    filter_alpha: float  # EMA alpha, lower = more smoothing
    drift_tolerance: float  # Radians of orientation drift before recalibrating


MOUNT_CALIBRATIONS: Dict[MountPosition, MountCalibration] = {
    # Thigh bounces more: longer settling, heavier smoothing, wider tolerance
    MountPosition.JODHPUR_THIGH: MountCalibration(
        settle_samples=100, filter_alpha=0.4, drift_tolerance=0.50
    ),
    MountPosition.JACKET_CHEST: MountCalibration(
        settle_samples=50, filter_alpha=0.6, drift_tolerance=0.35
    ),
}


def mount_calibration(position: MountPosition) -> MountCalibration:
    """Look up the calibration constants for a mount position."""
    return MOUNT_CALIBRATIONS[MountPosition(position)]


@dataclass
class FusionPolicy:
    """
    Weights used when GPS and spectral evidence are fused.

    These are hand-tuned starting points and are expected to be re-fitted
    against labelled rides.
    """

    gps_prior_confidence: float = 0.8  # Evidence when only GPS is usable
    spectral_confidence_cap: float = 0.9  # Upper bound on evidence from the spectrum alone
    agreement_confidence: float = 0.99
    disagreement_penalty: float = 0.75  # Scales the preferred modality's evidence
    straddle_confidence: float = 0.5  # Evidence for the compromise label
    stationary_confidence: float = 0.95  # Evidence from the low-energy gate
