"""Shared value types for the ride gait engine."""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, List, Optional, Tuple

import numpy as np


class GaitType(IntEnum):
    """Horse gaits, ordered by speed."""

    STATIONARY = 0
    WALK = 1
    TROT = 2
    CANTER = 3
    GALLOP = 4

    @property
    def is_lead_applicable(self) -> bool:
        return self in (GaitType.CANTER, GaitType.GALLOP)


MOVING_GAITS: Tuple[GaitType, ...] = (
    GaitType.WALK,
    GaitType.TROT,
    GaitType.CANTER,
    GaitType.GALLOP,
)


class Lead(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    UNKNOWN = "unknown"


class ReinDirection(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    STRAIGHT = "straight"


class LeadPairing(str, Enum):
    """Result of checking a segment's lead against the rein it was ridden on."""

    CORRECT = "correct"
    CROSS_CANTER = "cross_canter"
    UNDETERMINED = "undetermined"


class GPSQuality(IntEnum):
    """GPS quality tiers derived from horizontal accuracy in metres."""

    NONE = 0
    POOR = 1
    FAIR = 2
    GOOD = 3
    EXCELLENT = 4

    @classmethod
    def from_accuracy(cls, accuracy: Optional[float]) -> "GPSQuality":
        if accuracy is None or accuracy < 0 or np.isnan(accuracy):
            return cls.NONE
        if accuracy <= 5:
            return cls.EXCELLENT
        if accuracy <= 15:
            return cls.GOOD
        if accuracy <= 30:
            return cls.FAIR
        if accuracy <= 65:
            return cls.POOR
        return cls.NONE

    @property
    def is_trustworthy(self) -> bool:
        return self >= GPSQuality.GOOD


class RideStatus(str, Enum):
    COMPLETED = "completed"
    NO_DATA = "no_data"


@dataclass(frozen=True)
class MotionSample:
    """
    One raw sensor sample.

    Acceleration is in g and includes gravity. GPS fields are optional since
    location fixes arrive at a much lower rate than motion samples; a negative
    or non-finite speed marks an invalid fix.
    """

    timestamp: float
    acceleration: Tuple[float, float, float]
    rotation_rate: Optional[Tuple[float, float, float]] = None
    gps_speed: Optional[float] = None
    gps_accuracy: Optional[float] = None

    @property
    def has_gps(self) -> bool:
        return self.gps_speed is not None and bool(np.isfinite(self.gps_speed)) and self.gps_speed >= 0


@dataclass(frozen=True)
class PreprocessedSample:
    """A sample projected into the horse frame and smoothed."""

    timestamp: float
    vertical: float
    lateral: float
    forward: float
    yaw_rate: Optional[float]
    calibrated: bool
    recalibration_requested: bool = False


@dataclass(frozen=True)
class SpectralFeatures:
    """Frequency-domain summary of one analysis window."""

    timestamp: float
    stride_frequency: float = 0.0
    spectral_entropy: float = 1.0
    h2_ratio: float = 0.0
    h3_ratio: float = 0.0
    coherence: float = 0.0
    vertical_rms: float = 0.0
    sample_count: int = 0
    low_confidence: bool = True

    @property
    def dominant_harmonic(self) -> float:
        return max(self.h2_ratio, self.h3_ratio)

    @classmethod
    def empty(cls, timestamp: float, sample_count: int = 0) -> "SpectralFeatures":
        return cls(timestamp=timestamp, sample_count=sample_count, low_confidence=True)


@dataclass(frozen=True)
class AnalysisWindow:
    """
    A window of buffered samples ready for spectral analysis.

    Built by the stream processor on each slide; analysed in order. The
    arrays hold the whole rolling buffer, while ``start_time``/``end_time``
    bound only the stretch of ride this window advances over.
    """

    start_time: float
    end_time: float
    vertical: np.ndarray
    yaw: Optional[np.ndarray]
    lateral: np.ndarray
    gps_speed: Optional[float]
    gps_accuracy: Optional[float]
    spans_gap: bool = False


@dataclass(frozen=True)
class GaitDecision:
    """Output of the classifier for one window."""

    gait: GaitType
    confidence: float
    transitioned: bool
    rhythm_score: float
    candidate: Optional[GaitType] = None


@dataclass(frozen=True)
class ClassifiedWindow:
    """A window after classification and lead detection, fed to the segmenter."""

    start_time: float
    end_time: float
    decision: GaitDecision
    features: SpectralFeatures
    gps_speed: Optional[float] = None
    gps_accuracy: Optional[float] = None
    lead: Lead = Lead.UNKNOWN
    lead_confidence: float = 0.0
    spans_gap: bool = False

    @property
    def gait(self) -> GaitType:
        return self.decision.gait


@dataclass(frozen=True)
class GaitSegment:
    """A contiguous stretch of a single gait. Immutable once closed."""

    gait: GaitType
    start_time: float
    end_time: float
    distance: float = 0.0
    average_speed: float = 0.0
    rhythm_score: float = 0.0
    lead: Lead = Lead.UNKNOWN
    lead_confidence: float = 0.0
    spectral: Optional[SpectralFeatures] = None
    window_count: int = 0

    @property
    def duration(self) -> float:
        return max(0.0, self.end_time - self.start_time)

    @property
    def is_lead_applicable(self) -> bool:
        return self.gait.is_lead_applicable

    @property
    def has_known_lead(self) -> bool:
        return (
            self.is_lead_applicable
            and self.lead != Lead.UNKNOWN
            and self.lead_confidence >= 0.7
        )


@dataclass(frozen=True)
class GaitTransition:
    """A recorded change of gait, scored by how smoothly the speed changed."""

    from_gait: GaitType
    to_gait: GaitType
    timestamp: float
    quality: float = 0.5  # 0-1

    @property
    def is_upward(self) -> bool:
        return self.to_gait > self.from_gait

    @property
    def is_downward(self) -> bool:
        return self.to_gait < self.from_gait


@dataclass(frozen=True)
class ReinSegment:
    direction: ReinDirection
    start_time: float
    end_time: float


@dataclass(frozen=True)
class GaitObservation:
    """Per-gait summary of one ride, used to update learned parameters."""

    mean_frequency: float
    mean_h2: float
    mean_h3: float
    mean_entropy: float
    window_count: int
    duration: float


@dataclass(frozen=True)
class CalibrationUpdate:
    horse_id: str
    observations: Dict[GaitType, GaitObservation]
    timestamp: float = 0.0


@dataclass
class RideOutcome:
    """Everything a finished ride hands back to the caller."""

    status: RideStatus
    segments: List[GaitSegment] = field(default_factory=list)
    calibration_update: Optional[CalibrationUpdate] = None
    dropped_samples: int = 0
    transitions: List[GaitTransition] = field(default_factory=list)
    left_lead_time: float = 0.0  # Seconds of windows on a confident left lead
    right_lead_time: float = 0.0

    @property
    def lead_symmetry(self) -> float:
        """Share of known-lead time on the left lead, 0.5 when there is none."""
        total = self.left_lead_time + self.right_lead_time
        if total <= 0:
            return 0.5
        return self.left_lead_time / total

    @property
    def total_duration(self) -> float:
        return sum(s.duration for s in self.segments)

    @property
    def total_distance(self) -> float:
        return sum(s.distance for s in self.segments)
