"""Turns the per-window gait decisions into contiguous gait segments."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from .calibration_store import HorseProfile
from .config import EngineConfig
from .lead_detector import resolve_lead
from .models import (
    ClassifiedWindow,
    GaitObservation,
    GaitSegment,
    GaitType,
    GPSQuality,
    Lead,
    SpectralFeatures,
)
from .priors import estimate_stride_length, normalized_vertical_rms

logger = logging.getLogger(__name__)


@dataclass
class _OpenSegment:
    gait: GaitType
    start_time: float
    end_time: float
    distance: float = 0.0
    rhythm_score: float = 0.0
    window_count: int = 0
    lead_windows: int = 0
    lead_votes: Dict[Lead, float] = field(default_factory=dict)
    spectral: Optional[SpectralFeatures] = None


@dataclass
class _GaitTotals:
    frequency: float = 0.0
    h2: float = 0.0
    h3: float = 0.0
    entropy: float = 0.0
    windows: int = 0
    duration: float = 0.0


class Segmenter:
    """
    Accumulates classified windows into segments.

    Segments tile the ride: each one starts where the previous one ended, the
    first at the ride start and the last at the ride end.
    """

    def __init__(self, profile: HorseProfile, config: Optional[EngineConfig] = None):
        self.profile = profile
        self.config = config or EngineConfig()
        self.segments: List[GaitSegment] = []
        self._open: Optional[_OpenSegment] = None
        self._ride_start: Optional[float] = None
        self._last_time: Optional[float] = None
        self._totals: Dict[GaitType, _GaitTotals] = {}

    @property
    def current_gait(self) -> Optional[GaitType]:
        return self._open.gait if self._open else None

    def start(self, timestamp: float):
        """Mark the ride start; the first segment begins here."""
        if self._ride_start is None:
            self._ride_start = timestamp
            self._last_time = timestamp

    def update(self, window: ClassifiedWindow) -> Optional[GaitSegment]:
        """
        Add one classified window.

        Args:
            window: Window covering (start_time, end_time] of the ride

        Returns:
            The segment closed by a confirmed transition, otherwise None
        """
        self.start(window.start_time)
        end_time = max(window.end_time, self._last_time)
        dt = end_time - self._last_time
        closed = None

        if self._open is None:
            self._open = _OpenSegment(window.gait, self._ride_start, self._ride_start)
        elif window.gait != self._open.gait and window.decision.transitioned:
            boundary = self._open.end_time
            closed = self._close_open(boundary)
            self._open = _OpenSegment(window.gait, boundary, boundary)

        segment = self._open
        segment.end_time = end_time
        self._last_time = end_time
        if window.spans_gap:
            return closed

        segment.window_count += 1
        segment.rhythm_score = window.decision.rhythm_score
        segment.distance += self._distance(window, segment.gait, dt)
        if not window.features.low_confidence:
            segment.spectral = window.features
            self._observe(segment.gait, window.features, dt)

        if segment.gait.is_lead_applicable:
            segment.lead_windows += 1
            lead = resolve_lead(window.lead, window.lead_confidence, self.config.LEAD_CONFIDENCE_THRESHOLD)
            if lead != Lead.UNKNOWN:
                segment.lead_votes[lead] = segment.lead_votes.get(lead, 0.0) + window.lead_confidence
        return closed

    def close(self, end_time: Optional[float] = None) -> Optional[GaitSegment]:
        """Force-close the open segment at ride end."""
        if self._open is None:
            return None
        if end_time is not None:
            self._open.end_time = max(self._open.end_time, end_time)
        return self._close_open(self._open.end_time)

    def _close_open(self, end_time: float) -> GaitSegment:
        segment = self._open
        duration = max(0.0, end_time - segment.start_time)
        lead, lead_confidence = Lead.UNKNOWN, 0.0
        if segment.lead_votes and segment.lead_windows:
            lead = max(segment.lead_votes, key=segment.lead_votes.get)
            lead_confidence = segment.lead_votes[lead] / segment.lead_windows
            # Windows without a known lead dilute the vote
            if lead_confidence < self.config.LEAD_CONFIDENCE_THRESHOLD:
                lead = Lead.UNKNOWN

        closed = GaitSegment(
            gait=segment.gait,
            start_time=segment.start_time,
            end_time=end_time,
            distance=segment.distance,
            average_speed=segment.distance / duration if duration > 0 else 0.0,
            rhythm_score=segment.rhythm_score,
            lead=lead,
            lead_confidence=lead_confidence,
            spectral=segment.spectral,
            window_count=segment.window_count,
        )
        self.segments.append(closed)
        self._open = None
        logger.debug(
            "Closed %s segment %.2f-%.2fs, %.1f m",
            closed.gait.name, closed.start_time, closed.end_time, closed.distance,
        )
        return closed

    def _distance(self, window: ClassifiedWindow, gait: GaitType, dt: float) -> float:
        if dt <= 0 or gait == GaitType.STATIONARY:
            return 0.0
        speed = window.gps_speed
        if (
            speed is not None
            and np.isfinite(speed)
            and speed >= 0
            and GPSQuality.from_accuracy(window.gps_accuracy).is_trustworthy
        ):
            return speed * dt

        features = window.features
        if features.low_confidence or features.stride_frequency <= 0:
            return 0.0
        rms = normalized_vertical_rms(features.vertical_rms, self.profile.effective_weight)
        stride = estimate_stride_length(gait, rms, self.profile.priors, self.profile.height_hands)
        return stride * features.stride_frequency * dt

    def _observe(self, gait: GaitType, features: SpectralFeatures, dt: float):
        if gait == GaitType.STATIONARY:
            return
        totals = self._totals.setdefault(gait, _GaitTotals())
        totals.frequency += features.stride_frequency
        totals.h2 += features.h2_ratio
        totals.h3 += features.h3_ratio
        totals.entropy += features.spectral_entropy
        totals.windows += 1
        totals.duration += dt

    def observations(self) -> Dict[GaitType, GaitObservation]:
        """Per-gait means over the confident windows of the ride."""
        return {
            gait: GaitObservation(
                mean_frequency=t.frequency / t.windows,
                mean_h2=t.h2 / t.windows,
                mean_h3=t.h3 / t.windows,
                mean_entropy=t.entropy / t.windows,
                window_count=t.windows,
                duration=t.duration,
            )
            for gait, t in self._totals.items()
            if t.windows > 0
        }
