"""Canter/gallop lead detection and rein cross-checking."""

import logging
from typing import Iterable, Optional, Tuple

import numpy as np
from scipy.signal import find_peaks

from .config import EngineConfig
from .models import GaitSegment, GaitType, Lead, LeadPairing, ReinDirection, ReinSegment
from .signal_filters import ButterworthFilter

logger = logging.getLogger(__name__)

PEAK_HEIGHT = 0.1  # g
AMBIGUOUS_SCORE = 0.05
FULL_CONFIDENCE_SCORE = 0.3
MEAN_WEIGHT = 0.4
PEAK_WEIGHT = 0.6
PHASE_WEIGHT = 0.2
LATERAL_CUTOFF = 10.0  # Hz


def resolve_lead(lead: Lead, confidence: float, threshold: float = 0.7) -> Lead:
    """A lead only counts as known at or above the confidence threshold."""
    if lead == Lead.UNKNOWN or confidence < threshold:
        return Lead.UNKNOWN
    return lead


def score_to_lead(score: float) -> Tuple[Lead, float]:
    """
    Map a signed lateral asymmetry score to a lead and confidence.

    Negative scores lean left, positive lean right. Scores between 0.05 and
    0.3 map linearly onto 50-100% confidence.
    """
    magnitude = abs(score)
    if magnitude < AMBIGUOUS_SCORE:
        return Lead.UNKNOWN, magnitude / AMBIGUOUS_SCORE * 0.5
    confidence = min(1.0, 0.5 + (magnitude - AMBIGUOUS_SCORE) / (FULL_CONFIDENCE_SCORE - AMBIGUOUS_SCORE) * 0.5)
    return (Lead.LEFT if score < 0 else Lead.RIGHT), confidence


class LeadDetector:
    """Detects the leading leg from lateral acceleration asymmetry."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.lowpass = ButterworthFilter(LATERAL_CUTOFF, self.config.SAMPLING_RATE, order=2)
        self.left_duration = 0.0
        self.right_duration = 0.0

    def detect(
        self,
        lateral: np.ndarray,
        vertical: Optional[np.ndarray],
        gait: GaitType,
    ) -> Tuple[Lead, float]:
        """
        Estimate the lead for one window.

        Args:
            lateral: Lateral acceleration (g), oldest first
            vertical: Vertical acceleration aligned with ``lateral``, or None
            gait: Current gait; only canter and gallop have a lead

        Returns:
            Tuple of (lead, confidence). The lead is UNKNOWN when ambiguous;
            callers gate on confidence with ``resolve_lead``.
        """
        if not gait.is_lead_applicable:
            return Lead.UNKNOWN, 0.0

        lateral = np.asarray(lateral, dtype=float)[-self.config.LEAD_WINDOW_SIZE:]
        if len(lateral) < 3:
            return Lead.UNKNOWN, 0.0
        smoothed = self.lowpass.filter_window(lateral)

        positive, _ = find_peaks(smoothed, height=PEAK_HEIGHT)
        negative, _ = find_peaks(-smoothed, height=PEAK_HEIGHT)
        if len(positive) + len(negative) == 0:
            return Lead.UNKNOWN, 0.0

        positive_avg = float(np.mean(smoothed[positive])) if len(positive) else 0.0
        negative_avg = float(np.mean(np.abs(smoothed[negative]))) if len(negative) else 0.0
        score = MEAN_WEIGHT * float(np.mean(smoothed)) + PEAK_WEIGHT * (positive_avg - negative_avg)
        score += PHASE_WEIGHT * self._phase_term(smoothed, vertical)
        return score_to_lead(score)

    @staticmethod
    def _phase_term(lateral: np.ndarray, vertical: Optional[np.ndarray]) -> float:
        """Lateral swing in phase with the vertical push-off, in g."""
        if vertical is None:
            return 0.0
        vertical = np.asarray(vertical, dtype=float)[-len(lateral):]
        if len(vertical) != len(lateral):
            return 0.0
        v = vertical - np.mean(vertical)
        spread = np.std(v)
        if spread < 1e-9:
            return 0.0
        return float(np.mean((lateral - np.mean(lateral)) * v) / spread)

    def record(self, lead: Lead, duration: float):
        """Add time spent on a known lead."""
        if lead == Lead.LEFT:
            self.left_duration += duration
        elif lead == Lead.RIGHT:
            self.right_duration += duration

    @property
    def balance(self) -> float:
        """Share of known-lead time spent on the left lead, 0.5 when there is none."""
        total = self.left_duration + self.right_duration
        if total <= 0:
            return 0.5
        return self.left_duration / total

    def reset(self):
        self.left_duration = 0.0
        self.right_duration = 0.0


def rein_at(reins: Iterable[ReinSegment], time: float) -> Optional[ReinSegment]:
    """The rein segment covering ``time``, if any."""
    for rein in reins:
        if rein.start_time <= time < rein.end_time:
            return rein
    return None


def lead_pairing(segment: GaitSegment, reins: Iterable[ReinSegment]) -> LeadPairing:
    """
    Check a segment's lead against the rein it started on.

    Straight-line work accepts either lead; a left lead on a right rein (or
    the reverse) is cross-cantering.
    """
    if not segment.has_known_lead:
        return LeadPairing.UNDETERMINED
    rein = rein_at(reins, segment.start_time)
    if rein is None:
        return LeadPairing.UNDETERMINED
    if rein.direction == ReinDirection.STRAIGHT:
        return LeadPairing.CORRECT
    if rein.direction.value == segment.lead.value:
        return LeadPairing.CORRECT
    return LeadPairing.CROSS_CANTER


def is_correct_lead(segment: GaitSegment, reins: Iterable[ReinSegment]) -> bool:
    """False only for cross-cantering; undetermined leads count as correct."""
    return lead_pairing(segment, reins) != LeadPairing.CROSS_CANTER
