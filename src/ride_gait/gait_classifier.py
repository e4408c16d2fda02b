"""Gait classification: spectral likelihood, GPS fusion and temporal smoothing."""

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np

from .config import EngineConfig, FusionPolicy
from .gait_model import EffectiveGaitModel, GaitEmission
from .models import MOVING_GAITS, GaitDecision, GaitType, GPSQuality, SpectralFeatures
from .priors import normalized_vertical_rms

logger = logging.getLogger(__name__)

# Fusion regions: GPS decides inside the low-speed region, the spectrum inside
# the high-speed region. Trot belongs to both.
LOW_SPEED_GAITS = frozenset({GaitType.STATIONARY, GaitType.WALK, GaitType.TROT})
HIGH_SPEED_GAITS = frozenset({GaitType.TROT, GaitType.CANTER, GaitType.GALLOP})

MIN_EVIDENCE = 1.0 / len(GaitType)
MAX_EVIDENCE = 0.999

Candidate = Tuple[GaitType, float]


def _range_log_score(value: float, bounds: Tuple[float, float]) -> float:
    """Flat inside the range, Gaussian fall-off outside it."""
    low, high = bounds
    if low <= value <= high:
        return 0.0
    distance = low - value if value < low else value - high
    sd = max((high - low) / 4, 0.05)
    return -0.5 * (distance / sd) ** 2


def spectral_likelihood(features: SpectralFeatures, model: EffectiveGaitModel) -> Dict[GaitType, float]:
    """
    Probability of each moving gait given one window's spectral features.

    Args:
        features: Spectral features of a confident window
        model: Effective gait model of the horse

    Returns:
        Dict of moving gait -> probability, summing to 1
    """
    scores = []
    for gait in MOVING_GAITS:
        emission: GaitEmission = model.emissions[gait]
        terms = [
            _range_log_score(features.stride_frequency, model.frequency_ranges[gait]),
            emission.h2.log_score(features.h2_ratio),
            emission.h3.log_score(features.h3_ratio),
            emission.entropy.log_score(features.spectral_entropy),
        ]
        # Coherence is exactly zero without rotation data
        if features.coherence > 0:
            terms.append(emission.coherence.log_score(features.coherence))
        scores.append(np.mean(terms))

    scores = np.array(scores)
    weights = np.exp(scores - np.max(scores))
    probabilities = weights / np.sum(weights)
    return {gait: float(p) for gait, p in zip(MOVING_GAITS, probabilities)}


def fuse(
    spectral: Optional[Candidate],
    gps_gait: Optional[GaitType],
    policy: FusionPolicy,
) -> Optional[Candidate]:
    """
    Combine the spectral candidate with the GPS prior.

    Args:
        spectral: (gait, confidence) from the spectrum, or None for a low-confidence window
        gps_gait: Gait implied by trustworthy GPS speed, or None
        policy: Fusion weights

    Returns:
        (gait, evidence) candidate, or None when neither modality is usable
    """
    if spectral is None:
        if gps_gait is None:
            return None
        return gps_gait, policy.gps_prior_confidence

    spectral_gait, spectral_confidence = spectral
    if gps_gait is None:
        return spectral
    if gps_gait == spectral_gait:
        return gps_gait, max(policy.agreement_confidence, spectral_confidence)

    if gps_gait in LOW_SPEED_GAITS and spectral_gait in LOW_SPEED_GAITS:
        return gps_gait, policy.gps_prior_confidence * policy.disagreement_penalty
    if gps_gait in HIGH_SPEED_GAITS and spectral_gait in HIGH_SPEED_GAITS:
        return spectral_gait, spectral_confidence * policy.disagreement_penalty
    # One says slow, the other fast: meet in the middle so faster GPS never
    # produces a slower label
    return GaitType.TROT, policy.straddle_confidence


def transition_matrix(self_transition: float) -> np.ndarray:
    """
    Row-stochastic matrix over the gaits in speed order.

    Between two windows a horse can only move to a neighbouring gait, so the
    leaving mass is split over the adjacent gaits and all other entries are 0.
    """
    n = len(GaitType)
    leave = 1.0 - self_transition
    matrix = np.zeros((n, n))
    for i in range(n):
        neighbours = [j for j in (i - 1, i + 1) if 0 <= j < n]
        matrix[i, i] = self_transition
        for j in neighbours:
            matrix[i, j] = leave / len(neighbours)
    return matrix


class RhythmTracker:
    """Stride regularity over the current segment, as a 0-100 score."""

    def __init__(self):
        self.frequencies: List[float] = []
        self.harmonics: List[float] = []

    def add(self, features: SpectralFeatures):
        if features.low_confidence or features.stride_frequency <= 0:
            return
        self.frequencies.append(features.stride_frequency)
        self.harmonics.append(features.dominant_harmonic)

    def score(self, gait: GaitType) -> float:
        if gait == GaitType.STATIONARY or len(self.frequencies) < 3:
            return 0.0
        cv_frequency = np.std(self.frequencies) / np.mean(self.frequencies)
        mean_harmonic = np.mean(self.harmonics)
        cv_harmonic = np.std(self.harmonics) / mean_harmonic if mean_harmonic > 0 else 0.0
        penalty = 0.7 * min(1.0, cv_frequency / 0.15) + 0.3 * min(1.0, cv_harmonic / 0.5)
        return float(100.0 * (1.0 - penalty))

    def reset(self):
        self.frequencies = []
        self.harmonics = []


class GaitClassifier:
    """
    Labels each analysis window with a gait.

    A five-state forward filter smooths the fused per-window candidate; the
    label only changes when the filtered belief in the new gait beats the
    current gait by more than the chance of leaving the current gait, for
    ``MIN_TRANSITION_WINDOWS`` windows in a row.
    """

    def __init__(
        self,
        model: EffectiveGaitModel,
        policy: Optional[FusionPolicy] = None,
        config: Optional[EngineConfig] = None,
        weight_kg: Optional[float] = None,
    ):
        self.model = model
        self.policy = policy or FusionPolicy()
        self.config = config or EngineConfig()
        self.weight_kg = weight_kg
        self.transitions = transition_matrix(model.self_transition)
        self.rhythm = RhythmTracker()

        self.current = GaitType.STATIONARY
        self.belief = np.full(len(GaitType), 0.01)
        self.belief[GaitType.STATIONARY] = 1.0
        self.belief /= np.sum(self.belief)
        self._pending: Optional[GaitType] = None
        self._pending_windows = 0

    def spectral_candidate(self, features: SpectralFeatures) -> Optional[Candidate]:
        if features.low_confidence:
            return None
        rms = normalized_vertical_rms(features.vertical_rms, self.weight_kg)
        if rms < self.config.STATIONARY_RMS:
            return GaitType.STATIONARY, self.policy.stationary_confidence
        likelihood = spectral_likelihood(features, self.model)
        gait = max(likelihood, key=likelihood.get)
        # Capped: the softmax is close to 1 for any clear winner
        return gait, min(likelihood[gait], self.policy.spectral_confidence_cap)

    def gps_candidate(self, gps_speed: Optional[float], gps_accuracy: Optional[float]) -> Optional[GaitType]:
        if gps_speed is None or not np.isfinite(gps_speed) or gps_speed < 0:
            return None
        if not GPSQuality.from_accuracy(gps_accuracy).is_trustworthy:
            return None
        return self.model.gait_for_speed(gps_speed)

    def propose(
        self,
        features: SpectralFeatures,
        gps_speed: Optional[float] = None,
        gps_accuracy: Optional[float] = None,
    ) -> Optional[Candidate]:
        """Fused per-window candidate before temporal smoothing."""
        return fuse(
            self.spectral_candidate(features),
            self.gps_candidate(gps_speed, gps_accuracy),
            self.policy,
        )

    def classify(
        self,
        features: SpectralFeatures,
        gps_speed: Optional[float] = None,
        gps_accuracy: Optional[float] = None,
    ) -> GaitDecision:
        """
        Classify one window.

        Args:
            features: Spectral features of the window
            gps_speed: Held GPS speed in m/s, or None
            gps_accuracy: Horizontal accuracy of that fix in metres

        Returns:
            GaitDecision with the (possibly unchanged) current gait
        """
        candidate = self.propose(features, gps_speed, gps_accuracy)
        if candidate is None:
            return self.hold()
        gait, evidence = candidate
        return self.observe(gait, evidence, features)

    def observe(
        self,
        gait: GaitType,
        evidence: float,
        features: Optional[SpectralFeatures] = None,
    ) -> GaitDecision:
        """
        Apply one fused candidate to the smoothing filter.

        Args:
            gait: Candidate gait for the window
            evidence: Probability the candidate is right (0-1)
            features: Window features, used for the rhythm score

        Returns:
            GaitDecision after smoothing
        """
        self._update_belief(gait, evidence)

        best = GaitType(int(np.argmax(self.belief)))
        transitioned = False
        if best != self.current and self._beats_current(best):
            if best == self._pending:
                self._pending_windows += 1
            else:
                self._pending, self._pending_windows = best, 1
            if self._pending_windows >= self.config.MIN_TRANSITION_WINDOWS:
                logger.debug(
                    "Gait %s -> %s (margin %.2f)",
                    self.current.name, best.name, self.belief[best] - self.belief[self.current],
                )
                self.current = best
                self.rhythm.reset()
                self._pending, self._pending_windows = None, 0
                transitioned = True
        else:
            self._pending, self._pending_windows = None, 0

        if features is not None:
            self.rhythm.add(features)
        return GaitDecision(
            gait=self.current,
            confidence=float(self.belief[self.current]),
            transitioned=transitioned,
            rhythm_score=self.rhythm.score(self.current),
            candidate=gait,
        )

    def hold(self) -> GaitDecision:
        """Decision for a window that carries no usable evidence."""
        return GaitDecision(
            gait=self.current,
            confidence=float(self.belief[self.current]),
            transitioned=False,
            rhythm_score=self.rhythm.score(self.current),
            candidate=None,
        )

    def _beats_current(self, gait: GaitType) -> bool:
        threshold = 1.0 - self.model.self_transition
        if gait == GaitType.CANTER:
            threshold *= self.model.canter_multiplier
        return self.belief[gait] - self.belief[self.current] > threshold

    def _update_belief(self, gait: GaitType, evidence: float):
        evidence = float(np.clip(evidence, MIN_EVIDENCE, MAX_EVIDENCE))
        emission = np.full(len(GaitType), (1.0 - evidence) / (len(GaitType) - 1))
        emission[gait] = evidence
        posterior = (self.belief @ self.transitions) * emission
        total = np.sum(posterior)
        if total <= 0 or not np.isfinite(total):
            return
        self.belief = posterior / total
