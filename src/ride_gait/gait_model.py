"""Effective per-horse gait model: priors + tuning + learned parameters."""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .calibration_store import GaitTuning, LearnedGaitParameters
from .models import MOVING_GAITS, GaitType
from .priors import EMISSION_RANGES, BiomechanicalPriors, FrequencyRange

# Reference speed boundaries (m/s): stationary|walk, walk|trot, trot|canter, canter|gallop
BASE_SPEED_BOUNDARIES: Tuple[float, float, float, float] = (0.4, 1.7, 3.5, 5.5)
MIN_BOUNDARY_GAP = 0.1
MIN_LEARNED_RIDES = 3
MAX_LEARNED_BLEND = 0.5


@dataclass(frozen=True)
class Gaussian:
    mean: float
    sd: float

    @classmethod
    def from_range(cls, bounds: FrequencyRange) -> "Gaussian":
        # Treat the typical range as +-2 sd around its centre
        low, high = bounds
        return cls(mean=(low + high) / 2, sd=max((high - low) / 4, 1e-3))

    def log_score(self, value: float) -> float:
        z = (value - self.mean) / self.sd
        return -0.5 * z * z


@dataclass(frozen=True)
class GaitEmission:
    h2: Gaussian
    h3: Gaussian
    entropy: Gaussian
    coherence: Gaussian


@dataclass(frozen=True)
class EffectiveGaitModel:
    """Everything the classifier needs to know about the horse, fixed for one ride."""

    frequency_ranges: Dict[GaitType, FrequencyRange]
    emissions: Dict[GaitType, GaitEmission]
    speed_boundaries: Tuple[float, float, float, float]
    self_transition: float = 0.85
    canter_multiplier: float = 1.0

    def gait_for_speed(self, speed: float) -> GaitType:
        """Map a ground speed onto the gait whose speed range contains it."""
        for gait, boundary in zip(GaitType, self.speed_boundaries):
            if speed < boundary:
                return gait
        return GaitType.GALLOP


def blend_weight(learned: Optional[LearnedGaitParameters]) -> float:
    """How far learned values pull the priors: 0 under 3 rides, capped at 0.5."""
    if learned is None or learned.ride_count < MIN_LEARNED_RIDES:
        return 0.0
    return min(MAX_LEARNED_BLEND, 0.05 * learned.ride_count)


def _speed_boundaries(priors: BiomechanicalPriors, tuning: GaitTuning) -> Tuple[float, ...]:
    scale = priors.speed_scale
    bounds = [b * scale for b in BASE_SPEED_BOUNDARIES]
    if tuning.is_active:
        factor = 1.0 - 0.1 * tuning.speed_sensitivity
        bounds = [bounds[0]] + [b * factor for b in bounds[1:]]
        bounds[1] += tuning.walk_trot_shift
        bounds[2] += tuning.trot_canter_shift

    bounds[0] = max(bounds[0], MIN_BOUNDARY_GAP)
    for i in range(1, len(bounds)):
        bounds[i] = max(bounds[i], bounds[i - 1] + MIN_BOUNDARY_GAP)
    return tuple(bounds)


def build_effective_model(
    priors: BiomechanicalPriors,
    tuning: Optional[GaitTuning] = None,
    learned: Optional[LearnedGaitParameters] = None,
) -> EffectiveGaitModel:
    """
    Combine breed priors, tuning deltas and learned parameters.

    Args:
        priors: Breed category priors
        tuning: Per-horse tuning; ignored unless active
        learned: Learned parameters; ignored below three rides

    Returns:
        EffectiveGaitModel for one ride
    """
    tuning = tuning or GaitTuning()
    weight = blend_weight(learned)
    offset = tuning.frequency_offset if tuning.is_active else 0.0

    ranges = {}
    emissions = {}
    for gait in MOVING_GAITS:
        low, high = priors.frequency_range(gait)
        low, high = low + offset, high + offset
        emission = EMISSION_RANGES[gait]
        h2 = Gaussian.from_range(emission.h2)
        h3 = Gaussian.from_range(emission.h3)
        entropy = Gaussian.from_range(emission.entropy)

        stats = learned.stats(gait) if learned else None
        if stats is not None and weight > 0:
            center = (low + high) / 2
            shift = weight * (stats.frequency - center)
            low, high = low + shift, high + shift
            h2 = Gaussian(h2.mean + weight * (stats.h2 - h2.mean), h2.sd)
            h3 = Gaussian(h3.mean + weight * (stats.h3 - h3.mean), h3.sd)
            entropy = Gaussian(entropy.mean + weight * (stats.entropy - entropy.mean), entropy.sd)

        ranges[gait] = (max(0.0, low), max(0.0, high))
        emissions[gait] = GaitEmission(
            h2=h2,
            h3=h3,
            entropy=entropy,
            coherence=Gaussian.from_range(emission.coherence),
        )

    if tuning.is_active:
        self_transition = tuning.self_transition
        canter_multiplier = 1.0 / tuning.canter_sensitivity
    else:
        self_transition = GaitTuning().self_transition
        canter_multiplier = 1.0

    return EffectiveGaitModel(
        frequency_ranges=ranges,
        emissions=emissions,
        speed_boundaries=_speed_boundaries(priors, tuning),
        self_transition=self_transition,
        canter_multiplier=canter_multiplier,
    )

