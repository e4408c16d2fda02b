"""Per-horse tuning and learned gait parameters."""

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Dict, Optional

from .models import MOVING_GAITS, CalibrationUpdate, GaitType
from .priors import (
    EMISSION_RANGES,
    BiomechanicalPriors,
    HorseBreed,
    priors_for,
    range_center,
)

logger = logging.getLogger(__name__)

MIN_WINDOWS_FOR_LEARNING = 4
MIN_LEARNING_RATE = 0.1


@dataclass(frozen=True)
class GaitTuning:
    """
    Rider-adjustable deltas applied on top of the breed priors.

    The defaults are neutral; nothing is applied unless ``is_active`` is set.
    """

    frequency_offset: float = 0.0  # Hz, shifts every moving-gait range
    speed_sensitivity: float = 0.0  # -1..1, positive lowers the upper speed boundaries
    transition_responsiveness: float = 1.0  # >1 switches gait sooner
    canter_sensitivity: float = 1.0  # >1 makes canter easier to enter
    walk_trot_shift: float = 0.0  # m/s
    trot_canter_shift: float = 0.0  # m/s
    is_active: bool = False

    def __post_init__(self):
        if self.canter_sensitivity <= 0:
            raise ValueError(f"canter_sensitivity must be positive, got {self.canter_sensitivity}")
        if self.transition_responsiveness < 0:
            raise ValueError(
                f"transition_responsiveness must be non-negative, got {self.transition_responsiveness}"
            )

    @property
    def self_transition(self) -> float:
        """Probability of staying in the current gait between windows."""
        value = 0.85 + (1.0 - self.transition_responsiveness) * 0.05
        return min(0.95, max(0.75, value))

    def to_dict(self) -> Dict:
        return {
            "frequency_offset": self.frequency_offset,
            "speed_sensitivity": self.speed_sensitivity,
            "transition_responsiveness": self.transition_responsiveness,
            "canter_sensitivity": self.canter_sensitivity,
            "walk_trot_shift": self.walk_trot_shift,
            "trot_canter_shift": self.trot_canter_shift,
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "GaitTuning":
        return cls(
            frequency_offset=float(data.get("frequency_offset", 0.0)),
            speed_sensitivity=float(data.get("speed_sensitivity", 0.0)),
            transition_responsiveness=float(data.get("transition_responsiveness", 1.0)),
            canter_sensitivity=float(data.get("canter_sensitivity", 1.0)),
            walk_trot_shift=float(data.get("walk_trot_shift", 0.0)),
            trot_canter_shift=float(data.get("trot_canter_shift", 0.0)),
            is_active=bool(data.get("is_active", False)),
        )


@dataclass(frozen=True)
class LearnedGaitStats:
    """Running means for one gait of one horse."""

    frequency: float
    h2: float
    h3: float
    entropy: float
    window_count: int = 0


@dataclass(frozen=True)
class LearnedGaitParameters:
    """What the engine has learned about one horse across rides."""

    gaits: Dict[GaitType, LearnedGaitStats] = field(default_factory=dict)
    ride_count: int = 0
    last_update: float = 0.0

    def stats(self, gait: GaitType) -> Optional[LearnedGaitStats]:
        return self.gaits.get(gait)

    def to_dict(self) -> Dict:
        return {
            "ride_count": self.ride_count,
            "last_update": self.last_update,
            "gaits": {
                gait.name.lower(): {
                    "frequency": stats.frequency,
                    "h2": stats.h2,
                    "h3": stats.h3,
                    "entropy": stats.entropy,
                    "window_count": stats.window_count,
                }
                for gait, stats in self.gaits.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "LearnedGaitParameters":
        """
        Rebuild learned parameters from a plain dict.

        Raises:
            ValueError: If the data is malformed or holds non-finite values
        """
        try:
            gaits = {}
            for name, values in data["gaits"].items():
                gait = GaitType[name.upper()]
                stats = LearnedGaitStats(
                    frequency=float(values["frequency"]),
                    h2=float(values["h2"]),
                    h3=float(values["h3"]),
                    entropy=float(values["entropy"]),
                    window_count=int(values.get("window_count", 0)),
                )
                numbers = (stats.frequency, stats.h2, stats.h3, stats.entropy)
                if any(v != v or v in (float("inf"), float("-inf")) for v in numbers):
                    raise ValueError(f"non-finite learned value for {name}")
                gaits[gait] = stats
            ride_count = int(data["ride_count"])
            last_update = float(data.get("last_update", 0.0))
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Malformed learned gait parameters: {e}") from e
        if ride_count < 0:
            raise ValueError(f"ride_count must be non-negative, got {ride_count}")
        return cls(gaits=gaits, ride_count=ride_count, last_update=last_update)


@dataclass(frozen=True)
class HorseProfile:
    """The horse being ridden. Passed in for the ride's duration."""

    horse_id: str
    breed: HorseBreed = HorseBreed.UNKNOWN
    height_hands: Optional[float] = None
    weight_kg: Optional[float] = None
    tuning: GaitTuning = field(default_factory=GaitTuning)
    learned: Optional[LearnedGaitParameters] = None

    def __post_init__(self):
        if not isinstance(self.breed, HorseBreed):
            object.__setattr__(self, "breed", HorseBreed.parse(self.breed))

    @property
    def priors(self) -> BiomechanicalPriors:
        return priors_for(self.breed)

    @property
    def effective_weight(self) -> float:
        if self.weight_kg and self.weight_kg > 0:
            return self.weight_kg
        return self.priors.typical_weight

    def to_dict(self) -> Dict:
        return {
            "horse_id": self.horse_id,
            "breed": self.breed.value,
            "height_hands": self.height_hands,
            "weight_kg": self.weight_kg,
            "tuning": self.tuning.to_dict(),
            "learned": self.learned.to_dict() if self.learned else None,
        }


def _cold_start_stats(gait: GaitType, priors: BiomechanicalPriors) -> LearnedGaitStats:
    emission = EMISSION_RANGES[gait]
    return LearnedGaitStats(
        frequency=priors.frequency_center(gait),
        h2=range_center(emission.h2),
        h3=range_center(emission.h3),
        entropy=range_center(emission.entropy),
        window_count=0,
    )


def _blend(observed: float, previous: float, alpha: float) -> float:
    return alpha * observed + (1.0 - alpha) * previous


class CalibrationStore:
    """
    Holds horse profiles and updates their learned parameters after each ride.

    Updates for one horse are serialised; the store may be shared between
    concurrent rides.
    """

    def __init__(self):
        self._profiles: Dict[str, HorseProfile] = {}
        self._lock = threading.Lock()

    def register(self, profile: HorseProfile) -> None:
        with self._lock:
            self._profiles[profile.horse_id] = profile

    def profile(self, horse_id: str) -> HorseProfile:
        """Get a horse's profile, or a default-breed profile if it is unknown."""
        with self._lock:
            return self._profiles.get(horse_id) or HorseProfile(horse_id=horse_id)

    def apply_update(self, update: CalibrationUpdate) -> Optional[LearnedGaitParameters]:
        """
        Blend one ride's per-gait observations into the horse's learned parameters.

        Args:
            update: Per-gait summary produced at ride end

        Returns:
            The new learned parameters, or the existing ones if no gait had
            enough windows to learn from
        """
        with self._lock:
            profile = self._profiles.get(update.horse_id) or HorseProfile(horse_id=update.horse_id)
            learned = profile.learned or LearnedGaitParameters()
            alpha = max(MIN_LEARNING_RATE, 1.0 / (learned.ride_count + 2))

            gaits = dict(learned.gaits)
            applied = []
            for gait, obs in update.observations.items():
                if gait not in MOVING_GAITS or obs.window_count < MIN_WINDOWS_FOR_LEARNING:
                    continue
                previous = gaits.get(gait) or _cold_start_stats(gait, profile.priors)
                gaits[gait] = LearnedGaitStats(
                    frequency=_blend(obs.mean_frequency, previous.frequency, alpha),
                    h2=_blend(obs.mean_h2, previous.h2, alpha),
                    h3=_blend(obs.mean_h3, previous.h3, alpha),
                    entropy=_blend(obs.mean_entropy, previous.entropy, alpha),
                    window_count=previous.window_count + obs.window_count,
                )
                applied.append(gait.name.lower())

            if not applied:
                logger.debug("No gait in ride for %s had enough windows to learn from", update.horse_id)
                return profile.learned

            updated = LearnedGaitParameters(
                gaits=gaits,
                ride_count=learned.ride_count + 1,
                last_update=update.timestamp or time.time(),
            )
            self._profiles[update.horse_id] = replace(profile, learned=updated)

        logger.info(
            "Updated learned gaits for %s (ride %d, alpha %.2f): %s",
            update.horse_id, updated.ride_count, alpha, ", ".join(applied),
        )
        return updated

    def set_tuning(self, horse_id: str, tuning: GaitTuning) -> HorseProfile:
        with self._lock:
            profile = self._profiles.get(horse_id) or HorseProfile(horse_id=horse_id)
            profile = replace(profile, tuning=tuning)
            self._profiles[horse_id] = profile
            return profile

    def reset(self, horse_id: str) -> HorseProfile:
        """Clear learned parameters and set tuning back to neutral."""
        with self._lock:
            profile = self._profiles.get(horse_id) or HorseProfile(horse_id=horse_id)
            profile = replace(profile, tuning=GaitTuning(), learned=None)
            self._profiles[horse_id] = profile
        logger.info("Reset gait calibration for %s", horse_id)
        return profile

    def export_state(self) -> Dict[str, Dict]:
        with self._lock:
            return {horse_id: p.to_dict() for horse_id, p in self._profiles.items()}

    def import_state(self, data: Dict[str, Dict]) -> int:
        """
        Load profiles exported by ``export_state``.

        Corrupt learned parameters are dropped (cold start) rather than failing
        the import.

        Returns:
            Number of profiles loaded
        """
        loaded = 0
        for horse_id, entry in data.items():
            try:
                tuning = GaitTuning.from_dict(entry.get("tuning") or {})
                profile = HorseProfile(
                    horse_id=horse_id,
                    breed=HorseBreed.parse(entry.get("breed")),
                    height_hands=entry.get("height_hands"),
                    weight_kg=entry.get("weight_kg"),
                    tuning=tuning,
                )
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning("Skipping corrupt profile for %s: %s", horse_id, e)
                continue

            learned_data = entry.get("learned")
            if learned_data is not None:
                try:
                    profile = replace(profile, learned=LearnedGaitParameters.from_dict(learned_data))
                except ValueError as e:
                    logger.warning("Discarding corrupt learned gait state for %s: %s", horse_id, e)

            self.register(profile)
            loaded += 1
        return loaded
