"""Breed-based biomechanical priors and the stride length model."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from .models import GaitType

HANDS_TO_METRES = 0.1016
REFERENCE_HEIGHT_HANDS = 15.2
REFERENCE_WEIGHT_KG = 500.0
MIN_STRIDE_RMS = 0.01

FrequencyRange = Tuple[float, float]


class HorseBreed(str, Enum):
    THOROUGHBRED = "thoroughbred"
    APPALOOSA = "appaloosa"
    MORGAN = "morgan"
    STANDARDBRED = "standardbred"
    SHETLAND = "shetland"
    WELSH_A = "welsh_a"
    DARTMOOR = "dartmoor"
    EXMOOR = "exmoor"
    WELSH_B = "welsh_b"
    WELSH_C = "welsh_c"
    NEW_FOREST = "new_forest"
    CONNEMARA = "connemara"
    WELSH_D = "welsh_d"
    HIGHLAND = "highland"
    FELL = "fell"
    DALES = "dales"
    WARMBLOOD = "warmblood"
    HANOVERIAN = "hanoverian"
    DUTCH_WARMBLOOD = "dutch_warmblood"
    TRAKEHNER = "trakehner"
    IRISH_SPORT_HORSE = "irish_sport_horse"
    QUARTER_HORSE = "quarter_horse"
    COB = "cob"
    IRISH_DRAUGHT = "irish_draught"
    FRIESIAN = "friesian"
    ARABIAN = "arabian"
    ANDALUSIAN = "andalusian"
    LUSITANO = "lusitano"
    MIXED = "mixed"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "HorseBreed":
        """Map a free-form breed tag onto a known breed, UNKNOWN otherwise."""
        if not value:
            return cls.UNKNOWN
        key = value.strip().lower().replace(" ", "_").replace("-", "_")
        try:
            return cls(key)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class StrideCoefficients:
    walk: float
    trot: float
    canter: float
    gallop: float

    def for_gait(self, gait: GaitType) -> float:
        return {
            GaitType.WALK: self.walk,
            GaitType.TROT: self.trot,
            GaitType.CANTER: self.canter,
            GaitType.GALLOP: self.gallop,
        }.get(gait, 0.0)


@dataclass(frozen=True)
class BiomechanicalPriors:
    """Typical stride frequencies and body size for a breed category."""

    walk_range: FrequencyRange
    trot_range: FrequencyRange
    canter_range: FrequencyRange
    gallop_range: FrequencyRange
    stride: StrideCoefficients
    typical_weight: float  # kg
    typical_height: float  # hands

    def frequency_range(self, gait: GaitType) -> FrequencyRange:
        return {
            GaitType.WALK: self.walk_range,
            GaitType.TROT: self.trot_range,
            GaitType.CANTER: self.canter_range,
            GaitType.GALLOP: self.gallop_range,
        }.get(gait, (0.0, 0.0))

    def frequency_center(self, gait: GaitType) -> float:
        low, high = self.frequency_range(gait)
        return (low + high) / 2

    @property
    def speed_scale(self) -> float:
        """
        Scale applied to the reference gait speed boundaries.

        Speed at a given stride rate grows with stride length, so a breed whose
        typical trot stride is shorter than the reference horse's changes gait
        at lower speeds.
        """
        reference = DEFAULT_PRIORS.stride.trot * DEFAULT_PRIORS.typical_height
        scale = (self.stride.trot * self.typical_height) / reference
        return min(1.2, max(0.7, scale))


DEFAULT_PRIORS = BiomechanicalPriors(
    walk_range=(1.0, 2.2),
    trot_range=(2.0, 3.8),
    canter_range=(1.8, 3.0),
    gallop_range=(3.0, 6.0),
    stride=StrideCoefficients(2.2, 2.7, 3.3, 4.0),
    typical_weight=500.0,
    typical_height=15.2,
)

_CATEGORY_PRIORS: Dict[str, BiomechanicalPriors] = {
    "default": DEFAULT_PRIORS,
    "small_pony": BiomechanicalPriors(
        (1.3, 2.5), (2.8, 4.5), (2.2, 3.5), (3.5, 6.5),
        StrideCoefficients(2.0, 2.4, 2.9, 3.5), 200.0, 11.5,
    ),
    "medium_pony": BiomechanicalPriors(
        (1.2, 2.4), (2.4, 4.2), (2.0, 3.3), (3.2, 6.0),
        StrideCoefficients(2.1, 2.5, 3.0, 3.6), 350.0, 13.5,
    ),
    "large_pony": BiomechanicalPriors(
        (1.1, 2.3), (2.2, 4.0), (1.9, 3.2), (3.1, 5.8),
        StrideCoefficients(2.15, 2.6, 3.1, 3.7), 450.0, 14.2,
    ),
    "warmblood": BiomechanicalPriors(
        (0.9, 2.0), (1.8, 3.5), (1.6, 2.8), (2.8, 5.5),
        StrideCoefficients(2.3, 2.8, 3.4, 4.1), 550.0, 16.2,
    ),
    "sport_horse": BiomechanicalPriors(
        (0.95, 2.1), (1.9, 3.6), (1.7, 2.9), (2.9, 5.8),
        StrideCoefficients(2.25, 2.75, 3.35, 4.05), 530.0, 16.1,
    ),
    "quarter_horse": BiomechanicalPriors(
        (1.0, 2.2), (2.0, 3.8), (1.8, 3.0), (3.0, 6.2),
        StrideCoefficients(2.1, 2.6, 3.2, 3.9), 480.0, 15.0,
    ),
    "heavy": BiomechanicalPriors(
        (0.9, 2.0), (1.8, 3.2), (1.5, 2.7), (2.6, 5.0),
        StrideCoefficients(2.15, 2.6, 3.15, 3.8), 600.0, 15.3,
    ),
    "arabian": BiomechanicalPriors(
        (1.1, 2.3), (2.2, 4.0), (1.9, 3.2), (3.1, 6.0),
        StrideCoefficients(2.1, 2.55, 3.1, 3.8), 450.0, 15.0,
    ),
    "iberian": BiomechanicalPriors(
        (1.0, 2.2), (2.0, 3.6), (1.7, 2.9), (2.8, 5.5),
        StrideCoefficients(2.15, 2.6, 3.2, 3.85), 500.0, 15.2,
    ),
}

_BREED_CATEGORY: Dict[HorseBreed, str] = {
    HorseBreed.SHETLAND: "small_pony",
    HorseBreed.WELSH_A: "small_pony",
    HorseBreed.DARTMOOR: "small_pony",
    HorseBreed.EXMOOR: "small_pony",
    HorseBreed.WELSH_B: "medium_pony",
    HorseBreed.WELSH_C: "medium_pony",
    HorseBreed.NEW_FOREST: "medium_pony",
    HorseBreed.CONNEMARA: "medium_pony",
    HorseBreed.WELSH_D: "large_pony",
    HorseBreed.HIGHLAND: "large_pony",
    HorseBreed.FELL: "large_pony",
    HorseBreed.DALES: "large_pony",
    HorseBreed.WARMBLOOD: "warmblood",
    HorseBreed.HANOVERIAN: "warmblood",
    HorseBreed.DUTCH_WARMBLOOD: "warmblood",
    HorseBreed.TRAKEHNER: "warmblood",
    HorseBreed.IRISH_SPORT_HORSE: "sport_horse",
    HorseBreed.QUARTER_HORSE: "quarter_horse",
    HorseBreed.COB: "heavy",
    HorseBreed.IRISH_DRAUGHT: "heavy",
    HorseBreed.FRIESIAN: "heavy",
    HorseBreed.ARABIAN: "arabian",
    HorseBreed.ANDALUSIAN: "iberian",
    HorseBreed.LUSITANO: "iberian",
}


def priors_for(breed) -> BiomechanicalPriors:
    """
    Look up the priors for a breed.

    Args:
        breed: HorseBreed or a free-form breed tag. Unknown tags get the default priors.

    Returns:
        BiomechanicalPriors for the breed's category
    """
    if not isinstance(breed, HorseBreed):
        breed = HorseBreed.parse(breed)
    category = _BREED_CATEGORY.get(breed, "default")
    return _CATEGORY_PRIORS[category]


def normalized_vertical_rms(raw_rms: float, weight_kg: Optional[float]) -> float:
    """Scale vertical RMS to the 500 kg reference horse."""
    if not weight_kg or weight_kg <= 0:
        return raw_rms
    return raw_rms * REFERENCE_WEIGHT_KG / weight_kg


def estimate_stride_length(
    gait: GaitType,
    vertical_rms: float,
    priors: BiomechanicalPriors,
    height_hands: Optional[float] = None,
) -> float:
    """
    Estimate stride length in metres from body size and vertical energy.

    Args:
        gait: Gait the stride was taken in
        vertical_rms: Vertical acceleration RMS (g) of the window
        priors: Breed priors supplying the per-gait coefficient
        height_hands: Horse height; the reference height is used when missing

    Returns:
        Stride length in metres, 0 when stationary
    """
    if gait == GaitType.STATIONARY:
        return 0.0
    height = height_hands if height_hands and height_hands > 0 else REFERENCE_HEIGHT_HANDS
    height_m = height * HANDS_TO_METRES
    return priors.stride.for_gait(gait) * height_m * max(vertical_rms, MIN_STRIDE_RMS) ** 0.25


@dataclass(frozen=True)
class EmissionRanges:
    """Typical ranges of the harmonic, entropy and coherence features for one gait."""

    h2: FrequencyRange
    h3: FrequencyRange
    entropy: FrequencyRange
    coherence: FrequencyRange


# Trot is dominated by H2 (diagonal pairs), canter by H3 with strong
# vertical/yaw coupling, gallop by broadband energy.
EMISSION_RANGES: Dict[GaitType, EmissionRanges] = {
    GaitType.WALK: EmissionRanges((0.3, 0.7), (0.2, 0.5), (0.2, 0.5), (0.2, 0.4)),
    GaitType.TROT: EmissionRanges((1.2, 2.5), (0.3, 0.8), (0.3, 0.6), (0.1, 0.4)),
    GaitType.CANTER: EmissionRanges((0.4, 1.0), (1.0, 2.0), (0.4, 0.7), (0.6, 0.9)),
    GaitType.GALLOP: EmissionRanges((0.2, 0.8), (0.3, 0.9), (0.6, 0.9), (0.7, 1.0)),
}


def range_center(bounds: FrequencyRange) -> float:
    return (bounds[0] + bounds[1]) / 2
