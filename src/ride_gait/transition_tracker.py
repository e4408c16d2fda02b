"""Recording of gait transitions, scored by speed smoothness."""

import logging
from collections import deque
from typing import List, Optional

import numpy as np

from .config import EngineConfig
from .models import GaitTransition, GaitType

logger = logging.getLogger(__name__)

NEUTRAL_QUALITY = 0.5
MIN_QUALITY_SPEEDS = 5
QUALITY_SPEEDS = 10  # Most recent fixes scored at a transition
FULL_JERK = 1.0  # m/s per fix^2, mean jerk that scores 0
FULL_SPREAD = 0.5  # m/s per fix, spread of speed changes that scores 0
JERK_WEIGHT = 0.6
CONSISTENCY_WEIGHT = 0.4


def _jerk_score(deltas: np.ndarray) -> float:
    if len(deltas) < 2:
        return NEUTRAL_QUALITY
    jerk = float(np.mean(np.abs(np.diff(deltas))))
    return 1.0 - min(1.0, jerk / FULL_JERK)


def _consistency_score(deltas: np.ndarray) -> float:
    if len(deltas) < 2:
        return NEUTRAL_QUALITY
    return 1.0 - min(1.0, float(np.std(deltas)) / FULL_SPREAD)


def transition_quality(speeds) -> float:
    """
    Smoothness of the speed trace leading into a transition.

    A steady acceleration or deceleration scores close to 1; an abrupt or
    erratic one close to 0.

    Args:
        speeds: GPS speeds in m/s, oldest first

    Returns:
        Quality between 0 and 1; 0.5 when there are too few fixes
    """
    speeds = np.asarray(speeds, dtype=float)
    if len(speeds) < MIN_QUALITY_SPEEDS:
        return NEUTRAL_QUALITY
    deltas = np.diff(speeds[-QUALITY_SPEEDS:])
    quality = JERK_WEIGHT * _jerk_score(deltas) + CONSISTENCY_WEIGHT * _consistency_score(deltas)
    return float(np.clip(quality, 0.0, 1.0))


class TransitionTracker:
    """
    Keeps the ride's gait transitions and a short history of GPS speeds.

    A transition out of a gait held for less than
    ``TRANSITION_MIN_GAIT_SECONDS`` since the previous recorded transition is
    not recorded.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.transitions: List[GaitTransition] = []
        self.speeds = deque(maxlen=self.config.TRANSITION_SPEED_HISTORY)
        self._gait_started: Optional[float] = None

    def update_speed(self, speed: Optional[float]):
        """Add one fresh GPS fix; invalid speeds are skipped."""
        if speed is None or not np.isfinite(speed) or speed < 0:
            return
        self.speeds.append(float(speed))

    def record(self, from_gait: GaitType, to_gait: GaitType, timestamp: float) -> Optional[GaitTransition]:
        """
        Record a change of gait.

        Returns:
            The recorded transition, or None when it was ignored
        """
        if from_gait == to_gait:
            return None
        if (
            self._gait_started is not None
            and timestamp - self._gait_started < self.config.TRANSITION_MIN_GAIT_SECONDS
        ):
            logger.debug(
                "Ignoring %s -> %s at %.2fs, previous gait too short",
                from_gait.name, to_gait.name, timestamp,
            )
            return None

        transition = GaitTransition(from_gait, to_gait, timestamp, transition_quality(self.speeds))
        self.transitions.append(transition)
        self._gait_started = timestamp
        return transition

    @property
    def average_quality(self) -> float:
        if not self.transitions:
            return 0.0
        return float(np.mean([t.quality for t in self.transitions]))

    @property
    def upward_count(self) -> int:
        return sum(t.is_upward for t in self.transitions)

    @property
    def downward_count(self) -> int:
        return sum(t.is_downward for t in self.transitions)

    def reset(self):
        self.transitions = []
        self.speeds.clear()
        self._gait_started = None
