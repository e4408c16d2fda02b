"""Motion preprocessing: gravity baseline, horse-frame projection and smoothing."""

import logging
from typing import List, Optional, Tuple

import numpy as np

from .config import EngineConfig, MountCalibration, MountPosition, mount_calibration
from .models import MotionSample, PreprocessedSample
from .signal_filters import ExponentialFilter

logger = logging.getLogger(__name__)


def _horse_frame(gravity: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Orthonormal (vertical, lateral, forward) axes with vertical along gravity."""
    vertical = gravity / np.linalg.norm(gravity)
    # Cross with the device axis least aligned with gravity for a stable perpendicular
    reference = np.zeros(3)
    reference[int(np.argmin(np.abs(vertical)))] = 1.0
    lateral = np.cross(vertical, reference)
    lateral /= np.linalg.norm(lateral)
    forward = np.cross(lateral, vertical)
    return vertical, lateral, forward


class MotionPreprocessor:
    """
    Turns raw device samples into smoothed horse-frame motion.

    The first ``settle_samples`` samples of a ride (and after each
    recalibration) establish the gravity baseline and are passed through
    uncalibrated. Afterwards a slow gravity tracker watches for the phone
    rotating in the pocket; when the drift exceeds the mount's tolerance the
    baseline is re-established.
    """

    def __init__(self, mount: MountPosition, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.mount = MountPosition(mount)
        self.calibration: MountCalibration = mount_calibration(self.mount)
        self.filter = ExponentialFilter(self.calibration.filter_alpha)

        self._settle_buffer: List[np.ndarray] = []
        self._axes: Optional[Tuple[np.ndarray, np.ndarray, np.ndarray]] = None
        self._baseline: Optional[np.ndarray] = None
        self._gravity: Optional[np.ndarray] = None
        self._since_check = 0
        self.recalibration_count = 0

    @property
    def is_calibrated(self) -> bool:
        return self._axes is not None

    def process(self, sample: MotionSample) -> PreprocessedSample:
        """
        Process one sample.

        Args:
            sample: Raw motion sample (acceleration in g including gravity)

        Returns:
            PreprocessedSample; ``calibrated`` is False while the baseline settles
        """
        accel = np.asarray(sample.acceleration, dtype=float)
        rotation = None if sample.rotation_rate is None else np.asarray(sample.rotation_rate, dtype=float)

        if self._axes is None:
            return self._settle(sample.timestamp, accel, rotation)

        vertical_axis, lateral_axis, forward_axis = self._axes
        dynamic = accel - self._baseline
        projected = np.array([
            dynamic @ vertical_axis,
            dynamic @ lateral_axis,
            dynamic @ forward_axis,
        ])
        vertical, lateral, forward = self.filter.filter_sample(projected)
        yaw = None if rotation is None else float(rotation @ vertical_axis)

        drifted = self._track_gravity(accel)
        return PreprocessedSample(
            timestamp=sample.timestamp,
            vertical=float(vertical),
            lateral=float(lateral),
            forward=float(forward),
            yaw_rate=yaw,
            calibrated=True,
            recalibration_requested=drifted,
        )

    def _settle(self, timestamp: float, accel: np.ndarray, rotation: Optional[np.ndarray]) -> PreprocessedSample:
        self._settle_buffer.append(accel)
        if len(self._settle_buffer) >= self.calibration.settle_samples:
            baseline = np.mean(self._settle_buffer, axis=0)
            self._settle_buffer = []
            if np.linalg.norm(baseline) < 1e-6:
                logger.warning("Gravity baseline is zero, restarting settle window")
            else:
                self._baseline = baseline
                self._gravity = baseline.copy()
                self._axes = _horse_frame(baseline)
                self._since_check = 0
                self.filter.reset()
                logger.info(
                    "Calibrated %s mount, gravity %.3f g",
                    self.mount.value, float(np.linalg.norm(baseline)),
                )

        return PreprocessedSample(
            timestamp=timestamp,
            vertical=float(accel[2]),
            lateral=float(accel[0]),
            forward=float(accel[1]),
            yaw_rate=None if rotation is None else float(rotation[2]),
            calibrated=False,
        )

    def _track_gravity(self, accel: np.ndarray) -> bool:
        alpha = self.config.GRAVITY_ALPHA
        self._gravity = alpha * accel + (1.0 - alpha) * self._gravity
        self._since_check += 1
        if self._since_check < self.config.DRIFT_CHECK_INTERVAL:
            return False
        self._since_check = 0

        angle = self.drift_angle()
        if angle <= self.calibration.drift_tolerance:
            return False

        self.recalibration_count += 1
        logger.warning(
            "Orientation drifted %.2f rad (tolerance %.2f), recalibrating (#%d)",
            angle, self.calibration.drift_tolerance, self.recalibration_count,
        )
        self._axes = None
        self._baseline = None
        self._settle_buffer = []
        return True

    def drift_angle(self) -> float:
        """Angle in radians between the tracked gravity and the baseline."""
        if self._gravity is None or self._axes is None:
            return 0.0
        norm = np.linalg.norm(self._gravity)
        if norm < 1e-6:
            return 0.0
        cosine = float(self._gravity @ self._axes[0]) / norm
        return float(np.arccos(np.clip(cosine, -1.0, 1.0)))

    def reset(self):
        self._settle_buffer = []
        self._axes = None
        self._baseline = None
        self._gravity = None
        self._since_check = 0
        self.filter.reset()
