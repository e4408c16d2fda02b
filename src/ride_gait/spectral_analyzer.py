"""Frequency-domain features of a window of vertical and yaw motion."""

from typing import Optional, Tuple

import numpy as np
from scipy.signal import coherence, get_window

from .config import EngineConfig
from .models import SpectralFeatures

# A local peak at half the dominant frequency is taken as the true stride
# frequency (trot puts most energy in H2) when it holds this share of the
# dominant power and stands this far above the median of the spectrum.
SUBHARMONIC_POWER_RATIO = 0.1
SUBHARMONIC_PROMINENCE = 10.0


class SpectralAnalyzer:
    """
    Stateless window analyzer.

    Holds only configuration so one instance can be shared with worker threads.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    def analyze(
        self,
        vertical: np.ndarray,
        yaw: Optional[np.ndarray],
        timestamp: float,
    ) -> SpectralFeatures:
        """
        Compute stride frequency, harmonic ratios, entropy and coherence.

        Args:
            vertical: Filtered vertical acceleration (g), oldest first
            yaw: Yaw rate (rad/s) aligned with ``vertical``, or None without rotation data
            timestamp: Timestamp of the last sample in the window

        Returns:
            SpectralFeatures; low confidence when the window is short or flat
        """
        vertical = np.asarray(vertical, dtype=float)
        n = len(vertical)
        if n == 0:
            return SpectralFeatures.empty(timestamp)

        centered = vertical - np.mean(vertical)
        rms = float(np.sqrt(np.mean(centered ** 2)))
        if n < self.config.MIN_WINDOW_SAMPLES:
            return SpectralFeatures(
                timestamp=timestamp, vertical_rms=rms, sample_count=n, low_confidence=True
            )

        fs = self.config.SAMPLING_RATE
        taper = get_window("hann", n)
        power = np.abs(np.fft.rfft(centered * taper)) ** 2
        freqs = np.fft.rfftfreq(n, d=1.0 / fs)
        resolution = freqs[1]

        band = np.where(
            (freqs >= self.config.MIN_STRIDE_FREQUENCY) & (freqs <= self.config.MAX_STRIDE_FREQUENCY)
        )[0]
        if len(band) == 0 or np.sum(power[band]) < 1e-12:
            return SpectralFeatures(
                timestamp=timestamp, vertical_rms=rms, sample_count=n, low_confidence=True
            )

        peak = int(band[np.argmax(power[band])])
        peak = self._subharmonic_peak(power, peak, resolution)
        stride_frequency = self._interpolate_peak(power, peak) * resolution

        fundamental = power[peak]
        h2 = self._harmonic_power(power, stride_frequency * 2, resolution) / fundamental
        h3 = self._harmonic_power(power, stride_frequency * 3, resolution) / fundamental

        return SpectralFeatures(
            timestamp=timestamp,
            stride_frequency=float(stride_frequency),
            spectral_entropy=self._entropy(power),
            h2_ratio=float(h2),
            h3_ratio=float(h3),
            coherence=self._coherence(centered, yaw, stride_frequency),
            vertical_rms=rms,
            sample_count=n,
            low_confidence=False,
        )

    def _subharmonic_peak(self, power: np.ndarray, peak: int, resolution: float) -> int:
        half = peak / 2
        if half * resolution < self.config.MIN_STRIDE_FREQUENCY:
            return peak
        lo, hi = self._bin_neighbourhood(int(round(half)), len(power))
        candidate = lo + int(np.argmax(power[lo:hi]))
        if candidate >= peak or not self._is_local_peak(power, candidate):
            return peak
        floor = float(np.median(power[1:]))
        if (
            power[candidate] >= SUBHARMONIC_POWER_RATIO * power[peak]
            and power[candidate] >= SUBHARMONIC_PROMINENCE * floor
        ):
            return candidate
        return peak

    @staticmethod
    def _is_local_peak(power: np.ndarray, index: int) -> bool:
        left = power[index - 1] if index > 0 else 0.0
        right = power[index + 1] if index < len(power) - 1 else 0.0
        return power[index] >= left and power[index] >= right

    @staticmethod
    def _interpolate_peak(power: np.ndarray, peak: int) -> float:
        """Quadratic interpolation of the peak position in fractional bins."""
        if peak <= 0 or peak >= len(power) - 1:
            return float(peak)
        a, b, c = power[peak - 1], power[peak], power[peak + 1]
        denom = a - 2 * b + c
        if denom == 0:
            return float(peak)
        offset = 0.5 * (a - c) / denom
        return peak + float(np.clip(offset, -0.5, 0.5))

    def _harmonic_power(self, power: np.ndarray, frequency: float, resolution: float) -> float:
        index = int(round(frequency / resolution))
        if index >= len(power):
            return 0.0
        lo, hi = self._bin_neighbourhood(index, len(power))
        return float(np.max(power[lo:hi]))

    @staticmethod
    def _bin_neighbourhood(index: int, length: int) -> Tuple[int, int]:
        return max(1, index - 1), min(length, index + 2)

    @staticmethod
    def _entropy(power: np.ndarray) -> float:
        spectrum = power[1:]
        total = np.sum(spectrum)
        if total <= 0 or len(spectrum) < 2:
            return 1.0
        p = spectrum / total
        p = p[p > 0]
        return float(-np.sum(p * np.log2(p)) / np.log2(len(spectrum)))

    def _coherence(self, vertical: np.ndarray, yaw: Optional[np.ndarray], frequency: float) -> float:
        if yaw is None:
            return 0.0
        yaw = np.asarray(yaw, dtype=float)
        if len(yaw) != len(vertical) or np.std(yaw) < 1e-9:
            return 0.0

        nperseg = min(self.config.COHERENCE_SEGMENT, len(vertical))
        noverlap = min(self.config.COHERENCE_OVERLAP, nperseg // 2)
        freqs, cxy = coherence(
            vertical, yaw - np.mean(yaw), fs=self.config.SAMPLING_RATE,
            nperseg=nperseg, noverlap=noverlap,
        )
        value = cxy[int(np.argmin(np.abs(freqs - frequency)))]
        if not np.isfinite(value):
            return 0.0
        return float(np.clip(value, 0.0, 1.0))
