"""
Signal filtering for streamed motion samples.

Two filters are used by the engine:
1. Exponential moving average (per-sample smoothing in the preprocessor)
2. Butterworth low-pass (batch smoothing of lateral windows for lead detection)
"""

from typing import Optional

import numpy as np
from scipy.signal import butter, sosfiltfilt


class ExponentialFilter:
    """
    Causal EMA over vector samples.

    ``y = alpha * x + (1 - alpha) * y_prev``; lower alpha smooths more. The
    first sample after construction or reset passes through unchanged.
    """

    def __init__(self, alpha: float):
        if not 0.0 < alpha <= 1.0:
            raise ValueError(f"alpha must be in (0, 1], got {alpha}")
        self.alpha = alpha
        self.state: Optional[np.ndarray] = None

    def filter_sample(self, sample) -> np.ndarray:
        """
        Filter a single sample.

        Args:
            sample: Scalar or vector input

        Returns:
            Filtered value with the same shape as the input
        """
        x = np.asarray(sample, dtype=float)
        if self.state is None:
            self.state = x.copy()
        else:
            self.state = self.alpha * x + (1.0 - self.alpha) * self.state
        return self.state.copy()

    def reset(self):
        self.state = None


class ButterworthFilter:
    """
    Butterworth low-pass using second-order sections.

    Runs zero-phase over complete windows so peak timing is not shifted.
    """

    def __init__(self, cutoff: float, fs: int, order: int = 4):
        """
        Initialize Butterworth filter.

        Args:
            cutoff: Cutoff frequency in Hz
            fs: Sampling rate in Hz
            order: Filter order
        """
        if not 0 < cutoff < fs / 2:
            raise ValueError(f"cutoff must be between 0 and {fs / 2} Hz, got {cutoff}")
        self.cutoff = cutoff
        self.fs = fs
        self.order = order
        self.sos = butter(order, cutoff, btype="low", fs=fs, output="sos")

    def filter_window(self, samples: np.ndarray) -> np.ndarray:
        """
        Zero-phase filter a whole window.

        Windows too short for the filter's padding are returned unchanged.
        """
        samples = np.asarray(samples, dtype=float)
        padlen = 3 * (2 * len(self.sos) + 1)
        if len(samples) <= padlen:
            return samples
        return sosfiltfilt(self.sos, samples)
