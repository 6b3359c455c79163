"""Level Estimator

Root-mean-square loudness of sample blocks, with a hard noise gate and a
rolling, exponentially smoothed variant fed from a fixed-size ring buffer.
"""

import logging
import numpy as np

from lipsync.models.errors import ConfigurationError


logger = logging.getLogger(__name__)

# RMS below this level is treated as silence
DEFAULT_NOISE_FLOOR = 0.01


def sanitize_samples(samples) -> np.ndarray:
    """Return a float64 copy with NaN replaced by 0 and infinities clipped to +/-1"""
    data = np.asarray(samples, dtype=np.float64).ravel()
    if not np.all(np.isfinite(data)):
        data = np.nan_to_num(data, nan=0.0, posinf=1.0, neginf=-1.0)
    return data


def calculate_rms(samples, noise_floor: float = DEFAULT_NOISE_FLOOR) -> float:
    """Calculate the RMS level of a block of samples.

    The squares are accumulated in float64 so long float32 blocks do not lose
    precision.

    Args:
        samples: Sample values, any length
        noise_floor: Levels strictly below this are reported as 0

    Returns:
        RMS level, 0.0 for empty input or input below the noise floor
    """
    data = sanitize_samples(samples)
    if data.size == 0:
        return 0.0

    rms = float(np.sqrt(np.mean(data * data)))
    if rms < noise_floor:
        return 0.0
    return rms


class RMSProcessor:
    """Rolling RMS over the most recent ``window_size`` samples.

    Incoming samples are written into a ring buffer; every call to ``process``
    recomputes the RMS of the whole buffer and moves the smoothed level towards
    it by ``smoothing_factor``.

    Attributes:
        window_size: Ring buffer length in samples
        smoothing_factor: Fraction of the gap closed per call, (0, 1]
        noise_floor: Raw levels below this count as silence
        level: Current smoothed level
    """

    def __init__(self, window_size: int = 2048, smoothing_factor: float = 0.3,
                 noise_floor: float = 0.0):
        if not isinstance(window_size, int) or window_size <= 0:
            raise ConfigurationError(f"Window size must be a positive integer, got {window_size}")
        if not 0.0 < smoothing_factor <= 1.0:
            raise ConfigurationError(
                f"Smoothing factor must be in (0, 1], got {smoothing_factor}"
            )
        if noise_floor < 0.0:
            raise ConfigurationError(f"Noise floor must be non-negative, got {noise_floor}")

        self.window_size = window_size
        self.smoothing_factor = smoothing_factor
        self.noise_floor = noise_floor
        self.level = 0.0

        self._buffer = np.zeros(window_size, dtype=np.float64)
        self._write_index = 0

    def process(self, samples) -> float:
        """Push samples into the ring buffer and return the smoothed level.

        Args:
            samples: New samples, any length

        Returns:
            Smoothed RMS level after this update
        """
        data = sanitize_samples(samples)
        if data.size >= self.window_size:
            # Only the newest window survives
            self._buffer[:] = data[-self.window_size:]
            self._write_index = 0
        elif data.size:
            end = self._write_index + data.size
            if end <= self.window_size:
                self._buffer[self._write_index:end] = data
            else:
                split = self.window_size - self._write_index
                self._buffer[self._write_index:] = data[:split]
                self._buffer[:data.size - split] = data[split:]
            self._write_index = end % self.window_size

        raw = calculate_rms(self._buffer, self.noise_floor)
        self.level += (raw - self.level) * self.smoothing_factor
        return self.level

    def reset(self) -> None:
        """Clear the ring buffer and the smoothed level"""
        self._buffer.fill(0.0)
        self._write_index = 0
        self.level = 0.0

    @staticmethod
    def calculate_window_rms(pcm, start: int, window: int) -> float:
        """RMS of ``pcm[start:start + window]``.

        The window is truncated at the end of the buffer.

        Args:
            pcm: Sample buffer
            start: Offset of the first sample
            window: Number of samples

        Returns:
            RMS of the window, 0.0 for an empty buffer, a non-positive window
            or an out-of-range offset
        """
        data = sanitize_samples(pcm)
        if data.size == 0 or window <= 0 or start < 0 or start >= data.size:
            return 0.0
        segment = data[start:start + window]
        return float(np.sqrt(np.mean(segment * segment)))
