"""Data models for messages sent from the audio context to the consumer"""

from dataclasses import dataclass
import numpy as np


@dataclass(frozen=True)
class AudioFeatureMessage:
    """Feature summary of one audio block

    Built on the audio context and handed to the consuming loop; the samples
    array is a read-only copy so no mutable state crosses the boundary.

    Attributes:
        rms: Noise-gated RMS level
        peak: Maximum absolute sample value
        zero_crossing_rate: Sign changes per sample
        energy: Sum of squared samples
        samples: Most recent block of samples (read-only float32)
        sample_rate: Sample rate in Hz
        timestamp: Seconds since the intake started
        processing_time: Time spent extracting features (milliseconds)
    """
    rms: float
    peak: float
    zero_crossing_rate: float
    energy: float
    samples: np.ndarray
    sample_rate: int
    timestamp: float
    processing_time: float = 0.0

    def __post_init__(self):
        """Validate message data.

        Validates:
            - RMS, peak and energy are non-negative
            - Sample rate is positive
            - Samples is a numpy array

        Raises:
            AssertionError: If any validation check fails
        """
        assert self.rms >= 0.0, "RMS must be non-negative"
        assert self.peak >= 0.0, "Peak must be non-negative"
        assert self.energy >= 0.0, "Energy must be non-negative"
        assert self.sample_rate > 0, "Sample rate must be positive"
        assert isinstance(self.samples, np.ndarray), "Samples must be numpy array"


@dataclass(frozen=True)
class TelemetryMessage:
    """Coarse performance telemetry from the audio context

    Attributes:
        latency: Smoothed processing time per block (milliseconds)
        cpu_usage: Estimated share of the update interval consumed (percent, 0-100)
        timestamp: Seconds since the intake started
    """
    latency: float
    cpu_usage: float
    timestamp: float

    def __post_init__(self):
        """Validate telemetry data"""
        assert self.latency >= 0.0, "Latency must be non-negative"
        assert 0.0 <= self.cpu_usage <= 100.0, "CPU usage must be in [0, 100]"
