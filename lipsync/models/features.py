"""Data models for extracted spectral features"""

from dataclasses import dataclass
from typing import Optional
import numpy as np


@dataclass
class FormantEstimate:
    """Dominant resonance frequencies of one analysis block

    Attributes:
        f1: First formant in Hz
        f2: Second formant in Hz (normally the larger of the two)
        f3: Optional third formant in Hz
    """
    f1: float
    f2: float
    f3: Optional[float] = None


@dataclass
class FormantRange:
    """Center and bounds of one formant for a reference vowel

    Attributes:
        min: Lower bound in Hz
        max: Upper bound in Hz
        center: Target frequency in Hz
    """
    min: float
    max: float
    center: float

    def __post_init__(self):
        """Validate range ordering"""
        assert self.min <= self.center <= self.max, "Center must lie within [min, max]"


@dataclass
class VowelPattern:
    """Reference formant pattern for one vowel"""
    f1: FormantRange
    f2: FormantRange

    @property
    def center(self) -> FormantEstimate:
        return FormantEstimate(f1=self.f1.center, f2=self.f2.center)


@dataclass
class AudioFeatures:
    """Features extracted from a single sample block

    Attributes:
        rms: Noise-gated RMS level of the block
        spectrum: Magnitude spectrum (N/2 bins)
        formants: Estimated formants
        timestamp: Monotonic time the block was analysed (seconds)
    """
    rms: float
    spectrum: np.ndarray
    formants: FormantEstimate
    timestamp: float

    def __post_init__(self):
        """Validate feature data"""
        assert self.rms >= 0.0, "RMS must be non-negative"
        assert isinstance(self.spectrum, np.ndarray), "Spectrum must be numpy array"
