"""Base interfaces for interchangeable pipeline collaborators"""

from abc import ABC, abstractmethod
from typing import Tuple
import numpy as np


class SpectralTransform(ABC):
    """Interface for spectral transform backends"""

    @abstractmethod
    def forward(self, samples: np.ndarray) -> np.ndarray:
        """Compute the magnitude spectrum of a block

        Args:
            samples: Block of exactly fft_size samples

        Returns:
            Magnitudes of the first fft_size / 2 bins
        """
        pass

    @abstractmethod
    def transform(self, samples: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Compute the full complex spectrum as (real, imag) arrays"""
        pass

    @abstractmethod
    def inverse(self, real: np.ndarray, imag: np.ndarray) -> np.ndarray:
        """Transform a complex spectrum back to the time domain"""
        pass

    @abstractmethod
    def apply_window(self, samples: np.ndarray) -> np.ndarray:
        """Multiply a block by the precomputed window"""
        pass

    @abstractmethod
    def dispose(self) -> None:
        """Release resources; later calls must fail"""
        pass


class MouthRenderer(ABC):
    """Interface of the external avatar renderer"""

    @abstractmethod
    def set_parameter(self, parameter_id: str, value: float) -> None:
        """Set one model parameter

        Args:
            parameter_id: Parameter id, e.g. "ParamMouthOpenY"
            value: Normalized parameter value
        """
        pass
