"""Spectral Transform

Windowed FFT producing the magnitude spectrum of one analysis block. Two
interchangeable kernels sit behind the same processor: a portable radix-2
Cooley-Tukey implementation and numpy's native FFT. The kernel is chosen at
construction through ``create_fft_processor``.
"""

import logging
from typing import Dict, List, Optional, Tuple
import numpy as np

from lipsync.models.enums import WindowFunction
from lipsync.models.errors import ConfigurationError, DisposedError, InvalidInputSizeError
from lipsync.models.interfaces import SpectralTransform
from lipsync.models.settings import (
    AudioAnalyzerConfig, FFT_BACKENDS, coerce_enum, validate_fft_size, validate_sample_rate
)


logger = logging.getLogger(__name__)

# Floor used before taking logarithms of magnitudes
MAGNITUDE_EPSILON = 1e-10


def frequency_to_bin(frequency: float, sample_rate: float, fft_size: int) -> int:
    """Convert a frequency in Hz to the nearest bin index"""
    return int(round(frequency * fft_size / sample_rate))


def bin_to_frequency(bin_index: float, sample_rate: float, fft_size: int) -> float:
    """Convert a bin index to its center frequency in Hz"""
    return bin_index * sample_rate / fft_size


def make_window(window: WindowFunction, size: int) -> np.ndarray:
    """Build a symmetric window of the given type

    Args:
        window: Window function
        size: Number of samples

    Returns:
        Window coefficients as float64 array
    """
    n = np.arange(size)
    denom = max(size - 1, 1)
    if window == WindowFunction.HAMMING:
        return 0.54 - 0.46 * np.cos(2 * np.pi * n / denom)
    if window == WindowFunction.HANNING:
        return 0.5 - 0.5 * np.cos(2 * np.pi * n / denom)
    if window == WindowFunction.BLACKMAN:
        return (
            0.42
            - 0.5 * np.cos(2 * np.pi * n / denom)
            + 0.08 * np.cos(4 * np.pi * n / denom)
        )
    return np.ones(size)


class Radix2Kernel:
    """Iterative radix-2 Cooley-Tukey FFT

    Bit-reversal permutation followed by log2(N) butterfly stages. Each stage is
    vectorised over all butterflies of the stage; the permutation and twiddle
    factors are precomputed for the configured size.
    """

    def __init__(self, size: int):
        self.size = size
        self._bit_reversed = self._bit_reverse_indices(size)
        self._twiddles: List[np.ndarray] = []

        stage = 2
        while stage <= size:
            half = stage // 2
            self._twiddles.append(np.exp(-2j * np.pi * np.arange(half) / stage))
            stage *= 2

    @staticmethod
    def _bit_reverse_indices(size: int) -> np.ndarray:
        bits = size.bit_length() - 1
        indices = np.arange(size)
        reversed_indices = np.zeros(size, dtype=np.int64)
        for b in range(bits):
            reversed_indices |= ((indices >> b) & 1) << (bits - 1 - b)
        return reversed_indices

    def __call__(self, data: np.ndarray, inverse: bool = False) -> np.ndarray:
        out = np.array(data, dtype=np.complex128)[self._bit_reversed]

        stage = 2
        for twiddle in self._twiddles:
            half = stage // 2
            if inverse:
                twiddle = np.conj(twiddle)
            blocks = out.reshape(-1, stage)
            even = blocks[:, :half]
            odd = blocks[:, half:] * twiddle
            top = even + odd
            bottom = even - odd
            blocks[:, :half] = top
            blocks[:, half:] = bottom
            stage *= 2

        if inverse:
            out /= self.size
        return out


class NumpyKernel:
    """Native FFT backed by numpy.fft"""

    def __init__(self, size: int):
        self.size = size

    def __call__(self, data: np.ndarray, inverse: bool = False) -> np.ndarray:
        if inverse:
            return np.fft.ifft(data)
        return np.fft.fft(data)


_KERNELS = {
    "radix2": Radix2Kernel,
    "numpy": NumpyKernel,
}


class FFTProcessor(SpectralTransform):
    """Windowed FFT over fixed-size blocks.

    The window is precomputed once at construction. Input blocks must be exactly
    ``fft_size`` samples long; blocks of any other length raise
    InvalidInputSizeError rather than being padded or truncated.

    Attributes:
        fft_size: Analysis window size (power of two)
        sample_rate: Default sample rate for bin/frequency conversion
        window: Window function applied by forward() and transform()
        backend: Name of the FFT kernel
    """

    def __init__(
        self,
        fft_size: int = 2048,
        sample_rate: int = 48000,
        window: WindowFunction = WindowFunction.HAMMING,
        backend: str = "radix2",
        min_decibels: float = -90.0,
        max_decibels: float = -10.0
    ):
        validate_fft_size(fft_size)
        validate_sample_rate(sample_rate)
        if backend not in _KERNELS:
            raise ConfigurationError(
                f"Unknown FFT backend: {backend!r}, expected one of {FFT_BACKENDS}"
            )
        if min_decibels >= max_decibels:
            raise ConfigurationError(
                f"Min decibels must be less than max decibels, "
                f"got min={min_decibels}, max={max_decibels}"
            )

        self.fft_size = fft_size
        self.sample_rate = sample_rate
        self.window = coerce_enum(WindowFunction, window, "window")
        self.backend = backend
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels
        self._kernel = _KERNELS[backend](fft_size)
        self._disposed = False

        # Precompute every window once
        self._windows: Dict[WindowFunction, np.ndarray] = {
            w: make_window(w, fft_size) for w in WindowFunction
        }

        logger.debug(f"FFTProcessor initialized: size={fft_size}, backend={backend}, "
                     f"window={self.window.value}")

    def forward(self, samples: np.ndarray) -> np.ndarray:
        """Run the windowed FFT and return magnitudes of the first N/2 bins.

        Args:
            samples: Block of exactly fft_size samples

        Returns:
            Magnitude spectrum, length fft_size / 2

        Raises:
            InvalidInputSizeError: If the block length is wrong
            DisposedError: If the processor was disposed
        """
        real, imag = self.transform(samples)
        half = self.fft_size // 2
        return np.sqrt(real[:half] ** 2 + imag[:half] ** 2)

    def transform(self, samples: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Run the windowed FFT and return the full complex spectrum."""
        block = self._check_block(samples)
        result = self._kernel(block * self._windows[self.window])
        return result.real.copy(), result.imag.copy()

    def inverse(self, real: np.ndarray, imag: np.ndarray) -> np.ndarray:
        """Inverse FFT of a full complex spectrum.

        Args:
            real: Real parts, length fft_size
            imag: Imaginary parts, length fft_size

        Returns:
            Time-domain samples (real part)
        """
        self._check_disposed()
        real = np.asarray(real, dtype=np.float64)
        imag = np.asarray(imag, dtype=np.float64)
        if real.shape != (self.fft_size,) or imag.shape != (self.fft_size,):
            raise InvalidInputSizeError(
                f"Input size must be {self.fft_size}, got {real.shape} / {imag.shape}"
            )
        return self._kernel(real + 1j * imag, inverse=True).real

    def apply_window(self, samples: np.ndarray, window: Optional[WindowFunction] = None) -> np.ndarray:
        """Multiply a block by a precomputed window (the configured one by default)"""
        block = self._check_block(samples)
        return block * self._windows[coerce_enum(WindowFunction, window, "window") if window else self.window]

    def apply_hamming_window(self, samples: np.ndarray) -> np.ndarray:
        return self.apply_window(samples, WindowFunction.HAMMING)

    def apply_hanning_window(self, samples: np.ndarray) -> np.ndarray:
        return self.apply_window(samples, WindowFunction.HANNING)

    def get_spectrum(self, samples: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Return (frequencies, magnitudes) for a block."""
        magnitudes = self.forward(samples)
        frequencies = bin_to_frequency(np.arange(len(magnitudes)), self.sample_rate, self.fft_size)
        return frequencies, magnitudes

    def get_power_spectrum(self, samples: np.ndarray) -> np.ndarray:
        """Squared magnitudes of the first N/2 bins."""
        return self.forward(samples) ** 2

    def get_spectrum_db(self, samples: np.ndarray) -> np.ndarray:
        """Magnitude spectrum in dB, clamped to [min_decibels, max_decibels]."""
        spectrum = self.forward(samples)
        db = 20.0 * np.log10(np.maximum(spectrum, MAGNITUDE_EPSILON))
        return np.clip(db, self.min_decibels, self.max_decibels)

    def find_peak_frequency(self, spectrum: np.ndarray, sample_rate: Optional[float] = None) -> float:
        """Frequency of the strongest bin, skipping DC.

        Args:
            spectrum: Magnitude spectrum (N/2 bins)
            sample_rate: Sample rate in Hz, defaults to the processor's

        Returns:
            Peak frequency in Hz, 0.0 for an empty or single-bin spectrum
        """
        self._check_disposed()
        spectrum = np.asarray(spectrum)
        if spectrum.size < 2:
            return 0.0
        peak_bin = int(np.argmax(spectrum[1:])) + 1
        return bin_to_frequency(peak_bin, sample_rate or self.sample_rate, len(spectrum) * 2)

    def find_peaks(self, spectrum: np.ndarray, count: int, sample_rate: Optional[float] = None) -> List[float]:
        """Frequencies of the ``count`` strongest local maxima, strongest first."""
        self._check_disposed()
        spectrum = np.asarray(spectrum)
        if spectrum.size < 3 or count <= 0:
            return []

        middle = spectrum[1:-1]
        is_peak = (middle > spectrum[:-2]) & (middle > spectrum[2:])
        peak_bins = np.nonzero(is_peak)[0] + 1
        strongest = peak_bins[np.argsort(spectrum[peak_bins], kind="stable")[::-1]][:count]

        rate = sample_rate or self.sample_rate
        return [bin_to_frequency(int(b), rate, len(spectrum) * 2) for b in strongest]

    def frequency_to_bin(self, frequency: float, sample_rate: Optional[float] = None) -> int:
        return frequency_to_bin(frequency, sample_rate or self.sample_rate, self.fft_size)

    def bin_to_frequency(self, bin_index: float, sample_rate: Optional[float] = None) -> float:
        return bin_to_frequency(bin_index, sample_rate or self.sample_rate, self.fft_size)

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        """Release buffers; subsequent processing raises DisposedError."""
        if not self._disposed:
            logger.debug("FFTProcessor disposed")
        self._disposed = True
        self._windows = {}

    def _check_block(self, samples: np.ndarray) -> np.ndarray:
        self._check_disposed()
        block = np.asarray(samples, dtype=np.float64)
        if block.ndim != 1 or block.shape[0] != self.fft_size:
            raise InvalidInputSizeError(
                f"Input size must be {self.fft_size}, got {block.shape[0] if block.ndim else 0}"
            )
        return block

    def _check_disposed(self) -> None:
        if self._disposed:
            raise DisposedError("FFTProcessor is disposed")


def create_fft_processor(
    fft_size: int = 2048,
    sample_rate: int = 48000,
    window: WindowFunction = WindowFunction.HAMMING,
    backend: str = "radix2",
    min_decibels: float = -90.0,
    max_decibels: float = -10.0
) -> FFTProcessor:
    """Create a spectral transform with the requested backend.

    Args:
        fft_size: Analysis window size, power of two in [32, 32768]
        sample_rate: Sample rate in Hz
        window: Window function
        backend: "radix2" or "numpy"
        min_decibels: Lower clamp for dB spectra
        max_decibels: Upper clamp for dB spectra

    Returns:
        FFTProcessor using the selected kernel

    Raises:
        ConfigurationError: If the size, sample rate, backend or decibel range
            is invalid
    """
    return FFTProcessor(
        fft_size=fft_size,
        sample_rate=sample_rate,
        window=window,
        backend=backend,
        min_decibels=min_decibels,
        max_decibels=max_decibels
    )


def fft_processor_from_settings(settings: AudioAnalyzerConfig) -> FFTProcessor:
    """Create the spectral transform described by analyzer settings"""
    return create_fft_processor(
        fft_size=settings.fft_size,
        sample_rate=settings.sample_rate,
        window=settings.window,
        backend=settings.fft_backend,
        min_decibels=settings.min_decibels,
        max_decibels=settings.max_decibels
    )
