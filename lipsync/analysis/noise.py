"""Spectral noise-reduction operators

Every operator takes a magnitude spectrum and returns a new one of the same
length; inputs are never modified. Operators are composed into an ordered
``NoiseReductionPipeline`` that the formant extractor runs before peak picking.
"""

import logging
from functools import partial
from typing import Callable, Iterable, List, Optional, Sequence, Tuple
import numpy as np

from lipsync.models.errors import ConfigurationError


logger = logging.getLogger(__name__)

SpectrumOperator = Callable[[np.ndarray], np.ndarray]

# Share of the quietest bins averaged into the noise floor estimate
NOISE_FLOOR_PERCENTILE = 0.3

# Attenuation applied to bins that are judged to be noise
FLOOR_ATTENUATION = 0.1
ADAPTIVE_ATTENUATION = 0.02

# Bins per e-fold of the low-pass roll-off
LOWPASS_ROLLOFF_BINS = 50.0


def _as_spectrum(spectrum) -> np.ndarray:
    return np.asarray(spectrum, dtype=np.float64)


def estimate_noise_floor(spectrum) -> float:
    """Mean of the quietest 30% of bins.

    Returns:
        Noise floor estimate, 0.0 when the spectrum has fewer than 4 bins
    """
    data = np.sort(_as_spectrum(spectrum))
    count = int(data.size * NOISE_FLOOR_PERCENTILE)
    if count == 0:
        return 0.0
    return float(np.mean(data[:count]))


def spectral_floor_subtraction(spectrum) -> np.ndarray:
    """Suppress bins near the estimated noise floor.

    Bins below twice the floor are attenuated to 10%; the floor is subtracted
    from the remaining bins.

    Args:
        spectrum: Magnitude spectrum

    Returns:
        Filtered spectrum of the same length
    """
    data = _as_spectrum(spectrum)
    floor = estimate_noise_floor(data)
    return np.where(data < floor * 2.0, data * FLOOR_ATTENUATION, data - floor)


def median_filter(spectrum, window_size: int = 5) -> np.ndarray:
    """Running median for removing impulsive spikes.

    The window is truncated at both edges; for an even number of values the
    upper median is used.

    Args:
        spectrum: Magnitude spectrum
        window_size: Odd window length

    Returns:
        Filtered spectrum of the same length

    Raises:
        ValueError: If the window size is not a positive odd number
    """
    if window_size <= 0 or window_size % 2 == 0:
        raise ValueError(f"Median window size must be a positive odd number, got {window_size}")

    data = _as_spectrum(spectrum)
    half = window_size // 2
    filtered = np.empty_like(data)
    for i in range(data.size):
        window = np.sort(data[max(0, i - half):i + half + 1])
        filtered[i] = window[window.size // 2]
    return filtered


def spectral_subtraction(spectrum, noise_profile, over_subtraction: float = 2.0) -> np.ndarray:
    """Power-domain spectral subtraction.

    ``sqrt(max(0, S^2 - alpha * N^2))`` per bin.

    Args:
        spectrum: Noisy magnitude spectrum
        noise_profile: Noise magnitude spectrum, same length
        over_subtraction: Subtraction factor alpha

    Returns:
        Cleaned magnitude spectrum
    """
    data = _as_spectrum(spectrum)
    noise = _as_spectrum(noise_profile)
    if noise.shape != data.shape:
        raise ValueError(f"Noise profile length {noise.size} does not match spectrum length {data.size}")

    clean_power = np.maximum(0.0, data * data - over_subtraction * noise * noise)
    return np.sqrt(clean_power)


def wiener_filter(signal, noise) -> np.ndarray:
    """Scale each bin by the Wiener gain ``S / (S + N)`` on powers.

    Bins where both signal and noise are zero stay zero.
    """
    data = _as_spectrum(signal)
    noise = _as_spectrum(noise)
    if noise.shape != data.shape:
        raise ValueError(f"Noise length {noise.size} does not match signal length {data.size}")

    signal_power = data * data
    total_power = signal_power + noise * noise
    gain = np.divide(signal_power, total_power, out=np.zeros_like(data), where=total_power > 0)
    return data * gain


def low_pass_filter(spectrum, cutoff_frequency: float, sample_rate: float) -> np.ndarray:
    """Exponential roll-off above a cutoff frequency.

    Bins below ``floor(cutoff * 2 * len / sample_rate)`` pass unchanged; bins
    at or above it are scaled by ``exp(-(i - cutoff_bin) / 50)``.
    """
    data = _as_spectrum(spectrum)
    cutoff_bin = int(np.floor(cutoff_frequency * data.size * 2 / sample_rate))
    indices = np.arange(data.size)
    attenuation = np.exp(-np.maximum(indices - cutoff_bin, 0) / LOWPASS_ROLLOFF_BINS)
    return np.where(indices < cutoff_bin, data, data * attenuation)


class AdaptiveNoiseFilter:
    """Noise suppression with a learned noise profile.

    The profile is an exponential moving average of spectra passed to
    ``update_noise_profile`` (typically captured during silence). ``process``
    attenuates bins under ``2.5 x`` the profile and subtracts that multiple
    from the rest.

    Attributes:
        profile_size: Number of bins tracked; higher bins see zero noise
        alpha: EMA weight of each new profile spectrum
        frame_count: Number of profile updates so far
    """

    def __init__(self, profile_size: int = 512, alpha: float = 0.1, multiplier: float = 2.5):
        if profile_size <= 0:
            raise ConfigurationError(f"Profile size must be positive, got {profile_size}")
        if not 0.0 < alpha <= 1.0:
            raise ConfigurationError(f"Profile alpha must be in (0, 1], got {alpha}")

        self.profile_size = profile_size
        self.alpha = alpha
        self.multiplier = multiplier
        self.noise_profile = np.zeros(profile_size, dtype=np.float64)
        self.frame_count = 0

    def update_noise_profile(self, spectrum) -> None:
        """Blend a noise-only spectrum into the profile"""
        data = _as_spectrum(spectrum)
        n = min(data.size, self.profile_size)
        self.noise_profile[:n] = (1.0 - self.alpha) * self.noise_profile[:n] + self.alpha * data[:n]
        self.frame_count += 1

    def process(self, spectrum) -> np.ndarray:
        """Suppress the learned noise in a spectrum"""
        data = _as_spectrum(spectrum)
        noise = np.zeros_like(data)
        n = min(data.size, self.profile_size)
        noise[:n] = self.noise_profile[:n]

        threshold = noise * self.multiplier
        return np.where(
            data < threshold,
            data * ADAPTIVE_ATTENUATION,
            np.maximum(0.0, data - threshold)
        )

    def reset(self) -> None:
        self.noise_profile.fill(0.0)
        self.frame_count = 0


class NoiseReductionPipeline:
    """Ordered composition of spectrum operators

    Example:
        >>> pipeline = NoiseReductionPipeline([median_filter, spectral_floor_subtraction])
        >>> cleaned = pipeline(spectrum)
    """

    def __init__(self, steps: Optional[Iterable[Tuple[str, SpectrumOperator]]] = None):
        self._steps: List[Tuple[str, SpectrumOperator]] = []
        for step in steps or []:
            if callable(step):
                self.add_step(step)
            else:
                name, operator = step
                self.add_step(operator, name)

    def add_step(self, operator: SpectrumOperator, name: Optional[str] = None) -> "NoiseReductionPipeline":
        """Append an operator; returns the pipeline for chaining"""
        if not callable(operator):
            raise ConfigurationError(f"Noise reduction step must be callable, got {operator!r}")
        label = name or getattr(operator, "__name__", None) or type(operator).__name__
        self._steps.append((label, operator))
        return self

    @property
    def step_names(self) -> List[str]:
        return [name for name, _ in self._steps]

    def __len__(self) -> int:
        return len(self._steps)

    def __call__(self, spectrum) -> np.ndarray:
        return self.apply(spectrum)

    def apply(self, spectrum) -> np.ndarray:
        """Run every step in order"""
        result = _as_spectrum(spectrum)
        for _, operator in self._steps:
            result = operator(result)
        return result


def build_pipeline(
    names: Sequence[str],
    sample_rate: float = 48000,
    median_window: int = 5,
    lowpass_cutoff: float = 4000.0,
    adaptive_filter: Optional[AdaptiveNoiseFilter] = None
) -> NoiseReductionPipeline:
    """Build a pipeline from configuration step names.

    Known names: ``floor``, ``median``, ``lowpass``, ``adaptive``. Operators
    that need a separate noise estimate (spectral subtraction, Wiener) are not
    configurable by name and must be added with ``add_step``.

    Args:
        names: Step names in application order
        sample_rate: Sample rate used by the low-pass step
        median_window: Window for the median step
        lowpass_cutoff: Cutoff frequency for the low-pass step in Hz
        adaptive_filter: Filter used by the adaptive step (a new one if omitted)

    Returns:
        Configured pipeline

    Raises:
        ConfigurationError: If a name is unknown or the median window is even
    """
    if median_window <= 0 or median_window % 2 == 0:
        raise ConfigurationError(f"Median window must be a positive odd number, got {median_window}")

    pipeline = NoiseReductionPipeline()
    for name in names:
        if name == "floor":
            pipeline.add_step(spectral_floor_subtraction, name)
        elif name == "median":
            pipeline.add_step(partial(median_filter, window_size=median_window), name)
        elif name == "lowpass":
            pipeline.add_step(
                partial(low_pass_filter, cutoff_frequency=lowpass_cutoff, sample_rate=sample_rate),
                name
            )
        elif name == "adaptive":
            adaptive_filter = adaptive_filter or AdaptiveNoiseFilter()
            pipeline.add_step(adaptive_filter.process, name)
        else:
            raise ConfigurationError(
                f"Unknown noise reduction step: {name!r}, expected floor, median, lowpass or adaptive"
            )

    if pipeline.step_names:
        logger.debug(f"Noise reduction pipeline: {' -> '.join(pipeline.step_names)}")
    return pipeline
