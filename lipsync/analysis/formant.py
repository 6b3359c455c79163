"""Formant Extractor

Locates the first two vocal-tract resonances (F1, F2) of an analysis block.
Three interchangeable strategies return the same FormantEstimate:

- peak picking on the magnitude spectrum (default)
- linear prediction: Levinson-Durbin over the autocorrelation, then peak
  picking on the synthetic LPC envelope
- cepstral smoothing: liftered log spectrum, then peak picking on the envelope

An optional noise-reduction pipeline runs on the spectrum before peak picking.
"""

import logging
from collections import deque
from typing import Deque, List, Optional
import numpy as np

from lipsync.analysis.fft import MAGNITUDE_EPSILON, bin_to_frequency
from lipsync.analysis.noise import AdaptiveNoiseFilter, NoiseReductionPipeline
from lipsync.analysis.rms import sanitize_samples
from lipsync.models.enums import FormantMethod
from lipsync.models.errors import AudioProcessingError, ConfigurationError, DisposedError
from lipsync.models.features import FormantEstimate


logger = logging.getLogger(__name__)

# Peak picking
PEAK_THRESHOLD_RATIO = 0.1
MIN_PEAK_DISTANCE_HZ = 100.0

# F1 / F2 search ranges and fallbacks (Hz)
F1_RANGE = (200.0, 1000.0)
F1_DEFAULT = 700.0
F2_RANGE = (800.0, 3000.0)
F2_MIN_GAP = 300.0
F2_DEFAULT_OFFSET = 600.0

# Linear prediction
DEFAULT_LPC_ORDER = 12
LPC_ENVELOPE_SIZE = 1024

# Cepstral lifter length in seconds
DEFAULT_LIFTER_QUEFRENCY = 0.0015

# Tracker transition thresholds (Hz)
F1_TRANSITION_HZ = 300.0
F2_TRANSITION_HZ = 500.0


def silent_formants() -> FormantEstimate:
    """Formants reported for blocks without usable energy"""
    return FormantEstimate(f1=0.0, f2=0.0)


class FormantTracker:
    """Short rolling history of formant estimates.

    Provides a moving-average estimate and flags abrupt changes between
    consecutive updates, which mark phoneme transitions.

    Attributes:
        max_history: Number of estimates kept
    """

    def __init__(self, max_history: int = 5):
        if max_history <= 0:
            raise ConfigurationError(f"Tracker history must be positive, got {max_history}")
        self.max_history = max_history
        self._history: Deque[FormantEstimate] = deque(maxlen=max_history)

    def update(self, formants: FormantEstimate) -> None:
        self._history.append(formants)

    def get_smoothed(self) -> FormantEstimate:
        """Moving average over the history, zero formants when empty"""
        if not self._history:
            return silent_formants()
        count = len(self._history)
        return FormantEstimate(
            f1=sum(f.f1 for f in self._history) / count,
            f2=sum(f.f2 for f in self._history) / count
        )

    def detect_transition(self, formants: FormantEstimate) -> bool:
        """True when F1 moves more than 300 Hz or F2 more than 500 Hz
        relative to the last update"""
        if not self._history:
            return False
        last = self._history[-1]
        return (
            abs(formants.f1 - last.f1) > F1_TRANSITION_HZ
            or abs(formants.f2 - last.f2) > F2_TRANSITION_HZ
        )

    def reset(self) -> None:
        self._history.clear()

    def __len__(self) -> int:
        return len(self._history)


class FormantExtractor:
    """Estimates F1/F2 from spectra or raw samples.

    Attributes:
        noise_pipeline: Optional pipeline applied to spectra before peak picking
        lpc_order: Prediction order for the LPC strategy
        lifter_quefrency: Lifter length in seconds for the cepstral strategy
    """

    def __init__(
        self,
        noise_pipeline: Optional[NoiseReductionPipeline] = None,
        lpc_order: int = DEFAULT_LPC_ORDER,
        lifter_quefrency: float = DEFAULT_LIFTER_QUEFRENCY
    ):
        if lpc_order <= 0:
            raise ConfigurationError(f"LPC order must be positive, got {lpc_order}")
        if lifter_quefrency <= 0:
            raise ConfigurationError(f"Lifter quefrency must be positive, got {lifter_quefrency}")

        self.noise_pipeline = noise_pipeline
        self.lpc_order = lpc_order
        self.lifter_quefrency = lifter_quefrency
        self._disposed = False

        logger.debug(f"FormantExtractor initialized: lpc_order={lpc_order}, "
                     f"noise steps={noise_pipeline.step_names if noise_pipeline else []}")

    def extract_formants(self, spectrum: np.ndarray, sample_rate: float) -> FormantEstimate:
        """Estimate formants by peak picking on a magnitude spectrum.

        F1 is the first peak in [200, 1000] Hz, falling back to the lowest peak
        and then to 700 Hz. F2 is the first peak more than 300 Hz above F1 and
        within [800, 3000] Hz, falling back to F1 + 600 Hz.

        Args:
            spectrum: Magnitude spectrum of N/2 bins
            sample_rate: Sample rate in Hz

        Returns:
            FormantEstimate; zero formants for an empty or silent spectrum

        Raises:
            AudioProcessingError: If the noise-reduction pipeline fails
            DisposedError: If the extractor was disposed
        """
        self._check_disposed()
        data = self._prepare_spectrum(spectrum)
        if data is None:
            return silent_formants()

        if self.noise_pipeline is not None and len(self.noise_pipeline):
            try:
                data = self.noise_pipeline(data)
            except Exception as e:
                raise AudioProcessingError(f"Noise reduction failed: {e}") from e

        peaks = self.find_spectral_peaks(data, sample_rate)
        f1 = self._pick_f1(peaks)
        return FormantEstimate(f1=f1, f2=self._pick_f2(peaks, f1))

    def find_spectral_peaks(self, spectrum: np.ndarray, sample_rate: float) -> List[float]:
        """Frequencies of local maxima above 10% of the global maximum.

        Peaks closer than 100 Hz to the previously accepted peak are dropped.

        Returns:
            Peak frequencies in ascending order
        """
        self._check_disposed()
        data = np.asarray(spectrum, dtype=np.float64)
        if data.size < 3:
            return []

        threshold = float(np.max(data)) * PEAK_THRESHOLD_RATIO
        middle = data[1:-1]
        is_peak = (middle > data[:-2]) & (middle > data[2:]) & (middle > threshold)
        peak_bins = np.nonzero(is_peak)[0] + 1

        fft_size = data.size * 2
        peaks: List[float] = []
        for b in peak_bins:
            frequency = bin_to_frequency(int(b), sample_rate, fft_size)
            if not peaks or frequency - peaks[-1] > MIN_PEAK_DISTANCE_HZ:
                peaks.append(frequency)
        return peaks

    def estimate_formants_lpc(self, samples: np.ndarray, sample_rate: float) -> FormantEstimate:
        """Estimate formants from the LPC envelope of raw samples.

        Args:
            samples: Time-domain block
            sample_rate: Sample rate in Hz

        Returns:
            FormantEstimate; zero formants for a silent block

        Raises:
            AudioProcessingError: If the recursion becomes numerically unstable
        """
        self._check_disposed()
        data = sanitize_samples(samples)
        if data.size <= self.lpc_order or not np.any(data):
            return silent_formants()

        try:
            coefficients = self._lpc_coefficients(data, self.lpc_order)
            envelope = self._lpc_envelope(coefficients, LPC_ENVELOPE_SIZE)
        except (FloatingPointError, ValueError, ZeroDivisionError) as e:
            raise AudioProcessingError(f"LPC analysis failed: {e}") from e

        peaks = self.find_spectral_peaks(envelope, sample_rate)
        f1 = self._pick_f1(peaks)
        return FormantEstimate(f1=f1, f2=self._pick_f2(peaks, f1))

    def extract_formants_cepstrum(self, spectrum: np.ndarray, sample_rate: float) -> FormantEstimate:
        """Estimate formants from a cepstrally smoothed spectral envelope.

        The log magnitude spectrum is taken to the quefrency domain, the
        low-quefrency part (vocal-tract envelope) is kept and the result is
        transformed back before peak picking.
        """
        self._check_disposed()
        data = self._prepare_spectrum(spectrum)
        if data is None or data.size < 4:
            return silent_formants()

        try:
            envelope = self._cepstral_envelope(data, sample_rate)
        except (FloatingPointError, ValueError) as e:
            raise AudioProcessingError(f"Cepstral analysis failed: {e}") from e

        peaks = self.find_spectral_peaks(envelope, sample_rate)
        f1 = self._pick_f1(peaks)
        return FormantEstimate(f1=f1, f2=self._pick_f2(peaks, f1))

    def estimate(
        self,
        method: FormantMethod,
        spectrum: np.ndarray,
        samples: np.ndarray,
        sample_rate: float
    ) -> FormantEstimate:
        """Dispatch to the strategy selected by ``method``"""
        if method == FormantMethod.LPC:
            return self.estimate_formants_lpc(samples, sample_rate)
        if method == FormantMethod.CEPSTRUM:
            return self.extract_formants_cepstrum(spectrum, sample_rate)
        return self.extract_formants(spectrum, sample_rate)

    def create_formant_tracker(self, max_history: int = 5) -> FormantTracker:
        return FormantTracker(max_history)

    def create_adaptive_noise_filter(self, profile_size: int = 512) -> AdaptiveNoiseFilter:
        return AdaptiveNoiseFilter(profile_size=profile_size)

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        """Invalidate the extractor; subsequent calls raise DisposedError."""
        self._disposed = True
        self.noise_pipeline = None

    @staticmethod
    def _prepare_spectrum(spectrum) -> Optional[np.ndarray]:
        data = np.asarray(spectrum, dtype=np.float64).ravel()
        if data.size == 0:
            return None
        if not np.all(np.isfinite(data)):
            data = np.nan_to_num(data, nan=0.0, posinf=0.0, neginf=0.0)
        if float(np.max(data)) <= 0.0:
            return None
        return data

    @staticmethod
    def _pick_f1(peaks: List[float]) -> float:
        low, high = F1_RANGE
        for peak in peaks:
            if low <= peak <= high:
                return peak
        return peaks[0] if peaks else F1_DEFAULT

    @staticmethod
    def _pick_f2(peaks: List[float], f1: float) -> float:
        low, high = F2_RANGE
        for peak in peaks:
            if peak > f1 + F2_MIN_GAP and low <= peak <= high:
                return peak
        return f1 + F2_DEFAULT_OFFSET

    @staticmethod
    def _lpc_coefficients(samples: np.ndarray, order: int) -> np.ndarray:
        """Levinson-Durbin recursion on the autocorrelation.

        Returns:
            Prediction polynomial [1, a1, ..., a_order]
        """
        n = samples.size
        autocorr = np.array([np.dot(samples[:n - lag], samples[lag:]) for lag in range(order + 1)])

        coefficients = np.zeros(order + 1)
        coefficients[0] = 1.0
        error = autocorr[0]

        for i in range(1, order + 1):
            if error <= 0.0 or not np.isfinite(error):
                raise FloatingPointError(f"prediction error collapsed at order {i}")
            acc = autocorr[i] + np.dot(coefficients[1:i], autocorr[i - 1:0:-1])
            reflection = -acc / error
            previous = coefficients.copy()
            coefficients[1:i] = previous[1:i] + reflection * previous[i - 1:0:-1]
            coefficients[i] = reflection
            error *= (1.0 - reflection * reflection)

        return coefficients

    @staticmethod
    def _lpc_envelope(coefficients: np.ndarray, size: int) -> np.ndarray:
        """Magnitude of 1 / A(e^jw) on the first size/2 bins"""
        response = np.abs(np.fft.rfft(coefficients, n=size))[:size // 2]
        return 1.0 / np.maximum(response, MAGNITUDE_EPSILON)

    def _cepstral_envelope(self, spectrum: np.ndarray, sample_rate: float) -> np.ndarray:
        log_spectrum = np.log(np.maximum(spectrum, MAGNITUDE_EPSILON))
        cepstrum = np.fft.irfft(log_spectrum)

        cutoff = int(sample_rate * self.lifter_quefrency)
        cutoff = max(1, min(cutoff, cepstrum.size // 2))
        liftered = np.zeros_like(cepstrum)
        liftered[:cutoff] = cepstrum[:cutoff]
        # The real cepstrum is symmetric
        if cutoff > 1:
            liftered[-(cutoff - 1):] = cepstrum[-(cutoff - 1):]

        envelope = np.exp(np.fft.rfft(liftered).real)
        return envelope[:spectrum.size]

    def _check_disposed(self) -> None:
        if self._disposed:
            raise DisposedError("FormantExtractor is disposed")
