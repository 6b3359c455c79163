"""Audio Analyzer

Facade running one sample block through the level estimator, the spectral
transform and the formant extractor.
"""

import logging
import time
from typing import Optional, Sequence
import numpy as np

from lipsync.analysis.fft import FFTProcessor, fft_processor_from_settings
from lipsync.analysis.formant import DEFAULT_LPC_ORDER, FormantExtractor, silent_formants
from lipsync.analysis.noise import AdaptiveNoiseFilter, build_pipeline
from lipsync.analysis.rms import calculate_rms, sanitize_samples
from lipsync.models.errors import DisposedError, InvalidInputSizeError
from lipsync.models.features import AudioFeatures
from lipsync.models.settings import AudioAnalyzerConfig


logger = logging.getLogger(__name__)

# RMS mapped to a level of 1.0
MAX_RMS_LEVEL = 1.0


class AudioAnalyzer:
    """Extracts AudioFeatures from fixed-size sample blocks.

    Blocks must be exactly ``settings.fft_size`` samples long; they are never
    padded or truncated. Blocks whose RMS falls below the noise floor skip
    formant estimation and report zero formants; when the noise pipeline has an
    adaptive step, their spectra train its noise profile.

    Attributes:
        settings: Validated analyzer settings
        fft_processor: Spectral transform for the configured backend
        formant_extractor: Formant estimation strategies
        noise_filter: Adaptive filter of the noise pipeline, if configured
        previous_rms: Last value of the smoothed RMS
    """

    def __init__(
        self,
        settings: Optional[AudioAnalyzerConfig] = None,
        fft_processor: Optional[FFTProcessor] = None,
        formant_extractor: Optional[FormantExtractor] = None,
        noise_filter: Optional[AdaptiveNoiseFilter] = None
    ):
        self.settings = settings or AudioAnalyzerConfig()
        self.fft_processor = fft_processor or fft_processor_from_settings(self.settings)

        if formant_extractor is None:
            if noise_filter is None and "adaptive" in self.settings.noise_reduction:
                noise_filter = AdaptiveNoiseFilter(profile_size=self.settings.fft_size // 2)
            formant_extractor = FormantExtractor(
                noise_pipeline=build_pipeline(
                    self.settings.noise_reduction,
                    self.settings.sample_rate,
                    adaptive_filter=noise_filter
                )
            )
        self.formant_extractor = formant_extractor
        self.noise_filter = noise_filter
        self.previous_rms = 0.0
        self._disposed = False

        logger.info(f"AudioAnalyzer initialized: fft_size={self.settings.fft_size}, "
                    f"sample_rate={self.settings.sample_rate}, "
                    f"method={self.settings.formant_method.value}")

    @classmethod
    def from_config(cls, cfg=None) -> "AudioAnalyzer":
        """Build an analyzer, including its noise pipeline, from YAML configuration"""
        if cfg is None:
            from lipsync.config.config_loader import config as cfg
        settings = AudioAnalyzerConfig.from_config(cfg)
        noise_filter = None
        if "adaptive" in settings.noise_reduction:
            noise_filter = AdaptiveNoiseFilter(
                profile_size=settings.fft_size // 2,
                alpha=cfg.get('noise_reduction.adaptive_alpha', 0.1),
            )
        pipeline = build_pipeline(
            settings.noise_reduction,
            sample_rate=settings.sample_rate,
            median_window=cfg.get('noise_reduction.median_window', 5),
            lowpass_cutoff=cfg.get('noise_reduction.lowpass_cutoff', 4000.0),
            adaptive_filter=noise_filter,
        )
        extractor = FormantExtractor(
            noise_pipeline=pipeline,
            lpc_order=cfg.get('analysis.lpc_order', DEFAULT_LPC_ORDER),
        )
        return cls(settings=settings, formant_extractor=extractor, noise_filter=noise_filter)

    def calculate_rms(self, samples) -> float:
        """Noise-gated RMS of a block of any length"""
        self._check_disposed()
        return calculate_rms(samples, self.settings.noise_floor)

    def calculate_smoothed_rms(self, samples) -> float:
        """Exponentially smoothed RMS using the smoothing time constant"""
        self._check_disposed()
        current = self.calculate_rms(samples)
        factor = self.settings.smoothing_time_constant
        self.previous_rms = factor * self.previous_rms + (1.0 - factor) * current
        return self.previous_rms

    def get_rms_level(self, samples) -> float:
        """RMS normalized to [0, 1]"""
        self._check_disposed()
        return min(self.calculate_rms(samples) / MAX_RMS_LEVEL, 1.0)

    def process_audio_buffer(self, buffer) -> AudioFeatures:
        """Analyse one block.

        Args:
            buffer: Exactly fft_size samples; NaN and infinite values are
                sanitised before analysis

        Returns:
            AudioFeatures with RMS, magnitude spectrum and formants

        Raises:
            InvalidInputSizeError: If the block length differs from fft_size
            AudioProcessingError: If formant estimation fails numerically
            DisposedError: If the analyzer was disposed
        """
        self._check_disposed()
        block = sanitize_samples(buffer)
        if block.size != self.settings.fft_size:
            raise InvalidInputSizeError(
                f"Input size must be {self.settings.fft_size}, got {block.size}"
            )

        rms = calculate_rms(block, self.settings.noise_floor)
        spectrum = self.fft_processor.forward(block)

        if rms == 0.0:
            formants = silent_formants()
            if self.noise_filter is not None:
                self.noise_filter.update_noise_profile(spectrum)
        else:
            formants = self.formant_extractor.estimate(
                self.settings.formant_method, spectrum, block, self.settings.sample_rate
            )

        return AudioFeatures(
            rms=rms,
            spectrum=spectrum,
            formants=formants,
            timestamp=time.monotonic()
        )

    def process_multi_channel_buffer(self, channels: Sequence) -> AudioFeatures:
        """Average all channels into one block and analyse it.

        Channels may differ in length; each output sample averages the
        channels that cover it.

        Raises:
            InvalidInputSizeError: If no channels are given or the mix has the
                wrong length
        """
        self._check_disposed()
        if len(channels) == 0:
            raise InvalidInputSizeError("No channels provided")
        return self.process_audio_buffer(mix_channels(channels))

    def get_buffer_size(self) -> int:
        return self.settings.fft_size

    def get_config(self) -> AudioAnalyzerConfig:
        return self.settings

    def is_initialized(self) -> bool:
        return not self._disposed

    def reset(self) -> None:
        """Forget the smoothed RMS and the learned noise profile"""
        self.previous_rms = 0.0
        if self.noise_filter is not None:
            self.noise_filter.reset()

    def dispose(self) -> None:
        """Dispose the transform and extractor; later calls raise DisposedError."""
        if self._disposed:
            return
        self._disposed = True
        self.previous_rms = 0.0
        self.fft_processor.dispose()
        self.formant_extractor.dispose()
        logger.info("AudioAnalyzer disposed")

    def _check_disposed(self) -> None:
        if self._disposed:
            raise DisposedError("AudioAnalyzer is disposed")


def mix_channels(channels: Sequence) -> np.ndarray:
    """Average channels of possibly different lengths into one float32 block"""
    arrays = [sanitize_samples(channel) for channel in channels]
    length = max(a.size for a in arrays)
    total = np.zeros(length, dtype=np.float64)
    counts = np.zeros(length, dtype=np.float64)
    for a in arrays:
        total[:a.size] += a
        counts[:a.size] += 1.0
    mixed = np.divide(total, counts, out=np.zeros_like(total), where=counts > 0)
    return mixed.astype(np.float32)
