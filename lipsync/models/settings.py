"""Validated configuration objects for the lip-sync pipeline

Each settings object is immutable and validated in ``__post_init__``. Invalid
values raise ConfigurationError immediately; runtime changes go through
``dataclasses.replace`` so they are validated the same way.
"""

from dataclasses import dataclass
from typing import Any, Optional, Tuple

from lipsync.models.enums import FormantMethod, LipSyncMode, WindowFunction
from lipsync.models.errors import ConfigurationError


MIN_FFT_SIZE = 32
MAX_FFT_SIZE = 32768
MAX_SAMPLE_RATE = 192000
FFT_BACKENDS = ("radix2", "numpy")


def validate_fft_size(size: int) -> None:
    """Check that a window size is a power of two within the supported range.

    Raises:
        ConfigurationError: If the size is out of range or not a power of two
    """
    if not isinstance(size, int) or size < MIN_FFT_SIZE or size > MAX_FFT_SIZE:
        raise ConfigurationError(
            f"FFT size must be between {MIN_FFT_SIZE} and {MAX_FFT_SIZE}, got {size}"
        )
    if size & (size - 1) != 0:
        raise ConfigurationError(f"FFT size must be a power of 2, got {size}")


def validate_sample_rate(sample_rate: float) -> None:
    """Check that a sample rate is positive and at most MAX_SAMPLE_RATE.

    Raises:
        ConfigurationError: If the sample rate is out of range
    """
    if not 0 < sample_rate <= MAX_SAMPLE_RATE:
        raise ConfigurationError(
            f"Sample rate must be between 0 and {MAX_SAMPLE_RATE}, got {sample_rate}"
        )


def _check_range(name: str, value: float, low: float, high: float) -> None:
    if not low <= value <= high:
        raise ConfigurationError(f"{name} must be between {low} and {high}, got {value}")


def coerce_enum(enum_cls, value: Any, name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        raise ConfigurationError(f"Invalid {name}: {value!r}, expected one of: {choices}")


@dataclass(frozen=True)
class AudioAnalyzerConfig:
    """Settings for the spectral analysis stages

    Attributes:
        fft_size: Analysis window size (power of two, 32-32768)
        sample_rate: Sample rate in Hz
        smoothing_time_constant: EMA factor for smoothed RMS, [0, 1]
        min_decibels: Lower clamp of the dB spectrum
        max_decibels: Upper clamp of the dB spectrum
        window: Window function applied before the transform
        fft_backend: "radix2" (portable) or "numpy" (native)
        formant_method: Formant estimation strategy
        noise_reduction: Ordered names of noise-reduction steps
        noise_floor: RMS noise gate threshold
    """
    fft_size: int = 2048
    sample_rate: int = 48000
    smoothing_time_constant: float = 0.8
    min_decibels: float = -90.0
    max_decibels: float = -10.0
    window: WindowFunction = WindowFunction.HAMMING
    fft_backend: str = "radix2"
    formant_method: FormantMethod = FormantMethod.PEAKS
    noise_reduction: Tuple[str, ...] = ()
    noise_floor: float = 0.01

    def __post_init__(self):
        """Validate analyzer settings"""
        validate_fft_size(self.fft_size)
        validate_sample_rate(self.sample_rate)
        _check_range("Smoothing time constant", self.smoothing_time_constant, 0.0, 1.0)
        if self.min_decibels >= self.max_decibels:
            raise ConfigurationError(
                f"Min decibels must be less than max decibels, "
                f"got min={self.min_decibels}, max={self.max_decibels}"
            )
        if self.fft_backend not in FFT_BACKENDS:
            raise ConfigurationError(
                f"Unknown FFT backend: {self.fft_backend!r}, expected one of {FFT_BACKENDS}"
            )
        _check_range("Noise floor", self.noise_floor, 0.0, 1.0)
        object.__setattr__(self, "window", coerce_enum(WindowFunction, self.window, "window"))
        object.__setattr__(
            self, "formant_method",
            coerce_enum(FormantMethod, self.formant_method, "formant method")
        )
        object.__setattr__(self, "noise_reduction", tuple(self.noise_reduction))

    @classmethod
    def from_config(cls, cfg=None) -> "AudioAnalyzerConfig":
        """Build analyzer settings from the YAML configuration"""
        if cfg is None:
            from lipsync.config.config_loader import config as cfg
        return cls(
            fft_size=cfg.get('analysis.fft_size', 2048),
            sample_rate=cfg.get('audio.sample_rate', 48000),
            smoothing_time_constant=cfg.get('analysis.smoothing_time_constant', 0.8),
            min_decibels=cfg.get('analysis.min_decibels', -90.0),
            max_decibels=cfg.get('analysis.max_decibels', -10.0),
            window=cfg.get('analysis.window', 'hamming'),
            fft_backend=cfg.get('analysis.fft_backend', 'radix2'),
            formant_method=cfg.get('analysis.formant_method', 'peaks'),
            noise_reduction=tuple(cfg.get('noise_reduction.steps', [])),
            noise_floor=cfg.get('audio.noise_floor', 0.01),
        )


@dataclass(frozen=True)
class LipSyncConfig:
    """Settings for the lip-sync controller

    Attributes:
        smoothing_factor: Smoothing strength, [0, 1] (higher is smoother)
        min_confidence: Classifications below this confidence are ignored
        update_interval_ms: Minimum time between accepted updates
        mode: Full formant path or RMS-only path
        stabilize: Pass classifications through the tracker and hysteresis gate
        hysteresis_threshold: Confidence needed to switch vowels when stabilizing
        rms_scale: Gain applied to RMS in RMS mode
        rms_floor: Scaled RMS below this value closes the mouth in RMS mode
        rms_attack: Smoothing factor while the mouth opens in RMS mode
        rms_release: Smoothing factor while the mouth closes in RMS mode
        max_delta_ms: Cap on the elapsed time used for smoothing
    """
    smoothing_factor: float = 0.8
    min_confidence: float = 0.3
    update_interval_ms: float = 16.0
    mode: LipSyncMode = LipSyncMode.FORMANT
    stabilize: bool = False
    hysteresis_threshold: float = 0.5
    rms_scale: float = 8.0
    rms_floor: float = 0.02
    rms_attack: float = 0.4
    rms_release: float = 0.15
    max_delta_ms: float = 100.0

    def __post_init__(self):
        """Validate controller settings"""
        _check_range("Smoothing factor", self.smoothing_factor, 0.0, 1.0)
        _check_range("Minimum confidence", self.min_confidence, 0.0, 1.0)
        _check_range("Hysteresis threshold", self.hysteresis_threshold, 0.0, 1.0)
        _check_range("RMS floor", self.rms_floor, 0.0, 1.0)
        _check_range("RMS attack", self.rms_attack, 0.0, 1.0)
        _check_range("RMS release", self.rms_release, 0.0, 1.0)
        if self.update_interval_ms < 0:
            raise ConfigurationError(
                f"Update interval must be non-negative, got {self.update_interval_ms}"
            )
        if self.rms_scale <= 0:
            raise ConfigurationError(f"RMS scale must be positive, got {self.rms_scale}")
        if self.max_delta_ms <= 0:
            raise ConfigurationError(f"Max delta must be positive, got {self.max_delta_ms}")
        object.__setattr__(self, "mode", coerce_enum(LipSyncMode, self.mode, "lip-sync mode"))

    @classmethod
    def from_config(cls, cfg=None) -> "LipSyncConfig":
        """Build controller settings from the YAML configuration"""
        if cfg is None:
            from lipsync.config.config_loader import config as cfg
        return cls(
            smoothing_factor=cfg.get('lipsync.smoothing_factor', 0.8),
            min_confidence=cfg.get('lipsync.min_confidence', 0.3),
            update_interval_ms=cfg.get('lipsync.update_interval_ms', 16.0),
            mode=cfg.get('lipsync.mode', 'formant'),
            stabilize=cfg.get('lipsync.stabilize', False),
            hysteresis_threshold=cfg.get('lipsync.hysteresis_threshold', 0.5),
            rms_scale=cfg.get('lipsync.rms.scale', 8.0),
            rms_floor=cfg.get('lipsync.rms.floor', 0.02),
            rms_attack=cfg.get('lipsync.rms.attack', 0.4),
            rms_release=cfg.get('lipsync.rms.release', 0.15),
            max_delta_ms=cfg.get('lipsync.max_delta_ms', 100.0),
        )


@dataclass(frozen=True)
class IntakeConfig:
    """Settings for the real-time audio intake

    Attributes:
        sample_rate: Capture sample rate in Hz
        buffer_size: Samples kept for each feature message (512-8192)
        update_interval: New samples between feature messages (32-512)
        noise_gate: RMS values below this are reported as 0, [0, 1]
        queue_size: Capacity of the message channel
        telemetry_interval: Seconds between telemetry messages
        device: Optional sounddevice input device (index or name)
    """
    sample_rate: int = 48000
    buffer_size: int = 2048
    update_interval: int = 128
    noise_gate: float = 0.001
    queue_size: int = 8
    telemetry_interval: float = 5.0
    device: Optional[Any] = None

    def __post_init__(self):
        """Validate intake settings"""
        validate_sample_rate(self.sample_rate)
        _check_range("Buffer size", self.buffer_size, 512, 8192)
        _check_range("Update interval", self.update_interval, 32, 512)
        _check_range("Noise gate", self.noise_gate, 0.0, 1.0)
        if self.queue_size < 1:
            raise ConfigurationError(f"Queue size must be at least 1, got {self.queue_size}")
        if self.telemetry_interval <= 0:
            raise ConfigurationError(
                f"Telemetry interval must be positive, got {self.telemetry_interval}"
            )

    @classmethod
    def from_config(cls, cfg=None) -> "IntakeConfig":
        """Build intake settings from the YAML configuration"""
        if cfg is None:
            from lipsync.config.config_loader import config as cfg
        return cls(
            sample_rate=cfg.get('audio.sample_rate', 48000),
            buffer_size=cfg.get('intake.buffer_size', 2048),
            update_interval=cfg.get('intake.update_interval', 128),
            noise_gate=cfg.get('intake.noise_gate', 0.001),
            queue_size=cfg.get('intake.queue_size', 8),
            telemetry_interval=cfg.get('intake.telemetry_interval', 5.0),
            device=cfg.get('intake.device'),
        )
