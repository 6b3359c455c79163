"""Lip-Sync Controller

Turns sample blocks into smoothed mouth parameters for an avatar renderer.

The controller is driven from the host frame loop. Each accepted update runs
analysis, classification, vowel-to-shape mapping, time-aware smoothing and
normalization, then pushes the result to the renderer. Two paths are available:

- FORMANT: spectral analysis and vowel classification
- RMS: the mouth opens with loudness only

Formant-path failures (AudioProcessingError) fall back to the RMS path for that
update so the mouth keeps moving.
"""

import logging
import math
import time
from dataclasses import replace
from typing import Callable, Dict, Mapping, Optional

from lipsync.analysis.audio_analyzer import AudioAnalyzer
from lipsync.analysis.formant import FormantTracker
from lipsync.analysis.rms import calculate_rms
from lipsync.analysis.vowel import Hysteresis, VowelDetector
from lipsync.models.enums import LipSyncMode, LipSyncState, Vowel
from lipsync.models.errors import (
    AudioProcessingError,
    ConfigurationError,
    DisposedError,
    NotInitializedError
)
from lipsync.models.interfaces import MouthRenderer
from lipsync.models.results import MouthShape, VowelClassification
from lipsync.models.settings import LipSyncConfig


logger = logging.getLogger(__name__)

# Frame period the smoothing factor is calibrated against (ms)
TARGET_FRAME_MS = 1000.0 / 60.0

# Reference period for set_smoothing_time_constant (ms)
SMOOTHING_REFERENCE_MS = 16.0

DEFAULT_MOUTH_SHAPES: Dict[Vowel, MouthShape] = {
    Vowel.A: MouthShape(open_y=1.0, form=0.0, open_x=0.3),
    Vowel.I: MouthShape(open_y=0.2, form=1.0, open_x=0.8),
    Vowel.U: MouthShape(open_y=0.3, form=-1.0, open_x=-0.5),
    Vowel.E: MouthShape(open_y=0.5, form=0.5, open_x=0.5),
    Vowel.O: MouthShape(open_y=0.6, form=-0.5, open_x=-0.3),
    Vowel.SILENT: MouthShape(open_y=0.0, form=0.0, open_x=0.0),
}


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def normalize_params(shape: MouthShape) -> MouthShape:
    """Clamp every component into its renderer range.

    open_y is clamped to [0, 1], form and open_x to [-1, 1]; NaN maps to the
    neutral value 0.
    """
    def finite(value: float) -> float:
        return 0.0 if math.isnan(value) else value

    return MouthShape(
        open_y=_clamp(finite(shape.open_y), 0.0, 1.0),
        form=_clamp(finite(shape.form), -1.0, 1.0),
        open_x=None if shape.open_x is None else _clamp(finite(shape.open_x), -1.0, 1.0)
    )


def lerp(start: MouthShape, end: MouthShape, t: float) -> MouthShape:
    """Linear interpolation between two shapes.

    open_x is interpolated only when both shapes define it.
    """
    open_x = None
    if start.open_x is not None and end.open_x is not None:
        open_x = start.open_x + (end.open_x - start.open_x) * t
    return MouthShape(
        open_y=start.open_y + (end.open_y - start.open_y) * t,
        form=start.form + (end.form - start.form) * t,
        open_x=open_x
    )


def ease_in_out_quad(t: float) -> float:
    return 2 * t * t if t < 0.5 else -1 + (4 - 2 * t) * t


def ease_out_expo(t: float) -> float:
    return 1.0 if t == 1 else 1 - math.pow(2, -10 * t)


class LipSyncController:
    """Drives renderer mouth parameters from sample blocks.

    States: IDLE -> ACTIVE -> (SAMPLING -> SMOOTHING -> APPLIED) -> ACTIVE, with
    DISPOSED as the terminal state. ``start``/``stop`` keep configuration;
    ``stop`` also clears all rolling state so the next session starts clean.

    Attributes:
        renderer: Collaborator receiving parameter values
        analyzer: Audio analyzer for the formant path
        detector: Vowel classifier for the formant path
        config: Validated controller settings
        current_shape: Last shape pushed to the renderer
        on_update: Optional callback receiving every applied shape
    """

    def __init__(
        self,
        renderer: MouthRenderer,
        analyzer: AudioAnalyzer,
        detector: VowelDetector,
        config: Optional[LipSyncConfig] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.renderer = renderer
        self.analyzer = analyzer
        self.detector = detector
        self.config = config or LipSyncConfig()
        self.on_update: Optional[Callable[[MouthShape], None]] = None

        self._clock = clock
        self._mapping: Dict[Vowel, MouthShape] = dict(DEFAULT_MOUTH_SHAPES)
        self._state = LipSyncState.IDLE

        # Rolling state, cleared by stop()
        self.current_shape = DEFAULT_MOUTH_SHAPES[Vowel.SILENT]
        self.last_classification: Optional[VowelClassification] = None
        self._last_update: Optional[float] = None
        self._previous_rms = 0.0
        self._tracker = FormantTracker()
        self._hysteresis = Hysteresis(self.config.hysteresis_threshold)

        logger.info(f"LipSyncController initialized: mode={self.config.mode.value}, "
                    f"smoothing={self.config.smoothing_factor}, "
                    f"min_confidence={self.config.min_confidence}")

    @property
    def state(self) -> LipSyncState:
        return self._state

    def is_active(self) -> bool:
        return self._state not in (LipSyncState.IDLE, LipSyncState.DISPOSED)

    def start(self) -> None:
        """Begin accepting audio"""
        self._check_disposed()
        if self._state == LipSyncState.IDLE:
            self._state = LipSyncState.ACTIVE
            logger.info("Lip-sync started")

    def stop(self) -> None:
        """Stop accepting audio and reset rolling state. Safe to call repeatedly."""
        if self._state == LipSyncState.DISPOSED:
            return
        was_active = self._state != LipSyncState.IDLE
        self._state = LipSyncState.IDLE
        self._reset_session()
        if was_active:
            logger.info("Lip-sync stopped")

    def dispose(self) -> None:
        """Release the controller. Safe to call repeatedly."""
        if self._state == LipSyncState.DISPOSED:
            return
        self._reset_session()
        self.on_update = None
        self._state = LipSyncState.DISPOSED
        logger.info("LipSyncController disposed")

    def process_audio(self, block) -> Optional[MouthShape]:
        """Run one update for a sample block.

        Args:
            block: Sample block; exactly fft_size samples in FORMANT mode

        Returns:
            The applied MouthShape, or None when the update was rate-limited
            or the classification was below the minimum confidence

        Raises:
            NotInitializedError: If called before start() or after stop()
            DisposedError: If called after dispose()
            InvalidInputSizeError: If the block length is wrong for the formant path
        """
        self._check_disposed()
        if self._state == LipSyncState.IDLE:
            raise NotInitializedError("LipSyncController is not started")

        now = self._clock()
        if self._last_update is not None:
            elapsed_ms = (now - self._last_update) * 1000.0
            if elapsed_ms < self.config.update_interval_ms:
                return None
            delta_ms = min(self.config.max_delta_ms, elapsed_ms)
        else:
            delta_ms = self.config.max_delta_ms

        self._state = LipSyncState.SAMPLING
        try:
            if self.config.mode == LipSyncMode.RMS:
                shape = self._rms_shape(block)
            else:
                shape = self._formant_shape(block, delta_ms)

            if shape is None:
                return None

            self._state = LipSyncState.APPLIED
            self.current_shape = self.apply_params(shape)
            self._last_update = now
            return self.current_shape
        finally:
            if self._state != LipSyncState.DISPOSED:
                self._state = LipSyncState.ACTIVE

    def vowel_to_params(self, vowel: Vowel) -> MouthShape:
        return self._mapping.get(vowel, self._mapping[Vowel.SILENT])

    def set_custom_mapping(self, mapping: Mapping[Vowel, MouthShape]) -> None:
        """Replace the target shape of some or all vowels"""
        for vowel, shape in mapping.items():
            if not isinstance(vowel, Vowel) or not isinstance(shape, MouthShape):
                raise ConfigurationError(f"Invalid mouth mapping entry: {vowel!r} -> {shape!r}")
        self._mapping.update(mapping)

    def normalize(self, shape: MouthShape) -> MouthShape:
        return normalize_params(shape)

    def apply_params(self, shape: MouthShape) -> MouthShape:
        """Normalize a shape, push it to the renderer and notify on_update.

        Returns:
            The normalized shape
        """
        normalized = normalize_params(shape)
        for parameter_id, value in normalized.as_parameters().items():
            self.renderer.set_parameter(parameter_id, value)

        if self.on_update is not None:
            self.on_update(normalized)

        logger.debug(f"Applied mouth shape: open_y={normalized.open_y:.3f}, "
                     f"form={normalized.form:.3f}")
        return normalized

    def smooth(self, start: MouthShape, end: MouthShape, delta_ms: float) -> MouthShape:
        """Move from ``start`` towards ``end`` by the time-aware alpha"""
        return lerp(start, end, self.calculate_smoothing_alpha(delta_ms))

    def calculate_smoothing_alpha(self, delta_ms: float) -> float:
        """Interpolation factor for an elapsed time.

        ``min(1, (1 - smoothing_factor) * delta_ms / (1000 / 60))`` so the
        motion speed is independent of the call rate.
        """
        return min(1.0, (1.0 - self.config.smoothing_factor) * delta_ms / TARGET_FRAME_MS)

    lerp = staticmethod(lerp)
    ease_in_out_quad = staticmethod(ease_in_out_quad)
    ease_out_expo = staticmethod(ease_out_expo)

    def set_config(self, **changes) -> None:
        """Update settings; values are validated like at construction.

        Raises:
            ConfigurationError: If a value is out of range
        """
        self._check_disposed()
        self.config = replace(self.config, **changes)
        if 'hysteresis_threshold' in changes:
            self._hysteresis = Hysteresis(self.config.hysteresis_threshold)
        logger.info(f"Lip-sync config updated: {changes}")

    def set_smoothing_time_constant(self, time_ms: float) -> None:
        """Derive the smoothing factor from a time constant in milliseconds"""
        self.set_config(smoothing_factor=1.0 - math.exp(-SMOOTHING_REFERENCE_MS / max(1.0, time_ms)))

    def _formant_shape(self, block, delta_ms: float) -> Optional[MouthShape]:
        """Classified and smoothed shape, None when the classification is rejected"""
        try:
            features = self.analyzer.process_audio_buffer(block)
        except AudioProcessingError as e:
            logger.warning(f"Formant analysis failed, using RMS path for this update: {e}")
            return self._rms_shape(block)

        formants = features.formants
        if self.config.stabilize:
            # Raw formants during a transition, averaged ones otherwise
            transition = self._tracker.detect_transition(formants)
            self._tracker.update(formants)
            if not transition:
                formants = self._tracker.get_smoothed()

        classification = self.detector.identify(formants)
        if self.config.stabilize:
            classification = self._hysteresis.process(classification)
        self.last_classification = classification

        if classification.confidence < self.config.min_confidence:
            logger.debug(f"Rejected {classification.vowel.value} "
                         f"(confidence {classification.confidence:.2f})")
            return None

        self._state = LipSyncState.SMOOTHING
        target = self.vowel_to_params(classification.vowel)
        return self.smooth(self.current_shape, target, delta_ms)

    def _rms_shape(self, block) -> MouthShape:
        """Loudness-only shape, smoothed with separate attack and release factors"""
        raw = calculate_rms(block, noise_floor=0.0)
        target = min(raw * self.config.rms_scale, 1.0)
        if target < self.config.rms_floor:
            target = 0.0

        self._state = LipSyncState.SMOOTHING
        factor = self.config.rms_attack if target > self._previous_rms else self.config.rms_release
        self._previous_rms += (target - self._previous_rms) * factor
        return MouthShape(open_y=self._previous_rms, form=0.0, open_x=0.0)

    def _reset_session(self) -> None:
        self.current_shape = self._mapping[Vowel.SILENT]
        self.last_classification = None
        self._last_update = None
        self._previous_rms = 0.0
        self._tracker.reset()
        self._hysteresis.reset()

    def _check_disposed(self) -> None:
        if self._state == LipSyncState.DISPOSED:
            raise DisposedError("LipSyncController is disposed")
