"""Vowel Classifier

Nearest-pattern vowel classification in (F1, F2) space plus the small
stateful helpers used to stabilise classifications over time.
"""

import logging
import math
from collections import Counter, OrderedDict, deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Mapping, Optional, Sequence, Tuple

from lipsync.models.enums import Vowel
from lipsync.models.errors import ConfigurationError, DisposedError
from lipsync.models.features import FormantEstimate, FormantRange, VowelPattern
from lipsync.models.results import MergedVowel, VowelAlternative, VowelClassification


logger = logging.getLogger(__name__)


DEFAULT_VOWEL_PATTERNS: Dict[Vowel, VowelPattern] = {
    Vowel.A: VowelPattern(f1=FormantRange(700, 900, 800), f2=FormantRange(1200, 1600, 1400)),
    Vowel.I: VowelPattern(f1=FormantRange(250, 350, 300), f2=FormantRange(2200, 2800, 2500)),
    Vowel.U: VowelPattern(f1=FormantRange(300, 400, 350), f2=FormantRange(700, 1000, 850)),
    Vowel.E: VowelPattern(f1=FormantRange(400, 600, 500), f2=FormantRange(1800, 2400, 2100)),
    Vowel.O: VowelPattern(f1=FormantRange(450, 600, 525), f2=FormantRange(800, 1200, 1000)),
}

DEFAULT_CONFIDENCE_DECAY = 150.0
DEFAULT_CACHE_SIZE = 256


@dataclass(frozen=True)
class Thresholds:
    """Classifier thresholds

    Attributes:
        min_confidence: Suggested minimum confidence for consumers
        max_distance: Distance (Hz) beyond which a match is considered poor
        silence_threshold: F1 and F2 below this mean silence
    """
    min_confidence: float = 0.3
    max_distance: float = 500.0
    silence_threshold: float = 0.01


def _parse_vowel(key) -> Vowel:
    try:
        vowel = key if isinstance(key, Vowel) else Vowel(str(key).lower())
    except ValueError:
        raise ConfigurationError(f"Unknown vowel: {key!r}")
    if vowel == Vowel.SILENT:
        raise ConfigurationError("Silence has no formant pattern")
    return vowel


def _parse_pattern(value) -> VowelPattern:
    if isinstance(value, VowelPattern):
        return value
    try:
        return VowelPattern(
            f1=FormantRange(**value['f1']),
            f2=FormantRange(**value['f2'])
        )
    except (KeyError, TypeError, AssertionError) as e:
        raise ConfigurationError(f"Invalid vowel pattern {value!r}: {e}") from e


class SlidingWindow:
    """Fixed-size window returning the running average formant estimate"""

    def __init__(self, size: int):
        if size <= 0:
            raise ConfigurationError(f"Window size must be positive, got {size}")
        self.size = size
        self._buffer: Deque[FormantEstimate] = deque(maxlen=size)

    def push(self, formants: FormantEstimate) -> None:
        self._buffer.append(formants)

    def get_averaged(self) -> FormantEstimate:
        if not self._buffer:
            return FormantEstimate(f1=0.0, f2=0.0)
        count = len(self._buffer)
        return FormantEstimate(
            f1=sum(f.f1 for f in self._buffer) / count,
            f2=sum(f.f2 for f in self._buffer) / count
        )

    def reset(self) -> None:
        self._buffer.clear()


class StateSmoother:
    """Majority vote over the last few classified vowels.

    Ties go to the vowel that entered the history first. An empty history
    reports silence.
    """

    def __init__(self, history_size: int = 5):
        if history_size <= 0:
            raise ConfigurationError(f"History size must be positive, got {history_size}")
        self.history_size = history_size
        self._history: Deque[Vowel] = deque(maxlen=history_size)

    def update(self, vowel: Vowel) -> None:
        self._history.append(vowel)

    def get_smoothed(self) -> Vowel:
        if not self._history:
            return Vowel.SILENT
        return Counter(self._history).most_common(1)[0][0]

    def reset(self) -> None:
        self._history.clear()


class Hysteresis:
    """Confidence gate against vowel flicker.

    The first classification is always accepted. Later classifications change
    the reported vowel only when their confidence reaches ``threshold``;
    otherwise the previously accepted vowel is reported with the new
    classification's confidence and alternatives.
    """

    def __init__(self, threshold: float):
        if not 0.0 <= threshold <= 1.0:
            raise ConfigurationError(f"Hysteresis threshold must be in [0, 1], got {threshold}")
        self.threshold = threshold
        self.current_vowel: Optional[Vowel] = None

    def process(self, result: VowelClassification) -> VowelClassification:
        if self.current_vowel is None or result.confidence >= self.threshold:
            self.current_vowel = result.vowel
            return result
        return VowelClassification(
            vowel=self.current_vowel,
            confidence=result.confidence,
            alternatives=result.alternatives
        )

    def reset(self) -> None:
        self.current_vowel = None


class VowelDetector:
    """Classifies formant estimates into vowels.

    Distances to each pattern centre are converted to confidences with
    ``exp(-distance / confidence_decay)``. Results are memoised per
    ``(f1, f2)`` in a bounded LRU cache that is cleared whenever the patterns
    change.

    Attributes:
        thresholds: Classifier thresholds
        confidence_decay: Distance (Hz) over which confidence falls by 1/e
        cache_size: Maximum number of memoised results
    """

    def __init__(
        self,
        patterns: Optional[Mapping] = None,
        silence_threshold: float = 0.01,
        confidence_decay: float = DEFAULT_CONFIDENCE_DECAY,
        cache_size: int = DEFAULT_CACHE_SIZE,
        min_confidence: float = 0.3,
        max_distance: float = 500.0
    ):
        if confidence_decay <= 0:
            raise ConfigurationError(f"Confidence decay must be positive, got {confidence_decay}")
        if cache_size < 0:
            raise ConfigurationError(f"Cache size must be non-negative, got {cache_size}")
        if silence_threshold < 0:
            raise ConfigurationError(f"Silence threshold must be non-negative, got {silence_threshold}")

        self._patterns: Dict[Vowel, VowelPattern] = dict(DEFAULT_VOWEL_PATTERNS)
        if patterns:
            self._patterns.update(self._parse_patterns(patterns))

        self.thresholds = Thresholds(
            min_confidence=min_confidence,
            max_distance=max_distance,
            silence_threshold=silence_threshold
        )
        self.confidence_decay = confidence_decay
        self.cache_size = cache_size
        self._cache: "OrderedDict[Tuple[float, float], VowelClassification]" = OrderedDict()
        self._disposed = False

        logger.debug(f"VowelDetector initialized with {len(self._patterns)} patterns, "
                     f"decay={confidence_decay}")

    @classmethod
    def from_config(cls, cfg=None) -> "VowelDetector":
        """Build a detector from the ``vowel`` configuration section"""
        if cfg is None:
            from lipsync.config.config_loader import config as cfg
        return cls(
            patterns=cfg.get('vowel.patterns'),
            silence_threshold=cfg.get('vowel.silence_threshold', 0.01),
            confidence_decay=cfg.get('vowel.confidence_decay', DEFAULT_CONFIDENCE_DECAY),
            cache_size=cfg.get('vowel.cache_size', DEFAULT_CACHE_SIZE),
            min_confidence=cfg.get('lipsync.min_confidence', 0.3),
            max_distance=cfg.get('vowel.max_distance', 500.0),
        )

    def identify(self, formants: FormantEstimate) -> VowelClassification:
        """Classify one formant estimate.

        Args:
            formants: Estimated F1/F2

        Returns:
            VowelClassification with the nearest vowel and up to two
            alternatives; SILENT with confidence 1.0 when both formants are
            below the silence threshold or either is not finite

        Raises:
            DisposedError: If the detector was disposed
        """
        self._check_disposed()

        if not (math.isfinite(formants.f1) and math.isfinite(formants.f2)):
            return VowelClassification(vowel=Vowel.SILENT, confidence=1.0)

        key = (formants.f1, formants.f2)
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            return cached

        silence = self.thresholds.silence_threshold
        if formants.f1 < silence and formants.f2 < silence:
            result = VowelClassification(vowel=Vowel.SILENT, confidence=1.0)
        else:
            # Index breaks distance ties in pattern order
            ranked = sorted(
                (self.calculate_distance(formants, pattern.center), index, vowel)
                for index, (vowel, pattern) in enumerate(self._patterns.items())
            )
            best_distance, _, best_vowel = ranked[0]
            result = VowelClassification(
                vowel=best_vowel,
                confidence=self.calculate_confidence(best_distance),
                alternatives=tuple(
                    VowelAlternative(vowel=vowel, confidence=self.calculate_confidence(distance))
                    for distance, _, vowel in ranked[1:3]
                )
            )

        self._remember(key, result)
        return result

    def calculate_distance(self, a: FormantEstimate, b: FormantEstimate) -> float:
        """Euclidean distance in (F1, F2) space"""
        return math.hypot(a.f1 - b.f1, a.f2 - b.f2)

    def calculate_confidence(self, distance: float) -> float:
        """Map a distance to a confidence in [0, 1]"""
        confidence = math.exp(-distance / self.confidence_decay)
        if math.isnan(confidence):
            return 0.0
        return max(0.0, min(1.0, confidence))

    def detect_sequence(self, formant_sequence: Sequence[FormantEstimate]) -> List[Vowel]:
        """Classify an ordered list of formant frames"""
        return [self.identify(formants).vowel for formants in formant_sequence]

    def get_patterns(self) -> Dict[Vowel, VowelPattern]:
        return dict(self._patterns)

    def set_custom_patterns(self, patterns: Mapping) -> None:
        """Replace some or all vowel patterns and clear the cache.

        Args:
            patterns: Mapping of vowel (enum or letter) to VowelPattern or to a
                dict with ``f1``/``f2`` ranges as in the YAML configuration

        Raises:
            ConfigurationError: If a vowel or pattern is invalid
        """
        self._check_disposed()
        parsed = self._parse_patterns(patterns)
        self._patterns.update(parsed)
        self._cache.clear()
        logger.info(f"Custom vowel patterns set for: {', '.join(v.value for v in parsed)}")

    def get_thresholds(self) -> Thresholds:
        return self.thresholds

    def create_sliding_window(self, size: int) -> SlidingWindow:
        return SlidingWindow(size)

    def create_state_smoother(self, history_size: int = 5) -> StateSmoother:
        return StateSmoother(history_size)

    def create_hysteresis(self, threshold: float) -> Hysteresis:
        return Hysteresis(threshold)

    @staticmethod
    def merge_consecutive(sequence: Sequence[VowelClassification]) -> List[MergedVowel]:
        """Collapse runs of identical vowels into (vowel, duration, average confidence)"""
        merged: List[MergedVowel] = []
        run_vowel: Optional[Vowel] = None
        confidences: List[float] = []

        for result in sequence:
            if result.vowel != run_vowel and confidences:
                merged.append(MergedVowel(run_vowel, len(confidences), sum(confidences) / len(confidences)))
                confidences = []
            run_vowel = result.vowel
            confidences.append(result.confidence)

        if confidences:
            merged.append(MergedVowel(run_vowel, len(confidences), sum(confidences) / len(confidences)))
        return merged

    @property
    def cached_results(self) -> int:
        return len(self._cache)

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        """Clear the cache; subsequent classification raises DisposedError."""
        self._disposed = True
        self._cache.clear()

    def _remember(self, key: Tuple[float, float], result: VowelClassification) -> None:
        if self.cache_size == 0:
            return
        self._cache[key] = result
        if len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)

    @staticmethod
    def _parse_patterns(patterns: Mapping) -> Dict[Vowel, VowelPattern]:
        return {_parse_vowel(key): _parse_pattern(value) for key, value in patterns.items()}

    def _check_disposed(self) -> None:
        if self._disposed:
            raise DisposedError("VowelDetector is disposed")
