"""Unit tests for vowel classification and stabilisation helpers"""

import math
import pytest

from lipsync.analysis.vowel import (
    DEFAULT_VOWEL_PATTERNS,
    Hysteresis,
    SlidingWindow,
    StateSmoother,
    VowelDetector
)
from lipsync.models.enums import Vowel
from lipsync.models.errors import ConfigurationError, DisposedError
from lipsync.models.features import FormantEstimate, FormantRange, VowelPattern
from lipsync.models.results import VowelClassification


@pytest.fixture
def detector():
    return VowelDetector()


@pytest.mark.parametrize("vowel", [Vowel.A, Vowel.I, Vowel.U, Vowel.E, Vowel.O])
def test_pattern_centers_classify_exactly(detector, vowel):
    center = DEFAULT_VOWEL_PATTERNS[vowel].center

    result = detector.identify(center)

    assert result.vowel == vowel
    assert result.confidence == pytest.approx(1.0)


def test_alternatives_nearest_first(detector):
    result = detector.identify(FormantEstimate(800, 1400))

    assert [alt.vowel for alt in result.alternatives] == [Vowel.O, Vowel.U]
    assert result.alternatives[0].confidence == pytest.approx(math.exp(-485.41 / 150), abs=1e-3)
    assert result.alternatives[0].confidence > result.alternatives[1].confidence


def test_silence(detector):
    result = detector.identify(FormantEstimate(0.0, 0.0))

    assert result.vowel == Vowel.SILENT
    assert result.confidence == 1.0
    assert result.alternatives == ()


def test_one_formant_above_threshold_is_not_silence(detector):
    assert detector.identify(FormantEstimate(0.0, 2500.0)).vowel != Vowel.SILENT


def test_confidence_decays_with_distance(detector):
    assert detector.calculate_confidence(0.0) == 1.0
    assert detector.calculate_confidence(150.0) == pytest.approx(math.exp(-1))
    assert detector.calculate_confidence(1e6) == 0.0


def test_distance(detector):
    assert detector.calculate_distance(FormantEstimate(0, 0), FormantEstimate(300, 400)) == 500.0


def test_detect_sequence(detector):
    sequence = [DEFAULT_VOWEL_PATTERNS[v].center for v in (Vowel.A, Vowel.I, Vowel.U)]
    sequence.append(FormantEstimate(0, 0))

    assert detector.detect_sequence(sequence) == [Vowel.A, Vowel.I, Vowel.U, Vowel.SILENT]


def test_detect_aiueo_sequence(detector):
    frames = [
        FormantEstimate(800, 1400),
        FormantEstimate(300, 2500),
        FormantEstimate(350, 850),
        FormantEstimate(500, 2100),
        FormantEstimate(525, 1000),
    ]

    assert detector.detect_sequence(frames) == [Vowel.A, Vowel.I, Vowel.U, Vowel.E, Vowel.O]


@pytest.mark.parametrize("formants", [
    FormantEstimate(float("nan"), float("nan")),
    FormantEstimate(float("nan"), 1400.0),
    FormantEstimate(800.0, float("inf")),
])
def test_non_finite_formants_are_silence(detector, formants):
    result = detector.identify(formants)

    assert result.vowel == Vowel.SILENT
    assert result.confidence == 1.0
    assert result.alternatives == ()


def test_nan_distance_has_zero_confidence(detector):
    assert detector.calculate_confidence(float("nan")) == 0.0


def test_results_cached(detector):
    first = detector.identify(FormantEstimate(650, 1100))
    second = detector.identify(FormantEstimate(650, 1100))

    assert first is second
    assert detector.cached_results == 1


def test_cache_bounded():
    detector = VowelDetector(cache_size=2)
    for f1 in (300, 400, 500):
        detector.identify(FormantEstimate(f1, 1500))

    assert detector.cached_results == 2


def test_custom_patterns_clear_cache(detector):
    assert detector.identify(FormantEstimate(650, 1100)).vowel == Vowel.O

    detector.set_custom_patterns({
        "a": {"f1": {"min": 600, "max": 700, "center": 650},
              "f2": {"min": 1000, "max": 1200, "center": 1100}}
    })

    result = detector.identify(FormantEstimate(650, 1100))
    assert result.vowel == Vowel.A
    assert result.confidence == pytest.approx(1.0)
    assert detector.get_patterns()[Vowel.A].f1.center == 650


def test_custom_pattern_objects_accepted():
    pattern = VowelPattern(f1=FormantRange(600, 700, 650), f2=FormantRange(1000, 1200, 1100))
    detector = VowelDetector(patterns={Vowel.A: pattern})

    assert detector.get_patterns()[Vowel.A] is pattern
    assert len(detector.get_patterns()) == 5


@pytest.mark.parametrize("patterns", [
    {"y": {"f1": {"min": 1, "max": 3, "center": 2}, "f2": {"min": 1, "max": 3, "center": 2}}},
    {"silent": {"f1": {"min": 1, "max": 3, "center": 2}, "f2": {"min": 1, "max": 3, "center": 2}}},
    {"a": {"f1": {"min": 1, "max": 3, "center": 2}}},
    {"a": {"f1": {"min": 5, "max": 3, "center": 2}, "f2": {"min": 1, "max": 3, "center": 2}}},
])
def test_invalid_patterns_rejected(detector, patterns):
    with pytest.raises(ConfigurationError):
        detector.set_custom_patterns(patterns)


def test_thresholds():
    detector = VowelDetector(silence_threshold=5.0, min_confidence=0.4)
    thresholds = detector.get_thresholds()

    assert thresholds.silence_threshold == 5.0
    assert thresholds.min_confidence == 0.4
    assert thresholds.max_distance == 500.0


@pytest.mark.parametrize("kwargs", [
    {"confidence_decay": 0},
    {"cache_size": -1},
    {"silence_threshold": -1.0},
])
def test_invalid_settings(kwargs):
    with pytest.raises(ConfigurationError):
        VowelDetector(**kwargs)


def test_dispose_then_use_raises(detector):
    detector.dispose()

    assert detector.is_disposed
    with pytest.raises(DisposedError):
        detector.identify(FormantEstimate(800, 1400))


def test_merge_consecutive():
    sequence = [
        VowelClassification(Vowel.A, 0.8),
        VowelClassification(Vowel.A, 0.6),
        VowelClassification(Vowel.I, 0.9),
        VowelClassification(Vowel.A, 0.5),
    ]

    merged = VowelDetector.merge_consecutive(sequence)

    assert [(m.vowel, m.duration) for m in merged] == [(Vowel.A, 2), (Vowel.I, 1), (Vowel.A, 1)]
    assert merged[0].average_confidence == pytest.approx(0.7)
    assert VowelDetector.merge_consecutive([]) == []


def test_merge_consecutive_runs():
    sequence = [
        VowelClassification(Vowel.A, 0.9),
        VowelClassification(Vowel.A, 0.8),
        VowelClassification(Vowel.A, 0.85),
        VowelClassification(Vowel.I, 0.9),
        VowelClassification(Vowel.I, 0.88),
    ]

    merged = VowelDetector.merge_consecutive(sequence)

    assert [(m.vowel, m.duration) for m in merged] == [(Vowel.A, 3), (Vowel.I, 2)]
    assert merged[0].average_confidence == pytest.approx(0.85)
    assert merged[1].average_confidence == pytest.approx(0.89)


class TestSlidingWindow:

    def test_average(self, detector):
        window = detector.create_sliding_window(2)
        window.push(FormantEstimate(100, 1000))
        window.push(FormantEstimate(300, 2000))
        window.push(FormantEstimate(500, 3000))

        averaged = window.get_averaged()

        assert (averaged.f1, averaged.f2) == (400.0, 2500.0)

    def test_empty_and_reset(self):
        window = SlidingWindow(3)
        window.push(FormantEstimate(100, 1000))
        window.reset()

        assert (window.get_averaged().f1, window.get_averaged().f2) == (0.0, 0.0)

    def test_invalid_size(self):
        with pytest.raises(ConfigurationError):
            SlidingWindow(0)


class TestStateSmoother:

    def test_majority_vote(self, detector):
        smoother = detector.create_state_smoother(5)
        for vowel in (Vowel.A, Vowel.I, Vowel.A, Vowel.I, Vowel.U):
            smoother.update(vowel)

        # Tie between A and I goes to the earliest
        assert smoother.get_smoothed() == Vowel.A

        smoother.update(Vowel.O)
        assert smoother.get_smoothed() == Vowel.I

    def test_empty_is_silent(self):
        assert StateSmoother().get_smoothed() == Vowel.SILENT

    def test_reset(self):
        smoother = StateSmoother()
        smoother.update(Vowel.E)
        smoother.reset()

        assert smoother.get_smoothed() == Vowel.SILENT


class TestHysteresis:

    def test_first_result_accepted(self, detector):
        gate = detector.create_hysteresis(0.9)

        result = gate.process(VowelClassification(Vowel.A, 0.1))

        assert result.vowel == Vowel.A

    def test_low_confidence_keeps_current(self):
        gate = Hysteresis(0.5)
        gate.process(VowelClassification(Vowel.A, 0.9))

        result = gate.process(VowelClassification(Vowel.I, 0.4))

        assert result.vowel == Vowel.A
        assert result.confidence == 0.4

    def test_threshold_inclusive(self):
        gate = Hysteresis(0.5)
        gate.process(VowelClassification(Vowel.A, 0.9))

        assert gate.process(VowelClassification(Vowel.I, 0.5)).vowel == Vowel.I

    def test_reset(self):
        gate = Hysteresis(0.5)
        gate.process(VowelClassification(Vowel.A, 0.9))
        gate.reset()

        assert gate.process(VowelClassification(Vowel.U, 0.1)).vowel == Vowel.U

    def test_invalid_threshold(self):
        with pytest.raises(ConfigurationError):
            Hysteresis(1.5)
