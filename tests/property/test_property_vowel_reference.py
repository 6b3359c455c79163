"""Property-based tests for vowel classification"""

from hypothesis import given, strategies as st, settings

from lipsync.analysis.vowel import DEFAULT_VOWEL_PATTERNS, VowelDetector
from lipsync.models.enums import Vowel
from lipsync.models.features import FormantEstimate


detector = VowelDetector()

jitter = st.floats(min_value=-20.0, max_value=20.0)


# Property: reference formants within +/-20 Hz are recognised with confidence > 0.8
@settings(max_examples=100, deadline=None)
@given(
    vowel=st.sampled_from([Vowel.A, Vowel.I, Vowel.U, Vowel.E, Vowel.O]),
    df1=jitter,
    df2=jitter
)
def test_reference_vowels_recognised(vowel, df1, df2):
    center = DEFAULT_VOWEL_PATTERNS[vowel].center

    result = detector.identify(FormantEstimate(center.f1 + df1, center.f2 + df2))

    assert result.vowel == vowel
    assert result.confidence > 0.8


# Property: confidences are in [0, 1] and alternatives are ordered nearest first
@settings(max_examples=100, deadline=None)
@given(
    f1=st.floats(min_value=0.02, max_value=5000.0),
    f2=st.floats(min_value=0.02, max_value=8000.0)
)
def test_classification_well_formed(f1, f2):
    result = detector.identify(FormantEstimate(f1, f2))

    assert result.vowel != Vowel.SILENT
    assert 0.0 <= result.confidence <= 1.0
    assert len(result.alternatives) == 2
    confidences = [result.confidence] + [alt.confidence for alt in result.alternatives]
    assert confidences == sorted(confidences, reverse=True)
    assert result.vowel not in [alt.vowel for alt in result.alternatives]
