"""Data models for classification results and mouth parameters"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from lipsync.models.enums import Vowel


# Parameter ids understood by the avatar renderer
PARAM_MOUTH_OPEN_Y = "ParamMouthOpenY"
PARAM_MOUTH_FORM = "ParamMouthForm"
PARAM_MOUTH_OPEN_X = "ParamMouthOpenX"


@dataclass(frozen=True)
class VowelAlternative:
    """Runner-up candidate of a classification"""
    vowel: Vowel
    confidence: float


@dataclass(frozen=True)
class VowelClassification:
    """Result from the vowel classifier

    Attributes:
        vowel: Classified vowel (or Vowel.SILENT)
        confidence: Confidence in [0, 1], decays with distance from the pattern
        alternatives: Up to two next-nearest candidates, nearest first
    """
    vowel: Vowel
    confidence: float
    alternatives: Tuple[VowelAlternative, ...] = field(default_factory=tuple)

    def __post_init__(self):
        """Validate result data"""
        assert 0.0 <= self.confidence <= 1.0, "Confidence must be in [0, 1]"
        assert len(self.alternatives) <= 2, "At most two alternatives"
        for alternative in self.alternatives:
            assert 0.0 <= alternative.confidence <= 1.0, (
                f"Confidence for {alternative.vowel.value} must be in [0, 1]"
            )


@dataclass(frozen=True)
class MergedVowel:
    """A run of identical consecutive classifications

    Attributes:
        vowel: Vowel of the run
        duration: Number of consecutive classifications in the run
        average_confidence: Mean confidence over the run
    """
    vowel: Vowel
    duration: int
    average_confidence: float


@dataclass(frozen=True)
class MouthShape:
    """Mouth control values consumed by the avatar renderer

    Values may be out of range before the controller normalizes them.

    Attributes:
        open_y: Vertical opening, [0, 1]
        form: Mouth corner form, [-1, 1] (-1 rounded, 1 spread)
        open_x: Optional horizontal opening, [-1, 1]
    """
    open_y: float
    form: float
    open_x: Optional[float] = None

    def as_parameters(self) -> Dict[str, float]:
        """Map the shape to renderer parameter ids"""
        params = {
            PARAM_MOUTH_OPEN_Y: self.open_y,
            PARAM_MOUTH_FORM: self.form,
        }
        if self.open_x is not None:
            params[PARAM_MOUTH_OPEN_X] = self.open_x
        return params
