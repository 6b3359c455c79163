"""Data models and interfaces"""

from lipsync.models.frames import AudioFeatureMessage, TelemetryMessage
from lipsync.models.features import AudioFeatures, FormantEstimate, FormantRange, VowelPattern
from lipsync.models.results import (
    VowelAlternative,
    VowelClassification,
    MergedVowel,
    MouthShape
)
from lipsync.models.enums import (
    Vowel,
    WindowFunction,
    FormantMethod,
    LipSyncMode,
    LipSyncState,
    InputMode
)
from lipsync.models.errors import (
    LipSyncError,
    ConfigurationError,
    InvalidInputSizeError,
    NotInitializedError,
    DisposedError,
    AudioProcessingError
)
from lipsync.models.settings import AudioAnalyzerConfig, LipSyncConfig, IntakeConfig
from lipsync.models.interfaces import SpectralTransform, MouthRenderer

__all__ = [
    # Messages
    "AudioFeatureMessage",
    "TelemetryMessage",
    # Features
    "AudioFeatures",
    "FormantEstimate",
    "FormantRange",
    "VowelPattern",
    # Results
    "VowelAlternative",
    "VowelClassification",
    "MergedVowel",
    "MouthShape",
    # Enums
    "Vowel",
    "WindowFunction",
    "FormantMethod",
    "LipSyncMode",
    "LipSyncState",
    "InputMode",
    # Errors
    "LipSyncError",
    "ConfigurationError",
    "InvalidInputSizeError",
    "NotInitializedError",
    "DisposedError",
    "AudioProcessingError",
    # Settings
    "AudioAnalyzerConfig",
    "LipSyncConfig",
    "IntakeConfig",
    # Interfaces
    "SpectralTransform",
    "MouthRenderer",
]
