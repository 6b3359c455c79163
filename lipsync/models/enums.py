"""Enumerations for vowels, window functions and pipeline modes"""

from enum import Enum


class Vowel(Enum):
    """Vowel postures recognised by the classifier"""
    A = "a"
    I = "i"
    U = "u"
    E = "e"
    O = "o"
    SILENT = "silent"


class WindowFunction(Enum):
    """Window applied to a sample block before the spectral transform"""
    HAMMING = "hamming"
    HANNING = "hanning"
    BLACKMAN = "blackman"
    NONE = "none"


class FormantMethod(Enum):
    """Strategy used to estimate formants from a block"""
    PEAKS = "peaks"        # Peak picking on the magnitude spectrum
    LPC = "lpc"            # Linear prediction envelope
    CEPSTRUM = "cepstrum"  # Liftered log-spectrum envelope


class LipSyncMode(Enum):
    """How the controller derives the mouth shape"""
    FORMANT = "formant"  # Full spectral / vowel classification path
    RMS = "rms"          # Mouth opens proportionally to loudness


class LipSyncState(Enum):
    """Lifecycle and per-update states of the lip-sync controller"""
    IDLE = "idle"
    ACTIVE = "active"
    SAMPLING = "sampling"
    SMOOTHING = "smoothing"
    APPLIED = "applied"
    DISPOSED = "disposed"


class InputMode(Enum):
    """Source feeding the audio intake"""
    MICROPHONE = "microphone"
    BUFFER = "buffer"
    PLAYBACK = "playback"
