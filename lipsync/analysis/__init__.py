"""Analysis modules for spectral, formant and vowel processing"""

from lipsync.analysis.audio_analyzer import AudioAnalyzer
from lipsync.analysis.fft import FFTProcessor, create_fft_processor
from lipsync.analysis.formant import FormantExtractor, FormantTracker
from lipsync.analysis.rms import RMSProcessor, calculate_rms
from lipsync.analysis.vowel import VowelDetector

__all__ = [
    'AudioAnalyzer',
    'FFTProcessor',
    'create_fft_processor',
    'FormantExtractor',
    'FormantTracker',
    'RMSProcessor',
    'calculate_rms',
    'VowelDetector',
]
