"""
Integration tests for the analysis and control pipeline.

Runs synthetic vowel-like blocks through the real analyzer, classifier and
controller without mocks.
"""

import pytest
import numpy as np

from lipsync.analysis.audio_analyzer import AudioAnalyzer
from lipsync.analysis.vowel import DEFAULT_VOWEL_PATTERNS, VowelDetector
from lipsync.control.lip_sync_controller import DEFAULT_MOUTH_SHAPES, LipSyncController
from lipsync.input.audio_intake import AudioIntake
from lipsync.models.enums import Vowel
from lipsync.models.errors import DisposedError, InvalidInputSizeError
from lipsync.models.features import FormantEstimate
from lipsync.models.settings import LipSyncConfig
from lipsync.output.renderers import RecordingRenderer

from conftest import FakeClock, make_tone


VOWELS = [Vowel.A, Vowel.I, Vowel.U, Vowel.E, Vowel.O]


def vowel_block(vowel):
    """Two-tone block at the vowel's reference formants"""
    center = DEFAULT_VOWEL_PATTERNS[vowel].center
    return make_tone([center.f1, center.f2], amplitudes=[1.0, 0.6])


@pytest.fixture
def pipeline():
    analyzer = AudioAnalyzer()
    detector = VowelDetector()
    renderer = RecordingRenderer()
    clock = FakeClock()
    controller = LipSyncController(renderer, analyzer, detector, LipSyncConfig(), clock=clock)
    controller.start()
    yield analyzer, detector, controller, renderer, clock
    controller.dispose()
    analyzer.dispose()
    detector.dispose()


@pytest.mark.parametrize("vowel", VOWELS)
def test_tone_blocks_classified(pipeline, vowel):
    """Tones at the reference formants are classified as that vowel"""
    analyzer, detector, _, _, _ = pipeline

    features = analyzer.process_audio_buffer(vowel_block(vowel))
    result = detector.identify(features.formants)

    assert result.vowel == vowel
    assert result.confidence > 0.8


def test_vowel_sequence(pipeline):
    """A I U E O sequence of formant frames is recognised in order"""
    _, detector, _, _, _ = pipeline
    frames = [DEFAULT_VOWEL_PATTERNS[v].center for v in VOWELS]

    assert detector.detect_sequence(frames) == VOWELS


def test_sine_rms(pipeline, sine_440):
    analyzer = pipeline[0]
    assert analyzer.process_audio_buffer(sine_440).rms == pytest.approx(0.707, abs=0.01)


def test_pure_tone_drives_mouth(pipeline, sine_440):
    """A 440 Hz tone lands nearest to O and opens the mouth"""
    _, _, controller, renderer, _ = pipeline

    shape = controller.process_audio(sine_440)

    assert controller.last_classification.vowel == Vowel.O
    assert controller.last_classification.confidence > 0.3
    assert shape == DEFAULT_MOUTH_SHAPES[Vowel.O]
    assert renderer.get("ParamMouthOpenY") == pytest.approx(0.6)


def test_controller_follows_vowel_changes(pipeline):
    _, _, controller, renderer, clock = pipeline

    first = controller.process_audio(vowel_block(Vowel.A))
    assert first == DEFAULT_MOUTH_SHAPES[Vowel.A]

    open_y = []
    for _ in range(20):
        clock.advance_ms(1000 / 60)
        clock.advance_ms(0.5)
        controller.process_audio(vowel_block(Vowel.I))
        open_y.append(renderer.get("ParamMouthOpenY"))

    # Monotonic approach towards the I shape
    assert all(b <= a for a, b in zip(open_y, open_y[1:]))
    assert open_y[-1] == pytest.approx(DEFAULT_MOUTH_SHAPES[Vowel.I].open_y, abs=0.01)
    assert renderer.get("ParamMouthForm") == pytest.approx(1.0, abs=0.02)


def test_silence_closes_mouth(pipeline, silent_block):
    _, _, controller, renderer, clock = pipeline
    controller.process_audio(vowel_block(Vowel.A))

    for _ in range(30):
        clock.advance_ms(20)
        controller.process_audio(silent_block)

    assert renderer.get("ParamMouthOpenY") == pytest.approx(0.0, abs=0.01)
    assert controller.last_classification.vowel == Vowel.SILENT


def test_wrong_block_size_propagates(pipeline):
    _, _, controller, _, _ = pipeline

    with pytest.raises(InvalidInputSizeError):
        controller.process_audio(np.zeros(1000, dtype=np.float32))


def test_intake_blocks_feed_controller(pipeline):
    """Intake messages carry full analysis blocks once warmed up"""
    _, _, controller, renderer, _ = pipeline
    intake = AudioIntake()
    intake.initialize()

    assert intake.start_playback(np.tile(vowel_block(Vowel.A), 2), realtime=False)
    assert intake.wait_for_playback(timeout=2.0)
    message = intake.poll()
    intake.dispose()

    assert message.samples.size == 2048
    controller.process_audio(message.samples)
    assert renderer.get("ParamMouthOpenY") > 0.5


def test_dispose_then_use_raises():
    analyzer = AudioAnalyzer()
    detector = VowelDetector()
    controller = LipSyncController(RecordingRenderer(), analyzer, detector)
    intake = AudioIntake()
    intake.initialize()

    for component in (analyzer, detector, controller, intake):
        component.dispose()

    block = np.zeros(2048, dtype=np.float32)
    with pytest.raises(DisposedError):
        analyzer.process_audio_buffer(block)
    with pytest.raises(DisposedError):
        analyzer.fft_processor.forward(block)
    with pytest.raises(DisposedError):
        analyzer.formant_extractor.extract_formants(np.ones(1024), 48000)
    with pytest.raises(DisposedError):
        detector.identify(FormantEstimate(800, 1400))
    with pytest.raises(DisposedError):
        controller.process_audio(block)
    with pytest.raises(DisposedError):
        intake.poll()
