"""Unit tests for clip decoding"""

import pytest
import numpy as np
from unittest.mock import MagicMock, patch

from lipsync.input.clip_loader import _frame_to_mono, load_clip
from lipsync.models.errors import AudioProcessingError


def make_frame(data, channels, planar, sample_rate=48000):
    frame = MagicMock()
    frame.to_ndarray.return_value = np.asarray(data)
    frame.layout.channels = [MagicMock() for _ in range(channels)]
    frame.format.is_planar = planar
    frame.sample_rate = sample_rate
    return frame


def make_container(frames, has_audio=True):
    container = MagicMock()
    stream = MagicMock()
    container.streams.audio = [stream] if has_audio else []
    container.decode.return_value = iter(frames)
    return container


@pytest.fixture
def clip_file(tmp_path):
    path = tmp_path / "clip.wav"
    path.write_bytes(b"")
    return path


def test_planar_int16_frame():
    frame = make_frame(np.array([[16384, 16384], [0, 0]], dtype=np.int16), channels=2, planar=True)

    np.testing.assert_allclose(_frame_to_mono(frame), [0.25, 0.25])


def test_packed_int16_frame():
    frame = make_frame(np.array([[16384, 0, -16384, 0]], dtype=np.int16), channels=2, planar=False)

    np.testing.assert_allclose(_frame_to_mono(frame), [0.25, -0.25])


def test_float_mono_frame():
    frame = make_frame(np.array([[0.1, -0.2, 0.3]], dtype=np.float32), channels=1, planar=True)

    mono = _frame_to_mono(frame)

    assert mono.dtype == np.float32
    np.testing.assert_allclose(mono, [0.1, -0.2, 0.3], rtol=1e-6)


def test_load_clip(clip_file):
    frames = [
        make_frame(np.array([[0.5, 0.5]], dtype=np.float32), channels=1, planar=True),
        make_frame(np.array([[-0.5]], dtype=np.float32), channels=1, planar=True),
    ]
    container = make_container(frames)

    with patch("av.open", return_value=container) as mock_open:
        samples = load_clip(clip_file)

    mock_open.assert_called_once_with(str(clip_file))
    np.testing.assert_allclose(samples, [0.5, 0.5, -0.5])
    assert samples.dtype == np.float32
    container.close.assert_called_once()


def test_load_clip_resamples(clip_file):
    frame = make_frame(np.zeros((1, 160), dtype=np.float32), channels=1, planar=True, sample_rate=16000)

    with patch("av.open", return_value=make_container([frame])), \
            patch("librosa.resample", return_value=np.zeros(480)) as mock_resample:
        samples = load_clip(clip_file, target_sample_rate=48000)

    assert samples.size == 480
    _, kwargs = mock_resample.call_args
    assert kwargs == {"orig_sr": 16000, "target_sr": 48000}


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_clip(tmp_path / "missing.wav")


def test_open_failure(clip_file):
    with patch("av.open", side_effect=OSError("invalid data")):
        with pytest.raises(AudioProcessingError):
            load_clip(clip_file)


def test_no_audio_track(clip_file):
    container = make_container([], has_audio=False)

    with patch("av.open", return_value=container):
        with pytest.raises(AudioProcessingError):
            load_clip(clip_file)

    container.close.assert_called_once()


def test_decode_failure(clip_file):
    container = make_container([])
    container.decode.side_effect = RuntimeError("corrupt packet")

    with patch("av.open", return_value=container):
        with pytest.raises(AudioProcessingError):
            load_clip(clip_file)

    container.close.assert_called_once()


def test_nothing_decoded(clip_file):
    with patch("av.open", return_value=make_container([])):
        with pytest.raises(AudioProcessingError):
            load_clip(clip_file)
