"""Unit tests for the real-time audio intake"""

import pytest
import numpy as np
from unittest.mock import MagicMock, patch

from lipsync.input.audio_intake import (
    AudioIntake,
    FeatureChannel,
    calculate_energy,
    calculate_peak,
    calculate_zero_crossing_rate
)
from lipsync.models.enums import InputMode
from lipsync.models.errors import ConfigurationError, DisposedError, NotInitializedError
from lipsync.models.frames import AudioFeatureMessage, TelemetryMessage
from lipsync.models.settings import IntakeConfig


@pytest.fixture
def intake(fake_clock):
    intake = AudioIntake(
        IntakeConfig(buffer_size=512, update_interval=128, telemetry_interval=1.0),
        clock=fake_clock
    )
    intake.initialize()
    yield intake
    intake.dispose()


@pytest.fixture
def mock_sounddevice():
    mock_sd = MagicMock()
    mock_sd.PortAudioError = type("PortAudioError", (Exception,), {})
    with patch.dict("sys.modules", {"sounddevice": mock_sd}):
        yield mock_sd


def test_feature_helpers():
    block = np.array([0.5, -0.5, 0.5, -0.5])

    assert calculate_peak(block) == 0.5
    assert calculate_peak(np.array([])) == 0.0
    assert calculate_zero_crossing_rate(block) == pytest.approx(0.75)
    assert calculate_zero_crossing_rate(np.array([0.0, 1.0, -1.0])) == pytest.approx(1 / 3)
    assert calculate_zero_crossing_rate(np.array([1.0])) == 0.0
    assert calculate_energy(block) == pytest.approx(1.0)


class TestFeatureChannel:

    def test_drops_oldest_when_full(self):
        channel = FeatureChannel(maxsize=2)
        for i in range(3):
            channel.put(i)

        assert channel.dropped == 1
        assert channel.drain() == [1, 2]
        assert len(channel) == 0

    def test_clear(self):
        channel = FeatureChannel()
        channel.put("message")
        channel.clear()

        assert channel.drain() == []


class TestLifecycle:

    def test_requires_initialize(self):
        intake = AudioIntake()

        assert not intake.is_initialized()
        with pytest.raises(NotInitializedError):
            intake.poll()
        with pytest.raises(NotInitializedError):
            intake.process_buffer(np.ones(4))

    def test_initialize_is_idempotent(self, intake):
        channel = intake.channel
        assert intake.initialize()
        assert intake.channel is channel
        assert intake.is_initialized()

    def test_dispose(self, intake):
        intake.dispose()
        intake.dispose()

        assert not intake.is_initialized()
        with pytest.raises(DisposedError):
            intake.initialize()
        with pytest.raises(DisposedError):
            intake.poll()


class TestBufferMode:

    def test_process_buffer(self, intake):
        received = []

        message = intake.process_buffer(np.array([0.5, -0.5, 0.5, -0.5]), callback=received.append)

        assert isinstance(message, AudioFeatureMessage)
        assert message.rms == pytest.approx(0.5)
        assert message.peak == pytest.approx(0.5)
        assert message.zero_crossing_rate == pytest.approx(0.75)
        assert message.energy == pytest.approx(1.0)
        assert message.sample_rate == 48000
        assert received == [message]
        assert intake.input_mode == InputMode.BUFFER
        assert len(intake.channel) == 0

    def test_samples_are_read_only(self, intake):
        message = intake.process_buffer(np.ones(16))

        assert message.samples.dtype == np.float32
        with pytest.raises(ValueError):
            message.samples[0] = 0.0

    def test_noise_gate(self, intake):
        assert intake.process_buffer(np.full(16, 0.0005)).rms == 0.0

    def test_empty_buffer(self, intake):
        assert intake.process_buffer(np.array([])) is None

    def test_timestamp_relative_to_start(self, intake, fake_clock):
        fake_clock.advance(2.5)
        assert intake.process_buffer(np.ones(4)).timestamp == pytest.approx(2.5)


class TestStreaming:

    def test_publishes_every_update_interval(self, intake):
        intake._push_samples(np.full(100, 0.5, dtype=np.float32))
        assert intake.poll() is None

        intake._push_samples(np.full(100, 0.5, dtype=np.float32))
        message = intake.poll()

        assert message.samples.size == 200
        assert message.rms == pytest.approx(0.5)

    def test_keeps_last_buffer_size_samples(self, intake):
        intake._push_samples(np.zeros(500, dtype=np.float32))
        intake._push_samples(np.ones(200, dtype=np.float32))

        message = intake.poll()

        assert message.samples.size == 512
        assert message.samples[-1] == 1.0
        assert message.samples[0] == 0.0

    def test_poll_returns_newest(self, intake):
        intake._push_samples(np.full(128, 0.1, dtype=np.float32))
        intake._push_samples(np.full(128, 0.9, dtype=np.float32))

        message = intake.poll()

        assert message.peak == pytest.approx(0.9)
        assert intake.poll() is None

    def test_telemetry(self, intake, fake_clock):
        telemetry = []
        intake.on_telemetry = telemetry.append

        intake._push_samples(np.ones(128, dtype=np.float32))
        intake.poll()
        assert telemetry == []

        fake_clock.advance(2.0)
        intake._push_samples(np.ones(128, dtype=np.float32))
        intake.poll()

        assert len(telemetry) == 1
        assert isinstance(telemetry[0], TelemetryMessage)
        assert 0.0 <= telemetry[0].cpu_usage <= 100.0
        assert intake.get_latency() == telemetry[0].latency
        assert intake.get_cpu_usage() == telemetry[0].cpu_usage

    def test_reset(self, intake):
        intake._push_samples(np.ones(128, dtype=np.float32))

        intake.reset()

        assert intake.poll() is None
        assert intake.get_latency() == 0.0


class TestPlayback:

    def test_playback_streams_clip(self, intake):
        received = []

        assert intake.start_playback(np.full(1024, 0.5), callback=received.append, realtime=False)
        assert intake.wait_for_playback(timeout=2.0)

        message = intake.poll()
        assert intake.playback_finished
        assert message.samples.size == 512
        assert message.rms == pytest.approx(0.5)
        assert received == [message]

    def test_empty_clip(self, intake):
        assert not intake.start_playback(np.array([]))

    def test_stop_playback(self, intake):
        intake.start_playback(np.zeros(48000 * 10))
        assert intake.input_mode == InputMode.PLAYBACK

        intake.stop_playback()

        assert intake.wait_for_playback(timeout=2.0)
        assert intake.input_mode is None


class TestMicrophone:

    def test_start_microphone(self, intake, mock_sounddevice):
        assert intake.start_microphone()

        _, kwargs = mock_sounddevice.InputStream.call_args
        assert kwargs["samplerate"] == 48000
        assert kwargs["channels"] == 1
        assert kwargs["callback"] == intake._audio_callback
        mock_sounddevice.InputStream.return_value.start.assert_called_once()
        assert intake.input_mode == InputMode.MICROPHONE

    def test_audio_callback_publishes(self, intake, mock_sounddevice):
        received = []
        intake.start_microphone(callback=received.append)

        intake._audio_callback(np.full((128, 1), 0.25, dtype=np.float32), 128, None, None)
        message = intake.poll()

        assert message.rms == pytest.approx(0.25)
        assert received == [message]

    def test_device_failure_returns_false(self, intake, mock_sounddevice):
        mock_sounddevice.InputStream.side_effect = mock_sounddevice.PortAudioError("no device")

        assert not intake.start_microphone()
        assert intake.input_mode is None

    def test_missing_sounddevice_returns_false(self, intake):
        with patch.dict("sys.modules", {"sounddevice": None}):
            assert not intake.start_microphone()
        assert intake.input_mode is None

    def test_stop_microphone(self, intake, mock_sounddevice):
        intake.start_microphone()
        stream = mock_sounddevice.InputStream.return_value

        intake.stop_microphone()
        intake.stop_microphone()

        stream.stop.assert_called_once()
        stream.close.assert_called_once()
        assert intake.input_mode is None


class TestSetters:

    def test_valid_values(self, intake):
        intake.set_update_interval(256)
        intake.set_buffer_size(4096)
        intake.set_noise_gate(0.05)

        assert intake.settings.update_interval == 256
        assert intake.settings.buffer_size == 4096
        assert intake.settings.noise_gate == 0.05

    @pytest.mark.parametrize("setter,value", [
        ("set_update_interval", 16),
        ("set_update_interval", 1024),
        ("set_buffer_size", 256),
        ("set_buffer_size", 16384),
        ("set_noise_gate", 1.5),
        ("set_noise_gate", -0.1),
    ])
    def test_out_of_range_rejected(self, intake, setter, value):
        with pytest.raises(ConfigurationError):
            getattr(intake, setter)(value)
