"""Real-Time Audio Intake

Captures audio on a dedicated context (the PortAudio callback thread or a
playback worker thread), extracts cheap block features there and hands
immutable messages to the consuming frame loop through a bounded channel.

The consumer calls ``poll()`` once per frame. Stale feature messages are
dropped: only the newest one is returned.
"""

import logging
import queue
import threading
import time
from dataclasses import replace
from typing import Callable, List, Optional, Union
import numpy as np

from lipsync.analysis.rms import calculate_rms, sanitize_samples
from lipsync.models.enums import InputMode
from lipsync.models.errors import DisposedError, NotInitializedError
from lipsync.models.frames import AudioFeatureMessage, TelemetryMessage
from lipsync.models.settings import IntakeConfig


logger = logging.getLogger(__name__)

FeatureCallback = Callable[[AudioFeatureMessage], None]
TelemetryCallback = Callable[[TelemetryMessage], None]
Message = Union[AudioFeatureMessage, TelemetryMessage]

# Weight of the previous value in the processing-time average
PROCESSING_TIME_DECAY = 0.9


def calculate_peak(samples: np.ndarray) -> float:
    """Maximum absolute sample value, 0.0 for an empty block"""
    return float(np.max(np.abs(samples))) if samples.size else 0.0


def calculate_zero_crossing_rate(samples: np.ndarray) -> float:
    """Sign changes per sample, treating 0 as positive"""
    if samples.size < 2:
        return 0.0
    non_negative = samples >= 0
    crossings = np.count_nonzero(non_negative[1:] != non_negative[:-1])
    return crossings / samples.size


def calculate_energy(samples: np.ndarray) -> float:
    return float(np.dot(samples, samples))


class FeatureChannel:
    """Bounded single-producer / single-consumer message queue.

    When the queue is full the oldest message is discarded to make room, so
    the producer never blocks.
    """

    def __init__(self, maxsize: int = 8):
        self._queue: "queue.Queue[Message]" = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def put(self, message: Message) -> None:
        while True:
            try:
                self._queue.put_nowait(message)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                except queue.Empty:
                    pass

    def drain(self) -> List[Message]:
        """Remove and return every queued message without blocking"""
        messages = []
        while True:
            try:
                messages.append(self._queue.get_nowait())
            except queue.Empty:
                return messages

    def clear(self) -> None:
        self.drain()

    def __len__(self) -> int:
        return self._queue.qsize()


class AudioIntake:
    """Feeds sample blocks from a microphone, a buffer or a clip.

    Three input modes are supported:

    - ``start_microphone``: live capture through a sounddevice input stream
    - ``process_buffer``: one-shot feature extraction on the caller's thread
    - ``start_playback``: paced streaming of pre-loaded samples on a worker
      thread

    Callbacks registered with the streaming modes run on the thread that calls
    ``poll()``, never on the audio thread.

    Attributes:
        settings: Validated intake settings
        channel: Message channel between audio context and consumer
        latency: Smoothed processing time per block (ms), from telemetry
        cpu_usage: Estimated load of the audio context (percent), from telemetry
        on_telemetry: Optional callback for telemetry messages
    """

    def __init__(self, settings: Optional[IntakeConfig] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.settings = settings or IntakeConfig()
        self.channel: Optional[FeatureChannel] = None
        self.latency = 0.0
        self.cpu_usage = 0.0
        self.on_telemetry: Optional[TelemetryCallback] = None
        self.input_mode: Optional[InputMode] = None

        self._clock = clock
        self._initialized = False
        self._disposed = False
        self._feature_callback: Optional[FeatureCallback] = None

        # Audio-context state
        self._buffer = np.zeros(0, dtype=np.float32)
        self._sample_count = 0
        self._processing_time = 0.0
        self._start_time = 0.0
        self._last_telemetry = 0.0

        self._stream = None
        self._playback_thread: Optional[threading.Thread] = None
        self._stop_playback = threading.Event()
        self._playback_done = threading.Event()

    def initialize(self) -> bool:
        """Prepare the channel and timing state.

        Returns:
            True once the intake is ready

        Raises:
            DisposedError: If the intake was disposed
        """
        self._check_disposed()
        if self._initialized:
            return True
        self.channel = FeatureChannel(self.settings.queue_size)
        self._reset_audio_state()
        self._initialized = True
        logger.info(f"AudioIntake initialized: sample_rate={self.settings.sample_rate}, "
                    f"buffer_size={self.settings.buffer_size}, "
                    f"update_interval={self.settings.update_interval}")
        return True

    def is_initialized(self) -> bool:
        return self._initialized and not self._disposed

    def start_microphone(self, callback: Optional[FeatureCallback] = None) -> bool:
        """Start live capture.

        Args:
            callback: Called from ``poll()`` with each new feature message

        Returns:
            True if capture started, False if audio capture is unavailable
        """
        self._check_ready()
        if self._stream is not None:
            logger.warning("Microphone already started")
            return True

        try:
            import sounddevice as sd
        except (ImportError, OSError) as e:
            logger.error(f"sounddevice or PortAudio not available, lip-sync unavailable: {e}")
            return False

        self._reset_audio_state()
        try:
            stream = sd.InputStream(
                samplerate=self.settings.sample_rate,
                channels=1,
                dtype="float32",
                device=self.settings.device,
                callback=self._audio_callback,
            )
            stream.start()
        except (sd.PortAudioError, OSError, ValueError) as e:
            logger.error(f"Failed to open microphone, lip-sync unavailable: {e}")
            return False

        self._stream = stream
        self._feature_callback = callback
        self.input_mode = InputMode.MICROPHONE
        logger.info("Microphone capture started")
        return True

    def stop_microphone(self) -> None:
        """Stop live capture. Safe to call when not capturing."""
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as e:
            logger.warning(f"Error closing microphone stream: {e}")
        if self.input_mode == InputMode.MICROPHONE:
            self.input_mode = None
        logger.info("Microphone capture stopped")

    def process_buffer(self, buffer, callback: Optional[FeatureCallback] = None) -> Optional[AudioFeatureMessage]:
        """Extract features from one externally supplied block.

        Runs on the caller's thread and does not touch the channel.

        Returns:
            The feature message, or None for an empty buffer
        """
        self._check_ready()
        samples = sanitize_samples(buffer).astype(np.float32)
        if samples.size == 0:
            return None

        message = self._extract_features(samples)
        self.input_mode = InputMode.BUFFER
        if callback is not None:
            callback(message)
        return message

    def start_playback(self, samples, callback: Optional[FeatureCallback] = None,
                       realtime: bool = True) -> bool:
        """Stream a pre-loaded clip through the intake on a worker thread.

        Args:
            samples: Mono samples at the intake sample rate
            callback: Called from ``poll()`` with each new feature message
            realtime: Pace the clip at its sample rate; False feeds it as fast
                as possible

        Returns:
            True if playback started, False for an empty clip
        """
        self._check_ready()
        clip = sanitize_samples(samples).astype(np.float32)
        if clip.size == 0:
            logger.warning("Empty clip, playback not started")
            return False

        self.stop_playback()
        self._reset_audio_state()
        self._feature_callback = callback
        self._stop_playback.clear()
        self._playback_done.clear()
        self.input_mode = InputMode.PLAYBACK

        self._playback_thread = threading.Thread(
            target=self._playback_loop,
            args=(clip, realtime),
            name="lipsync-playback",
            daemon=True
        )
        self._playback_thread.start()
        logger.info(f"Playback started: {clip.size / self.settings.sample_rate:.2f}s")
        return True

    def stop_playback(self) -> None:
        """Stop the playback worker. Safe to call when not playing."""
        thread, self._playback_thread = self._playback_thread, None
        if thread is None:
            return
        self._stop_playback.set()
        if thread is not threading.current_thread():
            thread.join(timeout=1.0)
        if self.input_mode == InputMode.PLAYBACK:
            self.input_mode = None

    @property
    def playback_finished(self) -> bool:
        return self._playback_done.is_set()

    def wait_for_playback(self, timeout: Optional[float] = None) -> bool:
        """Block until the clip has been fully fed; returns False on timeout"""
        return self._playback_done.wait(timeout)

    def poll(self) -> Optional[AudioFeatureMessage]:
        """Drain the channel on the consumer thread.

        Telemetry messages update ``latency``/``cpu_usage`` and are passed to
        ``on_telemetry``. Of the feature messages only the newest is kept; it is
        passed to the registered callback and returned.

        Returns:
            The newest feature message, or None if none arrived since the last poll
        """
        self._check_ready()
        latest: Optional[AudioFeatureMessage] = None
        for message in self.channel.drain():
            if isinstance(message, TelemetryMessage):
                self.latency = message.latency
                self.cpu_usage = message.cpu_usage
                if self.on_telemetry is not None:
                    self.on_telemetry(message)
            else:
                latest = message

        if latest is not None and self._feature_callback is not None:
            self._feature_callback(latest)
        return latest

    def set_update_interval(self, interval: int) -> None:
        """Samples between feature messages, 32-512

        Raises:
            ConfigurationError: If the interval is out of range
        """
        self.settings = replace(self.settings, update_interval=interval)
        logger.debug(f"Update interval set to {interval}")

    def set_buffer_size(self, size: int) -> None:
        """Samples per feature message, 512-8192

        Raises:
            ConfigurationError: If the size is out of range
        """
        self.settings = replace(self.settings, buffer_size=size)
        logger.debug(f"Buffer size set to {size}")

    def set_noise_gate(self, threshold: float) -> None:
        """RMS gate threshold, 0-1

        Raises:
            ConfigurationError: If the threshold is out of range
        """
        self.settings = replace(self.settings, noise_gate=threshold)
        logger.debug(f"Noise gate set to {threshold}")

    def get_latency(self) -> float:
        return self.latency

    def get_cpu_usage(self) -> float:
        return self.cpu_usage

    def reset(self) -> None:
        """Clear buffered samples, pending messages and telemetry"""
        self._reset_audio_state()
        if self.channel is not None:
            self.channel.clear()
        self.latency = 0.0
        self.cpu_usage = 0.0

    def dispose(self) -> None:
        """Stop all capture and release the channel. Safe to call repeatedly."""
        if self._disposed:
            return
        self.stop_microphone()
        self.stop_playback()
        if self.channel is not None:
            self.channel.clear()
        self._feature_callback = None
        self.on_telemetry = None
        self._initialized = False
        self._disposed = True
        logger.info("AudioIntake disposed")

    def _audio_callback(self, indata, frames, time_info, status):
        """sounddevice callback, runs on the PortAudio thread"""
        if status:
            logger.warning(f"Input stream status: {status}")
        try:
            self._push_samples(np.asarray(indata, dtype=np.float32)[:, 0])
        except Exception as e:
            logger.error(f"Error processing microphone block: {e}", exc_info=True)

    def _playback_loop(self, clip: np.ndarray, realtime: bool):
        """Feed the clip in update-interval chunks, paced at the sample rate"""
        try:
            next_deadline = time.monotonic()
            position = 0
            while position < clip.size and not self._stop_playback.is_set():
                chunk = clip[position:position + self.settings.update_interval]
                position += chunk.size
                self._push_samples(chunk)

                if realtime:
                    next_deadline += chunk.size / self.settings.sample_rate
                    delay = next_deadline - time.monotonic()
                    if delay > 0 and self._stop_playback.wait(delay):
                        break
            logger.info("Playback finished")
        except Exception as e:
            logger.error(f"Error in playback worker: {e}", exc_info=True)
        finally:
            self._playback_done.set()

    def _push_samples(self, samples: np.ndarray):
        """Append samples and publish features once per update interval"""
        settings = self.settings
        self._buffer = np.concatenate((self._buffer, samples))[-settings.buffer_size:]
        self._sample_count += samples.size

        if self._sample_count >= settings.update_interval:
            start = time.perf_counter()
            message = self._extract_features(self._buffer)
            self.channel.put(message)
            self._update_telemetry((time.perf_counter() - start) * 1000.0)
            self._sample_count = 0

    def _extract_features(self, samples: np.ndarray) -> AudioFeatureMessage:
        start = time.perf_counter()
        data = samples.astype(np.float64)

        rms = calculate_rms(data, self.settings.noise_gate)
        peak = calculate_peak(data)
        zcr = calculate_zero_crossing_rate(data)
        energy = calculate_energy(data)

        snapshot = samples[:self.settings.buffer_size].astype(np.float32)
        snapshot.setflags(write=False)

        return AudioFeatureMessage(
            rms=rms,
            peak=peak,
            zero_crossing_rate=zcr,
            energy=energy,
            samples=snapshot,
            sample_rate=self.settings.sample_rate,
            timestamp=self._clock() - self._start_time,
            processing_time=(time.perf_counter() - start) * 1000.0
        )

    def _update_telemetry(self, processing_ms: float):
        self._processing_time = (
            PROCESSING_TIME_DECAY * self._processing_time
            + (1.0 - PROCESSING_TIME_DECAY) * processing_ms
        )

        now = self._clock()
        if now - self._last_telemetry > self.settings.telemetry_interval:
            available_ms = self.settings.update_interval / self.settings.sample_rate * 1000.0
            cpu_usage = min(100.0, self._processing_time / available_ms * 100.0)
            self.channel.put(TelemetryMessage(
                latency=self._processing_time,
                cpu_usage=cpu_usage,
                timestamp=now - self._start_time
            ))
            self._last_telemetry = now

    def _reset_audio_state(self):
        self._buffer = np.zeros(0, dtype=np.float32)
        self._sample_count = 0
        self._processing_time = 0.0
        self._start_time = self._clock()
        self._last_telemetry = self._start_time

    def _check_ready(self):
        self._check_disposed()
        if not self._initialized:
            raise NotInitializedError("AudioIntake is not initialized")

    def _check_disposed(self):
        if self._disposed:
            raise DisposedError("AudioIntake is disposed")
