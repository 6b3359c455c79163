"""Main Application Entry Point

Wires the intake, analyzer, classifier and controller together and drives the
controller from an asyncio frame loop at the configured frame rate.

Usage:
    python -m lipsync.main [clip_path]

With a clip path the clip is streamed through the intake in real time;
otherwise the default microphone is used.
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from lipsync.analysis.audio_analyzer import AudioAnalyzer
from lipsync.analysis.vowel import VowelDetector
from lipsync.config.config_loader import config
from lipsync.control.lip_sync_controller import LipSyncController
from lipsync.input.audio_intake import AudioIntake
from lipsync.input.clip_loader import load_clip
from lipsync.models.enums import LipSyncMode
from lipsync.models.errors import ConfigurationError, LipSyncError
from lipsync.models.interfaces import MouthRenderer
from lipsync.models.results import MouthShape
from lipsync.models.settings import IntakeConfig, LipSyncConfig
from lipsync.output.renderers import LoggingRenderer


logger = logging.getLogger(__name__)

LOG_FILE = 'logs/lipsync_engine.log'


def configure_logging(level: int = logging.INFO) -> None:
    """Log to logs/lipsync_engine.log and stdout"""
    Path(LOG_FILE).parent.mkdir(exist_ok=True)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(LOG_FILE),
            logging.StreamHandler(sys.stdout)
        ]
    )


class LipSyncEngine:
    """Orchestrator for the lip-sync pipeline.

    Components:
    1. Audio intake (microphone or clip playback on its own thread)
    2. Audio analyzer and vowel detector
    3. Lip-sync controller pushing mouth shapes to the renderer

    The frame loop runs as an asyncio task; every frame polls the intake for
    the newest feature message and feeds its samples to the controller.

    Attributes:
        intake: Real-time audio intake
        analyzer: Spectral analysis facade
        detector: Vowel classifier
        controller: Lip-sync controller
        renderer: Receiver of mouth parameters
        frame_rate: Frame loop rate in Hz
        frames_applied: Number of frames that produced a mouth shape
        tasks: Running asyncio tasks
    """

    def __init__(self, renderer: Optional[MouthRenderer] = None, cfg=None):
        """Build every component from configuration.

        Raises:
            ConfigurationError: If a setting is invalid or the intake block size
                does not match the analysis window in formant mode
        """
        cfg = cfg or config
        logger.info("Initializing LipSyncEngine...")

        self.renderer = renderer or LoggingRenderer()
        self.analyzer = AudioAnalyzer.from_config(cfg)
        self.detector = VowelDetector.from_config(cfg)
        self.controller = LipSyncController(
            renderer=self.renderer,
            analyzer=self.analyzer,
            detector=self.detector,
            config=LipSyncConfig.from_config(cfg)
        )
        self.intake = AudioIntake(IntakeConfig.from_config(cfg))

        self.frame_rate = cfg.get('engine.frame_rate', 60)
        if self.frame_rate <= 0:
            raise ConfigurationError(f"Frame rate must be positive, got {self.frame_rate}")

        if (self.controller.config.mode == LipSyncMode.FORMANT
                and self.intake.settings.buffer_size != self.analyzer.get_buffer_size()):
            raise ConfigurationError(
                f"Intake buffer size {self.intake.settings.buffer_size} must equal "
                f"FFT size {self.analyzer.get_buffer_size()} in formant mode"
            )

        self.frames_applied = 0
        self.tasks: List[asyncio.Task] = []
        self.shutdown_event = asyncio.Event()
        self._shut_down = False

        logger.info("LipSyncEngine initialized successfully")

    def start_input(self, clip_path: Optional[str] = None) -> bool:
        """Start the intake from a clip or the microphone.

        Returns:
            True if audio is flowing, False if lip-sync is unavailable

        Raises:
            FileNotFoundError: If the clip does not exist
            AudioProcessingError: If the clip cannot be decoded
        """
        self.intake.initialize()
        if clip_path:
            samples = load_clip(clip_path, self.intake.settings.sample_rate)
            return self.intake.start_playback(samples)
        return self.intake.start_microphone()

    def process_frame(self) -> Optional[MouthShape]:
        """Feed the newest intake message to the controller.

        Messages whose block is still filling up after start are skipped in
        formant mode.

        Returns:
            The applied shape, or None if nothing was applied this frame
        """
        message = self.intake.poll()
        if message is None:
            return None

        if (self.controller.config.mode == LipSyncMode.FORMANT
                and message.samples.size < self.analyzer.get_buffer_size()):
            logger.debug(f"Skipping partial block of {message.samples.size} samples")
            return None

        shape = self.controller.process_audio(message.samples)
        if shape is not None:
            self.frames_applied += 1
        return shape

    async def frame_loop(self):
        """Run one controller update per frame until shutdown or end of clip"""
        period = 1.0 / self.frame_rate
        logger.info(f"Frame loop started at {self.frame_rate} fps")

        while not self.shutdown_event.is_set():
            try:
                self.process_frame()
            except LipSyncError as e:
                logger.error(f"Frame update failed: {e}")

            if self.intake.playback_finished and len(self.intake.channel) == 0:
                logger.info("Clip finished")
                self.shutdown_event.set()
                break

            await asyncio.sleep(period)

    async def monitor_tasks(self):
        """Log tasks that finished or failed"""
        reported = set()
        while not self.shutdown_event.is_set():
            for task in self.tasks:
                if task.done() and task not in reported:
                    reported.add(task)
                    task_name = task.get_name()
                    try:
                        exception = task.exception()
                        if exception:
                            logger.error(f"Task {task_name} failed with exception: {exception}",
                                         exc_info=exception)
                            self.shutdown_event.set()
                        else:
                            logger.info(f"Task {task_name} completed successfully")
                    except asyncio.CancelledError:
                        logger.info(f"Task {task_name} was cancelled")

            await asyncio.sleep(1.0)

    async def shutdown(self):
        """Cancel tasks and release every component. Safe to call repeatedly."""
        if self._shut_down:
            return
        self._shut_down = True
        logger.info("Shutting down LipSyncEngine...")

        self.shutdown_event.set()
        for task in self.tasks:
            if not task.done():
                task.cancel()
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)

        self.controller.stop()
        self.intake.dispose()
        self.controller.dispose()
        self.analyzer.dispose()
        self.detector.dispose()

        logger.info(f"LipSyncEngine shutdown complete ({self.frames_applied} frames applied)")

    async def run(self, clip_path: Optional[str] = None):
        """Run the pipeline until the clip ends or shutdown is requested.

        Args:
            clip_path: Optional media file; the microphone is used without one
        """
        try:
            logger.info("=" * 60)
            logger.info("Starting LipSyncEngine")
            logger.info("=" * 60)

            if not self.start_input(clip_path):
                logger.error("Audio input unavailable, lip-sync disabled")
                return

            self.controller.start()
            self.tasks.append(asyncio.create_task(self.frame_loop(), name="frame_loop"))
            self.tasks.append(asyncio.create_task(self.monitor_tasks(), name="monitor"))

            await self.shutdown_event.wait()

        except Exception as e:
            logger.error(f"Fatal error in main loop: {e}", exc_info=True)
        finally:
            await self.shutdown()


def setup_signal_handlers(engine: LipSyncEngine):
    """Request a graceful shutdown on SIGINT / SIGTERM.

    Args:
        engine: LipSyncEngine instance to shut down
    """
    loop = asyncio.get_running_loop()

    def signal_handler(signum):
        logger.info(f"Received signal {signum}")
        engine.shutdown_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, signal_handler, signum)
        except NotImplementedError:
            # Event loops without signal support (Windows)
            signal.signal(signum, lambda s, f: loop.call_soon_threadsafe(signal_handler, s))


async def main_async():
    """Async main entry point."""
    clip_path = sys.argv[1] if len(sys.argv) > 1 else None

    if clip_path and not Path(clip_path).exists():
        logger.error(f"Clip not found: {clip_path}")
        logger.info("Usage: python -m lipsync.main [clip_path]")
        return

    config.validate()
    engine = LipSyncEngine()
    setup_signal_handlers(engine)
    await engine.run(clip_path)


def main():
    """Main entry point."""
    try:
        configure_logging()
        asyncio.run(main_async())
    except KeyboardInterrupt:
        logger.info("Application terminated by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
