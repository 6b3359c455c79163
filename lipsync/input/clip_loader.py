"""Clip loader for playback mode

Decodes the audio track of a media file with PyAV, mixes it to mono and
resamples it with librosa so it can be streamed through the intake.
"""

import logging
from pathlib import Path
from typing import List, Union
import numpy as np
import av
import librosa

from lipsync.models.errors import AudioProcessingError


logger = logging.getLogger(__name__)


def _frame_to_mono(frame) -> np.ndarray:
    """Convert a decoded PyAV audio frame to mono float32 in [-1, 1]"""
    data = frame.to_ndarray()
    if np.issubdtype(data.dtype, np.integer):
        data = data.astype(np.float32) / float(np.iinfo(data.dtype).max + 1)

    channels = max(1, len(frame.layout.channels))
    if frame.format.is_planar:
        data = data.reshape(channels, -1).mean(axis=0)
    else:
        # Packed formats interleave channels
        data = data.reshape(-1, channels).mean(axis=1)
    return data.astype(np.float32)


def load_clip(path: Union[str, Path], target_sample_rate: int = 48000) -> np.ndarray:
    """Load the first audio track of a file as mono float32 samples.

    Args:
        path: Audio or video file
        target_sample_rate: Sample rate of the returned samples

    Returns:
        Mono samples at ``target_sample_rate``

    Raises:
        FileNotFoundError: If the file does not exist
        AudioProcessingError: If the file has no audio track or cannot be decoded
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Audio file not found: {path}")

    logger.info(f"Loading clip: {path}")
    try:
        container = av.open(str(path))
    except Exception as e:
        logger.error(f"Failed to open clip: {e}")
        raise AudioProcessingError(f"Could not open {path}: {e}") from e

    try:
        if not container.streams.audio:
            raise AudioProcessingError(f"No audio track in {path}")

        stream = container.streams.audio[0]
        chunks: List[np.ndarray] = []
        source_rate = None
        for frame in container.decode(stream):
            source_rate = source_rate or frame.sample_rate
            chunks.append(_frame_to_mono(frame))
    except AudioProcessingError:
        raise
    except Exception as e:
        logger.error(f"Failed to decode clip: {e}", exc_info=True)
        raise AudioProcessingError(f"Could not decode {path}: {e}") from e
    finally:
        container.close()

    if not chunks:
        raise AudioProcessingError(f"No audio decoded from {path}")

    samples = np.concatenate(chunks)
    if source_rate != target_sample_rate:
        logger.debug(f"Resampling clip from {source_rate} Hz to {target_sample_rate} Hz")
        samples = librosa.resample(samples, orig_sr=source_rate, target_sr=target_sample_rate)

    logger.info(f"Clip loaded: {len(samples) / target_sample_rate:.2f}s at {target_sample_rate} Hz")
    return samples.astype(np.float32)
