"""
Audio file source for the MoodTrace pipeline.

Decodes an audio file into 16-bit little-endian mono PCM frames at the
analysis rate, standing in for live capture when driving the pipeline
from the command line.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Set

import librosa
import numpy as np
import soundfile as sf

from moodtrace.utils.errors import AudioLoadError, UnsupportedFormatError


# Constants
SUPPORTED_FORMATS = frozenset({'.wav', '.aif', '.aiff', '.flac', '.ogg', '.mp3'})

TARGET_SAMPLE_RATE: int = 44100  # Hz
FRAME_SIZE: int = 2048  # samples

logger = logging.getLogger(__name__)


def to_pcm16(samples: np.ndarray) -> bytes:
    """Float samples in [-1, 1] to little-endian int16 bytes (clipped)."""
    clipped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 32767.0 / 32768.0)
    return (clipped * 32768.0).astype('<i2').tobytes()


def split_frames(samples: np.ndarray, frame_size: int = FRAME_SIZE) -> Iterator[bytes]:
    """
    Cut a mono signal into consecutive PCM frames.

    The last partial frame is zero-padded; an empty signal yields nothing.
    """
    samples = np.asarray(samples)
    for start in range(0, len(samples), frame_size):
        chunk = samples[start:start + frame_size]
        if len(chunk) < frame_size:
            chunk = np.pad(chunk, (0, frame_size - len(chunk)))
        yield to_pcm16(chunk)


class PcmFrameSource:
    """
    Loads audio files and serves them as raw PCM frames.

    Thread-safe and stateless - can be used concurrently.
    """

    def __init__(
        self,
        target_sr: int = TARGET_SAMPLE_RATE,
        frame_size: int = FRAME_SIZE,
    ):
        """
        Initialize frame source.

        Args:
            target_sr: Sample rate frames are resampled to
            frame_size: Samples per emitted frame
        """
        self.target_sr = target_sr
        self.frame_size = frame_size
        self.supported_suffixes: Set[str] = set(SUPPORTED_FORMATS)

    @property
    def frame_duration(self) -> float:
        """Seconds of audio in one frame."""
        return self.frame_size / self.target_sr

    def load(self, file_path: Path) -> np.ndarray:
        """
        Load an audio file as a mono float signal at ``target_sr``.

        Raises:
            FileNotFoundError: File doesn't exist
            UnsupportedFormatError: File format not supported
            AudioLoadError: Audio data is invalid
        """
        file_path = Path(file_path)
        self._validate_file(file_path)
        self._log_metadata(file_path)

        try:
            audio_data, _ = librosa.load(
                str(file_path),
                sr=self.target_sr,
                mono=True,
                dtype=np.float32,
            )
        except Exception as e:
            raise AudioLoadError(
                f"Failed to load audio data from {file_path}: {e}",
                file_path=str(file_path),
            ) from e

        return self._validate_audio_data(audio_data, file_path)

    def frames(self, file_path: Path) -> Iterator[bytes]:
        """Yield the file's PCM frames in order."""
        audio_data = self.load(file_path)
        logger.info(
            f"Streaming {len(audio_data) / self.target_sr:.2f}s "
            f"as {self.frame_size}-sample frames"
        )
        return split_frames(audio_data, self.frame_size)

    def _validate_file(self, file_path: Path) -> None:
        if not file_path.exists():
            raise FileNotFoundError(f"Audio file not found: {file_path}")

        suffix = file_path.suffix.lower()
        if suffix not in self.supported_suffixes:
            raise UnsupportedFormatError(
                f"Format {suffix} not supported. "
                f"Supported formats: {', '.join(sorted(self.supported_suffixes))}",
                format=suffix,
            )

    def _validate_audio_data(self, audio_data: np.ndarray, file_path: Path) -> np.ndarray:
        if audio_data.size == 0:
            raise AudioLoadError(f"Audio file is empty: {file_path}", file_path=str(file_path))

        rms = np.sqrt(np.mean(audio_data ** 2))
        if rms < 1e-6:
            logger.warning(f"Audio appears to be silent: {file_path}")

        max_abs = np.max(np.abs(audio_data))
        if max_abs > 1.0:
            logger.warning(
                f"Audio contains clipping (max: {max_abs:.2f}), normalizing: {file_path}"
            )
            audio_data = audio_data / max_abs

        return audio_data

    def _log_metadata(self, file_path: Path) -> None:
        try:
            info = sf.info(str(file_path))
        except Exception as e:
            # soundfile cannot read every format (e.g. some MP3s)
            logger.warning(f"Could not read metadata with soundfile: {e}")
            return
        logger.info(
            f"Loading audio: {info.samplerate} Hz, {info.channels} ch, {info.subtype}"
        )


def create_frame_source(config: Optional[Dict[str, Any]] = None) -> PcmFrameSource:
    """
    Factory function to create PcmFrameSource from config.

    Args:
        config: Full configuration dict (reads the 'analysis' section)
    """
    analysis = (config or {}).get('analysis', {})
    return PcmFrameSource(
        target_sr=analysis.get('sample_rate', TARGET_SAMPLE_RATE),
        frame_size=analysis.get('frame_size', FRAME_SIZE),
    )
