"""
Core data models for the MoodTrace pipeline.

Immutable domain models for per-frame audio features, their session
statistics, and the fan-in snapshot handed to the classifier.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional, Sequence, Tuple

import numpy as np

if TYPE_CHECKING:
    from moodtrace.features.emotion import EmotionType


DYNAMICS_LEVELS: Tuple[str, ...] = ("silence", "pp", "p", "mp", "mf", "f", "ff")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clamp01(value: float) -> float:
    return float(min(1.0, max(0.0, value)))


@dataclass(frozen=True, eq=False)
class FeatureVector:
    """
    Spectral and perceptual descriptors for one audio frame.

    ``spectrum`` has frame_size/2 magnitude bins and ``harmonic_content``
    has 12 pitch-class energies normalized to [0, 1]. Equality is identity
    because the arrays make value comparison ambiguous.
    """

    amplitude: float
    energy: float
    fundamental_frequency: float  # Hz, 0 when silent
    spectral_centroid: float  # [0, 1], fraction of Nyquist
    spectral_spread: float  # [0, 1], fraction of Nyquist
    spectral_rolloff: float  # [0, 1], fraction of Nyquist
    brightness: float  # [0, 1], magnitude share above 1500 Hz
    roughness: float  # [0, 1]
    spectral_flux: float  # unbounded, squared FFT-buffer difference
    harmonic_complexity: float  # entropy / 4, roughly [0, 1]
    spectrum: np.ndarray
    harmonic_content: np.ndarray
    timestamp: float  # monotonic seconds
    pitch_name: str = "Rest"
    loudness: float = float("-inf")  # dB
    dynamics: str = "silence"
    is_beat: bool = False

    @property
    def pitch(self) -> float:
        """Alias of the fundamental frequency in Hz."""
        return self.fundamental_frequency

    @property
    def beat_strength(self) -> float:
        """Energy above the 0.1 floor, rescaled to [0, 1]."""
        return _clamp01((self.energy - 0.1) / 0.9)

    @property
    def valence(self) -> float:
        """Heuristic pleasantness estimate in [0, 1]."""
        return _clamp01(
            self.brightness * 0.4
            + (1.0 - self.harmonic_complexity) * 0.3
            + self.energy * 0.3
        )

    @property
    def arousal(self) -> float:
        """Heuristic activation estimate in [0, 1]."""
        return _clamp01(
            self.energy * 0.4 + self.brightness * 0.3 + self.beat_strength * 0.3
        )

    def to_dict(self, include_spectrum: bool = False) -> Dict[str, Any]:
        """Convert to dictionary."""
        result = {
            'timestamp': self.timestamp,
            'amplitude': self.amplitude,
            'energy': self.energy,
            'fundamental_frequency': self.fundamental_frequency,
            'pitch_name': self.pitch_name,
            'loudness': self.loudness,
            'dynamics': self.dynamics,
            'spectral_centroid': self.spectral_centroid,
            'spectral_spread': self.spectral_spread,
            'spectral_rolloff': self.spectral_rolloff,
            'brightness': self.brightness,
            'roughness': self.roughness,
            'spectral_flux': self.spectral_flux,
            'harmonic_complexity': self.harmonic_complexity,
            'harmonic_content': [float(v) for v in self.harmonic_content],
            'is_beat': self.is_beat,
            'valence': self.valence,
            'arousal': self.arousal,
        }
        if include_spectrum:
            result['spectrum'] = [float(v) for v in self.spectrum]
        return result


@dataclass(frozen=True)
class FeatureStats:
    """Population statistics over the vectors collected in one session."""

    duration: float  # seconds, last.timestamp - first.timestamp
    sample_count: int
    mean_energy: float = 0.0
    energy_variance: float = 0.0
    mean_pitch: float = 0.0
    pitch_variance: float = 0.0
    mean_brightness: float = 0.0
    brightness_variance: float = 0.0

    @classmethod
    def from_features(cls, features: Sequence[FeatureVector]) -> "FeatureStats":
        """
        Reduce a session's vectors to summary statistics.

        An empty sequence yields a zeroed result rather than NaN means.
        """
        if not features:
            return cls(duration=0.0, sample_count=0)

        energy = np.array([f.energy for f in features], dtype=np.float64)
        pitch = np.array([f.pitch for f in features], dtype=np.float64)
        brightness = np.array([f.brightness for f in features], dtype=np.float64)

        return cls(
            duration=float(features[-1].timestamp - features[0].timestamp),
            sample_count=len(features),
            mean_energy=float(energy.mean()),
            energy_variance=float(energy.var()),
            mean_pitch=float(pitch.mean()),
            pitch_variance=float(pitch.var()),
            mean_brightness=float(brightness.mean()),
            brightness_variance=float(brightness.var()),
        )

    @property
    def duration_ms(self) -> int:
        return int(round(self.duration * 1000))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'duration': self.duration,
            'sample_count': self.sample_count,
            'mean_energy': self.mean_energy,
            'energy_variance': self.energy_variance,
            'mean_pitch': self.mean_pitch,
            'pitch_variance': self.pitch_variance,
            'mean_brightness': self.mean_brightness,
            'brightness_variance': self.brightness_variance,
        }

    def __str__(self) -> str:
        return (
            f"Duration: {self.duration_ms}ms, Samples: {self.sample_count}\n"
            f"Energy: mean={self.mean_energy}, var={self.energy_variance}\n"
            f"Pitch: mean={self.mean_pitch}, var={self.pitch_variance}\n"
            f"Brightness: mean={self.mean_brightness}, var={self.brightness_variance}"
        )


@dataclass(frozen=True)
class AnalysisResult:
    """
    Fan-in snapshot of the two producers for one cycle.

    A new snapshot is built on every producer update; ``generation``
    identifies the cycle it belongs to.
    """

    audio_stats: Optional[FeatureStats] = None
    audio_features: Optional[Tuple[FeatureVector, ...]] = None
    recognized_text: Optional[str] = None
    generation: int = 0
    timestamp: datetime = field(default_factory=_utcnow)

    def is_complete(self) -> bool:
        """True when audio stats, audio features and text are all present."""
        return (
            self.audio_stats is not None
            and self.audio_features is not None
            and self.recognized_text is not None
        )

    def __str__(self) -> str:
        samples = len(self.audio_features) if self.audio_features is not None else 0
        stats = str(self.audio_stats) if self.audio_stats else "Not available"
        text = self.recognized_text if self.recognized_text is not None else "Not available"
        return (
            f"Analysis Result at {self.timestamp.isoformat()} "
            f"(generation {self.generation})\n"
            f"Audio Stats: {stats}\n"
            f"Samples: {samples}\n"
            f"Recognized Text: {text}"
        )


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of one classifier call, as delivered to the presentation sink."""

    raw_response: str
    content: str
    emotion: "EmotionType"
    generation: int
    prompt: str
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'emotion': self.emotion.value,
            'content': self.content,
            'raw_response': self.raw_response,
            'generation': self.generation,
            'timestamp': self.timestamp.isoformat(),
        }
