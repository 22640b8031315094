"""Shared fixtures for MoodTrace tests."""

import threading
from typing import List

import numpy as np
import pytest

from moodtrace.core.models import FeatureStats, FeatureVector


SAMPLE_RATE = 44100
FRAME_SIZE = 2048


# ---------------------------------------------------------------------------
# Deterministic time
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self.now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self.now += seconds


# ---------------------------------------------------------------------------
# Mock classifier
# ---------------------------------------------------------------------------


class MockClassifier:
    """Classifier that returns a canned response without API calls."""

    def __init__(self, response: str = "Primary Emotion: Joy\nBright and upbeat."):
        self.response = response
        self.prompts: List[str] = []
        self.call_count = 0
        self.release = threading.Event()
        self.release.set()

    def send(self, prompt: str) -> str:
        self.call_count += 1
        self.prompts.append(prompt)
        # Tests clear ``release`` to hold the call in flight
        self.release.wait(5.0)
        return self.response


class FailingClassifier:
    """Classifier whose every call raises."""

    def __init__(self):
        self.call_count = 0

    def send(self, prompt: str) -> str:
        self.call_count += 1
        raise RuntimeError("service unavailable")


# ---------------------------------------------------------------------------
# Signal helpers
# ---------------------------------------------------------------------------


def make_sine(frequency: float, amplitude: float = 0.5, size: int = FRAME_SIZE,
              sample_rate: int = SAMPLE_RATE) -> bytes:
    t = np.arange(size) / sample_rate
    samples = amplitude * np.sin(2 * np.pi * frequency * t)
    return (samples * 32767).astype('<i2').tobytes()


def make_vector(energy: float = 0.1, pitch: float = 440.0, brightness: float = 0.2,
                timestamp: float = 0.0, loudness: float = -20.0,
                pitch_name: str = "A4", dynamics: str = "p") -> FeatureVector:
    return FeatureVector(
        amplitude=0.5,
        energy=energy,
        fundamental_frequency=pitch,
        spectral_centroid=0.1,
        spectral_spread=0.05,
        spectral_rolloff=0.2,
        brightness=brightness,
        roughness=0.3,
        spectral_flux=0.0,
        harmonic_complexity=0.25,
        spectrum=np.zeros(FRAME_SIZE // 2),
        harmonic_content=np.zeros(12),
        timestamp=timestamp,
        pitch_name=pitch_name,
        loudness=loudness,
        dynamics=dynamics,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_clock():
    """FakeClock starting at t=0."""
    return FakeClock()


@pytest.fixture
def mock_classifier():
    """MockClassifier answering "Primary Emotion: Joy"."""
    return MockClassifier()


@pytest.fixture
def failing_classifier():
    return FailingClassifier()


@pytest.fixture
def sine_frame():
    """Factory for one 16-bit PCM sine frame."""
    return make_sine


@pytest.fixture
def sweep_frames():
    """50 distinct sine frames sweeping 220 Hz to 1200 Hz."""
    return [make_sine(f) for f in np.linspace(220.0, 1200.0, 50)]


@pytest.fixture
def silent_frame():
    return bytes(FRAME_SIZE * 2)


@pytest.fixture
def vector_factory():
    """Factory for FeatureVectors with chosen scalar values."""
    return make_vector


@pytest.fixture
def sample_vectors():
    """Three vectors 100 ms apart with known statistics."""
    return [
        make_vector(energy=0.1, pitch=440.0, brightness=0.2, timestamp=1.0),
        make_vector(energy=0.2, pitch=220.0, brightness=0.4, timestamp=1.1),
        make_vector(energy=0.3, pitch=330.0, brightness=0.6, timestamp=1.2),
    ]


@pytest.fixture
def sample_stats(sample_vectors):
    return FeatureStats.from_features(sample_vectors)
