"""
Spectral analyzer for the MoodTrace pipeline.

Turns one frame of raw 16-bit PCM into a FeatureVector: windowed FFT,
magnitude spectrum, pitch-class profile and a set of perceptual scalars.
"""

import math
import threading
import time
from collections import deque
from typing import Callable, Deque, Optional

import numpy as np

from moodtrace.core.analyzer_base import BaseAnalyzer
from moodtrace.core.models import FeatureVector
from moodtrace.utils.errors import MalformedAudioError


FRAME_SIZE = 2048
SAMPLE_RATE = 44100

# Musical note names
NOTE_NAMES = ['C', 'C#', 'D', 'D#', 'E', 'F', 'F#', 'G', 'G#', 'A', 'A#', 'B']

MIN_FREQUENCY = 20.0  # Hz, floor for fundamental detection
BRIGHTNESS_CUTOFF = 1500.0  # Hz
ROLLOFF_RATIO = 0.85
SILENCE_ENERGY = 1e-10
LOUDNESS_FLOOR = 1e-6

# Empirical scaling of the 12-class entropy. Not log2(12); kept for
# output compatibility with earlier recordings.
HARMONIC_COMPLEXITY_SCALE = 4.0

ENERGY_WINDOW = 10
BEAT_THRESHOLD = 1.5
MIN_BEAT_INTERVAL = 0.2  # seconds

DYNAMICS_LADDER = (
    (0.1, "pp"),
    (0.25, "p"),
    (0.4, "mp"),
    (0.6, "mf"),
    (0.8, "f"),
)


def hz_to_pitch_name(frequency: float) -> str:
    """
    Convert frequency in Hz to a note name with octave.

    The MIDI number is truncated, not rounded, so 450 Hz is still "A4".

    Returns:
        str: Note name (e.g., "A4", "C#5"), or "Rest" for non-positive input
    """
    if frequency <= 0:
        return "Rest"

    midi_note = int(69 + 12 * math.log2(frequency / 440.0))
    octave = midi_note // 12 - 1
    return f"{NOTE_NAMES[midi_note % 12]}{octave}"


def energy_to_loudness(energy: float) -> float:
    """Energy to dB, -inf for silence."""
    if energy < SILENCE_ENERGY:
        return float("-inf")
    return 20.0 * math.log10(max(energy, LOUDNESS_FLOOR))


def energy_to_dynamics(energy: float) -> str:
    """Map energy onto the pp..ff ladder ("silence" below the floor)."""
    if energy < SILENCE_ENERGY:
        return "silence"
    for threshold, marking in DYNAMICS_LADDER:
        if energy < threshold:
            return marking
    return "ff"


class SpectralAnalyzer(BaseAnalyzer[FeatureVector]):
    """
    FFT-based frame analyzer.

    Produces per frame:
    - Amplitude, energy and fundamental frequency
    - 12-bin pitch-class profile and its entropy
    - Centroid, spread, rolloff, brightness, roughness and flux
    - Pitch name, loudness, dynamics marking and a beat flag

    The previous FFT frame and a short energy history are retained for
    flux and beat detection, so calls are serialized by an instance lock.
    """

    def __init__(
        self,
        frame_size: int = FRAME_SIZE,
        sample_rate: int = SAMPLE_RATE,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize spectral analyzer.

        Args:
            frame_size: Samples per frame (even)
            sample_rate: Capture rate the Hz outputs are computed against
            clock: Timestamp source when the caller does not supply one
        """
        super().__init__("spectral", "1.0.0")

        if frame_size < 4 or frame_size % 2:
            raise ValueError(f"frame_size must be an even number >= 4, got {frame_size}")

        self.frame_size = frame_size
        self.sample_rate = sample_rate
        self._clock = clock
        self._lock = threading.Lock()

        n = frame_size
        self._window = 0.5 * (1.0 - np.cos(2.0 * np.pi * np.arange(n) / (n - 1)))
        self.bin_frequencies = np.arange(n // 2) * sample_rate / n
        self._nyquist = sample_rate / 2.0

        self._min_bin = max(1, int(MIN_FREQUENCY * n / sample_rate))
        self._brightness_bin = int(BRIGHTNESS_CUTOFF * n / sample_rate)

        # Pitch class of every bin above DC
        midi = 69.0 + 12.0 * np.log2(self.bin_frequencies[1:] / 440.0)
        self._pitch_classes = (np.floor(midi + 0.5).astype(np.int64) % 12)

        self._prev_frame = np.zeros(n)
        self._energy_history: Deque[float] = deque(maxlen=ENERGY_WINDOW)
        self._last_beat_time: Optional[float] = None

    @property
    def bin_width(self) -> float:
        """Frequency resolution in Hz."""
        return self.sample_rate / self.frame_size

    def reset(self) -> None:
        """Zero the retained FFT frame and energy history."""
        with self._lock:
            self._prev_frame = np.zeros(self.frame_size)
            self._energy_history.clear()
            self._last_beat_time = None
        self.logger.debug("Analyzer state reset")

    def _analyze_impl(self, raw_pcm: bytes, timestamp: Optional[float]) -> FeatureVector:
        samples = self._decode(raw_pcm)

        with self._lock:
            if timestamp is None:
                timestamp = self._clock()

            windowed = samples * self._window
            fft = np.fft.rfft(windowed)
            packed = self._pack(fft)
            spectrum = self._magnitude_spectrum(fft)

            amplitude = float(np.max(np.abs(windowed)))
            energy = float(np.mean(windowed * windowed))
            fundamental = self._detect_fundamental(spectrum)
            harmonic_content = self._pitch_class_profile(spectrum)

            centroid_hz = self._centroid_hz(spectrum)
            spread = self._spread(spectrum, centroid_hz)
            flux = float(np.sum((packed - self._prev_frame) ** 2))
            is_beat = self._detect_beat(energy, timestamp)

            self._prev_frame = packed

        return FeatureVector(
            amplitude=amplitude,
            energy=energy,
            fundamental_frequency=fundamental,
            spectral_centroid=self._normalize(centroid_hz),
            spectral_spread=spread,
            spectral_rolloff=self._rolloff(spectrum),
            brightness=self._brightness(spectrum),
            roughness=self._roughness(spectrum),
            spectral_flux=flux,
            harmonic_complexity=self._harmonic_complexity(harmonic_content),
            spectrum=spectrum,
            harmonic_content=harmonic_content,
            timestamp=float(timestamp),
            pitch_name=hz_to_pitch_name(fundamental),
            loudness=energy_to_loudness(energy),
            dynamics=energy_to_dynamics(energy),
            is_beat=is_beat,
        )

    def _decode(self, raw_pcm: bytes) -> np.ndarray:
        """Little-endian int16 to floats in [-1, 1), cut or zero-padded to one frame."""
        if not isinstance(raw_pcm, (bytes, bytearray, memoryview)):
            raise MalformedAudioError(
                f"Expected PCM bytes, got {type(raw_pcm).__name__}"
            )

        length = len(raw_pcm)
        if length % 2:
            raise MalformedAudioError(
                f"16-bit PCM buffer has odd length: {length} bytes",
                byte_length=length,
            )

        samples = np.zeros(self.frame_size)
        count = min(length // 2, self.frame_size)
        if count:
            pcm = np.frombuffer(raw_pcm, dtype='<i2', count=count)
            samples[:count] = pcm / 32768.0
        return samples

    def _pack(self, fft: np.ndarray) -> np.ndarray:
        """
        Interleave the half spectrum as [Re0, Re(N/2), Re1, Im1, ...].

        Flux is measured on this buffer, so its layout fixes the flux scale.
        """
        half = self.frame_size // 2
        packed = np.empty(self.frame_size)
        packed[0] = fft[0].real
        packed[1] = fft[half].real
        packed[2::2] = fft[1:half].real
        packed[3::2] = fft[1:half].imag
        return packed

    def _magnitude_spectrum(self, fft: np.ndarray) -> np.ndarray:
        """frame_size/2 magnitudes; first bin is |DC|, last bin is |Nyquist|."""
        half = self.frame_size // 2
        spectrum = np.abs(fft[:half])
        spectrum[0] = abs(fft[0].real)
        spectrum[half - 1] = abs(fft[half].real)
        return spectrum

    def _detect_fundamental(self, spectrum: np.ndarray) -> float:
        """Frequency of the strongest bin above the 20 Hz floor."""
        search = spectrum[self._min_bin:]
        if search.size == 0 or search.max() <= 0:
            return 0.0
        peak_bin = self._min_bin + int(np.argmax(search))
        return float(self.bin_frequencies[peak_bin])

    def _pitch_class_profile(self, spectrum: np.ndarray) -> np.ndarray:
        """Fold bin magnitudes onto 12 pitch classes, normalized by the loudest class."""
        profile = np.bincount(self._pitch_classes, weights=spectrum[1:], minlength=12)
        peak = profile.max()
        if peak > 0:
            profile = profile / peak
        return profile

    def _centroid_hz(self, spectrum: np.ndarray) -> float:
        total = spectrum.sum()
        if total <= 0:
            return 0.0
        return float(np.dot(self.bin_frequencies, spectrum) / total)

    def _spread(self, spectrum: np.ndarray, centroid_hz: float) -> float:
        total = spectrum.sum()
        if total <= 0:
            return 0.0
        deviation = self.bin_frequencies - centroid_hz
        spread_hz = math.sqrt(float(np.dot(deviation * deviation, spectrum) / total))
        return self._normalize(spread_hz)

    def _rolloff(self, spectrum: np.ndarray) -> float:
        """Normalized frequency below which 85% of the magnitude lies."""
        cumulative = np.cumsum(spectrum)
        threshold = cumulative[-1] * ROLLOFF_RATIO
        rolloff_bin = int(np.searchsorted(cumulative, threshold, side='left'))
        rolloff_bin = min(rolloff_bin, len(spectrum) - 1)
        return self._normalize(float(self.bin_frequencies[rolloff_bin]))

    def _brightness(self, spectrum: np.ndarray) -> float:
        total = spectrum.sum()
        if total <= 0:
            return 0.0
        return float(spectrum[self._brightness_bin:].sum() / total)

    def _roughness(self, spectrum: np.ndarray) -> float:
        previous, current = spectrum[:-1], spectrum[1:]
        ceiling = np.maximum(previous, current).sum()
        if ceiling <= 0:
            return 0.0
        return float(np.abs(current - previous).sum() / ceiling)

    def _harmonic_complexity(self, harmonic_content: np.ndarray) -> float:
        total = harmonic_content.sum()
        if total <= 0:
            return 0.0
        p = harmonic_content / total
        p = p[p > 0]
        entropy = float(-np.sum(p * np.log2(p)))
        return entropy / HARMONIC_COMPLEXITY_SCALE

    def _detect_beat(self, energy: float, timestamp: float) -> bool:
        """Energy onset against the rolling mean, at most one per 200 ms."""
        self._energy_history.append(energy)
        average = sum(self._energy_history) / len(self._energy_history)

        recovered = (
            self._last_beat_time is None
            or timestamp - self._last_beat_time > MIN_BEAT_INTERVAL
        )
        is_beat = energy > average * BEAT_THRESHOLD and recovered
        if is_beat:
            self._last_beat_time = timestamp
        return is_beat

    def _normalize(self, frequency: float) -> float:
        return float(min(1.0, max(0.0, frequency / self._nyquist)))


def create_spectral_analyzer(config: dict) -> SpectralAnalyzer:
    """
    Factory function to create a SpectralAnalyzer from config.

    Args:
        config: Full configuration dict (reads the 'analysis' section)
    """
    analysis = config.get('analysis', {})
    return SpectralAnalyzer(
        frame_size=analysis.get('frame_size', FRAME_SIZE),
        sample_rate=analysis.get('sample_rate', SAMPLE_RATE),
    )
