"""
Timed, bounded sampling sessions over a live PCM stream.

Capture code calls feed() with whatever buffer it has most recently
produced. While a session runs, a worker thread snapshots the latest
buffer at a fixed interval, analyzes it and collects the vectors. When
the window closes the vectors are reduced to FeatureStats and handed to
the caller.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from moodtrace.core.analyzer_base import Analyzer
from moodtrace.core.models import FeatureStats, FeatureVector
from moodtrace.utils.errors import MalformedAudioError


DEFAULT_MAX_SAMPLES = 50
DEFAULT_TOTAL_DURATION_MS = 5000

CompleteCallback = Callable[[List[FeatureVector], FeatureStats], None]
ErrorCallback = Callable[[Exception], None]
CleanupCallback = Callable[[], None]


class LatestBufferSlot:
    """
    Single-slot mailbox holding the most recent PCM buffer.

    Lossy: put() overwrites whatever has not been read yet, so a
    reader always sees the current state of the stream, not its history.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._data: Optional[bytes] = None

    def put(self, data: bytes) -> None:
        # Copy so the producer may reuse its buffer
        with self._lock:
            self._data = bytes(data)

    def snapshot(self) -> Optional[bytes]:
        """Return the latest buffer without consuming it."""
        with self._lock:
            return self._data

    def clear(self) -> None:
        with self._lock:
            self._data = None

    def __bool__(self) -> bool:
        return self.snapshot() is not None


@dataclass
class _Session:
    on_complete: CompleteCallback
    on_error: Optional[ErrorCallback]
    on_cleanup: Optional[CleanupCallback]
    start_time: float
    deadline: float
    stop_event: threading.Event = field(default_factory=threading.Event)
    features: List[FeatureVector] = field(default_factory=list)
    worker: Optional[threading.Thread] = None


class SamplingCoordinator:
    """
    Runs one bounded sampling session at a time.

    A session takes at most ``max_samples`` vectors, one every
    ``total_duration_ms / max_samples``, starting immediately, and ends
    once the sample cap or the total duration is reached.

    Usage:
        sampler = SamplingCoordinator(SpectralAnalyzer())
        sampler.start(on_complete=handle_stats)
        capture.on_buffer(sampler.feed)
    """

    def __init__(
        self,
        analyzer: Analyzer[FeatureVector],
        max_samples: int = DEFAULT_MAX_SAMPLES,
        total_duration_ms: float = DEFAULT_TOTAL_DURATION_MS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], object]] = None,
    ):
        """
        Initialize sampling coordinator.

        Args:
            analyzer: Frame analyzer producing FeatureVectors
            max_samples: Vector cap per session
            total_duration_ms: Length of the sampling window
            clock: Monotonic time source in seconds, also used to stamp vectors
            sleep: Wait function taking seconds; defaults to an interruptible
                wait on the session's stop event
        """
        if max_samples < 1:
            raise ValueError(f"max_samples must be >= 1, got {max_samples}")
        if total_duration_ms <= 0:
            raise ValueError(f"total_duration_ms must be > 0, got {total_duration_ms}")

        self.analyzer = analyzer
        self.max_samples = max_samples
        self.total_duration = total_duration_ms / 1000.0
        self.sample_interval = self.total_duration / max_samples
        self._clock = clock
        self._sleep = sleep

        self._slot = LatestBufferSlot()
        self._lock = threading.Lock()
        self._session: Optional[_Session] = None
        self._worker: Optional[threading.Thread] = None

        self.logger = logging.getLogger("sampling")

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._session is not None

    def start(
        self,
        on_complete: CompleteCallback,
        on_error: Optional[ErrorCallback] = None,
        on_cleanup: Optional[CleanupCallback] = None,
    ) -> bool:
        """
        Begin a sampling session.

        Args:
            on_complete: Receives the collected vectors and their stats
            on_error: Receives an analyzer failure that ended the session
            on_cleanup: Runs after every session, however it ended

        Returns:
            False if a session is already running (the call is ignored)
        """
        with self._lock:
            if self._session is not None:
                self.logger.debug("Start ignored, session already running")
                return False

            now = self._clock()
            session = _Session(
                on_complete=on_complete,
                on_error=on_error,
                on_cleanup=on_cleanup,
                start_time=now,
                deadline=now + self.total_duration,
            )
            session.worker = threading.Thread(
                target=self._run,
                args=(session,),
                name="sampling-worker",
                daemon=True,
            )
            self._session = session
            self._worker = session.worker

        self.analyzer.reset()
        self.logger.info(
            f"Sampling started: {self.max_samples} samples over "
            f"{self.total_duration * 1000:.0f}ms"
        )
        session.worker.start()
        return True

    def feed(self, raw_bytes: bytes) -> None:
        """Offer the latest captured PCM buffer. Overwrites unconsumed data."""
        self._slot.put(raw_bytes)

    def stop(self) -> None:
        """
        Cancel the running session without delivering results.

        on_cleanup still runs. Safe to call at any time, including from a
        session callback.
        """
        with self._lock:
            session = self._session
        if session is None:
            return

        session.stop_event.set()
        worker = session.worker
        if worker is not None and worker is not threading.current_thread():
            worker.join()

        self.analyzer.reset()
        self.logger.info("Sampling stopped")

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the latest session worker to exit, callbacks included.

        Returns:
            True if no worker is alive afterwards
        """
        with self._lock:
            worker = self._worker
        if worker is None:
            return True
        if worker is threading.current_thread():
            return False
        worker.join(timeout)
        return not worker.is_alive()

    def _run(self, session: _Session) -> None:
        sleep = self._sleep or session.stop_event.wait
        failure: Optional[Exception] = None
        next_tick = session.start_time

        try:
            while not session.stop_event.is_set():
                now = self._clock()
                if now >= session.deadline:
                    break
                if len(session.features) >= self.max_samples:
                    break
                if now < next_tick:
                    sleep(next_tick - now)
                    continue

                self._tick(session, now)
                next_tick = now + self.sample_interval
        except Exception as e:
            failure = e

        cancelled = session.stop_event.is_set() and failure is None
        self._finish(session, failure, cancelled)

    def _tick(self, session: _Session, now: float) -> None:
        raw = self._slot.snapshot()
        if raw is None:
            self.logger.debug("No buffer fed yet, tick skipped")
            return

        try:
            vector = self.analyzer.analyze(raw, timestamp=now)
        except MalformedAudioError as e:
            self.logger.warning(f"Skipping malformed buffer: {e}")
            return

        session.features.append(vector)

    def _finish(
        self,
        session: _Session,
        failure: Optional[Exception],
        cancelled: bool,
    ) -> None:
        features = list(session.features)

        if failure is not None:
            self.logger.error(f"Sampling failed after {len(features)} samples: {failure}")
            self._notify_error(session, failure)
        elif cancelled:
            self.logger.debug(f"Session cancelled with {len(features)} samples")
        else:
            stats = FeatureStats.from_features(features)
            self.logger.info(
                f"Sampling complete: {stats.sample_count} samples in {stats.duration_ms}ms"
            )
            try:
                session.on_complete(features, stats)
            except Exception as e:
                self.logger.error(f"on_complete callback failed: {e}", exc_info=True)
                self._notify_error(session, e)

        self._slot.clear()
        with self._lock:
            if self._session is session:
                self._session = None

        if session.on_cleanup is not None:
            try:
                session.on_cleanup()
            except Exception as e:
                self.logger.error(f"on_cleanup callback failed: {e}", exc_info=True)

    def _notify_error(self, session: _Session, error: Exception) -> None:
        if session.on_error is None:
            return
        try:
            session.on_error(error)
        except Exception as e:
            self.logger.error(f"on_error callback failed: {e}", exc_info=True)


def create_sampling_coordinator(
    config: dict,
    analyzer: Optional[Analyzer[FeatureVector]] = None,
) -> SamplingCoordinator:
    """
    Factory function to create a SamplingCoordinator from config.

    Args:
        config: Full configuration dict (reads 'sampling' and 'analysis')
        analyzer: Frame analyzer; a SpectralAnalyzer is built when omitted
    """
    if analyzer is None:
        from moodtrace.core.spectral import create_spectral_analyzer
        analyzer = create_spectral_analyzer(config)

    sampling = config.get('sampling', {})
    return SamplingCoordinator(
        analyzer,
        max_samples=sampling.get('max_samples', DEFAULT_MAX_SAMPLES),
        total_duration_ms=sampling.get('total_duration_ms', DEFAULT_TOTAL_DURATION_MS),
    )
