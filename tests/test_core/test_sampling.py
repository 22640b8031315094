"""Tests for LatestBufferSlot and SamplingCoordinator."""

import threading
from unittest.mock import MagicMock

import pytest

from moodtrace.core.sampling import (
    LatestBufferSlot,
    SamplingCoordinator,
    create_sampling_coordinator,
)
from moodtrace.core.spectral import SpectralAnalyzer
from moodtrace.utils.errors import AnalysisError


class FramePump:
    """Fake sleep: advances the clock, then delivers the next frame."""

    def __init__(self, clock, frames=(), on_sleep=None):
        self.clock = clock
        self.frames = list(frames)
        self.index = 0
        self.sleeps = 0
        self.sampler = None
        self.on_sleep = on_sleep

    def __call__(self, seconds):
        self.sleeps += 1
        self.clock.advance(seconds)
        if self.index < len(self.frames):
            self.sampler.feed(self.frames[self.index])
            self.index += 1
        if self.on_sleep is not None:
            self.on_sleep(self)


class Recorder:
    """Collects session callbacks."""

    def __init__(self):
        self.completed = []
        self.errors = []
        self.cleanups = 0

    def on_complete(self, features, stats):
        self.completed.append((features, stats))

    def on_error(self, error):
        self.errors.append(error)

    def on_cleanup(self):
        self.cleanups += 1

    def callbacks(self):
        return {
            "on_complete": self.on_complete,
            "on_error": self.on_error,
            "on_cleanup": self.on_cleanup,
        }


def make_sampler(clock, frames=(), max_samples=50, total_duration_ms=5000,
                 analyzer=None, on_sleep=None):
    pump = FramePump(clock, frames, on_sleep)
    sampler = SamplingCoordinator(
        analyzer or SpectralAnalyzer(clock=clock),
        max_samples=max_samples,
        total_duration_ms=total_duration_ms,
        clock=clock,
        sleep=pump,
    )
    pump.sampler = sampler
    return sampler, pump


class TestLatestBufferSlot:
    def test_empty_slot(self):
        slot = LatestBufferSlot()
        assert slot.snapshot() is None
        assert not slot

    def test_put_overwrites(self):
        slot = LatestBufferSlot()
        slot.put(b"\x01\x00")
        slot.put(b"\x02\x00")
        assert slot.snapshot() == b"\x02\x00"

    def test_snapshot_does_not_consume(self):
        slot = LatestBufferSlot()
        slot.put(b"ab")
        assert slot.snapshot() == b"ab"
        assert slot.snapshot() == b"ab"

    def test_put_copies_buffer(self):
        slot = LatestBufferSlot()
        buffer = bytearray(b"ab")
        slot.put(buffer)
        buffer[0] = ord("z")
        assert slot.snapshot() == b"ab"

    def test_clear(self):
        slot = LatestBufferSlot()
        slot.put(b"ab")
        slot.clear()
        assert slot.snapshot() is None


class TestSamplingSession:
    def test_sweep_session_collects_fifty_vectors(self, fake_clock, sweep_frames):
        sampler, _ = make_sampler(fake_clock, sweep_frames[1:])
        recorder = Recorder()

        sampler.feed(sweep_frames[0])
        assert sampler.start(**recorder.callbacks())
        assert sampler.join(timeout=10.0)

        assert len(recorder.completed) == 1
        features, stats = recorder.completed[0]
        assert len(features) == 50
        assert stats.sample_count == 50
        assert recorder.errors == []
        assert recorder.cleanups == 1
        assert not sampler.is_running

    def test_timestamps_non_decreasing_within_window(self, fake_clock, sweep_frames):
        sampler, _ = make_sampler(fake_clock, sweep_frames[1:])
        recorder = Recorder()

        sampler.feed(sweep_frames[0])
        sampler.start(**recorder.callbacks())
        sampler.join(timeout=10.0)

        features, stats = recorder.completed[0]
        stamps = [f.timestamp for f in features]
        assert stamps == sorted(stamps)
        assert stamps[0] == 0.0
        assert stats.duration <= 5.0 + sampler.sample_interval

    def test_sample_cap(self, fake_clock, sine_frame):
        sampler, _ = make_sampler(fake_clock, max_samples=5, total_duration_ms=5000)
        recorder = Recorder()

        sampler.feed(sine_frame(440.0))
        sampler.start(**recorder.callbacks())
        sampler.join(timeout=10.0)

        features, stats = recorder.completed[0]
        assert len(features) == 5
        assert stats.duration == pytest.approx(4.0)

    def test_no_feed_skips_ticks(self, fake_clock):
        sampler, pump = make_sampler(fake_clock, max_samples=10, total_duration_ms=1000)
        recorder = Recorder()

        sampler.start(**recorder.callbacks())
        sampler.join(timeout=10.0)

        features, stats = recorder.completed[0]
        assert features == []
        assert stats.sample_count == 0
        assert fake_clock() >= 1.0
        assert recorder.cleanups == 1

    def test_start_while_running_is_ignored(self, sine_frame):
        sampler = SamplingCoordinator(SpectralAnalyzer(), max_samples=10, total_duration_ms=10000)
        recorder = Recorder()

        sampler.feed(sine_frame(440.0))
        assert sampler.start(**recorder.callbacks())
        assert not sampler.start(**recorder.callbacks())

        sampler.stop()
        assert not sampler.is_running
        assert recorder.completed == []
        assert recorder.cleanups == 1

    def test_restart_after_completion(self, fake_clock, sine_frame):
        sampler, _ = make_sampler(fake_clock, max_samples=2, total_duration_ms=200)
        recorder = Recorder()

        for _ in range(2):
            sampler.feed(sine_frame(440.0))
            assert sampler.start(**recorder.callbacks())
            assert sampler.join(timeout=10.0)

        assert len(recorder.completed) == 2
        assert recorder.cleanups == 2

    def test_slot_cleared_when_session_ends(self, fake_clock, sine_frame):
        sampler, _ = make_sampler(fake_clock, max_samples=2, total_duration_ms=200)
        recorder = Recorder()

        sampler.feed(sine_frame(440.0))
        sampler.start(**recorder.callbacks())
        sampler.join(timeout=10.0)

        sampler.start(**recorder.callbacks())
        sampler.join(timeout=10.0)

        assert len(recorder.completed[0][0]) == 2
        assert recorder.completed[1][0] == []


class TestStop:
    def test_stop_from_worker_skips_on_complete(self, fake_clock, sine_frame):
        def stop_on_third_sleep(pump):
            if pump.sleeps == 3:
                pump.sampler.stop()

        sampler, _ = make_sampler(fake_clock, on_sleep=stop_on_third_sleep)
        recorder = Recorder()

        sampler.feed(sine_frame(440.0))
        sampler.start(**recorder.callbacks())
        sampler.join(timeout=10.0)

        assert recorder.completed == []
        assert recorder.errors == []
        assert recorder.cleanups == 1
        assert not sampler.is_running

    def test_stop_when_idle_is_noop(self, fake_clock):
        sampler, _ = make_sampler(fake_clock)
        sampler.stop()
        assert not sampler.is_running

    def test_stop_resets_analyzer(self, fake_clock):
        analyzer = MagicMock()
        sampler, _ = make_sampler(fake_clock, analyzer=analyzer, on_sleep=lambda p: p.sampler.stop())

        sampler.start(on_complete=lambda f, s: None)
        sampler.join(timeout=10.0)

        # once at session start, once on stop
        assert analyzer.reset.call_count == 2


class TestErrors:
    def test_analyzer_error_ends_session(self, fake_clock, sine_frame):
        analyzer = MagicMock()
        analyzer.analyze.side_effect = AnalysisError("decoder exploded", analyzer_name="mock")
        sampler, _ = make_sampler(fake_clock, analyzer=analyzer)
        recorder = Recorder()

        sampler.feed(sine_frame(440.0))
        sampler.start(**recorder.callbacks())
        sampler.join(timeout=10.0)

        assert len(recorder.errors) == 1
        assert isinstance(recorder.errors[0], AnalysisError)
        assert recorder.completed == []
        assert recorder.cleanups == 1
        assert analyzer.analyze.call_count == 1
        assert not sampler.is_running

    def test_malformed_buffer_skips_tick(self, fake_clock, sine_frame):
        frames = [sine_frame(440.0)] * 10
        sampler, _ = make_sampler(fake_clock, frames, max_samples=5, total_duration_ms=500)
        recorder = Recorder()

        sampler.feed(b"\x00\x01\x02")
        sampler.start(**recorder.callbacks())
        sampler.join(timeout=10.0)

        assert recorder.errors == []
        features, stats = recorder.completed[0]
        assert len(features) == 4
        assert stats.sample_count == 4

    def test_on_complete_failure_routed_to_on_error(self, fake_clock, sine_frame):
        sampler, _ = make_sampler(fake_clock, max_samples=1, total_duration_ms=100)
        errors = []
        cleanups = []

        def explode(features, stats):
            raise ValueError("consumer failed")

        sampler.feed(sine_frame(440.0))
        sampler.start(explode, errors.append, lambda: cleanups.append(True))
        sampler.join(timeout=10.0)

        assert len(errors) == 1
        assert isinstance(errors[0], ValueError)
        assert cleanups == [True]

    def test_callback_errors_do_not_escape(self, fake_clock, sine_frame):
        sampler, _ = make_sampler(fake_clock, max_samples=1, total_duration_ms=100)

        def explode(*args):
            raise RuntimeError("callback failed")

        sampler.feed(sine_frame(440.0))
        sampler.start(explode, explode, explode)
        assert sampler.join(timeout=10.0)
        assert not sampler.is_running


class TestConstruction:
    def test_sample_interval(self):
        sampler = SamplingCoordinator(MagicMock(), max_samples=50, total_duration_ms=5000)
        assert sampler.sample_interval == pytest.approx(0.1)

    def test_invalid_max_samples(self):
        with pytest.raises(ValueError):
            SamplingCoordinator(MagicMock(), max_samples=0)

    def test_invalid_duration(self):
        with pytest.raises(ValueError):
            SamplingCoordinator(MagicMock(), total_duration_ms=0)

    def test_factory_from_config(self):
        config = {
            "analysis": {"frame_size": 1024, "sample_rate": 22050},
            "sampling": {"max_samples": 20, "total_duration_ms": 2000},
        }
        sampler = create_sampling_coordinator(config)

        assert sampler.max_samples == 20
        assert sampler.total_duration == pytest.approx(2.0)
        assert isinstance(sampler.analyzer, SpectralAnalyzer)
        assert sampler.analyzer.frame_size == 1024
