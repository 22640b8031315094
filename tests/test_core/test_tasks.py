"""Tests for TaskCompletionManager and OneShotTask."""

import threading

import pytest

from moodtrace.core.tasks import (
    ActionOutcome,
    OneShotTask,
    TaskCompletionManager,
    TaskState,
    create_task_manager,
)


@pytest.fixture
def manager(fake_clock):
    return TaskCompletionManager(
        poll_interval_ms=200, timeout_ms=15000, max_attempts=50, clock=fake_clock
    )


class TestStateMachine:
    def test_initially_idle(self, manager):
        assert manager.state is TaskState.IDLE
        assert not manager.in_progress.value

    def test_start_moves_to_running(self, manager):
        assert manager.start(lambda: None, background=False)
        assert manager.state is TaskState.RUNNING
        assert manager.in_progress.value

    def test_start_is_idempotent(self, manager):
        calls = []
        assert manager.start(lambda: calls.append("first"), background=False)
        assert not manager.start(lambda: calls.append("second"), background=False)

        manager.tick()
        assert calls == ["first"]

    def test_complete_before_start_is_noop(self, manager):
        manager.complete()
        assert manager.state is TaskState.IDLE
        assert not manager.in_progress.value

    def test_complete_is_idempotent(self, manager):
        manager.start(lambda: None, background=False)
        manager.complete()
        manager.complete()
        assert manager.state is TaskState.COMPLETED
        assert not manager.in_progress.value

    def test_restart_after_completion(self, manager):
        manager.start(lambda: None, background=False)
        manager.complete()
        assert manager.start(lambda: None, background=False)
        assert manager.state is TaskState.RUNNING
        assert manager.attempts == 0

    def test_tick_when_idle_does_nothing(self, manager):
        assert manager.tick() is TaskState.IDLE

    def test_earlier_run_cannot_tick_next_run(self, manager):
        manager.start(lambda: None, background=False)
        earlier = manager._generation
        manager.complete()

        calls = []
        manager.start(lambda: calls.append(1), background=False)

        assert manager._tick(earlier) is TaskState.RUNNING
        assert calls == []
        assert manager.attempts == 0

        manager.tick()
        assert calls == [1]


class TestOutcomes:
    def test_success_completes(self, manager):
        manager.start(lambda: ActionOutcome.SUCCESS, background=False)
        assert manager.tick() is TaskState.COMPLETED
        assert manager.attempts == 1

    def test_true_counts_as_success(self, manager):
        manager.start(lambda: True, background=False)
        assert manager.tick() is TaskState.COMPLETED

    def test_pending_keeps_running(self, manager):
        manager.start(lambda: None, background=False)
        assert manager.tick() is TaskState.RUNNING
        assert manager.attempts == 1

    def test_failure_is_retried(self, manager):
        manager.start(lambda: False, background=False)
        manager.tick()
        manager.tick()
        assert manager.state is TaskState.RUNNING
        assert manager.attempts == 2

    def test_exceptions_are_retried(self, manager):
        outcomes = iter([RuntimeError("flaky"), RuntimeError("flaky"), ActionOutcome.SUCCESS])

        def action():
            outcome = next(outcomes)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        manager.start(action, background=False)
        assert manager.tick() is TaskState.RUNNING
        assert manager.tick() is TaskState.RUNNING
        assert manager.tick() is TaskState.COMPLETED
        assert manager.attempts == 3


class TestLimits:
    def test_attempt_cap_completes(self, fake_clock):
        manager = TaskCompletionManager(max_attempts=3, clock=fake_clock)
        calls = []
        manager.start(lambda: calls.append(1), background=False)

        for _ in range(10):
            manager.tick()

        assert manager.state is TaskState.COMPLETED
        assert len(calls) == 3
        assert manager.attempts == 3

    def test_timeout_completes(self, fake_clock):
        manager = TaskCompletionManager(timeout_ms=1000, max_attempts=50, clock=fake_clock)
        calls = []
        manager.start(lambda: calls.append(1), background=False)

        manager.tick()
        fake_clock.advance(0.5)
        manager.tick()
        fake_clock.advance(0.5)
        assert manager.tick() is TaskState.COMPLETED

        assert len(calls) == 2
        assert not manager.in_progress.value

    def test_invalid_max_attempts(self):
        with pytest.raises(ValueError):
            TaskCompletionManager(max_attempts=0)


class TestBackgroundWorker:
    def test_worker_runs_until_success(self):
        manager = TaskCompletionManager(poll_interval_ms=1, timeout_ms=5000, max_attempts=50)
        calls = []

        def action():
            calls.append(1)
            return len(calls) >= 3

        assert manager.start(action)
        assert manager.join(timeout=5.0)
        assert manager.state is TaskState.COMPLETED
        assert len(calls) == 3

    def test_complete_wakes_worker(self):
        manager = TaskCompletionManager(poll_interval_ms=10000, timeout_ms=60000)
        started = threading.Event()

        def action():
            started.set()

        manager.start(action)
        assert started.wait(5.0)
        manager.complete()

        assert manager.join(timeout=5.0)
        assert manager.state is TaskState.COMPLETED

    def test_in_progress_notifies_subscribers(self):
        manager = TaskCompletionManager(poll_interval_ms=1)
        seen = []
        manager.in_progress.subscribe(seen.append)

        manager.start(lambda: ActionOutcome.SUCCESS)
        manager.join(timeout=5.0)

        assert seen == [True, False]


class TestOneShotTask:
    def test_runs_once_and_clears_flag(self):
        task = OneShotTask()
        calls = []

        assert task.start(lambda: calls.append(1))
        assert task.join(timeout=5.0)

        assert calls == [1]
        assert not task.is_running

    def test_start_ignored_while_running(self):
        task = OneShotTask()
        release = threading.Event()

        assert task.start(lambda: release.wait(5.0))
        assert not task.start(lambda: None)

        release.set()
        task.join(timeout=5.0)
        assert not task.in_progress.value

    def test_exception_is_logged_not_raised(self):
        task = OneShotTask()

        def explode():
            raise RuntimeError("recognizer crashed")

        task.start(explode)
        assert task.join(timeout=5.0)
        assert not task.is_running

    def test_complete_clears_flag(self):
        task = OneShotTask()
        release = threading.Event()
        task.start(lambda: release.wait(5.0))

        task.complete()
        assert not task.is_running

        release.set()
        task.join(timeout=5.0)


class TestFactory:
    def test_create_from_config(self):
        manager = create_task_manager(
            {"tasks": {"poll_interval_ms": 100, "timeout_ms": 2000, "max_attempts": 7}},
            name="text",
        )
        assert manager.poll_interval == pytest.approx(0.1)
        assert manager.timeout == pytest.approx(2.0)
        assert manager.max_attempts == 7
        assert manager.name == "text"

    def test_defaults(self):
        manager = create_task_manager({})
        assert manager.poll_interval == pytest.approx(0.2)
        assert manager.timeout == pytest.approx(15.0)
        assert manager.max_attempts == 50
