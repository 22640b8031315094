"""
Bounded retry/timeout task management.

TaskCompletionManager polls an unreliable action until it reports
success, is completed externally, hits the attempt cap, or times out.
OneShotTask runs an action exactly once and only tracks in-progress.
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional

from moodtrace.core.observable import Observable


DEFAULT_POLL_INTERVAL_MS = 200
DEFAULT_TIMEOUT_MS = 15000
DEFAULT_MAX_ATTEMPTS = 50


class TaskState(Enum):
    """Lifecycle of a retry task."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"


class ActionOutcome(Enum):
    """Result reported by one invocation of a polled action."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


def _as_outcome(value: object) -> ActionOutcome:
    """Actions may return None (treated as pending) or a bool."""
    if isinstance(value, ActionOutcome):
        return value
    if value is True:
        return ActionOutcome.SUCCESS
    if value is False:
        return ActionOutcome.FAILURE
    return ActionOutcome.PENDING


class TaskCompletionManager:
    """
    Explicit IDLE -> RUNNING -> COMPLETED state machine for retried actions.

    Each tick() invokes the action once. The run ends when the action
    reports SUCCESS, complete() is called, ``max_attempts`` invocations
    have been made, or ``timeout_ms`` has elapsed since start().
    Exceptions raised by the action count as a failed attempt and are
    retried.

    Usage:
        manager = TaskCompletionManager()
        manager.start(capture_and_recognize)
        manager.in_progress.subscribe(lambda busy: ...)
        manager.complete()  # from the action's consumer, when satisfied
    """

    def __init__(
        self,
        poll_interval_ms: float = DEFAULT_POLL_INTERVAL_MS,
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: Callable[[], float] = time.monotonic,
        name: str = "task",
    ):
        """
        Initialize task manager.

        Args:
            poll_interval_ms: Sleep between attempts
            timeout_ms: Wall-clock limit for one run
            max_attempts: Attempt cap for one run
            clock: Monotonic time source in seconds
            name: Label used in log messages
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

        self.poll_interval = poll_interval_ms / 1000.0
        self.timeout = timeout_ms / 1000.0
        self.max_attempts = max_attempts
        self.name = name
        self._clock = clock

        self._lock = threading.RLock()
        self._state = TaskState.IDLE
        self._attempts = 0
        self._start_time = 0.0
        self._action: Optional[Callable[[], object]] = None
        self._generation = 0
        self._wakeup = threading.Event()
        self._worker: Optional[threading.Thread] = None

        self.in_progress: Observable[bool] = Observable(False)
        self.logger = logging.getLogger(f"tasks.{name}")

    @property
    def state(self) -> TaskState:
        with self._lock:
            return self._state

    @property
    def attempts(self) -> int:
        with self._lock:
            return self._attempts

    @property
    def is_running(self) -> bool:
        return self.state is TaskState.RUNNING

    def start(self, action: Callable[[], object], background: bool = True) -> bool:
        """
        Begin a run of ``action``.

        Args:
            action: Callable returning an ActionOutcome, a bool, or None
            background: Drive ticks from a worker thread; when False the
                caller drives the machine with tick()

        Returns:
            False if a run is already in progress (the call is ignored)
        """
        with self._lock:
            if self._state is TaskState.RUNNING:
                self.logger.debug("Start ignored, task already running")
                return False

            self._generation += 1
            generation = self._generation
            self._state = TaskState.RUNNING
            self._attempts = 0
            self._start_time = self._clock()
            self._action = action
            self._wakeup.clear()
            # Flag changes are ordered with state changes under the lock.
            self.in_progress.set(True)

        self.logger.debug("Task started")

        if background:
            worker = threading.Thread(
                target=self._run,
                args=(generation,),
                name=f"{self.name}-retry",
                daemon=True,
            )
            with self._lock:
                self._worker = worker
            worker.start()
        return True

    def tick(self) -> TaskState:
        """
        Advance the state machine by one attempt.

        Returns:
            The state after this tick
        """
        with self._lock:
            generation = self._generation
        return self._tick(generation)

    def _tick(self, generation: int) -> TaskState:
        """One attempt on behalf of run ``generation``; a no-op for any other run."""
        with self._lock:
            if self._generation != generation or self._state is not TaskState.RUNNING:
                return self._state
            action = self._action
            elapsed = self._clock() - self._start_time
            attempts = self._attempts

        if elapsed >= self.timeout:
            self.logger.info(f"Task timed out after {attempts} attempts")
            self._finish(generation)
            return self.state

        try:
            outcome = _as_outcome(action())
        except Exception as e:
            self.logger.debug(f"Attempt {attempts + 1} raised: {e}")
            outcome = ActionOutcome.FAILURE

        with self._lock:
            if self._generation != generation or self._state is not TaskState.RUNNING:
                return self._state
            self._attempts += 1
            attempts = self._attempts

        if outcome is ActionOutcome.SUCCESS:
            self.logger.debug(f"Action succeeded on attempt {attempts}")
            self._finish(generation)
        elif attempts >= self.max_attempts:
            self.logger.info(f"Task gave up after {attempts} attempts")
            self._finish(generation)

        return self.state

    def complete(self) -> None:
        """End the current run. Idempotent; a no-op when nothing is running."""
        with self._lock:
            generation = self._generation
        self._finish(generation)

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the background worker to exit.

        Returns:
            True if no worker is alive afterwards
        """
        with self._lock:
            worker = self._worker
        if worker is None or worker is threading.current_thread():
            return True
        worker.join(timeout)
        return not worker.is_alive()

    def _finish(self, generation: int) -> None:
        with self._lock:
            if self._generation != generation or self._state is not TaskState.RUNNING:
                return
            self._state = TaskState.COMPLETED
            self._action = None
            self._wakeup.set()
            self.in_progress.set(False)

        self.logger.debug("Task completed")

    def _run(self, generation: int) -> None:
        while True:
            with self._lock:
                if self._generation != generation or self._state is not TaskState.RUNNING:
                    return
            try:
                self._tick(generation)
            except Exception as e:
                # _tick() already contains action errors; keep the loop alive
                self.logger.error(f"Unexpected error in retry loop: {e}", exc_info=True)
            if self._wakeup.wait(self.poll_interval):
                return


class OneShotTask:
    """
    Runs an action once on a worker thread, with no retry.

    Only in-progress tracking is provided; errors from the action are
    logged and the flag is cleared either way.
    """

    def __init__(self, name: str = "oneshot"):
        self.name = name
        self.in_progress: Observable[bool] = Observable(False)
        self._lock = threading.RLock()
        self._worker: Optional[threading.Thread] = None
        self.logger = logging.getLogger(f"tasks.{name}")

    @property
    def is_running(self) -> bool:
        return self.in_progress.value

    def start(self, action: Callable[[], object]) -> bool:
        """
        Run ``action`` in the background.

        Returns:
            False if a previous run is still in progress
        """
        with self._lock:
            if self.in_progress.value:
                return False
            self.in_progress.set(True)
            worker = threading.Thread(
                target=self._run, args=(action,), name=self.name, daemon=True
            )
            self._worker = worker
        worker.start()
        return True

    def complete(self) -> None:
        """Mark the task as no longer in progress."""
        self.in_progress.set(False)

    def join(self, timeout: Optional[float] = None) -> bool:
        with self._lock:
            worker = self._worker
        if worker is None or worker is threading.current_thread():
            return True
        worker.join(timeout)
        return not worker.is_alive()

    def _run(self, action: Callable[[], object]) -> None:
        try:
            action()
        except Exception as e:
            self.logger.info(f"{self.name} ended with error: {e}")
        finally:
            self.in_progress.set(False)


def create_task_manager(config: dict, name: str = "task") -> TaskCompletionManager:
    """
    Factory function to create a TaskCompletionManager from config.

    Args:
        config: Full configuration dict (reads the 'tasks' section)
        name: Label for logs
    """
    tasks = config.get('tasks', {})
    return TaskCompletionManager(
        poll_interval_ms=tasks.get('poll_interval_ms', DEFAULT_POLL_INTERVAL_MS),
        timeout_ms=tasks.get('timeout_ms', DEFAULT_TIMEOUT_MS),
        max_attempts=tasks.get('max_attempts', DEFAULT_MAX_ATTEMPTS),
        name=name,
    )
