"""
Analysis engine for the MoodTrace pipeline.

Wires one analysis cycle together: a sampling session feeds the audio
side of the AnalysisCoordinator, and a retrying task polls an external
text source for the text side.
"""

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from dotenv import load_dotenv

from moodtrace.core.coordinator import AnalysisCoordinator, Classifier, ResultSink
from moodtrace.core.models import AnalysisResult, ClassificationResult
from moodtrace.core.sampling import SamplingCoordinator, create_sampling_coordinator
from moodtrace.core.spectral import create_spectral_analyzer
from moodtrace.core.tasks import ActionOutcome, TaskCompletionManager, create_task_manager

# Load .env from project root (API keys for the classifier)
env_path = Path(__file__).parent.parent.parent / '.env'
if env_path.exists():
    load_dotenv(env_path)


TextSource = Callable[[], Optional[str]]


class EmotionAnalysisEngine:
    """
    Main analysis engine - orchestrates one cycle at a time.

    Design:
    - Dependency Injection: sampler, coordinator and text task injected
    - The engine sits between the coordinator and the caller's sink so it
      can hand the latest ClassificationResult to wait_for_result()
    - Producer failures are recorded as missing results, never raised
    """

    def __init__(
        self,
        sampler: SamplingCoordinator,
        coordinator: AnalysisCoordinator,
        text_task: TaskCompletionManager,
        sink: Optional[ResultSink] = None,
    ):
        """
        Initialize analysis engine.

        Args:
            sampler: Sampling coordinator for the audio side
            coordinator: Fan-in coordinator owning the classifier
            text_task: Retry task polling the text source
            sink: Optional presentation sink for finished classifications
        """
        self.sampler = sampler
        self.coordinator = coordinator
        self.text_task = text_task
        self.sink = sink if sink is not None else coordinator.sink
        coordinator.sink = self

        self._lock = threading.Lock()
        self._awaiting_text = False
        self._cycle_done = threading.Event()
        self._last_result: Optional[ClassificationResult] = None

        self.text_task.in_progress.subscribe(self._on_text_task_changed)
        self.coordinator.analysis_state.subscribe(self._on_analysis_state)
        self.logger = logging.getLogger('engine')

    @property
    def last_result(self) -> Optional[ClassificationResult]:
        return self._last_result

    def start_cycle(
        self,
        text_source: Optional[TextSource] = None,
        text: Optional[str] = None,
    ) -> bool:
        """
        Start a new analysis cycle.

        Args:
            text_source: Polled until it returns text, subject to the
                text task's attempt cap and timeout
            text: Text known up front; used instead of ``text_source``

        Returns:
            False if a cycle is still sampling or classifying
        """
        if self.sampler.is_running or self.coordinator.in_flight:
            self.logger.info("Cycle already in progress")
            return False

        self.coordinator.reset()
        self._cycle_done.clear()
        self._last_result = None

        if not self.sampler.start(**self.coordinator.audio_callbacks()):
            return False

        if text is not None:
            self.coordinator.on_text_result(text)
        elif text_source is not None:
            with self._lock:
                self._awaiting_text = True
            if not self.text_task.start(self._text_action(text_source)):
                self.logger.warning("Text task still running from a previous cycle")

        self.logger.info("Analysis cycle started")
        return True

    def feed(self, raw_bytes: bytes) -> None:
        """Pass the latest captured PCM buffer to the sampler."""
        self.sampler.feed(raw_bytes)

    def wait_for_result(self, timeout: Optional[float] = None) -> Optional[ClassificationResult]:
        """
        Block until the current cycle ends.

        Returns:
            The cycle's classification, or None on timeout or failure
        """
        self._cycle_done.wait(timeout)
        return self._last_result

    def stop(self) -> None:
        """Cancel sampling and text polling, and drop the cycle."""
        with self._lock:
            self._awaiting_text = False
        self.sampler.stop()
        self.text_task.complete()
        self.coordinator.reset()
        self.logger.info("Analysis cycle stopped")

    def shutdown(self) -> None:
        """Stop the cycle and release worker threads."""
        self.logger.info("Shutting down analysis engine")
        self.stop()
        self.text_task.join(timeout=1.0)
        self.coordinator.shutdown()

    def show(self, result: ClassificationResult) -> None:
        self._last_result = result
        if self.sink is not None:
            self.sink.show(result)

    def __enter__(self) -> "EmotionAnalysisEngine":
        """Context manager support."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Cleanup on context exit."""
        self.shutdown()

    def _text_action(self, text_source: TextSource) -> Callable[[], ActionOutcome]:
        def action() -> ActionOutcome:
            text = text_source()
            if text is None:
                return ActionOutcome.PENDING
            with self._lock:
                self._awaiting_text = False
            self.coordinator.on_text_result(text)
            return ActionOutcome.SUCCESS
        return action

    def _on_text_task_changed(self, in_progress: bool) -> None:
        if in_progress:
            return
        with self._lock:
            missed = self._awaiting_text
            self._awaiting_text = False
        if missed:
            self.coordinator.on_text_error(TimeoutError("No text recognized before the task ended"))

    def _on_analysis_state(self, state: Optional[AnalysisResult]) -> None:
        # The coordinator publishes None whenever a cycle ends, delivered or not
        if state is None:
            self._cycle_done.set()


def create_analysis_engine(
    config: Dict[str, Any],
    classifier: Optional[Classifier] = None,
    sink: Optional[ResultSink] = None,
) -> EmotionAnalysisEngine:
    """
    Factory function to create fully configured analysis engine.

    Args:
        config: Configuration dict
        classifier: Classifier to use; an LLMClassifier is built from the
            'llm' section when omitted
        sink: Optional presentation sink

    Returns:
        EmotionAnalysisEngine: Configured engine
    """
    if classifier is None:
        from moodtrace.features.client import create_llm_classifier
        classifier = create_llm_classifier(config)

    analyzer = create_spectral_analyzer(config)
    sampler = create_sampling_coordinator(config, analyzer)
    text_task = create_task_manager(config, name="text")
    coordinator = AnalysisCoordinator(classifier)

    return EmotionAnalysisEngine(
        sampler=sampler,
        coordinator=coordinator,
        text_task=text_task,
        sink=sink,
    )
