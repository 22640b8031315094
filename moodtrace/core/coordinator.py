"""
Fan-in of audio statistics and recognized text.

The AnalysisCoordinator collects the results of two independent
producers (the sampling session and the text recognizer). Once both are
present it builds the classifier prompt and makes exactly one
classification call for the cycle.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional, Protocol, Sequence

from moodtrace.core.models import (
    AnalysisResult,
    ClassificationResult,
    FeatureStats,
    FeatureVector,
)
from moodtrace.core.observable import Observable
from moodtrace.features.emotion import classify_emotion
from moodtrace.features.prompt_builder import build_prompt, extract_response_content
from moodtrace.utils.logging import create_logger_with_context


class Classifier(Protocol):
    """Downstream classification seam; the wire format stays behind it."""

    def send(self, prompt: str) -> str:
        ...


class ResultSink(Protocol):
    """Presentation target for a finished classification."""

    def show(self, result: ClassificationResult) -> None:
        ...


class AnalysisCoordinator:
    """
    Joins audio and text results and triggers one classifier call.

    Every producer update replaces its fields, publishes a fresh
    AnalysisResult snapshot to ``analysis_state`` and re-checks
    completeness. A complete snapshot is processed on a single worker
    thread; while that call is in flight further completions do not
    start another one. When the call finishes the fields are reset and
    the cycle generation advances.

    Usage:
        coordinator = AnalysisCoordinator(LLMClassifier(client), sink=signal)
        sampler.start(**coordinator.audio_callbacks())
        coordinator.on_text_result(text)
    """

    def __init__(
        self,
        classifier: Classifier,
        sink: Optional[ResultSink] = None,
        listener: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialize coordinator.

        Args:
            classifier: Object with send(prompt) -> str
            sink: Optional presentation sink receiving ClassificationResult
            listener: Optional callback receiving the raw response
        """
        self.classifier = classifier
        self.sink = sink
        self._listener = listener

        # Reentrant so state listeners may feed results back in
        self._lock = threading.RLock()
        self._audio_stats: Optional[FeatureStats] = None
        self._audio_features: Optional[Sequence[FeatureVector]] = None
        self._recognized_text: Optional[str] = None
        self._generation = 0
        self._in_flight = False

        self.analysis_state: Observable[Optional[AnalysisResult]] = Observable(
            None, notify_unchanged=True
        )
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="coordinator")

        self._log_context: Dict[str, Any] = {"generation": 0}
        self.logger = create_logger_with_context("coordinator", self._log_context)

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._in_flight

    def set_on_analysis_complete_listener(
        self, listener: Optional[Callable[[str], None]]
    ) -> None:
        """Register the callback that receives each raw classifier response."""
        with self._lock:
            self._listener = listener
        self.logger.debug("Analysis complete listener set")

    # Audio producer

    def on_audio_result(
        self, stats: FeatureStats, features: Sequence[FeatureVector]
    ) -> Optional[Future]:
        features = tuple(features)
        self.logger.debug(f"Audio result with {len(features)} samples")
        return self._update(audio_stats=stats, audio_features=features)

    def on_audio_error(self, error: Optional[Exception] = None) -> Optional[Future]:
        self.logger.error(f"Audio sampling failed: {error}")
        return self._update(audio_stats=None, audio_features=None)

    def on_audio_cleanup(self) -> None:
        self.logger.debug("Audio session cleaned up")

    def audio_callbacks(self) -> Dict[str, Callable[..., Any]]:
        """Keyword arguments wiring a SamplingCoordinator session to this coordinator."""
        return {
            "on_complete": lambda features, stats: self.on_audio_result(stats, features),
            "on_error": self.on_audio_error,
            "on_cleanup": self.on_audio_cleanup,
        }

    # Text producer

    def on_text_result(self, text: str) -> Optional[Future]:
        self.logger.debug(f"Text result: {text[:50]!r}")
        return self._update(recognized_text=text)

    def on_text_error(self, error: Optional[Exception] = None) -> Optional[Future]:
        self.logger.error(f"Text recognition failed: {error}")
        return self._update(recognized_text=None)

    def reset(self) -> None:
        """
        Drop the current cycle.

        A classifier call still in flight is treated as stale when it
        returns: it is neither delivered nor allowed to reset the new cycle.
        """
        with self._lock:
            self._clear_cycle()
            self.analysis_state.set(None)
        self.logger.info("Analysis state reset")

    def shutdown(self, wait: bool = True) -> None:
        """Shutdown the worker pool."""
        self.logger.info("Shutting down analysis coordinator")
        self.executor.shutdown(wait=wait)

    def __enter__(self) -> "AnalysisCoordinator":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    def _update(self, **fields: Any) -> Optional[Future]:
        with self._lock:
            if "audio_stats" in fields:
                self._audio_stats = fields["audio_stats"]
            if "audio_features" in fields:
                self._audio_features = fields["audio_features"]
            if "recognized_text" in fields:
                self._recognized_text = fields["recognized_text"]

            snapshot = AnalysisResult(
                audio_stats=self._audio_stats,
                audio_features=self._audio_features,
                recognized_text=self._recognized_text,
                generation=self._generation,
            )
            start = snapshot.is_complete() and not self._in_flight
            if start:
                self._in_flight = True

            self.logger.debug(
                f"State: audio={snapshot.audio_stats is not None}, "
                f"features={len(snapshot.audio_features or ())}, "
                f"text={snapshot.recognized_text is not None}"
            )
            self.analysis_state.set(snapshot)

        if not start:
            return None

        self.logger.info("Both results present, starting classification")
        try:
            return self.executor.submit(self._process, snapshot)
        except RuntimeError as e:
            self.logger.warning(f"Cannot start classification: {e}")
            with self._lock:
                if self._generation == snapshot.generation:
                    self._in_flight = False
            return None

    def _process(self, snapshot: AnalysisResult) -> Optional[ClassificationResult]:
        generation = snapshot.generation

        try:
            prompt = build_prompt(snapshot)
            self.logger.debug(f"Prompt: {prompt[:100]}...")
            raw_response = self.classifier.send(prompt)
        except Exception as e:
            self.logger.error(f"Classification failed: {e}", exc_info=True)
            self._end_cycle(generation)
            return None

        content = extract_response_content(raw_response)
        result = ClassificationResult(
            raw_response=raw_response,
            content=content,
            emotion=classify_emotion(content),
            generation=generation,
            prompt=prompt,
        )

        # reset() blocks on the lock, so delivery and cycle end are atomic
        # with respect to it.
        with self._lock:
            if generation != self._generation:
                self.logger.info(
                    f"Discarding stale response for generation {generation}"
                )
                return None

            self.logger.info(f"Classified as {result.emotion.value}")
            self._deliver(result)
            self._end_cycle(generation)
        return result

    def _deliver(self, result: ClassificationResult) -> None:
        if self.sink is not None:
            try:
                self.sink.show(result)
            except Exception as e:
                self.logger.error(f"Result sink failed: {e}", exc_info=True)

        if self._listener is not None:
            try:
                self._listener(result.raw_response)
            except Exception as e:
                self.logger.error(f"Analysis complete listener failed: {e}", exc_info=True)

    def _end_cycle(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._clear_cycle()
            self.analysis_state.set(None)
        self.logger.debug("Analysis cycle completed")

    def _clear_cycle(self) -> None:
        self._audio_stats = None
        self._audio_features = None
        self._recognized_text = None
        self._in_flight = False
        self._generation += 1
        self._log_context["generation"] = self._generation
