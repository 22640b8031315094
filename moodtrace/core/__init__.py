"""
Core module containing data models, frame analysis, sampling, task
management and the analysis engine.

Uses lazy imports for modules with heavy dependencies (librosa, openai).
"""

# Models are lightweight - import directly
from moodtrace.core.models import (
    FeatureVector,
    FeatureStats,
    AnalysisResult,
    ClassificationResult,
)

__all__ = [
    # Models (always available)
    "FeatureVector",
    "FeatureStats",
    "AnalysisResult",
    "ClassificationResult",
    # Lazy loaded
    "Analyzer",
    "BaseAnalyzer",
    "SpectralAnalyzer",
    "create_spectral_analyzer",
    "LatestBufferSlot",
    "SamplingCoordinator",
    "create_sampling_coordinator",
    "TaskCompletionManager",
    "OneShotTask",
    "TaskState",
    "ActionOutcome",
    "create_task_manager",
    "AnalysisCoordinator",
    "PcmFrameSource",
    "create_frame_source",
    "EmotionAnalysisEngine",
    "create_analysis_engine",
]

_LAZY = {
    "Analyzer": "moodtrace.core.analyzer_base",
    "BaseAnalyzer": "moodtrace.core.analyzer_base",
    "SpectralAnalyzer": "moodtrace.core.spectral",
    "create_spectral_analyzer": "moodtrace.core.spectral",
    "LatestBufferSlot": "moodtrace.core.sampling",
    "SamplingCoordinator": "moodtrace.core.sampling",
    "create_sampling_coordinator": "moodtrace.core.sampling",
    "TaskCompletionManager": "moodtrace.core.tasks",
    "OneShotTask": "moodtrace.core.tasks",
    "TaskState": "moodtrace.core.tasks",
    "ActionOutcome": "moodtrace.core.tasks",
    "create_task_manager": "moodtrace.core.tasks",
    "AnalysisCoordinator": "moodtrace.core.coordinator",
    "PcmFrameSource": "moodtrace.core.loader",
    "create_frame_source": "moodtrace.core.loader",
    "EmotionAnalysisEngine": "moodtrace.core.engine",
    "create_analysis_engine": "moodtrace.core.engine",
}


def __getattr__(name: str):
    """Lazy load modules with heavy dependencies."""
    if name in _LAZY:
        import importlib
        module = importlib.import_module(_LAZY[name])
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
