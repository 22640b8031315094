"""
Utility modules for configuration, logging, and error handling.
"""

from moodtrace.utils.errors import (
    MoodTraceError,
    AnalysisError,
    MalformedAudioError,
    AudioLoadError,
    UnsupportedFormatError,
    ConfigurationError,
    ClassifierError,
    ModelLoadError,
)
from moodtrace.utils.logging import (
    ContextAdapter,
    setup_logging,
    create_logger_with_context,
    JSONFormatter,
)
from moodtrace.utils.config import ConfigManager, load_config, get_default_config

__all__ = [
    "MoodTraceError",
    "AnalysisError",
    "MalformedAudioError",
    "AudioLoadError",
    "UnsupportedFormatError",
    "ConfigurationError",
    "ClassifierError",
    "ModelLoadError",
    "ContextAdapter",
    "setup_logging",
    "create_logger_with_context",
    "JSONFormatter",
    "ConfigManager",
    "load_config",
    "get_default_config",
]
