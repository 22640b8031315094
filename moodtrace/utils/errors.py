"""
Custom exceptions for the MoodTrace audio emotion pipeline.

This module defines a hierarchy of exceptions for handling the
error conditions raised by analyzers, loaders, config and the classifier.
"""

from typing import Optional, Any


class MoodTraceError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class AnalysisError(MoodTraceError):
    """Raised when audio analysis fails."""

    def __init__(
        self,
        message: str,
        analyzer_name: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.analyzer_name = analyzer_name
        self.original_error = original_error
        self.details = {
            "analyzer_name": analyzer_name,
            "original_error": str(original_error) if original_error else None,
        }


class MalformedAudioError(AnalysisError):
    """Raised when a PCM buffer cannot be decoded (odd length, wrong type)."""

    def __init__(self, message: str, byte_length: Optional[int] = None):
        super().__init__(message, analyzer_name="spectral")
        self.byte_length = byte_length
        self.details["byte_length"] = byte_length


class AudioLoadError(MoodTraceError):
    """Raised when an audio file cannot be loaded."""

    def __init__(self, message: str, file_path: Optional[str] = None):
        super().__init__(message, details={"file_path": file_path})
        self.file_path = file_path


class UnsupportedFormatError(AudioLoadError):
    """Raised when audio format is not supported."""

    def __init__(self, message: str, format: Optional[str] = None):
        super().__init__(message)
        self.format = format
        self.details = {"format": format}


class ConfigurationError(MoodTraceError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        super().__init__(message)
        self.config_key = config_key
        self.details = {"config_key": config_key}


class ClassifierError(MoodTraceError):
    """Raised when the downstream classification call fails."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.original_error = original_error
        self.details = {
            "provider": provider,
            "original_error": str(original_error) if original_error else None,
        }


class ModelLoadError(MoodTraceError):
    """Raised when the LLM client cannot be created."""

    def __init__(self, message: str, model_name: Optional[str] = None):
        super().__init__(message)
        self.model_name = model_name
        self.details = {"model_name": model_name}
