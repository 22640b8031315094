"""
Analyzer base interface for the MoodTrace pipeline.

Defines the contract for frame analyzers using Protocol (structural subtyping).
"""

import logging
import time
from abc import abstractmethod
from typing import Generic, Optional, Protocol, TypeVar

from moodtrace.utils.errors import AnalysisError

# Type variable for result types
T = TypeVar('T')


class Analyzer(Protocol[T]):
    """
    Base protocol for frame analyzers.

    All analyzers must implement:
    - analyze(raw_pcm, timestamp) -> T
    - reset()
    - name property
    - version property
    """

    @property
    def name(self) -> str:
        """Analyzer name (e.g., 'spectral')."""
        ...

    @property
    def version(self) -> str:
        """Analyzer version for result tracking."""
        ...

    def analyze(self, raw_pcm: bytes, timestamp: Optional[float] = None) -> T:
        """
        Analyze one raw PCM frame and return a typed result.

        Raises:
            AnalysisError: If analysis fails
        """
        ...

    def reset(self) -> None:
        """Drop any state retained between frames."""
        ...


class BaseAnalyzer(Generic[T]):
    """
    Optional base class providing timing, logging and error wrapping.

    Uses Template Method pattern - analyze() provides the template,
    subclasses implement _analyze_impl().
    """

    def __init__(self, name: str, version: str):
        """
        Initialize analyzer with name and version.

        Args:
            name: Unique analyzer name
            version: Version string for tracking
        """
        self._name = name
        self._version = version
        self.logger = logging.getLogger(f"analyzer.{name}")

    @property
    def name(self) -> str:
        """Return analyzer name."""
        return self._name

    @property
    def version(self) -> str:
        """Return analyzer version."""
        return self._version

    def analyze(self, raw_pcm: bytes, timestamp: Optional[float] = None) -> T:
        """
        Template method with timing and error handling.

        Args:
            raw_pcm: Little-endian 16-bit mono PCM bytes
            timestamp: Capture time; analyzers fall back to their own clock

        Returns:
            T: Analysis result

        Raises:
            AnalysisError: If analysis fails
        """
        start_time = time.perf_counter()

        try:
            result = self._analyze_impl(raw_pcm, timestamp)

            elapsed = time.perf_counter() - start_time
            self.logger.debug(f"Analyzed {len(raw_pcm)} bytes in {elapsed * 1000:.2f}ms")

            return result

        except AnalysisError:
            # Re-raise AnalysisError as-is
            raise

        except Exception as e:
            self.logger.error(f"Analysis failed: {e}")
            raise AnalysisError(
                f"{self.name} analysis failed: {e}",
                analyzer_name=self.name,
                original_error=e
            ) from e

    def reset(self) -> None:
        """Subclasses holding inter-frame state override this."""

    @abstractmethod
    def _analyze_impl(self, raw_pcm: bytes, timestamp: Optional[float]) -> T:
        """Subclasses implement actual analysis logic."""
        raise NotImplementedError
