"""
Emotion classification of classifier responses.

Maps free-form LLM output onto Plutchik's eight basic emotions (plus
NEUTRAL), and carries the static color configuration used to present
each emotion.
"""

import colorsys
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from moodtrace.core.models import ClassificationResult
from moodtrace.core.observable import Observable

logger = logging.getLogger("features.emotion")


class EmotionType(Enum):
    """Plutchik's basic emotions, plus NEUTRAL for invalid or unknown."""
    JOY = "joy"
    TRUST = "trust"
    FEAR = "fear"
    SURPRISE = "surprise"
    SADNESS = "sadness"
    DISGUST = "disgust"
    ANGER = "anger"
    ANTICIPATION = "anticipation"
    NEUTRAL = "neutral"


# First match wins, so the order matters
EMOTION_KEYWORDS: Tuple[Tuple[str, EmotionType], ...] = (
    ("joy", EmotionType.JOY),
    ("trust", EmotionType.TRUST),
    ("fear", EmotionType.FEAR),
    ("surprise", EmotionType.SURPRISE),
    ("sadness", EmotionType.SADNESS),
    ("disgust", EmotionType.DISGUST),
    ("anger", EmotionType.ANGER),
    ("anticipation", EmotionType.ANTICIPATION),
    ("invalid", EmotionType.NEUTRAL),
)

_PRIMARY_LINE = re.compile(r"primary\s+emotion\s*:\s*(.+)", re.IGNORECASE)


def _match_keyword(text: str) -> Optional[EmotionType]:
    lowered = text.lower()
    for keyword, emotion in EMOTION_KEYWORDS:
        if keyword in lowered:
            return emotion
    return None


def classify_emotion(text: Optional[str]) -> EmotionType:
    """
    Map a classifier response to an EmotionType.

    The "Primary Emotion:" line is checked first; without a match there,
    the whole text is scanned. Keywords are matched case-insensitively
    in a fixed order. "invalid" and unrecognized text give NEUTRAL.

    Args:
        text: Assistant text from the classifier

    Returns:
        EmotionType: Detected emotion
    """
    if not text:
        return EmotionType.NEUTRAL

    primary = _PRIMARY_LINE.search(text)
    if primary:
        emotion = _match_keyword(primary.group(1))
        if emotion is not None:
            return emotion

    emotion = _match_keyword(text)
    return emotion if emotion is not None else EmotionType.NEUTRAL


@dataclass(frozen=True)
class EmotionColor:
    """Static HSV color configuration of one emotion."""

    base_hue: float  # degrees
    hue_range: float  # degrees either side of base_hue
    saturation: float  # [0, 1]
    brightness: float  # [0, 1]

    def to_rgb(self) -> Tuple[int, int, int]:
        """Base color as 8-bit RGB."""
        r, g, b = colorsys.hsv_to_rgb(
            (self.base_hue % 360.0) / 360.0,
            min(1.0, max(0.0, self.saturation)),
            min(1.0, max(0.0, self.brightness)),
        )
        return int(round(r * 255)), int(round(g * 255)), int(round(b * 255))

    def to_hex(self) -> str:
        return "#{:02x}{:02x}{:02x}".format(*self.to_rgb())


EMOTION_COLORS: Dict[EmotionType, EmotionColor] = {
    EmotionType.JOY: EmotionColor(60.0, 7.5, 1.0, 1.0),
    EmotionType.TRUST: EmotionColor(120.0, 10.0, 0.8, 0.9),
    EmotionType.FEAR: EmotionColor(0.0, 0.0, 0.0, 0.2),
    EmotionType.SURPRISE: EmotionColor(0.0, 0.0, 0.0, 0.9),
    EmotionType.SADNESS: EmotionColor(240.0, 10.0, 0.7, 0.7),
    EmotionType.DISGUST: EmotionColor(150.0, 10.0, 0.7, 0.5),
    EmotionType.ANGER: EmotionColor(0.0, 5.0, 1.0, 1.0),
    EmotionType.ANTICIPATION: EmotionColor(30.0, 7.5, 0.9, 0.9),
    EmotionType.NEUTRAL: EmotionColor(270.0, 15.0, 0.7, 0.95),
}


def color_for(emotion: EmotionType) -> EmotionColor:
    """Return the color configuration of ``emotion``."""
    return EMOTION_COLORS[emotion]


class EmotionSignal:
    """
    Observable current emotion.

    Acts as a presentation sink for the AnalysisCoordinator: each
    delivered ClassificationResult updates the current emotion.
    """

    def __init__(self, initial: EmotionType = EmotionType.NEUTRAL):
        self.current: Observable[EmotionType] = Observable(initial)

    @property
    def emotion(self) -> EmotionType:
        return self.current.value

    @property
    def color(self) -> EmotionColor:
        return color_for(self.current.value)

    def update(self, text: Optional[str]) -> EmotionType:
        """Classify ``text`` and publish the result."""
        emotion = classify_emotion(text)
        self.set(emotion)
        return emotion

    def set(self, emotion: EmotionType) -> None:
        logger.debug(f"Emotion set to {emotion.value}")
        self.current.set(emotion)

    def show(self, result: ClassificationResult) -> None:
        self.set(result.emotion)

    def subscribe(self, listener: Callable[[EmotionType], None]) -> Callable[[], None]:
        return self.current.subscribe(listener)
