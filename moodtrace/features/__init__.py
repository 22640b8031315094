"""
Classifier-side features: prompt construction, the LLM client and the
emotion signal derived from its responses.

Architecture:
    AnalysisCoordinator → build_prompt → LLMClassifier.send → classify_emotion
                                                                    ↓
                                                              EmotionSignal
"""

from moodtrace.features.emotion import (
    EmotionType,
    EmotionColor,
    EmotionSignal,
    classify_emotion,
    color_for,
)
from moodtrace.features.prompt_builder import build_prompt, extract_response_content
from moodtrace.features.client import LLMClient, LLMClassifier, PromptEchoClassifier

__all__ = [
    "EmotionType",
    "EmotionColor",
    "EmotionSignal",
    "classify_emotion",
    "color_for",
    "build_prompt",
    "extract_response_content",
    "LLMClient",
    "LLMClassifier",
    "PromptEchoClassifier",
]
