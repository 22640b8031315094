"""Prompt construction and response parsing for the emotion classifier.

Turns a complete AnalysisResult into the user prompt sent to the LLM,
and pulls the assistant text back out of whatever the classifier
returned (a chat-completion JSON body, a fenced block, or plain text).
"""

import json
import logging
from typing import Any, Callable, Iterable, Optional, Sequence

from moodtrace.core.models import AnalysisResult, FeatureVector

logger = logging.getLogger("features.prompt_builder")

SILENT_MEAN_ENERGY = 0.001
SILENT_MEAN_LOUDNESS = -60.0  # dB

EMOTION_CATEGORIES = (
    "Joy",
    "Trust",
    "Fear",
    "Surprise",
    "Sadness",
    "Disgust",
    "Anger",
    "Anticipation",
)

INTRO = (
    "Please base your analysis on the following audio sequence data "
    "and video text information.\n\n"
)

INVALID_AUDIO_WARNING = (
    "Warning: possible mute or invalid audio detected\n"
    "- If the average energy is close to 0 and the loudness is very low, "
    "a mute recording may have been made\n"
    "- If there are no valid audio features, the recording may have failed\n\n"
)

SPECIAL_CASES = (
    "Special Case Categories:\n"
    "9. Invalid (Invalid Audio) - only use in the following cases:\n"
    "   - Mean energy is close to 0 and loudness is extremely low\n"
    "   - No valid audio features are detected\n"
    "   Note: If any meaningful change in audio features can be detected, "
    "even if the loudness is low, you should choose one of the 8 basic "
    "emotions above\n\n"
)

REQUIREMENTS = (
    "Requirements:\n"
    "1. Must choose one from the above 9 categories\n"
    "2. Must choose from the 8 basic emotions unless strictly meeting the "
    "invalid audio conditions\n"
    "3. The answer format must start with \"Primary Emotion: [Emotion Type]\"\n"
    "4. You may briefly explain the basis for your judgment\n"
)


def is_likely_silent(features: Optional[Sequence[FeatureVector]]) -> bool:
    """True when the session holds no vectors or only near-silent ones.

    Silence means mean energy below 0.001 and mean loudness below -60 dB.
    """
    if not features:
        return True
    mean_energy = sum(f.energy for f in features) / len(features)
    mean_loudness = sum(f.loudness for f in features) / len(features)
    return mean_energy < SILENT_MEAN_ENERGY and mean_loudness < SILENT_MEAN_LOUDNESS


def format_series(
    features: Iterable[FeatureVector],
    value: Callable[[FeatureVector], Any],
    fmt: Optional[str] = None,
) -> str:
    """Join one attribute of every vector into a comma-separated line."""
    if fmt is None:
        return ", ".join(str(value(f)) for f in features)
    return ", ".join(fmt % value(f) for f in features)


def build_prompt(result: AnalysisResult) -> str:
    """Build the classifier prompt for one analysis cycle.

    Output is a pure function of ``result``: the same snapshot always
    produces the same text.
    """
    stats = result.audio_stats
    features = result.audio_features
    parts = [INTRO]

    parts.append("Sampling Information:\n")
    parts.append(f"- length of time: {stats.duration_ms if stats else 0}ms\n")
    parts.append(f"- sample size: {len(features) if features is not None else 0}\n\n")

    if is_likely_silent(features):
        parts.append(INVALID_AUDIO_WARNING)

    if features is not None:
        series = (
            ("Pitch Sequence (Hz)", lambda f: f.pitch, "%.1f"),
            ("Pitch Name Sequence", lambda f: f.pitch_name, None),
            ("Loudness Sequence (dB)", lambda f: f.loudness, "%.1f"),
            ("Dynamics Sequence", lambda f: f.dynamics, None),
            ("Energy Sequence", lambda f: f.energy, "%.3f"),
            ("Timbral Brightness Sequence", lambda f: f.brightness, "%.3f"),
            ("Harmonic Complexity Sequence", lambda f: f.harmonic_complexity, "%.3f"),
        )
        for title, value, fmt in series:
            parts.append(f"{title}:\n")
            parts.append(format_series(features, value, fmt))
            parts.append("\n\n")

    if stats is not None:
        parts.append("Statistical Features:\n")
        parts.append(f"- Mean Energy: {stats.mean_energy:.3f}\n")
        parts.append(f"- Energy Variance: {stats.energy_variance:.3f}\n")
        parts.append(f"- Mean Pitch: {stats.mean_pitch:.1f}Hz\n")
        parts.append(f"- Pitch Variance: {stats.pitch_variance:.3f}\n")
        parts.append(f"- Mean Brightness: {stats.mean_brightness:.3f}\n")
        parts.append(f"- Brightness Variance: {stats.brightness_variance:.3f}\n\n")

    parts.append("Video Text Content:\n")
    parts.append(result.recognized_text or "No text data")
    parts.append("\n\n")

    parts.append("Normal Emotion Categories (only use when valid audio features are detected):\n")
    for index, name in enumerate(EMOTION_CATEGORIES, start=1):
        parts.append(f"{index}. {name}\n")
    parts.append("\n")

    parts.append(SPECIAL_CASES)
    parts.append(REQUIREMENTS)

    prompt = "".join(parts)
    logger.debug(f"Built prompt of {len(prompt)} chars")
    return prompt


def _strip_code_fence(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        if lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        cleaned = "\n".join(lines).strip()
    return cleaned


def extract_response_content(raw: str) -> str:
    """Pull the assistant message out of a classifier response.

    Handles a chat-completion JSON body (``choices[0].message.content``),
    a markdown code fence around either form, and plain text, which is
    returned stripped.
    """
    if raw is None:
        return ""

    cleaned = _strip_code_fence(raw)
    if not cleaned.startswith("{"):
        return cleaned

    try:
        body = json.loads(cleaned)
    except json.JSONDecodeError:
        logger.debug("Response looks like JSON but does not parse, using raw text")
        return cleaned

    try:
        content = body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        logger.warning("Response JSON has no choices[0].message.content, using raw text")
        return cleaned

    if not isinstance(content, str):
        return cleaned
    return _strip_code_fence(content)
