"""
MoodTrace - Audio Emotion Analysis CLI

This module provides the command-line interface for MoodTrace. It can be
invoked as 'moodtrace' from anywhere after installation.

The audio file stands in for live capture: its frames are fed to the
engine at real-time pace while one sampling window runs, then the
collected features and the given text are classified.

Example usage:
    moodtrace path/to/clip.wav
    moodtrace --text "GAME OVER" path/to/clip.wav
    moodtrace --prompt-only path/to/clip.wav
    moodtrace --output result.json path/to/clip.wav
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from moodtrace.core.engine import create_analysis_engine
from moodtrace.core.loader import create_frame_source
from moodtrace.core.models import ClassificationResult
from moodtrace.features.client import PromptEchoClassifier
from moodtrace.features.emotion import EmotionSignal, color_for
from moodtrace.utils.config import load_config
from moodtrace.utils.errors import MoodTraceError
from moodtrace.utils.logging import setup_logging

# Slack on top of the sampling window and the classifier timeout
RESULT_WAIT_MARGIN = 30.0  # seconds

logger = logging.getLogger("cli")


def print_result(audio_file: Path, result: ClassificationResult) -> None:
    """Print a classification to the console."""
    color = color_for(result.emotion)
    print("\n" + "=" * 60)
    print("MOODTRACE ANALYSIS RESULT")
    print("=" * 60)
    print(f"File: {audio_file.name}")
    print(f"Emotion: {result.emotion.value}")
    print(f"Color: {color.to_hex()} (hue {color.base_hue:.0f} +/- {color.hue_range:g})")
    print("-" * 60)
    print(result.content)
    print("-" * 60)


def stream_frames(engine, frames: List[bytes], frame_duration: float, pace: bool = True) -> None:
    """Feed frames to the engine until the sampling window closes."""
    for frame in frames:
        if not engine.sampler.is_running:
            break
        engine.feed(frame)
        if pace:
            time.sleep(frame_duration)


def analyze_file(
    audio_file: Path,
    config: Dict[str, Any],
    text: Optional[str] = None,
    prompt_only: bool = False,
    output_json: Optional[Path] = None,
    pace: bool = True,
) -> int:
    """
    Run one analysis cycle over an audio file.

    Returns:
        Process exit code
    """
    source = create_frame_source(config)
    try:
        frames = list(source.frames(audio_file))
    except (FileNotFoundError, MoodTraceError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    classifier = PromptEchoClassifier() if prompt_only else None
    signal = EmotionSignal()

    try:
        engine = create_analysis_engine(config, classifier=classifier, sink=signal)
    except MoodTraceError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    timeout = (
        config.get('sampling', {}).get('total_duration_ms', 5000) / 1000.0
        + config.get('llm', {}).get('timeout', RESULT_WAIT_MARGIN)
        + RESULT_WAIT_MARGIN
    )

    with engine:
        # Prime the buffer so the first tick has data
        engine.feed(frames[0])
        engine.start_cycle(text=text if text is not None else "")
        stream_frames(engine, frames[1:], source.frame_duration, pace=pace)
        result = engine.wait_for_result(timeout)

    if result is None:
        print("Error: no classification was produced", file=sys.stderr)
        return 1

    if prompt_only:
        print(result.prompt)
    else:
        print_result(audio_file, result)

    if output_json:
        if prompt_only:
            payload = {'file': str(audio_file), 'prompt': result.prompt}
        else:
            payload = result.to_dict()
            payload['file'] = str(audio_file)
            payload['color'] = color_for(result.emotion).to_hex()
        output_json.parent.mkdir(parents=True, exist_ok=True)
        with open(output_json, 'w') as f:
            json.dump(payload, f, indent=2)
        print(f"\nResults saved to: {output_json}")

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="moodtrace",
        description="Classify the emotion of an audio clip and its on-screen text",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  moodtrace clip.wav
  moodtrace --text "GAME OVER" clip.wav
  moodtrace --prompt-only --output prompt.json clip.wav
        """,
    )
    parser.add_argument(
        "audio_file",
        type=Path,
        help="Audio file to stream through the analyzer",
    )
    parser.add_argument(
        "--text",
        type=str,
        default=None,
        help="Recognized on-screen text to classify alongside the audio",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file",
    )
    parser.add_argument(
        "--prompt-only",
        action="store_true",
        help="Print the classifier prompt instead of calling the LLM",
    )
    parser.add_argument(
        "--no-pace",
        action="store_true",
        help="Feed frames as fast as possible instead of in real time",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Path to save JSON output",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)

    # Load configuration
    config_path = str(args.config) if args.config else None
    try:
        config = load_config(config_path)
    except MoodTraceError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.get("logging"), verbose=args.verbose)

    exit_code = analyze_file(
        audio_file=args.audio_file,
        config=config,
        text=args.text,
        prompt_only=args.prompt_only,
        output_json=args.output,
        pace=not args.no_pace,
    )
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
