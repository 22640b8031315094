"""
MoodTrace - Main Entry Point

Example usage:
    python main.py path/to/clip.wav
    python main.py --config config/config.yaml --text "GAME OVER" path/to/clip.wav
"""

from moodtrace.cli import main


if __name__ == "__main__":
    main()
