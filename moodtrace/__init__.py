"""
MoodTrace

Live audio emotion analysis: spectral features sampled over a short
window are joined with recognized on-screen text and classified into
one of Plutchik's eight basic emotions by an LLM.
"""

__version__ = "1.0.0"
__author__ = "MoodTrace Team"
