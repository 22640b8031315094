"""Tests for core data models."""

import dataclasses

import pytest

from moodtrace.core.models import AnalysisResult, ClassificationResult, FeatureStats
from moodtrace.features.emotion import EmotionType


class TestFeatureStats:
    def test_from_features(self, sample_vectors):
        stats = FeatureStats.from_features(sample_vectors)

        assert stats.sample_count == 3
        assert stats.duration == pytest.approx(0.2)
        assert stats.duration_ms == 200
        assert stats.mean_energy == pytest.approx(0.2)
        assert stats.mean_pitch == pytest.approx(330.0)
        assert stats.mean_brightness == pytest.approx(0.4)

    def test_population_variance(self, sample_vectors):
        stats = FeatureStats.from_features(sample_vectors)

        assert stats.energy_variance == pytest.approx(0.02 / 3)
        assert stats.pitch_variance == pytest.approx(24200.0 / 3)
        assert stats.brightness_variance == pytest.approx(0.08 / 3)

    def test_empty_input_is_zeroed(self):
        stats = FeatureStats.from_features([])

        assert stats.sample_count == 0
        assert stats.duration == 0.0
        assert stats.mean_energy == 0.0
        assert stats.energy_variance == 0.0
        assert stats.mean_pitch == 0.0
        assert stats.brightness_variance == 0.0

    def test_single_vector_has_zero_duration(self, vector_factory):
        stats = FeatureStats.from_features([vector_factory(timestamp=3.0)])
        assert stats.sample_count == 1
        assert stats.duration == 0.0
        assert stats.energy_variance == 0.0

    def test_to_dict(self, sample_stats):
        data = sample_stats.to_dict()
        assert data["sample_count"] == 3
        assert set(data) >= {"duration", "mean_energy", "pitch_variance", "mean_brightness"}

    def test_str_reports_milliseconds(self, sample_stats):
        assert "Duration: 200ms" in str(sample_stats)

    def test_frozen(self, sample_stats):
        with pytest.raises(dataclasses.FrozenInstanceError):
            sample_stats.sample_count = 10


class TestFeatureVector:
    def test_valence_and_arousal_in_unit_range(self, vector_factory):
        for energy in (0.0, 0.5, 1.0):
            vector = vector_factory(energy=energy, brightness=1.0)
            assert 0.0 <= vector.valence <= 1.0
            assert 0.0 <= vector.arousal <= 1.0

    def test_beat_strength(self, vector_factory):
        assert vector_factory(energy=0.05).beat_strength == 0.0
        assert vector_factory(energy=1.0).beat_strength == pytest.approx(1.0)

    def test_to_dict_omits_spectrum_by_default(self, vector_factory):
        vector = vector_factory()
        assert "spectrum" not in vector.to_dict()
        assert len(vector.to_dict(include_spectrum=True)["spectrum"]) == len(vector.spectrum)
        assert len(vector.to_dict()["harmonic_content"]) == 12


class TestAnalysisResult:
    def test_empty_is_incomplete(self):
        assert not AnalysisResult().is_complete()

    def test_complete_requires_all_three(self, sample_stats, sample_vectors):
        features = tuple(sample_vectors)

        assert not AnalysisResult(audio_stats=sample_stats, audio_features=features).is_complete()
        assert not AnalysisResult(audio_stats=sample_stats, recognized_text="hi").is_complete()
        assert not AnalysisResult(audio_features=features, recognized_text="hi").is_complete()
        assert AnalysisResult(
            audio_stats=sample_stats, audio_features=features, recognized_text="hi"
        ).is_complete()

    def test_empty_text_counts_as_present(self, sample_stats):
        result = AnalysisResult(audio_stats=sample_stats, audio_features=(), recognized_text="")
        assert result.is_complete()

    def test_str(self, sample_stats, sample_vectors):
        result = AnalysisResult(
            audio_stats=sample_stats,
            audio_features=tuple(sample_vectors),
            recognized_text="hello",
            generation=4,
        )
        text = str(result)
        assert "generation 4" in text
        assert "Samples: 3" in text
        assert "Recognized Text: hello" in text


class TestClassificationResult:
    def test_to_dict(self):
        result = ClassificationResult(
            raw_response="Primary Emotion: Fear",
            content="Primary Emotion: Fear",
            emotion=EmotionType.FEAR,
            generation=2,
            prompt="prompt",
        )
        data = result.to_dict()
        assert data["emotion"] == "fear"
        assert data["generation"] == 2
        assert "timestamp" in data
