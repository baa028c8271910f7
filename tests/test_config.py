"""Tests for heuristic configuration."""

import pytest
import yaml
from pydantic import ValidationError

from inventory_insight.config import (
    DepletionHeuristics,
    InsightSettings,
    PatternHeuristics,
    load_settings,
)


class TestDefaults:
    def test_documented_defaults(self):
        settings = InsightSettings()
        assert settings.patterns.window_days == 180
        assert settings.patterns.peak_factor == 1.5
        assert settings.patterns.regular_cv_cutoff == 0.2
        assert settings.depletion.window_days == 30
        assert settings.anomalies.assumed_unit_value == 30.0
        assert settings.clustering.max_catalog_size == 500
        assert settings.similarity.top_n == 5
        assert settings.depletion.pessimistic_factor == 1.3
        assert settings.trends.window_days == 90
        assert settings.recommendations.lead_time_days == 15


class TestValidation:
    def test_inverted_peak_and_trough_rejected(self):
        with pytest.raises(ValidationError):
            PatternHeuristics(peak_factor=0.5, trough_factor=1.5)

    def test_inverted_seasonal_band_rejected(self):
        with pytest.raises(ValidationError):
            PatternHeuristics(seasonal_low=1.4, seasonal_high=1.3)

    def test_off_hours_bounds(self):
        with pytest.raises(ValidationError):
            InsightSettings(anomalies={"off_hours_start": 25})

    def test_scenario_factors_straddle_one(self):
        with pytest.raises(ValidationError):
            DepletionHeuristics(optimistic_factor=1.1)
        with pytest.raises(ValidationError):
            DepletionHeuristics(pessimistic_factor=0.9)

    def test_non_positive_trend_window(self):
        with pytest.raises(ValidationError):
            InsightSettings(trends={"window_days": 0})


class TestEnvironment:
    def test_nested_override(self, monkeypatch):
        monkeypatch.setenv("INSIGHT_ANOMALIES__ASSUMED_UNIT_VALUE", "12.5")
        monkeypatch.setenv("INSIGHT_MAX_WORKERS", "2")
        settings = InsightSettings()
        assert settings.anomalies.assumed_unit_value == 12.5
        assert settings.max_workers == 2


class TestLoadSettings:
    def test_yaml_file(self, tmp_path):
        path = tmp_path / "insight.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "anomalies": {"assumed_unit_value": 7.0, "off_hours_enabled": False},
                    "clustering": {"max_catalog_size": 50},
                }
            )
        )
        settings = load_settings(path)
        assert settings.anomalies.assumed_unit_value == 7.0
        assert settings.anomalies.off_hours_enabled is False
        assert settings.clustering.max_catalog_size == 50
        assert settings.patterns.window_days == 180

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_settings(path).anomalies.assumed_unit_value == 30.0

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "nope.yaml")

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"patterns": {"peak_factor": 0.1}}))
        with pytest.raises(ValidationError):
            load_settings(path)
