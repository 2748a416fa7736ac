"""
Tests for environment-driven settings.
"""

import random

import pytest

from procurement_sim import config
from procurement_sim.config import Settings, get_settings


class TestSettings:

    def test_round_budget_from_jitter(self, monkeypatch):
        s = Settings()
        monkeypatch.setattr(s, "DEFAULT_MAX_ROUNDS", None)
        monkeypatch.setattr(s, "MIN_ROUNDS", 3)
        monkeypatch.setattr(s, "ROUND_JITTER", 1)
        budgets = {s.resolve_max_rounds(random.Random(seed)) for seed in range(50)}
        assert budgets == {3, 4}

    def test_fixed_round_budget_wins(self, monkeypatch):
        s = Settings()
        monkeypatch.setattr(s, "DEFAULT_MAX_ROUNDS", 6)
        assert s.resolve_max_rounds(random.Random(1)) == 6

    def test_impasse_settings(self):
        keys = set(Settings().get_impasse_settings())
        assert keys == {"max_rounds", "progress_window_size", "price_gap_threshold", "max_acceptable_lead_time"}

    def test_logging_config(self, monkeypatch):
        s = Settings()
        monkeypatch.setattr(s, "ENVIRONMENT", "production")
        config = s.get_logging_config("DEBUG")
        assert config["root"]["level"] == "DEBUG"
        assert config["handlers"]["file"]["formatter"] == "json"

    def test_validation(self, monkeypatch):
        monkeypatch.setattr(Settings, "MIN_ROUNDS", 0)
        with pytest.raises(ValueError):
            Settings()

    def test_singleton(self):
        assert get_settings() is get_settings()

    def test_environment_helpers(self, monkeypatch):
        monkeypatch.setattr(config.settings, "ENVIRONMENT", "production")
        monkeypatch.setattr(config.settings, "DEBUG", False)
        assert config.is_production()
        assert not config.is_debug()

    def test_to_dict_lists_upper_case_keys(self):
        data = Settings().to_dict()
        assert "LOG_LEVEL" in data
        assert all(key.isupper() for key in data)
