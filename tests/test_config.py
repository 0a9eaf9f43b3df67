"""Tests for configuration module."""

import json

from hypothesis import given, strategies as st, settings
import pytest

from tradedesk.config import (
    ConfigManager,
    ConfigValidationError,
    EngineConfig,
    PatternConfig,
    PositionConfig,
    QualityConfig,
    SizingConfig,
    TrailingConfig,
    config_from_dict,
)


class TestDefaults:
    """Tests for default values."""

    def test_default_engine_config(self):
        config = EngineConfig()
        assert config.instrument.min_stop_distance == 3.0
        assert config.quality.thresholds == (5, 7, 9, 11)
        assert config.sizing.kelly_cap == 0.25
        assert config.positions.max_positions == 1
        assert config.sessions.server_utc_offset_hours == 2
        assert config.execution.max_attempts == 3
        assert config.confirmation.enabled is True

    def test_configs_are_immutable(self):
        config = EngineConfig()
        with pytest.raises(Exception):
            config.sizing.base_risk_pct = 5.0

    @pytest.mark.parametrize("mapping", [
        lambda c: c.patterns.score_offsets,
        lambda c: c.patterns.regime_fit,
        lambda c: c.patterns.regime_fit["trend_following"],
        lambda c: c.quality.tier_risk_pct,
        lambda c: c.quality.regime_points,
        lambda c: c.validation.macro_opposition,
        lambda c: c.sizing.regime_multipliers,
        lambda c: c.sizing.quality_multipliers,
    ])
    def test_mapping_fields_are_read_only(self, mapping):
        with pytest.raises(TypeError):
            mapping(EngineConfig())["trending"] = 99.0

    def test_caller_dict_changes_do_not_leak(self):
        offsets = {"engulfing": -5.0}
        config = PatternConfig(score_offsets=offsets)
        offsets["engulfing"] = 10.0
        assert config.score_offsets == {"engulfing": -5.0}

    def test_mapping_field_must_be_mapping(self):
        with pytest.raises(ConfigValidationError):
            SizingConfig(regime_multipliers=[("trending", 1.0)])


class TestConfigValidation:
    """Tests for rejecting invalid values."""

    def test_rejects_inverted_risk_bounds(self):
        with pytest.raises(ConfigValidationError):
            SizingConfig(min_risk_pct=3.0, max_risk_pct=2.0)

    def test_rejects_kelly_cap_above_quarter(self):
        with pytest.raises(ConfigValidationError):
            SizingConfig(kelly_cap=0.5)

    def test_rejects_unknown_trailing_strategy(self):
        with pytest.raises(ConfigValidationError):
            TrailingConfig(strategy="zigzag")

    def test_rejects_hybrid_inside_hybrid(self):
        with pytest.raises(ConfigValidationError):
            TrailingConfig(hybrid_members=("atr", "hybrid"))

    def test_rejects_zero_positions(self):
        with pytest.raises(ConfigValidationError):
            PositionConfig(max_positions=0)

    @given(thresholds=st.lists(st.integers(min_value=0, max_value=20), min_size=4, max_size=4))
    @settings(max_examples=100)
    def test_thresholds_accepted_only_when_increasing(self, thresholds):
        """
        *For any* four thresholds, the quality config SHALL accept them only
        when they are strictly increasing.
        """
        increasing = all(a < b for a, b in zip(thresholds, thresholds[1:]))
        if increasing:
            assert QualityConfig(thresholds=tuple(thresholds)).thresholds == tuple(thresholds)
        else:
            with pytest.raises(ConfigValidationError):
                QualityConfig(thresholds=tuple(thresholds))


class TestConfigFromDict:
    """Tests for building configuration from decoded JSON."""

    def test_sections_applied(self, valid_config_data):
        config = config_from_dict(valid_config_data)
        assert config.patterns.enabled_detectors == ("engulfing", "pin_bar", "liquidity_sweep")
        assert config.patterns.score_offsets == {"pin_bar": -5.0}
        assert config.quality.thresholds == (5, 7, 9, 11)
        assert config.trailing.strategy == "chandelier"
        assert config.positions.max_positions == 2

    def test_missing_sections_use_defaults(self):
        assert config_from_dict({}) == EngineConfig()

    def test_unknown_section(self):
        with pytest.raises(ConfigValidationError, match="Unknown configuration sections"):
            config_from_dict({"exchange": {}})

    def test_unknown_key(self):
        with pytest.raises(ConfigValidationError, match="Unknown keys in 'sizing'"):
            config_from_dict({"sizing": {"leverage": 10}})

    def test_section_must_be_object(self):
        with pytest.raises(ConfigValidationError):
            config_from_dict({"sizing": [1, 2]})

    def test_nested_lists_become_tuples(self):
        config = config_from_dict({"exits": {"pattern_multipliers": [["Breakout", 1.3]]}})
        assert config.exits.pattern_multipliers == (("Breakout", 1.3),)


class TestConfigManager:
    """Tests for loading from file and environment."""

    def test_load_from_file(self, config_manager):
        config = config_manager.load()
        assert config.positions.max_positions == 2
        assert config_manager.config is config

    def test_missing_file_uses_defaults(self, temp_config_dir):
        manager = ConfigManager(temp_config_dir / "absent.json", load_env=False)
        assert manager.load() == EngineConfig()

    def test_invalid_json(self, temp_config_dir):
        path = temp_config_dir / "broken.json"
        path.write_text("{not json")
        with pytest.raises(ConfigValidationError, match="Invalid JSON"):
            ConfigManager(path, load_env=False).load()

    def test_invalid_value_in_file(self, temp_config_dir, valid_config_data):
        valid_config_data["sizing"]["max_risk_pct"] = 0.1
        path = temp_config_dir / "tradedesk.json"
        path.write_text(json.dumps(valid_config_data))
        with pytest.raises(ConfigValidationError):
            ConfigManager(path, load_env=False).load()

    def test_env_overrides(self, config_file, monkeypatch):
        monkeypatch.setenv("TRADEDESK_BASE_RISK_PCT", "0.8")
        monkeypatch.setenv("TRADEDESK_SERVER_UTC_OFFSET", "3")
        monkeypatch.setenv("TRADEDESK_TRAILING_STRATEGY", "ATR")

        config = ConfigManager(config_file, load_env=True).load()
        assert config.sizing.base_risk_pct == 0.8
        assert config.sessions.server_utc_offset_hours == 3
        assert config.trailing.strategy == "atr"

    def test_env_ignored_without_load_env(self, config_file, monkeypatch):
        monkeypatch.setenv("TRADEDESK_BASE_RISK_PCT", "0.8")
        config = ConfigManager(config_file, load_env=False).load()
        assert config.sizing.base_risk_pct == 1.0

    def test_bad_env_value(self, config_file, monkeypatch):
        monkeypatch.setenv("TRADEDESK_MAX_RISK_PCT", "lots")
        with pytest.raises(ConfigValidationError, match="must be a number"):
            ConfigManager(config_file, load_env=True).load()

    def test_bad_env_strategy(self, config_file, monkeypatch):
        monkeypatch.setenv("TRADEDESK_TRAILING_STRATEGY", "zigzag")
        with pytest.raises(ConfigValidationError):
            ConfigManager(config_file, load_env=True).load()

    def test_config_before_load(self, config_file):
        with pytest.raises(ConfigValidationError, match="not loaded"):
            ConfigManager(config_file, load_env=False).config
