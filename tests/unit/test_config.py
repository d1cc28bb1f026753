"""Unit tests for config loading, env interpolation, and validation."""
from __future__ import annotations

from pathlib import Path

import pytest

from loop_manager.config import (
    AppConfig,
    MarketConfig,
    PositionDefaultsConfig,
    RiskThresholdsConfig,
    _interpolate_env,
    load_config,
)
from loop_manager.fixed_point import PRECISION
from loop_manager.models import RiskLevel
from loop_manager.risk.policy import RiskPolicy

_BASE_YAML = """\
assets:
  SUI: {decimals: 9}
  USDC: {decimals: 6}
markets:
  sui-usdc:
    collateral_asset: SUI
    debt_asset: USDC
"""


def _write(tmp_path: Path, content: str) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(content)
    return cfg_file


class TestInterpolateEnv:
    def test_simple_substitution(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MY_VAR", "hello")
        assert _interpolate_env("${MY_VAR}") == "hello"

    def test_missing_var_becomes_empty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NONEXISTENT_VAR_XYZ", raising=False)
        assert _interpolate_env("${NONEXISTENT_VAR_XYZ}") == ""

    def test_nested_dict(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TOK", "secret")
        result = _interpolate_env({"key": "${TOK}", "plain": "text"})
        assert result == {"key": "secret", "plain": "text"}

    def test_nested_list(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("A", "x")
        assert _interpolate_env(["${A}", "y"]) == ["x", "y"]

    def test_non_string_passthrough(self) -> None:
        assert _interpolate_env(42) == 42
        assert _interpolate_env(True) is True


class TestLoadConfig:
    def test_loads_valid_yaml(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert isinstance(cfg, AppConfig)
        assert cfg.engine.thresholds.safe_above == 1.6
        assert cfg.engine.unwind.valid_percentages == (25, 50, 100)
        assert cfg.engine.max_slippage_bps_limit == 500
        assert cfg.position_defaults.target_loops == 4
        assert cfg.position_defaults.auto_management_enabled is False
        assert cfg.assets["USDC"].decimals == 6
        market = cfg.markets["sui-usdc"]
        assert market.ltv_bps == 7500
        assert market.liquidation_threshold_bps == 8000
        assert market.safety_margin_bps == 2000
        assert cfg.simulation.swap_fee_bps == 30
        assert cfg.simulation.liquidity["USDC"] == 1_000_000.0
        assert cfg.price_oracle.pyth.feeds["SUI"] == "aaa"
        assert cfg.notifications.telegram.chat_id == "999"

    def test_defaults_fill_missing_sections(self, tmp_path: Path) -> None:
        cfg = load_config(_write(tmp_path, _BASE_YAML))
        assert cfg.engine.thresholds == RiskThresholdsConfig()
        assert cfg.position_defaults == PositionDefaultsConfig()
        assert cfg.markets["sui-usdc"].ltv_bps == 8000
        assert cfg.price_oracle.provider == "static"
        assert cfg.notifications.telegram.enabled is False

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nonexistent.yaml")

    def test_env_interpolation_in_yaml(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TEST_CHAT_ID", "424242")
        yaml_content = _BASE_YAML + """\
notifications:
  telegram:
    enabled: true
    chat_id: "${TEST_CHAT_ID}"
"""
        cfg = load_config(_write(tmp_path, yaml_content))
        assert cfg.notifications.telegram.chat_id == "424242"

    def test_position_defaults_to_fixed_point(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        position_config = cfg.position_defaults.to_position_config()
        assert position_config.min_health_factor == 14 * PRECISION // 10
        assert position_config.max_loops == 8

    def test_engine_config_builds_policy(self, sample_yaml_path: Path) -> None:
        policy = RiskPolicy.from_config(load_config(sample_yaml_path).engine)
        assert policy.thresholds.risky_above == 11 * PRECISION // 10
        assert policy.recommended_unwind_percentage(RiskLevel.CRITICAL) == 50
        assert policy.max_slippage_bps_limit == 500


class TestValidation:
    def test_no_markets_raises(self, tmp_path: Path) -> None:
        yaml_content = """\
assets:
  SUI: {decimals: 9}
markets: {}
"""
        with pytest.raises(ValueError, match="At least one market"):
            load_config(_write(tmp_path, yaml_content))

    def test_unknown_asset_raises(self, tmp_path: Path) -> None:
        yaml_content = """\
assets:
  SUI: {decimals: 9}
markets:
  sui-eth:
    collateral_asset: SUI
    debt_asset: ETH
"""
        with pytest.raises(ValueError, match="unknown asset 'ETH'"):
            load_config(_write(tmp_path, yaml_content))

    def test_same_asset_raises(self, tmp_path: Path) -> None:
        yaml_content = """\
assets:
  SUI: {decimals: 9}
markets:
  sui-sui:
    collateral_asset: SUI
    debt_asset: SUI
"""
        with pytest.raises(ValueError, match="two distinct assets"):
            load_config(_write(tmp_path, yaml_content))

    def test_decimals_out_of_range_raises(self, tmp_path: Path) -> None:
        yaml_content = _BASE_YAML.replace("{decimals: 6}", "{decimals: 24}")
        with pytest.raises(ValueError, match="decimals"):
            load_config(_write(tmp_path, yaml_content))

    def test_ltv_out_of_range_raises(self, tmp_path: Path) -> None:
        yaml_content = _BASE_YAML + "    ltv_bps: 10000\n"
        with pytest.raises(ValueError, match="ltv_bps"):
            load_config(_write(tmp_path, yaml_content))

    def test_liquidation_threshold_out_of_range_raises(self, tmp_path: Path) -> None:
        yaml_content = _BASE_YAML + "    liquidation_threshold_bps: 0\n"
        with pytest.raises(ValueError, match="liquidation_threshold_bps"):
            load_config(_write(tmp_path, yaml_content))

    def test_thresholds_not_descending_raises(self, tmp_path: Path) -> None:
        yaml_content = _BASE_YAML + """\
engine:
  thresholds:
    safe_above: 1.2
    warning_above: 1.3
"""
        with pytest.raises(ValueError, match="strictly descending"):
            load_config(_write(tmp_path, yaml_content))

    def test_unwind_percentage_outside_valid_set_raises(self, tmp_path: Path) -> None:
        yaml_content = _BASE_YAML + """\
engine:
  unwind:
    risky_percentage: 30
"""
        with pytest.raises(ValueError, match="valid_percentages"):
            load_config(_write(tmp_path, yaml_content))

    def test_unknown_provider_raises(self, tmp_path: Path) -> None:
        yaml_content = _BASE_YAML + """\
price_oracle:
  provider: chainlink
"""
        with pytest.raises(ValueError, match="Unknown price oracle provider"):
            load_config(_write(tmp_path, yaml_content))

    def test_pyth_feed_without_asset_raises(self, tmp_path: Path) -> None:
        yaml_content = _BASE_YAML + """\
price_oracle:
  provider: pyth
  pyth:
    feeds: {SUI: "aaa", ETH: "eee"}
"""
        with pytest.raises(ValueError, match="Pyth feed 'ETH' has no matching asset"):
            load_config(_write(tmp_path, yaml_content))


class TestFrozenConfigs:
    def test_thresholds_immutable(self) -> None:
        t = RiskThresholdsConfig()
        with pytest.raises(AttributeError):
            t.safe_above = 2.0  # type: ignore[misc]

    def test_market_config_immutable(self) -> None:
        m = MarketConfig(collateral_asset="SUI", debt_asset="USDC")
        with pytest.raises(AttributeError):
            m.ltv_bps = 9000  # type: ignore[misc]

    def test_market_params_carry_safety_margin(self) -> None:
        m = MarketConfig(collateral_asset="SUI", debt_asset="USDC", safety_margin_bps=500)
        params = m.to_market_params("sui-usdc")
        assert params.market_id == "sui-usdc"
        assert params.safety_margin_bps == 500
