"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from loop_manager.adapters.simulated import SimulatedGateway
from loop_manager.config import (
    AppConfig,
    AssetConfig,
    EmailConfig,
    MarketConfig,
    NotificationsConfig,
    PositionDefaultsConfig,
    PriceOracleConfig,
    PythConfig,
    SimulationConfig,
    TelegramConfig,
)
from loop_manager.fixed_point import PRECISION
from loop_manager.models import MarketParams, Position, PositionConfig, PriceQuote
from loop_manager.oracles.static import StaticPriceFeed
from loop_manager.risk.health import HealthFactorEngine
from loop_manager.risk.policy import RiskPolicy
from loop_manager.services.manager import PositionManager

SUI = 10**9
USDC = 10**6
OWNER = "0xALICE"
MARKET_ID = "sui-usdc"


# ---------------------------------------------------------------------------
# Market fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_market_config() -> MarketConfig:
    # 80% LTV with a 37.5% safety margin borrows half the headroom per loop.
    return MarketConfig(
        collateral_asset="SUI",
        debt_asset="USDC",
        ltv_bps=8000,
        liquidation_threshold_bps=8500,
        safety_margin_bps=3750,
    )


@pytest.fixture()
def market_params(sample_market_config: MarketConfig) -> MarketParams:
    return sample_market_config.to_market_params(MARKET_ID)


@pytest.fixture()
def position_config() -> PositionConfig:
    return PositionConfig(
        target_loops=5,
        max_loops=10,
        max_slippage_bps=100,
        min_health_factor=15 * PRECISION // 10,
        auto_management_enabled=True,
    )


@pytest.fixture()
def price_feed() -> StaticPriceFeed:
    return StaticPriceFeed(
        {
            "SUI": PriceQuote("SUI", 2 * PRECISION, 9),
            "USDC": PriceQuote("USDC", PRECISION, 6),
        }
    )


@pytest.fixture()
def gateway(
    price_feed: StaticPriceFeed, sample_market_config: MarketConfig
) -> SimulatedGateway:
    return SimulatedGateway(
        price_feed,
        {MARKET_ID: sample_market_config},
        reserves={"USDC": 10_000_000 * USDC},
    )


@pytest.fixture()
def engine() -> HealthFactorEngine:
    return HealthFactorEngine(RiskPolicy())


@pytest.fixture()
def manager(gateway: SimulatedGateway) -> PositionManager:
    return PositionManager(gateway, RiskPolicy())


@pytest.fixture()
def fresh_position(
    market_params: MarketParams, position_config: PositionConfig
) -> Position:
    """1000 SUI ($2000) deposited, no debt. Not yet supplied on the gateway."""
    return Position(
        position_id="pos-1",
        owner=OWNER,
        market=market_params,
        config=position_config,
        collateral_amount=1000 * SUI,
        total_supplied=1000 * SUI,
    )


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_app_config(sample_market_config: MarketConfig) -> AppConfig:
    return AppConfig(
        position_defaults=PositionDefaultsConfig(target_loops=5, min_health_factor=1.5),
        assets={"SUI": AssetConfig(decimals=9), "USDC": AssetConfig(decimals=6)},
        markets={MARKET_ID: sample_market_config},
        simulation=SimulationConfig(
            swap_fee_bps=0,
            prices={"SUI": 2.0, "USDC": 1.0},
            liquidity={"USDC": 10_000_000},
        ),
        price_oracle=PriceOracleConfig(
            provider="static",
            pyth=PythConfig(feeds={"SUI": "aaa", "USDC": "bbb"}),
        ),
        notifications=NotificationsConfig(
            telegram=TelegramConfig(
                enabled=True,
                alert_bot_token="fake-alert-token",
                log_bot_token="fake-log-token",
                chat_id="12345",
            ),
            email=EmailConfig(enabled=False),
        ),
    )


SAMPLE_YAML = textwrap.dedent("""\
    engine:
      thresholds:
        safe_above: 1.6
        warning_above: 1.3
        risky_above: 1.1
        critical_above: 1.0
      unwind:
        risky_percentage: 25
        critical_percentage: 50
        liquidatable_percentage: 100
        valid_percentages: [25, 50, 100]
      max_slippage_bps_limit: 500
    position_defaults:
      target_loops: 4
      max_loops: 8
      max_slippage_bps: 50
      min_health_factor: 1.4
      auto_management_enabled: false
    assets:
      SUI: {decimals: 9}
      USDC: {decimals: 6}
    markets:
      sui-usdc:
        collateral_asset: SUI
        debt_asset: USDC
        ltv_bps: 7500
        liquidation_threshold_bps: 8000
        safety_margin_bps: 2000
    simulation:
      swap_fee_bps: 30
      prices: {SUI: 2.0, USDC: 1.0}
      liquidity: {USDC: 1000000}
    price_oracle:
      provider: static
      pyth:
        hermes_url: "https://hermes.example.com"
        feeds: {SUI: "aaa", USDC: "bbb"}
    notifications:
      telegram:
        enabled: true
        alert_bot_token: "tok1"
        log_bot_token: "tok2"
        chat_id: "999"
      email:
        enabled: false
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
