"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .fixed_point import BPS, MAX_DECIMALS, to_fixed
from .models import MarketParams, PositionConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskThresholdsConfig:
    safe_above: float = 1.6
    warning_above: float = 1.3
    risky_above: float = 1.1
    critical_above: float = 1.0


@dataclass(frozen=True)
class UnwindConfig:
    risky_percentage: int = 25
    critical_percentage: int = 50
    liquidatable_percentage: int = 100
    valid_percentages: tuple[int, ...] = (25, 50, 100)


@dataclass(frozen=True)
class EngineConfig:
    thresholds: RiskThresholdsConfig = field(default_factory=RiskThresholdsConfig)
    unwind: UnwindConfig = field(default_factory=UnwindConfig)
    max_slippage_bps_limit: int = 1000


@dataclass(frozen=True)
class PositionDefaultsConfig:
    target_loops: int = 3
    max_loops: int = 10
    max_slippage_bps: int = 100
    min_health_factor: float = 1.5
    auto_management_enabled: bool = True

    def to_position_config(self) -> PositionConfig:
        return PositionConfig(
            target_loops=self.target_loops,
            max_loops=self.max_loops,
            max_slippage_bps=self.max_slippage_bps,
            min_health_factor=to_fixed(self.min_health_factor),
            auto_management_enabled=self.auto_management_enabled,
        )


@dataclass(frozen=True)
class AssetConfig:
    decimals: int = 9


@dataclass(frozen=True)
class MarketConfig:
    collateral_asset: str = ""
    debt_asset: str = ""
    ltv_bps: int = 8000
    liquidation_threshold_bps: int = 8500
    safety_margin_bps: int = 1000

    def to_market_params(self, market_id: str) -> MarketParams:
        return MarketParams(
            market_id=market_id,
            collateral_asset=self.collateral_asset,
            debt_asset=self.debt_asset,
            safety_margin_bps=self.safety_margin_bps,
        )


@dataclass(frozen=True)
class SimulationConfig:
    swap_fee_bps: int = 30
    prices: dict[str, float] = field(default_factory=dict)
    liquidity: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    feeds: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "static"
    pyth: PythConfig = field(default_factory=PythConfig)


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    alert_bot_token: str = ""
    log_bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class EmailConfig:
    enabled: bool = False
    alert_email: str = ""
    smtp_server: str = "smtp.gmail.com"
    smtp_port: int = 587
    sender_email: str = ""
    sender_password: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    email: EmailConfig = field(default_factory=EmailConfig)


@dataclass(frozen=True)
class AppConfig:
    engine: EngineConfig = field(default_factory=EngineConfig)
    position_defaults: PositionDefaultsConfig = field(
        default_factory=PositionDefaultsConfig
    )
    assets: dict[str, AssetConfig] = field(default_factory=dict)
    markets: dict[str, MarketConfig] = field(default_factory=dict)
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_engine(raw: dict[str, Any]) -> EngineConfig:
    th = raw.get("thresholds", {})
    uw = raw.get("unwind", {})
    return EngineConfig(
        thresholds=RiskThresholdsConfig(
            safe_above=float(th.get("safe_above", 1.6)),
            warning_above=float(th.get("warning_above", 1.3)),
            risky_above=float(th.get("risky_above", 1.1)),
            critical_above=float(th.get("critical_above", 1.0)),
        ),
        unwind=UnwindConfig(
            risky_percentage=int(uw.get("risky_percentage", 25)),
            critical_percentage=int(uw.get("critical_percentage", 50)),
            liquidatable_percentage=int(uw.get("liquidatable_percentage", 100)),
            valid_percentages=tuple(
                int(p) for p in uw.get("valid_percentages", [25, 50, 100])
            ),
        ),
        max_slippage_bps_limit=int(raw.get("max_slippage_bps_limit", 1000)),
    )


def _build_position_defaults(raw: dict[str, Any]) -> PositionDefaultsConfig:
    return PositionDefaultsConfig(
        target_loops=int(raw.get("target_loops", 3)),
        max_loops=int(raw.get("max_loops", 10)),
        max_slippage_bps=int(raw.get("max_slippage_bps", 100)),
        min_health_factor=float(raw.get("min_health_factor", 1.5)),
        auto_management_enabled=bool(raw.get("auto_management_enabled", True)),
    )


def _build_assets(raw: dict[str, Any]) -> dict[str, AssetConfig]:
    return {
        name: AssetConfig(decimals=int(cfg.get("decimals", 9)))
        for name, cfg in raw.items()
    }


def _build_markets(raw: dict[str, Any]) -> dict[str, MarketConfig]:
    markets: dict[str, MarketConfig] = {}
    for name, cfg in raw.items():
        markets[name] = MarketConfig(
            collateral_asset=cfg.get("collateral_asset", ""),
            debt_asset=cfg.get("debt_asset", ""),
            ltv_bps=int(cfg.get("ltv_bps", 8000)),
            liquidation_threshold_bps=int(cfg.get("liquidation_threshold_bps", 8500)),
            safety_margin_bps=int(cfg.get("safety_margin_bps", 1000)),
        )
    return markets


def _build_simulation(raw: dict[str, Any]) -> SimulationConfig:
    return SimulationConfig(
        swap_fee_bps=int(raw.get("swap_fee_bps", 30)),
        prices={k: float(v) for k, v in raw.get("prices", {}).items()},
        liquidity={k: float(v) for k, v in raw.get("liquidity", {}).items()},
    )


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    pyth_raw = raw.get("pyth", {})
    return PriceOracleConfig(
        provider=raw.get("provider", "static"),
        pyth=PythConfig(
            hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url),
            feeds=dict(pyth_raw.get("feeds", {})),
        ),
    )


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram", {})
    em = raw.get("email", {})
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=bool(tg.get("enabled", False)),
            alert_bot_token=tg.get("alert_bot_token", ""),
            log_bot_token=tg.get("log_bot_token", ""),
            chat_id=tg.get("chat_id", ""),
        ),
        email=EmailConfig(
            enabled=bool(em.get("enabled", False)),
            alert_email=em.get("alert_email", ""),
            smtp_server=em.get("smtp_server", "smtp.gmail.com"),
            smtp_port=int(em.get("smtp_port", 587)),
            sender_email=em.get("sender_email", ""),
            sender_password=em.get("sender_password", ""),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        engine=_build_engine(raw.get("engine", {})),
        position_defaults=_build_position_defaults(raw.get("position_defaults", {})),
        assets=_build_assets(raw.get("assets", {})),
        markets=_build_markets(raw.get("markets", {})),
        simulation=_build_simulation(raw.get("simulation", {})),
        price_oracle=_build_price_oracle(raw.get("price_oracle", {})),
        notifications=_build_notifications(raw.get("notifications", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.markets:
        raise ValueError("At least one market must be configured")

    for name, asset in cfg.assets.items():
        if not 0 <= asset.decimals <= MAX_DECIMALS:
            raise ValueError(
                f"Asset '{name}' decimals must be within 0..{MAX_DECIMALS}"
            )

    for name, market in cfg.markets.items():
        for asset in (market.collateral_asset, market.debt_asset):
            if asset not in cfg.assets:
                raise ValueError(
                    f"Market '{name}' references unknown asset '{asset}'"
                )
        if market.collateral_asset == market.debt_asset:
            raise ValueError(f"Market '{name}' must use two distinct assets")
        if not 0 < market.ltv_bps < BPS:
            raise ValueError(f"Market '{name}' ltv_bps must be in (0, {BPS})")
        if not 0 < market.liquidation_threshold_bps <= BPS:
            raise ValueError(
                f"Market '{name}' liquidation_threshold_bps must be in (0, {BPS}]"
            )
        if not 0 <= market.safety_margin_bps < BPS:
            raise ValueError(
                f"Market '{name}' safety_margin_bps must be in [0, {BPS})"
            )

    t = cfg.engine.thresholds
    if not t.safe_above > t.warning_above > t.risky_above > t.critical_above >= 1.0:
        raise ValueError("Risk thresholds must be strictly descending and >= 1.0")

    uw = cfg.engine.unwind
    for pct in (uw.risky_percentage, uw.critical_percentage, uw.liquidatable_percentage):
        if pct not in uw.valid_percentages:
            raise ValueError(
                f"Unwind percentage {pct} is not in valid_percentages {list(uw.valid_percentages)}"
            )
    if any(not 0 < p <= 100 for p in uw.valid_percentages):
        raise ValueError("valid_percentages must lie within (0, 100]")

    if cfg.price_oracle.provider not in ("static", "pyth"):
        raise ValueError(f"Unknown price oracle provider '{cfg.price_oracle.provider}'")
    for asset in cfg.price_oracle.pyth.feeds:
        if asset not in cfg.assets:
            raise ValueError(f"Pyth feed '{asset}' has no matching asset")
