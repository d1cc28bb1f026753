"""Build engine collaborators from ``AppConfig``."""
from __future__ import annotations

import logging
from typing import Any, Callable

from ..adapters.simulated import SimulatedGateway
from ..config import AppConfig
from ..fixed_point import to_base_units
from ..interfaces.notifier import Notifier
from ..interfaces.price_oracle import PriceFeed
from ..notifications import EmailNotifier, TelegramNotifier
from ..oracles import PythOracle, StaticPriceFeed
from ..risk.policy import RiskPolicy
from .manager import PositionManager

logger = logging.getLogger(__name__)


def _token_decimals(config: AppConfig) -> dict[str, int]:
    return {name: asset.decimals for name, asset in config.assets.items()}


# Registry of price feed factories keyed by provider name.
_PRICE_FEED_FACTORIES: dict[str, Callable[[AppConfig], Any]] = {
    "static": lambda cfg: StaticPriceFeed.from_usd(
        cfg.simulation.prices, _token_decimals(cfg)
    ),
    "pyth": lambda cfg: PythOracle(cfg.price_oracle.pyth, _token_decimals(cfg)),
}


def build_price_feed(config: AppConfig) -> PriceFeed:
    provider = config.price_oracle.provider
    factory = _PRICE_FEED_FACTORIES.get(provider)
    if factory is None:
        raise ValueError(f"No price feed factory for provider '{provider}'")
    return factory(config)


def build_gateway(
    config: AppConfig, price_feed: PriceFeed | None = None
) -> SimulatedGateway:
    decimals = _token_decimals(config)
    reserves = {
        asset: to_base_units(amount, decimals[asset])
        for asset, amount in config.simulation.liquidity.items()
        if asset in decimals
    }
    return SimulatedGateway(
        price_feed or build_price_feed(config),
        config.markets,
        reserves=reserves,
        swap_fee_bps=config.simulation.swap_fee_bps,
    )


def build_notifiers(config: AppConfig) -> list[Notifier]:
    notifiers: list[Notifier] = []
    if config.notifications.telegram.enabled:
        notifiers.append(TelegramNotifier(config.notifications.telegram))
    if config.notifications.email.enabled:
        notifiers.append(EmailNotifier(config.notifications.email))
    return notifiers


def build_manager(
    config: AppConfig, gateway: SimulatedGateway | None = None
) -> PositionManager:
    gateway = gateway or build_gateway(config)
    notifiers = build_notifiers(config)
    logger.debug("Position manager built with %d notifiers", len(notifiers))
    return PositionManager(
        gateway, RiskPolicy.from_config(config.engine), notifiers=notifiers
    )
