"""Guards shared by the loop and unwind paths."""
from __future__ import annotations

import logging

from ..errors import (
    ExceedsMaxSlippage,
    InactivePosition,
    InvalidConfig,
    NotOwner,
)
from ..fixed_point import BPS, apply_bps
from ..interfaces.gateway import AdapterGateway
from ..models import MarketParams, Position, PositionConfig
from ..risk.policy import RiskPolicy

logger = logging.getLogger(__name__)


def ensure_active(position: Position) -> None:
    if not position.is_active:
        raise InactivePosition(f"Position {position.position_id} is closed")


def ensure_owner(position: Position, caller: str) -> None:
    if caller != position.owner:
        raise NotOwner(
            f"Caller {caller!r} does not own position {position.position_id}"
        )


def validate_position_config(config: PositionConfig, policy: RiskPolicy) -> PositionConfig:
    """Raise ``InvalidConfig`` unless every position config invariant holds."""
    if config.max_loops <= 0:
        raise InvalidConfig("max_loops must be positive")
    if not 0 <= config.target_loops <= config.max_loops:
        raise InvalidConfig("target_loops must be within [0, max_loops]")
    if not 0 <= config.max_slippage_bps <= policy.max_slippage_bps_limit:
        raise InvalidConfig(
            f"max_slippage_bps must be within [0, {policy.max_slippage_bps_limit}]"
        )
    if config.min_health_factor <= policy.precision:
        raise InvalidConfig("min_health_factor must be greater than 1.0")
    return config


def validate_market_params(market: MarketParams) -> MarketParams:
    """Raise ``InvalidConfig`` unless the market's static parameters are usable."""
    if market.collateral_asset == market.debt_asset:
        raise InvalidConfig(f"Market {market.market_id} must use two distinct assets")
    if not 0 <= market.safety_margin_bps < BPS:
        raise InvalidConfig(
            f"safety_margin_bps must be within [0, {BPS}), got {market.safety_margin_bps}"
        )
    return market


def min_amount_out(quoted: int, max_slippage_bps: int) -> int:
    """Smallest acceptable output for a ``quoted`` swap."""
    return apply_bps(quoted, BPS - max_slippage_bps)


async def guarded_swap(
    gateway: AdapterGateway,
    asset_in: str,
    asset_out: str,
    amount_in: int,
    max_slippage_bps: int,
) -> int:
    """Swap at the quoted rate, rejecting executions worse than the bound.

    The gateway is handed the minimum output, and the returned amount is
    checked again here so a lax adapter cannot slip past the bound.
    """
    quoted = await gateway.get_quote(asset_in, asset_out, amount_in)
    floor = min_amount_out(quoted, max_slippage_bps)
    amount_out = await gateway.swap(asset_in, asset_out, amount_in, floor)
    if amount_out < floor:
        raise ExceedsMaxSlippage(
            f"Swap {asset_in}->{asset_out} returned {amount_out}, "
            f"quoted {quoted}, minimum {floor}"
        )
    logger.debug(
        "Swapped %d %s -> %d %s (quoted %d)",
        amount_in, asset_in, amount_out, asset_out, quoted,
    )
    return amount_out
