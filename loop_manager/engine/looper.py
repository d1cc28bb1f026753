"""Leverage construction: repeated borrow → swap → supply cycles.

Each loop borrows the remaining headroom under ``ltv * (1 - safety_margin)``.
Headroom shrinks by that same factor every loop, so leverage follows a
geometric series that converges to ``1 / (1 - ltv * (1 - safety_margin))``
and never faster. The executor projects the health factor of the next loop
under worst-case slippage and stops itself before crossing
``min_health_factor``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from ..errors import (
    ExceedsMaxLoops,
    InsufficientCollateral,
    InvalidConfig,
    InvalidThreshold,
    UnsafeHealthFactor,
    ZeroLoops,
)
from ..fixed_point import BPS, format_fixed
from ..interfaces.gateway import AdapterGateway
from ..models import (
    HealthSnapshot,
    LoopReport,
    LoopStep,
    MarketParams,
    Position,
    PriceQuote,
)
from ..risk.health import HealthFactorEngine, amount_for_value
from .guards import ensure_active, guarded_swap, min_amount_out

logger = logging.getLogger(__name__)

STOP_TARGET_REACHED = "target reached"
STOP_HEALTH_FLOOR = "projected health factor at or below minimum"
STOP_NO_HEADROOM = "borrow headroom exhausted"


def calculate_safe_borrow_amount(
    collateral_value: int, ltv_bps: int, safety_margin_bps: int
) -> int:
    """Maximum borrowable value under ``ltv_bps``, reduced by the safety margin."""
    if not 0 < ltv_bps < BPS:
        raise InvalidThreshold(f"LTV must be in (0, {BPS}) bps, got {ltv_bps}")
    if not 0 <= safety_margin_bps < BPS:
        raise InvalidThreshold(
            f"Safety margin must be in [0, {BPS}) bps, got {safety_margin_bps}"
        )
    return collateral_value * ltv_bps * (BPS - safety_margin_bps) // (BPS * BPS)


def leverage_limit(ltv_bps: int, safety_margin_bps: int) -> float:
    """Asymptotic leverage after infinitely many loops."""
    ratio = ltv_bps * (BPS - safety_margin_bps) / (BPS * BPS)
    return 1 / (1 - ratio)


@dataclass(frozen=True)
class LoopPlan:
    """What the next loop would do at current prices."""

    borrow_amount: int
    projected_health_factor: int
    current: HealthSnapshot
    ltv_bps: int

    @property
    def collateral_quote(self) -> PriceQuote:
        return self.current.collateral_quote

    @property
    def debt_quote(self) -> PriceQuote:
        return self.current.debt_quote

    @property
    def liquidation_threshold_bps(self) -> int:
        return self.current.liquidation_threshold_bps


class LoopExecutor:
    """Builds leverage on a position through an ``AdapterGateway``."""

    def __init__(self, gateway: AdapterGateway, engine: HealthFactorEngine) -> None:
        self._gateway = gateway
        self._engine = engine

    async def plan_loop(self, position: Position) -> LoopPlan:
        """Price the next loop without moving any value."""
        market = position.market
        collateral_quote = await self._gateway.get_price(market.collateral_asset)
        debt_quote = await self._gateway.get_price(market.debt_asset)
        ltv_bps = await self._gateway.get_ltv(market.market_id)
        lt_bps = await self._gateway.get_liquidation_threshold(market.market_id)

        current = self._engine.assess(position, collateral_quote, debt_quote, lt_bps)
        safe_value = calculate_safe_borrow_amount(
            current.collateral_value, ltv_bps, market.safety_margin_bps
        )
        borrow_amount = amount_for_value(
            safe_value - current.debt_value, debt_quote.price, debt_quote.decimals
        )
        if borrow_amount <= 0:
            return LoopPlan(0, current.health_factor, current, ltv_bps)

        quoted = await self._gateway.get_quote(
            market.debt_asset, market.collateral_asset, borrow_amount
        )
        worst_case = min_amount_out(quoted, position.config.max_slippage_bps)
        projected = self._engine.health_factor(
            position.collateral_amount + worst_case,
            position.debt_amount + borrow_amount,
            collateral_quote,
            debt_quote,
            lt_bps,
        )
        return LoopPlan(borrow_amount, projected, current, ltv_bps)

    async def execute_loop(
        self, position: Position, market: MarketParams | None = None
    ) -> LoopReport:
        """Run exactly one loop. Atomic: any failure leaves no effect."""
        position = _with_market(position, market)
        ensure_active(position)
        if position.loop_count >= position.config.max_loops:
            raise ExceedsMaxLoops(
                f"Position {position.position_id} already at "
                f"max_loops={position.config.max_loops}"
            )

        async with self._gateway.atomic():
            plan = await self.plan_loop(position)
            if plan.borrow_amount <= 0:
                raise InsufficientCollateral(
                    f"No borrow headroom left on position {position.position_id}"
                )
            if plan.projected_health_factor <= position.config.min_health_factor:
                raise UnsafeHealthFactor(
                    f"Projected health factor {format_fixed(plan.projected_health_factor)} "
                    f"is at or below minimum "
                    f"{format_fixed(position.config.min_health_factor)}"
                )
            position, step = await self._run_loop(position, plan)

        return LoopReport(position=position, steps=(step,), stop_reason=STOP_TARGET_REACHED)

    async def execute_loops(
        self, position: Position, loop_target: int | None = None
    ) -> LoopReport:
        """Run up to ``loop_target`` additional loops.

        Stops early, without error, once the next loop's projected health
        factor would be at or below ``min_health_factor`` or no headroom is
        left. A failure in any loop reverts every loop of this call.
        """
        ensure_active(position)
        cfg = position.config
        if loop_target is None:
            loop_target = cfg.target_loops - position.loop_count
        if loop_target <= 0:
            raise ZeroLoops("loop_target must be at least 1")
        if position.loop_count + loop_target > cfg.max_loops:
            raise ExceedsMaxLoops(
                f"{position.loop_count} executed + {loop_target} requested "
                f"exceeds max_loops={cfg.max_loops}"
            )

        goal = position.loop_count + loop_target
        steps: list[LoopStep] = []
        stop_reason = STOP_TARGET_REACHED

        async with self._gateway.atomic():
            while position.loop_count < goal:
                plan = await self.plan_loop(position)
                if plan.borrow_amount <= 0:
                    stop_reason = STOP_NO_HEADROOM
                    break
                if plan.projected_health_factor <= cfg.min_health_factor:
                    stop_reason = STOP_HEALTH_FLOOR
                    break
                position, step = await self._run_loop(position, plan)
                steps.append(step)

        logger.info(
            "Position %s: %d/%d loops executed (%s), loop_count=%d, "
            "leverage limit %.2fx",
            position.position_id,
            len(steps),
            loop_target,
            stop_reason,
            position.loop_count,
            leverage_limit(plan.ltv_bps, position.market.safety_margin_bps),
        )
        return LoopReport(position=position, steps=tuple(steps), stop_reason=stop_reason)

    async def _run_loop(self, position: Position, plan: LoopPlan) -> tuple[Position, LoopStep]:
        market = position.market
        cfg = position.config

        proceeds = await self._gateway.borrow(market.debt_asset, plan.borrow_amount)
        received = await guarded_swap(
            self._gateway,
            market.debt_asset,
            market.collateral_asset,
            proceeds,
            cfg.max_slippage_bps,
        )
        await self._gateway.supply(market.collateral_asset, received)

        updated = replace(
            position,
            collateral_amount=position.collateral_amount + received,
            debt_amount=position.debt_amount + plan.borrow_amount,
            total_supplied=position.total_supplied + received,
            total_borrowed=position.total_borrowed + plan.borrow_amount,
            loop_count=position.loop_count + 1,
        )
        hf = self._engine.health_factor(
            updated.collateral_amount,
            updated.debt_amount,
            plan.collateral_quote,
            plan.debt_quote,
            plan.liquidation_threshold_bps,
        )
        if hf < cfg.min_health_factor:
            raise UnsafeHealthFactor(
                f"Loop {updated.loop_count} would leave health factor "
                f"{format_fixed(hf)} below {format_fixed(cfg.min_health_factor)}"
            )

        logger.debug(
            "Loop %d on %s: borrowed %d %s, supplied %d %s, HF %s",
            updated.loop_count,
            position.position_id,
            plan.borrow_amount,
            market.debt_asset,
            received,
            market.collateral_asset,
            format_fixed(hf),
        )
        step = LoopStep(
            loop_number=updated.loop_count,
            borrowed=plan.borrow_amount,
            supplied=received,
            health_factor=hf,
        )
        return updated, step


def _with_market(position: Position, market: MarketParams | None) -> Position:
    if market is None or market == position.market:
        return position
    current = position.market
    if (market.market_id, market.collateral_asset, market.debt_asset) != (
        current.market_id,
        current.collateral_asset,
        current.debt_asset,
    ):
        raise InvalidConfig(
            f"Position {position.position_id} is bound to market {current.market_id}"
        )
    return replace(position, market=market)
