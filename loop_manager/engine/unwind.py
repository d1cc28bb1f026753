"""De-risking state machine: Evaluate → Authorize → Execute → Revalidate.

The trigger is untrusted. Whether a position may be unwound is re-derived from
live prices on every call, so duplicate or late triggers on a position that is
no longer risky are rejected with ``PositionNotRisky`` instead of unwinding
twice.
"""
from __future__ import annotations

import logging
from dataclasses import replace

from ..errors import InsufficientCollateral, PositionNotRisky, RevalidationFailed
from ..fixed_point import format_fixed
from ..interfaces.gateway import AdapterGateway
from ..models import HealthSnapshot, Position, UnwindReport, UnwindStage
from ..risk.health import HealthFactorEngine
from ..risk.policy import RiskPolicy
from .guards import ensure_active, guarded_swap

logger = logging.getLogger(__name__)


class UnwindController:
    """Withdraw → swap → repay in one validated, all-or-nothing step."""

    def __init__(self, gateway: AdapterGateway, engine: HealthFactorEngine) -> None:
        self._gateway = gateway
        self._engine = engine

    @property
    def policy(self) -> RiskPolicy:
        return self._engine.policy

    async def evaluate(self, position: Position) -> HealthSnapshot:
        """Health of ``position`` at live prices. Never takes a caller-supplied HF."""
        market = position.market
        collateral_quote = await self._gateway.get_price(market.collateral_asset)
        debt_quote = await self._gateway.get_price(market.debt_asset)
        lt_bps = await self._gateway.get_liquidation_threshold(market.market_id)
        return self._engine.assess(position, collateral_quote, debt_quote, lt_bps)

    def authorize(self, snapshot: HealthSnapshot, percentage: int | None = None) -> int:
        """Return the percentage to unwind, or raise if the position is not risky."""
        if not self.policy.is_risky(snapshot.risk_level):
            raise PositionNotRisky(
                f"Position {snapshot.position_id} is {snapshot.risk_level.value} "
                f"(HF {format_fixed(snapshot.health_factor)})"
            )
        if percentage is None:
            percentage = snapshot.recommended_percentage
        return self.policy.validate_unwind_percentage(percentage)

    async def unwind(
        self, position: Position, percentage: int | None = None
    ) -> UnwindReport:
        """Unwind ``percentage`` of the collateral, or the recommended share.

        Raises:
            InvalidUnwindPercentage: ``percentage`` not in the valid set.
            PositionNotRisky: position is Safe or Warning at live prices.
            RevalidationFailed: the unwind would not improve the health factor.
        """
        ensure_active(position)
        if percentage is not None:
            self.policy.validate_unwind_percentage(percentage)

        stages: list[UnwindStage] = []
        async with self._gateway.atomic():
            before = await self.evaluate(position)
            stages.append(UnwindStage.EVALUATE)
            logger.debug(
                "Unwind %s evaluated: HF %s (%s)",
                position.position_id,
                format_fixed(before.health_factor),
                before.risk_level.value,
            )

            percentage = self.authorize(before, percentage)
            stages.append(UnwindStage.AUTHORIZE)

            updated, withdrawn, repaid, returned, dust = await self._execute(
                position, percentage
            )
            stages.append(UnwindStage.EXECUTE)

            after = await self._revalidate(updated, before)
            stages.append(UnwindStage.REVALIDATE)

        logger.info(
            "Position %s unwound %d%%: withdrew %d, repaid %d, HF %s -> %s (%s)",
            position.position_id,
            percentage,
            withdrawn,
            repaid,
            format_fixed(before.health_factor),
            format_fixed(after.health_factor),
            after.risk_level.value,
        )
        return UnwindReport(
            position=updated,
            percentage=percentage,
            withdrawn=withdrawn,
            repaid=repaid,
            returned_collateral=returned,
            before=before,
            after=after,
            stages=tuple(stages),
            dust=dust,
        )

    async def _execute(
        self, position: Position, percentage: int
    ) -> tuple[Position, int, int, int, int]:
        market = position.market
        slippage = position.config.max_slippage_bps

        withdraw_amount = position.collateral_amount * percentage // 100
        if withdraw_amount <= 0:
            raise InsufficientCollateral(
                f"Nothing to withdraw from position {position.position_id}"
            )

        withdrawn = await self._gateway.withdraw(market.collateral_asset, withdraw_amount)
        proceeds = await guarded_swap(
            self._gateway, market.collateral_asset, market.debt_asset, withdrawn, slippage
        )

        repaid = min(proceeds, position.debt_amount)
        if repaid > 0:
            await self._gateway.repay(market.debt_asset, repaid)

        # Proceeds beyond the outstanding debt go back in as collateral. A
        # leftover worth less than one collateral base unit stays as dust.
        returned = 0
        dust = 0
        remainder = proceeds - repaid
        if remainder > 0:
            quoted = await self._gateway.get_quote(
                market.debt_asset, market.collateral_asset, remainder
            )
            if quoted > 0:
                returned = await guarded_swap(
                    self._gateway, market.debt_asset, market.collateral_asset, remainder, slippage
                )
            if returned > 0:
                await self._gateway.supply(market.collateral_asset, returned)
            else:
                dust = remainder
                logger.info(
                    "Position %s left %d %s as dust after repaying",
                    position.position_id,
                    dust,
                    market.debt_asset,
                )

        updated = replace(
            position,
            collateral_amount=position.collateral_amount - withdraw_amount + returned,
            debt_amount=position.debt_amount - repaid,
            total_supplied=position.total_supplied + returned,
        )
        return updated, withdraw_amount, repaid, returned, dust

    async def _revalidate(self, updated: Position, before: HealthSnapshot) -> HealthSnapshot:
        after = await self.evaluate(updated)
        if updated.debt_amount == 0 or after.health_factor > before.health_factor:
            return after
        raise RevalidationFailed(
            f"Unwind of {updated.position_id} did not improve health factor: "
            f"{format_fixed(before.health_factor)} -> {format_fixed(after.health_factor)}"
        )
