"""Position manager: entry operations, authorization and event notifications."""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable

from ..engine.guards import (
    ensure_active,
    ensure_owner,
    validate_market_params,
    validate_position_config,
)
from ..engine.looper import LoopExecutor
from ..engine.unwind import UnwindController
from ..errors import (
    AutoManagementDisabled,
    DebtOutstanding,
    InsufficientCollateral,
    InvalidConfig,
)
from ..fixed_point import format_fixed
from ..interfaces.gateway import AdapterGateway
from ..interfaces.notifier import Notifier
from ..models import (
    HealthSnapshot,
    LoopReport,
    MarketParams,
    Position,
    PositionConfig,
    PositionState,
    UnwindReport,
)
from ..risk.health import HealthFactorEngine
from ..risk.policy import RiskPolicy
from .book import PositionBook

logger = logging.getLogger(__name__)


class PositionManager:
    """Owns positions and serializes every mutation of a single position.

    Unwind triggering is permissionless: ``auto_unwind`` accepts any caller and
    relies on the controller re-deriving risk from live prices.
    """

    def __init__(
        self,
        gateway: AdapterGateway,
        policy: RiskPolicy | None = None,
        *,
        notifiers: Iterable[Notifier] = (),
        book: PositionBook | None = None,
    ) -> None:
        self._gateway = gateway
        self._engine = HealthFactorEngine(policy)
        self._looper = LoopExecutor(gateway, self._engine)
        self._unwinder = UnwindController(gateway, self._engine)
        self._book = book or PositionBook()
        self._notifiers: list[Notifier] = list(notifiers)
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def engine(self) -> HealthFactorEngine:
        return self._engine

    @property
    def book(self) -> PositionBook:
        return self._book

    def get_position(self, position_id: str) -> Position:
        return self._book.get(position_id)

    def _lock(self, position_id: str) -> asyncio.Lock:
        lock = self._locks.get(position_id)
        if lock is not None:
            return lock
        lock = asyncio.Lock()
        # Unknown and closed positions are never mutated; they keep no entry.
        if position_id in self._book and self._book.get(position_id).is_active:
            self._locks[position_id] = lock
        return lock

    # ------------------------------------------------------------------
    # Entry operations
    # ------------------------------------------------------------------

    async def create_position(
        self,
        owner: str,
        market: MarketParams,
        initial_collateral: int,
        config: PositionConfig | None = None,
    ) -> Position:
        """Deposit ``initial_collateral`` and register a new position."""
        if initial_collateral <= 0:
            raise InsufficientCollateral("Initial collateral must be positive")
        config = validate_position_config(config or PositionConfig(), self._engine.policy)
        validate_market_params(market)
        # Unknown markets fail here, before any collateral moves.
        await self._gateway.get_ltv(market.market_id)

        async with self._gateway.atomic():
            await self._gateway.supply(market.collateral_asset, initial_collateral)

        position = Position(
            position_id=uuid.uuid4().hex,
            owner=owner,
            market=market,
            config=config,
            collateral_amount=initial_collateral,
            total_supplied=initial_collateral,
        )
        self._book.put(position)
        logger.info(
            "Created position %s for %s on %s with %d %s",
            position.position_id,
            owner,
            market.market_id,
            initial_collateral,
            market.collateral_asset,
        )
        return position

    async def execute_loops(
        self, position_id: str, caller: str, loop_target: int | None = None
    ) -> LoopReport:
        """Owner-only: build leverage by up to ``loop_target`` more loops."""
        async with self._lock(position_id):
            position = self._book.get(position_id)
            ensure_owner(position, caller)
            report = await self._looper.execute_loops(position, loop_target)
            self._book.put(report.position)

        await self._send_log(self._build_loop_log(report), silent=True)
        return report

    async def auto_unwind(self, position_id: str, caller: str = "keeper") -> UnwindReport:
        """Permissionless: unwind the recommended share if the position is risky."""
        logger.info("Auto-unwind of %s triggered by %s", position_id, caller)
        async with self._lock(position_id):
            position = self._book.get(position_id)
            ensure_active(position)
            if not position.config.auto_management_enabled:
                raise AutoManagementDisabled(
                    f"Position {position_id} has automatic management disabled"
                )
            report = await self._unwinder.unwind(position)
            self._book.put(report.position)

        await self._send_alert(
            self._build_unwind_alert(report, trigger="automatic"),
            subject=f"Unwind {report.percentage}%: {report.before.risk_level.value}",
        )
        return report

    async def manual_unwind(
        self, position_id: str, caller: str, percentage: int
    ) -> UnwindReport:
        """Owner-only: unwind ``percentage`` (one of the valid set)."""
        async with self._lock(position_id):
            position = self._book.get(position_id)
            ensure_owner(position, caller)
            report = await self._unwinder.unwind(position, percentage)
            self._book.put(report.position)

        await self._send_alert(
            self._build_unwind_alert(report, trigger="manual"),
            subject=f"Unwind {report.percentage}%: {report.before.risk_level.value}",
        )
        return report

    async def close_position(self, position_id: str, caller: str) -> Position:
        """Owner-only: return remaining collateral and close a debt-free position."""
        async with self._lock(position_id):
            position = self._book.get(position_id)
            ensure_owner(position, caller)
            ensure_active(position)
            if position.debt_amount != 0:
                raise DebtOutstanding(
                    f"Position {position_id} still owes {position.debt_amount} "
                    f"{position.market.debt_asset}"
                )

            async with self._gateway.atomic():
                if position.collateral_amount > 0:
                    await self._gateway.withdraw(
                        position.market.collateral_asset, position.collateral_amount
                    )

            returned = position.collateral_amount
            closed = replace(position, collateral_amount=0, state=PositionState.CLOSED)
            self._book.put(closed)

        self._locks.pop(position_id, None)
        logger.info("Closed position %s, returned %d collateral", position_id, returned)
        await self._send_log(
            f"Position {position_id} closed by {caller}\n"
            f"Returned collateral: {returned} {position.market.collateral_asset}\n"
            f"{self._now_str()} UTC"
        )
        return closed

    async def update_config(
        self, position_id: str, caller: str, new_config: PositionConfig
    ) -> Position:
        """Owner-only: replace the position config after re-validating it."""
        async with self._lock(position_id):
            position = self._book.get(position_id)
            ensure_owner(position, caller)
            ensure_active(position)
            validate_position_config(new_config, self._engine.policy)
            if new_config.max_loops < position.loop_count:
                raise InvalidConfig(
                    f"max_loops {new_config.max_loops} is below executed "
                    f"loop_count {position.loop_count}"
                )
            updated = replace(position, config=new_config)
            self._book.put(updated)

        logger.info("Updated config of position %s", position_id)
        return updated

    async def evaluate(self, position_id: str) -> HealthSnapshot:
        """Read-only health check at live prices."""
        return await self._unwinder.evaluate(self._book.get(position_id))

    # ------------------------------------------------------------------
    # Notification dispatch
    # ------------------------------------------------------------------

    @staticmethod
    def _now_str() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    def _build_loop_log(self, report: LoopReport) -> str:
        p = report.position
        last_hf = report.steps[-1].health_factor if report.steps else None
        return (
            f"Loops on {p.position_id} · {p.market.market_id}\n"
            f"\n"
            f"Executed: {report.loops_executed} ({report.stop_reason})\n"
            f"Loop count: {p.loop_count}/{p.config.max_loops}\n"
            f"Collateral: {p.collateral_amount} {p.market.collateral_asset}\n"
            f"Debt: {p.debt_amount} {p.market.debt_asset}\n"
            f"HF: {format_fixed(last_hf) if last_hf is not None else 'unchanged'}\n"
            f"\n"
            f"{self._now_str()} UTC"
        )

    def _build_unwind_alert(self, report: UnwindReport, trigger: str) -> str:
        p = report.position
        return (
            f"Unwound {report.percentage}% of {p.position_id} ({trigger})\n"
            f"\n"
            f"Risk: {report.before.risk_level.value} -> {report.after.risk_level.value}\n"
            f"HF: {format_fixed(report.before.health_factor)} -> "
            f"{format_fixed(report.after.health_factor)}\n"
            f"Withdrawn: {report.withdrawn} {p.market.collateral_asset}\n"
            f"Repaid: {report.repaid} {p.market.debt_asset}\n"
            f"Remaining debt: {p.debt_amount} {p.market.debt_asset}\n"
            f"\n"
            f"{self._now_str()} UTC"
        )

    async def _send_log(self, message: str, silent: bool = False) -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_log(message, silent=silent)
            except Exception as e:
                logger.error("Notifier send_log failed: %s", e)

    async def _send_alert(self, message: str, subject: str = "") -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_alert(message, subject=subject)
            except Exception as e:
                logger.error("Notifier send_alert failed: %s", e)
