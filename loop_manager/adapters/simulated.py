"""In-memory lending market + exchange implementing ``AdapterGateway``.

Swaps execute at oracle prices minus a flat fee. ``execution_skew_bps`` makes
executions worse than quotes and ``fail_on`` injects failures, so slippage and
rollback paths can be exercised without a live market.
"""
from __future__ import annotations

import asyncio
import copy
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

from ..config import MarketConfig
from ..errors import AdapterError, ExceedsMaxSlippage, InsufficientCollateral
from ..fixed_point import BPS, apply_bps
from ..interfaces.price_oracle import PriceFeed
from ..models import PriceQuote
from ..risk.health import amount_for_value, calculate_collateral_value

logger = logging.getLogger(__name__)


@dataclass
class _Ledger:
    supplied: dict[str, int] = field(default_factory=dict)
    borrowed: dict[str, int] = field(default_factory=dict)
    reserves: dict[str, int] = field(default_factory=dict)


class SimulatedGateway:
    """Single-account simulated market. Transactions are serialized."""

    def __init__(
        self,
        price_feed: PriceFeed,
        markets: dict[str, MarketConfig],
        *,
        reserves: dict[str, int] | None = None,
        swap_fee_bps: int = 0,
        execution_skew_bps: int = 0,
    ) -> None:
        self._feed = price_feed
        self._markets = dict(markets)
        self._ledger = _Ledger(reserves=dict(reserves or {}))
        self.swap_fee_bps = swap_fee_bps
        self.execution_skew_bps = execution_skew_bps
        self.fail_on: set[str] = set()
        self._tx_lock = asyncio.Lock()
        self._tx_task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def supplied(self, asset: str) -> int:
        return self._ledger.supplied.get(asset, 0)

    def borrowed(self, asset: str) -> int:
        return self._ledger.borrowed.get(asset, 0)

    def reserves(self, asset: str) -> int:
        return self._ledger.reserves.get(asset, 0)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        """Revert every ledger change made inside the block if it raises.

        Re-entrant within one task; other tasks wait for the outer block.
        """
        if self._tx_task is asyncio.current_task():
            async with self._rollback_on_error():
                yield
            return

        async with self._tx_lock:
            self._tx_task = asyncio.current_task()
            try:
                async with self._rollback_on_error():
                    yield
            finally:
                self._tx_task = None

    @asynccontextmanager
    async def _rollback_on_error(self) -> AsyncIterator[None]:
        snapshot = copy.deepcopy(self._ledger)
        try:
            yield
        except BaseException:
            self._ledger = snapshot
            logger.debug("Simulated transaction rolled back")
            raise

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise AdapterError(f"Injected failure in {operation}")

    @staticmethod
    def _require_positive(amount: int) -> None:
        if amount <= 0:
            raise ValueError(f"Amount must be positive, got {amount}")

    # ------------------------------------------------------------------
    # Lending market
    # ------------------------------------------------------------------

    async def supply(self, asset: str, amount: int) -> None:
        self._maybe_fail("supply")
        self._require_positive(amount)
        self._ledger.supplied[asset] = self.supplied(asset) + amount

    async def borrow(self, asset: str, amount: int) -> int:
        self._maybe_fail("borrow")
        self._require_positive(amount)
        if amount > self.reserves(asset):
            raise InsufficientCollateral(
                f"Borrow of {amount} {asset} exceeds pool liquidity {self.reserves(asset)}"
            )
        self._ledger.reserves[asset] = self.reserves(asset) - amount
        self._ledger.borrowed[asset] = self.borrowed(asset) + amount
        return amount

    async def repay(self, asset: str, amount: int) -> None:
        self._maybe_fail("repay")
        self._require_positive(amount)
        if amount > self.borrowed(asset):
            raise AdapterError(
                f"Repay of {amount} {asset} exceeds outstanding {self.borrowed(asset)}"
            )
        self._ledger.borrowed[asset] = self.borrowed(asset) - amount
        self._ledger.reserves[asset] = self.reserves(asset) + amount

    async def withdraw(self, asset: str, amount: int) -> int:
        self._maybe_fail("withdraw")
        self._require_positive(amount)
        if amount > self.supplied(asset):
            raise InsufficientCollateral(
                f"Withdraw of {amount} {asset} exceeds supplied {self.supplied(asset)}"
            )
        self._ledger.supplied[asset] = self.supplied(asset) - amount
        return amount

    async def get_price(self, asset: str) -> PriceQuote:
        self._maybe_fail("get_price")
        return await self._feed.get_price(asset)

    async def get_ltv(self, market: str) -> int:
        return self._market(market).ltv_bps

    async def get_liquidation_threshold(self, market: str) -> int:
        return self._market(market).liquidation_threshold_bps

    def _market(self, market: str) -> MarketConfig:
        try:
            return self._markets[market]
        except KeyError:
            raise AdapterError(f"Unknown market {market}") from None

    # ------------------------------------------------------------------
    # Exchange
    # ------------------------------------------------------------------

    async def get_quote(self, asset_in: str, asset_out: str, amount_in: int) -> int:
        quote_in = await self._feed.get_price(asset_in)
        quote_out = await self._feed.get_price(asset_out)
        value = calculate_collateral_value(amount_in, quote_in.price, quote_in.decimals)
        gross = amount_for_value(value, quote_out.price, quote_out.decimals)
        return apply_bps(gross, BPS - self.swap_fee_bps)

    async def swap(
        self, asset_in: str, asset_out: str, amount_in: int, min_amount_out: int
    ) -> int:
        self._maybe_fail("swap")
        self._require_positive(amount_in)
        quoted = await self.get_quote(asset_in, asset_out, amount_in)
        amount_out = apply_bps(quoted, BPS - self.execution_skew_bps)
        if amount_out < min_amount_out:
            raise ExceedsMaxSlippage(
                f"Swap {asset_in}->{asset_out} would return {amount_out} "
                f"< minimum {min_amount_out}"
            )
        return amount_out
