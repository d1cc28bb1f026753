"""Adapter gateway protocol, the value-moving operations the engine consumes."""
from typing import AsyncContextManager, Protocol

from ..models import PriceQuote


class AdapterGateway(Protocol):
    """Lending market, exchange and price lookup for one account.

    Any call may raise. ``atomic()`` delimits an all-or-nothing unit of work:
    if the block raises, every effect performed inside it is reverted.
    """

    def atomic(self) -> AsyncContextManager[None]: ...

    async def supply(self, asset: str, amount: int) -> None: ...

    async def borrow(self, asset: str, amount: int) -> int: ...

    async def repay(self, asset: str, amount: int) -> None: ...

    async def withdraw(self, asset: str, amount: int) -> int: ...

    async def get_price(self, asset: str) -> PriceQuote: ...

    async def get_ltv(self, market: str) -> int: ...

    async def get_liquidation_threshold(self, market: str) -> int: ...

    async def swap(
        self, asset_in: str, asset_out: str, amount_in: int, min_amount_out: int
    ) -> int: ...

    async def get_quote(self, asset_in: str, asset_out: str, amount_in: int) -> int: ...
