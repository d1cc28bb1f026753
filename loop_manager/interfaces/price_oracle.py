"""Price feed protocol — oracle abstraction."""
from typing import Protocol

from ..models import PriceQuote


class PriceFeed(Protocol):
    """Abstract interface for fixed-point asset quotes."""

    async def get_price(self, asset: str) -> PriceQuote: ...

    async def fetch_prices(
        self, symbols: list[str] | None = None
    ) -> dict[str, PriceQuote]: ...
