"""In-memory price feed for simulations and tests."""
from __future__ import annotations

import logging

from ..errors import AdapterError
from ..fixed_point import to_fixed
from ..models import PriceQuote

logger = logging.getLogger(__name__)


class StaticPriceFeed:
    """Serve fixed-point quotes from a mutable in-memory table."""

    def __init__(self, quotes: dict[str, PriceQuote] | None = None) -> None:
        self._quotes: dict[str, PriceQuote] = dict(quotes or {})

    @classmethod
    def from_usd(
        cls, prices: dict[str, float], token_decimals: dict[str, int]
    ) -> StaticPriceFeed:
        """Build from human USD prices, e.g. ``{"SUI": 2.0}``."""
        return cls(
            {
                symbol: PriceQuote(symbol, to_fixed(price), token_decimals[symbol])
                for symbol, price in prices.items()
            }
        )

    def set_price(self, asset: str, price: int) -> None:
        """Replace the fixed-point price of ``asset``, keeping its decimals."""
        quote = self._quotes.get(asset)
        if quote is None:
            raise AdapterError(f"No price feed for {asset}")
        self._quotes[asset] = PriceQuote(asset, price, quote.decimals)
        logger.info("Price of %s set to %d", asset, price)

    def shock(self, asset: str, change_pct: float) -> PriceQuote:
        """Move the price of ``asset`` by ``change_pct`` percent (-40 = 40% drop)."""
        quote = self._quotes.get(asset)
        if quote is None:
            raise AdapterError(f"No price feed for {asset}")
        factor = to_fixed(1 + change_pct / 100)
        self.set_price(asset, quote.price * factor // to_fixed(1))
        return self._quotes[asset]

    async def get_price(self, asset: str) -> PriceQuote:
        quote = self._quotes.get(asset)
        if quote is None:
            raise AdapterError(f"No price feed for {asset}")
        return quote

    async def fetch_prices(
        self, symbols: list[str] | None = None
    ) -> dict[str, PriceQuote]:
        if symbols is None:
            return dict(self._quotes)
        return {s: q for s, q in self._quotes.items() if s in symbols}
