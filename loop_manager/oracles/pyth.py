"""Pyth Network price oracle service."""
import logging
import ssl

import aiohttp
import certifi

from ..config import PythConfig
from ..errors import AdapterError, UnsupportedDecimals
from ..fixed_point import MAX_DECIMALS
from ..models import PriceQuote

logger = logging.getLogger(__name__)


def to_fixed_price(price_raw: int, expo: int) -> int:
    """Convert a Pyth ``price * 10^expo`` pair to an 18-decimal fixed point."""
    shift = MAX_DECIMALS + expo
    if shift >= 0:
        return price_raw * 10**shift
    return price_raw // 10**-shift


class PythOracle:
    """Fetch prices from Pyth Network oracle."""

    def __init__(self, config: PythConfig, token_decimals: dict[str, int]) -> None:
        missing = sorted(set(config.feeds) - set(token_decimals))
        if missing:
            raise UnsupportedDecimals(
                f"No token decimals configured for Pyth feeds: {', '.join(missing)}"
            )
        self.hermes_url = config.hermes_url
        self.price_feeds = dict(config.feeds)
        self.token_decimals = dict(token_decimals)

    async def get_price(self, asset: str) -> PriceQuote:
        """Fetch a single quote, failing if the asset has no usable feed."""
        if asset not in self.price_feeds:
            raise AdapterError(f"No Pyth feed configured for {asset}")
        prices = await self.fetch_prices([asset])
        if asset not in prices:
            raise AdapterError(f"Pyth returned no price for {asset}")
        return prices[asset]

    async def fetch_prices(
        self, symbols: list[str] | None = None
    ) -> dict[str, PriceQuote]:
        """Fetch current prices from Pyth Network.

        Args:
            symbols: Optional list of symbols to fetch. If None, fetches all
                     configured feeds.
        """
        prices: dict[str, PriceQuote] = {}

        feeds = self.price_feeds
        if symbols is not None:
            feeds = {k: v for k, v in self.price_feeds.items() if k in symbols}

        feed_ids = list(set(feeds.values()))
        if not feed_ids:
            return prices

        query_params = "&".join([f"ids[]={fid}" for fid in feed_ids])
        url = f"{self.hermes_url}?{query_params}"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        logger.error(
                            "Error fetching prices from Pyth: HTTP %s", response.status
                        )
                        return prices

                    data = await response.json()
                    parsed = data.get("parsed", [])

                    # Create reverse mapping from feed ID to asset names
                    id_to_assets: dict[str, list[str]] = {}
                    for asset, feed_id in feeds.items():
                        id_to_assets.setdefault(feed_id, []).append(asset)

                    for item in parsed:
                        feed_id = item.get("id")
                        price_data = item.get("price", {})
                        price_raw = int(price_data.get("price", 0))
                        expo = int(price_data.get("expo", 0))

                        price = to_fixed_price(price_raw, expo)

                        for asset in id_to_assets.get(feed_id, []):
                            prices[asset] = PriceQuote(
                                asset_id=asset,
                                price=price,
                                decimals=self.token_decimals[asset],
                            )

                    logger.info("Fetched prices from Pyth Network:")
                    for asset, quote in sorted(prices.items()):
                        logger.info("  %s: %d", asset, quote.price)

        except (aiohttp.ClientError, OSError, ValueError) as e:
            logger.error("Error fetching prices from Pyth: %s", e)

        return prices
