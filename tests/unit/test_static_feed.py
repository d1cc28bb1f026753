"""Unit tests for the in-memory price feed."""
from __future__ import annotations

import pytest

from loop_manager.errors import AdapterError
from loop_manager.fixed_point import PRECISION
from loop_manager.oracles.static import StaticPriceFeed


@pytest.fixture()
def feed() -> StaticPriceFeed:
    return StaticPriceFeed.from_usd({"SUI": 2.0, "USDC": 1.0}, {"SUI": 9, "USDC": 6})


class TestStaticPriceFeed:
    @pytest.mark.asyncio
    async def test_from_usd(self, feed: StaticPriceFeed) -> None:
        quote = await feed.get_price("SUI")
        assert quote.price == 2 * PRECISION
        assert quote.decimals == 9

    @pytest.mark.asyncio
    async def test_unknown_asset_raises(self, feed: StaticPriceFeed) -> None:
        with pytest.raises(AdapterError):
            await feed.get_price("BTC")

    @pytest.mark.asyncio
    async def test_set_price_keeps_decimals(self, feed: StaticPriceFeed) -> None:
        feed.set_price("USDC", 99 * PRECISION // 100)
        quote = await feed.get_price("USDC")
        assert quote.price == 99 * PRECISION // 100
        assert quote.decimals == 6

    def test_set_price_unknown_asset_raises(self, feed: StaticPriceFeed) -> None:
        with pytest.raises(AdapterError):
            feed.set_price("BTC", PRECISION)

    @pytest.mark.asyncio
    async def test_shock(self, feed: StaticPriceFeed) -> None:
        quote = feed.shock("SUI", -40)
        assert quote.price == 12 * PRECISION // 10
        assert (await feed.get_price("SUI")).price == 12 * PRECISION // 10

    @pytest.mark.asyncio
    async def test_fetch_prices_filter(self, feed: StaticPriceFeed) -> None:
        assert set(await feed.fetch_prices()) == {"SUI", "USDC"}
        assert set(await feed.fetch_prices(["USDC"])) == {"USDC"}
