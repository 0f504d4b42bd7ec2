from services.api.src.lending_api.adapters.base import usable_price
from services.api.src.lending_api.providers.prices import StaticPriceOracle


async def test_static_oracle_is_case_insensitive():
    oracle = StaticPriceOracle({"usdc": 1.0})
    assert await oracle.price_of("USDC") == 1.0


async def test_static_oracle_unknown_symbol_is_unavailable():
    assert await StaticPriceOracle().price_of("SOL") is None


async def test_zero_quote_is_not_a_usable_price():
    oracle = StaticPriceOracle({"SOL": 0.0, "BONK": -1.0, "USDC": 1.0})
    assert usable_price(await oracle.price_of("SOL")) is None
    assert usable_price(await oracle.price_of("BONK")) is None
    assert usable_price(await oracle.price_of("USDC")) == 1.0
