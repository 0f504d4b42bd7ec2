"""USD price oracle used when a protocol has no on-chain price of its own."""


class StaticPriceOracle:
    """Symbol -> USD table, typically loaded from PRICE_OVERRIDES.

    Unknown symbols are unavailable (None); nothing is assumed.
    """

    def __init__(self, prices: dict[str, float] | None = None):
        self.prices = {symbol.upper(): price for symbol, price in (prices or {}).items()}

    async def price_of(self, symbol: str) -> float | None:
        return self.prices.get(symbol.upper())
