"""Contracts for the chain-read and price collaborators the engines depend on."""

from typing import Any, Protocol, Sequence

from services.api.src.lending_api.domain.models import Chain


class ChainDataProvider(Protocol):
    """Read-only, point-in-time state queries against one chain.

    EVM chains: ``address`` is a contract and ``method`` a view function name;
    the raw ABI-encoded hex result is returned.
    Solana: ``address`` is an account (``getAccountInfo`` -> bytes) or a
    program (``getProgramAccounts`` -> list of ``(pubkey, bytes)``).

    Implementations own timeouts and connection pooling, and raise
    QueryFailedError on any transport or node error.
    """

    async def call(
        self,
        chain: Chain,
        address: str,
        method: str,
        params: Sequence[Any] = (),
    ) -> Any: ...

    def is_configured(self, chain: Chain) -> bool: ...


class PriceOracle(Protocol):
    """Best-effort USD prices. ``None`` means the price is unavailable."""

    async def price_of(self, symbol: str) -> float | None: ...
