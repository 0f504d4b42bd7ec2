"""Adapter contract and the per-item tolerant fan-out shared by adapters."""

import logging
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Protocol as TypingProtocol, Sequence, TypeVar

from services.api.src.lending_api.domain.errors import ErrorCode, QueryFailedError
from services.api.src.lending_api.domain.models import (
    Chain,
    LendingRate,
    Protocol,
    ProtocolPositions,
    SourceFailure,
)
from services.api.src.lending_api.utils.concurrency import settle_all

logger = logging.getLogger(__name__)

I = TypeVar("I")
T = TypeVar("T")


class LendingAdapter(TypingProtocol):
    """One protocol family (e.g. Aave-style pools, Solend-style accounts)."""

    protocol: Protocol

    async def fetch_rates(
        self, chain: Chain, asset_filter: Optional[str] = None
    ) -> list[LendingRate]: ...

    async def fetch_user_positions(self, chain: Chain, wallet: str) -> ProtocolPositions: ...


def error_code(error: BaseException) -> str:
    code = getattr(error, "code", ErrorCode.INTERNAL_SERVER_ERROR)
    return code.value if isinstance(code, ErrorCode) else str(code)


async def gather_per_item(
    items: Sequence[I],
    fetch_one: Callable[[I], Awaitable[T]],
    *,
    chain: Chain,
    protocol: Protocol,
    describe: Callable[[I], str] = str,
) -> list[T]:
    """
    Fetch every item concurrently, dropping the ones that fail.

    Each failure is logged with its source. When every item fails the
    fan-out is treated as systemic and QueryFailedError is raised, listing the
    per-item errors (with their own codes, so a layout mismatch is still
    recognisable as DECODE_FAILED).
    """
    if not items:
        return []

    settled = await settle_all([(item, fetch_one(item)) for item in items])

    results: list[T] = []
    failures: list[SourceFailure] = []
    for outcome in settled:
        source = f"{protocol.value}/{chain.value}/{describe(outcome.label)}"
        if outcome.ok:
            results.append(outcome.value)
            continue
        failure = SourceFailure(source=source, code=error_code(outcome.error), message=str(outcome.error))
        failures.append(failure)
        logger.warning("Skipping %s: %s", source, failure)

    if not results:
        raise QueryFailedError(
            f"All {len(items)} {protocol.value} queries on {chain.value} failed",
            context={
                "chain": chain.value,
                "protocol": protocol.value,
                "errors": [
                    {"source": f.source, "code": f.code, "message": f.message}
                    for f in failures
                ],
            },
        )
    return results


def native_to_usd(amount: int, decimals: int, price: Optional[float]) -> float:
    """Native units to USD; 0.0 when no price is available."""
    if usable_price(price) is None or amount == 0:
        return 0.0
    return float(Decimal(amount) / (Decimal(10) ** decimals) * Decimal(str(price)))


def usable_price(price: Optional[float]) -> Optional[float]:
    """A zero or negative quote is treated as no price at all."""
    if price is None or price <= 0:
        return None
    return price
