"""Cross-chain, cross-protocol rate aggregation and market statistics."""

import logging
import time
from collections import defaultdict
from typing import Optional, Sequence

from services.api.src.lending_api.adapters.base import LendingAdapter, error_code
from services.api.src.lending_api.domain.errors import AggregationFailedError, NotFoundError
from services.api.src.lending_api.domain.models import (
    AggregatedLiquidity,
    AggregatedRates,
    AssetTVL,
    BestRates,
    Chain,
    LendingRate,
    Liquidity,
    MarketOverview,
    Protocol,
    ProtocolTVL,
    RateComparison,
    RateComparisonItem,
    RateType,
    SourceFailure,
    UtilizationEntry,
    UtilizationSummary,
)
from services.api.src.lending_api.registry.protocols import ProtocolRegistry
from services.api.src.lending_api.utils.concurrency import settle_all
from services.api.src.lending_api.utils.timestamps import elapsed_ms, now_ms

logger = logging.getLogger(__name__)

BEST_RATE_ALTERNATIVES = 4
TOP_ASSETS = 10


def _unique(values: list) -> list:
    return list(dict.fromkeys(values))


class AggregationEngine:
    """Fans adapter calls out over (chain x protocol) and merges the results."""

    def __init__(self, registry: ProtocolRegistry, adapters: dict[Protocol, LendingAdapter]):
        self.registry = registry
        self.adapters = adapters

    def _sources(
        self, chains: Optional[Sequence[Chain]], protocols: Optional[Sequence[Protocol]]
    ) -> list[tuple[Chain, Protocol]]:
        sources = []
        for chain in chains or list(Chain):
            for protocol in protocols or list(Protocol):
                if not self.registry.is_supported(chain, protocol):
                    continue
                if protocol not in self.adapters:
                    logger.warning("No adapter registered for %s", protocol.value)
                    continue
                sources.append((chain, protocol))
        return sources

    async def get_aggregated_rates(
        self,
        chains: Optional[Sequence[Chain]] = None,
        protocols: Optional[Sequence[Protocol]] = None,
        asset: Optional[str] = None,
    ) -> AggregatedRates:
        """
        Fetch rates from every supported (chain, protocol) concurrently.

        Failed sources are logged and left out. If at least one source was
        dispatched and all of them failed, AggregationFailedError is raised so
        the caller can tell an outage apart from a market with no data.
        """
        started = time.perf_counter()
        sources = self._sources(chains, protocols)
        settled = await settle_all(
            [
                ((chain, protocol), self.adapters[protocol].fetch_rates(chain, asset))
                for chain, protocol in sources
            ]
        )

        rates: list[LendingRate] = []
        failures: list[SourceFailure] = []
        for outcome in settled:
            chain, protocol = outcome.label
            if outcome.ok:
                rates.extend(outcome.value)
                continue
            failure = SourceFailure(
                source=f"{protocol.value}/{chain.value}",
                code=error_code(outcome.error),
                message=str(outcome.error),
            )
            failures.append(failure)
            logger.warning("Rate source failed: %s", failure)

        if sources and len(failures) == len(sources):
            logger.error("All %d rate sources failed", len(sources))
            raise AggregationFailedError(
                f"All {len(sources)} rate sources failed", failures=failures
            )

        logger.info(
            "Aggregated %d rates from %d/%d sources in %.0f ms",
            len(rates),
            len(sources) - len(failures),
            len(sources),
            elapsed_ms(started),
        )
        return AggregatedRates(
            rates=rates,
            chains=_unique([r.chain for r in rates]),
            protocols=_unique([r.protocol for r in rates]),
            last_updated=now_ms(),
            failures=failures,
        )

    async def get_best_rates(
        self, rate_type: RateType, asset: str, amount: Optional[float] = None
    ) -> BestRates:
        aggregated = await self.get_aggregated_rates(asset=asset)
        if not aggregated.rates:
            raise NotFoundError(f"No rates found for asset {asset}", context={"asset": asset})

        # sorted() is stable: ties keep task-list order
        if rate_type == "supply":
            ranked = sorted(aggregated.rates, key=lambda r: r.supply_apy, reverse=True)
        else:
            ranked = sorted(aggregated.rates, key=lambda r: r.borrow_apy)

        return BestRates(
            type=rate_type,
            asset=asset,
            amount=amount,
            best_rate=ranked[0],
            alternatives=ranked[1 : 1 + BEST_RATE_ALTERNATIVES],
            timestamp=now_ms(),
        )

    async def compare_rates(
        self,
        asset: str,
        chains: Optional[Sequence[Chain]] = None,
        protocols: Optional[Sequence[Protocol]] = None,
    ) -> RateComparison:
        aggregated = await self.get_aggregated_rates(chains, protocols, asset)
        if not aggregated.rates:
            raise NotFoundError(f"No rates found for asset {asset}", context={"asset": asset})

        comparison = [
            RateComparisonItem(
                protocol=r.protocol,
                chain=r.chain,
                supply_apy=r.supply_apy,
                borrow_apy=r.borrow_apy,
                utilization_rate=r.utilization_rate,
                available_liquidity_usd=r.total_supply_usd - r.total_borrow_usd,
                total_supply_usd=r.total_supply_usd,
            )
            for r in aggregated.rates
        ]
        return RateComparison(
            asset=asset,
            comparison=comparison,
            best_supply=max(comparison, key=lambda c: c.supply_apy),
            best_borrow=min(comparison, key=lambda c: c.borrow_apy),
            timestamp=now_ms(),
        )

    async def get_aggregated_liquidity(
        self,
        chains: Optional[Sequence[Chain]] = None,
        protocols: Optional[Sequence[Protocol]] = None,
        asset: Optional[str] = None,
    ) -> AggregatedLiquidity:
        aggregated = await self.get_aggregated_rates(chains, protocols, asset)
        liquidity = [Liquidity.from_rate(r) for r in aggregated.rates]
        return AggregatedLiquidity(
            liquidity=liquidity,
            total_liquidity_usd=sum(item.total_liquidity_usd for item in liquidity),
            chains=aggregated.chains,
            protocols=aggregated.protocols,
            last_updated=aggregated.last_updated,
        )

    async def get_utilization_rates(
        self,
        chains: Optional[Sequence[Chain]] = None,
        protocols: Optional[Sequence[Protocol]] = None,
    ) -> UtilizationSummary:
        aggregated = await self.get_aggregated_rates(chains, protocols)
        entries = [
            UtilizationEntry(
                asset=r.asset.symbol,
                chain=r.chain,
                protocol=r.protocol,
                utilization_rate=r.utilization_rate,
                total_supply_usd=r.total_supply_usd,
                total_borrow_usd=r.total_borrow_usd,
                timestamp=r.timestamp,
            )
            for r in aggregated.rates
        ]
        average = (
            sum(e.utilization_rate for e in entries) / len(entries) if entries else 0.0
        )
        return UtilizationSummary(
            utilization_rates=entries,
            average_utilization=average,
            timestamp=now_ms(),
        )

    async def get_market_overview(self) -> MarketOverview:
        """
        Market-wide TVL, average APYs and top protocols / assets.

        Per-asset APYs are a running average over duplicate entries of the
        same symbol (one per chain/protocol), not liquidity-weighted.
        """
        aggregated = await self.get_aggregated_rates()
        rates = aggregated.rates

        total_tvl = sum(r.total_supply_usd for r in rates)
        total_borrowed = sum(r.total_borrow_usd for r in rates)
        avg_supply = sum(r.supply_apy for r in rates) / len(rates) if rates else 0.0
        avg_borrow = sum(r.borrow_apy for r in rates) / len(rates) if rates else 0.0

        protocol_tvl: dict[Protocol, float] = defaultdict(float)
        protocol_chains: dict[Protocol, list[Chain]] = defaultdict(list)
        for r in rates:
            protocol_tvl[r.protocol] += r.total_supply_usd
            if r.chain not in protocol_chains[r.protocol]:
                protocol_chains[r.protocol].append(r.chain)

        top_protocols = sorted(
            (
                ProtocolTVL(protocol=p, tvl_usd=tvl, chains=protocol_chains[p])
                for p, tvl in protocol_tvl.items()
            ),
            key=lambda p: p.tvl_usd,
            reverse=True,
        )

        assets: dict[str, AssetTVL] = {}
        for r in rates:
            symbol = r.asset.symbol
            existing = assets.get(symbol)
            if existing is None:
                assets[symbol] = AssetTVL(
                    symbol=symbol,
                    tvl_usd=r.total_supply_usd,
                    supply_apy=r.supply_apy,
                    borrow_apy=r.borrow_apy,
                )
                continue
            existing.tvl_usd += r.total_supply_usd
            existing.supply_apy = (existing.supply_apy + r.supply_apy) / 2
            existing.borrow_apy = (existing.borrow_apy + r.borrow_apy) / 2

        top_assets = sorted(assets.values(), key=lambda a: a.tvl_usd, reverse=True)[:TOP_ASSETS]

        return MarketOverview(
            total_value_locked_usd=total_tvl,
            total_borrowed_usd=total_borrowed,
            average_supply_apy=avg_supply,
            average_borrow_apy=avg_borrow,
            top_protocols=top_protocols,
            top_assets=top_assets,
            timestamp=now_ms(),
        )
