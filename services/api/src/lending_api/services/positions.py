"""Wallet positions and liquidation risk across chains and protocols."""

import logging
import math
from typing import Optional, Sequence

from services.api.src.lending_api.adapters.base import LendingAdapter
from services.api.src.lending_api.domain.health_factor import (
    LIQUIDATION_HEALTH_FACTOR,
    CombinedHealth,
    available_to_borrow,
    classify_risk,
)
from services.api.src.lending_api.domain.models import (
    Chain,
    HealthFactor,
    Protocol,
    ProtocolPositions,
    UserPositions,
)
from services.api.src.lending_api.registry.protocols import ProtocolRegistry, address_matches_chain
from services.api.src.lending_api.utils.concurrency import settle_all
from services.api.src.lending_api.utils.timestamps import now_ms

logger = logging.getLogger(__name__)


def net_apy(positions: list[ProtocolPositions]) -> float:
    """(Σ supply_usd·apy − Σ borrow_usd·apy) / Σ supply_usd; 0 without supply."""
    supplies = [s for p in positions for s in p.supply_positions]
    borrows = [b for p in positions for b in p.borrow_positions]
    total_supplied = sum(s.supplied_amount_usd for s in supplies)
    if total_supplied == 0:
        return 0.0
    earned = sum(s.supplied_amount_usd * s.current_apy for s in supplies)
    paid = sum(b.borrowed_amount_usd * b.current_apy for b in borrows)
    return (earned - paid) / total_supplied


class PositionEngine:
    def __init__(self, registry: ProtocolRegistry, adapters: dict[Protocol, LendingAdapter]):
        self.registry = registry
        self.adapters = adapters

    def _sources(
        self,
        wallet: str,
        chains: Optional[Sequence[Chain]],
        protocols: Optional[Sequence[Protocol]],
    ) -> list[tuple[Chain, Protocol]]:
        # An EVM address cannot own Solana accounts and vice versa
        return [
            (chain, protocol)
            for chain in chains or list(Chain)
            for protocol in protocols or list(Protocol)
            if self.registry.is_supported(chain, protocol)
            and protocol in self.adapters
            and address_matches_chain(wallet, chain)
        ]

    async def collect(
        self,
        wallet: str,
        chains: Optional[Sequence[Chain]] = None,
        protocols: Optional[Sequence[Protocol]] = None,
    ) -> list[ProtocolPositions]:
        """Per-(chain, protocol) positions; failed sources are logged and dropped."""
        sources = self._sources(wallet, chains, protocols)
        settled = await settle_all(
            [
                ((chain, protocol), self.adapters[protocol].fetch_user_positions(chain, wallet))
                for chain, protocol in sources
            ]
        )

        collected = []
        for outcome in settled:
            chain, protocol = outcome.label
            if outcome.ok:
                collected.append(outcome.value)
            else:
                logger.warning(
                    "Positions for %s on %s/%s unavailable: %s",
                    wallet,
                    protocol.value,
                    chain.value,
                    outcome.error,
                )
        return collected

    async def get_user_positions(
        self,
        wallet: str,
        chains: Optional[Sequence[Chain]] = None,
        protocols: Optional[Sequence[Protocol]] = None,
    ) -> UserPositions:
        collected = await self.collect(wallet, chains, protocols)
        supply_positions = [s for p in collected for s in p.supply_positions]
        borrow_positions = [b for p in collected for b in p.borrow_positions]

        # One health factor over the summed threshold-weighted collateral and
        # debt of every protocol, not the first protocol's own value
        combined = CombinedHealth(positions=collected)
        health_factor = combined.health_factor if collected else None

        return UserPositions(
            wallet_address=wallet,
            supply_positions=supply_positions,
            borrow_positions=borrow_positions,
            total_supplied_usd=sum(s.supplied_amount_usd for s in supply_positions),
            total_borrowed_usd=sum(b.borrowed_amount_usd for b in borrow_positions),
            net_apy=net_apy(collected),
            health_factor=health_factor,
            timestamp=now_ms(),
        )

    async def get_user_health_factor(self, wallet: str) -> HealthFactor:
        positions = await self.get_user_positions(wallet)
        health_factor = positions.health_factor
        if health_factor is None:
            health_factor = math.inf

        return HealthFactor(
            wallet_address=wallet,
            health_factor=health_factor,
            risk_level=classify_risk(health_factor),
            collateral_usd=positions.total_supplied_usd,
            debt_usd=positions.total_borrowed_usd,
            available_to_borrow_usd=available_to_borrow(
                positions.total_supplied_usd, positions.total_borrowed_usd
            ),
            liquidation_threshold=LIQUIDATION_HEALTH_FACTOR,
            timestamp=now_ms(),
        )
