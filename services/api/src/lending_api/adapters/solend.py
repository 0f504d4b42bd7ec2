"""Solend adapter: reserve rates and obligations from raw Solana account reads."""

import logging
from decimal import Decimal
from typing import Optional

from services.api.src.lending_api.adapters.base import gather_per_item, native_to_usd, usable_price
from services.api.src.lending_api.domain.decoder import (
    WAD,
    annual_rate_to_apy,
    calculate_health_factor,
    calculate_utilization,
)
from services.api.src.lending_api.domain.errors import DecodeFailedError, QueryFailedError
from services.api.src.lending_api.domain.models import (
    Asset,
    Chain,
    LendingRate,
    Protocol,
    ProtocolPositions,
    UserBorrowPosition,
    UserSupplyPosition,
)
from services.api.src.lending_api.domain.solend_layout import (
    OBLIGATION_LEN,
    OBLIGATION_MARKET_OFFSET,
    OBLIGATION_OWNER_OFFSET,
    SolendObligation,
    SolendReserve,
    parse_obligation,
    parse_reserve,
)
from services.api.src.lending_api.providers.base import ChainDataProvider, PriceOracle
from services.api.src.lending_api.registry.protocols import ProtocolAddresses, ProtocolRegistry
from services.api.src.lending_api.utils.timestamps import now_ms

logger = logging.getLogger(__name__)

# ~400ms slots; interest compounds once per slot
SLOTS_PER_YEAR = 63_072_000


def reserve_rates(reserve: SolendReserve) -> dict[str, float]:
    """APR/APY (percent) at the reserve's current utilization."""
    borrow_apr = float(reserve.compute_borrow_rate())
    supply_apr = float(reserve.compute_supply_rate())
    return {
        "supply_apr": supply_apr * 100,
        "borrow_apr": borrow_apr * 100,
        "supply_apy": annual_rate_to_apy(supply_apr, SLOTS_PER_YEAR),
        "borrow_apy": annual_rate_to_apy(borrow_apr, SLOTS_PER_YEAR),
    }


def wad_usd(value: int) -> float:
    return float(Decimal(value) / WAD)


class SolendAdapter:
    protocol = Protocol.SOLEND

    def __init__(
        self,
        registry: ProtocolRegistry,
        provider: ChainDataProvider,
        price_oracle: PriceOracle,
    ):
        self.registry = registry
        self.provider = provider
        self.price_oracle = price_oracle

    def _addresses(self, chain: Chain) -> ProtocolAddresses:
        addresses = self.registry.addresses_for(chain, self.protocol)
        if addresses is None or not addresses.program_id or not addresses.lending_market:
            raise QueryFailedError(
                f"Solend is not deployed on {chain.value}",
                context={"chain": chain.value, "protocol": self.protocol.value},
            )
        return addresses

    async def fetch_reserve(self, chain: Chain, reserve_account: str) -> SolendReserve:
        data = await self.provider.call(chain, reserve_account, "getAccountInfo")
        try:
            return parse_reserve(data)
        except DecodeFailedError as e:
            e.context.setdefault("account", reserve_account)
            raise

    async def get_price(self, reserve: SolendReserve, asset: Asset) -> Optional[float]:
        """Reserve market price, else the configured oracle, else None."""
        if reserve.market_price > 0:
            return float(reserve.market_price_usd)
        return usable_price(await self.price_oracle.price_of(asset.symbol))

    async def fetch_rates(self, chain: Chain, asset_filter: Optional[str] = None) -> list[LendingRate]:
        self._addresses(chain)
        assets = self.registry.assets_for(chain, self.protocol)
        if asset_filter:
            assets = [a for a in assets if a.symbol.upper() == asset_filter.upper()]

        async def fetch_one(asset: Asset) -> LendingRate:
            account = self.registry.reserve_account_for(chain, self.protocol, asset.symbol)
            if account is None:
                raise QueryFailedError(
                    f"No Solend reserve configured for {asset.symbol}",
                    context={"chain": chain.value, "asset": asset.symbol},
                )

            reserve = await self.fetch_reserve(chain, account)
            if reserve.liquidity_mint != asset.address:
                raise DecodeFailedError(
                    f"Reserve {account} holds mint {reserve.liquidity_mint}, expected {asset.address}",
                    context={"chain": chain.value, "asset": asset.symbol, "account": account},
                )

            price = await self.get_price(reserve, asset)
            total_supply = reserve.total_liquidity
            total_borrow = reserve.borrowed_amount
            return LendingRate(
                asset=asset,
                chain=chain,
                protocol=self.protocol,
                utilization_rate=calculate_utilization(total_borrow, total_supply),
                total_supply=str(total_supply),
                total_borrow=str(total_borrow),
                total_supply_usd=native_to_usd(total_supply, asset.decimals, price),
                total_borrow_usd=native_to_usd(total_borrow, asset.decimals, price),
                timestamp=now_ms(),
                price_available=price is not None,
                **reserve_rates(reserve),
            )

        rates = await gather_per_item(
            assets,
            fetch_one,
            chain=chain,
            protocol=self.protocol,
            describe=lambda a: a.symbol,
        )
        logger.info("Fetched %d Solend rates on %s", len(rates), chain.value)
        return rates

    async def fetch_obligations(self, chain: Chain, wallet: str) -> list[SolendObligation]:
        addresses = self._addresses(chain)
        accounts = await self.provider.call(
            chain,
            addresses.program_id,
            "getProgramAccounts",
            [
                {"dataSize": OBLIGATION_LEN},
                {"memcmp": {"offset": OBLIGATION_OWNER_OFFSET, "bytes": wallet}},
                {"memcmp": {"offset": OBLIGATION_MARKET_OFFSET, "bytes": addresses.lending_market}},
            ],
        )

        obligations: list[SolendObligation] = []
        errors = []
        for account, data in accounts:
            try:
                obligations.append(parse_obligation(data))
            except DecodeFailedError as e:
                e.context.setdefault("account", account)
                errors.append({"source": account, "code": e.code.value, "message": e.message})
                logger.warning("Skipping obligation %s for %s: %s", account, wallet, e)

        if errors and not obligations:
            raise QueryFailedError(
                f"All {len(errors)} Solend obligations for {wallet} failed to decode",
                context={"chain": chain.value, "protocol": self.protocol.value, "errors": errors},
            )
        return obligations

    def _asset_for_reserve(self, chain: Chain, reserve: Optional[SolendReserve]) -> Optional[Asset]:
        if reserve is None:
            return None
        return self.registry.find_asset_by_address(chain, self.protocol, reserve.liquidity_mint)

    async def fetch_user_positions(self, chain: Chain, wallet: str) -> ProtocolPositions:
        obligations = await self.fetch_obligations(chain, wallet)
        positions = ProtocolPositions(chain=chain, protocol=self.protocol)
        if not obligations:
            return positions

        reserve_keys = list(
            dict.fromkeys(
                [d.deposit_reserve for o in obligations for d in o.deposits]
                + [b.borrow_reserve for o in obligations for b in o.borrows]
            )
        )

        async def fetch_one(key: str) -> tuple[str, SolendReserve]:
            return key, await self.fetch_reserve(chain, key)

        reserves = dict(
            await gather_per_item(reserve_keys, fetch_one, chain=chain, protocol=self.protocol)
        )

        for obligation in obligations:
            positions.collateral_usd += wad_usd(obligation.deposited_value)
            positions.liquidation_collateral_usd += wad_usd(obligation.unhealthy_borrow_value)
            positions.debt_usd += wad_usd(obligation.borrowed_value)
            health_factor = calculate_health_factor(
                wad_usd(obligation.unhealthy_borrow_value), wad_usd(obligation.borrowed_value), 100
            )

            for deposit in obligation.deposits:
                reserve = reserves.get(deposit.deposit_reserve)
                asset = self._asset_for_reserve(chain, reserve)
                if not asset:
                    logger.warning("Skipping deposit in unknown reserve %s", deposit.deposit_reserve)
                    continue
                amount = int(Decimal(deposit.deposited_amount) * reserve.collateral_exchange_rate)
                positions.supply_positions.append(
                    UserSupplyPosition(
                        asset=asset,
                        chain=chain,
                        protocol=self.protocol,
                        supplied_amount=str(amount),
                        supplied_amount_usd=wad_usd(deposit.market_value),
                        current_apy=reserve_rates(reserve)["supply_apy"],
                    )
                )

            for borrow in obligation.borrows:
                reserve = reserves.get(borrow.borrow_reserve)
                asset = self._asset_for_reserve(chain, reserve)
                if not asset:
                    logger.warning("Skipping borrow in unknown reserve %s", borrow.borrow_reserve)
                    continue
                positions.borrow_positions.append(
                    UserBorrowPosition(
                        asset=asset,
                        chain=chain,
                        protocol=self.protocol,
                        borrowed_amount=str(borrow.borrowed_amount),
                        borrowed_amount_usd=wad_usd(borrow.market_value),
                        current_apy=reserve_rates(reserve)["borrow_apy"],
                        health_factor=health_factor,
                    )
                )

        positions.health_factor = calculate_health_factor(
            positions.liquidation_collateral_usd, positions.debt_usd, 100
        )
        logger.info(
            "Solend positions for %s on %s: %d obligations, %d supply, %d borrow",
            wallet,
            chain.value,
            len(obligations),
            len(positions.supply_positions),
            len(positions.borrow_positions),
        )
        return positions
