"""Aave V3 adapter: reserve rates and user positions from raw eth_call reads."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from services.api.src.lending_api.adapters.base import gather_per_item, native_to_usd, usable_price
from services.api.src.lending_api.domain.decoder import (
    PERCENTAGE_FACTOR,
    ReserveConfiguration,
    bps_to_percentage,
    calculate_apy,
    calculate_health_factor,
    calculate_utilization,
    decode_reserve_config_bitmap,
    decode_words,
    ray_to_percentage,
    word_to_address,
    word_to_int,
)
from services.api.src.lending_api.domain.errors import (
    DecodeFailedError,
    LendingAnalyticsError,
    QueryFailedError,
)
from services.api.src.lending_api.domain.models import (
    Asset,
    Chain,
    LendingRate,
    Protocol,
    ProtocolPositions,
    UserBorrowPosition,
    UserSupplyPosition,
)
from services.api.src.lending_api.providers.base import ChainDataProvider, PriceOracle
from services.api.src.lending_api.registry.protocols import ProtocolAddresses, ProtocolRegistry
from services.api.src.lending_api.utils.concurrency import gather_or_cancel
from services.api.src.lending_api.utils.timestamps import now_ms

logger = logging.getLogger(__name__)

# Aave oracle and account data are denominated in USD with 8 decimals
BASE_CURRENCY_UNIT = Decimal(10) ** 8


@dataclass
class PoolReserveData:
    """Pool.getReserveData(asset)."""

    configuration: ReserveConfiguration
    liquidity_index: int
    current_liquidity_rate: int  # ray
    variable_borrow_index: int
    current_variable_borrow_rate: int  # ray
    current_stable_borrow_rate: int  # ray
    last_update_timestamp: int
    a_token_address: str
    variable_debt_token_address: str

    @classmethod
    def from_result(cls, result: str) -> "PoolReserveData":
        words = decode_words(result, 15)
        return cls(
            configuration=decode_reserve_config_bitmap(words[0]),
            liquidity_index=words[1],
            current_liquidity_rate=words[2],
            variable_borrow_index=words[3],
            current_variable_borrow_rate=words[4],
            current_stable_borrow_rate=words[5],
            last_update_timestamp=words[6],
            a_token_address=word_to_address(words[8]),
            variable_debt_token_address=word_to_address(words[10]),
        )


@dataclass
class ReserveTotals:
    """ProtocolDataProvider.getReserveData(asset)."""

    total_a_token: int
    total_stable_debt: int
    total_variable_debt: int
    liquidity_rate: int
    variable_borrow_rate: int
    stable_borrow_rate: int
    last_update_timestamp: int

    @property
    def total_debt(self) -> int:
        return self.total_stable_debt + self.total_variable_debt

    @classmethod
    def from_result(cls, result: str) -> "ReserveTotals":
        words = decode_words(result, 12)
        return cls(
            total_a_token=words[2],
            total_stable_debt=words[3],
            total_variable_debt=words[4],
            liquidity_rate=words[5],
            variable_borrow_rate=words[6],
            stable_borrow_rate=words[7],
            last_update_timestamp=words[11],
        )


@dataclass
class UserAccountData:
    """Pool.getUserAccountData(user). Base amounts are 8-decimal USD."""

    total_collateral_base: int
    total_debt_base: int
    available_borrows_base: int
    current_liquidation_threshold: int  # bps
    ltv: int  # bps
    health_factor: int  # wad

    @property
    def collateral_usd(self) -> float:
        return float(Decimal(self.total_collateral_base) / BASE_CURRENCY_UNIT)

    @property
    def debt_usd(self) -> float:
        return float(Decimal(self.total_debt_base) / BASE_CURRENCY_UNIT)

    @property
    def liquidation_collateral_usd(self) -> float:
        weighted = (
            Decimal(self.total_collateral_base)
            * Decimal(self.current_liquidation_threshold)
            / PERCENTAGE_FACTOR
        )
        return float(weighted / BASE_CURRENCY_UNIT)

    @classmethod
    def from_result(cls, result: str) -> "UserAccountData":
        words = decode_words(result, 6)
        return cls(
            total_collateral_base=words[0],
            total_debt_base=words[1],
            available_borrows_base=words[2],
            current_liquidation_threshold=words[3],
            ltv=words[4],
            health_factor=words[5],
        )


@dataclass
class UserReserveData:
    """ProtocolDataProvider.getUserReserveData(asset, user)."""

    current_a_token_balance: int
    current_stable_debt: int
    current_variable_debt: int
    principal_stable_debt: int
    scaled_variable_debt: int
    stable_borrow_rate: int  # ray
    liquidity_rate: int  # ray
    usage_as_collateral_enabled: bool

    @property
    def total_debt(self) -> int:
        return self.current_stable_debt + self.current_variable_debt

    @property
    def is_empty(self) -> bool:
        return self.current_a_token_balance == 0 and self.total_debt == 0

    @property
    def accrued_stable_interest(self) -> int:
        return max(self.current_stable_debt - self.principal_stable_debt, 0)

    @classmethod
    def from_result(cls, result: str) -> "UserReserveData":
        words = decode_words(result, 9)
        return cls(
            current_a_token_balance=word_to_int(words, 0),
            current_stable_debt=word_to_int(words, 1),
            current_variable_debt=word_to_int(words, 2),
            principal_stable_debt=word_to_int(words, 3),
            scaled_variable_debt=word_to_int(words, 4),
            stable_borrow_rate=word_to_int(words, 5),
            liquidity_rate=word_to_int(words, 6),
            usage_as_collateral_enabled=word_to_int(words, 8) != 0,
        )


class AaveV3Adapter:
    protocol = Protocol.AAVE

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
        if addresses is None or not addresses.pool or not addresses.data_provider:
            raise QueryFailedError(
                f"Aave is not deployed on {chain.value}",
                context={"chain": chain.value, "protocol": self.protocol.value},
            )
        return addresses

    async def get_price(self, chain: Chain, addresses: ProtocolAddresses, asset: Asset) -> Optional[float]:
        """On-chain oracle price, else the configured oracle, else None."""
        if addresses.oracle:
            try:
                raw = await self.provider.call(chain, addresses.oracle, "getAssetPrice", [asset.address])
                price = decode_words(raw, 1)[0]
                if price > 0:
                    return float(Decimal(price) / BASE_CURRENCY_UNIT)
            except LendingAnalyticsError as e:
                logger.warning("Oracle price for %s on %s unavailable: %s", asset.symbol, chain.value, e)

        return usable_price(await self.price_oracle.price_of(asset.symbol))

    async def fetch_reserve(
        self, chain: Chain, addresses: ProtocolAddresses, asset: Asset
    ) -> tuple[PoolReserveData, ReserveTotals]:
        pool_raw, totals_raw = await gather_or_cancel(
            self.provider.call(chain, addresses.pool, "getReserveData", [asset.address]),
            self.provider.call(chain, addresses.data_provider, "getReserveData", [asset.address]),
        )
        reserve = PoolReserveData.from_result(pool_raw)
        decimals = reserve.configuration.decimals
        if decimals and decimals != asset.decimals:
            raise DecodeFailedError(
                f"{asset.symbol} reserve reports {decimals} decimals, expected {asset.decimals}",
                context={"chain": chain.value, "asset": asset.symbol},
            )
        return reserve, ReserveTotals.from_result(totals_raw)

    async def fetch_rates(self, chain: Chain, asset_filter: Optional[str] = None) -> list[LendingRate]:
        addresses = self._addresses(chain)
        assets = self.registry.assets_for(chain, self.protocol)
        if asset_filter:
            assets = [a for a in assets if a.symbol.upper() == asset_filter.upper()]

        async def fetch_one(asset: Asset) -> LendingRate:
            (reserve, totals), price = await gather_or_cancel(
                self.fetch_reserve(chain, addresses, asset),
                self.get_price(chain, addresses, asset),
            )
            return LendingRate(
                asset=asset,
                chain=chain,
                protocol=self.protocol,
                supply_apy=calculate_apy(reserve.current_liquidity_rate),
                borrow_apy=calculate_apy(reserve.current_variable_borrow_rate),
                supply_apr=ray_to_percentage(reserve.current_liquidity_rate),
                borrow_apr=ray_to_percentage(reserve.current_variable_borrow_rate),
                utilization_rate=calculate_utilization(totals.total_debt, totals.total_a_token),
                total_supply=str(totals.total_a_token),
                total_borrow=str(totals.total_debt),
                total_supply_usd=native_to_usd(totals.total_a_token, asset.decimals, price),
                total_borrow_usd=native_to_usd(totals.total_debt, asset.decimals, price),
                timestamp=now_ms(),
                price_available=price is not None,
            )

        rates = await gather_per_item(
            assets,
            fetch_one,
            chain=chain,
            protocol=self.protocol,
            describe=lambda a: a.symbol,
        )
        logger.info("Fetched %d Aave rates on %s", len(rates), chain.value)
        return rates

    async def fetch_user_positions(self, chain: Chain, wallet: str) -> ProtocolPositions:
        addresses = self._addresses(chain)
        account = UserAccountData.from_result(
            await self.provider.call(chain, addresses.pool, "getUserAccountData", [wallet])
        )

        async def fetch_one(
            asset: Asset,
        ) -> tuple[Asset, UserReserveData, Optional[PoolReserveData], Optional[float]]:
            raw = await self.provider.call(
                chain, addresses.data_provider, "getUserReserveData", [asset.address, wallet]
            )
            user_reserve = UserReserveData.from_result(raw)
            if user_reserve.is_empty:
                return asset, user_reserve, None, None
            (reserve, _), price = await gather_or_cancel(
                self.fetch_reserve(chain, addresses, asset),
                self.get_price(chain, addresses, asset),
            )
            return asset, user_reserve, reserve, price

        user_reserves = await gather_per_item(
            self.registry.assets_for(chain, self.protocol),
            fetch_one,
            chain=chain,
            protocol=self.protocol,
            describe=lambda a: a.symbol,
        )

        health_factor = calculate_health_factor(
            account.collateral_usd,
            account.debt_usd,
            bps_to_percentage(account.current_liquidation_threshold),
        )
        positions = ProtocolPositions(
            chain=chain,
            protocol=self.protocol,
            collateral_usd=account.collateral_usd,
            liquidation_collateral_usd=account.liquidation_collateral_usd,
            debt_usd=account.debt_usd,
            health_factor=health_factor,
        )

        for asset, user_reserve, reserve, price in user_reserves:
            if reserve is None:
                continue

            if user_reserve.current_a_token_balance > 0:
                balance = user_reserve.current_a_token_balance
                positions.supply_positions.append(
                    UserSupplyPosition(
                        asset=asset,
                        chain=chain,
                        protocol=self.protocol,
                        supplied_amount=str(balance),
                        supplied_amount_usd=native_to_usd(balance, asset.decimals, price),
                        current_apy=calculate_apy(user_reserve.liquidity_rate),
                    )
                )

            if user_reserve.total_debt > 0:
                # Variable debt dominates the quoted rate unless the loan is stable-only
                rate = (
                    reserve.current_variable_borrow_rate
                    if user_reserve.current_variable_debt > 0
                    else user_reserve.stable_borrow_rate
                )
                accrued = user_reserve.accrued_stable_interest
                positions.borrow_positions.append(
                    UserBorrowPosition(
                        asset=asset,
                        chain=chain,
                        protocol=self.protocol,
                        borrowed_amount=str(user_reserve.total_debt),
                        borrowed_amount_usd=native_to_usd(user_reserve.total_debt, asset.decimals, price),
                        current_apy=calculate_apy(rate),
                        accrued_interest=str(accrued),
                        accrued_interest_usd=native_to_usd(accrued, asset.decimals, price),
                        health_factor=health_factor,
                    )
                )

        logger.info(
            "Aave positions for %s on %s: %d supply, %d borrow",
            wallet,
            chain.value,
            len(positions.supply_positions),
            len(positions.borrow_positions),
        )
        return positions
