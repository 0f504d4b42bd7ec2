from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Optional


class Chain(str, Enum):
    ETHEREUM = "ethereum"
    SOLANA = "solana"
    POLYGON = "polygon"
    ARBITRUM = "arbitrum"

    @property
    def is_evm(self) -> bool:
        return self is not Chain.SOLANA


class Protocol(str, Enum):
    AAVE = "aave"
    SOLEND = "solend"


RateType = Literal["supply", "borrow"]
RiskLevel = Literal["safe", "moderate", "risky", "danger"]


@dataclass(frozen=True)
class Asset:
    symbol: str
    name: str
    decimals: int
    address: str
    chain: Chain


@dataclass
class LendingRate:
    asset: Asset
    chain: Chain
    protocol: Protocol
    # Percentages, e.g. 3.5 = 3.5%
    supply_apy: float
    borrow_apy: float
    supply_apr: float
    borrow_apr: float
    utilization_rate: float
    # Native units as integer strings
    total_supply: str
    total_borrow: str
    total_supply_usd: float
    total_borrow_usd: float
    timestamp: int
    price_available: bool = True


@dataclass
class Liquidity:
    asset: Asset
    chain: Chain
    protocol: Protocol
    total_liquidity: str
    available_liquidity: str
    total_liquidity_usd: float
    available_liquidity_usd: float
    utilization_rate: float
    timestamp: int

    @classmethod
    def from_rate(cls, rate: LendingRate) -> "Liquidity":
        return cls(
            asset=rate.asset,
            chain=rate.chain,
            protocol=rate.protocol,
            total_liquidity=rate.total_supply,
            available_liquidity=str(int(rate.total_supply) - int(rate.total_borrow)),
            total_liquidity_usd=rate.total_supply_usd,
            available_liquidity_usd=rate.total_supply_usd - rate.total_borrow_usd,
            utilization_rate=rate.utilization_rate,
            timestamp=rate.timestamp,
        )


@dataclass(frozen=True)
class SourceFailure:
    """One failed branch of a fan-out, kept for logging and error context."""

    source: str
    code: str
    message: str

    def __str__(self) -> str:
        return f"{self.source}: [{self.code}] {self.message}"


@dataclass
class AggregatedRates:
    rates: list[LendingRate]
    chains: list[Chain]
    protocols: list[Protocol]
    last_updated: int
    failures: list[SourceFailure] = field(default_factory=list)


@dataclass
class AggregatedLiquidity:
    liquidity: list[Liquidity]
    total_liquidity_usd: float
    chains: list[Chain]
    protocols: list[Protocol]
    last_updated: int


@dataclass
class UtilizationEntry:
    asset: str
    chain: Chain
    protocol: Protocol
    utilization_rate: float
    total_supply_usd: float
    total_borrow_usd: float
    timestamp: int


@dataclass
class UtilizationSummary:
    utilization_rates: list[UtilizationEntry]
    average_utilization: float
    timestamp: int


@dataclass
class BestRates:
    type: RateType
    asset: str
    amount: Optional[float]
    best_rate: LendingRate
    alternatives: list[LendingRate]
    timestamp: int


@dataclass
class RateComparisonItem:
    protocol: Protocol
    chain: Chain
    supply_apy: float
    borrow_apy: float
    utilization_rate: float
    available_liquidity_usd: float
    total_supply_usd: float


@dataclass
class RateComparison:
    asset: str
    comparison: list[RateComparisonItem]
    best_supply: RateComparisonItem
    best_borrow: RateComparisonItem
    timestamp: int


@dataclass
class ProtocolTVL:
    protocol: Protocol
    tvl_usd: float
    chains: list[Chain]


@dataclass
class AssetTVL:
    symbol: str
    tvl_usd: float
    supply_apy: float
    borrow_apy: float


@dataclass
class MarketOverview:
    total_value_locked_usd: float
    total_borrowed_usd: float
    average_supply_apy: float
    average_borrow_apy: float
    top_protocols: list[ProtocolTVL]
    top_assets: list[AssetTVL]
    timestamp: int


@dataclass
class UserSupplyPosition:
    asset: Asset
    chain: Chain
    protocol: Protocol
    supplied_amount: str
    supplied_amount_usd: float
    current_apy: float
    accrued_interest: str = "0"
    accrued_interest_usd: float = 0.0


@dataclass
class UserBorrowPosition:
    asset: Asset
    chain: Chain
    protocol: Protocol
    borrowed_amount: str
    borrowed_amount_usd: float
    current_apy: float
    accrued_interest: str = "0"
    accrued_interest_usd: float = 0.0
    health_factor: Optional[float] = None


@dataclass
class ProtocolPositions:
    """A wallet's positions on one (chain, protocol), as reported by an adapter."""

    chain: Chain
    protocol: Protocol
    supply_positions: list[UserSupplyPosition] = field(default_factory=list)
    borrow_positions: list[UserBorrowPosition] = field(default_factory=list)
    collateral_usd: float = 0.0
    # Collateral weighted by each asset's liquidation threshold
    liquidation_collateral_usd: float = 0.0
    debt_usd: float = 0.0
    health_factor: Optional[float] = None


@dataclass
class UserPositions:
    wallet_address: str
    supply_positions: list[UserSupplyPosition]
    borrow_positions: list[UserBorrowPosition]
    total_supplied_usd: float
    total_borrowed_usd: float
    net_apy: float
    health_factor: Optional[float]
    timestamp: int


@dataclass
class HealthFactor:
    wallet_address: str
    health_factor: float
    risk_level: RiskLevel
    collateral_usd: float
    debt_usd: float
    available_to_borrow_usd: float
    liquidation_threshold: float
    timestamp: int
