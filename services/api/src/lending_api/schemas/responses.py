import math
from typing import Annotated, Any, Generic, Literal, Optional, TypeVar

from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, PlainSerializer

from services.api.src.lending_api.domain.models import Chain, Protocol

# snake_case parts rendered in upper case on the wire (total_supply_usd -> totalSupplyUSD)
ACRONYMS = {"usd": "USD", "apy": "APY", "apr": "APR"}


def to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(ACRONYMS.get(part, part.capitalize()) for part in rest)


def _finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None or math.isinf(value) or math.isnan(value):
        return None
    return value


# JSON has no infinity: an unbounded health factor goes out as null
HealthFactorValue = Annotated[
    Optional[float], PlainSerializer(_finite_or_none, return_type=Optional[float])
]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class AssetResponse(CamelModel):
    symbol: str
    name: str
    decimals: int
    address: str
    chain: Chain


class LendingRateResponse(CamelModel):
    """Normalized rate for one (asset, chain, protocol)."""

    asset: AssetResponse
    chain: Chain
    protocol: Protocol
    supply_apy: float
    borrow_apy: float
    supply_apr: float
    borrow_apr: float
    utilization_rate: float
    total_supply: str
    total_borrow: str
    total_supply_usd: float
    total_borrow_usd: float
    timestamp: int
    price_available: bool = True


class SourceFailureResponse(CamelModel):
    source: str
    code: str
    message: str


class AggregatedRatesResponse(CamelModel):
    rates: list[LendingRateResponse]
    chains: list[Chain]
    protocols: list[Protocol]
    last_updated: int
    failures: list[SourceFailureResponse] = []


class LiquidityResponse(CamelModel):
    asset: AssetResponse
    chain: Chain
    protocol: Protocol
    total_liquidity: str
    available_liquidity: str
    total_liquidity_usd: float
    available_liquidity_usd: float
    utilization_rate: float
    timestamp: int


class AggregatedLiquidityResponse(CamelModel):
    liquidity: list[LiquidityResponse]
    total_liquidity_usd: float
    chains: list[Chain]
    protocols: list[Protocol]
    last_updated: int


class UtilizationEntryResponse(CamelModel):
    asset: str
    chain: Chain
    protocol: Protocol
    utilization_rate: float
    total_supply_usd: float
    total_borrow_usd: float
    timestamp: int


class UtilizationSummaryResponse(CamelModel):
    utilization_rates: list[UtilizationEntryResponse]
    average_utilization: float
    timestamp: int


class BestRatesResponse(CamelModel):
    type: Literal["supply", "borrow"]
    asset: str
    amount: Optional[float] = None
    best_rate: LendingRateResponse
    alternatives: list[LendingRateResponse]
    timestamp: int


class RateComparisonItemResponse(CamelModel):
    protocol: Protocol
    chain: Chain
    supply_apy: float
    borrow_apy: float
    utilization_rate: float
    available_liquidity_usd: float
    total_supply_usd: float


class RateComparisonResponse(CamelModel):
    asset: str
    comparison: list[RateComparisonItemResponse]
    best_supply: RateComparisonItemResponse
    best_borrow: RateComparisonItemResponse
    timestamp: int


class ProtocolTVLResponse(CamelModel):
    protocol: Protocol
    tvl_usd: float
    chains: list[Chain]


class AssetTVLResponse(CamelModel):
    symbol: str
    tvl_usd: float
    supply_apy: float
    borrow_apy: float


class MarketOverviewResponse(CamelModel):
    """Market-wide totals and top lists."""

    total_value_locked_usd: float
    total_borrowed_usd: float
    average_supply_apy: float
    average_borrow_apy: float
    top_protocols: list[ProtocolTVLResponse]
    top_assets: list[AssetTVLResponse]
    timestamp: int


class UserSupplyPositionResponse(CamelModel):
    asset: AssetResponse
    chain: Chain
    protocol: Protocol
    supplied_amount: str
    supplied_amount_usd: float
    current_apy: float
    accrued_interest: str
    accrued_interest_usd: float


class UserBorrowPositionResponse(CamelModel):
    asset: AssetResponse
    chain: Chain
    protocol: Protocol
    borrowed_amount: str
    borrowed_amount_usd: float
    current_apy: float
    accrued_interest: str
    accrued_interest_usd: float
    health_factor: HealthFactorValue = None


class UserPositionsResponse(CamelModel):
    wallet_address: str
    supply_positions: list[UserSupplyPositionResponse]
    borrow_positions: list[UserBorrowPositionResponse]
    total_supplied_usd: float
    total_borrowed_usd: float
    net_apy: float
    health_factor: HealthFactorValue = None
    timestamp: int


class HealthFactorResponse(CamelModel):
    wallet_address: str
    health_factor: HealthFactorValue
    risk_level: Literal["safe", "moderate", "risky", "danger"]
    collateral_usd: float
    debt_usd: float
    available_to_borrow_usd: float
    liquidation_threshold: float
    timestamp: int


class SupportedResponse(CamelModel):
    chains: list[Chain]
    protocols: list[Protocol]
    pairs: list[dict[str, str]] = []


T = TypeVar("T")


class ErrorBody(BaseModel):
    code: str
    message: str


class ApiResponse(CamelModel, Generic[T]):
    """Envelope shared by every endpoint: {success, data | error, timestamp}."""

    success: bool
    data: Optional[T] = None
    error: Optional[ErrorBody] = None
    timestamp: int

    def envelope(self) -> dict[str, Any]:
        """Wire dict, without the branch (data or error) that does not apply."""
        return self.model_dump(
            mode="json", by_alias=True, exclude={"error"} if self.success else {"data"}
        )

    def to_response(self, status_code: int = 200) -> JSONResponse:
        return JSONResponse(content=self.envelope(), status_code=status_code)
