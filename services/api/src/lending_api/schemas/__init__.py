from services.api.src.lending_api.schemas.responses import (
    AggregatedLiquidityResponse,
    AggregatedRatesResponse,
    ApiResponse,
    BestRatesResponse,
    ErrorBody,
    HealthFactorResponse,
    LendingRateResponse,
    MarketOverviewResponse,
    RateComparisonResponse,
    SupportedResponse,
    UserPositionsResponse,
    UtilizationSummaryResponse,
)

__all__ = [
    "AggregatedLiquidityResponse",
    "AggregatedRatesResponse",
    "ApiResponse",
    "BestRatesResponse",
    "ErrorBody",
    "HealthFactorResponse",
    "LendingRateResponse",
    "MarketOverviewResponse",
    "RateComparisonResponse",
    "SupportedResponse",
    "UserPositionsResponse",
    "UtilizationSummaryResponse",
]
