"""Single entry point for the HTTP layer: validation, error normalization, envelopes."""

import logging
from typing import Any, Awaitable, Optional, Sequence, TypeVar

from pydantic import BaseModel

from services.api.src.lending_api.domain.decoder import is_evm_address, is_solana_address
from services.api.src.lending_api.domain.errors import (
    ErrorCode,
    InvalidAddressError,
    InvalidChainError,
    InvalidParameterError,
    InvalidProtocolError,
    LendingAnalyticsError,
)
from services.api.src.lending_api.domain.models import Chain, Protocol
from services.api.src.lending_api.registry.protocols import ProtocolRegistry
from services.api.src.lending_api.schemas.responses import (
    AggregatedLiquidityResponse,
    AggregatedRatesResponse,
    ApiResponse,
    BestRatesResponse,
    ErrorBody,
    HealthFactorResponse,
    MarketOverviewResponse,
    RateComparisonResponse,
    SupportedResponse,
    UserPositionsResponse,
    UtilizationSummaryResponse,
)
from services.api.src.lending_api.services.aggregation import AggregationEngine
from services.api.src.lending_api.services.positions import PositionEngine
from services.api.src.lending_api.utils.timestamps import now_ms

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def parse_chain(value: str) -> Chain:
    try:
        return Chain(value.strip().lower())
    except ValueError:
        raise InvalidChainError(
            f"Invalid chain: {value}. Supported: {', '.join(c.value for c in Chain)}",
            context={"chain": value},
        )


def parse_protocol(value: str) -> Protocol:
    try:
        return Protocol(value.strip().lower())
    except ValueError:
        raise InvalidProtocolError(
            f"Invalid protocol: {value}. Supported: {', '.join(p.value for p in Protocol)}",
            context={"protocol": value},
        )


def parse_chains(values: Optional[Sequence[str]]) -> Optional[list[Chain]]:
    """None or empty means every chain."""
    if not values:
        return None
    return [parse_chain(v) for v in values]


def parse_protocols(values: Optional[Sequence[str]]) -> Optional[list[Protocol]]:
    if not values:
        return None
    return [parse_protocol(v) for v in values]


def validate_wallet(wallet: str) -> str:
    wallet = wallet.strip()
    if not (is_evm_address(wallet) or is_solana_address(wallet)):
        raise InvalidAddressError(f"Invalid wallet address: {wallet}", context={"wallet": wallet})
    return wallet


def error_envelope(error: LendingAnalyticsError, *, hide_internal: bool = False) -> ApiResponse:
    message = error.message
    if hide_internal and error.code == ErrorCode.INTERNAL_SERVER_ERROR:
        message = "Internal server error"
    return ApiResponse(
        success=False,
        error=ErrorBody(code=error.code.value, message=message),
        timestamp=now_ms(),
    )


class LendingService:
    """Composes the aggregation and position engines behind one validated API."""

    def __init__(
        self,
        registry: ProtocolRegistry,
        aggregation: AggregationEngine,
        positions: PositionEngine,
    ):
        self.registry = registry
        self.aggregation = aggregation
        self.positions = positions

    async def _run(self, operation: str, call: Awaitable[Any], schema: type[M]) -> ApiResponse[M]:
        try:
            result = await call
        except LendingAnalyticsError:
            raise
        except Exception as e:
            logger.exception("%s failed", operation)
            raise LendingAnalyticsError(f"{operation} failed: {e}") from e
        return ApiResponse[schema](success=True, data=schema.model_validate(result), timestamp=now_ms())

    async def get_aggregated_rates(
        self,
        chains: Optional[Sequence[str]] = None,
        protocols: Optional[Sequence[str]] = None,
        asset: Optional[str] = None,
    ) -> ApiResponse[AggregatedRatesResponse]:
        chain_filter, protocol_filter = parse_chains(chains), parse_protocols(protocols)
        return await self._run(
            "getAggregatedRates",
            self.aggregation.get_aggregated_rates(chain_filter, protocol_filter, asset),
            AggregatedRatesResponse,
        )

    async def get_best_rates(
        self, rate_type: Optional[str], asset: Optional[str], amount: Optional[float] = None
    ) -> ApiResponse[BestRatesResponse]:
        if rate_type not in ("supply", "borrow"):
            raise InvalidParameterError('Type must be either "supply" or "borrow"')
        if not asset:
            raise InvalidParameterError("Asset parameter is required")
        return await self._run(
            "getBestRates",
            self.aggregation.get_best_rates(rate_type, asset, amount),
            BestRatesResponse,
        )

    async def get_aggregated_liquidity(
        self,
        chains: Optional[Sequence[str]] = None,
        protocols: Optional[Sequence[str]] = None,
        asset: Optional[str] = None,
    ) -> ApiResponse[AggregatedLiquidityResponse]:
        chain_filter, protocol_filter = parse_chains(chains), parse_protocols(protocols)
        return await self._run(
            "getAggregatedLiquidity",
            self.aggregation.get_aggregated_liquidity(chain_filter, protocol_filter, asset),
            AggregatedLiquidityResponse,
        )

    async def get_utilization_rates(
        self,
        chains: Optional[Sequence[str]] = None,
        protocols: Optional[Sequence[str]] = None,
    ) -> ApiResponse[UtilizationSummaryResponse]:
        chain_filter, protocol_filter = parse_chains(chains), parse_protocols(protocols)
        return await self._run(
            "getUtilizationRates",
            self.aggregation.get_utilization_rates(chain_filter, protocol_filter),
            UtilizationSummaryResponse,
        )

    async def get_user_positions(
        self,
        wallet: str,
        chains: Optional[Sequence[str]] = None,
        protocols: Optional[Sequence[str]] = None,
    ) -> ApiResponse[UserPositionsResponse]:
        wallet = validate_wallet(wallet)
        chain_filter, protocol_filter = parse_chains(chains), parse_protocols(protocols)
        return await self._run(
            "getUserPositions",
            self.positions.get_user_positions(wallet, chain_filter, protocol_filter),
            UserPositionsResponse,
        )

    async def get_user_health_factor(self, wallet: str) -> ApiResponse[HealthFactorResponse]:
        wallet = validate_wallet(wallet)
        return await self._run(
            "getUserHealthFactor",
            self.positions.get_user_health_factor(wallet),
            HealthFactorResponse,
        )

    async def get_market_overview(self) -> ApiResponse[MarketOverviewResponse]:
        return await self._run(
            "getMarketOverview",
            self.aggregation.get_market_overview(),
            MarketOverviewResponse,
        )

    async def compare_rates(
        self,
        asset: Optional[str],
        chains: Optional[Sequence[str]] = None,
        protocols: Optional[Sequence[str]] = None,
    ) -> ApiResponse[RateComparisonResponse]:
        if not asset:
            raise InvalidParameterError("Asset parameter is required")
        chain_filter, protocol_filter = parse_chains(chains), parse_protocols(protocols)
        return await self._run(
            "compareRates",
            self.aggregation.compare_rates(asset, chain_filter, protocol_filter),
            RateComparisonResponse,
        )

    def get_supported(self) -> ApiResponse[SupportedResponse]:
        supported = SupportedResponse(
            chains=list(Chain),
            protocols=list(Protocol),
            pairs=[
                {"chain": chain.value, "protocol": protocol.value}
                for chain, protocol in self.registry.supported_pairs()
            ],
        )
        return ApiResponse[SupportedResponse](success=True, data=supported, timestamp=now_ms())
