from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from services.api.src.lending_api.routes.dependencies import get_lending_service, split_csv
from services.api.src.lending_api.schemas.responses import (
    AggregatedLiquidityResponse,
    ApiResponse,
    UtilizationSummaryResponse,
)
from services.api.src.lending_api.services.facade import LendingService

router = APIRouter(prefix="/liquidity", tags=["liquidity"])


@router.get("", response_model=ApiResponse[AggregatedLiquidityResponse])
async def get_liquidity(
    chain: str | None = Query(default=None),
    protocol: str | None = Query(default=None),
    asset: str | None = Query(default=None),
    service: LendingService = Depends(get_lending_service),
) -> JSONResponse:
    result = await service.get_aggregated_liquidity(split_csv(chain), split_csv(protocol), asset)
    return result.to_response()


@router.get("/utilization", response_model=ApiResponse[UtilizationSummaryResponse])
async def get_utilization(
    chain: str | None = Query(default=None),
    protocol: str | None = Query(default=None),
    service: LendingService = Depends(get_lending_service),
) -> JSONResponse:
    """Utilization per market and the plain average across them."""
    result = await service.get_utilization_rates(split_csv(chain), split_csv(protocol))
    return result.to_response()
