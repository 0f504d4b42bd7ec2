from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from services.api.src.lending_api.routes.dependencies import get_lending_service, split_csv
from services.api.src.lending_api.schemas.responses import (
    ApiResponse,
    MarketOverviewResponse,
    RateComparisonResponse,
)
from services.api.src.lending_api.services.facade import LendingService

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/overview", response_model=ApiResponse[MarketOverviewResponse])
async def get_overview(
    service: LendingService = Depends(get_lending_service),
) -> JSONResponse:
    """TVL, average APYs and top protocols/assets across all markets."""
    result = await service.get_market_overview()
    return result.to_response()


@router.get("/compare", response_model=ApiResponse[RateComparisonResponse])
async def compare_rates(
    asset: str | None = Query(default=None),
    chains: str | None = Query(default=None, description="Comma-separated chains"),
    protocols: str | None = Query(default=None, description="Comma-separated protocols"),
    service: LendingService = Depends(get_lending_service),
) -> JSONResponse:
    result = await service.compare_rates(asset, split_csv(chains), split_csv(protocols))
    return result.to_response()
