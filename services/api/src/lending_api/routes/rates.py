from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from services.api.src.lending_api.routes.dependencies import get_lending_service, split_csv
from services.api.src.lending_api.schemas.responses import (
    AggregatedRatesResponse,
    ApiResponse,
    BestRatesResponse,
)
from services.api.src.lending_api.services.facade import LendingService

router = APIRouter(prefix="/rates", tags=["rates"])


@router.get("", response_model=ApiResponse[AggregatedRatesResponse])
async def get_rates(
    chain: str | None = Query(default=None, description="Chain, or comma-separated chains"),
    protocol: str | None = Query(default=None, description="Protocol, or comma-separated protocols"),
    asset: str | None = Query(default=None, description="Asset symbol, e.g. USDC"),
    service: LendingService = Depends(get_lending_service),
) -> JSONResponse:
    """Current lending rates across every supported chain and protocol."""
    result = await service.get_aggregated_rates(split_csv(chain), split_csv(protocol), asset)
    return result.to_response()


@router.get("/best", response_model=ApiResponse[BestRatesResponse])
async def get_best_rates(
    type: str | None = Query(default=None, description='"supply" or "borrow"'),
    asset: str | None = Query(default=None),
    amount: float | None = Query(default=None, ge=0),
    service: LendingService = Depends(get_lending_service),
) -> JSONResponse:
    """
    Best supply (highest APY) or borrow (lowest APY) rate for an asset.

    Returns the top rate plus up to four alternatives.
    """
    result = await service.get_best_rates(type, asset, amount)
    return result.to_response()
