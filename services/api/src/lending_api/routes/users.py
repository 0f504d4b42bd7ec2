from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from services.api.src.lending_api.routes.dependencies import get_lending_service, split_csv
from services.api.src.lending_api.schemas.responses import (
    ApiResponse,
    HealthFactorResponse,
    UserPositionsResponse,
)
from services.api.src.lending_api.services.facade import LendingService

router = APIRouter(prefix="/user", tags=["user"])


@router.get("/{wallet}", response_model=ApiResponse[UserPositionsResponse])
async def get_user_positions(
    wallet: str,
    chain: str | None = Query(default=None),
    protocol: str | None = Query(default=None),
    service: LendingService = Depends(get_lending_service),
) -> JSONResponse:
    """
    Supply and borrow positions of a wallet.

    EVM addresses are looked up on EVM chains, base58 keys on Solana.
    """
    result = await service.get_user_positions(wallet, split_csv(chain), split_csv(protocol))
    return result.to_response()


@router.get("/{wallet}/health", response_model=ApiResponse[HealthFactorResponse])
async def get_user_health(
    wallet: str,
    service: LendingService = Depends(get_lending_service),
) -> JSONResponse:
    result = await service.get_user_health_factor(wallet)
    return result.to_response()
