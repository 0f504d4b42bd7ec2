from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from services.api.src.lending_api.routes.dependencies import get_lending_service
from services.api.src.lending_api.schemas.responses import ApiResponse, SupportedResponse
from services.api.src.lending_api.services.facade import LendingService

router = APIRouter(tags=["supported"])


@router.get("/supported", response_model=ApiResponse[SupportedResponse])
def get_supported(service: LendingService = Depends(get_lending_service)) -> JSONResponse:
    """Known chains and protocols, and which pairs are deployed."""
    return service.get_supported().to_response()
