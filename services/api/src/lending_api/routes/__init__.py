from fastapi import APIRouter

from services.api.src.lending_api.routes.analytics import router as analytics_router
from services.api.src.lending_api.routes.liquidity import router as liquidity_router
from services.api.src.lending_api.routes.rates import router as rates_router
from services.api.src.lending_api.routes.supported import router as supported_router
from services.api.src.lending_api.routes.users import router as users_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(rates_router)
api_router.include_router(liquidity_router)
api_router.include_router(users_router)
api_router.include_router(analytics_router)
api_router.include_router(supported_router)

__all__ = ["api_router"]
