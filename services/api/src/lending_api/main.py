import logging
import time
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from services.api.src.lending_api.adapters.aave_v3 import AaveV3Adapter
from services.api.src.lending_api.adapters.solend import SolendAdapter
from services.api.src.lending_api.config import Settings, get_settings
from services.api.src.lending_api.domain.errors import (
    ErrorCode,
    InvalidParameterError,
    LendingAnalyticsError,
    NotFoundError,
)
from services.api.src.lending_api.domain.models import Chain
from services.api.src.lending_api.logging_setup import configure_logging
from services.api.src.lending_api.providers.base import ChainDataProvider
from services.api.src.lending_api.providers.prices import StaticPriceOracle
from services.api.src.lending_api.providers.rpc import JsonRpcChainDataProvider
from services.api.src.lending_api.registry.protocols import get_default_registry
from services.api.src.lending_api.routes import api_router
from services.api.src.lending_api.services.aggregation import AggregationEngine
from services.api.src.lending_api.services.facade import LendingService, error_envelope
from services.api.src.lending_api.services.positions import PositionEngine
from services.api.src.lending_api.utils.timestamps import elapsed_ms

logger = logging.getLogger(__name__)


def build_service(settings: Settings, provider: ChainDataProvider) -> LendingService:
    """Wire registry, oracles, adapters and engines around one chain provider."""
    registry = get_default_registry(settings)
    price_oracle = StaticPriceOracle(settings.price_overrides)
    adapters = {
        adapter.protocol: adapter
        for adapter in (
            AaveV3Adapter(registry, provider, price_oracle),
            SolendAdapter(registry, provider, price_oracle),
        )
    }
    return LendingService(
        registry=registry,
        aggregation=AggregationEngine(registry, adapters),
        positions=PositionEngine(registry, adapters),
    )


def rpc_urls(settings: Settings) -> dict[Chain, str]:
    return {
        Chain.ETHEREUM: settings.ethereum_rpc_url,
        Chain.SOLANA: settings.solana_rpc_url,
        Chain.POLYGON: settings.polygon_rpc_url,
        Chain.ARBITRUM: settings.arbitrum_rpc_url,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the shared HTTP client for the lifetime of the process."""
    settings: Settings = app.state.settings

    async with httpx.AsyncClient(timeout=settings.rpc_timeout_seconds) as client:
        provider = JsonRpcChainDataProvider(rpc_urls(settings), client)
        app.state.chain_provider = provider
        app.state.lending_service = build_service(settings, provider)

        configured = [c.value for c in Chain if provider.is_configured(c)]
        if not configured:
            logger.warning("No RPC endpoints configured; every query will fail")
        logger.info("Lending API started (chains: %s)", ", ".join(configured) or "none")

        yield

    logger.info("HTTP client closed")


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(LendingAnalyticsError)
    async def handle_lending_error(request: Request, exc: LendingAnalyticsError) -> JSONResponse:
        log = logger.warning if exc.status_code < 500 else logger.error
        log("%s %s -> %s: %s %s", request.method, request.url.path, exc.code.value, exc.message, exc.context)
        envelope = error_envelope(exc, hide_internal=settings.is_production)
        return envelope.to_response(exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        error = InvalidParameterError(f"Invalid request parameters: {details}")
        return error_envelope(error).to_response(error.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            error = NotFoundError(f"Route not found: {request.method} {request.url.path}")
        else:
            error = LendingAnalyticsError(str(exc.detail), status_code=exc.status_code)
            if exc.status_code < 500:
                error.code = ErrorCode.INVALID_PARAMETER
        return error_envelope(error).to_response(exc.status_code)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        error = LendingAnalyticsError(str(exc) or exc.__class__.__name__)
        return error_envelope(error, hide_internal=settings.is_production).to_response(500)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Lending Rates API", lifespan=lifespan)
    app.state.settings = settings

    # CORS for the dashboard: localhost, configured origins and Vercel deployments
    cors_origins = [settings.frontend_url, "http://localhost:3000", "https://localhost:3000"]
    if settings.cors_origin:
        cors_origins.append(settings.cors_origin)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(dict.fromkeys(cors_origins)),
        allow_origin_regex=r"https://.*\.vercel\.app",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s -> %d (%.0f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms(started),
        )
        return response

    register_exception_handlers(app, settings)
    app.include_router(api_router)

    @app.get("/")
    def root(request: Request) -> dict:
        provider = getattr(request.app.state, "chain_provider", None)
        return {
            "service": "lending-rates-api",
            "docs": "/docs",
            "api": "/api/v1",
            "configuredChains": [
                c.value for c in Chain if provider is not None and provider.is_configured(c)
            ],
        }

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
