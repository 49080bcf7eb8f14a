from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from faucet.config import settings
from faucet.middleware.cors import add_cors
from faucet.middleware.security_headers import SecurityHeadersMiddleware
from faucet.middleware.rate_limit import init_rate_limiter, add_rate_limit_exception_handler

from faucet.api.public import router as public_router
from faucet.api.admin import router as admin_router

from faucet.cache.redis_cache import RedisCache
from faucet.domain.eligibility import EligibilityThresholds
from faucet.integrations.chain_client import Web3ChainGateway
from faucet.repos.claims_repo import ClaimStatsRepo
from faucet.security.cooldown import build_cooldown_oracle
from faucet.services.claims import ClaimCoordinator


def build_coordinator() -> ClaimCoordinator:
    gateway = Web3ChainGateway.from_settings(settings)
    return ClaimCoordinator(
        gateway=gateway,
        oracle=build_cooldown_oracle(settings.COOLDOWN_MODE, gateway),
        thresholds=EligibilityThresholds.from_settings(settings),
        cooldown_seconds=settings.COOLDOWN_SECONDS,
        confirmation_timeout=settings.CONFIRMATION_TIMEOUT_SEC,
    )


def create_app(
    coordinator: Optional[ClaimCoordinator] = None,
    claim_stats: Optional[ClaimStatsRepo] = None,
) -> FastAPI:
    coordinator = coordinator or build_coordinator()
    claim_stats = claim_stats or ClaimStatsRepo(RedisCache(settings.REDIS_URL), settings.STATS_WINDOW_MIN)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await coordinator.gateway.close()

    app = FastAPI(title="Faucet", lifespan=lifespan)
    app.state.coordinator = coordinator
    app.state.claim_stats = claim_stats

    # CORS
    add_cors(app, settings.ALLOWED_ORIGINS)

    # Security headers
    app.add_middleware(SecurityHeadersMiddleware, app_env=settings.APP_ENV)

    # Rate limiter (slowapi)
    init_rate_limiter(app)
    add_rate_limit_exception_handler(app)

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"success": False, "error": "Invalid request body"})

    # Routes
    app.include_router(public_router)
    app.include_router(admin_router)

    @app.get("/health", tags=["health"])
    def health():
        return {"ok": True, "env": settings.APP_ENV, "cooldown_mode": settings.COOLDOWN_MODE}

    return app
