import logging

import redis
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from faucet.config import settings
from faucet.domain.models import StatsOut
from faucet.middleware.rate_limit import build_limiter
from faucet.security.api_key import require_admin_api_key


router = APIRouter(prefix="/api/admin", tags=["admin"])
limiter = build_limiter()
logger = logging.getLogger(__name__)


@router.get("/config")
@limiter.limit(lambda: settings.ADMIN_RATE_LIMIT)
def admin_config(request: Request, _=Depends(require_admin_api_key)):
    # don't leak secrets (PRIVATE_KEY, API keys, RPC credentials)
    coordinator = request.app.state.coordinator
    return {
        "env": settings.APP_ENV,
        "allowed_origins": settings.ALLOWED_ORIGINS,
        "chain": {
            "CONTRACT_ADDRESS": settings.CONTRACT_ADDRESS,
            "CHAIN_ID": settings.CHAIN_ID,
            "CLAIM_AMOUNT_ETHER": settings.CLAIM_AMOUNT_ETHER,
            "CONFIRMATION_TIMEOUT_SEC": coordinator.confirmation_timeout,
            "history_source": "explorer" if settings.EXPLORER_API_URL else "rpc",
        },
        "cooldown": {
            "COOLDOWN_MODE": settings.COOLDOWN_MODE,
            "COOLDOWN_SECONDS": coordinator.cooldown_seconds,
        },
        "eligibility": {
            "MIN_TX_COUNT": coordinator.thresholds.min_transaction_count,
            "MIN_ACCOUNT_AGE_DAYS": coordinator.thresholds.min_account_age_days,
        },
    }


@router.get("/stats", response_model=StatsOut)
@limiter.limit(lambda: settings.ADMIN_RATE_LIMIT)
def admin_stats(request: Request, _=Depends(require_admin_api_key)):
    stats = request.app.state.claim_stats
    try:
        counts = stats.counts()
    except redis.RedisError:
        logger.warning("claim stats unavailable", exc_info=True)
        return JSONResponse(status_code=503, content={"success": False, "error": "stats unavailable"})
    return StatsOut(
        window_min=stats.window_min,
        enabled=stats.cache.is_enabled(),
        **counts,
    )
