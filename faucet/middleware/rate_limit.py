from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from faucet.config import settings


def build_limiter() -> Limiter:
    # with REDIS_URL set, counters are shared by every instance behind the same redis
    return Limiter(
        key_func=get_remote_address,
        storage_uri=settings.REDIS_URL or "memory://",
        enabled=settings.RATE_LIMIT_ENABLED,
    )


def init_rate_limiter(app: FastAPI) -> Limiter:
    limiter = build_limiter()
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    return limiter


def add_rate_limit_exception_handler(app: FastAPI) -> None:
    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content={"success": False, "error": "Too Many Requests"},
        )
