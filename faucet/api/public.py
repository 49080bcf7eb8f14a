import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from faucet.config import settings
from faucet.domain.models import AddressIn, ClaimOut, CooldownOut
from faucet.domain.outcomes import ClaimOutcome, Denied, ErrorKind, Granted
from faucet.integrations.chain_client import ChainGatewayError
from faucet.middleware.rate_limit import build_limiter
from faucet.security.address import InvalidAddress
from faucet.services.claims import ClaimCoordinator

router = APIRouter(tags=["faucet"])
limiter = build_limiter()
logger = logging.getLogger(__name__)

ADDRESS_REQUIRED = "Address required"


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _coordinator(request: Request) -> ClaimCoordinator:
    return request.app.state.coordinator


def outcome_response(outcome: ClaimOutcome) -> JSONResponse:
    """
    Granted -> 200, Denied -> 200 with success=false,
    Failed -> 400 for bad input, 500 otherwise.
    """
    if isinstance(outcome, Granted):
        body = ClaimOut(success=True, txHash=outcome.tx_hash, nextClaim=outcome.next_eligible_time)
        status_code = 200
    elif isinstance(outcome, Denied):
        body = ClaimOut(
            success=False,
            error=outcome.reason,
            nextClaim=outcome.next_eligible_time,
            transactionCount=outcome.transaction_count,
        )
        status_code = 200
    else:
        body = ClaimOut(success=False, error=outcome.detail)
        status_code = 400 if outcome.error_kind == ErrorKind.INVALID_INPUT else 500
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@router.post("/cooldown", response_model=CooldownOut)
@limiter.limit(lambda: settings.PUBLIC_RATE_LIMIT)
async def cooldown(request: Request, payload: AddressIn):
    """
    Next unix time the address may claim; 0 when it may claim now.
    """
    if not payload.address:
        return _error(400, ADDRESS_REQUIRED)

    try:
        next_claim = await _coordinator(request).next_claim(payload.address)
    except InvalidAddress as e:
        return _error(400, str(e))
    except ChainGatewayError as e:
        logger.warning("cooldown lookup failed: %s", e.detail)
        return _error(500, e.detail)

    return CooldownOut(nextClaim=next_claim)


@router.post("/claim", response_model=ClaimOut, response_model_exclude_none=True)
@limiter.limit(lambda: settings.PUBLIC_RATE_LIMIT)
async def claim(request: Request, payload: AddressIn):
    if not payload.address:
        return _error(400, ADDRESS_REQUIRED)

    outcome = await _coordinator(request).claim(payload.address)
    # redis client is blocking; keep it off the event loop
    await run_in_threadpool(request.app.state.claim_stats.record, outcome)
    return outcome_response(outcome)
