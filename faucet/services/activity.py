from __future__ import annotations
import logging
from typing import Optional

from faucet.domain.eligibility import ActivitySnapshot, EligibilityThresholds
from faucet.integrations.chain_client import ChainGateway

logger = logging.getLogger(__name__)


async def fetch_activity(
    gateway: ChainGateway,
    address: str,
    thresholds: EligibilityThresholds,
) -> ActivitySnapshot:
    """
    Build a fresh ActivitySnapshot for `address` (never cached).

    The first-activity time is only looked up when the evaluator could
    actually use it: to tell "never active" from "only received funds", or
    to apply the account-age rule once the count threshold is met.
    """
    tx_count = await gateway.get_transaction_count(address, "latest")

    needs_first_seen = tx_count == 0 or (
        thresholds.checks_age and tx_count >= thresholds.min_transaction_count
    )
    if not needs_first_seen:
        return ActivitySnapshot(transaction_count=tx_count)

    first_seen: Optional[int] = None
    history = await gateway.get_history(address)
    if history:
        first_seen = history[0].timestamp
    elif tx_count > 0 and thresholds.checks_age:
        first_seen = await _first_outgoing_timestamp(gateway, address)

    return ActivitySnapshot(transaction_count=tx_count, first_activity_timestamp=first_seen)


async def _first_outgoing_timestamp(gateway: ChainGateway, address: str) -> int:
    # nonce is monotonic in block height: bisect for the first block where it is > 0
    latest = await gateway.get_block("latest")
    lo, hi = 0, latest.number
    while lo < hi:
        mid = (lo + hi) // 2
        if await gateway.get_transaction_count(address, mid) > 0:
            hi = mid
        else:
            lo = mid + 1

    block = latest if lo == latest.number else await gateway.get_block(lo)
    logger.debug("first outgoing tx of %s found in block %s", address, block.number)
    return block.timestamp
