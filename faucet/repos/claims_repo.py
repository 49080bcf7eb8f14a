from __future__ import annotations
import logging
from typing import Dict

import redis

from faucet.cache.redis_cache import RedisCache
from faucet.domain.outcomes import ClaimOutcome, Denied, Granted

logger = logging.getLogger(__name__)

OUTCOME_KINDS = ("granted", "denied", "failed")


def outcome_kind(outcome: ClaimOutcome) -> str:
    if isinstance(outcome, Granted):
        return "granted"
    if isinstance(outcome, Denied):
        return "denied"
    return "failed"


class ClaimStatsRepo:
    """
    Rolling-window outcome counters (granted / denied / failed).
    Counters only; cooldown state never lives here.
    If Redis is disabled every count reads 0.
    """

    def __init__(self, cache: RedisCache, window_min: int = 60):
        self.cache = cache
        self.window_min = max(int(window_min), 1)

    def _key(self, kind: str) -> str:
        return f"w{self.window_min}:faucet:claims:{kind}"

    def record(self, outcome: ClaimOutcome) -> None:
        if not self.cache.is_enabled():
            return
        try:
            self.cache.incr_with_ttl(self._key(outcome_kind(outcome)), ttl_sec=self.window_min * 60)
        except redis.RedisError:
            # stats must not turn a finished claim into an error response
            logger.warning("failed to record claim outcome in redis", exc_info=True)

    def counts(self) -> Dict[str, int]:
        values = self.cache.get_ints(self._key(k) for k in OUTCOME_KINDS)
        return dict(zip(OUTCOME_KINDS, values))
