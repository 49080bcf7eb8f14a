"""
Claim admission.

One claim walks Start -> CooldownCheck -> EligibilityCheck -> Submitting ->
Confirming -> Recording -> Done, leaving early as Denied or Failed. The
whole walk for one address runs under that address's lock, so a second
request for the same address only starts its cooldown check after the first
one has recorded (or given up). Different addresses never wait on each other.

Cooldown is recorded only after the transaction is confirmed. Denials and
failed submissions leave the cooldown state untouched.
"""
from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict

from faucet.domain.eligibility import EligibilityThresholds, evaluate
from faucet.domain.outcomes import (
    REASON_COOLDOWN_ACTIVE,
    ClaimOutcome,
    Denied,
    ErrorKind,
    Failed,
    Granted,
)
from faucet.integrations.chain_client import ChainGateway, ChainGatewayError
from faucet.security.address import normalize_address
from faucet.security.cooldown import CooldownOracle
from faucet.services.activity import fetch_activity

logger = logging.getLogger(__name__)


class AddressLocks:
    """Lazily created asyncio.Lock per address, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


async def _run_to_completion(aw: Awaitable[Any]) -> Any:
    """
    Await `aw` in its own task and ignore cancellation of the caller until it
    finishes. A pending cancellation is re-raised afterwards, whether the task
    returned or raised.
    """
    task = asyncio.ensure_future(aw)
    cancelled = False
    try:
        while True:
            try:
                return await asyncio.shield(task)
            except asyncio.CancelledError:
                if task.cancelled():
                    raise
                cancelled = True
                if task.done():
                    return task.result()
    finally:
        if cancelled:
            logger.warning("claim cancelled after submission; transaction work has finished")
            raise asyncio.CancelledError()


class ClaimCoordinator:
    def __init__(
        self,
        gateway: ChainGateway,
        oracle: CooldownOracle,
        thresholds: EligibilityThresholds,
        cooldown_seconds: int,
        confirmation_timeout: float,
        clock: Callable[[], float] = time.time,
    ):
        self.gateway = gateway
        self.oracle = oracle
        self.thresholds = thresholds
        self.cooldown_seconds = int(cooldown_seconds)
        self.confirmation_timeout = float(confirmation_timeout)
        self.clock = clock
        self.locks = AddressLocks()

    def _now(self) -> int:
        return int(self.clock())

    async def next_claim(self, raw_address: Any) -> int:
        """
        Next unix time `raw_address` may claim, 0 if it may claim now.
        Raises InvalidAddress / ChainGatewayError.
        """
        address = normalize_address(raw_address)
        next_time = await self.oracle.read_next_eligible_time(address)
        return next_time if next_time > self._now() else 0

    async def claim(self, raw_address: Any) -> ClaimOutcome:
        try:
            address = normalize_address(raw_address)
        except ValueError as e:
            return Failed(ErrorKind.INVALID_INPUT, str(e))

        async with self.locks.hold(address):
            try:
                outcome = await self._admit(address)
            except Exception:
                logger.exception("unexpected error while processing claim for %s", address)
                outcome = Failed(ErrorKind.INTERNAL_ERROR, "internal error")

        if isinstance(outcome, Granted):
            logger.info("claim granted for %s: %s (next=%s)", address, outcome.tx_hash, outcome.next_eligible_time)
        elif isinstance(outcome, Denied):
            logger.info("claim denied for %s: %s", address, outcome.reason)
        else:
            logger.warning("claim failed for %s: %s %s", address, outcome.error_kind.value, outcome.detail)
        return outcome

    async def _admit(self, address: str) -> ClaimOutcome:
        now = self._now()

        try:
            next_time = await self.oracle.read_next_eligible_time(address)
        except ChainGatewayError as e:
            return Failed(ErrorKind.GATEWAY_ERROR, e.detail)
        if next_time > now:
            return Denied(REASON_COOLDOWN_ACTIVE, next_eligible_time=next_time)

        try:
            snapshot = await fetch_activity(self.gateway, address, self.thresholds)
        except ChainGatewayError as e:
            return Failed(ErrorKind.GATEWAY_ERROR, e.detail)

        verdict = evaluate(snapshot, self.thresholds, now)
        if not verdict.approved:
            return Denied(verdict.reason, transaction_count=verdict.transaction_count)

        # a submitted transaction cannot be taken back
        return await _run_to_completion(self._disburse(address, now))

    async def _disburse(self, address: str, now: int) -> ClaimOutcome:
        try:
            pending = await self.gateway.submit_claim(address)
        except ChainGatewayError as e:
            return Failed(ErrorKind.SUBMISSION_ERROR, e.detail)

        try:
            confirmed = await asyncio.wait_for(
                self.gateway.await_confirmation(pending),
                timeout=self.confirmation_timeout,
            )
        except asyncio.TimeoutError:
            # TODO: reconcile claims that confirm after this point; local cooldown is not recorded for them
            return Failed(
                ErrorKind.CONFIRMATION_ERROR,
                f"transaction {pending.tx_hash} not confirmed within {self.confirmation_timeout:g}s",
            )
        except ChainGatewayError as e:
            return Failed(ErrorKind.CONFIRMATION_ERROR, e.detail)

        if self.oracle.records_claims:
            next_time = self.oracle.record_claim(address, self.cooldown_seconds, now)
        else:
            next_time = await self._read_after_claim(address, now)
        return Granted(tx_hash=confirmed.tx_hash, next_eligible_time=next_time)

    async def _read_after_claim(self, address: str, now: int) -> int:
        expected = now + self.cooldown_seconds
        try:
            next_time = await self.oracle.read_next_eligible_time(address)
        except ChainGatewayError as e:
            logger.warning("cooldown re-read failed for %s after claim: %s", address, e.detail)
            return expected
        # a lagging node can still report the pre-claim value
        return next_time if next_time > now else expected
