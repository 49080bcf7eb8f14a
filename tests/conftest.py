import asyncio
import os

# must be set before faucet.config is imported
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")

import pytest

from faucet.domain.eligibility import EligibilityThresholds
from faucet.integrations.chain_client import (
    BlockInfo,
    ChainGateway,
    ConfirmationError,
    ConfirmedClaim,
    GatewayError,
    HistoryEntry,
    PendingClaim,
    SubmissionError,
)
from faucet.security.cooldown import LocalCooldownOracle
from faucet.services.claims import ClaimCoordinator

T0 = 1_700_000_000
DAY = 86400
COOLDOWN = DAY

ADDR_A = "0x" + "ab" * 20
ADDR_B = "0x" + "cd" * 20


class Clock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now


class FakeGateway(ChainGateway):
    """In-memory chain. Counts are per address, keyed case-insensitively."""

    def __init__(self, tx_count=15, history=None, latest_block=1000, first_tx_block=None, block_time=12):
        self.tx_counts = {}
        self.default_tx_count = tx_count
        self.history = history or {}
        self.cooldowns = {}
        self.latest_block = latest_block
        self.first_tx_block = first_tx_block
        self.block_time = block_time

        self.read_error = None
        self.cooldown_error = None
        self.submit_error = None
        self.confirm_error = None
        self.fail_hashes = set()       # tx hashes whose confirmation reverts
        self.confirm_delay = 0.0
        self.confirm_gate = None        # asyncio.Event blocking confirmation
        self.read_gate = None           # asyncio.Event blocking the count lookup

        self.calls = []
        self.submitted = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.confirm_started = None

    def _count(self, address):
        return self.tx_counts.get(address.lower(), self.default_tx_count)

    async def get_history(self, address):
        self.calls.append(("get_history", address))
        if self.read_error:
            raise GatewayError(self.read_error)
        return list(self.history.get(address.lower(), []))

    async def get_transaction_count(self, address, block_identifier="latest"):
        self.calls.append(("get_transaction_count", address, block_identifier))
        if self.read_gate is not None:
            await self.read_gate.wait()
        if self.read_error:
            raise GatewayError(self.read_error)
        count = self._count(address)
        if block_identifier == "latest":
            return count
        if self.first_tx_block is None or block_identifier < self.first_tx_block:
            return 0
        return count

    async def get_block(self, block_identifier):
        self.calls.append(("get_block", block_identifier))
        number = self.latest_block if block_identifier == "latest" else int(block_identifier)
        return BlockInfo(number=number, timestamp=T0 - (self.latest_block - number) * self.block_time)

    async def read_cooldown(self, address):
        self.calls.append(("read_cooldown", address))
        if self.cooldown_error:
            raise GatewayError(self.cooldown_error)
        return self.cooldowns.get(address.lower(), 0)

    async def submit_claim(self, address):
        self.calls.append(("submit_claim", address))
        await asyncio.sleep(0)
        if self.submit_error:
            raise SubmissionError(self.submit_error)
        self.submitted.append(address)
        return PendingClaim(tx_hash="0x%064x" % len(self.submitted))

    async def await_confirmation(self, pending):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.confirm_started is not None:
                self.confirm_started.set()
            if self.confirm_gate is not None:
                await self.confirm_gate.wait()
            await asyncio.sleep(self.confirm_delay)
            if self.confirm_error or pending.tx_hash in self.fail_hashes:
                raise ConfirmationError(self.confirm_error or "reverted")
            return ConfirmedClaim(tx_hash=pending.tx_hash, block_number=self.latest_block + 1)
        finally:
            self.in_flight -= 1


def history_since(first_ts, n=1):
    return [HistoryEntry(tx_hash="0x%064x" % i, block_number=10 + i, timestamp=first_ts + i) for i in range(n)]


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def thresholds():
    return EligibilityThresholds(min_transaction_count=10, min_account_age_days=12)


@pytest.fixture
def oracle():
    return LocalCooldownOracle()


@pytest.fixture
def make_coordinator(clock, thresholds):
    def _make(gateway, oracle=None, confirmation_timeout=5.0, thresholds_override=None):
        return ClaimCoordinator(
            gateway=gateway,
            oracle=oracle if oracle is not None else LocalCooldownOracle(),
            thresholds=thresholds_override or thresholds,
            cooldown_seconds=COOLDOWN,
            confirmation_timeout=confirmation_timeout,
            clock=clock,
        )

    return _make
