from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

from faucet.integrations.chain_client import ChainGateway

COOLDOWN_MODE_LOCAL = "local"
COOLDOWN_MODE_CHAIN = "chain"


@dataclass
class CooldownRecord:
    next_eligible_time: int
    total_claims: int


class CooldownOracle(ABC):
    """
    Answers "when may this address claim again".
    A returned time of 0 (or any past time) means eligible now.
    """
    records_claims: bool = False

    @abstractmethod
    async def read_next_eligible_time(self, address: str) -> int:
        ...

    def record_claim(self, address: str, cooldown_seconds: int, now: int) -> int:
        raise NotImplementedError(f"{type(self).__name__} does not record claims")


class LocalCooldownOracle(CooldownOracle):
    """
    Process-memory cooldown state, keyed by normalized address.

    Empty at startup, never persisted and never pruned; an entry simply stops
    mattering once its time has passed. Not shared between processes, so
    running several instances against it lets an address claim once per
    instance.
    """
    records_claims = True

    def __init__(self):
        self._claims: Dict[str, CooldownRecord] = {}

    async def read_next_eligible_time(self, address: str) -> int:
        rec = self._claims.get(address)
        return rec.next_eligible_time if rec else 0

    def record_claim(self, address: str, cooldown_seconds: int, now: int) -> int:
        next_time = int(now) + int(cooldown_seconds)
        rec = self._claims.get(address)
        if rec is None:
            self._claims[address] = CooldownRecord(next_eligible_time=next_time, total_claims=1)
        else:
            rec.next_eligible_time = next_time
            rec.total_claims += 1
        return next_time

    def get_record(self, address: str) -> Optional[CooldownRecord]:
        return self._claims.get(address)

    def __len__(self) -> int:
        return len(self._claims)


class ChainCooldownOracle(CooldownOracle):
    """Reads the contract's own per-address record on every call."""

    def __init__(self, gateway: ChainGateway):
        self.gateway = gateway

    async def read_next_eligible_time(self, address: str) -> int:
        # GatewayError propagates; an unreadable cooldown is never "eligible"
        return int(await self.gateway.read_cooldown(address))


def build_cooldown_oracle(mode: str, gateway: ChainGateway) -> CooldownOracle:
    mode = (mode or COOLDOWN_MODE_LOCAL).strip().lower()
    if mode == COOLDOWN_MODE_LOCAL:
        return LocalCooldownOracle()
    if mode == COOLDOWN_MODE_CHAIN:
        return ChainCooldownOracle(gateway)
    raise ValueError(f"Unknown COOLDOWN_MODE: {mode!r} (expected 'local' or 'chain')")
