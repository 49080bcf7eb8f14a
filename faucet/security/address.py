from __future__ import annotations
from typing import Any

from web3 import Web3


class InvalidAddress(ValueError):
    pass


def normalize_address(value: Any) -> str:
    """
    Canonical (EIP-55 checksummed) form of a claimant address.
    Letter case of the input is ignored, so every spelling maps to one key.
    """
    if value is None or not isinstance(value, str) or not value.strip():
        raise InvalidAddress("Address required")

    candidate = value.strip().lower()
    if not Web3.is_address(candidate):
        raise InvalidAddress("Invalid address")
    return Web3.to_checksum_address(candidate)
