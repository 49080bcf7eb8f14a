from typing import Optional

from pydantic import BaseModel


class AddressIn(BaseModel):
    # optional so a missing field is answered with our own 400 body
    address: Optional[str] = None


class CooldownOut(BaseModel):
    nextClaim: int


class ClaimOut(BaseModel):
    success: bool
    txHash: Optional[str] = None
    nextClaim: Optional[int] = None
    error: Optional[str] = None
    transactionCount: Optional[int] = None   # observed count, for denials


class StatsOut(BaseModel):
    window_min: int
    enabled: bool
    granted: int
    denied: int
    failed: int
