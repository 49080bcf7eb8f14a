from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

REASON_COOLDOWN_ACTIVE = "cooldown active"
REASON_NO_PRIOR_ACTIVITY = "no prior activity"
REASON_INSUFFICIENT_TX_COUNT = "insufficient transaction count"
REASON_ACCOUNT_TOO_YOUNG = "account too young"


class ErrorKind(str, Enum):
    INVALID_INPUT = "InvalidInput"
    GATEWAY_ERROR = "GatewayError"
    INELIGIBLE_DENIAL = "IneligibleDenial"
    SUBMISSION_ERROR = "SubmissionError"
    CONFIRMATION_ERROR = "ConfirmationError"
    INTERNAL_ERROR = "InternalError"


@dataclass(frozen=True)
class Granted:
    tx_hash: str
    next_eligible_time: int


@dataclass(frozen=True)
class Denied:
    """Expected, user-facing refusal. Never counts against the cooldown window."""
    reason: str
    next_eligible_time: Optional[int] = None
    transaction_count: Optional[int] = None
    kind: ErrorKind = ErrorKind.INELIGIBLE_DENIAL


@dataclass(frozen=True)
class Failed:
    error_kind: ErrorKind
    detail: str


ClaimOutcome = Union[Granted, Denied, Failed]
