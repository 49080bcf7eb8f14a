from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from faucet.domain.outcomes import (
    REASON_ACCOUNT_TOO_YOUNG,
    REASON_INSUFFICIENT_TX_COUNT,
    REASON_NO_PRIOR_ACTIVITY,
)

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class ActivitySnapshot:
    transaction_count: int
    first_activity_timestamp: Optional[int] = None


@dataclass(frozen=True)
class EligibilityThresholds:
    min_transaction_count: int
    min_account_age_days: float = 0

    @classmethod
    def from_settings(cls, settings) -> "EligibilityThresholds":
        return cls(
            min_transaction_count=max(int(settings.MIN_TX_COUNT), 0),
            min_account_age_days=max(float(settings.MIN_ACCOUNT_AGE_DAYS), 0.0),
        )

    @property
    def checks_age(self) -> bool:
        return self.min_account_age_days > 0


@dataclass(frozen=True)
class EligibilityVerdict:
    approved: bool
    reason: Optional[str] = None
    transaction_count: Optional[int] = None


APPROVED = EligibilityVerdict(approved=True)


def evaluate(
    snapshot: ActivitySnapshot,
    thresholds: EligibilityThresholds,
    now: float,
) -> EligibilityVerdict:
    """
    Decide whether an address's activity passes the anti-abuse thresholds.

    Rules run in order and the first failing one wins:
    1. no transactions and no known first activity -> "no prior activity"
    2. fewer transactions than required -> "insufficient transaction count"
    3. account younger than required -> "account too young"

    An unknown first-activity time with a non-zero count skips the age rule.
    """
    count = snapshot.transaction_count
    first_seen = snapshot.first_activity_timestamp

    if count == 0 and first_seen is None:
        return EligibilityVerdict(False, REASON_NO_PRIOR_ACTIVITY, count)

    if count < thresholds.min_transaction_count:
        return EligibilityVerdict(False, REASON_INSUFFICIENT_TX_COUNT, count)

    if thresholds.checks_age and first_seen is not None:
        age_days = (now - first_seen) / SECONDS_PER_DAY
        if age_days < thresholds.min_account_age_days:
            return EligibilityVerdict(False, REASON_ACCOUNT_TOO_YOUNG, count)

    return APPROVED
