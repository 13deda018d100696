"""
Credit ledger - decides which credit bucket a booking draws from or restores to

Pure functions over (mock type, balances); callers write the outcome back to
the contact through HubSpot.
"""

import logging
from typing import Optional, Union

from pydantic import BaseModel

from ...shared.mock_types import MockType

logger = logging.getLogger(__name__)

SHARED_BUCKET = "shared_mock_credits"

SPECIFIC_BUCKETS = {
    MockType.SITUATIONAL_JUDGMENT: "sj_credits",
    MockType.CLINICAL_SKILLS: "cs_credits",
    MockType.MINI_MOCK: "sjmini_credits",
}

# Mini-mock sessions never fall back to the shared bucket
SPECIFIC_ONLY_TYPES = {MockType.MINI_MOCK}

TOKEN_LABELS = {
    "sj_credits": "Situational Judgment Token",
    "cs_credits": "Clinical Skills Token",
    "sjmini_credits": "Mini-mock Token",
    SHARED_BUCKET: "Shared Token",
}

CREDIT_PROPERTIES = ["sj_credits", "cs_credits", "sjmini_credits", SHARED_BUCKET]


class CreditBalances(BaseModel):
    sj_credits: int = 0
    cs_credits: int = 0
    sjmini_credits: int = 0
    shared_mock_credits: int = 0

    def get(self, bucket: str) -> int:
        return getattr(self, bucket)


class CreditBreakdown(BaseModel):
    """Credits usable for one session type"""

    specific_credits: int
    shared_credits: int

    @property
    def total(self) -> int:
        return self.specific_credits + self.shared_credits


class CreditTransactionIntent(BaseModel):
    """Which bucket to change, by how much, and the resulting balance"""

    credit_field: str
    amount: int
    previous_balance: int
    new_balance: int

    @property
    def token_used(self) -> str:
        return TOKEN_LABELS.get(self.credit_field, "Unknown Token")


def _as_mock_type(mock_type: Union[MockType, str]) -> MockType:
    try:
        return MockType(mock_type)
    except ValueError as e:
        raise ValueError(f"Unknown mock type: {mock_type}") from e


def credit_breakdown(mock_type: Union[MockType, str], balances: CreditBalances) -> CreditBreakdown:
    """Specific and shared credits available for a session type"""
    mock_type = _as_mock_type(mock_type)
    specific = balances.get(SPECIFIC_BUCKETS[mock_type])
    shared = 0 if mock_type in SPECIFIC_ONLY_TYPES else balances.shared_mock_credits
    return CreditBreakdown(specific_credits=max(0, specific), shared_credits=max(0, shared))


def select_bucket(mock_type: Union[MockType, str], balances: CreditBalances) -> str:
    """Specific bucket while it has credits, otherwise the shared bucket"""
    mock_type = _as_mock_type(mock_type)
    specific_bucket = SPECIFIC_BUCKETS[mock_type]
    if mock_type in SPECIFIC_ONLY_TYPES or balances.get(specific_bucket) > 0:
        return specific_bucket
    return SHARED_BUCKET


def plan_debit(mock_type: Union[MockType, str], balances: CreditBalances) -> CreditTransactionIntent:
    """Debit one credit from the selected bucket, floored at zero"""
    bucket = select_bucket(mock_type, balances)
    current = balances.get(bucket)
    return CreditTransactionIntent(
        credit_field=bucket,
        amount=-1,
        previous_balance=current,
        new_balance=max(0, current - 1),
    )


def bucket_from_token(token_used: Optional[str]) -> Optional[str]:
    """Reverse lookup of the bucket recorded on a booking at creation"""
    if not token_used:
        return None
    for bucket, label in TOKEN_LABELS.items():
        if label == token_used:
            return bucket
    return None


def plan_restore(
    mock_type: Union[MockType, str],
    balances: CreditBalances,
    token_used: Optional[str] = None,
) -> CreditTransactionIntent:
    """
    Restore one credit.

    When the booking recorded which bucket it debited, that bucket is credited
    back verbatim. Older bookings without the record fall back to the debit
    rule applied to the current balances.
    """
    bucket = bucket_from_token(token_used)
    if bucket is None:
        if token_used:
            logger.warning(f"⚠️ Unrecognised token_used '{token_used}', recomputing restore bucket")
        bucket = select_bucket(mock_type, balances)

    current = balances.get(bucket)
    return CreditTransactionIntent(
        credit_field=bucket,
        amount=1,
        previous_balance=current,
        new_balance=current + 1,
    )
