"""Unlock predicate for escrow finalization.

The predicate is a pure conjunction of independently settable flags plus a
balance threshold. It is computed fresh from the record on every call; no
combined "ready" flag is ever stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from decimal import Decimal


class RecordLike(Protocol):
    listed: bool
    finalized: bool
    inspection_passed: bool
    custodial_balance: Decimal
    purchase_price: Decimal
    buyer: str
    seller: str
    lender: str

    @property
    def approved_parties(self) -> frozenset[str]: ...


# Condition names reported back to callers.
NOT_LISTED = "listed"
ALREADY_FINALIZED = "not_finalized"
INSPECTION = "inspection_passed"
BUYER_APPROVAL = "buyer_approved"
SELLER_APPROVAL = "seller_approved"
LENDER_APPROVAL = "lender_approved"
FUNDING = "fully_funded"


@dataclass(frozen=True)
class UnlockStatus:
    """Per-condition view of the unlock predicate for one record."""

    listed: bool
    finalized: bool
    inspection_passed: bool
    buyer_approved: bool
    seller_approved: bool
    lender_approved: bool
    fully_funded: bool
    unmet: list[str] = field(default_factory=list)

    @property
    def can_finalize(self) -> bool:
        return not self.unmet

    def to_dict(self) -> dict:
        return {
            "listed": self.listed,
            "finalized": self.finalized,
            "inspection_passed": self.inspection_passed,
            "buyer_approved": self.buyer_approved,
            "seller_approved": self.seller_approved,
            "lender_approved": self.lender_approved,
            "fully_funded": self.fully_funded,
            "can_finalize": self.can_finalize,
            "unmet": list(self.unmet),
        }


def evaluate(record: RecordLike) -> UnlockStatus:
    """Evaluate every finalization precondition against the record."""
    approved = record.approved_parties
    checks = {
        NOT_LISTED: record.listed,
        ALREADY_FINALIZED: not record.finalized,
        INSPECTION: record.inspection_passed,
        BUYER_APPROVAL: record.buyer in approved,
        SELLER_APPROVAL: record.seller in approved,
        LENDER_APPROVAL: record.lender in approved,
        FUNDING: record.custodial_balance >= record.purchase_price,
    }
    return UnlockStatus(
        listed=record.listed,
        finalized=record.finalized,
        inspection_passed=checks[INSPECTION],
        buyer_approved=checks[BUYER_APPROVAL],
        seller_approved=checks[SELLER_APPROVAL],
        lender_approved=checks[LENDER_APPROVAL],
        fully_funded=checks[FUNDING],
        unmet=[name for name, ok in checks.items() if not ok],
    )


def can_finalize(record: RecordLike) -> bool:
    return evaluate(record).can_finalize
