"""Domain enumerations for the Title Escrow Ledger.

These enums define the canonical roles, states and event types used
throughout the system. They are framework-agnostic (no SQLAlchemy, no
FastAPI imports).
"""

import enum


class Role(enum.StrEnum):
    """Parties that can act on an escrow record."""

    BUYER = "buyer"
    SELLER = "seller"
    INSPECTOR = "inspector"
    LENDER = "lender"


APPROVING_ROLES: tuple[Role, ...] = (Role.BUYER, Role.SELLER, Role.LENDER)


class EscrowStatus(enum.StrEnum):
    """Lifecycle states of an escrow record.

    Transitions are enforced by the EscrowStateMachine guard.
    See domain/state_machine.py for the transition table.
    """

    LISTED = "LISTED"
    FINALIZED = "FINALIZED"


class DepositKind(enum.StrEnum):
    """How funds entered custody."""

    EARNEST = "EARNEST"
    FINANCING = "FINANCING"


class FinalizerPolicy(enum.StrEnum):
    """Who may trigger finalization once the unlock predicate holds."""

    SELLER = "seller"
    ANY_PARTY = "any_party"


class EventType(enum.StrEnum):
    """Types of audit events recorded in the escrow_events table.

    Every successful mutation produces exactly one event.
    """

    ASSET_LISTED = "ASSET_LISTED"
    FUNDS_DEPOSITED = "FUNDS_DEPOSITED"
    INSPECTION_UPDATED = "INSPECTION_UPDATED"
    SALE_APPROVED = "SALE_APPROVED"
    SALE_FINALIZED = "SALE_FINALIZED"
