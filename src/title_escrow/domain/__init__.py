"""Domain layer — pure business logic with zero framework dependencies."""

from title_escrow.domain.collaborators import (
    AssetRegistry,
    TransferReceipt,
    ValueRail,
)
from title_escrow.domain.enums import (
    DepositKind,
    EscrowStatus,
    EventType,
    FinalizerPolicy,
    Role,
)
from title_escrow.domain.exceptions import (
    AlreadyListedError,
    ConditionsNotMetError,
    EscrowLedgerError,
    EscrowNotFoundError,
    InsufficientValueError,
    InvalidStateTransitionError,
    NotAuthorizedError,
    NotOwnerError,
    TransferFailedError,
    UnauthorizedError,
)
from title_escrow.domain.roles import Parties, authorize
from title_escrow.domain.state_machine import (
    EscrowStateMachine,
    validate_transition,
)
from title_escrow.domain.unlock import UnlockStatus, can_finalize, evaluate

__all__ = [
    "AssetRegistry",
    "TransferReceipt",
    "ValueRail",
    "DepositKind",
    "EscrowStatus",
    "EventType",
    "FinalizerPolicy",
    "Role",
    "AlreadyListedError",
    "ConditionsNotMetError",
    "EscrowLedgerError",
    "EscrowNotFoundError",
    "InsufficientValueError",
    "InvalidStateTransitionError",
    "NotAuthorizedError",
    "NotOwnerError",
    "TransferFailedError",
    "UnauthorizedError",
    "Parties",
    "authorize",
    "EscrowStateMachine",
    "validate_transition",
    "UnlockStatus",
    "can_finalize",
    "evaluate",
]
