"""Domain exceptions for the Title Escrow Ledger.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.
"""


class EscrowLedgerError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "ESCROW_LEDGER_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Lifecycle Errors ---


class InvalidStateTransitionError(EscrowLedgerError):
    """Raised when an operation is not allowed in the record's current state.

    Example: depositing into a record that is already FINALIZED.
    """

    def __init__(self, current_state: str, attempted_event: str) -> None:
        super().__init__(
            message=f"Invalid state transition: {attempted_event} from {current_state}",
            code="INVALID_STATE_TRANSITION",
        )
        self.current_state = current_state
        self.attempted_event = attempted_event


class EscrowNotFoundError(EscrowLedgerError):
    """Raised when no escrow record exists for an asset."""

    def __init__(self, asset_id: str) -> None:
        super().__init__(
            message=f"No escrow record for asset: {asset_id}",
            code="ESCROW_NOT_FOUND",
        )
        self.asset_id = asset_id


class AlreadyListedError(EscrowLedgerError):
    """Raised when listing an asset that already has an active record."""

    def __init__(self, asset_id: str) -> None:
        super().__init__(
            message=f"Asset already listed: {asset_id}",
            code="ALREADY_LISTED",
        )
        self.asset_id = asset_id


class InvalidListingError(EscrowLedgerError):
    """Raised when listing terms are inconsistent (e.g. earnest above price)."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="INVALID_LISTING")


class ConditionsNotMetError(EscrowLedgerError):
    """Raised when finalization is attempted while the unlock predicate is false."""

    def __init__(self, asset_id: str, unmet: list[str]) -> None:
        super().__init__(
            message=f"Sale conditions not met for asset {asset_id}: {', '.join(unmet)}",
            code="CONDITIONS_NOT_MET",
        )
        self.asset_id = asset_id
        self.unmet = unmet


# --- Authorization Errors ---


class NotOwnerError(EscrowLedgerError):
    """Raised when the caller is not the asset's current custodian."""

    def __init__(self, asset_id: str, caller: str) -> None:
        super().__init__(
            message=f"{caller} is not the custodian of asset {asset_id}",
            code="NOT_OWNER",
        )
        self.asset_id = asset_id
        self.caller = caller


class UnauthorizedError(EscrowLedgerError):
    """Raised when the caller lacks the role an operation requires."""

    def __init__(self, caller: str, operation: str, allowed: list[str]) -> None:
        super().__init__(
            message=(
                f"{caller} may not {operation}; "
                f"allowed roles: {', '.join(allowed)}"
            ),
            code="UNAUTHORIZED",
        )
        self.caller = caller
        self.operation = operation


# --- Registry Errors ---


class AssetNotFoundError(EscrowLedgerError):
    """Raised when the registry has no entry for an asset."""

    def __init__(self, asset_id: str) -> None:
        super().__init__(
            message=f"Asset not registered: {asset_id}",
            code="ASSET_NOT_FOUND",
        )
        self.asset_id = asset_id


class AssetAlreadyRegisteredError(EscrowLedgerError):
    """Raised when registering an asset id twice."""

    def __init__(self, asset_id: str) -> None:
        super().__init__(
            message=f"Asset already registered: {asset_id}",
            code="ASSET_ALREADY_REGISTERED",
        )


class AssetInEscrowError(EscrowLedgerError):
    """Raised when custody rights are changed while an escrow record is open."""

    def __init__(self, asset_id: str) -> None:
        super().__init__(
            message=f"Asset {asset_id} is held in escrow; its transfer agent is locked",
            code="ASSET_IN_ESCROW",
        )
        self.asset_id = asset_id


class NotAuthorizedError(EscrowLedgerError):
    """Raised when an agent is not authorized to move custody of an asset."""

    def __init__(self, asset_id: str, agent: str) -> None:
        super().__init__(
            message=f"{agent} is not authorized to transfer asset {asset_id}",
            code="NOT_AUTHORIZED",
        )
        self.asset_id = asset_id
        self.agent = agent


# --- Value Errors ---


class InsufficientValueError(EscrowLedgerError):
    """Raised when a deposit conveys no value."""

    def __init__(self, amount: str) -> None:
        super().__init__(
            message=f"Deposit must convey a positive amount, got {amount}",
            code="INSUFFICIENT_VALUE",
        )


class PaymentError(EscrowLedgerError):
    """Raised when the payment rail rejects a value transfer."""

    def __init__(self, message: str, tx_reference: str | None = None) -> None:
        super().__init__(message=message, code="PAYMENT_ERROR")
        self.tx_reference = tx_reference


class TransferFailedError(EscrowLedgerError):
    """Raised when custody transfer or payout fails during finalization.

    The whole finalization is rolled back when this is raised.
    """

    def __init__(self, asset_id: str, reason: str) -> None:
        super().__init__(
            message=f"Finalization transfer failed for asset {asset_id}: {reason}",
            code="TRANSFER_FAILED",
        )
        self.asset_id = asset_id


# --- Concurrency / Idempotency Errors ---


class LockTimeoutError(EscrowLedgerError):
    """Raised when the per-asset lock cannot be acquired in time."""

    def __init__(self, asset_id: str, timeout: float) -> None:
        super().__init__(
            message=f"Timed out after {timeout}s waiting for asset lock: {asset_id}",
            code="LOCK_TIMEOUT",
        )


class DuplicateOperationError(EscrowLedgerError):
    """Raised when a deposit reference has already been credited."""

    def __init__(self, tx_reference: str) -> None:
        super().__init__(
            message=f"Duplicate operation detected for reference: {tx_reference}",
            code="DUPLICATE_OPERATION",
        )
