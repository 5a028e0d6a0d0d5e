"""Escrow Ledger — core business logic for conditional title transfer.

This is the application layer that coordinates between:
    - Role checks (who may call what)
    - Domain lifecycle guard (state machine)
    - Unlock predicate (when finalization is allowed)
    - Repositories (data access) and the audit event log
    - Collaborators: the asset registry and the payment rail

Every mutating operation is one unit of work: the asset's lock is taken,
a session is opened, the record is read FOR UPDATE, and the transaction
commits on success or rolls back on any error. Callers never see a
half-applied operation, and finalization either moves custody AND pays the
seller or does neither.

Both REST routes and the simulation call into this service.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_DOWN, Context, Decimal, InvalidOperation
from typing import TYPE_CHECKING

from statemachine.exceptions import TransitionNotAllowed

from title_escrow.config import Settings, get_settings
from title_escrow.domain.enums import DepositKind, EscrowStatus, EventType
from title_escrow.domain.exceptions import (
    AlreadyListedError,
    AssetInEscrowError,
    AssetNotFoundError,
    ConditionsNotMetError,
    DuplicateOperationError,
    EscrowNotFoundError,
    InsufficientValueError,
    InvalidListingError,
    InvalidStateTransitionError,
    NotAuthorizedError,
    NotOwnerError,
    PaymentError,
    TransferFailedError,
)
from title_escrow.domain.roles import Parties, authorize, finalizer_roles
from title_escrow.domain.state_machine import validate_transition
from title_escrow.domain.unlock import UnlockStatus, evaluate
from title_escrow.infrastructure.database.orm_models import (
    AMOUNT_INTEGER_DIGITS,
    AMOUNT_SCALE,
    AssetCustody,
    EscrowDeposit,
    EscrowEvent,
    EscrowPayout,
    EscrowRecord,
)
from title_escrow.infrastructure.database.repositories import (
    DepositRepository,
    EscrowRepository,
    EventRepository,
    PayoutRepository,
)
from title_escrow.infrastructure.locks import AssetLockManager, build_lock_manager
from title_escrow.logging_config import get_logger
from title_escrow.registry.sql_registry import SqlAssetRegistry
from title_escrow.services.payment_service import PaymentService

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from title_escrow.domain.collaborators import AssetRegistry, TransferReceipt, ValueRail

    RegistryFactory = Callable[[AsyncSession], AssetRegistry]

logger = get_logger(__name__)

AmountLike = Decimal | int | str

# Wide enough that arithmetic on storable amounts is never rounded.
AMOUNT_CONTEXT = Context(prec=AMOUNT_INTEGER_DIGITS + AMOUNT_SCALE + 1)
AMOUNT_QUANTUM = Decimal(1).scaleb(-AMOUNT_SCALE)


def to_amount(value: AmountLike) -> Decimal:
    """Coerce an incoming amount to Decimal, rejecting junk and floats."""
    if isinstance(value, float):
        raise TypeError("Amounts must be Decimal, int or str, not float")
    try:
        amount = Decimal(value)
    except InvalidOperation as err:
        raise InvalidListingError(f"Not a valid amount: {value!r}") from err
    if not amount.is_finite():
        raise InvalidListingError(f"Not a valid amount: {value!r}")
    # Must fit the stored column exactly; the database would round or overflow.
    if abs(amount) >= Decimal(10) ** AMOUNT_INTEGER_DIGITS:
        raise InvalidListingError(f"Amount out of range: {value!r}")
    truncated = amount.quantize(AMOUNT_QUANTUM, rounding=ROUND_DOWN, context=AMOUNT_CONTEXT)
    if truncated != amount:
        raise InvalidListingError(
            f"Amount has more than {AMOUNT_SCALE} decimal places: {value!r}"
        )
    return amount


@dataclass(frozen=True)
class FinalizationResult:
    """Outcome of a successful finalization."""

    record: EscrowRecord
    payout: TransferReceipt
    new_custodian: str


class EscrowLedger:
    """Owns escrow records, custodial balances and the unlock predicate."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
        locks: AssetLockManager | None = None,
        rail: ValueRail | None = None,
        registry_factory: RegistryFactory = SqlAssetRegistry,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._locks = locks or build_lock_manager(self._settings)
        self._rail = rail or PaymentService(simulate=self._settings.payment_simulate)
        self._registry_factory = registry_factory

    @property
    def identity(self) -> str:
        """Identity the ledger acts under in the asset registry."""
        return self._settings.ledger_identity

    # ------------------------------------------------------------------
    # Registry gateway
    # ------------------------------------------------------------------

    async def register_asset(self, asset_id: str, custodian: str) -> AssetCustody:
        """Bootstrap an asset into the registry under ``custodian``."""
        async with self._unit_of_work(asset_id) as session:
            return await SqlAssetRegistry(session).register_asset(asset_id, custodian)

    async def authorize_agent(self, asset_id: str, caller: str, agent: str) -> None:
        """Custodian authorizes ``agent`` (normally this ledger) to move the asset.

        While the asset has an open escrow record only the ledger itself may
        hold transfer rights, so handing them to anyone else is refused.
        """
        async with self._unit_of_work(asset_id) as session:
            await self._registry_factory(session).authorize_agent(asset_id, caller, agent)
            if agent != self.identity and await EscrowRepository(session).get_active(asset_id):
                logger.warning(
                    "registry.agent_change_refused",
                    asset_id=asset_id,
                    caller=caller,
                    agent=agent,
                )
                raise AssetInEscrowError(asset_id)

    async def custody(self, asset_id: str) -> tuple[str, str | None]:
        """Return (custodian, authorized agent) for an asset."""
        async with self._read() as session:
            registry = self._registry_factory(session)
            return (
                await registry.current_custodian(asset_id),
                await registry.authorized_agent(asset_id),
            )

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def list_asset(
        self,
        asset_id: str,
        caller: str,
        buyer: str,
        purchase_price: AmountLike,
        earnest_amount: AmountLike,
    ) -> EscrowRecord:
        """Open an escrow record for an asset the caller holds in custody."""
        price = to_amount(purchase_price)
        earnest = to_amount(earnest_amount)

        async with self._unit_of_work(asset_id) as session:
            registry = self._registry_factory(session)
            escrow_repo = EscrowRepository(session)

            if await registry.current_custodian(asset_id) != caller:
                raise NotOwnerError(asset_id, caller)

            if await escrow_repo.get_active(asset_id, for_update=True) is not None:
                raise AlreadyListedError(asset_id)

            self._validate_terms(caller, buyer, price, earnest)

            if await registry.authorized_agent(asset_id) != self.identity:
                raise NotAuthorizedError(asset_id, self.identity)

            record = await escrow_repo.create(
                EscrowRecord(
                    asset_id=asset_id,
                    seller=caller,
                    buyer=buyer,
                    inspector=self._settings.inspector_identity,
                    lender=self._settings.lender_identity,
                    purchase_price=price,
                    earnest_amount=earnest,
                    custodial_balance=Decimal("0"),
                    inspection_passed=False,
                    listed=True,
                    finalized=False,
                    status=EscrowStatus.LISTED.value,
                    approvals=[],
                )
            )

            await EventRepository(session).record(
                record,
                event_type=EventType.ASSET_LISTED,
                actor=caller,
                old_status=None,
                new_status=EscrowStatus.LISTED,
                metadata={
                    "buyer": buyer,
                    "purchase_price": str(price),
                    "earnest_amount": str(earnest),
                    "inspector": record.inspector,
                    "lender": record.lender,
                },
            )

        logger.info(
            "escrow.listed",
            asset_id=asset_id,
            seller=caller,
            buyer=buyer,
            purchase_price=str(price),
        )
        return record

    # ------------------------------------------------------------------
    # Deposits
    # ------------------------------------------------------------------

    async def deposit_earnest(
        self,
        asset_id: str,
        caller: str,
        amount: AmountLike,
        tx_reference: str | None = None,
    ) -> EscrowRecord:
        """Credit an earnest-money deposit to the record's custodial balance."""
        return await self._deposit(asset_id, caller, amount, DepositKind.EARNEST, tx_reference)

    async def deposit_funds(
        self,
        asset_id: str,
        caller: str,
        amount: AmountLike,
        tx_reference: str | None = None,
    ) -> EscrowRecord:
        """Credit funds sent directly into custody (e.g. the lender's loan)."""
        return await self._deposit(asset_id, caller, amount, DepositKind.FINANCING, tx_reference)

    async def _deposit(
        self,
        asset_id: str,
        caller: str,
        amount: AmountLike,
        kind: DepositKind,
        tx_reference: str | None,
    ) -> EscrowRecord:
        value = to_amount(amount)
        if value <= 0:
            raise InsufficientValueError(str(value))

        async with self._unit_of_work(asset_id) as session:
            record = await self._load_for_mutation(session, asset_id)
            authorize(self._parties(record), caller, "deposit")
            self._fire_transition(record, "receive_funds")

            deposit_repo = DepositRepository(session)
            if tx_reference is not None and await deposit_repo.exists(tx_reference):
                raise DuplicateOperationError(tx_reference)

            # Rejects a balance the amount column cannot hold.
            new_balance = to_amount(AMOUNT_CONTEXT.add(record.custodial_balance, value))

            receipt = await self._rail.receive(asset_id, caller, value, tx_reference)
            if tx_reference is None and await deposit_repo.exists(receipt.tx_reference):
                raise DuplicateOperationError(receipt.tx_reference)

            await deposit_repo.create(
                EscrowDeposit(
                    record_id=record.id,
                    depositor=caller,
                    amount=value,
                    kind=kind.value,
                    tx_reference=receipt.tx_reference,
                )
            )
            record.custodial_balance = new_balance
            await session.flush()

            await EventRepository(session).record(
                record,
                event_type=EventType.FUNDS_DEPOSITED,
                actor=caller,
                old_status=EscrowStatus.LISTED,
                new_status=EscrowStatus.LISTED,
                metadata={
                    "kind": kind.value,
                    "amount": str(value),
                    "tx_reference": receipt.tx_reference,
                    "balance": str(record.custodial_balance),
                },
            )

        logger.info(
            "escrow.deposited",
            asset_id=asset_id,
            depositor=caller,
            kind=kind.value,
            amount=str(value),
            balance=str(record.custodial_balance),
        )
        return record

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    async def update_inspection_status(
        self,
        asset_id: str,
        caller: str,
        passed: bool,
    ) -> EscrowRecord:
        """Inspector posts a pass/fail result. Last write wins until finalization."""
        async with self._unit_of_work(asset_id) as session:
            record = await self._load_for_mutation(session, asset_id)
            authorize(self._parties(record), caller, "update_inspection_status")
            self._fire_transition(record, "post_inspection")

            previous = record.inspection_passed
            record.inspection_passed = passed
            await session.flush()

            await EventRepository(session).record(
                record,
                event_type=EventType.INSPECTION_UPDATED,
                actor=caller,
                old_status=EscrowStatus.LISTED,
                new_status=EscrowStatus.LISTED,
                metadata={"previous": previous, "passed": passed},
            )

        logger.info("escrow.inspection_updated", asset_id=asset_id, passed=passed)
        return record

    # ------------------------------------------------------------------
    # Approval
    # ------------------------------------------------------------------

    async def approve_sale(self, asset_id: str, caller: str) -> EscrowRecord:
        """Record the caller's own approval. Buyer, seller and lender only."""
        async with self._unit_of_work(asset_id) as session:
            record = await self._load_for_mutation(session, asset_id)
            role = authorize(self._parties(record), caller, "approve_sale")
            self._fire_transition(record, "post_approval")

            if caller in record.approved_parties:
                logger.debug("escrow.approval_repeated", asset_id=asset_id, party=caller)
                return record

            await EscrowRepository(session).add_approval(record, caller, role.value)
            await EventRepository(session).record(
                record,
                event_type=EventType.SALE_APPROVED,
                actor=caller,
                old_status=EscrowStatus.LISTED,
                new_status=EscrowStatus.LISTED,
                metadata={"role": role.value},
            )

        logger.info("escrow.approved", asset_id=asset_id, party=caller, role=role.value)
        return record

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    async def finalize_sale(self, asset_id: str, caller: str) -> FinalizationResult:
        """Move custody to the buyer and pay the whole balance to the seller.

        Raises:
            UnauthorizedError: Caller is not an allowed finalizer.
            ConditionsNotMetError: Any precondition is false. Nothing changes.
            TransferFailedError: Registry or payment rail refused. Nothing changes.
        """
        async with self._unit_of_work(asset_id) as session:
            record = await self._load_for_mutation(session, asset_id)
            authorize(
                self._parties(record),
                caller,
                "finalize_sale",
                allowed=finalizer_roles(self._settings.finalizer_policy),
            )

            status = evaluate(record)
            if not status.can_finalize:
                logger.info(
                    "escrow.finalize_rejected",
                    asset_id=asset_id,
                    unmet=status.unmet,
                )
                raise ConditionsNotMetError(asset_id, status.unmet)

            self._fire_transition(record, "finalize_sale")

            payout_amount = record.custodial_balance
            registry = self._registry_factory(session)
            try:
                await registry.transfer_custody(
                    asset_id, record.seller, record.buyer, self.identity
                )
                receipt = await self._rail.pay(asset_id, record.seller, payout_amount)
            except (NotAuthorizedError, AssetNotFoundError, PaymentError) as err:
                logger.warning(
                    "escrow.finalize_transfer_failed",
                    asset_id=asset_id,
                    error=err.message,
                )
                raise TransferFailedError(asset_id, err.message) from err

            await PayoutRepository(session).create(
                EscrowPayout(
                    record_id=record.id,
                    recipient=record.seller,
                    amount=payout_amount,
                    tx_reference=receipt.tx_reference,
                )
            )

            record.custodial_balance = Decimal("0")
            record.finalized = True
            record.listed = False
            record.finalized_at = datetime.now(UTC)
            await EscrowRepository(session).update_status(record, EscrowStatus.FINALIZED)

            await EventRepository(session).record(
                record,
                event_type=EventType.SALE_FINALIZED,
                actor=caller,
                old_status=EscrowStatus.LISTED,
                new_status=EscrowStatus.FINALIZED,
                metadata={
                    "new_custodian": record.buyer,
                    "payout": receipt.to_dict(),
                },
            )

        logger.info(
            "escrow.finalized",
            asset_id=asset_id,
            buyer=record.buyer,
            seller=record.seller,
            payout=str(payout_amount),
            tx_reference=receipt.tx_reference,
        )
        return FinalizationResult(record=record, payout=receipt, new_custodian=record.buyer)

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_record(self, asset_id: str) -> EscrowRecord:
        """Most recent record for the asset (active, else last finalized)."""
        async with self._read() as session:
            record = await EscrowRepository(session).get_latest(asset_id)
        if record is None:
            raise EscrowNotFoundError(asset_id)
        return record

    async def is_listed(self, asset_id: str) -> bool:
        async with self._read() as session:
            record = await EscrowRepository(session).get_active(asset_id)
        return record is not None and record.listed

    async def get_balance(self, asset_id: str) -> Decimal:
        return (await self.get_record(asset_id)).custodial_balance

    async def buyer(self, asset_id: str) -> str:
        return (await self.get_record(asset_id)).buyer

    async def purchase_price(self, asset_id: str) -> Decimal:
        return (await self.get_record(asset_id)).purchase_price

    async def escrow_amount(self, asset_id: str) -> Decimal:
        """The earnest amount set at listing."""
        return (await self.get_record(asset_id)).earnest_amount

    async def inspection_passed(self, asset_id: str) -> bool:
        return (await self.get_record(asset_id)).inspection_passed

    async def approval(self, asset_id: str, identity: str) -> bool:
        return identity in (await self.get_record(asset_id)).approved_parties

    async def get_unlock_status(self, asset_id: str) -> UnlockStatus:
        return evaluate(await self.get_record(asset_id))

    async def get_events(self, asset_id: str) -> list[EscrowEvent]:
        async with self._read() as session:
            return await EventRepository(session).get_by_asset(asset_id)

    async def get_deposits(self, asset_id: str) -> list[EscrowDeposit]:
        record = await self.get_record(asset_id)
        async with self._read() as session:
            return await DepositRepository(session).get_by_record(record.id)

    async def get_history(self, asset_id: str) -> list[EscrowRecord]:
        async with self._read() as session:
            return await EscrowRepository(session).get_history(asset_id)

    async def total_paid_to(self, identity: str) -> Decimal:
        """Everything the ledger has ever paid out to an identity."""
        async with self._read() as session:
            return await PayoutRepository(session).total_paid_to(identity)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _unit_of_work(self, asset_id: str) -> AsyncIterator[AsyncSession]:
        async with self._locks.hold(asset_id):
            async with self._session_factory() as session, session.begin():
                yield session

    @asynccontextmanager
    async def _read(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            yield session

    async def _load_for_mutation(self, session: AsyncSession, asset_id: str) -> EscrowRecord:
        record = await EscrowRepository(session).get_latest(asset_id, for_update=True)
        if record is None:
            raise EscrowNotFoundError(asset_id)
        return record

    def _validate_terms(
        self,
        seller: str,
        buyer: str,
        price: Decimal,
        earnest: Decimal,
    ) -> None:
        if price < 0:
            raise InvalidListingError("purchase_price must be non-negative")
        if earnest < 0:
            raise InvalidListingError("earnest_amount must be non-negative")
        if earnest > price:
            raise InvalidListingError("earnest_amount cannot exceed purchase_price")
        if buyer == seller:
            raise InvalidListingError("buyer and seller must be different identities")
        if self._settings.inspector_identity in (buyer, seller):
            raise InvalidListingError("the inspector cannot be a party to the sale")

    @staticmethod
    def _parties(record: EscrowRecord) -> Parties:
        return Parties(
            buyer=record.buyer,
            seller=record.seller,
            inspector=record.inspector,
            lender=record.lender,
        )

    @staticmethod
    def _fire_transition(record: EscrowRecord, event_name: str) -> None:
        """Validate a lifecycle transition for the record.

        Raises InvalidStateTransitionError if the record no longer accepts it.
        """
        try:
            validate_transition(record.status, event_name)
        except TransitionNotAllowed as err:
            raise InvalidStateTransitionError(record.status, event_name) from err
