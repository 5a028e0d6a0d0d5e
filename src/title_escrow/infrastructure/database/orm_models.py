"""SQLAlchemy 2.0 ORM models for the Title Escrow Ledger.

Six tables:
    1. escrow_records    — One row per listing; at most one active row per asset.
    2. escrow_approvals  — Which identities have approved a record (never deleted).
    3. escrow_deposits   — Every deposit credited to a record's custodial balance.
    4. escrow_payouts    — Every payout made out of custody.
    5. escrow_events     — Append-only audit log of every mutation.
    6. asset_custody     — The asset registry: custodian and transfer agent per asset.

Design decisions:
    - UUID surrogate keys for records; asset ids are caller-supplied strings.
    - Decimal amounts through the Amount type (exact on every backend).
    - Partial unique index on asset_id for non-finalized records (one active
      escrow per asset), so a finalized asset can be listed again.
    - Records, approvals, deposits and events are never deleted.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    event,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

IDENTITY_LENGTH = 128

# NUMERIC(38, 18): 20 integer digits, 18 fractional.
AMOUNT_SCALE = 18
AMOUNT_INTEGER_DIGITS = 20


class Amount(TypeDecorator):
    """Exact decimal amount.

    NUMERIC on PostgreSQL; a plain string elsewhere, since SQLite would
    otherwise round-trip decimals through float.
    """

    impl = String(80)
    cache_ok = True

    def load_dialect_impl(self, dialect):  # noqa: ANN001
        if dialect.name == "postgresql":
            precision = AMOUNT_INTEGER_DIGITS + AMOUNT_SCALE
            return dialect.type_descriptor(Numeric(precision, AMOUNT_SCALE))
        return dialect.type_descriptor(String(80))

    def process_bind_param(self, value, dialect):  # noqa: ANN001
        if value is None:
            return None
        value = Decimal(value)
        if dialect.name == "postgresql":
            return value
        return str(value)

    def process_result_value(self, value, dialect):  # noqa: ANN001
        if value is None:
            return None
        return Decimal(value)


JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _set_updated_at(mapper, connection, target):  # noqa: ANN001
    """SQLAlchemy event listener that updates `updated_at` before flush."""
    if hasattr(target, "updated_at"):
        target.updated_at = _utcnow()


# ---------------------------------------------------------------------------
# 1. escrow_records
# ---------------------------------------------------------------------------
class EscrowRecord(Base):
    """Escrow state for one listing of one asset."""

    __tablename__ = "escrow_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    asset_id: Mapped[str] = mapped_column(
        String(IDENTITY_LENGTH),
        nullable=False,
        comment="Registry identifier of the asset under escrow",
    )

    # --- Parties (fixed at listing) ---
    seller: Mapped[str] = mapped_column(String(IDENTITY_LENGTH), nullable=False)
    buyer: Mapped[str] = mapped_column(String(IDENTITY_LENGTH), nullable=False)
    inspector: Mapped[str] = mapped_column(String(IDENTITY_LENGTH), nullable=False)
    lender: Mapped[str] = mapped_column(String(IDENTITY_LENGTH), nullable=False)

    # --- Financials ---
    purchase_price: Mapped[Decimal] = mapped_column(Amount, nullable=False)
    earnest_amount: Mapped[Decimal] = mapped_column(
        Amount,
        nullable=False,
        comment="Advisory minimum deposit; not enforced at deposit time",
    )
    custodial_balance: Mapped[Decimal] = mapped_column(
        Amount,
        nullable=False,
        default=Decimal("0"),
        comment="Funds held for this record; zeroed only by finalization",
    )

    # --- Conditions ---
    inspection_passed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # --- Lifecycle ---
    listed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    finalized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="LISTED",
        comment="Lifecycle state (guarded by EscrowStateMachine)",
    )
    finalized_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    approvals: Mapped[list[EscrowApproval]] = relationship(
        "EscrowApproval",
        back_populates="record",
        cascade="all",
        order_by="EscrowApproval.approved_at.asc()",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("status IN ('LISTED', 'FINALIZED')", name="ck_escrow_valid_status"),
        CheckConstraint(
            "(finalized AND NOT listed) OR (NOT finalized AND listed)",
            name="ck_escrow_listed_xor_finalized",
        ),
        Index(
            "uq_escrow_active_asset",
            "asset_id",
            unique=True,
            postgresql_where=text("NOT finalized"),
            sqlite_where=text("NOT finalized"),
        ),
        Index("idx_escrow_asset_created", "asset_id", "created_at"),
        Index("idx_escrow_buyer", "buyer"),
        Index("idx_escrow_seller", "seller"),
    )

    @property
    def approved_parties(self) -> frozenset[str]:
        """Identities that have approved this record."""
        return frozenset(a.party for a in self.approvals)

    def __repr__(self) -> str:
        return (
            f"<EscrowRecord asset={self.asset_id} status={self.status} "
            f"balance={self.custodial_balance}>"
        )


# ---------------------------------------------------------------------------
# 2. escrow_approvals
# ---------------------------------------------------------------------------
class EscrowApproval(Base):
    """One identity's approval of one record."""

    __tablename__ = "escrow_approvals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("escrow_records.id"), nullable=False
    )
    party: Mapped[str] = mapped_column(String(IDENTITY_LENGTH), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Role the party approved under (buyer, seller, lender)",
    )
    approved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    record: Mapped[EscrowRecord] = relationship("EscrowRecord", back_populates="approvals")

    __table_args__ = (UniqueConstraint("record_id", "party", name="uq_approval_record_party"),)

    def __repr__(self) -> str:
        return f"<EscrowApproval record={self.record_id} party={self.party}>"


# ---------------------------------------------------------------------------
# 3. escrow_deposits
# ---------------------------------------------------------------------------
class EscrowDeposit(Base):
    """Funds credited into custody for a record."""

    __tablename__ = "escrow_deposits"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("escrow_records.id"), nullable=False
    )
    depositor: Mapped[str] = mapped_column(String(IDENTITY_LENGTH), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Amount, nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    tx_reference: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        unique=True,
        comment="Payment rail reference; a reference is credited at most once",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        CheckConstraint("kind IN ('EARNEST', 'FINANCING')", name="ck_deposit_kind"),
        Index("idx_deposit_record", "record_id"),
    )

    def __repr__(self) -> str:
        return f"<EscrowDeposit record={self.record_id} amount={self.amount} kind={self.kind}>"


# ---------------------------------------------------------------------------
# 4. escrow_payouts
# ---------------------------------------------------------------------------
class EscrowPayout(Base):
    """Funds paid out of custody on finalization."""

    __tablename__ = "escrow_payouts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("escrow_records.id"), nullable=False
    )
    recipient: Mapped[str] = mapped_column(String(IDENTITY_LENGTH), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Amount, nullable=False)
    tx_reference: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (Index("idx_payout_recipient", "recipient"),)

    def __repr__(self) -> str:
        return f"<EscrowPayout recipient={self.recipient} amount={self.amount}>"


# ---------------------------------------------------------------------------
# 5. escrow_events (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class EscrowEvent(Base):
    """Immutable audit record of every successful mutation of a record.

    This table is APPEND-ONLY. No UPDATE or DELETE operations are permitted
    at the application level.
    """

    __tablename__ = "escrow_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("escrow_records.id"), nullable=False
    )
    asset_id: Mapped[str] = mapped_column(String(IDENTITY_LENGTH), nullable=False)
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    old_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)
    actor: Mapped[str] = mapped_column(
        String(IDENTITY_LENGTH),
        nullable=False,
        comment="Authenticated identity that performed the operation",
    )
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata", JSONType, nullable=True, default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("idx_event_record", "record_id"),
        Index("idx_event_asset", "asset_id"),
        Index("idx_event_type", "event_type"),
    )

    def __repr__(self) -> str:
        return f"<EscrowEvent asset={self.asset_id} type={self.event_type} actor={self.actor}>"


# ---------------------------------------------------------------------------
# 6. asset_custody (registry)
# ---------------------------------------------------------------------------
class AssetCustody(Base):
    """Current custodian of a registered asset and its authorized transfer agent."""

    __tablename__ = "asset_custody"

    asset_id: Mapped[str] = mapped_column(String(IDENTITY_LENGTH), primary_key=True)
    custodian: Mapped[str] = mapped_column(String(IDENTITY_LENGTH), nullable=False)
    transfer_agent: Mapped[str | None] = mapped_column(
        String(IDENTITY_LENGTH),
        nullable=True,
        default=None,
        comment="Cleared whenever custody moves",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return f"<AssetCustody asset={self.asset_id} custodian={self.custodian}>"


event.listen(EscrowRecord, "before_update", _set_updated_at)
event.listen(AssetCustody, "before_update", _set_updated_at)
