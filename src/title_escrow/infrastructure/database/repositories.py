"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import select

from title_escrow.infrastructure.database.orm_models import (
    AssetCustody,
    EscrowApproval,
    EscrowDeposit,
    EscrowEvent,
    EscrowPayout,
    EscrowRecord,
)

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from title_escrow.domain.enums import EscrowStatus, EventType


class EscrowRepository:
    """Data access for escrow records and their approvals."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, record: EscrowRecord) -> EscrowRecord:
        """Insert a new escrow record."""
        self._session.add(record)
        await self._session.flush()
        return record

    async def get_active(self, asset_id: str, for_update: bool = False) -> EscrowRecord | None:
        """Fetch the non-finalized record for an asset, optionally row-locked."""
        stmt = select(EscrowRecord).where(
            EscrowRecord.asset_id == asset_id,
            EscrowRecord.finalized.is_(False),
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_latest(self, asset_id: str, for_update: bool = False) -> EscrowRecord | None:
        """Fetch the most recent record for an asset, finalized or not."""
        stmt = (
            select(EscrowRecord)
            .where(EscrowRecord.asset_id == asset_id)
            .order_by(EscrowRecord.finalized.asc(), EscrowRecord.created_at.desc())
            .limit(1)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_history(self, asset_id: str) -> list[EscrowRecord]:
        """Fetch every record ever created for an asset, newest first."""
        result = await self._session.execute(
            select(EscrowRecord)
            .where(EscrowRecord.asset_id == asset_id)
            .order_by(EscrowRecord.created_at.desc())
        )
        return list(result.scalars().all())

    async def add_approval(self, record: EscrowRecord, party: str, role: str) -> EscrowApproval:
        """Attach an approval row to a record."""
        approval = EscrowApproval(party=party, role=role)
        record.approvals.append(approval)
        await self._session.flush()
        return approval

    async def update_status(self, record: EscrowRecord, new_status: EscrowStatus) -> EscrowRecord:
        """Update the status of a record (call AFTER state machine validation)."""
        record.status = new_status.value
        await self._session.flush()
        return record


class DepositRepository:
    """Data access for deposits credited into custody."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, deposit: EscrowDeposit) -> EscrowDeposit:
        self._session.add(deposit)
        await self._session.flush()
        return deposit

    async def exists(self, tx_reference: str) -> bool:
        """Return True if a deposit with this reference was already credited."""
        result = await self._session.execute(
            select(EscrowDeposit.id).where(EscrowDeposit.tx_reference == tx_reference)
        )
        return result.first() is not None

    async def get_by_record(self, record_id: uuid.UUID) -> list[EscrowDeposit]:
        """Fetch deposits for a record in the order they were credited."""
        result = await self._session.execute(
            select(EscrowDeposit)
            .where(EscrowDeposit.record_id == record_id)
            .order_by(EscrowDeposit.created_at.asc())
        )
        return list(result.scalars().all())


class PayoutRepository:
    """Data access for payouts made out of custody."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, payout: EscrowPayout) -> EscrowPayout:
        self._session.add(payout)
        await self._session.flush()
        return payout

    async def get_by_recipient(self, recipient: str) -> list[EscrowPayout]:
        result = await self._session.execute(
            select(EscrowPayout)
            .where(EscrowPayout.recipient == recipient)
            .order_by(EscrowPayout.created_at.asc())
        )
        return list(result.scalars().all())

    async def total_paid_to(self, recipient: str) -> Decimal:
        """Sum every payout received by an identity."""
        payouts = await self.get_by_recipient(recipient)
        return sum((p.amount for p in payouts), Decimal("0"))


class EventRepository:
    """Data access for the append-only audit event log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        record: EscrowRecord,
        event_type: EventType,
        actor: str,
        old_status: EscrowStatus | None,
        new_status: EscrowStatus,
        metadata: dict | None = None,
    ) -> EscrowEvent:
        """Append a new audit event. This is the ONLY write operation allowed."""
        evt = EscrowEvent(
            record_id=record.id,
            asset_id=record.asset_id,
            event_type=event_type.value,
            old_status=old_status.value if old_status else None,
            new_status=new_status.value,
            actor=actor,
            metadata_json=metadata,
        )
        self._session.add(evt)
        await self._session.flush()
        return evt

    async def get_by_asset(self, asset_id: str) -> list[EscrowEvent]:
        """Fetch all events for an asset across listings, in chronological order."""
        result = await self._session.execute(
            select(EscrowEvent)
            .where(EscrowEvent.asset_id == asset_id)
            .order_by(EscrowEvent.created_at.asc())
        )
        return list(result.scalars().all())


class CustodyRepository:
    """Data access for the asset registry table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, custody: AssetCustody) -> AssetCustody:
        self._session.add(custody)
        await self._session.flush()
        return custody

    async def get(self, asset_id: str, for_update: bool = False) -> AssetCustody | None:
        stmt = select(AssetCustody).where(AssetCustody.asset_id == asset_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def save(self, custody: AssetCustody) -> AssetCustody:
        await self._session.flush()
        return custody
