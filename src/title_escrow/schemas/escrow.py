"""Pydantic schemas for the Escrow API.

These schemas define the request/response shapes for the REST API. They are
separate from the ORM models to keep the API and database layers apart.

Amounts are Decimal throughout and serialize as strings, so no precision is
lost on the way out. Request bodies never carry the caller's identity; that
comes from the API key.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from title_escrow.domain.unlock import UnlockStatus
    from title_escrow.infrastructure.database.orm_models import AssetCustody, EscrowRecord
    from title_escrow.services.escrow_service import FinalizationResult

IDENTITY_FIELD = {"min_length": 1, "max_length": 128}

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class ListAssetRequest(BaseModel):
    """Request body for listing an asset into escrow. The caller is the seller."""

    buyer: str = Field(
        ...,
        **IDENTITY_FIELD,
        description="Identity of the buyer",
        examples=["0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18"],
    )
    purchase_price: Decimal = Field(
        ...,
        description="Total funds that must be in custody before finalization",
        examples=["250000"],
    )
    earnest_amount: Decimal = Field(
        ...,
        description="Advisory earnest deposit; must not exceed the purchase price",
        examples=["25000"],
    )


class DepositRequest(BaseModel):
    """Request body for an earnest or financing deposit."""

    amount: Decimal = Field(..., description="Amount to move into custody", examples=["1000"])
    tx_reference: str | None = Field(
        default=None,
        max_length=128,
        description="Reference of a transfer already made; credited at most once",
    )


class InspectionRequest(BaseModel):
    """Request body for the inspector's result."""

    passed: bool = Field(..., description="Whether the asset passed inspection")


class RegisterAssetRequest(BaseModel):
    """Request body for bootstrapping an asset into the registry."""

    asset_id: str = Field(..., **IDENTITY_FIELD)
    custodian: str = Field(..., **IDENTITY_FIELD)


class AuthorizeAgentRequest(BaseModel):
    """Request body for authorizing a transfer agent.

    Leave ``agent`` unset to authorize the escrow ledger itself.
    """

    agent: str | None = Field(default=None, max_length=128)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class EscrowRecordResponse(BaseModel):
    """Response schema for an escrow record."""

    id: uuid.UUID
    asset_id: str
    seller: str
    buyer: str
    inspector: str
    lender: str
    purchase_price: Decimal
    earnest_amount: Decimal
    custodial_balance: Decimal
    inspection_passed: bool
    approvals: list[str]
    listed: bool
    finalized: bool
    status: str
    finalized_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: EscrowRecord) -> EscrowRecordResponse:
        return cls(
            id=record.id,
            asset_id=record.asset_id,
            seller=record.seller,
            buyer=record.buyer,
            inspector=record.inspector,
            lender=record.lender,
            purchase_price=record.purchase_price,
            earnest_amount=record.earnest_amount,
            custodial_balance=record.custodial_balance,
            inspection_passed=record.inspection_passed,
            approvals=[a.party for a in record.approvals],
            listed=record.listed,
            finalized=record.finalized,
            status=record.status,
            finalized_at=record.finalized_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class FinalizeResponse(BaseModel):
    """Response schema for a successful finalization."""

    record: EscrowRecordResponse
    new_custodian: str
    payout_recipient: str
    payout_amount: Decimal
    payout_tx_reference: str

    @classmethod
    def from_result(cls, result: FinalizationResult) -> FinalizeResponse:
        return cls(
            record=EscrowRecordResponse.from_record(result.record),
            new_custodian=result.new_custodian,
            payout_recipient=result.payout.counterparty,
            payout_amount=result.payout.amount,
            payout_tx_reference=result.payout.tx_reference,
        )


class BalanceResponse(BaseModel):
    asset_id: str
    balance: Decimal


class ListedResponse(BaseModel):
    asset_id: str
    listed: bool


class ApprovalResponse(BaseModel):
    asset_id: str
    identity: str
    approved: bool


class UnlockStatusResponse(BaseModel):
    """Per-condition view of whether the sale can be finalized right now."""

    asset_id: str
    status: str
    listed: bool
    finalized: bool
    inspection_passed: bool
    buyer_approved: bool
    seller_approved: bool
    lender_approved: bool
    fully_funded: bool
    can_finalize: bool
    unmet: list[str]
    allowed_events: list[str] = Field(
        description="State machine events that can fire from the current status"
    )

    @classmethod
    def build(
        cls,
        asset_id: str,
        status: str,
        unlock: UnlockStatus,
        allowed_events: list[str],
    ) -> UnlockStatusResponse:
        return cls(asset_id=asset_id, status=status, allowed_events=allowed_events, **unlock.to_dict())


class EscrowEventResponse(BaseModel):
    """Response schema for an audit event."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    record_id: uuid.UUID
    asset_id: str
    event_type: str
    old_status: str | None
    new_status: str
    actor: str
    metadata: dict | None = Field(default=None, validation_alias="metadata_json")
    created_at: datetime


class CustodyResponse(BaseModel):
    """Registry view of an asset."""

    model_config = ConfigDict(from_attributes=True)

    asset_id: str
    custodian: str
    transfer_agent: str | None

    @classmethod
    def from_custody(cls, custody: AssetCustody) -> CustodyResponse:
        return cls.model_validate(custody)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    redis: str = "unknown"
