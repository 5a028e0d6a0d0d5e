"""Escrow REST API routes.

These endpoints provide the HTTP interface for listing an asset, depositing
funds, posting the inspection result, approving and finalizing the sale, and
reading escrow state. The simulation calls the same service layer directly.

Routes:
    POST   /api/v1/escrow/{asset_id}/list                  — Seller lists the asset
    POST   /api/v1/escrow/{asset_id}/earnest               — Earnest-money deposit
    POST   /api/v1/escrow/{asset_id}/funds                 — Financing deposit
    POST   /api/v1/escrow/{asset_id}/inspection            — Inspector posts result
    POST   /api/v1/escrow/{asset_id}/approve               — Party approves the sale
    POST   /api/v1/escrow/{asset_id}/finalize              — Finalize the sale
    GET    /api/v1/escrow/{asset_id}                       — Record details
    GET    /api/v1/escrow/{asset_id}/balance               — Custodial balance
    GET    /api/v1/escrow/{asset_id}/listed                — Whether the asset is listed
    GET    /api/v1/escrow/{asset_id}/approvals/{identity}  — Approval flag
    GET    /api/v1/escrow/{asset_id}/status                — Unlock conditions
    GET    /api/v1/escrow/{asset_id}/events                — Audit trail

Mutations require an X-API-Key; reads are open.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from title_escrow.api.deps import get_caller, get_ledger
from title_escrow.domain.state_machine import EscrowStateMachine
from title_escrow.domain.unlock import evaluate
from title_escrow.logging_config import get_logger
from title_escrow.schemas.escrow import (
    ApprovalResponse,
    BalanceResponse,
    DepositRequest,
    EscrowEventResponse,
    EscrowRecordResponse,
    FinalizeResponse,
    InspectionRequest,
    ListAssetRequest,
    ListedResponse,
    UnlockStatusResponse,
)
from title_escrow.services.escrow_service import EscrowLedger

router = APIRouter(prefix="/api/v1/escrow", tags=["Escrow"])
logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# List
# ---------------------------------------------------------------------------


@router.post(
    "/{asset_id}/list",
    response_model=EscrowRecordResponse,
    status_code=201,
    summary="List an asset into escrow",
)
async def list_asset(
    asset_id: str,
    request: ListAssetRequest,
    caller: str = Depends(get_caller),
    ledger: EscrowLedger = Depends(get_ledger),
) -> EscrowRecordResponse:
    """Seller opens an escrow record. The ledger must already be the transfer agent."""
    record = await ledger.list_asset(
        asset_id,
        caller,
        buyer=request.buyer,
        purchase_price=request.purchase_price,
        earnest_amount=request.earnest_amount,
    )
    return EscrowRecordResponse.from_record(record)


# ---------------------------------------------------------------------------
# Deposits
# ---------------------------------------------------------------------------


@router.post(
    "/{asset_id}/earnest",
    response_model=EscrowRecordResponse,
    summary="Deposit earnest money",
)
async def deposit_earnest(
    asset_id: str,
    request: DepositRequest,
    caller: str = Depends(get_caller),
    ledger: EscrowLedger = Depends(get_ledger),
) -> EscrowRecordResponse:
    record = await ledger.deposit_earnest(
        asset_id, caller, request.amount, tx_reference=request.tx_reference
    )
    return EscrowRecordResponse.from_record(record)


@router.post(
    "/{asset_id}/funds",
    response_model=EscrowRecordResponse,
    summary="Deposit financing into custody",
)
async def deposit_funds(
    asset_id: str,
    request: DepositRequest,
    caller: str = Depends(get_caller),
    ledger: EscrowLedger = Depends(get_ledger),
) -> EscrowRecordResponse:
    record = await ledger.deposit_funds(
        asset_id, caller, request.amount, tx_reference=request.tx_reference
    )
    return EscrowRecordResponse.from_record(record)


# ---------------------------------------------------------------------------
# Inspection / Approval
# ---------------------------------------------------------------------------


@router.post(
    "/{asset_id}/inspection",
    response_model=EscrowRecordResponse,
    summary="Post the inspection result",
)
async def update_inspection(
    asset_id: str,
    request: InspectionRequest,
    caller: str = Depends(get_caller),
    ledger: EscrowLedger = Depends(get_ledger),
) -> EscrowRecordResponse:
    """Inspector only. May be posted repeatedly until finalization."""
    record = await ledger.update_inspection_status(asset_id, caller, request.passed)
    return EscrowRecordResponse.from_record(record)


@router.post(
    "/{asset_id}/approve",
    response_model=EscrowRecordResponse,
    summary="Approve the sale",
)
async def approve_sale(
    asset_id: str,
    caller: str = Depends(get_caller),
    ledger: EscrowLedger = Depends(get_ledger),
) -> EscrowRecordResponse:
    """Records the caller's own approval. Buyer, seller and lender only."""
    record = await ledger.approve_sale(asset_id, caller)
    return EscrowRecordResponse.from_record(record)


# ---------------------------------------------------------------------------
# Finalize
# ---------------------------------------------------------------------------


@router.post(
    "/{asset_id}/finalize",
    response_model=FinalizeResponse,
    summary="Finalize the sale",
)
async def finalize_sale(
    asset_id: str,
    caller: str = Depends(get_caller),
    ledger: EscrowLedger = Depends(get_ledger),
) -> FinalizeResponse:
    """Move custody to the buyer and pay the custodial balance to the seller.

    Returns 409 with the list of unmet conditions if the sale cannot close yet.
    """
    result = await ledger.finalize_sale(asset_id, caller)
    return FinalizeResponse.from_result(result)


# ---------------------------------------------------------------------------
# Read endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/{asset_id}",
    response_model=EscrowRecordResponse,
    summary="Get escrow record",
)
async def get_record(
    asset_id: str,
    ledger: EscrowLedger = Depends(get_ledger),
) -> EscrowRecordResponse:
    """Most recent record for the asset."""
    return EscrowRecordResponse.from_record(await ledger.get_record(asset_id))


@router.get("/{asset_id}/balance", response_model=BalanceResponse, summary="Custodial balance")
async def get_balance(
    asset_id: str,
    ledger: EscrowLedger = Depends(get_ledger),
) -> BalanceResponse:
    return BalanceResponse(asset_id=asset_id, balance=await ledger.get_balance(asset_id))


@router.get("/{asset_id}/listed", response_model=ListedResponse, summary="Is the asset listed")
async def get_listed(
    asset_id: str,
    ledger: EscrowLedger = Depends(get_ledger),
) -> ListedResponse:
    return ListedResponse(asset_id=asset_id, listed=await ledger.is_listed(asset_id))


@router.get(
    "/{asset_id}/approvals/{identity}",
    response_model=ApprovalResponse,
    summary="Approval flag for an identity",
)
async def get_approval(
    asset_id: str,
    identity: str,
    ledger: EscrowLedger = Depends(get_ledger),
) -> ApprovalResponse:
    return ApprovalResponse(
        asset_id=asset_id,
        identity=identity,
        approved=await ledger.approval(asset_id, identity),
    )


@router.get(
    "/{asset_id}/status",
    response_model=UnlockStatusResponse,
    summary="Unlock conditions",
)
async def get_status(
    asset_id: str,
    ledger: EscrowLedger = Depends(get_ledger),
) -> UnlockStatusResponse:
    """Return each finalization condition and whether the sale can close now."""
    record = await ledger.get_record(asset_id)
    sm = EscrowStateMachine(current_status=record.status)
    return UnlockStatusResponse.build(
        asset_id, record.status, evaluate(record), sm.get_allowed_events()
    )


@router.get(
    "/{asset_id}/events",
    response_model=list[EscrowEventResponse],
    summary="Get audit trail",
)
async def get_events(
    asset_id: str,
    ledger: EscrowLedger = Depends(get_ledger),
) -> list[EscrowEventResponse]:
    """Return the full audit trail for an asset across all its listings."""
    events = await ledger.get_events(asset_id)
    return [EscrowEventResponse.model_validate(e) for e in events]
