"""Pydantic API schemas."""

from title_escrow.schemas.escrow import (
    ApprovalResponse,
    AuthorizeAgentRequest,
    BalanceResponse,
    CustodyResponse,
    DepositRequest,
    EscrowEventResponse,
    EscrowRecordResponse,
    FinalizeResponse,
    HealthResponse,
    InspectionRequest,
    ListAssetRequest,
    ListedResponse,
    RegisterAssetRequest,
    UnlockStatusResponse,
)

__all__ = [
    "ApprovalResponse",
    "AuthorizeAgentRequest",
    "BalanceResponse",
    "CustodyResponse",
    "DepositRequest",
    "EscrowEventResponse",
    "EscrowRecordResponse",
    "FinalizeResponse",
    "HealthResponse",
    "InspectionRequest",
    "ListAssetRequest",
    "ListedResponse",
    "RegisterAssetRequest",
    "UnlockStatusResponse",
]
