"""Asset registry REST API routes.

Routes:
    POST   /api/v1/registry/assets                    — Register an asset (development only)
    POST   /api/v1/registry/assets/{asset_id}/agent   — Custodian authorizes a transfer agent
    GET    /api/v1/registry/assets/{asset_id}         — Custodian and agent
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from title_escrow.api.deps import get_app_settings, get_caller, get_ledger
from title_escrow.config import Settings
from title_escrow.logging_config import get_logger
from title_escrow.schemas.escrow import (
    AuthorizeAgentRequest,
    CustodyResponse,
    RegisterAssetRequest,
)
from title_escrow.services.escrow_service import EscrowLedger

router = APIRouter(prefix="/api/v1/registry", tags=["Registry"])
logger = get_logger(__name__)


@router.post(
    "/assets",
    response_model=CustodyResponse,
    status_code=201,
    summary="Register an asset",
)
async def register_asset(
    request: RegisterAssetRequest,
    caller: str = Depends(get_caller),
    ledger: EscrowLedger = Depends(get_ledger),
    settings: Settings = Depends(get_app_settings),
) -> CustodyResponse:
    """Bootstrap an asset into the registry. Minting is handled elsewhere in production."""
    if not settings.is_development:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Asset registration is only available in development",
        )
    custody = await ledger.register_asset(request.asset_id, request.custodian)
    logger.info("registry.registered_via_api", asset_id=request.asset_id, by=caller)
    return CustodyResponse.from_custody(custody)


@router.post(
    "/assets/{asset_id}/agent",
    response_model=CustodyResponse,
    summary="Authorize a transfer agent",
)
async def authorize_agent(
    asset_id: str,
    request: AuthorizeAgentRequest,
    caller: str = Depends(get_caller),
    ledger: EscrowLedger = Depends(get_ledger),
) -> CustodyResponse:
    """Custodian authorizes an agent; defaults to the escrow ledger."""
    await ledger.authorize_agent(asset_id, caller, request.agent or ledger.identity)
    custodian, agent = await ledger.custody(asset_id)
    return CustodyResponse(asset_id=asset_id, custodian=custodian, transfer_agent=agent)


@router.get(
    "/assets/{asset_id}",
    response_model=CustodyResponse,
    summary="Get custody",
)
async def get_custody(
    asset_id: str,
    ledger: EscrowLedger = Depends(get_ledger),
) -> CustodyResponse:
    custodian, agent = await ledger.custody(asset_id)
    return CustodyResponse(asset_id=asset_id, custodian=custodian, transfer_agent=agent)
