"""Database-backed asset registry.

A minimal custody registry: one row per asset holding the current custodian
and at most one authorized transfer agent. Authorization is cleared whenever
custody moves, so a new custodian must re-authorize before listing again.

The registry works inside the caller's session; the ledger relies on that to
commit or roll back a custody transfer together with the escrow record.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from title_escrow.domain.exceptions import (
    AssetAlreadyRegisteredError,
    AssetNotFoundError,
    NotAuthorizedError,
    NotOwnerError,
)
from title_escrow.infrastructure.database.orm_models import AssetCustody
from title_escrow.infrastructure.database.repositories import CustodyRepository
from title_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


class SqlAssetRegistry:
    """AssetRegistry implementation over the asset_custody table."""

    def __init__(self, session: AsyncSession) -> None:
        self._repo = CustodyRepository(session)

    async def register_asset(self, asset_id: str, custodian: str) -> AssetCustody:
        """Record a new asset under ``custodian``. Minting itself happens elsewhere."""
        if await self._repo.get(asset_id) is not None:
            raise AssetAlreadyRegisteredError(asset_id)
        custody = await self._repo.create(AssetCustody(asset_id=asset_id, custodian=custodian))
        logger.info("registry.asset_registered", asset_id=asset_id, custodian=custodian)
        return custody

    async def get(self, asset_id: str) -> AssetCustody:
        custody = await self._repo.get(asset_id)
        if custody is None:
            raise AssetNotFoundError(asset_id)
        return custody

    async def current_custodian(self, asset_id: str) -> str:
        return (await self.get(asset_id)).custodian

    async def authorized_agent(self, asset_id: str) -> str | None:
        return (await self.get(asset_id)).transfer_agent

    async def authorize_agent(self, asset_id: str, caller: str, agent: str) -> None:
        custody = await self._get_for_update(asset_id)
        if custody.custodian != caller:
            raise NotOwnerError(asset_id, caller)
        custody.transfer_agent = agent
        await self._repo.save(custody)
        logger.info("registry.agent_authorized", asset_id=asset_id, agent=agent)

    async def transfer_custody(self, asset_id: str, from_: str, to: str, agent: str) -> None:
        custody = await self._get_for_update(asset_id)
        if custody.transfer_agent != agent or custody.custodian != from_:
            raise NotAuthorizedError(asset_id, agent)
        custody.custodian = to
        custody.transfer_agent = None
        await self._repo.save(custody)
        logger.info(
            "registry.custody_transferred",
            asset_id=asset_id,
            from_custodian=from_,
            to_custodian=to,
            agent=agent,
        )

    async def _get_for_update(self, asset_id: str) -> AssetCustody:
        custody = await self._repo.get(asset_id, for_update=True)
        if custody is None:
            raise AssetNotFoundError(asset_id)
        return custody
