"""Collaborator Protocols.

Defines the interfaces the ledger consumes from the asset registry and the
value-transfer rail. These are Protocols (structural subtyping) so concrete
implementations don't need to inherit from a base class.

Both collaborators are bound to the ledger's current unit of work, so any
write they perform commits or rolls back together with the escrow record.

The domain layer has ZERO imports from SQLAlchemy or any payment SDK.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from decimal import Decimal


@dataclass(frozen=True)
class TransferReceipt:
    """Result of a value movement into or out of custody.

    Attributes:
        tx_reference: Reference of the transfer on the payment rail.
        counterparty: Payer for receipts, recipient for payouts.
        amount: Amount moved.
        simulated: Whether the rail only simulated the transfer.
    """

    tx_reference: str
    counterparty: str
    amount: Decimal
    simulated: bool = True

    def to_dict(self) -> dict:
        return {
            "tx_reference": self.tx_reference,
            "counterparty": self.counterparty,
            "amount": str(self.amount),
            "simulated": self.simulated,
        }


@runtime_checkable
class AssetRegistry(Protocol):
    """Registry that tracks who holds custody of each unique asset.

    Concrete implementation: registry/sql_registry.py
    """

    async def current_custodian(self, asset_id: str) -> str:
        """Return the identity holding custody of the asset."""
        ...

    async def authorized_agent(self, asset_id: str) -> str | None:
        """Return the agent allowed to move the asset, if any."""
        ...

    async def authorize_agent(self, asset_id: str, caller: str, agent: str) -> None:
        """Let ``agent`` transfer the asset. Only the custodian may call this."""
        ...

    async def transfer_custody(self, asset_id: str, from_: str, to: str, agent: str) -> None:
        """Move custody from ``from_`` to ``to``. Only the authorized agent may call this."""
        ...


@runtime_checkable
class ValueRail(Protocol):
    """Opaque payable-balance mechanism the ledger receives into and pays out of.

    Concrete implementation: services/payment_service.py
    """

    async def receive(
        self,
        asset_id: str,
        payer: str,
        amount: Decimal,
        tx_reference: str | None = None,
    ) -> TransferReceipt:
        """Take ``amount`` from ``payer`` into custody for ``asset_id``."""
        ...

    async def pay(self, asset_id: str, recipient: str, amount: Decimal) -> TransferReceipt:
        """Pay ``amount`` out of custody for ``asset_id`` to ``recipient``."""
        ...
