"""Payment Service — moves value into and out of escrow custody.

For now only a simulated rail is provided: it accepts every positive
transfer and generates fake transaction references. The ledger persists the
resulting receipts itself (escrow_deposits / escrow_payouts), so the rail
stays stateless and a real rail can be dropped in behind the ValueRail
protocol.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from title_escrow.domain.collaborators import TransferReceipt
from title_escrow.domain.exceptions import PaymentError
from title_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from decimal import Decimal

logger = get_logger(__name__)


def _fake_tx_hash() -> str:
    return "0x" + uuid.uuid4().hex + uuid.uuid4().hex


class PaymentService:
    """Handles escrow deposits and settlement payouts."""

    def __init__(self, simulate: bool = True) -> None:
        """Initialize payment service.

        Args:
            simulate: If True, generate fake tx references instead of moving
                real funds. No real rail is wired yet.
        """
        self._simulate = simulate

    async def receive(
        self,
        asset_id: str,
        payer: str,
        amount: Decimal,
        tx_reference: str | None = None,
    ) -> TransferReceipt:
        """Take funds from ``payer`` into custody for ``asset_id``.

        ``tx_reference`` identifies a transfer the payer already made; when
        omitted, the simulated rail makes one up.
        """
        self._require_simulated("receive")
        if amount <= 0:
            raise PaymentError(f"Cannot receive non-positive amount {amount}")

        reference = tx_reference or _fake_tx_hash()
        logger.info(
            "payment.received",
            asset_id=asset_id,
            payer=payer,
            amount=str(amount),
            tx_reference=reference,
            simulated=True,
        )
        return TransferReceipt(tx_reference=reference, counterparty=payer, amount=amount)

    async def pay(self, asset_id: str, recipient: str, amount: Decimal) -> TransferReceipt:
        """Pay ``amount`` out of custody to ``recipient``."""
        self._require_simulated("pay")
        if amount < 0:
            raise PaymentError(f"Cannot pay negative amount {amount}")

        reference = _fake_tx_hash()
        logger.info(
            "payment.paid",
            asset_id=asset_id,
            recipient=recipient,
            amount=str(amount),
            tx_reference=reference,
            simulated=True,
        )
        return TransferReceipt(tx_reference=reference, counterparty=recipient, amount=amount)

    def _require_simulated(self, operation: str) -> None:
        if not self._simulate:
            raise PaymentError(f"No live payment rail configured for {operation}")
