"""Application services — use case orchestration."""

from title_escrow.services.escrow_service import EscrowLedger, FinalizationResult
from title_escrow.services.payment_service import PaymentService

__all__ = ["EscrowLedger", "FinalizationResult", "PaymentService"]
