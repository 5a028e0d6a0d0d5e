"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject the ledger service,
the authenticated caller identity, and configuration.
"""

from __future__ import annotations

import hmac

from fastapi import Depends, Header, HTTPException, status

from title_escrow.config import Settings, get_settings
from title_escrow.infrastructure.database.engine import get_session_factory
from title_escrow.logging_config import bind_caller, get_logger
from title_escrow.services.escrow_service import EscrowLedger

logger = get_logger(__name__)

_ledger: EscrowLedger | None = None


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()


def get_ledger() -> EscrowLedger:
    """Provide the process-wide ledger (lazy singleton).

    One instance per process so every request shares the same per-asset locks.
    """
    global _ledger
    if _ledger is None:
        _ledger = EscrowLedger(get_session_factory(), settings=get_settings())
    return _ledger


def reset_ledger() -> None:
    """Drop the cached ledger. Called on shutdown."""
    global _ledger
    _ledger = None


async def get_caller(
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    settings: Settings = Depends(get_app_settings),
) -> str:
    """Resolve the caller identity from the X-API-Key header.

    Raises:
        HTTPException 401: If the key is missing or unknown.
    """
    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-API-Key header",
        )

    identity = None
    for key, candidate in settings.api_keys.items():
        if hmac.compare_digest(key.encode(), x_api_key.encode()):
            identity = candidate

    if identity is None:
        logger.warning("auth.unknown_api_key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    bind_caller(identity)
    return identity
