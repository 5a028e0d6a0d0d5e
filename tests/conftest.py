"""Shared test fixtures for the Title Escrow Ledger test suite.

Provides:
    - A temporary SQLite database per test (a real file, so concurrent
      sessions get their own connections)
    - A ledger wired to that database with in-process locks
    - Assets at each stage of the escrow flow
    - Async test support via pytest-asyncio
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

import pytest
import pytest_asyncio

from title_escrow.config import Settings
from title_escrow.infrastructure.database.engine import (
    build_engine,
    build_session_factory,
    create_tables,
)
from title_escrow.infrastructure.locks import LocalAssetLocks
from title_escrow.services.escrow_service import EscrowLedger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

SELLER = "0xSeller"
BUYER = "0xBuyer"
INSPECTOR = "inspector"
LENDER = "lender"
OUTSIDER = "0xMallory"
LEDGER = "escrow-ledger"

ASSET_ID = "title-42"
PRICE = Decimal("10")
EARNEST = Decimal("5")

API_KEYS = {
    "k-seller": SELLER,
    "k-buyer": BUYER,
    "k-inspector": INSPECTOR,
    "k-lender": LENDER,
    "k-outsider": OUTSIDER,
}


# ---------------------------------------------------------------------------
# Infrastructure Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a throwaway SQLite file."""
    return Settings(
        app_env="development",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        ledger_identity=LEDGER,
        inspector_identity=INSPECTOR,
        lender_identity=LENDER,
        lock_backend="local",
        lock_timeout_seconds=5.0,
        payment_simulate=True,
        api_keys=API_KEYS,
    )


@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncIterator[AsyncEngine]:
    engine = build_engine(settings.database_url, settings)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
def ledger(
    session_factory: async_sessionmaker[AsyncSession], settings: Settings
) -> EscrowLedger:
    return EscrowLedger(
        session_factory,
        settings=settings,
        locks=LocalAssetLocks(timeout=settings.lock_timeout_seconds),
    )


# ---------------------------------------------------------------------------
# Escrow Flow Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def registered_asset(ledger: EscrowLedger) -> str:
    """An asset held by the seller, with the ledger authorized as transfer agent."""
    await ledger.register_asset(ASSET_ID, SELLER)
    await ledger.authorize_agent(ASSET_ID, SELLER, LEDGER)
    return ASSET_ID


@pytest_asyncio.fixture
async def listed_asset(ledger: EscrowLedger, registered_asset: str) -> str:
    """An asset listed for BUYER at PRICE with EARNEST earnest money."""
    await ledger.list_asset(registered_asset, SELLER, BUYER, PRICE, EARNEST)
    return registered_asset


@pytest_asyncio.fixture
async def ready_asset(ledger: EscrowLedger, listed_asset: str) -> str:
    """A listed asset with every finalization condition satisfied."""
    await ledger.deposit_earnest(listed_asset, BUYER, EARNEST)
    await ledger.update_inspection_status(listed_asset, INSPECTOR, True)
    await ledger.approve_sale(listed_asset, BUYER)
    await ledger.approve_sale(listed_asset, SELLER)
    await ledger.approve_sale(listed_asset, LENDER)
    await ledger.deposit_funds(listed_asset, LENDER, PRICE - EARNEST)
    return listed_asset
