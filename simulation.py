#!/usr/bin/env python3
"""Title Escrow Ledger — End-to-End Simulation.

Simulates three scenarios with Seller, Buyer, Inspector and Lender bots
acting against one EscrowLedger:

    Scenario 1: Happy Path
        - Seller authorizes the ledger and lists the asset
        - Buyer deposits earnest money, inspector passes, everyone approves
        - Lender funds the remainder -> seller finalizes, custody moves

    Scenario 2: Premature Finalization
        - Seller tries to finalize after every step
        - Each attempt is rejected with the conditions still unmet
        - The last attempt, once everything holds, succeeds

    Scenario 3: Adversarial Parties
        - Inspector passes, then fails, then passes again
        - An outsider tries to approve and to post an inspection -> rejected
        - The buyer tries to finalize -> rejected (seller only)

Usage:
    # Option A: SQLite in-memory (no services needed):
    python simulation.py --sqlite

    # Option B: PostgreSQL from DATABASE_URL:
    python simulation.py

    # Run a specific scenario:
    python simulation.py --sqlite --scenario 2
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass
from decimal import Decimal

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from title_escrow.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from title_escrow.config import Settings, get_settings  # noqa: E402
from title_escrow.domain.exceptions import (  # noqa: E402
    ConditionsNotMetError,
    EscrowLedgerError,
)
from title_escrow.infrastructure.database.engine import (  # noqa: E402
    build_engine,
    build_session_factory,
    create_tables,
)
from title_escrow.infrastructure.locks import LocalAssetLocks  # noqa: E402
from title_escrow.services.escrow_service import EscrowLedger  # noqa: E402

INSPECTOR = "inspector"
LENDER = "lender"

# Module-level state
_engine = None
_ledger: EscrowLedger | None = None


# ---------------------------------------------------------------------------
# Database lifecycle helpers
# ---------------------------------------------------------------------------
async def init_ledger(use_sqlite: bool = False) -> EscrowLedger:
    """Create the engine, the tables and the ledger."""
    global _engine, _ledger

    if use_sqlite:
        settings = Settings(
            database_url="sqlite+aiosqlite:///:memory:",
            inspector_identity=INSPECTOR,
            lender_identity=LENDER,
        )
    else:
        settings = get_settings()

    _engine = build_engine(settings.database_url, settings)
    await create_tables(_engine)
    logger.info("database.initialized", backend=_engine.dialect.name)

    _ledger = EscrowLedger(
        build_session_factory(_engine),
        settings=settings,
        locks=LocalAssetLocks(timeout=settings.lock_timeout_seconds),
    )
    return _ledger


def get_ledger() -> EscrowLedger:
    if _ledger is None:
        raise RuntimeError("Ledger not initialized. Call init_ledger() first.")
    return _ledger


async def shutdown_ledger() -> None:
    """Close database connections."""
    global _engine, _ledger
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _ledger = None


# ---------------------------------------------------------------------------
# Bot Agents
# ---------------------------------------------------------------------------
@dataclass
class SellerBot:
    """Simulated seller: holds the asset, lists it, approves and finalizes."""

    identity: str = "0x" + "5" * 40

    async def bring_to_market(
        self, asset_id: str, buyer: str, price: Decimal, earnest: Decimal
    ) -> None:
        ledger = get_ledger()
        await ledger.register_asset(asset_id, self.identity)
        await ledger.authorize_agent(asset_id, self.identity, ledger.identity)
        await ledger.list_asset(asset_id, self.identity, buyer, price, earnest)
        logger.info("🟠 SELLER: Asset listed", asset_id=asset_id, price=str(price))

    async def approve(self, asset_id: str) -> None:
        await get_ledger().approve_sale(asset_id, self.identity)
        logger.info("🟠 SELLER: Approved", asset_id=asset_id)

    async def finalize(self, asset_id: str) -> bool:
        """Try to close the sale. Returns True on success."""
        return await try_finalize("🟠 SELLER", asset_id, self.identity)


@dataclass
class BuyerBot:
    """Simulated buyer: deposits earnest money and approves."""

    identity: str = "0x" + "B" * 40

    async def deposit_earnest(self, asset_id: str, amount: Decimal) -> None:
        record = await get_ledger().deposit_earnest(asset_id, self.identity, amount)
        logger.info(
            "🔵 BUYER: Earnest deposited",
            asset_id=asset_id,
            amount=str(amount),
            balance=str(record.custodial_balance),
        )

    async def approve(self, asset_id: str) -> None:
        await get_ledger().approve_sale(asset_id, self.identity)
        logger.info("🔵 BUYER: Approved", asset_id=asset_id)


@dataclass
class InspectorBot:
    """Simulated inspector: posts pass/fail results."""

    identity: str = INSPECTOR

    async def report(self, asset_id: str, passed: bool) -> None:
        await get_ledger().update_inspection_status(asset_id, self.identity, passed)
        logger.info("🟣 INSPECTOR: Result posted", asset_id=asset_id, passed=passed)


@dataclass
class LenderBot:
    """Simulated lender: approves and sends the loan into custody."""

    identity: str = LENDER

    async def approve(self, asset_id: str) -> None:
        await get_ledger().approve_sale(asset_id, self.identity)
        logger.info("🟢 LENDER: Approved", asset_id=asset_id)

    async def fund(self, asset_id: str, amount: Decimal) -> None:
        record = await get_ledger().deposit_funds(asset_id, self.identity, amount)
        logger.info(
            "🟢 LENDER: Loan funded",
            asset_id=asset_id,
            amount=str(amount),
            balance=str(record.custodial_balance),
        )


async def try_finalize(label: str, asset_id: str, caller: str) -> bool:
    try:
        result = await get_ledger().finalize_sale(asset_id, caller)
    except ConditionsNotMetError as exc:
        print(f"  ⛔ {label}: finalize rejected, unmet: {', '.join(exc.unmet)}")
        return False
    except EscrowLedgerError as exc:
        print(f"  ⛔ {label}: finalize rejected [{exc.code}] {exc.message}")
        return False
    print(
        f"  ✅ {label}: finalized, custody -> {result.new_custodian}, "
        f"paid {result.payout.amount} ({result.payout.tx_reference[:18]}...)"
    )
    return True


async def expect_rejection(label: str, coro) -> None:  # noqa: ANN001
    """Await an operation that must fail, and show how it failed."""
    try:
        await coro
    except EscrowLedgerError as exc:
        print(f"  ⛔ {label}: rejected [{exc.code}] {exc.message}")
        return
    raise AssertionError(f"{label}: expected rejection but the call succeeded")


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


async def print_summary(asset_id: str, seller: str) -> None:
    ledger = get_ledger()
    record = await ledger.get_record(asset_id)
    custodian, _ = await ledger.custody(asset_id)
    print(f"  Listed: {record.listed}  Finalized: {record.finalized}")
    print(f"  Custodial balance: {record.custodial_balance}")
    print(f"  Custodian: {custodian}")
    print(f"  Seller paid so far: {await ledger.total_paid_to(seller)}")


async def print_audit_trail(asset_id: str) -> None:
    section("Audit Trail")
    for evt in await get_ledger().get_events(asset_id):
        print(f"  {evt.event_type:<20} by {evt.actor:<44} {evt.metadata_json or ''}")


# ===========================================================================
# Scenario 1: Happy Path
# ===========================================================================
async def scenario_1_happy_path() -> None:
    banner("SCENARIO 1: Happy Path")
    asset_id = "title-1"
    seller, buyer, inspector, lender = SellerBot(), BuyerBot(), InspectorBot(), LenderBot()

    section("Listing")
    await seller.bring_to_market(asset_id, buyer.identity, Decimal("10"), Decimal("5"))

    section("Conditions")
    await buyer.deposit_earnest(asset_id, Decimal("5"))
    await inspector.report(asset_id, passed=True)
    await buyer.approve(asset_id)
    await seller.approve(asset_id)
    await lender.approve(asset_id)
    await lender.fund(asset_id, Decimal("5"))

    section("Finalization")
    assert await seller.finalize(asset_id)
    await print_summary(asset_id, seller.identity)
    await print_audit_trail(asset_id)


# ===========================================================================
# Scenario 2: Premature Finalization
# ===========================================================================
async def scenario_2_premature_finalization() -> None:
    banner("SCENARIO 2: Premature Finalization")
    asset_id = "title-2"
    seller, buyer, inspector, lender = SellerBot(), BuyerBot(), InspectorBot(), LenderBot()

    await seller.bring_to_market(asset_id, buyer.identity, Decimal("100"), Decimal("10"))

    steps = [
        ("buyer deposits earnest", buyer.deposit_earnest(asset_id, Decimal("10"))),
        ("inspector passes", inspector.report(asset_id, passed=True)),
        ("buyer approves", buyer.approve(asset_id)),
        ("seller approves", seller.approve(asset_id)),
        ("lender approves", lender.approve(asset_id)),
        ("lender funds the rest", lender.fund(asset_id, Decimal("90"))),
    ]

    assert not await seller.finalize(asset_id)
    for label, step in steps:
        section(label)
        await step
        finalized = await seller.finalize(asset_id)
        assert finalized == (label == steps[-1][0])

    await print_summary(asset_id, seller.identity)


# ===========================================================================
# Scenario 3: Adversarial Parties
# ===========================================================================
async def scenario_3_adversarial_parties() -> None:
    banner("SCENARIO 3: Adversarial Parties")
    asset_id = "title-3"
    seller, buyer, inspector, lender = SellerBot(), BuyerBot(), InspectorBot(), LenderBot()
    outsider = "0x" + "0" * 40
    ledger = get_ledger()

    await seller.bring_to_market(asset_id, buyer.identity, Decimal("10"), Decimal("1"))
    await buyer.deposit_earnest(asset_id, Decimal("10"))
    await buyer.approve(asset_id)
    await seller.approve(asset_id)
    await lender.approve(asset_id)

    section("Inspector flip-flop")
    await inspector.report(asset_id, passed=True)
    await inspector.report(asset_id, passed=False)
    assert not await seller.finalize(asset_id)
    await inspector.report(asset_id, passed=True)

    section("Outsider interference")
    await expect_rejection("OUTSIDER approve", ledger.approve_sale(asset_id, outsider))
    await expect_rejection(
        "OUTSIDER inspection",
        ledger.update_inspection_status(asset_id, outsider, False),
    )
    await expect_rejection(
        "BUYER inspection",
        ledger.update_inspection_status(asset_id, buyer.identity, True),
    )
    assert not await ledger.approval(asset_id, outsider)
    assert await ledger.inspection_passed(asset_id)

    section("Wrong finalizer")
    assert not await try_finalize("🔵 BUYER", asset_id, buyer.identity)

    section("Seller closes")
    assert await seller.finalize(asset_id)
    await print_summary(asset_id, seller.identity)
    await print_audit_trail(asset_id)


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_premature_finalization,
    3: scenario_3_adversarial_parties,
}


async def run(scenario: int = 0, use_sqlite: bool = False) -> None:
    """Run one scenario, or all of them when ``scenario`` is 0."""
    if scenario and scenario not in SCENARIOS:
        print(f"Unknown scenario {scenario}. Available: 1, 2, 3")
        return

    await init_ledger(use_sqlite=use_sqlite)
    try:
        print("\n" + "🏠" * 35)
        print("  TITLE ESCROW LEDGER — SIMULATION")
        print(f"  Database: {'SQLite (in-memory)' if use_sqlite else 'PostgreSQL'}")
        print("🏠" * 35 + "\n")

        selected = [SCENARIOS[scenario]] if scenario else list(SCENARIOS.values())
        for run_scenario in selected:
            await run_scenario()

        print("\n" + "=" * 70)
        print("  ✅ ALL SCENARIOS COMPLETED SUCCESSFULLY")
        print("=" * 70 + "\n")
    finally:
        await shutdown_ledger()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Title Escrow Ledger Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1, 2, or 3). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use SQLite in-memory instead of PostgreSQL.",
    )
    args = parser.parse_args()
    asyncio.run(run(scenario=args.scenario, use_sqlite=args.sqlite))
