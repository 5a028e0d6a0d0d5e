"""Tests for the EscrowLedger service.

These tests run the ledger against a real (temporary SQLite) database and
verify that:
    1. Listing checks custody, terms and agent authorization.
    2. Deposits only ever increase the balance, and failures credit nothing.
    3. Only the inspector can post inspection results; last write wins.
    4. Approvals are per-identity, idempotent and restricted to the parties.
    5. Finalization requires every condition, is atomic, and happens once.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from tests.conftest import (
    BUYER,
    EARNEST,
    INSPECTOR,
    LEDGER,
    LENDER,
    OUTSIDER,
    PRICE,
    SELLER,
)
from title_escrow.domain.enums import DepositKind, EventType, FinalizerPolicy
from title_escrow.domain.exceptions import (
    AlreadyListedError,
    AssetInEscrowError,
    AssetNotFoundError,
    ConditionsNotMetError,
    DuplicateOperationError,
    EscrowNotFoundError,
    InsufficientValueError,
    InvalidListingError,
    InvalidStateTransitionError,
    NotAuthorizedError,
    NotOwnerError,
    PaymentError,
    TransferFailedError,
    UnauthorizedError,
)
from title_escrow.infrastructure.locks import LocalAssetLocks
from title_escrow.registry.sql_registry import SqlAssetRegistry
from title_escrow.services.escrow_service import EscrowLedger, FinalizationResult
from title_escrow.services.payment_service import PaymentService


class FailingPayoutRail(PaymentService):
    """Accepts deposits but refuses every payout."""

    async def pay(self, asset_id, recipient, amount):  # noqa: ANN001, ANN201
        raise PaymentError("payout rail offline")


class RefusingRegistry(SqlAssetRegistry):
    """Registry that refuses every custody transfer."""

    async def transfer_custody(self, asset_id, from_, to, agent):  # noqa: ANN001, ANN201
        raise NotAuthorizedError(asset_id, agent)


class FailingDepositRail(PaymentService):
    """Refuses every incoming transfer."""

    async def receive(self, asset_id, payer, amount, tx_reference=None):  # noqa: ANN001, ANN201
        raise PaymentError("deposit rail offline")


def _ledger_like(ledger: EscrowLedger, session_factory, settings, **overrides) -> EscrowLedger:  # noqa: ANN001
    """A second ledger over the same database, sharing the first one's locks."""
    return EscrowLedger(
        session_factory,
        settings=settings,
        locks=ledger._locks,
        **overrides,
    )


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


class TestListing:
    @pytest.mark.asyncio
    async def test_list_creates_fresh_record(
        self, ledger: EscrowLedger, registered_asset: str
    ) -> None:
        record = await ledger.list_asset(registered_asset, SELLER, BUYER, PRICE, EARNEST)

        assert record.seller == SELLER
        assert record.buyer == BUYER
        assert record.inspector == INSPECTOR
        assert record.lender == LENDER
        assert record.purchase_price == PRICE
        assert record.earnest_amount == EARNEST
        assert record.custodial_balance == Decimal("0")
        assert record.listed is True
        assert record.finalized is False
        assert record.inspection_passed is False
        assert record.approved_parties == frozenset()
        assert record.status == "LISTED"

        assert await ledger.is_listed(registered_asset)
        assert await ledger.buyer(registered_asset) == BUYER
        assert await ledger.purchase_price(registered_asset) == PRICE
        assert await ledger.escrow_amount(registered_asset) == EARNEST

    @pytest.mark.asyncio
    async def test_list_emits_event(self, ledger: EscrowLedger, listed_asset: str) -> None:
        events = await ledger.get_events(listed_asset)
        assert [e.event_type for e in events] == [EventType.ASSET_LISTED.value]
        assert events[0].actor == SELLER
        assert events[0].metadata_json["buyer"] == BUYER

    @pytest.mark.asyncio
    async def test_non_custodian_cannot_list(
        self, ledger: EscrowLedger, registered_asset: str
    ) -> None:
        with pytest.raises(NotOwnerError):
            await ledger.list_asset(registered_asset, BUYER, OUTSIDER, PRICE, EARNEST)
        assert not await ledger.is_listed(registered_asset)

    @pytest.mark.asyncio
    async def test_cannot_list_twice(self, ledger: EscrowLedger, listed_asset: str) -> None:
        with pytest.raises(AlreadyListedError):
            await ledger.list_asset(listed_asset, SELLER, BUYER, PRICE, EARNEST)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("buyer", "price", "earnest"),
        [
            (BUYER, Decimal("10"), Decimal("11")),
            (BUYER, Decimal("-1"), Decimal("0")),
            (BUYER, Decimal("10"), Decimal("-1")),
            (SELLER, Decimal("10"), Decimal("5")),
            (INSPECTOR, Decimal("10"), Decimal("5")),
        ],
        ids=["earnest-above-price", "negative-price", "negative-earnest", "self-sale", "inspector-buys"],
    )
    async def test_invalid_terms_rejected(
        self,
        ledger: EscrowLedger,
        registered_asset: str,
        buyer: str,
        price: Decimal,
        earnest: Decimal,
    ) -> None:
        with pytest.raises(InvalidListingError):
            await ledger.list_asset(registered_asset, SELLER, buyer, price, earnest)
        assert not await ledger.is_listed(registered_asset)

    @pytest.mark.asyncio
    async def test_listing_requires_ledger_as_agent(self, ledger: EscrowLedger) -> None:
        await ledger.register_asset("title-7", SELLER)
        with pytest.raises(NotAuthorizedError):
            await ledger.list_asset("title-7", SELLER, BUYER, PRICE, EARNEST)

        await ledger.authorize_agent("title-7", SELLER, "some-other-escrow")
        with pytest.raises(NotAuthorizedError):
            await ledger.list_asset("title-7", SELLER, BUYER, PRICE, EARNEST)

    @pytest.mark.asyncio
    async def test_unregistered_asset(self, ledger: EscrowLedger) -> None:
        with pytest.raises(AssetNotFoundError):
            await ledger.list_asset("nope", SELLER, BUYER, PRICE, EARNEST)

    @pytest.mark.asyncio
    async def test_zero_price_listing_allowed(
        self, ledger: EscrowLedger, registered_asset: str
    ) -> None:
        record = await ledger.list_asset(registered_asset, SELLER, BUYER, 0, 0)
        assert record.purchase_price == Decimal("0")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "price",
        ["0.0000000000000000001", "1e-19", "100000000000000000000", "-1E+20"],
        ids=["19-places", "exponent-form", "too-large", "too-negative"],
    )
    async def test_unstorable_amounts_rejected(
        self, ledger: EscrowLedger, registered_asset: str, price: str
    ) -> None:
        with pytest.raises(InvalidListingError):
            await ledger.list_asset(registered_asset, SELLER, BUYER, price, 0)
        assert not await ledger.is_listed(registered_asset)

    @pytest.mark.asyncio
    async def test_amounts_at_column_limits(
        self, ledger: EscrowLedger, registered_asset: str
    ) -> None:
        largest = "99999999999999999999.999999999999999999"
        record = await ledger.list_asset(
            registered_asset, SELLER, BUYER, largest, "0.000000000000000001"
        )
        assert record.purchase_price == Decimal(largest)
        assert record.earnest_amount == Decimal("1e-18")


# ---------------------------------------------------------------------------
# Transfer agent
# ---------------------------------------------------------------------------


class TestTransferAgent:
    @pytest.mark.asyncio
    async def test_agent_locked_while_listed(
        self, ledger: EscrowLedger, ready_asset: str
    ) -> None:
        with pytest.raises(AssetInEscrowError) as exc_info:
            await ledger.authorize_agent(ready_asset, SELLER, OUTSIDER)
        assert exc_info.value.code == "ASSET_IN_ESCROW"
        assert await ledger.custody(ready_asset) == (SELLER, LEDGER)

        # The sale still closes with the ledger as agent.
        result = await ledger.finalize_sale(ready_asset, SELLER)
        assert result.new_custodian == BUYER

    @pytest.mark.asyncio
    async def test_reauthorizing_ledger_while_listed(
        self, ledger: EscrowLedger, listed_asset: str
    ) -> None:
        await ledger.authorize_agent(listed_asset, SELLER, LEDGER)
        assert await ledger.custody(listed_asset) == (SELLER, LEDGER)

    @pytest.mark.asyncio
    async def test_non_custodian_still_gets_not_owner(
        self, ledger: EscrowLedger, listed_asset: str
    ) -> None:
        with pytest.raises(NotOwnerError):
            await ledger.authorize_agent(listed_asset, OUTSIDER, OUTSIDER)

    @pytest.mark.asyncio
    async def test_unlocked_after_finalization(
        self, ledger: EscrowLedger, ready_asset: str
    ) -> None:
        await ledger.finalize_sale(ready_asset, SELLER)

        await ledger.authorize_agent(ready_asset, BUYER, "another-escrow")
        assert await ledger.custody(ready_asset) == (BUYER, "another-escrow")


# ---------------------------------------------------------------------------
# Deposits
# ---------------------------------------------------------------------------


class TestDeposits:
    @pytest.mark.asyncio
    async def test_earnest_and_financing_accumulate(
        self, ledger: EscrowLedger, listed_asset: str
    ) -> None:
        await ledger.deposit_earnest(listed_asset, BUYER, Decimal("5"))
        record = await ledger.deposit_funds(listed_asset, LENDER, Decimal("2.5"))

        assert record.custodial_balance == Decimal("7.5")
        assert await ledger.get_balance(listed_asset) == Decimal("7.5")

        deposits = await ledger.get_deposits(listed_asset)
        assert [(d.depositor, d.kind, d.amount) for d in deposits] == [
            (BUYER, DepositKind.EARNEST.value, Decimal("5")),
            (LENDER, DepositKind.FINANCING.value, Decimal("2.5")),
        ]

    @pytest.mark.asyncio
    async def test_anyone_may_deposit_without_upper_bound(
        self, ledger: EscrowLedger, listed_asset: str
    ) -> None:
        record = await ledger.deposit_funds(listed_asset, OUTSIDER, PRICE * 3)
        assert record.custodial_balance == PRICE * 3

    @pytest.mark.asyncio
    async def test_earnest_below_threshold_is_accepted(
        self, ledger: EscrowLedger, listed_asset: str
    ) -> None:
        record = await ledger.deposit_earnest(listed_asset, BUYER, Decimal("0.01"))
        assert record.custodial_balance == Decimal("0.01")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-3")])
    async def test_non_positive_deposit_rejected(
        self, ledger: EscrowLedger, listed_asset: str, amount: Decimal
    ) -> None:
        with pytest.raises(InsufficientValueError):
            await ledger.deposit_earnest(listed_asset, BUYER, amount)
        assert await ledger.get_balance(listed_asset) == Decimal("0")

    @pytest.mark.asyncio
    async def test_sub_unit_deposit_rejected(
        self, ledger: EscrowLedger, listed_asset: str
    ) -> None:
        with pytest.raises(InvalidListingError):
            await ledger.deposit_earnest(listed_asset, BUYER, Decimal("1e-19"))
        assert await ledger.get_deposits(listed_asset) == []

    @pytest.mark.asyncio
    async def test_balance_overflow_rejected(
        self, ledger: EscrowLedger, listed_asset: str
    ) -> None:
        near_limit = Decimal("99999999999999999999")
        await ledger.deposit_funds(listed_asset, LENDER, near_limit)

        with pytest.raises(InvalidListingError):
            await ledger.deposit_funds(listed_asset, LENDER, Decimal("1"))
        assert await ledger.get_balance(listed_asset) == near_limit

    @pytest.mark.asyncio
    async def test_deposit_into_unlisted_asset(
        self, ledger: EscrowLedger, registered_asset: str
    ) -> None:
        with pytest.raises(EscrowNotFoundError):
            await ledger.deposit_earnest(registered_asset, BUYER, Decimal("1"))

    @pytest.mark.asyncio
    async def test_duplicate_reference_credits_once(
        self, ledger: EscrowLedger, listed_asset: str
    ) -> None:
        await ledger.deposit_earnest(listed_asset, BUYER, Decimal("5"), tx_reference="0xabc")
        with pytest.raises(DuplicateOperationError):
            await ledger.deposit_earnest(
                listed_asset, BUYER, Decimal("5"), tx_reference="0xabc"
            )
        assert await ledger.get_balance(listed_asset) == Decimal("5")

    @pytest.mark.asyncio
    async def test_rail_failure_credits_nothing(
        self, ledger: EscrowLedger, session_factory, settings, listed_asset: str  # noqa: ANN001
    ) -> None:
        broken = _ledger_like(ledger, session_factory, settings, rail=FailingDepositRail())
        with pytest.raises(PaymentError):
            await broken.deposit_earnest(listed_asset, BUYER, Decimal("5"))

        assert await ledger.get_balance(listed_asset) == Decimal("0")
        assert await ledger.get_deposits(listed_asset) == []


# ---------------------------------------------------------------------------
# Inspection
# ---------------------------------------------------------------------------


class TestInspection:
    @pytest.mark.asyncio
    async def test_last_write_wins(self, ledger: EscrowLedger, listed_asset: str) -> None:
        await ledger.update_inspection_status(listed_asset, INSPECTOR, True)
        assert await ledger.inspection_passed(listed_asset)

        await ledger.update_inspection_status(listed_asset, INSPECTOR, False)
        assert not await ledger.inspection_passed(listed_asset)

        await ledger.update_inspection_status(listed_asset, INSPECTOR, True)
        assert await ledger.inspection_passed(listed_asset)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("caller", [BUYER, SELLER, LENDER, OUTSIDER])
    async def test_only_inspector(
        self, ledger: EscrowLedger, listed_asset: str, caller: str
    ) -> None:
        with pytest.raises(UnauthorizedError):
            await ledger.update_inspection_status(listed_asset, caller, True)
        assert not await ledger.inspection_passed(listed_asset)


# ---------------------------------------------------------------------------
# Approval
# ---------------------------------------------------------------------------


class TestApproval:
    @pytest.mark.asyncio
    async def test_approval_is_per_identity(
        self, ledger: EscrowLedger, listed_asset: str
    ) -> None:
        await ledger.approve_sale(listed_asset, BUYER)

        assert await ledger.approval(listed_asset, BUYER)
        assert not await ledger.approval(listed_asset, SELLER)
        assert not await ledger.approval(listed_asset, LENDER)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("caller", [INSPECTOR, OUTSIDER])
    async def test_non_parties_cannot_approve(
        self, ledger: EscrowLedger, listed_asset: str, caller: str
    ) -> None:
        with pytest.raises(UnauthorizedError):
            await ledger.approve_sale(listed_asset, caller)
        assert not await ledger.approval(listed_asset, caller)

    @pytest.mark.asyncio
    async def test_repeated_approval_is_noop(
        self, ledger: EscrowLedger, listed_asset: str
    ) -> None:
        await ledger.approve_sale(listed_asset, LENDER)
        record = await ledger.approve_sale(listed_asset, LENDER)

        assert record.approved_parties == frozenset({LENDER})
        events = await ledger.get_events(listed_asset)
        approvals = [e for e in events if e.event_type == EventType.SALE_APPROVED.value]
        assert len(approvals) == 1


# ---------------------------------------------------------------------------
# Finalization
# ---------------------------------------------------------------------------


STEPS = ["earnest", "inspection", "buyer", "seller", "lender", "financing"]
UNMET_BY_SKIPPED_STEP = {
    "inspection": "inspection_passed",
    "buyer": "buyer_approved",
    "seller": "seller_approved",
    "lender": "lender_approved",
    "financing": "fully_funded",
}


async def _run_steps(ledger: EscrowLedger, asset_id: str, skip: str) -> None:
    actions = {
        "earnest": lambda: ledger.deposit_earnest(asset_id, BUYER, EARNEST),
        "inspection": lambda: ledger.update_inspection_status(asset_id, INSPECTOR, True),
        "buyer": lambda: ledger.approve_sale(asset_id, BUYER),
        "seller": lambda: ledger.approve_sale(asset_id, SELLER),
        "lender": lambda: ledger.approve_sale(asset_id, LENDER),
        "financing": lambda: ledger.deposit_funds(asset_id, LENDER, PRICE - EARNEST),
    }
    for step in STEPS:
        if step != skip:
            await actions[step]()


class TestFinalization:
    @pytest.mark.asyncio
    async def test_happy_path(self, ledger: EscrowLedger, ready_asset: str) -> None:
        status = await ledger.get_unlock_status(ready_asset)
        assert status.can_finalize
        assert status.unmet == []

        result = await ledger.finalize_sale(ready_asset, SELLER)

        assert isinstance(result, FinalizationResult)
        assert result.new_custodian == BUYER
        assert result.payout.counterparty == SELLER
        assert result.payout.amount == PRICE

        record = await ledger.get_record(ready_asset)
        assert record.finalized is True
        assert record.listed is False
        assert record.status == "FINALIZED"
        assert record.custodial_balance == Decimal("0")
        assert record.finalized_at is not None

        assert await ledger.custody(ready_asset) == (BUYER, None)
        assert await ledger.total_paid_to(SELLER) == PRICE
        assert not await ledger.is_listed(ready_asset)

        events = await ledger.get_events(ready_asset)
        assert events[-1].event_type == EventType.SALE_FINALIZED.value
        assert events[-1].new_status == "FINALIZED"

    @pytest.mark.asyncio
    async def test_full_balance_is_paid_out(
        self, ledger: EscrowLedger, ready_asset: str
    ) -> None:
        await ledger.deposit_funds(ready_asset, OUTSIDER, Decimal("3"))
        result = await ledger.finalize_sale(ready_asset, SELLER)

        assert result.payout.amount == PRICE + Decimal("3")
        assert await ledger.total_paid_to(SELLER) == PRICE + Decimal("3")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("skip", sorted(UNMET_BY_SKIPPED_STEP))
    async def test_each_condition_is_required(
        self, ledger: EscrowLedger, listed_asset: str, skip: str
    ) -> None:
        await _run_steps(ledger, listed_asset, skip)
        before = await ledger.get_record(listed_asset)

        with pytest.raises(ConditionsNotMetError) as exc_info:
            await ledger.finalize_sale(listed_asset, SELLER)

        assert exc_info.value.unmet == [UNMET_BY_SKIPPED_STEP[skip]]
        after = await ledger.get_record(listed_asset)
        assert after.finalized is False
        assert after.custodial_balance == before.custodial_balance
        assert await ledger.custody(listed_asset) == (SELLER, LEDGER)
        assert await ledger.total_paid_to(SELLER) == Decimal("0")

    @pytest.mark.asyncio
    async def test_short_by_a_fraction(self, ledger: EscrowLedger, listed_asset: str) -> None:
        await _run_steps(ledger, listed_asset, skip="financing")
        await ledger.deposit_funds(listed_asset, LENDER, PRICE - EARNEST - Decimal("0.01"))

        with pytest.raises(ConditionsNotMetError) as exc_info:
            await ledger.finalize_sale(listed_asset, SELLER)
        assert exc_info.value.unmet == ["fully_funded"]

    @pytest.mark.asyncio
    async def test_inspection_flip_blocks_finalize(
        self, ledger: EscrowLedger, ready_asset: str
    ) -> None:
        await ledger.update_inspection_status(ready_asset, INSPECTOR, False)
        with pytest.raises(ConditionsNotMetError):
            await ledger.finalize_sale(ready_asset, SELLER)

        await ledger.update_inspection_status(ready_asset, INSPECTOR, True)
        await ledger.finalize_sale(ready_asset, SELLER)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("caller", [BUYER, LENDER, INSPECTOR, OUTSIDER])
    async def test_only_seller_finalizes_by_default(
        self, ledger: EscrowLedger, ready_asset: str, caller: str
    ) -> None:
        with pytest.raises(UnauthorizedError):
            await ledger.finalize_sale(ready_asset, caller)
        assert await ledger.is_listed(ready_asset)

    @pytest.mark.asyncio
    async def test_any_party_policy(
        self, ledger: EscrowLedger, session_factory, settings, ready_asset: str  # noqa: ANN001
    ) -> None:
        any_party = settings.model_copy(update={"finalizer_policy": FinalizerPolicy.ANY_PARTY})
        permissive = _ledger_like(ledger, session_factory, any_party)
        with pytest.raises(UnauthorizedError):
            await permissive.finalize_sale(ready_asset, INSPECTOR)

        result = await permissive.finalize_sale(ready_asset, LENDER)
        assert result.new_custodian == BUYER

    @pytest.mark.asyncio
    async def test_finalized_record_is_sealed(
        self, ledger: EscrowLedger, ready_asset: str
    ) -> None:
        await ledger.finalize_sale(ready_asset, SELLER)

        with pytest.raises(ConditionsNotMetError) as exc_info:
            await ledger.finalize_sale(ready_asset, SELLER)
        assert "not_finalized" in exc_info.value.unmet

        with pytest.raises(InvalidStateTransitionError):
            await ledger.deposit_earnest(ready_asset, BUYER, Decimal("1"))
        with pytest.raises(InvalidStateTransitionError):
            await ledger.update_inspection_status(ready_asset, INSPECTOR, False)
        with pytest.raises(InvalidStateTransitionError):
            await ledger.approve_sale(ready_asset, BUYER)

        assert await ledger.get_balance(ready_asset) == Decimal("0")
        assert await ledger.inspection_passed(ready_asset)
        assert await ledger.total_paid_to(SELLER) == PRICE

    @pytest.mark.asyncio
    async def test_registry_refusal_rolls_back(
        self, ledger: EscrowLedger, session_factory, settings, ready_asset: str  # noqa: ANN001
    ) -> None:
        refusing = _ledger_like(
            ledger, session_factory, settings, registry_factory=RefusingRegistry
        )

        with pytest.raises(TransferFailedError) as exc_info:
            await refusing.finalize_sale(ready_asset, SELLER)
        assert isinstance(exc_info.value.__cause__, NotAuthorizedError)

        record = await ledger.get_record(ready_asset)
        assert record.finalized is False
        assert record.listed is True
        assert record.custodial_balance == PRICE
        assert await ledger.custody(ready_asset) == (SELLER, LEDGER)
        assert await ledger.total_paid_to(SELLER) == Decimal("0")

    @pytest.mark.asyncio
    async def test_payout_failure_rolls_back_custody(
        self, ledger: EscrowLedger, session_factory, settings, ready_asset: str  # noqa: ANN001
    ) -> None:
        broken = _ledger_like(ledger, session_factory, settings, rail=FailingPayoutRail())

        with pytest.raises(TransferFailedError) as exc_info:
            await broken.finalize_sale(ready_asset, SELLER)
        assert isinstance(exc_info.value.__cause__, PaymentError)

        record = await ledger.get_record(ready_asset)
        assert record.finalized is False
        assert record.custodial_balance == PRICE
        assert await ledger.custody(ready_asset) == (SELLER, LEDGER)

        # Nothing was lost: a working rail can still close the sale.
        await ledger.finalize_sale(ready_asset, SELLER)
        assert await ledger.custody(ready_asset) == (BUYER, None)

    @pytest.mark.asyncio
    async def test_concurrent_finalize_succeeds_once(
        self, ledger: EscrowLedger, ready_asset: str
    ) -> None:
        results = await asyncio.gather(
            *(ledger.finalize_sale(ready_asset, SELLER) for _ in range(3)),
            return_exceptions=True,
        )

        successes = [r for r in results if isinstance(r, FinalizationResult)]
        failures = [r for r in results if isinstance(r, ConditionsNotMetError)]
        assert len(successes) == 1
        assert len(failures) == 2
        assert await ledger.total_paid_to(SELLER) == PRICE

    @pytest.mark.asyncio
    async def test_new_custodian_can_relist(
        self, ledger: EscrowLedger, ready_asset: str
    ) -> None:
        await ledger.finalize_sale(ready_asset, SELLER)

        with pytest.raises(NotOwnerError):
            await ledger.list_asset(ready_asset, SELLER, OUTSIDER, PRICE, EARNEST)

        await ledger.authorize_agent(ready_asset, BUYER, LEDGER)
        record = await ledger.list_asset(ready_asset, BUYER, OUTSIDER, Decimal("20"), 0)

        assert record.seller == BUYER
        assert (await ledger.get_record(ready_asset)).id == record.id
        assert await ledger.is_listed(ready_asset)
        assert await ledger.get_balance(ready_asset) == Decimal("0")
        history = await ledger.get_history(ready_asset)
        assert len(history) == 2


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestReads:
    @pytest.mark.asyncio
    async def test_unknown_asset(self, ledger: EscrowLedger) -> None:
        assert await ledger.is_listed("missing") is False
        with pytest.raises(EscrowNotFoundError):
            await ledger.get_balance("missing")
        with pytest.raises(EscrowNotFoundError):
            await ledger.get_unlock_status("missing")

    @pytest.mark.asyncio
    async def test_unlock_status_reports_everything_missing(
        self, ledger: EscrowLedger, listed_asset: str
    ) -> None:
        status = await ledger.get_unlock_status(listed_asset)
        assert not status.can_finalize
        assert status.unmet == [
            "inspection_passed",
            "buyer_approved",
            "seller_approved",
            "lender_approved",
            "fully_funded",
        ]

    @pytest.mark.asyncio
    async def test_reads_do_not_mutate(self, ledger: EscrowLedger, ready_asset: str) -> None:
        before = await ledger.get_events(ready_asset)
        await ledger.get_unlock_status(ready_asset)
        await ledger.get_record(ready_asset)
        await ledger.approval(ready_asset, BUYER)
        assert len(await ledger.get_events(ready_asset)) == len(before)


class TestLocking:
    @pytest.mark.asyncio
    async def test_busy_asset_times_out(
        self, ledger: EscrowLedger, session_factory, settings, listed_asset: str  # noqa: ANN001
    ) -> None:
        from title_escrow.domain.exceptions import LockTimeoutError

        locks = LocalAssetLocks(timeout=0.05)
        impatient = EscrowLedger(session_factory, settings=settings, locks=locks)

        async with locks.hold(listed_asset):
            with pytest.raises(LockTimeoutError):
                await impatient.deposit_earnest(listed_asset, BUYER, Decimal("1"))

        assert await ledger.get_balance(listed_asset) == Decimal("0")
