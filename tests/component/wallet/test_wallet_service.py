"""
Wallet Service Component Tests

apply_wallet_delta idempotency, concurrency and ledger consistency.

Usage:
    pytest tests/component/wallet -v
"""
import asyncio
from decimal import Decimal

import pytest

from core.errors import DependencyError, InvariantViolation
from microservices.wallet_service.models import TransactionStatus, TransactionType
from microservices.wallet_service.protocols import (
    InsufficientFundsError,
    InvalidTransactionError,
    WalletNotFoundError,
)


async def _credit(wallet_service, vendor_id, amount, reference):
    return await wallet_service.apply_wallet_delta(vendor_id, Decimal(amount), TransactionType.SALE, reference)


@pytest.mark.component
@pytest.mark.asyncio
class TestWalletRegistration:

    async def test_register_opens_zero_balance_wallet(self, wallet_service):
        wallet = await wallet_service.register_wallet("vendor_new", "New Stores")

        assert wallet.wallet_balance == Decimal("0")
        assert wallet.wallet_version == 0
        assert await wallet_service.get_balance("vendor_new") == Decimal("0")

    async def test_register_twice_returns_existing(self, wallet_service, vendor_wallet):
        await _credit(wallet_service, vendor_wallet.id, "100.00", "esc-1")

        again = await wallet_service.register_wallet(vendor_wallet.id)

        assert again.wallet_balance == Decimal("100.00")

    async def test_unknown_vendor(self, wallet_service):
        with pytest.raises(WalletNotFoundError):
            await wallet_service.get_wallet("nobody")


@pytest.mark.component
@pytest.mark.asyncio
class TestApplyWalletDelta:

    async def test_credit_updates_balance_and_ledger(self, wallet_service, vendor_wallet, event_bus):
        entry = await _credit(wallet_service, vendor_wallet.id, "6250.00", "esc-1")

        assert entry.balance_after == Decimal("6250.00")
        assert entry.sequence == 1
        assert entry.status == TransactionStatus.COMPLETED
        wallet = await wallet_service.get_wallet(vendor_wallet.id)
        assert wallet.wallet_balance == Decimal("6250.00")
        assert wallet.pending_transaction_id is None
        event_bus.assert_event_published("wallet.credited", {"vendor_id": vendor_wallet.id, "reference": "esc-1"})

    async def test_same_reference_applied_once(self, wallet_service, vendor_wallet):
        first = await _credit(wallet_service, vendor_wallet.id, "500.00", "esc-1")
        second = await _credit(wallet_service, vendor_wallet.id, "500.00", "esc-1")

        assert first.id == second.id
        assert await wallet_service.get_balance(vendor_wallet.id) == Decimal("500.00")
        assert len(await wallet_service.list_transactions(vendor_wallet.id)) == 1

    async def test_same_reference_different_amount_rejected(self, wallet_service, vendor_wallet):
        await _credit(wallet_service, vendor_wallet.id, "500.00", "esc-1")

        with pytest.raises(InvalidTransactionError):
            await _credit(wallet_service, vendor_wallet.id, "400.00", "esc-1")

    async def test_debit_beyond_balance_rejected(self, wallet_service, vendor_wallet):
        await _credit(wallet_service, vendor_wallet.id, "100.00", "esc-1")

        with pytest.raises(InsufficientFundsError):
            await wallet_service.apply_wallet_delta(
                vendor_wallet.id, Decimal("-100.01"), TransactionType.PAYOUT, "payout-1"
            )
        assert await wallet_service.get_balance(vendor_wallet.id) == Decimal("100.00")

    async def test_zero_delta_rejected(self, wallet_service, vendor_wallet):
        with pytest.raises(InvalidTransactionError):
            await _credit(wallet_service, vendor_wallet.id, "0", "esc-1")

    async def test_concurrent_credits_all_land(self, wallet_service, vendor_wallet):
        amounts = ["100.00", "250.50", "49.50", "600.00"]

        await asyncio.gather(*[
            _credit(wallet_service, vendor_wallet.id, amount, f"esc-{i}")
            for i, amount in enumerate(amounts)
        ])

        wallet = await wallet_service.verify_wallet(vendor_wallet.id)
        assert wallet.wallet_balance == Decimal("1000.00")
        assert wallet.wallet_version == 4
        entries = await wallet_service.list_transactions(vendor_wallet.id)
        assert sorted(e.sequence for e in entries) == [1, 2, 3, 4]

    async def test_concurrent_debits_never_overdraw(self, wallet_service, vendor_wallet):
        await _credit(wallet_service, vendor_wallet.id, "100.00", "esc-1")

        results = await asyncio.gather(
            wallet_service.apply_wallet_delta(vendor_wallet.id, Decimal("-70"), TransactionType.PAYOUT, "p-1"),
            wallet_service.apply_wallet_delta(vendor_wallet.id, Decimal("-70"), TransactionType.PAYOUT, "p-2"),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], InsufficientFundsError)
        assert await wallet_service.get_balance(vendor_wallet.id) == Decimal("30.00")

    async def test_failed_append_reverts_balance(self, wallet_service, vendor_wallet, store):
        store.fail_on("wallet_transactions", "insert")

        with pytest.raises(DependencyError):
            await _credit(wallet_service, vendor_wallet.id, "500.00", "esc-1")

        wallet = await wallet_service.get_wallet(vendor_wallet.id)
        assert wallet.wallet_balance == Decimal("0")
        assert wallet.wallet_version == 0
        assert wallet.pending_transaction_id is None

        entry = await _credit(wallet_service, vendor_wallet.id, "500.00", "esc-1")
        assert entry.balance_after == Decimal("500.00")
        await wallet_service.verify_wallet(vendor_wallet.id)

    async def test_failed_revert_is_invariant_violation(self, wallet_service, vendor_wallet, store):
        store.fail_on("wallet_transactions", "insert")
        # CAS write succeeds, revert write fails
        store.fail_on("vendors", "update", after=1)

        with pytest.raises(InvariantViolation):
            await _credit(wallet_service, vendor_wallet.id, "500.00", "esc-1")

    async def test_unfinished_entry_is_completed_by_next_delta(self, wallet_service, vendor_wallet, store):
        store.fail_on("vendors", "update", after=1)
        # CAS and append succeed, clearing the pending marker fails
        with pytest.raises(DependencyError):
            await _credit(wallet_service, vendor_wallet.id, "500.00", "esc-1")
        assert (await wallet_service.get_wallet(vendor_wallet.id)).pending_transaction_id is not None

        await _credit(wallet_service, vendor_wallet.id, "200.00", "esc-2")

        wallet = await wallet_service.verify_wallet(vendor_wallet.id)
        assert wallet.wallet_balance == Decimal("700.00")
        assert wallet.pending_transaction_id is None


@pytest.mark.component
@pytest.mark.asyncio
class TestLedgerChecks:

    async def test_finalize_pending_debit(self, wallet_service, vendor_wallet):
        await _credit(wallet_service, vendor_wallet.id, "100.00", "esc-1")
        debit = await wallet_service.apply_wallet_delta(
            vendor_wallet.id, Decimal("-60"), TransactionType.PAYOUT, "p-1", status=TransactionStatus.PENDING
        )

        done = await wallet_service.finalize_transaction(debit.id, TransactionStatus.COMPLETED)
        again = await wallet_service.finalize_transaction(debit.id, TransactionStatus.COMPLETED)

        assert done.status == again.status == TransactionStatus.COMPLETED
        with pytest.raises(InvalidTransactionError):
            await wallet_service.finalize_transaction(debit.id, TransactionStatus.FAILED)

    async def test_find_transaction_by_reference(self, wallet_service, vendor_wallet):
        entry = await _credit(wallet_service, vendor_wallet.id, "100.00", "esc-1")

        found = await wallet_service.find_transaction(vendor_wallet.id, TransactionType.SALE, "esc-1")
        missing = await wallet_service.find_transaction(vendor_wallet.id, TransactionType.REFUND, "esc-1")

        assert found.id == entry.id
        assert missing is None

    async def test_verify_detects_tampered_balance(self, wallet_service, vendor_wallet, store):
        await _credit(wallet_service, vendor_wallet.id, "100.00", "esc-1")
        await store.update("vendors", vendor_wallet.id, {"wallet_balance": "999.00"})

        with pytest.raises(InvariantViolation):
            await wallet_service.verify_wallet(vendor_wallet.id)

    async def test_list_transactions_newest_first(self, wallet_service, vendor_wallet):
        for i in range(3):
            await _credit(wallet_service, vendor_wallet.id, "10.00", f"esc-{i}")

        entries = await wallet_service.list_transactions(vendor_wallet.id, limit=2)

        assert [e.sequence for e in entries] == [3, 2]
