"""
Wallet Service Business Logic

The vendor wallet aggregate. wallet_balance is changed only through
`apply_wallet_delta`, which keeps the balance and the transaction ledger
in lockstep:

1. idempotency: a delta is identified by (vendor, type, reference); the
   ledger entry id is derived from that key, so a repeated request finds
   the entry it already produced;
2. optimistic write: the new balance, the bumped wallet_version and the
   ledger entry (as `pending_transaction`) are written in one
   compare-and-set on the vendor document;
3. append: the pending entry is inserted into the ledger and the pending
   marker cleared.

A crash between 2 and 3 leaves the entry on the vendor document; the next
delta for that vendor (or a retry of the same one) appends it first.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.config import SettlementConfig
from core.errors import InvariantViolation
from core.money import to_money

from .models import (
    BankAccount,
    TransactionStatus,
    TransactionType,
    VendorWallet,
    WalletTransaction,
)
from .protocols import (
    InsufficientFundsError,
    InvalidTransactionError,
    TransactionNotFoundError,
    WalletConcurrencyError,
    WalletNotFoundError,
    WalletRepositoryProtocol,
)
from .events.publishers import publish_wallet_credited, publish_wallet_debited

logger = logging.getLogger(__name__)

_LEDGER_NAMESPACE = uuid.UUID("6f1c3c52-7d0e-4b8e-9a3b-2f0f4a9c8d11")


def ledger_entry_id(vendor_id: str, transaction_type: TransactionType, reference: str) -> str:
    """Deterministic ledger entry id for an idempotency key"""
    return str(uuid.uuid5(_LEDGER_NAMESPACE, f"{vendor_id}:{transaction_type.value}:{reference}"))


class WalletService:
    """Vendor wallet business logic"""

    def __init__(
        self,
        repository: WalletRepositoryProtocol,
        event_bus=None,
        config: Optional[SettlementConfig] = None,
    ):
        self.repository = repository
        self.event_bus = event_bus
        self.config = config or SettlementConfig()
        logger.info("✅ WalletService initialized")

    # ====================
    # Wallet management
    # ====================

    async def register_wallet(
        self,
        vendor_id: str,
        business_name: Optional[str] = None,
        bank_account: Optional[BankAccount] = None,
    ) -> VendorWallet:
        """Open a zero-balance wallet; returns the existing wallet when already open"""
        existing = await self.repository.get_wallet(vendor_id)
        if existing:
            return existing

        now = datetime.now(timezone.utc)
        wallet = VendorWallet(
            id=vendor_id,
            business_name=business_name,
            bank_account=bank_account,
            created_at=now,
            updated_at=now,
        )
        await self.repository.create_wallet(wallet)
        logger.info(f"Wallet opened for vendor {vendor_id}")
        return wallet

    async def get_wallet(self, vendor_id: str) -> VendorWallet:
        wallet = await self.repository.get_wallet(vendor_id)
        if not wallet:
            raise WalletNotFoundError(vendor_id)
        return wallet

    async def get_balance(self, vendor_id: str) -> Decimal:
        wallet = await self.get_wallet(vendor_id)
        return wallet.wallet_balance

    async def set_bank_account(self, vendor_id: str, bank_account: BankAccount) -> VendorWallet:
        wallet = await self.repository.update_bank_account(vendor_id, bank_account)
        if not wallet:
            raise WalletNotFoundError(vendor_id)
        logger.info(f"Payout bank account updated for vendor {vendor_id}")
        return wallet

    # ====================
    # Balance changes
    # ====================

    async def apply_wallet_delta(
        self,
        vendor_id: str,
        amount: Decimal,
        transaction_type: TransactionType,
        reference: str,
        description: Optional[str] = None,
        status: TransactionStatus = TransactionStatus.COMPLETED,
    ) -> WalletTransaction:
        """
        Change a vendor's balance by `amount` and append the matching entry.

        Args:
            vendor_id: Wallet owner
            amount: Signed amount, positive credits, negative debits
            transaction_type: sale, refund, payout or fee
            reference: Idempotency reference (escrow id, payout id)
            description: Human-readable note
            status: Initial status of the entry (payout debits start pending)

        Returns:
            The ledger entry; the existing one when this delta was already applied

        Raises:
            InvalidTransactionError: Zero amount or missing reference
            InsufficientFundsError: Debit larger than the balance
            WalletNotFoundError: Unknown vendor
            WalletConcurrencyError: Still contended after wallet_max_retries attempts
        """
        amount = to_money(amount)
        if amount == 0:
            raise InvalidTransactionError("Wallet delta must be non-zero")
        if not reference:
            raise InvalidTransactionError("Wallet delta requires a reference")

        entry_id = ledger_entry_id(vendor_id, transaction_type, reference)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.config.wallet_max_retries),
                wait=wait_exponential(multiplier=0.01, max=0.2),
                retry=retry_if_exception_type(WalletConcurrencyError),
            ):
                with attempt:
                    transaction = await self._apply_once(
                        vendor_id, entry_id, amount, transaction_type, reference, description, status
                    )
        except RetryError as e:
            raise WalletConcurrencyError(
                f"Wallet {vendor_id} still contended after {self.config.wallet_max_retries} attempts",
                user_message="Wallet is busy, please try again",
            ) from e

        if transaction.amount > 0:
            await publish_wallet_credited(self.event_bus, transaction)
        else:
            await publish_wallet_debited(self.event_bus, transaction)
        return transaction

    async def _apply_once(
        self,
        vendor_id: str,
        entry_id: str,
        amount: Decimal,
        transaction_type: TransactionType,
        reference: str,
        description: Optional[str],
        status: TransactionStatus,
    ) -> WalletTransaction:
        existing = await self.repository.get_transaction(entry_id)
        if existing:
            if existing.amount != amount:
                raise InvalidTransactionError(
                    f"Reference {reference} already applied with amount {existing.amount}"
                )
            logger.info(f"Wallet delta {transaction_type.value}/{reference} already applied, skipping")
            return existing

        wallet = await self.get_wallet(vendor_id)

        if wallet.pending_transaction_id:
            await self._complete_pending(wallet)
            if wallet.pending_transaction_id == entry_id:
                return WalletTransaction.model_validate(wallet.pending_transaction)
            raise WalletConcurrencyError(f"Wallet {vendor_id} had an unfinished entry, retrying")

        new_balance = wallet.wallet_balance + amount
        if new_balance < 0:
            raise InsufficientFundsError(vendor_id, wallet.wallet_balance, -amount)

        transaction = WalletTransaction(
            id=entry_id,
            vendor_id=vendor_id,
            transaction_type=transaction_type,
            amount=amount,
            balance_after=new_balance,
            reference=reference,
            description=description,
            status=status,
            sequence=wallet.wallet_version + 1,
            created_at=datetime.now(timezone.utc),
        )

        updated = await self.repository.compare_and_set_balance(
            vendor_id, wallet.wallet_version, new_balance, transaction
        )
        if updated is None:
            raise WalletConcurrencyError(f"Wallet {vendor_id} changed since version {wallet.wallet_version}")

        try:
            await self.repository.insert_transaction(transaction)
        except Exception as e:
            await self._revert_balance(wallet, transaction, e)
            raise
        await self.repository.clear_pending(vendor_id, transaction.id)

        logger.info(
            f"Wallet {vendor_id}: {transaction_type.value} {amount:+} -> {new_balance} "
            f"(ref {reference}, seq {transaction.sequence})"
        )
        return transaction

    async def _revert_balance(self, wallet: VendorWallet, transaction: WalletTransaction, cause: Exception):
        """Undo a balance change whose ledger entry could not be appended"""
        logger.error(f"Ledger append failed for {transaction.id}, reverting vendor {wallet.id}: {cause}")
        try:
            reverted = await self.repository.revert_balance(
                wallet.id, wallet.wallet_version, wallet.wallet_balance, transaction.id
            )
        except Exception as e:
            reverted = None
            logger.error(f"Revert of wallet {wallet.id} raised: {e}")
        if reverted is None:
            raise InvariantViolation(
                f"Wallet {wallet.id} balance changed to {transaction.balance_after} "
                f"without ledger entry {transaction.id}",
                details={"vendor_id": wallet.id, "transaction_id": transaction.id},
            ) from cause

    async def _complete_pending(self, wallet: VendorWallet):
        """Append an entry whose balance change was applied but not yet recorded"""
        pending = WalletTransaction.model_validate(wallet.pending_transaction)
        logger.warning(f"Completing unfinished wallet entry {pending.id} for vendor {wallet.id}")
        await self.repository.insert_transaction(pending)
        await self.repository.clear_pending(wallet.id, pending.id)

    async def finalize_transaction(self, transaction_id: str, status: TransactionStatus) -> WalletTransaction:
        """Move a pending ledger entry to completed or failed"""
        transaction = await self.repository.get_transaction(transaction_id)
        if not transaction:
            raise TransactionNotFoundError(f"Wallet transaction not found: {transaction_id}")
        if transaction.status == status:
            return transaction
        if transaction.status != TransactionStatus.PENDING:
            raise InvalidTransactionError(
                f"Wallet transaction {transaction_id} is already {transaction.status.value}"
            )

        updated = await self.repository.update_transaction(
            transaction_id,
            {"status": status.value, "updated_at": datetime.now(timezone.utc)},
            expected_status=TransactionStatus.PENDING,
        )
        if updated is None:
            return await self.repository.get_transaction(transaction_id)
        return updated

    # ====================
    # Queries and checks
    # ====================

    async def find_transaction(
        self, vendor_id: str, transaction_type: TransactionType, reference: str
    ) -> Optional[WalletTransaction]:
        return await self.repository.get_transaction(ledger_entry_id(vendor_id, transaction_type, reference))

    async def list_transactions(
        self,
        vendor_id: str,
        transaction_type: Optional[TransactionType] = None,
        limit: int = 50,
    ) -> List[WalletTransaction]:
        await self.get_wallet(vendor_id)
        return await self.repository.list_transactions(vendor_id, transaction_type, limit)

    async def verify_wallet(self, vendor_id: str) -> VendorWallet:
        """
        Check wallet_balance against the latest ledger entry.

        Raises:
            InvariantViolation: Balance and ledger disagree
        """
        wallet = await self.get_wallet(vendor_id)
        if wallet.pending_transaction_id:
            await self._complete_pending(wallet)
            wallet = await self.get_wallet(vendor_id)

        if wallet.wallet_version == 0:
            if wallet.wallet_balance != 0:
                raise InvariantViolation(
                    f"Wallet {vendor_id} has balance {wallet.wallet_balance} but no ledger entries",
                    details={"vendor_id": vendor_id},
                )
            return wallet

        latest = await self.repository.get_transaction_by_sequence(vendor_id, wallet.wallet_version)
        if latest is None or latest.balance_after != wallet.wallet_balance:
            raise InvariantViolation(
                f"Wallet {vendor_id} balance {wallet.wallet_balance} disagrees with ledger "
                f"entry {latest.id if latest else 'missing'} at sequence {wallet.wallet_version}",
                details={
                    "vendor_id": vendor_id,
                    "wallet_balance": str(wallet.wallet_balance),
                    "ledger_balance": str(latest.balance_after) if latest else None,
                },
            )
        return wallet
