"""
Wallet Repository Implementation

Handles vendor wallet and wallet transaction documents in the ledger store
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from core.errors import ConflictError
from core.ledger_store import LedgerStoreProtocol
from .models import (
    BankAccount,
    TransactionStatus,
    TransactionType,
    VendorWallet,
    WalletTransaction,
)

logger = logging.getLogger(__name__)


class WalletRepository:
    """Repository for wallet operations"""

    wallets_collection = "vendors"
    transactions_collection = "wallet_transactions"

    def __init__(self, store: LedgerStoreProtocol):
        self.store = store

    async def get_wallet(self, vendor_id: str) -> Optional[VendorWallet]:
        doc = await self.store.get(self.wallets_collection, vendor_id)
        return VendorWallet.model_validate(doc) if doc else None

    async def create_wallet(self, wallet: VendorWallet) -> VendorWallet:
        await self.store.insert(self.wallets_collection, wallet.model_dump(mode="json"))
        return wallet

    async def update_bank_account(self, vendor_id: str, bank_account: BankAccount) -> Optional[VendorWallet]:
        doc = await self.store.update(
            self.wallets_collection,
            vendor_id,
            {"bank_account": bank_account.model_dump(), "updated_at": datetime.now(timezone.utc)},
        )
        return VendorWallet.model_validate(doc) if doc else None

    async def compare_and_set_balance(
        self,
        vendor_id: str,
        expected_version: int,
        new_balance: Decimal,
        pending: WalletTransaction,
    ) -> Optional[VendorWallet]:
        doc = await self.store.update(
            self.wallets_collection,
            vendor_id,
            {
                "wallet_balance": new_balance,
                "wallet_version": expected_version + 1,
                "pending_transaction_id": pending.id,
                "pending_transaction": pending.model_dump(mode="json"),
                "updated_at": datetime.now(timezone.utc),
            },
            expected={"wallet_version": expected_version, "pending_transaction_id": None},
        )
        return VendorWallet.model_validate(doc) if doc else None

    async def revert_balance(
        self,
        vendor_id: str,
        previous_version: int,
        previous_balance: Decimal,
        transaction_id: str,
    ) -> Optional[VendorWallet]:
        """Roll back a pending balance change that was never appended"""
        doc = await self.store.update(
            self.wallets_collection,
            vendor_id,
            {
                "wallet_balance": previous_balance,
                "wallet_version": previous_version,
                "pending_transaction_id": None,
                "pending_transaction": None,
                "updated_at": datetime.now(timezone.utc),
            },
            expected={"wallet_version": previous_version + 1, "pending_transaction_id": transaction_id},
        )
        return VendorWallet.model_validate(doc) if doc else None

    async def clear_pending(self, vendor_id: str, transaction_id: str) -> Optional[VendorWallet]:
        doc = await self.store.update(
            self.wallets_collection,
            vendor_id,
            {"pending_transaction_id": None, "pending_transaction": None},
            expected={"pending_transaction_id": transaction_id},
        )
        return VendorWallet.model_validate(doc) if doc else None

    async def insert_transaction(self, transaction: WalletTransaction) -> WalletTransaction:
        """Append a ledger entry. Appending an id that already exists is a no-op."""
        try:
            await self.store.insert(self.transactions_collection, transaction.model_dump(mode="json"))
        except ConflictError:
            logger.debug(f"Wallet transaction {transaction.id} already appended")
        return transaction

    async def get_transaction(self, transaction_id: str) -> Optional[WalletTransaction]:
        doc = await self.store.get(self.transactions_collection, transaction_id)
        return WalletTransaction.model_validate(doc) if doc else None

    async def get_transaction_by_sequence(self, vendor_id: str, sequence: int) -> Optional[WalletTransaction]:
        docs = await self.store.query(
            self.transactions_collection, {"vendor_id": vendor_id, "sequence": sequence}, limit=1
        )
        return WalletTransaction.model_validate(docs[0]) if docs else None

    async def update_transaction(
        self,
        transaction_id: str,
        updates: Dict[str, Any],
        expected_status: Optional[TransactionStatus] = None,
    ) -> Optional[WalletTransaction]:
        expected = {"status": expected_status.value} if expected_status else None
        doc = await self.store.update(self.transactions_collection, transaction_id, updates, expected=expected)
        return WalletTransaction.model_validate(doc) if doc else None

    async def list_transactions(
        self,
        vendor_id: str,
        transaction_type: Optional[TransactionType] = None,
        limit: int = 50,
    ) -> List[WalletTransaction]:
        filters: Dict[str, Any] = {"vendor_id": vendor_id}
        if transaction_type:
            filters["transaction_type"] = transaction_type.value
        docs = await self.store.query(self.transactions_collection, filters)
        transactions = [WalletTransaction.model_validate(doc) for doc in docs]
        transactions.sort(key=lambda t: t.sequence, reverse=True)
        return transactions[:limit]
