"""
Wallet Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable
from decimal import Decimal

from core.errors import ConflictError, NotFoundError, ValidationError

# Import only models (no I/O dependencies)
from .models import (
    BankAccount,
    TransactionStatus,
    TransactionType,
    VendorWallet,
    WalletTransaction,
)


# ============================================================================
# Custom Exceptions - defined here to avoid importing repository
# ============================================================================

class WalletNotFoundError(NotFoundError):
    """Wallet not found error"""

    def __init__(self, vendor_id: str):
        super().__init__(f"Wallet not found for vendor {vendor_id}", user_message="Vendor wallet not found")


class InsufficientFundsError(ValidationError):
    """Insufficient balance for the requested operation"""

    def __init__(self, vendor_id: str, balance: Decimal, requested: Decimal):
        super().__init__(
            f"Vendor {vendor_id} balance {balance} cannot cover {requested}",
            user_message="Insufficient funds",
        )


class TransactionNotFoundError(NotFoundError):
    """Transaction not found error"""
    pass


class InvalidTransactionError(ValidationError):
    """Invalid transaction error"""
    pass


class WalletConcurrencyError(ConflictError):
    """Wallet changed between read and write"""
    pass


# ============================================================================
# Repository Protocols
# ============================================================================

@runtime_checkable
class WalletRepositoryProtocol(Protocol):
    """Interface for the vendor wallet repository"""

    async def get_wallet(self, vendor_id: str) -> Optional[VendorWallet]:
        ...

    async def create_wallet(self, wallet: VendorWallet) -> VendorWallet:
        ...

    async def update_bank_account(self, vendor_id: str, bank_account: BankAccount) -> Optional[VendorWallet]:
        ...

    async def compare_and_set_balance(
        self,
        vendor_id: str,
        expected_version: int,
        new_balance: Decimal,
        pending: WalletTransaction,
    ) -> Optional[VendorWallet]:
        """Apply a balance change only if wallet_version is still expected_version"""
        ...

    async def revert_balance(
        self,
        vendor_id: str,
        previous_version: int,
        previous_balance: Decimal,
        transaction_id: str,
    ) -> Optional[VendorWallet]:
        ...

    async def clear_pending(self, vendor_id: str, transaction_id: str) -> Optional[VendorWallet]:
        ...

    async def insert_transaction(self, transaction: WalletTransaction) -> WalletTransaction:
        ...

    async def get_transaction(self, transaction_id: str) -> Optional[WalletTransaction]:
        ...

    async def get_transaction_by_sequence(self, vendor_id: str, sequence: int) -> Optional[WalletTransaction]:
        ...

    async def update_transaction(
        self,
        transaction_id: str,
        updates: Dict[str, Any],
        expected_status: Optional[TransactionStatus] = None,
    ) -> Optional[WalletTransaction]:
        ...

    async def list_transactions(
        self,
        vendor_id: str,
        transaction_type: Optional[TransactionType] = None,
        limit: int = 50,
    ) -> List[WalletTransaction]:
        ...
