"""
Payout Service Business Logic

A withdrawal is a saga over two documents:
1. insert Payout(pending)
2. debit the wallet (type payout, reference = payout id, status pending)
If the debit fails the payout is deleted. A payout that later fails is
compensated with a refund credit carrying the same reference, so the
vendor's balance comes back exactly once.
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from core.config import SettlementConfig
from core.money import to_money

from microservices.wallet_service.models import BankAccount, TransactionStatus, TransactionType
from microservices.wallet_service.protocols import InsufficientFundsError

from .models import PAYOUT_TRANSITIONS, Payout, PayoutStatus
from .protocols import (
    InvalidPayoutStateError,
    PayoutNotFoundError,
    PayoutRepositoryProtocol,
    PayoutValidationError,
    WalletLedgerProtocol,
)
from .events.publishers import publish_payout_event

logger = logging.getLogger(__name__)


class PayoutService:
    """Vendor payout business logic"""

    def __init__(
        self,
        repository: PayoutRepositoryProtocol,
        wallet_service: WalletLedgerProtocol,
        event_bus=None,
        config: Optional[SettlementConfig] = None,
    ):
        self.repository = repository
        self.wallet_service = wallet_service
        self.event_bus = event_bus
        self.config = config or SettlementConfig()
        logger.info("✅ PayoutService initialized")

    async def request_withdrawal(
        self,
        vendor_id: str,
        amount: Decimal,
        bank_account: Optional[BankAccount] = None,
        retry_of: Optional[str] = None,
    ) -> Payout:
        """
        Request a transfer of wallet funds to a bank account.

        Args:
            vendor_id: Wallet owner
            amount: Amount to withdraw, positive
            bank_account: Destination; the vendor's saved account when omitted
            retry_of: Failed payout this one retries

        Raises:
            PayoutValidationError: Non-positive amount or no bank account
            InsufficientFundsError: Amount above the wallet balance
            WalletNotFoundError: Unknown vendor
        """
        amount = to_money(amount)
        if amount <= 0:
            raise PayoutValidationError("Withdrawal amount must be positive")

        wallet = await self.wallet_service.get_wallet(vendor_id)
        if amount > wallet.wallet_balance:
            raise InsufficientFundsError(vendor_id, wallet.wallet_balance, amount)

        destination = bank_account or wallet.bank_account
        if destination is None:
            raise PayoutValidationError(
                f"Vendor {vendor_id} has no payout bank account",
                user_message="Add a bank account before requesting a payout",
            )

        now = datetime.now(timezone.utc)
        payout = Payout(
            id=str(uuid.uuid4()),
            vendor_id=vendor_id,
            amount=amount,
            bank_account=destination,
            status=PayoutStatus.PENDING,
            transfer_reference=f"{self.config.payout_reference_prefix}-{vendor_id}-{int(time.time() * 1000)}",
            retry_of=retry_of,
            requested_at=now,
            updated_at=now,
        )
        await self.repository.create_payout(payout)

        try:
            debit = await self.wallet_service.apply_wallet_delta(
                vendor_id,
                -amount,
                TransactionType.PAYOUT,
                reference=payout.id,
                description=f"Payout {payout.transfer_reference}",
                status=TransactionStatus.PENDING,
            )
        except Exception as e:
            logger.warning(f"Wallet debit for payout {payout.id} failed, removing payout: {e}")
            try:
                await self.repository.delete_payout(payout.id)
            except Exception as cleanup_error:
                logger.error(f"Could not remove payout {payout.id}: {cleanup_error}")
            raise

        payout = await self.repository.update_payout(
            payout.id, {"wallet_transaction_id": debit.id}
        ) or payout.model_copy(update={"wallet_transaction_id": debit.id})

        logger.info(f"Payout {payout.id} requested: {amount} for vendor {vendor_id}")
        await publish_payout_event(self.event_bus, payout)
        return payout

    async def mark_processing(self, payout_id: str, transfer_reference: Optional[str] = None) -> Payout:
        """Bank transfer submitted"""
        payout = await self.get_payout(payout_id)
        if payout.status == PayoutStatus.PROCESSING:
            return payout
        self._check_transition(payout, PayoutStatus.PROCESSING)

        now = datetime.now(timezone.utc)
        updates = {"status": PayoutStatus.PROCESSING.value, "processed_at": now, "updated_at": now}
        if transfer_reference:
            updates["transfer_reference"] = transfer_reference
        return await self._update(payout, updates)

    async def complete_payout(self, payout_id: str, transfer_reference: Optional[str] = None) -> Payout:
        """Bank confirmed the transfer; the pending debit becomes completed"""
        payout = await self.get_payout(payout_id)
        if payout.status != PayoutStatus.COMPLETED:
            self._check_transition(payout, PayoutStatus.COMPLETED)
            now = datetime.now(timezone.utc)
            updates = {"status": PayoutStatus.COMPLETED.value, "completed_at": now, "updated_at": now}
            if transfer_reference:
                updates["transfer_reference"] = transfer_reference
            payout = await self._update(payout, updates)
            logger.info(f"Payout {payout_id} completed ({payout.transfer_reference})")
            await publish_payout_event(self.event_bus, payout)

        await self._finalize_debit(payout, TransactionStatus.COMPLETED)
        return payout

    async def fail_payout(self, payout_id: str, reason: str) -> Payout:
        """
        Bank rejected the transfer.

        Marks the debit failed and credits the amount back (type refund,
        reference = payout id). Calling it again on a failed payout only
        finishes whatever compensation is missing.
        """
        payout = await self.get_payout(payout_id)
        if payout.status != PayoutStatus.FAILED:
            self._check_transition(payout, PayoutStatus.FAILED)
            now = datetime.now(timezone.utc)
            payout = await self._update(payout, {
                "status": PayoutStatus.FAILED.value,
                "failed_at": now,
                "failure_reason": reason,
                "updated_at": now,
            })
            logger.warning(f"Payout {payout_id} failed: {reason}")
            await publish_payout_event(self.event_bus, payout)

        if not await self._finalize_debit(payout, TransactionStatus.FAILED):
            return payout
        await self.wallet_service.apply_wallet_delta(
            payout.vendor_id,
            payout.amount,
            TransactionType.REFUND,
            reference=payout.id,
            description=f"Reversal of failed payout {payout.transfer_reference}",
        )
        return payout

    async def retry_payout(self, payout_id: str) -> Payout:
        """Request a new payout for a failed one; returns the existing retry if any"""
        payout = await self.get_payout(payout_id)
        if payout.status != PayoutStatus.FAILED:
            raise InvalidPayoutStateError(
                f"Payout {payout_id} is {payout.status.value}, only failed payouts can be retried",
                user_message="Only failed payouts can be retried",
            )

        existing = await self.repository.get_retry_of(payout_id)
        if existing:
            return existing

        # Make sure the failed amount is back in the wallet before debiting again
        await self.fail_payout(payout_id, payout.failure_reason or "retry")
        retry = await self.request_withdrawal(
            payout.vendor_id, payout.amount, payout.bank_account, retry_of=payout_id
        )
        logger.info(f"Payout {payout_id} retried as {retry.id}")
        return retry

    async def get_payout(self, payout_id: str) -> Payout:
        payout = await self.repository.get_payout(payout_id)
        if not payout:
            raise PayoutNotFoundError(payout_id)
        return payout

    async def list_payouts(
        self,
        vendor_id: str,
        status: Optional[PayoutStatus] = None,
        limit: int = 50,
    ) -> List[Payout]:
        return await self.repository.list_payouts(vendor_id, status, limit)

    # ====================
    # Helpers
    # ====================

    def _check_transition(self, payout: Payout, new_status: PayoutStatus):
        if new_status not in PAYOUT_TRANSITIONS[payout.status]:
            raise InvalidPayoutStateError(
                f"Payout {payout.id} cannot move from {payout.status.value} to {new_status.value}",
                user_message=f"Payout is already {payout.status.value}",
            )

    async def _update(self, payout: Payout, updates) -> Payout:
        updated = await self.repository.update_payout(payout.id, updates, expected_status=payout.status)
        if updated is None:
            current = await self.get_payout(payout.id)
            raise InvalidPayoutStateError(
                f"Payout {payout.id} changed to {current.status.value} concurrently",
                user_message=f"Payout is already {current.status.value}",
            )
        return updated

    async def _finalize_debit(self, payout: Payout, status: TransactionStatus) -> bool:
        """Finalize the payout's wallet debit; False when no debit was ever applied"""
        transaction_id = payout.wallet_transaction_id
        if transaction_id is None:
            debit = await self.wallet_service.find_transaction(
                payout.vendor_id, TransactionType.PAYOUT, payout.id
            )
            if debit is None:
                logger.warning(f"Payout {payout.id} has no wallet debit to finalize")
                return False
            transaction_id = debit.id
        await self.wallet_service.finalize_transaction(transaction_id, status)
        return True
