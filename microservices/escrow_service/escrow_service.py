"""
Escrow Service Business Logic

Holds buyer payments against orders and settles them exactly once:
released into the vendor's wallet, or refunded to the buyer. Also files
disputes, which freeze the escrow until the dispute service settles it.

Multi-document units run as sagas:
- release: CAS escrow -> released, then wallet credit keyed by the escrow id,
  then record the wallet transaction id. A retry of a half-done release
  finishes the credit instead of failing.
- dispute: insert dispute, CAS escrow -> disputed, CAS order -> disputed;
  a failing step undoes the earlier ones.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from core.config import SettlementConfig
from core.errors import ConflictError, ValidationError

from microservices.dispute_service.models import (
    ACTIVE_DISPUTE_STATUSES,
    Dispute,
    DisputeCreateRequest,
    FiledByType,
)
from microservices.dispute_service.protocols import DisputeRepositoryProtocol
from microservices.order_service.models import (
    CANCELLABLE_ORDER_STATUSES,
    OrderStatus,
    PaymentStatus,
)
from microservices.wallet_service.models import TransactionType

from .fee_policy import calculate_escrow_split
from .escrow_repository import escrow_id_for_order
from .models import (
    DEFAULT_RELEASE_REASONS,
    DeliveryConfirmationResponse,
    EscrowRelease,
    EscrowReleaseResponse,
    EscrowStatus,
    EscrowTransaction,
    PendingReleaseSweepResponse,
    ReleaseIntentStatus,
    ReleaseType,
)
from .protocols import (
    DeliveryConfirmationProtocol,
    EscrowAlreadySettledError,
    EscrowDisputedError,
    EscrowNotFoundError,
    EscrowRepositoryProtocol,
    EscrowValidationError,
    OrderManagerProtocol,
    PaymentNotCapturedError,
    WalletLedgerProtocol,
)
from .events.publishers import (
    publish_dispute_opened,
    publish_escrow_held,
    publish_escrow_refunded,
    publish_escrow_released,
)

logger = logging.getLogger(__name__)


class EscrowService:
    """
    Escrow ledger business logic

    Owns EscrowTransaction and EscrowRelease records. Vendor balances are
    changed only through the wallet ledger's apply_wallet_delta.
    """

    def __init__(
        self,
        repository: EscrowRepositoryProtocol,
        order_service: OrderManagerProtocol,
        wallet_service: WalletLedgerProtocol,
        dispute_repository: DisputeRepositoryProtocol,
        delivery_service: Optional[DeliveryConfirmationProtocol] = None,
        event_bus=None,
        config: Optional[SettlementConfig] = None,
    ):
        """
        Initialize Escrow Service

        Args:
            repository: Escrow repository
            order_service: Order manager (status transitions)
            wallet_service: Vendor wallet ledger
            dispute_repository: Where filed disputes are stored
            delivery_service: Delivery tracker, needed for buyer confirmation
            event_bus: NATS event bus instance (optional)
            config: Settlement settings (fee percent, auto release)
        """
        self.repository = repository
        self.order_service = order_service
        self.wallet_service = wallet_service
        self.dispute_repository = dispute_repository
        self.delivery_service = delivery_service
        self.event_bus = event_bus
        self.config = config or SettlementConfig()

        logger.info("✅ EscrowService initialized")

    # ====================
    # Hold
    # ====================

    async def hold_escrow(self, order_id: str, payment_reference: Optional[str] = None) -> EscrowTransaction:
        """
        Open the escrow hold for a paid order.

        Business Rules:
        - One escrow per order: an existing hold is returned unchanged
        - The order must have a captured payment
        - vendor_amount/platform_fee follow the platform fee policy
        - An order already under dispute gets its escrow frozen and linked
          to the open dispute

        Raises:
            OrderNotFoundError: Unknown order
            PaymentNotCapturedError: Order not paid
        """
        existing = await self.repository.get_escrow_by_order(order_id)
        if existing:
            logger.info(f"Escrow already open for order {order_id} ({existing.status.value})")
            return existing

        order = await self.order_service.get_order(order_id)
        if order.payment_status != PaymentStatus.PAID:
            raise PaymentNotCapturedError(
                f"Order {order_id} payment is {order.payment_status.value}",
                user_message="Payment has not been received for this order",
            )

        vendor_amount, platform_fee = calculate_escrow_split(
            order.subtotal, order.total, self.config.platform_fee_percent
        )
        now = datetime.now(timezone.utc)
        escrow = EscrowTransaction(
            id=escrow_id_for_order(order_id),
            order_id=order_id,
            buyer_id=order.buyer_id,
            vendor_id=order.vendor_id,
            amount=order.total,
            vendor_amount=vendor_amount,
            platform_fee=platform_fee,
            status=EscrowStatus.HELD,
            payment_reference=payment_reference or order.payment_reference,
            created_at=now,
            updated_at=now,
        )

        try:
            await self.repository.create_escrow(escrow)
        except ConflictError:
            # Lost a race with a concurrent hold for the same order
            return await self.get_escrow_for_order(order_id)

        logger.info(
            f"Escrow {escrow.id} held for order {order_id}: "
            f"vendor {vendor_amount} + fee {platform_fee} = {escrow.amount}"
        )
        await publish_escrow_held(self.event_bus, escrow)

        # A dispute may have been filed before or while the hold was written
        order = await self.order_service.get_order(order_id)
        if order.status == OrderStatus.DISPUTED:
            escrow = await self._freeze_for_open_dispute(escrow)
        return escrow

    async def _freeze_for_open_dispute(self, escrow: EscrowTransaction) -> EscrowTransaction:
        """Freeze an escrow opened after its order was disputed and link it to the dispute"""
        now = datetime.now(timezone.utc)
        if escrow.status == EscrowStatus.HELD:
            frozen = await self.repository.update_escrow(
                escrow.id,
                {"status": EscrowStatus.DISPUTED.value, "updated_at": now},
                expected_status=EscrowStatus.HELD,
            )
            escrow = frozen or await self.get_escrow_for_order(escrow.order_id)

        for dispute in await self.dispute_repository.list_disputes(order_id=escrow.order_id):
            if dispute.status in ACTIVE_DISPUTE_STATUSES and dispute.escrow_transaction_id is None:
                await self.dispute_repository.update_dispute(
                    dispute.id, {"escrow_transaction_id": escrow.id, "updated_at": now}
                )
                logger.warning(f"Escrow {escrow.id} opened during dispute {dispute.id}, now {escrow.status.value}")
        return escrow

    # ====================
    # Release / Refund
    # ====================

    async def release_escrow(
        self,
        order_id: str,
        release_type: ReleaseType,
        released_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> EscrowReleaseResponse:
        """
        Release held funds into the vendor's wallet, at most once.

        Business Rules:
        - Allowed from held; from disputed only with dispute_resolution
        - Never for a cancelled order, and only dispute_resolution while the
          order is under dispute
        - Status flip is a compare-and-set that also stamps a release claim,
          so of two racing releases exactly one wins and the other gets a
          ConflictError
        - The wallet credit is keyed by the escrow id and is never applied twice
        - A release whose credit did not complete is resumed on retry once
          its claim was dropped or has expired

        Raises:
            EscrowNotFoundError: No escrow for the order
            EscrowAlreadySettledError: Already released or refunded, or
                another caller is finishing the release
            EscrowDisputedError: Frozen by an open dispute
            ConflictError: Order was cancelled
        """
        escrow = await self.get_escrow_for_order(order_id)

        if escrow.status == EscrowStatus.RELEASED and escrow.wallet_transaction_id is None:
            claimed = await self._reclaim_unfinished_release(escrow)
            return await self._credit_vendor(claimed)

        self._assert_can_release(escrow, release_type)
        order = await self.order_service.get_order(order_id)
        if order.status == OrderStatus.CANCELLED:
            raise ConflictError(
                f"Order {order_id} is cancelled, escrow {escrow.id} cannot be released",
                user_message="This order was cancelled",
            )
        if order.status == OrderStatus.DISPUTED and release_type != ReleaseType.DISPUTE_RESOLUTION:
            raise EscrowDisputedError(escrow.id)

        now = datetime.now(timezone.utc)
        released = await self.repository.update_escrow(
            escrow.id,
            {
                "status": EscrowStatus.RELEASED.value,
                "release_type": release_type.value,
                "released_by": released_by,
                "released_at": now,
                "release_reason": notes or DEFAULT_RELEASE_REASONS[release_type],
                "release_attempt_id": str(uuid.uuid4()),
                "release_claimed_until": self._claim_deadline(now),
                "updated_at": now,
            },
            expected_status=escrow.status,
        )
        if released is None:
            current = await self.get_escrow_for_order(order_id)
            raise EscrowAlreadySettledError(escrow.id, current.status)

        logger.info(f"Escrow {escrow.id} released ({release_type.value}) by {released_by or 'system'}")
        return await self._credit_vendor(released)

    def _assert_can_release(self, escrow: EscrowTransaction, release_type: ReleaseType):
        if escrow.status in (EscrowStatus.RELEASED, EscrowStatus.REFUNDED):
            raise EscrowAlreadySettledError(escrow.id, escrow.status)
        if escrow.status == EscrowStatus.DISPUTED and release_type != ReleaseType.DISPUTE_RESOLUTION:
            raise EscrowDisputedError(escrow.id)
        if escrow.status == EscrowStatus.HELD and release_type == ReleaseType.DISPUTE_RESOLUTION:
            raise ConflictError(
                f"Escrow {escrow.id} is not under dispute",
                user_message="There is no open dispute for this order",
            )

    def _claim_deadline(self, now: datetime) -> datetime:
        return now + timedelta(seconds=self.config.escrow_release_lease_seconds)

    async def _reclaim_unfinished_release(self, escrow: EscrowTransaction) -> EscrowTransaction:
        """Take over a release whose owner dropped its claim or let it expire"""
        now = datetime.now(timezone.utc)
        if escrow.release_claimed_until and escrow.release_claimed_until > now:
            raise EscrowAlreadySettledError(escrow.id, escrow.status)

        claimed = await self.repository.update_escrow(
            escrow.id,
            {
                "release_attempt_id": str(uuid.uuid4()),
                "release_claimed_until": self._claim_deadline(now),
                "updated_at": now,
            },
            expected_status=EscrowStatus.RELEASED,
            expected_fields={"release_attempt_id": escrow.release_attempt_id, "wallet_transaction_id": None},
        )
        if claimed is None:
            raise EscrowAlreadySettledError(escrow.id, escrow.status)

        logger.warning(f"Resuming unfinished release of escrow {escrow.id}")
        return claimed

    async def _credit_vendor(self, escrow: EscrowTransaction) -> EscrowReleaseResponse:
        try:
            transaction = await self.wallet_service.apply_wallet_delta(
                escrow.vendor_id,
                escrow.vendor_amount,
                TransactionType.SALE,
                reference=escrow.id,
                description=f"Escrow release for order {escrow.order_id}",
            )
            updated = await self.repository.update_escrow(
                escrow.id,
                {
                    "wallet_transaction_id": transaction.id,
                    "release_claimed_until": None,
                    "updated_at": datetime.now(timezone.utc),
                },
                expected_fields={"release_attempt_id": escrow.release_attempt_id},
            )
        except Exception:
            await self._drop_release_claim(escrow)
            raise
        if updated is None:
            # Our claim expired and another caller finished the release
            raise EscrowAlreadySettledError(escrow.id, EscrowStatus.RELEASED)
        escrow = updated

        await self._consume_release_intents(escrow.id, ReleaseIntentStatus.CONSUMED)
        if escrow.release_type == ReleaseType.DISPUTE_RESOLUTION:
            await self.order_service.restore_after_dispute(escrow.order_id, refunded=False)

        await publish_escrow_released(self.event_bus, escrow)
        return EscrowReleaseResponse(
            escrow=escrow,
            wallet_transaction_id=transaction.id,
            wallet_balance_after=transaction.balance_after,
        )

    async def _drop_release_claim(self, escrow: EscrowTransaction):
        try:
            await self.repository.update_escrow(
                escrow.id,
                {"release_claimed_until": None},
                expected_fields={"release_attempt_id": escrow.release_attempt_id},
            )
        except Exception as e:
            logger.error(f"Could not drop release claim on escrow {escrow.id}, resumable after it expires: {e}")

    async def refund_escrow(
        self,
        order_id: str,
        reason: str,
        refunded_by: Optional[str] = None,
        from_dispute: bool = False,
    ) -> EscrowTransaction:
        """
        Mark held funds as refunded to the buyer and cancel the order.

        No wallet entry is written; the payment processor returns the money
        out of band. Only the dispute service passes from_dispute=True.

        Raises:
            EscrowNotFoundError: No escrow for the order
            EscrowAlreadySettledError: Already released or refunded
            EscrowDisputedError: Frozen by an open dispute
            InvalidOrderStateError: Order already shipped (refund via dispute)
        """
        escrow = await self.get_escrow_for_order(order_id)

        if escrow.status == EscrowStatus.REFUNDED:
            order = await self.order_service.get_order(order_id)
            if order.payment_status != PaymentStatus.REFUNDED:
                logger.warning(f"Resuming unfinished refund of escrow {escrow.id}")
                await self._cancel_refunded_order(escrow, reason, from_dispute)
                return escrow
            raise EscrowAlreadySettledError(escrow.id, escrow.status)
        if escrow.status == EscrowStatus.RELEASED:
            raise EscrowAlreadySettledError(escrow.id, escrow.status)
        if escrow.status == EscrowStatus.DISPUTED and not from_dispute:
            raise EscrowDisputedError(escrow.id)

        if escrow.status == EscrowStatus.HELD:
            order = await self.order_service.get_order(order_id)
            if order.status not in CANCELLABLE_ORDER_STATUSES:
                raise ConflictError(
                    f"Order {order_id} is {order.status.value}; refunds after shipment need a dispute",
                    user_message="This order can no longer be cancelled, please open a dispute",
                )

        now = datetime.now(timezone.utc)
        refunded = await self.repository.update_escrow(
            escrow.id,
            {
                "status": EscrowStatus.REFUNDED.value,
                "released_by": refunded_by,
                "released_at": now,
                "release_reason": reason,
                "updated_at": now,
            },
            expected_status=escrow.status,
        )
        if refunded is None:
            current = await self.get_escrow_for_order(order_id)
            raise EscrowAlreadySettledError(escrow.id, current.status)

        await self._cancel_refunded_order(refunded, reason, escrow.status == EscrowStatus.DISPUTED)
        await self._consume_release_intents(refunded.id, ReleaseIntentStatus.SUPERSEDED)

        logger.info(f"Escrow {escrow.id} refunded: {reason}")
        await publish_escrow_refunded(self.event_bus, refunded, reason)
        return refunded

    async def _cancel_refunded_order(self, escrow: EscrowTransaction, reason: str, from_dispute: bool):
        if from_dispute:
            await self.order_service.restore_after_dispute(escrow.order_id, refunded=True, reason=reason)
        else:
            await self.order_service.update_order_payment_status(
                escrow.order_id, PaymentStatus.REFUNDED, reference=f"REFUND-{escrow.id}"
            )

    async def cancel_order(self, order_id: str, reason: str, cancelled_by: Optional[str] = None):
        """
        Cancel an order before shipment.

        An unpaid order is simply cancelled. A paid order is cancelled by
        refunding its escrow (opening the hold first if the order.paid
        handler has not yet), so the money never stays held against a
        cancelled order.
        """
        order = await self.order_service.get_order(order_id)
        if order.payment_status != PaymentStatus.PAID:
            return await self.order_service.cancel_order(order_id, reason, cancelled_by)

        await self.hold_escrow(order_id)
        await self.refund_escrow(order_id, reason, refunded_by=cancelled_by)
        return await self.order_service.get_order(order_id)

    # ====================
    # Disputes
    # ====================

    async def create_dispute(self, order_id: str, request: DisputeCreateRequest) -> Dispute:
        """
        File a dispute and freeze the order's escrow.

        Business Rules:
        - Filed by the order's buyer or vendor
        - Dispute(open), escrow -> disputed and order -> disputed are written
          as one unit: a failing step undoes the earlier ones
        - Orders whose funds were already settled cannot be disputed
        - A paid order whose hold is not open yet gets it opened first, so
          the funds are frozen together with the order
        - The order flips to disputed from the status read here; a
          concurrent filing loses and is undone

        Raises:
            OrderNotFoundError: Unknown order
            EscrowValidationError: Filer is not a party to the order
            ConflictError: Dispute already open, order cancelled or funds settled
        """
        order = await self.order_service.get_order(order_id)

        party = order.buyer_id if request.filed_by_type == FiledByType.BUYER else order.vendor_id
        if request.filed_by != party:
            raise EscrowValidationError(
                f"{request.filed_by} is not the {request.filed_by_type.value} of order {order_id}",
                user_message="Only the buyer or vendor of this order can open a dispute",
            )

        open_disputes = [
            d for d in await self.dispute_repository.list_disputes(order_id=order_id)
            if d.status in ACTIVE_DISPUTE_STATUSES
        ]
        if open_disputes or order.status == OrderStatus.DISPUTED:
            raise ConflictError(
                f"Order {order_id} already has an open dispute",
                user_message="A dispute is already open for this order",
            )
        if order.status == OrderStatus.CANCELLED:
            raise ConflictError(f"Order {order_id} is cancelled", user_message="This order was cancelled")

        escrow = await self.repository.get_escrow_by_order(order_id)
        if escrow is None and order.payment_status == PaymentStatus.PAID:
            # Paid, but the order.paid handler has not opened the hold yet
            escrow = await self.hold_escrow(order_id)
        if escrow and escrow.status == EscrowStatus.DISPUTED:
            raise ConflictError(
                f"Escrow {escrow.id} is already disputed",
                user_message="A dispute is already open for this order",
            )
        if escrow and escrow.status != EscrowStatus.HELD:
            raise EscrowAlreadySettledError(escrow.id, escrow.status)
        if escrow is None and order.status == OrderStatus.DELIVERED:
            raise ConflictError(
                f"Order {order_id} is delivered with no funds in escrow",
                user_message="Funds for this order were already settled",
            )

        now = datetime.now(timezone.utc)
        dispute = Dispute(
            id=str(uuid.uuid4()),
            order_id=order_id,
            escrow_transaction_id=escrow.id if escrow else None,
            filed_by=request.filed_by,
            filed_by_type=request.filed_by_type,
            dispute_type=request.dispute_type,
            description=request.description,
            evidence_urls=request.evidence_urls,
            created_at=now,
            updated_at=now,
        )
        await self.dispute_repository.create_dispute(dispute)

        escrow_frozen = False
        try:
            if escrow:
                frozen = await self.repository.update_escrow(
                    escrow.id,
                    {"status": EscrowStatus.DISPUTED.value, "updated_at": now},
                    expected_status=EscrowStatus.HELD,
                )
                if frozen is None:
                    raise ConflictError(
                        f"Escrow {escrow.id} changed while filing dispute",
                        user_message="Escrow already released or refunded",
                    )
                escrow_frozen = True
            await self.order_service.transition_status(
                order_id, OrderStatus.DISPUTED, expected_status=order.status
            )
        except Exception as e:
            logger.error(f"Dispute filing for order {order_id} failed, compensating: {e}")
            await self._undo_dispute(dispute, escrow.id if escrow_frozen else None)
            raise

        if escrow is None:
            late = await self.repository.get_escrow_by_order(order_id)
            if late:
                await self._freeze_for_open_dispute(late)
                dispute = await self.dispute_repository.get_dispute(dispute.id) or dispute

        logger.info(
            f"Dispute {dispute.id} ({dispute.dispute_type.value}) opened on order {order_id} "
            f"by {dispute.filed_by_type.value} {dispute.filed_by}"
        )
        await publish_dispute_opened(self.event_bus, dispute)
        return dispute

    async def _undo_dispute(self, dispute: Dispute, frozen_escrow_id: Optional[str]):
        if frozen_escrow_id:
            try:
                await self.repository.update_escrow(
                    frozen_escrow_id,
                    {"status": EscrowStatus.HELD.value, "updated_at": datetime.now(timezone.utc)},
                    expected_status=EscrowStatus.DISPUTED,
                )
            except Exception as e:
                logger.error(f"Could not unfreeze escrow {frozen_escrow_id}: {e}")
        try:
            await self.dispute_repository.delete_dispute(dispute.id)
        except Exception as e:
            logger.error(f"Could not remove dispute {dispute.id}: {e}")

    # ====================
    # Buyer confirmation
    # ====================

    async def confirm_delivery(self, order_id: str, buyer_id: str) -> DeliveryConfirmationResponse:
        """
        Buyer confirms receipt: mark the delivery delivered, record a
        manual_buyer release intent and consume it when the escrow is held.

        A disputed escrow keeps the intent pending until the dispute is
        settled.

        Raises:
            OrderNotFoundError / DeliveryNotFoundError / EscrowNotFoundError
            EscrowValidationError: Caller is not the order's buyer
        """
        if self.delivery_service is None:
            raise ValidationError("Delivery confirmation is not available")

        order = await self.order_service.get_order(order_id)
        if order.buyer_id != buyer_id:
            raise EscrowValidationError(
                f"{buyer_id} is not the buyer of order {order_id}",
                user_message="Only the buyer can confirm delivery",
            )
        escrow = await self.get_escrow_for_order(order_id)

        delivery = await self.delivery_service.mark_delivered_by_buyer(order_id, buyer_id)

        now = datetime.now(timezone.utc)
        intent = await self.repository.create_release_intent(
            EscrowRelease(
                id=str(uuid.uuid4()),
                escrow_transaction_id=escrow.id,
                order_id=order_id,
                release_type=ReleaseType.MANUAL_BUYER,
                buyer_confirmed_delivery=True,
                delivery_confirmed_at=delivery.actual_delivery_date or now,
                release_requested_by=buyer_id,
                created_at=now,
            )
        )

        released = False
        escrow = await self.get_escrow_for_order(order_id)
        if escrow.status == EscrowStatus.HELD:
            try:
                result = await self.release_escrow(order_id, ReleaseType.MANUAL_BUYER, buyer_id)
                escrow = result.escrow
                released = True
            except ConflictError as e:
                escrow = await self.get_escrow_for_order(order_id)
                logger.info(f"Release intent {intent.id} waits ({escrow.status.value}): {e.message}")
        else:
            logger.info(f"Release intent {intent.id} waits: escrow for order {order_id} is {escrow.status.value}")

        intent = await self._reload_intent(intent)
        return DeliveryConfirmationResponse(
            order_id=order_id,
            delivery_id=delivery.id,
            release_intent=intent,
            escrow_status=escrow.status,
            escrow_released=released,
        )

    async def process_pending_releases(self) -> PendingReleaseSweepResponse:
        """
        Sweep pending release intents: release the ones whose escrow is held
        again (or finish a release whose wallet credit did not complete),
        supersede the ones whose escrow was settled another way.
        """
        released = 0
        superseded = 0
        waiting: List[str] = []

        for intent in await self.repository.list_release_intents(status=ReleaseIntentStatus.PENDING):
            escrow = await self.repository.get_escrow(intent.escrow_transaction_id)
            if escrow is None:
                continue
            unfinished = escrow.status == EscrowStatus.RELEASED and escrow.wallet_transaction_id is None
            if escrow.status == EscrowStatus.HELD or unfinished:
                try:
                    await self.release_escrow(
                        intent.order_id, intent.release_type, intent.release_requested_by
                    )
                    released += 1
                    continue
                except ConflictError as e:
                    logger.info(f"Release intent {intent.id} not released: {e.message}")
                    escrow = await self.repository.get_escrow(intent.escrow_transaction_id)
            in_flight = escrow.status == EscrowStatus.RELEASED and escrow.wallet_transaction_id is None
            if in_flight:
                # Another caller owns the release and will consume the intent
                waiting.append(intent.id)
            elif escrow.status in (EscrowStatus.RELEASED, EscrowStatus.REFUNDED):
                await self.repository.update_release_intent(
                    intent.id,
                    {"status": ReleaseIntentStatus.SUPERSEDED.value, "consumed_at": datetime.now(timezone.utc)},
                    expected_status=ReleaseIntentStatus.PENDING,
                )
                superseded += 1
            else:
                waiting.append(intent.id)

        if released or superseded:
            logger.info(f"Release sweep: {released} released, {superseded} superseded, {len(waiting)} waiting")
        return PendingReleaseSweepResponse(released=released, superseded=superseded, waiting=waiting)

    async def _consume_release_intents(self, escrow_id: str, status: ReleaseIntentStatus):
        now = datetime.now(timezone.utc)
        for intent in await self.repository.list_release_intents(escrow_id, ReleaseIntentStatus.PENDING):
            await self.repository.update_release_intent(
                intent.id,
                {"status": status.value, "consumed_at": now},
                expected_status=ReleaseIntentStatus.PENDING,
            )

    async def _reload_intent(self, intent: EscrowRelease) -> EscrowRelease:
        for candidate in await self.repository.list_release_intents(intent.escrow_transaction_id):
            if candidate.id == intent.id:
                return candidate
        return intent

    # ====================
    # Queries
    # ====================

    async def get_escrow_for_order(self, order_id: str) -> EscrowTransaction:
        escrow = await self.repository.get_escrow_by_order(order_id)
        if not escrow:
            raise EscrowNotFoundError(order_id)
        return escrow

    async def list_release_intents(self, order_id: str) -> List[EscrowRelease]:
        escrow = await self.get_escrow_for_order(order_id)
        return await self.repository.list_release_intents(escrow.id)
