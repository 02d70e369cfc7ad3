"""
Escrow Service Component Tests

Hold, at-most-once release, refund, dispute filing saga, buyer
confirmation and the pending-release sweep.

Usage:
    pytest tests/component/escrow -v
"""
import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from core.errors import ConflictError, DependencyError
from microservices.delivery_service.models import DeliveryStatus
from microservices.dispute_service.models import Dispute, DisputeOutcome, DisputeStatus, DisputeType, FiledByType
from microservices.escrow_service.models import EscrowStatus, ReleaseIntentStatus, ReleaseType
from microservices.escrow_service.protocols import (
    EscrowAlreadySettledError,
    EscrowDisputedError,
    EscrowNotFoundError,
    EscrowValidationError,
    PaymentNotCapturedError,
)
from microservices.order_service.models import OrderStatus, PaymentStatus
from microservices.wallet_service.models import TransactionType
from tests.fixtures import (
    make_delivery_request,
    make_dispute_request,
    make_order_item,
    make_order_request,
    make_reference,
)


class GatedWallet:
    """Wallet ledger that parks every credit until the test lets it through"""

    def __init__(self, inner):
        self.inner = inner
        self.entered = asyncio.Event()
        self.proceed = asyncio.Event()

    async def apply_wallet_delta(self, *args, **kwargs):
        self.entered.set()
        await self.proceed.wait()
        return await self.inner.apply_wallet_delta(*args, **kwargs)


@pytest.mark.component
@pytest.mark.asyncio
class TestHoldEscrow:

    async def test_hold_splits_fee_and_vendor_amount(self, escrow_service, paid_order, event_bus):
        escrow = await escrow_service.hold_escrow(paid_order.id)

        assert escrow.status == EscrowStatus.HELD
        assert escrow.amount == Decimal("6500.00")
        assert escrow.platform_fee == Decimal("250.00")
        assert escrow.vendor_amount == Decimal("6250.00")
        assert escrow.vendor_amount + escrow.platform_fee == escrow.amount
        assert escrow.payment_reference == paid_order.payment_reference
        event_bus.assert_event_published("escrow.held", {"order_id": paid_order.id})

    async def test_second_hold_returns_existing(self, escrow_service, held_escrow, event_bus):
        again = await escrow_service.hold_escrow(held_escrow.order_id)

        assert again.id == held_escrow.id
        assert len(event_bus.get_published("escrow.held")) == 1

    async def test_concurrent_holds_create_one_escrow(self, escrow_service, paid_order, store):
        first, second = await asyncio.gather(
            escrow_service.hold_escrow(paid_order.id),
            escrow_service.hold_escrow(paid_order.id),
        )

        assert first.id == second.id
        assert store.count("escrow_transactions") == 1

    async def test_unpaid_order_rejected(self, escrow_service, pending_order):
        with pytest.raises(PaymentNotCapturedError):
            await escrow_service.hold_escrow(pending_order.id)

    async def test_missing_escrow(self, escrow_service, pending_order):
        with pytest.raises(EscrowNotFoundError):
            await escrow_service.get_escrow_for_order(pending_order.id)


@pytest.mark.component
@pytest.mark.asyncio
class TestReleaseEscrow:

    async def test_release_credits_vendor_wallet(self, escrow_service, wallet_service, held_escrow, event_bus):
        result = await escrow_service.release_escrow(held_escrow.order_id, ReleaseType.ADMIN_OVERRIDE, "admin_1")

        assert result.escrow.status == EscrowStatus.RELEASED
        assert result.escrow.release_type == ReleaseType.ADMIN_OVERRIDE
        assert result.escrow.wallet_transaction_id == result.wallet_transaction_id
        assert result.wallet_balance_after == Decimal("6250.00")
        assert await wallet_service.get_balance(held_escrow.vendor_id) == Decimal("6250.00")
        entry = await wallet_service.find_transaction(held_escrow.vendor_id, TransactionType.SALE, held_escrow.id)
        assert entry.amount == Decimal("6250.00")
        event_bus.assert_event_published("escrow.released", {"escrow_id": held_escrow.id, "release_type": "admin_override"})

    async def test_second_release_rejected_without_second_credit(self, escrow_service, wallet_service, held_escrow):
        await escrow_service.release_escrow(held_escrow.order_id, ReleaseType.AUTO_DELIVERY)

        with pytest.raises(EscrowAlreadySettledError):
            await escrow_service.release_escrow(held_escrow.order_id, ReleaseType.MANUAL_BUYER)
        assert await wallet_service.get_balance(held_escrow.vendor_id) == Decimal("6250.00")

    async def test_racing_releases_credit_once(self, escrow_service, wallet_service, held_escrow):
        results = await asyncio.gather(
            escrow_service.release_escrow(held_escrow.order_id, ReleaseType.AUTO_DELIVERY),
            escrow_service.release_escrow(held_escrow.order_id, ReleaseType.MANUAL_BUYER),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], EscrowAlreadySettledError)
        assert await wallet_service.get_balance(held_escrow.vendor_id) == Decimal("6250.00")
        assert len(await wallet_service.list_transactions(held_escrow.vendor_id)) == 1

    async def test_interrupted_release_is_resumed(self, escrow_service, wallet_service, held_escrow, store):
        store.fail_on("wallet_transactions", "get")

        with pytest.raises(DependencyError):
            await escrow_service.release_escrow(held_escrow.order_id, ReleaseType.AUTO_DELIVERY)
        escrow = await escrow_service.get_escrow_for_order(held_escrow.order_id)
        assert escrow.status == EscrowStatus.RELEASED
        assert escrow.wallet_transaction_id is None

        result = await escrow_service.release_escrow(held_escrow.order_id, ReleaseType.AUTO_DELIVERY)

        assert result.escrow.wallet_transaction_id is not None
        assert await wallet_service.get_balance(held_escrow.vendor_id) == Decimal("6250.00")

    async def test_release_started_after_claim_is_refused(self, escrow_service, wallet_service, held_escrow, event_bus):
        gate = GatedWallet(wallet_service)
        escrow_service.wallet_service = gate
        first = asyncio.create_task(
            escrow_service.release_escrow(held_escrow.order_id, ReleaseType.AUTO_DELIVERY)
        )
        await gate.entered.wait()
        claimed = await escrow_service.get_escrow_for_order(held_escrow.order_id)
        assert claimed.status == EscrowStatus.RELEASED
        assert claimed.wallet_transaction_id is None

        with pytest.raises(EscrowAlreadySettledError):
            await escrow_service.release_escrow(held_escrow.order_id, ReleaseType.MANUAL_BUYER)

        gate.proceed.set()
        result = await first

        assert result.escrow.release_type == ReleaseType.AUTO_DELIVERY
        assert result.escrow.release_claimed_until is None
        assert await wallet_service.get_balance(held_escrow.vendor_id) == Decimal("6250.00")
        assert len(await wallet_service.list_transactions(held_escrow.vendor_id)) == 1
        assert len(event_bus.get_published("escrow.released")) == 1

    async def test_abandoned_release_resumes_after_claim_expires(
        self, escrow_service, wallet_service, held_escrow, store, event_bus
    ):
        gate = GatedWallet(wallet_service)
        escrow_service.wallet_service = gate
        first = asyncio.create_task(
            escrow_service.release_escrow(held_escrow.order_id, ReleaseType.AUTO_DELIVERY)
        )
        await gate.entered.wait()
        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        with pytest.raises(EscrowAlreadySettledError):
            await escrow_service.release_escrow(held_escrow.order_id, ReleaseType.AUTO_DELIVERY)

        expired = datetime.now(timezone.utc) - timedelta(seconds=1)
        await store.update("escrow_transactions", held_escrow.id, {"release_claimed_until": expired})
        gate.proceed.set()
        result = await escrow_service.release_escrow(held_escrow.order_id, ReleaseType.AUTO_DELIVERY)

        assert result.escrow.wallet_transaction_id is not None
        assert await wallet_service.get_balance(held_escrow.vendor_id) == Decimal("6250.00")
        assert len(await wallet_service.list_transactions(held_escrow.vendor_id)) == 1
        assert len(event_bus.get_published("escrow.released")) == 1

    async def test_release_refused_for_cancelled_order(self, escrow_service, wallet_service, held_escrow, store):
        await store.update("orders", held_escrow.order_id, {"status": OrderStatus.CANCELLED.value})

        with pytest.raises(ConflictError) as exc_info:
            await escrow_service.release_escrow(held_escrow.order_id, ReleaseType.ADMIN_OVERRIDE)

        assert exc_info.value.user_message == "This order was cancelled"
        assert (await escrow_service.get_escrow_for_order(held_escrow.order_id)).status == EscrowStatus.HELD
        assert await wallet_service.get_balance(held_escrow.vendor_id) == Decimal("0")

    async def test_disputed_escrow_cannot_be_released_normally(self, escrow_service, held_escrow, paid_order):
        await escrow_service.create_dispute(paid_order.id, make_dispute_request(paid_order.buyer_id))

        with pytest.raises(EscrowDisputedError):
            await escrow_service.release_escrow(paid_order.id, ReleaseType.MANUAL_BUYER)

    async def test_dispute_resolution_release_needs_dispute(self, escrow_service, held_escrow):
        with pytest.raises(ConflictError):
            await escrow_service.release_escrow(held_escrow.order_id, ReleaseType.DISPUTE_RESOLUTION)


@pytest.mark.component
@pytest.mark.asyncio
class TestRefundEscrow:

    async def test_refund_cancels_order_without_wallet_entry(
        self, escrow_service, order_service, wallet_service, held_escrow, event_bus
    ):
        escrow = await escrow_service.refund_escrow(held_escrow.order_id, "Out of stock", "vendor_shop_001")

        assert escrow.status == EscrowStatus.REFUNDED
        assert escrow.release_reason == "Out of stock"
        order = await order_service.get_order(held_escrow.order_id)
        assert order.status == OrderStatus.CANCELLED
        assert order.payment_status == PaymentStatus.REFUNDED
        assert await wallet_service.list_transactions(held_escrow.vendor_id) == []
        event_bus.assert_event_published("escrow.refunded", {"escrow_id": held_escrow.id, "reason": "Out of stock"})

    async def test_refund_after_shipment_requires_dispute(self, escrow_service, order_service, booked_delivery):
        await order_service.transition_status(booked_delivery.order_id, OrderStatus.SHIPPED)

        with pytest.raises(ConflictError) as exc_info:
            await escrow_service.refund_escrow(booked_delivery.order_id, "Changed my mind")
        assert "dispute" in exc_info.value.user_message
        escrow = await escrow_service.get_escrow_for_order(booked_delivery.order_id)
        assert escrow.status == EscrowStatus.HELD

    async def test_released_escrow_cannot_be_refunded(self, escrow_service, held_escrow):
        await escrow_service.release_escrow(held_escrow.order_id, ReleaseType.ADMIN_OVERRIDE)

        with pytest.raises(EscrowAlreadySettledError):
            await escrow_service.refund_escrow(held_escrow.order_id, "too late")

    async def test_disputed_escrow_refund_needs_dispute_service(self, escrow_service, held_escrow, paid_order):
        await escrow_service.create_dispute(paid_order.id, make_dispute_request(paid_order.buyer_id))

        with pytest.raises(EscrowDisputedError):
            await escrow_service.refund_escrow(paid_order.id, "refund please")

    async def test_refund_then_release_rejected(self, escrow_service, wallet_service, held_escrow):
        await escrow_service.refund_escrow(held_escrow.order_id, "Out of stock")

        with pytest.raises(EscrowAlreadySettledError):
            await escrow_service.release_escrow(held_escrow.order_id, ReleaseType.ADMIN_OVERRIDE)
        assert await wallet_service.get_balance(held_escrow.vendor_id) == Decimal("0")


@pytest.mark.component
@pytest.mark.asyncio
class TestCancelOrder:
    """cancel_order routes paid orders through an escrow refund"""

    async def test_cancel_paid_order_refunds_escrow(self, escrow_service, wallet_service, held_escrow, paid_order, event_bus):
        order = await escrow_service.cancel_order(paid_order.id, "Changed my mind", paid_order.buyer_id)

        assert order.status == OrderStatus.CANCELLED
        assert order.payment_status == PaymentStatus.REFUNDED
        escrow = await escrow_service.get_escrow_for_order(paid_order.id)
        assert escrow.status == EscrowStatus.REFUNDED
        assert escrow.released_by == paid_order.buyer_id
        event_bus.assert_event_published("escrow.refunded", {"order_id": paid_order.id})

        with pytest.raises(EscrowAlreadySettledError):
            await escrow_service.release_escrow(paid_order.id, ReleaseType.MANUAL_BUYER, paid_order.buyer_id)
        assert await wallet_service.get_balance(paid_order.vendor_id) == Decimal("0")

    async def test_cancel_paid_order_before_hold(self, escrow_service, paid_order, store):
        order = await escrow_service.cancel_order(paid_order.id, "Out of stock")

        assert order.status == OrderStatus.CANCELLED
        assert store.count("escrow_transactions") == 1
        assert (await escrow_service.get_escrow_for_order(paid_order.id)).status == EscrowStatus.REFUNDED

    async def test_cancel_unpaid_order(self, escrow_service, pending_order, store):
        order = await escrow_service.cancel_order(pending_order.id, "Changed my mind", pending_order.buyer_id)

        assert order.status == OrderStatus.CANCELLED
        assert order.payment_status == PaymentStatus.PENDING
        assert store.count("escrow_transactions") == 0

    async def test_cancel_after_shipment_rejected(self, escrow_service, delivery_service, booked_delivery):
        await delivery_service.handle_courier_webhook(booked_delivery.tracking_number, "in_transit")

        with pytest.raises(ConflictError):
            await escrow_service.cancel_order(booked_delivery.order_id, "too late")

        assert (await escrow_service.get_escrow_for_order(booked_delivery.order_id)).status == EscrowStatus.HELD


@pytest.mark.component
@pytest.mark.asyncio
class TestCreateDispute:

    async def test_dispute_freezes_escrow_and_order(self, escrow_service, order_service, held_escrow, paid_order, event_bus):
        dispute = await escrow_service.create_dispute(paid_order.id, make_dispute_request(paid_order.buyer_id))

        assert dispute.status == DisputeStatus.OPEN
        assert dispute.escrow_transaction_id == held_escrow.id
        assert (await escrow_service.get_escrow_for_order(paid_order.id)).status == EscrowStatus.DISPUTED
        order = await order_service.get_order(paid_order.id)
        assert order.status == OrderStatus.DISPUTED
        assert order.status_before_dispute == OrderStatus.CONFIRMED
        event_bus.assert_event_published("dispute.opened", {"dispute_id": dispute.id})

    async def test_vendor_can_file(self, escrow_service, held_escrow, paid_order):
        dispute = await escrow_service.create_dispute(
            paid_order.id, make_dispute_request(paid_order.vendor_id, FiledByType.VENDOR)
        )

        assert dispute.filed_by_type == FiledByType.VENDOR

    async def test_stranger_cannot_file(self, escrow_service, held_escrow, paid_order, store):
        with pytest.raises(EscrowValidationError):
            await escrow_service.create_dispute(paid_order.id, make_dispute_request("someone_else"))
        assert store.count("disputes") == 0

    async def test_one_open_dispute_per_order(self, escrow_service, held_escrow, paid_order):
        await escrow_service.create_dispute(paid_order.id, make_dispute_request(paid_order.buyer_id))

        with pytest.raises(ConflictError):
            await escrow_service.create_dispute(
                paid_order.id, make_dispute_request(paid_order.vendor_id, FiledByType.VENDOR)
            )

    async def test_failed_order_step_undoes_dispute(self, escrow_service, order_service, held_escrow, paid_order, store, event_bus):
        store.fail_on("orders", "update")

        with pytest.raises(DependencyError):
            await escrow_service.create_dispute(paid_order.id, make_dispute_request(paid_order.buyer_id))

        assert store.count("disputes") == 0
        assert (await escrow_service.get_escrow_for_order(paid_order.id)).status == EscrowStatus.HELD
        assert (await order_service.get_order(paid_order.id)).status == OrderStatus.CONFIRMED
        event_bus.assert_no_events_published("dispute.opened")

    async def test_settled_escrow_cannot_be_disputed(self, escrow_service, held_escrow, paid_order):
        await escrow_service.release_escrow(paid_order.id, ReleaseType.ADMIN_OVERRIDE)

        with pytest.raises(EscrowAlreadySettledError):
            await escrow_service.create_dispute(paid_order.id, make_dispute_request(paid_order.buyer_id))

    async def test_unpaid_order_can_be_disputed(self, escrow_service, order_service, pending_order):
        dispute = await escrow_service.create_dispute(pending_order.id, make_dispute_request(pending_order.buyer_id))

        assert dispute.escrow_transaction_id is None
        assert (await order_service.get_order(pending_order.id)).status == OrderStatus.DISPUTED

    async def test_racing_filings_keep_one_dispute(self, escrow_service, order_service, pending_order, store):
        results = await asyncio.gather(
            escrow_service.create_dispute(pending_order.id, make_dispute_request(pending_order.buyer_id)),
            escrow_service.create_dispute(
                pending_order.id, make_dispute_request(pending_order.vendor_id, FiledByType.VENDOR)
            ),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], ConflictError)
        assert store.count("disputes") == 1
        assert (await order_service.get_order(pending_order.id)).status == OrderStatus.DISPUTED

    async def test_paid_order_without_hold_is_frozen_on_filing(
        self, escrow_service, dispute_service, wallet_service, paid_order, store
    ):
        dispute = await escrow_service.create_dispute(paid_order.id, make_dispute_request(paid_order.buyer_id))

        escrow = await escrow_service.get_escrow_for_order(paid_order.id)
        assert escrow.status == EscrowStatus.DISPUTED
        assert dispute.escrow_transaction_id == escrow.id
        again = await escrow_service.hold_escrow(paid_order.id)
        assert again.status == EscrowStatus.DISPUTED
        assert store.count("escrow_transactions") == 1

        with pytest.raises(ConflictError):
            await escrow_service.release_escrow(paid_order.id, ReleaseType.MANUAL_BUYER, paid_order.buyer_id)

        await dispute_service.resolve_dispute(dispute.id, "Parcel lost", DisputeOutcome.REFUND_TO_BUYER)
        assert (await escrow_service.get_escrow_for_order(paid_order.id)).status == EscrowStatus.REFUNDED
        assert await wallet_service.get_balance(paid_order.vendor_id) == Decimal("0")

    async def test_hold_on_disputed_order_is_frozen_and_linked(
        self, escrow_service, order_service, dispute_repository, paid_order
    ):
        await order_service.transition_status(paid_order.id, OrderStatus.DISPUTED)
        now = datetime.now(timezone.utc)
        filed = await dispute_repository.create_dispute(Dispute(
            id=str(uuid.uuid4()),
            order_id=paid_order.id,
            filed_by=paid_order.buyer_id,
            filed_by_type=FiledByType.BUYER,
            dispute_type=DisputeType.NON_DELIVERY,
            description="Parcel never arrived",
            created_at=now,
            updated_at=now,
        ))

        escrow = await escrow_service.hold_escrow(paid_order.id)

        assert escrow.status == EscrowStatus.DISPUTED
        linked = await dispute_repository.get_dispute(filed.id)
        assert linked.escrow_transaction_id == escrow.id
        with pytest.raises(ConflictError):
            await escrow_service.release_escrow(paid_order.id, ReleaseType.MANUAL_BUYER, paid_order.buyer_id)

    async def test_filing_racing_hold_freezes_escrow(self, escrow_service, dispute_repository, paid_order, store):
        dispute, _ = await asyncio.gather(
            escrow_service.create_dispute(paid_order.id, make_dispute_request(paid_order.buyer_id)),
            escrow_service.hold_escrow(paid_order.id),
        )

        escrow = await escrow_service.get_escrow_for_order(paid_order.id)
        assert escrow.status == EscrowStatus.DISPUTED
        assert (await dispute_repository.get_dispute(dispute.id)).escrow_transaction_id == escrow.id
        assert store.count("escrow_transactions") == 1


@pytest.mark.component
@pytest.mark.asyncio
class TestBuyerConfirmation:

    async def test_confirmation_releases_escrow(
        self, escrow_service, order_service, delivery_service, wallet_service, booked_delivery
    ):
        order_id = booked_delivery.order_id
        order = await order_service.get_order(order_id)

        result = await escrow_service.confirm_delivery(order_id, order.buyer_id)

        assert result.escrow_released is True
        assert result.escrow_status == EscrowStatus.RELEASED
        assert result.release_intent.status == ReleaseIntentStatus.CONSUMED
        assert result.release_intent.buyer_confirmed_delivery is True
        delivery = await delivery_service.get_delivery(booked_delivery.id)
        assert delivery.delivery_status == DeliveryStatus.DELIVERED
        assert (await order_service.get_order(order_id)).status == OrderStatus.DELIVERED
        escrow = await escrow_service.get_escrow_for_order(order_id)
        assert escrow.release_type == ReleaseType.MANUAL_BUYER
        assert await wallet_service.get_balance(order.vendor_id) == Decimal("6250.00")

    async def test_only_buyer_can_confirm(self, escrow_service, booked_delivery):
        with pytest.raises(EscrowValidationError):
            await escrow_service.confirm_delivery(booked_delivery.order_id, "not_the_buyer")

    async def test_confirmation_during_dispute_waits(self, escrow_service, order_service, booked_delivery):
        order_id = booked_delivery.order_id
        order = await order_service.get_order(order_id)
        await escrow_service.create_dispute(order_id, make_dispute_request(order.buyer_id))

        result = await escrow_service.confirm_delivery(order_id, order.buyer_id)

        assert result.escrow_released is False
        assert result.escrow_status == EscrowStatus.DISPUTED
        assert result.release_intent.status == ReleaseIntentStatus.PENDING
        assert (await order_service.get_order(order_id)).status == OrderStatus.DISPUTED

        sweep = await escrow_service.process_pending_releases()
        assert sweep.released == 0
        assert sweep.waiting == [result.release_intent.id]


@pytest.mark.component
@pytest.mark.asyncio
class TestPendingReleaseSweep:

    async def test_sweep_releases_intent_whose_release_failed(self, escrow_service, order_service, wallet_service, booked_delivery, store):
        order = await order_service.get_order(booked_delivery.order_id)
        store.fail_on("escrow_transactions", "update")

        with pytest.raises(DependencyError):
            await escrow_service.confirm_delivery(order.id, order.buyer_id)
        assert (await escrow_service.get_escrow_for_order(order.id)).status == EscrowStatus.HELD

        sweep = await escrow_service.process_pending_releases()

        assert sweep.released == 1
        assert await wallet_service.get_balance(order.vendor_id) == Decimal("6250.00")
        intents = await escrow_service.list_release_intents(order.id)
        assert [i.status for i in intents] == [ReleaseIntentStatus.CONSUMED]

    async def test_sweep_finishes_interrupted_credit(self, escrow_service, order_service, wallet_service, booked_delivery, store):
        order = await order_service.get_order(booked_delivery.order_id)
        store.fail_on("wallet_transactions", "get")

        with pytest.raises(DependencyError):
            await escrow_service.confirm_delivery(order.id, order.buyer_id)

        sweep = await escrow_service.process_pending_releases()

        assert sweep.released == 1
        escrow = await escrow_service.get_escrow_for_order(order.id)
        assert escrow.wallet_transaction_id is not None
        assert await wallet_service.get_balance(order.vendor_id) == Decimal("6250.00")

    async def test_sweep_with_nothing_pending(self, escrow_service, held_escrow):
        sweep = await escrow_service.process_pending_releases()

        assert (sweep.released, sweep.superseded, sweep.waiting) == (0, 0, [])


@pytest.mark.component
@pytest.mark.asyncio
class TestSettlementScenarios:
    """End-to-end settlement of a single order across order, delivery and escrow"""

    async def _two_item_order(self, order_service, vendor_wallet):
        request = make_order_request(
            vendor_id=vendor_wallet.id,
            items=[make_order_item("5000.00", 2), make_order_item("3000.00", 1)],
            delivery_cost="1000.00",
        )
        created = await order_service.create_order(request)
        return await order_service.update_order_payment_status(
            created.order_id, PaymentStatus.PAID, make_reference(), "card"
        )

    async def test_two_item_order_settles_to_vendor(
        self, escrow_service, order_service, delivery_service, wallet_service, vendor_wallet, event_bus
    ):
        order = await self._two_item_order(order_service, vendor_wallet)
        assert order.subtotal == Decimal("13000.00")
        assert order.total == Decimal("14000.00")

        escrow = await escrow_service.hold_escrow(order.id)
        assert escrow.platform_fee == Decimal("650.00")
        assert escrow.vendor_amount == Decimal("13350.00")

        delivery = await delivery_service.create_delivery(make_delivery_request(order.id))
        assert delivery.delivery_status == DeliveryStatus.PICKUP_SCHEDULED
        assert (await order_service.get_order(order.id)).status == OrderStatus.PROCESSING

        await delivery_service.handle_courier_webhook(delivery.tracking_number, "delivered")
        assert (await order_service.get_order(order.id)).status == OrderStatus.DELIVERED

        result = await escrow_service.release_escrow(order.id, ReleaseType.MANUAL_BUYER, order.buyer_id)

        assert result.escrow.status == EscrowStatus.RELEASED
        assert result.escrow.platform_fee == Decimal("650.00")
        assert result.wallet_balance_after == Decimal("13350.00")
        assert await wallet_service.get_balance(vendor_wallet.id) == Decimal("13350.00")
        event_bus.assert_event_published("escrow.released", {"order_id": order.id, "release_type": "manual_buyer"})

    async def test_dispute_while_processing_blocks_buyer_release(
        self, escrow_service, order_service, wallet_service, booked_delivery
    ):
        order = await order_service.get_order(booked_delivery.order_id)
        assert order.status == OrderStatus.PROCESSING

        await escrow_service.create_dispute(order.id, make_dispute_request(order.buyer_id))

        with pytest.raises(ConflictError):
            await escrow_service.release_escrow(order.id, ReleaseType.MANUAL_BUYER, order.buyer_id)
        assert (await escrow_service.get_escrow_for_order(order.id)).status == EscrowStatus.DISPUTED
        assert await wallet_service.get_balance(order.vendor_id) == Decimal("0")

    async def test_buyer_release_racing_an_in_flight_release(
        self, escrow_service, order_service, delivery_service, wallet_service, vendor_wallet
    ):
        order = await self._two_item_order(order_service, vendor_wallet)
        await escrow_service.hold_escrow(order.id)
        delivery = await delivery_service.create_delivery(make_delivery_request(order.id))
        await delivery_service.handle_courier_webhook(delivery.tracking_number, "delivered")

        gate = GatedWallet(wallet_service)
        escrow_service.wallet_service = gate
        auto = asyncio.create_task(escrow_service.release_escrow(order.id, ReleaseType.AUTO_DELIVERY))
        await gate.entered.wait()

        with pytest.raises(EscrowAlreadySettledError):
            await escrow_service.release_escrow(order.id, ReleaseType.MANUAL_BUYER, order.buyer_id)

        gate.proceed.set()
        await auto
        assert await wallet_service.get_balance(vendor_wallet.id) == Decimal("13350.00")
        assert len(await wallet_service.list_transactions(vendor_wallet.id)) == 1
