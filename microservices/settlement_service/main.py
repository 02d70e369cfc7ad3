"""
Settlement Microservice

Responsibilities:
- Order creation and payment status
- Escrow hold, release and refund
- Delivery booking, courier webhook and proof of delivery
- Vendor wallets and payouts
- Dispute filing and resolution
"""

from fastapi import FastAPI, HTTPException, Depends, status, Query, Path, Body, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse
import uvicorn
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from core.config_manager import ConfigManager
from core.errors import SettlementError
from core.ledger_store import PostgresLedgerStore
from core.logger import setup_service_logger
from core.nats_client import get_event_bus

from microservices.delivery_service.models import (
    CourierWebhookPayload,
    Delivery,
    DeliveryCancelRequest,
    DeliveryCostRequest,
    DeliveryCostResponse,
    DeliveryCreateRequest,
    DeliveryStatusUpdateRequest,
    DeliveryTrackingResponse,
    DeliveryZone,
    ServiceAvailabilityResponse,
    UploadedImage,
)
from microservices.dispute_service.models import (
    Dispute,
    DisputeCloseRequest,
    DisputeCreateRequest,
    DisputeInvestigateRequest,
    DisputeListResponse,
    DisputeResolveRequest,
    DisputeStatus,
)
from microservices.escrow_service.events.handlers import get_event_handlers as get_escrow_event_handlers
from microservices.escrow_service.models import (
    DeliveryConfirmationResponse,
    DeliveryConfirmRequest,
    EscrowHoldRequest,
    EscrowRefundRequest,
    EscrowReleaseRequest,
    EscrowReleaseResponse,
    EscrowTransaction,
    PendingReleaseSweepResponse,
)
from microservices.order_service.models import (
    Order,
    OrderCancelRequest,
    OrderCreateRequest,
    OrderCreateResponse,
    OrderDetailResponse,
    OrderListResponse,
    OrderStatus,
    PaymentStatusUpdateRequest,
)
from microservices.payout_service.models import (
    Payout,
    PayoutCompleteRequest,
    PayoutFailRequest,
    PayoutListResponse,
    PayoutProcessingRequest,
    PayoutStatus,
    WithdrawalRequest,
)
from microservices.wallet_service.models import (
    BankAccountUpdateRequest,
    TransactionType,
    VendorWallet,
    WalletBalanceResponse,
    WalletRegisterRequest,
    WalletTransactionListResponse,
)

from .factory import SettlementServices, create_settlement_services

# Initialize configuration
config_manager = ConfigManager("settlement_service")
config = config_manager.get_service_config()

logger = setup_service_logger("settlement_service")


class SettlementMicroservice:
    """Settlement microservice core class"""

    def __init__(self):
        self.services: Optional[SettlementServices] = None
        self.event_bus = None

    async def initialize(self, event_bus=None):
        """Connect the ledger store and compose the services"""
        try:
            store = PostgresLedgerStore.from_config(config.infra)
            await store.connect()
            self.event_bus = event_bus
            self.services = create_settlement_services(config, store, event_bus=event_bus)
            logger.info("Settlement microservice initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize settlement microservice: {e}")
            raise

    async def subscribe_to_events(self):
        """Escrow reacts to order.paid and delivery.delivered"""
        if not self.event_bus or not self.services:
            return
        for pattern, handler in get_escrow_event_handlers(self.services.escrow).items():
            durable = f"settlement-escrow-{pattern.replace('.', '-')}-consumer"
            if await self.event_bus.subscribe_to_events(pattern=pattern, handler=handler, durable=durable):
                logger.info(f"✅ Subscribed to {pattern} events")
            else:
                logger.warning(f"⚠️  Failed to subscribe to {pattern} events")

    async def shutdown(self):
        """Shutdown the microservice"""
        try:
            if self.services:
                await self.services.close()
                await self.services.store.close()
            if self.event_bus:
                await self.event_bus.close()
                logger.info("Event bus closed")
            logger.info("Settlement microservice shutdown completed")
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")


# Global microservice instance
settlement_microservice = SettlementMicroservice()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    event_bus = None
    if config.infra.nats_enabled:
        try:
            event_bus = await get_event_bus("settlement_service")
            logger.info("✅ Event bus initialized successfully")
        except Exception as e:
            logger.warning(f"⚠️  Failed to initialize event bus: {e}. Continuing without event publishing.")
            event_bus = None

    await settlement_microservice.initialize(event_bus=event_bus)
    await settlement_microservice.subscribe_to_events()

    yield

    await settlement_microservice.shutdown()


# Create FastAPI application
app = FastAPI(
    title="Settlement Service",
    description="Marketplace order settlement: escrow, delivery, wallets, payouts and disputes",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(SettlementError)
async def settlement_error_handler(request: Request, exc: SettlementError):
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.http_status}: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content={"detail": exc.user_message})


# Dependency injection
def get_services() -> SettlementServices:
    """Get composed settlement services"""
    if not settlement_microservice.services:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Settlement service not initialized"
        )
    return settlement_microservice.services


# Health check endpoints
@app.get("/health")
async def health_check():
    """Service health check"""
    return {
        "status": "healthy",
        "service": config.service_name,
        "port": config.service_port,
        "version": "1.0.0",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@app.get("/health/detailed")
async def detailed_health_check(services: SettlementServices = Depends(get_services)):
    """Health check including ledger store connectivity"""
    store_ok = await services.store.health_check() if hasattr(services.store, "health_check") else True
    return {
        "status": "healthy" if store_ok else "degraded",
        "ledger_store": store_ok,
        "event_bus": bool(settlement_microservice.event_bus and settlement_microservice.event_bus.is_connected),
        "courier": services.courier.name,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


# ==================== Orders ====================

@app.post("/api/v1/orders", response_model=OrderCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_order(request: OrderCreateRequest, services: SettlementServices = Depends(get_services)):
    """Create an order from validated checkout lines"""
    return await services.orders.create_order(request)


@app.get("/api/v1/orders", response_model=OrderListResponse)
async def list_orders(
    buyer_id: Optional[str] = Query(None, description="Filter by buyer"),
    vendor_id: Optional[str] = Query(None, description="Filter by vendor"),
    order_status: Optional[OrderStatus] = Query(None, alias="status", description="Filter by status"),
    limit: int = Query(50, ge=1, le=100),
    services: SettlementServices = Depends(get_services)
):
    """List orders"""
    orders = await services.orders.list_orders(buyer_id, vendor_id, order_status, limit)
    return OrderListResponse(orders=orders, count=len(orders))


@app.get("/api/v1/orders/{order_id}", response_model=OrderDetailResponse)
async def get_order(order_id: str = Path(..., description="Order ID"), services: SettlementServices = Depends(get_services)):
    """Get order with its items"""
    order = await services.orders.get_order(order_id)
    items = await services.orders.get_order_items(order_id)
    return OrderDetailResponse(order=order, items=items)


@app.post("/api/v1/orders/{order_id}/payment-status", response_model=Order)
async def update_payment_status(
    order_id: str = Path(..., description="Order ID"),
    request: PaymentStatusUpdateRequest = Body(...),
    services: SettlementServices = Depends(get_services)
):
    """Record payment capture or refund"""
    return await services.orders.update_order_payment_status(
        order_id, request.status, request.reference, request.method
    )


@app.post("/api/v1/orders/{order_id}/cancel", response_model=Order)
async def cancel_order(
    order_id: str = Path(..., description="Order ID"),
    request: OrderCancelRequest = Body(...),
    services: SettlementServices = Depends(get_services)
):
    """Cancel an order that has not shipped; paid orders are refunded from escrow"""
    return await services.escrow.cancel_order(order_id, request.reason, request.cancelled_by)


# ==================== Escrow ====================

@app.post("/api/v1/orders/{order_id}/escrow", response_model=EscrowTransaction)
async def hold_escrow(
    order_id: str = Path(..., description="Order ID"),
    request: Optional[EscrowHoldRequest] = Body(None),
    services: SettlementServices = Depends(get_services)
):
    """Open the escrow hold for a paid order"""
    return await services.escrow.hold_escrow(order_id, request.payment_reference if request else None)


@app.get("/api/v1/orders/{order_id}/escrow", response_model=EscrowTransaction)
async def get_escrow(order_id: str = Path(..., description="Order ID"), services: SettlementServices = Depends(get_services)):
    return await services.escrow.get_escrow_for_order(order_id)


@app.post("/api/v1/orders/{order_id}/escrow/release", response_model=EscrowReleaseResponse)
async def release_escrow(
    order_id: str = Path(..., description="Order ID"),
    request: EscrowReleaseRequest = Body(...),
    services: SettlementServices = Depends(get_services)
):
    """Release escrow to the vendor wallet"""
    return await services.escrow.release_escrow(order_id, request.release_type, request.released_by, request.notes)


@app.post("/api/v1/orders/{order_id}/escrow/refund", response_model=EscrowTransaction)
async def refund_escrow(
    order_id: str = Path(..., description="Order ID"),
    request: EscrowRefundRequest = Body(...),
    services: SettlementServices = Depends(get_services)
):
    """Refund escrow to the buyer and cancel the order"""
    return await services.escrow.refund_escrow(order_id, request.reason, request.refunded_by)


@app.post("/api/v1/orders/{order_id}/confirm-delivery", response_model=DeliveryConfirmationResponse)
async def confirm_delivery(
    order_id: str = Path(..., description="Order ID"),
    request: DeliveryConfirmRequest = Body(...),
    services: SettlementServices = Depends(get_services)
):
    """Buyer confirms receipt"""
    return await services.escrow.confirm_delivery(order_id, request.buyer_id)


@app.post("/api/v1/escrow/pending-releases/process", response_model=PendingReleaseSweepResponse)
async def process_pending_releases(services: SettlementServices = Depends(get_services)):
    """Release buyer-confirmed escrows whose dispute has been settled"""
    return await services.escrow.process_pending_releases()


# ==================== Disputes ====================

@app.post("/api/v1/orders/{order_id}/disputes", response_model=Dispute, status_code=status.HTTP_201_CREATED)
async def create_dispute(
    order_id: str = Path(..., description="Order ID"),
    request: DisputeCreateRequest = Body(...),
    services: SettlementServices = Depends(get_services)
):
    """File a dispute and freeze the escrow"""
    return await services.escrow.create_dispute(order_id, request)


@app.get("/api/v1/disputes", response_model=DisputeListResponse)
async def list_disputes(
    dispute_status: Optional[DisputeStatus] = Query(None, alias="status"),
    order_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    services: SettlementServices = Depends(get_services)
):
    disputes = await services.disputes.list_disputes(dispute_status, order_id, limit)
    return DisputeListResponse(disputes=disputes, count=len(disputes))


@app.get("/api/v1/disputes/{dispute_id}", response_model=Dispute)
async def get_dispute(dispute_id: str = Path(...), services: SettlementServices = Depends(get_services)):
    return await services.disputes.get_dispute(dispute_id)


@app.post("/api/v1/disputes/{dispute_id}/investigate", response_model=Dispute)
async def start_investigation(
    dispute_id: str = Path(...),
    request: DisputeInvestigateRequest = Body(...),
    services: SettlementServices = Depends(get_services)
):
    return await services.disputes.start_investigation(dispute_id, request.admin_id, request.notes)


@app.post("/api/v1/disputes/{dispute_id}/resolve", response_model=Dispute)
async def resolve_dispute(
    dispute_id: str = Path(...),
    request: DisputeResolveRequest = Body(...),
    services: SettlementServices = Depends(get_services)
):
    """Decide a dispute; settles the escrow first"""
    return await services.disputes.resolve_dispute(dispute_id, request.resolution, request.outcome, request.resolved_by)


@app.post("/api/v1/disputes/{dispute_id}/close", response_model=Dispute)
async def close_dispute(
    dispute_id: str = Path(...),
    request: DisputeCloseRequest = Body(...),
    services: SettlementServices = Depends(get_services)
):
    """Dismiss a dispute; funds go to the vendor"""
    return await services.disputes.close_dispute(dispute_id, request.resolution, request.closed_by)


# ==================== Deliveries ====================

@app.post("/api/v1/deliveries", response_model=Delivery, status_code=status.HTTP_201_CREATED)
async def create_delivery(request: DeliveryCreateRequest, services: SettlementServices = Depends(get_services)):
    """Book a courier shipment"""
    return await services.deliveries.create_delivery(request)


@app.post("/api/v1/deliveries/quote", response_model=DeliveryCostResponse)
async def calculate_delivery_cost(request: DeliveryCostRequest, services: SettlementServices = Depends(get_services)):
    return await services.deliveries.calculate_delivery_cost(
        request.pickup_city,
        request.pickup_state,
        request.delivery_city,
        request.delivery_state,
        request.weight_kg,
        request.delivery_type,
    )


@app.get("/api/v1/deliveries/service-areas/{state}", response_model=ServiceAvailabilityResponse)
async def check_service_availability(state: str = Path(...), services: SettlementServices = Depends(get_services)):
    return ServiceAvailabilityResponse(state=state, available=services.deliveries.check_service_availability(state))


@app.put("/api/v1/delivery-zones/{state}", response_model=DeliveryZone)
async def upsert_delivery_zone(
    state: str = Path(...),
    zone: DeliveryZone = Body(...),
    services: SettlementServices = Depends(get_services)
):
    """Maintain the fallback delivery tariff"""
    return await services.deliveries.repository.upsert_zone(zone.model_copy(update={"state": state}))


@app.get("/api/v1/deliveries/{delivery_id}", response_model=DeliveryTrackingResponse)
async def get_delivery(delivery_id: str = Path(...), services: SettlementServices = Depends(get_services)):
    """Delivery with its status history"""
    return await services.deliveries.get_tracking(delivery_id)


@app.get("/api/v1/orders/{order_id}/delivery", response_model=Delivery)
async def get_delivery_by_order(order_id: str = Path(...), services: SettlementServices = Depends(get_services)):
    return await services.deliveries.get_delivery_by_order(order_id)


@app.post("/api/v1/deliveries/{delivery_id}/status", response_model=Delivery)
async def update_delivery_status(
    delivery_id: str = Path(...),
    request: DeliveryStatusUpdateRequest = Body(...),
    services: SettlementServices = Depends(get_services)
):
    return await services.deliveries.update_delivery_status(
        delivery_id, request.status, request.location, request.notes, request.updated_by
    )


@app.post("/api/v1/deliveries/{delivery_id}/refresh", response_model=Delivery)
async def refresh_tracking(delivery_id: str = Path(...), services: SettlementServices = Depends(get_services)):
    """Poll the courier for the latest status"""
    return await services.deliveries.refresh_tracking(delivery_id)


@app.post("/api/v1/deliveries/{delivery_id}/cancel", response_model=Delivery)
async def cancel_delivery(
    delivery_id: str = Path(...),
    request: DeliveryCancelRequest = Body(...),
    services: SettlementServices = Depends(get_services)
):
    return await services.deliveries.cancel_delivery(delivery_id, request.reason)


@app.post("/api/v1/deliveries/{delivery_id}/proof", response_model=Delivery)
async def upload_delivery_proof(
    delivery_id: str = Path(...),
    proof: UploadFile = File(...),
    recipient_name: str = Form(...),
    signature: Optional[UploadFile] = File(None),
    services: SettlementServices = Depends(get_services)
):
    """Vendor uploads proof of delivery"""
    proof_image = UploadedImage(
        filename=proof.filename or "proof.jpg",
        content=await proof.read(),
        content_type=proof.content_type or "image/jpeg",
    )
    signature_image = None
    if signature is not None:
        signature_image = UploadedImage(
            filename=signature.filename or "signature.png",
            content=await signature.read(),
            content_type=signature.content_type or "image/png",
        )
    return await services.deliveries.upload_delivery_proof(delivery_id, proof_image, recipient_name, signature_image)


@app.post("/api/v1/webhooks/courier")
async def courier_webhook(payload: CourierWebhookPayload, services: SettlementServices = Depends(get_services)):
    """Courier status push"""
    delivery = await services.deliveries.handle_courier_webhook(
        payload.tracking_number, payload.status, payload.location, payload.notes, payload.timestamp
    )
    return {"received": True, "delivery_id": delivery.id, "delivery_status": delivery.delivery_status.value}


# ==================== Wallets ====================

@app.post("/api/v1/wallets", response_model=VendorWallet, status_code=status.HTTP_201_CREATED)
async def register_wallet(request: WalletRegisterRequest, services: SettlementServices = Depends(get_services)):
    return await services.wallets.register_wallet(request.vendor_id, request.business_name, request.bank_account)


@app.get("/api/v1/wallets/{vendor_id}", response_model=WalletBalanceResponse)
async def get_wallet_balance(vendor_id: str = Path(...), services: SettlementServices = Depends(get_services)):
    wallet = await services.wallets.get_wallet(vendor_id)
    return WalletBalanceResponse(
        vendor_id=vendor_id,
        wallet_balance=wallet.wallet_balance,
        has_payout_method=wallet.bank_account is not None,
    )


@app.put("/api/v1/wallets/{vendor_id}/bank-account", response_model=VendorWallet)
async def set_bank_account(
    vendor_id: str = Path(...),
    request: BankAccountUpdateRequest = Body(...),
    services: SettlementServices = Depends(get_services)
):
    return await services.wallets.set_bank_account(vendor_id, request.bank_account)


@app.get("/api/v1/wallets/{vendor_id}/transactions", response_model=WalletTransactionListResponse)
async def list_wallet_transactions(
    vendor_id: str = Path(...),
    transaction_type: Optional[TransactionType] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    services: SettlementServices = Depends(get_services)
):
    transactions = await services.wallets.list_transactions(vendor_id, transaction_type, limit)
    return WalletTransactionListResponse(vendor_id=vendor_id, transactions=transactions, count=len(transactions))


@app.post("/api/v1/wallets/{vendor_id}/verify", response_model=VendorWallet)
async def verify_wallet(vendor_id: str = Path(...), services: SettlementServices = Depends(get_services)):
    """Check the balance against the ledger"""
    return await services.wallets.verify_wallet(vendor_id)


# ==================== Payouts ====================

@app.post("/api/v1/payouts", response_model=Payout, status_code=status.HTTP_201_CREATED)
async def request_withdrawal(request: WithdrawalRequest, services: SettlementServices = Depends(get_services)):
    """Withdraw wallet funds to a bank account"""
    return await services.payouts.request_withdrawal(request.vendor_id, request.amount, request.bank_account)


@app.get("/api/v1/payouts/{payout_id}", response_model=Payout)
async def get_payout(payout_id: str = Path(...), services: SettlementServices = Depends(get_services)):
    return await services.payouts.get_payout(payout_id)


@app.get("/api/v1/wallets/{vendor_id}/payouts", response_model=PayoutListResponse)
async def list_payouts(
    vendor_id: str = Path(...),
    payout_status: Optional[PayoutStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=100),
    services: SettlementServices = Depends(get_services)
):
    payouts = await services.payouts.list_payouts(vendor_id, payout_status, limit)
    return PayoutListResponse(vendor_id=vendor_id, payouts=payouts, count=len(payouts))


@app.post("/api/v1/payouts/{payout_id}/processing", response_model=Payout)
async def mark_payout_processing(
    payout_id: str = Path(...),
    request: Optional[PayoutProcessingRequest] = Body(None),
    services: SettlementServices = Depends(get_services)
):
    return await services.payouts.mark_processing(payout_id, request.transfer_reference if request else None)


@app.post("/api/v1/payouts/{payout_id}/complete", response_model=Payout)
async def complete_payout(
    payout_id: str = Path(...),
    request: Optional[PayoutCompleteRequest] = Body(None),
    services: SettlementServices = Depends(get_services)
):
    return await services.payouts.complete_payout(payout_id, request.transfer_reference if request else None)


@app.post("/api/v1/payouts/{payout_id}/fail", response_model=Payout)
async def fail_payout(
    payout_id: str = Path(...),
    request: PayoutFailRequest = Body(...),
    services: SettlementServices = Depends(get_services)
):
    """Bank rejected the transfer; the amount returns to the wallet"""
    return await services.payouts.fail_payout(payout_id, request.reason)


@app.post("/api/v1/payouts/{payout_id}/retry", response_model=Payout)
async def retry_payout(payout_id: str = Path(...), services: SettlementServices = Depends(get_services)):
    return await services.payouts.retry_payout(payout_id)


if __name__ == "__main__":
    uvicorn.run(
        "microservices.settlement_service.main:app",
        host=config.service_host,
        port=config.service_port,
        log_level=config.log_level.lower()
    )
