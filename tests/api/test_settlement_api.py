"""
API Tests for the Settlement Service

Order to payout over HTTP, error mapping and the courier-facing endpoints.
"""

from decimal import Decimal

import pytest

from tests.fixtures import (
    make_bank_account,
    make_buyer_id,
    make_delivery_request,
    make_dispute_request,
    make_order_item,
    make_order_request,
    make_reference,
)

VENDOR_ID = "vendor_api_001"


async def _register_vendor(http_client):
    response = await http_client.post("/api/v1/wallets", json={
        "vendor_id": VENDOR_ID,
        "business_name": "API Stores",
        "bank_account": make_bank_account().model_dump(mode="json"),
    })
    assert response.status_code == 201, response.text
    return response.json()


async def _paid_order(http_client, buyer_id=None):
    request = make_order_request(buyer_id=buyer_id or make_buyer_id(), vendor_id=VENDOR_ID)
    created = await http_client.post("/api/v1/orders", json=request.model_dump(mode="json"))
    assert created.status_code == 201, created.text
    order_id = created.json()["order_id"]
    paid = await http_client.post(
        f"/api/v1/orders/{order_id}/payment-status",
        json={"status": "paid", "reference": make_reference(), "method": "card"},
    )
    assert paid.status_code == 200, paid.text
    return paid.json()


@pytest.mark.api
@pytest.mark.asyncio
class TestHealth:

    async def test_health(self, http_client):
        response = await http_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_detailed_health(self, http_client):
        response = await http_client.get("/health/detailed")

        body = response.json()
        assert body["ledger_store"] is True
        assert body["courier"] == "test-courier"

    async def test_uninitialized_service(self, bare_client, api_helper):
        response = await bare_client.get("/api/v1/orders/any")

        api_helper.assert_error(response, 503, "Settlement service not initialized")


@pytest.mark.api
@pytest.mark.asyncio
class TestSettlementFlow:

    async def test_order_to_wallet(self, http_client, api_helper):
        await _register_vendor(http_client)
        order = await _paid_order(http_client)
        assert order["status"] == "confirmed"
        assert Decimal(order["total"]) == Decimal("6500")

        held = await http_client.post(f"/api/v1/orders/{order['id']}/escrow")
        api_helper.assert_success(held)
        assert Decimal(held.json()["vendor_amount"]) == Decimal("6250")
        assert Decimal(held.json()["platform_fee"]) == Decimal("250")

        released = await http_client.post(
            f"/api/v1/orders/{order['id']}/escrow/release",
            json={"release_type": "admin_override", "released_by": "admin_1"},
        )
        api_helper.assert_success(released)
        assert Decimal(released.json()["wallet_balance_after"]) == Decimal("6250")

        wallet = await http_client.get(f"/api/v1/wallets/{VENDOR_ID}")
        assert Decimal(wallet.json()["wallet_balance"]) == Decimal("6250")
        assert wallet.json()["has_payout_method"] is True

        again = await http_client.post(
            f"/api/v1/orders/{order['id']}/escrow/release",
            json={"release_type": "admin_override"},
        )
        api_helper.assert_error(again, 409, "Escrow already released or refunded")

    async def test_two_item_order_through_courier_delivery(self, http_client, api_helper):
        await _register_vendor(http_client)
        request = make_order_request(
            vendor_id=VENDOR_ID,
            items=[make_order_item("5000.00", 2), make_order_item("3000.00", 1)],
            delivery_cost="1000.00",
        )
        created = await http_client.post("/api/v1/orders", json=request.model_dump(mode="json"))
        api_helper.assert_success(created, 201)
        order_id = created.json()["order_id"]
        assert Decimal(created.json()["total"]) == Decimal("14000")
        await http_client.post(
            f"/api/v1/orders/{order_id}/payment-status",
            json={"status": "paid", "reference": make_reference(), "method": "card"},
        )

        held = await http_client.post(f"/api/v1/orders/{order_id}/escrow")
        assert Decimal(held.json()["platform_fee"]) == Decimal("650")
        assert Decimal(held.json()["vendor_amount"]) == Decimal("13350")

        booked = await http_client.post(
            "/api/v1/deliveries", json=make_delivery_request(order_id).model_dump(mode="json")
        )
        api_helper.assert_success(booked, 201)
        assert booked.json()["delivery_status"] == "pickup_scheduled"
        processing = await http_client.get(f"/api/v1/orders/{order_id}")
        assert processing.json()["order"]["status"] == "processing"

        pushed = await http_client.post("/api/v1/webhooks/courier", json={
            "tracking_number": booked.json()["tracking_number"],
            "status": "delivered",
        })
        api_helper.assert_success(pushed)
        delivered = await http_client.get(f"/api/v1/orders/{order_id}")
        assert delivered.json()["order"]["status"] == "delivered"

        buyer_id = delivered.json()["order"]["buyer_id"]
        released = await http_client.post(
            f"/api/v1/orders/{order_id}/escrow/release",
            json={"release_type": "manual_buyer", "released_by": buyer_id},
        )
        api_helper.assert_success(released)
        assert Decimal(released.json()["wallet_balance_after"]) == Decimal("13350")
        wallet = await http_client.get(f"/api/v1/wallets/{VENDOR_ID}")
        assert Decimal(wallet.json()["wallet_balance"]) == Decimal("13350")

    async def test_cancel_paid_order_refunds_escrow(self, http_client, api_helper):
        await _register_vendor(http_client)
        order = await _paid_order(http_client)
        await http_client.post(f"/api/v1/orders/{order['id']}/escrow")

        cancelled = await http_client.post(
            f"/api/v1/orders/{order['id']}/cancel",
            json={"reason": "Changed my mind", "cancelled_by": order["buyer_id"]},
        )

        api_helper.assert_success(cancelled)
        assert cancelled.json()["status"] == "cancelled"
        assert cancelled.json()["payment_status"] == "refunded"
        escrow = await http_client.get(f"/api/v1/orders/{order['id']}/escrow")
        assert escrow.json()["status"] == "refunded"
        released = await http_client.post(
            f"/api/v1/orders/{order['id']}/escrow/release", json={"release_type": "manual_buyer"}
        )
        api_helper.assert_error(released, 409)

    async def test_order_detail_includes_items(self, http_client):
        await _register_vendor(http_client)
        order = await _paid_order(http_client)

        response = await http_client.get(f"/api/v1/orders/{order['id']}")

        body = response.json()
        assert body["order"]["id"] == order["id"]
        assert len(body["items"]) == 1
        assert body["items"][0]["quantity"] == 2

    async def test_list_orders_by_status(self, http_client):
        await _register_vendor(http_client)
        await _paid_order(http_client)

        confirmed = await http_client.get("/api/v1/orders", params={"vendor_id": VENDOR_ID, "status": "confirmed"})
        pending = await http_client.get("/api/v1/orders", params={"vendor_id": VENDOR_ID, "status": "pending"})

        assert confirmed.json()["count"] == 1
        assert pending.json()["count"] == 0

    async def test_withdrawal(self, http_client, settlement_services, api_helper):
        await _register_vendor(http_client)
        order = await _paid_order(http_client)
        await http_client.post(f"/api/v1/orders/{order['id']}/escrow")
        await http_client.post(f"/api/v1/orders/{order['id']}/escrow/release", json={"release_type": "admin_override"})

        payout = await http_client.post("/api/v1/payouts", json={"vendor_id": VENDOR_ID, "amount": "6000"})
        api_helper.assert_success(payout, 201)
        payout_id = payout.json()["id"]

        await http_client.post(f"/api/v1/payouts/{payout_id}/processing")
        failed = await http_client.post(f"/api/v1/payouts/{payout_id}/fail", json={"reason": "Account closed"})
        api_helper.assert_success(failed)

        wallet = await http_client.get(f"/api/v1/wallets/{VENDOR_ID}")
        assert Decimal(wallet.json()["wallet_balance"]) == Decimal("6250")
        listed = await http_client.get(f"/api/v1/wallets/{VENDOR_ID}/payouts", params={"status": "failed"})
        assert listed.json()["count"] == 1

    async def test_dispute_refund(self, http_client, api_helper):
        await _register_vendor(http_client)
        order = await _paid_order(http_client)
        await http_client.post(f"/api/v1/orders/{order['id']}/escrow")

        filed = await http_client.post(
            f"/api/v1/orders/{order['id']}/disputes",
            json=make_dispute_request(order["buyer_id"]).model_dump(mode="json"),
        )
        api_helper.assert_success(filed, 201)

        blocked = await http_client.post(
            f"/api/v1/orders/{order['id']}/escrow/release", json={"release_type": "admin_override"}
        )
        api_helper.assert_error(blocked, 409, "Funds are on hold while a dispute is open")

        resolved = await http_client.post(
            f"/api/v1/disputes/{filed.json()['id']}/resolve",
            json={"resolution": "Parcel lost", "outcome": "refund_to_buyer"},
        )
        api_helper.assert_success(resolved)
        escrow = await http_client.get(f"/api/v1/orders/{order['id']}/escrow")
        assert escrow.json()["status"] == "refunded"


@pytest.mark.api
@pytest.mark.asyncio
class TestErrorMapping:

    async def test_unknown_order(self, http_client, api_helper):
        response = await http_client.get("/api/v1/orders/missing")

        api_helper.assert_error(response, 404, "Order not found")

    async def test_escrow_for_unpaid_order(self, http_client, api_helper):
        await _register_vendor(http_client)
        request = make_order_request(vendor_id=VENDOR_ID)
        created = await http_client.post("/api/v1/orders", json=request.model_dump(mode="json"))

        response = await http_client.post(f"/api/v1/orders/{created.json()['order_id']}/escrow")

        api_helper.assert_error(response, 409)

    async def test_empty_order_rejected(self, http_client, api_helper):
        request = make_order_request(vendor_id=VENDOR_ID, items=[])

        response = await http_client.post("/api/v1/orders", json=request.model_dump(mode="json"))

        api_helper.assert_error(response, 400)

    async def test_malformed_body(self, http_client, api_helper):
        response = await http_client.post("/api/v1/payouts", json={"vendor_id": VENDOR_ID, "amount": "-5"})

        api_helper.assert_error(response, 422)


@pytest.mark.api
@pytest.mark.asyncio
class TestDeliveryEndpoints:

    async def _booked(self, http_client):
        await _register_vendor(http_client)
        order = await _paid_order(http_client)
        await http_client.post(f"/api/v1/orders/{order['id']}/escrow")
        response = await http_client.post(
            "/api/v1/deliveries", json=make_delivery_request(order["id"]).model_dump(mode="json")
        )
        assert response.status_code == 201, response.text
        return order, response.json()

    async def test_courier_webhook(self, http_client, api_helper):
        order, delivery = await self._booked(http_client)

        response = await http_client.post("/api/v1/webhooks/courier", json={
            "tracking_number": delivery["tracking_number"],
            "status": "in_transit",
            "location": "Lagos Hub",
        })

        api_helper.assert_success(response)
        assert response.json() == {"received": True, "delivery_id": delivery["id"], "delivery_status": "in_transit"}
        tracking = await http_client.get(f"/api/v1/deliveries/{delivery['id']}")
        assert [h["status"] for h in tracking.json()["history"]] == ["pickup_scheduled", "in_transit"]
        shipped = await http_client.get(f"/api/v1/orders/{order['id']}")
        assert shipped.json()["order"]["status"] == "shipped"

    async def test_webhook_unknown_tracking(self, http_client, api_helper):
        response = await http_client.post(
            "/api/v1/webhooks/courier", json={"tracking_number": "NOPE", "status": "delivered"}
        )

        api_helper.assert_error(response, 404, "Delivery not found")

    async def test_proof_upload(self, http_client, settlement_services, api_helper):
        order, delivery = await self._booked(http_client)

        response = await http_client.post(
            f"/api/v1/deliveries/{delivery['id']}/proof",
            data={"recipient_name": "Ada Obi"},
            files={"proof": ("proof.jpg", b"\xff\xd8\xff\xe0proof", "image/jpeg")},
        )

        api_helper.assert_success(response)
        body = response.json()
        assert body["delivery_status"] == "delivered"
        assert body["recipient_name"] == "Ada Obi"
        assert body["proof_of_delivery_url"].startswith("https://storage.test/delivery-images/")
        assert len(settlement_services.storage.objects) == 1

    async def test_buyer_confirmation_releases(self, http_client, api_helper):
        order, delivery = await self._booked(http_client)

        response = await http_client.post(
            f"/api/v1/orders/{order['id']}/confirm-delivery", json={"buyer_id": order["buyer_id"]}
        )

        api_helper.assert_success(response)
        assert response.json()["escrow_released"] is True
        assert response.json()["escrow_status"] == "released"

    async def test_quote_and_service_areas(self, http_client):
        quote = await http_client.post("/api/v1/deliveries/quote", json={
            "pickup_city": "Yaba",
            "pickup_state": "Lagos",
            "delivery_city": "Wuse",
            "delivery_state": "Abuja",
            "weight_kg": "1",
        })
        area = await http_client.get("/api/v1/deliveries/service-areas/Kano")

        assert Decimal(quote.json()["cost"]) == Decimal("2000")
        assert area.json() == {"state": "Kano", "available": False}
