"""Tests for the HTTP API."""

import httpx
import pytest
from bson import ObjectId

from conftest import client_signature, webhook_body
from storefront.config.database import get_database
from storefront.config.settings import get_settings
from storefront.main import app
from storefront.utils.dependencies import get_notifier, get_payment_gateway

PREFIX = "/api/v1/orders"


@pytest.fixture
async def api_client(db, gateway, notifier, settings):
    app.dependency_overrides[get_database] = lambda: db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_settings] = lambda: settings

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

    app.dependency_overrides.clear()


def order_body(product, address, payment_method="cod", amount=1999.0, quantity=1):
    return {
        "products": [{"product": product, "quantity": quantity, "size": "M"}],
        "address_id": address,
        "amount": amount,
        "payment_method": payment_method,
    }


class TestRoot:
    async def test_root(self, api_client):
        response = await api_client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"

    async def test_health_without_database(self, api_client):
        response = await api_client.get("/health")
        assert response.status_code == 200
        assert response.json()["database"] == "disconnected"

    def test_debug_follows_settings(self):
        assert app.debug is get_settings().debug


class TestCreateOrder:
    async def test_cod_order(self, api_client, user_id, product, address):
        response = await api_client.post(f"{PREFIX}/create-order/{user_id}", json=order_body(product, address))

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["payment_method"] == "cod"
        assert body["data"]["id"]

    async def test_online_checkout(self, api_client, user_id, product, address):
        response = await api_client.post(
            f"{PREFIX}/create-order/{user_id}", json=order_body(product, address, "online")
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["amount_minor"] == 199900
        assert data["key"] == "rzp_test_key"
        assert data["gateway_order_ref"].startswith("order_")

    async def test_out_of_stock(self, api_client, user_id, product, address):
        response = await api_client.post(
            f"{PREFIX}/create-order/{user_id}", json=order_body(product, address, quantity=6)
        )

        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["error"] is True
        assert body["status_code"] == 409
        assert "Insufficient stock" in body["message"]

    async def test_validation_error_envelope(self, api_client, user_id, address):
        response = await api_client.post(
            f"{PREFIX}/create-order/{user_id}",
            json={"products": [], "address_id": address, "amount": -1, "payment_method": "barter"},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        fields = {detail["field"] for detail in body["details"]}
        assert {"amount", "payment_method"} <= fields

    async def test_missing_address(self, api_client, user_id, product):
        response = await api_client.post(
            f"{PREFIX}/create-order/{user_id}", json=order_body(product, str(ObjectId()))
        )
        assert response.status_code == 404
        assert response.json()["message"] == "Address not found"


class TestPaymentEndpoints:
    async def _checkout(self, api_client, user_id, product, address):
        response = await api_client.post(
            f"{PREFIX}/create-order/{user_id}", json=order_body(product, address, "online")
        )
        return response.json()["data"]["gateway_order_ref"]

    async def test_verify_with_gateway_field_names(self, api_client, user_id, product, address):
        ref = await self._checkout(api_client, user_id, product, address)

        response = await api_client.post(f"{PREFIX}/verify-payment", json={
            "razorpay_order_id": ref,
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": client_signature(ref, "pay_1"),
            "user_id": user_id,
            "address_id": address,
            "amount": 1999.0,
            "products": f'[{{"product": "{product}", "quantity": 1, "size": "M"}}]',
        })

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["payment_status"] == "paid"
        assert data["confirmation_source"] == "client"

    async def test_verify_bad_signature(self, api_client, db, user_id, product, address):
        ref = await self._checkout(api_client, user_id, product, address)

        response = await api_client.post(f"{PREFIX}/verify-payment", json={
            "gateway_order_ref": ref,
            "gateway_payment_ref": "pay_1",
            "signature": "0" * 64,
        })

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid signature"
        assert await db.orders.count_documents({}) == 0

    async def test_webhook_uses_raw_body(self, api_client, db, user_id, product, address):
        ref = await self._checkout(api_client, user_id, product, address)
        body, signature = webhook_body("payment.captured", ref, "pay_9", 199900)

        response = await api_client.post(
            f"{PREFIX}/webhook",
            content=body,
            headers={"Content-Type": "application/json", "X-Razorpay-Signature": signature},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        assert await db.orders.count_documents({"confirmation_source": "webhook"}) == 1

    async def test_webhook_rejects_bad_signature(self, api_client, db):
        body, _ = webhook_body("payment.captured", "order_1", "pay_1", 100)

        response = await api_client.post(
            f"{PREFIX}/webhook", content=body, headers={"X-Razorpay-Signature": "nope"}
        )

        assert response.status_code == 400
        assert await db.orders.count_documents({}) == 0


class TestOrderEndpoints:
    async def _cod(self, api_client, user_id, product, address):
        response = await api_client.post(f"{PREFIX}/create-order/{user_id}", json=order_body(product, address))
        return response.json()["data"]["id"]

    async def test_list_and_detail(self, api_client, user_id, product, address):
        order_id = await self._cod(api_client, user_id, product, address)

        listing = await api_client.get(f"{PREFIX}/get-orders/{user_id}", params={"page": 1, "limit": 5})
        detail = await api_client.get(f"{PREFIX}/detail/{order_id}")
        everything = await api_client.get(f"{PREFIX}/all-orders")

        assert listing.status_code == 200
        assert listing.json()["data"]["pagination"]["page_size"] == 5
        assert listing.json()["data"]["orders"][0]["id"] == order_id
        assert detail.json()["data"]["id"] == order_id
        assert everything.json()["data"]["pagination"]["total_count"] == 1

    async def test_bad_page_size(self, api_client, user_id):
        response = await api_client.get(f"{PREFIX}/get-orders/{user_id}", params={"limit": 1000})
        assert response.status_code == 400

    async def test_unknown_order(self, api_client):
        response = await api_client.get(f"{PREFIX}/detail/{ObjectId()}")
        assert response.status_code == 404

    async def test_shipping_and_cancel(self, api_client, user_id, product, address):
        order_id = await self._cod(api_client, user_id, product, address)

        shipped = await api_client.patch(f"{PREFIX}/{order_id}/shipping-status", json={"status": "shipped"})
        backwards = await api_client.patch(f"{PREFIX}/{order_id}/shipping-status", json={"status": "processing"})
        cancelled = await api_client.post(f"{PREFIX}/{order_id}/cancel", json={"reason": "late"})

        assert shipped.json()["data"]["shipping_status"] == "shipped"
        assert backwards.status_code == 409
        assert cancelled.json()["data"]["cancellation"]["reason"] == "late"

    async def test_cod_collected(self, api_client, user_id, product, address):
        order_id = await self._cod(api_client, user_id, product, address)

        response = await api_client.post(f"{PREFIX}/{order_id}/cod-collected")

        assert response.json()["data"]["cod_collection_status"] == "collected"

    async def test_return_flow(self, api_client, user_id, product, address):
        order_id = await self._cod(api_client, user_id, product, address)
        for status in ("shipped", "out_for_delivery", "delivered"):
            await api_client.patch(f"{PREFIX}/{order_id}/shipping-status", json={"status": status})

        created = await api_client.post(
            f"{PREFIX}/{order_id}/returns", json={"product_id": product, "size": "M", "quantity": 1}
        )
        return_id = created.json()["data"]["return_id"]
        scheduled = await api_client.patch(f"{PREFIX}/returns/{return_id}", json={
            "status": "pickup_scheduled",
            "pickup_agent": {"name": "Ravi", "tracking_id": "TRK1"},
        })
        skipped = await api_client.post(f"{PREFIX}/returns/{return_id}/verify")

        assert created.status_code == 201
        assert scheduled.json()["data"]["pickup_agent"]["tracking_id"] == "TRK1"
        assert skipped.status_code == 400

    async def test_refund(self, api_client, user_id, product, address):
        checkout = await api_client.post(
            f"{PREFIX}/create-order/{user_id}", json=order_body(product, address, "online")
        )
        ref = checkout.json()["data"]["gateway_order_ref"]
        verified = await api_client.post(f"{PREFIX}/verify-payment", json={
            "gateway_order_ref": ref,
            "gateway_payment_ref": "pay_1",
            "signature": client_signature(ref, "pay_1"),
        })
        order_id = verified.json()["data"]["id"]

        response = await api_client.post(f"{PREFIX}/{order_id}/refund", json={})

        assert response.status_code == 200
        assert response.json()["data"]["refund_status"] == "refund_processing"

    async def test_stats(self, api_client, user_id, product, address):
        await self._cod(api_client, user_id, product, address)

        status = await api_client.get(f"{PREFIX}/order-status")
        today = await api_client.get(f"{PREFIX}/today-order-stats")

        assert status.json()["data"]["total_orders"] == 1
        assert status.json()["data"]["total_units_sold"] == 1
        assert today.json()["data"]["today"]["processing"] == 1
