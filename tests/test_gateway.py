"""Tests for the payment gateway adapter."""

import pytest

from conftest import KEY_ID, WEBHOOK_SECRET, client_signature
from storefront.errors import GatewayError
from storefront.services.gateway import compute_signature, from_minor_units, to_minor_units


class TestMinorUnits:
    def test_whole_amount(self):
        assert to_minor_units(1999.00) == 199900

    def test_fractional_amount_is_exact(self):
        assert to_minor_units(19.99) == 1999
        assert to_minor_units(0.29) == 29

    def test_rounds_half_up(self):
        assert to_minor_units(10.005) == 1001

    def test_back_to_major_units(self):
        assert from_minor_units(199900) == 1999.0


class TestCreateGatewayOrder:
    async def test_posts_minor_units(self, gateway, razorpay):
        order = await gateway.create_gateway_order(199900, "INR", "receipt_1", {"user_id": "u1"})

        sent = razorpay.sent_json()
        assert sent["amount"] == 199900
        assert sent["currency"] == "INR"
        assert sent["receipt"] == "receipt_1"
        assert sent["notes"] == {"user_id": "u1"}
        assert order.gateway_order_ref.startswith("order_")
        assert order.amount_minor == 199900

    async def test_uses_basic_auth(self, gateway, razorpay):
        await gateway.create_gateway_order(100, "INR", "receipt_2")
        assert razorpay.requests[-1].headers["authorization"].startswith("Basic ")

    async def test_timeout_becomes_gateway_error(self, gateway, razorpay):
        razorpay.timeout = True
        with pytest.raises(GatewayError) as exc_info:
            await gateway.create_gateway_order(100, "INR", "receipt_3")
        assert exc_info.value.status_code == 502

    async def test_rejection_becomes_gateway_error(self, gateway, razorpay):
        razorpay.fail_status = 400
        with pytest.raises(GatewayError):
            await gateway.create_gateway_order(100, "INR", "receipt_4")


class TestCreateRefund:
    async def test_posts_to_payment_refund(self, gateway, razorpay):
        refund = await gateway.create_refund("pay_123", 5000, {"order_id": "o1"})

        assert razorpay.requests[-1].url.path == "/v1/payments/pay_123/refund"
        assert razorpay.sent_json()["amount"] == 5000
        assert refund["id"].startswith("rfnd_")


class TestSignatures:
    def test_client_signature_accepted(self, gateway):
        assert gateway.verify_client_signature("order_1", "pay_1", client_signature("order_1", "pay_1"))

    def test_client_signature_tampered(self, gateway):
        signature = client_signature("order_1", "pay_1")
        tampered = ("0" if signature[0] != "0" else "1") + signature[1:]
        assert not gateway.verify_client_signature("order_1", "pay_1", tampered)

    def test_client_signature_for_other_payment(self, gateway):
        assert not gateway.verify_client_signature("order_1", "pay_2", client_signature("order_1", "pay_1"))

    def test_missing_or_non_ascii_signature(self, gateway):
        assert not gateway.verify_client_signature("order_1", "pay_1", None)
        assert not gateway.verify_client_signature("order_1", "pay_1", "")
        assert not gateway.verify_client_signature("order_1", "pay_1", "sïgnature")

    def test_webhook_signature_over_raw_body(self, gateway):
        body = b'{"event": "payment.captured"}'
        signature = compute_signature(WEBHOOK_SECRET, body)

        assert gateway.verify_webhook_signature(body, signature)
        assert not gateway.verify_webhook_signature(b'{"event":"payment.captured"}', signature)

    def test_webhook_rejects_client_secret_signature(self, gateway):
        body = b"{}"
        assert not gateway.verify_webhook_signature(body, client_signature("a", "b"))

    def test_key_id_is_public(self, gateway):
        assert gateway.key_id == KEY_ID
