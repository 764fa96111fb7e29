"""
Payment gateway adapter for a Razorpay-compatible REST API.

Two secrets, two verification paths:

- client confirmations are signed with the API key secret over
  ``"<gateway_order_ref>|<gateway_payment_ref>"``;
- webhooks are signed with the webhook secret over the raw request body.
  The body must be the exact bytes received. Re-serialising parsed JSON
  does not reproduce them reliably.
"""
import hashlib
import hmac
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel

from ..config.settings import Settings
from ..errors import GatewayError

logger = logging.getLogger(__name__)

# Paise per rupee (cents per dollar). Applied once, on the way to the gateway.
MINOR_UNITS_PER_MAJOR = 100


def to_minor_units(amount: float) -> int:
    """Convert a major-unit amount to the gateway's integer minor units."""
    minor = (Decimal(str(amount)) * MINOR_UNITS_PER_MAJOR).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(minor)


def from_minor_units(amount_minor: int) -> float:
    """Convert gateway minor units back to a major-unit amount."""
    return float(Decimal(amount_minor) / MINOR_UNITS_PER_MAJOR)


def compute_signature(secret: str, message: bytes) -> str:
    """Hex HMAC-SHA256 of ``message`` keyed with ``secret``."""
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class GatewayOrder(BaseModel):
    gateway_order_ref: str
    amount_minor: int
    currency: str
    receipt: str
    raw: Dict[str, Any]


class RazorpayGateway:
    """
    Wraps the gateway's order, refund and signature operations.

    Built once at startup and shared; holds an ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        webhook_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.key_id = key_id
        self._key_secret = key_secret
        self._webhook_secret = webhook_secret
        self._client = httpx.AsyncClient(
            base_url=base_url,
            auth=(key_id, key_secret),
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "RazorpayGateway":
        return cls(
            key_id=settings.razorpay_key_id,
            key_secret=settings.razorpay_key_secret,
            webhook_secret=settings.razorpay_webhook_secret,
            base_url=settings.razorpay_base_url,
            timeout=settings.gateway_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._client.post(path, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            logger.error(f"Payment gateway timed out on {path}: {e}")
            raise GatewayError("Payment gateway timed out", detail=str(e))
        except httpx.HTTPStatusError as e:
            logger.error(f"Payment gateway rejected {path}: {e.response.status_code} {e.response.text}")
            raise GatewayError("Payment gateway rejected the request", detail=e.response.text)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Payment gateway call to {path} failed: {e}")
            raise GatewayError("Payment gateway unavailable", detail=str(e))

    async def create_gateway_order(
        self,
        amount_minor: int,
        currency: str,
        receipt_ref: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> GatewayOrder:
        """
        Create a gateway order for a checkout.

        Args:
            amount_minor: Amount already converted with ``to_minor_units``
            currency: ISO currency code
            receipt_ref: Merchant-side receipt reference
            metadata: Short string notes stored with the gateway order

        Raises:
            GatewayError: On timeout, transport failure or gateway rejection
        """
        raw = await self._post("/orders", {
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt_ref,
            "notes": metadata or {},
        })
        order_ref = raw.get("id")
        if not order_ref:
            raise GatewayError("Payment gateway returned no order ID")
        return GatewayOrder(
            gateway_order_ref=order_ref,
            amount_minor=amount_minor,
            currency=currency,
            receipt=receipt_ref,
            raw=raw,
        )

    async def create_refund(
        self,
        gateway_payment_ref: str,
        amount_minor: int,
        notes: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Ask the gateway to refund (part of) a captured payment."""
        raw = await self._post(f"/payments/{gateway_payment_ref}/refund", {
            "amount": amount_minor,
            "notes": notes or {},
        })
        if not raw.get("id"):
            raise GatewayError("Payment gateway returned no refund ID")
        return raw

    def verify_client_signature(
        self, gateway_order_ref: str, gateway_payment_ref: str, provided_signature: Optional[str]
    ) -> bool:
        if not provided_signature:
            return False
        message = f"{gateway_order_ref}|{gateway_payment_ref}".encode("utf-8")
        expected = compute_signature(self._key_secret, message)
        return hmac.compare_digest(expected.encode("utf-8"), provided_signature.encode("utf-8"))

    def verify_webhook_signature(self, raw_body: bytes, provided_signature: Optional[str]) -> bool:
        if not provided_signature or not self._webhook_secret:
            return False
        expected = compute_signature(self._webhook_secret, raw_body)
        return hmac.compare_digest(expected.encode("utf-8"), provided_signature.encode("utf-8"))
