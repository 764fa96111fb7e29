"""Exceptions raised by the order and payment services.

Each carries the HTTP status the API reports it with; the message is safe
to show to clients.
"""
from typing import Optional


class StorefrontError(Exception):
    """Base exception for all storefront order errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class OrderValidationError(StorefrontError):
    """Raised when a request is malformed. Never mutates state."""

    status_code = 400


class ProductNotFound(StorefrontError):
    """Raised when a line item references a missing product."""

    status_code = 404

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class VariantNotFound(StorefrontError):
    """Raised when a product has no variant with the requested size."""

    status_code = 404

    def __init__(self, product_name: str, size: str):
        self.product_name = product_name
        self.size = size
        super().__init__(f"Variant with size {size} not found for product: {product_name}")


class InsufficientStock(StorefrontError):
    """Raised when a variant cannot cover the requested quantity."""

    status_code = 409

    def __init__(self, product_name: str, size: str):
        self.product_name = product_name
        self.size = size
        super().__init__(f"Insufficient stock for product: {product_name}, size: {size}")


class AddressNotFound(StorefrontError):
    status_code = 404

    def __init__(self, address_id: str):
        self.address_id = address_id
        super().__init__("Address not found")


class InvalidSignature(StorefrontError):
    """Raised when a payment signature does not verify.

    The message is fixed so nothing about the failure leaks to the caller.
    """

    status_code = 400

    def __init__(self):
        super().__init__("Invalid signature")


class GatewayError(StorefrontError):
    """Raised when the payment gateway fails, times out or rejects a call."""

    status_code = 502

    def __init__(self, message: str = "Payment gateway error", detail: Optional[str] = None):
        self.detail = detail
        super().__init__(message)


class OrderNotFound(StorefrontError):
    status_code = 404

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class ReturnNotFound(StorefrontError):
    status_code = 404

    def __init__(self, return_id: str):
        self.return_id = return_id
        super().__init__(f"Return {return_id} not found")


class PaymentOrderNotFound(StorefrontError):
    """Raised when a confirmation names a gateway order this service never created."""

    status_code = 404

    def __init__(self, gateway_order_ref: str):
        self.gateway_order_ref = gateway_order_ref
        super().__init__("Payment order not found")


class InvalidTransition(StorefrontError):
    """Raised when a state change is not allowed from the current state."""

    status_code = 409

    def __init__(self, kind: str, current: str, requested: str):
        self.kind = kind
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change {kind} from {current} to {requested}")


class ConcurrentModification(StorefrontError):
    """Raised when a record changed between reading it and writing it."""

    status_code = 409

    def __init__(self, resource: str):
        self.resource = resource
        super().__init__(f"{resource} was modified concurrently, please retry")
