"""
Models package for database document structures.
These models represent how data is stored in MongoDB.
"""
from .product import ProductDocument, ProductVariant
from .order import (
    AddressSnapshot,
    Cancellation,
    CodCollectionStatus,
    ConfirmationSource,
    LineItem,
    OrderDocument,
    PaymentMethod,
    PaymentStatus,
    PickupAgent,
    RefundStatus,
    ReturnRequest,
    ReturnStatus,
    ShippingStatus,
    RETURN_TRANSITIONS,
    SHIPPING_TRANSITIONS,
)
from .hold import HoldStatus, StockHold

__all__ = [
    # Product models
    "ProductDocument",
    "ProductVariant",

    # Order models
    "AddressSnapshot",
    "Cancellation",
    "CodCollectionStatus",
    "ConfirmationSource",
    "LineItem",
    "OrderDocument",
    "PaymentMethod",
    "PaymentStatus",
    "PickupAgent",
    "RefundStatus",
    "ReturnRequest",
    "ReturnStatus",
    "ShippingStatus",
    "RETURN_TRANSITIONS",
    "SHIPPING_TRANSITIONS",

    # Hold models
    "HoldStatus",
    "StockHold",
]
