"""
Order API schemas for request/response validation.
These models define the structure of data sent to and from the API.
"""
import json
from typing import List, Optional
from datetime import datetime
from pydantic import AliasChoices, BaseModel, Field, field_validator
from bson import ObjectId

from ..models.order import LineItem, OrderDocument, PaymentMethod, PickupAgent, ReturnStatus, ShippingStatus
from .common import PaginationMeta


def _check_object_id(value: str, label: str) -> str:
    if not ObjectId.is_valid(value):
        raise ValueError(f'Invalid {label} ID format')
    return value


# Request Schemas

class OrderItemRequest(BaseModel):
    """A line item as submitted by the storefront."""
    product_id: str = Field(..., validation_alias=AliasChoices("product_id", "product"), description="Product ID")
    quantity: int = Field(..., ge=1, le=100, description="Quantity ordered (max 100)")
    size: str = Field(..., min_length=1, max_length=50, description="Variant size")

    @field_validator('product_id')
    @classmethod
    def validate_product_id(cls, v):
        return _check_object_id(v, "product")

    @field_validator('size')
    @classmethod
    def validate_size(cls, v):
        if not v.strip():
            raise ValueError('Size must not be blank')
        return v

    def to_line_item(self) -> LineItem:
        return LineItem(product_id=self.product_id, quantity=self.quantity, size=self.size)


class CreateOrderRequest(BaseModel):
    """Checkout request. The user comes from the path."""
    line_items: List[OrderItemRequest] = Field(
        ...,
        min_length=1,
        max_length=50,
        validation_alias=AliasChoices("line_items", "products"),
        description="Items being bought",
    )
    address_id: str = Field(..., description="Saved address to deliver to")
    amount: float = Field(..., gt=0, allow_inf_nan=False, description="Total in major currency units")
    payment_method: PaymentMethod = Field(..., description="cod or online")

    @field_validator('address_id')
    @classmethod
    def validate_address_id(cls, v):
        return _check_object_id(v, "address")


class VerifyPaymentRequest(BaseModel):
    """
    Client-side payment confirmation posted after the gateway checkout.

    Only the three gateway fields are trusted. The remaining fields are
    accepted for compatibility with older storefront builds and compared
    against the server-side hold.
    """
    gateway_order_ref: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("gateway_order_ref", "razorpay_order_id")
    )
    gateway_payment_ref: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("gateway_payment_ref", "razorpay_payment_id")
    )
    signature: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("signature", "razorpay_signature")
    )
    user_id: Optional[str] = None
    address_id: Optional[str] = None
    line_items: Optional[List[OrderItemRequest]] = Field(
        None, validation_alias=AliasChoices("line_items", "products")
    )
    amount: Optional[float] = Field(None, gt=0, allow_inf_nan=False)

    @field_validator('line_items', mode='before')
    @classmethod
    def parse_line_items(cls, v):
        # Older clients send the line items as a JSON-encoded string
        if isinstance(v, str):
            try:
                return json.loads(v)
            except ValueError:
                raise ValueError('line_items is not valid JSON')
        return v


class UpdateShippingStatusRequest(BaseModel):
    status: ShippingStatus = Field(..., description="Next shipping status")
    reason: Optional[str] = Field(None, max_length=500, description="Reason, used when cancelling")


class CancelOrderRequest(BaseModel):
    reason: str = Field("", max_length=500)


class CreateReturnRequest(BaseModel):
    product_id: str = Field(..., description="Product on the order being returned")
    size: str = Field(..., min_length=1, max_length=50)
    quantity: int = Field(..., ge=1, le=100)
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator('product_id')
    @classmethod
    def validate_product_id(cls, v):
        return _check_object_id(v, "product")


class AdvanceReturnRequest(BaseModel):
    status: ReturnStatus = Field(..., description="Next return status")
    pickup_agent: Optional[PickupAgent] = Field(None, description="Courier details when scheduling pickup")


class RefundRequest(BaseModel):
    amount: Optional[float] = Field(None, gt=0, allow_inf_nan=False, description="Partial refund amount; full if omitted")


# Response Schemas

class GatewayOrderResponse(BaseModel):
    """Returned for online checkouts; the storefront opens the gateway with it."""
    gateway_order_ref: str = Field(..., description="Gateway order ID")
    amount_minor: int = Field(..., description="Amount in minor units sent to the gateway")
    currency: str
    receipt: str
    key: str = Field(..., description="Public gateway key for the client checkout")
    expires_at: datetime = Field(..., description="When the stock hold lapses")


class OrdersListResponse(BaseModel):
    """Response schema for order list with pagination."""
    orders: List[OrderDocument] = Field(..., description="List of orders")
    pagination: PaginationMeta


class OrderStatsResponse(BaseModel):
    total_orders: int
    pending_orders: int
    delivered_orders: int
    cancelled_orders: int
    total_units_sold: int
    distinct_product_count: int


class TodayOrderStatsResponse(BaseModel):
    completed: int
    processing: int
    avg_order_value: float
