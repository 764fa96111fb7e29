"""
Order data models for database documents.
These represent the actual structure of documents stored in MongoDB.
"""
from enum import Enum
from typing import List, Dict, Optional, Any
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator
from bson import ObjectId


class PaymentMethod(str, Enum):
    COD = "cod"
    ONLINE = "online"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class ConfirmationSource(str, Enum):
    """Which channel(s) confirmed an online payment."""
    CLIENT = "client"
    WEBHOOK = "webhook"
    BOTH = "both"


class CodCollectionStatus(str, Enum):
    NOT_COLLECTED = "not_collected"
    COLLECTED = "collected"


class ShippingStatus(str, Enum):
    PROCESSING = "processing"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class ReturnStatus(str, Enum):
    REQUESTED = "requested"
    PICKUP_SCHEDULED = "pickup_scheduled"
    PICKED_UP = "picked_up"
    RETURNED_TO_WAREHOUSE = "returned_to_warehouse"
    REJECTED = "rejected"


class RefundStatus(str, Enum):
    NOT_APPLICABLE = "not_applicable"
    REFUND_APPLIED = "refund_applied"
    REFUND_PROCESSING = "refund_processing"
    REFUND_COMPLETED = "refund_completed"
    REFUND_FAILED = "refund_failed"


# Legal next states. Anything not listed is rejected.
SHIPPING_TRANSITIONS: Dict[str, List[str]] = {
    ShippingStatus.PROCESSING.value: [ShippingStatus.SHIPPED.value, ShippingStatus.CANCELLED.value],
    ShippingStatus.SHIPPED.value: [
        ShippingStatus.OUT_FOR_DELIVERY.value,
        ShippingStatus.CANCELLED.value,
        ShippingStatus.RETURNED.value,
    ],
    ShippingStatus.OUT_FOR_DELIVERY.value: [
        ShippingStatus.DELIVERED.value,
        ShippingStatus.CANCELLED.value,
        ShippingStatus.RETURNED.value,
    ],
    ShippingStatus.DELIVERED.value: [ShippingStatus.RETURNED.value],
    ShippingStatus.CANCELLED.value: [],
    ShippingStatus.RETURNED.value: [],
}

RETURN_TRANSITIONS: Dict[str, List[str]] = {
    ReturnStatus.REQUESTED.value: [ReturnStatus.PICKUP_SCHEDULED.value, ReturnStatus.REJECTED.value],
    ReturnStatus.PICKUP_SCHEDULED.value: [ReturnStatus.PICKED_UP.value, ReturnStatus.REJECTED.value],
    ReturnStatus.PICKED_UP.value: [ReturnStatus.RETURNED_TO_WAREHOUSE.value],
    ReturnStatus.RETURNED_TO_WAREHOUSE.value: [],
    ReturnStatus.REJECTED.value: [],
}


class LineItem(BaseModel):
    """A product/size/quantity line within an order or hold."""
    product_id: str = Field(..., description="Product ID reference")
    quantity: int = Field(..., ge=1, le=100, description="Quantity ordered")
    size: str = Field(..., min_length=1, max_length=50, description="Variant size selector")

    # Filled in from the product when stock is reserved
    unit_price: Optional[float] = Field(None, ge=0, description="Price per unit at time of purchase")
    product_name: Optional[str] = Field(None, description="Product name at time of purchase")

    @field_validator('product_id')
    @classmethod
    def validate_product_id(cls, v):
        if not ObjectId.is_valid(v):
            raise ValueError('Invalid product ID format')
        return v

    @field_validator('size')
    @classmethod
    def validate_size(cls, v):
        if not v.strip():
            raise ValueError('Size must not be blank')
        return v


class AddressSnapshot(BaseModel):
    """Copy of the delivery address taken when the order was placed."""
    model_config = ConfigDict(frozen=True)

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    mobile_no: Optional[str] = None
    alternative_mobile_no: Optional[str] = None
    flat_no: Optional[str] = None
    area: Optional[str] = None
    landmark: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None


class Cancellation(BaseModel):
    reason: str = Field(default="", description="Why the order was cancelled")
    timestamp: datetime


class PickupAgent(BaseModel):
    name: Optional[str] = None
    contact: Optional[str] = None
    tracking_id: Optional[str] = None


class ReturnRequest(BaseModel):
    """A return raised against one line of a delivered order."""
    model_config = ConfigDict(use_enum_values=True)

    return_id: str = Field(default_factory=lambda: str(ObjectId()))
    product_id: str
    size: str
    quantity: int = Field(..., ge=1)
    reason: Optional[str] = None
    status: ReturnStatus = ReturnStatus.REQUESTED
    timestamps: Dict[str, datetime] = Field(default_factory=dict)
    pickup_agent: Optional[PickupAgent] = None
    verified: bool = False


class OrderDocument(BaseModel):
    """
    Order document model representing the MongoDB document structure.
    This matches how orders are stored in the database.
    """
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    id: Optional[str] = Field(None, alias="_id", description="Order ID")
    user_id: str = Field(..., min_length=1, description="User ID who placed the order")
    address_id: Optional[str] = Field(None, description="Source address record")
    address: Optional[AddressSnapshot] = Field(None, description="Frozen delivery address")
    line_items: List[LineItem] = Field(..., min_length=1, description="Order lines")
    amount: float = Field(..., gt=0, description="Total charged, in major currency units")

    # Payment
    payment_method: PaymentMethod
    payment_status: PaymentStatus = PaymentStatus.PENDING
    gateway_order_ref: Optional[str] = Field(None, description="Gateway order ID (online only)")
    gateway_payment_ref: Optional[str] = Field(None, description="Gateway payment ID (online only)")
    confirmation_source: Optional[ConfirmationSource] = None
    cod_collection_status: CodCollectionStatus = CodCollectionStatus.NOT_COLLECTED

    # Fulfilment
    shipping_status: ShippingStatus = ShippingStatus.PROCESSING
    shipping_timestamps: Dict[str, datetime] = Field(default_factory=dict)
    cancellation: Optional[Cancellation] = None
    returns: List[ReturnRequest] = Field(default_factory=list)

    # Refunds
    refund_status: RefundStatus = RefundStatus.NOT_APPLICABLE
    refund_timestamps: Dict[str, datetime] = Field(default_factory=dict)
    refund_ref: Optional[str] = None

    # Timestamps
    created_at: datetime
    updated_at: Optional[datetime] = None

    def to_mongo(self) -> Dict[str, Any]:
        """Document to insert. Unset optionals are omitted so sparse indexes skip them."""
        return self.model_dump(exclude={"id"}, exclude_none=True)

    @classmethod
    def from_mongo(cls, doc: Dict[str, Any]) -> "OrderDocument":
        data = dict(doc)
        if "_id" in data:
            data["_id"] = str(data["_id"])
        return cls.model_validate(data)

    def find_return(self, return_id: str) -> Optional[ReturnRequest]:
        for ret in self.returns:
            if ret.return_id == return_id:
                return ret
        return None
