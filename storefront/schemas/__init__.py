"""
Schemas package for API request/response validation.
These models define the structure of data sent to and from the API endpoints.
"""

# Order schemas
from .order import (
    OrderItemRequest,
    CreateOrderRequest,
    VerifyPaymentRequest,
    UpdateShippingStatusRequest,
    CancelOrderRequest,
    CreateReturnRequest,
    AdvanceReturnRequest,
    RefundRequest,
    GatewayOrderResponse,
    OrdersListResponse,
    OrderStatsResponse,
    TodayOrderStatsResponse,
)

# Webhook schemas
from .payment import PaymentEntity, RefundEntity, WebhookEvent

# Common schemas
from .common import (
    HealthCheckResponse,
    RootResponse,
    ErrorResponse,
    ValidationErrorDetail,
    ValidationErrorResponse,
    PaginationMeta,
    SuccessResponse,
)

__all__ = [
    # Order schemas
    "OrderItemRequest",
    "CreateOrderRequest",
    "VerifyPaymentRequest",
    "UpdateShippingStatusRequest",
    "CancelOrderRequest",
    "CreateReturnRequest",
    "AdvanceReturnRequest",
    "RefundRequest",
    "GatewayOrderResponse",
    "OrdersListResponse",
    "OrderStatsResponse",
    "TodayOrderStatsResponse",

    # Webhook schemas
    "PaymentEntity",
    "RefundEntity",
    "WebhookEvent",

    # Common schemas
    "HealthCheckResponse",
    "RootResponse",
    "ErrorResponse",
    "ValidationErrorDetail",
    "ValidationErrorResponse",
    "PaginationMeta",
    "SuccessResponse",
]
