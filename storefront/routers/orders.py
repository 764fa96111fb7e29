"""
Order API endpoints: checkout, payment confirmation, fulfilment and reporting.

Business failures propagate as ``StorefrontError`` and are turned into the
error envelope by the handlers registered in ``main``.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request, Response

from ..config.settings import Settings, get_settings
from ..schemas.common import SuccessResponse
from ..schemas.order import (
    AdvanceReturnRequest,
    CancelOrderRequest,
    CreateOrderRequest,
    CreateReturnRequest,
    GatewayOrderResponse,
    RefundRequest,
    UpdateShippingStatusRequest,
    VerifyPaymentRequest,
)
from ..services.orders import OrderService
from ..services.queries import OrderQueryService
from ..utils.dependencies import get_order_queries, get_order_service, validate_pagination_params

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Orders"])


def _order_data(order) -> dict:
    return order.model_dump(mode="json")


@router.post("/create-order/{user_id}", response_model=SuccessResponse, status_code=201)
async def create_order(
    user_id: str,
    order: CreateOrderRequest,
    response: Response,
    service: OrderService = Depends(get_order_service),
):
    """Place an order. COD orders are created immediately; online orders return a gateway checkout."""
    result = await service.place_order(
        user_id=user_id,
        line_items=[item.to_line_item() for item in order.line_items],
        address_id=order.address_id,
        amount=order.amount,
        payment_method=order.payment_method,
    )

    if isinstance(result, GatewayOrderResponse):
        response.status_code = 200
        return SuccessResponse(message="Payment order created", data=result.model_dump(mode="json"))
    return SuccessResponse(message="Order placed successfully", data=_order_data(result))


@router.post("/verify-payment", response_model=SuccessResponse)
async def verify_payment(
    payload: VerifyPaymentRequest,
    service: OrderService = Depends(get_order_service),
):
    """Confirm an online payment reported by the storefront after checkout."""
    order = await service.confirm_client_payment(
        gateway_order_ref=payload.gateway_order_ref,
        gateway_payment_ref=payload.gateway_payment_ref,
        signature=payload.signature,
        user_id=payload.user_id,
        address_id=payload.address_id,
        line_items=[item.to_line_item() for item in payload.line_items] if payload.line_items else None,
        amount=payload.amount,
    )
    return SuccessResponse(message="Payment verified and order created", data=_order_data(order))


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(None),
    service: OrderService = Depends(get_order_service),
):
    """Gateway webhook. The signature covers the raw body, so it is read unparsed."""
    raw_body = await request.body()
    return await service.confirm_webhook_payment(raw_body, x_razorpay_signature)


@router.get("/get-orders/{user_id}", response_model=SuccessResponse)
async def get_user_orders(
    user_id: str,
    page: int = Query(1, description="Page number, starting at 1"),
    limit: Optional[int] = Query(None, description="Orders per page"),
    queries: OrderQueryService = Depends(get_order_queries),
    settings: Settings = Depends(get_settings),
):
    """List a user's orders, newest first."""
    page, limit = validate_pagination_params(page, limit or settings.default_page_size, settings)
    result = await queries.list_orders(user_id=user_id, page=page, page_size=limit)
    return SuccessResponse(message="Orders fetched successfully", data=result.model_dump(mode="json"))


@router.get("/all-orders", response_model=SuccessResponse)
async def get_all_orders(
    page: int = Query(1, description="Page number, starting at 1"),
    limit: Optional[int] = Query(None, description="Orders per page"),
    queries: OrderQueryService = Depends(get_order_queries),
    settings: Settings = Depends(get_settings),
):
    """List every order, newest first."""
    page, limit = validate_pagination_params(page, limit or settings.default_page_size, settings)
    result = await queries.list_orders(page=page, page_size=limit)
    return SuccessResponse(message="All orders fetched successfully", data=result.model_dump(mode="json"))


@router.get("/detail/{order_id}", response_model=SuccessResponse)
async def get_order(order_id: str, queries: OrderQueryService = Depends(get_order_queries)):
    order = await queries.get_order(order_id)
    return SuccessResponse(message="Order fetched successfully", data=_order_data(order))


@router.get("/order-status", response_model=SuccessResponse)
async def get_order_status(queries: OrderQueryService = Depends(get_order_queries)):
    stats = await queries.get_order_stats()
    return SuccessResponse(message="Order status fetched successfully", data=stats.model_dump())


@router.get("/today-order-stats", response_model=SuccessResponse)
async def get_today_order_stats(queries: OrderQueryService = Depends(get_order_queries)):
    stats = await queries.get_today_stats()
    return SuccessResponse(message="Today's order stats", data={"today": stats.model_dump()})


@router.patch("/{order_id}/shipping-status", response_model=SuccessResponse)
async def update_shipping_status(
    order_id: str,
    payload: UpdateShippingStatusRequest,
    service: OrderService = Depends(get_order_service),
):
    order = await service.update_shipping_status(order_id, payload.status, payload.reason)
    return SuccessResponse(message="Shipping status updated", data=_order_data(order))


@router.post("/{order_id}/cancel", response_model=SuccessResponse)
async def cancel_order(
    order_id: str,
    payload: CancelOrderRequest,
    service: OrderService = Depends(get_order_service),
):
    order = await service.cancel_order(order_id, payload.reason)
    return SuccessResponse(message="Order cancelled", data=_order_data(order))


@router.post("/{order_id}/cod-collected", response_model=SuccessResponse)
async def mark_cod_collected(order_id: str, service: OrderService = Depends(get_order_service)):
    order = await service.mark_cod_collected(order_id)
    return SuccessResponse(message="Cash on delivery collected", data=_order_data(order))


@router.post("/{order_id}/refund", response_model=SuccessResponse)
async def initiate_refund(
    order_id: str,
    payload: RefundRequest,
    service: OrderService = Depends(get_order_service),
):
    order = await service.initiate_refund(order_id, payload.amount)
    return SuccessResponse(message="Refund initiated", data=_order_data(order))


@router.post("/{order_id}/returns", response_model=SuccessResponse, status_code=201)
async def request_return(
    order_id: str,
    payload: CreateReturnRequest,
    service: OrderService = Depends(get_order_service),
):
    ret = await service.request_return(
        order_id, payload.product_id, payload.size, payload.quantity, payload.reason
    )
    return SuccessResponse(message="Return requested", data=ret.model_dump(mode="json"))


@router.patch("/returns/{return_id}", response_model=SuccessResponse)
async def advance_return(
    return_id: str,
    payload: AdvanceReturnRequest,
    service: OrderService = Depends(get_order_service),
):
    ret = await service.advance_return(return_id, payload.status, payload.pickup_agent)
    return SuccessResponse(message="Return updated", data=ret.model_dump(mode="json"))


@router.post("/returns/{return_id}/verify", response_model=SuccessResponse)
async def verify_return(return_id: str, service: OrderService = Depends(get_order_service)):
    ret = await service.verify_return(return_id)
    return SuccessResponse(message="Return verified", data=ret.model_dump(mode="json"))
