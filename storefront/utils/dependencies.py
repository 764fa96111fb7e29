"""
FastAPI dependencies for services and common validations
"""
from fastapi import Depends, HTTPException, Request
from motor.motor_asyncio import AsyncIOMotorDatabase
import logging

from ..config.database import get_database
from ..config.settings import Settings, get_settings
from ..services.gateway import RazorpayGateway
from ..services.notifications import EmailNotifier
from ..services.orders import OrderService
from ..services.queries import OrderQueryService

logger = logging.getLogger(__name__)


def get_payment_gateway(request: Request) -> RazorpayGateway:
    """
    Gateway client created at startup

    Raises:
        HTTPException: If the application started without one
    """
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(status_code=503, detail="Payment gateway not available")
    return gateway


def get_notifier(request: Request) -> EmailNotifier:
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        raise HTTPException(status_code=503, detail="Notifier not available")
    return notifier


def get_order_service(
    db: AsyncIOMotorDatabase = Depends(get_database),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    notifier: EmailNotifier = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
) -> OrderService:
    return OrderService(db, gateway, notifier, settings)


def get_order_queries(db: AsyncIOMotorDatabase = Depends(get_database)) -> OrderQueryService:
    return OrderQueryService(db)


def validate_pagination_params(page: int, limit: int, settings: Settings) -> tuple[int, int]:
    """
    Validate pagination parameters

    Args:
        page: 1-based page number
        limit: Number of items per page

    Returns:
        Tuple of validated (page, limit)

    Raises:
        HTTPException: If pagination parameters are invalid
    """
    if page < 1:
        raise HTTPException(status_code=400, detail="Page must be at least 1")

    if limit < 1 or limit > settings.max_page_size:
        raise HTTPException(
            status_code=400,
            detail=f"Limit must be between 1 and {settings.max_page_size}"
        )

    return page, limit
