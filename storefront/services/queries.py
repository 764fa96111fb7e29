"""
Read-only order queries: paginated listings and dashboard counters.
"""
import logging
import math
from datetime import datetime, time, timedelta
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING

from ..errors import OrderNotFound
from ..models.order import OrderDocument, PaymentStatus, ShippingStatus
from ..schemas.common import PaginationMeta
from ..schemas.order import OrderStatsResponse, OrdersListResponse, TodayOrderStatsResponse
from ..utils.serializers import to_object_id, utcnow

logger = logging.getLogger(__name__)


class OrderQueryService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.orders = db.orders

    async def list_orders(
        self,
        user_id: Optional[str] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> OrdersListResponse:
        """
        List orders newest first, optionally for a single user.

        Args:
            user_id: Restrict to this user's orders; all orders when omitted
            page: 1-based page number
            page_size: Orders per page
        """
        filter_query = {}
        if user_id is not None:
            filter_query["user_id"] = user_id

        total_count = await self.orders.count_documents(filter_query)
        skip = (page - 1) * page_size
        cursor = self.orders.find(filter_query).sort("created_at", DESCENDING).skip(skip).limit(page_size)
        docs = await cursor.to_list(length=page_size)

        total_pages = math.ceil(total_count / page_size) if total_count else 0
        return OrdersListResponse(
            orders=[OrderDocument.from_mongo(doc) for doc in docs],
            pagination=PaginationMeta(
                current_page=page,
                total_pages=total_pages,
                total_count=total_count,
                has_next=page < total_pages,
                has_prev=page > 1,
                page_size=page_size,
            ),
        )

    async def get_order(self, order_id: str) -> OrderDocument:
        doc = await self.orders.find_one({"_id": to_object_id(order_id, "order")})
        if not doc:
            raise OrderNotFound(order_id)
        return OrderDocument.from_mongo(doc)

    async def get_order_stats(self) -> OrderStatsResponse:
        """Lifetime order counters plus units sold and distinct products ordered."""
        total_orders = await self.orders.count_documents({})
        pending_orders = await self.orders.count_documents({"payment_status": PaymentStatus.PENDING.value})
        delivered_orders = await self.orders.count_documents({"shipping_status": ShippingStatus.DELIVERED.value})
        cancelled_orders = await self.orders.count_documents({"shipping_status": ShippingStatus.CANCELLED.value})

        pipeline = [
            {"$unwind": "$line_items"},
            {"$group": {
                "_id": None,
                "total_units": {"$sum": "$line_items.quantity"},
                "products": {"$addToSet": "$line_items.product_id"},
            }},
        ]
        rows = await self.orders.aggregate(pipeline).to_list(length=None)
        product_stats = rows[0] if rows else {}

        return OrderStatsResponse(
            total_orders=total_orders,
            pending_orders=pending_orders,
            delivered_orders=delivered_orders,
            cancelled_orders=cancelled_orders,
            total_units_sold=product_stats.get("total_units", 0),
            distinct_product_count=len(product_stats.get("products", [])),
        )

    async def get_today_stats(self, now: Optional[datetime] = None) -> TodayOrderStatsResponse:
        """
        Counters for orders placed today (UTC).

        ``avg_order_value`` averages the amounts of today's delivered orders.
        """
        now = now or utcnow()
        start = datetime.combine(now.date(), time.min)
        end = start + timedelta(days=1)

        pipeline = [
            {"$match": {
                "created_at": {"$gte": start, "$lt": end},
                "shipping_status": {"$in": [ShippingStatus.PROCESSING.value, ShippingStatus.DELIVERED.value]},
            }},
            {"$group": {
                "_id": "$shipping_status",
                "count": {"$sum": 1},
                "total_amount": {"$sum": "$amount"},
            }},
        ]
        rows = await self.orders.aggregate(pipeline).to_list(length=None)

        completed = processing = 0
        total_amount = 0.0
        for row in rows:
            if row["_id"] == ShippingStatus.DELIVERED.value:
                completed = row["count"]
                total_amount = row["total_amount"]
            elif row["_id"] == ShippingStatus.PROCESSING.value:
                processing = row["count"]

        avg_order_value = round(total_amount / completed, 2) if completed else 0.0
        return TodayOrderStatsResponse(completed=completed, processing=processing, avg_order_value=avg_order_value)
