"""Tests for order listings and dashboard counters."""

from datetime import timedelta

import pytest
from bson import ObjectId

from conftest import line
from storefront.errors import OrderNotFound, OrderValidationError
from storefront.services.queries import OrderQueryService
from storefront.utils.serializers import utcnow


@pytest.fixture
def queries(db):
    return OrderQueryService(db)


async def place(service, user_id, product, address, size="M", quantity=1, amount=1999.0):
    return await service.place_order(user_id, [line(product, size, quantity)], address, amount, "cod")


class TestListOrders:
    async def test_newest_first_with_pagination(self, service, queries, db, user_id, product, address):
        placed = [await place(service, user_id, product, address) for _ in range(3)]
        for offset, order in enumerate(placed):
            await db.orders.update_one(
                {"_id": ObjectId(order.id)},
                {"$set": {"created_at": utcnow() + timedelta(minutes=offset)}},
            )

        first = await queries.list_orders(user_id=user_id, page=1, page_size=2)
        second = await queries.list_orders(user_id=user_id, page=2, page_size=2)

        assert [o.id for o in first.orders] == [placed[2].id, placed[1].id]
        assert [o.id for o in second.orders] == [placed[0].id]
        assert first.pagination.total_count == 3
        assert first.pagination.total_pages == 2
        assert first.pagination.has_next is True
        assert first.pagination.has_prev is False
        assert second.pagination.has_next is False
        assert second.pagination.has_prev is True

    async def test_filters_by_user(self, service, queries, db, user_id, product, address):
        await place(service, user_id, product, address)
        await db.orders.insert_one({
            "user_id": str(ObjectId()),
            "line_items": [{"product_id": product, "size": "M", "quantity": 1}],
            "amount": 10.0,
            "payment_method": "cod",
            "created_at": utcnow(),
        })

        mine = await queries.list_orders(user_id=user_id)
        everyone = await queries.list_orders()

        assert mine.pagination.total_count == 1
        assert everyone.pagination.total_count == 2

    async def test_empty(self, queries):
        result = await queries.list_orders(user_id=str(ObjectId()))
        assert result.orders == []
        assert result.pagination.total_pages == 0
        assert result.pagination.has_next is False


class TestGetOrder:
    async def test_found(self, service, queries, user_id, product, address):
        order = await place(service, user_id, product, address)
        assert (await queries.get_order(order.id)).id == order.id

    async def test_missing(self, queries):
        with pytest.raises(OrderNotFound):
            await queries.get_order(str(ObjectId()))

    async def test_malformed_id(self, queries):
        with pytest.raises(OrderValidationError):
            await queries.get_order("abc")


class TestStats:
    async def test_order_stats(self, service, queries, user_id, product, second_product, address):
        a = await place(service, user_id, product, address, quantity=2)
        await place(service, user_id, second_product, address, size="OS", quantity=1)
        b = await place(service, user_id, product, address, size="L", quantity=1)
        await service.cancel_order(b.id)
        await service.mark_cod_collected(a.id)

        stats = await queries.get_order_stats()

        assert stats.total_orders == 3
        assert stats.pending_orders == 2
        assert stats.cancelled_orders == 1
        assert stats.delivered_orders == 0
        assert stats.total_units_sold == 4
        assert stats.distinct_product_count == 2

    async def test_order_stats_empty(self, queries):
        stats = await queries.get_order_stats()
        assert stats.total_orders == 0
        assert stats.total_units_sold == 0
        assert stats.distinct_product_count == 0

    async def test_today_stats(self, service, queries, db, user_id, product, address):
        delivered = await place(service, user_id, product, address, amount=1000.0)
        for status in ("shipped", "out_for_delivery", "delivered"):
            await service.update_shipping_status(delivered.id, status)
        delivered_too = await place(service, user_id, product, address, amount=2001.0)
        for status in ("shipped", "out_for_delivery", "delivered"):
            await service.update_shipping_status(delivered_too.id, status)
        await place(service, user_id, product, address, amount=50.0)
        old = await place(service, user_id, product, address, amount=75.0)
        await db.orders.update_one(
            {"_id": ObjectId(old.id)}, {"$set": {"created_at": utcnow() - timedelta(days=2)}}
        )

        stats = await queries.get_today_stats()

        assert stats.completed == 2
        assert stats.processing == 1
        assert stats.avg_order_value == 1500.5

    async def test_today_stats_without_deliveries(self, queries):
        stats = await queries.get_today_stats()
        assert stats.completed == 0
        assert stats.avg_order_value == 0.0
