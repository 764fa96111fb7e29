"""
Stock holds for online checkouts.

Stock for an online order is reserved once, when the gateway order is
created, and parked in a hold keyed by the gateway order reference. The
first verified confirmation commits the hold; a sweeper releases holds
nobody paid for. A hold moves ``held -> committed``, ``held -> released``
or ``released -> committed``, each step a single conditional update, so
stock for one gateway order is never decremented twice.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from ..models.hold import HoldStatus, StockHold
from ..utils.serializers import utcnow
from .inventory import InventoryLedger

logger = logging.getLogger(__name__)


class StockHoldRegistry:
    def __init__(self, db: AsyncIOMotorDatabase, inventory: InventoryLedger, ttl_minutes: int = 30):
        self.holds = db.stock_holds
        self.inventory = inventory
        self.ttl = timedelta(minutes=ttl_minutes)

    def expiry_for(self, created_at: datetime) -> datetime:
        return created_at + self.ttl

    async def create_hold(self, hold: StockHold) -> StockHold:
        result = await self.holds.insert_one(hold.to_mongo())
        return hold.model_copy(update={"id": str(result.inserted_id)})

    async def get(self, gateway_order_ref: str) -> Optional[StockHold]:
        doc = await self.holds.find_one({"gateway_order_ref": gateway_order_ref})
        return StockHold.from_mongo(doc) if doc else None

    async def commit(self, hold: StockHold) -> StockHold:
        """
        Turn the hold's reservation into a permanent decrement.

        Safe to call from both confirmation channels, in any order and any
        number of times.

        Raises:
            InsufficientStock: The hold had lapsed and the stock is gone
        """
        now = utcnow()
        committed = await self.holds.find_one_and_update(
            {"gateway_order_ref": hold.gateway_order_ref, "status": HoldStatus.HELD.value},
            {"$set": {"status": HoldStatus.COMMITTED.value, "committed_at": now}},
            return_document=ReturnDocument.AFTER,
        )
        if committed:
            return StockHold.from_mongo(committed)

        current = await self.get(hold.gateway_order_ref)
        if current is None or current.status == HoldStatus.COMMITTED.value:
            return current or hold

        # Released by the sweeper before payment arrived; take the stock again
        logger.warning(f"Hold {hold.gateway_order_ref} lapsed before confirmation, re-reserving stock")
        reserved = await self.inventory.reserve_stock(current.line_items)
        committed = await self.holds.find_one_and_update(
            {"gateway_order_ref": hold.gateway_order_ref, "status": HoldStatus.RELEASED.value},
            {"$set": {"status": HoldStatus.COMMITTED.value, "committed_at": now}},
            return_document=ReturnDocument.AFTER,
        )
        if committed is None:
            # The other confirmation channel committed first
            await self.inventory.restore_stock(reserved)
            return await self.get(hold.gateway_order_ref) or current
        return StockHold.from_mongo(committed)

    async def release(self, gateway_order_ref: str) -> bool:
        """Release a held reservation and restore its stock. False if it was not held."""
        released = await self.holds.find_one_and_update(
            {"gateway_order_ref": gateway_order_ref, "status": HoldStatus.HELD.value},
            {"$set": {"status": HoldStatus.RELEASED.value, "released_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if not released:
            return False
        hold = StockHold.from_mongo(released)
        if not await self.inventory.restore_stock(hold.line_items):
            logger.warning(f"Stock for released hold {gateway_order_ref} was not fully restored")
        return True

    async def release_expired(self, now: Optional[datetime] = None) -> int:
        """
        Release every held reservation whose window has passed.

        Returns:
            Number of holds released by this call
        """
        now = now or utcnow()
        cursor = self.holds.find(
            {"status": HoldStatus.HELD.value, "expires_at": {"$lt": now}},
            {"gateway_order_ref": 1},
        )
        expired = await cursor.to_list(length=None)

        released = 0
        for doc in expired:
            if await self.release(doc["gateway_order_ref"]):
                released += 1

        if released:
            logger.info(f"Released {released} expired stock hold(s)")
        return released
