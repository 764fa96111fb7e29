"""
Inventory ledger: per-variant stock counters stored on product documents.

Every decrement is a single conditional update ("decrement if remaining
stock >= requested"), so two requests racing for the last unit cannot
both succeed. A multi-line reservation is all-or-nothing: if any line
fails, the lines already decremented by that call are put back.
"""
import logging
from typing import List, Sequence

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..errors import InsufficientStock, ProductNotFound, VariantNotFound
from ..models.order import LineItem
from ..models.product import ProductDocument

logger = logging.getLogger(__name__)


class InventoryLedger:
    """Atomic stock reservation and restoration against the products collection."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.products = db.products

    async def reserve_stock(self, line_items: Sequence[LineItem]) -> List[LineItem]:
        """
        Decrement stock for every line item, or for none of them.

        Args:
            line_items: Lines to reserve; product IDs must be valid ObjectIds

        Returns:
            The line items priced from the product record (unit price and name)

        Raises:
            ProductNotFound: A product does not exist
            VariantNotFound: A product has no variant with the requested size
            InsufficientStock: A variant cannot cover the requested quantity
        """
        reserved: List[LineItem] = []
        try:
            for item in line_items:
                reserved.append(await self._reserve_line(item))
        except Exception:
            if reserved:
                await self.restore_stock(reserved)
            raise
        return reserved

    async def _reserve_line(self, item: LineItem) -> LineItem:
        product_oid = ObjectId(item.product_id)
        doc = await self.products.find_one({"_id": product_oid})
        if not doc:
            raise ProductNotFound(item.product_id)

        doc["_id"] = str(doc["_id"])
        product = ProductDocument.model_validate(doc)
        if product.variant(item.size) is None:
            raise VariantNotFound(product.name, item.size)

        result = await self.products.update_one(
            {
                "_id": product_oid,
                "variants": {"$elemMatch": {"size": item.size, "stock": {"$gte": item.quantity}}},
            },
            {"$inc": {"variants.$.stock": -item.quantity}},
        )
        if result.modified_count != 1:
            raise InsufficientStock(product.name, item.size)

        return item.model_copy(update={"unit_price": product.selling_price, "product_name": product.name})

    async def restore_stock(self, line_items: Sequence[LineItem]) -> bool:
        """
        Put stock back for previously reserved lines.

        Failures are logged per line and do not stop the remaining lines.

        Returns:
            True if every line was restored
        """
        restored_all = True
        for item in line_items:
            try:
                result = await self.products.update_one(
                    {
                        "_id": ObjectId(item.product_id),
                        "variants": {"$elemMatch": {"size": item.size}},
                    },
                    {"$inc": {"variants.$.stock": item.quantity}},
                )
                if result.modified_count != 1:
                    restored_all = False
                    logger.warning(
                        f"Stock restore matched nothing for product {item.product_id} size {item.size} "
                        f"(qty {item.quantity})"
                    )
            except Exception as e:
                restored_all = False
                logger.warning(
                    f"Failed to restore stock for product {item.product_id} size {item.size} "
                    f"(qty {item.quantity}): {e}"
                )
        return restored_all
