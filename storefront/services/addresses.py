"""
Address snapshot resolver.
"""
from typing import Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..errors import AddressNotFound
from ..models.order import AddressSnapshot

SNAPSHOT_FIELDS = tuple(AddressSnapshot.model_fields)


class AddressResolver:
    """Copies a saved address into a detached, immutable snapshot."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.addresses = db.addresses

    async def resolve_snapshot(self, address_id: str, user_id: Optional[str] = None) -> AddressSnapshot:
        """
        Load an address and freeze it for embedding in an order.

        An address that belongs to a different user is reported as missing.

        Raises:
            AddressNotFound: The address does not exist or is not the user's
        """
        if not ObjectId.is_valid(address_id):
            raise AddressNotFound(address_id)

        doc = await self.addresses.find_one({"_id": ObjectId(address_id)})
        if not doc:
            raise AddressNotFound(address_id)

        owner = doc.get("user_id")
        if user_id is not None and owner is not None and str(owner) != user_id:
            raise AddressNotFound(address_id)

        return AddressSnapshot(**{
            field: str(doc[field]) for field in SNAPSHOT_FIELDS if doc.get(field) is not None
        })
