"""
MongoDB value helpers shared by the services
"""
from datetime import datetime, timezone
from bson import ObjectId

from ..errors import OrderValidationError


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching what MongoDB returns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_object_id(object_id: str, resource_name: str = "resource") -> ObjectId:
    """
    Validate and convert string to ObjectId

    Args:
        object_id: String representation of ObjectId
        resource_name: Name of the resource for error messages

    Returns:
        Valid ObjectId instance

    Raises:
        OrderValidationError: If ObjectId format is invalid
    """
    if not isinstance(object_id, str) or not ObjectId.is_valid(object_id):
        raise OrderValidationError(f"Invalid {resource_name} ID format: {object_id}")
    return ObjectId(object_id)
