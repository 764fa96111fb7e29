from .serializers import to_object_id, utcnow

__all__ = [
    "to_object_id",
    "utcnow",
]
