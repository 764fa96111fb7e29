from .settings import Settings, get_settings
from .database import DatabaseManager, ensure_indexes, get_database

__all__ = [
    "Settings",
    "get_settings",
    "DatabaseManager",
    "ensure_indexes",
    "get_database",
]
