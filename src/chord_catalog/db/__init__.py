"""Local cache database package -- convenience re-exports.

Importing this module registers all models with Base.metadata.
"""

from chord_catalog.db.base import Base
from chord_catalog.db.models import CacheEntry
from chord_catalog.db.session import DatabaseManager

__all__ = [
    "Base",
    "CacheEntry",
    "DatabaseManager",
]
