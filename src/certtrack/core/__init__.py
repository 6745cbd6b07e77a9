"""
Core module - Configuration, database, Redis, email and scheduling.
"""

from certtrack.core.config import get_settings, settings
from certtrack.core.database import Base, close_db, get_db, init_db
from certtrack.core.redis import advisory_lock, close_redis, get_redis, init_redis

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Database
    "Base",
    "get_db",
    "init_db",
    "close_db",
    # Redis
    "get_redis",
    "init_redis",
    "close_redis",
    "advisory_lock",
]
