"""Database access for the harvest scheduler.

SQLAlchemy models, connection helpers and repositories for tenants'
periodic configurations.
"""

from harvest_scheduler.database.connection import (
    create_tables,
    get_db_session,
    get_session_maker,
    init_engine,
)
from harvest_scheduler.database.models import Base, PeriodicConfigRecord
from harvest_scheduler.database.repositories import PeriodicConfigRepository
from harvest_scheduler.database.store import SqlPeriodicConfigStore

__all__ = [
    "Base",
    "PeriodicConfigRecord",
    "PeriodicConfigRepository",
    "SqlPeriodicConfigStore",
    "create_tables",
    "get_db_session",
    "get_session_maker",
    "init_engine",
]
