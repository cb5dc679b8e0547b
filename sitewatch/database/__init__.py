"""Site Watcher Database Package

Baseline persistence (SQLAlchemy over SQLite).
"""

from .models import BaselineRecord, Base, create_db_engine, create_session_factory, init_db
from .baseline_store import Baseline, BaselineStore, BaselineStoreError

__all__ = [
    "BaselineRecord",
    "Base",
    "create_db_engine",
    "create_session_factory",
    "init_db",
    "Baseline",
    "BaselineStore",
    "BaselineStoreError",
]
