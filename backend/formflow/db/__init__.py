"""Database module."""

from formflow.db.database import close_database, get_db, init_database
from formflow.db.store import DataStore, data_store, parse_if_string

__all__ = [
    "get_db",
    "init_database",
    "close_database",
    "data_store",
    "DataStore",
    "parse_if_string",
]
