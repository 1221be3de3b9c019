"""Database layer for ledgerflow application."""

from ledgerflow.database.base import Database
from ledgerflow.database.factories import create_database, create_sqlite_database

__all__ = ["Database", "create_database", "create_sqlite_database"]
