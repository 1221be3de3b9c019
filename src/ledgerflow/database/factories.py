"""Database factory functions for creating database instances."""

import os
from pathlib import Path
from typing import Optional

from ledgerflow.database.sqlalchemy_db import SQLAlchemyDatabase


def create_sqlite_database(database_path: Optional[str] = None) -> SQLAlchemyDatabase:
    """Create a SQLite database instance.

    Args:
        database_path: Path to SQLite database file. If None, checks LEDGERFLOW_DB_PATH
            environment variable, then defaults to ~/.ledgerflow/ledgerflow.db

    Returns:
        SQLAlchemyDatabase instance configured for SQLite
    """
    if database_path is None:
        database_path = os.environ.get("LEDGERFLOW_DB_PATH")

    if database_path is None:
        db_dir = Path.home() / ".ledgerflow"
        db_dir.mkdir(exist_ok=True)
        database_path = str(db_dir / "ledgerflow.db")

    return create_database(f"sqlite:///{database_path}")


def create_database(database_url: str) -> SQLAlchemyDatabase:
    """Create a database instance for any SQLAlchemy URL.

    Args:
        database_url: SQLAlchemy database URL

    Returns:
        SQLAlchemyDatabase instance
    """
    return SQLAlchemyDatabase(database_url)
