# backend/gallery/database/migrations.py
"""
Database initialization.

The schema is declared in `schema.py` and created with
`MetaData.create_all`, which only creates missing tables (with their
indexes). Indexes added to a table that already exists are created
separately, so running initialization against an existing database only
fills in what is missing.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from .core import SyncDatabase
from .exceptions import DatabaseInitializationError
from .schema import GALLERY_TABLES, metadata


def initialize_database(database_url: Optional[str] = None) -> Dict[str, Any]:
    """
    Create any missing tables and indexes.

    Args:
        database_url: Database connection URL. Uses settings if None.

    Returns:
        Dictionary with initialization results

    Raises:
        DatabaseInitializationError: If schema creation fails
    """
    db = SyncDatabase(database_url)
    try:
        existing = set(inspect(db.engine).get_table_names())
        metadata.create_all(db.engine)
        created = [name for name in GALLERY_TABLES if name not in existing]
        indexes_created = _create_missing_indexes(db, existing)
    except SQLAlchemyError as e:
        raise DatabaseInitializationError(
            f"Database initialization failed: {e}", operation="initialize_database"
        ) from e
    finally:
        db.close()

    if created:
        message = f"Created tables: {', '.join(created)}"
        method = "fresh_schema" if len(created) == len(GALLERY_TABLES) else "partial_schema"
    elif indexes_created:
        message = f"Created indexes: {', '.join(indexes_created)}"
        method = "indexes_added"
    else:
        message = "Database schema already up to date"
        method = "no_changes"

    return {
        "method": method,
        "success": True,
        "message": message,
        "tables_created": created,
        "indexes_created": indexes_created,
    }


def _create_missing_indexes(db: SyncDatabase, existing_tables) -> List[str]:
    """Create declared indexes missing from tables that predate them."""
    inspector = inspect(db.engine)
    created: List[str] = []
    for table in metadata.sorted_tables:
        if table.name not in existing_tables:
            continue
        present = {index["name"] for index in inspector.get_indexes(table.name)}
        for index in table.indexes:
            if index.name not in present:
                index.create(db.engine)
                created.append(index.name)
    return created


def get_database_status(database_url: Optional[str] = None) -> Dict[str, Any]:
    """
    Report which gallery tables exist.

    Returns:
        Dictionary with status information; carries an "error" key instead
        of raising when the database cannot be reached
    """
    db = SyncDatabase(database_url)
    try:
        existing = set(inspect(db.engine).get_table_names())
        tables = {name: name in existing for name in GALLERY_TABLES}
        return {
            "dialect": db.dialect_name,
            "is_fresh": not any(tables.values()),
            "up_to_date": all(tables.values()),
            "tables": tables,
        }
    except SQLAlchemyError as e:
        return {"error": str(e)}
    finally:
        db.close()
