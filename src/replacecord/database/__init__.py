"""SQLite persistence: connection management and schema."""

from pathlib import Path

from replacecord.database.db_connection import db_connection
from replacecord.database.db_schema import SchemaManager


async def init_database(path: Path) -> None:
    """Open the shared connection at ``path`` and create the schema."""
    await db_connection.open(path)
    await SchemaManager.initialize_schema(db_connection.connection)


__all__ = ["db_connection", "init_database", "SchemaManager"]
