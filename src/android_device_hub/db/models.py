"""Database models and connection management."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path

import aiosqlite
import structlog

from android_device_hub.config import DEFAULT_STATE_DIR

logger = structlog.get_logger()

DEFAULT_DB_PATH = DEFAULT_STATE_DIR / "state.db"

SELECTED_AVD_KEY = "selected-avd-name"

SCHEMA = """
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class Database:
    """Async SQLite key/value store for state that survives restarts."""

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Connect to database and initialize schema."""
        self._connection = await aiosqlite.connect(self.db_path)
        await self._connection.executescript(SCHEMA)
        await self._connection.commit()
        logger.info("database_connected", path=str(self.db_path))

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None
            logger.info("database_disconnected")

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[aiosqlite.Connection, None]:
        """Context manager for database transactions."""
        if not self._connection:
            raise RuntimeError("Database not connected")
        try:
            yield self._connection
            await self._connection.commit()
        except Exception:
            await self._connection.rollback()
            raise

    async def get_setting(self, key: str) -> str | None:
        """Get a stored value, verbatim."""
        if not self._connection:
            return None
        cursor = await self._connection.execute(
            "SELECT value FROM settings WHERE key = ?",
            (key,),
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def set_setting(self, key: str, value: str) -> None:
        """Save or update a value."""
        now = datetime.now().isoformat()
        async with self.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO settings (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, now),
            )

    async def delete_setting(self, key: str) -> None:
        async with self.transaction() as conn:
            await conn.execute("DELETE FROM settings WHERE key = ?", (key,))
