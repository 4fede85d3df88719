from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List

import aiosqlite

from .utils import _sqlite_memory_connection

logger = logging.getLogger("tyrant_bot")

_TRUTHY = {"1", "true", "yes", "y", "on"}

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS user_memory (
    user_id TEXT PRIMARY KEY,
    short_memory TEXT NOT NULL DEFAULT '[]',
    long_memory TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS ignore_entries (
    user_id TEXT PRIMARY KEY,
    ignore_until REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS guild_configs (
    guild_id TEXT PRIMARY KEY,
    whitelist TEXT NOT NULL DEFAULT '[]',
    commander_role_id TEXT,
    supreme_role_id TEXT,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""


class MemorySchemaMixin:
    SCHEMA_VERSION = 1
    TABLES = ("user_memory", "ignore_entries", "guild_configs")

    def __init__(self, db_path: Path, default_whitelist: List[str] | None = None) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.default_whitelist = [str(item) for item in (default_whitelist or [])]

    @staticmethod
    def _reset_allowed() -> bool:
        return os.getenv("MEMORY_SQLITE_RESET_ON_SCHEMA_MISMATCH", "").strip().lower() in _TRUTHY

    @staticmethod
    async def _user_version(db: aiosqlite.Connection) -> int:
        async with db.execute("PRAGMA user_version") as cursor:
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def init(self) -> None:
        async with _sqlite_memory_connection(self.db_path) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            found = await self._user_version(db)

            if found > self.SCHEMA_VERSION:
                # A newer build wrote this file; only drop its tables when explicitly allowed.
                if not self._reset_allowed():
                    raise RuntimeError(
                        f"SQLite schema version mismatch: {self.db_path} has user_version={found}, "
                        f"this build supports {self.SCHEMA_VERSION}. "
                        "Set MEMORY_SQLITE_RESET_ON_SCHEMA_MISMATCH=1 to wipe and recreate it."
                    )
                logger.warning("Resetting memory database %s (user_version=%s)", self.db_path, found)
                for table in self.TABLES:
                    await db.execute(f"DROP TABLE IF EXISTS {table}")

            await db.executescript(_SCHEMA_SQL)
            await db.execute(f"PRAGMA user_version = {self.SCHEMA_VERSION}")
            await db.commit()

    async def close(self) -> None:
        # Connections are opened per operation.
        return
