from __future__ import annotations

import aiosqlite

from .storage.guilds import MemoryGuildsMixin
from .storage.ignores import MemoryIgnoresMixin
from .storage.schema import MemorySchemaMixin
from .storage.users import MemoryUsersMixin


class MemoryStore(
    MemorySchemaMixin,
    MemoryUsersMixin,
    MemoryIgnoresMixin,
    MemoryGuildsMixin,
):
    """SQLite document store for user memory, ignore entries and guild configuration."""

    backend_name = "sqlite"

    async def ping(self) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("SELECT 1")
