from __future__ import annotations

import aiosqlite

from ..models import UserMemory, merge_long_fact, push_short_memory
from .utils import _sqlite_memory_connection, dump_list, load_list


class MemoryUsersMixin:
    async def _fetch_user_memory(self, db: aiosqlite.Connection, user_id: str) -> UserMemory:
        await db.execute(
            "INSERT OR IGNORE INTO user_memory (user_id) VALUES (?)",
            (user_id,),
        )
        async with db.execute(
            "SELECT short_memory, long_memory FROM user_memory WHERE user_id = ?",
            (user_id,),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            raise RuntimeError(f"user_memory row for {user_id} vanished after insert")
        return UserMemory(
            user_id=user_id,
            short_memory=load_list(row[0]),
            long_memory=load_list(row[1]),
        )

    async def _write_user_memory(self, db: aiosqlite.Connection, memory: UserMemory) -> None:
        await db.execute(
            """
            UPDATE user_memory
            SET short_memory = ?, long_memory = ?, updated_at = CURRENT_TIMESTAMP
            WHERE user_id = ?
            """,
            (dump_list(memory.short_memory), dump_list(memory.long_memory), memory.user_id),
        )

    async def ensure_user_memory(self, user_id: str) -> UserMemory:
        async with _sqlite_memory_connection(self.db_path) as db:
            memory = await self._fetch_user_memory(db, str(user_id))
            await db.commit()
        return memory

    async def append_short_memory(self, user_id: str, line: str, limit: int) -> UserMemory:
        async with _sqlite_memory_connection(self.db_path) as db:
            memory = await self._fetch_user_memory(db, str(user_id))
            memory.short_memory = push_short_memory(memory.short_memory, line, limit)
            await self._write_user_memory(db, memory)
            await db.commit()
        return memory

    async def add_long_fact(self, user_id: str, fact: str) -> bool:
        async with _sqlite_memory_connection(self.db_path) as db:
            memory = await self._fetch_user_memory(db, str(user_id))
            memory.long_memory, inserted = merge_long_fact(memory.long_memory, fact)
            if inserted:
                await self._write_user_memory(db, memory)
            await db.commit()
        return inserted

    async def remove_long_fact(self, user_id: str, fact: str) -> bool:
        async with _sqlite_memory_connection(self.db_path) as db:
            memory = await self._fetch_user_memory(db, str(user_id))
            if fact not in memory.long_memory:
                await db.commit()
                return False
            memory.long_memory = [item for item in memory.long_memory if item != fact]
            await self._write_user_memory(db, memory)
            await db.commit()
        return True

    async def clear_long_facts(self, user_id: str) -> int:
        async with _sqlite_memory_connection(self.db_path) as db:
            memory = await self._fetch_user_memory(db, str(user_id))
            removed = len(memory.long_memory)
            memory.long_memory = []
            await self._write_user_memory(db, memory)
            await db.commit()
        return removed
