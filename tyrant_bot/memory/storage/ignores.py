from __future__ import annotations

import time

from ..models import IgnoreEntry
from .utils import _sqlite_memory_connection


class MemoryIgnoresMixin:
    async def is_ignored(self, user_id: str, now: float | None = None) -> bool:
        current = time.time() if now is None else float(now)
        async with _sqlite_memory_connection(self.db_path) as db:
            async with db.execute(
                "SELECT ignore_until FROM ignore_entries WHERE user_id = ?",
                (str(user_id),),
            ) as cursor:
                row = await cursor.fetchone()
            if row is None:
                return False
            if IgnoreEntry(str(user_id), float(row[0])).active(current):
                return True
            # Expired entries are cleaned up lazily on read.
            await db.execute("DELETE FROM ignore_entries WHERE user_id = ?", (str(user_id),))
            await db.commit()
        return False

    async def set_ignore(self, user_id: str, minutes: int, now: float | None = None) -> float:
        current = time.time() if now is None else float(now)
        until = current + max(0, int(minutes)) * 60.0
        async with _sqlite_memory_connection(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO ignore_entries (user_id, ignore_until)
                VALUES (?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    ignore_until = excluded.ignore_until
                """,
                (str(user_id), until),
            )
            await db.commit()
        return until

    async def get_ignore_until(self, user_id: str) -> float | None:
        async with _sqlite_memory_connection(self.db_path) as db:
            async with db.execute(
                "SELECT ignore_until FROM ignore_entries WHERE user_id = ?",
                (str(user_id),),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        return float(row[0])
