from __future__ import annotations

import asyncio
import logging
import time
from typing import List

import asyncpg

from .models import GuildConfig, IgnoreEntry, UserMemory, check_role_kind, merge_long_fact, push_short_memory
from .storage.utils import dump_list, load_list


logger = logging.getLogger("tyrant_bot")


class PostgresMemoryStore:
    """Postgres-backed memory store implementing the same API as MemoryStore."""

    SCHEMA_VERSION = 1
    backend_name = "postgres"

    def __init__(self, dsn: str, default_whitelist: List[str] | None = None) -> None:
        self.dsn = dsn.strip()
        if not self.dsn:
            raise ValueError("MEMORY_POSTGRES_DSN cannot be empty")
        self.default_whitelist = [str(item) for item in (default_whitelist or [])]
        self._pool: "asyncpg.Pool | None" = None
        self._init_lock = asyncio.Lock()
        self._initialized = False

    async def _ensure_pool(self) -> "asyncpg.Pool":
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                dsn=self.dsn,
                min_size=1,
                max_size=6,
                command_timeout=30.0,
            )
        return self._pool

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
        self._initialized = False

    async def ping(self) -> None:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            await conn.execute("SELECT 1")

    async def init(self) -> None:
        async with self._init_lock:
            if self._initialized:
                return
            pool = await self._ensure_pool()
            async with pool.acquire() as conn:
                async with conn.transaction():
                    version = await self._get_schema_version(conn)
                    if version > self.SCHEMA_VERSION:
                        raise RuntimeError(
                            f"Postgres memory schema version {version} is newer than supported {self.SCHEMA_VERSION}. "
                            "Upgrade the bot before starting."
                        )
                    await self._create_schema(conn)
                    if version != self.SCHEMA_VERSION:
                        await self._set_schema_version(conn, self.SCHEMA_VERSION)
            self._initialized = True
            logger.info("Postgres memory store ready (schema v%s)", self.SCHEMA_VERSION)

    async def _get_schema_version(self, conn: "asyncpg.Connection") -> int:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS memory_meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """
        )
        row = await conn.fetchrow("SELECT value FROM memory_meta WHERE key = 'schema_version'")
        if row is None:
            return 0
        try:
            return int(str(row["value"]))
        except ValueError:
            return 0

    async def _set_schema_version(self, conn: "asyncpg.Connection", version: int) -> None:
        await conn.execute(
            """
            INSERT INTO memory_meta (key, value, updated_at)
            VALUES ('schema_version', $1, NOW())
            ON CONFLICT(key) DO UPDATE SET
                value = EXCLUDED.value,
                updated_at = NOW()
            """,
            str(int(version)),
        )

    async def _create_schema(self, conn: "asyncpg.Connection") -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS user_memory (
                user_id TEXT PRIMARY KEY,
                short_memory JSONB NOT NULL DEFAULT '[]'::jsonb,
                long_memory JSONB NOT NULL DEFAULT '[]'::jsonb,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );

            CREATE TABLE IF NOT EXISTS ignore_entries (
                user_id TEXT PRIMARY KEY,
                ignore_until DOUBLE PRECISION NOT NULL
            );

            CREATE TABLE IF NOT EXISTS guild_configs (
                guild_id TEXT PRIMARY KEY,
                whitelist JSONB NOT NULL DEFAULT '[]'::jsonb,
                commander_role_id TEXT,
                supreme_role_id TEXT,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
            """
        )

    async def _lock_user_memory(self, conn: "asyncpg.Connection", user_id: str) -> UserMemory:
        await conn.execute(
            "INSERT INTO user_memory (user_id) VALUES ($1) ON CONFLICT(user_id) DO NOTHING",
            user_id,
        )
        row = await conn.fetchrow(
            "SELECT short_memory, long_memory FROM user_memory WHERE user_id = $1 FOR UPDATE",
            user_id,
        )
        if row is None:
            raise RuntimeError(f"user_memory row for {user_id} vanished after insert")
        return UserMemory(
            user_id=user_id,
            short_memory=load_list(row["short_memory"]),
            long_memory=load_list(row["long_memory"]),
        )

    async def _write_user_memory(self, conn: "asyncpg.Connection", memory: UserMemory) -> None:
        await conn.execute(
            """
            UPDATE user_memory
            SET short_memory = $2::jsonb, long_memory = $3::jsonb, updated_at = NOW()
            WHERE user_id = $1
            """,
            memory.user_id,
            dump_list(memory.short_memory),
            dump_list(memory.long_memory),
        )

    async def ensure_user_memory(self, user_id: str) -> UserMemory:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                return await self._lock_user_memory(conn, str(user_id))

    async def append_short_memory(self, user_id: str, line: str, limit: int) -> UserMemory:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                memory = await self._lock_user_memory(conn, str(user_id))
                memory.short_memory = push_short_memory(memory.short_memory, line, limit)
                await self._write_user_memory(conn, memory)
        return memory

    async def add_long_fact(self, user_id: str, fact: str) -> bool:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                memory = await self._lock_user_memory(conn, str(user_id))
                memory.long_memory, inserted = merge_long_fact(memory.long_memory, fact)
                if inserted:
                    await self._write_user_memory(conn, memory)
        return inserted

    async def remove_long_fact(self, user_id: str, fact: str) -> bool:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                memory = await self._lock_user_memory(conn, str(user_id))
                if fact not in memory.long_memory:
                    return False
                memory.long_memory = [item for item in memory.long_memory if item != fact]
                await self._write_user_memory(conn, memory)
        return True

    async def clear_long_facts(self, user_id: str) -> int:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                memory = await self._lock_user_memory(conn, str(user_id))
                removed = len(memory.long_memory)
                memory.long_memory = []
                await self._write_user_memory(conn, memory)
        return removed

    async def is_ignored(self, user_id: str, now: float | None = None) -> bool:
        current = time.time() if now is None else float(now)
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT ignore_until FROM ignore_entries WHERE user_id = $1",
                str(user_id),
            )
            if row is None:
                return False
            if IgnoreEntry(str(user_id), float(row["ignore_until"])).active(current):
                return True
            await conn.execute(
                "DELETE FROM ignore_entries WHERE user_id = $1 AND ignore_until <= $2",
                str(user_id),
                current,
            )
        return False

    async def set_ignore(self, user_id: str, minutes: int, now: float | None = None) -> float:
        current = time.time() if now is None else float(now)
        until = current + max(0, int(minutes)) * 60.0
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO ignore_entries (user_id, ignore_until)
                VALUES ($1, $2)
                ON CONFLICT(user_id) DO UPDATE SET
                    ignore_until = EXCLUDED.ignore_until
                """,
                str(user_id),
                until,
            )
        return until

    async def get_ignore_until(self, user_id: str) -> float | None:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT ignore_until FROM ignore_entries WHERE user_id = $1",
                str(user_id),
            )
        if row is None:
            return None
        return float(row["ignore_until"])

    async def _lock_guild_config(self, conn: "asyncpg.Connection", guild_id: str) -> GuildConfig:
        await conn.execute(
            """
            INSERT INTO guild_configs (guild_id, whitelist)
            VALUES ($1, $2::jsonb)
            ON CONFLICT(guild_id) DO NOTHING
            """,
            guild_id,
            dump_list(self.default_whitelist),
        )
        row = await conn.fetchrow(
            """
            SELECT guild_id, whitelist, commander_role_id, supreme_role_id
            FROM guild_configs
            WHERE guild_id = $1
            FOR UPDATE
            """,
            guild_id,
        )
        if row is None:
            raise RuntimeError(f"guild_configs row for {guild_id} vanished after insert")
        return GuildConfig(
            guild_id=str(row["guild_id"]),
            whitelist=load_list(row["whitelist"]),
            commander_role_id=row["commander_role_id"] or None,
            supreme_role_id=row["supreme_role_id"] or None,
        )

    async def ensure_guild_config(self, guild_id: str) -> GuildConfig:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                return await self._lock_guild_config(conn, str(guild_id))

    async def set_role(self, guild_id: str, kind: str, role_id: str | None) -> GuildConfig:
        column = f"{check_role_kind(kind)}_role_id"
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                await self._lock_guild_config(conn, str(guild_id))
                await conn.execute(
                    f"UPDATE guild_configs SET {column} = $2, updated_at = NOW() WHERE guild_id = $1",
                    str(guild_id),
                    str(role_id) if role_id else None,
                )
                return await self._lock_guild_config(conn, str(guild_id))

    async def toggle_whitelist(self, guild_id: str, channel_id: str, add: bool) -> bool:
        channel_key = str(channel_id)
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                config = await self._lock_guild_config(conn, str(guild_id))
                present = channel_key in config.whitelist
                if present == add:
                    return False
                if add:
                    whitelist = [*config.whitelist, channel_key]
                else:
                    whitelist = [item for item in config.whitelist if item != channel_key]
                await conn.execute(
                    "UPDATE guild_configs SET whitelist = $2::jsonb, updated_at = NOW() WHERE guild_id = $1",
                    str(guild_id),
                    dump_list(whitelist),
                )
        return True
