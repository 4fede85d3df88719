from __future__ import annotations

import aiosqlite

from ..models import GuildConfig, check_role_kind
from .utils import _sqlite_memory_connection, dump_list, load_list


class MemoryGuildsMixin:
    async def _fetch_guild_config(self, db: aiosqlite.Connection, guild_id: str) -> GuildConfig:
        await db.execute(
            "INSERT OR IGNORE INTO guild_configs (guild_id, whitelist) VALUES (?, ?)",
            (guild_id, dump_list(self.default_whitelist)),
        )
        db.row_factory = aiosqlite.Row
        async with db.execute(
            """
            SELECT guild_id, whitelist, commander_role_id, supreme_role_id
            FROM guild_configs
            WHERE guild_id = ?
            """,
            (guild_id,),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            raise RuntimeError(f"guild_configs row for {guild_id} vanished after insert")
        return GuildConfig(
            guild_id=str(row["guild_id"]),
            whitelist=load_list(row["whitelist"]),
            commander_role_id=str(row["commander_role_id"]) if row["commander_role_id"] else None,
            supreme_role_id=str(row["supreme_role_id"]) if row["supreme_role_id"] else None,
        )

    async def ensure_guild_config(self, guild_id: str) -> GuildConfig:
        async with _sqlite_memory_connection(self.db_path) as db:
            config = await self._fetch_guild_config(db, str(guild_id))
            await db.commit()
        return config

    async def set_role(self, guild_id: str, kind: str, role_id: str | None) -> GuildConfig:
        column = f"{check_role_kind(kind)}_role_id"
        async with _sqlite_memory_connection(self.db_path) as db:
            await self._fetch_guild_config(db, str(guild_id))
            await db.execute(
                f"UPDATE guild_configs SET {column} = ?, updated_at = CURRENT_TIMESTAMP WHERE guild_id = ?",
                (str(role_id) if role_id else None, str(guild_id)),
            )
            config = await self._fetch_guild_config(db, str(guild_id))
            await db.commit()
        return config

    async def toggle_whitelist(self, guild_id: str, channel_id: str, add: bool) -> bool:
        channel_key = str(channel_id)
        async with _sqlite_memory_connection(self.db_path) as db:
            config = await self._fetch_guild_config(db, str(guild_id))
            present = channel_key in config.whitelist
            if present == add:
                await db.commit()
                return False
            if add:
                whitelist = [*config.whitelist, channel_key]
            else:
                whitelist = [item for item in config.whitelist if item != channel_key]
            await db.execute(
                "UPDATE guild_configs SET whitelist = ?, updated_at = CURRENT_TIMESTAMP WHERE guild_id = ?",
                (dump_list(whitelist), str(guild_id)),
            )
            await db.commit()
        return True
