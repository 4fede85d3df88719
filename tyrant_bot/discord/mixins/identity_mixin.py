from __future__ import annotations

import contextlib
import re
from typing import Any

import discord

from ...memory.models import GuildConfig
from ..common import collapse_spaces, word_in_text
from ..permissions import Rank, resolve_rank, top_role_position


class IdentityMixin:
    def _strip_bot_mention(self, text: str) -> str:
        if not self.user:
            return collapse_spaces(text)
        pattern = re.compile(rf"<@!?{self.user.id}>")
        return collapse_spaces(pattern.sub("", text))

    @staticmethod
    def _author_label(member: Any) -> str:
        for attr in ("display_name", "global_name", "name"):
            value = str(getattr(member, attr, "") or "").strip()
            if value:
                return value
        return f"user:{getattr(member, 'id', 0)}"

    @staticmethod
    def _member_role_ids(member: Any) -> list[str]:
        return [str(role.id) for role in getattr(member, "roles", None) or []]

    @staticmethod
    def _member_position(member: Any) -> int:
        if member is None:
            return 0
        return top_role_position([int(role.position) for role in getattr(member, "roles", None) or []])

    def _bot_position(self, guild: Any) -> int:
        return self._member_position(getattr(guild, "me", None))

    @staticmethod
    def _is_owner(guild: Any, member: Any) -> bool:
        return member is not None and getattr(guild, "owner_id", None) == getattr(member, "id", None)

    def _member_rank(self, guild: Any, member: Any, config: GuildConfig) -> Rank:
        if member is None:
            return Rank.CITIZEN
        return resolve_rank(
            self._member_role_ids(member),
            config.commander_role_id,
            config.supreme_role_id,
            is_owner=self._is_owner(guild, member),
        )

    async def _invoker_rank(self, guild: Any, member: Any) -> Rank:
        config = await self.memory.ensure_guild_config(str(guild.id))
        return self._member_rank(guild, member, config)

    async def _resolve_member(self, guild: Any, user_id: int | str) -> Any:
        try:
            member_id = int(user_id)
        except (TypeError, ValueError):
            return None
        member = guild.get_member(member_id)
        if member is not None:
            return member
        with contextlib.suppress(discord.HTTPException):
            return await guild.fetch_member(member_id)
        return None

    def _mentions_bot(self, message: Any) -> bool:
        if self.user is None:
            return False
        return any(getattr(user, "id", None) == self.user.id for user in getattr(message, "mentions", None) or [])

    def _names_persona(self, text: str) -> bool:
        return any(word_in_text(name, text) for name in self.settings.trigger_names)

    def _looks_addressed(self, message: Any) -> bool:
        """Cheap trigger check that never touches the network."""
        if self._mentions_bot(message) or self._names_persona(message.content or ""):
            return True
        reference = getattr(message, "reference", None)
        resolved = getattr(reference, "resolved", None) if reference is not None else None
        author = getattr(resolved, "author", None)
        return self.user is not None and author is not None and author.id == self.user.id

    async def _is_addressed(self, message: Any) -> bool:
        if self._looks_addressed(message):
            return True
        reference = getattr(message, "reference", None)
        message_id = getattr(reference, "message_id", None) if reference is not None else None
        if self.user is None or message_id is None or getattr(reference, "resolved", None) is not None:
            return False
        with contextlib.suppress(discord.HTTPException):
            referenced = await message.channel.fetch_message(message_id)
            return referenced.author.id == self.user.id
        return False
