from __future__ import annotations

import contextlib
import logging
import re
from typing import Any, Awaitable, Callable, Optional

import discord
from discord import app_commands

from ...memory.models import normalize_fact
from ...prompts.persona import order_lines, speech_lines
from ..common import CommandReply, chunk_text, collapse_spaces
from ..permissions import (
    can_configure_roles,
    can_edit_memory,
    can_manage_whitelist,
    can_view_memory,
)
from .moderation_mixin import MAX_TIMEOUT_MINUTES

logger = logging.getLogger("tyrant_bot")

SERVER_ONLY = CommandReply("Server-only command.", ephemeral=True)
ERROR_REPLY = CommandReply("An error occurred.", ephemeral=True)

_USER_TOKEN_RE = re.compile(r"^(?:<@!?(\d{15,24})>|(\d{15,24}))$")
_CHANNEL_TOKEN_RE = re.compile(r"^(?:<#(\d{15,24})>|(\d{15,24}))$")

TEXT_COMMANDS = (
    "kick",
    "ban",
    "timeout",
    "order",
    "speech",
    "whitelist_add",
    "whitelist_remove",
    "whitelist_list",
    "memory_add",
    "memory_forget",
    "memory_forgetall",
    "memory_show",
    "permissions_setroles",
    "permissions_show",
)


def _token_id(pattern: re.Pattern[str], token: str) -> Optional[str]:
    match = pattern.match(token)
    if match is None:
        return None
    return match.group(1) or match.group(2)


def _role_line(label: str, role_id: Optional[str]) -> str:
    if not role_id:
        return f"{label}: not set"
    return f"{label}: <@&{role_id}> (ID {role_id})"


class CommandsMixin:
    # Handlers. Each returns the reply instead of sending it so the slash and
    # prefix surfaces share one implementation.

    async def _cmd_order(self) -> CommandReply:
        return CommandReply(self.rng.choice(order_lines()))

    async def _cmd_speech(self) -> CommandReply:
        return CommandReply(self.rng.choice(speech_lines()))

    async def _cmd_whitelist_add(self, guild: Any, invoker: Any, channel_id: Optional[str]) -> CommandReply:
        decision = can_manage_whitelist(await self._invoker_rank(guild, invoker))
        if not decision.allowed:
            return CommandReply(decision.reason, ephemeral=True)
        if not channel_id:
            return CommandReply("Channel not found.", ephemeral=True)
        if not await self.memory.toggle_whitelist(str(guild.id), str(channel_id), True):
            return CommandReply("Channel already whitelisted.", ephemeral=True)
        logger.info("[whitelist] guild=%s add channel=%s by=%s", guild.id, channel_id, invoker.id)
        return CommandReply(f"Added <#{channel_id}> to whitelist.")

    async def _cmd_whitelist_remove(self, guild: Any, invoker: Any, channel_id: Optional[str]) -> CommandReply:
        decision = can_manage_whitelist(await self._invoker_rank(guild, invoker))
        if not decision.allowed:
            return CommandReply(decision.reason, ephemeral=True)
        if not channel_id:
            return CommandReply("Channel not found.", ephemeral=True)
        if not await self.memory.toggle_whitelist(str(guild.id), str(channel_id), False):
            return CommandReply("Channel not in whitelist.", ephemeral=True)
        logger.info("[whitelist] guild=%s remove channel=%s by=%s", guild.id, channel_id, invoker.id)
        return CommandReply(f"Removed <#{channel_id}> from whitelist.")

    async def _cmd_whitelist_list(self, guild: Any) -> CommandReply:
        config = await self.memory.ensure_guild_config(str(guild.id))
        if not config.whitelist:
            return CommandReply("No whitelisted channels.")
        lines = [f"- <#{channel_id}> (ID: {channel_id})" for channel_id in config.whitelist]
        return CommandReply("Whitelisted channels:\n" + "\n".join(lines))

    async def _cmd_memory_add(self, guild: Any, invoker: Any, target: Any, fact: str) -> CommandReply:
        decision = can_edit_memory(await self._invoker_rank(guild, invoker))
        if not decision.allowed:
            return CommandReply(decision.reason, ephemeral=True)
        member = target or invoker
        cleaned = normalize_fact(fact)
        if not cleaned:
            return CommandReply("Fact cannot be empty.", ephemeral=True)
        user_key = str(member.id)
        async with self.user_locks[user_key]:
            inserted = await self.memory.add_long_fact(user_key, cleaned)
        if not inserted:
            return CommandReply("Fact already present.", ephemeral=True)
        return CommandReply(f"Saved memory for <@{member.id}>.")

    async def _cmd_memory_forget(self, guild: Any, invoker: Any, target: Any, fact: str) -> CommandReply:
        decision = can_edit_memory(await self._invoker_rank(guild, invoker))
        if not decision.allowed:
            return CommandReply(decision.reason, ephemeral=True)
        member = target or invoker
        user_key = str(member.id)
        async with self.user_locks[user_key]:
            removed = await self.memory.remove_long_fact(user_key, fact)
        if not removed:
            return CommandReply("Fact not found.", ephemeral=True)
        return CommandReply(f"Removed memory for <@{member.id}>.")

    async def _cmd_memory_forgetall(self, guild: Any, invoker: Any, target: Any) -> CommandReply:
        decision = can_edit_memory(await self._invoker_rank(guild, invoker))
        if not decision.allowed:
            return CommandReply(decision.reason, ephemeral=True)
        member = target or invoker
        user_key = str(member.id)
        async with self.user_locks[user_key]:
            await self.memory.clear_long_facts(user_key)
        return CommandReply(f"Cleared memories for <@{member.id}>.")

    async def _cmd_memory_show(self, guild: Any, invoker: Any, target: Any) -> CommandReply:
        decision = can_view_memory(await self._invoker_rank(guild, invoker))
        if not decision.allowed:
            return CommandReply(decision.reason, ephemeral=True)
        member = target or invoker
        memory = await self.memory.ensure_user_memory(str(member.id))
        if memory.long_memory:
            lines = "\n".join(f"{index}. {fact}" for index, fact in enumerate(memory.long_memory, start=1))
        else:
            lines = "No long-term memories."
        return CommandReply(f"Memories for <@{member.id}>:\n{lines}")

    async def _cmd_permissions_setroles(
        self,
        guild: Any,
        invoker: Any,
        commander_role_id: Optional[str],
        supreme_role_id: Optional[str],
    ) -> CommandReply:
        decision = can_configure_roles(self._is_owner(guild, invoker))
        if not decision.allowed:
            return CommandReply(decision.reason, ephemeral=True)
        if not commander_role_id and not supreme_role_id:
            return CommandReply("Provide at least one role.", ephemeral=True)
        guild_key = str(guild.id)
        if commander_role_id:
            await self.memory.set_role(guild_key, "commander", str(commander_role_id))
        if supreme_role_id:
            await self.memory.set_role(guild_key, "supreme", str(supreme_role_id))
        logger.info("[roles] guild=%s commander=%s supreme=%s", guild_key, commander_role_id, supreme_role_id)
        return CommandReply("Roles updated.")

    async def _cmd_permissions_show(self, guild: Any) -> CommandReply:
        config = await self.memory.ensure_guild_config(str(guild.id))
        return CommandReply(
            _role_line("Commander", config.commander_role_id) + "\n" + _role_line("Supreme", config.supreme_role_id)
        )

    # Slash surface.

    async def _respond(self, interaction: discord.Interaction, reply: CommandReply) -> None:
        for chunk in chunk_text(reply.content, 1900):
            if not interaction.response.is_done():
                await interaction.response.send_message(chunk, ephemeral=reply.ephemeral)
            else:
                await interaction.followup.send(chunk, ephemeral=reply.ephemeral)

    async def _run_slash(
        self,
        interaction: discord.Interaction,
        name: str,
        handler: Callable[[], Awaitable[CommandReply]],
    ) -> None:
        if interaction.guild is None:
            await self._respond(interaction, SERVER_ONLY)
            return
        try:
            reply = await handler()
        except Exception as exc:
            logger.exception("Slash command /%s failed: %s", name, exc)
            with contextlib.suppress(discord.HTTPException):
                await self._respond(interaction, ERROR_REPLY)
            return
        await self._respond(interaction, reply)

    def _register_app_commands(self) -> None:
        tree = self.tree

        @tree.command(name="kick", description="Kick a member (Supreme only)")
        @app_commands.describe(user="Member to kick", reason="Reason for the audit log")
        async def kick(interaction: discord.Interaction, user: discord.Member, reason: Optional[str] = None) -> None:
            await self._run_slash(
                interaction,
                "kick",
                lambda: self._moderate("kick", interaction.guild, interaction.user, user, reason=reason),
            )

        @tree.command(name="ban", description="Ban a member (Supreme only)")
        @app_commands.describe(user="Member to ban", reason="Reason for the audit log")
        async def ban(interaction: discord.Interaction, user: discord.Member, reason: Optional[str] = None) -> None:
            await self._run_slash(
                interaction,
                "ban",
                lambda: self._moderate("ban", interaction.guild, interaction.user, user, reason=reason),
            )

        @tree.command(name="timeout", description="Timeout a member (Supreme only)")
        @app_commands.describe(user="Member to timeout", minutes="Duration in minutes (default 10)")
        async def timeout(
            interaction: discord.Interaction,
            user: discord.Member,
            minutes: Optional[app_commands.Range[int, 1, MAX_TIMEOUT_MINUTES]] = None,
        ) -> None:
            await self._run_slash(
                interaction,
                "timeout",
                lambda: self._moderate("timeout", interaction.guild, interaction.user, user, minutes=minutes),
            )

        @tree.command(name="order", description="Receive an imperial order")
        async def order(interaction: discord.Interaction) -> None:
            await self._run_slash(interaction, "order", self._cmd_order)

        @tree.command(name="speech", description="Hear an imperial speech")
        async def speech(interaction: discord.Interaction) -> None:
            await self._run_slash(interaction, "speech", self._cmd_speech)

        @tree.command(name="whitelist_add", description="Allow the bot to talk in a channel")
        @app_commands.describe(channel="Channel to whitelist")
        async def whitelist_add(interaction: discord.Interaction, channel: discord.TextChannel) -> None:
            await self._run_slash(
                interaction,
                "whitelist_add",
                lambda: self._cmd_whitelist_add(interaction.guild, interaction.user, str(channel.id)),
            )

        @tree.command(name="whitelist_remove", description="Remove a channel from the whitelist")
        @app_commands.describe(channel="Channel to remove")
        async def whitelist_remove(interaction: discord.Interaction, channel: discord.TextChannel) -> None:
            await self._run_slash(
                interaction,
                "whitelist_remove",
                lambda: self._cmd_whitelist_remove(interaction.guild, interaction.user, str(channel.id)),
            )

        @tree.command(name="whitelist_list", description="List whitelisted channels")
        async def whitelist_list(interaction: discord.Interaction) -> None:
            await self._run_slash(interaction, "whitelist_list", lambda: self._cmd_whitelist_list(interaction.guild))

        @tree.command(name="memory_add", description="Add a long-term fact (Supreme only)")
        @app_commands.describe(fact="Fact to remember", user="Member (defaults to you)")
        async def memory_add(interaction: discord.Interaction, fact: str, user: Optional[discord.Member] = None) -> None:
            await self._run_slash(
                interaction,
                "memory_add",
                lambda: self._cmd_memory_add(interaction.guild, interaction.user, user, fact),
            )

        @tree.command(name="memory_forget", description="Remove a long-term fact (Supreme only)")
        @app_commands.describe(fact="Exact fact to remove", user="Member (defaults to you)")
        async def memory_forget(interaction: discord.Interaction, fact: str, user: Optional[discord.Member] = None) -> None:
            await self._run_slash(
                interaction,
                "memory_forget",
                lambda: self._cmd_memory_forget(interaction.guild, interaction.user, user, fact),
            )

        @tree.command(name="memory_forgetall", description="Clear all long-term facts (Supreme only)")
        @app_commands.describe(user="Member (defaults to you)")
        async def memory_forgetall(interaction: discord.Interaction, user: Optional[discord.Member] = None) -> None:
            await self._run_slash(
                interaction,
                "memory_forgetall",
                lambda: self._cmd_memory_forgetall(interaction.guild, interaction.user, user),
            )

        @tree.command(name="memory_show", description="Show long-term facts (Commander or Supreme)")
        @app_commands.describe(user="Member (defaults to you)")
        async def memory_show(interaction: discord.Interaction, user: Optional[discord.Member] = None) -> None:
            await self._run_slash(
                interaction,
                "memory_show",
                lambda: self._cmd_memory_show(interaction.guild, interaction.user, user),
            )

        @tree.command(name="permissions_setroles", description="Set Commander/Supreme roles (server owner only)")
        @app_commands.describe(commander="Commander role", supreme="Supreme role")
        async def permissions_setroles(
            interaction: discord.Interaction,
            commander: Optional[discord.Role] = None,
            supreme: Optional[discord.Role] = None,
        ) -> None:
            await self._run_slash(
                interaction,
                "permissions_setroles",
                lambda: self._cmd_permissions_setroles(
                    interaction.guild,
                    interaction.user,
                    str(commander.id) if commander else None,
                    str(supreme.id) if supreme else None,
                ),
            )

        @tree.command(name="permissions_show", description="Show configured Commander/Supreme roles")
        async def permissions_show(interaction: discord.Interaction) -> None:
            await self._run_slash(interaction, "permissions_show", lambda: self._cmd_permissions_show(interaction.guild))

    # Prefix surface.

    async def _take_member(self, guild: Any, args: list[str]) -> tuple[Any, bool]:
        """Pop a leading user mention/id from ``args``. Returns (member, token_present)."""
        if not args:
            return None, False
        user_id = _token_id(_USER_TOKEN_RE, args[0])
        if user_id is None:
            return None, False
        args.pop(0)
        return await self._resolve_member(guild, user_id), True

    @staticmethod
    def _take_channel_id(args: list[str]) -> Optional[str]:
        if not args:
            return None
        return _token_id(_CHANNEL_TOKEN_RE, args[0])

    async def _dispatch_text_command(self, name: str, message: Any, args: list[str]) -> CommandReply:
        guild = message.guild
        invoker = await self._resolve_member(guild, message.author.id) or message.author

        if name in {"kick", "ban", "timeout"}:
            target, _ = await self._take_member(guild, args)
            minutes: Optional[int] = None
            if name == "timeout" and args and args[0].isdigit():
                minutes = int(args.pop(0))
            reason = " ".join(args) or None
            return await self._moderate(name, guild, invoker, target, reason=reason, minutes=minutes)
        if name == "order":
            return await self._cmd_order()
        if name == "speech":
            return await self._cmd_speech()
        if name == "whitelist_add":
            channel_id = self._take_channel_id(args)
            if channel_id is not None and guild.get_channel(int(channel_id)) is None:
                channel_id = None
            return await self._cmd_whitelist_add(guild, invoker, channel_id)
        if name == "whitelist_remove":
            return await self._cmd_whitelist_remove(guild, invoker, self._take_channel_id(args))
        if name == "whitelist_list":
            return await self._cmd_whitelist_list(guild)
        if name in {"memory_add", "memory_forget", "memory_forgetall", "memory_show"}:
            target, token_present = await self._take_member(guild, args)
            if token_present and target is None:
                return CommandReply("User not found.", ephemeral=True)
            if name == "memory_add":
                return await self._cmd_memory_add(guild, invoker, target, " ".join(args))
            if name == "memory_forget":
                return await self._cmd_memory_forget(guild, invoker, target, " ".join(args))
            if name == "memory_forgetall":
                return await self._cmd_memory_forgetall(guild, invoker, target)
            return await self._cmd_memory_show(guild, invoker, target)
        if name == "permissions_setroles":
            return CommandReply("Use the /permissions_setroles slash command to pick roles.", ephemeral=True)
        return await self._cmd_permissions_show(guild)

    async def _try_handle_text_command(self, message: Any) -> bool:
        raw = collapse_spaces(message.content or "")
        prefix = self.settings.command_prefix.strip()
        if not raw or not prefix or not raw.startswith(prefix):
            return False

        parts = raw[len(prefix) :].split()
        if not parts:
            return False
        name = parts[0].lower()
        if name not in TEXT_COMMANDS:
            return False

        if message.guild is None:
            reply = SERVER_ONLY
        else:
            try:
                reply = await self._dispatch_text_command(name, message, parts[1:])
            except Exception as exc:
                logger.exception("Text command %s%s failed: %s", prefix, name, exc)
                reply = ERROR_REPLY
        try:
            await self._send_chunks(message.channel, reply.content, reference=message)
        except discord.HTTPException as exc:
            logger.warning("Could not deliver reply for %s%s in channel=%s: %s", prefix, name, message.channel.id, exc)
        return True
