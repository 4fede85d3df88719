from __future__ import annotations

import contextlib
import logging
from typing import Any

import discord

from ...memory.extractor import extract_fact
from ...prompts.persona import ignore_lines, message_error_line
from ..common import chunk_text, collapse_spaces, truncate
from ..permissions import Rank, channel_allowed, is_protected_target

logger = logging.getLogger("tyrant_bot")


class MessageMixin:
    async def _send_chunks(
        self,
        channel: discord.abc.Messageable,
        text: str,
        reference: discord.Message | None = None,
    ) -> None:
        for index, chunk in enumerate(chunk_text(text, 1900)):
            kwargs: dict[str, Any] = {}
            if index == 0 and reference is not None:
                kwargs["reference"] = reference
            await channel.send(chunk, **kwargs)

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot:
            return
        if await self._try_handle_text_command(message):
            return
        if message.guild is None:
            return

        try:
            await self._handle_guild_message(message)
        except Exception as exc:
            logger.exception("Message handling failed in channel=%s: %s", message.channel.id, exc)
            # Ambient chat stays silent; only a message aimed at the bot gets an apology.
            if self._looks_addressed(message):
                with contextlib.suppress(discord.HTTPException):
                    await message.reply(message_error_line())

    async def _handle_guild_message(self, message: discord.Message) -> None:
        guild = message.guild
        guild_key = str(guild.id)
        channel_key = str(message.channel.id)
        user_key = str(message.author.id)

        config = await self.memory.ensure_guild_config(guild_key)
        parent_id = getattr(message.channel, "parent_id", None)
        if not channel_allowed(config.whitelist, channel_key, str(parent_id) if parent_id else None):
            return

        now = self.clock()
        if self.cooldowns.hit(user_key, now):
            return

        author = await self._resolve_member(guild, message.author.id) or message.author
        rank = self._member_rank(guild, author, config)
        if rank == Rank.CITIZEN and await self.memory.is_ignored(user_key, now=now):
            return

        text = collapse_spaces(message.content or "")
        if not text:
            return
        user_label = self._author_label(author)

        async with self.user_locks[user_key]:
            memory = await self.memory.append_short_memory(
                user_key,
                f"{user_label}: {text}",
                self.settings.short_memory_limit,
            )
            fact = extract_fact(text)
            if fact:
                try:
                    if await self.memory.add_long_fact(user_key, fact):
                        logger.info("[memory.fact] user=%s fact=\"%s\"", user_key, fact)
                        memory = await self.memory.ensure_user_memory(user_key)
                except Exception as exc:
                    logger.warning("Fact insertion failed for user=%s: %s", user_key, exc)
            timestamps = self.activity.record(user_key, now)

        logger.info(
            "[msg.user] channel=%s user=%s rank=%s text=\"%s\"",
            channel_key,
            user_label,
            rank.name.lower(),
            truncate(text, 120),
        )

        prompt_text = self._strip_bot_mention(text) or text
        bot_id = self.user.id if self.user else None
        mention_ids = [str(user.id) for user in message.mentions if user.id != bot_id]
        classification = await self.classifier.classify(text, mention_ids)

        if rank == Rank.CITIZEN:
            signals = self.annoyance.evaluate(memory.short_memory, timestamps, now)
            if self.annoyance.should_ignore(signals, self.rng):
                until = await self.memory.set_ignore(user_key, self.settings.ignore_minutes, now=now)
                logger.info(
                    "[ignore] user=%s reasons=%s until=%.0f",
                    user_key,
                    ",".join(signals.reasons),
                    until,
                )
                await message.reply(self.rng.choice(ignore_lines()))
                return

        if classification.targets_bot:
            reply = await self.responder.reply(prompt_text, user_key, memory, mode="direct")
            await self._send_reply(message, reply, reference=message)
            return

        for target_id in classification.user_target_ids:
            target = await self._resolve_member(guild, target_id)
            if target is None:
                continue
            protected = is_protected_target(
                self._member_rank(guild, target, config),
                self._member_position(target),
                self._bot_position(guild),
            )
            reply = await self.responder.reply(
                prompt_text,
                user_key,
                memory,
                mode="defend" if protected else "mock",
                target=f"<@{target_id}>",
            )
            await self._send_reply(message, reply)
            return

        if await self._is_addressed(message):
            reply = await self.responder.reply(prompt_text, user_key, memory, mode="direct")
            await self._send_reply(message, reply, reference=message)

    async def _send_reply(
        self,
        message: discord.Message,
        reply: str,
        reference: discord.Message | None = None,
    ) -> None:
        await self._send_chunks(message.channel, reply, reference=reference)
        logger.info("[msg.bot] channel=%s text=\"%s\"", message.channel.id, truncate(reply, 120))
