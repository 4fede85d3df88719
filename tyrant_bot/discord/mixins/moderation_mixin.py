from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

import discord

from ..common import CommandReply
from ..permissions import check_moderation

logger = logging.getLogger("tyrant_bot")

MODERATION_ACTIONS = ("kick", "ban", "timeout")
DEFAULT_TIMEOUT_MINUTES = 10
# Discord caps communication timeouts at 28 days.
MAX_TIMEOUT_MINUTES = 40320


def clamp_timeout_minutes(minutes: int | None) -> int:
    if minutes is None:
        return DEFAULT_TIMEOUT_MINUTES
    return max(1, min(MAX_TIMEOUT_MINUTES, int(minutes)))


class ModerationMixin:
    async def _moderate(
        self,
        action: str,
        guild: Any,
        invoker: Any,
        target: Any,
        *,
        reason: str | None = None,
        minutes: int | None = None,
    ) -> CommandReply:
        if action not in MODERATION_ACTIONS:
            raise ValueError(f"Unknown moderation action: {action}")
        if target is None:
            return CommandReply("User not found.", ephemeral=True)

        decision = check_moderation(
            await self._invoker_rank(guild, invoker),
            self._bot_position(guild),
            self._member_position(target),
            target_is_owner=self._is_owner(guild, target),
            target_is_self=target.id == invoker.id,
            target_is_bot=self.user is not None and target.id == self.user.id,
        )
        if not decision.allowed:
            logger.info("[mod.denied] action=%s invoker=%s target=%s reason=%s", action, invoker.id, target.id, decision.reason)
            return CommandReply(decision.reason, ephemeral=True)

        audit_reason = (reason or "").strip() or "No reason"
        try:
            if action == "kick":
                await target.kick(reason=audit_reason)
                content = f"<@{target.id}> kicked."
            elif action == "ban":
                await target.ban(reason=audit_reason)
                content = f"<@{target.id}> banned."
            else:
                duration = clamp_timeout_minutes(minutes)
                await target.timeout(timedelta(minutes=duration), reason="Timeout requested")
                content = f"<@{target.id}> timed out for {duration} minute(s)."
        except discord.Forbidden:
            logger.warning("Missing Discord permission for %s on member %s", action, target.id)
            return CommandReply(f"I lack the Discord permissions to {action} that member.", ephemeral=True)
        except discord.HTTPException as exc:
            logger.warning("Discord rejected %s for member %s: %s", action, target.id, exc)
            return CommandReply(f"Discord rejected the {action} request.", ephemeral=True)

        logger.info("[mod] action=%s invoker=%s target=%s", action, invoker.id, target.id)
        return CommandReply(content)
