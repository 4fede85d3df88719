from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Any, Callable

import discord
from discord import app_commands

from ..config import Settings
from ..health import HealthServer
from ..memory.annoyance import ActivityTracker, AnnoyanceDetector
from ..services.classifier import InsultClassifier
from ..services.groq_client import GroqClient
from ..services.responder import PersonaResponder
from .common import CooldownTracker, UserLocks
from .mixins.commands_mixin import CommandsMixin
from .mixins.identity_mixin import IdentityMixin
from .mixins.message_mixin import MessageMixin
from .mixins.moderation_mixin import ModerationMixin

logger = logging.getLogger("tyrant_bot")


class TyrantDiscordBot(
    CommandsMixin,
    ModerationMixin,
    MessageMixin,
    IdentityMixin,
    discord.Client,
):
    def __init__(
        self,
        settings: Settings,
        memory: Any,
        llm: GroqClient,
        classifier: InsultClassifier,
        responder: PersonaResponder,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        intents = discord.Intents.default()
        intents.message_content = settings.discord_message_content_intent
        intents.members = settings.discord_members_intent

        super().__init__(intents=intents, application_id=settings.application_id or None)

        self.settings = settings
        self.memory = memory
        self.llm = llm
        self.classifier = classifier
        self.responder = responder
        self.annoyance = AnnoyanceDetector.from_settings(settings)
        self.rng = rng or random.Random()
        self.clock = clock or time.time

        self.tree = app_commands.CommandTree(self)
        self.cooldowns = CooldownTracker(
            window_ms=settings.user_cooldown_ms,
            max_entries=settings.cooldown_max_entries,
        )
        self.activity = ActivityTracker(
            max_users=settings.cooldown_max_entries,
            retention_seconds=max(60.0, float(settings.burst_window_seconds) * 3),
        )
        self.user_locks = UserLocks()

        self.health_server: HealthServer | None = None
        if settings.healthcheck_enabled:
            self.health_server = HealthServer(self, settings.persona_name, settings.healthcheck_port)

    async def setup_hook(self) -> None:
        await self.memory.init()
        await self.llm.start()

        self._register_app_commands()
        if self.settings.sync_commands:
            try:
                synced = await self.tree.sync()
                logger.info("Synced %s slash command(s)", len(synced))
            except discord.HTTPException as exc:
                logger.warning("Failed to sync slash commands: %s", exc)

        if self.health_server is not None:
            await self.health_server.start()

    async def close(self) -> None:
        if self.health_server is not None:
            await self._run_shutdown_step("health_server.stop", self.health_server.stop(), timeout=5.0)
        await self._run_shutdown_step("llm.close", self.llm.close(), timeout=6.0)
        await self._run_shutdown_step("memory.close", self.memory.close(), timeout=6.0)
        await self._run_shutdown_step("discord.Client.close", super().close(), timeout=6.0)

    async def _run_shutdown_step(self, label: str, coro: object, *, timeout: float) -> None:
        try:
            await asyncio.wait_for(coro, timeout=timeout)  # type: ignore[arg-type]
        except asyncio.TimeoutError:
            logger.warning("Shutdown step timed out: %s", label)
        except Exception as exc:
            logger.warning("Shutdown step failed: %s (%s)", label, exc)

    async def on_ready(self) -> None:
        if self.user:
            logger.info("Connected as %s (%s)", self.user, self.user.id)
        await self.change_presence(activity=discord.Game(name=self.settings.presence_text))
