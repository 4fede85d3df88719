from __future__ import annotations

import asyncio
import logging

from .config import Settings
from .discord.client import TyrantDiscordBot
from .memory.factory import build_memory_store
from .services.classifier import InsultClassifier
from .services.groq_client import GroqClient
from .services.responder import PersonaResponder

logger = logging.getLogger("tyrant_bot")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logging.getLogger("discord").setLevel(logging.WARNING)
    logging.getLogger("discord.gateway").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.WARNING)


def build_bot(settings: Settings) -> TyrantDiscordBot:
    memory = build_memory_store(settings)
    llm = GroqClient(
        api_key=settings.groq_api_key,
        model=settings.groq_model,
        timeout_seconds=settings.groq_timeout_seconds,
        max_attempts=settings.groq_max_attempts,
        base_url=settings.groq_base_url,
    )
    classifier = InsultClassifier(
        llm,
        settings.persona_name,
        temperature=settings.classifier_temperature,
        max_tokens=settings.classifier_max_tokens,
    )
    responder = PersonaResponder(
        llm,
        settings.persona_name,
        temperature=settings.responder_temperature,
        max_tokens=settings.responder_max_tokens,
    )
    return TyrantDiscordBot(
        settings=settings,
        memory=memory,
        llm=llm,
        classifier=classifier,
        responder=responder,
    )


async def _run_bot(settings: Settings) -> None:
    bot = build_bot(settings)
    async with bot:
        await bot.start(settings.discord_token)


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    try:
        settings.validate()
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        raise SystemExit(1) from exc

    logger.info(
        "Starting %s bot (model=%s backend=%s)",
        settings.persona_name,
        settings.groq_model,
        settings.memory_backend,
    )
    try:
        asyncio.run(_run_bot(settings))
    except KeyboardInterrupt:
        logger.info("Shutdown requested, exiting.")
