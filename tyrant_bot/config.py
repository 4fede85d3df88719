from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Set

from dotenv import load_dotenv


load_dotenv()


def _env_lookup(name: str, aliases: tuple[str, ...] = ()) -> str | None:
    for key in (name, *aliases):
        # Be tolerant to UTF-8 BOM accidentally saved in .env key names.
        for candidate in (key, f"\ufeff{key}"):
            raw = os.getenv(candidate)
            if raw is not None:
                return raw
    return None


def _env_bool(name: str, default: bool, aliases: tuple[str, ...] = ()) -> bool:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int, aliases: tuple[str, ...] = ()) -> int:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float, aliases: tuple[str, ...] = ()) -> float:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_id_list(name: str, aliases: tuple[str, ...] = ()) -> List[str]:
    raw = (_env_lookup(name, aliases) or "").strip()
    if not raw:
        return []
    result: List[str] = []
    for chunk in raw.split(","):
        value = chunk.strip()
        if not value or not value.isdigit() or value in result:
            continue
        result.append(value)
    return result


def _env_name_set(name: str, default: str, aliases: tuple[str, ...] = ()) -> Set[str]:
    raw = _env_lookup(name, aliases)
    if raw is None or not raw.strip():
        raw = default
    return {chunk.strip().casefold() for chunk in raw.split(",") if chunk.strip()}


def _clean_token(value: str) -> str:
    cleaned = value.strip()
    if cleaned.lower().startswith("bot "):
        cleaned = cleaned[4:].strip()
    if (cleaned.startswith('"') and cleaned.endswith('"')) or (
        cleaned.startswith("'") and cleaned.endswith("'")
    ):
        cleaned = cleaned[1:-1].strip()
    return cleaned


def _env_str(name: str, default: str, aliases: tuple[str, ...] = ()) -> str:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    value = raw.strip()
    return value if value else default


@dataclass(slots=True)
class Settings:
    discord_token: str
    application_id: int
    command_prefix: str
    discord_message_content_intent: bool
    discord_members_intent: bool
    sync_commands: bool
    presence_text: str

    persona_name: str
    trigger_names: Set[str]

    groq_api_key: str
    groq_base_url: str
    groq_model: str
    groq_timeout_seconds: int
    groq_max_attempts: int
    classifier_temperature: float
    classifier_max_tokens: int
    responder_temperature: float
    responder_max_tokens: int

    memory_backend: str
    sqlite_path: Path
    postgres_dsn: str
    default_whitelist: List[str]
    short_memory_limit: int

    user_cooldown_ms: int
    cooldown_max_entries: int
    ignore_minutes: int
    ignore_probability: float
    annoyance_min_history: int
    repeat_min_history: int
    repeat_last_n: int
    burst_window_seconds: int
    burst_threshold: int
    poke_last_n: int
    poke_min_hits: int
    nitpick_window: int
    nitpick_threshold: int

    healthcheck_enabled: bool
    healthcheck_port: int
    log_level: str

    @classmethod
    def from_env(cls) -> "Settings":
        persona_name = _env_str("PERSONA_NAME", "Adolf")
        return cls(
            discord_token=_clean_token(_env_lookup("DISCORD_TOKEN", aliases=("TOKEN",)) or ""),
            application_id=_env_int("DISCORD_APPLICATION_ID", 0, aliases=("CLIENT_ID",)),
            command_prefix=_env_str("DISCORD_COMMAND_PREFIX", "!"),
            discord_message_content_intent=_env_bool("DISCORD_MESSAGE_CONTENT_INTENT", True),
            discord_members_intent=_env_bool("DISCORD_MEMBERS_INTENT", True),
            sync_commands=_env_bool("DISCORD_SYNC_COMMANDS", True),
            presence_text=_env_str("DISCORD_PRESENCE_TEXT", "Polishing my medals"),
            persona_name=persona_name,
            trigger_names=_env_name_set("PERSONA_TRIGGER_NAMES", persona_name),
            groq_api_key=_env_str("GROQ_API_KEY", ""),
            groq_base_url=_env_str("GROQ_BASE_URL", "https://api.groq.com/openai/v1"),
            groq_model=_env_str("GROQ_MODEL", "llama-3.3-70b-versatile"),
            groq_timeout_seconds=_env_int("GROQ_TIMEOUT_SECONDS", 30),
            groq_max_attempts=_env_int("GROQ_MAX_ATTEMPTS", 1),
            classifier_temperature=_env_float("CLASSIFIER_TEMPERATURE", 0.0),
            classifier_max_tokens=_env_int("CLASSIFIER_MAX_TOKENS", 200),
            responder_temperature=_env_float("RESPONDER_TEMPERATURE", 0.8),
            responder_max_tokens=_env_int("RESPONDER_MAX_TOKENS", 220),
            memory_backend=_env_str("MEMORY_BACKEND", "sqlite").lower(),
            sqlite_path=Path(_env_str("SQLITE_PATH", "./data/tyrant_bot.db")).expanduser(),
            postgres_dsn=_env_str("MEMORY_POSTGRES_DSN", ""),
            default_whitelist=_env_id_list("WHITELIST_CHANNELS"),
            short_memory_limit=_env_int("SHORT_MEMORY_LIMIT", 32),
            user_cooldown_ms=_env_int("USER_COOLDOWN_MS", 800),
            cooldown_max_entries=_env_int("COOLDOWN_MAX_ENTRIES", 4096),
            ignore_minutes=_env_int("IGNORE_MINUTES", 15),
            ignore_probability=_env_float("IGNORE_PROBABILITY", 0.04),
            annoyance_min_history=_env_int("ANNOYANCE_MIN_HISTORY", 24),
            repeat_min_history=_env_int("ANNOYANCE_REPEAT_MIN_HISTORY", 30),
            repeat_last_n=_env_int("ANNOYANCE_REPEAT_LAST_N", 4),
            burst_window_seconds=_env_int("ANNOYANCE_BURST_WINDOW_SECONDS", 20),
            burst_threshold=_env_int("ANNOYANCE_BURST_THRESHOLD", 8),
            poke_last_n=_env_int("ANNOYANCE_POKE_LAST_N", 3),
            poke_min_hits=_env_int("ANNOYANCE_POKE_MIN_HITS", 2),
            nitpick_window=_env_int("ANNOYANCE_NITPICK_WINDOW", 24),
            nitpick_threshold=_env_int("ANNOYANCE_NITPICK_THRESHOLD", 6),
            healthcheck_enabled=_env_bool("HEALTHCHECK_ENABLED", True),
            healthcheck_port=_env_int("PORT", 3000, aliases=("HEALTHCHECK_PORT",)),
            log_level=_env_str("LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> None:
        if not self.discord_token:
            raise ValueError("DISCORD_TOKEN is required")
        if self.discord_token == "put_your_discord_bot_token_here":
            raise ValueError("DISCORD_TOKEN is still placeholder")
        if self.application_id <= 0:
            raise ValueError("DISCORD_APPLICATION_ID is required")
        if not self.command_prefix.strip():
            raise ValueError("DISCORD_COMMAND_PREFIX cannot be empty")

        if not self.groq_api_key:
            raise ValueError("GROQ_API_KEY is required")
        if self.groq_api_key == "put_your_groq_api_key_here":
            raise ValueError("GROQ_API_KEY is still placeholder")
        if not self.groq_model:
            raise ValueError("GROQ_MODEL cannot be empty")
        if self.groq_timeout_seconds < 5:
            raise ValueError("GROQ_TIMEOUT_SECONDS must be >= 5")
        if self.groq_max_attempts < 1:
            raise ValueError("GROQ_MAX_ATTEMPTS must be >= 1")
        if self.classifier_max_tokens < 32:
            raise ValueError("CLASSIFIER_MAX_TOKENS must be >= 32")
        if self.responder_max_tokens < 32:
            raise ValueError("RESPONDER_MAX_TOKENS must be >= 32")

        if self.memory_backend not in {"sqlite", "postgres"}:
            raise ValueError("MEMORY_BACKEND must be 'sqlite' or 'postgres'")
        if self.memory_backend == "postgres" and not self.postgres_dsn:
            raise ValueError("MEMORY_POSTGRES_DSN is required when MEMORY_BACKEND=postgres")
        if self.short_memory_limit < 4:
            raise ValueError("SHORT_MEMORY_LIMIT must be >= 4")

        if self.user_cooldown_ms < 0:
            raise ValueError("USER_COOLDOWN_MS must be >= 0")
        if self.cooldown_max_entries < 16:
            raise ValueError("COOLDOWN_MAX_ENTRIES must be >= 16")
        if self.ignore_minutes < 1:
            raise ValueError("IGNORE_MINUTES must be >= 1")
        if self.ignore_probability < 0.0 or self.ignore_probability > 1.0:
            raise ValueError("IGNORE_PROBABILITY must be in [0, 1]")
        if self.annoyance_min_history < 0 or self.annoyance_min_history > self.short_memory_limit:
            raise ValueError("ANNOYANCE_MIN_HISTORY must be in [0, SHORT_MEMORY_LIMIT]")
        if self.repeat_min_history < self.annoyance_min_history or self.repeat_min_history > self.short_memory_limit:
            raise ValueError("ANNOYANCE_REPEAT_MIN_HISTORY must be in [ANNOYANCE_MIN_HISTORY, SHORT_MEMORY_LIMIT]")
        if self.repeat_last_n < 2:
            raise ValueError("ANNOYANCE_REPEAT_LAST_N must be >= 2")
        if self.burst_threshold < 2:
            raise ValueError("ANNOYANCE_BURST_THRESHOLD must be >= 2")
        if self.poke_min_hits < 1 or self.poke_min_hits > self.poke_last_n:
            raise ValueError("ANNOYANCE_POKE_MIN_HITS must be in [1, ANNOYANCE_POKE_LAST_N]")
        if self.nitpick_threshold < 1:
            raise ValueError("ANNOYANCE_NITPICK_THRESHOLD must be >= 1")

        if self.healthcheck_port < 1 or self.healthcheck_port > 65535:
            raise ValueError("PORT must be in [1, 65535]")
