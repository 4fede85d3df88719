from __future__ import annotations

import logging
import re
from typing import Protocol

from ..memory.models import UserMemory
from ..prompts.persona import (
    build_persona_system_prompt,
    build_responder_user_prompt,
    fallback_empty_line,
    fallback_error_line,
)

logger = logging.getLogger("tyrant_bot")

_QUOTES = "\"'`“”‘’«»"
_LEADING_QUOTES_RE = re.compile(rf"^\s*[{re.escape(_QUOTES)}]+")
_TRAILING_QUOTES_RE = re.compile(rf"[{re.escape(_QUOTES)}]+\s*$")

RESPONDER_MODES = ("direct", "defend", "mock")


class _ChatBackend(Protocol):
    async def chat(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> str: ...


def strip_wrapping_quotes(text: str) -> str:
    cleaned = _LEADING_QUOTES_RE.sub("", text or "")
    cleaned = _TRAILING_QUOTES_RE.sub("", cleaned)
    return cleaned.strip()


class PersonaResponder:
    """In-character replies. Always returns text; transport failures become a canned line."""

    def __init__(
        self,
        llm: _ChatBackend,
        persona_name: str,
        temperature: float = 0.8,
        max_tokens: int = 220,
    ) -> None:
        self.llm = llm
        self.persona_name = persona_name
        self.temperature = float(temperature)
        self.max_tokens = int(max_tokens)

    def build_messages(
        self,
        text: str,
        context: UserMemory | None,
        mode: str = "direct",
        target: str = "",
    ) -> list[dict[str, str]]:
        long_memory = context.long_memory if context is not None else []
        short_memory = context.short_memory if context is not None else []
        return [
            {"role": "system", "content": build_persona_system_prompt(self.persona_name)},
            {
                "role": "user",
                "content": build_responder_user_prompt(
                    text,
                    long_memory,
                    short_memory,
                    mode=mode if mode in RESPONDER_MODES else "direct",
                    target=target,
                ),
            },
        ]

    async def reply(
        self,
        text: str,
        user_id: str,
        context: UserMemory | None = None,
        *,
        mode: str = "direct",
        target: str = "",
    ) -> str:
        messages = self.build_messages(text, context, mode=mode, target=target)
        try:
            raw = await self.llm.chat(messages, temperature=self.temperature, max_tokens=self.max_tokens)
        except Exception as exc:
            logger.error("Responder call failed for user=%s: %s", user_id, exc)
            return fallback_error_line()
        cleaned = strip_wrapping_quotes(raw)
        return cleaned or fallback_empty_line()
