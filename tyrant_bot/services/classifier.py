from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

from ..prompts.persona import build_classifier_system_prompt, build_classifier_user_prompt
from .groq_client import GroqClient

logger = logging.getLogger("tyrant_bot")

_USER_TARGET_RE = re.compile(r"^user:(\d{1,24})$")


class _ChatBackend(Protocol):
    async def chat(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> str: ...


@dataclass(frozen=True, slots=True)
class Classification:
    is_insult: bool = False
    targets: tuple[str, ...] = ()
    severity: int = 0

    @property
    def targets_bot(self) -> bool:
        return self.is_insult and "bot" in self.targets

    @property
    def user_target_ids(self) -> list[str]:
        ids: list[str] = []
        for target in self.targets:
            match = _USER_TARGET_RE.match(target)
            if match:
                ids.append(match.group(1))
        return ids


SAFE_DEFAULT = Classification()


def _as_severity(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return max(0, min(5, int(value)))
    if isinstance(value, str):
        try:
            return max(0, min(5, int(float(value.strip()))))
        except ValueError:
            return 0
    return 0


def parse_classification(raw: str, mention_ids: Sequence[str] = ()) -> Classification:
    """Parse the classifier's JSON answer; anything malformed yields the safe default."""
    cleaned = GroqClient._strip_json_fences(raw or "")
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError:
        return SAFE_DEFAULT
    if not isinstance(payload, dict):
        return SAFE_DEFAULT

    is_insult = payload.get("is_insult")
    if not isinstance(is_insult, bool):
        return SAFE_DEFAULT
    if not is_insult:
        return SAFE_DEFAULT

    allowed_users = {str(item) for item in mention_ids}
    raw_targets = payload.get("targets")
    if not isinstance(raw_targets, list):
        raw_targets = []
    targets: list[str] = []
    for item in raw_targets:
        target = str(item or "").strip().lower()
        if target != "bot":
            match = _USER_TARGET_RE.match(target)
            if match is None or match.group(1) not in allowed_users:
                continue
        if target not in targets:
            targets.append(target)

    return Classification(
        is_insult=True,
        targets=tuple(targets),
        severity=_as_severity(payload.get("severity")),
    )


class InsultClassifier:
    """Single-shot insult classification that fails closed (assumes no insult)."""

    def __init__(
        self,
        llm: _ChatBackend,
        persona_name: str,
        temperature: float = 0.0,
        max_tokens: int = 200,
    ) -> None:
        self.llm = llm
        self.persona_name = persona_name
        self.temperature = float(temperature)
        self.max_tokens = int(max_tokens)

    async def classify(self, text: str, mention_ids: Sequence[str] = ()) -> Classification:
        mentions = [str(item) for item in mention_ids]
        messages = [
            {"role": "system", "content": build_classifier_system_prompt(self.persona_name)},
            {"role": "user", "content": build_classifier_user_prompt(text, mentions)},
        ]
        try:
            raw = await self.llm.chat(messages, temperature=self.temperature, max_tokens=self.max_tokens)
        except Exception as exc:
            logger.warning("Classifier call failed: %s", exc)
            return SAFE_DEFAULT
        result = parse_classification(raw, mentions)
        if result.is_insult:
            logger.info("[classify] insult targets=%s severity=%s", ",".join(result.targets) or "-", result.severity)
        return result
