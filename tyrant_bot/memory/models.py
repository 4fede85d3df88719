from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


ROLE_KINDS = ("commander", "supreme")


@dataclass(slots=True)
class UserMemory:
    user_id: str
    short_memory: List[str] = field(default_factory=list)
    long_memory: List[str] = field(default_factory=list)


@dataclass(slots=True)
class IgnoreEntry:
    user_id: str
    ignore_until: float

    def active(self, now: float) -> bool:
        return now < self.ignore_until


@dataclass(slots=True)
class GuildConfig:
    guild_id: str
    whitelist: List[str] = field(default_factory=list)
    commander_role_id: Optional[str] = None
    supreme_role_id: Optional[str] = None


def normalize_fact(value: str) -> str:
    return " ".join(str(value or "").strip().split())


def fact_key(value: str) -> str:
    return normalize_fact(value).casefold()


def push_short_memory(items: List[str], line: str, limit: int) -> List[str]:
    """Append ``line`` and drop the oldest entries so at most ``limit`` remain."""
    bounded = list(items)
    bounded.append(line)
    overflow = len(bounded) - max(1, int(limit))
    if overflow > 0:
        del bounded[:overflow]
    return bounded


def merge_long_fact(items: List[str], fact: str) -> tuple[List[str], bool]:
    cleaned = normalize_fact(fact)
    if not cleaned:
        return list(items), False
    key = cleaned.casefold()
    if any(fact_key(existing) == key for existing in items):
        return list(items), False
    return [*items, cleaned], True


def check_role_kind(kind: str) -> str:
    normalized = str(kind or "").strip().lower()
    if normalized not in ROLE_KINDS:
        raise ValueError(f"Unknown role kind: {kind!r} (expected one of {', '.join(ROLE_KINDS)})")
    return normalized
