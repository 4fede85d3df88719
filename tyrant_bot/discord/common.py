from __future__ import annotations

import asyncio
import re
import weakref
from collections import OrderedDict
from dataclasses import dataclass, field


def collapse_spaces(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    if limit <= 3:
        return text[:limit]
    return (text[: limit - 3].rstrip() + "...").strip()


def chunk_text(text: str, limit: int = 1900) -> list[str]:
    if len(text) <= limit:
        return [text]
    parts: list[str] = []
    current = ""
    for line in text.splitlines(keepends=True):
        if len(current) + len(line) <= limit:
            current += line
            continue
        if current:
            parts.append(current)
            current = ""
        if len(line) <= limit:
            current = line
        else:
            for i in range(0, len(line), limit):
                parts.append(line[i : i + limit])
    if current:
        parts.append(current)
    return parts


def word_in_text(word: str, text: str) -> bool:
    if not word:
        return False
    return re.search(rf"(?<!\w){re.escape(word)}(?!\w)", text, flags=re.IGNORECASE) is not None


@dataclass(slots=True)
class CommandReply:
    content: str
    ephemeral: bool = False


@dataclass(slots=True)
class CooldownTracker:
    """Per-user minimum interval between handled messages, bounded LRU."""

    window_ms: int = 800
    max_entries: int = 4096
    _last_seen: "OrderedDict[str, float]" = field(default_factory=OrderedDict)

    def hit(self, user_id: str, now: float) -> bool:
        """Record a message at ``now`` (seconds). Returns True when the user is still cooling down."""
        key = str(user_id)
        window = self.window_ms / 1000.0
        last = self._last_seen.get(key)
        if last is not None and now - last < window:
            return True

        self._last_seen.pop(key, None)
        self._last_seen[key] = now
        self._evict(now, window)
        return False

    def _evict(self, now: float, window: float) -> None:
        while self._last_seen:
            oldest_key, oldest_ts = next(iter(self._last_seen.items()))
            if len(self._last_seen) > self.max_entries or now - oldest_ts >= window:
                self._last_seen.pop(oldest_key, None)
                continue
            break

    def __len__(self) -> int:
        return len(self._last_seen)


class UserLocks:
    """Per-user ``asyncio.Lock`` map that only keeps locks somebody still references.

    A lock lives while a task holds it or waits on it; after that the entry drops
    out, so the map stays as small as the number of users being handled right now.
    """

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def __getitem__(self, user_id: str) -> asyncio.Lock:
        key = str(user_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)
