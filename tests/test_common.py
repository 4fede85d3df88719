from __future__ import annotations

import asyncio
import gc
import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tyrant_bot.discord.common import CooldownTracker, UserLocks, chunk_text, truncate, word_in_text  # noqa: E402


def test_cooldown_blocks_within_window_only() -> None:
    tracker = CooldownTracker(window_ms=800)

    assert tracker.hit("u1", 10.0) is False
    assert tracker.hit("u1", 10.5) is True
    assert tracker.hit("u2", 10.5) is False
    assert tracker.hit("u1", 10.8) is False


def test_cooldown_map_is_bounded() -> None:
    tracker = CooldownTracker(window_ms=60_000, max_entries=3)

    for index in range(10):
        tracker.hit(f"u{index}", 1.0 + index)

    assert len(tracker) == 3


def test_cooldown_evicts_stale_entries() -> None:
    tracker = CooldownTracker(window_ms=800, max_entries=100)
    tracker.hit("u1", 1.0)
    tracker.hit("u2", 1.1)

    tracker.hit("u3", 50.0)

    assert len(tracker) == 1


def test_chunk_text_respects_limit() -> None:
    text = "\n".join("x" * 50 for _ in range(100))

    chunks = chunk_text(text, 1900)

    assert len(chunks) > 1
    assert all(len(chunk) <= 1900 for chunk in chunks)
    assert "".join(chunks) == text


def test_truncate_and_word_matching() -> None:
    assert truncate("short", 10) == "short"
    assert truncate("a" * 20, 10) == "aaaaaaa..."
    assert word_in_text("adolf", "Hey ADOLF, listen")
    assert not word_in_text("adolf", "adolfish behaviour")


def test_user_locks_are_shared_while_held_and_dropped_after() -> None:
    locks = UserLocks()
    order: list[str] = []

    async def _worker(name: str, hold: float) -> None:
        async with locks["u1"]:
            order.append(f"{name}:in")
            await asyncio.sleep(hold)
            order.append(f"{name}:out")

    async def _run() -> None:
        await asyncio.gather(_worker("a", 0.01), _worker("b", 0.0))

    asyncio.run(_run())
    gc.collect()

    assert order == ["a:in", "a:out", "b:in", "b:out"]
    assert len(locks) == 0


def test_user_locks_do_not_grow_with_distinct_users() -> None:
    locks = UserLocks()

    async def _run() -> None:
        for index in range(300):
            async with locks[f"user-{index}"]:
                pass

    asyncio.run(_run())
    gc.collect()

    assert len(locks) == 0
