from __future__ import annotations

import asyncio
import random
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tyrant_bot.memory.annoyance import ActivityTracker, AnnoyanceDetector  # noqa: E402
from tyrant_bot.memory.store import MemoryStore  # noqa: E402
from tyrant_bot.services.classifier import SAFE_DEFAULT, Classification  # noqa: E402

BOT_ID = 999
OWNER_ID = 1000


class FixedRandom(random.Random):
    def __init__(self, value: float) -> None:
        super().__init__(7)
        self.value = value

    def random(self) -> float:
        return self.value


class FakeRole:
    def __init__(self, role_id: int, position: int) -> None:
        self.id = role_id
        self.position = position


class FakeMember:
    def __init__(self, member_id: int, name: str, roles: list[FakeRole] | None = None, *, bot: bool = False) -> None:
        self.id = member_id
        self.name = name
        self.display_name = name
        self.roles = roles or []
        self.bot = bot
        self.actions: list[tuple[str, object]] = []
        self.error: Exception | None = None

    async def _record(self, action: str, detail: object) -> None:
        if self.error is not None:
            raise self.error
        self.actions.append((action, detail))

    async def kick(self, *, reason: str | None = None) -> None:
        await self._record("kick", reason)

    async def ban(self, *, reason: str | None = None) -> None:
        await self._record("ban", reason)

    async def timeout(self, duration: object, *, reason: str | None = None) -> None:
        await self._record("timeout", duration)


class FakeGuild:
    def __init__(self, guild_id: int = 10, *, bot_position: int = 50) -> None:
        self.id = guild_id
        self.owner_id = OWNER_ID
        self.members: dict[int, FakeMember] = {}
        self.channels: dict[int, Any] = {}
        self.me = FakeMember(BOT_ID, "Adolf", [FakeRole(9, bot_position)], bot=True)
        self.add(self.me)
        self.add(FakeMember(OWNER_ID, "owner"))

    def add(self, member: FakeMember) -> FakeMember:
        self.members[member.id] = member
        return member

    def get_member(self, member_id: int) -> FakeMember | None:
        return self.members.get(int(member_id))

    async def fetch_member(self, member_id: int) -> FakeMember | None:
        return None

    def get_channel(self, channel_id: int) -> Any:
        return self.channels.get(int(channel_id))


class FakeChannel:
    def __init__(self, channel_id: int = 500, parent_id: int | None = None) -> None:
        self.id = channel_id
        self.parent_id = parent_id
        self.sent: list[dict[str, object]] = []
        self.history: dict[int, Any] = {}

    async def send(self, content: str, **kwargs: object) -> SimpleNamespace:
        self.sent.append({"content": content, **kwargs})
        return SimpleNamespace(content=content)

    async def fetch_message(self, message_id: int) -> Any:
        return self.history[message_id]


class FakeMessage:
    def __init__(
        self,
        author: FakeMember,
        content: str,
        *,
        guild: FakeGuild | None,
        channel: FakeChannel,
        mentions: list[FakeMember] | None = None,
        reference: Any = None,
    ) -> None:
        self.author = author
        self.content = content
        self.guild = guild
        self.channel = channel
        self.mentions = mentions or []
        self.reference = reference
        self.replies: list[str] = []

    async def reply(self, content: str, **kwargs: object) -> SimpleNamespace:
        self.replies.append(content)
        return SimpleNamespace(content=content)


class FakeClassifier:
    def __init__(self, result: Classification = SAFE_DEFAULT) -> None:
        self.result = result
        self.calls: list[tuple[str, list[str]]] = []

    async def classify(self, text: str, mention_ids: list[str]) -> Classification:
        self.calls.append((text, list(mention_ids)))
        return self.result


class FakeResponder:
    def __init__(self) -> None:
        self.calls: list[dict[str, object]] = []

    async def reply(self, text: str, user_id: str, context: Any = None, *, mode: str = "direct", target: str = "") -> str:
        self.calls.append({"text": text, "user_id": user_id, "context": context, "mode": mode, "target": target})
        return f"reply:{mode}"


def make_settings(**overrides: object) -> SimpleNamespace:
    values: dict[str, object] = {
        "command_prefix": "!",
        "trigger_names": {"adolf"},
        "short_memory_limit": 32,
        "ignore_minutes": 15,
        "ignore_probability": 0.04,
        "user_cooldown_ms": 800,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture
def make_bot(tmp_path: Path) -> Callable[..., Any]:
    pytest.importorskip("discord")
    from tyrant_bot.discord.common import CooldownTracker, UserLocks
    from tyrant_bot.discord.mixins import CommandsMixin, IdentityMixin, MessageMixin, ModerationMixin

    class _Subject(CommandsMixin, ModerationMixin, MessageMixin, IdentityMixin):
        def __init__(self, memory: MemoryStore, settings: SimpleNamespace, rng: random.Random) -> None:
            self.memory = memory
            self.settings = settings
            self.classifier = FakeClassifier()
            self.responder = FakeResponder()
            self.annoyance = AnnoyanceDetector.from_settings(settings)
            self.rng = rng
            self.now = 1_700_000_000.0
            self.clock = lambda: self.now
            self.cooldowns = CooldownTracker(window_ms=settings.user_cooldown_ms)
            self.activity = ActivityTracker()
            self.user_locks = UserLocks()
            self.user = SimpleNamespace(id=BOT_ID)

        def tick(self, seconds: float = 5.0) -> None:
            self.now += seconds

    def _factory(*, rng_value: float = 0.99, whitelist: list[str] | None = None, **overrides: object) -> Any:
        store = MemoryStore(tmp_path / "bot.db", default_whitelist=whitelist)
        asyncio.run(store.init())
        return _Subject(store, make_settings(**overrides), FixedRandom(rng_value))

    return _factory
