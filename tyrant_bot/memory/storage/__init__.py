from .guilds import MemoryGuildsMixin
from .ignores import MemoryIgnoresMixin
from .schema import MemorySchemaMixin
from .users import MemoryUsersMixin

__all__ = [
    "MemorySchemaMixin",
    "MemoryUsersMixin",
    "MemoryIgnoresMixin",
    "MemoryGuildsMixin",
]
