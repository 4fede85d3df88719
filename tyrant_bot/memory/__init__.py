from .annoyance import ActivityTracker, AnnoyanceDetector, AnnoyanceSignals
from .extractor import extract_fact
from .models import GuildConfig, IgnoreEntry, UserMemory
from .store import MemoryStore

__all__ = [
    "ActivityTracker",
    "AnnoyanceDetector",
    "AnnoyanceSignals",
    "GuildConfig",
    "IgnoreEntry",
    "MemoryStore",
    "UserMemory",
    "extract_fact",
]
