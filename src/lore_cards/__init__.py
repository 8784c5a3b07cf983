from .adventure import LoreAdventure, LoreTurnResult
from .core.cards import InMemoryCardStore, StoryCard
from .core.config import LoreConfig
from .core.engine import LoreEngine
from .core.types import SessionState, TurnHost

__all__ = [
    "LoreAdventure",
    "LoreTurnResult",
    "LoreEngine",
    "LoreConfig",
    "SessionState",
    "TurnHost",
    "StoryCard",
    "InMemoryCardStore",
]
