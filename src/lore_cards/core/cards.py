from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from typing import Optional

from .normalize import clip, format_memory_line, memory_id, normalize_title_key
from .ports import CardLike, CardStorePort

MEMORY_HEADER = "Lore Cards Memories:"
RULE_CARD_PREFIX_RE = re.compile(r"^Lore\s*Rule\s*:", re.IGNORECASE)
_MEMORY_HEADER_RE = re.compile(r"Lore\s*Cards\s*Memories\s*:", re.IGNORECASE)


@dataclass
class StoryCard:
    title: str
    type: str = "class"
    keys: str = ""
    entry: str = ""
    description: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


class InMemoryCardStore:
    """List-backed card store for hosts without a database."""

    def __init__(self, cards: Optional[list[StoryCard]] = None):
        self.cards: list[StoryCard] = list(cards or [])

    def list_cards(self) -> list[StoryCard]:
        return list(self.cards)

    def get_card(self, card_id: str) -> StoryCard | None:
        for card in self.cards:
            if card.id == card_id:
                return card
        return None

    def create_card(self, title: str, card_type: str) -> StoryCard:
        card = StoryCard(title=title, type=card_type)
        self.cards.append(card)
        return card


def find_card(store: CardStorePort, title: str) -> CardLike | None:
    key = normalize_title_key(title)
    if not key:
        return None
    for card in store.list_cards():
        if card.title and normalize_title_key(card.title) == key:
            return card
    return None


def used_title_keys(store: CardStorePort) -> set[str]:
    return {normalize_title_key(card.title) for card in store.list_cards() if card.title}


def title_to_keys(title: str) -> str:
    words = re.sub(r"[^A-Za-z0-9 ]", " ", title).split()
    return ",".join(words)


def create_unique_card(store: CardStorePort, title: str, card_type: str) -> CardLike:
    """Return the existing card for ``title`` or create a fresh one."""
    existing = find_card(store, title)
    if existing is not None:
        return existing
    card = store.create_card(title, card_type)
    card.title = title
    card.type = card_type
    card.keys = title_to_keys(title)
    card.entry = f"{{title: {title}}}"
    card.description = ""
    return card


def is_rule_card(card: CardLike) -> bool:
    return bool(card.title) and bool(RULE_CARD_PREFIX_RE.match(card.title))


def has_memory_header(description: str) -> bool:
    return bool(_MEMORY_HEADER_RE.search(description or ""))


def ensure_memory_header(card: CardLike) -> None:
    description = card.description or ""
    if has_memory_header(description):
        return
    body = description.strip()
    card.description = MEMORY_HEADER + "\n" + body if body else MEMORY_HEADER + "\n"


def append_memory_line(card: CardLike, text: str, turn: int, limit: int) -> bool:
    """Stamp ``text`` and append it to the card's memory; False on duplicate."""
    text = (text or "").strip()
    if not text:
        return False
    description = card.description or ""
    if f"[{memory_id(text)}]" in description:
        return False
    line = format_memory_line(turn, text)
    joined = description.rstrip("\n") + "\n" + line if description.strip() else line
    card.description = clip(joined, limit)
    return True


def memory_lines(description: str) -> list[str]:
    return [line for line in (description or "").split("\n") if line.strip()]
