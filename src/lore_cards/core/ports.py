from __future__ import annotations

from typing import Protocol, Sequence


class CardLike(Protocol):
    id: str
    title: str
    type: str
    keys: str
    entry: str
    description: str


class CardStorePort(Protocol):
    def list_cards(self) -> Sequence[CardLike]:
        ...

    def get_card(self, card_id: str) -> CardLike | None:
        ...

    def create_card(self, title: str, card_type: str) -> CardLike:
        ...
