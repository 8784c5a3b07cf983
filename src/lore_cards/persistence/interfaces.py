from __future__ import annotations

from typing import Protocol


class AdventureRepo(Protocol):
    def get(self, adventure_id: str): ...
    def get_by_name(self, namespace: str, name_normalized: str): ...
    def create(self, name: str, name_normalized: str, namespace: str = "default"): ...
    def save_state(self, adventure_id: str, expected_row_version: int, state: dict[str, object]) -> bool: ...


class CardRepo(Protocol):
    def list_by_adventure(self, adventure_id: str): ...
    def get(self, adventure_id: str, card_id: str): ...
    def create(
        self,
        adventure_id: str,
        title: str,
        card_type: str = "class",
        keys: str = "",
        entry: str = "",
        description: str = "",
    ): ...


class TurnRepo(Protocol):
    def add(self, adventure_id: str, kind: str, content: str): ...
    def recent(self, adventure_id: str, limit: int): ...
    def count(self, adventure_id: str) -> int: ...


class UnitOfWork(Protocol):
    adventures: AdventureRepo
    cards: CardRepo
    turns: TurnRepo

    def commit(self) -> None: ...
    def rollback(self) -> None: ...

    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
