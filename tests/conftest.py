from __future__ import annotations

import pytest
from sqlalchemy import text

from lore_cards.adventure import LoreAdventure
from lore_cards.core.cards import InMemoryCardStore, StoryCard
from lore_cards.core.types import SessionState, TurnHost
from lore_cards.persistence.sqlalchemy.db import build_engine, build_session_factory, create_schema
from lore_cards.persistence.sqlalchemy.uow import SQLAlchemyUnitOfWork


@pytest.fixture()
def session_factory():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    create_schema(engine)
    sf = build_session_factory(engine)
    with sf() as session:
        session.execute(text("PRAGMA foreign_keys=ON"))
        session.commit()
    return sf


@pytest.fixture()
def uow_factory(session_factory):
    def _factory():
        return SQLAlchemyUnitOfWork(session_factory)

    return _factory


@pytest.fixture()
def lore(uow_factory):
    return LoreAdventure(uow_factory)


@pytest.fixture()
def adventure_id(lore):
    return lore.get_or_create_adventure("Harbor Run")


@pytest.fixture()
def make_host():
    def _make(cards: list[StoryCard] | None = None, history: list[str] | None = None, turn: int = 1):
        store = InMemoryCardStore(cards)
        return SessionState(), TurnHost(turn=turn, history=list(history or []), cards=store)

    return _make
