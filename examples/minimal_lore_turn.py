from __future__ import annotations

import logging

from sqlalchemy import select

from lore_cards.adventure import LoreAdventure
from lore_cards.core.scheduler import ANNOUNCE_END
from lore_cards.persistence.sqlalchemy import (
    SQLAlchemyUnitOfWork,
    build_engine,
    build_session_factory,
    create_schema,
)
from lore_cards.persistence.sqlalchemy.models import Card


class DemoModel:
    """Stands in for the story model: answers Lore Cards prompts, narrates otherwise."""

    def complete(self, context: str) -> str:
        if ANNOUNCE_END in context:
            return "Elena captains the Gull and wears her father's ring."
        return "Captain Elena gripped the wheel, her father's ring on her hand."


def make_uow_factory():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    create_schema(engine)
    session_factory = build_session_factory(engine)

    def _uow_factory():
        return SQLAlchemyUnitOfWork(session_factory)

    return _uow_factory, session_factory


def play_turn(lore: LoreAdventure, adventure_id: str, model: DemoModel, action: str) -> str:
    sent = lore.on_input(adventure_id, action)
    context = lore.on_context(adventure_id, "World Lore:\n\nStory so far.\n" + sent.text)
    reply = lore.on_output(adventure_id, model.complete(context.text))
    if reply.message:
        print("message:", reply.message)
    return reply.text


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    uow_factory, session_factory = make_uow_factory()
    lore = LoreAdventure(uow_factory)
    adventure_id = lore.get_or_create_adventure("Harbor Run")
    model = DemoModel()

    for number, action in enumerate(["look at the helm", "wait", "continue"], start=1):
        print(f"turn {number}:", play_turn(lore, adventure_id, model, action))

    with session_factory() as session:
        stmt = select(Card).where(Card.adventure_id == adventure_id).order_by(Card.position)
        for card in session.execute(stmt).scalars():
            print(f"card: {card.title} [{card.type}] {card.entry}")


if __name__ == "__main__":
    main()
