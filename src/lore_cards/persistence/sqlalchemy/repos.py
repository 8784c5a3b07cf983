from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ...core.normalize import dump_json
from .base import utcnow
from .models import Adventure, Card, Turn


class AdventureRepo:
    def __init__(self, session: Session):
        self.session = session

    def get(self, adventure_id: str) -> Adventure | None:
        return self.session.get(Adventure, adventure_id)

    def get_by_name(self, namespace: str, name_normalized: str) -> Adventure | None:
        stmt = (
            select(Adventure)
            .where(Adventure.namespace == namespace)
            .where(Adventure.name_normalized == name_normalized)
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def create(self, name: str, name_normalized: str, namespace: str = "default") -> Adventure:
        row = Adventure(namespace=namespace, name=name, name_normalized=name_normalized, state_json="{}")
        self.session.add(row)
        self.session.flush()
        return row

    def save_state(self, adventure_id: str, expected_row_version: int, state: dict[str, object]) -> bool:
        stmt = (
            update(Adventure)
            .where(Adventure.id == adventure_id)
            .where(Adventure.row_version == expected_row_version)
            .values(
                state_json=dump_json(state),
                row_version=Adventure.row_version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session="fetch")
        )
        return self.session.execute(stmt).rowcount == 1


class CardRepo:
    def __init__(self, session: Session):
        self.session = session

    def list_by_adventure(self, adventure_id: str) -> list[Card]:
        stmt = (
            select(Card)
            .where(Card.adventure_id == adventure_id)
            .order_by(Card.position.asc(), Card.created_at.asc())
        )
        return list(self.session.execute(stmt).scalars().all())

    def get(self, adventure_id: str, card_id: str) -> Card | None:
        row = self.session.get(Card, card_id)
        if row is None or row.adventure_id != adventure_id:
            return None
        return row

    def create(
        self,
        adventure_id: str,
        title: str,
        card_type: str = "class",
        keys: str = "",
        entry: str = "",
        description: str = "",
    ) -> Card:
        stmt = select(func.max(Card.position)).where(Card.adventure_id == adventure_id)
        last = self.session.execute(stmt).scalar_one_or_none()
        row = Card(
            adventure_id=adventure_id,
            position=(last + 1) if last is not None else 0,
            title=title,
            type=card_type,
            keys=keys,
            entry=entry,
            description=description,
        )
        self.session.add(row)
        self.session.flush()
        return row


class AdventureCardStore:
    """Card store port over :class:`CardRepo`, scoped to one adventure."""

    def __init__(self, cards: CardRepo, adventure_id: str):
        self._cards = cards
        self._adventure_id = adventure_id

    def list_cards(self) -> list[Card]:
        return self._cards.list_by_adventure(self._adventure_id)

    def get_card(self, card_id: str) -> Card | None:
        return self._cards.get(self._adventure_id, card_id)

    def create_card(self, title: str, card_type: str) -> Card:
        return self._cards.create(self._adventure_id, title, card_type)


class TurnRepo:
    def __init__(self, session: Session):
        self.session = session

    def add(self, adventure_id: str, kind: str, content: str) -> Turn:
        row = Turn(adventure_id=adventure_id, kind=kind, content=content)
        self.session.add(row)
        self.session.flush()
        return row

    def recent(self, adventure_id: str, limit: int) -> list[Turn]:
        stmt = (
            select(Turn)
            .where(Turn.adventure_id == adventure_id)
            .order_by(Turn.id.desc())
            .limit(limit)
        )
        rows = list(self.session.execute(stmt).scalars().all())
        rows.reverse()
        return rows

    def count(self, adventure_id: str) -> int:
        stmt = select(func.count(Turn.id)).where(Turn.adventure_id == adventure_id)
        return int(self.session.execute(stmt).scalar_one() or 0)
