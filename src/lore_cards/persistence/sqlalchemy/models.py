from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, utcnow


TurnIDType = BigInteger().with_variant(Integer, "sqlite")


class Adventure(TimestampMixin, Base):
    __tablename__ = "lc_adventures"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    namespace: Mapped[str] = mapped_column(String(64), nullable=False, default="default")
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    name_normalized: Mapped[str] = mapped_column(String(128), nullable=False)

    # serialized SessionState: config overrides, candidates, pending job, trigger sets
    state_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    row_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("namespace", "name_normalized", name="uq_lc_adventure_namespace_name_norm"),
    )


class Card(TimestampMixin, Base):
    __tablename__ = "lc_cards"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    adventure_id: Mapped[str] = mapped_column(String(36), ForeignKey("lc_adventures.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    title: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    type: Mapped[str] = mapped_column(String(64), nullable=False, default="class")
    keys: Mapped[str] = mapped_column(Text, nullable=False, default="")
    entry: Mapped[str] = mapped_column(Text, nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")


Index("ix_lc_card_adventure_position", Card.adventure_id, Card.position)


class Turn(Base):
    __tablename__ = "lc_turns"

    id: Mapped[int] = mapped_column(TurnIDType, primary_key=True, autoincrement=True)
    adventure_id: Mapped[str] = mapped_column(String(36), ForeignKey("lc_adventures.id"), nullable=False)

    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


Index("ix_lc_turn_adventure_id_desc", Turn.adventure_id, Turn.id.desc())
