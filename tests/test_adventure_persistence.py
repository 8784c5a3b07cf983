from __future__ import annotations

import pytest
from sqlalchemy import select

from lore_cards.adventure import LoreAdventure
from lore_cards.core.errors import AdventureNotFoundError
from lore_cards.core.scheduler import ANNOUNCE_BEGIN
from lore_cards.core.types import JOB_GENERATE
from lore_cards.persistence.sqlalchemy.models import Adventure, Card, Turn


def test_get_or_create_is_idempotent_per_normalized_name(lore):
    first = lore.get_or_create_adventure("Harbor Run")
    assert lore.get_or_create_adventure("harbor  run!") == first
    assert lore.get_or_create_adventure("Harbor Run", namespace="other") != first


def test_unknown_adventure_is_reported_not_raised(lore):
    result = lore.on_context("missing", "Story so far.", True)
    assert result.status == "error"
    assert result.reason == "adventure_not_found"
    assert result.text == "Story so far."
    assert result.stop is True

    with pytest.raises(AdventureNotFoundError):
        lore.load_state("missing")
    with pytest.raises(AdventureNotFoundError):
        lore.record_turn("missing", "player", "hello")


def test_pending_job_survives_between_calls_and_creates_card(lore, adventure_id, session_factory):
    result = lore.on_input(adventure_id, "/lc Elena / her ship")
    assert result.status == "ok"
    assert result.text == "\n"
    assert lore.load_state(adventure_id).pending.mode == JOB_GENERATE

    result = lore.on_context(adventure_id, "Story so far.")
    assert ANNOUNCE_BEGIN in result.text

    result = lore.on_output(adventure_id, "Elena commands the Gull.")
    assert result.status == "ok"
    assert lore.load_state(adventure_id).pending is None

    with session_factory() as session:
        cards = session.execute(select(Card).where(Card.adventure_id == adventure_id)).scalars().all()
        assert [(c.title, c.keys, c.entry) for c in cards] == [("Elena", "Elena", "- Elena commands the Gull.")]
        kinds = session.execute(select(Turn.kind).order_by(Turn.id)).scalars().all()
        assert kinds == ["narrator"]


def test_each_call_bumps_row_version(lore, adventure_id, session_factory):
    lore.on_context(adventure_id, "one")
    lore.on_context(adventure_id, "two")
    with session_factory() as session:
        assert session.get(Adventure, adventure_id).row_version == 3


def test_save_state_is_compare_and_swap(uow_factory, adventure_id):
    with uow_factory() as uow:
        assert uow.adventures.save_state(adventure_id, 99, {}) is False
        assert uow.adventures.save_state(adventure_id, 1, {"last_auto_turn": 5}) is True
        uow.commit()
    with uow_factory() as uow:
        row = uow.adventures.get(adventure_id)
        assert row.row_version == 2
        assert row.state_json == '{"last_auto_turn":5}'


def test_recorded_turns_feed_discovery(lore, adventure_id):
    lore.on_input(adventure_id, "Elena met Brannoc at the quay.")
    lore.on_context(adventure_id, "Story so far.")
    state = lore.load_state(adventure_id)
    assert [c.title for c in state.candidates] == ["Elena", "Brannoc"]


def test_turn_recording_can_be_disabled(uow_factory, adventure_id, session_factory):
    quiet = LoreAdventure(uow_factory, record_turns=False)
    quiet.on_input(adventure_id, "Elena met Brannoc at the quay.")
    quiet.on_output(adventure_id, "Brannoc waved.")
    with session_factory() as session:
        assert session.execute(select(Turn)).scalars().all() == []


def test_commands_persist_config_and_surface_messages(lore, adventure_id):
    result = lore.on_input(adventure_id, "/lc off")
    assert result.message == "Lore Cards: disabled."
    assert lore.load_state(adventure_id).config.enabled is False


def test_triggered_database_card_is_injected(lore, adventure_id, uow_factory):
    with uow_factory() as uow:
        uow.cards.create(adventure_id, "Keeper Amos", keys="storm & lighthouse", entry="- Keeps the light.")
        uow.commit()

    lore.on_input(adventure_id, "A storm batters the lighthouse.")
    result = lore.on_context(adventure_id, "World Lore:\nThe tide is high.")
    assert result.text == "World Lore:\n- Keeps the light.\nThe tide is high."


def test_cards_keep_creation_order(uow_factory, adventure_id):
    with uow_factory() as uow:
        uow.cards.create(adventure_id, "First")
        uow.cards.create(adventure_id, "Second")
        uow.commit()
    with uow_factory() as uow:
        rows = uow.cards.list_by_adventure(adventure_id)
        assert [(r.title, r.position) for r in rows] == [("First", 0), ("Second", 1)]
