from __future__ import annotations

import logging

from lore_cards.core.cards import StoryCard
from lore_cards.core.engine import LoreEngine
from lore_cards.core.triggers import (
    TriggerEngine,
    insert_after_anchor,
    parse_trigger_groups,
    phrase_matches,
)

KEEPER_ENTRY = "- The lighthouse keeper fears the autumn storms."


def _keeper(**overrides) -> StoryCard:
    values = {"title": "Keeper Amos", "keys": "storm & lighthouse", "entry": KEEPER_ENTRY}
    values.update(overrides)
    return StoryCard(**values)


def test_triggered_entry_decays_after_ttl_context_builds(make_host):
    card = _keeper()
    state, host = make_host(cards=[card])
    state.config.trigger_ttl = 2
    engine = LoreEngine()

    assert engine.handle_input(state, host, "A storm batters the lighthouse.") == "A storm batters the lighthouse."
    assert state.trigger_queued == [card.id]

    context = "World Lore:\nThe tide is high."
    first, _ = engine.handle_context(state, host, context)
    second, _ = engine.handle_context(state, host, context)
    third, _ = engine.handle_context(state, host, context)

    assert first == "World Lore:\n" + KEEPER_ENTRY + "\nThe tide is high."
    assert second == first
    assert third == context
    assert state.trigger_active == {}


def test_groups_split_on_commas_and_ampersands():
    assert parse_trigger_groups("storm & lighthouse, Keeper Amos,, ") == [["storm", "lighthouse"], ["Keeper Amos"]]


def test_phrases_match_whole_words_only():
    assert phrase_matches("storm", "a storm rolls in", True)
    assert phrase_matches("storm", "STORM!", True)
    assert not phrase_matches("storm", "STORM!", False)
    assert not phrase_matches("storm", "a stormy night", True)
    assert phrase_matches("Keeper Amos", "old keeper amos waved", True)


def test_slash_wrapped_phrase_is_a_pattern():
    assert phrase_matches("/storms?y?/", "a stormy night", True)
    assert not phrase_matches("/^storm$/", "a storm", True)


def test_bad_pattern_falls_back_to_substring(caplog):
    with caplog.at_level(logging.WARNING):
        assert phrase_matches("/[unclosed/", "text with [unclosed bracket", False)
    assert "Bad trigger pattern" in caplog.text


def test_detect_needs_every_phrase_of_a_group(make_host):
    card = _keeper()
    state, host = make_host(cards=[card])
    triggers = TriggerEngine(state, host)
    assert triggers.detect("only a storm tonight") == []
    assert triggers.detect("storm over the lighthouse") == [card.id]


def test_detect_skips_cards_without_keys_or_entry_and_honours_cap(make_host):
    cards = [
        _keeper(title="One"),
        _keeper(title="Two"),
        _keeper(title="Blank", entry=""),
        _keeper(title="Keyless", keys=""),
    ]
    state, host = make_host(cards=cards)
    triggers = TriggerEngine(state, host)
    assert triggers.detect("storm lighthouse") == [cards[0].id, cards[1].id]
    state.config.trigger_max_per_turn = 1
    assert triggers.detect("storm lighthouse") == [cards[0].id]


def test_case_sensitivity_follows_config(make_host):
    card = _keeper()
    state, host = make_host(cards=[card])
    state.config.trigger_case_insensitive = False
    triggers = TriggerEngine(state, host)
    assert triggers.detect("STORM and LIGHTHOUSE") == []


def test_ttl_counts_down_and_retrigger_resets_it(make_host):
    card = _keeper()
    state, host = make_host(cards=[card])
    triggers = TriggerEngine(state, host)

    triggers.queue([card.id, card.id])
    assert state.trigger_queued == [card.id]
    triggers.activate()
    assert state.trigger_queued == []
    assert state.trigger_active == {card.id: 3}

    triggers.inject("World Lore:")
    assert state.trigger_active == {card.id: 2}

    triggers.queue([card.id])
    triggers.activate()
    assert state.trigger_active == {card.id: 3}


def test_entry_already_in_context_is_not_duplicated(make_host):
    card = _keeper()
    state, host = make_host(cards=[card])
    state.trigger_active = {card.id: 2}
    triggers = TriggerEngine(state, host)

    context = "World Lore:\n" + KEEPER_ENTRY
    assert triggers.inject(context) == context
    assert state.trigger_active == {card.id: 1}


def test_injection_cap_still_ages_every_active_card(make_host):
    first = _keeper(title="First", entry="- first entry")
    second = _keeper(title="Second", entry="- second entry")
    state, host = make_host(cards=[first, second])
    state.config.trigger_inject_per_turn = 1
    state.trigger_active = {first.id: 1, second.id: 2}
    triggers = TriggerEngine(state, host)

    out = triggers.inject("World Lore:")
    assert out == "World Lore:\n- first entry"
    assert state.trigger_active == {second.id: 1}


def test_vanished_cards_leave_the_active_set(make_host):
    state, host = make_host()
    state.trigger_active = {"gone": 3}
    assert TriggerEngine(state, host).inject("World Lore:") == "World Lore:"
    assert state.trigger_active == {}


def test_missing_anchor_appends_entry():
    assert insert_after_anchor("Story so far.", "World Lore:", "- entry") == "Story so far.\n- entry"
    assert insert_after_anchor("Story so far.\n", "", "- entry") == "Story so far.\n- entry"
    assert insert_after_anchor("", "World Lore:", "- entry") == "- entry"
