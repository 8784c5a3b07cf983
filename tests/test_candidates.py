from __future__ import annotations

from lore_cards.core.candidates import (
    CHARACTER_TYPE,
    classify,
    extract_titles,
    is_banned,
    next_candidate,
    scan_for_candidates,
)
from lore_cards.core.cards import StoryCard
from lore_cards.core.config import LoreConfig
from lore_cards.core.types import Candidate

ELENA_LINE = "Captain Elena gripped the wheel, her father's ring on her hand."


def test_extract_titles_prefers_phrases_and_skips_stopwords_and_structure():
    titles = extract_titles("Chapter Two. There was Mara Quinn at the Docks.", LoreConfig())
    assert titles == ["Mara Quinn", "Mara", "Quinn", "Docks"]


def test_discovery_and_classification_of_a_named_relative(make_host):
    state, host = make_host(history=[ELENA_LINE])
    pushed = scan_for_candidates(state, host)
    assert pushed == 3
    assert [c.title for c in state.candidates] == ["Captain Elena", "Captain", "Elena"]

    candidate = next_candidate(state, host)
    assert candidate.title == "Elena"
    assert candidate.source_snippet == ELENA_LINE

    result = classify(candidate.title, candidate.source_snippet, state.config)
    assert result.score == 3
    assert result.desired_type == CHARACTER_TYPE


def test_relationship_word_in_title_counts():
    result = classify("Captain Elena", ELENA_LINE, LoreConfig())
    assert result.score == 5
    assert result.desired_type == CHARACTER_TYPE


def test_pronoun_alone_stays_default_type():
    result = classify("Tidewater", "Tidewater was where she grew up.", LoreConfig())
    assert result.score == 1
    assert result.desired_type == "class"


def test_conjunction_guard_blocks_character_promotion():
    context = "Tom and Jerry sailed with her brother."
    cfg = LoreConfig()
    assert classify("Tom and Jerry", context, cfg).desired_type == "class"
    cfg.conjunction_guard = False
    assert classify("Tom and Jerry", context, cfg).desired_type == CHARACTER_TYPE


def test_queue_is_capped_dropping_oldest(make_host):
    state, host = make_host(history=["Mirelle waved. Dorian laughed. Kestrel ran. Ansel slept. Brannoc sang."])
    state.config.candidates_cap = 3
    scan_for_candidates(state, host)
    assert [c.title for c in state.candidates] == ["Kestrel", "Ansel", "Brannoc"]


def test_rescanning_moves_a_repeated_title_to_the_top(make_host):
    state, host = make_host(history=["Mirelle waved at Dorian.", "At dusk Mirelle left."])
    scan_for_candidates(state, host)
    assert [c.title for c in state.candidates] == ["Dorian", "Mirelle"]
    assert state.candidates[-1].turn_index == 1


def test_lookback_limits_scanned_history(make_host):
    history = ["Oldport is far away.", "nothing here.", "Brannoc sang."]
    state, host = make_host(history=history)
    state.config.lookback = 2
    scan_for_candidates(state, host)
    assert [c.title for c in state.candidates] == ["Brannoc"]
    assert state.candidates[0].turn_index == 2


def test_banned_titles_match_exactly_or_by_first_word():
    cfg = LoreConfig(banned_titles={"Harbor"})
    assert is_banned("harbor", cfg)
    assert is_banned("Harbor Master", cfg)
    assert not is_banned("Old Harbor", cfg)
    assert is_banned("", cfg)


def test_banned_and_existing_titles_are_never_queued(make_host):
    state, host = make_host(
        cards=[StoryCard(title="Elena")],
        history=["Elena met Brannoc on Monday."],
    )
    scan_for_candidates(state, host)
    assert [c.title for c in state.candidates] == ["Brannoc"]


def test_next_candidate_skips_titles_that_became_cards(make_host):
    state, host = make_host()
    state.candidates = [Candidate("Dorian", 0), Candidate("Mirelle", 0)]
    host.cards.create_card("Mirelle", "class")
    assert next_candidate(state, host).title == "Dorian"
    assert next_candidate(state, host) is None


def test_all_caps_phrases_are_ignored_by_default(make_host):
    state, host = make_host(history=["WARNING SIGN ahead, said Brannoc."])
    scan_for_candidates(state, host)
    assert [c.title for c in state.candidates] == ["Brannoc"]
