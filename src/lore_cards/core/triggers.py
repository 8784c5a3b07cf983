"""Keyword-triggered entry injection with per-turn decay.

A card's ``keys`` field is a comma-separated list of AND-groups; each group is
an ampersand-joined list of phrases that must all appear in the scanned text::

    storm & lighthouse, Keeper Amos

A phrase wrapped in slashes is used as a regular expression (``/storms?/``).

Per card the state is Idle, Queued (waiting for the next context build) or
Active with a TTL. Every injection pass ages each active entry by one and
drops it at zero, whether or not it fit under the per-turn injection cap.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable

from .ports import CardLike
from .types import SessionState, TurnHost

logger = logging.getLogger(__name__)


def parse_trigger_groups(keys: str) -> list[list[str]]:
    groups: list[list[str]] = []
    for raw_group in str(keys or "").split(","):
        phrases = [phrase.strip() for phrase in raw_group.split("&") if phrase.strip()]
        if phrases:
            groups.append(phrases)
    return groups


def phrase_matches(phrase: str, text: str, case_insensitive: bool) -> bool:
    flags = re.IGNORECASE if case_insensitive else 0
    if len(phrase) > 2 and phrase.startswith("/") and phrase.endswith("/"):
        pattern = phrase[1:-1]
        plain = pattern
    else:
        pattern = r"(?<!\w)" + re.escape(phrase) + r"(?!\w)"
        plain = phrase
    try:
        return re.search(pattern, text, flags) is not None
    except re.error as exc:
        logger.warning("Bad trigger pattern %r, using substring match: %s", phrase, exc)
        if case_insensitive:
            return plain.lower() in text.lower()
        return plain in text


def card_matches(card: CardLike, text: str, case_insensitive: bool) -> bool:
    for group in parse_trigger_groups(card.keys):
        if all(phrase_matches(phrase, text, case_insensitive) for phrase in group):
            return True
    return False


def insert_after_anchor(context: str, anchor: str, entry: str) -> str:
    position = context.find(anchor) if anchor else -1
    if position < 0:
        return context.rstrip("\n") + "\n" + entry if context.strip() else entry
    cut = position + len(anchor)
    return context[:cut] + "\n" + entry + context[cut:]


class TriggerEngine:
    def __init__(self, state: SessionState, host: TurnHost, *, logger: logging.Logger | None = None):
        self._state = state
        self._host = host
        self._logger = logger or logging.getLogger(__name__)

    def detect(self, text: str) -> list[str]:
        cfg = self._state.config
        limit = max(cfg.trigger_max_per_turn, 0)
        hits: list[str] = []
        if not text or limit == 0:
            return hits
        for card in self._host.cards.list_cards():
            if len(hits) >= limit:
                break
            if not (card.keys or "").strip() or not (card.entry or "").strip():
                continue
            if card.id in hits:
                continue
            if card_matches(card, text, cfg.trigger_case_insensitive):
                hits.append(card.id)
        return hits

    def queue(self, hits: Iterable[str]) -> None:
        for card_id in hits:
            if card_id not in self._state.trigger_queued:
                self._state.trigger_queued.append(card_id)

    def activate(self) -> None:
        ttl = max(self._state.config.trigger_ttl, 1)
        for card_id in self._state.trigger_queued:
            self._state.trigger_active[card_id] = ttl
        self._state.trigger_queued = []

    def inject(self, context: str) -> str:
        cfg = self._state.config
        cap = max(cfg.trigger_inject_per_turn, 0)
        injected = 0
        active = self._state.trigger_active
        for card_id in list(active):
            card = self._host.cards.get_card(card_id)
            if card is None:
                del active[card_id]
                continue
            entry = (card.entry or "").strip()
            if entry and entry not in context and injected < cap:
                context = insert_after_anchor(context, cfg.trigger_anchor, entry)
                injected += 1
            active[card_id] -= 1

        for card_id in [cid for cid, ttl in active.items() if ttl <= 0]:
            del active[card_id]
        if injected:
            self._logger.debug("Injected %s triggered entries, %s still active", injected, len(active))
        return context
