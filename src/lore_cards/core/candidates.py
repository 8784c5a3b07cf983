"""Heuristic title discovery over recent narrative history.

Titles are proper-noun looking phrases: two to four capitalized words, or a
single capitalized word of at least four letters. Discovered titles wait in a
capped LIFO queue until the scheduler pulls one for generation.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from .cards import used_title_keys
from .config import LoreConfig
from .normalize import clip, csv_to_set, normalize_text, normalize_title_key, sanitize_title
from .types import Candidate, Classification, SessionState, TurnHost

logger = logging.getLogger(__name__)

CHARACTER_TYPE = "character"
MAX_TITLES_PER_BLOCK = 24
SNIPPET_CHARS = 480

_MULTI_WORD_RE = re.compile(r"\b([A-Z][a-z]+(?:\s+[A-Z][a-z]+){1,3})\b")
_SINGLE_WORD_RE = re.compile(r"\b([A-Z][a-z]{3,})\b")
_BRACKETS_RE = re.compile(r"[{}<>\[\]]")
_STRUCTURAL_RE = re.compile(r"^(chapter|act|scene|page)\b", re.IGNORECASE)
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.?!])\s+")
_WORD_RE = re.compile(r"[a-z]+(?:['’][a-z]+)*")
_CONJUNCTION_RE = re.compile(r"\band\b|&", re.IGNORECASE)

STOPWORDS = frozenset(
    {"you", "the", "a", "an", "and", "but", "then", "when", "there", "they", "this", "that", "with", "your"}
)


def _skip_title(title: str, cfg: LoreConfig) -> bool:
    if not title or len(title) < 2:
        return True
    if cfg.ignore_all_caps and title == title.upper():
        return True
    if title.lower() in STOPWORDS or _STRUCTURAL_RE.match(title):
        return True
    return any(ch.isdigit() for ch in title)


def extract_titles(block: str, cfg: LoreConfig) -> list[str]:
    clean = re.sub(r"\s+", " ", _BRACKETS_RE.sub(" ", block))
    found: list[str] = []
    for pattern in (_MULTI_WORD_RE, _SINGLE_WORD_RE):
        for match in pattern.finditer(clean):
            title = sanitize_title(match.group(1))
            if _skip_title(title, cfg) or title in found:
                continue
            found.append(title)
    return found[:MAX_TITLES_PER_BLOCK]


def is_banned(title: str, cfg: LoreConfig) -> bool:
    if not title:
        return True
    banned = cfg.banned_keys()
    lowered = title.lower()
    if lowered in banned:
        return True
    return lowered.split(" ")[0] in banned


def sentence_containing(title: str, text: str) -> str:
    pattern = re.compile(r"\b" + re.escape(title) + r"\b")
    for piece in _SENTENCE_SPLIT_RE.split(text or ""):
        if pattern.search(piece):
            return piece
    return ""


def _words(text: str) -> set[str]:
    words = set()
    for word in _WORD_RE.findall((text or "").lower()):
        words.add(re.sub(r"['’]s$", "", word))
    return words


def has_conjunction(title: str) -> bool:
    return bool(_CONJUNCTION_RE.search(title or ""))


def classify(title: str, context_text: str, cfg: LoreConfig) -> Classification:
    if cfg.conjunction_guard and has_conjunction(title):
        return Classification(desired_type=cfg.default_type, score=0)

    relationship_words = csv_to_set(cfg.relationship_words)
    pronouns = csv_to_set(cfg.character_pronouns)
    sentence_words = _words(sentence_containing(title, context_text))

    score = 0
    if _words(title) & relationship_words:
        score += 2
    if sentence_words & relationship_words:
        score += 2
    if sentence_words & pronouns:
        score += 1
    desired = CHARACTER_TYPE if score >= 2 else cfg.default_type
    return Classification(desired_type=desired, score=score)


def scan_for_candidates(state: SessionState, host: TurnHost) -> int:
    """Push titles from the last ``lookback`` history entries; return how many were pushed."""
    cfg = state.config
    history = list(host.history or [])
    start = max(0, len(history) - max(cfg.lookback, 0))
    used = used_title_keys(host.cards)

    pushed = 0
    for index in range(start, len(history)):
        raw = history[index]
        block = normalize_text(raw)[: cfg.scan_block_limit] if isinstance(raw, str) else ""
        if not block:
            continue
        for title in extract_titles(block, cfg):
            key = normalize_title_key(title)
            if not key or key in used or is_banned(title, cfg):
                continue
            snippet = sentence_containing(title, block) or block
            state.candidates.append(
                Candidate(title=title, turn_index=index, source_snippet=clip(snippet, SNIPPET_CHARS))
            )
            pushed += 1

    _dedupe_and_trim(state)
    return pushed


def _dedupe_and_trim(state: SessionState) -> None:
    seen: set[str] = set()
    kept: list[Candidate] = []
    # the newest occurrence wins so re-mentioned titles move to the top of the stack
    for candidate in reversed(state.candidates):
        key = normalize_title_key(candidate.title)
        if not key or key in seen:
            continue
        seen.add(key)
        kept.append(candidate)
    kept.reverse()
    cap = max(state.config.candidates_cap, 1)
    if len(kept) > cap:
        logger.debug("Trimming %s stale candidates", len(kept) - cap)
        kept = kept[-cap:]
    state.candidates = kept


def next_candidate(state: SessionState, host: TurnHost) -> Optional[Candidate]:
    used = used_title_keys(host.cards)
    while state.candidates:
        candidate = state.candidates.pop()
        key = normalize_title_key(candidate.title)
        if not key or key in used or is_banned(candidate.title, state.config):
            continue
        return candidate
    return None
