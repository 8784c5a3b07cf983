from __future__ import annotations

import logging
import re
from typing import Optional

from .candidates import classify
from .cards import (
    append_memory_line,
    create_unique_card,
    ensure_memory_header,
    find_card,
    has_memory_header,
    memory_lines,
)
from .normalize import clip, format_entry, hash6, normalize_text, parse_keep_ids
from .ports import CardLike
from .rules import RuleRunner
from .types import JOB_COMPRESS, JOB_GENERATE, PendingJob, SessionState, TurnHost

logger = logging.getLogger(__name__)

ANNOUNCE_BEGIN = ">>> Lore Cards: system prompt >>>"
ANNOUNCE_END = "<<< end Lore Cards <<<"
ANNOUNCE_PROMPT_CHARS = 3200
COMPRESS_FALLBACK_LINES = 20

_END_MARKER_RE = re.compile(r"<<<?\s*end\s+Lore\s+Cards\s*<<<?", re.IGNORECASE)


def _fill(template: str, values: dict[str, str]) -> str:
    for key, value in values.items():
        template = template.replace("%{" + key + "}", value)
    return template


def build_announcement(job: PendingJob) -> str:
    return "\n".join([ANNOUNCE_BEGIN, clip(job.prompt, ANNOUNCE_PROMPT_CHARS), ANNOUNCE_END])


def append_announcement(context: str, announcement: str) -> str:
    # appended, never spliced, so a scenario header the host prepends stays intact
    return context + "\n\n" + announcement + "\n\n"


def extract_after_marker(text: str) -> Optional[str]:
    matches = list(_END_MARKER_RE.finditer(text or ""))
    if not matches:
        return None
    tail = text[matches[-1].end() :].strip()
    return tail or None


class JobScheduler:
    """Owns the single pending generate/compress job of a session."""

    def __init__(
        self,
        state: SessionState,
        host: TurnHost,
        rules: RuleRunner,
        *,
        logger: logging.Logger | None = None,
    ):
        self._state = state
        self._host = host
        self._rules = rules
        self._logger = logger or logging.getLogger(__name__)

    @property
    def pending(self) -> Optional[PendingJob]:
        return self._state.pending

    def schedule_generate(
        self,
        title: str,
        *,
        focus: str = "",
        first_line: str = "",
        redo: bool = False,
        source_text: str = "",
        desired_type: Optional[str] = None,
    ) -> bool:
        if self._state.pending is not None or not title:
            return False
        cfg = self._state.config
        card = find_card(self._host.cards, title)

        bullet = "- " if cfg.use_bullets else ""
        entry_seed = str(card.entry or "") if card is not None else bullet
        if first_line:
            entry_seed = bullet + first_line.strip()

        hooked = self._rules.run("before_generate", {"title": title, "entry_seed": entry_seed, "focus": focus})
        entry_seed = str(hooked.get("entry_seed") or "")

        prompt = _fill(cfg.generation_prompt, {"title": title, "focus": focus, "entry": entry_seed})
        if desired_type is None:
            context = "\n".join(part for part in (source_text, focus, entry_seed) if part)
            desired_type = classify(title, context, cfg).desired_type

        self._state.pending = PendingJob(
            mode=JOB_GENERATE,
            target_title=title,
            target_ref=card.id if card is not None else None,
            payload={
                "prompt": prompt,
                "entry_seed": entry_seed,
                "desired_type": desired_type,
                "redo": bool(redo),
            },
        )
        self._logger.info("Scheduled generate job title=%r redo=%s type=%s", title, redo, desired_type)
        return True

    def schedule_compress(self, title: str, card_ref: Optional[str], memory_text: str) -> bool:
        if self._state.pending is not None:
            return False
        cfg = self._state.config
        safe_memory = clip(str(memory_text or ""), cfg.memory_char_limit * 2)
        prompt = _fill(cfg.compression_prompt, {"memory": safe_memory})
        self._state.pending = PendingJob(
            mode=JOB_COMPRESS,
            target_title=title,
            target_ref=card_ref,
            payload={
                "prompt": prompt,
                "source_memory": safe_memory,
                # every line present now, including those the clip cut off
                "known_lines": sorted({hash6(line) for line in memory_lines(str(memory_text or ""))}),
            },
        )
        self._logger.info("Scheduled compress job title=%r memory_chars=%s", title, len(safe_memory))
        return True

    def apply_result(self, model_text: str) -> None:
        """Consume the model reply for the pending job.

        The slot is emptied before handling, so the job is gone even if
        handling raises, and a handler may chain a follow-up job.
        """
        job = self._state.pending
        self._state.pending = None
        if job is None:
            return
        self._state.last_applied_title = job.target_title
        raw = str(model_text or "")
        segment = extract_after_marker(raw) or raw

        if job.mode == JOB_GENERATE:
            self._apply_generate(job, segment)
        elif job.mode == JOB_COMPRESS:
            self._apply_compress(job, segment)

    def _resolve_target(self, job: PendingJob, *, create: bool = True) -> Optional[CardLike]:
        card = self._host.cards.get_card(job.target_ref) if job.target_ref else None
        if card is None and not create:
            return find_card(self._host.cards, job.target_title)
        if card is None:
            desired = job.payload.get("desired_type") or self._state.config.default_type
            card = create_unique_card(self._host.cards, job.target_title, str(desired))
        return card

    def _apply_generate(self, job: PendingJob, segment: str) -> None:
        cfg = self._state.config
        card = self._resolve_target(job)
        desired = job.payload.get("desired_type")
        if desired and str(card.type or "").lower() == cfg.default_type.lower():
            card.type = str(desired)

        clean = clip(normalize_text(segment).strip(), cfg.entry_char_limit)
        hooked = self._rules.run("after_generate", {"title": job.target_title, "entry": clean})
        clean = str(hooked.get("entry") or clean)

        card.entry = format_entry(clean, cfg.use_bullets)
        ensure_memory_header(card)
        self._logger.info("Applied generated entry title=%r chars=%s", card.title, len(card.entry))

        redo = bool(job.payload.get("redo"))
        if cfg.memory_auto_update and not redo and len(card.description or "") > cfg.memory_char_limit:
            self.schedule_compress(card.title, card.id, card.description)

    def _apply_compress(self, job: PendingJob, segment: str) -> None:
        card = self._resolve_target(job, create=False)
        if card is None:
            self._logger.warning("Compression target %r no longer exists", job.target_title)
            return
        source = str(job.payload.get("source_memory") or "")
        lines = memory_lines(source)
        header = [line for line in lines if has_memory_header(line)]
        body = [line for line in lines if not has_memory_header(line)]
        self._rules.run("before_compress", {"title": job.target_title, "memory": "\n".join(body)})

        ids = parse_keep_ids(segment)
        kept = [line for line in body if any(f"[{memory_id}]" in line for memory_id in ids)]
        if not kept:
            self._logger.warning(
                "Compression reply for %r had no usable ids; keeping last %s lines",
                job.target_title,
                COMPRESS_FALLBACK_LINES,
            )
            kept = body[-COMPRESS_FALLBACK_LINES:]

        known = set(job.payload.get("known_lines") or [hash6(line) for line in lines])
        # lines stamped after the job was scheduled are not part of the selection
        newer = [
            line
            for line in memory_lines(card.description)
            if hash6(line) not in known and not has_memory_header(line)
        ]
        card.description = "\n".join(header + kept + newer)
        self._logger.info("Compressed memory title=%r kept=%s of %s", card.title, len(kept), len(body))
        self._rules.run("after_compress", {"title": job.target_title, "kept_lines": "\n".join(kept)})

    def add_memory(self, title: str, text: str) -> bool:
        cfg = self._state.config
        card = find_card(self._host.cards, title)
        if card is None:
            return False
        if not append_memory_line(card, text, self._host.turn, cfg.memory_char_limit * 2):
            return False
        if cfg.memory_auto_update and len(card.description or "") > cfg.memory_char_limit:
            self.schedule_compress(card.title, card.id, card.description)
        return True
