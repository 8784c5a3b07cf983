from __future__ import annotations

import logging

from .candidates import next_candidate, scan_for_candidates
from .cards import create_unique_card, find_card
from .commands import Command, parse_command
from .config import (
    CONFIG_CARD_ENTRY,
    CONFIG_CARD_TITLE,
    apply_config_patch,
    parse_config_text,
    serialize_config,
)
from .rules import RuleRunner
from .scheduler import JobScheduler, append_announcement, build_announcement
from .triggers import TriggerEngine
from .types import SessionState, TurnHost

SWALLOWED_INPUT = "\n"
HELP_MESSAGE = (
    "Lore Cards: /lc Title / focus / first line, /lc redo \"Title\", "
    "/lc ban \"Title\", /lc config, /lc on, /lc off"
)


class LoreEngine:
    """Three lifecycle entry points over a caller-owned :class:`SessionState`.

    None of the ``handle_*`` methods raise: a fault is logged, reported on
    ``host.message`` and the inbound text is handed back unchanged.
    """

    def __init__(self, logger: logging.Logger | None = None):
        self._logger = logger or logging.getLogger(__name__)

    def handle_input(self, state: SessionState, host: TurnHost, text: str) -> str:
        try:
            return self._input(state, host, str(text or ""))
        except Exception as exc:
            self._report_fault(host, "input", exc)
            return text

    def handle_context(
        self,
        state: SessionState,
        host: TurnHost,
        text: str,
        stop: bool = False,
    ) -> tuple[str, bool]:
        try:
            return self._context(state, host, str(text or "")), stop is True
        except Exception as exc:
            self._report_fault(host, "context", exc)
            return text, stop is True

    def handle_output(self, state: SessionState, host: TurnHost, text: str) -> str:
        try:
            return self._output(state, host, str(text or ""))
        except Exception as exc:
            self._report_fault(host, "output", exc)
            return text

    def _report_fault(self, host: TurnHost, phase: str, exc: Exception) -> None:
        self._logger.exception("Lore Cards %s phase failed", phase)
        host.message = f"Lore Cards: {exc}"

    def _wire(self, state: SessionState, host: TurnHost) -> tuple[RuleRunner, JobScheduler, TriggerEngine]:
        rules = RuleRunner(state, host, logger=self._logger)
        scheduler = JobScheduler(state, host, rules, logger=self._logger)
        rules.bind_memory_writer(scheduler.add_memory)
        return rules, scheduler, TriggerEngine(state, host, logger=self._logger)

    def _input(self, state: SessionState, host: TurnHost, text: str) -> str:
        rules, scheduler, triggers = self._wire(state, host)
        raw = text.strip()
        command = parse_command(raw)
        if command is not None:
            rules.run("before_command", {"raw": raw})
            self._run_command(state, host, scheduler, command)
            rules.run(
                "after_command",
                {"mode": command.kind, "title": command.title, "focus": command.focus, "first_line": command.first_line},
            )
            return SWALLOWED_INPUT

        if not state.config.enabled:
            return text
        if state.config.triggers_enabled:
            hits = triggers.detect(text)
            if hits:
                triggers.queue(hits)
                self._logger.debug("Queued %s triggered cards from input", len(hits))
        return text

    def _run_command(self, state: SessionState, host: TurnHost, scheduler: JobScheduler, command: Command) -> None:
        cfg = state.config
        if command.kind == "help":
            host.message = HELP_MESSAGE
        elif command.kind == "on":
            cfg.enabled = True
            host.message = "Lore Cards: enabled."
        elif command.kind == "off":
            cfg.enabled = False
            host.message = "Lore Cards: disabled."
        elif command.kind == "config":
            self._write_config_card(state, host)
            host.message = "Lore Cards: Config card created/updated."
        elif command.kind == "ban":
            if command.title:
                cfg.banned_titles.add(command.title)
                host.message = "Lore Cards: title banned."
        elif command.kind == "redo":
            if command.title and not scheduler.schedule_generate(command.title, redo=True):
                host.message = "Lore Cards: a card job is already pending."
        elif command.kind == "create":
            if command.title and not scheduler.schedule_generate(
                command.title,
                focus=command.focus,
                first_line=command.first_line,
            ):
                host.message = "Lore Cards: a card job is already pending."

        if command.kind in ("on", "off", "ban") and find_card(host.cards, CONFIG_CARD_TITLE) is not None:
            # keep the editable record in step, it is re-read on every context build
            self._write_config_card(state, host)

    def _context(self, state: SessionState, host: TurnHost, text: str) -> str:
        rules, scheduler, triggers = self._wire(state, host)
        rules.run("turn_start", {})
        rules.run("before_context", {"text": text})

        self._read_config_card(state, host)
        if not state.config.enabled:
            return text

        if state.config.triggers_enabled:
            triggers.activate()
            text = triggers.inject(text)

        if scheduler.pending is None:
            scan_for_candidates(state, host)

        if scheduler.pending is not None:
            text = append_announcement(text, build_announcement(scheduler.pending))
        rules.run("after_context", {"text": text})
        return text

    def _output(self, state: SessionState, host: TurnHost, text: str) -> str:
        if not state.config.enabled:
            return text
        rules, scheduler, _ = self._wire(state, host)
        if scheduler.pending is not None:
            title = scheduler.pending.target_title
            try:
                scheduler.apply_result(text)
            except Exception as exc:
                self._logger.warning("Applying job result for %r failed: %s", title, exc, exc_info=True)
                host.message = f"Lore Cards: apply failed ({exc})"
        elif host.turn - state.last_auto_turn >= state.config.cooldown_turns:
            candidate = next_candidate(state, host)
            if candidate is not None:
                if scheduler.schedule_generate(candidate.title, source_text=candidate.source_snippet):
                    state.last_auto_turn = host.turn
                    host.message = f'Lore Cards: preparing "{candidate.title}" card... press Continue.'
        rules.run("turn_end", {})
        return text

    def _write_config_card(self, state: SessionState, host: TurnHost) -> None:
        card = create_unique_card(host.cards, CONFIG_CARD_TITLE, "class")
        card.type = "class"
        card.keys = ""
        card.entry = CONFIG_CARD_ENTRY
        card.description = serialize_config(state.config)

    def _read_config_card(self, state: SessionState, host: TurnHost) -> bool:
        card = find_card(host.cards, CONFIG_CARD_TITLE)
        if card is None or not (card.description or "").strip():
            return False
        applied = apply_config_patch(state.config, parse_config_text(card.description))
        return bool(applied)
