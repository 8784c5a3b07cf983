from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .core.engine import LoreEngine
from .core.errors import AdventureNotFoundError
from .core.normalize import normalize_title_key, parse_json_dict
from .core.types import SessionState, TurnHost
from .persistence.sqlalchemy.repos import AdventureCardStore


@dataclass
class LoreTurnResult:
    status: str
    text: str
    stop: bool = False
    message: Optional[str] = None
    reason: Optional[str] = None


class LoreAdventure:
    """Database-backed host for :class:`LoreEngine`.

    Each call opens a unit of work, loads the adventure's session state,
    cards and recent turns, runs one engine phase, then saves the state back
    whatever happened inside the engine.
    """

    MAX_HISTORY_TURNS = 50
    PLAYER_KIND = "player"
    NARRATOR_KIND = "narrator"

    def __init__(
        self,
        uow_factory: Callable[[], Any],
        engine: LoreEngine | None = None,
        *,
        record_turns: bool = True,
        logger: logging.Logger | None = None,
    ):
        self._uow_factory = uow_factory
        self._logger = logger or logging.getLogger(__name__)
        self._engine = engine or LoreEngine(logger=self._logger)
        self._record_turns = record_turns

    def get_or_create_adventure(self, name: str, namespace: str = "default") -> str:
        normalized = normalize_title_key(name) or "main"
        with self._uow_factory() as uow:
            row = uow.adventures.get_by_name(namespace, normalized)
            if row is None:
                row = uow.adventures.create(name=name, name_normalized=normalized, namespace=namespace)
                self._logger.info("Created adventure %s name=%r", row.id, name)
            uow.commit()
            return row.id

    def load_state(self, adventure_id: str) -> SessionState:
        with self._uow_factory() as uow:
            row = uow.adventures.get(adventure_id)
            if row is None:
                raise AdventureNotFoundError(adventure_id)
            return SessionState.from_dict(parse_json_dict(row.state_json))

    def record_turn(self, adventure_id: str, kind: str, content: str) -> None:
        with self._uow_factory() as uow:
            if uow.adventures.get(adventure_id) is None:
                raise AdventureNotFoundError(adventure_id)
            uow.turns.add(adventure_id, kind, content)
            uow.commit()

    def on_input(self, adventure_id: str, text: str) -> LoreTurnResult:
        def _phase(engine: LoreEngine, state: SessionState, host: TurnHost, uow) -> tuple[str, bool]:
            out = engine.handle_input(state, host, text)
            if self._record_turns and out.strip():
                uow.turns.add(adventure_id, self.PLAYER_KIND, out)
            return out, False

        return self._run(adventure_id, text, False, _phase)

    def on_context(self, adventure_id: str, text: str, stop: bool = False) -> LoreTurnResult:
        def _phase(engine: LoreEngine, state: SessionState, host: TurnHost, uow) -> tuple[str, bool]:
            return engine.handle_context(state, host, text, stop)

        return self._run(adventure_id, text, stop, _phase)

    def on_output(self, adventure_id: str, text: str) -> LoreTurnResult:
        def _phase(engine: LoreEngine, state: SessionState, host: TurnHost, uow) -> tuple[str, bool]:
            out = engine.handle_output(state, host, text)
            if self._record_turns and out.strip():
                uow.turns.add(adventure_id, self.NARRATOR_KIND, out)
            return out, False

        return self._run(adventure_id, text, False, _phase)

    def _run(self, adventure_id: str, text: str, stop: bool, phase) -> LoreTurnResult:
        try:
            with self._uow_factory() as uow:
                adventure = uow.adventures.get(adventure_id)
                if adventure is None:
                    return LoreTurnResult(status="error", text=text, stop=stop, reason="adventure_not_found")
                row_version = adventure.row_version
                state = SessionState.from_dict(parse_json_dict(adventure.state_json))
                turns = uow.turns.recent(adventure_id, limit=self.MAX_HISTORY_TURNS)
                host = TurnHost(
                    turn=uow.turns.count(adventure_id),
                    history=[t.content for t in turns],
                    cards=AdventureCardStore(uow.cards, adventure_id),
                )
                try:
                    out, out_stop = phase(self._engine, state, host, uow)
                finally:
                    saved = uow.adventures.save_state(adventure_id, row_version, state.to_dict())
                if not saved:
                    uow.rollback()
                    return LoreTurnResult(
                        status="conflict",
                        text=text,
                        stop=stop,
                        message=host.message,
                        reason="row_version_changed",
                    )
                uow.commit()
                return LoreTurnResult(status="ok", text=out, stop=out_stop, message=host.message)
        except Exception as exc:  # pragma: no cover - defensive surface
            self._logger.exception("Lore Cards adventure %s call failed", adventure_id)
            return LoreTurnResult(status="error", text=text, stop=stop, message=f"Lore Cards: {exc}", reason=str(exc))
