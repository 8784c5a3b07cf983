from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from .config import LoreConfig, config_to_dict, load_config
from .ports import CardStorePort

JOB_GENERATE = "generate"
JOB_COMPRESS = "compress"
JOB_MODES = (JOB_GENERATE, JOB_COMPRESS)

NO_AUTO_TURN = -999


@dataclass
class Candidate:
    title: str
    turn_index: int
    source_snippet: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "turn_index": self.turn_index,
            "source_snippet": self.source_snippet,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Optional["Candidate"]:
        title = str(raw.get("title") or "").strip()
        if not title:
            return None
        try:
            turn_index = int(raw.get("turn_index", 0))
        except (TypeError, ValueError):
            turn_index = 0
        return cls(title=title, turn_index=turn_index, source_snippet=str(raw.get("source_snippet") or ""))


@dataclass
class Classification:
    desired_type: str
    score: int


@dataclass
class PendingJob:
    mode: str
    target_title: str
    target_ref: Optional[str] = None
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def prompt(self) -> str:
        return str(self.payload.get("prompt") or "")

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "target_title": self.target_title,
            "target_ref": self.target_ref,
            "payload": dict(self.payload),
        }

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["PendingJob"]:
        if not isinstance(raw, dict):
            return None
        mode = raw.get("mode")
        title = str(raw.get("target_title") or "").strip()
        if mode not in JOB_MODES or not title:
            return None
        target_ref = raw.get("target_ref")
        payload = raw.get("payload")
        return cls(
            mode=mode,
            target_title=title,
            target_ref=str(target_ref) if target_ref is not None else None,
            payload=dict(payload) if isinstance(payload, dict) else {},
        )


@dataclass
class SessionState:
    """Everything the engine carries between lifecycle calls.

    Owned by the caller: load it with :meth:`from_dict`, pass it into each
    engine call, and save :meth:`to_dict` afterwards.
    """

    config: LoreConfig = field(default_factory=LoreConfig)
    last_auto_turn: int = NO_AUTO_TURN
    candidates: list[Candidate] = field(default_factory=list)
    pending: Optional[PendingJob] = None
    last_applied_title: Optional[str] = None
    trigger_queued: list[str] = field(default_factory=list)
    trigger_active: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "config": config_to_dict(self.config),
            "last_auto_turn": self.last_auto_turn,
            "candidates": [c.to_dict() for c in self.candidates],
            "pending": self.pending.to_dict() if self.pending is not None else None,
            "last_applied_title": self.last_applied_title,
            "trigger_queued": list(self.trigger_queued),
            "trigger_active": [[card_id, ttl] for card_id, ttl in self.trigger_active.items()],
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> "SessionState":
        raw = raw if isinstance(raw, dict) else {}
        candidates = []
        for item in raw.get("candidates") or []:
            if isinstance(item, dict):
                candidate = Candidate.from_dict(item)
                if candidate is not None:
                    candidates.append(candidate)

        # active triggers are stored as pairs so activation order survives JSON
        active: dict[str, int] = {}
        for pair in raw.get("trigger_active") or []:
            if isinstance(pair, (list, tuple)) and len(pair) == 2:
                try:
                    ttl = int(pair[1])
                except (TypeError, ValueError):
                    continue
                if ttl > 0:
                    active[str(pair[0])] = ttl

        try:
            last_auto_turn = int(raw.get("last_auto_turn", NO_AUTO_TURN))
        except (TypeError, ValueError):
            last_auto_turn = NO_AUTO_TURN

        queued = []
        for card_id in raw.get("trigger_queued") or []:
            if str(card_id) not in queued:
                queued.append(str(card_id))

        return cls(
            config=load_config(raw.get("config")),
            last_auto_turn=last_auto_turn,
            candidates=candidates,
            pending=PendingJob.from_dict(raw.get("pending")),
            last_applied_title=raw.get("last_applied_title"),
            trigger_queued=queued,
            trigger_active=active,
        )


@dataclass
class TurnHost:
    turn: int
    history: Sequence[str]
    cards: CardStorePort
    message: Optional[str] = None
