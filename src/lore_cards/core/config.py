from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field, fields
from typing import Any

from .normalize import sanitize_title

CONFIG_CARD_TITLE = "Lore Cards Config"
CONFIG_CARD_ENTRY = "Adjust Lore Cards settings by editing the notes (key: value)."

_TRUE_RE = re.compile(r"^(true|1|yes|on)$", re.IGNORECASE)
_CONFIG_LINE_RE = re.compile(r"^([a-zA-Z][a-zA-Z0-9_]*)\s*:\s*(.*)$")

DEFAULT_PRONOUNS = "he, him, his, she, her, hers, they, them, their, theirs"
DEFAULT_RELATIONSHIP_WORDS = (
    "father, mother, dad, mum, mom, son, daughter, sister, brother, husband, wife, "
    "spouse, partner, fiancée, fiancé, friend, buddy, mate, pal, rival, enemy, mentor, "
    "mentee, boss, chief, leader, captain, teacher, coach, boyfriend, girlfriend, ex"
)
DEFAULT_BANNED_TITLES = (
    "North", "East", "South", "West",
    "Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday",
    "January", "February", "March", "April", "May", "June", "July", "August",
    "September", "October", "November", "December",
)

DEFAULT_GENERATION_PROMPT = "\n".join(
    [
        "<SYSTEM>",
        "Write a concise, plot-relevant entry for %{title} in third person.",
        "Avoid temporary minutiae; prefer stable facts that matter to the story.",
        "Imitate the story's style.",
        "If a Focus is provided, weight content accordingly.",
        "</SYSTEM>",
        "Focus: %{focus}",
        "Current entry seed (may be empty):",
        "%{entry}",
    ]
)

DEFAULT_COMPRESSION_PROMPT = "\n".join(
    [
        "<SYSTEM>",
        "Task: extractive selection ONLY.",
        "You are given a list of memory bullets. Each bullet has a unique [#id].",
        "Return JSON ONLY with up to 20 ids to keep.",
        'Schema: {"keep":["#id", ...]}',
        "Rules: Do NOT invent ids. Prefer recent (higher T) and non-duplicates. If in doubt, omit.",
        "</SYSTEM>",
        "BULLETS:",
        "%{memory}",
        "JSON only:",
    ]
)


def _opt(default: Any, kind: str, minimum: int | None = None):
    metadata = {"kind": kind}
    if minimum is not None:
        metadata["min"] = minimum
    if isinstance(default, (set, list, dict)):
        return field(default_factory=lambda: copy.deepcopy(default), metadata=metadata)
    return field(default=default, metadata=metadata)


@dataclass
class LoreConfig:
    enabled: bool = _opt(True, "bool")
    cooldown_turns: int = _opt(18, "int", 0)
    entry_char_limit: int = _opt(650, "int", 1)
    memory_auto_update: bool = _opt(True, "bool")
    memory_char_limit: int = _opt(2200, "int", 1)
    ignore_all_caps: bool = _opt(True, "bool")
    lookback: int = _opt(6, "int", 0)
    use_bullets: bool = _opt(True, "bool")
    scan_block_limit: int = _opt(4000, "int", 0)
    candidates_cap: int = _opt(100, "int", 1)
    default_type: str = _opt("class", "text")
    character_pronouns: str = _opt(DEFAULT_PRONOUNS, "text")
    relationship_words: str = _opt(DEFAULT_RELATIONSHIP_WORDS, "text")
    conjunction_guard: bool = _opt(True, "bool")
    enable_rules: bool = _opt(True, "bool")
    triggers_enabled: bool = _opt(True, "bool")
    trigger_ttl: int = _opt(3, "int", 1)
    trigger_max_per_turn: int = _opt(5, "int", 0)
    trigger_inject_per_turn: int = _opt(3, "int", 0)
    trigger_anchor: str = _opt("World Lore:", "optional_text")
    trigger_case_insensitive: bool = _opt(True, "bool")
    banned_titles: set[str] = _opt(set(DEFAULT_BANNED_TITLES), "titles")
    generation_prompt: str = _opt(DEFAULT_GENERATION_PROMPT, "template")
    compression_prompt: str = _opt(DEFAULT_COMPRESSION_PROMPT, "template")

    def banned_keys(self) -> set[str]:
        return {title.lower() for title in self.banned_titles}


CONFIG_FIELDS = {f.name: f for f in fields(LoreConfig)}
EDITABLE_KEYS = [name for name, f in CONFIG_FIELDS.items() if f.metadata["kind"] != "template"]


def load_config(persisted: dict[str, Any] | None) -> LoreConfig:
    """Merge persisted overrides over fresh defaults.

    ``banned_titles`` is unioned with the defaults, dict values shallow-merge,
    everything else overwrites. Unknown keys are ignored.
    """
    cfg = LoreConfig()
    if not isinstance(persisted, dict):
        return cfg
    for key, value in persisted.items():
        option = CONFIG_FIELDS.get(key)
        if option is None or value is None:
            continue
        current = getattr(cfg, key)
        if option.metadata["kind"] == "titles":
            if isinstance(value, str):
                value = value.split(",")
            if isinstance(value, (list, tuple, set)):
                merged = set(current)
                merged.update(t for t in (sanitize_title(v) for v in value) if t)
                setattr(cfg, key, merged)
        elif isinstance(current, dict) and isinstance(value, dict):
            setattr(cfg, key, {**current, **value})
        else:
            setattr(cfg, key, copy.deepcopy(value))
    return cfg


def config_to_dict(cfg: LoreConfig) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for name, option in CONFIG_FIELDS.items():
        value = getattr(cfg, name)
        if option.metadata["kind"] == "titles":
            value = sorted(value, key=str.lower)
        out[name] = copy.deepcopy(value)
    return out


def _render_value(cfg: LoreConfig, key: str) -> str:
    value = getattr(cfg, key)
    kind = CONFIG_FIELDS[key].metadata["kind"]
    if kind == "bool":
        return "true" if value else "false"
    if kind == "titles":
        return ", ".join(sorted(value, key=str.lower))
    return str(value)


def serialize_config(cfg: LoreConfig) -> str:
    lines = [f"{key}: {_render_value(cfg, key)}" for key in EDITABLE_KEYS]
    lines.append("")
    lines.append("# Supported keys: " + ", ".join(EDITABLE_KEYS))
    return "\n".join(lines)


def parse_config_text(text: str) -> dict[str, str]:
    out: dict[str, str] = {}
    for raw in str(text or "").splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        match = _CONFIG_LINE_RE.match(line)
        if match is None:
            continue
        out[match.group(1)] = match.group(2).strip()
    return out


def _to_int(raw: str, previous: int) -> int:
    digits = re.sub(r"[^0-9\-]", "", raw)
    match = re.match(r"-?\d+", digits)
    if match is None:
        return previous
    return int(match.group(0))


def apply_config_patch(cfg: LoreConfig, patch: dict[str, str]) -> list[str]:
    applied: list[str] = []
    for key, raw in patch.items():
        option = CONFIG_FIELDS.get(key)
        if option is None:
            continue
        kind = option.metadata["kind"]
        value = str(raw or "").strip()
        previous = getattr(cfg, key)
        if kind == "bool":
            new_value: Any = bool(_TRUE_RE.match(value))
        elif kind == "int":
            new_value = max(option.metadata.get("min", 0), _to_int(value, previous))
        elif kind == "text":
            new_value = value or previous
        elif kind == "optional_text":
            new_value = value
        elif kind == "titles":
            new_value = {t for t in (sanitize_title(part) for part in value.split(",")) if t}
        else:
            # templates are not editable through the key/value record
            continue
        setattr(cfg, key, new_value)
        applied.append(key)
    return applied
