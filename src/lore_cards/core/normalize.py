from __future__ import annotations

import json
import re
import unicodedata
from typing import Any

_INVISIBLE_RE = re.compile("[\u200b-\u200f\u202a-\u202e\u2060-\u206f\ufeff]")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_EDGE_QUOTES_LEAD_RE = re.compile("^['\"“”‘’`{\\[]+")
_EDGE_QUOTES_TRAIL_RE = re.compile("['\"“”‘’`}\\]]+$")
_TITLE_SEPARATORS_RE = re.compile("[\\s\\-\u2013\u2014_]+")
_KEEP_ID_RE = re.compile(r"^[a-f0-9]{6}$", re.IGNORECASE)

ELLIPSIS = "…"


def normalize_text(value: object) -> str:
    text = "" if value is None else str(value)
    text = unicodedata.normalize("NFKC", text)
    text = _INVISIBLE_RE.sub("", text)
    return _CONTROL_RE.sub("", text)


def sanitize_title(value: object) -> str:
    text = normalize_text(value).strip()
    text = _EDGE_QUOTES_LEAD_RE.sub("", text)
    text = _EDGE_QUOTES_TRAIL_RE.sub("", text)
    text = _TITLE_SEPARATORS_RE.sub(" ", text)
    return text.strip()


def sanitize_soft(value: object) -> str:
    text = normalize_text(value)
    text = re.sub(r"[\r\n]+", " ", text)
    text = _EDGE_QUOTES_LEAD_RE.sub("", text)
    text = _EDGE_QUOTES_TRAIL_RE.sub("", text)
    return text.strip()


def normalize_title_key(value: object) -> str:
    """Case-folded, punctuation-collapsed key used for title identity."""
    text = sanitize_title(value).lower()
    text = re.sub(r"[^a-z0-9]+", " ", text)
    return text.strip()


def clip(value: object, limit: int) -> str:
    text = ("" if value is None else str(value)).rstrip()
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 1)].rstrip() + ELLIPSIS


def hash6(text: str) -> str:
    h = 0
    for ch in text:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return f"{h:08x}"[:6]


def memory_id(text: str) -> str:
    return "#" + hash6(text)


def format_memory_line(turn: int, text: str) -> str:
    return f"[T{turn}][{memory_id(text)}] - {text}"


def format_entry(text: str, use_bullets: bool) -> str:
    text = (text or "").strip()
    if not text:
        return ""
    if use_bullets and not re.match(r"^\s*[-•]", text):
        return "- " + re.sub(r"\n+", "\n- ", text)
    return text


def parse_keep_ids(text: str) -> list[str]:
    """Return validated ``#xxxxxx`` ids from the last JSON object carrying ``keep``."""
    data = _last_json_object(text or "", required_key="keep")
    if data is None:
        return []
    raw = data.get("keep")
    if not isinstance(raw, list):
        return []
    out: list[str] = []
    for item in raw:
        candidate = str(item or "").strip().lstrip("#")
        if not _KEEP_ID_RE.match(candidate):
            continue
        key = "#" + candidate.lower()
        if key not in out:
            out.append(key)
    return out


def _last_json_object(text: str, required_key: str) -> dict[str, Any] | None:
    decoder = json.JSONDecoder()
    found: dict[str, Any] | None = None
    pos = text.find("{")
    while pos != -1:
        try:
            data, _ = decoder.raw_decode(text, pos)
        except ValueError:
            data = None
        if isinstance(data, dict) and required_key in data:
            found = data
        pos = text.find("{", pos + 1)
    return found


def parse_json_dict(text: str | None) -> dict[str, Any]:
    if not text:
        return {}
    try:
        data = json.loads(text)
    except Exception:
        return {}
    return data if isinstance(data, dict) else {}


def dump_json(data: dict[str, Any]) -> str:
    return json.dumps(data, ensure_ascii=True, separators=(",", ":"))


def csv_to_set(value: str) -> set[str]:
    return {part.strip().lower() for part in str(value or "").split(",") if part.strip()}
