from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from .normalize import sanitize_soft, sanitize_title

_PREFIX_RE = re.compile(r"^\s*/(?:lc|lore)\b\s*(.*?)\s*$", re.IGNORECASE | re.DOTALL)
_TOGGLE_RE = re.compile(r"^(on|off|config)$", re.IGNORECASE)
_TITLED_RE = re.compile(r"^(redo|ban)\s+\"?([^\"]+)\"?$", re.IGNORECASE)


@dataclass
class Command:
    kind: str
    title: str = ""
    focus: str = ""
    first_line: str = ""


def parse_command(text: str) -> Optional[Command]:
    """Parse a ``/lc`` (or ``/lore``) command; return None for ordinary input.

    Forms::

        /lc on | /lc off | /lc config
        /lc redo "Title"
        /lc ban "Title"
        /lc Title / optional focus / optional first line
    """
    match = _PREFIX_RE.match(text or "")
    if match is None:
        return None
    body = match.group(1).strip()
    if not body:
        return Command(kind="help")

    toggle = _TOGGLE_RE.match(body)
    if toggle:
        return Command(kind=toggle.group(1).lower())

    titled = _TITLED_RE.match(body)
    if titled:
        title = sanitize_title(titled.group(2))
        return Command(kind=titled.group(1).lower(), title=title)

    parts = [part.strip() for part in body.split("/", 2)]
    title = sanitize_title(parts[0])
    focus = sanitize_soft(parts[1]) if len(parts) > 1 else ""
    first_line = sanitize_soft(parts[2]) if len(parts) > 2 else ""
    return Command(kind="create", title=title, focus=focus, first_line=first_line)
