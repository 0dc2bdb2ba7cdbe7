"""
Placeholder tokens left in source code in place of a sealed secret.

Format: ``kryptos-vault://<entry id>`` where the id is 24 lowercase hex
characters. The prefix is fixed so placeholders can be found, reversed to an
entry id, and excluded from detection.
"""
from __future__ import annotations

import re
from typing import List, Optional, Tuple

PLACEHOLDER_PREFIX = "kryptos-vault://"
ENTRY_ID_LENGTH = 24

PLACEHOLDER_RE = re.compile(re.escape(PLACEHOLDER_PREFIX) + r"([0-9a-f]{%d})(?![0-9a-f])" % ENTRY_ID_LENGTH)


def make_placeholder(entry_id: str) -> str:
    if not re.fullmatch(r"[0-9a-f]{%d}" % ENTRY_ID_LENGTH, entry_id):
        raise ValueError(f"Not a vault entry id: {entry_id!r}")
    return PLACEHOLDER_PREFIX + entry_id


def parse_placeholder(text: str) -> Optional[str]:
    """Return the entry id if ``text`` is exactly one placeholder token."""
    match = PLACEHOLDER_RE.fullmatch(text.strip())
    return match.group(1) if match else None


def find_placeholders(text: str) -> List[Tuple[int, int, str]]:
    """All placeholder tokens in ``text`` as (start, end, entry_id)."""
    return [(m.start(), m.end(), m.group(1)) for m in PLACEHOLDER_RE.finditer(text)]


__all__ = [
    "PLACEHOLDER_PREFIX",
    "PLACEHOLDER_RE",
    "make_placeholder",
    "parse_placeholder",
    "find_placeholders",
]
