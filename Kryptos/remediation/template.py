"""
``.env.example`` style template listing the names of sealed secrets.

The template is regenerated from the vault on every remediation run and is
never edited by hand.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Tuple

from Kryptos.utils.file_loader import atomic_write
from Kryptos.vault.models import VaultEntry

_NAME_CLEAN_RE = re.compile(r"[^A-Za-z0-9]+")


def normalize_name(raw: str, fallback: str = "SECRET") -> str:
    """
    Turn an identifier from source code into an environment variable name.

    >>> normalize_name("db.password")
    'DB_PASSWORD'
    >>> normalize_name("aws-access-key-id")
    'AWS_ACCESS_KEY_ID'
    >>> normalize_name("2fa_seed")
    'SECRET_2FA_SEED'
    """
    name = _NAME_CLEAN_RE.sub("_", raw).strip("_").upper()
    if not name:
        return fallback
    if name[0].isdigit():
        name = f"{fallback}_{name}"
    return name


@dataclass
class Template:
    """
    Ordered mapping of variable name to sample value.

    Each row remembers the vault entry it stands for so the same entry is
    listed once even when it was protected in several files.
    """
    rows: Dict[str, str] = field(default_factory=dict)
    _entry_names: Dict[str, str] = field(default_factory=dict, repr=False)

    def add(self, name: str, entry_id: str, value: str = "") -> str:
        """
        Add a row for ``entry_id`` and return the name it was listed under.

        A different entry that wants an existing name gets a numeric suffix.
        """
        if entry_id in self._entry_names:
            return self._entry_names[entry_id]
        unique = name
        n = 2
        while unique in self.rows:
            unique = f"{name}_{n}"
            n += 1
        self.rows[unique] = value
        self._entry_names[entry_id] = unique
        return unique

    def name_for(self, entry_id: str) -> str | None:
        return self._entry_names.get(entry_id)

    def items(self) -> List[Tuple[str, str]]:
        return list(self.rows.items())

    def __len__(self) -> int:
        return len(self.rows)

    def __contains__(self, name: object) -> bool:
        return name in self.rows

    def render(self) -> str:
        header = "# Generated by kryptos. Values live in the project vault; do not edit.\n"
        return header + "".join(f"{name}={value}\n" for name, value in self.rows.items())

    def write(self, path: str | Path) -> Path:
        """Replace the template file atomically."""
        path = Path(path)
        atomic_write(path, self.render().encode("utf-8"))
        return path

    @classmethod
    def from_entries(cls, entries: Iterable[VaultEntry]) -> "Template":
        template = cls()
        for entry in entries:
            if entry.provenance.whole_file:
                continue
            template.add(normalize_name(entry.label or f"secret_{entry.id[:8]}"), entry.id)
        return template


__all__ = ["Template", "normalize_name"]
