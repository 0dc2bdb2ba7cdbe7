from __future__ import annotations

import fnmatch
import logging
from pathlib import Path
from typing import List, Optional

from Kryptos.config import IGNORE_FILE, VAULT_DIR

logger = logging.getLogger(__name__)

DEFAULT_SKIP_DIRS = {
    ".git", ".hg", ".svn",
    ".venv", "venv", "__pycache__", ".mypy_cache", ".pytest_cache", ".tox",
    "node_modules", "dist", "build",
    VAULT_DIR,
}

# Binary and archive formats
DEFAULT_SKIP_EXTS = {
    ".png", ".jpg", ".jpeg", ".gif", ".ico", ".pdf",
    ".zip", ".gz", ".tar", ".rar", ".7z",
    ".class", ".jar", ".war", ".pyc",
    ".exe", ".dll", ".so", ".o", ".a",
    ".woff", ".woff2", ".ttf", ".mp3", ".mp4",
}

# Files that hold credentials by convention, whatever their content
SENSITIVE_NAMES = {
    "id_rsa", "id_dsa", "id_ecdsa", "id_ed25519",
    ".netrc", ".npmrc", ".pypirc", ".git-credentials", "pip.conf",
    "credentials.json", "service-account.json", "secrets.yaml", "secrets.yml",
}
SENSITIVE_EXTS = {".pem", ".key", ".p12", ".pfx", ".jks", ".keystore"}
# Committed on purpose: they list names, not values
TEMPLATE_NAMES = {".env.example", ".env.sample", ".env.template"}

GITIGNORE_FILE = ".gitignore"


def _read_ignore_file(path: Path) -> List[str]:
    out: List[str] = []
    try:
        for line in path.read_text(encoding="utf-8", errors="ignore").splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            out.append(line)
    except OSError as e:
        logger.warning("Cannot read ignore file %s: %s", path, e)
        return []
    return out


def _pattern_matches(rel_str: str, is_dir: bool, pattern: str) -> bool:
    """
    Minimal gitignore-like matching against a relative posix path string.

    Semantics:
      - Leading '/' anchors to repo root.
      - Trailing '/' marks a directory pattern; it matches the directory and
        every path below it.
      - Otherwise the pattern is unanchored and may match at any depth.
    """
    anchored = pattern.startswith("/")
    dir_only = pattern.endswith("/")
    pat_core = pattern.lstrip("/").rstrip("/")

    parts = rel_str.split("/")
    # Candidate directory prefixes; the path itself only counts when it is a dir
    # or the pattern is not directory-only.
    candidates = ["/".join(parts[:i]) for i in range(1, len(parts))]
    if is_dir or not dir_only:
        candidates.append(rel_str)

    for target in candidates:
        if fnmatch.fnmatchcase(target, pat_core):
            return True
        if not anchored and fnmatch.fnmatchcase(target, f"*/{pat_core}"):
            return True
    return False


def load_ignore_patterns(
    root: Path,
    respect_gitignore: bool,
    extra_ignore_file: Optional[Path] = None
) -> List[str]:
    """
    Load ordered ignore patterns from .gitignore and/or the project ignore file.

    - root: project root (all matches evaluated against paths relative to this root)
    - respect_gitignore: if True and .gitignore exists at root, include its patterns
    - extra_ignore_file: if provided and exists, include; otherwise try '.kryptosignore' at root

    Returns a flat, ordered list of patterns. Negations ('!pattern') are preserved; later
    entries take precedence during evaluation.
    """
    patterns: List[str] = []

    if respect_gitignore:
        gi = root / GITIGNORE_FILE
        if gi.exists():
            patterns.extend(_read_ignore_file(gi))
    if extra_ignore_file is not None and extra_ignore_file.exists():
        patterns.extend(_read_ignore_file(extra_ignore_file))
    else:
        own = root / IGNORE_FILE
        if own.exists():
            patterns.extend(_read_ignore_file(own))
    return patterns


def _ignored(rel_str: str, is_dir: bool, ignores: List[str]) -> bool:
    """Last matching pattern wins; a leading '!' re-includes."""
    ignored = False
    for pat in ignores:
        if not pat or pat.startswith("#"):
            continue
        negated = pat.startswith("!")
        if _pattern_matches(rel_str, is_dir, pat[1:] if negated else pat):
            ignored = not negated
    return ignored


def should_scan_path(
    path: Path,
    *,
    root: Path,
    ignores: List[str],
    default_skip_exts: bool = True,
    follow_symlinks: bool = False
) -> bool:
    """
    Decide whether ``path`` (a file or directory under ``root``) is scanned.

    Symlinks are skipped unless ``follow_symlinks``. Paths outside ``root``,
    below a default skip directory, or with a binary extension are skipped.
    The ordered ``ignores`` decide the rest; anything unmatched is scanned.
    """
    try:
        if path.is_symlink() and not follow_symlinks:
            return False
        rel = path.resolve().relative_to(root.resolve())
        is_dir = path.is_dir()
    except (OSError, ValueError):
        return False

    if not rel.parts:
        return True
    if DEFAULT_SKIP_DIRS.intersection(rel.parts):
        return False
    if default_skip_exts and not is_dir and path.suffix.lower() in DEFAULT_SKIP_EXTS:
        return False
    return not _ignored(rel.as_posix(), is_dir, ignores)


def is_sensitive_path(path: str | Path) -> bool:
    """
    True for well-known credential files (``.env*``, SSH keys, ``*.pem``...).

    >>> is_sensitive_path("deploy/.env.production")
    True
    >>> is_sensitive_path(".env.example")
    False
    >>> is_sensitive_path("src/app.py")
    False
    """
    name = Path(path).name
    if name in TEMPLATE_NAMES:
        return False
    if name == ".env" or name.startswith(".env."):
        return True
    return name in SENSITIVE_NAMES or Path(name).suffix.lower() in SENSITIVE_EXTS


__all__ = [
    "DEFAULT_SKIP_DIRS",
    "DEFAULT_SKIP_EXTS",
    "is_sensitive_path",
    "load_ignore_patterns",
    "should_scan_path",
]
