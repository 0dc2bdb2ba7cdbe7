"""
Tuning constants and file locations.

Numbers here were picked against the test-suite scenarios; change them
together with the tests in tests/test_detector.py.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

VAULT_DIR = ".kryptos"
VAULT_FILE = "vault.json"
LOCK_FILE = "vault.lock"
TEMPLATE_FILE = ".env.example"
IGNORE_FILE = ".kryptosignore"
ALLOW_FILE = ".kryptosallow"

KEY_DIR_ENV = "KRYPTOS_KEY_DIR"

DEFAULT_CONFIDENCE_FLOOR = 0.5
DEFAULT_ENTROPY_THRESHOLD = 0.7
DEFAULT_MIN_TOKEN_LENGTH = 20
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024


@dataclass(frozen=True)
class DetectorConfig:
    """
    Detection tuning parameters.

    Attributes:
        confidence_floor: Findings below this confidence are discarded
        entropy_threshold: Minimum entropy score (0-1) for heuristic findings
        min_token_length: Shortest token considered by the entropy sweep
        entropy_sweep: Disable to run pattern rules only
        allow_patterns: Extra regexes; matching secrets are never reported
        max_file_size: Files larger than this (bytes) are skipped by the scanner
        workers: Thread count for multi-file scans (None = executor default)
    """
    confidence_floor: float = DEFAULT_CONFIDENCE_FLOOR
    entropy_threshold: float = DEFAULT_ENTROPY_THRESHOLD
    min_token_length: int = DEFAULT_MIN_TOKEN_LENGTH
    entropy_sweep: bool = True
    allow_patterns: Tuple[str, ...] = field(default_factory=tuple)
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    workers: Optional[int] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence_floor <= 1.0:
            raise ValueError(f"confidence_floor must be within [0, 1], got {self.confidence_floor}")
        if not 0.0 <= self.entropy_threshold <= 1.0:
            raise ValueError(f"entropy_threshold must be within [0, 1], got {self.entropy_threshold}")
        if self.min_token_length < 1:
            raise ValueError("min_token_length must be positive")


def _read_pattern_file(path: Path) -> list[str]:
    out: list[str] = []
    try:
        for line in path.read_text(encoding="utf-8", errors="ignore").splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            out.append(line)
    except OSError as e:
        logger.warning("Cannot read %s: %s", path, e)
        return []
    return out


def load_config(root: str | Path, base: Optional[DetectorConfig] = None) -> DetectorConfig:
    """
    Build the detector config for a project.

    Merges the project's allow file (one regex per line) into ``base``.
    """
    config = base or DetectorConfig()
    allow_file = Path(root) / ALLOW_FILE
    if not allow_file.exists():
        return config
    extra = tuple(_read_pattern_file(allow_file))
    logger.debug("Loaded %d allow-list patterns from %s", len(extra), allow_file)
    return replace(config, allow_patterns=config.allow_patterns + extra)


def vault_dir(root: str | Path) -> Path:
    return Path(root) / VAULT_DIR


def default_key_dir() -> Path:
    """Directory for owner private keys. Always outside any project tree."""
    override = os.environ.get(KEY_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "kryptos" / "keys"


__all__ = [
    "DetectorConfig",
    "load_config",
    "vault_dir",
    "default_key_dir",
    "VAULT_DIR",
    "VAULT_FILE",
    "LOCK_FILE",
    "TEMPLATE_FILE",
    "IGNORE_FILE",
    "ALLOW_FILE",
]
