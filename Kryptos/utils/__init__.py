"""
Kryptos utilities package.

Provides file handling and path filtering utilities.
"""
from __future__ import annotations

from Kryptos.utils.file_loader import atomic_write, looks_binary, read_bytes
from Kryptos.utils.path_filters import (
    DEFAULT_SKIP_DIRS,
    DEFAULT_SKIP_EXTS,
    is_sensitive_path,
    load_ignore_patterns,
    should_scan_path,
)

__all__ = [
    "atomic_write",
    "looks_binary",
    "read_bytes",
    "DEFAULT_SKIP_DIRS",
    "DEFAULT_SKIP_EXTS",
    "is_sensitive_path",
    "load_ignore_patterns",
    "should_scan_path",
]
