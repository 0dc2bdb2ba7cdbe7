"""
File reading helpers shared by the detector and the remediation engine.

- Detects binary content (skipped by the detector)
- Reads whole files as bytes so offsets are byte offsets
- Writes files atomically (temp file + rename in the same directory)
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

BINARY_PROBE_SIZE = 1024
BINARY_NONTEXT_RATIO = 0.3


def looks_binary(sample: bytes) -> bool:
    """
    Heuristic check for binary content.
    Args:
        sample (bytes): A sample of the file content.

    Returns:
        bool: True if the content is binary, False otherwise.
    """
    sample = sample[:BINARY_PROBE_SIZE]
    if not sample:
        return False

    if b"\x00" in sample:
        return True

    nontext = 0
    for byte in sample:
        if byte in b"\t\n\r\f\b":
            continue

        if byte < 32 or byte > 126:
            nontext += 1

    return nontext / len(sample) > BINARY_NONTEXT_RATIO


def read_bytes(path: str | Path, max_bytes: int | None = None) -> bytes:
    """
    Read a file as bytes, truncated to ``max_bytes`` when given.

    Raises:
        OSError: if the file cannot be opened or read
    """
    with Path(path).open("rb") as f:
        if max_bytes is None:
            return f.read()
        return f.read(max_bytes)


def atomic_write(path: str | Path, data: bytes, mode: int | None = None) -> None:
    """
    Replace ``path`` with ``data`` so readers never see a partial file.

    The temporary file is created next to the target so the final rename
    stays on one filesystem.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp_name, mode)
        elif path.exists():
            os.chmod(tmp_name, path.stat().st_mode & 0o7777)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


__all__ = ["looks_binary", "read_bytes", "atomic_write"]
