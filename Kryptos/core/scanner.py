from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Set

from Kryptos.config import DetectorConfig, load_config
from Kryptos.core.detector import Detector
from Kryptos.core.errors import ScanIOError
from Kryptos.core.result import Finding, ScanResult
from Kryptos.utils.file_loader import looks_binary, read_bytes
from Kryptos.utils.path_filters import is_sensitive_path, load_ignore_patterns, should_scan_path

logger = logging.getLogger(__name__)


@dataclass
class _FileOutcome:
    path: str
    findings: List[Finding] = field(default_factory=list)
    error: Optional[str] = None
    skipped: bool = False


def _scan_one(detector: Detector, path: Path, max_file_size: int) -> _FileOutcome:
    """
    Scan a single file. Never raises: read errors become a warning on the outcome.
    """
    name = str(path)
    try:
        if path.stat().st_size > max_file_size:
            return _FileOutcome(name, error=f"Skipped large file: {name}", skipped=True)
        content = read_bytes(path)
    except OSError as e:
        err = ScanIOError(name, e.strerror or str(e))
        logger.warning("%s", err)
        return _FileOutcome(name, error=str(err))

    if looks_binary(content):
        logger.debug("Skipping binary file %s", name)
        return _FileOutcome(name, skipped=True)

    return _FileOutcome(name, findings=detector.scan(content, name))


def scan_paths(
    paths: Iterable[str | Path],
    config: Optional[DetectorConfig] = None,
    detector: Optional[Detector] = None,
) -> ScanResult:
    """
    Scan an explicit list of files concurrently.

    File enumeration and filtering is the caller's job. Findings are merged
    by (file path, start offset) after all workers finish, so the order does
    not depend on which worker completes first.

    Args:
        paths: Files to scan
        config: Detector configuration (ignored when ``detector`` is given)
        detector: Pre-built detector to share between calls

    Returns:
        ScanResult with merged findings and per-file warnings

    Example:
        >>> result = scan_paths(["config.py", "settings.env"])
        >>> blocking = result.blocking(0.5)
    """
    start_time = time.time()
    config = config or (detector.config if detector else DetectorConfig())
    detector = detector or Detector(config)
    files = [Path(p) for p in paths]

    with ThreadPoolExecutor(max_workers=config.workers) as pool:
        outcomes = list(pool.map(lambda p: _scan_one(detector, p, config.max_file_size), files))

    findings: List[Finding] = []
    errors: List[str] = []
    scanned = 0
    skipped = 0
    for outcome in outcomes:
        if outcome.error:
            errors.append(outcome.error)
        if outcome.skipped:
            skipped += 1
        elif outcome.error is None:
            scanned += 1
        findings.extend(outcome.findings)

    findings.sort(key=lambda f: (f.file_path, f.start, f.end))
    duration = (time.time() - start_time) * 1000  # ms

    return ScanResult(
        findings=findings,
        scanned_files=scanned,
        skipped_files=skipped,
        duration_ms=duration,
        errors=errors,
        sensitive_files=[str(p) for p in files if is_sensitive_path(p)],
    )


def _matches_extra(path: Path, extra: Set[str]) -> bool:
    for pattern in extra:
        if pattern.startswith("*") and path.name.endswith(pattern[1:]):
            return True
        if path.name == pattern:
            return True
    return False


def iter_project_files(
    directory: str | Path,
    recursive: bool = True,
    ignore_patterns: Optional[Set[str]] = None,
    respect_gitignore: bool = True,
) -> List[Path]:
    """
    Enumerate scannable files under ``directory`` in sorted order.

    Honors .gitignore, .kryptosignore, the default skip lists and the vault
    directory itself.
    """
    root = Path(directory)
    ignores = load_ignore_patterns(root, respect_gitignore=respect_gitignore)
    extra = ignore_patterns or set()

    file_iter = sorted(root.rglob("*")) if recursive else sorted(root.glob("*"))
    files: List[Path] = []
    for path in file_iter:
        if not should_scan_path(path, root=root, ignores=ignores):
            continue
        if not path.is_file() or _matches_extra(path, extra):
            continue
        files.append(path)
    return files


def scan_directory(
    directory: str | Path,
    recursive: bool = True,
    ignore_patterns: Optional[Set[str]] = None,
    config: Optional[DetectorConfig] = None,
) -> ScanResult:
    """
    Scan a directory for secrets.

    Args:
        directory: Path to directory to scan
        recursive: If True, scan subdirectories
        ignore_patterns: Additional file name patterns to ignore (e.g. "*.env")
        config: Detector configuration; defaults to load_config(directory)

    Returns:
        ScanResult containing all findings

    Example:
        >>> result = scan_directory("./my_project")
        >>> for finding in result.findings:
        ...     print(f"{finding.file_path}:{finding.line} - {finding.kind.value}")
    """
    dir_path = Path(directory)

    if not dir_path.is_dir():
        return ScanResult(findings=[], errors=[f"Not a directory: {directory}"])

    config = config or load_config(dir_path)
    files = iter_project_files(dir_path, recursive=recursive, ignore_patterns=ignore_patterns)
    return scan_paths(files, config=config)


def scan_file(filepath: str | Path, config: Optional[DetectorConfig] = None) -> ScanResult:
    """
    Scan a single file for secrets.

    Example:
        >>> result = scan_file("config.env")
        >>> if result.found_secrets:
        ...     print(f"Found {len(result.findings)} secrets!")
    """
    file_path = Path(filepath)

    if not file_path.exists():
        return ScanResult(findings=[], errors=[f"File not found: {filepath}"])

    return scan_paths([file_path], config=config)


__all__ = ["scan_paths", "scan_directory", "scan_file", "iter_project_files"]
