"""
Kryptos core package: detection pipeline, results and errors.
"""
from __future__ import annotations

from Kryptos.core.detector import Detector, detect_text
from Kryptos.core.errors import KryptosError
from Kryptos.core.result import Finding, ScanResult, SecretKind, Severity

__all__ = [
    "Detector",
    "detect_text",
    "KryptosError",
    "Finding",
    "ScanResult",
    "SecretKind",
    "Severity",
]
