"""
Kryptos - secrets detection and vaulting for code repositories.
"""
from __future__ import annotations

__version__ = "0.3.0"

from Kryptos.core.detector import Detector, detect_text
from Kryptos.core.result import Finding, ScanResult, SecretKind, Severity
from Kryptos.core.scanner import scan_directory, scan_file, scan_paths
from Kryptos.remediation.engine import RemediationEngine, Resolution
from Kryptos.vault.crypto import KeyPair
from Kryptos.vault.store import Vault

__all__ = [
    "__version__",
    "Detector",
    "detect_text",
    "Finding",
    "ScanResult",
    "SecretKind",
    "Severity",
    "scan_directory",
    "scan_file",
    "scan_paths",
    "RemediationEngine",
    "Resolution",
    "KeyPair",
    "Vault",
]
