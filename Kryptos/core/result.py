from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

ENTROPY_RULE_ID = "EntropyHeuristic"


class SecretKind(Enum):
    """Classification assigned to a finding by the rule that matched."""
    CLOUD_KEY = "CloudKey"
    PRIVATE_KEY_BLOCK = "PrivateKeyBlock"
    GENERIC_TOKEN = "GenericToken"
    VCS_TOKEN = "VcsToken"
    CHAT_TOKEN = "ChatToken"
    PAYMENT_KEY = "PaymentKey"
    API_KEY = "ApiKey"
    CONNECTION_STRING = "ConnectionString"
    PASSWORD = "Password"


class Severity(Enum):
    """Severity level of the finding."""
    CRITICAL = 'critical'
    HIGH = "high"
    MEDIUM = 'medium'
    LOW = 'low'


_CRITICAL_KINDS = {
    SecretKind.CLOUD_KEY,
    SecretKind.PRIVATE_KEY_BLOCK,
    SecretKind.PAYMENT_KEY,
    SecretKind.VCS_TOKEN,
}


@dataclass(frozen=True)
class Finding:
    """
    A located, classified candidate secret.

    Attributes:
        file_path: Path of the scanned file ("" for text scans)
        start: Byte offset of the first secret byte
        end: Byte offset one past the last secret byte
        line: 1-based line of ``start``
        column: 0-based byte column of ``start``
        end_line: 1-based line of the last secret byte
        secret: The matched substring (use with caution)
        rule_id: Rule that matched, or "EntropyHeuristic"
        kind: Secret classification
        confidence: Confidence score between 0.0 and 1.0
        entropy: Entropy score (0-1) of ``secret``
    """
    file_path: str
    start: int
    end: int
    line: int
    column: int
    end_line: int
    secret: str
    rule_id: str
    kind: SecretKind
    confidence: float
    entropy: float = 0.0

    @property
    def span(self) -> Tuple[int, int]:
        return (self.start, self.end)

    @property
    def is_heuristic(self) -> bool:
        return self.rule_id == ENTROPY_RULE_ID

    @property
    def severity(self) -> Severity:
        """Rendering bucket derived from kind and confidence."""
        if self.confidence >= 0.85 and self.kind in _CRITICAL_KINDS:
            return Severity.CRITICAL
        if self.confidence >= 0.75:
            return Severity.HIGH
        if self.confidence >= 0.6:
            return Severity.MEDIUM
        return Severity.LOW

    @property
    def redacted(self) -> str:
        """Secret with everything but the first and last four characters hidden."""
        value = self.secret.splitlines()[0] if "\n" in self.secret else self.secret
        if len(value) <= 8:
            return "*" * len(value)
        return f"{value[:4]}...{value[-4:]}"

    def overlaps(self, other: "Finding") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, other: "Finding") -> bool:
        return self.start <= other.start and other.end <= self.end

    def to_dict(self) -> Dict[str, Any]:
        """Convert finding to dictionary representation"""
        result = asdict(self)
        result['kind'] = self.kind.value
        result['severity'] = self.severity.value
        return result

    def to_json_dict(self) -> Dict[str, Any]:
        d = self.to_dict()
        d.pop('secret', None)
        d['redacted'] = self.redacted
        return d

    def __str__(self) -> str:
        """Human-readable string representation"""
        loc = f"{self.file_path}:{self.line}" if self.file_path else f"line {self.line}"
        return (
            f"[{self.severity.value.upper()}] {self.kind.value} "
            f"at {loc} (rule: {self.rule_id}, confidence: {self.confidence:.2f})"
        )


@dataclass
class ScanResult:
    """
    Represents the complete result of a scan operation.

    Attributes:
        findings: Findings ordered by (file path, start offset)
        scanned_files: Number of files scanned
        skipped_files: Files skipped as binary or oversized
        duration_ms: Scan duration in milliseconds
        errors: File-scoped warnings (unreadable files, skipped files)
        sensitive_files: Scanned paths that are credential files by name
    """
    findings: List[Finding]
    scanned_files: int = 0
    skipped_files: int = 0
    duration_ms: float = 0.0
    errors: List[str] = field(default_factory=list)
    sensitive_files: List[str] = field(default_factory=list)

    @property
    def found_secrets(self) -> bool:
        """Returns True if any findings were detected"""
        return len(self.findings) > 0

    def blocking(self, floor: float) -> List[Finding]:
        """Findings at or above ``floor``; a non-empty result should fail a hook."""
        return [f for f in self.findings if f.confidence >= floor]

    @property
    def critical_count(self) -> int:
        """Count of critical severity findings"""
        return sum(1 for f in self.findings if f.severity == Severity.CRITICAL)

    @property
    def high_count(self) -> int:
        """Count of high severity findings"""
        return sum(1 for f in self.findings if f.severity == Severity.HIGH)

    def to_dict(self) -> Dict[str, Any]:
        """Convert scan result to a dictionary"""
        return {
            "findings": [f.to_json_dict() for f in self.findings],
            "scanned_files": self.scanned_files,
            "skipped_files": self.skipped_files,
            "duration_ms": self.duration_ms,
            "errors": self.errors,
            "sensitive_files": self.sensitive_files,
            "summary": {
                "total_findings": len(self.findings),
                'critical': self.critical_count,
                'high': self.high_count,
            }
        }

    def __str__(self) -> str:
        """Human readable summary"""
        return (
            f"Scan complete: {len(self.findings)} findings in "
            f"{self.scanned_files} files [{self.duration_ms:.2f}ms]"
        )


__all__ = ["Finding", "ScanResult", "SecretKind", "Severity", "ENTROPY_RULE_ID"]
