"""
Remediation: move detected secrets from source into the vault.

The engine decides what to ask (one PendingDecision per finding, strongest
first) and the caller decides how to ask it: ``resolve`` is any callable that
turns a PendingDecision into a Resolution, whether that is a Rich prompt, a
test fixture or ``accept_all``.

For every accepted finding the secret is sealed before its replacement is
recorded, so no placeholder ever points at a missing vault entry.
Replacements are applied from the end of the content backward so earlier
offsets stay valid.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from Kryptos.config import TEMPLATE_FILE
from Kryptos.core.detector import Detector
from Kryptos.core.errors import RemediationError, ScanIOError, VaultNotInitializedError, VaultUnavailableError
from Kryptos.core.placeholder import make_placeholder
from Kryptos.core.result import Finding
from Kryptos.core.scanner import iter_project_files
from Kryptos.remediation.template import Template, normalize_name
from Kryptos.utils.file_loader import atomic_write, read_bytes
from Kryptos.utils.path_filters import is_sensitive_path
from Kryptos.vault.crypto import PrivateKeyLike, wipe
from Kryptos.vault.models import Provenance, VaultEntry
from Kryptos.vault.store import Vault

logger = logging.getLogger(__name__)

_CODEC = "latin-1"

# KEY = value, "key": value, export KEY=value, const key = value
_STATEMENT_RE = re.compile(
    r"^\s*(?:(?:export|const|let|var|val|final|static|private|public|set)\s+)*"
    r"[\"']?([A-Za-z_][A-Za-z0-9_.\-]*)[\"']?\s*(?::=|=>|[:=])"
)
# Closest "name =" or "name:" directly in front of the secret
_ADJACENT_RE = re.compile(r"([A-Za-z_][A-Za-z0-9_.\-]*)[\"']?\s*(?::=|=>|[:=])\s*[\"'`]?$")


class ResolutionAction(Enum):
    ACCEPT = "accept"
    SKIP = "skip"
    EDIT = "edit"


@dataclass(frozen=True)
class Resolution:
    """
    Answer to one PendingDecision.

    ``EDIT`` may rename the template variable and/or narrow the sealed value
    to a part of the matched secret.
    """
    action: ResolutionAction
    name: Optional[str] = None
    value: Optional[str] = None

    @classmethod
    def accept(cls, name: Optional[str] = None) -> "Resolution":
        return cls(ResolutionAction.ACCEPT, name=name)

    @classmethod
    def skip(cls) -> "Resolution":
        return cls(ResolutionAction.SKIP)

    @classmethod
    def edit(cls, name: Optional[str] = None, value: Optional[str] = None) -> "Resolution":
        return cls(ResolutionAction.EDIT, name=name, value=value)


@dataclass(frozen=True)
class PendingDecision:
    finding: Finding
    proposed_name: str
    preview: str


@dataclass
class RemediationResult:
    """
    Outcome of one remediation run.

    Attributes:
        content: Rewritten content (unchanged when nothing was accepted)
        entries: Vault entries backing each replacement, in decision order
        template: Rows for the secrets protected in this run
        skipped: Findings left in place (declined or overlapping)
        cancelled: True if ``should_cancel`` stopped the run early
    """
    content: bytes
    entries: List[VaultEntry] = field(default_factory=list)
    template: Template = field(default_factory=Template)
    skipped: List[Finding] = field(default_factory=list)
    cancelled: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.entries)


Resolver = Callable[[PendingDecision], Resolution]


def accept_all(decision: PendingDecision) -> Resolution:
    """Resolver that protects every finding under its proposed name."""
    return Resolution.accept()


def _line_bounds(content: bytes, start: int, end: int) -> Tuple[int, int]:
    line_start = content.rfind(b"\n", 0, start) + 1
    line_end = content.find(b"\n", end)
    if line_end == -1:
        line_end = len(content)
    return line_start, line_end


def propose_name(finding: Finding, content: bytes) -> str:
    """
    Derive a variable name from the assignment the secret appears in.

    Falls back to the rule id, then to ``SECRET``.
    """
    line_start, _ = _line_bounds(content, finding.start, finding.end)
    prefix = content[line_start:finding.start].decode(_CODEC)

    match = _STATEMENT_RE.match(prefix) or _ADJACENT_RE.search(prefix)
    if match:
        return normalize_name(match.group(1))
    if finding.is_heuristic:
        return "SECRET"
    return normalize_name(finding.rule_id)


def _preview(finding: Finding, content: bytes) -> str:
    """The surrounding line with the secret redacted."""
    line_start, _ = _line_bounds(content, finding.start, finding.start)
    _, line_end = _line_bounds(content, finding.end, finding.end)
    before = content[line_start:finding.start].decode(_CODEC)
    after = content[finding.end:line_end].decode(_CODEC)
    return f"{before}{finding.redacted}{after}".strip()


class RemediationEngine:
    """
    Replaces accepted findings with vault placeholders.

    Example:
        >>> engine = RemediationEngine(Vault("."))
        >>> result = engine.remediate(findings, content, accept_all)
        >>> [e.label for e in result.entries]
        ['DB_PASSWORD']
    """

    def __init__(self, vault: Vault) -> None:
        self.vault = vault

    def _require_vault(self) -> None:
        if not self.vault.is_initialized:
            raise VaultUnavailableError(
                f"No vault at {self.vault.path}; run 'kryptos vault init' before protecting secrets. "
                "Nothing was changed."
            )

    def plan(self, findings: Sequence[Finding], content: bytes) -> List[PendingDecision]:
        """Pending decisions, strongest finding first; ties keep file order."""
        ordered = sorted(findings, key=lambda f: (-f.confidence, f.start, f.end))
        return [PendingDecision(f, propose_name(f, content), _preview(f, content)) for f in ordered]

    def _seal(self, secret: bytes, name: str, finding: Finding, file_path: Optional[str]) -> VaultEntry:
        provenance = Provenance(path=file_path or finding.file_path, line=finding.line, column=finding.column)
        try:
            return self.vault.seal(secret, label=name, provenance=provenance)
        except VaultNotInitializedError as e:
            raise VaultUnavailableError(str(e)) from e

    def remediate(
        self,
        findings: Sequence[Finding],
        content: bytes,
        resolve: Resolver,
        should_cancel: Optional[Callable[[], bool]] = None,
        file_path: Optional[str] = None,
    ) -> RemediationResult:
        """
        Resolve every finding and rewrite ``content``.

        ``should_cancel`` is consulted before each decision only; a decision
        that was accepted is always sealed and applied.

        Raises:
            VaultUnavailableError: the vault is not initialized; nothing is sealed
            RemediationError: a finding does not match ``content`` or an edit
                names a value that is not part of the secret
        """
        self._require_vault()

        result = RemediationResult(content=content)
        replacements: List[Tuple[int, int, bytes]] = []

        for decided, decision in enumerate(self.plan(findings, content)):
            if should_cancel is not None and should_cancel():
                logger.info("Remediation cancelled after %d of %d decisions", decided, len(findings))
                result.cancelled = True
                break

            finding = decision.finding
            if any(start < finding.end and finding.start < end for start, end, _ in replacements):
                logger.debug("Skipping %s at line %d: overlaps an accepted finding", finding.rule_id, finding.line)
                result.skipped.append(finding)
                continue

            resolution = resolve(decision)
            if resolution.action is ResolutionAction.SKIP:
                result.skipped.append(finding)
                continue

            start, end = finding.start, finding.end
            secret = content[start:end]
            if secret != finding.secret.encode(_CODEC):
                raise RemediationError(
                    f"Finding at line {finding.line} does not match the content; rescan before protecting"
                )

            if resolution.action is ResolutionAction.EDIT and resolution.value:
                narrowed = resolution.value.encode("utf-8")
                offset = secret.find(narrowed)
                if offset == -1:
                    raise RemediationError("Edited value must be part of the matched secret")
                start, end = start + offset, start + offset + len(narrowed)
                secret = narrowed

            name = normalize_name(resolution.name) if resolution.name else decision.proposed_name
            entry = self._seal(secret, name, finding, file_path)
            result.template.add(name, entry.id)
            result.entries.append(entry)
            replacements.append((start, end, make_placeholder(entry.id).encode("ascii")))
            logger.info("Protected %s at line %d as entry %s", finding.rule_id, finding.line, entry.id)

        rewritten = content
        for start, end, placeholder in sorted(replacements, reverse=True):
            rewritten = rewritten[:start] + placeholder + rewritten[end:]
        result.content = rewritten
        return result

    def remediate_file(
        self,
        path: str | Path,
        resolve: Resolver,
        findings: Optional[Sequence[Finding]] = None,
        detector: Optional[Detector] = None,
        template_path: Optional[str | Path] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> RemediationResult:
        """
        Protect the secrets in one file.

        The file is rewritten atomically, then the template is regenerated
        from every vault entry.

        Raises:
            VaultUnavailableError: before the file is read when the vault is missing
            ScanIOError: the file cannot be read
        """
        self._require_vault()
        path = Path(path)
        try:
            content = read_bytes(path)
        except OSError as e:
            raise ScanIOError(str(path), e.strerror or str(e)) from e

        if findings is None:
            findings = (detector or Detector()).scan(content, path)

        result = self.remediate(findings, content, resolve, should_cancel=should_cancel, file_path=str(path))
        if result.content != content:
            atomic_write(path, result.content)
            logger.info("Rewrote %s with %d placeholders", path, len(result.entries))

        target = Path(template_path) if template_path is not None else self.vault.root / TEMPLATE_FILE
        Template.from_entries(self.vault.list_entries()).write(target)
        return result


    # --- whole files -------------------------------------------------------

    def _relative(self, path: Path) -> str:
        try:
            return path.resolve().relative_to(self.vault.root.resolve()).as_posix()
        except ValueError:
            return str(path)

    def seal_file(self, path: str | Path, keep: bool = False) -> VaultEntry:
        """
        Seal the complete content of a credential file and remove it.

        The file is deleted only after its entry is stored. ``keep`` leaves
        it in place.

        Raises:
            VaultUnavailableError: the vault is not initialized
            ScanIOError: the file cannot be read
            RemediationError: the entry was stored but the file could not be removed
        """
        self._require_vault()
        path = Path(path)
        try:
            content = read_bytes(path)
        except OSError as e:
            raise ScanIOError(str(path), e.strerror or str(e)) from e

        provenance = Provenance(path=self._relative(path), whole_file=True)
        try:
            entry = self.vault.seal(content, label=normalize_name(path.name), provenance=provenance)
        except VaultNotInitializedError as e:
            raise VaultUnavailableError(str(e)) from e
        logger.info("Sealed file %s as entry %s", path, entry.id)

        if not keep:
            try:
                path.unlink()
            except OSError as e:
                raise RemediationError(f"{path} was sealed as {entry.id} but could not be removed: {e}") from e
        return entry

    def seal_sensitive_files(self, directory: Optional[str | Path] = None, keep: bool = False) -> List[VaultEntry]:
        """
        Seal every credential file (see is_sensitive_path) under ``directory``.

        Files excluded by .gitignore or .kryptosignore are left alone; they
        are not part of the project history.
        """
        self._require_vault()
        root = Path(directory) if directory is not None else self.vault.root
        return [self.seal_file(path, keep=keep) for path in iter_project_files(root) if is_sensitive_path(path)]

    def restore_file(
        self,
        entry_id: str,
        private_key: PrivateKeyLike,
        target: Optional[str | Path] = None,
        overwrite: bool = False,
    ) -> Path:
        """
        Write a sealed file back, by default to where it was sealed from.

        Raises:
            RemediationError: no target for a value entry, or the target exists
        """
        entry = self.vault.get(entry_id)
        if target is None:
            if not entry.provenance.whole_file:
                raise RemediationError(f"Entry {entry_id} holds a value, not a file; give a target path")
            target = Path(entry.provenance.path)
            if not target.is_absolute():
                target = self.vault.root / target
        target = Path(target)
        if target.exists() and not overwrite:
            raise RemediationError(f"{target} already exists")

        content = bytearray(self.vault.unseal(entry_id, private_key))
        try:
            atomic_write(target, bytes(content), mode=0o600)
        finally:
            wipe(content)
        logger.info("Restored entry %s to %s", entry_id, target)
        return target


__all__ = [
    "RemediationEngine",
    "RemediationResult",
    "PendingDecision",
    "Resolution",
    "ResolutionAction",
    "Resolver",
    "accept_all",
    "propose_name",
]
