"""
Exception hierarchy for Kryptos.

Detection errors are file-scoped: the scanner records them and moves on.
Vault and remediation errors are operation-fatal and propagate to the caller.
"""
from __future__ import annotations


class KryptosError(Exception):
    """Base class for every error raised by Kryptos."""


class ScanIOError(KryptosError):
    """A file's content could not be read for scanning."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Cannot read {path}: {reason}")
        self.path = path
        self.reason = reason


class VaultError(KryptosError):
    """Base class for vault failures."""


class VaultNotInitializedError(VaultError):
    """No vault state exists at the configured location."""


class VaultAlreadyInitializedError(VaultError):
    """initialize() was called on a location that already holds a vault."""


class DecryptionFailedError(VaultError):
    """Wrong private key, or the stored entry was tampered with."""


class EntryNotFoundError(VaultError):
    """The requested entry id is not in the vault."""

    def __init__(self, entry_id: str) -> None:
        super().__init__(f"No vault entry with id {entry_id!r}")
        self.entry_id = entry_id


class RotationAbortedError(VaultError):
    """Re-sealing failed part way; the previous key pair is still in force."""


class VaultLockedError(VaultError):
    """Another process holds the vault lock."""


class VaultFormatError(VaultError):
    """The vault file exists but cannot be parsed."""


class RemediationError(KryptosError):
    """Base class for remediation failures."""


class VaultUnavailableError(RemediationError):
    """Remediation was requested but the vault cannot accept secrets."""


__all__ = [
    "KryptosError",
    "ScanIOError",
    "VaultError",
    "VaultNotInitializedError",
    "VaultAlreadyInitializedError",
    "DecryptionFailedError",
    "EntryNotFoundError",
    "RotationAbortedError",
    "VaultLockedError",
    "VaultFormatError",
    "RemediationError",
    "VaultUnavailableError",
]
