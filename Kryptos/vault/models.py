from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from Kryptos.core.errors import VaultFormatError
from Kryptos.vault.crypto import b64decode, b64encode

FORMAT_VERSION = 1

_PROVENANCE_FIELDS = {"path", "line", "column", "whole_file"}
_ENTRY_FIELDS = {"id", "fingerprint", "ciphertext", "nonce", "ephemeral_key", "created_at", "label", "provenance"}
_STATE_FIELDS = {
    "format_version",
    "vault_id",
    "public_key",
    "key_fingerprint",
    "fingerprint_salt",
    "created_at",
    "rotated_at",
    "entries",
}


@dataclass(frozen=True)
class Provenance:
    """
    Where a sealed secret came from, for audit.

    ``whole_file`` marks an entry holding the complete content of ``path``
    rather than a value cut out of it.
    """
    path: str = ""
    line: Optional[int] = None
    column: Optional[int] = None
    whole_file: bool = False
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data.update({"path": self.path, "line": self.line, "column": self.column, "whole_file": self.whole_file})
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Provenance":
        data = data or {}
        return cls(
            path=data.get("path", ""),
            line=data.get("line"),
            column=data.get("column"),
            whole_file=bool(data.get("whole_file", False)),
            extra={k: v for k, v in data.items() if k not in _PROVENANCE_FIELDS},
        )


@dataclass(frozen=True)
class VaultEntry:
    """
    One sealed secret.

    Attributes:
        id: 24 hex characters; stable across key rotation
        fingerprint: Keyed digest of the plaintext (idempotence lookups)
        ciphertext: AES-GCM ciphertext with tag
        nonce: 12-byte GCM nonce
        ephemeral_key: Sender X25519 public key used for this entry
        created_at: ISO-8601 UTC timestamp
        label: Human label; also the template variable name
        provenance: Original file location
        extra: Unknown fields read from disk, written back unchanged
    """
    id: str
    fingerprint: str
    ciphertext: bytes
    nonce: bytes
    ephemeral_key: bytes
    created_at: str
    label: str = ""
    provenance: Provenance = field(default_factory=Provenance)
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    def resealed(self, ciphertext: bytes, nonce: bytes, ephemeral_key: bytes) -> "VaultEntry":
        return replace(self, ciphertext=ciphertext, nonce=nonce, ephemeral_key=ephemeral_key)

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "id": self.id,
            "fingerprint": self.fingerprint,
            "ciphertext": b64encode(self.ciphertext),
            "nonce": b64encode(self.nonce),
            "ephemeral_key": b64encode(self.ephemeral_key),
            "created_at": self.created_at,
            "label": self.label,
            "provenance": self.provenance.to_dict(),
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VaultEntry":
        try:
            return cls(
                id=data["id"],
                fingerprint=data["fingerprint"],
                ciphertext=b64decode(data["ciphertext"]),
                nonce=b64decode(data["nonce"]),
                ephemeral_key=b64decode(data["ephemeral_key"]),
                created_at=data["created_at"],
                label=data.get("label", ""),
                provenance=Provenance.from_dict(data.get("provenance")),
                extra={k: v for k, v in data.items() if k not in _ENTRY_FIELDS},
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise VaultFormatError(f"Malformed vault entry: {e}") from e


@dataclass
class VaultState:
    """Everything stored in the vault file."""
    vault_id: str
    public_key: bytes
    key_fingerprint: str
    fingerprint_salt: bytes
    created_at: str
    rotated_at: Optional[str] = None
    entries: List[VaultEntry] = field(default_factory=list)
    format_version: int = FORMAT_VERSION
    extra: Dict[str, Any] = field(default_factory=dict)

    def find(self, entry_id: str) -> Optional[VaultEntry]:
        for entry in self.entries:
            if entry.id == entry_id:
                return entry
        return None

    def find_fingerprint(self, fingerprint: str) -> Optional[VaultEntry]:
        for entry in self.entries:
            if entry.fingerprint == fingerprint:
                return entry
        return None

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "format_version": self.format_version,
            "vault_id": self.vault_id,
            "public_key": b64encode(self.public_key),
            "key_fingerprint": self.key_fingerprint,
            "fingerprint_salt": b64encode(self.fingerprint_salt),
            "created_at": self.created_at,
            "rotated_at": self.rotated_at,
            "entries": [e.to_dict() for e in self.entries],
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VaultState":
        if not isinstance(data, dict):
            raise VaultFormatError("Vault file must contain a JSON object")
        version = data.get("format_version")
        if not isinstance(version, int) or version > FORMAT_VERSION:
            raise VaultFormatError(f"Unsupported vault format version: {version!r}")
        try:
            return cls(
                vault_id=data["vault_id"],
                public_key=b64decode(data["public_key"]),
                key_fingerprint=data["key_fingerprint"],
                fingerprint_salt=b64decode(data["fingerprint_salt"]),
                created_at=data["created_at"],
                rotated_at=data.get("rotated_at"),
                entries=[VaultEntry.from_dict(e) for e in data.get("entries", [])],
                format_version=version,
                extra={k: v for k, v in data.items() if k not in _STATE_FIELDS},
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise VaultFormatError(f"Malformed vault file: {e}") from e


__all__ = ["FORMAT_VERSION", "Provenance", "VaultEntry", "VaultState"]
