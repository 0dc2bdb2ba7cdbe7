"""
Project vault: sealed secrets plus the owner's public key in one JSON file.

Layout (project relative)::

    .kryptos/vault.json   format version, public key, entries
    .kryptos/vault.lock   present while an operation is running

Single user, single process per invocation. Every operation holds the lock
file (exclusive create) for the whole read-modify-write and the file is
replaced atomically, so an interrupted run leaves the previous state intact.
"""
from __future__ import annotations

import hashlib
import json
import logging
import os
import secrets
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from Kryptos.config import LOCK_FILE, VAULT_FILE, vault_dir
from Kryptos.core.errors import (
    DecryptionFailedError,
    EntryNotFoundError,
    RotationAbortedError,
    VaultAlreadyInitializedError,
    VaultFormatError,
    VaultLockedError,
    VaultNotInitializedError,
)
from Kryptos.core.placeholder import ENTRY_ID_LENGTH
from Kryptos.utils.file_loader import atomic_write
from Kryptos.vault.crypto import (
    KeyPair,
    PrivateKeyLike,
    content_fingerprint,
    open_bytes,
    public_fingerprint,
    public_key_of,
    seal_bytes,
)
from Kryptos.vault.models import Provenance, VaultEntry, VaultState

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 10.0
_LOCK_POLL_INTERVAL = 0.05

# One in-process lock per vault file, shared by every Vault instance
_PROCESS_LOCKS: Dict[str, threading.RLock] = {}
_PROCESS_LOCKS_GUARD = threading.Lock()


def _process_lock(path: Path) -> threading.RLock:
    key = str(path.resolve())
    with _PROCESS_LOCKS_GUARD:
        lock = _PROCESS_LOCKS.get(key)
        if lock is None:
            lock = _PROCESS_LOCKS[key] = threading.RLock()
        return lock


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _entry_id(fingerprint: str, created_at: str) -> str:
    return hashlib.sha256(f"{fingerprint}:{created_at}".encode("ascii")).hexdigest()[:ENTRY_ID_LENGTH]


class Vault:
    """
    Encrypted store for secrets removed from source.

    Example:
        >>> vault = Vault(".")
        >>> key_pair = vault.initialize()
        >>> entry = vault.seal(b"hunter2", label="DB_PASSWORD")
        >>> vault.unseal(entry.id, key_pair)
        b'hunter2'
    """

    def __init__(self, root: str | Path, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self.root = Path(root)
        self.directory = vault_dir(self.root)
        self.path = self.directory / VAULT_FILE
        self.lock_path = self.directory / LOCK_FILE
        self.lock_timeout = lock_timeout

    # --- locking / persistence -------------------------------------------

    @contextmanager
    def _locked(self, create: bool = False) -> Iterator[None]:
        """Hold the in-process lock and the lock file for the whole operation."""
        if create:
            self.directory.mkdir(parents=True, exist_ok=True)
        elif not self.directory.is_dir():
            raise VaultNotInitializedError(f"No vault at {self.path}. Run 'kryptos vault init' first.")
        with _process_lock(self.path):
            deadline = time.monotonic() + self.lock_timeout
            while True:
                try:
                    fd = os.open(str(self.lock_path), os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
                    break
                except FileExistsError:
                    if time.monotonic() >= deadline:
                        raise VaultLockedError(
                            f"Vault is locked by another process ({self.lock_path}). "
                            "Remove the lock file if no other kryptos process is running."
                        )
                    time.sleep(_LOCK_POLL_INTERVAL)
            try:
                os.write(fd, str(os.getpid()).encode("ascii"))
                os.close(fd)
                yield
            finally:
                try:
                    os.unlink(self.lock_path)
                except FileNotFoundError:
                    logger.warning("Vault lock %s vanished while held", self.lock_path)

    def _load(self) -> VaultState:
        if not self.path.exists():
            raise VaultNotInitializedError(f"No vault at {self.path}. Run 'kryptos vault init' first.")
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise VaultFormatError(f"Cannot read vault file {self.path}: {e}") from e
        return VaultState.from_dict(data)

    def _store(self, state: VaultState) -> None:
        payload = json.dumps(state.to_dict(), indent=2, sort_keys=False) + "\n"
        atomic_write(self.path, payload.encode("utf-8"), mode=0o600)

    # --- queries ---------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self.path.exists()

    @property
    def public_key(self) -> bytes:
        return self._load().public_key

    @property
    def vault_id(self) -> str:
        return self._load().vault_id

    @property
    def key_fingerprint(self) -> str:
        return self._load().key_fingerprint

    def list_entries(self) -> List[VaultEntry]:
        """Entries in creation order. Ciphertext only; nothing is decrypted."""
        return list(self._load().entries)

    def get(self, entry_id: str) -> VaultEntry:
        entry = self._load().find(entry_id)
        if entry is None:
            raise EntryNotFoundError(entry_id)
        return entry

    # --- operations ------------------------------------------------------

    def initialize(self) -> KeyPair:
        """
        Create the vault and a fresh owner key pair.

        Only the public key is persisted. The caller must store the returned
        private key outside the project (see save_private_key) and wipe it.

        Raises:
            VaultAlreadyInitializedError: if vault state already exists
        """
        with self._locked(create=True):
            if self.path.exists():
                raise VaultAlreadyInitializedError(f"Vault already exists at {self.path}")
            key_pair = KeyPair.generate()
            state = VaultState(
                vault_id=secrets.token_hex(8),
                public_key=key_pair.public_key,
                key_fingerprint=key_pair.fingerprint,
                fingerprint_salt=secrets.token_bytes(32),
                created_at=_now(),
            )
            self._store(state)
        logger.info("Initialized vault %s at %s (key %s)", state.vault_id, self.path, state.key_fingerprint)
        return key_pair

    def seal(
        self,
        plaintext: bytes,
        label: str = "",
        provenance: Optional[Provenance] = None,
    ) -> VaultEntry:
        """
        Encrypt and store ``plaintext``.

        Sealing the same plaintext again returns the existing entry.

        Raises:
            VaultNotInitializedError: if the vault has not been initialized
        """
        with self._locked():
            state = self._load()
            fingerprint = content_fingerprint(state.fingerprint_salt, plaintext)
            existing = state.find_fingerprint(fingerprint)
            if existing is not None:
                logger.debug("Plaintext already sealed as %s", existing.id)
                return existing

            created_at = _now()
            entry_id = _entry_id(fingerprint, created_at)
            ciphertext, nonce, ephemeral = seal_bytes(plaintext, state.public_key, entry_id.encode("ascii"))
            entry = VaultEntry(
                id=entry_id,
                fingerprint=fingerprint,
                ciphertext=ciphertext,
                nonce=nonce,
                ephemeral_key=ephemeral,
                created_at=created_at,
                label=label,
                provenance=provenance or Provenance(),
            )
            state.entries.append(entry)
            self._store(state)
        logger.info("Sealed entry %s (%s)", entry.id, label or "unlabelled")
        return entry

    def unseal(self, entry_id: str, private_key: PrivateKeyLike) -> bytes:
        """
        Decrypt one entry.

        Raises:
            EntryNotFoundError: unknown ``entry_id``
            DecryptionFailedError: wrong key or tampered entry
        """
        with self._locked():
            entry = self._load().find(entry_id)
            if entry is None:
                raise EntryNotFoundError(entry_id)
            return open_bytes(entry.ciphertext, entry.nonce, entry.ephemeral_key, private_key, entry.id.encode("ascii"))

    def rotate(self, old_private_key: PrivateKeyLike, new_key_pair: KeyPair) -> None:
        """
        Re-seal every entry under ``new_key_pair`` and retire the old key.

        All or nothing: the new state is written only after every entry was
        re-sealed. Entry ids are kept so placeholders in source stay valid.

        Raises:
            RotationAbortedError: any entry failed to re-seal; the old key
                remains authoritative and the call can be retried
        """
        with self._locked():
            state = self._load()
            resealed: List[VaultEntry] = []
            if public_key_of(old_private_key) != state.public_key:
                raise RotationAbortedError("The supplied private key does not belong to this vault")
            for entry in state.entries:
                aad = entry.id.encode("ascii")
                try:
                    plaintext = bytearray(
                        open_bytes(entry.ciphertext, entry.nonce, entry.ephemeral_key, old_private_key, aad)
                    )
                except DecryptionFailedError as e:
                    raise RotationAbortedError(f"Cannot re-seal entry {entry.id}: {e}") from e
                try:
                    ciphertext, nonce, ephemeral = seal_bytes(bytes(plaintext), new_key_pair.public_key, aad)
                finally:
                    for i in range(len(plaintext)):
                        plaintext[i] = 0
                resealed.append(entry.resealed(ciphertext, nonce, ephemeral))

            state.entries = resealed
            state.public_key = new_key_pair.public_key
            state.key_fingerprint = public_fingerprint(new_key_pair.public_key)
            state.rotated_at = _now()
            try:
                self._store(state)
            except OSError as e:
                raise RotationAbortedError(f"Cannot write rotated vault: {e}") from e
        logger.info("Rotated vault %s to key %s (%d entries)", state.vault_id, state.key_fingerprint, len(resealed))


__all__ = ["Vault"]
