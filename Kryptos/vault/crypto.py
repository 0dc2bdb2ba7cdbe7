"""
Hybrid encryption for vault entries.

Each entry is sealed to the owner's X25519 public key: a fresh ephemeral
X25519 key agrees a shared secret with the owner key, HKDF-SHA256 turns it
into a 32-byte AES-256-GCM key, and a 12-byte random nonce is used once.
The entry id is passed as associated data so a ciphertext cannot be moved to
another entry. Only the owner's private key can open an entry; any bit flip
fails the GCM tag check.
"""

from __future__ import annotations

import base64
import contextlib
import hashlib
import hmac
import os
import secrets
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Tuple, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from Kryptos.core.errors import DecryptionFailedError

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16
HKDF_INFO = b"kryptos-vault-seal-v1"


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64decode(data: str) -> bytes:
    return base64.b64decode(data.encode("ascii"), validate=True)


def wipe(buffer: bytearray) -> None:
    """Overwrite a mutable buffer with zeros."""
    for i in range(len(buffer)):
        buffer[i] = 0


@contextlib.contextmanager
def scoped_bytes(data: Union[bytes, bytearray]) -> Iterator[bytearray]:
    """Yield a mutable copy of ``data`` that is zeroed on every exit path."""
    buffer = bytearray(data)
    try:
        yield buffer
    finally:
        wipe(buffer)


class KeyPair:
    """
    Owner key pair.

    The private half is kept in a bytearray so it can be wiped; call
    ``wipe()`` (or use the key pair as a context manager) once it has been
    written to its owner-controlled location.
    """

    def __init__(self, private_key: Union[bytes, bytearray], public_key: Optional[bytes] = None) -> None:
        if len(private_key) != KEY_SIZE:
            raise ValueError(f"Private key must be {KEY_SIZE} bytes, got {len(private_key)}")
        self._private = bytearray(private_key)
        derived = _public_from_private(bytes(self._private))
        if public_key is not None and public_key != derived:
            raise ValueError("Public key does not match private key")
        self.public_key: bytes = derived

    @classmethod
    def generate(cls) -> "KeyPair":
        key = X25519PrivateKey.generate()
        raw = key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return cls(raw)

    @classmethod
    def from_pem(cls, data: bytes, passphrase: Optional[bytes] = None) -> "KeyPair":
        key = serialization.load_pem_private_key(data, password=passphrase)
        if not isinstance(key, X25519PrivateKey):
            raise ValueError("Not an X25519 private key")
        raw = key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return cls(raw)

    @property
    def private_key(self) -> bytes:
        if not any(self._private):
            raise ValueError("Private key has been wiped")
        return bytes(self._private)

    @property
    def fingerprint(self) -> str:
        return public_fingerprint(self.public_key)

    def private_pem(self, passphrase: Optional[bytes] = None) -> bytes:
        """PKCS#8 PEM of the private key, encrypted when a passphrase is given."""
        encryption: serialization.KeySerializationEncryption
        if passphrase:
            encryption = serialization.BestAvailableEncryption(passphrase)
        else:
            encryption = serialization.NoEncryption()
        key = X25519PrivateKey.from_private_bytes(self.private_key)
        return key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=encryption,
        )

    def wipe(self) -> None:
        wipe(self._private)

    def __enter__(self) -> "KeyPair":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.wipe()

    def __repr__(self) -> str:
        return f"KeyPair(fingerprint={self.fingerprint!r})"


PrivateKeyLike = Union[KeyPair, bytes, bytearray]


def _public_from_private(raw: bytes) -> bytes:
    key = X25519PrivateKey.from_private_bytes(raw)
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def public_fingerprint(public_key: bytes) -> str:
    return hashlib.sha256(public_key).hexdigest()[:16]


def _private_bytes(private_key: PrivateKeyLike) -> bytes:
    if isinstance(private_key, KeyPair):
        return private_key.private_key
    if len(private_key) != KEY_SIZE:
        raise DecryptionFailedError("Private key has the wrong length")
    return bytes(private_key)


def public_key_of(private_key: PrivateKeyLike) -> bytes:
    if isinstance(private_key, KeyPair):
        return private_key.public_key
    with scoped_bytes(_private_bytes(private_key)) as raw:
        return _public_from_private(bytes(raw))


def _derive_key(shared: bytes, ephemeral_public: bytes, recipient_public: bytes) -> bytes:
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=ephemeral_public + recipient_public,
        info=HKDF_INFO,
    )
    return hkdf.derive(shared)


def seal_bytes(plaintext: bytes, recipient_public: bytes, aad: bytes) -> Tuple[bytes, bytes, bytes]:
    """
    Encrypt ``plaintext`` to ``recipient_public``.

    Returns:
        (ciphertext_with_tag, nonce, ephemeral_public_key)
    """
    ephemeral = X25519PrivateKey.generate()
    ephemeral_public = ephemeral.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    shared = ephemeral.exchange(X25519PublicKey.from_public_bytes(recipient_public))
    with scoped_bytes(_derive_key(shared, ephemeral_public, recipient_public)) as key:
        nonce = secrets.token_bytes(NONCE_SIZE)
        ciphertext = AESGCM(bytes(key)).encrypt(nonce, plaintext, aad)
    return ciphertext, nonce, ephemeral_public


def open_bytes(
    ciphertext: bytes,
    nonce: bytes,
    ephemeral_public: bytes,
    private_key: PrivateKeyLike,
    aad: bytes,
) -> bytes:
    """
    Decrypt a sealed payload.

    Raises:
        DecryptionFailedError: wrong key, malformed input, or failed tag check
    """
    if len(nonce) != NONCE_SIZE or len(ciphertext) < TAG_SIZE or len(ephemeral_public) != KEY_SIZE:
        raise DecryptionFailedError("Sealed payload is malformed")

    with scoped_bytes(_private_bytes(private_key)) as raw:
        owner = X25519PrivateKey.from_private_bytes(bytes(raw))
    recipient_public = owner.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    try:
        shared = owner.exchange(X25519PublicKey.from_public_bytes(ephemeral_public))
    except ValueError as e:
        raise DecryptionFailedError("Invalid ephemeral key") from e

    with scoped_bytes(_derive_key(shared, ephemeral_public, recipient_public)) as key:
        try:
            return AESGCM(bytes(key)).decrypt(nonce, ciphertext, aad)
        except InvalidTag as e:
            raise DecryptionFailedError("Authentication failed: wrong key or tampered entry") from e


def content_fingerprint(salt: bytes, plaintext: bytes) -> str:
    """Keyed digest used to recognize re-sealing of identical plaintext."""
    return hmac.new(salt, plaintext, hashlib.sha256).hexdigest()


def save_private_key(
    key_pair: KeyPair,
    path: str | Path,
    project_root: Optional[str | Path] = None,
    passphrase: Optional[bytes] = None,
) -> Path:
    """
    Write the private key as PEM with mode 0600.

    Refuses to write inside ``project_root`` so the key never lands in the
    scanned source tree, and refuses to overwrite an existing key file.
    """
    path = Path(path).expanduser()
    if project_root is not None:
        root = Path(project_root).resolve()
        target = path.resolve()
        if target == root or root in target.parents:
            raise ValueError(f"Refusing to store the private key inside the project: {path}")
    if path.exists():
        raise FileExistsError(f"Key file already exists: {path}")

    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_EXCL, stat.S_IRUSR | stat.S_IWUSR)
    with os.fdopen(fd, "wb") as f:
        f.write(key_pair.private_pem(passphrase))
    return path


def load_private_key(path: str | Path, passphrase: Optional[bytes] = None) -> KeyPair:
    """Load a key pair written by save_private_key()."""
    data = Path(path).expanduser().read_bytes()
    return KeyPair.from_pem(data, passphrase)


__all__ = [
    "KeyPair",
    "PrivateKeyLike",
    "seal_bytes",
    "open_bytes",
    "content_fingerprint",
    "public_fingerprint",
    "public_key_of",
    "save_private_key",
    "load_private_key",
    "scoped_bytes",
    "wipe",
    "b64encode",
    "b64decode",
]
