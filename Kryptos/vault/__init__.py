"""
Kryptos vault package.

Seals secrets to the owner's X25519 public key and stores them in
``.kryptos/vault.json``.
"""
from __future__ import annotations

from Kryptos.vault.crypto import KeyPair, load_private_key, save_private_key
from Kryptos.vault.models import Provenance, VaultEntry
from Kryptos.vault.store import Vault

__all__ = [
    "KeyPair",
    "Provenance",
    "Vault",
    "VaultEntry",
    "load_private_key",
    "save_private_key",
]
