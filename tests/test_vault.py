"""Tests for the vault: key handling, sealing, rotation and persistence."""
from __future__ import annotations

import base64
import json
import stat
import threading
from pathlib import Path

import pytest

from Kryptos.core.errors import (
    DecryptionFailedError,
    EntryNotFoundError,
    RotationAbortedError,
    VaultAlreadyInitializedError,
    VaultFormatError,
    VaultLockedError,
    VaultNotInitializedError,
)
from Kryptos.vault.crypto import (
    KeyPair,
    load_private_key,
    open_bytes,
    public_key_of,
    save_private_key,
    seal_bytes,
)
from Kryptos.vault import store
from Kryptos.vault.models import Provenance
from Kryptos.vault.store import Vault


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def vault(project: Path) -> Vault:
    return Vault(project, lock_timeout=1.0)


@pytest.fixture
def key_pair(vault: Vault) -> KeyPair:
    return vault.initialize()


def _vault_json(vault: Vault) -> dict:
    return json.loads(vault.path.read_text(encoding="utf-8"))


def _write_vault_json(vault: Vault, data: dict) -> None:
    vault.path.write_text(json.dumps(data), encoding="utf-8")


# --- crypto primitives -----------------------------------------------------

def test_seal_bytes_round_trip() -> None:
    with KeyPair.generate() as kp:
        ciphertext, nonce, ephemeral = seal_bytes(b"hunter2", kp.public_key, b"entry-1")
        assert b"hunter2" not in ciphertext
        assert open_bytes(ciphertext, nonce, ephemeral, kp, b"entry-1") == b"hunter2"


def test_open_bytes_rejects_wrong_associated_data() -> None:
    kp = KeyPair.generate()
    ciphertext, nonce, ephemeral = seal_bytes(b"hunter2", kp.public_key, b"entry-1")

    with pytest.raises(DecryptionFailedError):
        open_bytes(ciphertext, nonce, ephemeral, kp, b"entry-2")


def test_open_bytes_rejects_malformed_payload() -> None:
    kp = KeyPair.generate()

    with pytest.raises(DecryptionFailedError):
        open_bytes(b"short", b"\x00" * 12, b"\x00" * 32, kp, b"")


def test_key_pair_wipe() -> None:
    kp = KeyPair.generate()
    public = kp.public_key
    kp.wipe()

    with pytest.raises(ValueError):
        _ = kp.private_key
    assert kp.public_key == public


def test_public_key_of_raw_bytes() -> None:
    kp = KeyPair.generate()
    assert public_key_of(kp.private_key) == kp.public_key
    assert public_key_of(kp) == kp.public_key


def test_save_private_key_outside_project(tmp_path: Path, project: Path) -> None:
    kp = KeyPair.generate()
    path = save_private_key(kp, tmp_path / "keys" / "owner.key", project_root=project)

    assert stat.S_IMODE(path.stat().st_mode) == 0o600
    assert load_private_key(path).public_key == kp.public_key


def test_save_private_key_refuses_project_tree(project: Path) -> None:
    with pytest.raises(ValueError):
        save_private_key(KeyPair.generate(), project / "owner.key", project_root=project)
    assert not (project / "owner.key").exists()


def test_save_private_key_refuses_overwrite(tmp_path: Path) -> None:
    path = tmp_path / "owner.key"
    save_private_key(KeyPair.generate(), path)

    with pytest.raises(FileExistsError):
        save_private_key(KeyPair.generate(), path)


def test_private_key_passphrase(tmp_path: Path) -> None:
    kp = KeyPair.generate()
    path = save_private_key(kp, tmp_path / "owner.key", passphrase=b"correct horse")

    assert b"ENCRYPTED" in path.read_bytes()
    assert load_private_key(path, b"correct horse").public_key == kp.public_key
    with pytest.raises(ValueError):
        load_private_key(path, b"wrong")


# --- lifecycle -------------------------------------------------------------

def test_initialize_persists_public_key_only(vault: Vault, key_pair: KeyPair) -> None:
    data = _vault_json(vault)

    assert data["format_version"] == 1
    assert base64.b64decode(data["public_key"]) == key_pair.public_key
    assert data["entries"] == []
    assert key_pair.private_pem().decode("ascii") not in vault.path.read_text(encoding="utf-8")
    assert stat.S_IMODE(vault.path.stat().st_mode) == 0o600


def test_initialize_twice_fails(vault: Vault, key_pair: KeyPair) -> None:
    with pytest.raises(VaultAlreadyInitializedError):
        vault.initialize()


def test_seal_requires_initialized_vault(vault: Vault) -> None:
    with pytest.raises(VaultNotInitializedError):
        vault.seal(b"hunter2")
    assert not vault.directory.exists()


@pytest.mark.parametrize(
    "plaintext",
    [b"", b"hunter2", b"\x00\xff\x10binary", "pässwörd".encode("utf-8"), b"x" * 4096],
)
def test_round_trip(vault: Vault, key_pair: KeyPair, plaintext: bytes) -> None:
    entry = vault.seal(plaintext, label="VALUE")
    assert vault.unseal(entry.id, key_pair) == plaintext


def test_seal_is_idempotent(vault: Vault, key_pair: KeyPair) -> None:
    first = vault.seal(b"hunter2", label="DB_PASSWORD")
    second = vault.seal(b"hunter2", label="OTHER")

    assert first.id == second.id
    assert len(vault.list_entries()) == 1
    assert vault.seal(b"hunter3").id != first.id
    assert len(vault.list_entries()) == 2


def test_vault_file_holds_no_plaintext(vault: Vault, key_pair: KeyPair) -> None:
    vault.seal(b"super-secret-value-123", label="TOKEN")
    assert b"super-secret-value-123" not in vault.path.read_bytes()


def test_entry_metadata(vault: Vault, key_pair: KeyPair) -> None:
    entry = vault.seal(b"hunter2", label="DB_PASSWORD", provenance=Provenance("app/settings.py", 12, 4))

    stored = vault.get(entry.id)
    assert stored.label == "DB_PASSWORD"
    assert stored.provenance == Provenance("app/settings.py", 12, 4)
    assert len(stored.id) == 24
    assert len(stored.nonce) == 12


def test_unseal_unknown_entry(vault: Vault, key_pair: KeyPair) -> None:
    with pytest.raises(EntryNotFoundError):
        vault.unseal("0" * 24, key_pair)


def test_unseal_with_wrong_key(vault: Vault, key_pair: KeyPair) -> None:
    entry = vault.seal(b"hunter2")

    with pytest.raises(DecryptionFailedError):
        vault.unseal(entry.id, KeyPair.generate())


@pytest.mark.parametrize("bit", [0, 7, 100, -1])
def test_bit_flip_is_detected(vault: Vault, key_pair: KeyPair, bit: int) -> None:
    entry = vault.seal(b"a secret long enough to flip bits in", label="X")
    data = _vault_json(vault)
    raw = bytearray(base64.b64decode(data["entries"][0]["ciphertext"]))
    index = bit if bit >= 0 else len(raw) * 8 - 1
    raw[index // 8] ^= 1 << (index % 8)
    data["entries"][0]["ciphertext"] = base64.b64encode(bytes(raw)).decode("ascii")
    _write_vault_json(vault, data)

    with pytest.raises(DecryptionFailedError):
        vault.unseal(entry.id, key_pair)


def test_moved_ciphertext_is_detected(vault: Vault, key_pair: KeyPair) -> None:
    first = vault.seal(b"first")
    second = vault.seal(b"second")
    data = _vault_json(vault)
    a, b = data["entries"]
    for field in ("ciphertext", "nonce", "ephemeral_key"):
        a[field], b[field] = b[field], a[field]
    _write_vault_json(vault, data)

    with pytest.raises(DecryptionFailedError):
        vault.unseal(first.id, key_pair)
    with pytest.raises(DecryptionFailedError):
        vault.unseal(second.id, key_pair)


# --- rotation --------------------------------------------------------------

def test_rotation_reseals_every_entry(vault: Vault, key_pair: KeyPair) -> None:
    first = vault.seal(b"first-secret", label="A")
    second = vault.seal(b"second-secret", label="B")
    new_key = KeyPair.generate()

    vault.rotate(key_pair, new_key)

    assert vault.unseal(first.id, new_key) == b"first-secret"
    assert vault.unseal(second.id, new_key) == b"second-secret"
    with pytest.raises(DecryptionFailedError):
        vault.unseal(first.id, key_pair)
    with pytest.raises(DecryptionFailedError):
        vault.unseal(second.id, key_pair)
    assert vault.public_key == new_key.public_key
    assert _vault_json(vault)["rotated_at"] is not None
    assert [e.id for e in vault.list_entries()] == [first.id, second.id]


def test_rotation_with_wrong_old_key_aborts(vault: Vault, key_pair: KeyPair) -> None:
    entry = vault.seal(b"first-secret")
    before = vault.path.read_bytes()

    with pytest.raises(RotationAbortedError):
        vault.rotate(KeyPair.generate(), KeyPair.generate())

    assert vault.path.read_bytes() == before
    assert vault.unseal(entry.id, key_pair) == b"first-secret"


def test_rotation_aborts_on_corrupt_entry(vault: Vault, key_pair: KeyPair) -> None:
    good = vault.seal(b"good")
    vault.seal(b"bad")
    data = _vault_json(vault)
    raw = bytearray(base64.b64decode(data["entries"][1]["ciphertext"]))
    raw[0] ^= 0xFF
    data["entries"][1]["ciphertext"] = base64.b64encode(bytes(raw)).decode("ascii")
    _write_vault_json(vault, data)
    before = vault.path.read_bytes()

    with pytest.raises(RotationAbortedError):
        vault.rotate(key_pair, KeyPair.generate())

    assert vault.path.read_bytes() == before
    assert vault.unseal(good.id, key_pair) == b"good"


# --- persistence -----------------------------------------------------------

def test_unknown_fields_survive_rewrites(vault: Vault, key_pair: KeyPair) -> None:
    vault.seal(b"first")
    data = _vault_json(vault)
    data["team_note"] = "keep me"
    data["entries"][0]["rotation_hint"] = {"days": 90}
    data["entries"][0]["provenance"]["commit"] = "abc123"
    _write_vault_json(vault, data)

    vault.seal(b"second")
    vault.rotate(key_pair, KeyPair.generate())

    data = _vault_json(vault)
    assert data["team_note"] == "keep me"
    assert data["entries"][0]["rotation_hint"] == {"days": 90}
    assert data["entries"][0]["provenance"]["commit"] == "abc123"


def test_non_string_field_is_a_format_error(vault: Vault, key_pair: KeyPair) -> None:
    vault.seal(b"hunter2")
    data = _vault_json(vault)
    data["entries"][0]["ciphertext"] = 12345
    _write_vault_json(vault, data)

    with pytest.raises(VaultFormatError):
        vault.list_entries()


def test_unseal_decrypts_while_holding_the_lock(
    vault: Vault, key_pair: KeyPair, monkeypatch: pytest.MonkeyPatch
) -> None:
    entry = vault.seal(b"hunter2")
    seen = []

    def checked_open(*args, **kwargs):
        seen.append(vault.lock_path.exists())
        return open_bytes(*args, **kwargs)

    monkeypatch.setattr(store, "open_bytes", checked_open)

    assert vault.unseal(entry.id, key_pair) == b"hunter2"
    assert seen == [True]
    assert not vault.lock_path.exists()


def test_newer_format_version_is_rejected(vault: Vault, key_pair: KeyPair) -> None:
    data = _vault_json(vault)
    data["format_version"] = 99
    _write_vault_json(vault, data)

    with pytest.raises(VaultFormatError):
        vault.list_entries()


def test_corrupt_vault_file(vault: Vault, key_pair: KeyPair) -> None:
    vault.path.write_text("{not json", encoding="utf-8")

    with pytest.raises(VaultFormatError):
        vault.seal(b"hunter2")


def test_lock_file_blocks_other_writers(project: Path, key_pair: KeyPair, vault: Vault) -> None:
    vault.lock_path.write_text("4242", encoding="utf-8")
    contended = Vault(project, lock_timeout=0.1)

    with pytest.raises(VaultLockedError):
        contended.seal(b"hunter2")

    vault.lock_path.unlink()
    assert contended.seal(b"hunter2").id


def test_lock_file_is_released(vault: Vault, key_pair: KeyPair) -> None:
    vault.seal(b"hunter2")
    assert not vault.lock_path.exists()


def test_concurrent_seals_are_serialized(vault: Vault, key_pair: KeyPair) -> None:
    errors = []

    def worker(i: int) -> None:
        try:
            vault.seal(f"secret-{i}".encode("ascii"), label=f"S{i}")
        except Exception as e:  # pragma: no cover - reported below
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    entries = vault.list_entries()
    assert len(entries) == 8
    assert sorted(vault.unseal(e.id, key_pair) for e in entries) == sorted(
        f"secret-{i}".encode("ascii") for i in range(8)
    )
