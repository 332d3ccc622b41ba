"""Tests for KeyVault and the secret store backends."""

from __future__ import annotations

import os
import stat
import threading

import pytest

from healthvault.core.crypto.cipher import KEY_SIZE
from healthvault.core.crypto.errors import SecretStoreUnavailable
from healthvault.core.storage.key_vault import (
    ACCOUNT,
    SERVICE,
    FileSecretStore,
    InMemorySecretStore,
    KeyVault,
    SecretStore,
)


class _BrokenStore:
    def get(self, service, account):
        raise SecretStoreUnavailable("keystore locked")

    def put(self, service, account, secret):
        raise SecretStoreUnavailable("keystore locked")


class _CountingStore(InMemorySecretStore):
    def __init__(self) -> None:
        super().__init__()
        self.puts = 0

    def put(self, service, account, secret):
        self.puts += 1
        super().put(service, account, secret)


class TestKeyVault:
    def test_creates_key_on_first_access(self, secret_store):
        vault = KeyVault(secret_store)
        key = vault.get_or_create_key()
        assert len(key) == KEY_SIZE
        assert secret_store.get(SERVICE, ACCOUNT) == key

    def test_idempotent(self, key_vault):
        assert key_vault.get_or_create_key() == key_vault.get_or_create_key()

    def test_reuses_existing_key_across_instances(self, secret_store):
        first = KeyVault(secret_store).get_or_create_key()
        second = KeyVault(secret_store).get_or_create_key()
        assert first == second

    def test_concurrent_callers_share_one_key(self):
        store = _CountingStore()
        vault = KeyVault(store)
        keys: list[bytes] = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            keys.append(vault.get_or_create_key())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(set(keys)) == 1
        assert store.puts == 1

    def test_store_failure_is_surfaced(self):
        with pytest.raises(SecretStoreUnavailable):
            KeyVault(_BrokenStore()).get_or_create_key()

    def test_wrong_length_secret_is_not_replaced(self, secret_store):
        secret_store.put(SERVICE, ACCOUNT, b"too-short")
        with pytest.raises(SecretStoreUnavailable, match="invalid length"):
            KeyVault(secret_store).get_or_create_key()
        assert secret_store.get(SERVICE, ACCOUNT) == b"too-short"

    def test_repr_is_redacted(self, key_vault):
        key = key_vault.get_or_create_key()
        assert "REDACTED" in repr(key_vault)
        assert key.hex() not in repr(key_vault)


class TestFileSecretStore:
    def test_protocol_conformance(self, tmp_path):
        assert isinstance(FileSecretStore(tmp_path), SecretStore)
        assert isinstance(InMemorySecretStore(), SecretStore)

    def test_missing_secret_returns_none(self, tmp_path):
        assert FileSecretStore(tmp_path / "keys").get(SERVICE, ACCOUNT) is None

    def test_put_then_get(self, tmp_path):
        store = FileSecretStore(tmp_path / "keys")
        store.put(SERVICE, ACCOUNT, b"\x01" * 32)
        assert store.get(SERVICE, ACCOUNT) == b"\x01" * 32

    def test_survives_new_instance(self, tmp_path):
        key = KeyVault(FileSecretStore(tmp_path / "keys")).get_or_create_key()
        assert KeyVault(FileSecretStore(tmp_path / "keys")).get_or_create_key() == key

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
    def test_secret_file_is_owner_only(self, tmp_path):
        store = FileSecretStore(tmp_path / "keys")
        store.put(SERVICE, ACCOUNT, b"\x01" * 32)
        files = list((tmp_path / "keys").iterdir())
        assert len(files) == 1
        assert stat.S_IMODE(files[0].stat().st_mode) == 0o600

    def test_unreadable_store_raises(self, tmp_path):
        # A directory where the key file should be cannot be read as bytes.
        store = FileSecretStore(tmp_path / "keys")
        (tmp_path / "keys" / f"{SERVICE}__{ACCOUNT}.key").mkdir(parents=True)
        with pytest.raises(SecretStoreUnavailable):
            store.get(SERVICE, ACCOUNT)
