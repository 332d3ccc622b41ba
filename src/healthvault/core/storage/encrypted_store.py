"""Encrypted-at-rest lifecycle for the HealthVault database.

The database lives on disk only as an AES-GCM envelope sealed with the vault
key. While unlocked, a plaintext SQLite working copy is materialised in a
private scratch directory; locking seals it back to the at-rest file and
deletes the working copy.

State machine::

    LOCKED --unlock()--> UNLOCKED --lock()--> LOCKED

Both transitions are idempotent. Every operation, including repository
reads and writes, runs under one re-entrant lock so a lock triggered from a
background lifecycle event cannot interleave with an insert.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from healthvault.core.crypto.cipher import AuthenticatedCipher
from healthvault.core.crypto.errors import DiskIOFailure, StoreLocked, VaultError
from healthvault.core.storage.database import MetricDatabase
from healthvault.core.storage.key_vault import KeyVault
from healthvault.core.storage.models import StoreState

logger = logging.getLogger(__name__)

StateListener = Callable[[StoreState], None]


def _write_atomic(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` via a fsynced temp file and ``os.replace``.

    A crash leaves either the previous file or the new one, never a partial
    file. The temp file is removed if anything fails.
    """
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except OSError:
        if tmp_path.exists():
            tmp_path.unlink()
        raise


class EncryptedStore:
    """Owns the encrypted database file and its transient plaintext copy.

    Usage::

        store = EncryptedStore(key_vault, data_dir / "vault.sqlite.enc",
                               data_dir / "tmp" / "vault_decrypted.sqlite")
        store.unlock()           # after the user authenticated
        ...                      # MetricRepository(store).insert(...)
        store.lock()             # on background / explicit lock

    A freshly constructed store is always LOCKED. On a fresh install an
    empty database is created and sealed immediately, so the at-rest file
    exists from the first run on. A working copy left behind by a crash is
    resealed before the store reports LOCKED.
    """

    def __init__(
        self,
        key_vault: KeyVault,
        encrypted_path: str | Path,
        working_path: str | Path,
        cipher: AuthenticatedCipher | None = None,
    ) -> None:
        self._vault = key_vault
        self._encrypted_path = Path(encrypted_path).expanduser()
        self._working_path = Path(working_path).expanduser()
        self._cipher = cipher or AuthenticatedCipher()
        self._mutex = threading.RLock()
        self._listeners: list[StateListener] = []
        self._db = MetricDatabase(self._working_path)
        self._state = StoreState.LOCKED

        try:
            self._encrypted_path.parent.mkdir(parents=True, exist_ok=True)
            self._working_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            stale_tmp = self._encrypted_path.with_name(self._encrypted_path.name + ".tmp")
            if stale_tmp.exists():
                stale_tmp.unlink()
        except OSError as exc:
            raise DiskIOFailure(f"Cannot prepare vault directories: {exc}") from exc

        with self._mutex:
            if self._working_path.exists():
                logger.warning("Found leftover working copy; resealing it")
                self._open_working_copy()
                self.lock()
            elif not self._encrypted_path.exists():
                logger.info("No encrypted vault found; creating a new one")
                # Fail before any plaintext exists if the secret store is unusable.
                self._vault.get_or_create_key()
                self._open_working_copy()
                self.lock()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def is_unlocked(self) -> bool:
        return self._state is StoreState.UNLOCKED

    @property
    def encrypted_path(self) -> Path:
        return self._encrypted_path

    @property
    def working_path(self) -> Path:
        return self._working_path

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback invoked with the new state after each transition."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        self._listeners.remove(listener)

    def _set_state(self, state: StoreState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("State listener %r failed", listener)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def unlock(self) -> None:
        """Decrypt the at-rest file into a working copy and open it.

        No-op when already unlocked. On failure the store stays LOCKED and
        no working copy is left behind.

        Raises:
            SecretStoreUnavailable: If the vault key cannot be read.
            AuthenticationFailed: If the at-rest file does not verify.
            MalformedEnvelope: If the at-rest file is structurally invalid.
            DiskIOFailure: If a file cannot be read or written.
        """
        with self._mutex:
            if self._state is StoreState.UNLOCKED:
                return

            key = self._vault.get_or_create_key()
            if not self._working_path.exists() and self._encrypted_path.exists():
                try:
                    envelope = self._encrypted_path.read_bytes()
                except OSError as exc:
                    raise DiskIOFailure(f"Cannot read encrypted vault: {exc}") from exc
                plaintext = self._cipher.open(envelope, key)
                try:
                    _write_atomic(self._working_path, plaintext)
                except OSError as exc:
                    raise DiskIOFailure(f"Cannot write working copy: {exc}") from exc

            try:
                self._open_working_copy()
            except VaultError:
                self._discard_working_copy()
                raise
            logger.info("Vault unlocked")

    def lock(self) -> None:
        """Seal the working copy to the at-rest file and delete it.

        No-op when already locked. If sealing or the atomic replace fails,
        the previous at-rest file and the working copy are both left intact,
        the database is reopened and the store stays UNLOCKED.

        Raises:
            SecretStoreUnavailable: If the vault key cannot be read.
            DiskIOFailure: If the working copy cannot be flushed or read, the
                sealed file cannot be written, or the working copy cannot be
                removed.
        """
        with self._mutex:
            if self._state is StoreState.LOCKED:
                return

            try:
                self._db.close()
            except sqlite3.DatabaseError as exc:
                # close() raised before dropping the connection, so it stays usable.
                logger.error("Failed to flush working copy: %s", exc)
                raise DiskIOFailure(f"Cannot flush working copy: {exc}") from exc

            try:
                plaintext = self._working_path.read_bytes()
                key = self._vault.get_or_create_key()
                _write_atomic(self._encrypted_path, self._cipher.seal(plaintext, key))
            except OSError as exc:
                logger.error("Failed to seal vault: %s", exc)
                self._db.initialize()
                raise DiskIOFailure(f"Cannot write encrypted vault: {exc}") from exc
            except VaultError:
                logger.error("Failed to seal vault")
                self._db.initialize()
                raise

            try:
                self._remove_working_files()
            except OSError as exc:
                self._db.initialize()
                raise DiskIOFailure(f"Cannot remove working copy: {exc}") from exc

            self._set_state(StoreState.LOCKED)
            logger.info("Vault locked")

    @contextmanager
    def unlocked(self) -> Iterator[EncryptedStore]:
        """Unlock for the duration of a ``with`` block, then lock again."""
        self.unlock()
        try:
            yield self
        finally:
            self.lock()

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    @property
    def connection(self) -> sqlite3.Connection:
        """The working-copy connection.

        Raises:
            StoreLocked: If the store is locked.
        """
        if self._state is not StoreState.UNLOCKED:
            raise StoreLocked("Vault is locked; unlock it first")
        return self._db.connection

    @contextmanager
    def session(self) -> Iterator[sqlite3.Connection]:
        """Hold the store's lock and yield the working-copy connection.

        Raises:
            StoreLocked: If the store is locked.
        """
        with self._mutex:
            yield self.connection

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _open_working_copy(self) -> None:
        try:
            self._db.initialize()
        except sqlite3.DatabaseError as exc:
            raise DiskIOFailure(f"Cannot open working copy: {exc}") from exc
        self._set_state(StoreState.UNLOCKED)

    def _discard_working_copy(self) -> None:
        self._db.close()
        try:
            self._remove_working_files()
        except OSError:
            logger.exception("Could not remove working copy %s", self._working_path)

    def _remove_working_files(self) -> None:
        for path in (
            self._working_path,
            self._working_path.with_name(self._working_path.name + "-journal"),
            self._working_path.with_name(self._working_path.name + ".tmp"),
        ):
            if path.exists():
                path.unlink()
