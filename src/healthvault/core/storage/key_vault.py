"""Durable 256-bit vault key held in a secret store.

The key is created lazily on first access and never rotated. Losing it makes
the at-rest database permanently unreadable, so a corrupt or unreadable
secret store is reported upward instead of being papered over with a fresh
key.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

from healthvault.core.crypto.cipher import KEY_SIZE
from healthvault.core.crypto.errors import SecretStoreUnavailable

logger = logging.getLogger(__name__)

SERVICE = "healthvault.secure"
ACCOUNT = "db_encryption_key"


@runtime_checkable
class SecretStore(Protocol):
    """A named-secret store keyed by (service, account).

    ``get`` returns ``None`` when the secret does not exist and raises
    ``SecretStoreUnavailable`` when the store itself cannot be read.
    """

    def get(self, service: str, account: str) -> bytes | None:
        ...

    def put(self, service: str, account: str, secret: bytes) -> None:
        ...


class InMemorySecretStore:
    """Process-local secret store. Secrets vanish with the process."""

    def __init__(self) -> None:
        self._secrets: dict[tuple[str, str], bytes] = {}

    def get(self, service: str, account: str) -> bytes | None:
        return self._secrets.get((service, account))

    def put(self, service: str, account: str, secret: bytes) -> None:
        self._secrets[(service, account)] = bytes(secret)


class FileSecretStore:
    """Secret store backed by owner-only files in an app-private directory.

    Each secret lives in ``<directory>/<service>__<account>.key`` with mode
    0600; the directory is created with mode 0700. Writes go through a
    temporary file and ``os.replace`` so a crash never leaves half a key.
    """

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory).expanduser()

    def _path(self, service: str, account: str) -> Path:
        return self._dir / f"{service}__{account}.key"

    def get(self, service: str, account: str) -> bytes | None:
        path = self._path(service, account)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise SecretStoreUnavailable(f"Cannot read secret store: {exc}") from exc

    def put(self, service: str, account: str, secret: bytes) -> None:
        path = self._path(service, account)
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            self._dir.mkdir(mode=0o700, parents=True, exist_ok=True)
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "wb") as fh:
                fh.write(secret)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, path)
        except OSError as exc:
            if tmp_path.exists():
                tmp_path.unlink()
            raise SecretStoreUnavailable(f"Cannot write secret store: {exc}") from exc


class KeyVault:
    """Hands out the single installation-wide vault key.

    ``get_or_create_key`` is idempotent and safe to call from several
    threads: the read-or-create runs under a lock, so two callers can never
    create two different keys.
    """

    def __init__(
        self,
        store: SecretStore,
        service: str = SERVICE,
        account: str = ACCOUNT,
    ) -> None:
        self._store = store
        self._service = service
        self._account = account
        self._lock = threading.Lock()
        self._cached: bytes | None = None

    def get_or_create_key(self) -> bytes:
        """Return the vault key, creating and storing it on first use.

        Raises:
            SecretStoreUnavailable: If the secret store fails, or holds a
                secret that is not a 256-bit key.
        """
        with self._lock:
            if self._cached is not None:
                return self._cached

            existing = self._store.get(self._service, self._account)
            if existing is not None:
                if len(existing) != KEY_SIZE:
                    raise SecretStoreUnavailable(
                        f"Stored vault key has invalid length {len(existing)}"
                    )
                self._cached = existing
                return existing

            key = os.urandom(KEY_SIZE)
            self._store.put(self._service, self._account, key)
            logger.info("Created new vault key in secret store (service=%s)", self._service)
            self._cached = key
            return key

    def __repr__(self) -> str:
        return f"KeyVault(service={self._service!r}, key=[REDACTED])"
