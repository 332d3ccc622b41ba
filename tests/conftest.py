"""Shared test fixtures for HealthVault tests."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from healthvault.core.crypto.kdf import PasswordKeyDerivation  # noqa: E402
from healthvault.core.storage.encrypted_store import EncryptedStore  # noqa: E402
from healthvault.core.storage.key_vault import InMemorySecretStore, KeyVault  # noqa: E402
from healthvault.core.storage.models import MetricRecord  # noqa: E402
from healthvault.core.storage.repository import MetricRepository  # noqa: E402

# Cheap KDF for tests; production uses 600k iterations.
TEST_KDF_ITERATIONS = 1_000

D1 = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


def make_record(
    kind: str = "steps",
    value: float = 120.0,
    start: datetime = D1,
    end: datetime | None = None,
    unit: str | None = "count",
    source: str | None = "iPhone",
) -> MetricRecord:
    """Create a MetricRecord with sensible defaults."""
    return MetricRecord(
        kind=kind,
        value=value,
        unit=unit,
        start=start,
        end=end,
        source=source,
        recorded_at=D1 + timedelta(days=1),
    )


# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("SECRET_STORE_DIR", str(tmp_path / "keys"))
    monkeypatch.setenv("EXPORT_DIR", str(tmp_path / "exports"))
    monkeypatch.setenv("KDF_ITERATIONS", str(TEST_KDF_ITERATIONS))
    monkeypatch.setenv("HEALTH_FEED", "mock")
    monkeypatch.setenv("DEVICE_SECRET", "")


# ---------------------------------------------------------------------------
# Vault fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def secret_store() -> InMemorySecretStore:
    return InMemorySecretStore()


@pytest.fixture
def key_vault(secret_store: InMemorySecretStore) -> KeyVault:
    return KeyVault(secret_store)


@pytest.fixture
def vault_paths(tmp_path: Path) -> tuple[Path, Path]:
    """(encrypted at-rest path, plaintext working-copy path)."""
    return tmp_path / "vault" / "vault.sqlite.enc", tmp_path / "vault" / "tmp" / "vault_decrypted.sqlite"


@pytest.fixture
def encrypted_store(key_vault: KeyVault, vault_paths: tuple[Path, Path]):
    """A freshly constructed (LOCKED) store; locked again on teardown."""
    encrypted_path, working_path = vault_paths
    store = EncryptedStore(key_vault, encrypted_path, working_path)
    yield store
    store.lock()


@pytest.fixture
def unlocked_store(encrypted_store: EncryptedStore) -> EncryptedStore:
    encrypted_store.unlock()
    return encrypted_store


@pytest.fixture
def repository(unlocked_store: EncryptedStore) -> MetricRepository:
    return MetricRepository(unlocked_store)


@pytest.fixture
def record_factory():
    """The ``make_record`` helper, for building records in tests."""
    return make_record


@pytest.fixture
def fast_kdf() -> PasswordKeyDerivation:
    return PasswordKeyDerivation(iterations=TEST_KDF_ITERATIONS)
