"""Authentication gate in front of ``EncryptedStore.unlock``.

The biometric / passcode prompt is an external collaborator; this module
only defines the capability it must provide and the rule that the vault is
unlocked after a successful authentication and never otherwise.
"""

from __future__ import annotations

import hmac
import logging
from enum import Enum
from typing import Protocol, runtime_checkable

from healthvault.core.storage.encrypted_store import EncryptedStore
from healthvault.core.storage.queue import StorageQueue

logger = logging.getLogger(__name__)


class AuthOutcome(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    UNAVAILABLE = "unavailable"


@runtime_checkable
class Authenticator(Protocol):
    """User-presence check supplied by the host platform."""

    async def authenticate(self, reason: str) -> AuthOutcome:
        """Biometric authentication."""
        ...

    async def authenticate_with_device_secret(self, reason: str) -> bool:
        """Passcode-equivalent fallback when biometrics are unavailable."""
        ...


class DeviceSecretAuthenticator:
    """Authenticator for hosts without biometrics.

    Compares a secret presented by the caller with the configured device
    secret in constant time. An empty configured secret refuses everyone.
    """

    def __init__(self, expected_secret: str, presented_secret: str) -> None:
        self._expected = expected_secret
        self._presented = presented_secret

    async def authenticate(self, reason: str) -> AuthOutcome:
        return AuthOutcome.UNAVAILABLE

    async def authenticate_with_device_secret(self, reason: str) -> bool:
        if not self._expected:
            return False
        return hmac.compare_digest(
            self._expected.encode("utf-8"), self._presented.encode("utf-8")
        )


async def authenticate_and_unlock(
    store: EncryptedStore,
    authenticator: Authenticator,
    reason: str = "Unlock HealthVault",
    queue: StorageQueue | None = None,
) -> bool:
    """Authenticate the user and unlock the store on success.

    Falls back to the device secret only when biometrics are unavailable;
    a biometric FAILURE is final.

    Returns:
        True if the store is unlocked, False if authentication was refused.

    Raises:
        Whatever ``EncryptedStore.unlock`` raises; the store stays locked.
    """
    outcome = await authenticator.authenticate(reason)
    if outcome is AuthOutcome.UNAVAILABLE:
        granted = await authenticator.authenticate_with_device_secret(reason)
    else:
        granted = outcome is AuthOutcome.SUCCESS

    if not granted:
        logger.info("Authentication refused; vault stays locked")
        return False

    if queue is not None:
        await queue.run(store.unlock)
    else:
        store.unlock()
    return True
