"""Password-based key derivation for zero-knowledge exports."""

from __future__ import annotations

import os

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from healthvault.core.crypto.cipher import KEY_SIZE

SALT_SIZE = 32
DEFAULT_ITERATIONS = 600_000  # OWASP 2023 guidance for PBKDF2-SHA256


class PasswordKeyDerivation:
    """Derives AES-256 keys from a password and salt with PBKDF2-HMAC-SHA256.

    Derivation is deterministic for a given password, salt and iteration
    count, and deliberately slow to make offline guessing expensive.
    """

    def __init__(self, iterations: int = DEFAULT_ITERATIONS) -> None:
        if iterations < 1:
            raise ValueError("iterations must be positive")
        self._iterations = iterations

    @property
    def iterations(self) -> int:
        return self._iterations

    def derive(self, password: str, salt: bytes) -> bytes:
        """Derive a 32-byte key from ``password`` and ``salt``.

        Raises:
            ValueError: If the password is empty or the salt has the wrong size.
        """
        if not password:
            raise ValueError("Password must not be empty")
        if len(salt) != SALT_SIZE:
            raise ValueError(f"Salt must be {SALT_SIZE} bytes, got {len(salt)}")
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_SIZE,
            salt=salt,
            iterations=self._iterations,
        )
        return kdf.derive(password.encode("utf-8"))

    @staticmethod
    def new_salt() -> bytes:
        """Return fresh cryptographically random salt bytes."""
        return os.urandom(SALT_SIZE)
