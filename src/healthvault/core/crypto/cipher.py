"""AES-256-GCM authenticated encryption for the vault and export envelopes.

Envelope layout: ``nonce(12) || ciphertext || tag(16)``. The at-rest database
file is exactly one envelope; export artifacts prefix it with a KDF salt.
"""

from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from healthvault.core.crypto.errors import AuthenticationFailed, MalformedEnvelope

KEY_SIZE = 32  # 256 bits
NONCE_SIZE = 12  # 96 bits, standard for GCM
TAG_SIZE = 16  # 128-bit authentication tag
MIN_ENVELOPE_SIZE = NONCE_SIZE + TAG_SIZE


class AuthenticatedCipher:
    """Stateless seal/open of byte buffers under a 256-bit key.

    Usage::

        cipher = AuthenticatedCipher()
        envelope = cipher.seal(b"data", key)
        cipher.open(envelope, key)  # b"data"
    """

    @staticmethod
    def _check_key(key: bytes) -> None:
        if len(key) != KEY_SIZE:
            raise ValueError(f"Key must be {KEY_SIZE} bytes, got {len(key)}")

    def seal(self, plaintext: bytes, key: bytes) -> bytes:
        """Encrypt ``plaintext`` under ``key`` with a fresh random nonce.

        Returns:
            ``nonce || ciphertext || tag``.
        """
        self._check_key(key)
        nonce = os.urandom(NONCE_SIZE)
        return nonce + AESGCM(key).encrypt(nonce, plaintext, None)

    def open(self, envelope: bytes, key: bytes) -> bytes:
        """Decrypt and verify an envelope produced by :meth:`seal`.

        Raises:
            MalformedEnvelope: If the input is shorter than nonce + tag.
            AuthenticationFailed: If the tag does not verify. No partial
                plaintext is ever returned.
        """
        self._check_key(key)
        if len(envelope) < MIN_ENVELOPE_SIZE:
            raise MalformedEnvelope(
                f"Envelope too short: expected at least {MIN_ENVELOPE_SIZE} bytes, "
                f"got {len(envelope)}"
            )
        nonce = envelope[:NONCE_SIZE]
        try:
            return AESGCM(key).decrypt(nonce, envelope[NONCE_SIZE:], None)
        except InvalidTag as exc:
            raise AuthenticationFailed(
                "Decryption failed: wrong key or corrupted data"
            ) from exc
