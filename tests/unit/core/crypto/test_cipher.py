"""Tests for AuthenticatedCipher (AES-256-GCM envelopes)."""

from __future__ import annotations

import os

import pytest

from healthvault.core.crypto.cipher import (
    KEY_SIZE,
    MIN_ENVELOPE_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
    AuthenticatedCipher,
)
from healthvault.core.crypto.errors import AuthenticationFailed, MalformedEnvelope


@pytest.fixture
def cipher() -> AuthenticatedCipher:
    return AuthenticatedCipher()


@pytest.fixture
def key() -> bytes:
    return os.urandom(KEY_SIZE)


class TestRoundTrip:
    @pytest.mark.parametrize("plaintext", [b"", b"x", b"heart_rate,72\n" * 500])
    def test_open_returns_sealed_plaintext(self, cipher, key, plaintext):
        assert cipher.open(cipher.seal(plaintext, key), key) == plaintext

    def test_envelope_layout(self, cipher, key):
        envelope = cipher.seal(b"hello", key)
        assert len(envelope) == NONCE_SIZE + len(b"hello") + TAG_SIZE

    def test_fresh_nonce_per_seal(self, cipher, key):
        a = cipher.seal(b"same", key)
        b = cipher.seal(b"same", key)
        assert a[:NONCE_SIZE] != b[:NONCE_SIZE]
        assert a != b


class TestFailClosed:
    def test_wrong_key(self, cipher, key):
        envelope = cipher.seal(b"secret", key)
        with pytest.raises(AuthenticationFailed):
            cipher.open(envelope, os.urandom(KEY_SIZE))

    def test_every_single_bit_flip_is_rejected(self, cipher, key):
        envelope = cipher.seal(b"steps,120", key)
        for index in range(len(envelope)):
            for bit in range(8):
                tampered = bytearray(envelope)
                tampered[index] ^= 1 << bit
                with pytest.raises((AuthenticationFailed, MalformedEnvelope)):
                    cipher.open(bytes(tampered), key)

    def test_truncation_is_rejected(self, cipher, key):
        envelope = cipher.seal(b"steps,120", key)
        for length in range(len(envelope)):
            with pytest.raises((AuthenticationFailed, MalformedEnvelope)):
                cipher.open(envelope[:length], key)

    def test_short_input_is_malformed(self, cipher, key):
        with pytest.raises(MalformedEnvelope, match="too short"):
            cipher.open(b"\x00" * (MIN_ENVELOPE_SIZE - 1), key)

    def test_minimum_size_garbage_fails_authentication(self, cipher, key):
        with pytest.raises(AuthenticationFailed):
            cipher.open(b"\x00" * MIN_ENVELOPE_SIZE, key)


class TestKeyValidation:
    def test_short_key_rejected(self, cipher):
        with pytest.raises(ValueError, match="32 bytes"):
            cipher.seal(b"data", b"short")
