"""Error taxonomy for the encrypted vault and export codec.

Callers must be able to tell "wrong password" from "not a valid file" from
"secure storage is broken", so these are never collapsed into a generic
failure.
"""

from __future__ import annotations


class VaultError(Exception):
    """Base exception for all vault, cipher and export failures."""


class SecretStoreUnavailable(VaultError):
    """The platform secret store could not be read or written."""


class AuthenticationFailed(VaultError):
    """Wrong key or password, or the envelope was tampered with."""


class MalformedEnvelope(VaultError):
    """Input is structurally invalid (too short, bad framing)."""


class RecordDecodeError(MalformedEnvelope):
    """A stored metric row could not be converted to a typed record."""


class StoreLocked(VaultError):
    """A record operation was attempted while the store is locked."""


class DiskIOFailure(VaultError):
    """A file read, write or rename failed during lock, unlock or export."""
