"""
Exception classes for encrypted column access.

Every failure surfaced by this package derives from ColumnEncryptionError so
callers can catch the whole family at the CLI or request boundary.
"""

from __future__ import annotations


class ColumnEncryptionError(Exception):
    """Base exception for all encrypted column operations."""

    pass


class CryptoError(ColumnEncryptionError):
    """Cryptographic operation failed."""

    pass


class EncryptionError(CryptoError):
    """Encrypting a value (or wrapping its data key) failed."""

    pass


class DecryptionError(CryptoError):
    """Ciphertext could not be authenticated, unwrapped or decoded."""

    pass


class StoreAccessError(ColumnEncryptionError):
    """Connecting to the row store or executing a statement failed."""

    pass


class ConfigError(ColumnEncryptionError):
    """Configuration error (missing setting, malformed key URI, bad table name)."""

    pass


class KeyServiceError(ColumnEncryptionError):
    """The key-management service could not be reached or refused the call."""

    pass
