"""
Row types and the identifier normalization shared by the insert and query paths.

The identifier column is fixed-width (CHAR(n)), so PostgreSQL hands it back
right-padded with spaces. The identifier is also the associated data for the
encrypted column, and both paths must derive the AAD with associated_data()
or every decryption fails authentication.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .errors import DecryptionError


def normalize_identifier(identifier: str) -> str:
    """Strip the trailing padding a fixed-width column adds. Idempotent."""
    return identifier.rstrip(" ")


def associated_data(identifier: str) -> bytes:
    """AAD bytes bound to an encrypted value for the given identifier."""
    return normalize_identifier(identifier).encode("utf-8")


@dataclass(frozen=True)
class EncryptedRow:
    """One persisted row, with the identifier exactly as stored."""

    identifier: str
    recorded_at: datetime
    ciphertext: bytes  # KmsEnvelopeAead format, owned by the AEAD


@dataclass(frozen=True)
class DecryptedRow:
    """A row with its plaintext recovered (or the error that prevented it)."""

    identifier: str
    recorded_at: datetime
    plaintext: Optional[str]
    error: Optional[DecryptionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None
