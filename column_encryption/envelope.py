"""
Envelope AEAD.

This module provides:
- Aead: Interface for authenticated encryption with associated data
- LocalAead: AES-256-GCM under a key held in process memory
- KmsEnvelopeAead: Per-value DEK wrapped by a remote (KMS) Aead

Envelope format written by KmsEnvelopeAead:

    len(edek) (4 bytes, big-endian) || edek || nonce(12) || ciphertext || tag(16)

Key hierarchy:
- Remote KEK (never leaves the KMS) -> DEK (fresh per encrypt, stored wrapped)
- DEK -> column value
"""

from __future__ import annotations

import logging
import struct
from abc import ABC, abstractmethod

from .crypto import AesGcmCipher, EncryptedData, SecureKey
from .errors import ColumnEncryptionError, DecryptionError, KeyServiceError

logger = logging.getLogger(__name__)

EDEK_LENGTH_PREFIX_SIZE: int = 4

# DEKs are wrapped without associated data; the caller's AAD binds the payload.
_DEK_WRAP_AAD = b""


class Aead(ABC):
    """Authenticated encryption with associated data."""

    @abstractmethod
    def encrypt(self, plaintext: bytes, associated_data: bytes) -> bytes:
        """Encrypt plaintext, binding associated_data into the tag."""
        ...

    @abstractmethod
    def decrypt(self, ciphertext: bytes, associated_data: bytes) -> bytes:
        """
        Decrypt ciphertext produced by encrypt.

        Raises:
            DecryptionError: If the tag or associated data does not verify
        """
        ...


class LocalAead(Aead):
    """
    AES-256-GCM under a local key.

    Used as the wrapping key in tests and local development where no KMS is
    reachable. Output is nonce || ciphertext || tag.
    """

    def __init__(self, key: SecureKey) -> None:
        self._key = key

    @classmethod
    def generate(cls) -> LocalAead:
        return cls(SecureKey.generate())

    def encrypt(self, plaintext: bytes, associated_data: bytes) -> bytes:
        return AesGcmCipher.encrypt(self._key, plaintext, associated_data).to_aead_blob()

    def decrypt(self, ciphertext: bytes, associated_data: bytes) -> bytes:
        encrypted = EncryptedData.from_aead_blob(ciphertext)
        return AesGcmCipher.decrypt(self._key, encrypted, associated_data)


class KmsEnvelopeAead(Aead):
    """
    Envelope encryption over a remote Aead.

    Every encrypt call generates a fresh DEK, wraps it with the remote Aead and
    stores the wrapped DEK in front of the payload. Decrypt unwraps the DEK
    through the remote on every call; nothing is cached.
    """

    def __init__(self, remote: Aead) -> None:
        """
        Args:
            remote: Aead backed by the key-encryption key (usually a KMS key)
        """
        self._remote = remote

    @property
    def remote(self) -> Aead:
        return self._remote

    def encrypt(self, plaintext: bytes, associated_data: bytes) -> bytes:
        """
        Raises:
            EncryptionError: If the payload cannot be encrypted
            KeyServiceError: If the remote cannot wrap the DEK
        """
        dek = SecureKey.generate()
        try:
            try:
                edek = self._remote.encrypt(dek.as_bytes(), _DEK_WRAP_AAD)
            except ColumnEncryptionError:
                raise
            except Exception as e:
                raise KeyServiceError(f"Failed to wrap data key: {e}") from e

            payload = AesGcmCipher.encrypt(dek, plaintext, associated_data)
        finally:
            dek.wipe()

        logger.debug("Encrypted %d bytes under a %d-byte wrapped DEK", len(plaintext), len(edek))
        return struct.pack(">I", len(edek)) + edek + payload.to_aead_blob()

    def decrypt(self, ciphertext: bytes, associated_data: bytes) -> bytes:
        """
        Raises:
            DecryptionError: If the envelope is malformed or does not authenticate
            KeyServiceError: If the remote cannot be reached to unwrap the DEK
        """
        edek, payload = self._split(ciphertext)

        try:
            dek = SecureKey(self._remote.decrypt(edek, _DEK_WRAP_AAD))
        except ColumnEncryptionError:
            raise
        except Exception as e:
            raise KeyServiceError(f"Failed to unwrap data key: {e}") from e

        try:
            return AesGcmCipher.decrypt(
                dek, EncryptedData.from_aead_blob(payload), associated_data
            )
        finally:
            dek.wipe()

    @staticmethod
    def _split(ciphertext: bytes) -> tuple[bytes, bytes]:
        """Split an envelope into (wrapped DEK, payload blob)."""
        if len(ciphertext) < EDEK_LENGTH_PREFIX_SIZE:
            raise DecryptionError("Envelope too small")

        (edek_len,) = struct.unpack(">I", ciphertext[:EDEK_LENGTH_PREFIX_SIZE])
        if edek_len == 0 or edek_len > len(ciphertext) - EDEK_LENGTH_PREFIX_SIZE:
            raise DecryptionError("Invalid wrapped key length")

        edek_end = EDEK_LENGTH_PREFIX_SIZE + edek_len
        return ciphertext[EDEK_LENGTH_PREFIX_SIZE:edek_end], ciphertext[edek_end:]
