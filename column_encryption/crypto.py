"""
Cryptographic primitives for AES-256-GCM.

This module provides:
- SecureKey: Wipeable key buffer with a redacted repr
- EncryptedData: Nonce and ciphertext pair with AEAD blob encoding
- AesGcmCipher: AES-256-GCM encryption/decryption operations
"""

from __future__ import annotations

import hmac
import secrets
from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import CryptoError, DecryptionError, EncryptionError

# Cryptographic constants
AES_256_KEY_SIZE: int = 32  # 256 bits
NONCE_SIZE: int = 12  # 96 bits (standard for AES-GCM)
TAG_SIZE: int = 16  # 128 bits (authentication tag)


class SecureKey:
    """
    AES key material held in a mutable buffer so it can be wiped.

    Envelope data keys live for a single encrypt or decrypt call and are wiped
    as soon as the call finishes. Keys that are never wiped explicitly are
    zeroed when collected, which CPython does not schedule promptly.
    """

    __slots__ = ("_material", "_wiped")

    def __init__(self, material: bytes | bytearray | memoryview) -> None:
        if not isinstance(material, (bytes, bytearray, memoryview)):
            raise CryptoError(
                f"Key material must be bytes-like, got {type(material).__name__}"
            )
        self._material = bytearray(material)
        self._wiped = False

    @classmethod
    def generate(cls, size: int = AES_256_KEY_SIZE) -> SecureKey:
        """Fresh random key from the OS CSPRNG."""
        return cls(secrets.token_bytes(size))

    @property
    def wiped(self) -> bool:
        return self._wiped

    def as_bytes(self) -> bytes:
        """
        Raises:
            CryptoError: If the key has been wiped
        """
        if self._wiped:
            raise CryptoError("Key material has been wiped")
        return bytes(self._material)

    def wipe(self) -> None:
        """Overwrite the key material with zeros. Safe to call repeatedly."""
        self._material[:] = bytes(len(self._material))
        self._wiped = True

    def __len__(self) -> int:
        return len(self._material)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SecureKey):
            return NotImplemented
        return hmac.compare_digest(self._material, other._material)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        state = "wiped" if self._wiped else "[REDACTED]"
        return f"<SecureKey {len(self._material)} bytes {state}>"

    def __del__(self) -> None:
        # __init__ may have raised before the slots were filled
        if getattr(self, "_material", None) is not None:
            self.wipe()


@dataclass
class EncryptedData:
    """
    Nonce and ciphertext produced by AesGcmCipher.

    The ciphertext includes the 16-byte authentication tag appended by AESGCM.
    """

    nonce: bytes  # 12 bytes
    ciphertext: bytes  # Ciphertext + 16-byte auth tag

    def to_aead_blob(self) -> bytes:
        """Encode as nonce || ciphertext || tag."""
        return self.nonce + self.ciphertext

    @classmethod
    def from_aead_blob(cls, blob: bytes) -> EncryptedData:
        """
        Parse nonce || ciphertext || tag.

        Raises:
            DecryptionError: If blob is too small to hold a nonce and a tag
        """
        min_size = NONCE_SIZE + TAG_SIZE
        if len(blob) < min_size:
            raise DecryptionError(
                f"AEAD blob too small: expected at least {min_size} bytes, got {len(blob)}"
            )
        return cls(nonce=blob[:NONCE_SIZE], ciphertext=blob[NONCE_SIZE:])


class AesGcmCipher:
    """
    AES-256-GCM authenticated encryption.

    Static methods with optional Additional Authenticated Data (AAD) for binding.
    """

    @staticmethod
    def encrypt(
        key: SecureKey,
        plaintext: bytes,
        aad: Optional[bytes] = None,
    ) -> EncryptedData:
        """
        Encrypt plaintext with AES-256-GCM under a fresh random nonce.

        Raises:
            EncryptionError: If key size is invalid or encryption fails
        """
        if len(key) != AES_256_KEY_SIZE:
            raise EncryptionError(
                f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(key)}"
            )

        nonce = secrets.token_bytes(NONCE_SIZE)
        aesgcm = AESGCM(key.as_bytes())

        try:
            ciphertext = aesgcm.encrypt(nonce, plaintext, aad)
        except (OverflowError, TypeError, ValueError) as e:
            raise EncryptionError(f"Encryption error: {e}") from e

        return EncryptedData(nonce=nonce, ciphertext=ciphertext)

    @staticmethod
    def decrypt(
        key: SecureKey,
        encrypted: EncryptedData,
        aad: Optional[bytes] = None,
    ) -> bytes:
        """
        Decrypt ciphertext with AES-256-GCM.

        The AAD must be byte-for-byte the value given at encryption.

        Raises:
            DecryptionError: If key/nonce size is invalid or authentication fails
        """
        if len(key) != AES_256_KEY_SIZE:
            raise DecryptionError(
                f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(key)}"
            )

        if len(encrypted.nonce) != NONCE_SIZE:
            raise DecryptionError(
                f"Invalid nonce size: expected {NONCE_SIZE}, got {len(encrypted.nonce)}"
            )

        aesgcm = AESGCM(key.as_bytes())

        try:
            return aesgcm.decrypt(encrypted.nonce, encrypted.ciphertext, aad)
        except InvalidTag:
            # Generic error to prevent oracle attacks
            raise DecryptionError("Decryption failed") from None
