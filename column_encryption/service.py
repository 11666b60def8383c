"""
Encrypted column access.

This module provides:
- EncryptedColumnService: encrypt-and-insert and query-and-decrypt over an
  injected RowStore and Aead

Data flow:
- Insert: identifier + plaintext -> Aead.encrypt(plaintext, AAD) -> row in store
- Query:  newest rows -> AAD from the stored identifier -> Aead.decrypt -> plaintext

AAD is always associated_data(identifier), which strips CHAR(n) padding, so the
value read back from a fixed-width column authenticates against the value
that was encrypted.
"""

from __future__ import annotations

import logging
from contextlib import aclosing
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from .config import DecryptErrorPolicy
from .envelope import Aead
from .errors import DecryptionError
from .records import DecryptedRow, EncryptedRow, associated_data, normalize_identifier
from .storage import RowStore

logger = logging.getLogger(__name__)

DEFAULT_QUERY_LIMIT: int = 5


class EncryptedColumnService:
    """
    Reads and writes one encrypted column, bound to its row's identifier.

    Provides the main API; the store and AEAD are supplied by the caller.
    """

    def __init__(
        self,
        store: RowStore,
        aead: Aead,
        *,
        on_decrypt_error: DecryptErrorPolicy = DecryptErrorPolicy.ABORT,
    ) -> None:
        """
        Args:
            store: Gateway to the table holding the encrypted column
            aead: Envelope AEAD bound to the key resource
            on_decrypt_error: Default policy for rows that fail to decrypt
        """
        self._store = store
        self._aead = aead
        self._on_decrypt_error = on_decrypt_error

    @property
    def store(self) -> RowStore:
        return self._store

    @property
    def on_decrypt_error(self) -> DecryptErrorPolicy:
        return self._on_decrypt_error

    async def encrypt_and_insert(
        self,
        identifier: str,
        plaintext: str,
        recorded_at: Optional[datetime] = None,
    ) -> EncryptedRow:
        """
        Encrypt plaintext with the identifier as AAD and insert the row.

        Args:
            identifier: Row identifier, stored in clear and bound as AAD
            plaintext: Value to protect
            recorded_at: Row timestamp (default: now, UTC, naive)

        Returns:
            The row as handed to the store

        Raises:
            ValueError: If identifier is blank
            EncryptionError: If encryption fails
            KeyServiceError: If the KMS cannot wrap the data key
            StoreAccessError: If the insert fails
        """
        if not normalize_identifier(identifier):
            raise ValueError("identifier must not be blank")

        if recorded_at is None:
            # time_cast is a timestamp without time zone
            recorded_at = datetime.now(timezone.utc).replace(tzinfo=None)

        ciphertext = self._aead.encrypt(
            plaintext.encode("utf-8"), associated_data(identifier)
        )
        await self._store.insert_row(identifier, recorded_at, ciphertext)
        logger.debug("Inserted encrypted row at %s", recorded_at.isoformat())
        return EncryptedRow(identifier, recorded_at, ciphertext)

    async def query_and_decrypt(
        self,
        limit: int = DEFAULT_QUERY_LIMIT,
        on_decrypt_error: Optional[DecryptErrorPolicy] = None,
    ) -> AsyncIterator[DecryptedRow]:
        """
        Yield the newest rows with their plaintext recovered, newest first.

        Rows are read lazily from one store connection, which is released when
        iteration ends for any reason.

        Args:
            limit: Maximum number of rows
            on_decrypt_error: Overrides the service policy for this query

        Raises:
            StoreAccessError: If the store cannot be read
            DecryptionError: If a row fails to decrypt under ABORT
            KeyServiceError: If the KMS cannot unwrap a data key, under any policy
        """
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")
        policy = on_decrypt_error or self._on_decrypt_error

        async with aclosing(self._store.recent_rows(limit)) as rows:
            async for row in rows:
                error: Optional[DecryptionError] = None
                try:
                    plaintext: Optional[str] = self.decrypt_row(row)
                except DecryptionError as e:
                    if policy is DecryptErrorPolicy.ABORT:
                        raise
                    if policy is DecryptErrorPolicy.SKIP:
                        logger.warning(
                            "Skipping row recorded at %s: %s", row.recorded_at, e
                        )
                        continue
                    plaintext, error = None, e
                yield DecryptedRow(row.identifier, row.recorded_at, plaintext, error)

    def decrypt_row(self, row: EncryptedRow) -> str:
        """
        Recover the plaintext of one stored row.

        Raises:
            DecryptionError: If authentication fails or the value is not UTF-8
        """
        data = self._aead.decrypt(row.ciphertext, associated_data(row.identifier))
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            raise DecryptionError("Decrypted value is not valid UTF-8") from None
