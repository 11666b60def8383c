"""
Row store interface and in-memory implementation.

This module provides:
- RowStore: Abstract gateway to the table holding the encrypted column
- InMemoryRowStore: In-process store with CHAR(n) padding semantics, for testing
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import AsyncIterator, List, Optional

from .errors import StoreAccessError
from .records import EncryptedRow

logger = logging.getLogger(__name__)

DEFAULT_IDENTIFIER_WIDTH: int = 6


class RowStore(ABC):
    """
    Abstract gateway to a table of (identifier, timestamp, ciphertext) rows.

    All methods are async to support both in-memory and database backends.
    Failures to reach the store or run a statement raise StoreAccessError.
    """

    @abstractmethod
    async def create_table(self) -> None:
        """Create the table if it does not exist."""
        ...

    @abstractmethod
    async def insert_row(
        self, identifier: str, recorded_at: datetime, ciphertext: bytes
    ) -> None:
        """Insert one row."""
        ...

    @abstractmethod
    def recent_rows(self, limit: int) -> AsyncIterator[EncryptedRow]:
        """
        Iterate the newest rows, ordered by timestamp descending.

        The iterator holds one connection until it is exhausted or closed;
        callers that may stop early should close it (contextlib.aclosing).
        """
        ...


class InMemoryRowStore(RowStore):
    """
    In-memory row store for testing.

    Pads identifiers to a fixed width like a CHAR(n) column and can simulate
    an unreachable database. Connection acquisitions are counted so callers
    can verify release.
    """

    def __init__(self, width: int = DEFAULT_IDENTIFIER_WIDTH) -> None:
        self._width = width
        self._rows: List[EncryptedRow] = []
        self._table_created = False
        self._lock = asyncio.Lock()
        self.fail_with: Optional[Exception] = None
        self.acquired = 0
        self.released = 0

    @property
    def rows(self) -> List[EncryptedRow]:
        """Rows in insertion order, as stored."""
        return list(self._rows)

    @property
    def open_connections(self) -> int:
        return self.acquired - self.released

    def replace_ciphertext(self, index: int, ciphertext: bytes) -> None:
        """Overwrite a stored ciphertext (to simulate tampering)."""
        row = self._rows[index]
        self._rows[index] = EncryptedRow(row.identifier, row.recorded_at, ciphertext)

    def _check_available(self) -> None:
        if self.fail_with is not None:
            raise StoreAccessError(f"Failed to connect to row store: {self.fail_with}")

    async def create_table(self) -> None:
        async with self._lock:
            self._check_available()
            self._table_created = True

    async def insert_row(
        self, identifier: str, recorded_at: datetime, ciphertext: bytes
    ) -> None:
        async with self._lock:
            self._check_available()
            if len(identifier) > self._width:
                raise StoreAccessError(
                    f"Failed to insert row: value too long for type character({self._width})"
                )
            self._rows.append(
                EncryptedRow(identifier.ljust(self._width), recorded_at, bytes(ciphertext))
            )

    async def recent_rows(self, limit: int) -> AsyncIterator[EncryptedRow]:
        self._check_available()
        self.acquired += 1
        try:
            async with self._lock:
                # sorted() is stable, so equal timestamps keep insertion order
                snapshot = sorted(self._rows, key=lambda r: r.recorded_at, reverse=True)
            for row in snapshot[:limit]:
                self._check_available()
                yield row
        finally:
            self.released += 1
