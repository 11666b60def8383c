"""
PostgreSQL row store.

This module provides:
- create_pool: asyncpg connection pool from Settings
- PostgresRowStore: RowStore over an asyncpg pool

Schema (one table per store):

    vote_id     SERIAL NOT NULL
    time_cast   timestamp NOT NULL
    team        CHAR(n) NOT NULL       -- right-padded with spaces by PostgreSQL
    voter_email BYTEA                  -- KmsEnvelopeAead ciphertext
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime
from typing import AsyncIterator

import asyncpg

from .config import Settings
from .errors import ConfigError, StoreAccessError
from .records import EncryptedRow
from .storage import DEFAULT_IDENTIFIER_WIDTH, RowStore

logger = logging.getLogger(__name__)

_TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Errors that mean the store could not be reached or the statement failed
_STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


async def create_pool(settings: Settings) -> asyncpg.Pool:
    """
    Create an asyncpg pool for the configured database.

    Raises:
        StoreAccessError: If the pool cannot be created
    """
    try:
        pool = await asyncpg.create_pool(
            dsn=settings.dsn,
            min_size=settings.pool_size,
            max_size=settings.pool_size,
            timeout=settings.connect_timeout,
            max_inactive_connection_lifetime=settings.idle_timeout,
        )
    except _STORE_ERRORS as e:
        raise StoreAccessError(f"Failed to create connection pool: {e}") from e
    if pool is None:
        raise StoreAccessError("Failed to create connection pool")
    return pool


class PostgresRowStore(RowStore):
    """
    Row store backed by a PostgreSQL table.

    The identifier column is CHAR(identifier_width), so values come back padded.
    """

    def __init__(
        self,
        pool: asyncpg.Pool,
        table_name: str,
        identifier_width: int = DEFAULT_IDENTIFIER_WIDTH,
    ) -> None:
        """
        Args:
            pool: asyncpg connection pool
            table_name: Unquoted table identifier

        Raises:
            ConfigError: If table_name is not a plain SQL identifier
        """
        if not _TABLE_NAME_RE.match(table_name or ""):
            raise ConfigError(f"Invalid table name: {table_name!r}")
        self._pool = pool
        self._table_name = table_name
        self._identifier_width = identifier_width

    @property
    def pool(self) -> asyncpg.Pool:
        return self._pool

    @property
    def table_name(self) -> str:
        return self._table_name

    async def create_table(self) -> None:
        query = f"""
            CREATE TABLE IF NOT EXISTS {self._table_name} (
                vote_id SERIAL NOT NULL,
                time_cast timestamp NOT NULL,
                team CHAR({self._identifier_width}) NOT NULL,
                voter_email BYTEA,
                PRIMARY KEY (vote_id)
            )
        """
        try:
            await self._pool.execute(query)
        except _STORE_ERRORS as e:
            raise StoreAccessError(f"Failed to create table {self._table_name}: {e}") from e
        logger.debug("Ensured table %s exists", self._table_name)

    async def insert_row(
        self, identifier: str, recorded_at: datetime, ciphertext: bytes
    ) -> None:
        query = f"""
            INSERT INTO {self._table_name} (time_cast, team, voter_email)
            VALUES ($1, $2, $3)
        """
        try:
            await self._pool.execute(query, recorded_at, identifier, ciphertext)
        except _STORE_ERRORS as e:
            raise StoreAccessError(f"Failed to insert row: {e}") from e
        logger.debug("Inserted row into %s", self._table_name)

    async def recent_rows(self, limit: int) -> AsyncIterator[EncryptedRow]:
        query = f"""
            SELECT team, time_cast, voter_email
            FROM {self._table_name}
            ORDER BY time_cast DESC
            LIMIT $1
        """
        try:
            async with self._pool.acquire() as conn:
                # Server-side cursors only exist inside a transaction
                async with conn.transaction(readonly=True):
                    async for record in conn.cursor(query, limit):
                        yield self._record_to_row(record)
        except _STORE_ERRORS as e:
            raise StoreAccessError(f"Failed to query {self._table_name}: {e}") from e

    @staticmethod
    def _record_to_row(record: asyncpg.Record) -> EncryptedRow:
        return EncryptedRow(
            identifier=record["team"],
            recorded_at=record["time_cast"],
            ciphertext=bytes(record["voter_email"] or b""),
        )
