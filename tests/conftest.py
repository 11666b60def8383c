"""
Pytest configuration and fixtures for encrypted column tests.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import AsyncGenerator

import asyncpg
import pytest
from dotenv import load_dotenv

from column_encryption import (
    EncryptedColumnService,
    InMemoryRowStore,
    KmsEnvelopeAead,
    LocalAead,
    PostgresRowStore,
)

TEST_TABLE = "votes_test"


@pytest.fixture
def base_time() -> datetime:
    return datetime(2021, 3, 1, 12, 0, 0)


@pytest.fixture
def at(base_time: datetime):
    """Timestamp factory: at(n) is n minutes after base_time."""

    def _at(minutes: int) -> datetime:
        return base_time + timedelta(minutes=minutes)

    return _at


@pytest.fixture
def kek() -> LocalAead:
    """Local stand-in for the KMS key that wraps DEKs."""
    return LocalAead.generate()


@pytest.fixture
def envelope_aead(kek: LocalAead) -> KmsEnvelopeAead:
    return KmsEnvelopeAead(kek)


@pytest.fixture
def memory_store() -> InMemoryRowStore:
    """Create an in-memory store with CHAR(6) padding."""
    return InMemoryRowStore()


@pytest.fixture
def service(
    memory_store: InMemoryRowStore, envelope_aead: KmsEnvelopeAead
) -> EncryptedColumnService:
    return EncryptedColumnService(memory_store, envelope_aead)


@pytest.fixture
async def pg_pool() -> AsyncGenerator[asyncpg.Pool, None]:
    """Create a PostgreSQL connection pool for testing."""
    # Load environment from project root
    env_path = Path(__file__).parent.parent / ".env"
    load_dotenv(env_path)

    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set, skipping PostgreSQL tests")

    pool = await asyncpg.create_pool(database_url)
    if pool is None:
        pytest.skip("Failed to create PostgreSQL connection pool")

    await pool.execute(f"DROP TABLE IF EXISTS {TEST_TABLE}")

    yield pool

    await pool.execute(f"DROP TABLE IF EXISTS {TEST_TABLE}")
    await pool.close()


@pytest.fixture
async def postgres_store(pg_pool: asyncpg.Pool) -> PostgresRowStore:
    """Create a PostgreSQL store on a fresh table."""
    store = PostgresRowStore(pg_pool, TEST_TABLE)
    await store.create_table()
    return store
