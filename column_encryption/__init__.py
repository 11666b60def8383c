"""
Column Encryption

Client-side envelope encryption for a PostgreSQL column, with the data key
wrapped by Cloud KMS and the row's identifier bound as associated data.

Quick Start
-----------
```python
import asyncio
from column_encryption import (
    EncryptedColumnService,
    PostgresRowStore,
    Settings,
    create_pool,
    get_envelope_aead,
)

async def main():
    settings = Settings.from_env()
    pool = await create_pool(settings)
    store = PostgresRowStore(pool, settings.table_name)
    service = EncryptedColumnService(store, get_envelope_aead(settings.kms_uri))

    await store.create_table()
    await service.encrypt_and_insert("SPACES", "hello@example.com")

    async for row in service.query_and_decrypt(limit=5):
        print(row.identifier, row.recorded_at, row.plaintext)

    await pool.close()

asyncio.run(main())
```

Key Features
------------
- **Envelope AEAD**: Fresh AES-256-GCM data key per value, wrapped by a KMS key
- **Identifier-bound ciphertexts**: The row identifier is the associated data,
  with CHAR(n) padding normalized identically on insert and query
- **Lazy queries**: Rows are decrypted one at a time from a server-side cursor
- **Decrypt error policies**: Abort, skip, or report rows that fail to decrypt
- **Pluggable stores**: PostgreSQL via asyncpg, or in-memory for testing
"""

__version__ = "0.1.0"

# =============================================================================
# Crypto Exports
# =============================================================================

from .crypto import (
    AES_256_KEY_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
    AesGcmCipher,
    EncryptedData,
    SecureKey,
)
from .envelope import Aead, KmsEnvelopeAead, LocalAead
from .kms import GcpKmsAead, get_envelope_aead, parse_key_uri

# =============================================================================
# Error Exports
# =============================================================================

from .errors import (
    ColumnEncryptionError,
    ConfigError,
    CryptoError,
    DecryptionError,
    EncryptionError,
    KeyServiceError,
    StoreAccessError,
)

# =============================================================================
# Storage Exports
# =============================================================================

from .records import DecryptedRow, EncryptedRow, associated_data, normalize_identifier
from .storage import InMemoryRowStore, RowStore
from .postgres import PostgresRowStore, create_pool

# =============================================================================
# Service Exports (Primary API)
# =============================================================================

from .config import DecryptErrorPolicy, Settings
from .output import write_rows
from .service import EncryptedColumnService

# =============================================================================
# Public API
# =============================================================================

__all__ = [
    # Version
    "__version__",
    # Crypto
    "AES_256_KEY_SIZE",
    "NONCE_SIZE",
    "TAG_SIZE",
    "AesGcmCipher",
    "EncryptedData",
    "SecureKey",
    "Aead",
    "LocalAead",
    "KmsEnvelopeAead",
    "GcpKmsAead",
    "get_envelope_aead",
    "parse_key_uri",
    # Errors
    "ColumnEncryptionError",
    "CryptoError",
    "EncryptionError",
    "DecryptionError",
    "KeyServiceError",
    "StoreAccessError",
    "ConfigError",
    # Storage
    "EncryptedRow",
    "DecryptedRow",
    "associated_data",
    "normalize_identifier",
    "RowStore",
    "InMemoryRowStore",
    "PostgresRowStore",
    "create_pool",
    # Service (Primary API)
    "DecryptErrorPolicy",
    "Settings",
    "EncryptedColumnService",
    "write_rows",
]
