"""
Process configuration.

Settings is passed explicitly to the pool factory and the CLI; nothing below
the CLI reads the environment.

Environment variables (a .env file is loaded first if present):

    DB_USER, DB_PASS, DB_NAME              required
    CLOUD_KMS_URI                          required, gcp-kms://projects/.../cryptoKeys/...
    DB_HOST, DB_PORT                       TCP target (default 127.0.0.1:5432)
    CLOUD_SQL_CONNECTION_NAME              project:region:instance, connects over
                                           the Unix socket in DB_SOCKET_DIR instead
    DB_SOCKET_DIR                          default /cloudsql
    TABLE_NAME                             default votes
    QUERY_LIMIT                            default 5
    ON_DECRYPT_ERROR                       abort | skip | report (default abort)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional
from urllib.parse import quote

from dotenv import load_dotenv

from .errors import ConfigError


class DecryptErrorPolicy(Enum):
    """What query-and-decrypt does when one row fails to decrypt."""

    ABORT = "abort"  # Raise DecryptionError, stop iterating
    SKIP = "skip"  # Log and drop the row
    REPORT = "report"  # Yield the row with the error attached

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_str(cls, s: str) -> DecryptErrorPolicy:
        """Parse from string."""
        try:
            return cls(s.strip().lower())
        except ValueError:
            raise ConfigError(f"Invalid decrypt error policy: {s}")


@dataclass(frozen=True)
class Settings:
    """Database identity, credentials, connection target, key URI and table."""

    db_user: str
    db_pass: str = field(repr=False)
    db_name: str
    kms_uri: str
    db_host: str = "127.0.0.1"
    db_port: int = 5432
    instance_connection_name: Optional[str] = None
    socket_dir: str = "/cloudsql"
    table_name: str = "votes"
    query_limit: int = 5
    on_decrypt_error: DecryptErrorPolicy = DecryptErrorPolicy.ABORT
    pool_size: int = 5
    connect_timeout: float = 10.0  # seconds
    idle_timeout: float = 600.0  # seconds

    @property
    def dsn(self) -> str:
        """postgresql:// URL for asyncpg."""
        auth = f"{quote(self.db_user, safe='')}:{quote(self.db_pass, safe='')}"
        if self.instance_connection_name:
            socket = quote(f"{self.socket_dir}/{self.instance_connection_name}", safe="")
            return f"postgresql://{auth}@/{self.db_name}?host={socket}"
        return f"postgresql://{auth}@{self.db_host}:{self.db_port}/{self.db_name}"

    @classmethod
    def from_env(
        cls,
        env_file: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> Settings:
        """
        Load settings from the environment.

        Args:
            env_file: .env file to load (default: search from the working directory)
            environ: Mapping to read instead of os.environ (skips .env loading)

        Raises:
            ConfigError: If a required variable is missing or a value is malformed
        """
        if environ is None:
            load_dotenv(env_file)
            environ = os.environ

        def required(name: str) -> str:
            value = environ.get(name)
            if not value:
                raise ConfigError(f"{name} must be set in environment or .env file")
            return value

        def integer(name: str, default: int) -> int:
            value = environ.get(name)
            if not value:
                return default
            try:
                return int(value)
            except ValueError:
                raise ConfigError(f"{name} must be an integer, got {value!r}")

        query_limit = integer("QUERY_LIMIT", 5)
        if query_limit < 1:
            raise ConfigError(f"QUERY_LIMIT must be positive, got {query_limit}")

        return cls(
            db_user=required("DB_USER"),
            db_pass=required("DB_PASS"),
            db_name=required("DB_NAME"),
            kms_uri=required("CLOUD_KMS_URI"),
            db_host=environ.get("DB_HOST") or "127.0.0.1",
            db_port=integer("DB_PORT", 5432),
            instance_connection_name=environ.get("CLOUD_SQL_CONNECTION_NAME") or None,
            socket_dir=environ.get("DB_SOCKET_DIR") or "/cloudsql",
            table_name=environ.get("TABLE_NAME") or "votes",
            query_limit=query_limit,
            on_decrypt_error=DecryptErrorPolicy.from_str(
                environ.get("ON_DECRYPT_ERROR") or "abort"
            ),
        )
