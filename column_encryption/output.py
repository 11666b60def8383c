"""Tab-separated rendering of decrypted rows."""

from __future__ import annotations

from typing import AsyncIterable, TextIO

from .records import DecryptedRow, normalize_identifier

HEADER = "Team\tTime Cast\tEmail"
DECRYPTION_FAILED = "<decryption failed>"


def format_row(row: DecryptedRow) -> str:
    plaintext = row.plaintext if row.ok else DECRYPTION_FAILED
    return f"{normalize_identifier(row.identifier)}\t{row.recorded_at}\t{plaintext}"


async def write_rows(rows: AsyncIterable[DecryptedRow], out: TextIO) -> int:
    """
    Write the header and one line per row; return the number of rows written.

    The header goes out with the first row (or at the end of an empty result),
    so a query that fails before producing a row writes nothing.
    """
    count = 0
    async for row in rows:
        if count == 0:
            print(HEADER, file=out)
        print(format_row(row), file=out)
        count += 1
    if count == 0:
        print(HEADER, file=out)
    return count
