from __future__ import annotations

import io
from contextlib import aclosing

import pytest

from column_encryption import (
    DecryptErrorPolicy,
    DecryptionError,
    EncryptedColumnService,
    InMemoryRowStore,
    KmsEnvelopeAead,
    StoreAccessError,
    write_rows,
)
from column_encryption.output import HEADER


async def test_spaces_row_prints_unpadded(envelope_aead: KmsEnvelopeAead, at):
    store = InMemoryRowStore(width=10)
    service = EncryptedColumnService(store, envelope_aead)
    await service.encrypt_and_insert("SPACES", "hello@example.com", at(0))
    out = io.StringIO()

    count = await write_rows(service.query_and_decrypt(), out)

    assert count == 1
    assert out.getvalue().splitlines() == [
        HEADER,
        f"SPACES\t{at(0)}\thello@example.com",
    ]
    assert HEADER == "Team\tTime Cast\tEmail"


async def test_empty_result_prints_header_only(service: EncryptedColumnService):
    out = io.StringIO()

    assert await write_rows(service.query_and_decrypt(), out) == 0
    assert out.getvalue() == HEADER + "\n"


async def test_store_failure_prints_nothing(
    service: EncryptedColumnService, memory_store: InMemoryRowStore, at
):
    await service.encrypt_and_insert("A", "a@example.com", at(0))
    memory_store.fail_with = ConnectionRefusedError("connection refused")
    out = io.StringIO()

    with pytest.raises(StoreAccessError):
        await write_rows(service.query_and_decrypt(), out)
    assert out.getvalue() == ""


async def test_abort_stops_after_failing_row(
    service: EncryptedColumnService, memory_store: InMemoryRowStore, at
):
    for m, team in enumerate(["A", "B", "C"]):
        await service.encrypt_and_insert(team, f"{team.lower()}@example.com", at(m))
    # Corrupt B, the second newest
    tampered = bytearray(memory_store.rows[1].ciphertext)
    tampered[-1] ^= 0x01
    memory_store.replace_ciphertext(1, bytes(tampered))
    out = io.StringIO()

    with pytest.raises(DecryptionError):
        async with aclosing(service.query_and_decrypt()) as rows:
            await write_rows(rows, out)

    assert out.getvalue().splitlines() == [HEADER, f"C\t{at(2)}\tc@example.com"]
    assert memory_store.open_connections == 0


async def test_reported_row_is_marked(
    service: EncryptedColumnService, memory_store: InMemoryRowStore, at
):
    await service.encrypt_and_insert("A", "a@example.com", at(0))
    memory_store.replace_ciphertext(0, b"garbage")
    out = io.StringIO()

    await write_rows(
        service.query_and_decrypt(on_decrypt_error=DecryptErrorPolicy.REPORT), out
    )

    assert out.getvalue().splitlines()[1] == f"A\t{at(0)}\t<decryption failed>"
