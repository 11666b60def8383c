from __future__ import annotations

import pytest

from column_encryption import associated_data, normalize_identifier


@pytest.mark.parametrize(
    "stored,expected",
    [
        ("SPACES    ", "SPACES"),
        ("SPACES", "SPACES"),
        ("A     ", "A"),
        ("  LEAD  ", "  LEAD"),
        ("TWO WORD  ", "TWO WORD"),
        ("      ", ""),
    ],
)
def test_normalize_strips_trailing_padding(stored: str, expected: str):
    assert normalize_identifier(stored) == expected


@pytest.mark.parametrize("value", ["SPACES    ", "A", "  LEAD  ", "TAB\t", ""])
def test_normalize_is_idempotent(value: str):
    once = normalize_identifier(value)
    assert normalize_identifier(once) == once


def test_associated_data_matches_for_padded_and_unpadded():
    assert associated_data("SPACES") == associated_data("SPACES    ") == b"SPACES"
    assert associated_data("Téam  ") == "Téam".encode("utf-8")
