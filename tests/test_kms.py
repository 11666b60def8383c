from __future__ import annotations

import sys
from types import SimpleNamespace

import pytest

from column_encryption import (
    ConfigError,
    DecryptionError,
    GcpKmsAead,
    KeyServiceError,
    KmsEnvelopeAead,
    LocalAead,
    get_envelope_aead,
    parse_key_uri,
)

KEY_NAME = "projects/p/locations/global/keyRings/ring/cryptoKeys/key"
KEY_URI = f"gcp-kms://{KEY_NAME}"


class FakeKmsClient:
    """Mimics KeyManagementServiceClient.encrypt/decrypt with a local key."""

    def __init__(self) -> None:
        self._key = LocalAead.generate()
        self.requests: list = []
        self.fail = False

    def encrypt(self, request: dict) -> SimpleNamespace:
        self.requests.append(("encrypt", request))
        if self.fail:
            raise RuntimeError("503 Service Unavailable")
        aad = request.get("additional_authenticated_data", b"")
        return SimpleNamespace(ciphertext=self._key.encrypt(request["plaintext"], aad))

    def decrypt(self, request: dict) -> SimpleNamespace:
        self.requests.append(("decrypt", request))
        if self.fail:
            raise RuntimeError("503 Service Unavailable")
        aad = request.get("additional_authenticated_data", b"")
        return SimpleNamespace(plaintext=self._key.decrypt(request["ciphertext"], aad))


def test_parse_key_uri():
    assert parse_key_uri(KEY_URI) == KEY_NAME


@pytest.mark.parametrize(
    "uri",
    [
        "",
        KEY_NAME,
        "aws-kms://arn:aws:kms:us-east-1:1:key/abc",
        "gcp-kms://projects/p/locations/global/keyRings/ring",
        "gcp-kms://projects/p/locations/global/keyRings/ring/cryptoKeys/key/extra",
        "gcp-kms://projects//locations/global/keyRings/ring/cryptoKeys/key",
    ],
)
def test_parse_key_uri_rejects_malformed(uri: str):
    with pytest.raises(ConfigError):
        parse_key_uri(uri)


def test_gcp_kms_aead_sends_key_name():
    client = FakeKmsClient()
    aead = GcpKmsAead(KEY_NAME, client=client)

    wrapped = aead.encrypt(b"dek-bytes", b"")
    assert aead.decrypt(wrapped, b"") == b"dek-bytes"

    (op1, req1), (op2, req2) = client.requests
    assert (op1, req1["name"], req1["plaintext"]) == ("encrypt", KEY_NAME, b"dek-bytes")
    assert (op2, req2["name"], req2["ciphertext"]) == ("decrypt", KEY_NAME, wrapped)
    assert "additional_authenticated_data" not in req1


def test_gcp_kms_outage_is_key_service_error():
    client = FakeKmsClient()
    aead = GcpKmsAead(KEY_NAME, client=client)
    wrapped = aead.encrypt(b"dek-bytes", b"")
    client.fail = True

    with pytest.raises(KeyServiceError, match="Cloud KMS encrypt failed"):
        aead.encrypt(b"dek-bytes", b"")
    with pytest.raises(KeyServiceError, match="Cloud KMS decrypt failed"):
        aead.decrypt(wrapped, b"")


def test_gcp_kms_rejected_ciphertext_is_decryption_error():
    core_exceptions = pytest.importorskip("google.api_core.exceptions")

    class RejectingClient(FakeKmsClient):
        def decrypt(self, request: dict) -> SimpleNamespace:
            raise core_exceptions.InvalidArgument("Decryption failed: ciphertext is invalid")

    aead = GcpKmsAead(KEY_NAME, client=RejectingClient())

    with pytest.raises(DecryptionError, match="rejected ciphertext"):
        aead.decrypt(b"not-a-wrapped-key", b"")


def test_gcp_kms_outage_propagates_through_envelope():
    client = FakeKmsClient()
    aead = get_envelope_aead(KEY_URI, client=client)
    ciphertext = aead.encrypt(b"hello@example.com", b"SPACES")
    client.fail = True

    with pytest.raises(KeyServiceError, match="Cloud KMS decrypt failed"):
        aead.decrypt(ciphertext, b"SPACES")


def test_get_envelope_aead_round_trip():
    client = FakeKmsClient()
    aead = get_envelope_aead(KEY_URI, client=client)

    assert isinstance(aead, KmsEnvelopeAead)
    assert isinstance(aead.remote, GcpKmsAead)
    assert aead.remote.key_name == KEY_NAME

    ciphertext = aead.encrypt(b"hello@example.com", b"SPACES")
    assert aead.decrypt(ciphertext, b"SPACES") == b"hello@example.com"
    # One wrap, one unwrap: the payload itself never goes to KMS
    assert [op for op, _ in client.requests] == ["encrypt", "decrypt"]
    assert client.requests[0][1]["plaintext"] != b"hello@example.com"


def test_get_envelope_aead_rejects_bad_uri():
    with pytest.raises(ConfigError):
        get_envelope_aead("gcp-kms://nope")


def test_missing_client_library_is_config_error(monkeypatch):
    # None in sys.modules makes the import fail whether or not the extra is installed
    monkeypatch.setitem(sys.modules, "google.cloud", None)
    aead = GcpKmsAead(KEY_NAME)

    with pytest.raises(ConfigError, match="google-cloud-kms not installed") as excinfo:
        aead.encrypt(b"dek-bytes", b"")

    assert excinfo.value.__cause__ is None
    assert excinfo.value.__suppress_context__
