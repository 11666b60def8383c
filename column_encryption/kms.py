"""
Google Cloud KMS integration.

Key-resource URIs use the "gcp-kms://" prefix followed by the full key name:

    gcp-kms://projects/<project>/locations/<location>/keyRings/<ring>/cryptoKeys/<key>
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from .envelope import Aead, KmsEnvelopeAead
from .errors import ConfigError, DecryptionError, KeyServiceError

logger = logging.getLogger(__name__)

GCP_KMS_PREFIX = "gcp-kms://"

_KEY_NAME_RE = re.compile(
    r"^projects/[^/]+/locations/[^/]+/keyRings/[^/]+/cryptoKeys/[^/]+$"
)


def parse_key_uri(uri: str) -> str:
    """
    Return the Cloud KMS key name addressed by a gcp-kms:// URI.

    Raises:
        ConfigError: If the URI has the wrong prefix or key name shape
    """
    if not uri or not uri.startswith(GCP_KMS_PREFIX):
        raise ConfigError(f"Key URI must start with {GCP_KMS_PREFIX!r}: {uri!r}")

    key_name = uri[len(GCP_KMS_PREFIX):]
    if not _KEY_NAME_RE.match(key_name):
        raise ConfigError(f"Malformed Cloud KMS key name: {key_name!r}")
    return key_name


class GcpKmsAead(Aead):
    """
    Aead backed by a Cloud KMS symmetric key.

    Every call is a network round trip to KMS. The client is created on first
    use unless one is supplied.
    """

    def __init__(self, key_name: str, client: Optional[Any] = None) -> None:
        """
        Args:
            key_name: Full key resource name (projects/.../cryptoKeys/...)
            client: KeyManagementServiceClient, or a compatible object
        """
        self._key_name = key_name
        self._client = client

    @property
    def key_name(self) -> str:
        return self._key_name

    def _get_client(self) -> Any:
        if self._client is None:
            try:
                from google.cloud import kms
            except ImportError:
                raise ConfigError(
                    "google-cloud-kms not installed (pip install 'column-encryption[gcp]')"
                ) from None
            self._client = kms.KeyManagementServiceClient()
        return self._client

    def encrypt(self, plaintext: bytes, associated_data: bytes) -> bytes:
        client = self._get_client()
        request = {"name": self._key_name, "plaintext": plaintext}
        if associated_data:
            request["additional_authenticated_data"] = associated_data
        try:
            response = client.encrypt(request=request)
        except Exception as e:
            raise KeyServiceError(f"Cloud KMS encrypt failed: {e}") from e
        return response.ciphertext

    def decrypt(self, ciphertext: bytes, associated_data: bytes) -> bytes:
        """
        Raises:
            DecryptionError: If KMS rejects the ciphertext (wrong key, tampered, bad AAD)
            KeyServiceError: If KMS cannot be reached or fails for any other reason
        """
        client = self._get_client()
        request = {"name": self._key_name, "ciphertext": ciphertext}
        if associated_data:
            request["additional_authenticated_data"] = associated_data
        try:
            response = client.decrypt(request=request)
        except Exception as e:
            logger.debug("Cloud KMS decrypt failed for %s", self._key_name)
            if _is_rejected_ciphertext(e):
                raise DecryptionError(f"Cloud KMS rejected ciphertext: {e}") from e
            raise KeyServiceError(f"Cloud KMS decrypt failed: {e}") from e
        return response.plaintext


def _is_rejected_ciphertext(error: Exception) -> bool:
    """KMS answers a ciphertext it cannot authenticate with INVALID_ARGUMENT."""
    try:
        from google.api_core import exceptions as core_exceptions
    except ImportError:
        return False
    return isinstance(error, core_exceptions.InvalidArgument)


def get_envelope_aead(kms_uri: str, client: Optional[Any] = None) -> KmsEnvelopeAead:
    """
    Build the envelope AEAD for a key-resource URI.

    Raises:
        ConfigError: If the URI is malformed
    """
    key_name = parse_key_uri(kms_uri)
    logger.debug("Using Cloud KMS key %s", key_name)
    return KmsEnvelopeAead(GcpKmsAead(key_name, client=client))
