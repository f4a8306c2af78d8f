"""
Vault Crypto Core — Key derivation and authenticated encryption of values.

One 32-byte key is derived per agent process as SHA-256(agent_id + salt) and
reused for every record, so every payload carries the constant key id
``"default"``. Each encryption draws a fresh random 96-bit IV.

Security Note:
    Never log plaintext, ciphertext or key material.
"""
import os
import base64
import binascii
import logging
from typing import Any, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import ValidationError

from ..errors import CryptoError
from .models import EncryptedPayload

logger = logging.getLogger("agent_secrets.vault")

ALGORITHM = "aes-256-gcm"
DEFAULT_KEY_ID = "default"
# Legacy fallback, only honoured when explicitly allowed by configuration.
DEFAULT_SALT = "default-salt"

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # GCM tag
KEY_LENGTH = 32  # AES-256


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(agent_id: str, salt: str) -> bytes:
    """Derive the process encryption key.

    Args:
        agent_id: Identity of the agent process.
        salt: Configured encryption salt.

    Returns:
        32-byte SHA-256 digest of ``agent_id + salt``.
    """
    digest = hashes.Hash(hashes.SHA256())
    digest.update(f"{agent_id}{salt}".encode("utf-8"))
    return digest.finalize()


def _b64decode(value: str, field: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as err:
        raise CryptoError(f"Encrypted payload has malformed {field}") from err


# ---------------------------------------------------------------------------
# Cipher
# ---------------------------------------------------------------------------

class CryptoBox:
    """AES-256-GCM encryption of secret values with a single process key."""

    def __init__(self, key: bytes, key_id: str = DEFAULT_KEY_ID):
        if len(key) != KEY_LENGTH:
            raise ValueError(
                f"Encryption key must be exactly {KEY_LENGTH} bytes, "
                f"got {len(key)}"
            )
        self._cipher = AESGCM(key)
        self.key_id = key_id

    @classmethod
    def from_agent(cls, agent_id: str, salt: str) -> "CryptoBox":
        return cls(derive_key(agent_id, salt))

    def encrypt(self, plaintext: str) -> EncryptedPayload:
        """Encrypt a value.

        Args:
            plaintext: Secret value.

        Returns:
            Payload with ciphertext, IV and authentication tag split apart.
        """
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._cipher.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return EncryptedPayload(
            ciphertext=base64.b64encode(ciphertext).decode("ascii"),
            iv=base64.b64encode(nonce).decode("ascii"),
            auth_tag=base64.b64encode(tag).decode("ascii"),
            algorithm=ALGORITHM,
            key_id=self.key_id,
        )

    def decrypt(self, payload: EncryptedPayload) -> str:
        """Decrypt and authenticate a payload.

        Args:
            payload: Output of :meth:`encrypt`.

        Returns:
            The plaintext value.

        Raises:
            CryptoError: If the algorithm is unsupported, a field is malformed,
                the tag is missing, or authentication fails.
        """
        if payload.algorithm != ALGORITHM:
            raise CryptoError(f"Unsupported algorithm: {payload.algorithm}")
        if not payload.auth_tag:
            raise CryptoError("Encrypted payload has no authentication tag")
        nonce = _b64decode(payload.iv, "iv")
        ciphertext = _b64decode(payload.ciphertext, "ciphertext")
        tag = _b64decode(payload.auth_tag, "auth_tag")
        if len(tag) != TAG_SIZE:
            raise CryptoError(
                f"Authentication tag must be {TAG_SIZE} bytes, got {len(tag)}"
            )
        try:
            plaintext = self._cipher.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as err:
            raise CryptoError(
                "Authentication failed: payload is corrupted or was "
                "encrypted with another key"
            ) from err
        except ValueError as err:
            raise CryptoError(f"Invalid encrypted payload: {err}") from err
        return plaintext.decode("utf-8")


def as_payload(value: Any) -> Union[EncryptedPayload, str, None]:
    """Normalise a stored value into plaintext, a payload, or None.

    Raises:
        CryptoError: If a mapping does not describe an encrypted payload.
    """
    if value is None or isinstance(value, (str, EncryptedPayload)):
        return value
    if isinstance(value, dict):
        try:
            return EncryptedPayload.model_validate(value)
        except ValidationError as err:
            raise CryptoError("Stored value is not a valid encrypted payload") from err
    raise CryptoError(f"Unsupported stored value type: {type(value).__name__}")
