"""RSA/AES handshake used to reveal card secrets.

The issuer never returns a PAN or CVC in the clear. Instead the caller:

1. generates a 16-byte session key,
2. base64-encodes it and wraps that text with the issuer's RSA public key
   (OAEP, default parameters), sending the result as the ``SessionId`` header,
3. receives each secret as an AES-128-GCM block encrypted under the session
   key, with the 16-byte tag appended to the ciphertext.

Nothing in this module logs its inputs or outputs.
"""
from __future__ import annotations

import base64
import binascii
import os
import re
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .constants import Handshake
from .exceptions import DecryptionFailed, InvalidInput, InvalidKeyFormat
from .models import EncryptedSecretBlock, SessionKey

_HEX_RE = re.compile(r"^[0-9A-Fa-f]+$")
_KEY_HEX_LENGTH = Handshake.SESSION_KEY_BYTES * 2


def _is_hex(value: Optional[str]) -> bool:
    return bool(value) and bool(_HEX_RE.match(value))


def _b64decode(value: str, field: str) -> bytes:
    """Decode base64, accepting line breaks and missing padding."""
    if not value:
        raise InvalidInput(f"{field} is required", field=field)
    cleaned = "".join(value.split())
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        decoded = base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidInput(f"{field} must be base64", field=field) from None
    if not decoded:
        raise InvalidInput(f"{field} is required", field=field)
    return decoded


def load_issuer_public_key(pem: str) -> rsa.RSAPublicKey:
    """Load the issuer's PEM public key, rejecting anything but RSA."""
    if not pem:
        raise InvalidInput("pem is required", field="pem")
    try:
        key = serialization.load_pem_public_key(pem.encode("utf-8"))
    except ValueError:
        raise InvalidInput("pem is not a valid public key", field="pem") from None
    if not isinstance(key, rsa.RSAPublicKey):
        raise InvalidInput("pem must hold an RSA public key", field="pem")
    return key


def create_session(issuer_public_key_pem: str, secret_key_hex: Optional[str] = None) -> SessionKey:
    """Create a one-time session key and wrap it for the issuer.

    Args:
        issuer_public_key_pem: Issuer RSA public key (PEM)
        secret_key_hex: Optional preset 16-byte key as hex; random if omitted

    Returns:
        SessionKey holding the raw hex key and the base64 RSA-wrapped session id

    Raises:
        InvalidKeyFormat: If the preset key is not 16 bytes of hex
        InvalidInput: If the PEM is not an RSA public key
    """
    if secret_key_hex is not None:
        if not _is_hex(secret_key_hex) or len(secret_key_hex) != _KEY_HEX_LENGTH:
            raise InvalidKeyFormat("secret must be a 16-byte hex string", field="secret_key_hex")
        key_bytes = bytes.fromhex(secret_key_hex)
    else:
        key_bytes = os.urandom(Handshake.SESSION_KEY_BYTES)

    public_key = load_issuer_public_key(issuer_public_key_pem)

    # The issuer expects the base64 text of the key, not the raw bytes
    key_b64 = base64.b64encode(key_bytes)
    wrapped = public_key.encrypt(
        key_b64,
        padding.OAEP(
            mgf=padding.MGF1(algorithm=hashes.SHA1()),
            algorithm=hashes.SHA1(),
            label=None,
        ),
    )
    return SessionKey(
        secret_key_hex=key_bytes.hex(),
        session_id=base64.b64encode(wrapped).decode("ascii"),
    )


def decrypt_block(ciphertext_b64: str, iv_b64: str, secret_key_hex: str) -> str:
    """Decrypt one AES-128-GCM secret block returned by the issuer.

    Trailing NUL padding and surrounding whitespace are stripped.

    Raises:
        InvalidInput: On empty/non-base64 ciphertext or IV, or a non-hex key
        DecryptionFailed: If authentication or decoding fails
    """
    ciphertext = _b64decode(ciphertext_b64, "ciphertext")
    iv = _b64decode(iv_b64, "iv")
    if not _is_hex(secret_key_hex) or len(secret_key_hex) != _KEY_HEX_LENGTH:
        raise InvalidInput("secretKey must be a 16-byte hex string", field="secret_key_hex")
    if len(ciphertext) < Handshake.GCM_TAG_BYTES:
        raise DecryptionFailed("Secret block is shorter than its authentication tag")

    try:
        plaintext = AESGCM(bytes.fromhex(secret_key_hex)).decrypt(iv, ciphertext, None)
        text = plaintext.decode("utf-8")
    except InvalidTag:
        raise DecryptionFailed("Secret block failed authentication") from None
    except (ValueError, UnicodeDecodeError) as e:
        raise DecryptionFailed(f"Secret block could not be decrypted: {type(e).__name__}") from None

    return text.rstrip("\x00").strip()


def encrypt_block(plaintext: str, secret_key_hex: str, iv: Optional[bytes] = None) -> EncryptedSecretBlock:
    """Encrypt a secret the way the issuer does (tag appended to ciphertext)."""
    if not _is_hex(secret_key_hex) or len(secret_key_hex) != _KEY_HEX_LENGTH:
        raise InvalidInput("secretKey must be a 16-byte hex string", field="secret_key_hex")
    nonce = iv if iv is not None else os.urandom(Handshake.GCM_IV_BYTES)
    sealed = AESGCM(bytes.fromhex(secret_key_hex)).encrypt(nonce, plaintext.encode("utf-8"), None)
    return EncryptedSecretBlock(
        data=base64.b64encode(sealed).decode("ascii"),
        iv=base64.b64encode(nonce).decode("ascii"),
    )


__all__ = [
    "create_session",
    "decrypt_block",
    "encrypt_block",
    "load_issuer_public_key",
]
