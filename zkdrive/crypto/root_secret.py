"""Derivation of the root secret from the account password."""

import base64
import binascii

import bcrypt
import structlog

from zkdrive.core.secure_bytes import SecureBytes
from zkdrive.exceptions import MalformedInputError

logger = structlog.get_logger(__name__)

_STANDARD_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_BCRYPT_ALPHABET = "./ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
_TRANSLATION = str.maketrans(_STANDARD_ALPHABET, _BCRYPT_ALPHABET)
_BCRYPT_COST = 10
_SECRET_LENGTH = 31
# bcrypt only reads this many bytes; bcrypt 5 rejects longer input instead
_BCRYPT_MAX_PASSWORD = 72


def derive_root_secret(password: SecureBytes, key_salt: str) -> SecureBytes:
    """
    Derive the root secret that unlocks the user key.

    Uses bcrypt with the salt re-encoded into bcrypt's base64 alphabet. Only the
    first 72 bytes of the password take part, as in every bcrypt implementation.

    Args:
        password: Account password.
        key_salt: Base64-encoded salt of at least 16 bytes.

    Returns:
        SecureBytes holding the last 31 bytes of the bcrypt hash.

    Raises:
        MalformedInputError: If the salt is not valid base64 or is too short, or
            the password is empty or refused by bcrypt.
    """
    try:
        salt_binary = base64.b64decode(key_salt, validate=True)
    except (binascii.Error, ValueError) as e:
        msg = f"Key salt is not valid base64: {e}"
        raise MalformedInputError(msg) from e
    if len(salt_binary) < 16:
        msg = f"Key salt must be at least 16 bytes, got {len(salt_binary)}"
        raise MalformedInputError(msg)

    if not password:
        msg = "Password is empty"
        raise MalformedInputError(msg)

    standard_b64 = base64.b64encode(salt_binary[:16]).decode("ascii")
    bcrypt_salt = standard_b64.translate(_TRANSLATION)[:22]
    try:
        bcrypt_hash = bytearray(
            bcrypt.hashpw(
                bytes(password)[:_BCRYPT_MAX_PASSWORD],
                f"$2y${_BCRYPT_COST}${bcrypt_salt}".encode("ascii"),
            )
        )
    except ValueError as e:
        msg = f"Password cannot be hashed: {e}"
        raise MalformedInputError(msg) from e
    try:
        return SecureBytes(bcrypt_hash[-_SECRET_LENGTH:])
    finally:
        for i in range(len(bcrypt_hash)):
            bcrypt_hash[i] = 0
