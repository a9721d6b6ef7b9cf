"""
Name encryption and name hashing.

Names are encrypted to the owning node's public key. The name hash is computed
over a canonical form so that case-only duplicates inside a folder collide.
"""

import hashlib

from zkdrive.crypto.protocol import PgpKey, PGPBackend
from zkdrive.exceptions import MalformedInputError
from zkdrive.models.crypto import EncryptedName, NodeKeyPair

DEFAULT_MAX_NAME_LENGTH = 255


def canonical_name(plaintext: str) -> str:
    return plaintext.strip().lower()


def name_hash(plaintext: str) -> str:
    """Deterministic SHA-256 hex digest of the canonical name."""
    return hashlib.sha256(canonical_name(plaintext).encode("utf-8")).hexdigest()


def validate_name(plaintext: str, max_length: int = DEFAULT_MAX_NAME_LENGTH) -> None:
    """
    Raises:
        MalformedInputError: If the name is empty, blank or longer than `max_length`.
    """
    if not isinstance(plaintext, str) or not plaintext.strip():
        msg = "Name must be a non-empty string"
        raise MalformedInputError(msg)
    if len(plaintext) > max_length:
        msg = f"Name is {len(plaintext)} characters long, maximum is {max_length}"
        raise MalformedInputError(msg)


def encrypt_name(
    plaintext: str,
    node_public_key: PgpKey | str,
    backend: PGPBackend,
    *,
    max_length: int = DEFAULT_MAX_NAME_LENGTH,
) -> EncryptedName:
    validate_name(plaintext, max_length)
    key = backend.load_key(node_public_key) if isinstance(node_public_key, str) else node_public_key
    ciphertext = backend.encrypt_to_key(plaintext.encode("utf-8"), key)
    return EncryptedName(ciphertext=ciphertext, name_hash=name_hash(plaintext))


def decrypt_name(ciphertext: str, node_key_pair: NodeKeyPair, backend: PGPBackend) -> str:
    """
    Decrypt a node name with the node's own private key.

    Raises:
        MalformedInputError: If the ciphertext is empty, unparsable or not UTF-8.
        DecryptionError: If the key does not open the ciphertext.
    """
    if not ciphertext:
        msg = "Encrypted name is empty"
        raise MalformedInputError(msg)
    key = backend.load_key(node_key_pair.private_key_armored)
    data = backend.decrypt_with_key(ciphertext, key, node_key_pair.passphrase)
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        msg = f"Decrypted name is not valid UTF-8: {e}"
        raise MalformedInputError(msg) from e
