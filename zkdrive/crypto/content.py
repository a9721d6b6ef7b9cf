"""
Content keys and payload encryption.

File blocks and thumbnails are encrypted with AES-256-GCM under the file's
content key. The 96-bit nonce is the 64-bit big-endian block index followed by
four zero bytes, so a thumbnail (block 0) uses the all-zero nonce. Ciphertexts
carry the 128-bit tag appended.
"""

import base64
import hashlib
import hmac
import secrets
from collections.abc import Iterable, Sequence

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from zkdrive.crypto.protocol import PgpKey, PGPBackend
from zkdrive.exceptions import DecryptionError, IntegrityError, MalformedInputError
from zkdrive.models.crypto import ContentKey, NodeKeyPair, SymmetricAlgorithm

TAG_SIZE = 16
THUMBNAIL_BLOCK_INDEX = 0
_MAX_BLOCK_INDEX = 2**64 - 1


def block_nonce(block_index: int) -> bytes:
    if not 0 <= block_index <= _MAX_BLOCK_INDEX:
        msg = f"Block index out of range: {block_index}"
        raise MalformedInputError(msg)
    return block_index.to_bytes(8, "big") + b"\x00\x00\x00\x00"


def generate_content_key() -> ContentKey:
    return ContentKey(
        algorithm=SymmetricAlgorithm.AES_256,
        key_data=secrets.token_bytes(SymmetricAlgorithm.AES_256.key_size),
    )


def seal_content_key(
    content_key: ContentKey,
    file_public_key: PgpKey | str,
    backend: PGPBackend,
) -> str:
    """Encrypt the raw content key to the file's public key."""
    key = backend.load_key(file_public_key) if isinstance(file_public_key, str) else file_public_key
    return backend.encrypt_to_key(content_key.key_data, key)


def unseal_content_key(
    content_key_packet: str,
    file_key_pair: NodeKeyPair,
    backend: PGPBackend,
) -> ContentKey:
    """
    Recover a file's content key from its content key packet.

    Raises:
        MalformedInputError: If the packet is empty, unparsable or holds a key of the wrong size.
        DecryptionError: If the file key does not open the packet.
    """
    if not content_key_packet:
        msg = "Content key packet is empty"
        raise MalformedInputError(msg)
    key = backend.load_key(file_key_pair.private_key_armored)
    raw = backend.decrypt_with_key(content_key_packet, key, file_key_pair.passphrase)
    return ContentKey(key_data=raw)


def block_hash(encrypted_block: bytes) -> str:
    """Base64 SHA-256 digest of an encrypted block."""
    return base64.b64encode(hashlib.sha256(encrypted_block).digest()).decode("ascii")


def verify_block_hash(encrypted_block: bytes, expected_hash: str) -> None:
    """
    Raises:
        IntegrityError: If the block hash does not match.
    """
    actual = block_hash(encrypted_block)
    if not hmac.compare_digest(actual.encode("ascii"), expected_hash.encode("utf-8")):
        msg = "Block hash mismatch"
        raise IntegrityError(msg, expected=expected_hash, actual=actual)


def encrypt_payload(plaintext: bytes, content_key: ContentKey, *, block_index: int = 0) -> bytes:
    return AESGCM(content_key.key_data).encrypt(block_nonce(block_index), bytes(plaintext), None)


def decrypt_payload(
    ciphertext: bytes,
    content_key: ContentKey,
    *,
    block_index: int = 0,
    expected_hash: str | None = None,
) -> bytes:
    """
    Decrypt one encrypted block.

    Args:
        ciphertext: Block ciphertext with the GCM tag appended.
        content_key: The file's content key.
        block_index: Position of the block, which determines the nonce.
        expected_hash: Optional base64 SHA-256 of the ciphertext, checked first.

    Raises:
        IntegrityError: If `expected_hash` does not match.
        MalformedInputError: If the ciphertext is shorter than a tag.
        DecryptionError: If authentication fails (wrong key, index or tampered data).
    """
    if expected_hash is not None:
        verify_block_hash(ciphertext, expected_hash)
    if len(ciphertext) < TAG_SIZE:
        msg = f"Ciphertext too short: {len(ciphertext)} bytes"
        raise MalformedInputError(msg)

    try:
        return AESGCM(content_key.key_data).decrypt(block_nonce(block_index), bytes(ciphertext), None)
    except InvalidTag as e:
        msg = f"Failed to decrypt block {block_index}: authentication failed"
        raise DecryptionError(msg) from e


def encrypt_thumbnail(plaintext: bytes, content_key: ContentKey) -> bytes:
    return encrypt_payload(plaintext, content_key, block_index=THUMBNAIL_BLOCK_INDEX)


def decrypt_thumbnail(ciphertext: bytes, content_key: ContentKey) -> bytes:
    return decrypt_payload(ciphertext, content_key, block_index=THUMBNAIL_BLOCK_INDEX)


def decrypt_blocks(
    blocks: Iterable[bytes],
    content_key: ContentKey,
    expected_hashes: Sequence[str] | None = None,
) -> bytes:
    """Decrypt consecutive blocks starting at index 0 and join the plaintext."""
    blocks = list(blocks)
    if expected_hashes is not None and len(expected_hashes) != len(blocks):
        msg = f"Got {len(blocks)} blocks but {len(expected_hashes)} hashes"
        raise MalformedInputError(msg)

    parts = []
    for index, block in enumerate(blocks):
        expected = expected_hashes[index] if expected_hashes is not None else None
        parts.append(decrypt_payload(block, content_key, block_index=index, expected_hash=expected))
    return b"".join(parts)
