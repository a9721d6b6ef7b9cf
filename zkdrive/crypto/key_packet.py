"""
Key packet codec.

A key packet is an OpenPGP password-encrypted message whose plaintext is the
JSON form of `KeyPacket`. The password is the parent's session key (or the root
secret for the top of the tree).
"""

import structlog

from zkdrive.core.secure_bytes import SecureBytes
from zkdrive.crypto.protocol import PGPBackend
from zkdrive.exceptions import MalformedInputError
from zkdrive.models.crypto import KeyPacket, new_packet_id

logger = structlog.get_logger(__name__)

__all__ = ["new_packet_id", "seal", "seal_secret", "unseal", "unseal_secret"]


def unseal(packet_ciphertext: str, parent_secret: SecureBytes, backend: PGPBackend) -> KeyPacket:
    """
    Decrypt and parse a key packet.

    Raises:
        MalformedInputError: If the armor, JSON or fields are structurally invalid.
        DecryptionError: If `parent_secret` does not open the packet.
    """
    if not packet_ciphertext:
        msg = "Key packet is empty"
        raise MalformedInputError(msg)
    plaintext = backend.decrypt_with_password(packet_ciphertext, parent_secret)
    return KeyPacket.from_json(plaintext)


def seal(packet: KeyPacket, parent_secret: SecureBytes, backend: PGPBackend) -> str:
    """Encrypt a key packet to the parent secret, returning armored ciphertext."""
    return backend.encrypt_with_password(packet.to_json(), parent_secret)


def unseal_secret(ciphertext: str, secret: SecureBytes, backend: PGPBackend) -> SecureBytes:
    """Recover a raw secret wrapped with `seal_secret`."""
    if not ciphertext:
        msg = "Sealed secret is empty"
        raise MalformedInputError(msg)
    return SecureBytes(backend.decrypt_with_password(ciphertext, secret))


def seal_secret(value: SecureBytes, secret: SecureBytes, backend: PGPBackend) -> str:
    return backend.encrypt_with_password(bytes(value), secret)
