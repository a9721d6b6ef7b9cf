"""
Extended attribute codec.

Extended attributes are the JSON form of `ExtendedAttributes`, password-encrypted
with the node's own session key.
"""

from zkdrive.core.secure_bytes import SecureBytes
from zkdrive.crypto.protocol import PGPBackend
from zkdrive.models.crypto import ExtendedAttributes


def encrypt_xattrs(attrs: ExtendedAttributes, session_key: SecureBytes, backend: PGPBackend) -> str:
    return backend.encrypt_with_password(attrs.to_json().encode("utf-8"), session_key)


def decrypt_xattrs(
    ciphertext: str | None, session_key: SecureBytes, backend: PGPBackend
) -> ExtendedAttributes:
    """
    Decrypt a node's extended attributes. A node without any yields an empty map.

    Raises:
        MalformedInputError: If the message or its JSON is structurally invalid.
        DecryptionError: If the session key does not open the message.
    """
    if not ciphertext:
        return ExtendedAttributes()
    return ExtendedAttributes.from_json(backend.decrypt_with_password(ciphertext, session_key))
