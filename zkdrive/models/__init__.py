"""
Domain models for zkdrive.

These are immutable (frozen) dataclasses representing the core domain concepts.
"""

from zkdrive.models.crypto import (
    ContentKey,
    EncryptedName,
    ExtendedAttributes,
    GeneratedNodeKeys,
    KeyPacket,
    KeyType,
    MovedItemKeys,
    NodeKeyPair,
    SignatureCheck,
    SymmetricAlgorithm,
)
from zkdrive.models.drive import (
    NodeDescriptor,
    NodeState,
    ParentContext,
    ResolvedNode,
    UnlockedNode,
    placeholder_name,
)

__all__ = [
    # Crypto
    "ContentKey",
    "EncryptedName",
    "ExtendedAttributes",
    "GeneratedNodeKeys",
    "KeyPacket",
    "KeyType",
    "MovedItemKeys",
    "NodeKeyPair",
    "SignatureCheck",
    "SymmetricAlgorithm",
    # Drive
    "NodeDescriptor",
    "NodeState",
    "ParentContext",
    "ResolvedNode",
    "UnlockedNode",
    "placeholder_name",
]
