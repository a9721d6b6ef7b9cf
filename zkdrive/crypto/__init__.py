"""
Cryptographic operations for zkdrive.

This module provides:
- Key packet sealing and unsealing (password-encrypted JSON)
- Detached signature verification with identity binding
- Node key resolution (parent secret -> key packet -> private key)
- Content keys and AES-256-GCM payload encryption
- Name encryption and name hashing
- Extended attribute encryption
- Key generation for new nodes and item moves
"""

from zkdrive.crypto.key_generation import (
    generate_file_keys,
    generate_folder_keys,
    prepare_item_move,
    verify_item_integrity,
    verify_root_item_integrity,
)
from zkdrive.crypto.key_packet import new_packet_id, seal, seal_secret, unseal, unseal_secret
from zkdrive.crypto.names import decrypt_name, encrypt_name, name_hash
from zkdrive.crypto.node_resolver import resolve_node
from zkdrive.crypto.pgpy_backend import PgpyBackend, PgpyKey
from zkdrive.crypto.protocol import PGPBackend, PgpKey
from zkdrive.crypto.root_secret import derive_root_secret
from zkdrive.crypto.signature import check_signature, require_valid_signature, verify
from zkdrive.crypto.xattrs import decrypt_xattrs, encrypt_xattrs

__all__ = [
    "PGPBackend",
    "PgpKey",
    "PgpyBackend",
    "PgpyKey",
    "check_signature",
    "decrypt_name",
    "decrypt_xattrs",
    "derive_root_secret",
    "encrypt_name",
    "encrypt_xattrs",
    "generate_file_keys",
    "generate_folder_keys",
    "name_hash",
    "new_packet_id",
    "prepare_item_move",
    "require_valid_signature",
    "resolve_node",
    "seal",
    "seal_secret",
    "unseal",
    "unseal_secret",
    "verify",
    "verify_item_integrity",
    "verify_root_item_integrity",
]
