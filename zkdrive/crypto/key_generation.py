"""
Key material for new nodes, item moves and integrity badges.

A new node gets a fresh session key and keypair. Its key packet is sealed under
the parent's session key (folders go through a random node hash key first) and
signed by the parent key, which is what `resolve_node` verifies.
"""

from dataclasses import replace
from datetime import datetime, timezone

import structlog

from zkdrive.config import KeyAlgorithm
from zkdrive.core.secure_bytes import SecureBytes
from zkdrive.crypto import content, key_packet, names
from zkdrive.crypto.protocol import PgpKey, PGPBackend
from zkdrive.crypto.signature import require_valid_signature, verify
from zkdrive.crypto.xattrs import encrypt_xattrs
from zkdrive.exceptions import MalformedInputError
from zkdrive.models.crypto import (
    ExtendedAttributes,
    GeneratedNodeKeys,
    KeyPacket,
    KeyType,
    MovedItemKeys,
    XAttrValue,
)

logger = structlog.get_logger(__name__)


def generate_file_keys(
    name: str,
    owner_identity: str,
    parent_private_key_armored: str,
    parent_passphrase: str | None,
    parent_passphrase_signature: str | None,
    parent_session_key: SecureBytes,
    parent_key_packet_id: str,
    extra_attrs: dict[str, XAttrValue] | None = None,
    *,
    parent_signer_key: str | None = None,
    owner_name: str | None = None,
    key_algorithm: KeyAlgorithm = KeyAlgorithm.ECC,
    rsa_key_size: int = 3072,
    max_name_length: int = names.DEFAULT_MAX_NAME_LENGTH,
    backend: PGPBackend,
) -> GeneratedNodeKeys:
    """
    Generate sealed key material for a new file.

    Args:
        name: Plaintext file name.
        owner_identity: Email the new key is bound to.
        parent_private_key_armored: Encrypted private key of the parent folder.
        parent_passphrase: The parent's armored key packet.
        parent_passphrase_signature: Signature over `parent_passphrase`, if any.
        parent_session_key: Session key of the parent (unlocks its private key).
        parent_key_packet_id: Packet id recorded in the new packet.
        extra_attrs: Extended attributes sealed with the new session key.
        parent_signer_key: Armored key that signed the parent's packet. Required
            when `parent_passphrase_signature` is given.

    Raises:
        SignatureInvalidError, IdentityMismatchError: If the parent packet fails verification.
        MalformedInputError: If an argument is invalid.
        DecryptionError: If the parent key cannot be unlocked.
    """
    return _generate_node_keys(
        KeyType.FILE,
        name,
        owner_identity,
        parent_private_key_armored,
        parent_passphrase,
        parent_passphrase_signature,
        parent_session_key,
        parent_key_packet_id,
        extra_attrs,
        parent_signer_key=parent_signer_key,
        owner_name=owner_name,
        key_algorithm=key_algorithm,
        rsa_key_size=rsa_key_size,
        max_name_length=max_name_length,
        backend=backend,
    )


def generate_folder_keys(
    name: str,
    owner_identity: str,
    parent_private_key_armored: str,
    parent_passphrase: str | None,
    parent_passphrase_signature: str | None,
    parent_session_key: SecureBytes,
    parent_key_packet_id: str,
    extra_attrs: dict[str, XAttrValue] | None = None,
    *,
    parent_signer_key: str | None = None,
    owner_name: str | None = None,
    key_algorithm: KeyAlgorithm = KeyAlgorithm.ECC,
    rsa_key_size: int = 3072,
    max_name_length: int = names.DEFAULT_MAX_NAME_LENGTH,
    backend: PGPBackend,
) -> GeneratedNodeKeys:
    """Same as `generate_file_keys`, with a node hash key instead of content key material."""
    return _generate_node_keys(
        KeyType.FOLDER,
        name,
        owner_identity,
        parent_private_key_armored,
        parent_passphrase,
        parent_passphrase_signature,
        parent_session_key,
        parent_key_packet_id,
        extra_attrs,
        parent_signer_key=parent_signer_key,
        owner_name=owner_name,
        key_algorithm=key_algorithm,
        rsa_key_size=rsa_key_size,
        max_name_length=max_name_length,
        backend=backend,
    )


def _generate_node_keys(
    key_type: KeyType,
    name: str,
    owner_identity: str,
    parent_private_key_armored: str,
    parent_passphrase: str | None,
    parent_passphrase_signature: str | None,
    parent_session_key: SecureBytes,
    parent_key_packet_id: str,
    extra_attrs: dict[str, XAttrValue] | None,
    *,
    parent_signer_key: str | None,
    owner_name: str | None,
    key_algorithm: KeyAlgorithm,
    rsa_key_size: int,
    max_name_length: int,
    backend: PGPBackend,
) -> GeneratedNodeKeys:
    names.validate_name(name, max_length=max_name_length)
    if not owner_identity:
        msg = "Owner identity is required"
        raise MalformedInputError(msg)
    if not parent_key_packet_id:
        msg = "Parent key packet id is required"
        raise MalformedInputError(msg)
    if parent_passphrase_signature:
        if not parent_signer_key or not parent_passphrase:
            msg = "Verifying the parent packet needs the packet and the key that signed it"
            raise MalformedInputError(msg)
        require_valid_signature(
            parent_passphrase,
            parent_passphrase_signature,
            parent_signer_key,
            expected_identity=owner_identity,
            backend=backend,
        )

    parent_key = _load_private_key(parent_private_key_armored, backend)
    with backend.unlock_key(parent_key, parent_session_key):
        pass

    with SecureBytes.random_session_key() as session_key:
        node_key = backend.generate_key(
            owner_name or owner_identity.split("@", 1)[0],
            owner_identity,
            session_key,
            algorithm=key_algorithm,
            rsa_key_size=rsa_key_size,
        )

        node_hash_key = node_hash_key_signature = None
        if key_type == KeyType.FOLDER:
            with SecureBytes.random_session_key() as hash_secret:
                node_hash_key = key_packet.seal_secret(hash_secret, parent_session_key, backend)
                packet = KeyPacket.new(session_key, parent_key_packet_id, key_type)
                sealed_packet = key_packet.seal(packet, hash_secret, backend)
            node_hash_key_signature = backend.sign_detached(
                node_hash_key.encode("utf-8"), parent_key, parent_session_key
            )
        else:
            packet = KeyPacket.new(session_key, parent_key_packet_id, key_type)
            sealed_packet = key_packet.seal(packet, parent_session_key, backend)

        packet_signature = backend.sign_detached(
            sealed_packet.encode("utf-8"), parent_key, parent_session_key
        )
        encrypted_name = names.encrypt_name(name, node_key, backend, max_length=max_name_length)

        xattrs = ""
        if extra_attrs:
            xattrs = encrypt_xattrs(ExtendedAttributes(extra_attrs), session_key, backend)

        content_key = content_key_packet = content_key_signature = None
        if key_type == KeyType.FILE:
            generated = content.generate_content_key()
            content_key = generated.to_base64()
            content_key_packet = content.seal_content_key(generated, node_key, backend)
            content_key_signature = backend.sign_detached(
                content_key_packet.encode("utf-8"), parent_key, parent_session_key
            )

        logger.debug(
            "Generated node keys",
            key_type=key_type.value,
            key_packet_id=packet.packet_id,
            key_id=node_key.key_id,
        )
    return GeneratedNodeKeys(
        node_key=node_key.armored,
        node_passphrase=sealed_packet,
        node_passphrase_signature=packet_signature,
        name_hash=encrypted_name.name_hash,
        folder_name=encrypted_name.ciphertext,
        key_packet_id=packet.packet_id,
        xattrs=xattrs,
        content_key=content_key,
        content_key_packet=content_key_packet,
        content_key_signature=content_key_signature,
        node_hash_key=node_hash_key,
        node_hash_key_signature=node_hash_key_signature,
    )


def prepare_item_move(
    item_packet: KeyPacket,
    name: str,
    new_parent_session_key: SecureBytes,
    new_parent_key_packet_id: str,
    new_parent_private_key_armored: str | None = None,
    *,
    max_name_length: int = names.DEFAULT_MAX_NAME_LENGTH,
    backend: PGPBackend,
) -> MovedItemKeys:
    """
    Re-seal an item's key packet under a new parent.

    The packet keeps its id and session key so that the item's own children
    still chain to it; only the recorded parent packet id changes. When the new
    parent's private key is given the packet is signed with it.
    """
    names.validate_name(name, max_length=max_name_length)
    if not new_parent_key_packet_id:
        msg = "New parent key packet id is required"
        raise MalformedInputError(msg)

    moved = replace(
        item_packet,
        parent_key_packet_id=new_parent_key_packet_id,
        created=datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
    )

    node_hash_key = None
    if moved.key_type == KeyType.FOLDER:
        with SecureBytes.random_session_key() as hash_secret:
            node_hash_key = key_packet.seal_secret(hash_secret, new_parent_session_key, backend)
            sealed_packet = key_packet.seal(moved, hash_secret, backend)
    else:
        sealed_packet = key_packet.seal(moved, new_parent_session_key, backend)

    packet_signature = node_hash_key_signature = None
    if new_parent_private_key_armored:
        parent_key = _load_private_key(new_parent_private_key_armored, backend)
        packet_signature = backend.sign_detached(
            sealed_packet.encode("utf-8"), parent_key, new_parent_session_key
        )
        if node_hash_key is not None:
            node_hash_key_signature = backend.sign_detached(
                node_hash_key.encode("utf-8"), parent_key, new_parent_session_key
            )

    logger.debug(
        "Prepared item move",
        key_packet_id=moved.packet_id,
        parent_key_packet_id=new_parent_key_packet_id,
    )
    return MovedItemKeys(
        node_passphrase=sealed_packet,
        node_passphrase_signature=packet_signature,
        name_hash=names.name_hash(name),
        key_packet_id=moved.packet_id,
        node_hash_key=node_hash_key,
        node_hash_key_signature=node_hash_key_signature,
    )


def verify_item_integrity(
    item_key_packet: str,
    item_passphrase_signature: str | None,
    parent_key: str,
    parent_key_packet: str | None = None,
    parent_passphrase_signature: str | None = None,
    parent_signer_key: str | None = None,
    signature_email: str | None = None,
    *,
    backend: PGPBackend,
) -> bool:
    """
    Integrity badge for an item inside a folder.

    The item's packet must be signed by its parent key; the parent's packet, when
    its signature and signer are supplied, must be signed by the grandparent key.
    Returns False when no signature is supplied at all.
    """
    checks: list[tuple[str, str, str]] = []
    if item_passphrase_signature:
        checks.append((item_key_packet, item_passphrase_signature, parent_key))
    if parent_passphrase_signature and parent_key_packet and parent_signer_key:
        checks.append((parent_key_packet, parent_passphrase_signature, parent_signer_key))
    if not checks:
        return False

    for signed, signature, signer in checks:
        try:
            key = backend.load_key(signer)
        except MalformedInputError as e:
            logger.warning("Integrity check key could not be loaded", error=str(e))
            return False
        if not verify(signed, signature, key, key.key_id, signature_email, backend=backend):
            return False
    return True


def verify_root_item_integrity(
    item_key_packet: str,
    item_passphrase_signature: str | None,
    share_key: str,
    share_key_packet: str | None = None,
    share_passphrase_signature: str | None = None,
    user_key: str | None = None,
    signature_email: str | None = None,
    *,
    backend: PGPBackend,
) -> bool:
    """Integrity badge for the root folder of a share: share signs the root, user signs the share."""
    return verify_item_integrity(
        item_key_packet,
        item_passphrase_signature,
        share_key,
        share_key_packet,
        share_passphrase_signature,
        user_key,
        signature_email,
        backend=backend,
    )


def _load_private_key(armored: str, backend: PGPBackend) -> PgpKey:
    key = backend.load_key(armored)
    if not key.is_private:
        msg = "Expected a private key"
        raise MalformedInputError(msg)
    return key
