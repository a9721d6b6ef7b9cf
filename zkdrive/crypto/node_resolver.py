"""
Node key resolution.

Resolving a node turns its encrypted descriptor into usable key material, given
the already unlocked parent:

    parent secret -> [node hash key] -> key packet -> session key -> private key

The same algorithm unlocks the user key (parent secret is the root secret),
shares, folders and files.
"""

import hmac

import structlog

from zkdrive.core.secure_bytes import SecureBytes
from zkdrive.crypto.key_packet import unseal, unseal_secret
from zkdrive.crypto.names import decrypt_name
from zkdrive.crypto.protocol import PGPBackend
from zkdrive.crypto.signature import check_signature
from zkdrive.exceptions import (
    DecryptionError,
    DecryptionReason,
    MalformedInputError,
    PacketChainMismatchError,
)
from zkdrive.models.crypto import KeyPacket, NodeKeyPair, SignatureCheck
from zkdrive.models.drive import NodeDescriptor, NodeState, ParentContext, ResolvedNode

logger = structlog.get_logger(__name__)


def resolve_node(
    descriptor: NodeDescriptor,
    parent: ParentContext,
    backend: PGPBackend,
    *,
    expected_identity: str | None = None,
) -> ResolvedNode:
    """
    Unlock one node from its parent's secret.

    Args:
        descriptor: The encrypted node.
        parent: Secret, packet id and verifier key of the unlocked parent.
        backend: OpenPGP backend.
        expected_identity: Owner email the passphrase signature must be bound to.
            Defaults to the descriptor's `signature_email`.

    Returns:
        The resolved node in state UNLOCKED or UNLOCKED_UNTRUSTED. The name is
        None when it is absent or could not be decrypted.

    Raises:
        MalformedInputError: If the packet or key is structurally invalid.
        DecryptionError: If the parent secret does not open the packet
            (reason WRONG_KEY), the packet ciphertext is corrupt (reason CORRUPT)
            or the session key does not unlock the private key.
        PacketChainMismatchError: If the packet names a different parent packet.
    """
    log = logger.bind(node_id=descriptor.node_id, key_type=descriptor.key_type.value)

    packet = _unseal_node_packet(descriptor, parent, backend)
    _check_packet_chain(descriptor, packet, parent)

    key = backend.load_key(descriptor.node_key)
    if not key.is_private:
        msg = f"Node key of {descriptor.node_id} is not a private key"
        raise MalformedInputError(msg)
    try:
        with backend.unlock_key(key, packet.session_key):
            pass
    except DecryptionError as e:
        msg = f"Session key does not unlock node key: {e.message}"
        raise DecryptionError(msg, key_type=descriptor.key_type.value) from e

    key_pair = NodeKeyPair(
        private_key_armored=descriptor.node_key,
        public_key_armored=key.public_armored,
        key_id=key.key_id,
        fingerprint=key.fingerprint,
        identity=key.identity,
        passphrase=packet.session_key,
    )

    state = _verify_passphrase_signature(
        descriptor, parent, backend, expected_identity or descriptor.signature_email
    )
    if state == NodeState.UNLOCKED_UNTRUSTED:
        log.warning("Node passphrase signature failed verification")

    name = None
    if descriptor.name:
        try:
            name = decrypt_name(descriptor.name, key_pair, backend)
        except (DecryptionError, MalformedInputError) as e:
            log.warning("Failed to decrypt node name", error=str(e))

    log.debug("Resolved node", state=state.value)
    return ResolvedNode(
        node_id=descriptor.node_id,
        key_type=packet.key_type,
        key_pair=key_pair,
        key_packet=packet,
        state=state,
        name=name,
    )


def _unseal_node_packet(
    descriptor: NodeDescriptor,
    parent: ParentContext,
    backend: PGPBackend,
) -> KeyPacket:
    hash_secret: SecureBytes | None = None
    try:
        secret = parent.session_key
        if descriptor.node_hash_key:
            hash_secret = unseal_secret(descriptor.node_hash_key, parent.session_key, backend)
            secret = hash_secret
        packet = unseal(descriptor.node_passphrase, secret, backend)
    except DecryptionError as e:
        if e.reason == DecryptionReason.CORRUPT:
            msg = f"Key packet is corrupt: {e.message}"
        else:
            msg = f"Parent secret does not open key packet: {e.message}"
        raise DecryptionError(msg, key_type=descriptor.key_type.value, reason=e.reason) from e
    finally:
        if hash_secret is not None:
            hash_secret.clear()

    if packet.key_type != descriptor.key_type:
        msg = (
            f"Key packet type {packet.key_type.value!r} does not match "
            f"node type {descriptor.key_type.value!r}"
        )
        raise MalformedInputError(msg)
    return packet


def _check_packet_chain(
    descriptor: NodeDescriptor,
    packet: KeyPacket,
    parent: ParentContext,
) -> None:
    if parent.key_packet_id is None:
        return
    recorded = packet.parent_key_packet_id or ""
    if hmac.compare_digest(recorded.encode("utf-8"), parent.key_packet_id.encode("utf-8")):
        return
    msg = f"Key packet of {descriptor.node_id} was sealed under a different parent"
    raise PacketChainMismatchError(
        msg,
        expected_parent_id=parent.key_packet_id,
        actual_parent_id=packet.parent_key_packet_id,
    )


def _verify_passphrase_signature(
    descriptor: NodeDescriptor,
    parent: ParentContext,
    backend: PGPBackend,
    expected_identity: str | None,
) -> NodeState:
    if not descriptor.node_passphrase_signature or not parent.verifier_key:
        return NodeState.UNLOCKED

    outcome = check_signature(
        descriptor.node_passphrase,
        descriptor.node_passphrase_signature,
        parent.verifier_key,
        parent.verifier_key_id,
        expected_identity,
        backend=backend,
    )
    if outcome == SignatureCheck.VALID:
        return NodeState.UNLOCKED
    return NodeState.UNLOCKED_UNTRUSTED
