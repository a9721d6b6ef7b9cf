"""
Drive-related domain models.
"""

from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any, Self

from zkdrive.core.secure_bytes import SecureBytes
from zkdrive.exceptions import MalformedInputError
from zkdrive.models.crypto import KeyPacket, KeyType, NodeKeyPair

ROOT_NODE_NAME = "My Files"
UNNAMED_FOLDER = "Unnamed Folder"
UNNAMED_FILE = "Unnamed File"
UNNAMED_ITEM = "Unnamed Item"

_LEGACY_NODE_TYPES = {1: KeyType.FOLDER, 2: KeyType.FILE}


class NodeState(StrEnum):
    """Lifecycle of a node's key material."""

    LOCKED = "locked"
    UNSEALING = "unsealing"
    UNLOCKED = "unlocked"
    UNLOCKED_UNTRUSTED = "unlocked_untrusted"
    FAILED = "failed"


def placeholder_name(key_type: KeyType) -> str:
    """Display name used when a node's name cannot be decrypted."""
    match key_type:
        case KeyType.USER | KeyType.SHARE:
            return ROOT_NODE_NAME
        case KeyType.FOLDER:
            return UNNAMED_FOLDER
        case KeyType.FILE:
            return UNNAMED_FILE
        case _:
            return UNNAMED_ITEM


@dataclass(frozen=True, kw_only=True)
class NodeDescriptor:
    """
    An encrypted node as delivered by the node cache.

    This is the raw server representation before any key is unsealed.
    """

    node_id: str
    key_type: KeyType
    node_key: str = field(repr=False)
    node_passphrase: str = field(repr=False)
    node_passphrase_signature: str | None = field(default=None, repr=False)
    name: str | None = field(default=None, repr=False)
    parent_id: str | None = None
    signature_email: str | None = None
    node_hash_key: str | None = field(default=None, repr=False)  # folders only
    content_key_packet: str | None = field(default=None, repr=False)  # files only
    xattrs: str | None = field(default=None, repr=False)

    @property
    def is_folder(self) -> bool:
        return self.key_type == KeyType.FOLDER

    @property
    def is_file(self) -> bool:
        return self.key_type == KeyType.FILE

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Self:
        """
        Build a descriptor from the camelCase wire dictionary.

        Args:
            raw: Node dictionary with `id`, `type`, `nodeKey`, `nodePassphrase` and
                the optional `nodePassphraseSignature`, `name`, `parentId`,
                `signatureEmail`, `folderProperties.nodeHashKey`,
                `fileProperties.contentKeyPacket` and `xAttr` entries.

        Raises:
            MalformedInputError: If a required field is missing.
        """
        missing = [k for k in ("id", "type", "nodeKey", "nodePassphrase") if not raw.get(k)]
        if missing:
            msg = f"Node descriptor is missing fields: {', '.join(missing)}"
            raise MalformedInputError(msg)

        folder_properties = raw.get("folderProperties") or {}
        file_properties = raw.get("fileProperties") or {}
        return cls(
            node_id=str(raw["id"]),
            key_type=_parse_key_type(raw["type"]),
            node_key=raw["nodeKey"],
            node_passphrase=raw["nodePassphrase"],
            node_passphrase_signature=raw.get("nodePassphraseSignature") or None,
            name=raw.get("name") or None,
            parent_id=raw.get("parentId") or raw.get("parentLinkId") or None,
            signature_email=raw.get("signatureEmail") or None,
            node_hash_key=folder_properties.get("nodeHashKey") or None,
            content_key_packet=file_properties.get("contentKeyPacket") or None,
            xattrs=raw.get("xAttr") or None,
        )


def _parse_key_type(value: Any) -> KeyType:
    if isinstance(value, int) and value in _LEGACY_NODE_TYPES:
        return _LEGACY_NODE_TYPES[value]
    try:
        return KeyType(str(value).lower())
    except ValueError:
        msg = f"Unknown node type: {value!r}"
        raise MalformedInputError(msg) from None


@dataclass(frozen=True, kw_only=True)
class ResolvedNode:
    """Result of resolving one node from its parent's secret."""

    node_id: str
    key_type: KeyType
    key_pair: NodeKeyPair
    key_packet: KeyPacket
    state: NodeState
    name: str | None = None


@dataclass(frozen=True, kw_only=True)
class UnlockedNode:
    """
    A node whose key material is available in memory.

    Nodes reference their parent by id only; the registry owns every instance.
    """

    node_id: str
    parent_id: str | None
    key_type: KeyType
    key_pair: NodeKeyPair
    key_packet: KeyPacket
    state: NodeState
    name: str
    name_decrypted: bool = True
    key_packet_armored: str = field(default="", repr=False)
    passphrase_signature: str | None = field(default=None, repr=False)
    signature_email: str | None = None

    @property
    def session_key(self) -> SecureBytes:
        return self.key_packet.session_key

    @property
    def key_packet_id(self) -> str:
        return self.key_packet.packet_id

    @property
    def is_trusted(self) -> bool:
        return self.state == NodeState.UNLOCKED

    @classmethod
    def from_resolved(
        cls,
        resolved: ResolvedNode,
        descriptor: NodeDescriptor,
        parent_id: str | None,
    ) -> Self:
        return cls(
            node_id=resolved.node_id,
            parent_id=parent_id,
            key_type=resolved.key_type,
            key_pair=resolved.key_pair,
            key_packet=resolved.key_packet,
            state=resolved.state,
            name=resolved.name if resolved.name is not None else placeholder_name(resolved.key_type),
            name_decrypted=resolved.name is not None,
            key_packet_armored=descriptor.node_passphrase,
            passphrase_signature=descriptor.node_passphrase_signature,
            signature_email=descriptor.signature_email,
        )

    def with_state(self, state: NodeState) -> Self:
        return replace(self, state=state)

    def clear(self) -> None:
        """Wipe the session key (also the key passphrase)."""
        self.key_packet.session_key.clear()
        self.key_pair.passphrase.clear()


@dataclass(frozen=True, kw_only=True)
class ParentContext:
    """
    What a child needs from its already unlocked parent.

    For the root the parent secret is the derived root secret and there is no
    parent packet or verifier key.
    """

    session_key: SecureBytes = field(repr=False)
    node_id: str | None = None
    key_packet_id: str | None = None
    verifier_key: str | None = field(default=None, repr=False)
    verifier_key_id: str | None = None

    @classmethod
    def root(cls, root_secret: SecureBytes) -> Self:
        return cls(session_key=root_secret)

    @classmethod
    def from_node(cls, node: UnlockedNode) -> Self:
        return cls(
            session_key=node.session_key,
            node_id=node.node_id,
            key_packet_id=node.key_packet_id,
            verifier_key=node.key_pair.public_key_armored,
            verifier_key_id=node.key_pair.key_id,
        )
