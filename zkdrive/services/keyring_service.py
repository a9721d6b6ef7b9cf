"""
Keyring service.

Walks the node tree on the caller side: every unseal depends on the parent's
session key, so the walk submits one executor request per level and awaits it
before the next. Concurrent unlocks of the same node share one in-flight task.
"""

import asyncio
from collections.abc import Sequence
from typing import Any

import structlog

from zkdrive.config import UntrustedPolicy, ZkDriveConfig
from zkdrive.core.secure_bytes import SecureBytes
from zkdrive.exceptions import (
    ChainDepthError,
    MalformedInputError,
    NodeNotUnlockedError,
    UntrustedNodeError,
    ZkDriveError,
)
from zkdrive.executor import CryptoExecutor, TaskType
from zkdrive.models.crypto import (
    ContentKey,
    EncryptedName,
    ExtendedAttributes,
    GeneratedNodeKeys,
    KeyType,
    MovedItemKeys,
    XAttrValue,
)
from zkdrive.models.drive import (
    NodeDescriptor,
    NodeState,
    ParentContext,
    ResolvedNode,
    UnlockedNode,
)
from zkdrive.services.node_registry import NodeRegistry
from zkdrive.services.node_source import NodeSource

logger = structlog.get_logger(__name__)


class KeyringService:
    """
    Unlocks nodes and runs node-scoped crypto through the executor.

    Args:
        executor: Executor running the crypto operations.
        registry: Registry owning unlocked nodes.
        source: Where descriptors of locked nodes come from.
        config: Chain depth, untrusted policy and key generation settings.
        owner_identity: Email every passphrase signature must be bound to. When
            None, each descriptor's `signature_email` is used.
    """

    def __init__(
        self,
        executor: CryptoExecutor,
        registry: NodeRegistry,
        source: NodeSource,
        config: ZkDriveConfig | None = None,
        *,
        owner_identity: str | None = None,
    ) -> None:
        self._executor = executor
        self._registry = registry
        self._source = source
        self._config = config or ZkDriveConfig()
        self._owner_identity = owner_identity
        self._inflight: dict[str, asyncio.Task[UnlockedNode]] = {}

    @property
    def registry(self) -> NodeRegistry:
        return self._registry

    async def unlock_root(self, descriptor: NodeDescriptor, root_secret: SecureBytes) -> UnlockedNode:
        """
        Unlock the top of the tree (the user key) with the root secret.

        Raises:
            MalformedInputError: If the descriptor has a parent.
            DecryptionError: If the root secret does not open the key packet.
        """
        if descriptor.parent_id is not None:
            msg = f"Root node {descriptor.node_id} must not have a parent"
            raise MalformedInputError(msg)
        return await self._resolve(descriptor, ParentContext.root(root_secret), parent_id=None)

    async def unlock_node(self, node_id: str) -> UnlockedNode:
        """
        Unlock a node, walking up to the nearest unlocked ancestor first.

        Raises:
            NodeNotFoundError: If a descriptor on the chain is missing.
            NodeNotUnlockedError: If the chain ends at a root that was never unlocked.
            ChainDepthError: If the chain is deeper than `max_chain_depth` or loops.
            UntrustedNodeError: If policy is BLOCK and an ancestor is untrusted.
            CryptoError: Any failure while resolving a node on the chain. A node
                that failed keeps failing with the same error until evicted.
        """
        return await self._unlock(node_id, depth=0, path=frozenset())

    async def get_content_key(self, file_id: str) -> ContentKey:
        node = await self.unlock_node(file_id)
        self._require_usable(node)
        descriptor = await self._source.get_node(file_id)
        if not descriptor.content_key_packet:
            msg = f"Node {file_id} has no content key packet"
            raise MalformedInputError(msg)
        return await self._executor.execute(
            TaskType.UNSEAL_CONTENT_KEY,
            {"content_key_packet": descriptor.content_key_packet, "file_key_pair": node.key_pair},
        )

    async def decrypt_file_content(
        self,
        file_id: str,
        blocks: Sequence[bytes],
        expected_hashes: Sequence[str] | None = None,
    ) -> bytes:
        """
        Decrypt the ordered blocks of a file.

        Blocks are decrypted concurrently; block i uses nonce index i.

        Raises:
            IntegrityError: If a block hash does not match.
            DecryptionError: If a block fails authentication.
        """
        if expected_hashes is not None and len(expected_hashes) != len(blocks):
            msg = f"Got {len(blocks)} blocks but {len(expected_hashes)} hashes"
            raise MalformedInputError(msg)

        content_key = await self.get_content_key(file_id)
        parts = await asyncio.gather(
            *(
                self._executor.execute(
                    TaskType.DECRYPT_PAYLOAD,
                    {
                        "ciphertext": block,
                        "content_key": content_key,
                        "block_index": index,
                        "expected_hash": expected_hashes[index] if expected_hashes else None,
                    },
                )
                for index, block in enumerate(blocks)
            )
        )
        logger.debug("Decrypted file content", node_id=file_id, blocks=len(blocks))
        return b"".join(parts)

    async def encrypt_file_block(self, file_id: str, plaintext: bytes, block_index: int) -> bytes:
        content_key = await self.get_content_key(file_id)
        return await self._executor.execute(
            TaskType.ENCRYPT_PAYLOAD,
            {"plaintext": plaintext, "content_key": content_key, "block_index": block_index},
        )

    async def decrypt_thumbnail(self, file_id: str, ciphertext: bytes) -> bytes:
        content_key = await self.get_content_key(file_id)
        return await self._executor.execute(
            TaskType.DECRYPT_THUMBNAIL, {"ciphertext": ciphertext, "content_key": content_key}
        )

    async def decrypt_name(self, node_id: str) -> str:
        """Display name of a node; a placeholder when the name could not be decrypted."""
        node = await self.unlock_node(node_id)
        return node.name

    async def decrypt_xattrs(self, node_id: str) -> ExtendedAttributes:
        """Extended attributes of a node; empty when it has none."""
        node = await self.unlock_node(node_id)
        self._require_usable(node)
        descriptor = await self._source.get_node(node_id)
        if not descriptor.xattrs:
            return ExtendedAttributes()
        return await self._executor.execute(
            TaskType.DECRYPT_XATTRS,
            {"ciphertext": descriptor.xattrs, "session_key": node.session_key},
        )

    async def encrypt_name(self, node_id: str, plaintext: str) -> EncryptedName:
        """Encrypt a new name for a node (rename)."""
        node = await self.unlock_node(node_id)
        self._require_usable(node)
        return await self._executor.execute(
            TaskType.ENCRYPT_NAME,
            {
                "plaintext": plaintext,
                "node_public_key": node.key_pair.public_key_armored,
                "max_length": self._config.max_name_length,
            },
        )

    async def create_file(
        self,
        parent_id: str,
        name: str,
        extra_attrs: dict[str, XAttrValue] | None = None,
    ) -> GeneratedNodeKeys:
        """Generate key material for a new file under `parent_id`."""
        return await self._generate(TaskType.GENERATE_FILE_KEYS, parent_id, name, extra_attrs)

    async def create_folder(
        self,
        parent_id: str,
        name: str,
        extra_attrs: dict[str, XAttrValue] | None = None,
    ) -> GeneratedNodeKeys:
        """Generate key material for a new folder under `parent_id`."""
        return await self._generate(TaskType.GENERATE_FOLDER_KEYS, parent_id, name, extra_attrs)

    async def move_item(
        self,
        node_id: str,
        new_parent_id: str,
        *,
        name: str | None = None,
    ) -> MovedItemKeys:
        """
        Re-seal a node's key packet under a new parent.

        Args:
            node_id: Node being moved.
            new_parent_id: Destination folder.
            name: Name to hash in the destination. Defaults to the decrypted name.

        Raises:
            MalformedInputError: If the move would create a cycle or the name is unknown.
        """
        node = await self.unlock_node(node_id)
        new_parent = await self.unlock_node(new_parent_id)
        self._require_usable(new_parent)

        lineage = {new_parent.node_id, *(n.node_id for n in self._registry.ancestors(new_parent_id))}
        if node.node_id in lineage:
            msg = f"Cannot move node {node_id} below itself"
            raise MalformedInputError(msg)
        if name is None:
            if not node.name_decrypted:
                msg = f"Name of node {node_id} is unknown; pass it explicitly"
                raise MalformedInputError(msg)
            name = node.name

        return await self._executor.execute(
            TaskType.PREPARE_ITEM_MOVE,
            {
                "item_packet": node.key_packet,
                "name": name,
                "new_parent_session_key": new_parent.session_key,
                "new_parent_key_packet_id": new_parent.key_packet_id,
                "new_parent_private_key_armored": new_parent.key_pair.private_key_armored,
                "max_name_length": self._config.max_name_length,
            },
        )

    async def verify_integrity(self, node_id: str) -> bool:
        """
        Integrity badge for a node: its packet signature and its parent's.

        Returns False for the user node, which has no verifier above it, and for
        nodes without any signature.
        """
        node = await self.unlock_node(node_id)
        if node.parent_id is None:
            return False
        parent = await self.unlock_node(node.parent_id)
        grandparent = self._registry.get(parent.parent_id) if parent.parent_id else None
        signer_key = grandparent.key_pair.public_key_armored if grandparent else None
        signature_email = self._owner_identity or node.signature_email

        if parent.key_type == KeyType.SHARE:
            task_type = TaskType.VERIFY_ROOT_ITEM_INTEGRITY
            payload: dict[str, Any] = {
                "share_key": parent.key_pair.public_key_armored,
                "share_key_packet": parent.key_packet_armored,
                "share_passphrase_signature": parent.passphrase_signature,
                "user_key": signer_key,
            }
        else:
            task_type = TaskType.VERIFY_ITEM_INTEGRITY
            payload = {
                "parent_key": parent.key_pair.public_key_armored,
                "parent_key_packet": parent.key_packet_armored,
                "parent_passphrase_signature": parent.passphrase_signature,
                "parent_signer_key": signer_key,
            }
        payload.update(
            item_key_packet=node.key_packet_armored,
            item_passphrase_signature=node.passphrase_signature,
            signature_email=signature_email,
        )
        return await self._executor.execute(task_type, payload)

    def evict(self, node_id: str) -> None:
        """Forget a node and its descendants, wiping their secrets."""
        self._registry.remove(node_id)

    def clear(self) -> None:
        self._registry.clear()

    async def _unlock(self, node_id: str, depth: int, path: frozenset[str]) -> UnlockedNode:
        if (node := self._registry.get(node_id)) is not None:
            return node
        if (failure := self._registry.failure(node_id)) is not None:
            raise failure
        if node_id in path:
            msg = "Parent chain loops back on itself"
            raise ChainDepthError(msg, node_id=node_id)
        if depth > self._config.max_chain_depth:
            msg = f"Parent chain is deeper than {self._config.max_chain_depth}"
            raise ChainDepthError(msg, node_id=node_id)

        task = self._inflight.get(node_id)
        if task is None:
            task = asyncio.ensure_future(self._unlock_from_source(node_id, depth, path | {node_id}))
            self._inflight[node_id] = task
            task.add_done_callback(lambda _: self._inflight.pop(node_id, None))
        return await asyncio.shield(task)

    async def _unlock_from_source(
        self, node_id: str, depth: int, path: frozenset[str]
    ) -> UnlockedNode:
        descriptor = await self._source.get_node(node_id)
        if descriptor.parent_id is None:
            msg = "Root node is locked; unlock it with the root secret first"
            raise NodeNotUnlockedError(msg, node_id=node_id)

        parent = await self._unlock(descriptor.parent_id, depth + 1, path)
        self._require_usable(parent)
        return await self._resolve(descriptor, ParentContext.from_node(parent), parent.node_id)

    async def _resolve(
        self,
        descriptor: NodeDescriptor,
        parent: ParentContext,
        parent_id: str | None,
    ) -> UnlockedNode:
        self._registry.mark(descriptor.node_id, NodeState.UNSEALING)
        try:
            resolved: ResolvedNode = await self._executor.execute(
                TaskType.UNLOCK_NODE,
                {
                    "descriptor": descriptor,
                    "parent": parent,
                    "expected_identity": self._owner_identity,
                },
            )
        except ZkDriveError as e:
            self._registry.fail(descriptor.node_id, e)
            logger.warning("Failed to unlock node", node_id=descriptor.node_id, error=str(e))
            raise

        node = UnlockedNode.from_resolved(resolved, descriptor, parent_id)
        if not node.is_trusted:
            logger.warning("Node is untrusted", node_id=node.node_id)
        if not node.name_decrypted and descriptor.name:
            logger.warning("Using placeholder name", node_id=node.node_id, name=node.name)
        self._registry.put(node)
        logger.debug("Unlocked node", node_id=node.node_id, state=node.state.value)
        return node

    def _require_usable(self, node: UnlockedNode) -> None:
        if node.is_trusted or self._config.untrusted_policy == UntrustedPolicy.FLAG:
            return
        msg = "Node failed integrity verification"
        raise UntrustedNodeError(msg, node_id=node.node_id)

    async def _generate(
        self,
        task_type: TaskType,
        parent_id: str,
        name: str,
        extra_attrs: dict[str, XAttrValue] | None,
    ) -> GeneratedNodeKeys:
        parent = await self.unlock_node(parent_id)
        self._require_usable(parent)
        grandparent = self._registry.get(parent.parent_id) if parent.parent_id else None
        owner_identity = self._owner_identity or parent.key_pair.identity
        if not owner_identity:
            msg = f"No owner identity known for node {parent_id}"
            raise MalformedInputError(msg)

        verify_parent = grandparent is not None and parent.passphrase_signature is not None
        return await self._executor.execute(
            task_type,
            {
                "name": name,
                "owner_identity": owner_identity,
                "parent_private_key_armored": parent.key_pair.private_key_armored,
                "parent_passphrase": parent.key_packet_armored,
                "parent_passphrase_signature": (
                    parent.passphrase_signature if verify_parent else None
                ),
                "parent_session_key": parent.session_key,
                "parent_key_packet_id": parent.key_packet_id,
                "extra_attrs": extra_attrs,
                "parent_signer_key": (
                    grandparent.key_pair.public_key_armored if verify_parent else None
                ),
                "key_algorithm": self._config.key_algorithm,
                "rsa_key_size": self._config.rsa_key_size,
                "max_name_length": self._config.max_name_length,
            },
        )
