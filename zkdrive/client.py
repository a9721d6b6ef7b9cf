"""
zkdrive client facade.

This is the main entry point for users of the library. It wires the crypto
executor, the node registry and the keyring together and hides the key
hierarchy behind node ids.
"""

import asyncio
from collections.abc import Iterable, Sequence
from typing import Any, Self

import structlog

from zkdrive.config import ZkDriveConfig
from zkdrive.core.secure_bytes import SecureBytes
from zkdrive.crypto.root_secret import derive_root_secret
from zkdrive.executor import CryptoExecutor, TaskType
from zkdrive.models.crypto import (
    ContentKey,
    EncryptedName,
    ExtendedAttributes,
    GeneratedNodeKeys,
    MovedItemKeys,
    XAttrValue,
)
from zkdrive.models.drive import NodeDescriptor, UnlockedNode
from zkdrive.services.keyring_service import KeyringService
from zkdrive.services.node_registry import NodeRegistry
from zkdrive.services.node_source import InMemoryNodeSource, NodeSource

logger = structlog.get_logger(__name__)


class DriveCryptoClient:
    """
    Async client for the drive key hierarchy.

    Example:
        ```python
        async with DriveCryptoClient(owner_identity="alice@example.com") as client:
            client.add_nodes(descriptors)
            await client.unlock_account(user_descriptor, password, key_salt)

            name = await client.decrypt_name(folder_id)
            data = await client.decrypt_file_content(file_id, blocks)
            keys = await client.generate_file_keys(folder_id, "report.pdf")
        ```

    Args:
        config: Client configuration. Uses defaults if not provided.
        source: Node descriptor source. Defaults to an in-memory source fed by `add_nodes`.
        owner_identity: Email passphrase signatures must be bound to.
    """

    def __init__(
        self,
        config: ZkDriveConfig | None = None,
        *,
        source: NodeSource | None = None,
        owner_identity: str | None = None,
    ) -> None:
        self._config = config or ZkDriveConfig()
        self._source = source if source is not None else InMemoryNodeSource()
        self._owner_identity = owner_identity

        self._executor: CryptoExecutor | None = None
        self._registry: NodeRegistry | None = None
        self._keyring: KeyringService | None = None
        self._root_secret: SecureBytes | None = None
        self._root_id: str | None = None

        self._initialized = False
        self._init_lock = asyncio.Lock()

    async def __aenter__(self) -> Self:
        await self._ensure_initialized()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object
    ) -> None:
        await self.close()

    async def _ensure_initialized(self) -> None:
        async with self._init_lock:
            if self._initialized:
                return

            self._executor = CryptoExecutor(self._config)
            self._registry = NodeRegistry(self._config.key_cache_max_size)
            self._keyring = KeyringService(
                self._executor,
                self._registry,
                self._source,
                self._config,
                owner_identity=self._owner_identity,
            )

            self._initialized = True
            logger.debug("Client initialized", executor_backend=self._config.executor_backend.value)

    async def close(self) -> None:
        """Wipe all key material and shut the executor down."""
        async with self._init_lock:
            if self._registry is not None:
                self._registry.clear()
                self._registry = None
            if self._root_secret is not None:
                self._root_secret.clear()
                self._root_secret = None
            if self._executor is not None:
                await self._executor.close()
                self._executor = None

            self._keyring = None
            self._root_id = None
            self._initialized = False
            logger.debug("Client closed")

    @property
    def is_unlocked(self) -> bool:
        return self._root_id is not None

    @property
    def root_id(self) -> str | None:
        return self._root_id

    @property
    def executor(self) -> CryptoExecutor:
        if self._executor is None:
            raise RuntimeError("Client not initialized")
        return self._executor

    def add_nodes(self, descriptors: Iterable[NodeDescriptor | dict[str, Any]]) -> None:
        """
        Feed descriptors to the built-in in-memory source.

        Raises:
            TypeError: If the client was created with a custom source.
        """
        if not isinstance(self._source, InMemoryNodeSource):
            msg = "add_nodes() needs the in-memory node source"
            raise TypeError(msg)
        self._source.add_many(descriptors)

    async def unlock_account(
        self,
        user_descriptor: NodeDescriptor | dict[str, Any],
        password: SecureBytes | str,
        key_salt: str,
    ) -> UnlockedNode:
        """
        Derive the root secret from the password and unlock the user key.

        Args:
            user_descriptor: Descriptor of the user node (no parent).
            password: Account password.
            key_salt: Base64 key salt.

        Raises:
            MalformedInputError: If the salt or descriptor is invalid.
            DecryptionError: If the password is wrong.
        """
        if isinstance(password, str):
            password = SecureBytes.from_string(password)
        # bcrypt blocks; keep the loop responsive
        root_secret = await asyncio.to_thread(derive_root_secret, password, key_salt)
        return await self.unlock_with_root_secret(user_descriptor, root_secret)

    async def unlock_with_root_secret(
        self,
        user_descriptor: NodeDescriptor | dict[str, Any],
        root_secret: SecureBytes,
    ) -> UnlockedNode:
        """Unlock the user key with an already derived root secret."""
        keyring = await self._get_keyring()
        if isinstance(user_descriptor, dict):
            user_descriptor = NodeDescriptor.from_dict(user_descriptor)

        node = await keyring.unlock_root(user_descriptor, root_secret)
        if self._root_secret is not None and self._root_secret is not root_secret:
            self._root_secret.clear()
        self._root_secret = root_secret
        self._root_id = node.node_id
        logger.debug("Unlocked account", node_id=node.node_id)
        return node

    async def unlock_node(self, node_id: str) -> UnlockedNode:
        keyring = await self._get_keyring()
        return await keyring.unlock_node(node_id)

    async def decrypt_name(self, node_id: str) -> str:
        keyring = await self._get_keyring()
        return await keyring.decrypt_name(node_id)

    async def encrypt_name(self, node_id: str, plaintext: str) -> EncryptedName:
        keyring = await self._get_keyring()
        return await keyring.encrypt_name(node_id, plaintext)

    async def decrypt_xattrs(self, node_id: str) -> ExtendedAttributes:
        keyring = await self._get_keyring()
        return await keyring.decrypt_xattrs(node_id)

    async def get_content_key(self, file_id: str) -> ContentKey:
        keyring = await self._get_keyring()
        return await keyring.get_content_key(file_id)

    async def decrypt_file_content(
        self,
        file_id: str,
        blocks: Sequence[bytes],
        expected_hashes: Sequence[str] | None = None,
    ) -> bytes:
        keyring = await self._get_keyring()
        return await keyring.decrypt_file_content(file_id, blocks, expected_hashes)

    async def decrypt_thumbnail(self, file_id: str, ciphertext: bytes) -> bytes:
        keyring = await self._get_keyring()
        return await keyring.decrypt_thumbnail(file_id, ciphertext)

    async def encrypt_payload(
        self,
        plaintext: bytes,
        content_key: ContentKey | str,
        *,
        block_index: int = 0,
    ) -> bytes:
        """Encrypt a block with a content key, e.g. one returned by `generate_file_keys`."""
        if isinstance(content_key, str):
            content_key = ContentKey.from_base64(content_key)
        return await self.executor.execute(
            TaskType.ENCRYPT_PAYLOAD,
            {"plaintext": plaintext, "content_key": content_key, "block_index": block_index},
        )

    async def generate_file_keys(
        self,
        parent_id: str,
        name: str,
        extra_attrs: dict[str, XAttrValue] | None = None,
    ) -> GeneratedNodeKeys:
        keyring = await self._get_keyring()
        return await keyring.create_file(parent_id, name, extra_attrs)

    async def generate_folder_keys(
        self,
        parent_id: str,
        name: str,
        extra_attrs: dict[str, XAttrValue] | None = None,
    ) -> GeneratedNodeKeys:
        keyring = await self._get_keyring()
        return await keyring.create_folder(parent_id, name, extra_attrs)

    async def prepare_item_move(
        self,
        node_id: str,
        new_parent_id: str,
        *,
        name: str | None = None,
    ) -> MovedItemKeys:
        keyring = await self._get_keyring()
        return await keyring.move_item(node_id, new_parent_id, name=name)

    async def verify_item_integrity(self, node_id: str) -> bool:
        keyring = await self._get_keyring()
        return await keyring.verify_integrity(node_id)

    async def evict(self, node_id: str) -> None:
        keyring = await self._get_keyring()
        keyring.evict(node_id)

    async def _get_keyring(self) -> KeyringService:
        await self._ensure_initialized()
        if self._keyring is None:
            raise RuntimeError("Client not initialized")
        return self._keyring
