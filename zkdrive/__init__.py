"""
zkdrive: key hierarchy and integrity core for zero-knowledge drive clients.

Example:
    ```python
    from zkdrive import DriveCryptoClient

    async with DriveCryptoClient(owner_identity="alice@example.com") as client:
        client.add_nodes(descriptors)
        await client.unlock_account(user_descriptor, "password", key_salt)

        print(await client.decrypt_name(folder_id))
        data = await client.decrypt_file_content(file_id, blocks)
    ```
"""

from zkdrive.client import DriveCryptoClient
from zkdrive.config import ExecutorBackend, KeyAlgorithm, UntrustedPolicy, ZkDriveConfig
from zkdrive.exceptions import (
    ChainDepthError,
    CryptoError,
    DecryptionError,
    ExecutorError,
    IdentityMismatchError,
    IntegrityError,
    MalformedInputError,
    NodeError,
    NodeNotFoundError,
    NodeNotUnlockedError,
    PacketChainMismatchError,
    SignatureInvalidError,
    UntrustedNodeError,
    ZkDriveError,
)
from zkdrive.executor import CryptoExecutor, TaskType
from zkdrive.models.drive import NodeDescriptor, NodeState, UnlockedNode

__version__ = "0.1.0"

__all__ = [
    # Main client
    "DriveCryptoClient",
    "ZkDriveConfig",
    "ExecutorBackend",
    "KeyAlgorithm",
    "UntrustedPolicy",
    # Executor
    "CryptoExecutor",
    "TaskType",
    # Models
    "NodeDescriptor",
    "NodeState",
    "UnlockedNode",
    # Exceptions
    "ZkDriveError",
    "CryptoError",
    "DecryptionError",
    "MalformedInputError",
    "SignatureInvalidError",
    "IdentityMismatchError",
    "PacketChainMismatchError",
    "IntegrityError",
    "ExecutorError",
    "NodeError",
    "NodeNotFoundError",
    "NodeNotUnlockedError",
    "UntrustedNodeError",
    "ChainDepthError",
]
