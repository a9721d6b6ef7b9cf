"""
Services built on the crypto executor.
"""

from zkdrive.services.keyring_service import KeyringService
from zkdrive.services.node_registry import NodeRegistry
from zkdrive.services.node_source import InMemoryNodeSource, NodeSource

__all__ = [
    "InMemoryNodeSource",
    "KeyringService",
    "NodeRegistry",
    "NodeSource",
]
