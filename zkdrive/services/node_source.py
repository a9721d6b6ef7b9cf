"""
Source of encrypted node descriptors.

The keyring asks a node source for descriptors while walking up a chain of
locked ancestors. Applications plug in their own node cache; the in-memory
source suits callers that already hold every descriptor.
"""

from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

from zkdrive.exceptions import NodeNotFoundError
from zkdrive.models.drive import NodeDescriptor


@runtime_checkable
class NodeSource(Protocol):
    async def get_node(self, node_id: str) -> NodeDescriptor:
        """
        Raises:
            NodeNotFoundError: If no descriptor exists for the id.
        """
        ...


class InMemoryNodeSource:
    """Dictionary-backed node source."""

    def __init__(self, descriptors: Iterable[NodeDescriptor] = ()) -> None:
        self._descriptors: dict[str, NodeDescriptor] = {}
        self.add_many(descriptors)

    async def get_node(self, node_id: str) -> NodeDescriptor:
        descriptor = self._descriptors.get(node_id)
        if descriptor is None:
            msg = "Unknown node"
            raise NodeNotFoundError(msg, node_id=node_id)
        return descriptor

    def add(self, descriptor: NodeDescriptor | dict[str, Any]) -> NodeDescriptor:
        if isinstance(descriptor, dict):
            descriptor = NodeDescriptor.from_dict(descriptor)
        self._descriptors[descriptor.node_id] = descriptor
        return descriptor

    def add_many(self, descriptors: Iterable[NodeDescriptor | dict[str, Any]]) -> None:
        for descriptor in descriptors:
            self.add(descriptor)

    def discard(self, node_id: str) -> None:
        self._descriptors.pop(node_id, None)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)
