"""
Registry of unlocked nodes.

The registry is the single owner of every `UnlockedNode`. Nodes refer to their
parent by id; the registry keeps a child index so that evicting a node also
evicts everything below it.
"""

import structlog

from zkdrive.core.cache import LRUCache
from zkdrive.exceptions import NodeNotUnlockedError, ZkDriveError
from zkdrive.models.drive import NodeState, UnlockedNode

logger = structlog.get_logger(__name__)


class NodeRegistry:
    """
    LRU-bounded arena of unlocked nodes.

    Evicted or removed nodes have their session key wiped, along with all of
    their descendants.
    """

    def __init__(self, max_size: int = 1000) -> None:
        """
        Args:
            max_size: Maximum number of unlocked nodes kept in memory.
        """
        self._nodes: LRUCache[UnlockedNode] = LRUCache(max_size, on_evict=self._on_evict)
        self._children: dict[str, set[str]] = {}
        self._states: dict[str, NodeState] = {}
        self._failures: dict[str, ZkDriveError] = {}

    def get(self, node_id: str) -> UnlockedNode | None:
        return self._nodes.get(node_id)

    def require(self, node_id: str) -> UnlockedNode:
        """
        Raises:
            NodeNotUnlockedError: If the node is not in the registry.
        """
        node = self._nodes.get(node_id)
        if node is None:
            msg = "Node is not unlocked"
            raise NodeNotUnlockedError(msg, node_id=node_id)
        return node

    def put(self, node: UnlockedNode) -> None:
        previous = self._nodes.peek(node.node_id)
        if previous is not None and previous is not node:
            self._unlink(previous)
            if previous.session_key is not node.session_key:
                previous.clear()
        # ancestors become most recently used so eviction takes leaves first
        if node.parent_id is not None:
            for ancestor in reversed(self._ancestors_from(node.parent_id)):
                self._nodes.get(ancestor.node_id)
        self._nodes.put(node.node_id, node)
        self._states[node.node_id] = node.state
        self._failures.pop(node.node_id, None)
        if node.parent_id is not None:
            self._children.setdefault(node.parent_id, set()).add(node.node_id)

    def remove(self, node_id: str) -> None:
        """Remove a node and its descendants, wiping their secrets and any recorded failure."""
        node = self._nodes.remove(node_id)
        self._states.pop(node_id, None)
        self._failures.pop(node_id, None)
        self._drop_subtree(node_id)
        if node is not None:
            self._unlink(node)
            node.clear()
            logger.debug("Removed node", node_id=node_id)

    def state(self, node_id: str) -> NodeState:
        return self._states.get(node_id, NodeState.LOCKED)

    def mark(self, node_id: str, state: NodeState) -> None:
        """Record a transient state for a node that is not (yet) stored."""
        self._states[node_id] = state

    def fail(self, node_id: str, error: ZkDriveError) -> None:
        """
        Mark a node FAILED. The state is terminal: the error is kept and
        reported again until the node is removed or stored anew.
        """
        self._states[node_id] = NodeState.FAILED
        self._failures[node_id] = error

    def failure(self, node_id: str) -> ZkDriveError | None:
        return self._failures.get(node_id)

    def children_of(self, node_id: str) -> list[str]:
        return sorted(self._children.get(node_id, ()))

    def ancestors(self, node_id: str) -> list[UnlockedNode]:
        """Unlocked ancestors of a node, nearest first, stopping at the first gap."""
        node = self._nodes.peek(node_id)
        if node is None or node.parent_id is None:
            return []
        return self._ancestors_from(node.parent_id, seen={node_id})

    def _ancestors_from(self, node_id: str, seen: set[str] | None = None) -> list[UnlockedNode]:
        chain = []
        seen = seen if seen is not None else set()
        current: str | None = node_id
        while current is not None and current not in seen:
            seen.add(current)
            node = self._nodes.peek(current)
            if node is None:
                break
            chain.append(node)
            current = node.parent_id
        return chain

    def clear(self) -> None:
        """Wipe every node."""
        for node in self._nodes.values():
            node.clear()
        self._nodes.clear()
        self._children.clear()
        self._states.clear()
        self._failures.clear()

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def _on_evict(self, node_id: str, node: UnlockedNode) -> None:
        self._states.pop(node_id, None)
        self._unlink(node)
        node.clear()
        self._drop_subtree(node_id)
        logger.debug("Evicted node", node_id=node_id)

    def _drop_subtree(self, node_id: str) -> None:
        stack = list(self._children.pop(node_id, ()))
        while stack:
            child_id = stack.pop()
            child = self._nodes.remove(child_id)
            self._states.pop(child_id, None)
            if child is not None:
                child.clear()
            stack.extend(self._children.pop(child_id, ()))

    def _unlink(self, node: UnlockedNode) -> None:
        if node.parent_id is None:
            return
        siblings = self._children.get(node.parent_id)
        if siblings is None:
            return
        siblings.discard(node.node_id)
        if not siblings:
            del self._children[node.parent_id]
