from __future__ import annotations

from .config import NetworkSettings, get_settings
from .enums import LegPosition, NodeStatus
from .exceptions import InconsistentTreeError, TraversalLimitError
from .logging import get_logger
from .models import TreeNode
from .schemas import CollapsedSlot, DownlineMember, OpenSlot, SubtreeNode
from .store import TreeStore, walk_descendants

logger = get_logger(__name__)


def _snapshot(node: TreeNode, depth: int) -> SubtreeNode:
    return SubtreeNode(
        id=node.id,
        sponsor_id=node.sponsor_id,
        parent_id=node.parent_id,
        position=node.position,
        level=node.level,
        depth=depth,
        package_amount=node.package_amount,
        volume_contribution=node.volume_contribution,
        status=node.status,
    )


class DownlineQueryService:
    """Read-only views over the tree for reporting consumers."""

    def __init__(
        self, store: TreeStore, settings: NetworkSettings | None = None
    ) -> None:
        resolved = settings or get_settings()
        self._store = store
        self._max_nodes = resolved.traversal_max_nodes
        self._max_depth = resolved.subtree_max_depth
        self._max_upline_depth = resolved.upline_search_max_depth

    async def get_subtree(
        self, root_id: str, max_depth: int | None = None
    ) -> SubtreeNode:
        """Return a snapshot of ``root_id`` and its descendants to ``max_depth``.

        Every slot of a node inside the window is filled in: an empty slot is an
        :class:`OpenSlot` and an occupant just past the window is a
        :class:`CollapsedSlot`, so open positions are never confused with
        positions that were simply not loaded.
        """

        depth_limit = self._max_depth if max_depth is None else max_depth
        if depth_limit < 0 or depth_limit > self._max_depth:
            raise ValueError(
                f"max_depth must be between 0 and {self._max_depth}, got {depth_limit}"
            )

        root = await self._store.get_node(root_id)
        snapshot = _snapshot(root, 0)
        seen: set[str] = {root.id}
        frontier: list[tuple[TreeNode, SubtreeNode]] = [(root, snapshot)]
        depth = 0

        while frontier:
            if depth == depth_limit:
                for node, view in frontier:
                    for position in LegPosition.legs():
                        child_id = node.child_id(position)
                        slot = (
                            OpenSlot(parent_id=node.id, position=position)
                            if child_id is None
                            else CollapsedSlot(node_id=child_id, position=position)
                        )
                        setattr(view, position.value, slot)
                break

            wanted = [
                child_id
                for node, _ in frontier
                for position in LegPosition.legs()
                if (child_id := node.child_id(position)) is not None
            ]
            loaded = await self._store.get_nodes(wanted)
            next_frontier: list[tuple[TreeNode, SubtreeNode]] = []
            for node, view in frontier:
                for position in LegPosition.legs():
                    child_id = node.child_id(position)
                    if child_id is None:
                        setattr(
                            view,
                            position.value,
                            OpenSlot(parent_id=node.id, position=position),
                        )
                        continue
                    child = self._checked_child(root_id, node, child_id, loaded, seen)
                    child_view = _snapshot(child, depth + 1)
                    setattr(view, position.value, child_view)
                    next_frontier.append((child, child_view))
            frontier = next_frontier
            depth += 1

        return snapshot

    async def get_full_downline(self, root_id: str) -> list[DownlineMember]:
        """List every active descendant in breadth-first order."""

        members: list[DownlineMember] = []
        async for visit in walk_descendants(
            self._store, root_id, max_nodes=self._max_nodes
        ):
            node = visit.node
            if node.status != NodeStatus.ACTIVE:
                continue
            members.append(
                DownlineMember(
                    id=node.id,
                    sponsor_id=node.sponsor_id,
                    parent_id=node.parent_id,
                    position=node.position,
                    level=node.level,
                    depth=visit.depth,
                    leg=visit.leg,
                    package_amount=node.package_amount,
                    volume_contribution=node.volume_contribution,
                    status=node.status,
                )
            )
        return members

    async def get_direct_children(
        self, node_id: str
    ) -> dict[LegPosition, TreeNode | None]:
        node = await self._store.get_node(node_id)
        wanted = [
            child_id
            for position in LegPosition.legs()
            if (child_id := node.child_id(position)) is not None
        ]
        loaded = await self._store.get_nodes(wanted)
        children: dict[LegPosition, TreeNode | None] = {}
        seen = {node.id}
        for position in LegPosition.legs():
            child_id = node.child_id(position)
            children[position] = (
                None
                if child_id is None
                else self._checked_child(node_id, node, child_id, loaded, seen)
            )
        return children

    async def get_upline_chain(
        self, node_id: str, max_depth: int | None = None
    ) -> list[TreeNode]:
        """Return the ancestors of ``node_id``, nearest first, up to the root."""

        limit = self._max_upline_depth if max_depth is None else max_depth
        node = await self._store.get_node(node_id)
        chain: list[TreeNode] = []
        seen = {node.id}
        while node.parent_id is not None:
            if len(chain) >= limit:
                raise TraversalLimitError(node_id, limit)
            parent_id = node.parent_id
            if parent_id in seen:
                logger.error(
                    "tree_inconsistency_detected",
                    reason="cycle",
                    node_id=node_id,
                    parent_id=parent_id,
                )
                raise InconsistentTreeError(
                    f"ancestor '{parent_id}' reached twice above '{node_id}'"
                )
            parent = await self._store.find_node(parent_id)
            if parent is None:
                logger.error(
                    "tree_inconsistency_detected",
                    reason="dangling_pointer",
                    node_id=node.id,
                    parent_id=parent_id,
                )
                raise InconsistentTreeError(
                    f"node '{node.id}' records missing parent '{parent_id}'"
                )
            seen.add(parent_id)
            chain.append(parent)
            node = parent
        return chain

    def _checked_child(
        self,
        root_id: str,
        parent: TreeNode,
        child_id: str,
        loaded: dict[str, TreeNode],
        seen: set[str],
    ) -> TreeNode:
        if child_id in seen:
            logger.error(
                "tree_inconsistency_detected",
                reason="cycle",
                root_id=root_id,
                node_id=child_id,
                parent_id=parent.id,
            )
            raise InconsistentTreeError(
                f"node '{child_id}' reached twice below '{root_id}'"
            )
        child = loaded.get(child_id)
        if child is None:
            logger.error(
                "tree_inconsistency_detected",
                reason="dangling_pointer",
                root_id=root_id,
                node_id=child_id,
                parent_id=parent.id,
            )
            raise InconsistentTreeError(
                f"node '{parent.id}' points at missing node '{child_id}'"
            )
        seen.add(child_id)
        if len(seen) > self._max_nodes:
            raise TraversalLimitError(root_id, self._max_nodes)
        return child
