"""Durable node storage and the atomic slot-claim primitive.

Every pointer mutation in the tree goes through :meth:`TreeStore.claim_slot`.
The SQL implementation expresses the claim as a single conditional ``UPDATE``
on the parent's pointer column, so concurrent claims on the same
``(parent_id, position)`` serialize in the database and exactly one of them
affects a row.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .enums import LegPosition, NodeStatus
from .exceptions import (
    InconsistentTreeError,
    NodeNotFoundError,
    SlotTakenError,
    TraversalLimitError,
)
from .logging import get_logger
from .models import TreeNode
from .schemas import NodeCreate

logger = get_logger(__name__)

_BATCH_SIZE = 500


class TreeStore(Protocol):
    """Storage boundary used by placement and read services."""

    async def get_node(self, node_id: str) -> TreeNode: ...

    async def find_node(self, node_id: str) -> TreeNode | None: ...

    async def get_nodes(self, node_ids: Iterable[str]) -> dict[str, TreeNode]: ...

    async def add_node(self, data: NodeCreate) -> TreeNode: ...

    async def claim_slot(
        self, parent_id: str, position: LegPosition, child_id: str
    ) -> None: ...

    async def set_parent_and_level(
        self, child_id: str, parent_id: str, position: LegPosition, level: int
    ) -> None: ...

    async def set_status(self, node_id: str, status: NodeStatus) -> TreeNode: ...


def _pointer_column(position: LegPosition):  # type: ignore[no-untyped-def]
    if position is LegPosition.LEFT:
        return TreeNode.left_child_id
    if position is LegPosition.RIGHT:
        return TreeNode.right_child_id
    raise ValueError("root is not a child slot")


class SqlTreeStore:
    """:class:`TreeStore` backed by an SQLAlchemy async session.

    The store never commits; callers own the transaction so a claim and the
    writes that accompany it succeed or roll back together.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @property
    def session(self) -> AsyncSession:
        return self._session

    async def find_node(self, node_id: str) -> TreeNode | None:
        # Pointer updates bypass the identity map, so always reload.
        stmt = (
            select(TreeNode)
            .where(TreeNode.id == node_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_node(self, node_id: str) -> TreeNode:
        node = await self.find_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    async def get_nodes(self, node_ids: Iterable[str]) -> dict[str, TreeNode]:
        pending = list(dict.fromkeys(node_ids))
        found: dict[str, TreeNode] = {}
        for start in range(0, len(pending), _BATCH_SIZE):
            chunk = pending[start : start + _BATCH_SIZE]
            stmt = (
                select(TreeNode)
                .where(TreeNode.id.in_(chunk))
                .execution_options(populate_existing=True)
            )
            result = await self._session.execute(stmt)
            for node in result.scalars():
                found[node.id] = node
        return found

    async def add_node(self, data: NodeCreate) -> TreeNode:
        """Insert an unplaced node; it has no parent until a slot is claimed."""

        payload = data.model_dump(exclude_none=True)
        if data.volume_contribution is None:
            payload["volume_contribution"] = data.package_amount
        node = TreeNode(**payload, level=0)
        if data.status is NodeStatus.ACTIVE:
            node.activated_at = datetime.now(UTC)
        self._session.add(node)
        await self._session.flush()
        await self._session.refresh(node)
        return node

    async def create_root(
        self,
        *,
        node_id: str | None = None,
        package_amount: Decimal = Decimal("0.00"),
        volume_contribution: Decimal | None = None,
    ) -> TreeNode:
        """Insert an active root node at level 0."""

        node = await self.add_node(
            NodeCreate(
                id=node_id,
                package_amount=package_amount,
                volume_contribution=volume_contribution,
                status=NodeStatus.ACTIVE,
            )
        )
        node.position = LegPosition.ROOT
        await self._session.flush()
        return node

    async def claim_slot(
        self, parent_id: str, position: LegPosition, child_id: str
    ) -> None:
        """Point ``parent_id``'s ``position`` slot at ``child_id`` if it is open.

        Raises:
            SlotTakenError: The slot already has an occupant.
            NodeNotFoundError: The parent does not exist.
        """
        if parent_id == child_id:
            logger.error(
                "tree_inconsistency_detected",
                reason="self_parent",
                node_id=child_id,
                position=position.value,
            )
            raise InconsistentTreeError(f"node '{child_id}' cannot parent itself")

        column = _pointer_column(position)
        stmt = (
            update(TreeNode)
            .where(TreeNode.id == parent_id, column.is_(None))
            .values({column.key: child_id})
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 1:
            logger.debug(
                "slot_claimed",
                parent_id=parent_id,
                position=position.value,
                child_id=child_id,
            )
            return

        exists = await self._session.execute(
            select(TreeNode.id).where(TreeNode.id == parent_id)
        )
        if exists.scalar_one_or_none() is None:
            raise NodeNotFoundError(parent_id)
        raise SlotTakenError(parent_id, position)

    async def set_parent_and_level(
        self, child_id: str, parent_id: str, position: LegPosition, level: int
    ) -> None:
        """Record the child's tree parent; allowed exactly once per node."""

        stmt = (
            update(TreeNode)
            .where(TreeNode.id == child_id, TreeNode.parent_id.is_(None))
            .values(parent_id=parent_id, position=position, level=level)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 1:
            return

        node = await self.find_node(child_id)
        if node is None:
            raise NodeNotFoundError(child_id)
        logger.error(
            "tree_inconsistency_detected",
            reason="parent_already_set",
            node_id=child_id,
            existing_parent_id=node.parent_id,
            requested_parent_id=parent_id,
        )
        raise InconsistentTreeError(
            f"node '{child_id}' already has parent '{node.parent_id}'"
        )

    async def set_status(self, node_id: str, status: NodeStatus) -> TreeNode:
        node = await self.get_node(node_id)
        node.status = status
        if status is NodeStatus.ACTIVE and node.activated_at is None:
            node.activated_at = datetime.now(UTC)
        await self._session.flush()
        return node


@dataclass(slots=True, frozen=True)
class DescendantVisit:
    """A node reached during a level-order walk below some root."""

    node: TreeNode
    depth: int
    leg: LegPosition


async def walk_descendants(
    store: TreeStore, root_id: str, *, max_nodes: int
) -> AsyncIterator[DescendantVisit]:
    """Yield every descendant of ``root_id`` level by level, left before right.

    Each level is fetched with one batched read. Cycles, dangling pointers and
    child pointers whose target names a different parent are logged and raise
    :class:`InconsistentTreeError`; walking more than ``max_nodes`` descendants
    raises :class:`TraversalLimitError`.
    """

    root = await store.get_node(root_id)
    seen: set[str] = {root.id}
    frontier: list[tuple[str, LegPosition, str]] = [
        (child, leg, root.id)
        for leg in LegPosition.legs()
        if (child := root.child_id(leg)) is not None
    ]
    depth = 1
    visited = 0

    while frontier:
        nodes = await store.get_nodes(child_id for child_id, _, _ in frontier)
        next_frontier: list[tuple[str, LegPosition, str]] = []
        for child_id, leg, parent_id in frontier:
            if child_id in seen:
                logger.error(
                    "tree_inconsistency_detected",
                    reason="cycle",
                    root_id=root_id,
                    node_id=child_id,
                    parent_id=parent_id,
                )
                raise InconsistentTreeError(
                    f"node '{child_id}' reached twice below '{root_id}'"
                )
            node = nodes.get(child_id)
            if node is None:
                logger.error(
                    "tree_inconsistency_detected",
                    reason="dangling_pointer",
                    root_id=root_id,
                    node_id=child_id,
                    parent_id=parent_id,
                )
                raise InconsistentTreeError(
                    f"node '{parent_id}' points at missing node '{child_id}'"
                )
            if node.parent_id != parent_id:
                logger.error(
                    "tree_inconsistency_detected",
                    reason="parent_mismatch",
                    root_id=root_id,
                    node_id=child_id,
                    parent_id=parent_id,
                    recorded_parent_id=node.parent_id,
                )
                raise InconsistentTreeError(
                    f"node '{child_id}' is linked from '{parent_id}' "
                    f"but records parent '{node.parent_id}'"
                )

            seen.add(child_id)
            visited += 1
            if visited > max_nodes:
                raise TraversalLimitError(root_id, max_nodes)
            yield DescendantVisit(node=node, depth=depth, leg=leg)

            next_frontier.extend(
                (grandchild, leg, node.id)
                for position in LegPosition.legs()
                if (grandchild := node.child_id(position)) is not None
            )
        frontier = next_frontier
        depth += 1
