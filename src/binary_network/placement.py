"""Slot search and claim for newly committed members.

Placement starts at an anchor node and a preferred leg. The anchor's own slot
in that leg is tried first; when it is occupied the search spills over into
that leg only, visiting nodes level by level and trying left before right.
A lost claim is not fatal: the search re-reads the contested node and keeps
going, so concurrent placements in the same leg all land in distinct slots.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass

from .config import NetworkSettings, get_settings
from .enums import LegPosition
from .exceptions import (
    AnchorNotFoundError,
    InconsistentTreeError,
    PlacementFailedError,
    SlotTakenError,
)
from .logging import get_logger
from .models import TreeNode
from .store import TreeStore

logger = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class PlacementResult:
    """Slot actually claimed for a placed node."""

    node_id: str
    parent_id: str
    position: LegPosition
    level: int
    spillover: bool
    visits: int


class PlacementEngine:
    """Find and claim the next open slot in an anchor's preferred leg."""

    def __init__(
        self, store: TreeStore, settings: NetworkSettings | None = None
    ) -> None:
        self._store = store
        self._max_visits = (settings or get_settings()).placement_max_visits

    async def place(
        self,
        anchor_id: str,
        direction: LegPosition | str,
        child_id: str,
    ) -> PlacementResult:
        leg = LegPosition.get_leg(direction)
        anchor = await self._store.find_node(anchor_id)
        if anchor is None:
            raise AnchorNotFoundError(anchor_id)
        await self._ensure_unplaced(child_id)

        visits = 1
        occupant = anchor.child_id(leg)
        if occupant is None:
            result = await self._try_claim(
                anchor, leg, child_id, visits, spillover=False
            )
            if result is not None:
                return result
            anchor = await self._reload(anchor_id)
            occupant = self._occupant(anchor, leg)

        queue: deque[str] = deque([occupant])
        seen: set[str] = {anchor.id, occupant}

        while queue and visits < self._max_visits:
            node = await self._reload(queue.popleft())
            visits += 1

            for position in LegPosition.legs():
                child = node.child_id(position)
                if child is None:
                    result = await self._try_claim(
                        node, position, child_id, visits, spillover=True
                    )
                    if result is not None:
                        return result
                    node = await self._reload(node.id)
                    child = self._occupant(node, position)
                if child in seen:
                    logger.error(
                        "tree_inconsistency_detected",
                        reason="cycle",
                        node_id=node.id,
                        child_id=child,
                    )
                    raise InconsistentTreeError(
                        f"node '{child}' reached twice below '{anchor_id}'"
                    )
                seen.add(child)
                queue.append(child)

        logger.error(
            "placement_failed",
            anchor_id=anchor_id,
            direction=leg.value,
            child_id=child_id,
            visits=visits,
        )
        raise PlacementFailedError(anchor_id, leg, visits)

    async def _try_claim(
        self,
        parent: TreeNode,
        position: LegPosition,
        child_id: str,
        visits: int,
        *,
        spillover: bool,
    ) -> PlacementResult | None:
        try:
            await self._store.claim_slot(parent.id, position, child_id)
        except SlotTakenError:
            logger.info(
                "slot_taken_retrying",
                parent_id=parent.id,
                position=position.value,
                child_id=child_id,
            )
            return None

        level = parent.level + 1
        await self._store.set_parent_and_level(child_id, parent.id, position, level)
        logger.info(
            "node_placed",
            node_id=child_id,
            parent_id=parent.id,
            position=position.value,
            level=level,
            spillover=spillover,
            visits=visits,
        )
        return PlacementResult(
            node_id=child_id,
            parent_id=parent.id,
            position=position,
            level=level,
            spillover=spillover,
            visits=visits,
        )

    @staticmethod
    def _occupant(node: TreeNode, position: LegPosition) -> str:
        occupant = node.child_id(position)
        if occupant is None:
            logger.error(
                "tree_inconsistency_detected",
                reason="slot_reads_empty",
                node_id=node.id,
                position=position.value,
            )
            raise InconsistentTreeError(
                f"slot {position.value} under '{node.id}' reported taken but is empty"
            )
        return occupant

    async def _reload(self, node_id: str) -> TreeNode:
        node = await self._store.find_node(node_id)
        if node is None:
            logger.error(
                "tree_inconsistency_detected",
                reason="dangling_pointer",
                node_id=node_id,
            )
            raise InconsistentTreeError(f"pointer to missing node '{node_id}'")
        return node

    async def _ensure_unplaced(self, child_id: str) -> None:
        child = await self._store.get_node(child_id)
        if (
            child.parent_id is not None
            or child.position is LegPosition.ROOT
            or child.left_child_id is not None
            or child.right_child_id is not None
        ):
            logger.error(
                "tree_inconsistency_detected",
                reason="already_placed",
                node_id=child_id,
                parent_id=child.parent_id,
            )
            raise InconsistentTreeError(
                f"node '{child_id}' is already part of the tree"
            )
