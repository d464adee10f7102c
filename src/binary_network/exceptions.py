"""Errors raised by the placement engine, tree store and recruit workflow."""

from __future__ import annotations

from typing import Any


class NetworkError(Exception):
    """Base exception for the binary network package."""


class NotFoundError(NetworkError):
    """Raised when a referenced entity does not exist."""


class NodeNotFoundError(NotFoundError):
    """Raised when a tree node is not found."""

    def __init__(self, node_id: str) -> None:
        super().__init__(f"node '{node_id}' not found")
        self.node_id = node_id


class AnchorNotFoundError(NodeNotFoundError):
    """Raised when a placement anchor is not found."""


class RecruitNotFoundError(NotFoundError):
    """Raised when a pending recruit is not found."""

    def __init__(self, recruit_id: str) -> None:
        super().__init__(f"recruit '{recruit_id}' not found")
        self.recruit_id = recruit_id


class InvalidTransitionError(NetworkError):
    """Raised when a workflow transition is attempted from the wrong state."""

    def __init__(self, recruit_id: str, current: Any, target: Any) -> None:
        super().__init__(
            f"recruit '{recruit_id}' cannot move from '{current}' to '{target}'"
        )
        self.recruit_id = recruit_id
        self.current = current
        self.target = target


class SlotTakenError(NetworkError):
    """Raised when a slot claim loses to a concurrent claim."""

    def __init__(self, parent_id: str, position: Any) -> None:
        super().__init__(f"slot '{position}' under node '{parent_id}' is taken")
        self.parent_id = parent_id
        self.position = position


class PlacementFailedError(NetworkError):
    """Raised when the placement search exhausts its visit budget."""

    def __init__(self, anchor_id: str, direction: Any, visits: int) -> None:
        super().__init__(
            f"no slot claimed under '{anchor_id}' ({direction}) "
            f"after {visits} visits"
        )
        self.anchor_id = anchor_id
        self.direction = direction
        self.visits = visits


class InconsistentTreeError(NetworkError):
    """Raised when stored tree pointers contradict each other."""


class TraversalLimitError(NetworkError):
    """Raised when a read traversal exceeds the configured node cap."""

    def __init__(self, root_id: str, limit: int) -> None:
        super().__init__(f"traversal from '{root_id}' exceeded {limit} nodes")
        self.root_id = root_id
        self.limit = limit
