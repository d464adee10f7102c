from __future__ import annotations

from enum import StrEnum


class LegPosition(StrEnum):
    """Slot a node occupies relative to its tree parent."""

    LEFT = "left"
    RIGHT = "right"
    ROOT = "root"

    @classmethod
    def legs(cls) -> tuple[LegPosition, LegPosition]:
        """Return the two placeable legs in traversal order."""
        return (cls.LEFT, cls.RIGHT)

    @property
    def opposite(self) -> LegPosition:
        if self is LegPosition.LEFT:
            return LegPosition.RIGHT
        if self is LegPosition.RIGHT:
            return LegPosition.LEFT
        raise ValueError("root has no opposite leg")

    @classmethod
    def get_leg(cls, value: LegPosition | str) -> LegPosition:
        """Resolve a placeable leg from user input.

        Accepts enum members or case-insensitive strings such as ``"Left"``.

        Raises:
            ValueError: If the value is not ``left`` or ``right``.
        """
        if isinstance(value, cls):
            resolved = value
        elif isinstance(value, str):
            try:
                resolved = cls(value.strip().lower())
            except ValueError as exc:
                raise ValueError(
                    f"invalid leg '{value}', must be one of: left, right"
                ) from exc
        else:
            raise ValueError(
                f"leg must be a LegPosition or string, got {type(value).__name__}"
            )
        if resolved is cls.ROOT:
            raise ValueError("root is not a placeable leg")
        return resolved


class NodeStatus(StrEnum):
    """Lifecycle states for a tree node."""

    PENDING_APPROVAL = "pending_approval"
    ACTIVE = "active"
    REJECTED = "rejected"


class RecruitStatus(StrEnum):
    """Lifecycle states for a pending recruit."""

    AWAITING_UPLINE = "awaiting_upline"
    AWAITING_ADMIN = "awaiting_admin"
    COMMITTED = "committed"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (RecruitStatus.COMMITTED, RecruitStatus.REJECTED)


class UplineDecision(StrEnum):
    """Upline's recorded verdict on a recruit."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Decision(StrEnum):
    """Verdict submitted by an upline or an admin."""

    APPROVED = "approved"
    REJECTED = "rejected"
