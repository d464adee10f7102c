from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .enums import LegPosition, NodeStatus, RecruitStatus, UplineDecision

metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_name)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)

ID_LENGTH = 36


def _new_id() -> str:
    return str(uuid.uuid4())


def _enum_values(enum_cls: type[Any]) -> list[str]:
    return [member.value for member in enum_cls]


class Base(DeclarativeBase):
    """Base class for declarative models."""

    metadata: ClassVar[MetaData]


Base.registry.metadata = metadata


class TreeNode(Base):
    """Tree-relevant projection of a member.

    ``sponsor_id`` records who recruited the member; ``parent_id`` records where
    the member sits in the binary tree. They differ after spillover.
    """

    __tablename__ = "tree_nodes"
    __table_args__ = (
        UniqueConstraint("left_child_id", name="uq_tree_nodes_left_child_id"),
        UniqueConstraint("right_child_id", name="uq_tree_nodes_right_child_id"),
        UniqueConstraint("parent_id", "position", name="uq_tree_nodes_parent_slot"),
        CheckConstraint("level >= 0", name="level_non_negative"),
        CheckConstraint(
            "left_child_id IS NULL OR right_child_id IS NULL "
            "OR left_child_id <> right_child_id",
            name="distinct_children",
        ),
        Index("ix_tree_nodes_parent_id", "parent_id"),
        Index("ix_tree_nodes_sponsor_id", "sponsor_id"),
        Index("ix_tree_nodes_status", "status"),
    )

    id: Mapped[str] = mapped_column(
        String(ID_LENGTH), primary_key=True, default=_new_id
    )
    sponsor_id: Mapped[str | None] = mapped_column(
        ForeignKey("tree_nodes.id", ondelete="SET NULL"), nullable=True
    )
    parent_id: Mapped[str | None] = mapped_column(
        ForeignKey("tree_nodes.id", ondelete="RESTRICT"), nullable=True
    )
    left_child_id: Mapped[str | None] = mapped_column(
        ForeignKey("tree_nodes.id", ondelete="RESTRICT"), nullable=True
    )
    right_child_id: Mapped[str | None] = mapped_column(
        ForeignKey("tree_nodes.id", ondelete="RESTRICT"), nullable=True
    )
    position: Mapped[LegPosition | None] = mapped_column(
        Enum(
            LegPosition,
            name="leg_position",
            native_enum=False,
            values_callable=_enum_values,
        ),
        nullable=True,
    )
    level: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    package_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0"), server_default=text("0")
    )
    volume_contribution: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0"), server_default=text("0")
    )
    status: Mapped[NodeStatus] = mapped_column(
        Enum(
            NodeStatus,
            name="node_status",
            native_enum=False,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=NodeStatus.PENDING_APPROVAL,
    )
    activated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def child_id(self, position: LegPosition) -> str | None:
        if position is LegPosition.LEFT:
            return self.left_child_id
        if position is LegPosition.RIGHT:
            return self.right_child_id
        raise ValueError("root is not a child slot")

    @property
    def is_active(self) -> bool:
        return self.status == NodeStatus.ACTIVE


class PendingRecruit(Base):
    """A recruit awaiting upline and admin approval before tree placement."""

    __tablename__ = "pending_recruits"
    __table_args__ = (
        Index("ix_pending_recruits_status", "status"),
        Index("ix_pending_recruits_upline_id_status", "upline_id", "status"),
        Index("ix_pending_recruits_recruiter_id", "recruiter_id"),
        UniqueConstraint("node_id", name="uq_pending_recruits_node_id"),
    )

    id: Mapped[str] = mapped_column(
        String(ID_LENGTH), primary_key=True, default=_new_id
    )
    recruiter_id: Mapped[str] = mapped_column(
        ForeignKey("tree_nodes.id", ondelete="RESTRICT"), nullable=False
    )
    upline_id: Mapped[str] = mapped_column(
        ForeignKey("tree_nodes.id", ondelete="RESTRICT"), nullable=False
    )
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    mobile: Mapped[str | None] = mapped_column(String(40), nullable=True)
    package_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0"), server_default=text("0")
    )
    proposed_direction: Mapped[LegPosition | None] = mapped_column(
        Enum(
            LegPosition,
            name="recruit_direction",
            native_enum=False,
            values_callable=_enum_values,
        ),
        nullable=True,
    )
    upline_decision: Mapped[UplineDecision] = mapped_column(
        Enum(
            UplineDecision,
            name="upline_decision",
            native_enum=False,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=UplineDecision.PENDING,
    )
    status: Mapped[RecruitStatus] = mapped_column(
        Enum(
            RecruitStatus,
            name="recruit_status",
            native_enum=False,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=RecruitStatus.AWAITING_UPLINE,
    )
    created_by_admin: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    node_id: Mapped[str | None] = mapped_column(
        ForeignKey("tree_nodes.id", ondelete="SET NULL"), nullable=True
    )
    placement_parent_id: Mapped[str | None] = mapped_column(
        ForeignKey("tree_nodes.id", ondelete="SET NULL"), nullable=True
    )
    placement_position: Mapped[LegPosition | None] = mapped_column(
        Enum(
            LegPosition,
            name="recruit_placement_position",
            native_enum=False,
            values_callable=_enum_values,
        ),
        nullable=True,
    )
    upline_decided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    decided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
