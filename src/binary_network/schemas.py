from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)

from .enums import Decision, LegPosition, NodeStatus, RecruitStatus, UplineDecision

DEFAULT_REJECTION_REASON = "No reason provided"


def _quantize_two_places(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _coerce_amount(value: Decimal | str | int | float) -> Decimal:
    decimal_value = Decimal(str(value))
    if decimal_value < Decimal("0"):
        raise ValueError("amount cannot be negative")
    return _quantize_two_places(decimal_value)


def _coerce_leg(value: LegPosition | str | None) -> LegPosition | None:
    if value is None:
        return None
    return LegPosition.get_leg(value)


class NodeCreate(BaseModel):
    """Input for inserting a node that has not been placed yet."""

    id: str | None = Field(default=None, min_length=1, max_length=36)
    sponsor_id: str | None = None
    package_amount: Decimal = Decimal("0.00")
    volume_contribution: Decimal | None = None
    status: NodeStatus = NodeStatus.PENDING_APPROVAL

    @field_validator("package_amount", "volume_contribution", mode="before")
    @classmethod
    def validate_amounts(
        cls, value: Decimal | str | int | float | None
    ) -> Decimal | None:
        if value is None:
            return None
        return _coerce_amount(value)


class RecruitCreate(BaseModel):
    """Intake payload for a recruit awaiting placement."""

    recruiter_id: str = Field(..., min_length=1, max_length=36)
    full_name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr | None = None
    mobile: str | None = Field(default=None, max_length=40)
    package_amount: Decimal = Decimal("0.00")
    created_by_admin: bool = False
    proposed_direction: LegPosition | None = None

    @field_validator("full_name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        name = value.strip()
        if not name:
            raise ValueError("full_name must not be blank")
        return name

    @field_validator("package_amount", mode="before")
    @classmethod
    def validate_package_amount(cls, value: Decimal | str | int | float) -> Decimal:
        return _coerce_amount(value)

    @field_validator("proposed_direction", mode="before")
    @classmethod
    def validate_direction(cls, value: LegPosition | str | None) -> LegPosition | None:
        return _coerce_leg(value)

    @model_validator(mode="after")
    def check_direction_ownership(self) -> RecruitCreate:
        if self.created_by_admin and self.proposed_direction is None:
            raise ValueError("admin-created recruits require a proposed_direction")
        if not self.created_by_admin and self.proposed_direction is not None:
            raise ValueError("proposed_direction is chosen by the upline")
        return self


class UplineDecisionSubmit(BaseModel):
    decision: Decision
    direction: LegPosition | None = None

    @field_validator("direction", mode="before")
    @classmethod
    def validate_direction(cls, value: LegPosition | str | None) -> LegPosition | None:
        return _coerce_leg(value)

    @model_validator(mode="after")
    def require_direction_on_approval(self) -> UplineDecisionSubmit:
        if self.decision is Decision.APPROVED and self.direction is None:
            raise ValueError("approving a recruit requires a direction")
        return self


class AdminDecisionSubmit(BaseModel):
    decision: Decision
    reason: str | None = Field(default=None, max_length=1_000)
    package_amount: Decimal | None = None

    @field_validator("package_amount", mode="before")
    @classmethod
    def validate_package_amount(
        cls, value: Decimal | str | int | float | None
    ) -> Decimal | None:
        if value is None:
            return None
        return _coerce_amount(value)

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None
        reason = value.strip()
        if len(reason) < 5:
            raise ValueError("rejection reason must be at least 5 characters")
        return reason

    @property
    def rejection_reason(self) -> str:
        return self.reason or DEFAULT_REJECTION_REASON


class NodeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sponsor_id: str | None
    parent_id: str | None
    left_child_id: str | None
    right_child_id: str | None
    position: LegPosition | None
    level: int
    package_amount: Decimal
    volume_contribution: Decimal
    status: NodeStatus


class RecruitRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    recruiter_id: str
    upline_id: str
    full_name: str
    email: str | None
    mobile: str | None
    package_amount: Decimal
    proposed_direction: LegPosition | None
    upline_decision: UplineDecision
    status: RecruitStatus
    created_by_admin: bool
    rejection_reason: str | None
    node_id: str | None
    placement_parent_id: str | None
    placement_position: LegPosition | None
    upline_decided_at: datetime | None
    decided_at: datetime | None
    created_at: datetime


class OpenSlot(BaseModel):
    """Empty slot marker in a subtree snapshot."""

    kind: Literal["open"] = "open"
    parent_id: str
    position: LegPosition


class CollapsedSlot(BaseModel):
    """Occupied slot lying beyond the requested snapshot depth."""

    kind: Literal["collapsed"] = "collapsed"
    node_id: str
    position: LegPosition


class SubtreeNode(BaseModel):
    kind: Literal["node"] = "node"
    id: str
    sponsor_id: str | None
    parent_id: str | None
    position: LegPosition | None
    level: int
    depth: int
    package_amount: Decimal
    volume_contribution: Decimal
    status: NodeStatus
    left: Slot | None = None
    right: Slot | None = None


Slot = Annotated[
    SubtreeNode | OpenSlot | CollapsedSlot, Field(discriminator="kind")
]

SubtreeNode.model_rebuild()


class DownlineMember(BaseModel):
    """Flat descendant entry for reporting consumers."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    sponsor_id: str | None
    parent_id: str | None
    position: LegPosition | None
    level: int
    depth: int
    leg: LegPosition
    package_amount: Decimal
    volume_contribution: Decimal
    status: NodeStatus
