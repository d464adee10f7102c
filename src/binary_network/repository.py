from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .enums import LegPosition, RecruitStatus, UplineDecision
from .exceptions import RecruitNotFoundError
from .models import PendingRecruit
from .schemas import RecruitCreate


async def create_recruit(
    session: AsyncSession, data: RecruitCreate, *, upline_id: str
) -> PendingRecruit:
    """Persist a new :class:`PendingRecruit` in its initial state."""

    payload = data.model_dump()
    if data.created_by_admin:
        payload["status"] = RecruitStatus.AWAITING_ADMIN
        payload["upline_decision"] = UplineDecision.APPROVED
    else:
        payload["status"] = RecruitStatus.AWAITING_UPLINE
        payload["upline_decision"] = UplineDecision.PENDING
    recruit = PendingRecruit(**payload, upline_id=upline_id)
    session.add(recruit)
    await session.flush()
    await session.refresh(recruit)
    return recruit


async def find_recruit(session: AsyncSession, recruit_id: str) -> PendingRecruit | None:
    stmt = (
        select(PendingRecruit)
        .where(PendingRecruit.id == recruit_id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_recruit(session: AsyncSession, recruit_id: str) -> PendingRecruit:
    recruit = await find_recruit(session, recruit_id)
    if recruit is None:
        raise RecruitNotFoundError(recruit_id)
    return recruit


async def transition_recruit(
    session: AsyncSession,
    recruit_id: str,
    *,
    expected: RecruitStatus,
    target: RecruitStatus,
    values: Mapping[str, Any] | None = None,
) -> bool:
    """Move a recruit from ``expected`` to ``target`` status atomically.

    Returns ``False`` when the recruit is no longer in ``expected`` state, which
    means another decision won the race or the recruit never was there.
    """

    stmt = (
        update(PendingRecruit)
        .where(PendingRecruit.id == recruit_id, PendingRecruit.status == expected)
        .values(status=target, **dict(values or {}))
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount == 1


async def list_recruits_by_status(
    session: AsyncSession,
    status: RecruitStatus,
    *,
    upline_id: str | None = None,
) -> list[PendingRecruit]:
    stmt = select(PendingRecruit).where(PendingRecruit.status == status)
    if upline_id is not None:
        stmt = stmt.where(PendingRecruit.upline_id == upline_id)
    stmt = stmt.order_by(PendingRecruit.created_at.asc(), PendingRecruit.id.asc())
    result = await session.execute(stmt.execution_options(populate_existing=True))
    return list(result.scalars().all())


async def count_reserved_directions(
    session: AsyncSession, upline_id: str
) -> dict[LegPosition, int]:
    """Count approved-but-uncommitted recruits per proposed direction."""

    stmt = (
        select(PendingRecruit.proposed_direction, func.count(PendingRecruit.id))
        .where(
            PendingRecruit.upline_id == upline_id,
            PendingRecruit.status == RecruitStatus.AWAITING_ADMIN,
            PendingRecruit.proposed_direction.is_not(None),
        )
        .group_by(PendingRecruit.proposed_direction)
    )
    result = await session.execute(stmt)
    return {LegPosition(direction): int(count) for direction, count in result.all()}
