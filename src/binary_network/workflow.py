"""Recruit approval state machine.

A recruit moves ``awaiting_upline -> awaiting_admin -> committed``, and may be
rejected at either decision point. Every transition is a compare-and-set on the
recruit's status, so when two decisions race only one takes effect.

Admin approval is the only step that touches the tree. The node is inserted,
placed and activated in the same transaction that flips the recruit to
``committed``; if placement fails nothing is written and the recruit stays in
``awaiting_admin`` for another attempt.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from decimal import Decimal
from functools import partial
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from . import repository
from .balance import LegBalanceAnalyzer, PlacementRecommendation
from .config import NetworkSettings, get_settings
from .database import session_scope, write_scope
from .downline import DownlineQueryService
from .enums import Decision, LegPosition, NodeStatus, RecruitStatus, UplineDecision
from .exceptions import InvalidTransitionError, NotFoundError, RecruitNotFoundError
from .logging import get_logger
from .models import PendingRecruit, TreeNode
from .placement import PlacementEngine
from .schemas import AdminDecisionSubmit, NodeCreate, RecruitCreate, UplineDecisionSubmit
from .store import SqlTreeStore

logger = get_logger(__name__)


class RecruitWorkflow:
    """Coordinates a pending recruit from intake to commit or rejection."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: NetworkSettings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()

    async def submit_recruit(self, data: RecruitCreate) -> PendingRecruit:
        """Record a new recruit under the recruiter's nearest active upline."""

        async with write_scope(self._session_factory) as session:
            store = SqlTreeStore(session)
            upline = await self._resolve_upline(store, data.recruiter_id)
            recruit = await repository.create_recruit(
                session, data, upline_id=upline.id
            )

        logger.info(
            "recruit_submitted",
            recruit_id=recruit.id,
            recruiter_id=recruit.recruiter_id,
            upline_id=recruit.upline_id,
            status=recruit.status.value,
            created_by_admin=recruit.created_by_admin,
        )
        return recruit

    async def submit_upline_decision(
        self,
        recruit_id: str,
        decision: Decision | str,
        direction: LegPosition | str | None = None,
    ) -> PendingRecruit:
        payload = UplineDecisionSubmit(decision=decision, direction=direction)
        now = datetime.now(UTC)

        if payload.decision is Decision.APPROVED:
            target = RecruitStatus.AWAITING_ADMIN
            values: dict[str, Any] = {
                "upline_decision": UplineDecision.APPROVED,
                "proposed_direction": payload.direction,
                "upline_decided_at": now,
            }
        else:
            target = RecruitStatus.REJECTED
            values = {
                "upline_decision": UplineDecision.REJECTED,
                "upline_decided_at": now,
                "decided_at": now,
            }

        async with write_scope(self._session_factory) as session:
            await self._transition(
                session,
                recruit_id,
                expected=RecruitStatus.AWAITING_UPLINE,
                target=target,
                values=values,
            )
            return await repository.get_recruit(session, recruit_id)

    async def submit_admin_decision(
        self,
        recruit_id: str,
        decision: Decision | str,
        *,
        reason: str | None = None,
        package_amount: Decimal | str | int | None = None,
    ) -> PendingRecruit:
        """Reject the recruit, or place it in the tree and mark it committed.

        Raises:
            InvalidTransitionError: The recruit is not awaiting admin review.
            RecruitNotFoundError: No such recruit.
            PlacementFailedError: No slot could be claimed; nothing is written.
        """

        payload = AdminDecisionSubmit(
            decision=decision, reason=reason, package_amount=package_amount
        )
        now = datetime.now(UTC)

        async with write_scope(self._session_factory) as session:
            if payload.decision is Decision.REJECTED:
                await self._transition(
                    session,
                    recruit_id,
                    expected=RecruitStatus.AWAITING_ADMIN,
                    target=RecruitStatus.REJECTED,
                    values={
                        "rejection_reason": payload.rejection_reason,
                        "decided_at": now,
                    },
                )
                return await repository.get_recruit(session, recruit_id)

            await self._transition(
                session,
                recruit_id,
                expected=RecruitStatus.AWAITING_ADMIN,
                target=RecruitStatus.COMMITTED,
                values={"decided_at": now},
            )
            recruit = await repository.get_recruit(session, recruit_id)
            return await self._commit(session, recruit, payload.package_amount)

    async def get_recruit(self, recruit_id: str) -> PendingRecruit:
        async with session_scope(self._session_factory) as session:
            return await repository.get_recruit(session, recruit_id)

    async def list_awaiting_upline(self, upline_id: str) -> list[PendingRecruit]:
        async with session_scope(self._session_factory) as session:
            return await repository.list_recruits_by_status(
                session, RecruitStatus.AWAITING_UPLINE, upline_id=upline_id
            )

    async def list_awaiting_admin(self) -> list[PendingRecruit]:
        async with session_scope(self._session_factory) as session:
            return await repository.list_recruits_by_status(
                session, RecruitStatus.AWAITING_ADMIN
            )

    async def recommend_for(self, recruit_id: str) -> PlacementRecommendation:
        """Leg-balance recommendation for the recruit's upline."""

        async with session_scope(self._session_factory) as session:
            recruit = await repository.get_recruit(session, recruit_id)
            analyzer = LegBalanceAnalyzer(
                SqlTreeStore(session),
                self._settings,
                reservations=partial(repository.count_reserved_directions, session),
            )
            return await analyzer.recommend(
                recruit.upline_id, package_amount=recruit.package_amount
            )

    async def _commit(
        self,
        session: AsyncSession,
        recruit: PendingRecruit,
        package_amount: Decimal | None,
    ) -> PendingRecruit:
        if recruit.proposed_direction is None:
            raise InvalidTransitionError(
                recruit.id, RecruitStatus.AWAITING_ADMIN, RecruitStatus.COMMITTED
            )

        amount = recruit.package_amount if package_amount is None else package_amount
        store = SqlTreeStore(session)
        node = await store.add_node(
            NodeCreate(sponsor_id=recruit.recruiter_id, package_amount=amount)
        )
        engine = PlacementEngine(store, self._settings)
        placement = await engine.place(
            recruit.upline_id, recruit.proposed_direction, node.id
        )
        await store.set_status(node.id, NodeStatus.ACTIVE)

        recruit.package_amount = amount
        recruit.node_id = node.id
        recruit.placement_parent_id = placement.parent_id
        recruit.placement_position = placement.position
        await session.flush()
        await session.refresh(recruit)

        logger.info(
            "recruit_committed",
            recruit_id=recruit.id,
            node_id=node.id,
            upline_id=recruit.upline_id,
            requested_direction=recruit.proposed_direction.value,
            parent_id=placement.parent_id,
            position=placement.position.value,
            spillover=placement.spillover,
        )
        return recruit

    async def _transition(
        self,
        session: AsyncSession,
        recruit_id: str,
        *,
        expected: RecruitStatus,
        target: RecruitStatus,
        values: Mapping[str, Any],
    ) -> None:
        moved = await repository.transition_recruit(
            session, recruit_id, expected=expected, target=target, values=values
        )
        if not moved:
            current = await repository.find_recruit(session, recruit_id)
            if current is None:
                raise RecruitNotFoundError(recruit_id)
            logger.warning(
                "recruit_transition_rejected",
                recruit_id=recruit_id,
                current=current.status.value,
                target=target.value,
            )
            raise InvalidTransitionError(recruit_id, current.status, target)

        logger.info(
            "recruit_transitioned",
            recruit_id=recruit_id,
            from_status=expected.value,
            to_status=target.value,
        )

    async def _resolve_upline(self, store: SqlTreeStore, recruiter_id: str) -> TreeNode:
        recruiter = await store.get_node(recruiter_id)
        if recruiter.is_active:
            return recruiter
        queries = DownlineQueryService(store, self._settings)
        for ancestor in await queries.get_upline_chain(recruiter_id):
            if ancestor.is_active:
                return ancestor
        raise NotFoundError(f"no active upline above '{recruiter_id}'")
