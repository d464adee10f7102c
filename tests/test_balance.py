from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from binary_network.balance import LegBalanceAnalyzer, LegStats
from binary_network.config import NetworkSettings
from binary_network.enums import LegPosition, NodeStatus
from binary_network.exceptions import NodeNotFoundError
from binary_network.store import SqlTreeStore

from .factories import LEFT, RIGHT, build_tree


@pytest.mark.asyncio
async def test_weaker_leg_and_ratio_follow_volume(
    session_factory: async_sessionmaker[AsyncSession],
    settings: NetworkSettings,
) -> None:
    async with session_factory() as session:
        store = SqlTreeStore(session)
        await build_tree(
            store,
            {"a": ("root", LEFT), "c": ("a", LEFT), "b": ("root", RIGHT)},
            volumes={"a": "600", "c": "400", "b": "500"},
        )
        await session.commit()

        balance = await LegBalanceAnalyzer(store, settings).leg_balance("root")

    assert balance.left == LegStats(count=2, volume=Decimal("1000.00"))
    assert balance.right == LegStats(count=1, volume=Decimal("500.00"))
    assert balance.weaker_leg is RIGHT
    assert balance.stronger_leg is LEFT
    assert balance.balance_ratio == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_equal_volume_prefers_leg_with_fewer_members(
    session_factory: async_sessionmaker[AsyncSession],
    settings: NetworkSettings,
) -> None:
    async with session_factory() as session:
        store = SqlTreeStore(session)
        await build_tree(
            store,
            {"a": ("root", LEFT), "c": ("a", RIGHT), "b": ("root", RIGHT)},
            volumes={"a": "200", "c": "300", "b": "500"},
        )
        await session.commit()

        balance = await LegBalanceAnalyzer(store, settings).leg_balance("root")

    assert balance.weaker_leg is RIGHT
    assert balance.balance_ratio == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_empty_legs_default_to_left_with_zero_ratio(
    session_factory: async_sessionmaker[AsyncSession],
    settings: NetworkSettings,
) -> None:
    async with session_factory() as session:
        store = SqlTreeStore(session)
        await build_tree(store, {})
        await session.commit()

        balance = await LegBalanceAnalyzer(store, settings).leg_balance("root")

    assert balance.left == LegStats()
    assert balance.right == LegStats()
    assert balance.weaker_leg is LEFT
    assert balance.balance_ratio == 0.0


@pytest.mark.asyncio
async def test_only_active_members_are_counted(
    session_factory: async_sessionmaker[AsyncSession],
    settings: NetworkSettings,
) -> None:
    async with session_factory() as session:
        store = SqlTreeStore(session)
        await build_tree(
            store,
            {"a": ("root", LEFT), "c": ("a", LEFT)},
            volumes={"a": "300", "c": "120"},
            statuses={"a": NodeStatus.REJECTED},
        )
        await session.commit()

        balance = await LegBalanceAnalyzer(store, settings).leg_balance("root")

    assert balance.left == LegStats(count=1, volume=Decimal("120.00"))


@pytest.mark.asyncio
async def test_leg_balance_unknown_node(
    session_factory: async_sessionmaker[AsyncSession],
    settings: NetworkSettings,
) -> None:
    async with session_factory() as session:
        with pytest.raises(NodeNotFoundError):
            await LegBalanceAnalyzer(SqlTreeStore(session), settings).leg_balance(
                "missing"
            )


@pytest.mark.asyncio
async def test_available_positions_account_for_reservations(
    session_factory: async_sessionmaker[AsyncSession],
    settings: NetworkSettings,
) -> None:
    requested: list[str] = []

    async def reservations(upline_id: str) -> dict[LegPosition, int]:
        requested.append(upline_id)
        return {RIGHT: 1}

    async with session_factory() as session:
        store = SqlTreeStore(session)
        await build_tree(store, {})
        await session.commit()

        plain = await LegBalanceAnalyzer(store, settings).available_positions("root")
        reserved = await LegBalanceAnalyzer(
            store, settings, reservations=reservations
        ).available_positions("root")

    assert (plain.left, plain.right) == (True, True)
    assert (reserved.left, reserved.right) == (True, False)
    assert requested == ["root"]


@pytest.mark.asyncio
async def test_recommend_weaker_leg_with_direct_slot(
    session_factory: async_sessionmaker[AsyncSession],
    settings: NetworkSettings,
) -> None:
    async with session_factory() as session:
        store = SqlTreeStore(session)
        await build_tree(store, {"a": ("root", LEFT)}, volumes={"a": "400"})
        await session.commit()

        recommendation = await LegBalanceAnalyzer(store, settings).recommend(
            "root", package_amount=Decimal("100")
        )

    assert recommendation.recommended_position is RIGHT
    assert recommendation.direct_placement_available is True
    assert recommendation.available.left is False
    assert recommendation.available.right is True
    assert "right leg is weaker" in recommendation.reason
    assert recommendation.impact.right_ratio == pytest.approx(0.25)
    assert recommendation.impact.left_ratio == 0.0
    assert "narrows the gap" in recommendation.impact.right_choice
    assert "widens the gap" in recommendation.impact.left_choice


@pytest.mark.asyncio
async def test_recommend_weaker_leg_even_when_its_slot_is_taken(
    session_factory: async_sessionmaker[AsyncSession],
    settings: NetworkSettings,
) -> None:
    async def reservations(upline_id: str) -> dict[LegPosition, int]:
        return {LEFT: 1}

    async with session_factory() as session:
        store = SqlTreeStore(session)
        await build_tree(store, {})
        await session.commit()

        recommendation = await LegBalanceAnalyzer(
            store, settings, reservations=reservations
        ).recommend("root")

    assert recommendation.recommended_position is LEFT
    assert recommendation.direct_placement_available is False
    assert "spill over" in recommendation.reason


@pytest.mark.asyncio
async def test_recommend_reports_no_direct_positions(
    session_factory: async_sessionmaker[AsyncSession],
    settings: NetworkSettings,
) -> None:
    async def reservations(upline_id: str) -> dict[LegPosition, int]:
        return {RIGHT: 2}

    async with session_factory() as session:
        store = SqlTreeStore(session)
        await build_tree(store, {"a": ("root", LEFT)})
        await session.commit()

        recommendation = await LegBalanceAnalyzer(
            store, settings, reservations=reservations
        ).recommend("root")

    assert recommendation.recommended_position is None
    assert recommendation.direct_placement_available is False
    assert recommendation.reason.startswith("No direct positions")
    assert recommendation.balance.weaker_leg is RIGHT
