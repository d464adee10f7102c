from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog.testing import capture_logs

from binary_network.config import NetworkSettings
from binary_network.enums import LegPosition
from binary_network.exceptions import (
    AnchorNotFoundError,
    InconsistentTreeError,
    PlacementFailedError,
    SlotTakenError,
)
from binary_network.placement import PlacementEngine
from binary_network.store import SqlTreeStore

from .factories import LEFT, RIGHT, build_tree, node_create_factory


class RivalFirstStore(SqlTreeStore):
    """Store whose first claim is beaten by ``rival_id`` taking the same slot."""

    def __init__(self, session: AsyncSession, rival_id: str) -> None:
        super().__init__(session)
        self._rival_id: str | None = rival_id
        self.claims: list[tuple[str, LegPosition, str]] = []

    async def claim_slot(
        self, parent_id: str, position: LegPosition, child_id: str
    ) -> None:
        if self._rival_id is not None:
            rival, self._rival_id = self._rival_id, None
            parent = await self.get_node(parent_id)
            await super().claim_slot(parent_id, position, rival)
            await super().set_parent_and_level(
                rival, parent_id, position, parent.level + 1
            )
        self.claims.append((parent_id, position, child_id))
        await super().claim_slot(parent_id, position, child_id)


@pytest.mark.asyncio
async def test_place_claims_open_anchor_slot_directly(
    session_factory: async_sessionmaker[AsyncSession],
    settings: NetworkSettings,
) -> None:
    async with session_factory() as session:
        store = SqlTreeStore(session)
        await build_tree(store, {})
        child = await store.add_node(node_create_factory(node_id="new"))

        result = await PlacementEngine(store, settings).place("root", "left", child.id)
        await session.commit()

        assert result.parent_id == "root"
        assert result.position is LEFT
        assert result.level == 1
        assert result.spillover is False
        assert result.visits == 1

        root = await store.get_node("root")
        placed = await store.get_node("new")
        assert root.left_child_id == "new"
        assert placed.parent_id == "root"
        assert placed.position is LEFT
        assert placed.level == 1


@pytest.mark.asyncio
async def test_place_spills_into_preferred_leg_not_the_open_sibling(
    session_factory: async_sessionmaker[AsyncSession],
    settings: NetworkSettings,
) -> None:
    async with session_factory() as session:
        store = SqlTreeStore(session)
        await build_tree(store, {"a": ("root", LEFT)})
        child = await store.add_node(node_create_factory(node_id="new"))

        result = await PlacementEngine(store, settings).place("root", LEFT, child.id)
        await session.commit()

        assert result.parent_id == "a"
        assert result.position is LEFT
        assert result.level == 2
        assert result.spillover is True
        root = await store.get_node("root")
        assert root.right_child_id is None


@pytest.mark.asyncio
async def test_place_searches_level_by_level_left_before_right(
    session_factory: async_sessionmaker[AsyncSession],
    settings: NetworkSettings,
) -> None:
    async with session_factory() as session:
        store = SqlTreeStore(session)
        await build_tree(
            store,
            {
                "a": ("root", RIGHT),
                "b": ("a", LEFT),
                "c": ("a", RIGHT),
                "d": ("b", LEFT),
                "e": ("b", RIGHT),
                "f": ("c", LEFT),
            },
        )
        child = await store.add_node(node_create_factory(node_id="new"))

        result = await PlacementEngine(store, settings).place("root", RIGHT, child.id)
        await session.commit()

    assert (result.parent_id, result.position) == ("c", RIGHT)
    assert result.level == 3


@pytest.mark.asyncio
async def test_repeated_placements_never_cross_legs(
    session_factory: async_sessionmaker[AsyncSession],
    settings: NetworkSettings,
) -> None:
    async with session_factory() as session:
        store = SqlTreeStore(session)
        await build_tree(store, {"a": ("root", LEFT)})
        engine = PlacementEngine(store, settings)

        results = []
        for index in range(9):
            node = await store.add_node(node_create_factory(node_id=f"n{index}"))
            results.append(await engine.place("root", LEFT, node.id))
        await session.commit()

        root = await store.get_node("root")
        assert root.right_child_id is None
        slots = {(result.parent_id, result.position) for result in results}
        assert len(slots) == len(results)
        assert all(result.parent_id != "root" for result in results)
        # Two full levels below "a" hold six nodes; the rest open level four.
        assert [result.level for result in results] == [2, 2, 3, 3, 3, 3, 4, 4, 4]


@pytest.mark.asyncio
async def test_place_recovers_from_lost_claim(
    session_factory: async_sessionmaker[AsyncSession],
    settings: NetworkSettings,
) -> None:
    async with session_factory() as session:
        plain = SqlTreeStore(session)
        await build_tree(plain, {})
        await plain.add_node(node_create_factory(node_id="rival"))
        child = await plain.add_node(node_create_factory(node_id="new"))

        store = RivalFirstStore(session, rival_id="rival")
        result = await PlacementEngine(store, settings).place("root", LEFT, child.id)
        await session.commit()

        assert store.claims == [("root", LEFT, "new"), ("rival", LEFT, "new")]
        assert result.parent_id == "rival"
        assert result.position is LEFT
        assert result.spillover is True
        root = await plain.get_node("root")
        assert root.left_child_id == "rival"


@pytest.mark.asyncio
async def test_place_raises_when_visit_budget_exhausted(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    settings = NetworkSettings(_env_file=None, placement_max_visits=2)
    async with session_factory() as session:
        store = SqlTreeStore(session)
        await build_tree(
            store,
            {"a": ("root", LEFT), "b": ("a", LEFT), "c": ("a", RIGHT)},
        )
        child = await store.add_node(node_create_factory(node_id="new"))

        with pytest.raises(PlacementFailedError) as exc_info:
            await PlacementEngine(store, settings).place("root", LEFT, child.id)

    assert exc_info.value.anchor_id == "root"
    assert exc_info.value.direction is LEFT
    assert exc_info.value.visits == 2


@pytest.mark.asyncio
async def test_place_rejects_unknown_anchor(
    session_factory: async_sessionmaker[AsyncSession],
    settings: NetworkSettings,
) -> None:
    async with session_factory() as session:
        store = SqlTreeStore(session)
        child = await store.add_node(node_create_factory(node_id="new"))

        with pytest.raises(AnchorNotFoundError):
            await PlacementEngine(store, settings).place("missing", LEFT, child.id)


@pytest.mark.asyncio
async def test_place_rejects_root_direction_and_placed_nodes(
    session_factory: async_sessionmaker[AsyncSession],
    settings: NetworkSettings,
) -> None:
    async with session_factory() as session:
        store = SqlTreeStore(session)
        await build_tree(store, {"a": ("root", LEFT)})
        child = await store.add_node(node_create_factory(node_id="new"))
        engine = PlacementEngine(store, settings)

        with pytest.raises(ValueError):
            await engine.place("root", "root", child.id)
        with pytest.raises(InconsistentTreeError):
            await engine.place("root", RIGHT, "a")


class EmptySlotStore(SqlTreeStore):
    """Store whose claims always report the slot as taken."""

    async def claim_slot(
        self, parent_id: str, position: LegPosition, child_id: str
    ) -> None:
        raise SlotTakenError(parent_id, position)


@pytest.mark.asyncio
async def test_taken_slot_that_reads_empty_is_logged(
    session_factory: async_sessionmaker[AsyncSession],
    settings: NetworkSettings,
) -> None:
    async with session_factory() as session:
        store = EmptySlotStore(session)
        await build_tree(store, {})
        child = await store.add_node(node_create_factory(node_id="new"))

        with capture_logs() as logs, pytest.raises(InconsistentTreeError):
            await PlacementEngine(store, settings).place("root", LEFT, child.id)

    events = [entry for entry in logs if entry["event"] == "tree_inconsistency_detected"]
    assert [entry["reason"] for entry in events] == ["slot_reads_empty"]
    assert events[0]["log_level"] == "error"
    assert events[0]["node_id"] == "root"


@pytest.mark.asyncio
async def test_placing_a_placed_node_is_logged(
    session_factory: async_sessionmaker[AsyncSession],
    settings: NetworkSettings,
) -> None:
    async with session_factory() as session:
        store = SqlTreeStore(session)
        await build_tree(store, {"a": ("root", LEFT)})

        with capture_logs() as logs, pytest.raises(InconsistentTreeError):
            await PlacementEngine(store, settings).place("root", RIGHT, "a")

    assert [entry["reason"] for entry in logs] == ["already_placed"]
    assert logs[0]["parent_id"] == "root"
