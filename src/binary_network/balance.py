"""Leg statistics and placement-direction recommendations.

Everything here is read-only. Leg totals only count ``active`` members, but the
walk passes through every occupant so that active nodes below a non-active one
are still reached.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from .config import NetworkSettings, get_settings
from .enums import LegPosition, NodeStatus
from .logging import get_logger
from .store import TreeStore, walk_descendants

logger = get_logger(__name__)

ReservationSource = Callable[[str], Awaitable[Mapping[LegPosition, int]]]


@dataclass(slots=True, frozen=True)
class LegStats:
    count: int = 0
    volume: Decimal = Decimal("0.00")

    def plus(self, volume: Decimal) -> LegStats:
        return LegStats(count=self.count + 1, volume=self.volume + volume)


@dataclass(slots=True, frozen=True)
class LegBalance:
    node_id: str
    left: LegStats
    right: LegStats
    weaker_leg: LegPosition
    stronger_leg: LegPosition
    balance_ratio: float

    def leg(self, position: LegPosition) -> LegStats:
        if LegPosition.get_leg(position) is LegPosition.LEFT:
            return self.left
        return self.right


@dataclass(slots=True, frozen=True)
class AvailablePositions:
    """Whether each direct slot can still take a member without spillover."""

    left: bool
    right: bool

    def is_available(self, position: LegPosition) -> bool:
        if LegPosition.get_leg(position) is LegPosition.LEFT:
            return self.left
        return self.right

    @property
    def any(self) -> bool:
        return self.left or self.right


@dataclass(slots=True, frozen=True)
class ImpactAnalysis:
    left_choice: str
    right_choice: str
    left_ratio: float
    right_ratio: float


@dataclass(slots=True, frozen=True)
class PlacementRecommendation:
    node_id: str
    recommended_position: LegPosition | None
    direct_placement_available: bool
    reason: str
    impact: ImpactAnalysis
    balance: LegBalance
    available: AvailablePositions


def _format_amount(value: Decimal) -> str:
    return str(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


class LegBalanceAnalyzer:
    """Aggregate leg counts and volumes below a node and suggest a direction.

    ``reservations`` reports, per upline, how many approved recruits are still
    waiting for admin commit in each direction. Such a recruit will take the
    direct slot on commit, so that slot is not offered as available.
    """

    def __init__(
        self,
        store: TreeStore,
        settings: NetworkSettings | None = None,
        *,
        reservations: ReservationSource | None = None,
    ) -> None:
        resolved = settings or get_settings()
        self._store = store
        self._reservations = reservations
        self._max_nodes = resolved.traversal_max_nodes
        self._epsilon = resolved.balance_epsilon

    async def leg_balance(self, node_id: str) -> LegBalance:
        totals = {leg: LegStats() for leg in LegPosition.legs()}
        async for visit in walk_descendants(
            self._store, node_id, max_nodes=self._max_nodes
        ):
            if visit.node.status != NodeStatus.ACTIVE:
                continue
            totals[visit.leg] = totals[visit.leg].plus(visit.node.volume_contribution)

        balance = self._summarise(
            node_id, totals[LegPosition.LEFT], totals[LegPosition.RIGHT]
        )
        logger.debug(
            "leg_balance_computed",
            node_id=node_id,
            left_count=balance.left.count,
            right_count=balance.right.count,
            weaker_leg=balance.weaker_leg.value,
            balance_ratio=balance.balance_ratio,
        )
        return balance

    async def available_positions(self, node_id: str) -> AvailablePositions:
        node = await self._store.get_node(node_id)
        reserved: Mapping[LegPosition, int] = {}
        if self._reservations is not None:
            reserved = await self._reservations(node_id)
        flags = {
            leg: node.child_id(leg) is None and reserved.get(leg, 0) == 0
            for leg in LegPosition.legs()
        }
        return AvailablePositions(
            left=flags[LegPosition.LEFT], right=flags[LegPosition.RIGHT]
        )

    async def recommend(
        self, node_id: str, *, package_amount: Decimal = Decimal("0.00")
    ) -> PlacementRecommendation:
        """Recommend the weaker leg unless no direct slot is free at all."""

        balance = await self.leg_balance(node_id)
        available = await self.available_positions(node_id)
        impact = self._impact(balance, package_amount)

        if not available.any:
            return PlacementRecommendation(
                node_id=node_id,
                recommended_position=None,
                direct_placement_available=False,
                reason=(
                    "No direct positions: both slots are occupied or reserved by "
                    "recruits awaiting admin approval. The member will spill over "
                    "into the chosen leg."
                ),
                impact=impact,
                balance=balance,
                available=available,
            )

        weaker = balance.weaker_leg
        weaker_stats = balance.leg(weaker)
        stronger_stats = balance.leg(balance.stronger_leg)
        if weaker_stats.volume == stronger_stats.volume:
            if weaker_stats.count == stronger_stats.count:
                reason = f"Legs are even; defaulting to the {weaker.value} leg."
            else:
                reason = (
                    f"Volumes are equal; the {weaker.value} leg has fewer members "
                    f"({weaker_stats.count} vs {stronger_stats.count})."
                )
        else:
            reason = (
                f"The {weaker.value} leg is weaker "
                f"({_format_amount(weaker_stats.volume)} vs "
                f"{_format_amount(stronger_stats.volume)} volume)."
            )
        direct = available.is_available(weaker)
        if not direct:
            reason += " Its direct slot is taken, so placement will spill over."

        return PlacementRecommendation(
            node_id=node_id,
            recommended_position=weaker,
            direct_placement_available=direct,
            reason=reason,
            impact=impact,
            balance=balance,
            available=available,
        )

    def _summarise(self, node_id: str, left: LegStats, right: LegStats) -> LegBalance:
        if (left.volume, left.count) <= (right.volume, right.count):
            weaker = LegPosition.LEFT
        else:
            weaker = LegPosition.RIGHT
        return LegBalance(
            node_id=node_id,
            left=left,
            right=right,
            weaker_leg=weaker,
            stronger_leg=weaker.opposite,
            balance_ratio=self._ratio(left.volume, right.volume),
        )

    def _ratio(self, left: Decimal, right: Decimal) -> float:
        return float(min(left, right) / max(left, right, self._epsilon))

    def _impact(self, balance: LegBalance, package_amount: Decimal) -> ImpactAnalysis:
        descriptions: dict[LegPosition, str] = {}
        ratios: dict[LegPosition, float] = {}
        for leg in LegPosition.legs():
            grown = balance.leg(leg).plus(package_amount)
            other = balance.leg(leg.opposite)
            ratio = self._ratio(grown.volume, other.volume)
            ratios[leg] = ratio
            if balance.left == balance.right:
                effect = "tips the balance"
            elif leg is balance.weaker_leg:
                effect = "narrows the gap"
            else:
                effect = "widens the gap"
            descriptions[leg] = (
                f"{leg.value.capitalize()}: {grown.count} members, "
                f"{_format_amount(grown.volume)} volume; {effect} "
                f"(ratio {ratio:.2f})"
            )
        return ImpactAnalysis(
            left_choice=descriptions[LegPosition.LEFT],
            right_choice=descriptions[LegPosition.RIGHT],
            left_ratio=ratios[LegPosition.LEFT],
            right_ratio=ratios[LegPosition.RIGHT],
        )
