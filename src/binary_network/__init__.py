"""Binary-tree network placement, leg balance and recruit approval workflow."""

from .balance import (
    AvailablePositions,
    ImpactAnalysis,
    LegBalance,
    LegBalanceAnalyzer,
    LegStats,
    PlacementRecommendation,
)
from .config import NetworkSettings, get_settings
from .downline import DownlineQueryService
from .enums import Decision, LegPosition, NodeStatus, RecruitStatus, UplineDecision
from .exceptions import (
    AnchorNotFoundError,
    InconsistentTreeError,
    InvalidTransitionError,
    NetworkError,
    NodeNotFoundError,
    NotFoundError,
    PlacementFailedError,
    RecruitNotFoundError,
    SlotTakenError,
    TraversalLimitError,
)
from .logging import bind_context, clear_context, configure_logging, get_logger
from .models import Base, PendingRecruit, TreeNode
from .placement import PlacementEngine, PlacementResult
from .store import SqlTreeStore, TreeStore
from .workflow import RecruitWorkflow

__all__ = [
    "AnchorNotFoundError",
    "AvailablePositions",
    "Base",
    "Decision",
    "DownlineQueryService",
    "ImpactAnalysis",
    "InconsistentTreeError",
    "InvalidTransitionError",
    "LegBalance",
    "LegBalanceAnalyzer",
    "LegPosition",
    "LegStats",
    "NetworkError",
    "NetworkSettings",
    "NodeNotFoundError",
    "NodeStatus",
    "NotFoundError",
    "PendingRecruit",
    "PlacementEngine",
    "PlacementFailedError",
    "PlacementRecommendation",
    "PlacementResult",
    "RecruitNotFoundError",
    "RecruitStatus",
    "RecruitWorkflow",
    "SlotTakenError",
    "SqlTreeStore",
    "TraversalLimitError",
    "TreeNode",
    "TreeStore",
    "UplineDecision",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "get_settings",
]
