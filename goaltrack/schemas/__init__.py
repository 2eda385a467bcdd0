"""Schemas package."""

from goaltrack.schemas.goal import (
    GoalCreate,
    GoalUpdate,
    GoalProgressUpdate,
    GoalFilters,
    GoalResponse,
    PaginatedGoalResponse,
    GoalStatisticsResponse,
    MilestoneCreate,
    MilestoneUpdate,
    TrackingRules,
    GoalStatus,
    GoalType,
    GoalPriority,
)

__all__ = [
    "GoalCreate",
    "GoalUpdate",
    "GoalProgressUpdate",
    "GoalFilters",
    "GoalResponse",
    "PaginatedGoalResponse",
    "GoalStatisticsResponse",
    "MilestoneCreate",
    "MilestoneUpdate",
    "TrackingRules",
    "GoalStatus",
    "GoalType",
    "GoalPriority",
]
