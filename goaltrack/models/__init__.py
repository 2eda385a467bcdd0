"""Database models package."""

from goaltrack.models.base import Base
from goaltrack.models.goal import Goal, GoalMilestone, GoalProgressEntry
from goaltrack.models.transaction import Transaction

__all__ = [
    "Base",
    "Goal",
    "GoalMilestone",
    "GoalProgressEntry",
    "Transaction",
]
