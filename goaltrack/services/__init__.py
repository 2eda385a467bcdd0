"""Services package."""

from goaltrack.services.goal_service import GoalService, GoalDetails, GoalStatistics
from goaltrack.services.transaction_history import TransactionHistory

__all__ = ["GoalService", "GoalDetails", "GoalStatistics", "TransactionHistory"]
