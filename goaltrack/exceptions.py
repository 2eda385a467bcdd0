"""Errors raised by the goal engine.

Routes translate these into HTTP status codes; the service never recovers
from them itself.
"""


class GoalEngineError(Exception):
    """Base class for goal engine errors."""

    pass


class GoalNotFoundError(GoalEngineError):
    """Raised when a goal does not exist or belongs to another user."""

    def __init__(self, goal_id) -> None:
        super().__init__(f"Goal {goal_id} not found")
        self.goal_id = goal_id


class MilestoneIndexError(GoalEngineError, IndexError):
    """Raised when a milestone index does not address an existing milestone."""

    def __init__(self, index: int, size: int) -> None:
        super().__init__(f"Invalid milestone index {index} (goal has {size} milestones)")
        self.index = index
        self.size = size


class GoalValidationError(GoalEngineError, ValueError):
    """Raised when goal input is malformed."""

    pass


class AutoTrackingNotEnabledError(GoalEngineError):
    """Raised when auto-tracking is requested for a goal without tracking rules."""

    def __init__(self) -> None:
        super().__init__("Goal does not have auto-tracking enabled")
