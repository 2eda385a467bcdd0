"""Derived goal metrics.

Every metric is a pure function of a goal's public fields and the current
time. Reads, list filters and statistics all go through these functions, so
nothing here is ever persisted.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from goaltrack.models.goal import Goal, GoalMilestone

SECONDS_PER_DAY = 86400
ON_TRACK_TOLERANCE = 0.9
ATTENTION_PRIORITIES = ("high", "critical")
ATTENTION_PROGRESS_THRESHOLD = 50
ATTENTION_DAYS_THRESHOLD = 30

CENT = Decimal("0.01")
ZERO = Decimal("0")


@dataclass
class GoalMetrics:
    """Metrics computed for a goal at one instant."""

    progress_percentage: float
    days_remaining: int
    is_overdue: bool
    is_on_track: bool
    required_monthly_savings: Decimal
    needs_attention: bool
    next_milestone: Optional[GoalMilestone]


def round2(value: Decimal) -> Decimal:
    """Round half-up to two decimal places."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def progress_percentage(goal: Goal) -> float:
    """Share of the way from the initial amount to the target, 0-100."""
    if not goal.target_amount or goal.target_amount <= 0:
        return 0.0

    effective_target = goal.target_amount - goal.initial_amount
    if effective_target <= 0:
        return 100.0

    effective_progress = goal.current_amount - goal.initial_amount
    progress = round2(effective_progress / effective_target * 100)
    return float(min(Decimal(100), max(ZERO, progress)))


def days_remaining(goal: Goal, now: datetime) -> int:
    """Whole days until the deadline, rounded up. Negative once overdue."""
    seconds = (goal.deadline - now).total_seconds()
    return math.ceil(seconds / SECONDS_PER_DAY)


def is_overdue(goal: Goal, now: datetime) -> bool:
    return goal.status == "active" and now > goal.deadline


def expected_progress(goal: Goal, now: datetime) -> float:
    """Percentage of the goal's time window that has elapsed."""
    total = (goal.deadline - goal.start_date).total_seconds()
    elapsed = (now - goal.start_date).total_seconds()
    if total <= 0:
        # Zero-length window: the whole target is due immediately
        return 100.0
    return elapsed / total * 100


def is_on_track(goal: Goal, now: datetime) -> bool:
    """Whether progress keeps up with elapsed time, within a 10% grace margin."""
    if goal.status != "active":
        return True
    return progress_percentage(goal) >= expected_progress(goal, now) * ON_TRACK_TOLERANCE


def months_between(start: datetime, end: datetime) -> int:
    """Calendar month difference, ignoring the day of month."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def required_monthly_savings(goal: Goal, now: datetime) -> Decimal:
    """Monthly contribution needed to reach the target by the deadline."""
    if goal.status != "active":
        return ZERO

    months_remaining = max(1, months_between(now, goal.deadline))
    amount_remaining = max(ZERO, goal.target_amount - goal.current_amount)
    return round2(amount_remaining / months_remaining)


def next_milestone(goal: Goal) -> Optional[GoalMilestone]:
    """Incomplete milestone with the soonest target date."""
    pending = [m for m in goal.milestones if not m.completed]
    if not pending:
        return None
    return min(pending, key=lambda m: m.target_date)


def needs_attention(goal: Goal, now: datetime) -> bool:
    """Composite warning flag, only ever raised for active goals."""
    if goal.status != "active":
        return False

    if is_overdue(goal, now):
        return True

    if (
        goal.priority in ATTENTION_PRIORITIES
        and progress_percentage(goal) < ATTENTION_PROGRESS_THRESHOLD
        and days_remaining(goal, now) < ATTENTION_DAYS_THRESHOLD
    ):
        return True

    if not is_on_track(goal, now):
        return True

    upcoming = next_milestone(goal)
    if upcoming is not None and now > upcoming.target_date:
        return True

    return False


def compute_metrics(goal: Goal, now: datetime) -> GoalMetrics:
    """Compute every derived metric for ``goal`` at ``now``."""
    return GoalMetrics(
        progress_percentage=progress_percentage(goal),
        days_remaining=days_remaining(goal, now),
        is_overdue=is_overdue(goal, now),
        is_on_track=is_on_track(goal, now),
        required_monthly_savings=required_monthly_savings(goal, now),
        needs_attention=needs_attention(goal, now),
        next_milestone=next_milestone(goal),
    )
