"""Tests for the goal aggregate's progress and lifecycle rules."""

from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from goaltrack.models.goal import Goal, GoalMilestone

NOW = datetime(2024, 6, 1, 12, 0, 0)


def make_goal(**overrides) -> Goal:
    fields = dict(
        user_id=uuid4(),
        name="House deposit",
        type="savings",
        target_amount=Decimal("1000"),
        current_amount=Decimal("0"),
        initial_amount=Decimal("0"),
        start_date=NOW - timedelta(days=30),
        deadline=NOW + timedelta(days=300),
        priority="medium",
        status="active",
        milestones=[],
        progress_history=[],
    )
    fields.update(overrides)
    return Goal(**fields)


class TestRecordProgress:
    """Test Goal.record_progress."""

    def test_appends_ledger_entry(self):
        """Test each call appends one entry with the given delta."""
        goal = make_goal()
        goal.record_progress(Decimal("300"), NOW, description="Paycheck")

        assert goal.current_amount == Decimal("300")
        assert len(goal.progress_history) == 1
        entry = goal.progress_history[0]
        assert entry.amount == Decimal("300")
        assert entry.source == "manual"
        assert entry.date == NOW
        assert entry.description == "Paycheck"
        assert entry.position == 0

    def test_clamps_at_zero(self):
        """Test a large negative correction floors the total at zero."""
        goal = make_goal(current_amount=Decimal("100"))
        goal.record_progress(Decimal("-250"), NOW)

        assert goal.current_amount == Decimal("0")
        # Ledger keeps the requested delta
        assert goal.progress_history[0].amount == Decimal("-250")

    @pytest.mark.parametrize(
        "deltas",
        [
            ["-5"],
            ["100", "-300", "50"],
            ["0.01", "-0.02", "-1", "10"],
            ["500", "-499.99", "-0.02"],
        ],
    )
    def test_never_negative(self, deltas):
        """Test the running total stays non-negative for any delta sequence."""
        goal = make_goal(target_amount=Decimal("100000"))
        for delta in deltas:
            goal.record_progress(Decimal(delta), NOW)
            assert goal.current_amount >= 0
        assert len(goal.progress_history) == len(deltas)

    def test_completes_active_goal_at_target(self):
        """Test reaching the target completes an active goal without capping."""
        goal = make_goal(current_amount=Decimal("950"))
        goal.record_progress(Decimal("100"), NOW)

        assert goal.current_amount == Decimal("1050")
        assert goal.status == "completed"
        assert goal.completed_date == NOW

    def test_completed_goal_stays_completed(self):
        """Test a later negative correction does not reopen a completed goal."""
        goal = make_goal(current_amount=Decimal("950"))
        goal.record_progress(Decimal("100"), NOW)
        goal.record_progress(Decimal("-600"), NOW + timedelta(days=1))

        assert goal.current_amount == Decimal("450")
        assert goal.status == "completed"
        assert goal.completed_date == NOW

    def test_draft_goal_activates_on_progress(self):
        """Test a draft goal becomes active once money is added."""
        goal = make_goal(status="draft")
        goal.record_progress(Decimal("10"), NOW)

        assert goal.status == "active"

    def test_draft_goal_reaching_target_completes(self):
        """Test a draft goal that jumps past its target completes in one call."""
        goal = make_goal(status="draft")
        goal.record_progress(Decimal("1000"), NOW)

        assert goal.status == "completed"
        assert goal.completed_date == NOW

    def test_paused_goal_does_not_complete(self):
        """Test only active goals complete automatically."""
        goal = make_goal(status="paused")
        goal.record_progress(Decimal("2000"), NOW)

        assert goal.status == "paused"
        assert goal.completed_date is None


class TestMilestoneCompletion:
    """Test automatic milestone completion."""

    def test_reached_milestone_completes(self):
        """Test a milestone flips to completed once the total reaches it."""
        milestone = GoalMilestone(
            name="Quarter", target_amount=Decimal("250"), target_date=NOW + timedelta(days=30),
            completed=False,
        )
        goal = make_goal(milestones=[milestone])
        goal.record_progress(Decimal("300"), NOW)

        assert milestone.completed is True
        assert milestone.completed_date == NOW

    def test_completion_is_one_way(self):
        """Test dropping below a completed milestone does not reopen it."""
        milestone = GoalMilestone(
            name="Quarter", target_amount=Decimal("250"), target_date=NOW + timedelta(days=30),
            completed=False,
        )
        goal = make_goal(milestones=[milestone])
        goal.record_progress(Decimal("300"), NOW)
        goal.record_progress(Decimal("-200"), NOW + timedelta(days=1))

        assert goal.current_amount == Decimal("100")
        assert milestone.completed is True
        assert milestone.completed_date == NOW

    def test_unreached_milestone_stays_open(self):
        """Test milestones above the current total are untouched."""
        milestone = GoalMilestone(
            name="Half", target_amount=Decimal("500"), target_date=NOW + timedelta(days=30),
            completed=False,
        )
        goal = make_goal(milestones=[milestone])
        reached = goal.complete_reached_milestones(NOW)

        assert reached == []
        assert milestone.completed is False
        assert milestone.completed_date is None


class TestChangeStatus:
    """Test explicit status changes."""

    def test_pause_stamps_paused_date(self):
        """Test pausing records when it happened."""
        goal = make_goal()
        goal.change_status("paused", NOW)

        assert goal.status == "paused"
        assert goal.paused_date == NOW

    def test_fail_stamps_failed_date(self):
        """Test failing records when it happened."""
        goal = make_goal()
        goal.change_status("failed", NOW)

        assert goal.failed_date == NOW

    def test_reactivation_clears_lifecycle_dates(self):
        """Test returning to active wipes completed, paused and failed dates."""
        goal = make_goal(
            status="completed",
            completed_date=NOW - timedelta(days=3),
            paused_date=NOW - timedelta(days=10),
            failed_date=NOW - timedelta(days=20),
        )
        goal.change_status("active", NOW)

        assert goal.status == "active"
        assert goal.completed_date is None
        assert goal.paused_date is None
        assert goal.failed_date is None

    def test_cancel_has_no_date(self):
        """Test cancelling leaves the lifecycle dates alone."""
        goal = make_goal(paused_date=NOW - timedelta(days=1))
        goal.change_status("cancelled", NOW)

        assert goal.status == "cancelled"
        assert goal.paused_date == NOW - timedelta(days=1)
