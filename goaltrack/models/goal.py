"""Goal aggregate: the goal row plus its milestones and progress ledger."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship

from goaltrack.clock import utcnow
from goaltrack.models.base import Base

ZERO = Decimal("0")


class GoalMilestone(Base):
    """Sub-target of a goal, addressed by its position in the goal's list."""

    __tablename__ = "goal_milestones"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    goal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("goals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500))
    target_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    target_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    completed_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    notes: Mapped[Optional[str]] = mapped_column(String(500))

    goal: Mapped["Goal"] = relationship("Goal", back_populates="milestones")

    __table_args__ = (
        CheckConstraint("target_amount >= 0", name="check_milestone_target_non_negative"),
    )

    def __repr__(self) -> str:
        """String representation of GoalMilestone."""
        return (
            f"<GoalMilestone(goal_id={self.goal_id}, position={self.position}, "
            f"name={self.name}, target={self.target_amount}, completed={self.completed})>"
        )


class GoalProgressEntry(Base):
    """One signed change to a goal's banked amount. Never edited once written."""

    __tablename__ = "goal_progress_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    goal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("goals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    transaction_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)

    goal: Mapped["Goal"] = relationship("Goal", back_populates="progress_history")

    __table_args__ = (
        CheckConstraint(
            "source IN ('manual', 'auto', 'milestone')", name="check_progress_source"
        ),
    )

    def __repr__(self) -> str:
        """String representation of GoalProgressEntry."""
        return (
            f"<GoalProgressEntry(goal_id={self.goal_id}, amount={self.amount}, "
            f"source={self.source})>"
        )


class Goal(Base):
    """Financial goal owned by a single user.

    ``current_amount`` is the running total; ``progress_history`` is the audit
    trail of the deltas that produced it.
    """

    __tablename__ = "goals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(1000))
    type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    target_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    current_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=ZERO, nullable=False)
    initial_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=ZERO, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    deadline: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    start_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    priority: Mapped[str] = mapped_column(String(10), default="medium", nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default="draft", nullable=False, index=True)
    category: Mapped[Optional[str]] = mapped_column(String(50))
    tags: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(2000))

    auto_track: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    tracking_rules: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)

    reminder_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    reminder_frequency: Mapped[Optional[str]] = mapped_column(String(10), default="weekly")
    last_reminder_sent: Mapped[Optional[datetime]] = mapped_column(DateTime)

    completed_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    failed_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    paused_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    last_calculated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    # Relationships
    milestones: Mapped[list[GoalMilestone]] = relationship(
        "GoalMilestone",
        back_populates="goal",
        order_by="GoalMilestone.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    progress_history: Mapped[list[GoalProgressEntry]] = relationship(
        "GoalProgressEntry",
        back_populates="goal",
        order_by="GoalProgressEntry.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    # Table constraints
    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'active', 'completed', 'paused', 'failed', 'cancelled')",
            name="check_goal_status",
        ),
        CheckConstraint(
            "type IN ('savings', 'investment', 'debt_payoff', 'revenue', "
            "'expense_reduction', 'emergency_fund', 'custom')",
            name="check_goal_type",
        ),
        CheckConstraint(
            "priority IN ('low', 'medium', 'high', 'critical')", name="check_goal_priority"
        ),
        CheckConstraint("target_amount > 0", name="check_target_amount_positive"),
        CheckConstraint("current_amount >= 0", name="check_current_amount_non_negative"),
        CheckConstraint("initial_amount >= 0", name="check_initial_amount_non_negative"),
        # Composite indexes for common queries
        Index("idx_goals_user_status_priority", "user_id", "status", "priority"),
        Index("idx_goals_user_deadline", "user_id", "deadline"),
        Index("idx_goals_user_type_status", "user_id", "type", "status"),
    )

    def record_progress(
        self,
        amount: Decimal,
        now: datetime,
        source: str = "manual",
        description: Optional[str] = None,
        transaction_id: Optional[uuid.UUID] = None,
    ) -> GoalProgressEntry:
        """Apply a signed delta, append it to the ledger and re-run the invariants.

        The running total is clamped at zero; the ledger keeps the delta as given.
        """
        self.current_amount = max(ZERO, self.current_amount + amount)

        entry = GoalProgressEntry(
            date=now,
            amount=amount,
            source=source,
            description=description,
            transaction_id=transaction_id,
        )
        self.progress_history.append(entry)

        self.complete_reached_milestones(now)
        if self.status == "draft" and self.current_amount > self.initial_amount:
            self.status = "active"
        self.check_completion(now)
        return entry

    def complete_reached_milestones(self, now: datetime) -> list[GoalMilestone]:
        """Mark every open milestone covered by the current amount as completed.

        Completion is one-way: a later drop in ``current_amount`` does not reopen
        a milestone.
        """
        reached = []
        for milestone in self.milestones:
            if not milestone.completed and self.current_amount >= milestone.target_amount:
                milestone.completed = True
                milestone.completed_date = now
                reached.append(milestone)
        return reached

    def check_completion(self, now: datetime) -> bool:
        """Complete an active goal whose target has been reached."""
        if self.status == "active" and self.current_amount >= self.target_amount:
            self.status = "completed"
            self.completed_date = now
            return True
        return False

    def change_status(self, status: str, now: datetime) -> None:
        """Apply an explicitly requested status and its lifecycle date."""
        self.status = status
        if status == "completed":
            self.completed_date = now
        elif status == "paused":
            self.paused_date = now
        elif status == "failed":
            self.failed_date = now
        elif status == "active":
            # Reactivation resets the lifecycle dates
            self.completed_date = None
            self.paused_date = None
            self.failed_date = None

    def __repr__(self) -> str:
        """String representation of Goal."""
        return (
            f"<Goal(id={self.id}, user_id={self.user_id}, "
            f"name={self.name}, target={self.target_amount}, "
            f"current={self.current_amount}, status={self.status})>"
        )
