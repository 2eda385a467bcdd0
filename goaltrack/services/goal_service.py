"""Goal service: lifecycle, progress ledger, milestones, statistics and reminders."""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional, Union
from uuid import UUID

from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from goaltrack.clock import Clock, system_clock
from goaltrack.config import settings
from goaltrack.exceptions import (
    AutoTrackingNotEnabledError,
    GoalNotFoundError,
    GoalValidationError,
    MilestoneIndexError,
)
from goaltrack.logging_config import get_logger
from goaltrack.models.goal import Goal, GoalMilestone, GoalProgressEntry
from goaltrack.schemas.goal import (
    GoalCreate,
    GoalFilters,
    GoalUpdate,
    MilestoneCreate,
    MilestoneUpdate,
)
from goaltrack.services.goal_metrics import GoalMetrics, compute_metrics, round2
from goaltrack.services.transaction_history import TransactionHistory

logger = get_logger(__name__)

ZERO = Decimal("0")

GOAL_STATUSES = ("draft", "active", "completed", "paused", "failed", "cancelled")
GOAL_PRIORITIES = ("low", "medium", "high", "critical")
PROGRESS_SOURCES = ("manual", "auto", "milestone")

SORTABLE_FIELDS = {
    "deadline": Goal.deadline,
    "start_date": Goal.start_date,
    "created_at": Goal.created_at,
    "updated_at": Goal.updated_at,
    "name": Goal.name,
    "target_amount": Goal.target_amount,
    "current_amount": Goal.current_amount,
    "priority": Goal.priority,
    "status": Goal.status,
}

REMINDER_INTERVAL_DAYS = {
    "daily": 1,
    "weekly": 7,
    "bi-weekly": 14,
    "monthly": 30,
}

# Fields whose change can move current_amount relative to the goal's thresholds
PROGRESS_FIELDS = {"current_amount", "target_amount", "initial_amount"}

# Columns a patch cannot clear; an explicit null leaves them unchanged
REQUIRED_GOAL_FIELDS = {
    "name",
    "type",
    "target_amount",
    "current_amount",
    "initial_amount",
    "currency",
    "deadline",
    "start_date",
    "priority",
    "tags",
    "auto_track",
    "reminder_enabled",
}
REQUIRED_MILESTONE_FIELDS = {"name", "target_amount", "target_date", "completed"}


@dataclass
class GoalDetails:
    """A goal together with the metrics computed when it was read."""

    goal: Goal
    metrics: GoalMetrics


@dataclass
class GoalPage:
    """One page of a filtered goal listing."""

    items: List[GoalDetails]
    total: int
    page: int
    limit: int
    pages: int


@dataclass
class UpcomingMilestone:
    """Milestone tagged with its owning goal."""

    goal_id: UUID
    goal_name: str
    milestone: GoalMilestone


@dataclass
class GoalStatistics:
    """Aggregated view over all of a user's goals."""

    total: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    by_priority: dict[str, int]
    total_target_amount: Decimal = ZERO
    total_current_amount: Decimal = ZERO
    overall_progress: float = 0.0
    on_track: int = 0
    needing_attention: int = 0
    upcoming_milestones: List[UpcomingMilestone] = field(default_factory=list)
    recently_completed: List[GoalDetails] = field(default_factory=list)
    expiring_soon: List[GoalDetails] = field(default_factory=list)


def _plain(value: Any) -> Any:
    """Unwrap enum members to the raw values stored in the database."""
    return value.value if isinstance(value, Enum) else value


def _escape_like(text: str) -> str:
    """Escape LIKE wildcards so user text matches literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class GoalService:
    """Service for managing financial goals and tracking progress."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Optional[Clock] = None,
        history: Optional[TransactionHistory] = None,
    ):
        """Initialize goal service.

        Args:
            db: Database session
            clock: Source of the current time (default: system clock)
            history: Transaction history used for auto-tracking
        """
        self.db = db
        self.clock = clock or system_clock
        self.history = history or TransactionHistory(db)

    def _details(self, goal: Goal, now: Optional[datetime] = None) -> GoalDetails:
        return GoalDetails(goal=goal, metrics=compute_metrics(goal, now or self.clock.now()))

    async def _load(self, goal_id: UUID, user_id: UUID) -> Goal:
        """Load a goal owned by ``user_id`` or raise GoalNotFoundError."""
        stmt = select(Goal).where(and_(Goal.id == goal_id, Goal.user_id == user_id))
        result = await self.db.execute(stmt)
        goal = result.scalar_one_or_none()
        if goal is None:
            raise GoalNotFoundError(goal_id)
        return goal

    @staticmethod
    def _milestone_from(milestone_in: MilestoneCreate, position: int) -> GoalMilestone:
        return GoalMilestone(position=position, **milestone_in.model_dump())

    async def get_goal(self, goal_id: UUID, user_id: UUID) -> GoalDetails:
        """Get a goal by ID with freshly computed metrics.

        Args:
            goal_id: Goal ID
            user_id: User ID (for authorization)

        Returns:
            Goal details

        Raises:
            GoalNotFoundError: If the goal does not exist or belongs to another user
        """
        goal = await self._load(goal_id, user_id)
        return self._details(goal)

    async def list_goals(
        self,
        user_id: UUID,
        filters: Optional[GoalFilters] = None,
        page: int = 1,
        limit: Optional[int] = None,
        sort_by: str = "deadline",
        sort_order: Union[str, Enum] = "asc",
    ) -> GoalPage:
        """List goals with filtering, sorting and pagination.

        Column filters run in the database. Tag and metric filters run on the
        loaded rows before slicing, so totals reflect the filtered set.

        Args:
            user_id: User ID
            filters: Optional filters
            page: Page number (1-indexed)
            limit: Page size (default from settings)
            sort_by: Field to sort by
            sort_order: "asc" or "desc"

        Returns:
            Page of goal details

        Raises:
            GoalValidationError: If sorting or pagination parameters are invalid
        """
        limit = limit or settings.goals_default_page_size
        sort_order = _plain(sort_order)
        if page < 1:
            raise GoalValidationError("Page must be at least 1")
        if limit < 1 or limit > settings.goals_max_page_size:
            raise GoalValidationError(
                f"Limit must be between 1 and {settings.goals_max_page_size}"
            )
        if sort_by not in SORTABLE_FIELDS:
            raise GoalValidationError(f"Cannot sort by '{sort_by}'")
        if sort_order not in ("asc", "desc"):
            raise GoalValidationError("Sort order must be 'asc' or 'desc'")

        stmt = select(Goal).where(Goal.user_id == user_id)

        if filters:
            if filters.status:
                stmt = stmt.where(Goal.status.in_([_plain(s) for s in filters.status]))
            if filters.type:
                stmt = stmt.where(Goal.type.in_([_plain(t) for t in filters.type]))
            if filters.priority:
                stmt = stmt.where(Goal.priority.in_([_plain(p) for p in filters.priority]))
            if filters.category:
                stmt = stmt.where(Goal.category == filters.category)
            if filters.date_from:
                stmt = stmt.where(Goal.deadline >= filters.date_from)
            if filters.date_to:
                stmt = stmt.where(Goal.deadline <= filters.date_to)
            if filters.search:
                # Case-insensitive search in name, description and notes
                pattern = f"%{_escape_like(filters.search)}%"
                stmt = stmt.where(
                    or_(
                        Goal.name.ilike(pattern, escape="\\"),
                        Goal.description.ilike(pattern, escape="\\"),
                        Goal.notes.ilike(pattern, escape="\\"),
                    )
                )

        column = SORTABLE_FIELDS[sort_by]
        stmt = stmt.order_by(column.asc() if sort_order == "asc" else column.desc(), Goal.id)

        result = await self.db.execute(stmt)
        now = self.clock.now()
        details = [self._details(goal, now) for goal in result.scalars().all()]

        if filters:
            if filters.tags:
                wanted = set(filters.tags)
                details = [d for d in details if wanted.intersection(d.goal.tags or [])]
            if filters.is_overdue is not None:
                details = [d for d in details if d.metrics.is_overdue == filters.is_overdue]
            if filters.is_on_track is not None:
                details = [d for d in details if d.metrics.is_on_track == filters.is_on_track]
            if filters.needs_attention is not None:
                details = [
                    d for d in details if d.metrics.needs_attention == filters.needs_attention
                ]

        total = len(details)
        offset = (page - 1) * limit

        logger.debug("Goals listed", user_id=str(user_id), total=total, page=page)

        return GoalPage(
            items=details[offset : offset + limit],
            total=total,
            page=page,
            limit=limit,
            pages=math.ceil(total / limit),
        )

    async def create_goal(self, user_id: UUID, goal_in: GoalCreate) -> GoalDetails:
        """Create a new goal.

        Args:
            user_id: User ID
            goal_in: Goal creation data

        Returns:
            Created goal details

        Raises:
            GoalValidationError: If the deadline is not after the start date
        """
        now = self.clock.now()
        start_date = goal_in.start_date or now
        if goal_in.deadline <= start_date:
            raise GoalValidationError("Deadline must be after the start date")

        goal = Goal(
            user_id=user_id,
            name=goal_in.name,
            description=goal_in.description,
            type=_plain(goal_in.type),
            target_amount=goal_in.target_amount,
            initial_amount=goal_in.initial_amount,
            current_amount=goal_in.initial_amount,
            currency=goal_in.currency or settings.default_currency,
            deadline=goal_in.deadline,
            start_date=start_date,
            priority=_plain(goal_in.priority),
            status=_plain(goal_in.status),
            category=goal_in.category,
            tags=list(goal_in.tags),
            notes=goal_in.notes,
            auto_track=goal_in.auto_track,
            tracking_rules=(
                goal_in.tracking_rules.to_storage()
                if goal_in.tracking_rules is not None
                else None
            ),
            reminder_enabled=goal_in.reminder_enabled,
            reminder_frequency=_plain(goal_in.reminder_frequency),
            milestones=[
                self._milestone_from(m, position) for position, m in enumerate(goal_in.milestones)
            ],
            progress_history=[],
            created_at=now,
            updated_at=now,
        )
        if goal.status == "completed":
            goal.completed_date = now

        self.db.add(goal)
        await self.db.flush()

        if goal.auto_track and goal.tracking_rules:
            await self._recalculate(goal, now)
            await self.db.flush()

        logger.info(
            "Goal created",
            goal_id=str(goal.id),
            user_id=str(user_id),
            name=goal.name,
            type=goal.type,
            target_amount=str(goal.target_amount),
            deadline=goal.deadline.isoformat(),
        )

        return self._details(goal, now)

    async def update_goal(self, goal_id: UUID, user_id: UUID, updates: GoalUpdate) -> GoalDetails:
        """Update a goal.

        Only fields explicitly set on ``updates`` are applied; an explicit null
        clears an optional field. A new ``current_amount`` is ledgered as a
        manual entry. An explicit status change stamps (or, on reactivation,
        clears) the lifecycle dates, and a reactivated goal already at its
        target completes again.

        Args:
            goal_id: Goal ID
            user_id: User ID (for authorization)
            updates: Fields to change

        Returns:
            Updated goal details

        Raises:
            GoalNotFoundError: If the goal is not found
            GoalValidationError: If the resulting deadline is not after the start date
        """
        goal = await self._load(goal_id, user_id)
        now = self.clock.now()

        data = {
            k: _plain(v)
            for k, v in updates.model_dump(exclude_unset=True).items()
            if v is not None or k not in REQUIRED_GOAL_FIELDS
        }
        status = data.pop("status", None)
        milestones = data.pop("milestones", None)
        rules_changed = "tracking_rules" in data
        data.pop("tracking_rules", None)
        progress_touched = bool(PROGRESS_FIELDS.intersection(data))
        new_amount = data.pop("current_amount", None)

        deadline = data.get("deadline") or goal.deadline
        start_date = data.get("start_date") or goal.start_date
        if deadline <= start_date:
            raise GoalValidationError("Deadline must be after the start date")

        for name, value in data.items():
            setattr(goal, name, value)

        if new_amount is not None:
            self._set_amount(goal, new_amount, now, "manual", "Manual amount adjustment")

        if rules_changed:
            rules = updates.tracking_rules
            goal.tracking_rules = rules.to_storage() if rules is not None else None

        if milestones is not None:
            goal.milestones = [
                self._milestone_from(m, position) for position, m in enumerate(updates.milestones)
            ]

        if status is not None:
            goal.change_status(status, now)

        if milestones is not None or progress_touched or status == "active":
            goal.complete_reached_milestones(now)
            goal.check_completion(now)

        tracking_touched = "auto_track" in data or rules_changed
        if tracking_touched and goal.auto_track and goal.tracking_rules:
            await self._recalculate(goal, now)

        goal.updated_at = now
        await self.db.flush()

        logger.info(
            "Goal updated",
            goal_id=str(goal_id),
            user_id=str(user_id),
            fields=sorted(updates.model_fields_set),
        )

        return self._details(goal, now)

    async def record_progress(
        self,
        goal_id: UUID,
        user_id: UUID,
        amount: Decimal,
        source: Union[str, Enum] = "manual",
        description: Optional[str] = None,
        transaction_id: Optional[UUID] = None,
    ) -> GoalDetails:
        """Apply a signed progress delta to a goal and append it to the ledger.

        Args:
            goal_id: Goal ID
            user_id: User ID
            amount: Signed amount to apply (negative for corrections)
            source: manual, auto or milestone
            description: Optional note
            transaction_id: Optional originating transaction

        Returns:
            Updated goal details

        Raises:
            GoalNotFoundError: If the goal is not found
            GoalValidationError: If the source is unknown
        """
        source = _plain(source)
        if source not in PROGRESS_SOURCES:
            raise GoalValidationError(f"Invalid progress source '{source}'")

        goal = await self._load(goal_id, user_id)
        now = self.clock.now()
        previous_status = goal.status

        goal.record_progress(
            amount,
            now,
            source=source,
            description=description,
            transaction_id=transaction_id,
        )
        goal.updated_at = now
        await self.db.flush()

        if goal.status == "completed" and previous_status != "completed":
            logger.info(
                "Goal completed",
                goal_id=str(goal_id),
                user_id=str(user_id),
                name=goal.name,
                final_amount=str(goal.current_amount),
            )

        logger.debug(
            "Goal progress recorded",
            goal_id=str(goal_id),
            user_id=str(user_id),
            amount=str(amount),
            source=source,
            new_total=str(goal.current_amount),
        )

        return self._details(goal, now)

    async def add_milestone(
        self, goal_id: UUID, user_id: UUID, milestone_in: MilestoneCreate
    ) -> GoalDetails:
        """Append a milestone to a goal."""
        goal = await self._load(goal_id, user_id)
        now = self.clock.now()

        goal.milestones.append(self._milestone_from(milestone_in, len(goal.milestones)))
        goal.updated_at = now
        await self.db.flush()

        logger.info(
            "Milestone added",
            goal_id=str(goal_id),
            user_id=str(user_id),
            name=milestone_in.name,
            target_amount=str(milestone_in.target_amount),
        )

        return self._details(goal, now)

    async def update_milestone(
        self, goal_id: UUID, user_id: UUID, index: int, updates: MilestoneUpdate
    ) -> GoalDetails:
        """Merge the set fields of ``updates`` into the milestone at ``index``.

        Raises:
            GoalNotFoundError: If the goal is not found
            MilestoneIndexError: If ``index`` does not address a milestone
        """
        goal = await self._load(goal_id, user_id)
        if index < 0 or index >= len(goal.milestones):
            raise MilestoneIndexError(index, len(goal.milestones))

        now = self.clock.now()
        milestone = goal.milestones[index]
        for name, value in updates.model_dump(exclude_unset=True).items():
            if value is not None or name not in REQUIRED_MILESTONE_FIELDS:
                setattr(milestone, name, value)
        if not milestone.completed:
            milestone.completed_date = None
        elif milestone.completed_date is None:
            milestone.completed_date = now

        goal.updated_at = now
        await self.db.flush()

        logger.info("Milestone updated", goal_id=str(goal_id), user_id=str(user_id), index=index)

        return self._details(goal, now)

    async def delete_milestone(self, goal_id: UUID, user_id: UUID, index: int) -> GoalDetails:
        """Remove the milestone at ``index``; later milestones shift down by one.

        Raises:
            GoalNotFoundError: If the goal is not found
            MilestoneIndexError: If ``index`` does not address a milestone
        """
        goal = await self._load(goal_id, user_id)
        if index < 0 or index >= len(goal.milestones):
            raise MilestoneIndexError(index, len(goal.milestones))

        now = self.clock.now()
        goal.milestones.pop(index)
        goal.updated_at = now
        await self.db.flush()

        logger.info("Milestone deleted", goal_id=str(goal_id), user_id=str(user_id), index=index)

        return self._details(goal, now)

    async def delete_goal(self, goal_id: UUID, user_id: UUID) -> None:
        """Delete a goal with its milestones and progress history.

        Raises:
            GoalNotFoundError: If the goal is not found
        """
        goal = await self._load(goal_id, user_id)

        await self.db.delete(goal)
        await self.db.flush()

        logger.info("Goal deleted", goal_id=str(goal_id), user_id=str(user_id))

    async def bulk_delete(self, goal_ids: List[UUID], user_id: UUID) -> int:
        """Delete every listed goal owned by the user.

        Ids that do not exist or belong to someone else are skipped.

        Returns:
            Number of goals deleted
        """
        if not goal_ids:
            return 0

        stmt = select(Goal).where(and_(Goal.id.in_(goal_ids), Goal.user_id == user_id))
        result = await self.db.execute(stmt)

        deleted = 0
        for goal in result.scalars().all():
            await self.db.delete(goal)
            deleted += 1
        await self.db.flush()

        logger.info(
            "Goals bulk deleted",
            user_id=str(user_id),
            requested=len(goal_ids),
            deleted=deleted,
        )

        return deleted

    @staticmethod
    def _set_amount(
        goal: Goal, new_amount: Decimal, now: datetime, source: str, description: str
    ) -> None:
        """Overwrite ``current_amount`` and ledger the difference when there is one."""
        delta = new_amount - goal.current_amount
        goal.current_amount = new_amount
        if delta != 0:
            goal.progress_history.append(
                GoalProgressEntry(date=now, amount=delta, source=source, description=description)
            )

    async def _recalculate(self, goal: Goal, now: datetime) -> None:
        """Replace ``current_amount`` with the amount derived from transaction history."""
        net = await self.history.net_progress(goal.user_id, goal.type, goal.tracking_rules)
        new_amount = max(ZERO, round2(goal.initial_amount + net))

        self._set_amount(goal, new_amount, now, "auto", "Auto-tracking recalculation")
        goal.last_calculated_at = now

        goal.complete_reached_milestones(now)
        goal.check_completion(now)

        logger.info(
            "Goal auto-progress recalculated",
            goal_id=str(goal.id),
            user_id=str(goal.user_id),
            net_amount=str(net),
            new_total=str(new_amount),
        )

    async def recalculate_auto_progress(self, goal_id: UUID, user_id: UUID) -> GoalDetails:
        """Recompute an auto-tracked goal's amount from its tracking rules.

        Raises:
            GoalNotFoundError: If the goal is not found
            AutoTrackingNotEnabledError: If auto-tracking is off or has no rules
        """
        goal = await self._load(goal_id, user_id)
        if not goal.auto_track or not goal.tracking_rules:
            raise AutoTrackingNotEnabledError()

        now = self.clock.now()
        await self._recalculate(goal, now)
        goal.updated_at = now
        await self.db.flush()

        return self._details(goal, now)

    async def get_statistics(self, user_id: UUID) -> GoalStatistics:
        """Aggregate counts, totals and upcoming work across a user's goals.

        Args:
            user_id: User ID

        Returns:
            Goal statistics
        """
        now = self.clock.now()
        window = timedelta(days=settings.goals_statistics_window_days)

        result = await self.db.execute(select(Goal).where(Goal.user_id == user_id))
        goals = list(result.scalars().all())

        stats = GoalStatistics(
            total=len(goals),
            by_status={status: 0 for status in GOAL_STATUSES},
            by_type={},
            by_priority={priority: 0 for priority in GOAL_PRIORITIES},
        )

        for goal in goals:
            stats.by_status[goal.status] = stats.by_status.get(goal.status, 0) + 1
            stats.by_type[goal.type] = stats.by_type.get(goal.type, 0) + 1
            stats.by_priority[goal.priority] = stats.by_priority.get(goal.priority, 0) + 1

            if goal.status != "active":
                continue

            metrics = compute_metrics(goal, now)
            stats.total_target_amount += goal.target_amount
            stats.total_current_amount += goal.current_amount
            if metrics.is_on_track:
                stats.on_track += 1
            if metrics.needs_attention:
                stats.needing_attention += 1

            upcoming = sorted(
                (m for m in goal.milestones if not m.completed and m.target_date > now),
                key=lambda m: m.target_date,
            )
            stats.upcoming_milestones.extend(
                UpcomingMilestone(goal_id=goal.id, goal_name=goal.name, milestone=m)
                for m in upcoming[:3]
            )

        if stats.total_target_amount > 0:
            stats.overall_progress = float(
                round2(stats.total_current_amount / stats.total_target_amount * 100)
            )

        stats.upcoming_milestones.sort(key=lambda u: u.milestone.target_date)
        stats.upcoming_milestones = stats.upcoming_milestones[:5]

        recent_stmt = (
            select(Goal)
            .where(
                and_(
                    Goal.user_id == user_id,
                    Goal.status == "completed",
                    Goal.completed_date >= now - window,
                )
            )
            .order_by(Goal.completed_date.desc())
            .limit(5)
        )
        recent = await self.db.execute(recent_stmt)
        stats.recently_completed = [self._details(g, now) for g in recent.scalars().all()]

        expiring_stmt = (
            select(Goal)
            .where(
                and_(
                    Goal.user_id == user_id,
                    Goal.status == "active",
                    Goal.deadline >= now,
                    Goal.deadline <= now + window,
                )
            )
            .order_by(Goal.deadline.asc())
            .limit(5)
        )
        expiring = await self.db.execute(expiring_stmt)
        stats.expiring_soon = [self._details(g, now) for g in expiring.scalars().all()]

        return stats

    @staticmethod
    def _reminder_due(goal: Goal, now: datetime) -> bool:
        if goal.last_reminder_sent is None:
            return True

        interval = REMINDER_INTERVAL_DAYS.get(goal.reminder_frequency)
        if interval is None:
            return False

        days_since = math.floor((now - goal.last_reminder_sent).total_seconds() / 86400)
        return days_since >= interval

    async def get_goals_needing_reminders(
        self, user_id: Optional[UUID] = None
    ) -> List[GoalDetails]:
        """Active goals with reminders enabled whose cadence has elapsed.

        Pure selection; sending and marking reminders is up to the caller.

        Args:
            user_id: Restrict to one user (default: all users)

        Returns:
            Goals due for a reminder
        """
        stmt = select(Goal).where(
            and_(Goal.status == "active", Goal.reminder_enabled.is_(True))
        )
        if user_id is not None:
            stmt = stmt.where(Goal.user_id == user_id)
        stmt = stmt.order_by(Goal.deadline.asc())

        result = await self.db.execute(stmt)
        now = self.clock.now()

        return [
            self._details(goal, now)
            for goal in result.scalars().all()
            if self._reminder_due(goal, now)
        ]

    async def mark_reminder_sent(self, goal_id: UUID) -> None:
        """Record that a reminder was just sent for a goal.

        Raises:
            GoalNotFoundError: If the goal does not exist
        """
        result = await self.db.execute(select(Goal).where(Goal.id == goal_id))
        goal = result.scalar_one_or_none()
        if goal is None:
            raise GoalNotFoundError(goal_id)

        now = self.clock.now()
        goal.last_reminder_sent = now
        goal.updated_at = now
        await self.db.flush()

        logger.debug("Goal reminder marked sent", goal_id=str(goal_id))
