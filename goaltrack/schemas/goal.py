"""Goal schemas for request/response validation."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import UUID

from pydantic import AfterValidator, BaseModel, Field, field_validator, model_validator


def _to_naive_utc(value: datetime) -> datetime:
    """Store and compare all timestamps as naive UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(_to_naive_utc)]


class GoalType(str, Enum):
    """Goal type enumeration."""
    SAVINGS = "savings"
    INVESTMENT = "investment"
    DEBT_PAYOFF = "debt_payoff"
    REVENUE = "revenue"
    EXPENSE_REDUCTION = "expense_reduction"
    EMERGENCY_FUND = "emergency_fund"
    CUSTOM = "custom"


class GoalPriority(str, Enum):
    """Goal priority enumeration."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class GoalStatus(str, Enum):
    """Goal status enumeration."""
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ReminderFrequency(str, Enum):
    """Reminder cadence enumeration."""
    DAILY = "daily"
    WEEKLY = "weekly"
    BI_WEEKLY = "bi-weekly"
    MONTHLY = "monthly"


class ProgressSource(str, Enum):
    """Progress entry attribution."""
    MANUAL = "manual"
    AUTO = "auto"
    MILESTONE = "milestone"


class TrackedTransactionType(str, Enum):
    """Transaction kinds an auto-tracked goal can follow."""
    INCOME = "income"
    EXPENSE = "expense"


def _split_csv(value: Any) -> Any:
    """Accept a single value, a list, or comma-separated strings."""
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    if isinstance(value, (list, tuple, set)):
        items = []
        for item in value:
            if isinstance(item, str):
                items.extend(part.strip() for part in item.split(",") if part.strip())
            else:
                items.append(item)
        return items
    return value


def _dedupe(tags: Optional[list[str]]) -> Optional[list[str]]:
    if tags is None:
        return None
    seen = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


class TrackingRules(BaseModel):
    """Filter deciding which transactions count towards an auto-tracked goal."""

    categories: Optional[list[str]] = Field(None, description="Category allow list")
    exclude_categories: Optional[list[str]] = Field(None, description="Category deny list")
    sources: Optional[list[str]] = Field(None, description="Income source allow list")
    transaction_types: Optional[list[TrackedTransactionType]] = Field(
        None, description="Transaction types to include (income, expense)"
    )
    start_date: Optional[UtcDatetime] = Field(None, description="Window start (inclusive)")
    end_date: Optional[UtcDatetime] = Field(None, description="Window end (inclusive)")

    @model_validator(mode="after")
    def validate_window(self) -> "TrackingRules":
        """Validate the window is not inverted."""
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be after start_date")
        return self

    def to_storage(self) -> dict[str, Any]:
        """JSON-safe form stored on the goal row."""
        return self.model_dump(mode="json", exclude_none=True)


class MilestoneCreate(BaseModel):
    """Schema for adding a milestone."""

    name: str = Field(..., min_length=1, max_length=100, description="Milestone name")
    description: Optional[str] = Field(None, max_length=500)
    target_amount: Decimal = Field(..., ge=0, description="Amount at which the milestone completes")
    target_date: UtcDatetime = Field(..., description="Date the milestone should be reached by")
    completed: bool = Field(default=False)
    completed_date: Optional[UtcDatetime] = None
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("target_amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        """Validate amount is properly formatted."""
        return round(v, 2)


class MilestoneUpdate(BaseModel):
    """Schema for editing a milestone. Only fields that are set get merged."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    target_amount: Optional[Decimal] = Field(None, ge=0)
    target_date: Optional[UtcDatetime] = None
    completed: Optional[bool] = None
    completed_date: Optional[UtcDatetime] = None
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("target_amount")
    @classmethod
    def validate_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        """Validate amount if provided."""
        if v is not None:
            return round(v, 2)
        return v


class GoalCreate(BaseModel):
    """Schema for creating a new goal."""

    name: str = Field(..., min_length=1, max_length=200, description="Goal name")
    description: Optional[str] = Field(None, max_length=1000)
    type: GoalType = Field(..., description="Goal type")
    target_amount: Decimal = Field(..., gt=0, description="Target amount to achieve")
    initial_amount: Decimal = Field(
        default=Decimal(0), ge=0, description="Progress already banked (default: 0)"
    )
    currency: Optional[str] = Field(None, min_length=3, max_length=3, description="ISO currency code")
    deadline: UtcDatetime = Field(..., description="Deadline")
    start_date: Optional[UtcDatetime] = Field(None, description="Start date (default: now)")
    priority: GoalPriority = Field(default=GoalPriority.MEDIUM)
    status: GoalStatus = Field(default=GoalStatus.DRAFT)
    category: Optional[str] = Field(None, max_length=50)
    milestones: list[MilestoneCreate] = Field(default_factory=list)
    auto_track: bool = Field(default=False)
    tracking_rules: Optional[TrackingRules] = None
    reminder_enabled: bool = Field(default=True)
    reminder_frequency: ReminderFrequency = Field(default=ReminderFrequency.WEEKLY)
    notes: Optional[str] = Field(None, max_length=2000)
    tags: list[str] = Field(default_factory=list)

    @field_validator("target_amount", "initial_amount")
    @classmethod
    def validate_amounts(cls, v: Decimal) -> Decimal:
        """Validate amounts are properly formatted."""
        return round(v, 2)

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: list[str]) -> list[str]:
        return _dedupe(v)

    @model_validator(mode="after")
    def validate_dates(self) -> "GoalCreate":
        """Validate the deadline comes after the start date."""
        if self.start_date is not None and self.deadline <= self.start_date:
            raise ValueError("deadline must be after start_date")
        return self


class GoalUpdate(BaseModel):
    """Schema for updating a goal."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    type: Optional[GoalType] = None
    target_amount: Optional[Decimal] = Field(None, gt=0)
    current_amount: Optional[Decimal] = Field(None, ge=0)
    initial_amount: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    deadline: Optional[UtcDatetime] = None
    start_date: Optional[UtcDatetime] = None
    priority: Optional[GoalPriority] = None
    status: Optional[GoalStatus] = None
    category: Optional[str] = Field(None, max_length=50)
    milestones: Optional[list[MilestoneCreate]] = None
    auto_track: Optional[bool] = None
    tracking_rules: Optional[TrackingRules] = None
    reminder_enabled: Optional[bool] = None
    reminder_frequency: Optional[ReminderFrequency] = None
    notes: Optional[str] = Field(None, max_length=2000)
    tags: Optional[list[str]] = None

    @field_validator("target_amount", "current_amount", "initial_amount")
    @classmethod
    def validate_amounts(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        """Validate amounts if provided."""
        if v is not None:
            return round(v, 2)
        return v

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        return _dedupe(v)


class GoalProgressUpdate(BaseModel):
    """Schema for recording progress. Negative amounts are corrections."""

    amount: Decimal = Field(..., description="Signed amount to apply")
    source: ProgressSource = Field(default=ProgressSource.MANUAL)
    description: Optional[str] = Field(None, max_length=500)
    transaction_id: Optional[UUID] = Field(None, description="Originating transaction")

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        """Validate amount is properly formatted."""
        return round(v, 2)


class GoalFilters(BaseModel):
    """Schema for filtering goal lists."""

    status: Optional[list[GoalStatus]] = None
    type: Optional[list[GoalType]] = None
    priority: Optional[list[GoalPriority]] = None
    category: Optional[str] = None
    is_overdue: Optional[bool] = None
    is_on_track: Optional[bool] = None
    needs_attention: Optional[bool] = None
    date_from: Optional[UtcDatetime] = Field(None, description="Deadline on or after")
    date_to: Optional[UtcDatetime] = Field(None, description="Deadline on or before")
    search: Optional[str] = Field(None, max_length=200, description="Search name, description, notes")
    tags: Optional[list[str]] = Field(None, description="Match goals carrying any of these tags")

    @field_validator("status", "type", "priority", "tags", mode="before")
    @classmethod
    def split_lists(cls, v: Any) -> Any:
        return _split_csv(v)


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class BulkDeleteRequest(BaseModel):
    """Schema for deleting several goals at once."""

    goal_ids: list[UUID] = Field(..., min_length=1)


class BulkDeleteResponse(BaseModel):
    deleted_count: int


class MilestoneResponse(BaseModel):
    """Schema for milestone response."""

    position: int
    name: str
    description: Optional[str]
    target_amount: Decimal
    target_date: datetime
    completed: bool
    completed_date: Optional[datetime]
    notes: Optional[str]

    model_config = {"from_attributes": True}


class ProgressEntryResponse(BaseModel):
    """Schema for progress ledger entry response."""

    date: datetime
    amount: Decimal
    source: ProgressSource
    description: Optional[str]
    transaction_id: Optional[UUID]

    model_config = {"from_attributes": True}


class GoalRecord(BaseModel):
    """Stored fields of a goal."""

    id: UUID
    user_id: UUID
    name: str
    description: Optional[str]
    type: GoalType
    target_amount: Decimal
    current_amount: Decimal
    initial_amount: Decimal
    currency: str
    deadline: datetime
    start_date: datetime
    priority: GoalPriority
    status: GoalStatus
    category: Optional[str]
    tags: list[str]
    notes: Optional[str]
    auto_track: bool
    tracking_rules: Optional[dict[str, Any]]
    reminder_enabled: bool
    reminder_frequency: Optional[ReminderFrequency]
    last_reminder_sent: Optional[datetime]
    milestones: list[MilestoneResponse]
    progress_history: list[ProgressEntryResponse]
    completed_date: Optional[datetime]
    failed_date: Optional[datetime]
    paused_date: Optional[datetime]
    last_calculated_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class GoalResponse(GoalRecord):
    """Schema for goal response: stored fields plus metrics computed at read time."""

    progress_percentage: float
    days_remaining: int
    is_overdue: bool
    is_on_track: bool
    required_monthly_savings: Decimal
    needs_attention: bool
    next_milestone: Optional[MilestoneResponse]

    @classmethod
    def from_details(cls, details) -> "GoalResponse":
        """Build a response from a ``GoalDetails`` (goal plus metrics)."""
        record = GoalRecord.model_validate(details.goal)
        metrics = details.metrics
        return cls(
            **record.model_dump(),
            progress_percentage=metrics.progress_percentage,
            days_remaining=metrics.days_remaining,
            is_overdue=metrics.is_overdue,
            is_on_track=metrics.is_on_track,
            required_monthly_savings=metrics.required_monthly_savings,
            needs_attention=metrics.needs_attention,
            next_milestone=(
                MilestoneResponse.model_validate(metrics.next_milestone)
                if metrics.next_milestone is not None
                else None
            ),
        )


class PaginatedGoalResponse(BaseModel):
    """Schema for paginated goal list response."""

    items: list[GoalResponse]
    total: int
    page: int
    limit: int
    pages: int


class UpcomingMilestoneResponse(MilestoneResponse):
    """Milestone tagged with the goal it belongs to."""

    goal_id: UUID
    goal_name: str


class GoalStatisticsResponse(BaseModel):
    """Schema for goal statistics response."""

    total: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    by_priority: dict[str, int]
    total_target_amount: Decimal
    total_current_amount: Decimal
    overall_progress: float
    on_track: int
    needing_attention: int
    upcoming_milestones: list[UpcomingMilestoneResponse]
    recently_completed: list[GoalResponse]
    expiring_soon: list[GoalResponse]


class GoalReminderResponse(BaseModel):
    """Schema for the reminder listing."""

    goals: list[GoalResponse]
    count: int
