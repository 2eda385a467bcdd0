"""Goal API endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from goaltrack.clock import Clock, get_clock
from goaltrack.database import get_db
from goaltrack.exceptions import GoalEngineError, GoalNotFoundError
from goaltrack.schemas.goal import (
    BulkDeleteRequest,
    BulkDeleteResponse,
    GoalCreate,
    GoalFilters,
    GoalProgressUpdate,
    GoalReminderResponse,
    GoalResponse,
    GoalStatisticsResponse,
    GoalUpdate,
    MilestoneCreate,
    MilestoneResponse,
    MilestoneUpdate,
    PaginatedGoalResponse,
    SortOrder,
    UpcomingMilestoneResponse,
)
from goaltrack.services.goal_service import GoalService

router = APIRouter()


# Dependencies
async def get_goal_service(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> GoalService:
    """Get goal service instance."""
    return GoalService(db, clock=clock)


# Endpoints
@router.get("", response_model=PaginatedGoalResponse)
async def list_goals(
    user_id: UUID = Query(..., description="User ID"),
    status: Optional[list[str]] = Query(None, description="Filter by status (repeat or comma-separate)"),
    type: Optional[list[str]] = Query(None, description="Filter by goal type"),
    priority: Optional[list[str]] = Query(None, description="Filter by priority"),
    category: Optional[str] = Query(None, description="Filter by category"),
    is_overdue: Optional[bool] = Query(None),
    is_on_track: Optional[bool] = Query(None),
    needs_attention: Optional[bool] = Query(None),
    date_from: Optional[str] = Query(None, description="Deadline on or after"),
    date_to: Optional[str] = Query(None, description="Deadline on or before"),
    search: Optional[str] = Query(None, description="Search name, description and notes"),
    tags: Optional[list[str]] = Query(None, description="Match any of these tags"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: Optional[int] = Query(None, ge=1, description="Page size"),
    sort_by: str = Query("deadline", description="Sort field"),
    sort_order: SortOrder = Query(SortOrder.ASC, description="Sort direction"),
    service: GoalService = Depends(get_goal_service),
) -> PaginatedGoalResponse:
    """List goals for a user with filtering, sorting and pagination.

    Args:
        user_id: User ID
        page: Page number
        limit: Page size
        sort_by: Sort field
        sort_order: asc or desc
        service: Goal service

    Returns:
        Paginated goals with computed metrics

    Raises:
        HTTPException: 422 for malformed filters, 400 for invalid sort or paging
    """
    try:
        filters = GoalFilters(
            status=status,
            type=type,
            priority=priority,
            category=category,
            is_overdue=is_overdue,
            is_on_track=is_on_track,
            needs_attention=needs_attention,
            date_from=date_from,
            date_to=date_to,
            search=search,
            tags=tags,
        )
        result = await service.list_goals(
            user_id,
            filters=filters,
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        return PaginatedGoalResponse(
            items=[GoalResponse.from_details(d) for d in result.items],
            total=result.total,
            page=result.page,
            limit=result.limit,
            pages=result.pages,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=422, detail=e.errors(include_url=False, include_context=False)
        )
    except (GoalEngineError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to list goals: {str(e)}")


@router.post("", response_model=GoalResponse, status_code=201)
async def create_goal(
    goal: GoalCreate,
    user_id: UUID = Query(..., description="User ID"),
    service: GoalService = Depends(get_goal_service),
) -> GoalResponse:
    """Create a new goal.

    Args:
        goal: Goal data
        user_id: User ID
        service: Goal service

    Returns:
        Created goal

    Raises:
        HTTPException: If creation fails
    """
    try:
        created = await service.create_goal(user_id, goal)
        return GoalResponse.from_details(created)
    except (GoalEngineError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to create goal: {str(e)}")


@router.get("/statistics", response_model=GoalStatisticsResponse)
async def get_goal_statistics(
    user_id: UUID = Query(..., description="User ID"),
    service: GoalService = Depends(get_goal_service),
) -> GoalStatisticsResponse:
    """Aggregate statistics over all of a user's goals."""
    try:
        stats = await service.get_statistics(user_id)
        return GoalStatisticsResponse(
            total=stats.total,
            by_status=stats.by_status,
            by_type=stats.by_type,
            by_priority=stats.by_priority,
            total_target_amount=stats.total_target_amount,
            total_current_amount=stats.total_current_amount,
            overall_progress=stats.overall_progress,
            on_track=stats.on_track,
            needing_attention=stats.needing_attention,
            upcoming_milestones=[
                UpcomingMilestoneResponse(
                    goal_id=u.goal_id,
                    goal_name=u.goal_name,
                    **MilestoneResponse.model_validate(u.milestone).model_dump(),
                )
                for u in stats.upcoming_milestones
            ],
            recently_completed=[GoalResponse.from_details(d) for d in stats.recently_completed],
            expiring_soon=[GoalResponse.from_details(d) for d in stats.expiring_soon],
        )
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get goal statistics: {str(e)}")


@router.get("/reminders", response_model=GoalReminderResponse)
async def get_goal_reminders(
    user_id: UUID = Query(..., description="User ID"),
    service: GoalService = Depends(get_goal_service),
) -> GoalReminderResponse:
    """List the user's goals that are due for a reminder."""
    try:
        due = await service.get_goals_needing_reminders(user_id)
        return GoalReminderResponse(
            goals=[GoalResponse.from_details(d) for d in due],
            count=len(due),
        )
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get goal reminders: {str(e)}")


@router.post("/reminders/{goal_id}/sent", status_code=204)
async def mark_goal_reminder_sent(
    goal_id: UUID,
    user_id: UUID = Query(..., description="User ID"),
    service: GoalService = Depends(get_goal_service),
) -> Response:
    """Record that a reminder was sent for a goal.

    Raises:
        HTTPException: If goal not found
    """
    try:
        # Ownership check before stamping
        await service.get_goal(goal_id, user_id)
        await service.mark_reminder_sent(goal_id)
        return Response(status_code=204)
    except GoalNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to mark reminder sent: {str(e)}")


@router.delete("/bulk", response_model=BulkDeleteResponse)
async def bulk_delete_goals(
    request: BulkDeleteRequest,
    user_id: UUID = Query(..., description="User ID"),
    service: GoalService = Depends(get_goal_service),
) -> BulkDeleteResponse:
    """Delete several goals at once.

    Args:
        request: Goal IDs to delete
        user_id: User ID
        service: Goal service

    Returns:
        Number of goals actually deleted
    """
    try:
        deleted = await service.bulk_delete(request.goal_ids, user_id)
        return BulkDeleteResponse(deleted_count=deleted)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete goals: {str(e)}")


@router.get("/{goal_id}", response_model=GoalResponse)
async def get_goal(
    goal_id: UUID,
    user_id: UUID = Query(..., description="User ID"),
    service: GoalService = Depends(get_goal_service),
) -> GoalResponse:
    """Get a single goal by ID.

    Args:
        goal_id: Goal ID
        user_id: User ID
        service: Goal service

    Returns:
        Goal details

    Raises:
        HTTPException: If goal not found
    """
    try:
        details = await service.get_goal(goal_id, user_id)
        return GoalResponse.from_details(details)
    except GoalNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get goal: {str(e)}")


@router.put("/{goal_id}", response_model=GoalResponse)
async def update_goal(
    goal_id: UUID,
    goal_update: GoalUpdate,
    user_id: UUID = Query(..., description="User ID"),
    service: GoalService = Depends(get_goal_service),
) -> GoalResponse:
    """Update a goal.

    Args:
        goal_id: Goal ID
        goal_update: Fields to update
        user_id: User ID
        service: Goal service

    Returns:
        Updated goal

    Raises:
        HTTPException: If goal not found or update is invalid
    """
    try:
        updated = await service.update_goal(goal_id, user_id, goal_update)
        return GoalResponse.from_details(updated)
    except GoalNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (GoalEngineError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to update goal: {str(e)}")


@router.delete("/{goal_id}", status_code=204)
async def delete_goal(
    goal_id: UUID,
    user_id: UUID = Query(..., description="User ID"),
    service: GoalService = Depends(get_goal_service),
) -> Response:
    """Delete a goal with its milestones and progress history.

    Raises:
        HTTPException: If goal not found
    """
    try:
        await service.delete_goal(goal_id, user_id)
        return Response(status_code=204)
    except GoalNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete goal: {str(e)}")


@router.post("/{goal_id}/progress", response_model=GoalResponse)
async def record_goal_progress(
    goal_id: UUID,
    progress_update: GoalProgressUpdate,
    user_id: UUID = Query(..., description="User ID"),
    service: GoalService = Depends(get_goal_service),
) -> GoalResponse:
    """Record a signed progress amount against a goal.

    Args:
        goal_id: Goal ID
        progress_update: Progress data
        user_id: User ID
        service: Goal service

    Returns:
        Updated goal

    Raises:
        HTTPException: If goal not found
    """
    try:
        updated = await service.record_progress(
            goal_id,
            user_id,
            amount=progress_update.amount,
            source=progress_update.source,
            description=progress_update.description,
            transaction_id=progress_update.transaction_id,
        )
        return GoalResponse.from_details(updated)
    except GoalNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (GoalEngineError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to record goal progress: {str(e)}")


@router.post("/{goal_id}/progress/recalculate", response_model=GoalResponse)
async def recalculate_goal_progress(
    goal_id: UUID,
    user_id: UUID = Query(..., description="User ID"),
    service: GoalService = Depends(get_goal_service),
) -> GoalResponse:
    """Recompute an auto-tracked goal from transaction history.

    Raises:
        HTTPException: 404 if goal not found, 400 if auto-tracking is not enabled
    """
    try:
        updated = await service.recalculate_auto_progress(goal_id, user_id)
        return GoalResponse.from_details(updated)
    except GoalNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except GoalEngineError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to recalculate goal progress: {str(e)}")


@router.post("/{goal_id}/milestones", response_model=GoalResponse, status_code=201)
async def add_goal_milestone(
    goal_id: UUID,
    milestone: MilestoneCreate,
    user_id: UUID = Query(..., description="User ID"),
    service: GoalService = Depends(get_goal_service),
) -> GoalResponse:
    """Append a milestone to a goal."""
    try:
        updated = await service.add_milestone(goal_id, user_id, milestone)
        return GoalResponse.from_details(updated)
    except GoalNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to add milestone: {str(e)}")


@router.put("/{goal_id}/milestones/{index}", response_model=GoalResponse)
async def update_goal_milestone(
    goal_id: UUID,
    index: int,
    milestone_update: MilestoneUpdate,
    user_id: UUID = Query(..., description="User ID"),
    service: GoalService = Depends(get_goal_service),
) -> GoalResponse:
    """Update the milestone at ``index``.

    Raises:
        HTTPException: 404 if goal not found, 400 if the index is out of range
    """
    try:
        updated = await service.update_milestone(goal_id, user_id, index, milestone_update)
        return GoalResponse.from_details(updated)
    except GoalNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except GoalEngineError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to update milestone: {str(e)}")


@router.delete("/{goal_id}/milestones/{index}", response_model=GoalResponse)
async def delete_goal_milestone(
    goal_id: UUID,
    index: int,
    user_id: UUID = Query(..., description="User ID"),
    service: GoalService = Depends(get_goal_service),
) -> GoalResponse:
    """Remove the milestone at ``index``.

    Raises:
        HTTPException: 404 if goal not found, 400 if the index is out of range
    """
    try:
        updated = await service.delete_milestone(goal_id, user_id, index)
        return GoalResponse.from_details(updated)
    except GoalNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except GoalEngineError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete milestone: {str(e)}")
