"""Tests for goal API endpoints."""

from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import AsyncClient

NOW = datetime(2024, 6, 1, 12, 0, 0)


def goal_payload(**overrides) -> dict:
    payload = {
        "name": "Emergency Fund",
        "type": "savings",
        "target_amount": "1000.00",
        "deadline": (NOW + timedelta(days=100)).isoformat(),
    }
    payload.update(overrides)
    return payload


async def create_goal(client: AsyncClient, user_id, **overrides) -> dict:
    response = await client.post(f"/api/goals?user_id={user_id}", json=goal_payload(**overrides))
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
class TestGoalRoutes:
    """Test goal CRUD endpoints."""

    async def test_create_goal_success(self, async_client: AsyncClient, user_id):
        """Test successful goal creation."""
        response = await async_client.post(
            f"/api/goals?user_id={user_id}",
            json=goal_payload(
                initial_amount="100.00",
                currency="eur",
                tags=["home", "home", "family"],
                milestones=[
                    {
                        "name": "First step",
                        "target_amount": "250.00",
                        "target_date": (NOW + timedelta(days=30)).isoformat(),
                    }
                ],
            ),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["name"] == "Emergency Fund"
        assert data["status"] == "draft"
        assert data["currency"] == "EUR"
        assert data["tags"] == ["home", "family"]
        assert Decimal(data["current_amount"]) == Decimal("100")
        assert data["progress_percentage"] == 0.0
        assert data["days_remaining"] == 100
        assert data["milestones"][0]["position"] == 0
        assert data["next_milestone"]["name"] == "First step"
        assert "id" in data

    async def test_create_goal_invalid_target_amount(self, async_client: AsyncClient, user_id):
        """Test a non-positive target is rejected by validation."""
        response = await async_client.post(
            f"/api/goals?user_id={user_id}", json=goal_payload(target_amount="0")
        )

        assert response.status_code == 422

    async def test_create_goal_deadline_before_start(self, async_client: AsyncClient, user_id):
        """Test a deadline before the start date is rejected."""
        response = await async_client.post(
            f"/api/goals?user_id={user_id}",
            json=goal_payload(
                start_date=NOW.isoformat(), deadline=(NOW - timedelta(days=1)).isoformat()
            ),
        )

        assert response.status_code == 422

    async def test_create_goal_deadline_in_past(self, async_client: AsyncClient, user_id):
        """Test a deadline before the default start date is a bad request."""
        response = await async_client.post(
            f"/api/goals?user_id={user_id}",
            json=goal_payload(deadline=(NOW - timedelta(days=1)).isoformat()),
        )

        assert response.status_code == 400

    async def test_create_goal_missing_user_id(self, async_client: AsyncClient):
        """Test the owner is required."""
        response = await async_client.post("/api/goals", json=goal_payload())

        assert response.status_code == 422

    async def test_get_goal(self, async_client: AsyncClient, user_id):
        """Test getting a goal by ID."""
        goal = await create_goal(async_client, user_id)

        response = await async_client.get(f"/api/goals/{goal['id']}?user_id={user_id}")

        assert response.status_code == 200
        assert response.json()["id"] == goal["id"]

    async def test_get_goal_not_found(self, async_client: AsyncClient, user_id):
        """Test getting a missing goal."""
        response = await async_client.get(f"/api/goals/{uuid4()}?user_id={user_id}")

        assert response.status_code == 404

    async def test_get_goal_other_user(self, async_client: AsyncClient, user_id):
        """Test another user's goal is hidden."""
        goal = await create_goal(async_client, user_id)

        response = await async_client.get(f"/api/goals/{goal['id']}?user_id={uuid4()}")

        assert response.status_code == 404

    async def test_update_goal(self, async_client: AsyncClient, user_id):
        """Test updating a goal's status and name."""
        goal = await create_goal(async_client, user_id)

        response = await async_client.put(
            f"/api/goals/{goal['id']}?user_id={user_id}",
            json={"name": "Rainy day fund", "status": "paused"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Rainy day fund"
        assert data["status"] == "paused"
        assert data["paused_date"] == NOW.isoformat()

    async def test_update_goal_invalid_status(self, async_client: AsyncClient, user_id):
        """Test an unknown status is rejected by validation."""
        goal = await create_goal(async_client, user_id)

        response = await async_client.put(
            f"/api/goals/{goal['id']}?user_id={user_id}", json={"status": "archived"}
        )

        assert response.status_code == 422

    async def test_delete_goal(self, async_client: AsyncClient, user_id):
        """Test deleting a goal."""
        goal = await create_goal(async_client, user_id)

        response = await async_client.delete(f"/api/goals/{goal['id']}?user_id={user_id}")
        assert response.status_code == 204

        response = await async_client.get(f"/api/goals/{goal['id']}?user_id={user_id}")
        assert response.status_code == 404

    async def test_delete_goal_not_found(self, async_client: AsyncClient, user_id):
        """Test deleting a missing goal."""
        response = await async_client.delete(f"/api/goals/{uuid4()}?user_id={user_id}")

        assert response.status_code == 404

    async def test_bulk_delete(self, async_client: AsyncClient, user_id):
        """Test deleting several goals reports the count."""
        first = await create_goal(async_client, user_id, name="First")
        second = await create_goal(async_client, user_id, name="Second")

        response = await async_client.request(
            "DELETE",
            f"/api/goals/bulk?user_id={user_id}",
            json={"goal_ids": [first["id"], second["id"], str(uuid4())]},
        )

        assert response.status_code == 200
        assert response.json() == {"deleted_count": 2}


@pytest.mark.asyncio
class TestGoalListRoutes:
    """Test the goal listing endpoint."""

    async def test_list_goals_paginated(self, async_client: AsyncClient, user_id):
        """Test paging metadata."""
        for i in range(3):
            await create_goal(
                async_client, user_id, name=f"Goal {i}",
                deadline=(NOW + timedelta(days=10 + i)).isoformat(),
            )

        response = await async_client.get(f"/api/goals?user_id={user_id}&limit=2&page=1")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["pages"] == 2
        assert data["limit"] == 2
        assert [g["name"] for g in data["items"]] == ["Goal 0", "Goal 1"]

    async def test_list_goals_filters(self, async_client: AsyncClient, user_id):
        """Test repeated and comma-separated filter values."""
        await create_goal(async_client, user_id, name="Draft")
        await create_goal(async_client, user_id, name="Active", status="active", tags=["home"])
        await create_goal(async_client, user_id, name="Paused", status="paused")

        by_status = await async_client.get(
            f"/api/goals?user_id={user_id}&status=active&status=paused&sort_by=name"
        )
        by_csv = await async_client.get(
            f"/api/goals?user_id={user_id}&status=active,paused&sort_by=name&sort_order=desc"
        )
        by_tag = await async_client.get(f"/api/goals?user_id={user_id}&tags=home")

        assert [g["name"] for g in by_status.json()["items"]] == ["Active", "Paused"]
        assert [g["name"] for g in by_csv.json()["items"]] == ["Paused", "Active"]
        assert [g["name"] for g in by_tag.json()["items"]] == ["Active"]

    async def test_list_goals_invalid_status(self, async_client: AsyncClient, user_id):
        """Test an unknown status filter is rejected."""
        response = await async_client.get(f"/api/goals?user_id={user_id}&status=archived")

        assert response.status_code == 422

    async def test_list_goals_invalid_sort(self, async_client: AsyncClient, user_id):
        """Test an unknown sort field is a bad request."""
        response = await async_client.get(f"/api/goals?user_id={user_id}&sort_by=password")

        assert response.status_code == 400


@pytest.mark.asyncio
class TestGoalProgressRoutes:
    """Test progress and milestone endpoints."""

    async def test_record_progress(self, async_client: AsyncClient, user_id):
        """Test recording progress returns the updated goal."""
        goal = await create_goal(async_client, user_id)

        response = await async_client.post(
            f"/api/goals/{goal['id']}/progress?user_id={user_id}",
            json={"amount": "300.00", "description": "Bonus"},
        )

        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["current_amount"]) == Decimal("300")
        assert data["progress_percentage"] == 30.0
        assert data["status"] == "active"
        assert data["progress_history"][0]["source"] == "manual"
        assert data["progress_history"][0]["description"] == "Bonus"

    async def test_record_progress_completes_goal(self, async_client: AsyncClient, user_id):
        """Test crossing the target completes the goal."""
        goal = await create_goal(async_client, user_id, status="active", initial_amount="950.00")

        response = await async_client.post(
            f"/api/goals/{goal['id']}/progress?user_id={user_id}", json={"amount": "100.00"}
        )

        data = response.json()
        assert Decimal(data["current_amount"]) == Decimal("1050")
        assert data["status"] == "completed"
        assert data["completed_date"] == NOW.isoformat()

    async def test_record_progress_invalid_source(self, async_client: AsyncClient, user_id):
        """Test an unknown progress source is rejected."""
        goal = await create_goal(async_client, user_id)

        response = await async_client.post(
            f"/api/goals/{goal['id']}/progress?user_id={user_id}",
            json={"amount": "10.00", "source": "bank"},
        )

        assert response.status_code == 422

    async def test_record_progress_not_found(self, async_client: AsyncClient, user_id):
        """Test recording progress on a missing goal."""
        response = await async_client.post(
            f"/api/goals/{uuid4()}/progress?user_id={user_id}", json={"amount": "10.00"}
        )

        assert response.status_code == 404

    async def test_recalculate_without_auto_track(self, async_client: AsyncClient, user_id):
        """Test recalculation on a manual goal is a bad request."""
        goal = await create_goal(async_client, user_id)

        response = await async_client.post(
            f"/api/goals/{goal['id']}/progress/recalculate?user_id={user_id}"
        )

        assert response.status_code == 400

    async def test_milestone_endpoints(self, async_client: AsyncClient, user_id):
        """Test adding, updating and deleting milestones."""
        goal = await create_goal(async_client, user_id)
        base = f"/api/goals/{goal['id']}/milestones"
        milestone = {
            "name": "Quarter",
            "target_amount": "250.00",
            "target_date": (NOW + timedelta(days=30)).isoformat(),
        }

        added = await async_client.post(f"{base}?user_id={user_id}", json=milestone)
        assert added.status_code == 201
        assert len(added.json()["milestones"]) == 1

        updated = await async_client.put(f"{base}/0?user_id={user_id}", json={"name": "25%"})
        assert updated.status_code == 200
        assert updated.json()["milestones"][0]["name"] == "25%"

        out_of_range = await async_client.put(f"{base}/5?user_id={user_id}", json={"name": "x"})
        assert out_of_range.status_code == 400

        deleted = await async_client.delete(f"{base}/0?user_id={user_id}")
        assert deleted.status_code == 200
        assert deleted.json()["milestones"] == []


@pytest.mark.asyncio
class TestGoalInsightRoutes:
    """Test statistics and reminder endpoints."""

    async def test_statistics(self, async_client: AsyncClient, user_id):
        """Test statistics aggregate the user's goals."""
        await create_goal(
            async_client,
            user_id,
            status="active",
            milestones=[
                {
                    "name": "Half",
                    "target_amount": "500.00",
                    "target_date": (NOW + timedelta(days=10)).isoformat(),
                }
            ],
        )
        await create_goal(async_client, user_id, name="Idea")

        response = await async_client.get(f"/api/goals/statistics?user_id={user_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert data["by_status"]["active"] == 1
        assert data["by_status"]["draft"] == 1
        assert data["upcoming_milestones"][0]["name"] == "Half"
        assert data["upcoming_milestones"][0]["goal_name"] == "Emergency Fund"

    async def test_reminders(self, async_client: AsyncClient, user_id, clock):
        """Test listing and acknowledging reminders."""
        goal = await create_goal(async_client, user_id, status="active")

        due = await async_client.get(f"/api/goals/reminders?user_id={user_id}")
        assert due.json()["count"] == 1

        sent = await async_client.post(f"/api/goals/reminders/{goal['id']}/sent?user_id={user_id}")
        assert sent.status_code == 204

        due = await async_client.get(f"/api/goals/reminders?user_id={user_id}")
        assert due.json() == {"goals": [], "count": 0}

        clock.advance(days=7)
        due = await async_client.get(f"/api/goals/reminders?user_id={user_id}")
        assert due.json()["count"] == 1

    async def test_mark_reminder_other_user(self, async_client: AsyncClient, user_id):
        """Test another user cannot acknowledge a reminder."""
        goal = await create_goal(async_client, user_id, status="active")

        response = await async_client.post(
            f"/api/goals/reminders/{goal['id']}/sent?user_id={uuid4()}"
        )

        assert response.status_code == 404


@pytest.mark.asyncio
class TestServiceEndpoints:
    """Test root and health endpoints."""

    async def test_root(self, async_client: AsyncClient):
        """Test the root endpoint."""
        response = await async_client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "running"

    async def test_health(self, async_client: AsyncClient):
        """Test the health endpoints and request metadata headers."""
        response = await async_client.get("/health", headers={"X-Request-ID": "abc-123"})

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.headers["X-Request-ID"] == "abc-123"
        assert "X-Process-Time" in response.headers

        live = await async_client.get("/health/live")
        assert live.json() == {"status": "alive"}
