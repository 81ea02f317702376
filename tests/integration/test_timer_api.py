"""Integration tests for timer endpoints."""
import pytest
from bson import ObjectId
from datetime import datetime, timedelta


def at(t0, seconds):
    return (t0 + timedelta(seconds=seconds)).isoformat()


@pytest.mark.asyncio
class TestTimerStart:
    """Tests for starting a timer."""

    async def test_start_timer_success(self, app_client, hierarchy, t0):
        """Test starting a timer on a task."""
        task = hierarchy["tasks"][0]

        response = await app_client.post(
            "/timers/start",
            json={"kind": "task", "id": task.id, "description": "Sketching", "at": at(t0, 0)},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["target"] == {"kind": "task", "id": task.id}
        assert data["description"] == "Sketching"
        assert data["active"] is True
        assert data["end_time"] is None
        assert data["duration_seconds"] is None

    async def test_start_second_timer_finalizes_first(self, app_client, hierarchy, t0):
        """Test the running timer is closed when another one starts."""
        t1, t2 = hierarchy["tasks"][0], hierarchy["tasks"][1]
        first = await app_client.post(
            "/timers/start", json={"kind": "task", "id": t1.id, "at": at(t0, 0)}
        )

        await app_client.post("/timers/start", json={"kind": "task", "id": t2.id, "at": at(t0, 60)})

        response = await app_client.get("/timers", params={"kind": "task", "entity_id": t1.id})
        sessions = response.json()
        assert len(sessions) == 1
        assert sessions[0]["id"] == first.json()["id"]
        assert sessions[0]["active"] is False
        assert sessions[0]["duration_seconds"] == 60

        active = await app_client.get("/timers", params={"active": True})
        assert [s["target"]["id"] for s in active.json()] == [t2.id]

    async def test_start_on_phase_rejected(self, app_client, hierarchy):
        """Test phases cannot carry a timer."""
        response = await app_client.post(
            "/timers/start", json={"kind": "phase", "id": hierarchy["phase"].id}
        )

        assert response.status_code == 400

    async def test_start_unknown_task(self, app_client, hierarchy):
        """Test starting a timer on a missing task returns 404."""
        response = await app_client.post(
            "/timers/start", json={"kind": "task", "id": str(ObjectId())}
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "Task not found"

    async def test_start_conflict_returns_409(self, app_client, hierarchy, monkeypatch):
        """Test a lost start race is reported as a conflict."""
        from timekeeper.exceptions import TimerConflictError
        from timekeeper.services.timer_service import TimerService

        async def lost_race(self, target, description="", at=None):
            raise TimerConflictError("Another timer was started at the same time")

        monkeypatch.setattr(TimerService, "start", lost_race)

        response = await app_client.post(
            "/timers/start", json={"kind": "task", "id": hierarchy["tasks"][0].id}
        )

        assert response.status_code == 409

    async def test_storage_failure_returns_503(self, app_client, hierarchy, fake_db, t0):
        """Test a failed write leaves the previous timer running."""
        t1, t2 = hierarchy["tasks"][0], hierarchy["tasks"][1]
        await app_client.post("/timers/start", json={"kind": "task", "id": t1.id, "at": at(t0, 0)})
        fake_db["timer_sessions"].fail_on.add("insert_one")

        response = await app_client.post(
            "/timers/start", json={"kind": "task", "id": t2.id, "at": at(t0, 30)}
        )

        assert response.status_code == 503
        current = await app_client.get("/timers/current")
        assert current.json()["session"]["target"]["id"] == t1.id

    async def test_failed_recompute_keeps_started_timer(self, app_client, hierarchy, fake_db, t0):
        """Test a recompute failure after the start committed still reports the start."""
        task = hierarchy["tasks"][0]
        fake_db["projects"].fail_on.add("find_one")

        response = await app_client.post(
            "/timers/start", json={"kind": "task", "id": task.id, "at": at(t0, 0)}
        )

        assert response.status_code == 200
        assert response.json()["active"] is True
        fake_db["projects"].fail_on.clear()
        current = await app_client.get("/timers/current")
        assert current.json()["running"] is True
        assert current.json()["session"]["target"]["id"] == task.id

    async def test_failed_recompute_keeps_stopped_timer(self, app_client, hierarchy, fake_db, t0):
        """Test a stop stands even when the follow-up recompute fails."""
        task = hierarchy["tasks"][0]
        await app_client.post("/timers/start", json={"kind": "task", "id": task.id, "at": at(t0, 0)})
        fake_db["projects"].fail_on.add("find_one")

        response = await app_client.post(
            "/timers/stop", json={"kind": "task", "id": task.id, "at": at(t0, 90)}
        )

        assert response.status_code == 200
        assert response.json()["session"]["duration_seconds"] == 90
        current = await app_client.get("/timers/current")
        assert current.json()["running"] is False


@pytest.mark.asyncio
class TestTimerPauseStop:
    """Tests for pausing and stopping a timer."""

    async def test_pause_timer(self, app_client, hierarchy, t0):
        """Test pausing keeps the elapsed display."""
        task = hierarchy["tasks"][0]
        await app_client.post("/timers/start", json={"kind": "task", "id": task.id, "at": at(t0, 0)})

        response = await app_client.post(
            "/timers/pause", json={"kind": "task", "id": task.id, "at": at(t0, 125)}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["running"] is False
        assert data["elapsed_seconds"] == 125
        assert data["display"] == "2:05"
        assert data["session"]["duration_seconds"] == 125
        assert data["session"]["active"] is False

    async def test_stop_timer(self, app_client, hierarchy, t0):
        """Test stopping resets the display."""
        task = hierarchy["tasks"][0]
        await app_client.post("/timers/start", json={"kind": "task", "id": task.id, "at": at(t0, 0)})

        response = await app_client.post(
            "/timers/stop", json={"kind": "task", "id": task.id, "at": at(t0, 90)}
        )

        data = response.json()
        assert data["display"] == "0:00"
        assert data["session"]["duration_seconds"] == 90
        assert data["session"]["duration_minutes"] == 1

    async def test_stop_without_running_timer(self, app_client, hierarchy):
        """Test stopping when nothing runs returns 400."""
        response = await app_client.post(
            "/timers/stop", json={"kind": "task", "id": hierarchy["tasks"][0].id}
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "No timer running"

    async def test_timer_time_moves_deliverable_to_in_progress(self, app_client, hierarchy, t0):
        """Test finalized timer time starts an untouched deliverable."""
        task = hierarchy["tasks"][3]
        await app_client.post("/timers/start", json={"kind": "task", "id": task.id, "at": at(t0, 0)})
        await app_client.post("/timers/stop", json={"kind": "task", "id": task.id, "at": at(t0, 600)})

        response = await app_client.get(f"/deliverables/{hierarchy['launch'].id}")

        assert response.json()["status"] == "In Progress"

    async def test_running_timer_moves_deliverable_to_in_progress(self, app_client, hierarchy, t0):
        """Test a deliverable starts as soon as a timer runs on one of its tasks."""
        task = hierarchy["tasks"][3]
        await app_client.post("/timers/start", json={"kind": "task", "id": task.id, "at": at(t0, 0)})

        response = await app_client.get(f"/deliverables/{hierarchy['launch'].id}")

        assert response.json()["status"] == "In Progress"


@pytest.mark.asyncio
class TestTimerQueries:
    """Tests for current timer and session history."""

    async def test_current_when_idle(self, app_client, hierarchy):
        """Test idle state."""
        response = await app_client.get("/timers/current")

        assert response.status_code == 200
        data = response.json()
        assert data["running"] is False
        assert data["session"] is None

    async def test_current_when_running(self, app_client, hierarchy):
        """Test running state is recomputed from start."""
        started_at = datetime.utcnow() - timedelta(minutes=2)
        await app_client.post(
            "/timers/start",
            json={"kind": "task", "id": hierarchy["tasks"][0].id, "at": started_at.isoformat()},
        )

        response = await app_client.get("/timers/current")

        data = response.json()
        assert data["running"] is True
        assert data["elapsed_seconds"] >= 120

    async def test_list_by_project(self, app_client, hierarchy, t0):
        """Test listing sessions of a project."""
        await app_client.post(
            "/timers/start", json={"kind": "deliverable", "id": hierarchy["launch"].id, "at": at(t0, 0)}
        )

        response = await app_client.get("/timers", params={"project_id": hierarchy["project"].id})

        assert response.status_code == 200
        assert len(response.json()) == 1

    async def test_list_with_invalid_project(self, app_client, hierarchy):
        """Test an invalid project id returns 404."""
        response = await app_client.get("/timers", params={"project_id": "nope"})

        assert response.status_code == 404

    async def test_reconcile_closes_orphans(self, app_client, hierarchy):
        """Test sessions older than the maximum age are auto-closed."""
        started_at = datetime.utcnow() - timedelta(hours=48)
        await app_client.post(
            "/timers/start",
            json={"kind": "task", "id": hierarchy["tasks"][0].id, "at": started_at.isoformat()},
        )

        response = await app_client.post("/timers/reconcile")

        assert response.status_code == 200
        closed = response.json()
        assert len(closed) == 1
        assert closed[0]["auto_closed"] is True
        assert closed[0]["duration_seconds"] == 12 * 3600
