"""Integration tests for manual time endpoints."""
import pytest
from bson import ObjectId


@pytest.mark.asyncio
class TestManualTimeAdd:
    """Tests for adding and removing manual time."""

    async def test_add_remove_and_overdraw(self, app_client, hierarchy):
        """Test 1h30m in, 40m out, then an overdraw that is refused."""
        task_id = hierarchy["tasks"][2].id

        added = await app_client.post(
            "/manual-time/add", json={"kind": "task", "id": task_id, "hours": 1, "minutes": 30}
        )
        removed = await app_client.post(
            "/manual-time", json={"kind": "task", "id": task_id, "seconds": -2400}
        )
        refused = await app_client.post(
            "/manual-time", json={"kind": "task", "id": task_id, "seconds": -4000}
        )

        assert added.status_code == 201
        assert added.json()["seconds"] == 5400
        assert removed.status_code == 201
        assert refused.status_code == 400

        total = await app_client.get(f"/manual-time/task/{task_id}")
        assert total.json()["seconds"] == 3000
        assert total.json()["formatted"] == "50m"

    async def test_add_out_of_range(self, app_client, hierarchy):
        """Test hours above 23 are rejected."""
        response = await app_client.post(
            "/manual-time/add",
            json={"kind": "task", "id": hierarchy["tasks"][0].id, "hours": 24},
        )

        assert response.status_code == 400
        assert "0-23" in response.json()["detail"]

    async def test_add_nothing(self, app_client, hierarchy):
        """Test an empty entry is rejected."""
        response = await app_client.post(
            "/manual-time/add", json={"kind": "phase", "id": hierarchy["phase"].id}
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "At least 1 minute must be added"

    async def test_zero_adjustment(self, app_client, hierarchy):
        """Test a zero adjustment is rejected."""
        response = await app_client.post(
            "/manual-time", json={"kind": "task", "id": hierarchy["tasks"][0].id, "seconds": 0}
        )

        assert response.status_code == 400

    async def test_unknown_target(self, app_client, hierarchy):
        """Test adjusting a missing deliverable returns 404."""
        response = await app_client.post(
            "/manual-time", json={"kind": "deliverable", "id": str(ObjectId()), "seconds": 600}
        )

        assert response.status_code == 404

    async def test_unknown_kind(self, app_client, hierarchy):
        """Test only tasks, deliverables and phases carry manual time."""
        response = await app_client.post(
            "/manual-time", json={"kind": "project", "id": hierarchy["project"].id, "seconds": 600}
        )

        assert response.status_code == 422


@pytest.mark.asyncio
class TestManualTimeRead:
    """Tests for totals and history."""

    async def test_history(self, app_client, hierarchy):
        """Test the ledger history lists every accepted row."""
        phase_id = hierarchy["phase"].id
        await app_client.post(
            "/manual-time/add",
            json={"kind": "phase", "id": phase_id, "hours": 2, "note": "workshop"},
        )
        await app_client.post(
            "/manual-time", json={"kind": "phase", "id": phase_id, "seconds": -600}
        )

        response = await app_client.get(f"/manual-time/phase/{phase_id}/history")

        assert response.status_code == 200
        rows = response.json()
        assert sorted(r["seconds"] for r in rows) == [-600, 7200]
        assert all(r["project_id"] == hierarchy["project"].id for r in rows)

    async def test_total_of_missing_entity(self, app_client, hierarchy):
        """Test reading the total of a missing task returns 404."""
        response = await app_client.get(f"/manual-time/task/{ObjectId()}")

        assert response.status_code == 404

    async def test_manual_time_shows_in_report(self, app_client, hierarchy):
        """Test manual time at each level is added to the rollup."""
        await app_client.post(
            "/manual-time/add",
            json={"kind": "task", "id": hierarchy["tasks"][0].id, "minutes": 30},
        )
        await app_client.post(
            "/manual-time/add",
            json={"kind": "deliverable", "id": hierarchy["wireframes"].id, "minutes": 15},
        )
        await app_client.post(
            "/manual-time/add", json={"kind": "phase", "id": hierarchy["phase"].id, "hours": 1}
        )

        response = await app_client.get(f"/projects/{hierarchy['project'].id}/report")

        report = response.json()
        phase = report["phases"][0]
        wireframes = phase["deliverables"][0]
        assert wireframes["tasks"][0]["time_seconds"] == 1800
        assert wireframes["time_seconds"] == 2700
        assert phase["time_seconds"] == 6300
        assert report["time_seconds"] == 6300
        assert wireframes["status"] == "In Progress"
