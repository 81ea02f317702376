"""Tests for Pydantic models."""
import pytest
from datetime import date, datetime
from pydantic import ValidationError


class TestHierarchyModels:
    """Tests for project hierarchy models."""

    def test_project_status_enum_values(self):
        """Test ProjectStatus enum has correct values."""
        from timekeeper.models.hierarchy import ProjectStatus

        assert ProjectStatus.NEW.value == "New"
        assert ProjectStatus.IN_PROGRESS.value == "In Progress"
        assert ProjectStatus.REVIEW.value == "Review"
        assert ProjectStatus.COMPLETED.value == "Completed"

    def test_work_status_enum_values(self):
        """Test WorkStatus enum has correct values."""
        from timekeeper.models.hierarchy import WorkStatus

        assert WorkStatus.PENDING.value == "Pending"
        assert WorkStatus.IN_PROGRESS.value == "In Progress"
        assert WorkStatus.COMPLETED.value == "Completed"

    def test_project_create_minimal(self):
        """Test creating a project with only a name."""
        from timekeeper.models.hierarchy import ProjectCreate

        project = ProjectCreate(name="Website")

        assert project.name == "Website"
        assert project.client == ""
        assert project.total_hours == 0
        assert project.hourly_rate is None
        assert project.auto_status is True

    def test_project_create_rejects_negative_budget(self):
        """Test that budgeted hours cannot be negative."""
        from timekeeper.models.hierarchy import ProjectCreate

        with pytest.raises(ValidationError):
            ProjectCreate(name="Website", total_hours=-1)

    def test_project_full_model_alias(self):
        """Test Project populates id from _id and serializes it as id."""
        from timekeeper.models.hierarchy import Project

        now = datetime.utcnow()
        project = Project(_id="abc", name="Website", created_at=now, updated_at=now)

        assert project.id == "abc"
        assert project.model_dump(by_alias=True)["id"] == "abc"
        assert project.status.value == "New"
        assert project.progress == 0

    def test_deliverable_create_defaults(self):
        """Test deliverable defaults to standalone with no budget."""
        from timekeeper.models.hierarchy import DeliverableCreate

        deliverable = DeliverableCreate(title="Wireframes", target_date=date(2025, 4, 1))

        assert deliverable.phase_id is None
        assert deliverable.declarable_hours == 0
        assert deliverable.target_date == date(2025, 4, 1)

    def test_task_toggle_optional(self):
        """Test TaskToggle flips when no value is given."""
        from timekeeper.models.hierarchy import TaskToggle

        assert TaskToggle().completed is None
        assert TaskToggle(completed=True).completed is True


class TestEntityRef:
    """Tests for tagged entity references."""

    def test_collection_per_kind(self):
        from timekeeper.models.entity_ref import EntityKind, EntityRef

        assert EntityRef(kind=EntityKind.TASK, id="1").collection == "tasks"
        assert EntityRef(kind=EntityKind.DELIVERABLE, id="1").collection == "deliverables"
        assert EntityRef(kind=EntityKind.PHASE, id="1").collection == "phases"

    def test_kind_from_string(self):
        from timekeeper.models.entity_ref import EntityKind, EntityRef

        ref = EntityRef(kind="phase", id="p1")

        assert ref.kind == EntityKind.PHASE
        assert str(ref) == "phase:p1"

    def test_unknown_kind_rejected(self):
        from timekeeper.models.entity_ref import EntityRef

        with pytest.raises(ValidationError):
            EntityRef(kind="project", id="x")

    def test_refs_are_hashable(self):
        from timekeeper.models.entity_ref import EntityKind, EntityRef

        refs = {EntityRef(kind=EntityKind.TASK, id="1"), EntityRef(kind=EntityKind.TASK, id="1")}

        assert len(refs) == 1


class TestTimerModels:
    """Tests for timer request/state models."""

    def test_timer_request_target(self):
        from timekeeper.models.timer_session import TimerRequest

        request = TimerRequest(kind="deliverable", id="d1")

        assert request.target.kind.value == "deliverable"
        assert request.target.id == "d1"
        assert request.at is None

    def test_timer_state_defaults(self):
        from timekeeper.models.timer_session import TimerState

        state = TimerState()

        assert state.running is False
        assert state.elapsed_seconds == 0
        assert state.display == "0:00"


class TestManualTimeModels:
    """Tests for manual time models."""

    def test_adjustment_create_target(self):
        from timekeeper.models.manual_time import AdjustmentCreate

        adjustment = AdjustmentCreate(kind="task", id="t1", seconds=-120)

        assert adjustment.target.kind.value == "task"
        assert adjustment.seconds == -120
        assert adjustment.note == ""

    def test_manual_entry_defaults(self):
        from timekeeper.models.manual_time import ManualTimeEntry

        entry = ManualTimeEntry(kind="phase", id="p1", minutes=30)

        assert entry.hours == 0
        assert entry.minutes == 30
