"""
Hierarchical duration aggregation.

Pure functions over an already loaded ProjectSnapshot; nothing here touches
the database. Time rolls up Task -> Deliverable -> Phase -> Project, and the
manual time recorded at each level is added on top of the rollup of its
children rather than replacing it.

Only finalized timer sessions count. A running session has no authoritative
duration until it is paused or stopped.
"""
from dataclasses import dataclass, field
from typing import Iterable, Optional

from timekeeper.models.entity_ref import EntityKind
from timekeeper.models.hierarchy import Deliverable, Phase, Project, Task
from timekeeper.models.timer_session import TimerSession


@dataclass
class ProjectSnapshot:
    """Every row belonging to one project, fetched in one go."""

    project: Project
    phases: list[Phase] = field(default_factory=list)
    deliverables: list[Deliverable] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    sessions: list[TimerSession] = field(default_factory=list)

    def tasks_of(self, deliverable_id: str) -> list[Task]:
        """Tasks of a deliverable in creation order."""
        tasks = [t for t in self.tasks if t.deliverable_id == deliverable_id]
        return sorted(tasks, key=lambda t: t.created_at)

    def deliverables_of(self, phase_id: str) -> list[Deliverable]:
        return [d for d in self.deliverables if d.phase_id == phase_id]

    def standalone_deliverables(self) -> list[Deliverable]:
        """Deliverables not attached to any phase of this project."""
        phase_ids = {p.id for p in self.phases}
        return [d for d in self.deliverables if d.phase_id not in phase_ids]

    def find_task(self, task_id: str) -> Optional[Task]:
        return next((t for t in self.tasks if t.id == task_id), None)

    def find_deliverable(self, deliverable_id: str) -> Optional[Deliverable]:
        return next((d for d in self.deliverables if d.id == deliverable_id), None)

    def find_phase(self, phase_id: Optional[str]) -> Optional[Phase]:
        return next((p for p in self.phases if p.id == phase_id), None)

    def active_session(self) -> Optional[TimerSession]:
        return next((s for s in self.sessions if s.active), None)


def finalized_seconds(sessions: Iterable[TimerSession]) -> int:
    """Sum of authoritative durations, skipping sessions still running."""
    return sum(
        s.duration_seconds
        for s in sessions
        if not s.active and s.duration_seconds is not None
    )


def task_time(snapshot: ProjectSnapshot, task: Task) -> int:
    """Timer seconds attributed to the task plus its manual total."""
    sessions = [s for s in snapshot.sessions if s.task_id == task.id]
    return finalized_seconds(sessions) + task.manual_seconds


def unattributed_deliverable_seconds(snapshot: ProjectSnapshot, deliverable: Deliverable) -> int:
    """
    Deliverable-level timer seconds that never reached a task.

    Deliverable sessions are normally attributed to the oldest task when they
    are finalized; a deliverable without tasks keeps them for itself.
    """
    sessions = [
        s for s in snapshot.sessions
        if s.target.kind == EntityKind.DELIVERABLE
        and s.target.id == deliverable.id
        and s.task_id is None
    ]
    return finalized_seconds(sessions)


def deliverable_time(snapshot: ProjectSnapshot, deliverable: Deliverable) -> int:
    tasks_total = sum(task_time(snapshot, t) for t in snapshot.tasks_of(deliverable.id))
    return (
        tasks_total
        + unattributed_deliverable_seconds(snapshot, deliverable)
        + deliverable.manual_seconds
    )


def phase_time(snapshot: ProjectSnapshot, phase: Phase) -> int:
    deliverables_total = sum(
        deliverable_time(snapshot, d) for d in snapshot.deliverables_of(phase.id)
    )
    return deliverables_total + phase.manual_seconds


def project_time(snapshot: ProjectSnapshot) -> int:
    """All phases plus every deliverable that sits outside a phase."""
    phases_total = sum(phase_time(snapshot, p) for p in snapshot.phases)
    standalone_total = sum(
        deliverable_time(snapshot, d) for d in snapshot.standalone_deliverables()
    )
    return phases_total + standalone_total


def seconds_to_hours(seconds: int) -> float:
    return seconds / 3600
