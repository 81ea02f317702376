"""Report service - the derived project view read by UI and reporting consumers."""
from typing import Optional

from timekeeper.config import settings
from timekeeper.models.hierarchy import Deliverable, Phase
from timekeeper.models.report import DeliverableReport, PhaseReport, ProjectReport, TaskReport
from timekeeper.services import aggregation, efficiency, status_rules
from timekeeper.services.aggregation import ProjectSnapshot
from timekeeper.services.hierarchy_service import HierarchyService
from timekeeper.services.status_rules import StatusPolicy, ThresholdStatusPolicy
from timekeeper.services.status_service import CascadeResult, derive_statuses
from timekeeper.utils.time import format_duration


def build_report(
    snapshot: ProjectSnapshot,
    policy: Optional[StatusPolicy] = None,
) -> ProjectReport:
    """
    Assemble a ProjectReport from a snapshot.

    Statuses come from the cascade rules rather than the cached fields, so a
    report is correct even before the cached values have been written.
    """
    cascade = derive_statuses(
        snapshot, policy or ThresholdStatusPolicy(settings.status_review_threshold)
    )
    rate = efficiency.hourly_rate(snapshot.project)

    phases = [_phase_report(snapshot, cascade, p, rate) for p in snapshot.phases]
    standalone = [
        _deliverable_report(snapshot, cascade, d, rate)
        for d in snapshot.standalone_deliverables()
    ]

    seconds = aggregation.project_time(snapshot)
    declarable = efficiency.project_declarable_hours(snapshot.project, snapshot.deliverables)
    return ProjectReport(
        id=snapshot.project.id,
        name=snapshot.project.name,
        status=cascade.project_status,
        progress=cascade.project_progress,
        completed_tasks=cascade.completed_tasks,
        total_tasks=cascade.total_tasks,
        time_seconds=seconds,
        time_formatted=format_duration(seconds),
        efficiency=efficiency.efficiency_report(
            aggregation.seconds_to_hours(seconds), declarable, rate
        ),
        phases=phases,
        standalone_deliverables=standalone,
        active_session=snapshot.active_session(),
    )


def with_task_completed(
    report: ProjectReport,
    task_id: str,
    completed: Optional[bool] = None,
) -> ProjectReport:
    """
    Locally flip (or set) one task's flag in a cached report.

    Only the task and its deliverable's counts change; everything above is
    re-derived when the cache reloads.
    """
    deliverables = [d for p in report.phases for d in p.deliverables]
    deliverables += report.standalone_deliverables
    for deliverable in deliverables:
        for task in deliverable.tasks:
            if task.id != task_id:
                continue
            value = (not task.completed) if completed is None else completed
            if value != task.completed:
                task.completed = value
                deliverable.completed_tasks += 1 if value else -1
                deliverable.progress = status_rules.percentage(
                    deliverable.completed_tasks, deliverable.total_tasks
                )
            return report
    return report


def _deliverable_report(
    snapshot: ProjectSnapshot,
    cascade: CascadeResult,
    deliverable: Deliverable,
    rate: Optional[float],
) -> DeliverableReport:
    state = cascade.deliverables[deliverable.id]
    seconds = aggregation.deliverable_time(snapshot, deliverable)
    tasks = []
    for t in snapshot.tasks_of(deliverable.id):
        task_seconds = aggregation.task_time(snapshot, t)
        tasks.append(TaskReport(
            id=t.id,
            title=t.title,
            completed=t.completed,
            time_seconds=task_seconds,
            time_formatted=format_duration(task_seconds),
        ))

    return DeliverableReport(
        id=deliverable.id,
        title=deliverable.title,
        phase_id=deliverable.phase_id,
        status=state.status,
        progress=state.progress,
        completed_tasks=state.completed_tasks,
        total_tasks=state.total_tasks,
        time_seconds=seconds,
        time_formatted=format_duration(seconds),
        efficiency=efficiency.efficiency_report(
            aggregation.seconds_to_hours(seconds),
            efficiency.deliverable_declarable_hours(deliverable),
            rate,
        ),
        tasks=tasks,
    )


def _phase_report(
    snapshot: ProjectSnapshot,
    cascade: CascadeResult,
    phase: Phase,
    rate: Optional[float],
) -> PhaseReport:
    state = cascade.phases[phase.id]
    deliverables = snapshot.deliverables_of(phase.id)
    seconds = aggregation.phase_time(snapshot, phase)
    return PhaseReport(
        id=phase.id,
        name=phase.name,
        status=state.status,
        progress=state.progress,
        time_seconds=seconds,
        time_formatted=format_duration(seconds),
        efficiency=efficiency.efficiency_report(
            aggregation.seconds_to_hours(seconds),
            efficiency.phase_declarable_hours(phase, deliverables),
            rate,
        ),
        deliverables=[_deliverable_report(snapshot, cascade, d, rate) for d in deliverables],
    )


class ReportService:
    """Service that loads a project and builds its report."""

    def __init__(self, db, policy: Optional[StatusPolicy] = None):
        """Initialize service with database connection."""
        self.hierarchy = HierarchyService(db)
        self.policy = policy

    async def project_report(self, project_id: str) -> ProjectReport:
        snapshot = await self.hierarchy.load_snapshot(project_id)
        return build_report(snapshot, self.policy)
