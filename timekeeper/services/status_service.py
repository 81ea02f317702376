"""Status cascade service - completion state flowing up from tasks to the project."""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from bson import ObjectId
from pymongo import ReturnDocument

from timekeeper.config import settings
from timekeeper.database import transaction
from timekeeper.exceptions import EntityNotFoundError, PersistenceError
from timekeeper.models.entity_ref import EntityKind, EntityRef
from timekeeper.models.hierarchy import ProjectStatus, Task, WorkStatus
from timekeeper.services import status_rules
from timekeeper.services.aggregation import ProjectSnapshot, deliverable_time
from timekeeper.services.documents import doc_to_task
from timekeeper.services.hierarchy_service import HierarchyService
from timekeeper.services.status_rules import StatusPolicy, ThresholdStatusPolicy
from timekeeper.services.view_cache import ReportCache
from timekeeper.utils.ids import to_object_id
from timekeeper.utils.time import to_naive_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass
class NodeState:
    status: WorkStatus
    progress: int
    completed_tasks: int
    total_tasks: int


@dataclass
class CascadeResult:
    """Derived status and progress of every node in one project."""

    project_status: ProjectStatus
    project_progress: int
    completed_tasks: int
    total_tasks: int
    deliverables: dict[str, NodeState] = field(default_factory=dict)
    phases: dict[str, NodeState] = field(default_factory=dict)


def derive_statuses(snapshot: ProjectSnapshot, policy: StatusPolicy) -> CascadeResult:
    """Compute the cascade for a snapshot without writing anything."""
    # A running timer counts as logged work before its first pause
    active = snapshot.active_session()
    running_on = active.deliverable_id if active else None

    deliverables = {}
    for d in snapshot.deliverables:
        tasks = snapshot.tasks_of(d.id)
        completed, total = status_rules.task_counts(tasks)
        logged = deliverable_time(snapshot, d) > 0 or d.id == running_on
        deliverables[d.id] = NodeState(
            status=status_rules.deliverable_status(tasks, logged),
            progress=status_rules.percentage(completed, total),
            completed_tasks=completed,
            total_tasks=total,
        )

    phases = {}
    for p in snapshot.phases:
        children = [deliverables[d.id] for d in snapshot.deliverables_of(p.id)]
        completed = sum(c.completed_tasks for c in children)
        total = sum(c.total_tasks for c in children)
        phases[p.id] = NodeState(
            status=status_rules.phase_status(c.status for c in children),
            progress=status_rules.percentage(completed, total),
            completed_tasks=completed,
            total_tasks=total,
        )

    completed, total = status_rules.task_counts(snapshot.tasks)
    progress = status_rules.percentage(completed, total)
    project = snapshot.project
    project_status = project.status
    if project.auto_status:
        project_status = policy.status_for(progress, project.status)

    return CascadeResult(
        project_status=project_status,
        project_progress=progress,
        completed_tasks=completed,
        total_tasks=total,
        deliverables=deliverables,
        phases=phases,
    )


class StatusCascadeService:
    """Service that keeps cached statuses and progress in step with task completion."""

    def __init__(self, db, policy: Optional[StatusPolicy] = None):
        """Initialize service with database connection."""
        self.db = db
        self.projects = db["projects"]
        self.phases = db["phases"]
        self.deliverables = db["deliverables"]
        self.tasks = db["tasks"]
        self.hierarchy = HierarchyService(db)
        self.policy = policy or ThresholdStatusPolicy(settings.status_review_threshold)

    async def toggle_task_completion(
        self,
        task_id: str,
        completed: Optional[bool] = None,
        at: Optional[datetime] = None,
    ) -> Task:
        """
        Flip (or set) a task's completed flag and cascade the result.

        The task write and every derived status write share one transaction,
        so a failure leaves the previous state untouched.

        Args:
            task_id: Task ID
            completed: Explicit value; None flips the current one
            at: Optional completion time (defaults to now)

        Returns:
            Updated task
        """
        oid = to_object_id(task_id, "Task")
        now = to_naive_utc(at) if at else utcnow()

        async with transaction(self.db) as session:
            task = await self.hierarchy.get_task(task_id, session=session)
            value = (not task.completed) if completed is None else completed
            updated = await self.tasks.find_one_and_update(
                {"_id": oid},
                {"$set": {
                    "completed": value,
                    "completed_at": now if value else None,
                    "updated_at": now,
                }},
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            project_id = await self.hierarchy.project_id_for(
                EntityRef(kind=EntityKind.TASK, id=task.id), session=session
            )
            await self._cascade(project_id, session)

        logger.info("Task %s marked %s", task_id, "completed" if value else "open")
        return doc_to_task(updated)

    async def recompute_project(self, project_id: str) -> CascadeResult:
        """Re-derive and persist every cached status and progress of a project."""
        async with transaction(self.db) as session:
            return await self._cascade(project_id, session)

    async def refresh_project(
        self,
        project_id: str,
        cache: Optional[ReportCache] = None,
    ) -> Optional[CascadeResult]:
        """
        Recompute a project after a write has already committed.

        The committed write stands either way. A failed recompute only leaves
        cached values stale until the next recompute, so it is logged rather
        than raised. The project's cached report is invalidated first.
        """
        if cache is not None:
            cache.invalidate(project_id)
        try:
            return await self.recompute_project(project_id)
        except PersistenceError:
            logger.exception("Recompute of project %s failed; cached values are stale", project_id)
        except EntityNotFoundError:
            logger.info("Project %s vanished before recompute", project_id)
        return None

    async def _cascade(self, project_id: str, session) -> CascadeResult:
        snapshot = await self.hierarchy.load_snapshot(project_id, session=session)
        result = derive_statuses(snapshot, self.policy)
        now = utcnow()

        for d in snapshot.deliverables:
            state = result.deliverables[d.id]
            if d.status != state.status or d.progress != state.progress:
                await self.deliverables.update_one(
                    {"_id": ObjectId(d.id)},
                    {"$set": {
                        "status": state.status.value,
                        "progress": state.progress,
                        "updated_at": now,
                    }},
                    session=session,
                )
                logger.debug("Deliverable %s -> %s (%s%%)", d.id, state.status.value, state.progress)

        for p in snapshot.phases:
            state = result.phases[p.id]
            if p.status != state.status or p.progress != state.progress:
                await self.phases.update_one(
                    {"_id": ObjectId(p.id)},
                    {"$set": {
                        "status": state.status.value,
                        "progress": state.progress,
                        "updated_at": now,
                    }},
                    session=session,
                )

        project = snapshot.project
        if project.status != result.project_status or project.progress != result.project_progress:
            await self.projects.update_one(
                {"_id": ObjectId(project.id)},
                {"$set": {
                    "status": result.project_status.value,
                    "progress": result.project_progress,
                    "updated_at": now,
                }},
                session=session,
            )
            if project.status != result.project_status:
                logger.info(
                    "Project %s status %s -> %s",
                    project.id,
                    project.status.value,
                    result.project_status.value,
                )

        return result
