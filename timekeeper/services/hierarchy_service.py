"""Hierarchy service - projects, phases, deliverables and tasks."""
import logging
from typing import Optional

from bson import ObjectId

from timekeeper.database import transaction
from timekeeper.exceptions import EntityNotFoundError
from timekeeper.models.entity_ref import EntityKind, EntityRef
from timekeeper.models.hierarchy import (
    Deliverable,
    DeliverableCreate,
    Phase,
    PhaseCreate,
    Project,
    ProjectCreate,
    ProjectStatus,
    Task,
    TaskCreate,
    WorkStatus,
)
from timekeeper.services.aggregation import ProjectSnapshot
from timekeeper.services.documents import (
    date_to_datetime,
    doc_to_deliverable,
    doc_to_phase,
    doc_to_project,
    doc_to_session,
    doc_to_task,
)
from timekeeper.utils.ids import to_object_id
from timekeeper.utils.time import utcnow

logger = logging.getLogger(__name__)

TIMER_SLOT_ID = "active_timer"


class HierarchyService:
    """Service for creating, reading and deleting the project hierarchy."""

    def __init__(self, db):
        """Initialize service with database connection."""
        self.db = db
        self.projects = db["projects"]
        self.phases = db["phases"]
        self.deliverables = db["deliverables"]
        self.tasks = db["tasks"]
        self.sessions = db["timer_sessions"]
        self.adjustments = db["manual_time_adjustments"]
        self.timer_slot = db["timer_slot"]

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def create_project(self, project_create: ProjectCreate) -> Project:
        now = utcnow()
        doc = {
            "name": project_create.name,
            "client": project_create.client,
            "total_hours": project_create.total_hours,
            "project_value": project_create.project_value,
            "hourly_rate": project_create.hourly_rate,
            "auto_status": project_create.auto_status,
            "status": ProjectStatus.NEW.value,
            "progress": 0,
            "created_at": now,
            "updated_at": now,
        }
        result = await self.projects.insert_one(doc)
        doc["_id"] = result.inserted_id
        logger.info("Created project %s", doc["_id"])
        return doc_to_project(doc)

    async def get_project(self, project_id: str, session=None) -> Project:
        doc = await self.projects.find_one(
            {"_id": to_object_id(project_id, "Project")}, session=session
        )
        if not doc:
            raise EntityNotFoundError("Project not found")
        return doc_to_project(doc)

    async def list_projects(self, status: Optional[ProjectStatus] = None) -> list[Project]:
        query = {}
        if status:
            query["status"] = status.value
        cursor = self.projects.find(query).sort("created_at", 1)
        docs = await cursor.to_list(length=None)
        return [doc_to_project(doc) for doc in docs]

    async def delete_project(self, project_id: str) -> dict:
        """Delete a project and everything that belongs to it."""
        oid = to_object_id(project_id, "Project")
        await self.get_project(project_id)

        async with transaction(self.db) as session:
            deliverable_ids = await self._ids(self.deliverables, {"project_id": oid}, session)
            task_ids = await self._ids(
                self.tasks, {"deliverable_id": {"$in": deliverable_ids}}, session
            )
            await self._release_slot_if_owned({"project_id": oid}, session)
            await self.sessions.delete_many({"project_id": oid}, session=session)
            await self.adjustments.delete_many({"project_id": oid}, session=session)
            await self.tasks.delete_many({"_id": {"$in": task_ids}}, session=session)
            await self.deliverables.delete_many({"project_id": oid}, session=session)
            await self.phases.delete_many({"project_id": oid}, session=session)
            result = await self.projects.delete_one({"_id": oid}, session=session)

        logger.info("Deleted project %s", project_id)
        return {"deleted_count": result.deleted_count}

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def create_phase(self, project_id: str, phase_create: PhaseCreate) -> Phase:
        project = await self.get_project(project_id)
        now = utcnow()
        doc = {
            "project_id": ObjectId(project.id),
            "name": phase_create.name,
            "target_date": date_to_datetime(phase_create.target_date),
            "declarable_hours": phase_create.declarable_hours,
            "status": WorkStatus.PENDING.value,
            "progress": 0,
            "manual_seconds": 0,
            "created_at": now,
            "updated_at": now,
        }
        result = await self.phases.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc_to_phase(doc)

    async def get_phase(self, phase_id: str, session=None) -> Phase:
        doc = await self.phases.find_one(
            {"_id": to_object_id(phase_id, "Phase")}, session=session
        )
        if not doc:
            raise EntityNotFoundError("Phase not found")
        return doc_to_phase(doc)

    async def delete_phase(self, phase_id: str) -> dict:
        """
        Delete a phase with its deliverables, tasks, sessions and ledger rows.
        """
        phase = await self.get_phase(phase_id)
        oid = ObjectId(phase.id)

        async with transaction(self.db) as session:
            deliverable_ids = await self._ids(self.deliverables, {"phase_id": oid}, session)
            await self._delete_deliverables(deliverable_ids, session)
            await self.adjustments.delete_many(
                {"target_kind": EntityKind.PHASE.value, "target_id": oid}, session=session
            )
            result = await self.phases.delete_one({"_id": oid}, session=session)

        return {"deleted_count": result.deleted_count}

    # ------------------------------------------------------------------
    # Deliverables
    # ------------------------------------------------------------------

    async def create_deliverable(
        self,
        project_id: str,
        deliverable_create: DeliverableCreate,
    ) -> Deliverable:
        """
        Create a deliverable, optionally inside one of the project's phases.

        Raises:
            EntityNotFoundError: If the project or phase doesn't exist
            ValueError: If the phase belongs to another project
        """
        project = await self.get_project(project_id)
        phase_oid = None
        if deliverable_create.phase_id:
            phase = await self.get_phase(deliverable_create.phase_id)
            if phase.project_id != project.id:
                raise ValueError("Phase belongs to a different project")
            phase_oid = ObjectId(phase.id)

        now = utcnow()
        doc = {
            "project_id": ObjectId(project.id),
            "phase_id": phase_oid,
            "title": deliverable_create.title,
            "declarable_hours": deliverable_create.declarable_hours,
            "target_date": date_to_datetime(deliverable_create.target_date),
            "status": WorkStatus.PENDING.value,
            "progress": 0,
            "manual_seconds": 0,
            "created_at": now,
            "updated_at": now,
        }
        result = await self.deliverables.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc_to_deliverable(doc)

    async def get_deliverable(self, deliverable_id: str, session=None) -> Deliverable:
        doc = await self.deliverables.find_one(
            {"_id": to_object_id(deliverable_id, "Deliverable")}, session=session
        )
        if not doc:
            raise EntityNotFoundError("Deliverable not found")
        return doc_to_deliverable(doc)

    async def delete_deliverable(self, deliverable_id: str) -> dict:
        deliverable = await self.get_deliverable(deliverable_id)
        async with transaction(self.db) as session:
            deleted = await self._delete_deliverables([ObjectId(deliverable.id)], session)
        return {"deleted_count": deleted}

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def create_task(self, deliverable_id: str, task_create: TaskCreate) -> Task:
        deliverable = await self.get_deliverable(deliverable_id)
        now = utcnow()
        doc = {
            "deliverable_id": ObjectId(deliverable.id),
            "title": task_create.title,
            "assigned_to": task_create.assigned_to,
            "estimated_minutes": task_create.estimated_minutes,
            "completed": False,
            "completed_at": None,
            "manual_seconds": 0,
            "created_at": now,
            "updated_at": now,
        }
        result = await self.tasks.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc_to_task(doc)

    async def get_task(self, task_id: str, session=None) -> Task:
        doc = await self.tasks.find_one(
            {"_id": to_object_id(task_id, "Task")}, session=session
        )
        if not doc:
            raise EntityNotFoundError("Task not found")
        return doc_to_task(doc)

    async def list_tasks(self, deliverable_id: str) -> list[Task]:
        cursor = self.tasks.find(
            {"deliverable_id": to_object_id(deliverable_id, "Deliverable")}
        ).sort("created_at", 1)
        docs = await cursor.to_list(length=None)
        return [doc_to_task(doc) for doc in docs]

    async def delete_task(self, task_id: str) -> dict:
        """
        Delete a task.

        Deliverable-level sessions that had been attributed to this task fall
        back to the deliverable so their time is not lost.
        """
        task = await self.get_task(task_id)
        oid = ObjectId(task.id)

        async with transaction(self.db) as session:
            task_sessions = {"target_kind": EntityKind.TASK.value, "target_id": oid}
            await self._release_slot_if_owned(task_sessions, session)
            await self.sessions.delete_many(task_sessions, session=session)
            await self.sessions.update_many(
                {"target_kind": EntityKind.DELIVERABLE.value, "task_id": oid},
                {"$set": {"task_id": None, "updated_at": utcnow()}},
                session=session,
            )
            await self.adjustments.delete_many(
                {"target_kind": EntityKind.TASK.value, "target_id": oid}, session=session
            )
            result = await self.tasks.delete_one({"_id": oid}, session=session)

        return {"deleted_count": result.deleted_count}

    # ------------------------------------------------------------------
    # Lookups used by the engine
    # ------------------------------------------------------------------

    async def project_id_for(self, ref: EntityRef, session=None) -> str:
        """Resolve the project that owns a task, deliverable or phase."""
        if ref.kind == EntityKind.PHASE:
            return (await self.get_phase(ref.id, session=session)).project_id
        if ref.kind == EntityKind.DELIVERABLE:
            return (await self.get_deliverable(ref.id, session=session)).project_id
        task = await self.get_task(ref.id, session=session)
        return (await self.get_deliverable(task.deliverable_id, session=session)).project_id

    async def load_snapshot(self, project_id: str, session=None) -> ProjectSnapshot:
        """Fetch every row of a project for the aggregator and cascade."""
        project = await self.get_project(project_id, session=session)
        oid = ObjectId(project.id)

        phase_docs = await self.phases.find({"project_id": oid}, session=session).to_list(length=None)
        deliverable_docs = await self.deliverables.find(
            {"project_id": oid}, session=session
        ).to_list(length=None)
        task_docs = await self.tasks.find(
            {"deliverable_id": {"$in": [d["_id"] for d in deliverable_docs]}},
            session=session,
        ).to_list(length=None)
        session_docs = await self.sessions.find(
            {"project_id": oid}, session=session
        ).to_list(length=None)

        return ProjectSnapshot(
            project=project,
            phases=[doc_to_phase(d) for d in phase_docs],
            deliverables=[doc_to_deliverable(d) for d in deliverable_docs],
            tasks=[doc_to_task(d) for d in task_docs],
            sessions=[doc_to_session(d) for d in session_docs],
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _ids(self, collection, query: dict, session) -> list[ObjectId]:
        docs = await collection.find(query, {"_id": 1}, session=session).to_list(length=None)
        return [d["_id"] for d in docs]

    async def _delete_deliverables(self, deliverable_ids: list[ObjectId], session) -> int:
        if not deliverable_ids:
            return 0
        task_ids = await self._ids(
            self.tasks, {"deliverable_id": {"$in": deliverable_ids}}, session
        )
        owned_sessions = {"deliverable_id": {"$in": deliverable_ids}}
        await self._release_slot_if_owned(owned_sessions, session)
        await self.sessions.delete_many(owned_sessions, session=session)
        await self.adjustments.delete_many(
            {"$or": [
                {"target_kind": EntityKind.TASK.value, "target_id": {"$in": task_ids}},
                {"target_kind": EntityKind.DELIVERABLE.value, "target_id": {"$in": deliverable_ids}},
            ]},
            session=session,
        )
        await self.tasks.delete_many({"_id": {"$in": task_ids}}, session=session)
        result = await self.deliverables.delete_many(
            {"_id": {"$in": deliverable_ids}}, session=session
        )
        return result.deleted_count

    async def _release_slot_if_owned(self, session_query: dict, session) -> None:
        """Free the global timer slot when the running session is about to be deleted."""
        running = await self.sessions.find_one({**session_query, "active": True}, session=session)
        if running:
            await self.timer_slot.update_one(
                {"_id": TIMER_SLOT_ID, "session_id": running["_id"]},
                {"$set": {"session_id": None, "updated_at": utcnow()}},
                session=session,
            )
            logger.info("Released timer slot held by deleted session %s", running["_id"])
