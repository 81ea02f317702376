"""Timer service - the single global active timer and its sessions."""
import logging
from datetime import datetime, timedelta
from typing import Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from timekeeper.config import settings
from timekeeper.database import transaction
from timekeeper.exceptions import EntityNotFoundError, PersistenceError, TimerConflictError
from timekeeper.models.entity_ref import TIMER_KINDS, EntityKind, EntityRef
from timekeeper.models.timer_session import TimerSession, TimerState
from timekeeper.services.documents import doc_to_session
from timekeeper.services.hierarchy_service import TIMER_SLOT_ID
from timekeeper.utils.ids import to_object_id
from timekeeper.utils.time import format_clock, seconds_between, to_naive_utc, utcnow

logger = logging.getLogger(__name__)


def _lost_race(error: Optional[BaseException]) -> bool:
    """True for driver errors raised when a concurrent start wrote first."""
    if isinstance(error, DuplicateKeyError):
        return True
    return isinstance(error, PyMongoError) and error.has_error_label("TransientTransactionError")


class TimerService:
    """
    Service owning the one timer that may run at any moment.

    The ``timer_slot`` collection holds a single document pointing at the
    running session. Every start reads the slot, finalizes whatever is
    running and swaps the slot to the new session inside one transaction;
    the swap is conditional on the slot still holding the value read, so two
    concurrent starts cannot both succeed.
    """

    def __init__(
        self,
        db,
        max_session_hours: Optional[float] = None,
        tick_interval_seconds: Optional[int] = None,
    ):
        """Initialize service with database connection."""
        self.db = db
        self.sessions = db["timer_sessions"]
        self.timer_slot = db["timer_slot"]
        self.tasks = db["tasks"]
        self.deliverables = db["deliverables"]
        self.max_session_hours = (
            max_session_hours if max_session_hours is not None else settings.max_session_hours
        )
        self.tick_interval_seconds = (
            tick_interval_seconds if tick_interval_seconds is not None else settings.tick_interval_seconds
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(
        self,
        target: EntityRef,
        description: str = "",
        at: Optional[datetime] = None,
    ) -> TimerSession:
        """
        Start a timer on a task or deliverable.

        Any other running session is finalized first, ending at the new
        session's start time. Starting the entity that is already running
        returns its session unchanged.

        Args:
            target: Task or deliverable to time
            description: Optional description
            at: Optional start time (defaults to now)

        Returns:
            The running session

        Raises:
            ValueError: If the target kind cannot carry a timer
            EntityNotFoundError: If the target doesn't exist
            TimerConflictError: If another start won the race
        """
        if target.kind not in TIMER_KINDS:
            raise ValueError("Timers can only run on tasks or deliverables")
        start_time = to_naive_utc(at) if at else utcnow()

        try:
            return await self._start(target, description, start_time)
        except PersistenceError as e:
            # A concurrent start surfaces as a write conflict on the slot or
            # a duplicate on the one-active-session index
            if _lost_race(e.__cause__):
                raise TimerConflictError("Another timer was started at the same time") from e
            raise

    async def _start(self, target: EntityRef, description: str, start_time: datetime) -> TimerSession:
        async with transaction(self.db) as session:
            owner = await self._resolve_target(target, session)
            slot = await self._read_slot(session)
            observed = slot.get("session_id")

            running = await self.sessions.find({"active": True}, session=session).to_list(length=None)
            for doc in running:
                if doc["target_kind"] == target.kind.value and doc["target_id"] == owner["target_id"]:
                    return doc_to_session(doc)

            for doc in running:
                await self._finalize(doc, start_time, session)
                logger.info("Finalized session %s before starting %s", doc["_id"], target)

            now = utcnow()
            doc = {
                "target_kind": target.kind.value,
                "target_id": owner["target_id"],
                "project_id": owner["project_id"],
                "deliverable_id": owner["deliverable_id"],
                "task_id": owner["task_id"],
                "description": description or f"Timer for {owner['title']}",
                "start_time": start_time,
                "end_time": None,
                "duration_seconds": None,
                "duration_minutes": None,
                "active": True,
                "auto_closed": False,
                "created_at": now,
                "updated_at": now,
            }
            result = await self.sessions.insert_one(doc, session=session)
            doc["_id"] = result.inserted_id

            swapped = await self.timer_slot.find_one_and_update(
                {"_id": TIMER_SLOT_ID, "session_id": observed},
                {"$set": {"session_id": doc["_id"], "updated_at": now}},
                session=session,
            )
            if swapped is None:
                raise TimerConflictError("Another timer was started at the same time")

        logger.info("Started timer %s on %s", doc["_id"], target)
        return doc_to_session(doc)

    async def pause(self, target: EntityRef, at: Optional[datetime] = None) -> TimerState:
        """
        Finalize the running session of an entity.

        The returned state keeps the last elapsed value for display.

        Raises:
            ValueError: If no timer is running for the entity
        """
        finalized = await self._finalize_target(target, at)
        return TimerState(
            session=finalized,
            running=False,
            elapsed_seconds=finalized.duration_seconds,
            display=format_clock(finalized.duration_seconds),
            tick_interval_seconds=self.tick_interval_seconds,
        )

    async def stop(self, target: EntityRef, at: Optional[datetime] = None) -> TimerState:
        """Finalize like pause, but reset the displayed counter to zero."""
        finalized = await self._finalize_target(target, at)
        return TimerState(
            session=finalized,
            running=False,
            elapsed_seconds=0,
            display=format_clock(0),
            tick_interval_seconds=self.tick_interval_seconds,
        )

    async def reconcile_stale_sessions(self, at: Optional[datetime] = None) -> list[TimerSession]:
        """
        Finalize sessions left running longer than the maximum session age.

        Their end time is capped at start + max age and they are flagged
        ``auto_closed`` so they can be reviewed.

        Returns:
            The sessions that were closed
        """
        now = to_naive_utc(at) if at else utcnow()
        max_age = timedelta(hours=self.max_session_hours)
        stale = await self.sessions.find(
            {"active": True, "start_time": {"$lt": now - max_age}}
        ).to_list(length=None)

        closed = []
        for doc in stale:
            try:
                async with transaction(self.db) as session:
                    updated = await self._finalize(
                        doc, doc["start_time"] + max_age, session, auto_closed=True
                    )
                    await self._release_slot(doc["_id"], session)
            except TimerConflictError:
                logger.info("Session %s was finalized concurrently; skipping", doc["_id"])
                continue
            logger.warning(
                "Auto-closed orphaned session %s after %s hours",
                doc["_id"],
                self.max_session_hours,
            )
            closed.append(doc_to_session(updated))

        return closed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_current(self) -> Optional[TimerSession]:
        """Get the running session, if any."""
        doc = await self.sessions.find_one({"active": True})
        if not doc:
            return None
        return doc_to_session(doc)

    async def current_state(self, at: Optional[datetime] = None) -> TimerState:
        """Display state of the running timer, recomputed from its start time."""
        current = await self.get_current()
        if current is None:
            return TimerState(tick_interval_seconds=self.tick_interval_seconds)
        elapsed = self.elapsed_seconds(current, at)
        return TimerState(
            session=current,
            running=True,
            elapsed_seconds=elapsed,
            display=format_clock(elapsed),
            tick_interval_seconds=self.tick_interval_seconds,
        )

    def elapsed_seconds(self, timer_session: TimerSession, at: Optional[datetime] = None) -> int:
        """
        Seconds shown on a timer.

        Running sessions are always recomputed from their start time; the
        persisted duration is used once a session has been finalized.
        """
        if not timer_session.active and timer_session.duration_seconds is not None:
            return timer_session.duration_seconds
        return seconds_between(timer_session.start_time, at or utcnow())

    async def list_sessions(
        self,
        project_id: Optional[str] = None,
        target: Optional[EntityRef] = None,
        active: Optional[bool] = None,
    ) -> list[TimerSession]:
        """
        List sessions, most recent first.

        Args:
            project_id: Optional project filter
            target: Optional task or deliverable filter
            active: Optional running/finalized filter
        """
        query = {}
        if project_id:
            query["project_id"] = to_object_id(project_id, "Project")
        if target:
            query["target_kind"] = target.kind.value
            query["target_id"] = to_object_id(target.id, target.kind.value.capitalize())
        if active is not None:
            query["active"] = active

        cursor = self.sessions.find(query).sort("start_time", -1)
        docs = await cursor.to_list(length=None)
        return [doc_to_session(doc) for doc in docs]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _finalize_target(self, target: EntityRef, at: Optional[datetime]) -> TimerSession:
        end_time = to_naive_utc(at) if at else utcnow()
        target_oid = to_object_id(target.id, target.kind.value.capitalize())

        async with transaction(self.db) as session:
            doc = await self.sessions.find_one(
                {"target_kind": target.kind.value, "target_id": target_oid, "active": True},
                session=session,
            )
            if not doc:
                raise ValueError("No timer running")
            updated = await self._finalize(doc, end_time, session)
            await self._release_slot(doc["_id"], session)

        logger.info(
            "Finalized session %s on %s: %ss", updated["_id"], target, updated["duration_seconds"]
        )
        return doc_to_session(updated)

    async def _finalize(
        self,
        doc: dict,
        end_time: datetime,
        session,
        auto_closed: bool = False,
    ) -> dict:
        """
        Write the authoritative duration of a running session.

        The write is conditional on the session still being active, so a
        duration is only ever set once. Deliverable-level sessions are
        attributed to the deliverable's oldest task.
        """
        end_time = max(end_time, doc["start_time"])
        duration = seconds_between(doc["start_time"], end_time)
        update = {
            "end_time": end_time,
            "duration_seconds": duration,
            "duration_minutes": duration // 60,
            "active": False,
            "auto_closed": auto_closed,
            "updated_at": utcnow(),
        }

        if doc["target_kind"] == EntityKind.DELIVERABLE.value and doc.get("task_id") is None:
            top_task = await self.tasks.find_one(
                {"deliverable_id": doc["deliverable_id"]},
                sort=[("created_at", 1), ("_id", 1)],
                session=session,
            )
            if top_task:
                update["task_id"] = top_task["_id"]

        updated = await self.sessions.find_one_and_update(
            {"_id": doc["_id"], "active": True},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if updated is None:
            raise TimerConflictError("Session was already finalized")
        return updated

    async def _read_slot(self, session) -> dict:
        """Fetch the timer slot, creating it empty on first use."""
        await self.timer_slot.update_one(
            {"_id": TIMER_SLOT_ID},
            {"$setOnInsert": {"session_id": None, "updated_at": utcnow()}},
            upsert=True,
            session=session,
        )
        return await self.timer_slot.find_one({"_id": TIMER_SLOT_ID}, session=session)

    async def _release_slot(self, session_id: ObjectId, session) -> None:
        await self.timer_slot.update_one(
            {"_id": TIMER_SLOT_ID, "session_id": session_id},
            {"$set": {"session_id": None, "updated_at": utcnow()}},
            session=session,
        )

    async def _resolve_target(self, target: EntityRef, session) -> dict:
        """Look up the ids a session denormalizes from its target."""
        if target.kind == EntityKind.TASK:
            task = await self.tasks.find_one(
                {"_id": to_object_id(target.id, "Task")}, session=session
            )
            if not task:
                raise EntityNotFoundError("Task not found")
            deliverable = await self.deliverables.find_one(
                {"_id": task["deliverable_id"]}, session=session
            )
            if not deliverable:
                raise EntityNotFoundError("Deliverable not found")
            return {
                "target_id": task["_id"],
                "task_id": task["_id"],
                "deliverable_id": deliverable["_id"],
                "project_id": deliverable["project_id"],
                "title": task["title"],
            }

        deliverable = await self.deliverables.find_one(
            {"_id": to_object_id(target.id, "Deliverable")}, session=session
        )
        if not deliverable:
            raise EntityNotFoundError("Deliverable not found")
        return {
            "target_id": deliverable["_id"],
            "task_id": None,
            "deliverable_id": deliverable["_id"],
            "project_id": deliverable["project_id"],
            "title": deliverable["title"],
        }
