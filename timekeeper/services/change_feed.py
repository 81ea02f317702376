"""Change feed listener - recompute derived values when rows change."""
import asyncio
import logging
from typing import Optional

from pymongo.errors import PyMongoError

from timekeeper.exceptions import EntityNotFoundError, PersistenceError
from timekeeper.services.report_service import ReportService
from timekeeper.services.status_service import StatusCascadeService
from timekeeper.services.view_cache import ReportCache

logger = logging.getLogger(__name__)

# Collections whose changes can move time, status or progress.
# The cascade's own writes (deliverables, phases, projects) are not watched.
WATCHED_COLLECTIONS = ("tasks", "timer_sessions", "manual_time_adjustments")


class ChangeFeedListener:
    """
    Consume MongoDB change stream events as cache-invalidation hints.

    An event never carries trusted derived values; it only names a project
    whose report must be re-derived. Event order does not matter because each
    recompute reads the current state of the whole project.
    """

    def __init__(self, db, cache: Optional[ReportCache] = None):
        """Initialize listener with database connection."""
        self.db = db
        self.cascade = StatusCascadeService(db)
        self.cache = cache or ReportCache(ReportService(db).project_report)
        self._task: Optional[asyncio.Task] = None

    async def handle_event(self, change: dict) -> Optional[str]:
        """
        Process one change event.

        Returns:
            The project id that was recomputed, or None if the event could
            not be tied to a project
        """
        collection = change.get("ns", {}).get("coll")
        if collection not in WATCHED_COLLECTIONS:
            return None

        project_id = await self._project_id(collection, change.get("fullDocument"))
        if project_id is None:
            logger.debug("Ignoring %s event on %s", change.get("operationType"), collection)
            return None

        self.cache.invalidate(project_id)
        try:
            await self.cascade.recompute_project(project_id)
        except EntityNotFoundError:
            logger.info("Project %s vanished before recompute", project_id)
            return None
        return project_id

    async def run(self) -> None:
        """Watch the database until cancelled."""
        pipeline = [{"$match": {"ns.coll": {"$in": list(WATCHED_COLLECTIONS)}}}]
        async with self.db.watch(pipeline, full_document="updateLookup") as stream:
            logger.info("Change feed listening on %s", ", ".join(WATCHED_COLLECTIONS))
            async for change in stream:
                try:
                    await self.handle_event(change)
                except (PersistenceError, PyMongoError):
                    logger.exception(
                        "Failed to handle %s event on %s; waiting for the next one",
                        change.get("operationType"),
                        change.get("ns", {}).get("coll"),
                    )

    def start(self) -> None:
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _project_id(self, collection: str, doc: Optional[dict]) -> Optional[str]:
        if not doc:
            return None
        if collection == "tasks":
            deliverable = await self.db["deliverables"].find_one({"_id": doc.get("deliverable_id")})
            return str(deliverable["project_id"]) if deliverable else None
        project_id = doc.get("project_id")
        return str(project_id) if project_id is not None else None
