"""Manual time service - the append-only ledger of hand-entered time."""
import logging
from typing import Optional

from pymongo import ReturnDocument

from timekeeper.config import settings
from timekeeper.database import transaction
from timekeeper.exceptions import (
    EntityNotFoundError,
    InsufficientBalanceError,
    InvariantViolationError,
)
from timekeeper.models.entity_ref import EntityKind, EntityRef
from timekeeper.models.manual_time import ManualTimeAdjustment, ManualTimeTotal
from timekeeper.services.documents import doc_to_adjustment
from timekeeper.utils.ids import to_object_id
from timekeeper.utils.time import format_duration, utcnow

logger = logging.getLogger(__name__)

MAX_ENTRY_HOURS = 23
MAX_ENTRY_MINUTES = 59


class ManualTimeService:
    """
    Service for manual time adjustments.

    The ledger rows are the source of truth. Each task, deliverable and phase
    also carries ``manual_seconds``, a cached running total that is updated in
    the same transaction as the row it summarizes.
    """

    def __init__(self, db, min_manual_seconds: Optional[int] = None):
        """Initialize service with database connection."""
        self.db = db
        self.adjustments = db["manual_time_adjustments"]
        self.min_manual_seconds = (
            min_manual_seconds if min_manual_seconds is not None else settings.min_manual_seconds
        )

    async def apply_adjustment(
        self,
        target: EntityRef,
        signed_seconds: int,
        note: str = "",
    ) -> ManualTimeAdjustment:
        """
        Append a signed adjustment and update the entity's running total.

        Args:
            target: Task, deliverable or phase
            signed_seconds: Positive to add time, negative to remove it
            note: Optional free-text note

        Returns:
            The appended adjustment

        Raises:
            ValueError: If the amount is zero or a sub-minute addition
            InsufficientBalanceError: If a removal exceeds the running total
            EntityNotFoundError: If the target doesn't exist
        """
        if signed_seconds == 0:
            raise ValueError("Adjustment must not be zero")
        if 0 < signed_seconds < self.min_manual_seconds:
            raise ValueError("At least 1 minute must be added")

        collection = self.db[target.collection]
        target_oid = to_object_id(target.id, target.kind.value.capitalize())

        async with transaction(self.db) as session:
            entity = await collection.find_one({"_id": target_oid}, session=session)
            if not entity:
                raise EntityNotFoundError(f"{target.kind.value.capitalize()} not found")

            balance = entity.get("manual_seconds", 0)
            if signed_seconds < 0 and -signed_seconds > balance:
                raise InsufficientBalanceError(
                    f"Cannot remove {format_duration(-signed_seconds)}; "
                    f"only {format_duration(balance)} recorded"
                )

            now = utcnow()
            doc = {
                "target_kind": target.kind.value,
                "target_id": target_oid,
                "project_id": await self._project_oid(target, entity, session),
                "seconds": signed_seconds,
                "note": note.strip(),
                "created_at": now,
            }
            result = await self.adjustments.insert_one(doc, session=session)
            doc["_id"] = result.inserted_id

            # Guarded on the balance so a concurrent removal cannot overdraw
            updated = await collection.find_one_and_update(
                {"_id": target_oid, "manual_seconds": {"$gte": max(0, -signed_seconds)}},
                {"$inc": {"manual_seconds": signed_seconds}, "$set": {"updated_at": now}},
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if updated is None:
                raise InsufficientBalanceError("Balance changed while removing time")

        logger.info(
            "Applied %+ds manual time to %s (total %ss)",
            signed_seconds,
            target,
            updated["manual_seconds"],
        )
        return doc_to_adjustment(doc)

    async def add_time(
        self,
        target: EntityRef,
        hours: int,
        minutes: int,
        note: str = "",
    ) -> ManualTimeAdjustment:
        """
        Add time entered as hours and minutes.

        Raises:
            ValueError: If hours/minutes are out of range or total under a minute
        """
        if not 0 <= hours <= MAX_ENTRY_HOURS or not 0 <= minutes <= MAX_ENTRY_MINUTES:
            raise ValueError("Hours must be between 0-23 and minutes between 0-59")
        if hours * 60 + minutes < 1:
            raise ValueError("At least 1 minute must be added")
        return await self.apply_adjustment(target, (hours * 60 + minutes) * 60, note)

    async def remove_time(
        self,
        target: EntityRef,
        seconds: int,
        note: str = "",
    ) -> ManualTimeAdjustment:
        """Remove time by appending a negative adjustment."""
        if seconds <= 0:
            raise ValueError("Amount to remove must be positive")
        return await self.apply_adjustment(target, -seconds, note)

    async def current_total(self, target: EntityRef, recompute: bool = False) -> int:
        """
        Running manual total of an entity.

        Args:
            target: Task, deliverable or phase
            recompute: Sum the ledger instead of reading the cached total
        """
        target_oid = to_object_id(target.id, target.kind.value.capitalize())
        if recompute:
            docs = await self.adjustments.find(
                {"target_kind": target.kind.value, "target_id": target_oid}
            ).to_list(length=None)
            return sum(d["seconds"] for d in docs)

        entity = await self.db[target.collection].find_one({"_id": target_oid})
        if not entity:
            raise EntityNotFoundError(f"{target.kind.value.capitalize()} not found")
        return entity.get("manual_seconds", 0)

    async def get_total(self, target: EntityRef) -> ManualTimeTotal:
        seconds = await self.current_total(target)
        return ManualTimeTotal(target=target, seconds=seconds, formatted=format_duration(seconds))

    async def verify_total(self, target: EntityRef) -> int:
        """
        Check the cached total against the ledger.

        Raises:
            InvariantViolationError: If they differ or the total is negative
        """
        cached = await self.current_total(target)
        ledger = await self.current_total(target, recompute=True)
        if cached != ledger:
            raise InvariantViolationError(
                f"Manual total of {target} is {cached}s but ledger sums to {ledger}s"
            )
        if cached < 0:
            raise InvariantViolationError(f"Manual total of {target} is negative")
        return cached

    async def list_adjustments(self, target: EntityRef) -> list[ManualTimeAdjustment]:
        """Ledger history of an entity, newest first."""
        cursor = self.adjustments.find({
            "target_kind": target.kind.value,
            "target_id": to_object_id(target.id, target.kind.value.capitalize()),
        }).sort("created_at", -1)
        docs = await cursor.to_list(length=None)
        return [doc_to_adjustment(doc) for doc in docs]

    async def _project_oid(self, target: EntityRef, entity: dict, session):
        if target.kind in (EntityKind.PHASE, EntityKind.DELIVERABLE):
            return entity["project_id"]
        deliverable = await self.db["deliverables"].find_one(
            {"_id": entity["deliverable_id"]}, session=session
        )
        if not deliverable:
            raise EntityNotFoundError("Deliverable not found")
        return deliverable["project_id"]
