"""Manual time endpoints - adding and removing hand-entered time."""
from fastapi import APIRouter, Depends, HTTPException, status

from timekeeper.database import get_database
from timekeeper.exceptions import EntityNotFoundError
from timekeeper.models.entity_ref import EntityKind, EntityRef
from timekeeper.models.manual_time import (
    AdjustmentCreate,
    ManualTimeAdjustment,
    ManualTimeEntry,
    ManualTimeTotal,
)
from timekeeper.services.manual_time_service import ManualTimeService
from timekeeper.services.status_service import StatusCascadeService
from timekeeper.services.view_cache import ReportCache, get_report_cache


router = APIRouter(prefix="/manual-time", tags=["manual time"])


@router.post("", response_model=ManualTimeAdjustment, status_code=status.HTTP_201_CREATED)
async def apply_adjustment(
    adjustment: AdjustmentCreate,
    db=Depends(get_database),
    cache: ReportCache = Depends(get_report_cache),
):
    """
    Record a signed manual time adjustment.

    - Positive seconds add time (at least one minute)
    - Negative seconds remove time, never more than the current total
    """
    service = ManualTimeService(db)
    try:
        created = await service.apply_adjustment(
            adjustment.target,
            adjustment.seconds,
            note=adjustment.note,
        )
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    await StatusCascadeService(db).refresh_project(created.project_id, cache)
    return created


@router.post("/add", response_model=ManualTimeAdjustment, status_code=status.HTTP_201_CREATED)
async def add_time(
    entry: ManualTimeEntry,
    db=Depends(get_database),
    cache: ReportCache = Depends(get_report_cache),
):
    """
    Add time entered as hours and minutes.

    - Hours 0-23, minutes 0-59, at least one minute in total
    """
    service = ManualTimeService(db)
    try:
        created = await service.add_time(
            entry.target,
            hours=entry.hours,
            minutes=entry.minutes,
            note=entry.note,
        )
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    await StatusCascadeService(db).refresh_project(created.project_id, cache)
    return created


@router.get("/{kind}/{entity_id}", response_model=ManualTimeTotal)
async def get_total(
    kind: EntityKind,
    entity_id: str,
    db=Depends(get_database),
):
    """Running manual total of a task, deliverable or phase."""
    service = ManualTimeService(db)
    try:
        return await service.get_total(EntityRef(kind=kind, id=entity_id))
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/{kind}/{entity_id}/history", response_model=list[ManualTimeAdjustment])
async def list_adjustments(
    kind: EntityKind,
    entity_id: str,
    db=Depends(get_database),
):
    """Ledger history of an entity, newest first."""
    service = ManualTimeService(db)
    try:
        return await service.list_adjustments(EntityRef(kind=kind, id=entity_id))
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
