"""Timer endpoints - time tracking operations."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from timekeeper.database import get_database
from timekeeper.exceptions import EntityNotFoundError
from timekeeper.models.entity_ref import EntityKind, EntityRef
from timekeeper.models.timer_session import TimerRequest, TimerSession, TimerState
from timekeeper.services.status_service import StatusCascadeService
from timekeeper.services.view_cache import ReportCache, get_report_cache
from timekeeper.services.timer_service import TimerService


router = APIRouter(prefix="/timers", tags=["timers"])


@router.post("/start", response_model=TimerSession)
async def start_timer(
    timer: TimerRequest,
    db=Depends(get_database),
    cache: ReportCache = Depends(get_report_cache),
):
    """
    Start a timer on a task or deliverable.

    - Only one timer runs at a time; a running timer is finalized first
    - Returns 409 if a concurrent start won
    """
    service = TimerService(db)
    try:
        started = await service.start(
            timer.target,
            description=timer.description,
            at=timer.at,
        )
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    await StatusCascadeService(db).refresh_project(started.project_id, cache)
    return started


@router.post("/pause", response_model=TimerState)
async def pause_timer(
    timer: TimerRequest,
    db=Depends(get_database),
    cache: ReportCache = Depends(get_report_cache),
):
    """
    Pause the running timer of an entity.

    - Keeps the last elapsed value for display
    """
    service = TimerService(db)
    try:
        state = await service.pause(timer.target, at=timer.at)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    await StatusCascadeService(db).refresh_project(state.session.project_id, cache)
    return state


@router.post("/stop", response_model=TimerState)
async def stop_timer(
    timer: TimerRequest,
    db=Depends(get_database),
    cache: ReportCache = Depends(get_report_cache),
):
    """
    Stop the running timer of an entity.

    - Resets the displayed counter to zero
    """
    service = TimerService(db)
    try:
        state = await service.stop(timer.target, at=timer.at)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    await StatusCascadeService(db).refresh_project(state.session.project_id, cache)
    return state


@router.get("/current", response_model=TimerState)
async def get_current_timer(
    db=Depends(get_database),
):
    """
    Get the running timer, if any.

    - Elapsed time is recomputed from the start time on every call
    """
    service = TimerService(db)
    return await service.current_state()


@router.get("", response_model=list[TimerSession])
async def list_sessions(
    project_id: Optional[str] = Query(None),
    kind: Optional[EntityKind] = Query(None),
    entity_id: Optional[str] = Query(None),
    active: Optional[bool] = Query(None),
    db=Depends(get_database),
):
    """
    List timer sessions.

    - Optional filters: project_id, kind + entity_id, active
    - Results sorted by start_time descending (most recent first)
    """
    target = None
    if kind and entity_id:
        target = EntityRef(kind=kind, id=entity_id)

    service = TimerService(db)
    try:
        return await service.list_sessions(project_id=project_id, target=target, active=active)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/reconcile", response_model=list[TimerSession])
async def reconcile_sessions(
    db=Depends(get_database),
    cache: ReportCache = Depends(get_report_cache),
):
    """
    Finalize orphaned sessions older than the maximum session age.

    - Closed sessions are flagged auto_closed
    """
    closed = await TimerService(db).reconcile_stale_sessions()
    cascade = StatusCascadeService(db)
    for project_id in {s.project_id for s in closed}:
        await cascade.refresh_project(project_id, cache)
    return closed
