"""Project router - projects, their phases and deliverables, and reports."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from timekeeper.database import get_database
from timekeeper.exceptions import EntityNotFoundError
from timekeeper.models.hierarchy import (
    Deliverable,
    DeliverableCreate,
    Phase,
    PhaseCreate,
    Project,
    ProjectCreate,
    ProjectStatus,
)
from timekeeper.models.report import ProjectReport
from timekeeper.services.hierarchy_service import HierarchyService
from timekeeper.services.status_service import StatusCascadeService
from timekeeper.services.view_cache import ReportCache, get_report_cache


router = APIRouter(prefix="/projects", tags=["projects"])


@router.post("", response_model=Project, status_code=status.HTTP_201_CREATED)
async def create_project(
    project: ProjectCreate,
    db=Depends(get_database),
):
    """Create a new project."""
    service = HierarchyService(db)
    return await service.create_project(project)


@router.get("", response_model=list[Project])
async def list_projects(
    project_status: Optional[ProjectStatus] = Query(None, alias="status"),
    db=Depends(get_database),
):
    """List projects, optionally filtered by status."""
    service = HierarchyService(db)
    return await service.list_projects(status=project_status)


@router.get("/{project_id}", response_model=Project)
async def get_project(
    project_id: str,
    db=Depends(get_database),
):
    """Get a project by ID."""
    service = HierarchyService(db)
    try:
        return await service.get_project(project_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    db=Depends(get_database),
    cache: ReportCache = Depends(get_report_cache),
):
    """
    Delete a project.

    - Cascades to phases, deliverables, tasks, timer sessions and manual time
    """
    service = HierarchyService(db)
    try:
        result = await service.delete_project(project_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    cache.invalidate(project_id)
    return result


@router.post("/{project_id}/phases", response_model=Phase, status_code=status.HTTP_201_CREATED)
async def create_phase(
    project_id: str,
    phase: PhaseCreate,
    db=Depends(get_database),
    cache: ReportCache = Depends(get_report_cache),
):
    """Create a phase in a project."""
    service = HierarchyService(db)
    try:
        created = await service.create_phase(project_id, phase)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    cache.invalidate(project_id)
    return created


@router.post(
    "/{project_id}/deliverables",
    response_model=Deliverable,
    status_code=status.HTTP_201_CREATED,
)
async def create_deliverable(
    project_id: str,
    deliverable: DeliverableCreate,
    db=Depends(get_database),
    cache: ReportCache = Depends(get_report_cache),
):
    """
    Create a deliverable in a project.

    - Optional phase must belong to the same project
    """
    service = HierarchyService(db)
    try:
        created = await service.create_deliverable(project_id, deliverable)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    await StatusCascadeService(db).refresh_project(project_id, cache)
    return created


@router.get("/{project_id}/report", response_model=ProjectReport)
async def get_project_report(
    project_id: str,
    cache: ReportCache = Depends(get_report_cache),
):
    """
    Rolled-up time, status, progress and efficiency of a project.

    - Served from the shared report cache, re-derived after any change
    """
    try:
        return await cache.get(project_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/{project_id}/recompute", response_model=ProjectReport)
async def recompute_project(
    project_id: str,
    db=Depends(get_database),
    cache: ReportCache = Depends(get_report_cache),
):
    """Re-derive and store cached statuses and progress, then return the report."""
    try:
        await StatusCascadeService(db).recompute_project(project_id)
        cache.invalidate(project_id)
        return await cache.get(project_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
