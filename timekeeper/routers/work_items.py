"""Work item router - phases, deliverables and tasks."""
from fastapi import APIRouter, Depends, HTTPException, status

from timekeeper.database import get_database
from timekeeper.exceptions import EntityNotFoundError
from timekeeper.models.entity_ref import EntityKind, EntityRef
from timekeeper.models.hierarchy import (
    Deliverable,
    Phase,
    Task,
    TaskCreate,
    TaskToggle,
)
from timekeeper.services.hierarchy_service import HierarchyService
from timekeeper.services.report_service import with_task_completed
from timekeeper.services.status_service import StatusCascadeService
from timekeeper.services.view_cache import ReportCache, get_report_cache


router = APIRouter(tags=["work items"])


@router.get("/phases/{phase_id}", response_model=Phase)
async def get_phase(
    phase_id: str,
    db=Depends(get_database),
):
    """Get a phase by ID."""
    try:
        return await HierarchyService(db).get_phase(phase_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.delete("/phases/{phase_id}")
async def delete_phase(
    phase_id: str,
    db=Depends(get_database),
    cache: ReportCache = Depends(get_report_cache),
):
    """Delete a phase with its deliverables and tasks."""
    service = HierarchyService(db)
    try:
        phase = await service.get_phase(phase_id)
        result = await service.delete_phase(phase_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    await StatusCascadeService(db).refresh_project(phase.project_id, cache)
    return result


@router.get("/deliverables/{deliverable_id}", response_model=Deliverable)
async def get_deliverable(
    deliverable_id: str,
    db=Depends(get_database),
):
    """Get a deliverable by ID."""
    try:
        return await HierarchyService(db).get_deliverable(deliverable_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.delete("/deliverables/{deliverable_id}")
async def delete_deliverable(
    deliverable_id: str,
    db=Depends(get_database),
    cache: ReportCache = Depends(get_report_cache),
):
    """Delete a deliverable with its tasks."""
    service = HierarchyService(db)
    try:
        deliverable = await service.get_deliverable(deliverable_id)
        result = await service.delete_deliverable(deliverable_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    await StatusCascadeService(db).refresh_project(deliverable.project_id, cache)
    return result


@router.get("/deliverables/{deliverable_id}/tasks", response_model=list[Task])
async def list_tasks(
    deliverable_id: str,
    db=Depends(get_database),
):
    """List a deliverable's tasks in creation order."""
    try:
        return await HierarchyService(db).list_tasks(deliverable_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post(
    "/deliverables/{deliverable_id}/tasks",
    response_model=Task,
    status_code=status.HTTP_201_CREATED,
)
async def create_task(
    deliverable_id: str,
    task: TaskCreate,
    db=Depends(get_database),
    cache: ReportCache = Depends(get_report_cache),
):
    """
    Create a task.

    - A new open task moves a completed deliverable back to In Progress
    """
    service = HierarchyService(db)
    try:
        deliverable = await service.get_deliverable(deliverable_id)
        created = await service.create_task(deliverable_id, task)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    await StatusCascadeService(db).refresh_project(deliverable.project_id, cache)
    return created


@router.get("/tasks/{task_id}", response_model=Task)
async def get_task(
    task_id: str,
    db=Depends(get_database),
):
    """Get a task by ID."""
    try:
        return await HierarchyService(db).get_task(task_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.delete("/tasks/{task_id}")
async def delete_task(
    task_id: str,
    db=Depends(get_database),
    cache: ReportCache = Depends(get_report_cache),
):
    """Delete a task."""
    service = HierarchyService(db)
    try:
        project_id = await service.project_id_for(EntityRef(kind=EntityKind.TASK, id=task_id))
        result = await service.delete_task(task_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    await StatusCascadeService(db).refresh_project(project_id, cache)
    return result


@router.post("/tasks/{task_id}/toggle", response_model=Task)
async def toggle_task(
    task_id: str,
    toggle: TaskToggle,
    db=Depends(get_database),
    cache: ReportCache = Depends(get_report_cache),
):
    """
    Flip or set a task's completed flag.

    - Deliverable, phase and project status follow in the same transaction
    - The cached report shows the new flag at once and is put back if the write fails
    """
    service = StatusCascadeService(db)
    toggled = []

    async def submit(_report):
        toggled.append(await service.toggle_task_completion(task_id, completed=toggle.completed))

    try:
        project_id = await HierarchyService(db).project_id_for(
            EntityRef(kind=EntityKind.TASK, id=task_id)
        )
        await cache.optimistic(
            project_id,
            lambda report: with_task_completed(report, task_id, toggle.completed),
            submit,
        )
        return toggled[0]
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
