"""Project hierarchy model definitions (Project > Phase > Deliverable > Task)."""
from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ProjectStatus(str, Enum):
    """Project lifecycle states."""

    NEW = "New"
    IN_PROGRESS = "In Progress"
    REVIEW = "Review"
    COMPLETED = "Completed"


class WorkStatus(str, Enum):
    """Derived status of phases and deliverables."""

    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


class ProjectCreate(BaseModel):
    """Project creation model."""

    name: str
    client: str = ""
    total_hours: float = Field(default=0, ge=0)
    project_value: float = Field(default=0, ge=0)
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    auto_status: bool = True


class Project(ProjectCreate):
    """Full project model with database fields."""

    id: str = Field(alias="_id", serialization_alias="id")
    status: ProjectStatus = ProjectStatus.NEW
    progress: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = {"populate_by_name": True}


class PhaseCreate(BaseModel):
    """Phase creation model."""

    name: str
    target_date: Optional[date] = None
    declarable_hours: Optional[float] = Field(default=None, ge=0)


class Phase(PhaseCreate):
    """Full phase model with database fields."""

    id: str = Field(alias="_id", serialization_alias="id")
    project_id: str
    status: WorkStatus = WorkStatus.PENDING
    progress: int = 0
    manual_seconds: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = {"populate_by_name": True}


class DeliverableCreate(BaseModel):
    """Deliverable creation model."""

    title: str
    phase_id: Optional[str] = None
    declarable_hours: float = Field(default=0, ge=0)
    target_date: Optional[date] = None


class Deliverable(DeliverableCreate):
    """Full deliverable model with database fields."""

    id: str = Field(alias="_id", serialization_alias="id")
    project_id: str
    status: WorkStatus = WorkStatus.PENDING
    progress: int = 0
    manual_seconds: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = {"populate_by_name": True}


class TaskCreate(BaseModel):
    """Task creation model."""

    title: str
    assigned_to: Optional[str] = None
    estimated_minutes: Optional[int] = Field(default=None, ge=0)


class Task(TaskCreate):
    """Full task model with database fields."""

    id: str = Field(alias="_id", serialization_alias="id")
    deliverable_id: str
    completed: bool = False
    completed_at: Optional[datetime] = None
    manual_seconds: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = {"populate_by_name": True}


class TaskToggle(BaseModel):
    """Request to set or flip a task's completed flag."""

    completed: Optional[bool] = None
