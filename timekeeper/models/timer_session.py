"""Timer session model definitions."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from timekeeper.models.entity_ref import EntityKind, EntityRef


class TimerSession(BaseModel):
    """One timed interval attributed to a task or a deliverable."""

    id: str = Field(alias="_id", serialization_alias="id")
    target: EntityRef
    project_id: str
    deliverable_id: str
    task_id: Optional[str] = None  # attributed task, set at start or finalize
    description: str = ""
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    duration_minutes: Optional[int] = None
    active: bool = True
    auto_closed: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = {"populate_by_name": True}


class TimerRequest(BaseModel):
    """Request model for start/pause/stop."""

    kind: EntityKind
    id: str
    description: str = ""
    at: Optional[datetime] = None

    @property
    def target(self) -> EntityRef:
        return EntityRef(kind=self.kind, id=self.id)


class TimerState(BaseModel):
    """What a client needs to render a timer."""

    session: Optional[TimerSession] = None
    running: bool = False
    elapsed_seconds: int = 0
    display: str = "0:00"
    tick_interval_seconds: int = 1
