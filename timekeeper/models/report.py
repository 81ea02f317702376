"""Derived report models consumed by UI, reporting and AI-context collaborators."""
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from timekeeper.models.hierarchy import ProjectStatus, WorkStatus
from timekeeper.models.timer_session import TimerSession


class EfficiencyZone(str, Enum):
    """Budget zones for an efficiency percentage (actual / declarable)."""

    NOT_STARTED = "not_started"
    VERY_EFFICIENT = "very_efficient"
    ON_BUDGET = "on_budget"
    SLIGHTLY_OVER = "slightly_over_budget"
    OVER_BUDGET = "over_budget"
    UNDEFINED = "undefined"


class BudgetProjection(BaseModel):
    """Currency values derived from hours and an hourly rate."""

    hourly_rate: float
    declarable_value: float
    actual_value: float
    variance: float  # positive when under budget


class EfficiencyReport(BaseModel):
    """Budget comparison for one node of the hierarchy."""

    declarable_hours: float
    actual_hours: float
    efficiency: Optional[float] = None
    formatted: str = "N/A"
    zone: EfficiencyZone = EfficiencyZone.UNDEFINED
    projection: Optional[BudgetProjection] = None


class TaskReport(BaseModel):
    id: str
    title: str
    completed: bool
    time_seconds: int
    time_formatted: str


class DeliverableReport(BaseModel):
    id: str
    title: str
    phase_id: Optional[str] = None
    status: WorkStatus
    progress: int
    completed_tasks: int
    total_tasks: int
    time_seconds: int
    time_formatted: str
    efficiency: EfficiencyReport
    tasks: list[TaskReport] = []


class PhaseReport(BaseModel):
    id: str
    name: str
    status: WorkStatus
    progress: int
    time_seconds: int
    time_formatted: str
    efficiency: EfficiencyReport
    deliverables: list[DeliverableReport] = []


class ProjectReport(BaseModel):
    """Full rollup of one project."""

    id: str
    name: str
    status: ProjectStatus
    progress: int
    completed_tasks: int
    total_tasks: int
    time_seconds: int
    time_formatted: str
    efficiency: EfficiencyReport
    phases: list[PhaseReport] = []
    standalone_deliverables: list[DeliverableReport] = []
    active_session: Optional[TimerSession] = None
