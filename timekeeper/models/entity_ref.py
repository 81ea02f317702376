"""Tagged references to time-carrying entities."""
from enum import Enum

from pydantic import BaseModel


class EntityKind(str, Enum):
    """Kinds of entity that can own timer sessions or manual time."""

    TASK = "task"
    DELIVERABLE = "deliverable"
    PHASE = "phase"


COLLECTIONS = {
    EntityKind.TASK: "tasks",
    EntityKind.DELIVERABLE: "deliverables",
    EntityKind.PHASE: "phases",
}

TIMER_KINDS = (EntityKind.TASK, EntityKind.DELIVERABLE)


class EntityRef(BaseModel):
    """Exactly one task, deliverable or phase."""

    kind: EntityKind
    id: str

    model_config = {"frozen": True}

    @property
    def collection(self) -> str:
        return COLLECTIONS[self.kind]

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"
