"""Manual time ledger model definitions."""
from datetime import datetime

from pydantic import BaseModel, Field

from timekeeper.models.entity_ref import EntityKind, EntityRef


class ManualTimeAdjustment(BaseModel):
    """Immutable signed time delta entered by a user."""

    id: str = Field(alias="_id", serialization_alias="id")
    target: EntityRef
    project_id: str
    seconds: int
    note: str = ""
    created_at: datetime

    model_config = {"populate_by_name": True}


class AdjustmentCreate(BaseModel):
    """Signed adjustment request: positive adds time, negative removes it."""

    kind: EntityKind
    id: str
    seconds: int
    note: str = ""

    @property
    def target(self) -> EntityRef:
        return EntityRef(kind=self.kind, id=self.id)


class ManualTimeEntry(BaseModel):
    """Hours and minutes as typed into the add-time dialog."""

    kind: EntityKind
    id: str
    hours: int = 0
    minutes: int = 0
    note: str = ""

    @property
    def target(self) -> EntityRef:
        return EntityRef(kind=self.kind, id=self.id)


class ManualTimeTotal(BaseModel):
    """Running manual total of one entity."""

    target: EntityRef
    seconds: int
    formatted: str
