"""Conversions between MongoDB documents and models."""
from datetime import date, datetime
from typing import Optional

from timekeeper.models.entity_ref import EntityKind, EntityRef
from timekeeper.models.hierarchy import Deliverable, Phase, Project, Task
from timekeeper.models.manual_time import ManualTimeAdjustment
from timekeeper.models.timer_session import TimerSession


def date_to_datetime(value: Optional[date]) -> Optional[datetime]:
    """BSON has no date type; dates are stored as midnight datetimes."""
    if value is None:
        return None
    return datetime.combine(value, datetime.min.time())


def datetime_to_date(value) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    return value


def _str_or_none(value) -> Optional[str]:
    return str(value) if value is not None else None


def doc_to_project(doc: dict) -> Project:
    return Project(
        _id=str(doc["_id"]),
        name=doc["name"],
        client=doc.get("client", ""),
        total_hours=doc.get("total_hours", 0),
        project_value=doc.get("project_value", 0),
        hourly_rate=doc.get("hourly_rate"),
        auto_status=doc.get("auto_status", True),
        status=doc.get("status", "New"),
        progress=doc.get("progress", 0),
        created_at=doc["created_at"],
        updated_at=doc["updated_at"],
    )


def doc_to_phase(doc: dict) -> Phase:
    return Phase(
        _id=str(doc["_id"]),
        project_id=str(doc["project_id"]),
        name=doc["name"],
        target_date=datetime_to_date(doc.get("target_date")),
        declarable_hours=doc.get("declarable_hours"),
        status=doc.get("status", "Pending"),
        progress=doc.get("progress", 0),
        manual_seconds=doc.get("manual_seconds", 0),
        created_at=doc["created_at"],
        updated_at=doc["updated_at"],
    )


def doc_to_deliverable(doc: dict) -> Deliverable:
    return Deliverable(
        _id=str(doc["_id"]),
        project_id=str(doc["project_id"]),
        phase_id=_str_or_none(doc.get("phase_id")),
        title=doc["title"],
        declarable_hours=doc.get("declarable_hours", 0),
        target_date=datetime_to_date(doc.get("target_date")),
        status=doc.get("status", "Pending"),
        progress=doc.get("progress", 0),
        manual_seconds=doc.get("manual_seconds", 0),
        created_at=doc["created_at"],
        updated_at=doc["updated_at"],
    )


def doc_to_task(doc: dict) -> Task:
    return Task(
        _id=str(doc["_id"]),
        deliverable_id=str(doc["deliverable_id"]),
        title=doc["title"],
        assigned_to=doc.get("assigned_to"),
        estimated_minutes=doc.get("estimated_minutes"),
        completed=doc.get("completed", False),
        completed_at=doc.get("completed_at"),
        manual_seconds=doc.get("manual_seconds", 0),
        created_at=doc["created_at"],
        updated_at=doc["updated_at"],
    )


def doc_to_session(doc: dict) -> TimerSession:
    return TimerSession(
        _id=str(doc["_id"]),
        target=EntityRef(kind=EntityKind(doc["target_kind"]), id=str(doc["target_id"])),
        project_id=str(doc["project_id"]),
        deliverable_id=str(doc["deliverable_id"]),
        task_id=_str_or_none(doc.get("task_id")),
        description=doc.get("description", ""),
        start_time=doc["start_time"],
        end_time=doc.get("end_time"),
        duration_seconds=doc.get("duration_seconds"),
        duration_minutes=doc.get("duration_minutes"),
        active=doc.get("active", False),
        auto_closed=doc.get("auto_closed", False),
        created_at=doc["created_at"],
        updated_at=doc["updated_at"],
    )


def doc_to_adjustment(doc: dict) -> ManualTimeAdjustment:
    return ManualTimeAdjustment(
        _id=str(doc["_id"]),
        target=EntityRef(kind=EntityKind(doc["target_kind"]), id=str(doc["target_id"])),
        project_id=str(doc["project_id"]),
        seconds=doc["seconds"],
        note=doc.get("note", ""),
        created_at=doc["created_at"],
    )
