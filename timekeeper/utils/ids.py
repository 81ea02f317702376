"""ObjectId parsing helpers."""
from bson import ObjectId
from bson.errors import InvalidId

from timekeeper.exceptions import EntityNotFoundError


def to_object_id(value: str, label: str = "Entity") -> ObjectId:
    """
    Parse a string id into an ObjectId.

    An id that cannot be parsed cannot reference anything, so it is reported
    the same way as a missing entity.

    Raises:
        EntityNotFoundError: If the value is not a valid ObjectId
    """
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise EntityNotFoundError(f"{label} not found")
