"""Pytest configuration and fixtures."""
import copy
from datetime import datetime

import pytest
import pytest_asyncio
from bson import ObjectId
from httpx import AsyncClient, ASGITransport
from pymongo.errors import DuplicateKeyError, OperationFailure

from timekeeper.main import app


# ----------------------------------------------------------------------
# In-memory stand-in for the Motor collections the services use
# ----------------------------------------------------------------------

_MISSING = object()


def _compare(op, value, arg):
    if op == "$in":
        return value in arg
    if op == "$nin":
        return value not in arg
    if op == "$ne":
        return value != arg
    if op == "$exists":
        return (value is not _MISSING) == bool(arg)
    if value is _MISSING or value is None:
        return False
    if op == "$gte":
        return value >= arg
    if op == "$gt":
        return value > arg
    if op == "$lte":
        return value <= arg
    if op == "$lt":
        return value < arg
    raise NotImplementedError(op)


def matches(doc, query):
    """Evaluate the subset of the MongoDB query language the services use."""
    for key, cond in (query or {}).items():
        if key == "$or":
            if not any(matches(doc, q) for q in cond):
                return False
            continue
        if key == "$and":
            if not all(matches(doc, q) for q in cond):
                return False
            continue
        value = doc.get(key, _MISSING)
        if isinstance(cond, dict) and cond and all(k.startswith("$") for k in cond):
            if not all(_compare(op, value, arg) for op, arg in cond.items()):
                return False
        else:
            if (None if value is _MISSING else value) != cond:
                return False
    return True


def apply_update(doc, update, inserting=False):
    for op, fields in update.items():
        if op == "$set":
            doc.update(copy.deepcopy(fields))
        elif op == "$inc":
            for key, amount in fields.items():
                doc[key] = doc.get(key, 0) + amount
        elif op == "$unset":
            for key in fields:
                doc.pop(key, None)
        elif op == "$setOnInsert":
            if inserting:
                doc.update(copy.deepcopy(fields))
        else:
            raise NotImplementedError(op)


def _sort_docs(docs, order):
    for key, direction in reversed(order):
        docs.sort(key=lambda d: (d.get(key) is not None, d.get(key)), reverse=direction < 0)
    return docs


class Result:
    def __init__(self, **kwargs):
        self.__dict__.update(kwargs)


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs

    def sort(self, key, direction=None):
        order = key if isinstance(key, list) else [(key, direction or 1)]
        _sort_docs(self._docs, order)
        return self

    async def to_list(self, length=None):
        return [copy.deepcopy(d) for d in self._docs[:length]]

    def __aiter__(self):
        self._iter = iter(self._docs)
        return self

    async def __anext__(self):
        try:
            return copy.deepcopy(next(self._iter))
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    """Async collection backed by a list; ``fail_on`` injects driver errors."""

    def __init__(self, name):
        self.name = name
        self.docs = []
        self.fail_on = set()

    def _check(self, operation):
        if operation in self.fail_on:
            raise OperationFailure(f"injected failure in {self.name}.{operation}")

    def _find(self, query):
        return [d for d in self.docs if matches(d, query)]

    async def create_index(self, *args, **kwargs):
        return "index"

    def find(self, query=None, projection=None, session=None):
        self._check("find")
        return FakeCursor(self._find(query))

    async def find_one(self, query=None, projection=None, sort=None, session=None):
        self._check("find_one")
        found = self._find(query)
        if sort:
            _sort_docs(found, sort)
        return copy.deepcopy(found[0]) if found else None

    async def count_documents(self, query, session=None):
        return len(self._find(query))

    async def insert_one(self, doc, session=None):
        self._check("insert_one")
        doc.setdefault("_id", ObjectId())
        if any(d["_id"] == doc["_id"] for d in self.docs):
            raise DuplicateKeyError("duplicate _id")
        self.docs.append(copy.deepcopy(doc))
        return Result(inserted_id=doc["_id"])

    async def update_one(self, query, update, upsert=False, session=None):
        self._check("update_one")
        found = self._find(query)
        if found:
            apply_update(found[0], update)
            return Result(matched_count=1, modified_count=1, upserted_id=None)
        if upsert:
            doc = {k: v for k, v in query.items() if not k.startswith("$")}
            doc.setdefault("_id", ObjectId())
            apply_update(doc, update, inserting=True)
            self.docs.append(doc)
            return Result(matched_count=0, modified_count=0, upserted_id=doc["_id"])
        return Result(matched_count=0, modified_count=0, upserted_id=None)

    async def update_many(self, query, update, session=None):
        self._check("update_many")
        found = self._find(query)
        for doc in found:
            apply_update(doc, update)
        return Result(matched_count=len(found), modified_count=len(found))

    async def find_one_and_update(self, query, update, return_document=False,
                                  upsert=False, sort=None, session=None):
        self._check("find_one_and_update")
        found = self._find(query)
        if not found:
            return None
        before = copy.deepcopy(found[0])
        apply_update(found[0], update)
        return copy.deepcopy(found[0]) if return_document else before

    async def delete_one(self, query, session=None):
        self._check("delete_one")
        found = self._find(query)
        if found:
            self.docs.remove(found[0])
        return Result(deleted_count=len(found[:1]))

    async def delete_many(self, query, session=None):
        self._check("delete_many")
        found = self._find(query)
        self.docs = [d for d in self.docs if d not in found]
        return Result(deleted_count=len(found))


class FakeTransaction:
    """Snapshot every collection on entry and restore it if the block raises."""

    def __init__(self, db):
        self.db = db

    async def __aenter__(self):
        self.snapshot = {name: copy.deepcopy(c.docs) for name, c in self.db.collections.items()}
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is not None:
            for name, coll in self.db.collections.items():
                coll.docs = self.snapshot.get(name, [])
        return False


class FakeSession:
    def __init__(self, db):
        self.db = db

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def start_transaction(self):
        return FakeTransaction(self.db)


class FakeClient:
    def __init__(self, db):
        self.db = db

    async def start_session(self):
        return FakeSession(self.db)


class FakeDatabase:
    def __init__(self):
        self.collections = {}
        self.client = FakeClient(self)

    def __getitem__(self, name):
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]


# ----------------------------------------------------------------------
# Fixtures
# ----------------------------------------------------------------------

T0 = datetime(2025, 3, 3, 9, 0, 0)


@pytest.fixture
def t0():
    """Fixed reference time for timer traces."""
    return T0


@pytest.fixture
def fake_db():
    """Fresh in-memory database."""
    return FakeDatabase()


@pytest_asyncio.fixture
async def hierarchy(fake_db):
    """
    A small project:

    - phase "Design" with deliverable "Wireframes" (tasks t1, t2, t3)
    - standalone deliverable "Launch" (task t4)
    """
    from timekeeper.models.hierarchy import (
        DeliverableCreate,
        PhaseCreate,
        ProjectCreate,
        TaskCreate,
    )
    from timekeeper.services.hierarchy_service import HierarchyService

    service = HierarchyService(fake_db)
    project = await service.create_project(ProjectCreate(
        name="Website", client="Acme", total_hours=10, project_value=1000,
    ))
    phase = await service.create_phase(project.id, PhaseCreate(name="Design"))
    wireframes = await service.create_deliverable(
        project.id, DeliverableCreate(title="Wireframes", phase_id=phase.id, declarable_hours=4)
    )
    launch = await service.create_deliverable(
        project.id, DeliverableCreate(title="Launch", declarable_hours=2)
    )
    tasks = []
    for title in ("Sketch", "Review", "Polish"):
        tasks.append(await service.create_task(wireframes.id, TaskCreate(title=title)))
    tasks.append(await service.create_task(launch.id, TaskCreate(title="Deploy")))

    return {
        "project": project,
        "phase": phase,
        "wireframes": wireframes,
        "launch": launch,
        "tasks": tasks,
    }


@pytest_asyncio.fixture
async def app_client(fake_db):
    """
    Create a test client backed by the in-memory database.

    This fixture:
    - Points the global database at a fresh FakeDatabase
    - Empties the shared report cache
    - Yields an async HTTP client for testing
    - Restores the original database afterwards
    """
    from timekeeper.database import database

    original_db = database.db
    database.db = fake_db
    app.state.report_cache.clear()

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    app.state.report_cache.clear()
    database.db = original_db
