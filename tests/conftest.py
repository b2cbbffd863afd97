"""Shared pytest fixtures.

FakeCollection implements the subset of pymongo's AsyncCollection used by the
package. Each operation yields to the event loop once and then runs without
further suspension, which makes it atomic per call the way a server-side
operation is.
"""

import asyncio
import copy
from types import SimpleNamespace
from typing import Any

import pytest
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from autoincrement.core.db import Model, Schema
from autoincrement.core.modules.counter.plugin import AutoIncrement
from autoincrement.core.modules.counter.service import CounterService, initialize
from autoincrement.paths import get_path, set_path


def evaluate(expr: Any, doc: dict[str, Any]) -> Any:
    """Evaluate the aggregation expressions used in pipeline updates."""
    if isinstance(expr, str) and expr.startswith("$"):
        return get_path(doc, expr[1:])
    if isinstance(expr, dict) and len(expr) == 1:
        ((op, args),) = expr.items()
        values = [evaluate(arg, doc) for arg in args]
        if op == "$add":
            return sum(values)
        if op == "$ifNull":
            return next((v for v in values if v is not None), None)
        if op == "$max":
            return max(values)
        if op == "$min":
            return min(values)
        raise NotImplementedError(op)
    return expr


def apply_update(doc: dict[str, Any], update: dict[str, Any] | list[dict[str, Any]]) -> None:
    stages = update if isinstance(update, list) else [update]
    for stage in stages:
        for op, fields in stage.items():
            for path, value in fields.items():
                if op == "$set":
                    set_path(doc, path, evaluate(value, doc) if isinstance(update, list) else value)
                elif op == "$inc":
                    set_path(doc, path, get_path(doc, path, 0) + value)
                else:
                    raise NotImplementedError(op)


def matches(doc: dict[str, Any], query: dict[str, Any]) -> bool:
    return all(get_path(doc, path) == value for path, value in query.items())


class FakeCollection:
    def __init__(self, name: str) -> None:
        self.name = name
        self.docs: list[dict[str, Any]] = []
        self.indexes: list[tuple[list[tuple[str, int]], bool]] = []
        self.fail_with: Exception | None = None  # Raised by every operation while set
        self.conflicts = 0  # Number of upserts to reject with DuplicateKeyError
        self.calls = 0

    async def _enter(self) -> None:
        await asyncio.sleep(0)
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with

    def _check_unique(self, candidate: dict[str, Any]) -> None:
        unique_keys = [["_id"]] + [[key for key, _ in keys] for keys, unique in self.indexes if unique]
        for doc in self.docs:
            if doc is candidate:
                continue
            for keys in unique_keys:
                if all(get_path(doc, k) == get_path(candidate, k) for k in keys):
                    raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name} keys: {keys}", 11000)

    async def create_index(self, keys: list[tuple[str, int]], unique: bool = False, **kwargs: Any) -> str:
        await self._enter()
        self.indexes.append((keys, unique))
        return "_".join(f"{key}_{direction}" for key, direction in keys)

    async def find_one(self, query: dict[str, Any]) -> dict[str, Any] | None:
        await self._enter()
        for doc in self.docs:
            if matches(doc, query):
                return copy.deepcopy(doc)
        return None

    async def find_one_and_update(
        self,
        query: dict[str, Any],
        update: dict[str, Any] | list[dict[str, Any]],
        upsert: bool = False,
        return_document: bool = ReturnDocument.BEFORE,
    ) -> dict[str, Any] | None:
        await self._enter()
        if self.conflicts:
            self.conflicts -= 1
            raise DuplicateKeyError("E11000 duplicate key error", 11000)
        target = next((doc for doc in self.docs if matches(doc, query)), None)
        if target is None:
            if not upsert:
                return None
            target = {"_id": ObjectId(), **copy.deepcopy(query)}
            apply_update(target, update)
            self._check_unique(target)
            self.docs.append(target)
            return copy.deepcopy(target) if return_document == ReturnDocument.AFTER else None
        before = copy.deepcopy(target)
        apply_update(target, update)
        return copy.deepcopy(target) if return_document == ReturnDocument.AFTER else before

    async def insert_one(self, document: dict[str, Any]) -> SimpleNamespace:
        await self._enter()
        document.setdefault("_id", ObjectId())
        stored = copy.deepcopy(document)
        self._check_unique(stored)
        self.docs.append(stored)
        return SimpleNamespace(inserted_id=document["_id"])

    async def replace_one(self, query: dict[str, Any], document: dict[str, Any]) -> SimpleNamespace:
        await self._enter()
        for i, doc in enumerate(self.docs):
            if matches(doc, query):
                self.docs[i] = copy.deepcopy(document)
                return SimpleNamespace(matched_count=1)
        return SimpleNamespace(matched_count=0)

    async def delete_many(self, query: dict[str, Any]) -> SimpleNamespace:
        await self._enter()
        kept = [doc for doc in self.docs if not matches(doc, query)]
        deleted = len(self.docs) - len(kept)
        self.docs = kept
        return SimpleNamespace(deleted_count=deleted)


class FakeDatabase:
    def __init__(self) -> None:
        self.collections: dict[str, FakeCollection] = {}

    def get_collection(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]


@pytest.fixture
def database():
    """In-memory stand-in for an AsyncDatabase."""
    return FakeDatabase()


@pytest.fixture
def counters(database):
    """The counters collection the default allocator writes to."""
    return database.get_collection("identitycounters")


@pytest.fixture
async def allocator(database) -> CounterService:
    service = initialize(database)
    await service.on_start()
    return service


@pytest.fixture
def make_users(database, allocator):
    """Build a started 'users' model with the plugin bound using the given options."""

    async def factory(options: Any = "User", collection: str = "users") -> Model:
        schema = Schema(collection)
        schema.plugin(AutoIncrement(allocator), options)
        model = Model(database, schema)
        await model.on_start()
        return model

    return factory
