"""Minimal document layer: schemas with hooks, dict-backed documents and models."""

from collections.abc import Awaitable, Callable, Mapping
from functools import partial
from typing import Any

import structlog
from pydantic import BaseModel
from pymongo.asynchronous.database import AsyncDatabase

from autoincrement.core.core import Service
from autoincrement.paths import get_path, set_path

logger = structlog.get_logger(__name__)

PreSaveHook = Callable[["Document"], Awaitable[None]]


class IndexSpec(BaseModel):
    keys: list[tuple[str, int]]
    unique: bool = False


class Schema:
    """Describes a document type: its collection, pre-save hooks, instance methods and indexes."""

    def __init__(self, collection_name: str) -> None:
        self.collection_name = collection_name
        self.pre_save_hooks: list[PreSaveHook] = []
        self.methods: dict[str, Callable[..., Any]] = {}
        self.indexes: list[IndexSpec] = []

    def pre_save(self, hook: PreSaveHook) -> PreSaveHook:
        """Register a hook awaited before a new document is inserted."""
        self.pre_save_hooks.append(hook)
        return hook

    def method(self, name: str, fn: Callable[..., Any]) -> None:
        """Attach an instance method; fn receives the document as its first argument."""
        self.methods[name] = fn

    def index(self, keys: list[tuple[str, int]], unique: bool = False) -> None:
        self.indexes.append(IndexSpec(keys=keys, unique=unique))

    def plugin(self, plugin: Callable[["Schema", Any], Any], options: Any = None) -> None:
        plugin(self, options)


class Document:
    """A document of some schema, backed by a plain dict."""

    def __init__(self, schema: Schema, data: Mapping[str, Any] | None = None, *, is_new: bool = True) -> None:
        self.schema = schema
        self.data: dict[str, Any] = dict(data or {})
        self.is_new = is_new

    def get(self, path: str, default: Any = None) -> Any:
        return get_path(self.data, path, default)

    def set(self, path: str, value: Any) -> None:
        set_path(self.data, path, value)

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_") or "schema" not in self.__dict__:
            raise AttributeError(name)
        method = self.schema.methods.get(name)
        if method is None:
            raise AttributeError(f"{type(self).__name__!r} of {self.schema.collection_name!r} has no attribute {name!r}")
        return partial(method, self)

    def __repr__(self) -> str:
        return f"Document({self.schema.collection_name!r}, {self.data!r}, is_new={self.is_new})"


class Model(Service):
    """Persists documents of one schema, running pre-save hooks on creation."""

    def __init__(self, database: AsyncDatabase[dict[str, Any]], schema: Schema) -> None:
        super().__init__(database)
        self.schema = schema
        self._collection = database.get_collection(schema.collection_name)

    async def on_start(self) -> None:
        """Create indexes declared on the schema."""
        for index in self.schema.indexes:
            await self._collection.create_index(index.keys, unique=index.unique)

    def new(self, **data: Any) -> Document:
        return Document(self.schema, data)

    async def save(self, doc: Document) -> Document:
        """Insert a new document or replace an existing one.

        Pre-save hooks run only for new documents; an exception from a hook
        aborts the insert.
        """
        if doc.is_new:
            for hook in self.schema.pre_save_hooks:
                await hook(doc)
            await self._collection.insert_one(doc.data)
            doc.is_new = False
            logger.debug("document_created", collection=self.schema.collection_name, id=doc.data.get("_id"))
        else:
            await self._collection.replace_one({"_id": doc.data["_id"]}, doc.data)
        return doc

    async def create(self, **data: Any) -> Document:
        return await self.save(self.new(**data))

    async def find_one(self, query: dict[str, Any]) -> Document | None:
        data = await self._collection.find_one(query)
        if data is None:
            return None
        return Document(self.schema, data, is_new=False)
