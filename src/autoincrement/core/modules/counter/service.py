from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, cast

import structlog
from pymongo import ReturnDocument
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import ConnectionFailure, DuplicateKeyError

from autoincrement.core.core import Service
from autoincrement.core.modules.counter.models import CounterRecord
from autoincrement.errors import StoreUnavailableError

logger = structlog.get_logger(__name__)

DEFAULT_COLLECTION = "identitycounters"


@contextmanager
def _store_errors(model_name: str, field_name: str) -> Iterator[None]:
    """Translate connection failures into StoreUnavailableError.

    Other PyMongoError subclasses (OperationFailure, a repeated DuplicateKeyError)
    propagate unchanged; the pre-save hook wraps them in AllocationFailedError.
    """
    try:
        yield
    except ConnectionFailure as e:
        logger.warning("counter_store_unavailable", model=model_name, field=field_name, error=str(e))
        raise StoreUnavailableError(f"Counter store unavailable for {model_name}.{field_name}: {e}") from e


class CounterService(Service):
    """Atomic sequence allocation per (model, field).

    Every mutation is a single find_one_and_update upsert, so correctness
    rests on the server's per-document atomicity; no client-side locking.
    Concurrent reset and allocate on one key are applied in the server's
    serialization order: whichever lands last wins.

    Raises StoreUnavailableError when the server cannot be reached. Server-side
    rejections (auth, unsupported pipeline updates) surface as the original
    pymongo OperationFailure.
    """

    def __init__(self, database: AsyncDatabase[dict[str, Any]], collection_name: str = DEFAULT_COLLECTION) -> None:
        super().__init__(database)
        self._collection = database.get_collection(collection_name)

    async def on_start(self) -> None:
        """Create indexes on startup."""
        # One counter per (model, field); also arbitrates racing first-time upserts
        await self._collection.create_index([("modelName", 1), ("fieldName", 1)], unique=True)

    async def allocate(self, model_name: str, field_name: str, increment_by: int = 1, start_at: int = 0) -> int:
        """Atomically advance the sequence and return the new value.

        A missing counter is seeded at start_at - increment_by within the same
        operation, so the first allocation returns start_at.
        """
        seed = start_at - increment_by
        update = [{"$set": {"count": {"$add": [{"$ifNull": ["$count", seed]}, increment_by]}}}]
        result = await self._upsert(model_name, field_name, update)
        count = int(result["count"])
        logger.debug("counter_allocated", model=model_name, field=field_name, count=count)
        return count

    async def peek(self, model_name: str, field_name: str, increment_by: int = 1, start_at: int = 0) -> int:
        """Return the value the next allocate() would produce, without consuming it."""
        record = await self.get_counter(model_name, field_name)
        if record is None:
            return start_at
        return record.count + increment_by

    async def reset(self, model_name: str, field_name: str, start_at: int = 0, increment_by: int = 1) -> int:
        """Rewind the sequence as if nothing had been allocated; returns start_at."""
        await self._upsert(model_name, field_name, {"$set": {"count": start_at - increment_by}})
        logger.info("counter_reset", model=model_name, field=field_name, start_at=start_at)
        return start_at

    async def sync(self, model_name: str, field_name: str, value: int, increment_by: int = 1, start_at: int = 0) -> int:
        """Move the counter up to a manually assigned value so later allocations skip past it.

        Never moves the counter backwards (in the direction of increment_by).
        Returns the resulting counter value.
        """
        seed = start_at - increment_by
        op = "$max" if increment_by > 0 else "$min"
        update = [{"$set": {"count": {op: [{"$ifNull": ["$count", seed]}, value]}}}]
        result = await self._upsert(model_name, field_name, update)
        count = int(result["count"])
        logger.debug("counter_synced", model=model_name, field=field_name, value=value, count=count)
        return count

    async def get_counter(self, model_name: str, field_name: str) -> CounterRecord | None:
        """Get the current counter record, or None if nothing was allocated yet."""
        with _store_errors(model_name, field_name):
            doc = await self._collection.find_one({"modelName": model_name, "fieldName": field_name})
        if doc is None:
            return None
        return CounterRecord.model_validate(doc)

    async def delete_counters_by_model(self, model_name: str) -> int:
        """Delete all counters of a model and return count of deleted counters."""
        with _store_errors(model_name, "*"):
            result = await self._collection.delete_many({"modelName": model_name})
        logger.info("counters_deleted", model=model_name, deleted=result.deleted_count)
        return result.deleted_count

    async def _upsert(self, model_name: str, field_name: str, update: dict[str, Any] | list[dict[str, Any]]) -> dict[str, Any]:
        key = {"modelName": model_name, "fieldName": field_name}
        with _store_errors(model_name, field_name):
            try:
                return await self._find_one_and_upsert(key, update)
            except DuplicateKeyError:
                # Lost a race to create the counter; nothing was written, so re-issuing is safe
                logger.debug("counter_upsert_conflict", model=model_name, field=field_name)
                return await self._find_one_and_upsert(key, update)

    async def _find_one_and_upsert(
        self, key: dict[str, Any], update: dict[str, Any] | list[dict[str, Any]]
    ) -> dict[str, Any]:
        result = await self._collection.find_one_and_update(
            key,
            update,
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        # Upsert with ReturnDocument.AFTER always yields a document
        return cast(dict[str, Any], result)


def initialize(database: AsyncDatabase[dict[str, Any]], collection_name: str = DEFAULT_COLLECTION) -> CounterService:
    """Create the allocator for a database. Pass it to every AutoIncrement plugin."""
    return CounterService(database, collection_name)
