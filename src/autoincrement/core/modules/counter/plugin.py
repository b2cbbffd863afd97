"""Schema plugin assigning sequential integers to newly created documents."""

from collections.abc import Mapping
from typing import Any

import structlog
from pymongo.errors import PyMongoError

from autoincrement.core.db import Document, Schema
from autoincrement.core.modules.counter.models import Binding, parse_binding
from autoincrement.core.modules.counter.service import CounterService
from autoincrement.errors import AllocationFailedError, AutoIncrementError, ConfigurationError
from autoincrement.paths import check_settable

logger = structlog.get_logger(__name__)


def bind(schema: Schema, options: str | Mapping[str, Any] | Binding | None, allocator: CounterService | None) -> Binding:
    """Attach auto-increment behavior for one field to a schema.

    Registers a pre-save hook filling the field on creation and the
    ``next_count()`` / ``reset_count()`` instance methods.

    Raises:
        ConfigurationError: If there is no allocator or the options are invalid
    """
    if allocator is None:
        raise ConfigurationError("Auto-increment plugin has no allocator; call initialize() first")
    binding = parse_binding(options)

    if binding.unique and binding.field != "_id":
        schema.index([(binding.field, 1)], unique=True)

    async def assign_on_create(doc: Document) -> None:
        if not doc.is_new:
            return
        try:
            # Reject an unassignable path before a value is consumed
            check_settable(doc.data, binding.field)
        except TypeError as e:
            raise AllocationFailedError(f"Could not assign {binding.field} for {binding.model}: {e}") from e
        current = doc.get(binding.field)
        try:
            if isinstance(current, int) and not isinstance(current, bool):
                # Keep an explicitly supplied value and move the counter past it
                await allocator.sync(binding.model, binding.field, current, binding.increment_by, binding.start_at)
                return
            count = await allocator.allocate(binding.model, binding.field, binding.increment_by, binding.start_at)
        except (AutoIncrementError, PyMongoError) as e:
            logger.warning("counter_allocation_failed", model=binding.model, field=binding.field, error=str(e))
            raise AllocationFailedError(f"Could not allocate {binding.field} for {binding.model}: {e}") from e
        doc.set(binding.field, binding.output_filter(count) if binding.output_filter else count)

    async def next_count(doc: Document) -> int:
        return await allocator.peek(binding.model, binding.field, binding.increment_by, binding.start_at)

    async def reset_count(doc: Document) -> int:
        return await allocator.reset(binding.model, binding.field, binding.start_at, binding.increment_by)

    schema.pre_save(assign_on_create)
    schema.method("next_count", next_count)
    schema.method("reset_count", reset_count)
    logger.debug("counter_bound", collection=schema.collection_name, model=binding.model, field=binding.field)
    return binding


class AutoIncrement:
    """Plugin object for Schema.plugin(), carrying the allocator it delegates to.

    Usage: ``schema.plugin(AutoIncrement(allocator), {"model": "User", "field": "userId"})``
    """

    def __init__(self, allocator: CounterService | None) -> None:
        self.allocator = allocator

    def __call__(self, schema: Schema, options: str | Mapping[str, Any] | Binding | None) -> Binding:
        return bind(schema, options, self.allocator)
