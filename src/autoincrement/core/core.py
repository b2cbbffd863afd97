from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

import structlog
from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from autoincrement.config import Config
from autoincrement.logging import setup_logging

if TYPE_CHECKING:
    from autoincrement.core.db import Model, Schema

logger = structlog.get_logger(__name__)


class Service:
    """Base class for services with direct database access."""

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        self.database = database

    async def on_start(self) -> None:
        """Initialize service on application startup."""

    async def on_stop(self) -> None:
        """Cleanup service on application shutdown."""


class Core:
    """Container providing config, database, the counter allocator and registered models.

    The allocator is built once here and handed to every plugin explicitly,
    so several cores (and stores) can live in one process.
    """

    def __init__(self, config: Config) -> None:
        from autoincrement.core.modules.counter.plugin import AutoIncrement  # noqa: PLC0415
        from autoincrement.core.modules.counter.service import CounterService  # noqa: PLC0415

        setup_logging(config.debug)
        self.config = config
        self.mongo_client: AsyncMongoClient[dict[str, Any]] = AsyncMongoClient(
            config.database_url, uuidRepresentation="standard"
        )
        self.database: AsyncDatabase[dict[str, Any]] = self.mongo_client.get_database(urlparse(config.database_url).path[1:])
        self.counter = CounterService(self.database, config.counters_collection)
        self.auto_increment = AutoIncrement(self.counter)
        self.models: dict[str, Model] = {}
        self._services: list[Service] = [self.counter]

    def register_model(self, schema: Schema) -> Model:
        """Create a model over the schema's collection; indexes are built on start."""
        from autoincrement.core.db import Model  # noqa: PLC0415

        model = Model(self.database, schema)
        self.models[schema.collection_name] = model
        self._services.append(model)
        return model

    @asynccontextmanager
    async def lifespan(self) -> AsyncGenerator[None]:
        """Manage lifecycle - startup and shutdown."""
        await self.on_start()
        try:
            yield
        finally:
            await self.on_stop()

    async def on_start(self) -> None:
        for service in self._services:
            await service.on_start()
        logger.info("core_started", services=len(self._services))

    async def on_stop(self) -> None:
        """Stop services and close MongoDB connection on shutdown."""
        for service in self._services:
            await service.on_stop()
        await self.mongo_client.aclose()
