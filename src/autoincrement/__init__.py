from autoincrement.core.db import Document, Model, Schema
from autoincrement.core.modules.counter.models import Binding, CounterRecord
from autoincrement.core.modules.counter.plugin import AutoIncrement, bind
from autoincrement.core.modules.counter.service import CounterService, initialize
from autoincrement.errors import AllocationFailedError, AutoIncrementError, ConfigurationError, StoreUnavailableError

__all__ = [
    "AllocationFailedError",
    "AutoIncrement",
    "AutoIncrementError",
    "Binding",
    "ConfigurationError",
    "CounterRecord",
    "CounterService",
    "Document",
    "Model",
    "Schema",
    "StoreUnavailableError",
    "bind",
    "initialize",
]
