class AutoIncrementError(Exception):
    """Base class for all auto-increment errors."""


class ConfigurationError(AutoIncrementError):
    """Raised when a plugin is attached with invalid options or without an allocator."""


class StoreUnavailableError(AutoIncrementError):
    """Raised when the counter store cannot be reached.

    Never retried internally: every retry of an increment could consume
    another sequence value.
    """

    def __init__(self, message: str = "Counter store unavailable") -> None:
        super().__init__(message)


class AllocationFailedError(AutoIncrementError):
    """Raised from save() when the pre-save hook could not allocate a value.

    The document is not persisted.
    """
