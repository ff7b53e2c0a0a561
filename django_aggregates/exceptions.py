class LifecycleError(Exception):
    """
    Base class for errors surfaced by lifecycle operations
    """


class NotFound(LifecycleError):
    pass


class Conflict(LifecycleError):
    """
    Raised when an operation is blocked by dependent rows, or when a generated
    unique value collides at write time.

    :param blocking: Mapping of dependent model name to the number of rows
        that block the operation, empty for unique value collisions.
    :type blocking: dict[str, int]
    """

    def __init__(self, message: str, blocking: dict[str, int] | None = None):
        super().__init__(message)
        self.blocking = blocking or {}


class InvalidState(LifecycleError):
    pass


class Forbidden(LifecycleError):
    pass


class StoreFailure(LifecycleError):
    """
    Raised when the store aborted the transaction. Nothing was applied,
    so the operation is safe to retry.
    """


class StoreUnavailable(StoreFailure):
    pass
