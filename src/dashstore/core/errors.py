"""
Error taxonomy for dashstore.

Every error raised by the core derives from DashstoreError and carries a
human-readable message plus optional keyword context. None of them is
fatal: callers catch them at the aggregate boundary and translate them into
a save-state transition and, optionally, a message for the user.

Exception Hierarchy:
    DashstoreError (base)
    ├── ValidationError       (malformed import document or variable set)
    ├── EvaluationError       (expression failed, cyclic or unknown reference)
    ├── SyncError             (remote write/read failed)
    ├── LocalCommitError      (local cache write failed)
    └── InvalidTransitionError (illegal save-state transition)

Example:
    >>> from dashstore.core.errors import SyncError
    >>> try:
    ...     raise SyncError("API returned status 503", key="dataSources")
    ... except SyncError as e:
    ...     print(e.message, e.context)
    API returned status 503 {'key': 'dataSources'}
"""


class DashstoreError(Exception):
    """
    Base exception for all dashstore errors.

    Attributes:
        message: Human-readable error message
        context: Optional dictionary of additional context
    """

    def __init__(self, message: str, **context: object) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        return self.message


class ValidationError(DashstoreError):
    """
    Raised when user-supplied data fails validation.

    Covers malformed import documents (missing ``metadata.version``, no
    recognized entity array, unparseable JSON) and invalid variable sets
    (empty or duplicate names). The user is expected to fix the input and
    try again.
    """


class EvaluationError(DashstoreError):
    """
    Raised when a variable expression cannot be evaluated.

    The resolver never lets this escape to its callers; it is converted to
    a visible failure marker instead.

    Attributes:
        expression: The expression text that failed, if known
    """

    def __init__(self, message: str, expression: str | None = None, **context: object) -> None:
        super().__init__(message, expression=expression, **context)
        self.expression = expression


class SyncError(DashstoreError):
    """
    Raised when pushing state to the remote configuration store fails.

    The message is the remote service's own message where one was returned,
    so it can be shown to the user as-is.
    """


class LocalCommitError(DashstoreError):
    """
    Raised when writing an aggregate to the local cache fails.

    Typical causes are storage quota errors and values that cannot be
    serialized. The aggregate stays ``unsaved`` so the next debounce retries.
    """


class InvalidTransitionError(DashstoreError):
    """Raised when a save-state event is not valid for the current state."""

    def __init__(self, aggregate: str, state: str, event: str) -> None:
        super().__init__(
            f"Event '{event}' is not valid for aggregate '{aggregate}' in state '{state}'",
            aggregate=aggregate,
            state=state,
            event=event,
        )
        self.aggregate = aggregate
        self.state = state
        self.event = event


__all__ = [
    "DashstoreError",
    "ValidationError",
    "EvaluationError",
    "SyncError",
    "LocalCommitError",
    "InvalidTransitionError",
]
