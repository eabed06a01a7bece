"""Exception hierarchy for meme search.

Callers discriminate on these types: syntax errors are actionable by the
end user, backend and index errors are operational failures.
"""

from __future__ import annotations


class MemeSearchError(Exception):
    """Base class for all meme search exceptions."""


class QuerySyntaxError(MemeSearchError):
    """Raised when a query string is malformed.

    Attributes:
        position: 0-based character offset of the offending token in the raw query
        token: Offending token text as the user typed it (empty at end of input)
    """

    def __init__(self, message: str, *, position: int, token: str = "") -> None:
        self.reason = message
        self.position = position
        self.token = token
        super().__init__(f"{message} at position {position}")

    def to_dict(self) -> dict[str, object]:
        return {"error": self.reason, "position": self.position, "token": self.token}


class UnsupportedFieldError(QuerySyntaxError):
    """Raised when ``field:`` scoping names a field that is not indexed."""

    def __init__(self, field: str, *, position: int, supported: tuple[str, ...]) -> None:
        self.field = field
        self.supported = supported
        super().__init__(
            f"Unsupported field '{field}' (expected one of: {', '.join(supported)})",
            position=position,
            token=field,
        )


class BackendExecutionError(MemeSearchError):
    """Raised when the full-text backend fails on a well-formed compiled query."""

    def __init__(self, message: str, *, expression: str = "") -> None:
        self.expression = expression
        super().__init__(message)


class IndexConsistencyError(MemeSearchError):
    """Raised when the index could not be kept in sync with a primary mutation."""

    def __init__(self, message: str, *, record_id: int | None = None) -> None:
        self.record_id = record_id
        super().__init__(message)


class RecordNotFoundError(MemeSearchError):
    """Raised when a mutation targets a record id that does not exist."""

    def __init__(self, record_id: int) -> None:
        self.record_id = record_id
        super().__init__(f"Meme {record_id} not found")


class StorageError(MemeSearchError):
    """Raised when the primary store cannot be opened, migrated or written."""
