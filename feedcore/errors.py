"""
Error taxonomy for the feed core.

Every error raised by this package carries an ErrorKind. Callers branch on
`exc.kind`, never on class names or message text. The HTTP layer maps the
kind straight onto a status code.
"""
from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "ValidationError"
    NOT_FOUND = "NotFoundError"
    DATABASE = "DatabaseError"


_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.DATABASE: 503,
}


class FeedCoreError(Exception):
    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def status_code(self) -> int:
        return _STATUS[self.kind]


class ValidationError(FeedCoreError):
    """Malformed input: bloom filter parameters, TTLs, cursors."""

    kind = ErrorKind.VALIDATION


class NotFoundError(FeedCoreError):
    kind = ErrorKind.NOT_FOUND


class DatabaseError(FeedCoreError):
    """A backend round trip failed or returned nothing where a result was required."""

    kind = ErrorKind.DATABASE
