"""
Exception hierarchy for gdupload.

Every error records the operation that was attempted and the underlying
cause, so a failure deep inside a directory upload still explains itself
when it reaches the command line.
"""

from typing import List, Optional


class GDUploadError(Exception):
    """Base exception for all gdupload errors."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None) -> None:
        self.operation = operation
        self.cause = cause
        if cause is None:
            message = operation
        else:
            message = f"{operation}: {cause}"
        super().__init__(message)

    def chain(self) -> List[BaseException]:
        """
        Return this error followed by every chained cause, outermost first.

        Follows ``__cause__`` (set by ``raise ... from``) and falls back to the
        ``cause`` attribute when the error was constructed without raising.
        """
        errors: List[BaseException] = []
        current: Optional[BaseException] = self
        while current is not None and current not in errors:
            errors.append(current)
            nxt = current.__cause__
            if nxt is None and isinstance(current, GDUploadError):
                nxt = current.cause
            current = nxt
        return errors


class ConfigurationError(GDUploadError):
    """Raised for missing or invalid credentials, tokens, config or paths."""


class RemoteAPIError(GDUploadError):
    """Raised when a Google Drive request fails."""

    def __init__(
        self,
        operation: str,
        cause: Optional[BaseException] = None,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(operation, cause)
        self.status = status


class LocalIOError(GDUploadError):
    """Raised when reading, writing or inspecting a local file fails."""


class ArchiveError(GDUploadError):
    """Raised when building or extracting an archive fails."""


class AuthTimeoutError(GDUploadError, TimeoutError):
    """Raised when the browser authorization does not complete in time."""
