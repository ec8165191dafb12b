"""Exception hierarchy shared by the services and the HTTP layer."""

from typing import Dict, Optional


class BooklogError(Exception):
    """Base class for errors surfaced to callers of the services."""

    status_code = 500

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class Unauthenticated(BooklogError):
    """No owner identity where one is required."""

    status_code = 401


class NotFound(BooklogError):
    """Record is absent or owned by someone else.

    Raised for both cases so callers cannot probe for other users' records.
    """

    status_code = 404


class ValidationError(BooklogError):
    """Malformed input; ``fields`` maps each offending field to a message."""

    status_code = 422

    def __init__(self, fields: Dict[str, str], message: str = "Invalid input") -> None:
        super().__init__(message)
        self.fields = fields


class StoreUnavailable(BooklogError):
    """The document store could not be reached."""

    status_code = 503


class ProviderUnavailable(BooklogError):
    """The metadata provider failed, timed out or returned garbage."""

    status_code = 502
