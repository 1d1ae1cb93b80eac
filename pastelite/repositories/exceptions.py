"""Exceptions raised by paste repositories.

Classes:
    RepositoryError:
        Generic base class for storage-layer exceptions.

    PasteRecordNotFound:
        Raised when no record exists for an id, or when ``consume_view``
        refuses a record that is no longer available.

    InvalidRecordError:
        Raised when a record is missing required fields or violates a
        storage constraint.

    StoreUnavailableError:
        Raised when the backing store cannot be reached or times out.
"""


class RepositoryError(Exception):
    """Generic base class for storage-layer exceptions."""


class PasteRecordNotFound(RepositoryError):
    """Raised when a paste record is absent or no longer available."""


class InvalidRecordError(RepositoryError):
    """Raised when a paste record cannot be persisted as given."""


class StoreUnavailableError(RepositoryError):
    """Raised when the store is unreachable (connection issues, timeouts)."""
