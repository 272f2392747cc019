"""trackshelf storage layer — async SQLite record store for imported tracks."""

from trackshelf.storage.database import (
    ConcurrencyConflictError,
    Database,
    DuplicateExternalIdError,
    RecordNotFoundError,
)
from trackshelf.storage.models import TrackRecord

__all__ = [
    "ConcurrencyConflictError",
    "Database",
    "DuplicateExternalIdError",
    "RecordNotFoundError",
    "TrackRecord",
]
