"""Import reconciliation: resolve a query, dedup by external id, persist.

Every call ends in exactly one outcome:

- :class:`Created` — a new record was stored
- :class:`AlreadyExists` — the track was imported before; nothing changed
- :class:`NotFound` — the catalog had no match
- :class:`LookupFailed` — the catalog could not be reached
- :class:`PersistFailed` — the store refused the insert (e.g. a concurrent
  import of the same track won the race)

Nothing is retried here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from trackshelf.catalog.base import LookupUnavailable
from trackshelf.storage.database import DuplicateExternalIdError

if TYPE_CHECKING:
    from trackshelf.catalog.base import CatalogClient
    from trackshelf.storage.database import Database
    from trackshelf.storage.models import TrackRecord

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Created:
    record: TrackRecord


@dataclass(frozen=True)
class AlreadyExists:
    record: TrackRecord


@dataclass(frozen=True)
class NotFound:
    query: str


@dataclass(frozen=True)
class LookupFailed:
    query: str
    reason: str


@dataclass(frozen=True)
class PersistFailed:
    query: str
    external_id: str
    reason: str


ImportOutcome = Created | AlreadyExists | NotFound | LookupFailed | PersistFailed


class ImportReconciler:
    """Brings one catalog track into the record store per call."""

    def __init__(self, catalog: CatalogClient, store: Database) -> None:
        self._catalog = catalog
        self._store = store

    async def import_track(self, query: str) -> ImportOutcome:
        """Import the catalog's best match for *query*.

        The dedup check can only run after the lookup (the external id is
        unknown until then).  It is not atomic with the insert; the store's
        unique constraint catches the race and yields :class:`PersistFailed`.
        """
        try:
            track = await self._catalog.search(query)
        except LookupUnavailable as exc:
            log.warning("lookup_unavailable", query=query, error=str(exc))
            return LookupFailed(query=query, reason=str(exc))

        if track is None:
            log.info("import_not_found", query=query)
            return NotFound(query=query)

        existing = await self._store.find_by_external_id(track.external_id)
        if existing is not None:
            log.info("import_already_exists", query=query, external_id=track.external_id, record_id=existing.id)
            return AlreadyExists(record=existing)

        try:
            record = await self._store.create_record(
                external_id=track.external_id,
                name=track.name,
                artist=track.primary_artist,
                release_date=track.release_date,
            )
        except DuplicateExternalIdError as exc:
            log.warning("import_persist_failed", query=query, external_id=track.external_id, error=str(exc))
            return PersistFailed(query=query, external_id=track.external_id, reason=str(exc))

        log.info("import_created", query=query, external_id=record.external_id, record_id=record.id)
        return Created(record=record)
