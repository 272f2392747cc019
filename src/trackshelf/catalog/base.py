"""Contract shared by catalog lookup clients."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class LookupUnavailable(Exception):
    """Raised when the external catalog cannot be reached or refuses the request.

    A search that simply finds nothing is *not* this error; it returns ``None``.
    """


@dataclass(frozen=True)
class ExternalTrack:
    """A track descriptor as reported by the external catalog."""

    external_id: str
    name: str
    artists: tuple[str, ...] = ()  # ordered as the catalog lists them
    release_date: str = ""  # album release date, verbatim

    @property
    def primary_artist(self) -> str:
        return self.artists[0] if self.artists else "Unknown"


class CatalogClient(Protocol):
    """Anything that can resolve a free-text query to at most one track."""

    async def search(self, query: str) -> ExternalTrack | None:
        """Return the best match for *query*, or ``None`` when nothing matches.

        Raises:
            LookupUnavailable: the catalog could not answer.
        """
        ...
