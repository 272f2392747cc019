"""Sort keys for the track listing and the column toggles offered next."""

from __future__ import annotations

from enum import StrEnum


class SortKey(StrEnum):
    """Listing orders accepted in the ``sort`` query parameter."""

    NAME = ""
    NAME_DESC = "name_desc"
    DATE = "date"
    DATE_DESC = "date_desc"
    ARTIST = "artist"
    ARTIST_DESC = "artist_desc"


# Fixed table; ORDER BY text is never assembled from request input.
_ORDER_BY: dict[SortKey, str] = {
    SortKey.NAME: "name COLLATE NOCASE ASC, id ASC",
    SortKey.NAME_DESC: "name COLLATE NOCASE DESC, id DESC",
    SortKey.DATE: "release_date ASC, id ASC",
    SortKey.DATE_DESC: "release_date DESC, id DESC",
    SortKey.ARTIST: "artist COLLATE NOCASE ASC, id ASC",
    SortKey.ARTIST_DESC: "artist COLLATE NOCASE DESC, id DESC",
}

# column -> (ascending key, descending key)
_COLUMNS: dict[str, tuple[SortKey, SortKey]] = {
    "name": (SortKey.NAME, SortKey.NAME_DESC),
    "date": (SortKey.DATE, SortKey.DATE_DESC),
    "artist": (SortKey.ARTIST, SortKey.ARTIST_DESC),
}


def parse_sort_key(raw: str | None) -> SortKey:
    """Map a raw query value to a :class:`SortKey`.

    Matching ignores case and surrounding whitespace, so the historical
    ``Date`` / ``Artist`` spellings still work.  Anything unrecognised falls
    back to name ascending.
    """
    if not raw:
        return SortKey.NAME
    try:
        return SortKey(raw.strip().lower())
    except ValueError:
        return SortKey.NAME


def order_by_clause(key: SortKey) -> str:
    """Return the SQL ORDER BY body for *key*."""
    return _ORDER_BY[key]


def toggle_keys(key: SortKey) -> dict[str, str]:
    """Return the key each column header should link to next.

    A column currently sorted ascending offers its descending key; every
    other column offers its ascending key.
    """
    toggles: dict[str, str] = {}
    for column, (ascending, descending) in _COLUMNS.items():
        toggles[column] = descending.value if key is ascending else ascending.value
    return toggles
