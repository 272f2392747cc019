"""Async SQLite database for the trackshelf record store."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from trackshelf.sorting import SortKey, order_by_clause
from trackshelf.storage.models import TrackRecord

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS track_record (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id TEXT NOT NULL,
    name TEXT NOT NULL,
    artist TEXT NOT NULL,
    release_date TEXT NOT NULL DEFAULT '',
    added_at TEXT NOT NULL DEFAULT (datetime('now')),
    version INTEGER NOT NULL DEFAULT 1,
    UNIQUE(external_id)
);
"""


class DuplicateExternalIdError(Exception):
    """Raised when a write would give two records the same external id."""

    def __init__(self, external_id: str) -> None:
        super().__init__(f"A record with external id {external_id!r} already exists")
        self.external_id = external_id


class RecordNotFoundError(Exception):
    """Raised when a write targets a record that no longer exists."""

    def __init__(self, record_id: int) -> None:
        super().__init__(f"Record {record_id} not found")
        self.record_id = record_id


class ConcurrencyConflictError(Exception):
    """Raised when an update was prepared against a stale record version."""

    def __init__(self, record_id: int, expected_version: int, current_version: int) -> None:
        super().__init__(
            f"Record {record_id} was modified concurrently "
            f"(expected version {expected_version}, found {current_version})"
        )
        self.record_id = record_id
        self.expected_version = expected_version
        self.current_version = current_version


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_external_id_violation(exc: aiosqlite.IntegrityError) -> bool:
    return "track_record.external_id" in str(exc)


class Database:
    """Async SQLite record store.

    One instance wraps one connection.  The HTTP layer opens an instance per
    request; the CLI opens one per command.
    """

    def __init__(self, path: Path, *, timeout: float = 5.0) -> None:
        self.path = path
        self.timeout = timeout
        self._conn: aiosqlite.Connection | None = None

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            msg = "Database not connected. Call connect() first."
            raise RuntimeError(msg)
        return self._conn

    async def connect(self) -> None:
        self._conn = await aiosqlite.connect(self.path, timeout=self.timeout)
        self._conn.row_factory = aiosqlite.Row

    async def initialize(self) -> None:
        """Create the schema if it does not exist yet."""
        await self.conn.execute("PRAGMA journal_mode=WAL")
        await self.conn.executescript(_SCHEMA)
        await self.conn.commit()

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> Database:
        await self.connect()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # -- track_record ---------------------------------------------------------

    async def create_record(
        self,
        *,
        external_id: str,
        name: str,
        artist: str,
        release_date: str = "",
    ) -> TrackRecord:
        """Insert a new record.

        The UNIQUE constraint on ``external_id`` makes the check-and-insert
        atomic, so concurrent creates for one track cannot both succeed.
        """
        try:
            cur = await self.conn.execute(
                """
                INSERT INTO track_record (external_id, name, artist, release_date, added_at)
                VALUES (?, ?, ?, ?, ?)
                RETURNING *
                """,
                (external_id, name, artist, release_date, _now_iso()),
            )
            row = await cur.fetchone()
        except aiosqlite.IntegrityError as exc:
            await self.conn.rollback()
            if _is_external_id_violation(exc):
                raise DuplicateExternalIdError(external_id) from exc
            raise
        await self.conn.commit()
        return self._row_to_track_record(row)

    async def get_record(self, record_id: int) -> TrackRecord | None:
        cur = await self.conn.execute("SELECT * FROM track_record WHERE id = ?", (record_id,))
        row = await cur.fetchone()
        return self._row_to_track_record(row) if row else None

    async def find_by_external_id(self, external_id: str) -> TrackRecord | None:
        cur = await self.conn.execute(
            "SELECT * FROM track_record WHERE external_id = ?", (external_id,)
        )
        row = await cur.fetchone()
        return self._row_to_track_record(row) if row else None

    async def record_exists(self, record_id: int) -> bool:
        cur = await self.conn.execute("SELECT 1 FROM track_record WHERE id = ?", (record_id,))
        return await cur.fetchone() is not None

    async def count_records(self) -> int:
        cur = await self.conn.execute("SELECT COUNT(*) AS cnt FROM track_record")
        row = await cur.fetchone()
        return row["cnt"]

    async def list_records(self, sort_key: SortKey = SortKey.NAME) -> list[TrackRecord]:
        """Return every record in the order selected by *sort_key*."""
        cur = await self.conn.execute(
            f"SELECT * FROM track_record ORDER BY {order_by_clause(sort_key)}"  # noqa: S608
        )
        rows = await cur.fetchall()
        return [self._row_to_track_record(r) for r in rows]

    async def update_record(
        self,
        record_id: int,
        *,
        expected_version: int,
        external_id: str,
        name: str,
        artist: str,
        release_date: str,
    ) -> TrackRecord:
        """Replace the editable fields of a record.

        ``id`` and ``added_at`` are never touched.  The write only applies if
        the stored version still equals *expected_version*.
        """
        try:
            cur = await self.conn.execute(
                """
                UPDATE track_record
                SET external_id = ?, name = ?, artist = ?, release_date = ?, version = version + 1
                WHERE id = ? AND version = ?
                RETURNING *
                """,
                (external_id, name, artist, release_date, record_id, expected_version),
            )
            row = await cur.fetchone()
        except aiosqlite.IntegrityError as exc:
            await self.conn.rollback()
            if _is_external_id_violation(exc):
                raise DuplicateExternalIdError(external_id) from exc
            raise
        await self.conn.commit()

        if row is not None:
            return self._row_to_track_record(row)

        current = await self.get_record(record_id)
        if current is None:
            raise RecordNotFoundError(record_id)
        raise ConcurrencyConflictError(record_id, expected_version, current.version)

    async def delete_record(self, record_id: int) -> bool:
        """Delete a record; deleting a missing id is a no-op returning False."""
        cur = await self.conn.execute("DELETE FROM track_record WHERE id = ?", (record_id,))
        await self.conn.commit()
        return cur.rowcount > 0

    # -- row → model helpers --------------------------------------------------

    @staticmethod
    def _row_to_track_record(row: aiosqlite.Row) -> TrackRecord:
        return TrackRecord(
            id=row["id"],
            external_id=row["external_id"],
            name=row["name"],
            artist=row["artist"],
            release_date=row["release_date"],
            added_at=row["added_at"],
            version=row["version"],
        )
