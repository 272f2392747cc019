"""Shared fixtures for trackshelf tests."""

from __future__ import annotations

from pathlib import Path

import pytest
import pytest_asyncio

from trackshelf.catalog.base import ExternalTrack, LookupUnavailable
from trackshelf.storage import Database

ENV_VARS = (
    "TRACKSHELF_HOME",
    "TRACKSHELF_HOST",
    "TRACKSHELF_PORT",
    "TRACKSHELF_LOG_LEVEL",
    "SPOTIFY_CLIENT_ID",
    "SPOTIFY_CLIENT_SECRET",
    "SPOTIFY_MARKET",
)


@pytest.fixture()
def base_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Redirect all trackshelf runtime files to a temporary directory.

    Patches ``trackshelf.config.get_base_dir`` so that nothing touches the
    real ``~/.trackshelf/``. Environment overrides are cleared so the host
    shell cannot leak into config tests.
    """
    fake_base = tmp_path / ".trackshelf"
    fake_base.mkdir()
    (fake_base / "logs").mkdir()

    monkeypatch.setattr("trackshelf.config.get_base_dir", lambda: fake_base)
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)

    return fake_base


@pytest_asyncio.fixture()
async def db(tmp_path: Path):
    """Provide a fresh, initialised database for each test."""
    database = Database(tmp_path / "test.db")
    await database.connect()
    await database.initialize()
    yield database
    await database.close()


class FakeCatalog:
    """In-memory catalog: maps exact queries to tracks and counts calls."""

    def __init__(self, tracks: dict[str, ExternalTrack] | None = None, *, unavailable: bool = False) -> None:
        self.tracks = dict(tracks or {})
        self.unavailable = unavailable
        self.queries: list[str] = []

    async def search(self, query: str) -> ExternalTrack | None:
        self.queries.append(query)
        if self.unavailable:
            raise LookupUnavailable("catalog offline")
        return self.tracks.get(query)


BOHEMIAN = ExternalTrack(
    external_id="X1",
    name="Bohemian Rhapsody",
    artists=("Queen",),
    release_date="1975-10-31",
)


@pytest.fixture()
def catalog() -> FakeCatalog:
    return FakeCatalog({"Bohemian Rhapsody": BOHEMIAN})
