"""HTTP application for browsing, importing and editing tracks."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from trackshelf.catalog.base import CatalogClient
from trackshelf.catalog.spotify import SpotifyCatalog
from trackshelf.importer import AlreadyExists, Created, ImportReconciler, LookupFailed, NotFound
from trackshelf.sorting import parse_sort_key, toggle_keys
from trackshelf.storage.database import (
    ConcurrencyConflictError,
    Database,
    DuplicateExternalIdError,
    RecordNotFoundError,
)

if TYPE_CHECKING:
    from trackshelf.config import AppConfig

log = structlog.get_logger(__name__)

_LIST_URL = "/songs"


# ---------------------------------------------------------------------------
# Forms
# ---------------------------------------------------------------------------


class CreateSongForm(BaseModel):
    """Search box submitted to import a track."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    song_name: str = Field(alias="songName", min_length=1)


class EditSongForm(BaseModel):
    """Full record as submitted from the edit form."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    id: int
    external_id: str = Field(alias="externalId", min_length=1)
    name: str = Field(min_length=1)
    artist: str = Field(min_length=1)
    release_date: str = Field(default="", alias="releaseDate")
    added_at: datetime | None = Field(default=None, alias="addedAt")
    version: int = Field(ge=1)


def _form_response(status_code: int, form: dict, errors: list[dict]) -> JSONResponse:
    return JSONResponse({"form": form, "errors": errors}, status_code=status_code)


_MISSING_VERSION = "Field required: re-fetch the edit form to get the record's current version"


def _validation_errors(exc: ValidationError) -> list[dict]:
    errors = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"])
        message = _MISSING_VERSION if (field, err["type"]) == ("version", "missing") else err["msg"]
        errors.append({"field": field, "message": message})
    return errors


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail="Song not found")


def _record_id(record_id: str) -> int:
    """Path id as an int; anything that is not a number is simply not found."""
    try:
        return int(record_id)
    except ValueError:
        raise _not_found() from None


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    config: AppConfig,
    *,
    catalog: CatalogClient | None = None,
    db_path: Path | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    *catalog* replaces the Spotify client (tests pass a fake); *db_path*
    overrides ``config.database_path``.
    """
    database_path = db_path or config.database_path

    @asynccontextmanager
    async def lifespan(app: FastAPI):  # noqa: ANN202
        database_path.parent.mkdir(parents=True, exist_ok=True)
        async with Database(database_path) as db:
            await db.initialize()
        log.info("server_started", database=str(database_path))

        if catalog is not None:
            app.state.catalog = catalog
            yield
            return

        async with SpotifyCatalog(config.spotify) as spotify:
            app.state.catalog = spotify
            yield

    app = FastAPI(title="trackshelf", lifespan=lifespan)

    # -- dependencies ---------------------------------------------------------

    async def get_store() -> AsyncIterator[Database]:
        async with Database(database_path) as db:
            yield db

    def get_catalog(request: Request) -> CatalogClient:
        return request.app.state.catalog

    # -- listing / detail -----------------------------------------------------

    @app.get("/")
    async def index() -> RedirectResponse:
        return RedirectResponse(url=_LIST_URL, status_code=303)

    @app.get("/songs")
    async def list_songs(
        sort: str = Query(default=""),
        store: Database = Depends(get_store),
    ) -> dict:
        key = parse_sort_key(sort)
        records = await store.list_records(key)
        return {
            "items": [r.model_dump() for r in records],
            "sort": key.value,
            "toggles": toggle_keys(key),
        }

    # -- import ---------------------------------------------------------------

    @app.get("/songs/create")
    async def create_form() -> dict:
        return {"form": {"song_name": ""}, "errors": []}

    @app.post("/songs/create")
    async def create_song(
        payload: dict[str, Any] = Body(...),
        store: Database = Depends(get_store),
        catalog_client: CatalogClient = Depends(get_catalog),
    ):  # noqa: ANN201
        try:
            form = CreateSongForm.model_validate(payload)
        except ValidationError as exc:
            return _form_response(422, payload, _validation_errors(exc))

        outcome = await ImportReconciler(catalog_client, store).import_track(form.song_name)

        if isinstance(outcome, (Created, AlreadyExists)):
            return RedirectResponse(url=_LIST_URL, status_code=303)
        if isinstance(outcome, NotFound):
            raise HTTPException(status_code=404, detail=f"No track found for {outcome.query!r}")
        if isinstance(outcome, LookupFailed):
            raise HTTPException(
                status_code=503,
                detail="The music catalog is unavailable right now. Please try again.",
            )
        # PersistFailed
        raise HTTPException(status_code=409, detail=outcome.reason)

    @app.get("/songs/{record_id}")
    async def song_detail(record_id: int = Depends(_record_id), store: Database = Depends(get_store)) -> dict:
        record = await store.get_record(record_id)
        if record is None:
            raise _not_found()
        return record.model_dump()

    # -- edit -----------------------------------------------------------------

    @app.get("/songs/{record_id}/edit")
    async def edit_form(record_id: int = Depends(_record_id), store: Database = Depends(get_store)) -> dict:
        record = await store.get_record(record_id)
        if record is None:
            raise _not_found()
        return {"form": record.model_dump(), "errors": []}

    @app.post("/songs/{record_id}/edit")
    async def edit_song(
        record_id: int = Depends(_record_id),
        payload: dict[str, Any] = Body(...),
        store: Database = Depends(get_store),
    ):  # noqa: ANN201
        try:
            form = EditSongForm.model_validate(payload)
        except ValidationError as exc:
            return _form_response(422, payload, _validation_errors(exc))

        if form.id != record_id:
            raise _not_found()

        try:
            updated = await store.update_record(
                record_id,
                expected_version=form.version,
                external_id=form.external_id,
                name=form.name,
                artist=form.artist,
                release_date=form.release_date,
            )
        except RecordNotFoundError:
            raise _not_found() from None
        except ConcurrencyConflictError as exc:
            log.info("edit_conflict", record_id=record_id, expected=exc.expected_version, current=exc.current_version)
            return _form_response(409, payload, [{"field": "version", "message": str(exc)}])
        except DuplicateExternalIdError as exc:
            return _form_response(409, payload, [{"field": "external_id", "message": str(exc)}])

        log.info("song_updated", record_id=updated.id, version=updated.version)
        return RedirectResponse(url=_LIST_URL, status_code=303)

    # -- delete ---------------------------------------------------------------

    @app.get("/songs/{record_id}/delete")
    async def delete_form(record_id: int = Depends(_record_id), store: Database = Depends(get_store)) -> dict:
        record = await store.get_record(record_id)
        if record is None:
            raise _not_found()
        return record.model_dump()

    @app.post("/songs/{record_id}/delete")
    async def delete_song(record_id: str, store: Database = Depends(get_store)) -> RedirectResponse:
        # Unknown or malformed ids still land on the list.
        if record_id.isdigit() and await store.delete_record(int(record_id)):
            log.info("song_deleted", record_id=int(record_id))
        return RedirectResponse(url=_LIST_URL, status_code=303)

    return app
