"""Pydantic models for the trackshelf storage layer."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class TrackRecord(BaseModel):
    """A track imported from the external catalog."""

    id: int | None = None
    external_id: str
    name: str
    artist: str
    release_date: str = ""
    added_at: datetime | None = None
    version: int = Field(default=1, ge=1)
