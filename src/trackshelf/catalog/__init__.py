"""Catalog lookup — resolves a search string to an external track descriptor."""

from trackshelf.catalog.base import CatalogClient, ExternalTrack, LookupUnavailable
from trackshelf.catalog.spotify import SpotifyCatalog

__all__ = ["CatalogClient", "ExternalTrack", "LookupUnavailable", "SpotifyCatalog"]
