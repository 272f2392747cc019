"""HTTP surface for trackshelf."""

from trackshelf.server.app import create_app

__all__ = ["create_app"]
