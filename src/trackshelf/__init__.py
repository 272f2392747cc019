"""trackshelf — import tracks from a music catalog into a local, sortable record store."""

__version__ = "0.1.0"
