"""media-vault: content-addressed blob store and import pipeline for a local media vault."""

__version__ = "0.1.0"
