"""News ingestion pipeline: feed polling, deduplicated storage and a cached read path."""

__version__ = "0.1.0"
