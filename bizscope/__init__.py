"""Content ingestion and account protection service."""

__version__ = "0.1.0"
