"""Clip Archiver - archive ingestion pipeline for a channel's clip history."""

__version__ = "0.1.0"
