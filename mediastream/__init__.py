"""Chunked media upload and byte-range streaming service."""

__version__ = "1.0.0"
