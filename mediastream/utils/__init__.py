"""Utility modules - provide common utility functions and classes."""
from mediastream.utils.file_utils import (
    ensure_directory,
    is_valid_file_id,
    media_path,
    validate_file_id,
)
from mediastream.utils.logger import get_logger, setup_logger

__all__ = [
    "ensure_directory",
    "is_valid_file_id",
    "media_path",
    "validate_file_id",
    "setup_logger",
    "get_logger",
]
