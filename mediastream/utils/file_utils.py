"""Utility functions for media file paths and storage directories"""
import logging
from pathlib import Path
from typing import Union

from mediastream.core.exceptions import InvalidRequestException, StorageFailureException
from mediastream.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)

INVALID_ID_CHARS = ['/', '\\', ':', '*', '?', '"', '<', '>', '|', '\x00']


def ensure_directory(path: Union[str, Path], mode: int = 0o755) -> Path:
    """
    Ensure directory exists

    Args:
        path: Directory path
        mode: Permission bits for newly created directories

    Returns:
        Path: The directory path
    """
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True, mode=mode)
    except OSError as e:
        raise StorageFailureException(
            f"Failed to create directory {path}: {e}",
            operation="mkdir",
            details={"path": str(path)},
            original_error=e
        )
    return path


def is_valid_file_id(file_id: str) -> bool:
    """Check that an identifier can be used as a single file name"""
    if not file_id or file_id.startswith('.'):
        return False
    return not any(char in file_id for char in INVALID_ID_CHARS)


def validate_file_id(file_id: str) -> str:
    """Return the identifier or raise InvalidRequestException"""
    if not file_id:
        raise InvalidRequestException("fileid is missing", field="id")
    if not is_valid_file_id(file_id):
        raise InvalidRequestException(
            f"Invalid file id: {file_id!r}",
            field="id",
            details={"file_id": file_id}
        )
    return file_id


def media_path(storage_path: Union[str, Path], file_id: str, extension: str) -> Path:
    """Deterministic destination path for an identifier"""
    return Path(storage_path) / f"{file_id}{extension}"

