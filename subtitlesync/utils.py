"""Utility functions for SubtitleSync."""

import os
import logging
import uuid
from typing import Optional

from .exceptions import FileSystemError

logger = logging.getLogger(__name__)

AUTO_LANGUAGE_VALUES = ("", "auto", "auto-detect")

def ensure_dir_exists(dir_path: str) -> None:
    """
    Ensures that a directory exists. Creates it if it doesn't.

    Args:
        dir_path: The path to the directory.

    Raises:
        FileSystemError: If the directory cannot be created due to permissions
                         or if the path exists but is not a directory.
    """
    if not dir_path:
        raise ValueError("Directory path cannot be empty.")
    try:
        if not os.path.exists(dir_path):
            os.makedirs(dir_path)
            logger.info(f"Created directory: {dir_path}")
        elif not os.path.isdir(dir_path):
            raise FileSystemError(f"Path exists but is not a directory: {dir_path}")
    except OSError as e:
        logger.error(f"Error creating or accessing directory {dir_path}: {e}", exc_info=True)
        raise FileSystemError(f"Could not create or access directory {dir_path}: {e}") from e

def new_id(prefix: str) -> str:
    """Returns an opaque identifier such as 'cue-3f2a9c0d1b7e'."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"

def normalize_language(language: Optional[str]) -> Optional[str]:
    """Maps the auto-detect sentinels to None so adapters can omit the field."""
    if language is None:
        return None
    language = language.strip()
    if language.lower() in AUTO_LANGUAGE_VALUES:
        return None
    return language
