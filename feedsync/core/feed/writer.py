"""
Chunked writes to the temporary feed file and atomic promotion to the public path.
"""

import os
import logging
from pathlib import Path
from typing import BinaryIO, Optional

from .models import FeedGenerationError

logger = logging.getLogger(__name__)


class FeedFileWriter:
    """
    Writer for the temporary feed file of one slice.

    replace=True starts the file over (first chunk of an attempt). Otherwise
    the file is reopened for appending after being cut back to resume_size,
    the size recorded with the last persisted cursor.
    """

    def __init__(self, path: str, replace: bool, resume_size: Optional[int] = None):
        self.path = Path(path)
        self.replace = replace
        self.resume_size = resume_size
        self.size = 0
        self._handle: Optional[BinaryIO] = None

    def open(self) -> "FeedFileWriter":
        try:
            if self.replace:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._handle = open(self.path, "wb")
                self.size = 0
                return self

            if not self.path.exists():
                raise FeedGenerationError(
                    f"Temporary feed file is missing: {self.path}",
                    FeedGenerationError.INCONSISTENT_STATE
                )

            self._handle = open(self.path, "r+b")
            actual = self._handle.seek(0, os.SEEK_END)
            if self.resume_size is not None:
                if self.resume_size > actual:
                    self._handle.close()
                    self._handle = None
                    raise FeedGenerationError(
                        f"Temporary feed file {self.path} is shorter than recorded ({actual} < {self.resume_size} bytes)",
                        FeedGenerationError.INCONSISTENT_STATE
                    )
                self._handle.truncate(self.resume_size)
                actual = self._handle.seek(self.resume_size)
            self.size = actual
            return self
        except OSError as e:
            raise FeedGenerationError(f"Could not open file: {self.path}. {e}") from e

    def write(self, text: str) -> int:
        """
        Append text to the file and flush it to disk.

        Returns:
            File size after the write
        """
        if self._handle is None:
            raise FeedGenerationError(f"Could not write to file: {self.path}. File is not open.")
        data = text.encode("utf-8")
        try:
            self._handle.write(data)
            self._handle.flush()
        except OSError as e:
            raise FeedGenerationError(f"Could not write to file: {self.path}. {e}") from e
        self.size += len(data)
        return self.size

    def close(self) -> None:
        if self._handle is not None:
            try:
                self._handle.close()
            finally:
                self._handle = None

    def __enter__(self) -> "FeedFileWriter":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def promote_feed_file(temp_path: str, final_path: str) -> None:
    """
    Atomically replace the public feed file with the completed temp file.

    Raises:
        FeedGenerationError: If the rename fails
    """
    try:
        os.replace(temp_path, final_path)
    except OSError as e:
        raise FeedGenerationError(f"Could not write feed to file: {final_path}. {e}") from e


def remove_feed_file(path: Optional[str]) -> bool:
    """Delete a feed file if it exists. Returns True when something was removed."""
    if not path:
        return False
    try:
        os.remove(path)
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Could not delete feed file {path}: {e}")
        return False
    return True
