#!/usr/bin/env python3
"""
File storage interface shared by the Drive and R2 backends.
"""

from dataclasses import dataclass
from typing import List

from filenames import RawImageFile


class StorageError(Exception):
    """Raised when storage returns something unusable (not for transport errors)."""


@dataclass
class FileContent:
    data: bytes
    mime_type: str = "application/octet-stream"


class ImageStorage:
    """Where product images are uploaded and archived after publishing."""

    def list_files(self) -> List[RawImageFile]:
        """All files currently in the incoming location."""
        raise NotImplementedError

    def read_file_bytes(self, file_id: str) -> FileContent:
        raise NotImplementedError

    def move_file(self, file_id: str) -> None:
        """Move a file from the incoming location to the archive."""
        raise NotImplementedError

    def describe_file(self, file_id: str) -> RawImageFile:
        """Listing entry for a single file id, wherever it currently lives."""
        raise NotImplementedError
