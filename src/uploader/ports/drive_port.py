from __future__ import annotations

from typing import Protocol

from uploader.domain.models import StoredFile


class DrivePort(Protocol):
    def upload_file(
        self, content: bytes, filename: str, mime_type: str, folder_id: str
    ) -> StoredFile:
        """Upload bytes into a folder and return the created file."""

    def ensure_folder(self, name: str, parent_id: str) -> str:
        """Return the id of a child folder, creating it when missing."""

    def copy_file(self, file_id: str, folder_id: str, new_name: str) -> StoredFile:
        """Copy a file into another folder under a new name."""

    def file_exists(self, folder_id: str, name: str) -> bool:
        """Return True when a file with this name already sits in the folder."""
