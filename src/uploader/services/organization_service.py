from __future__ import annotations

import logging

from uploader.domain.models import OrganizedFile, StoredFile
from uploader.errors import ExternalServiceError, NotFoundError, OrganizationError
from uploader.ports.drive_port import DrivePort
from uploader.ports.upload_store_port import ROOT_FOLDER_KEY, UploadStorePort
from uploader.services.time_utils import utc_now

logger = logging.getLogger(__name__)


class OrganizationService:
    """Copies stored uploads into ``<root>/<category>`` folders.

    Folder ids are cached in the store; a cached id the destination no longer
    knows is dropped and resolved again once.
    """

    def __init__(
        self,
        drive: DrivePort,
        store: UploadStorePort,
        parent_folder_id: str,
        root_folder_name: str = "Classified",
        root_folder_id: str | None = None,
    ) -> None:
        self._drive = drive
        self._store = store
        self._parent_folder_id = parent_folder_id
        self._root_folder_name = root_folder_name
        self._root_folder_id = root_folder_id

    def root_folder_id(self) -> str:
        if self._root_folder_id:
            return self._root_folder_id
        cached = self._store.get_category_folder(ROOT_FOLDER_KEY)
        if cached:
            return cached
        folder_id = self._drive.ensure_folder(self._root_folder_name, self._parent_folder_id)
        self._store.save_category_folder(ROOT_FOLDER_KEY, folder_id)
        logger.info(f"Classification root folder {self._root_folder_name} is {folder_id}")
        return folder_id

    def category_folder_id(self, category: str) -> str:
        cached = self._store.get_category_folder(category)
        if cached:
            return cached
        root_id = self.root_folder_id()
        try:
            folder_id = self._drive.ensure_folder(category, root_id)
        except NotFoundError:
            if self._root_folder_id:
                raise
            logger.warning(f"Cached root folder {root_id} is gone, resolving it again")
            self._store.forget_category_folder(ROOT_FOLDER_KEY)
            folder_id = self._drive.ensure_folder(category, self.root_folder_id())
        self._store.save_category_folder(category, folder_id)
        return folder_id

    def organize(
        self, source_file_id: str, storage_file_id: str, category: str, filename: str
    ) -> OrganizedFile:
        try:
            folder_id = self.category_folder_id(category)
            try:
                copied = self._drive.copy_file(storage_file_id, folder_id, filename)
            except NotFoundError:
                logger.warning(
                    f"Copy into cached folder {folder_id} failed, resolving {category} again"
                )
                self._store.forget_category_folder(category)
                folder_id = self.category_folder_id(category)
                copied = self._drive.copy_file(storage_file_id, folder_id, filename)
        except ExternalServiceError as exc:
            raise OrganizationError(
                f"Failed to organize {source_file_id} into {category}: {exc}"
            ) from exc
        self._record(source_file_id, category, copied)
        logger.info(f"Organized {source_file_id} as {category}/{copied.name}")
        return OrganizedFile(
            source_file_id=source_file_id,
            category=category,
            folder_id=folder_id,
            file_id=copied.file_id,
            filename=copied.name,
            url=copied.url,
        )

    def _record(self, source_file_id: str, category: str, copied: StoredFile) -> None:
        self._store.increment_category_file_count(category)
        self._store.update_status(
            source_file_id,
            {
                "category_file_id": copied.file_id,
                "category_file_url": copied.url,
                "final_filename": copied.name,
                "organized_at": utc_now(),
            },
        )
