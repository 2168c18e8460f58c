from unittest.mock import Mock

import pytest

from uploader.adapters.sqlite_upload_store import SQLiteUploadStore
from uploader.domain.models import COMPLETED, PROCESSING, StoredFile, UploadCandidate
from uploader.errors import ExternalServiceError, NotFoundError, OrganizationError
from uploader.ports.upload_store_port import ROOT_FOLDER_KEY
from uploader.services.organization_service import OrganizationService


def _store(tmp_path) -> SQLiteUploadStore:
    store = SQLiteUploadStore(str(tmp_path / "uploads.db"))
    store.insert(
        UploadCandidate(
            source_file_id="F0123456789",
            source_user_id="U0123456789",
            channel_id="C0123456789",
            original_filename="hero.png",
        )
    )
    store.update_status("F0123456789", {"status": PROCESSING, "retry_count": 0})
    store.update_status("F0123456789", {"status": COMPLETED, "storage_file_id": "drive-1"})
    return store


def _copied(name: str = "hero_final.png", file_id: str = "copy-1") -> StoredFile:
    return StoredFile(file_id=file_id, name=name, url=f"https://drive/{file_id}")


def test_organize_creates_root_and_category_folders(tmp_path) -> None:
    store = _store(tmp_path)
    drive = Mock()
    drive.ensure_folder.side_effect = ["root-1", "cat-1"]
    drive.copy_file.return_value = _copied()
    service = OrganizationService(drive, store, parent_folder_id="base")

    organized = service.organize("F0123456789", "drive-1", "Other", "hero_final.png")

    assert organized.folder_id == "cat-1"
    assert organized.url == "https://drive/copy-1"
    assert drive.ensure_folder.call_args_list[0].args == ("Classified", "base")
    assert drive.ensure_folder.call_args_list[1].args == ("Other", "root-1")
    drive.copy_file.assert_called_once_with("drive-1", "cat-1", "hero_final.png")
    assert store.get_category_folder(ROOT_FOLDER_KEY) == "root-1"
    assert store.category_folder_counts() == {"Other": 1}
    record = store.get("F0123456789")
    assert record.category_file_id == "copy-1"
    assert record.final_filename == "hero_final.png"
    assert record.organized_at is not None
    assert record.status == COMPLETED


def test_cached_folders_are_reused(tmp_path) -> None:
    store = _store(tmp_path)
    store.save_category_folder("Other", "cat-cached")
    drive = Mock()
    drive.copy_file.return_value = _copied()
    service = OrganizationService(drive, store, parent_folder_id="base")

    service.organize("F0123456789", "drive-1", "Other", "hero_final.png")

    drive.ensure_folder.assert_not_called()
    drive.copy_file.assert_called_once_with("drive-1", "cat-cached", "hero_final.png")


def test_configured_root_folder_skips_lookup(tmp_path) -> None:
    store = _store(tmp_path)
    drive = Mock()
    drive.ensure_folder.return_value = "cat-1"
    drive.copy_file.return_value = _copied()
    service = OrganizationService(drive, store, parent_folder_id="base", root_folder_id="root-cfg")

    service.organize("F0123456789", "drive-1", "Other", "hero_final.png")

    drive.ensure_folder.assert_called_once_with("Other", "root-cfg")


def test_stale_category_folder_is_resolved_again(tmp_path) -> None:
    store = _store(tmp_path)
    store.save_category_folder(ROOT_FOLDER_KEY, "root-1")
    store.save_category_folder("Other", "stale")
    drive = Mock()
    drive.ensure_folder.return_value = "cat-2"
    drive.copy_file.side_effect = [NotFoundError("gone", 404), _copied()]
    service = OrganizationService(drive, store, parent_folder_id="base")

    organized = service.organize("F0123456789", "drive-1", "Other", "hero_final.png")

    assert organized.folder_id == "cat-2"
    assert store.get_category_folder("Other") == "cat-2"
    assert drive.copy_file.call_count == 2


def test_stale_root_folder_is_resolved_again(tmp_path) -> None:
    store = _store(tmp_path)
    store.save_category_folder(ROOT_FOLDER_KEY, "root-stale")
    drive = Mock()
    drive.ensure_folder.side_effect = [NotFoundError("gone", 404), "root-2", "cat-1"]
    drive.copy_file.return_value = _copied()
    service = OrganizationService(drive, store, parent_folder_id="base")

    service.organize("F0123456789", "drive-1", "Other", "hero_final.png")

    assert store.get_category_folder(ROOT_FOLDER_KEY) == "root-2"
    assert store.get_category_folder("Other") == "cat-1"


def test_destination_errors_become_organization_errors(tmp_path) -> None:
    store = _store(tmp_path)
    store.save_category_folder("Other", "cat-1")
    drive = Mock()
    drive.copy_file.side_effect = ExternalServiceError("quota", 403)
    service = OrganizationService(drive, store, parent_folder_id="base")

    with pytest.raises(OrganizationError):
        service.organize("F0123456789", "drive-1", "Other", "hero_final.png")

    record = store.get("F0123456789")
    assert record.status == COMPLETED
    assert record.category_file_id is None
