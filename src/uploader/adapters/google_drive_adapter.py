from __future__ import annotations

import json
import logging
from uuid import uuid4

import requests

from uploader.domain.models import StoredFile
from uploader.errors import ExternalServiceError, NotFoundError
from uploader.ports.drive_port import DrivePort

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveAdapter(DrivePort):
    _BASE_URL = "https://www.googleapis.com/drive/v3"
    _UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
    _FILE_FIELDS = "id, name, webViewLink, parents"

    def __init__(self, access_token: str, timeout: float = 60) -> None:
        self._access_token = access_token
        self._timeout = timeout

    def upload_file(
        self, content: bytes, filename: str, mime_type: str, folder_id: str
    ) -> StoredFile:
        boundary = f"upload-{uuid4().hex}"
        metadata = json.dumps({"name": filename, "parents": [folder_id]})
        body = b"".join(
            [
                f"--{boundary}\r\n".encode(),
                b"Content-Type: application/json; charset=UTF-8\r\n\r\n",
                metadata.encode("utf-8"),
                f"\r\n--{boundary}\r\n".encode(),
                f"Content-Type: {mime_type}\r\n\r\n".encode(),
                content,
                f"\r\n--{boundary}--\r\n".encode(),
            ]
        )
        response = self._request(
            "post",
            self._UPLOAD_URL,
            context="upload file",
            headers={"Content-Type": f"multipart/related; boundary={boundary}"},
            params={"uploadType": "multipart", "fields": self._FILE_FIELDS},
            data=body,
        )
        stored = self._stored_file(response.json(), folder_id)
        logger.info(f"Uploaded {stored.name} to Drive as {stored.file_id}")
        return stored

    def ensure_folder(self, name: str, parent_id: str) -> str:
        query = (
            f"name = '{_quote(name)}' and '{_quote(parent_id)}' in parents "
            f"and mimeType = '{FOLDER_MIME_TYPE}' and trashed = false"
        )
        files = self._list(query, context="find folder")
        if files:
            return files[0].get("id", "")
        response = self._request(
            "post",
            f"{self._BASE_URL}/files",
            context="create folder",
            headers={"Content-Type": "application/json"},
            params={"fields": "id, name"},
            json={"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]},
        )
        folder_id = response.json().get("id", "")
        logger.info(f"Created Drive folder {name} ({folder_id}) under {parent_id}")
        return folder_id

    def copy_file(self, file_id: str, folder_id: str, new_name: str) -> StoredFile:
        response = self._request(
            "post",
            f"{self._BASE_URL}/files/{file_id}/copy",
            context="copy file",
            headers={"Content-Type": "application/json"},
            params={"fields": self._FILE_FIELDS},
            json={"name": new_name, "parents": [folder_id]},
        )
        return self._stored_file(response.json(), folder_id)

    def file_exists(self, folder_id: str, name: str) -> bool:
        query = (
            f"name = '{_quote(name)}' and '{_quote(folder_id)}' in parents "
            "and trashed = false"
        )
        return bool(self._list(query, context="check file name"))

    def _list(self, query: str, context: str) -> list[dict]:
        response = self._request(
            "get",
            f"{self._BASE_URL}/files",
            context=context,
            params={"q": query, "fields": "files(id, name)", "spaces": "drive"},
        )
        return response.json().get("files", [])

    def _request(
        self, method: str, url: str, context: str, headers: dict | None = None, **kwargs
    ) -> requests.Response:
        try:
            response = requests.request(
                method,
                url,
                headers={**self._auth_header(), **(headers or {})},
                timeout=self._timeout,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise ExternalServiceError(f"Drive request failed while attempting to {context}.") from exc
        self._raise_for_status(response, context=context)
        return response

    @staticmethod
    def _stored_file(payload: dict, folder_id: str) -> StoredFile:
        parents = payload.get("parents") or [folder_id]
        return StoredFile(
            file_id=payload.get("id", ""),
            name=payload.get("name", ""),
            url=payload.get("webViewLink"),
            folder_id=parents[0],
        )

    def _auth_header(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token}"}

    @staticmethod
    def _raise_for_status(response: requests.Response, context: str) -> None:
        if response.status_code in (401, 403):
            raise ExternalServiceError(
                f"Auth failed while attempting to {context}.", response.status_code
            )
        if response.status_code == 404:
            raise NotFoundError(
                f"Resource not found or no access while attempting to {context}.",
                response.status_code,
            )
        if response.status_code >= 400:
            raise ExternalServiceError(
                f"Drive API error {response.status_code} while attempting to {context}.",
                response.status_code,
            )
