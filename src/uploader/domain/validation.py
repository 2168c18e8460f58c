from __future__ import annotations

import re
from dataclasses import dataclass

from .models import FileSharedEvent, SlackFile

FILE_ID_PATTERN = re.compile(r"^F[A-Z0-9]{8,}$")
USER_ID_PATTERN = re.compile(r"^[UW][A-Z0-9]{8,}$")
DANGEROUS_FILENAME_CHARS = re.compile(r'[<>:"|?*\x00-\x1f]')
MAX_FILENAME_LENGTH = 255


@dataclass(frozen=True)
class UploadPolicy:
    max_file_size_bytes: int
    allowed_mime_types: tuple[str, ...]
    authorized_user_id: str | None = None


def validate_file_id(file_id: object) -> str | None:
    if not file_id or not isinstance(file_id, str):
        return "Invalid file ID"
    if not FILE_ID_PATTERN.match(file_id):
        return f"Invalid Slack file ID format: {file_id}"
    return None


def validate_user_id(user_id: object, authorized_user_id: str | None = None) -> str | None:
    if not user_id or not isinstance(user_id, str):
        return "Invalid user ID"
    if not USER_ID_PATTERN.match(user_id):
        return f"Invalid Slack user ID format: {user_id}"
    if authorized_user_id and user_id != authorized_user_id:
        return f"User {user_id} is not authorized to upload files"
    return None


def validate_filename(filename: object) -> str | None:
    if not filename or not isinstance(filename, str):
        return "Invalid filename"
    if DANGEROUS_FILENAME_CHARS.search(filename):
        return "Filename contains invalid characters"
    if len(filename) > MAX_FILENAME_LENGTH:
        return f"Filename is too long (max {MAX_FILENAME_LENGTH} characters)"
    return None


def validate_mime_type(mime_type: object, allowed: tuple[str, ...]) -> str | None:
    if not mime_type or not isinstance(mime_type, str):
        return "Invalid MIME type"
    if mime_type not in allowed:
        return (
            f'MIME type "{mime_type}" is not allowed. '
            f"Allowed types: {', '.join(allowed)}"
        )
    return None


def validate_file_size(file_size: object, max_bytes: int) -> str | None:
    if isinstance(file_size, bool) or not isinstance(file_size, int) or file_size <= 0:
        return "Invalid file size"
    if file_size > max_bytes:
        actual_mb = file_size / 1024 / 1024
        max_mb = max_bytes / 1024 / 1024
        return (
            f"File size ({actual_mb:.2f}MB) exceeds maximum allowed size ({max_mb:g}MB)"
        )
    return None


def validate_file_upload(slack_file: SlackFile, policy: UploadPolicy) -> list[str]:
    """Collect every validation error for a file reported by Slack."""

    checks = (
        validate_file_id(slack_file.file_id),
        validate_user_id(slack_file.user_id, policy.authorized_user_id),
        validate_filename(slack_file.name),
        validate_mime_type(slack_file.mime_type, policy.allowed_mime_types),
        validate_file_size(slack_file.size, policy.max_file_size_bytes),
    )
    return [error for error in checks if error is not None]


def parse_file_shared_event(payload: object, event_id: str | None = None) -> FileSharedEvent:
    """Normalize a Slack ``file_shared`` event body.

    Raises ValueError when the event is not a usable ``file_shared`` event.
    """

    if not isinstance(payload, dict):
        raise ValueError("Invalid event object")
    event_type = payload.get("type")
    if not event_type:
        raise ValueError("Event type is missing")
    if event_type != "file_shared":
        raise ValueError(f"Unsupported event type: {event_type}")
    file_id = payload.get("file_id")
    if not file_id:
        raise ValueError("File ID is missing from file_shared event")
    user_id = payload.get("user_id")
    if not user_id:
        raise ValueError("User ID is missing from file_shared event")
    return FileSharedEvent(
        file_id=str(file_id),
        user_id=str(user_id),
        channel_id=str(payload.get("channel_id") or ""),
        event_id=event_id,
    )


def sanitize_filename(filename: str | None) -> str:
    """
    Replace unsafe characters, trim dots and spaces, cap the length.

    Examples:
        >>> sanitize_filename('a<b>.png')
        'a_b_.png'
        >>> sanitize_filename(' .. ')
        'unnamed-file'
    """
    if not filename:
        return "unnamed-file"
    sanitized = DANGEROUS_FILENAME_CHARS.sub("_", filename)
    sanitized = sanitized.strip(". \t\r\n")
    if not sanitized:
        return "unnamed-file"
    if len(sanitized) > MAX_FILENAME_LENGTH:
        dot = sanitized.rfind(".")
        ext = sanitized[dot:] if dot > 0 else ""
        sanitized = sanitized[: MAX_FILENAME_LENGTH - len(ext)] + ext
    return sanitized
