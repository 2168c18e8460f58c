from __future__ import annotations

from typing import Protocol

from uploader.domain.models import MessageContext, SlackFile


class ChatPort(Protocol):
    def get_file_info(self, file_id: str) -> SlackFile:
        """Return metadata for a shared file."""

    def get_user_name(self, user_id: str) -> str | None:
        """Return a display name for a user."""

    def download_file(self, slack_file: SlackFile) -> bytes:
        """Return the raw file content."""

    def fetch_message_context(self, slack_file: SlackFile) -> MessageContext:
        """Return the messages around the upload (thread first, then nearby)."""
