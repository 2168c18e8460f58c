from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class NotifierPort(Protocol):
    def notify_success(self, channel_id: str, summary: dict) -> None:
        """Tell the uploader the file landed in storage."""

    def notify_failure(self, channel_id: str, summary: dict, error: str) -> None:
        """Tell the uploader the file could not be stored."""
