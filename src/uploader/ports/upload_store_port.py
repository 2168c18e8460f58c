from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from uploader.domain.feedback import FeedbackStatistics
from uploader.domain.models import ClassificationFeedback, UploadCandidate, UploadRecord, UploadStats

ROOT_FOLDER_KEY = "__ROOT__"


class UploadStorePort(Protocol):
    def insert(self, candidate: UploadCandidate) -> int | None:
        """Persist a new upload; return its row id, or None if the file is already known."""

    def update_status(self, source_file_id: str, fields: Mapping[str, Any]) -> bool:
        """Apply allow-listed field updates; False if nothing matched or the move is illegal."""

    def get(self, source_file_id: str) -> UploadRecord | None:
        """Return an upload by source file id."""

    def exists(self, source_file_id: str) -> bool:
        """Return True when the file has already been taken in."""

    def stats_by_status(self) -> UploadStats:
        """Return per-status counts and the total stored byte volume."""

    def list_by_status(self, status: str, limit: int = 50) -> list[UploadRecord]:
        """Return the newest uploads with a given status."""

    def list_for_user(self, user_id: str, limit: int = 10) -> list[UploadRecord]:
        """Return the newest uploads shared by a user."""

    def list_pending_review(self, limit: int = 50) -> list[UploadRecord]:
        """Return classified uploads that have no review decision yet."""

    def delete_old_records(self, days: int) -> int:
        """Delete finished uploads older than ``days``; return the row count."""

    def get_category_folder(self, category: str) -> str | None:
        """Return the cached folder id for a category."""

    def save_category_folder(self, category: str, folder_id: str) -> None:
        """Cache a category folder id."""

    def forget_category_folder(self, category: str) -> None:
        """Drop a stale cache entry."""

    def increment_category_file_count(self, category: str) -> None:
        """Count one more file organized into a category."""

    def record_feedback(self, feedback: ClassificationFeedback) -> None:
        """Append a review decision."""

    def feedback_statistics(self) -> FeedbackStatistics:
        """Aggregate review decisions."""
