from __future__ import annotations

import json
import logging

from uploader.domain.feedback import SKIPPED, FeedbackStatistics, determine_feedback_type
from uploader.domain.models import COMPLETED, ClassificationFeedback, UploadRecord
from uploader.domain.validation import sanitize_filename
from uploader.errors import OrganizationError, ValidationError
from uploader.ports.upload_store_port import UploadStorePort
from uploader.services.organization_service import OrganizationService
from uploader.services.time_utils import utc_now

logger = logging.getLogger(__name__)


class ReviewService:
    def __init__(
        self,
        store: UploadStorePort,
        organizer: OrganizationService | None = None,
        known_categories: list[str] | None = None,
    ) -> None:
        self._store = store
        self._organizer = organizer
        self._known_categories = known_categories

    def pending(self, limit: int = 50) -> list[UploadRecord]:
        return self._store.list_pending_review(limit)

    def confirm(self, source_file_id: str) -> UploadRecord:
        record = self._reviewable(source_file_id)
        return self.review(source_file_id, record.ai_category, record.suggested_filename)

    def change_category(self, source_file_id: str, category: str) -> UploadRecord:
        record = self._reviewable(source_file_id)
        return self.review(source_file_id, category, record.suggested_filename)

    def rename(self, source_file_id: str, filename: str) -> UploadRecord:
        record = self._reviewable(source_file_id)
        return self.review(source_file_id, record.ai_category, filename)

    def review(
        self, source_file_id: str, category: str | None, filename: str | None
    ) -> UploadRecord:
        """Apply an operator decision, organize the file and log the feedback."""

        record = self._reviewable(source_file_id)
        if not category:
            raise ValidationError(["A category is required"])
        if self._known_categories is not None and category not in self._known_categories:
            raise ValidationError([f"Unknown category: {category}"])
        final_name = sanitize_filename(
            filename or record.suggested_filename or record.original_filename
        )
        feedback_type = determine_feedback_type(
            record.ai_category, record.suggested_filename, category, final_name
        )

        if self._organizer is not None and self._needs_copy(record, category, final_name):
            if not record.storage_file_id:
                raise ValidationError(
                    [f"Upload {source_file_id} has no stored file to organize"]
                )
            try:
                self._organizer.organize(
                    source_file_id, record.storage_file_id, category, final_name
                )
            except OrganizationError:
                logger.exception(f"Organizing reviewed upload {source_file_id} failed")
                raise

        self._store.update_status(
            source_file_id,
            {
                "user_category": category,
                "final_filename": final_name,
                "feedback_type": feedback_type,
            },
        )
        self._record(record, category, feedback_type, {"final_filename": final_name})
        logger.info(f"Review of {source_file_id}: {feedback_type} ({category}/{final_name})")
        return self._store.get(source_file_id) or record

    def skip(self, source_file_id: str) -> UploadRecord:
        record = self._reviewable(source_file_id)
        self._store.update_status(source_file_id, {"feedback_type": SKIPPED})
        self._record(record, None, SKIPPED, {})
        logger.info(f"Review of {source_file_id} skipped")
        return self._store.get(source_file_id) or record

    def statistics(self) -> FeedbackStatistics:
        stats = self._store.feedback_statistics()
        for category in stats.needs_improvement():
            bucket = stats.by_category[category]
            logger.warning(
                f"Category {category} needs improvement: "
                f"{bucket.accuracy:.0%} over {bucket.total} reviews"
            )
        return stats

    def _reviewable(self, source_file_id: str) -> UploadRecord:
        record = self._store.get(source_file_id)
        if record is None:
            raise ValidationError([f"Upload not found: {source_file_id}"])
        if record.status != COMPLETED:
            raise ValidationError(
                [f"Upload {source_file_id} is {record.status}, not completed"]
            )
        if not record.ai_category:
            raise ValidationError([f"Upload {source_file_id} has not been classified"])
        return record

    @staticmethod
    def _needs_copy(record: UploadRecord, category: str, filename: str) -> bool:
        if not record.category_file_id:
            return True
        organized_category = record.user_category or record.ai_category
        return organized_category != category or record.final_filename != filename

    def _record(
        self, record: UploadRecord, category: str | None, feedback_type: str, extra: dict
    ) -> None:
        context = {
            "method": record.classification_method,
            "suggested_filename": record.suggested_filename,
            "labels": record.detected_labels[:10],
            **extra,
        }
        self._store.record_feedback(
            ClassificationFeedback(
                source_file_id=record.source_file_id,
                ai_category=record.ai_category,
                ai_confidence=record.ai_confidence,
                user_category=category,
                feedback_type=feedback_type,
                context=json.dumps(context, ensure_ascii=False),
                created_at=utc_now(),
            )
        )
