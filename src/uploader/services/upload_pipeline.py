from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from uploader.domain.filenames import date_folder_name, timestamped_filename
from uploader.domain.models import (
    FAILED,
    FileSharedEvent,
    SlackFile,
    TransferResult,
    UploadCandidate,
    UploadRecord,
)
from uploader.domain.validation import (
    UploadPolicy,
    parse_file_shared_event,
    sanitize_filename,
    validate_file_id,
    validate_file_upload,
)
from uploader.errors import (
    ExternalServiceError,
    OrganizationError,
    QueueClosedError,
    RetryExhaustedError,
)
from uploader.ports.chat_port import ChatPort
from uploader.ports.drive_port import DrivePort
from uploader.ports.notifier_port import NotifierPort
from uploader.ports.upload_store_port import UploadStorePort
from uploader.services.classification_service import ClassificationOutcome, ClassificationService
from uploader.services.event_dedup import EventDeduplicator
from uploader.services.organization_service import OrganizationService
from uploader.services.retry_controller import RetryController
from uploader.services.task_queue import DrainResult, TaskQueue
from uploader.services.time_utils import utc_now

logger = logging.getLogger(__name__)


class IntakeOutcome(str, Enum):
    QUEUED = "queued"
    DUPLICATE = "duplicate"
    REJECTED = "rejected"
    UNAVAILABLE = "unavailable"


@dataclass
class IntakeResult:
    outcome: IntakeOutcome
    source_file_id: str
    future: Future | None = None
    errors: list[str] = field(default_factory=list)


class UploadPipeline:
    """Intake, queueing and processing of shared Slack files."""

    def __init__(
        self,
        store: UploadStorePort,
        chat: ChatPort,
        drive: DrivePort,
        queue: TaskQueue,
        retry: RetryController,
        dedup: EventDeduplicator,
        policy: UploadPolicy,
        base_folder_id: str,
        notifier: NotifierPort | None = None,
        classifier: ClassificationService | None = None,
        organizer: OrganizationService | None = None,
        create_date_folders: bool = True,
        auto_organize_threshold: float = 0.7,
        send_completion_message: bool = True,
        send_error_message: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._chat = chat
        self._drive = drive
        self._queue = queue
        self._retry = retry
        self._dedup = dedup
        self._policy = policy
        self._base_folder_id = base_folder_id
        self._notifier = notifier
        self._classifier = classifier
        self._organizer = organizer
        self._create_date_folders = create_date_folders
        self._auto_organize_threshold = auto_organize_threshold
        self._send_completion_message = send_completion_message
        self._send_error_message = send_error_message
        self._clock = clock

    def accept_event(self, payload: Any, event_id: str | None = None) -> FileSharedEvent | None:
        """Normalize a ``file_shared`` event, or return None for redeliveries and junk."""

        try:
            event = parse_file_shared_event(payload, event_id)
        except ValueError as exc:
            logger.warning(f"Ignoring event {event_id}: {exc}")
            return None
        if not self._dedup.should_process(event_id or event.file_id):
            logger.info(f"Duplicate event {event_id or event.file_id} ignored")
            return None
        return event

    def intake(self, event: FileSharedEvent) -> IntakeResult:
        file_id = event.file_id
        id_error = validate_file_id(file_id)
        if id_error:
            self._reject(
                UploadCandidate(
                    source_file_id=str(file_id),
                    source_user_id=event.user_id,
                    channel_id=event.channel_id,
                    original_filename="unknown",
                ),
                [id_error],
            )
            return IntakeResult(IntakeOutcome.REJECTED, str(file_id), errors=[id_error])

        if self._store.exists(file_id):
            logger.info(f"File {file_id} already taken in, skipping")
            return IntakeResult(IntakeOutcome.DUPLICATE, file_id)

        try:
            slack_file = self._chat.get_file_info(file_id)
        except ExternalServiceError as exc:
            logger.error(f"Could not fetch metadata for {file_id}: {exc}")
            return IntakeResult(IntakeOutcome.UNAVAILABLE, file_id, errors=[str(exc)])
        if not slack_file.channel_id:
            slack_file.channel_id = event.channel_id or None
        errors = validate_file_upload(slack_file, self._policy)
        candidate = UploadCandidate(
            source_file_id=file_id,
            source_user_id=slack_file.user_id or event.user_id,
            channel_id=slack_file.channel_id or event.channel_id,
            original_filename=slack_file.name or "unknown",
            source_user_name=self._user_name(slack_file.user_id or event.user_id),
            file_size=slack_file.size,
            mime_type=slack_file.mime_type,
        )
        if errors:
            self._reject(candidate, errors)
            return IntakeResult(IntakeOutcome.REJECTED, file_id, errors=errors)

        if self._store.insert(candidate) is None:
            return IntakeResult(IntakeOutcome.DUPLICATE, file_id)

        try:
            future = self._queue.enqueue(lambda: self.process(slack_file), name=file_id)
        except QueueClosedError as exc:
            self._store.update_status(file_id, {"status": FAILED, "error_message": str(exc)})
            logger.error(f"Could not queue {file_id}: {exc}")
            return IntakeResult(IntakeOutcome.UNAVAILABLE, file_id, errors=[str(exc)])
        logger.info(f"Queued {file_id} ({slack_file.name}) for upload")
        return IntakeResult(IntakeOutcome.QUEUED, file_id, future=future)

    def process(self, slack_file: SlackFile) -> UploadRecord | None:
        """Queue job: store the file, then classify and organize it."""

        file_id = slack_file.file_id
        try:
            transfer = self._retry.run(
                file_id,
                lambda: self._transfer(slack_file),
                completion_fields=self._completion_fields,
                on_failure=lambda exc: self._notify_failure(slack_file, exc),
            )
        except RetryExhaustedError:
            return self._store.get(file_id)
        except Exception as exc:
            logger.exception(f"Unexpected error processing {file_id}")
            self._store.update_status(file_id, {"status": FAILED, "error_message": str(exc)})
            return self._store.get(file_id)

        summary: dict[str, Any] = {
            "filename": transfer.stored.name,
            "file_size": slack_file.size,
            "url": transfer.stored.url,
            "thread_ts": slack_file.thread_ts,
        }
        if self._classifier is not None:
            try:
                summary.update(self._classify(slack_file, transfer))
            except Exception:
                logger.exception(f"Classification of {file_id} failed; upload stays completed")
        self._notify_success(slack_file, summary)
        return self._store.get(file_id)

    def health(self) -> dict[str, Any]:
        queue = self._queue.stats()
        uploads = self._store.stats_by_status()
        return {
            "queue": {
                "queued": queue.queued,
                "running": queue.running,
                "concurrency": queue.concurrency,
                "paused": queue.paused,
                "accepting": queue.accepting,
            },
            "uploads": {
                "total": uploads.total,
                "pending": uploads.pending,
                "processing": uploads.processing,
                "completed": uploads.completed,
                "failed": uploads.failed,
                "total_bytes": uploads.total_bytes,
                "success_rate": uploads.success_rate,
            },
            "dedup_window": len(self._dedup),
        }

    def shutdown(self, timeout: float) -> DrainResult:
        return self._queue.drain_and_stop(timeout)

    def _transfer(self, slack_file: SlackFile) -> TransferResult:
        content = self._chat.download_file(slack_file)
        now = self._clock()
        folder_id = self._base_folder_id
        folder_path = "/"
        if self._create_date_folders:
            folder_name = date_folder_name(now)
            folder_id = self._drive.ensure_folder(folder_name, self._base_folder_id)
            folder_path = f"/{folder_name}"
        filename = sanitize_filename(slack_file.name)
        if self._drive.file_exists(folder_id, filename):
            filename = timestamped_filename(filename, now)
        stored = self._drive.upload_file(content, filename, slack_file.mime_type, folder_id)
        return TransferResult(stored=stored, content=content, folder_path=folder_path)

    @staticmethod
    def _completion_fields(transfer: TransferResult) -> dict[str, Any]:
        return {
            "storage_file_id": transfer.stored.file_id,
            "storage_file_name": transfer.stored.name,
            "storage_url": transfer.stored.url,
            "storage_folder_path": transfer.folder_path,
        }

    def _classify(self, slack_file: SlackFile, transfer: TransferResult) -> dict[str, Any]:
        try:
            context = self._chat.fetch_message_context(slack_file)
        except Exception:
            logger.exception(f"Could not collect message context for {slack_file.file_id}")
            context = None
        outcome = self._classifier.classify_image(
            transfer.content, context, slack_file.name, slack_file.mime_type
        )
        self._store.update_status(slack_file.file_id, outcome.record_fields())
        summary = {
            "category": outcome.result.category,
            "confidence": outcome.result.confidence,
            "suggested_filename": outcome.suggested_filename,
        }
        if self._should_organize(outcome):
            try:
                organized = self._organizer.organize(
                    slack_file.file_id,
                    transfer.stored.file_id,
                    outcome.result.category,
                    outcome.suggested_filename,
                )
                summary["category_url"] = organized.url
            except OrganizationError:
                logger.exception(f"Organizing {slack_file.file_id} failed; upload stays completed")
        return summary

    def _should_organize(self, outcome: ClassificationOutcome) -> bool:
        return (
            self._organizer is not None
            and outcome.result.confidence >= self._auto_organize_threshold
        )

    def _reject(self, candidate: UploadCandidate, errors: list[str]) -> None:
        message = "; ".join(errors)
        candidate.status = FAILED
        candidate.error_message = message
        self._store.insert(candidate)
        logger.warning(f"Rejected {candidate.source_file_id}: {message}")

    def _user_name(self, user_id: str) -> str | None:
        try:
            return self._chat.get_user_name(user_id)
        except Exception as exc:
            logger.warning(f"Could not resolve user name for {user_id}: {exc}")
            return None

    def _notify_success(self, slack_file: SlackFile, summary: dict[str, Any]) -> None:
        if self._notifier is None or not self._send_completion_message:
            return
        if not slack_file.channel_id:
            return
        try:
            self._notifier.notify_success(slack_file.channel_id, summary)
        except Exception:
            logger.exception(f"Completion message for {slack_file.file_id} failed")

    def _notify_failure(self, slack_file: SlackFile, error: Exception) -> None:
        if self._notifier is None or not self._send_error_message:
            return
        if not slack_file.channel_id:
            return
        summary = {"filename": slack_file.name, "thread_ts": slack_file.thread_ts}
        try:
            self._notifier.notify_failure(slack_file.channel_id, summary, str(error))
        except Exception:
            logger.exception(f"Failure message for {slack_file.file_id} failed")
