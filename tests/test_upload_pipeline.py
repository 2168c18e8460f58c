from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from uploader.adapters.sqlite_upload_store import SQLiteUploadStore
from uploader.domain.models import (
    COMPLETED,
    FAILED,
    ClassificationResult,
    FileSharedEvent,
    ImageAnalysis,
    MessageContext,
    SlackFile,
    StoredFile,
)
from uploader.domain.validation import UploadPolicy
from uploader.errors import ExternalServiceError
from uploader.services.classification_service import ClassificationOutcome
from uploader.services.event_dedup import EventDeduplicator
from uploader.services.retry_controller import RetryController
from uploader.services.task_queue import TaskQueue
from uploader.services.upload_pipeline import IntakeOutcome, UploadPipeline

_NOW = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def _slack_file(**overrides) -> SlackFile:
    values = {
        "file_id": "F0123456789",
        "name": "hero.png",
        "mime_type": "image/png",
        "size": 2048,
        "user_id": "U0123456789",
        "channel_id": "C0123456789",
        "download_url": "https://files.slack.com/hero.png",
        "thread_ts": "1700000000.000100",
    }
    values.update(overrides)
    return SlackFile(**values)


def _event(file_id: str = "F0123456789") -> FileSharedEvent:
    return FileSharedEvent(
        file_id=file_id, user_id="U0123456789", channel_id="C0123456789", event_id="Ev1"
    )


@pytest.fixture
def parts(tmp_path):
    store = SQLiteUploadStore(str(tmp_path / "uploads.db"))
    chat = Mock()
    chat.get_file_info.return_value = _slack_file()
    chat.get_user_name.return_value = "Mina"
    chat.download_file.return_value = b"image-bytes"
    chat.fetch_message_context.return_value = MessageContext()
    drive = Mock()
    drive.ensure_folder.return_value = "day-1"
    drive.file_exists.return_value = False
    drive.upload_file.return_value = StoredFile(
        file_id="drive-1", name="hero.png", url="https://drive/1", folder_id="day-1"
    )
    queue = TaskQueue(concurrency=1)
    yield {
        "store": store,
        "chat": chat,
        "drive": drive,
        "queue": queue,
        "notifier": Mock(),
    }
    queue.drain_and_stop(timeout=5)


def _pipeline(parts, **overrides) -> UploadPipeline:
    values = {
        "store": parts["store"],
        "chat": parts["chat"],
        "drive": parts["drive"],
        "queue": parts["queue"],
        "retry": RetryController(
            parts["store"], max_attempts=2, base_delay_ms=0, sleep=lambda _: None
        ),
        "dedup": EventDeduplicator(ttl_seconds=60),
        "policy": UploadPolicy(
            max_file_size_bytes=10 * 1024 * 1024, allowed_mime_types=("image/png",)
        ),
        "base_folder_id": "base",
        "notifier": parts["notifier"],
        "clock": lambda: _NOW,
    }
    values.update(overrides)
    return UploadPipeline(**values)


def test_accept_event_drops_redeliveries() -> None:
    pipeline = _pipeline(
        {"store": Mock(), "chat": Mock(), "drive": Mock(), "queue": Mock(), "notifier": None}
    )
    payload = {"type": "file_shared", "file_id": "F0123456789", "user_id": "U0123456789"}

    assert pipeline.accept_event(payload, "Ev1").file_id == "F0123456789"
    assert pipeline.accept_event(payload, "Ev1") is None
    assert pipeline.accept_event({"type": "message"}, "Ev2") is None


def test_intake_uploads_into_date_folder(parts) -> None:
    pipeline = _pipeline(parts)

    result = pipeline.intake(_event())
    record = result.future.result(timeout=5)

    assert result.outcome is IntakeOutcome.QUEUED
    assert record.status == COMPLETED
    assert record.storage_file_id == "drive-1"
    assert record.storage_folder_path == "/2025-01-02"
    assert record.source_user_name == "Mina"
    assert record.retry_count == 0
    parts["drive"].ensure_folder.assert_called_once_with("2025-01-02", "base")
    parts["drive"].upload_file.assert_called_once_with(
        b"image-bytes", "hero.png", "image/png", "day-1"
    )
    channel, summary = parts["notifier"].notify_success.call_args.args
    assert channel == "C0123456789"
    assert summary["url"] == "https://drive/1"
    assert summary["thread_ts"] == "1700000000.000100"


def test_name_collision_gets_a_timestamp(parts) -> None:
    parts["drive"].file_exists.return_value = True
    pipeline = _pipeline(parts, create_date_folders=False)

    pipeline.intake(_event()).future.result(timeout=5)

    parts["drive"].ensure_folder.assert_not_called()
    assert parts["drive"].upload_file.call_args.args[1:] == (
        "hero_20250102030405.png",
        "image/png",
        "base",
    )


def test_same_file_is_taken_in_once(parts) -> None:
    pipeline = _pipeline(parts)

    first = pipeline.intake(_event())
    first.future.result(timeout=5)
    second = pipeline.intake(_event())

    assert second.outcome is IntakeOutcome.DUPLICATE
    assert parts["drive"].upload_file.call_count == 1
    assert parts["store"].stats_by_status().total == 1


def test_malformed_file_id_is_rejected_before_the_queue(parts) -> None:
    pipeline = _pipeline(parts)

    result = pipeline.intake(_event(file_id="not-a-file"))

    assert result.outcome is IntakeOutcome.REJECTED
    parts["chat"].get_file_info.assert_not_called()
    record = parts["store"].get("not-a-file")
    assert record.status == FAILED
    assert "Invalid Slack file ID format" in record.error_message
    assert parts["queue"].stats().queued == 0


def test_invalid_file_is_recorded_as_failed(parts) -> None:
    parts["chat"].get_file_info.return_value = _slack_file(mime_type="application/pdf")
    pipeline = _pipeline(parts)

    result = pipeline.intake(_event())

    assert result.outcome is IntakeOutcome.REJECTED
    assert result.future is None
    assert parts["store"].get("F0123456789").status == FAILED
    parts["drive"].upload_file.assert_not_called()


def test_metadata_failure_is_reported_unavailable(parts) -> None:
    parts["chat"].get_file_info.side_effect = ExternalServiceError("slack down")
    pipeline = _pipeline(parts)

    result = pipeline.intake(_event())

    assert result.outcome is IntakeOutcome.UNAVAILABLE
    assert parts["store"].exists("F0123456789") is False


def test_closed_queue_marks_upload_failed(parts) -> None:
    parts["queue"].drain_and_stop(timeout=1)
    pipeline = _pipeline(parts)

    result = pipeline.intake(_event())

    assert result.outcome is IntakeOutcome.UNAVAILABLE
    assert parts["store"].get("F0123456789").status == FAILED


def test_exhausted_retries_fail_and_notify(parts) -> None:
    parts["drive"].upload_file.side_effect = ExternalServiceError("drive down", 500)
    pipeline = _pipeline(parts)

    record = pipeline.intake(_event()).future.result(timeout=5)

    assert record.status == FAILED
    assert record.retry_count == 2
    assert record.error_message == "drive down"
    assert parts["drive"].upload_file.call_count == 2
    parts["notifier"].notify_success.assert_not_called()
    channel, summary, error = parts["notifier"].notify_failure.call_args.args
    assert channel == "C0123456789"
    assert error == "drive down"


def test_notifier_errors_do_not_fail_the_upload(parts) -> None:
    parts["notifier"].notify_success.side_effect = RuntimeError("slack down")
    pipeline = _pipeline(parts)

    record = pipeline.intake(_event()).future.result(timeout=5)

    assert record.status == COMPLETED


def test_classification_failure_keeps_upload_completed(parts) -> None:
    classifier = Mock()
    classifier.classify_image.side_effect = RuntimeError("boom")
    pipeline = _pipeline(parts, classifier=classifier)

    record = pipeline.intake(_event()).future.result(timeout=5)

    assert record.status == COMPLETED
    assert record.ai_category is None
    parts["notifier"].notify_success.assert_called_once()


def _outcome(confidence: float) -> ClassificationOutcome:
    return ClassificationOutcome(
        analysis=ImageAnalysis(),
        result=ClassificationResult(
            category="Game Screenshot", confidence=confidence, method="vision_api", alternatives=[]
        ),
        suggested_filename="boss_fight.png",
    )


def test_confident_classification_is_organized(parts) -> None:
    classifier = Mock()
    classifier.classify_image.return_value = _outcome(0.82)
    organizer = Mock()
    organizer.organize.return_value.url = "https://drive/copy"
    pipeline = _pipeline(parts, classifier=classifier, organizer=organizer)

    record = pipeline.intake(_event()).future.result(timeout=5)

    assert record.ai_category == "Game Screenshot"
    assert record.suggested_filename == "boss_fight.png"
    organizer.organize.assert_called_once_with(
        "F0123456789", "drive-1", "Game Screenshot", "boss_fight.png"
    )
    summary = parts["notifier"].notify_success.call_args.args[1]
    assert summary["category_url"] == "https://drive/copy"


def test_unsure_classification_waits_for_review(parts) -> None:
    classifier = Mock()
    classifier.classify_image.return_value = _outcome(0.4)
    organizer = Mock()
    pipeline = _pipeline(parts, classifier=classifier, organizer=organizer)

    pipeline.intake(_event()).future.result(timeout=5)

    organizer.organize.assert_not_called()
    assert [r.source_file_id for r in parts["store"].list_pending_review()] == ["F0123456789"]


def test_health_reports_queue_and_uploads(parts) -> None:
    pipeline = _pipeline(parts)
    pipeline.intake(_event()).future.result(timeout=5)

    health = pipeline.health()

    assert health["queue"]["concurrency"] == 1
    assert health["uploads"]["completed"] == 1
    assert health["uploads"]["success_rate"] == 100.0
    assert health["dedup_window"] == 0
