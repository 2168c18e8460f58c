from __future__ import annotations

import logging
from typing import Any

from uploader.adapters.google_drive_adapter import GoogleDriveAdapter
from uploader.adapters.google_vision_adapter import GoogleVisionAdapter
from uploader.adapters.slack_adapter import SlackChatAdapter, SlackClient, SlackNotifier
from uploader.adapters.sqlite_upload_store import SQLiteUploadStore
from uploader.adapters.tesseract_vision_adapter import TesseractVisionAdapter
from uploader.adapters.vision_disabled import DisabledVisionAdapter
from uploader.domain.validation import UploadPolicy
from uploader.ports.vision_port import VisionPort
from uploader.services.classification_service import ClassificationService
from uploader.services.event_dedup import EventDeduplicator
from uploader.services.organization_service import OrganizationService
from uploader.services.retry_controller import RetryController
from uploader.services.review_service import ReviewService
from uploader.services.rule_store import RuleStore
from uploader.services.task_queue import TaskQueue
from uploader.services.upload_pipeline import UploadPipeline
from uploader.settings import (
    ALLOWED_IMAGE_TYPES,
    AUTO_ORGANIZE_THRESHOLD,
    CLASSIFICATION_ENABLED,
    CLASSIFICATION_ROOT_FOLDER_ID,
    CLASSIFICATION_ROOT_FOLDER_NAME,
    CONTEXT_MESSAGE_LIMIT,
    CONTEXT_PREFER_THREAD,
    CREATE_DATE_FOLDERS,
    EVENT_DEDUP_TTL_SECONDS,
    GOOGLE_DRIVE_FOLDER_ID,
    GOOGLE_VISION_API_KEY,
    LEARNED_RULES_PATH,
    MAX_FILE_SIZE_MB,
    MAX_RETRY_ATTEMPTS,
    OCR_LANG,
    QUEUE_CONCURRENCY,
    RETRY_DELAY_MS,
    SEND_COMPLETION_MESSAGE,
    SEND_ERROR_MESSAGE,
    SLACK_BOT_TOKEN,
    TARGET_USER_ID,
    VISION_PROVIDER,
)

logger = logging.getLogger(__name__)


def _build_vision() -> VisionPort:
    if VISION_PROVIDER == "google" and GOOGLE_VISION_API_KEY:
        return GoogleVisionAdapter(GOOGLE_VISION_API_KEY)
    if VISION_PROVIDER == "tesseract":
        return TesseractVisionAdapter(language=OCR_LANG)
    if VISION_PROVIDER == "google":
        logger.warning("GOOGLE_VISION_API_KEY is not set, image analysis disabled")
    return DisabledVisionAdapter()


def build_review_services(access_token: str, sqlite_path: str) -> dict[str, Any]:
    """Store, organizer and review service without the upload queue."""

    drive = GoogleDriveAdapter(access_token)
    store = SQLiteUploadStore(sqlite_path)
    rule_store = RuleStore(LEARNED_RULES_PATH)
    organizer = OrganizationService(
        drive,
        store,
        parent_folder_id=GOOGLE_DRIVE_FOLDER_ID,
        root_folder_name=CLASSIFICATION_ROOT_FOLDER_NAME,
        root_folder_id=CLASSIFICATION_ROOT_FOLDER_ID,
    )
    return {
        "drive": drive,
        "store": store,
        "rule_store": rule_store,
        "organization_service": organizer,
        "review_service": ReviewService(store, organizer, rule_store.rules.names()),
    }


def build_services(access_token: str, sqlite_path: str) -> dict[str, Any]:
    services = build_review_services(access_token, sqlite_path)
    drive = services["drive"]
    store = services["store"]
    slack = SlackClient(SLACK_BOT_TOKEN)
    chat = SlackChatAdapter(
        slack, context_limit=CONTEXT_MESSAGE_LIMIT, prefer_thread=CONTEXT_PREFER_THREAD
    )
    notifier = SlackNotifier(slack)
    vision = _build_vision()
    classifier = None
    organizer = None
    if CLASSIFICATION_ENABLED:
        classifier = ClassificationService(vision, services["rule_store"].rules)
        organizer = services["organization_service"]
    queue = TaskQueue(concurrency=QUEUE_CONCURRENCY)
    retry = RetryController(
        store, max_attempts=MAX_RETRY_ATTEMPTS, base_delay_ms=RETRY_DELAY_MS
    )
    dedup = EventDeduplicator(ttl_seconds=EVENT_DEDUP_TTL_SECONDS)
    policy = UploadPolicy(
        max_file_size_bytes=MAX_FILE_SIZE_MB * 1024 * 1024,
        allowed_mime_types=ALLOWED_IMAGE_TYPES,
        authorized_user_id=TARGET_USER_ID,
    )
    pipeline = UploadPipeline(
        store=store,
        chat=chat,
        drive=drive,
        queue=queue,
        retry=retry,
        dedup=dedup,
        policy=policy,
        base_folder_id=GOOGLE_DRIVE_FOLDER_ID,
        notifier=notifier,
        classifier=classifier,
        organizer=organizer,
        create_date_folders=CREATE_DATE_FOLDERS,
        auto_organize_threshold=AUTO_ORGANIZE_THRESHOLD,
        send_completion_message=SEND_COMPLETION_MESSAGE,
        send_error_message=SEND_ERROR_MESSAGE,
    )
    services.update(
        {
            "chat": chat,
            "notifier": notifier,
            "vision": vision,
            "classification_service": classifier,
            "task_queue": queue,
            "retry_controller": retry,
            "event_dedup": dedup,
            "upload_pipeline": pipeline,
        }
    )
    return services
