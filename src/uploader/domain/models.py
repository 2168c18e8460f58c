from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"

UPLOAD_STATUSES = (PENDING, PROCESSING, COMPLETED, FAILED)


@dataclass(frozen=True)
class FileSharedEvent:
    file_id: str
    user_id: str
    channel_id: str
    event_id: str | None = None


@dataclass
class SlackFile:
    file_id: str
    name: str
    mime_type: str
    size: int | None
    user_id: str
    channel_id: str | None = None
    download_url: str | None = None
    timestamp: str | None = None
    thread_ts: str | None = None


@dataclass
class UploadCandidate:
    source_file_id: str
    source_user_id: str
    channel_id: str
    original_filename: str
    source_user_name: str | None = None
    file_size: int | None = None
    mime_type: str | None = None
    status: str = PENDING
    error_message: str | None = None


@dataclass
class UploadRecord:
    id: int
    source_file_id: str
    source_user_id: str
    channel_id: str
    original_filename: str
    status: str
    created_at: datetime
    source_user_name: str | None = None
    file_size: int | None = None
    mime_type: str | None = None
    storage_file_id: str | None = None
    storage_file_name: str | None = None
    storage_url: str | None = None
    storage_folder_path: str | None = None
    error_message: str | None = None
    retry_count: int = 0
    completed_at: datetime | None = None
    classification_method: str | None = None
    detected_labels: list[str] = field(default_factory=list)
    detected_text: str | None = None
    ai_category: str | None = None
    ai_confidence: float | None = None
    suggested_filename: str | None = None
    user_category: str | None = None
    final_filename: str | None = None
    feedback_type: str | None = None
    category_file_id: str | None = None
    category_file_url: str | None = None
    organized_at: datetime | None = None


@dataclass
class UploadStats:
    total: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    total_bytes: int = 0

    @property
    def success_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return round(self.completed / self.total * 100, 2)


@dataclass(frozen=True)
class StoredFile:
    file_id: str
    name: str
    url: str | None
    folder_id: str | None = None


@dataclass
class TransferResult:
    stored: StoredFile
    content: bytes
    folder_path: str = "/"


@dataclass(frozen=True)
class DetectedLabel:
    description: str
    score: float


@dataclass(frozen=True)
class DominantColor:
    red: int
    green: int
    blue: int
    pixel_fraction: float
    score: float = 0.0


@dataclass
class ImageAnalysis:
    labels: list[DetectedLabel] = field(default_factory=list)
    text: str = ""
    colors: list[DominantColor] = field(default_factory=list)
    face_count: int | None = None

    @property
    def has_text(self) -> bool:
        return len(self.text) > 0

    def has_signals(self) -> bool:
        return bool(self.labels or self.text or self.colors or self.face_count is not None)


@dataclass(frozen=True)
class ContextMessage:
    user: str | None
    text: str
    ts: str | None = None


@dataclass
class MessageContext:
    source: str = "none"
    messages: list[ContextMessage] = field(default_factory=list)

    @property
    def text(self) -> str:
        return " ".join(message.text for message in self.messages if message.text)

    @property
    def summary(self) -> str:
        return self.text[:500]


@dataclass(frozen=True)
class CategoryScore:
    name: str
    score: float

    @property
    def confidence(self) -> float:
        return min(self.score, 1.0)


@dataclass
class ClassificationResult:
    category: str
    confidence: float
    method: str
    alternatives: list[CategoryScore]
    scores: dict[str, float] = field(default_factory=dict)


@dataclass
class ClassificationFeedback:
    source_file_id: str
    ai_category: str | None
    ai_confidence: float | None
    user_category: str | None
    feedback_type: str
    context: str = "{}"
    created_at: datetime | None = None


@dataclass
class OrganizedFile:
    source_file_id: str
    category: str
    folder_id: str
    file_id: str
    filename: str
    url: str | None = None
