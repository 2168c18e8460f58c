from __future__ import annotations

from uploader.domain.feedback import FeedbackStatistics
from uploader.domain.models import UploadRecord, UploadStats
from uploader.services.time_utils import local_display


def format_confidence(value: float | None) -> str:
    if value is None:
        return "-"
    return f"{value:.0%}"


def status_rows(stats: UploadStats) -> list[dict[str, object]]:
    return [
        {"Status": "pending", "Count": stats.pending},
        {"Status": "processing", "Count": stats.processing},
        {"Status": "completed", "Count": stats.completed},
        {"Status": "failed", "Count": stats.failed},
        {"Status": "total", "Count": stats.total},
    ]


def upload_row(record: UploadRecord) -> dict[str, object]:
    return {
        "File": record.original_filename,
        "User": record.source_user_name or record.source_user_id,
        "Status": record.status,
        "Category": record.user_category or record.ai_category or "-",
        "Confidence": format_confidence(record.ai_confidence),
        "Retries": record.retry_count,
        "Created": local_display(record.created_at),
        "Error": record.error_message or "",
    }


def accuracy_rows(stats: FeedbackStatistics) -> list[dict[str, object]]:
    flagged = set(stats.needs_improvement())
    rows = []
    for category, bucket in sorted(stats.by_category.items()):
        rows.append(
            {
                "Category": category,
                "Reviews": bucket.total,
                "Correct": bucket.correct,
                "Accuracy": format_confidence(bucket.accuracy),
                "Needs improvement": "yes" if category in flagged else "",
            }
        )
    return rows


def method_rows(stats: FeedbackStatistics) -> list[dict[str, object]]:
    return [
        {
            "Method": method,
            "Reviews": bucket.total,
            "Accuracy": format_confidence(bucket.accuracy),
        }
        for method, bucket in sorted(stats.by_method.items())
    ]


def category_options(known: list[str], current: str | None) -> tuple[list[str], int]:
    """Options for the category picker and the index of ``current``."""

    options = list(known)
    if current and current not in options:
        options.append(current)
    index = options.index(current) if current in options else 0
    return options, index
