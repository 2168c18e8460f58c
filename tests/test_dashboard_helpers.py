from datetime import datetime, timezone

from uploader.domain.feedback import AccuracyBucket, FeedbackStatistics
from uploader.domain.models import UploadRecord, UploadStats
from uploader.ui_streamlit.helpers import (
    accuracy_rows,
    category_options,
    format_confidence,
    method_rows,
    status_rows,
    upload_row,
)


def test_format_confidence() -> None:
    assert format_confidence(None) == "-"
    assert format_confidence(0.82) == "82%"


def test_status_rows_include_total() -> None:
    rows = status_rows(UploadStats(total=3, completed=2, failed=1))

    assert rows[-1] == {"Status": "total", "Count": 3}
    assert {"Status": "completed", "Count": 2} in rows


def test_upload_row_prefers_reviewed_category() -> None:
    record = UploadRecord(
        id=1,
        source_file_id="F0123456789",
        source_user_id="U0123456789",
        channel_id="C0123456789",
        original_filename="hero.png",
        status="completed",
        created_at=datetime(2025, 1, 2, tzinfo=timezone.utc),
        ai_category="Other",
        user_category="Game Screenshot",
        ai_confidence=0.5,
    )

    row = upload_row(record)

    assert row["Category"] == "Game Screenshot"
    assert row["User"] == "U0123456789"
    assert row["Confidence"] == "50%"


def test_accuracy_rows_flag_weak_categories() -> None:
    stats = FeedbackStatistics(
        total=6,
        confirmed=1,
        by_category={"Other": AccuracyBucket(total=6, correct=1)},
        by_method={"hybrid": AccuracyBucket(total=6, correct=1)},
    )

    assert accuracy_rows(stats)[0]["Needs improvement"] == "yes"
    assert method_rows(stats) == [{"Method": "hybrid", "Reviews": 6, "Accuracy": "17%"}]


def test_category_options_keep_unknown_current_value() -> None:
    assert category_options(["A", "B"], "B") == (["A", "B"], 1)
    assert category_options(["A"], "Z") == (["A", "Z"], 1)
    assert category_options(["A"], None) == (["A"], 0)
