from __future__ import annotations

from dataclasses import dataclass, field

CONFIRMED = "Confirmed"
CATEGORY_CHANGED = "Category Changed"
FILENAME_CHANGED = "Filename Changed"
BOTH_CHANGED = "Both Changed"
SKIPPED = "Skipped"

CORRECT_FEEDBACK_TYPES = (CONFIRMED, FILENAME_CHANGED)

IMPROVEMENT_ACCURACY = 0.7
IMPROVEMENT_MIN_SAMPLES = 5


def determine_feedback_type(
    ai_category: str | None,
    ai_filename: str | None,
    user_category: str | None,
    user_filename: str | None,
) -> str:
    category_changed = ai_category != user_category
    filename_changed = ai_filename != user_filename
    if category_changed and filename_changed:
        return BOTH_CHANGED
    if category_changed:
        return CATEGORY_CHANGED
    if filename_changed:
        return FILENAME_CHANGED
    return CONFIRMED


def is_correct(feedback_type: str) -> bool:
    return feedback_type in CORRECT_FEEDBACK_TYPES


@dataclass
class AccuracyBucket:
    total: int = 0
    correct: int = 0

    @property
    def accuracy(self) -> float:
        if self.total == 0:
            return 0.0
        return self.correct / self.total


@dataclass
class FeedbackStatistics:
    """Aggregated review outcomes.

    ``overall_accuracy`` counts only Confirmed reviews; the per-category and
    per-method buckets also treat Filename Changed as correct, since the
    category was right.
    """

    total: int = 0
    confirmed: int = 0
    by_category: dict[str, AccuracyBucket] = field(default_factory=dict)
    by_method: dict[str, AccuracyBucket] = field(default_factory=dict)

    @property
    def overall_accuracy(self) -> float:
        if self.total == 0:
            return 0.0
        return self.confirmed / self.total

    def needs_improvement(self) -> list[str]:
        return [
            category
            for category, bucket in self.by_category.items()
            if bucket.accuracy < IMPROVEMENT_ACCURACY
            and bucket.total >= IMPROVEMENT_MIN_SAMPLES
        ]
