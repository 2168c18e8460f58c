from uploader.domain.feedback import (
    BOTH_CHANGED,
    CATEGORY_CHANGED,
    CONFIRMED,
    FILENAME_CHANGED,
    AccuracyBucket,
    FeedbackStatistics,
    determine_feedback_type,
    is_correct,
)


def test_determine_feedback_type() -> None:
    assert determine_feedback_type("A", "a.png", "A", "a.png") == CONFIRMED
    assert determine_feedback_type("A", "a.png", "B", "a.png") == CATEGORY_CHANGED
    assert determine_feedback_type("A", "a.png", "A", "b.png") == FILENAME_CHANGED
    assert determine_feedback_type("A", "a.png", "B", "b.png") == BOTH_CHANGED


def test_filename_changes_still_count_as_correct() -> None:
    assert is_correct(CONFIRMED)
    assert is_correct(FILENAME_CHANGED)
    assert not is_correct(CATEGORY_CHANGED)
    assert not is_correct(BOTH_CHANGED)


def test_needs_improvement_requires_enough_samples() -> None:
    stats = FeedbackStatistics(
        total=13,
        confirmed=7,
        by_category={
            "Other": AccuracyBucket(total=5, correct=3),
            "UI / Screen": AccuracyBucket(total=4, correct=0),
            "Game Screenshot": AccuracyBucket(total=4, correct=4),
        },
    )

    assert stats.needs_improvement() == ["Other"]
    assert AccuracyBucket().accuracy == 0.0
