from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any

from uploader.domain.feedback import (
    CONFIRMED,
    CORRECT_FEEDBACK_TYPES,
    AccuracyBucket,
    FeedbackStatistics,
)
from uploader.domain.lifecycle import INITIAL_STATUSES, is_valid_status, predecessors_of
from uploader.domain.models import (
    COMPLETED,
    FAILED,
    PENDING,
    PROCESSING,
    ClassificationFeedback,
    UploadCandidate,
    UploadRecord,
    UploadStats,
)
from uploader.errors import StorageError
from uploader.ports.upload_store_port import ROOT_FOLDER_KEY, UploadStorePort

logger = logging.getLogger(__name__)

ALLOWED_UPDATE_FIELDS = (
    "status",
    "storage_file_id",
    "storage_file_name",
    "storage_url",
    "storage_folder_path",
    "error_message",
    "retry_count",
    "completed_at",
    "classification_method",
    "detected_labels",
    "detected_text",
    "ai_category",
    "ai_confidence",
    "suggested_filename",
    "user_category",
    "final_filename",
    "feedback_type",
    "category_file_id",
    "category_file_url",
    "organized_at",
)

_UPLOAD_COLUMNS = (
    "id",
    "source_file_id",
    "source_user_id",
    "source_user_name",
    "channel_id",
    "original_filename",
    "file_size",
    "mime_type",
    "status",
    "created_at",
    *[name for name in ALLOWED_UPDATE_FIELDS if name != "status"],
)

_BUSY_TIMEOUT_S = 5.0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_db(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return json.dumps(list(value), ensure_ascii=False)
    return value


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


class SQLiteUploadStore(UploadStorePort):
    def __init__(self, sqlite_path: str) -> None:
        self._sqlite_path = sqlite_path
        self._ensure_schema()

    def insert(self, candidate: UploadCandidate) -> int | None:
        if candidate.status not in INITIAL_STATUSES:
            raise ValueError(f"Uploads cannot start as {candidate.status}")
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO uploads(
                        source_file_id, source_user_id, source_user_name, channel_id,
                        original_filename, file_size, mime_type, status, error_message,
                        created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        candidate.source_file_id,
                        candidate.source_user_id,
                        candidate.source_user_name,
                        candidate.channel_id,
                        candidate.original_filename,
                        candidate.file_size,
                        candidate.mime_type,
                        candidate.status,
                        candidate.error_message,
                        _utc_now().isoformat(),
                    ),
                )
            return cursor.lastrowid
        except sqlite3.IntegrityError:
            logger.info(f"Upload {candidate.source_file_id} already recorded, skipping")
            return None
        except sqlite3.Error as exc:
            raise StorageError("Failed to insert upload") from exc

    def update_status(self, source_file_id: str, fields: Mapping[str, Any]) -> bool:
        unknown = [name for name in fields if name not in ALLOWED_UPDATE_FIELDS]
        if unknown:
            logger.warning(f"Dropping non-updatable fields for {source_file_id}: {unknown}")
        updates = {name: value for name, value in fields.items() if name in ALLOWED_UPDATE_FIELDS}
        if not updates:
            logger.warning(f"No valid fields to update for {source_file_id}")
            return False

        assignments = ", ".join(f"{name} = ?" for name in updates)
        params: list[Any] = [_to_db(value) for value in updates.values()]
        where = "source_file_id = ?"
        params.append(source_file_id)

        target = updates.get("status")
        if target is not None:
            if not is_valid_status(target):
                logger.warning(f"Rejecting unknown status {target!r} for {source_file_id}")
                return False
            guard, guard_params = self._transition_guard(target, updates.get("retry_count"))
            if guard is None:
                logger.warning(f"Rejecting transition to {target} for {source_file_id}")
                return False
            where = f"{where} AND {guard}"
            params.extend(guard_params)

        try:
            with self._connect() as conn:
                cursor = conn.execute(f"UPDATE uploads SET {assignments} WHERE {where}", params)
            applied = cursor.rowcount > 0
        except sqlite3.Error as exc:
            raise StorageError("Failed to update upload") from exc
        if not applied:
            logger.warning(
                f"Update not applied for {source_file_id} "
                f"(missing record or illegal transition to {target})"
            )
        return applied

    @staticmethod
    def _transition_guard(target: str, retry_count: Any) -> tuple[str | None, list[Any]]:
        allowed = [status for status in predecessors_of(target) if status != target]
        if target == PROCESSING and isinstance(retry_count, int):
            # re-entry only with a higher retry count
            return "(status = ? OR (status = ? AND retry_count < ?))", [
                PENDING,
                PROCESSING,
                retry_count,
            ]
        if not allowed:
            return None, []
        placeholders = ", ".join("?" for _ in allowed)
        return f"status IN ({placeholders})", allowed

    def get(self, source_file_id: str) -> UploadRecord | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    f"SELECT {', '.join(_UPLOAD_COLUMNS)} FROM uploads WHERE source_file_id = ?",
                    (source_file_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError("Failed to fetch upload") from exc
        if row is None:
            return None
        return self._row_to_record(row)

    def exists(self, source_file_id: str) -> bool:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT 1 FROM uploads WHERE source_file_id = ?",
                    (source_file_id,),
                ).fetchone()
            return row is not None
        except sqlite3.Error as exc:
            raise StorageError("Failed to check upload") from exc

    def stats_by_status(self) -> UploadStats:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT status, COUNT(*), COALESCE(SUM(file_size), 0)
                    FROM uploads
                    GROUP BY status
                    """
                ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError("Failed to compute upload statistics") from exc
        stats = UploadStats()
        for status, count, total_size in rows:
            if status in (PENDING, PROCESSING, COMPLETED, FAILED):
                setattr(stats, status, count)
            stats.total += count
            stats.total_bytes += total_size or 0
        return stats

    def list_by_status(self, status: str, limit: int = 50) -> list[UploadRecord]:
        return self._select_many(
            "WHERE status = ? ORDER BY created_at DESC, id DESC LIMIT ?", (status, limit)
        )

    def list_for_user(self, user_id: str, limit: int = 10) -> list[UploadRecord]:
        return self._select_many(
            "WHERE source_user_id = ? ORDER BY created_at DESC, id DESC LIMIT ?", (user_id, limit)
        )

    def list_pending_review(self, limit: int = 50) -> list[UploadRecord]:
        return self._select_many(
            """
            WHERE status = ? AND ai_category IS NOT NULL AND feedback_type IS NULL
            ORDER BY created_at ASC, id ASC LIMIT ?
            """,
            (COMPLETED, limit),
        )

    def delete_old_records(self, days: int) -> int:
        cutoff = (_utc_now() - timedelta(days=days)).isoformat()
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    "DELETE FROM uploads WHERE created_at < ? AND status IN (?, ?)",
                    (cutoff, COMPLETED, FAILED),
                )
            deleted = cursor.rowcount
        except sqlite3.Error as exc:
            raise StorageError("Failed to delete old uploads") from exc
        logger.info(f"Deleted {deleted} uploads older than {days} days")
        return deleted

    def get_category_folder(self, category: str) -> str | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT folder_id FROM category_folders WHERE category_name = ?",
                    (category,),
                ).fetchone()
            return row[0] if row else None
        except sqlite3.Error as exc:
            raise StorageError("Failed to fetch category folder") from exc

    def save_category_folder(self, category: str, folder_id: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO category_folders(category_name, folder_id, file_count, last_updated)
                    VALUES (?, ?, 0, ?)
                    ON CONFLICT(category_name) DO UPDATE SET
                        folder_id = excluded.folder_id,
                        last_updated = excluded.last_updated
                    """,
                    (category, folder_id, _utc_now().isoformat()),
                )
        except sqlite3.Error as exc:
            raise StorageError("Failed to save category folder") from exc

    def forget_category_folder(self, category: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    "DELETE FROM category_folders WHERE category_name = ?", (category,)
                )
        except sqlite3.Error as exc:
            raise StorageError("Failed to drop category folder") from exc

    def increment_category_file_count(self, category: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    UPDATE category_folders
                    SET file_count = file_count + 1, last_updated = ?
                    WHERE category_name = ?
                    """,
                    (_utc_now().isoformat(), category),
                )
        except sqlite3.Error as exc:
            raise StorageError("Failed to update category file count") from exc

    def category_folder_counts(self) -> dict[str, int]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT category_name, file_count FROM category_folders
                    WHERE category_name != ?
                    ORDER BY category_name
                    """,
                    (ROOT_FOLDER_KEY,),
                ).fetchall()
            return {name: count for name, count in rows}
        except sqlite3.Error as exc:
            raise StorageError("Failed to fetch category counts") from exc

    def record_feedback(self, feedback: ClassificationFeedback) -> None:
        created_at = feedback.created_at or _utc_now()
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO classification_feedback(
                        source_file_id, ai_category, ai_confidence, user_category,
                        feedback_type, context, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        feedback.source_file_id,
                        feedback.ai_category,
                        feedback.ai_confidence,
                        feedback.user_category,
                        feedback.feedback_type,
                        feedback.context,
                        created_at.isoformat(),
                    ),
                )
        except sqlite3.Error as exc:
            raise StorageError("Failed to record feedback") from exc

    def list_feedback(self, source_file_id: str) -> list[ClassificationFeedback]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT source_file_id, ai_category, ai_confidence, user_category,
                           feedback_type, context, created_at
                    FROM classification_feedback
                    WHERE source_file_id = ?
                    ORDER BY id ASC
                    """,
                    (source_file_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError("Failed to fetch feedback") from exc
        return [
            ClassificationFeedback(
                source_file_id=row[0],
                ai_category=row[1],
                ai_confidence=row[2],
                user_category=row[3],
                feedback_type=row[4],
                context=row[5],
                created_at=_parse_datetime(row[6]),
            )
            for row in rows
        ]

    def feedback_statistics(self) -> FeedbackStatistics:
        correct_marks = ", ".join("?" for _ in CORRECT_FEEDBACK_TYPES)
        correct_sum = f"SUM(CASE WHEN feedback.feedback_type IN ({correct_marks}) THEN 1 ELSE 0 END)"
        try:
            with self._connect() as conn:
                total, confirmed = conn.execute(
                    """
                    SELECT COUNT(*), COALESCE(SUM(CASE WHEN feedback_type = ? THEN 1 ELSE 0 END), 0)
                    FROM classification_feedback
                    """,
                    (CONFIRMED,),
                ).fetchone()
                category_rows = conn.execute(
                    f"""
                    SELECT feedback.ai_category, COUNT(*), {correct_sum}
                    FROM classification_feedback AS feedback
                    GROUP BY feedback.ai_category
                    """,
                    CORRECT_FEEDBACK_TYPES,
                ).fetchall()
                method_rows = conn.execute(
                    f"""
                    SELECT uploads.classification_method, COUNT(*), {correct_sum}
                    FROM classification_feedback AS feedback
                    JOIN uploads ON uploads.source_file_id = feedback.source_file_id
                    GROUP BY uploads.classification_method
                    """,
                    CORRECT_FEEDBACK_TYPES,
                ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError("Failed to compute feedback statistics") from exc
        return FeedbackStatistics(
            total=total,
            confirmed=confirmed,
            by_category={
                str(name): AccuracyBucket(total=count, correct=correct or 0)
                for name, count, correct in category_rows
            },
            by_method={
                str(name): AccuracyBucket(total=count, correct=correct or 0)
                for name, count, correct in method_rows
            },
        )

    def _select_many(self, clause: str, params: tuple[Any, ...]) -> list[UploadRecord]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    f"SELECT {', '.join(_UPLOAD_COLUMNS)} FROM uploads {clause}", params
                ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError("Failed to list uploads") from exc
        return [self._row_to_record(row) for row in rows]

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> UploadRecord:
        labels_raw = row["detected_labels"]
        try:
            labels = json.loads(labels_raw) if labels_raw else []
        except json.JSONDecodeError:
            labels = []
        return UploadRecord(
            id=row["id"],
            source_file_id=row["source_file_id"],
            source_user_id=row["source_user_id"],
            source_user_name=row["source_user_name"],
            channel_id=row["channel_id"],
            original_filename=row["original_filename"],
            file_size=row["file_size"],
            mime_type=row["mime_type"],
            status=row["status"],
            created_at=datetime.fromisoformat(row["created_at"]),
            storage_file_id=row["storage_file_id"],
            storage_file_name=row["storage_file_name"],
            storage_url=row["storage_url"],
            storage_folder_path=row["storage_folder_path"],
            error_message=row["error_message"],
            retry_count=row["retry_count"] or 0,
            completed_at=_parse_datetime(row["completed_at"]),
            classification_method=row["classification_method"],
            detected_labels=[str(label) for label in labels],
            detected_text=row["detected_text"],
            ai_category=row["ai_category"],
            ai_confidence=row["ai_confidence"],
            suggested_filename=row["suggested_filename"],
            user_category=row["user_category"],
            final_filename=row["final_filename"],
            feedback_type=row["feedback_type"],
            category_file_id=row["category_file_id"],
            category_file_url=row["category_file_url"],
            organized_at=_parse_datetime(row["organized_at"]),
        )

    def _ensure_schema(self) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS uploads(
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        source_file_id TEXT NOT NULL UNIQUE,
                        source_user_id TEXT NOT NULL,
                        source_user_name TEXT,
                        channel_id TEXT NOT NULL,
                        original_filename TEXT NOT NULL,
                        file_size INTEGER,
                        mime_type TEXT,
                        storage_file_id TEXT,
                        storage_file_name TEXT,
                        storage_url TEXT,
                        storage_folder_path TEXT,
                        status TEXT NOT NULL DEFAULT 'pending'
                            CHECK(status IN ('pending', 'processing', 'completed', 'failed')),
                        error_message TEXT,
                        retry_count INTEGER NOT NULL DEFAULT 0,
                        created_at TEXT NOT NULL,
                        completed_at TEXT,
                        classification_method TEXT,
                        detected_labels TEXT,
                        detected_text TEXT,
                        ai_category TEXT,
                        ai_confidence REAL,
                        suggested_filename TEXT,
                        user_category TEXT,
                        final_filename TEXT,
                        feedback_type TEXT,
                        category_file_id TEXT,
                        category_file_url TEXT,
                        organized_at TEXT
                    )
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_uploads_status ON uploads(status)")
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_uploads_created_at ON uploads(created_at)"
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_uploads_user ON uploads(source_user_id)"
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS category_folders(
                        category_name TEXT PRIMARY KEY,
                        folder_id TEXT NOT NULL,
                        file_count INTEGER NOT NULL DEFAULT 0,
                        last_updated TEXT
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS classification_feedback(
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        source_file_id TEXT NOT NULL,
                        ai_category TEXT,
                        ai_confidence REAL,
                        user_category TEXT,
                        feedback_type TEXT NOT NULL,
                        context TEXT,
                        created_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_feedback_file
                    ON classification_feedback(source_file_id)
                    """
                )
            with self._connect() as conn:
                conn.execute("PRAGMA journal_mode=WAL")
        except sqlite3.Error as exc:
            raise StorageError("Failed to initialize upload database") from exc

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._sqlite_path, timeout=_BUSY_TIMEOUT_S)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()
