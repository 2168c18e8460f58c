from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

from uploader.domain.models import COMPLETED, FAILED, PROCESSING
from uploader.errors import RetryExhaustedError
from uploader.ports.upload_store_port import UploadStorePort
from uploader.services.time_utils import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryController:
    def __init__(
        self,
        store: UploadStorePort,
        max_attempts: int = 3,
        base_delay_ms: int = 2000,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if base_delay_ms < 0:
            raise ValueError("base_delay_ms must not be negative")
        self._store = store
        self._max_attempts = max_attempts
        self._base_delay_ms = base_delay_ms
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def delay_after(self, attempt: int) -> float:
        """Seconds to wait after failed attempt ``attempt`` (1-indexed)."""

        return (2**attempt) * self._base_delay_ms / 1000

    def run(
        self,
        source_file_id: str,
        work: Callable[[], T],
        completion_fields: Callable[[T], dict[str, Any]] | None = None,
        on_failure: Callable[[Exception], None] | None = None,
    ) -> T:
        """Run ``work`` until it succeeds or the attempts are used up.

        Raises RetryExhaustedError after the record has been marked failed and
        ``on_failure`` has been called with the last error.
        """

        last_error: Exception | None = None
        for attempt in range(1, self._max_attempts + 1):
            applied = self._store.update_status(
                source_file_id, {"status": PROCESSING, "retry_count": attempt - 1}
            )
            if not applied:
                logger.warning(f"Could not mark {source_file_id} processing (attempt {attempt})")
            try:
                result = work()
            except Exception as exc:
                last_error = exc
                if attempt < self._max_attempts:
                    delay = self.delay_after(attempt)
                    logger.warning(
                        f"Attempt {attempt}/{self._max_attempts} for {source_file_id} failed: "
                        f"{exc}; retrying in {delay:.1f}s"
                    )
                    self._sleep(delay)
                    continue
                logger.error(
                    f"Attempt {attempt}/{self._max_attempts} for {source_file_id} failed: {exc}"
                )
                break
            fields: dict[str, Any] = {
                "status": COMPLETED,
                "completed_at": utc_now(),
                "error_message": None,
            }
            if completion_fields is not None:
                fields.update(completion_fields(result))
            self._store.update_status(source_file_id, fields)
            logger.info(f"Upload {source_file_id} completed on attempt {attempt}")
            return result

        self._store.update_status(
            source_file_id,
            {
                "status": FAILED,
                "error_message": str(last_error),
                "retry_count": self._max_attempts,
            },
        )
        if on_failure is not None:
            try:
                on_failure(last_error)
            except Exception:
                logger.exception(f"Failure callback for {source_file_id} raised")
        raise RetryExhaustedError(source_file_id, self._max_attempts, last_error) from last_error
