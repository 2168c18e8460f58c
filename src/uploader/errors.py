from __future__ import annotations


class UploaderError(Exception):
    """Base class for pipeline errors."""


class ValidationError(UploaderError, ValueError):
    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors


class QueueClosedError(UploaderError):
    """Raised when a job is offered to a queue that no longer accepts work."""


class RetryExhaustedError(UploaderError):
    def __init__(self, source_file_id: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            f"Upload {source_file_id} failed after {attempts} attempts: {last_error}"
        )
        self.source_file_id = source_file_id
        self.attempts = attempts
        self.last_error = last_error


class ExternalServiceError(UploaderError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(ExternalServiceError):
    """The remote resource is missing or not visible to the caller."""


class OrganizationError(UploaderError):
    """Copying a completed upload into its category folder failed."""


class StorageError(RuntimeError):
    """Local database operation failed."""
