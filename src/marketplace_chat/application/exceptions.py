from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    http_status: int = 500

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class ValidationError(AppError):
    http_status = 400


class AuthenticationError(AppError):
    http_status = 401


class ForbiddenError(AppError):
    http_status = 403


class NotFoundError(AppError):
    http_status = 404


class ConflictError(AppError):
    http_status = 409


class RateLimitedError(AppError):
    http_status = 429

    def __init__(self, retry_after_seconds: int) -> None:
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Rate limit exceeded. Please wait {retry_after_seconds} seconds "
            "before sending more messages."
        )


class EncodingError(AppError):
    """Codec failure: bad input, oversize data, or failed authentication."""


class StoreError(AppError):
    pass


class OperationTimeoutError(AppError):
    http_status = 504

    def __init__(self, operation: str = "") -> None:
        self.operation = operation
        super().__init__("Request timeout. Please try again.")


class PartialArchiveError(AppError):
    """Rows were copied to the archive but could not be pruned from the hot table."""

    def __init__(self, archived_count: int, detail: str = "Archived but failed to delete from main table") -> None:
        self.archived_count = archived_count
        super().__init__(detail)


class PartialRestoreError(AppError):
    """Rows were restored but could not be removed from the archive."""

    def __init__(self, restored_count: int, detail: str = "Restored but failed to delete from archive") -> None:
        self.restored_count = restored_count
        super().__init__(detail)
