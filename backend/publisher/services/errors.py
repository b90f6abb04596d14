"""
Error taxonomy for the publishing pipeline.

Every failure the pipeline can surface derives from PublisherError,
which carries the affected record (when known) and the underlying
exception for logging.
"""


class PublisherError(Exception):
    """
    Base exception for publishing pipeline errors.

    Attributes:
        message: Error description
        record_id: Record being processed when the error occurred
        original_error: Underlying exception if available
    """

    def __init__(
        self,
        message: str,
        record_id: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.record_id = record_id
        self.original_error = original_error
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.record_id:
            parts.append(f"record={self.record_id}")
        return " | ".join(parts)


class ConfigurationError(PublisherError):
    """Raised when required settings are missing."""

    def __init__(self, message: str, missing_keys: list[str] | None = None):
        super().__init__(message)
        self.missing_keys = missing_keys or []


class InvalidReference(PublisherError):
    """Raised when a source link has no recognizable file id."""

    def __init__(self, link: str, **kwargs):
        super().__init__(f"Cannot extract file id from link: {link!r}", **kwargs)
        self.link = link


class ValidationFailure(PublisherError):
    """Raised when a downloaded payload fails size/type checks."""

    pass


class FetchExhausted(PublisherError):
    """
    Raised when every download candidate failed.

    Attributes:
        attempted: Candidate URLs tried, in order
        last_error: Error from the final candidate
    """

    def __init__(
        self,
        message: str,
        attempted: list[str] | None = None,
        last_error: Exception | None = None,
        **kwargs,
    ):
        super().__init__(message, original_error=last_error, **kwargs)
        self.attempted = attempted or []
        self.last_error = last_error

    def __str__(self) -> str:
        base = super().__str__()
        if self.last_error is not None:
            return f"{base} | last_error={self.last_error}"
        return base


class PublishRejected(PublisherError):
    """
    Raised when the publish target refuses the upload.

    Attributes:
        status_code: HTTP status code if available
        reason: Short classification (permission, quota, invalid_data, file, unknown)
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        reason: str = "unknown",
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.reason = reason


class StoreUnavailable(PublisherError):
    """Raised when the record store cannot be reached or errors out."""

    def __init__(self, message: str, status_code: int | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class SourceUnavailable(PublisherError):
    """Raised when the storage source listing fails."""

    def __init__(self, message: str, status_code: int | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class ResultPersistError(StoreUnavailable):
    """
    Raised when the final outcome of a run could not be written back.

    The record's true state is unknown to both sides and needs manual
    inspection.

    Attributes:
        outcome: Status that should have been persisted
    """

    def __init__(self, message: str, outcome: str, **kwargs):
        super().__init__(message, **kwargs)
        self.outcome = outcome

    def __str__(self) -> str:
        return f"{super().__str__()} | intended={self.outcome}"


class ClaimConflict(PublisherError):
    """Raised when a record is no longer Pending at claim time."""

    def __init__(self, record_id: str, current_status: str | None = None):
        super().__init__(
            f"Record is no longer pending (status={current_status})",
            record_id=record_id,
        )
        self.current_status = current_status
