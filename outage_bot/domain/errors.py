from __future__ import annotations


class OutageBotError(RuntimeError):
    """Base class for errors raised by the outage check pipeline."""


class DataUnavailableError(OutageBotError):
    """Raised when outage data cannot be fetched or parsed."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "unknown_error",
        status_code: int | None = None,
        last_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.last_error = last_error


class MissingDataError(DataUnavailableError):
    """Raised when the response lacks the data envelope or the house record."""

    def __init__(self, message: str, *, code: str = "missing_data") -> None:
        super().__init__(message, code=code)


class ClassificationError(OutageBotError):
    """Raised when an outage record is malformed and cannot be classified."""

    code = "classification_error"


class DispatchError(OutageBotError):
    """Raised when the messaging dispatcher cannot be reached or answers garbage."""

    def __init__(
        self,
        message: str,
        *,
        attempts: int = 1,
        last_error: Exception | None = None,
        error_code: int | None = None,
        description: str | None = None,
    ) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error
        self.error_code = error_code
        self.description = description
