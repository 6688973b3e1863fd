"""Exception hierarchy raised by the lead acquisition engine."""
from __future__ import annotations

from datetime import timedelta
from typing import Optional


class LeadEngineError(RuntimeError):
    """Base class for all engine errors."""


class ValidationError(LeadEngineError, ValueError):
    """Raised when job or list parameters are missing or out of range."""

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class RateLimitExceeded(LeadEngineError):
    """Raised when the start quota for the current window has been used up."""

    def __init__(self, remaining: int, max_per_window: int, retry_after: Optional[timedelta] = None) -> None:
        message = f"Rate limit: you can run {remaining} more jobs this hour (limit {max_per_window})"
        if retry_after is not None:
            message += f"; next slot opens in {int(retry_after.total_seconds())}s"
        super().__init__(message)
        self.remaining = remaining
        self.max_per_window = max_per_window
        self.retry_after = retry_after


class JobNotFound(LeadEngineError, LookupError):
    """Raised for unknown job ids, including jobs evicted from history."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job '{job_id}' was not found")
        self.job_id = job_id


class ListNotFound(LeadEngineError, LookupError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Lead list '{name}' was not found")
        self.name = name


class GenerationFailure(LeadEngineError):
    """Raised when the record generator fails part-way through a job."""

    def __init__(self, job_id: str, reason: str) -> None:
        super().__init__(f"Record generation failed for job '{job_id}': {reason}")
        self.job_id = job_id
        self.reason = reason


__all__ = [
    "LeadEngineError",
    "ValidationError",
    "RateLimitExceeded",
    "JobNotFound",
    "ListNotFound",
    "GenerationFailure",
]
