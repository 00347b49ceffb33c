"""
Custom exception hierarchy for Queuay error handling.

Separates faults that abort a run before it starts (resolution faults) from
faults that are absorbed at story granularity (browser, repository,
diagnostic faults).
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class QueuayError(Exception):
    """Base exception for all Queuay errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None
        }


class RetryableError(QueuayError):
    """Base class for errors that can be retried."""


class NonRetryableError(QueuayError):
    """Base class for errors that should not be retried."""


class BrowserError(RetryableError):
    """Error related to browser automation."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        selector: Optional[str] = None,
        action: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.url = url
        self.selector = selector
        self.action = action
        self.details.update({
            "url": url,
            "selector": selector,
            "action": action
        })


class StepActionError(NonRetryableError):
    """A step cannot be executed as declared (missing target, unknown verb)."""

    def __init__(self, message: str, action: str, **kwargs):
        super().__init__(message, **kwargs)
        self.action = action
        self.details.update({"action": action})


class ResolutionError(NonRetryableError):
    """A run cannot start because its inputs cannot be resolved."""

    def __init__(self, message: str, run_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.run_id = run_id
        self.details.update({"run_id": run_id})


class RunNotFoundError(ResolutionError):
    """The run record referenced by a request does not exist."""


class EnvironmentNotFoundError(ResolutionError):
    """The environment referenced by a request does not exist."""

    def __init__(self, message: str, environment_id: str, **kwargs):
        super().__init__(message, **kwargs)
        self.environment_id = environment_id
        self.details.update({"environment_id": environment_id})


class StoryResolutionError(ResolutionError):
    """The story set for a run could not be fetched."""


class RepositoryError(RetryableError):
    """Persistence layer failure."""

    def __init__(self, message: str, operation: str, **kwargs):
        super().__init__(message, **kwargs)
        self.operation = operation
        self.details.update({"operation": operation})


class DiagnosticError(QueuayError):
    """The AI diagnostic service failed or returned unusable output."""


class ScheduleError(QueuayError):
    """A scheduled job could not be fired."""

    def __init__(self, message: str, job_id: str, **kwargs):
        super().__init__(message, **kwargs)
        self.job_id = job_id
        self.details.update({"job_id": job_id})


class SuiteLoadError(NonRetryableError):
    """A local suite file is missing or malformed."""

    def __init__(self, message: str, path: str, **kwargs):
        super().__init__(message, **kwargs)
        self.path = path
        self.details.update({"path": path})
