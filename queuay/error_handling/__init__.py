"""
Error handling for the Queuay execution engine.

Provides the exception hierarchy used to separate run-level resolution
faults from story-level faults, and the retry strategy for step attempts.
"""

from .exceptions import (
    QueuayError,
    RetryableError,
    NonRetryableError,
    BrowserError,
    StepActionError,
    ResolutionError,
    RunNotFoundError,
    EnvironmentNotFoundError,
    StoryResolutionError,
    RepositoryError,
    DiagnosticError,
    ScheduleError,
    SuiteLoadError,
)

from .recovery import (
    RetryStrategy,
    FixedBackoffStrategy,
)

__all__ = [
    # Exceptions
    "QueuayError",
    "RetryableError",
    "NonRetryableError",
    "BrowserError",
    "StepActionError",
    "ResolutionError",
    "RunNotFoundError",
    "EnvironmentNotFoundError",
    "StoryResolutionError",
    "RepositoryError",
    "DiagnosticError",
    "ScheduleError",
    "SuiteLoadError",
    # Recovery
    "RetryStrategy",
    "FixedBackoffStrategy",
]
