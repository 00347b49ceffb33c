"""
Core module exports.
"""

from queuay.core.interfaces import (
    BrowserSession,
    HealAdvisor,
    Repository,
    ScreenshotStore,
    SessionFactory,
    WorkQueue,
)
from queuay.core.types import (
    Environment,
    FailureCategory,
    FailureContext,
    HealProposal,
    InspectionResult,
    Journey,
    Run,
    RunProgress,
    RunRequest,
    RunStatus,
    ScheduledJob,
    StepActionType,
    StepResult,
    Story,
    StoryOutcome,
    StoryOutcomeStatus,
    StoryResult,
    StoryStep,
    StoryVerification,
    TriggerType,
)

__all__ = [
    # Interfaces
    "BrowserSession",
    "SessionFactory",
    "Repository",
    "WorkQueue",
    "ScreenshotStore",
    "HealAdvisor",
    # Types
    "RunStatus",
    "TriggerType",
    "StoryOutcomeStatus",
    "FailureCategory",
    "StepActionType",
    "Environment",
    "Journey",
    "StoryStep",
    "StoryVerification",
    "StoryOutcome",
    "Story",
    "Run",
    "StepResult",
    "HealProposal",
    "StoryResult",
    "ScheduledJob",
    "RunRequest",
    "RunProgress",
    "InspectionResult",
    "FailureContext",
]
