"""Story execution: steps, verification, diagnostics and the story runner."""

from queuay.execution.diagnostics import (
    DiagnosticReport,
    FailureDiagnostics,
    categorize_failure,
    should_auto_heal,
)
from queuay.execution.step_executor import (
    StepExecutor,
    render_step_source,
    resolve_action,
)
from queuay.execution.story_runner import (
    StoryExecutionOptions,
    StoryPhase,
    StoryRunner,
)
from queuay.execution.verifier import OutcomeVerifier, VerificationOutcome

__all__ = [
    "DiagnosticReport",
    "FailureDiagnostics",
    "categorize_failure",
    "should_auto_heal",
    "StepExecutor",
    "render_step_source",
    "resolve_action",
    "StoryExecutionOptions",
    "StoryPhase",
    "StoryRunner",
    "OutcomeVerifier",
    "VerificationOutcome",
]
