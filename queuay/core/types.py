"""
Core data models and types for the Queuay execution engine.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, computed_field


def _new_id() -> str:
    return str(uuid4())


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class RunStatus(str, Enum):
    """Lifecycle status of a test run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)


class TriggerType(str, Enum):
    """Source that created a run."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"
    API = "api"
    CI = "ci"


class StoryOutcomeStatus(str, Enum):
    """Last-run bookkeeping value stored on a story."""

    PASSED = "passed"
    FAILED = "failed"


class FailureCategory(str, Enum):
    """Failure classes used for heal proposals."""

    SELECTOR = "selector"
    FLOW = "flow"
    CONTENT = "content"


class StepActionType(str, Enum):
    """Browser effect a story step resolves to."""

    NAVIGATE = "navigate"
    CLICK = "click"
    FILL = "fill"
    SELECT = "select"
    CHECK = "check"
    UNCHECK = "uncheck"
    WAIT = "wait"
    SCROLL = "scroll"
    HOVER = "hover"
    PRESS = "press"
    FOCUS = "focus"
    UNRECOGNIZED = "unrecognized"


class VerificationType(str, Enum):
    """Kinds of post-step verifications a story outcome can declare."""

    URL = "url"
    ELEMENT = "element"
    CONTENT = "content"
    VISUAL = "visual"


class Environment(BaseModel):
    """A deployment of the application under test."""

    id: str = Field(default_factory=_new_id)
    app_id: str
    name: str = Field("default", description="Environment name (e.g. staging)")
    base_url: str = Field(..., description="URL every story starts from")
    is_default: bool = False


class Journey(BaseModel):
    """Group of stories describing one user journey."""

    id: str = Field(default_factory=_new_id)
    app_id: str
    name: str
    title: str = ""
    position: int = 0


class StoryStep(BaseModel):
    """A single declarative interaction in a story."""

    action: str = Field(..., description="Free-text action verb, e.g. 'Click'")
    element: Optional[str] = Field(None, description="Element locator or URL")
    selector: Optional[str] = Field(None, description="Explicit locator, wins over element")
    value: Optional[str] = Field(None, description="Input value, URL, key or duration")
    description: Optional[str] = None

    @property
    def target(self) -> Optional[str]:
        """Locator the step acts on, if any."""
        return self.selector or self.element or None


class StoryVerification(BaseModel):
    """A post-condition evaluated after all steps pass."""

    type: str = Field(..., description="url, element, content or visual")
    target: Optional[str] = None
    expected: str


class StoryOutcome(BaseModel):
    """Declared success outcome of a story."""

    description: str = ""
    verifications: List[StoryVerification] = Field(default_factory=list)


class StoryPrecondition(BaseModel):
    """Informational precondition attached to a story."""

    description: str
    type: Optional[str] = Field(None, description="auth, data or state")


class Story(BaseModel):
    """An ordered sequence of browser steps plus a success outcome."""

    id: str = Field(default_factory=_new_id)
    journey_id: str
    journey_name: str = ""
    name: str
    title: str = ""
    preconditions: List[StoryPrecondition] = Field(default_factory=list)
    steps: List[StoryStep] = Field(default_factory=list)
    outcome: StoryOutcome = Field(default_factory=StoryOutcome)
    tags: List[str] = Field(default_factory=list)
    position: int = 0
    is_enabled: bool = True
    last_run_at: Optional[datetime] = None
    last_result: Optional[StoryOutcomeStatus] = None

    @property
    def display_name(self) -> str:
        return self.title or self.name


class Run(BaseModel):
    """One execution of a set of stories against one environment."""

    id: str = Field(default_factory=_new_id)
    organization_id: str
    app_id: str
    environment_id: str
    trigger_type: TriggerType = TriggerType.MANUAL
    triggered_by: Optional[str] = None
    status: RunStatus = RunStatus.PENDING
    story_ids: List[str] = Field(default_factory=list)
    journey_ids: List[str] = Field(default_factory=list)
    stories_total: int = 0
    stories_passed: int = 0
    stories_failed: int = 0
    stories_skipped: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None


class StepResult(BaseModel):
    """Outcome of one attempt at one story step."""

    step: int = Field(..., description="Zero-based step index")
    action: str
    passed: bool
    duration_ms: int
    error: Optional[str] = None


class HealProposal(BaseModel):
    """AI-suggested fix for a failing step. Advisory only."""

    type: FailureCategory
    original: str = ""
    proposed: str = ""
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str = ""
    line: Optional[int] = None
    auto_apply_threshold: float = Field(0.8, ge=0.0, le=1.0, exclude=True)

    @computed_field  # type: ignore[misc]
    @property
    def auto_applicable(self) -> bool:
        """Whether the proposal clears the automatic-application bar."""
        return self.confidence >= self.auto_apply_threshold


class StoryResult(BaseModel):
    """Result of executing one story within one run."""

    id: str = Field(default_factory=_new_id)
    run_id: Optional[str] = None
    story_id: str
    journey_name: str = ""
    story_name: str = ""
    passed: bool
    duration_ms: int = 0
    steps: List[StepResult] = Field(default_factory=list)
    error: Optional[str] = None
    screenshot_url: Optional[str] = None
    console_errors: List[str] = Field(default_factory=list)
    heal_proposal: Optional[HealProposal] = None
    failure_category: Optional[FailureCategory] = None
    retries: int = 0
    unverified: List[str] = Field(
        default_factory=list,
        description="Verifications that could not be evaluated (e.g. visual without an advisor)",
    )
    created_at: datetime = Field(default_factory=utc_now)


class ScheduledJob(BaseModel):
    """Recurring run definition driven by a cron expression."""

    id: str = Field(default_factory=_new_id)
    organization_id: str
    app_id: str
    environment_id: str
    name: str = ""
    cron_expression: str
    timezone: str = "UTC"
    journey_ids: List[str] = Field(default_factory=list)
    is_enabled: bool = True
    next_run_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)


class RunRequest(BaseModel):
    """Work-queue payload handed to a worker."""

    run_id: str
    organization_id: str
    app_id: str
    environment_id: str
    story_ids: List[str] = Field(default_factory=list)
    journey_ids: List[str] = Field(default_factory=list)


class RunProgress(BaseModel):
    """Mid-run progress signal emitted by the orchestrator."""

    run_id: str
    total: int
    completed: int
    passed: int
    failed: int
    current_story_name: Optional[str] = None


class InspectionResult(BaseModel):
    """Screenshot inspection verdict from the AI diagnostic service."""

    passed: bool
    confidence: str = Field("low", description="high, medium or low")
    observation: str = ""
    issues: List[str] = Field(default_factory=list)


class FailureContext(BaseModel):
    """Everything the AI diagnostic service receives about a failure."""

    story_id: str
    source_fragment: str
    error: str
    category: FailureCategory
    dom_snapshot: Optional[str] = None
    screenshot_base64: Optional[str] = None
