"""Run orchestration, scheduling and worker management."""

from queuay.orchestration.cron import calculate_next_run
from queuay.orchestration.run_orchestrator import ProgressCallback, RunOrchestrator
from queuay.orchestration.scheduler import ScheduleTrigger
from queuay.orchestration.triggers import (
    count_runnable_stories,
    resolve_stories,
    submit_run,
)
from queuay.orchestration.worker import WorkerPool, mark_run_failed

__all__ = [
    "calculate_next_run",
    "ProgressCallback",
    "RunOrchestrator",
    "ScheduleTrigger",
    "count_runnable_stories",
    "resolve_stories",
    "submit_run",
    "mark_run_failed",
    "WorkerPool",
]
