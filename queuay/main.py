"""
Queuay - Browser story execution engine
Main entry point for the application.
"""

import argparse
import asyncio
import json
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from queuay import __version__
from queuay.agents.healer import HealingAgent
from queuay.browser.driver import BrowserManager
from queuay.config.settings import Settings, get_settings
from queuay.core.interfaces import HealAdvisor, SessionFactory
from queuay.core.types import Run, RunProgress, RunStatus, StoryResult, TriggerType
from queuay.error_handling import QueuayError
from queuay.execution.diagnostics import FailureDiagnostics
from queuay.execution.step_executor import StepExecutor
from queuay.execution.story_runner import StoryExecutionOptions, StoryRunner
from queuay.execution.verifier import OutcomeVerifier
from queuay.monitoring.logger import get_logger, setup_logging
from queuay.orchestration.cron import calculate_next_run
from queuay.orchestration.run_orchestrator import RunOrchestrator
from queuay.orchestration.scheduler import ScheduleTrigger
from queuay.orchestration.triggers import submit_run
from queuay.orchestration.worker import WorkerPool, mark_run_failed
from queuay.storage.fixtures import Suite, load_suite
from queuay.storage.memory import InMemoryRepository, InMemoryWorkQueue, LocalScreenshotStore

console = Console()
logger = get_logger("main")


@dataclass
class EngineStack:
    """Wired engine components for one repository."""

    repository: InMemoryRepository
    queue: InMemoryWorkQueue
    story_runner: StoryRunner
    orchestrator: RunOrchestrator
    browser_manager: Optional[BrowserManager] = None


def create_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        description=f"Queuay - Browser story execution engine v{__version__}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run every enabled story of a suite once
  python -m queuay.main --suite suites/shop.json

  # Run two journeys against the staging environment, save results
  python -m queuay.main --suite suites/shop.json --journey checkout --journey search \\
      --environment staging -o results.json

  # Serve queued and scheduled runs for a suite
  python -m queuay.main --worker suites/shop.json

  # Preview the next due times of a cron expression
  python -m queuay.main --next-run "30 9 * * 1" --timezone Europe/Berlin
        """,
    )

    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "-s", "--suite",
        type=Path,
        help="Run a suite file once and report the results",
    )
    mode_group.add_argument(
        "-w", "--worker",
        type=Path,
        metavar="SUITE",
        help="Start the worker pool and scheduler for a suite file",
    )
    mode_group.add_argument(
        "--next-run",
        metavar="CRON",
        help="Show upcoming run times for a cron expression",
    )
    mode_group.add_argument(
        "--version",
        action="store_true",
        help="Show version information",
    )

    # Scope options
    parser.add_argument(
        "-e", "--environment",
        help="Environment name or id (default: the suite's default environment)",
    )
    parser.add_argument(
        "--journey",
        action="append",
        default=[],
        help="Journey name or id to run (repeatable)",
    )
    parser.add_argument(
        "--story",
        action="append",
        default=[],
        help="Story name or id to run (repeatable, wins over --journey)",
    )

    # Execution options
    parser.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window",
    )
    parser.add_argument(
        "--retries",
        type=int,
        help="Retries per step (default: from settings)",
    )
    parser.add_argument(
        "--no-screenshots",
        action="store_true",
        help="Do not capture screenshots of failed stories",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        help="Worker pool size for --worker (default: from settings)",
    )
    parser.add_argument(
        "--timezone",
        default="UTC",
        help="Timezone for --next-run (default: UTC)",
    )
    parser.add_argument(
        "--count",
        type=int,
        default=5,
        help="Number of upcoming times shown by --next-run (default: 5)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode with verbose logging",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose structured logging output (JSON)",
    )

    # Output options
    parser.add_argument(
        "-o", "--output",
        type=Path,
        help="Write run and story results as JSON to this file",
    )

    return parser


def build_engine(
    settings: Settings,
    repository: InMemoryRepository,
    session_factory: Optional[SessionFactory] = None,
    advisor: Optional[HealAdvisor] = None,
) -> EngineStack:
    """
    Wire the execution engine around a repository.

    Args:
        settings: Application settings
        repository: Persistence for runs and results
        session_factory: Browser sessions (a BrowserManager by default)
        advisor: AI diagnostic service (HealingAgent when an API key is set)

    Returns:
        EngineStack with the wired components
    """
    browser_manager: Optional[BrowserManager] = None
    if session_factory is None:
        browser_manager = BrowserManager(headless=settings.browser_headless)
        session_factory = browser_manager

    if advisor is None and settings.diagnostics_available:
        advisor = HealingAgent()

    diagnostics = FailureDiagnostics(
        advisor=advisor,
        auto_heal_threshold=settings.auto_heal_confidence_threshold,
        dom_snapshot_max_chars=settings.dom_snapshot_max_chars,
    )
    story_runner = StoryRunner(
        session_factory=session_factory,
        step_executor=StepExecutor(network_idle_timeout_ms=settings.network_idle_timeout_ms),
        verifier=OutcomeVerifier(
            diagnostics=diagnostics, timeout_ms=settings.verification_timeout_ms
        ),
        diagnostics=diagnostics,
        screenshot_store=LocalScreenshotStore(settings.screenshots_dir),
        options=StoryExecutionOptions.from_settings(settings),
    )

    return EngineStack(
        repository=repository,
        queue=InMemoryWorkQueue(),
        story_runner=story_runner,
        orchestrator=RunOrchestrator(repository, story_runner),
        browser_manager=browser_manager,
    )


def _match_ids(names: List[str], candidates: List[tuple]) -> List[str]:
    """Map names or ids to ids; candidates are (id, name) pairs."""
    ids = []
    for name in names:
        matches = [cid for cid, cname in candidates if name in (cid, cname)]
        if not matches:
            raise QueuayError(f"Unknown journey or story: {name}")
        ids.extend(matches)
    return ids


async def run_suite(
    suite: Suite,
    settings: Settings,
    environment: Optional[str] = None,
    journeys: Optional[List[str]] = None,
    stories: Optional[List[str]] = None,
    output: Optional[Path] = None,
    session_factory: Optional[SessionFactory] = None,
    advisor: Optional[HealAdvisor] = None,
) -> int:
    """
    Run a suite once through the regular trigger and orchestration path.

    Returns:
        Exit code: 0 when the run completed and every story passed
    """
    env = suite.environment(environment)
    story_ids = _match_ids(stories or [], [(s.id, s.name) for s in suite.stories])
    journey_ids = _match_ids(journeys or [], [(j.id, j.name) for j in suite.journeys])

    stack = build_engine(settings, suite.repository, session_factory, advisor)

    console.print(Panel.fit(
        f"[bold cyan]Queuay[/bold cyan] running suite against "
        f"[green]{env.name}[/green] ({env.base_url})",
    ))

    run = await submit_run(
        stack.repository,
        stack.queue,
        organization_id=suite.organization_id,
        app_id=suite.app_id,
        environment_id=env.id,
        trigger_type=TriggerType.MANUAL,
        story_ids=story_ids,
        journey_ids=journey_ids,
        triggered_by="cli",
    )
    request = await stack.queue.dequeue()

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            console=console,
        ) as progress:
            task_id = progress.add_task("Starting run...", total=run.stories_total or None)

            def on_progress(update: RunProgress) -> None:
                description = (
                    f"[cyan]{update.current_story_name}[/cyan]"
                    if update.current_story_name
                    else "[green]Run finished[/green]"
                )
                progress.update(
                    task_id,
                    description=description,
                    completed=update.completed,
                    total=update.total,
                )

            try:
                run = await stack.orchestrator.execute(request, on_progress=on_progress)
            except Exception as e:
                await mark_run_failed(stack.repository, request.run_id, e)
                raise
    finally:
        stack.queue.task_done()
        if stack.browser_manager is not None:
            await stack.browser_manager.shutdown()

    results = await stack.repository.list_story_results(run.id)
    _render_results(run, results)

    if output:
        _write_results(output, run, results)
        console.print(f"[green]Results saved to:[/green] {output}")

    all_passed = run.status == RunStatus.COMPLETED and run.stories_failed == 0
    return 0 if all_passed else 1


def _render_results(run: Run, results: List[StoryResult]) -> None:
    if not results:
        console.print("[yellow]No enabled stories matched the requested scope.[/yellow]")
    else:
        table = Table(title="Story Results", show_lines=True)
        table.add_column("#", justify="right", style="dim")
        table.add_column("Journey", style="cyan")
        table.add_column("Story")
        table.add_column("Result", justify="center")
        table.add_column("Duration", justify="right")
        table.add_column("Retries", justify="right")
        table.add_column("Error / Proposal", overflow="fold")

        for index, result in enumerate(results, 1):
            status = "[green]PASS[/green]" if result.passed else "[red]FAIL[/red]"
            detail = result.error or ""
            if result.heal_proposal:
                proposal = result.heal_proposal
                marker = "auto" if proposal.auto_applicable else "review"
                detail += (
                    f"\n[yellow]{proposal.type.value} fix ({proposal.confidence:.2f}, "
                    f"{marker}):[/yellow] {proposal.proposed}"
                )
            if result.unverified:
                detail += "\n[dim]unverified: " + "; ".join(result.unverified) + "[/dim]"
            table.add_row(
                str(index),
                result.journey_name,
                result.story_name,
                status,
                f"{result.duration_ms / 1000:.1f}s",
                str(result.retries),
                detail.strip(),
            )
        console.print(table)

    status_color = "green" if run.stories_failed == 0 else "red"
    console.print(
        f"\nRun [bold]{run.id}[/bold]: [{status_color}]{run.status.value}[/{status_color}] "
        f"- {run.stories_passed}/{run.stories_total} passed, "
        f"{run.stories_failed} failed"
        + (f" in {run.duration_ms / 1000:.1f}s" if run.duration_ms is not None else "")
    )


def _write_results(output: Path, run: Run, results: List[StoryResult]) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "run": run.model_dump(mode="json"),
        "results": [result.model_dump(mode="json") for result in results],
    }
    output.write_text(json.dumps(payload, indent=2))


async def serve(
    suite: Suite,
    settings: Settings,
    concurrency: Optional[int] = None,
    session_factory: Optional[SessionFactory] = None,
) -> int:
    """Run the worker pool and scheduler until interrupted."""
    stack = build_engine(settings, suite.repository, session_factory)
    pool = WorkerPool(
        stack.queue,
        stack.orchestrator,
        stack.repository,
        concurrency=concurrency or settings.worker_concurrency,
        browser_manager=stack.browser_manager,
    )
    scheduler = ScheduleTrigger(
        stack.repository, stack.queue, interval_seconds=settings.scheduler_interval_seconds
    )

    console.print(Panel.fit(
        f"[bold cyan]Queuay worker[/bold cyan]\n"
        f"Concurrency: [green]{pool.concurrency}[/green]\n"
        f"Schedules: [green]{len(suite.schedules)}[/green]\n"
        f"Poll interval: [green]{scheduler.interval_seconds}s[/green]",
    ))
    for job in suite.schedules:
        next_run = job.next_run_at.isoformat() if job.next_run_at else "-"
        console.print(f"  [cyan]{job.name or job.id}[/cyan] {job.cron_expression} next: {next_run}")

    pool.start()
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.stop()
        await pool.stop()
    return 0


def show_next_runs(expression: str, timezone_name: str, count: int = 5) -> int:
    """Print the next due times of a cron expression."""
    table = Table(title=f"Next runs for '{expression}' ({timezone_name})")
    table.add_column("#", justify="right", style="dim")
    table.add_column("UTC", style="cyan")

    moment = datetime.now(timezone.utc)
    for index in range(1, max(count, 1) + 1):
        moment = calculate_next_run(expression, timezone_name, moment)
        table.add_row(str(index), moment.isoformat())

    console.print(table)
    return 0


def show_version() -> int:
    """Show version information."""
    console.print("\n[bold cyan]Queuay - Browser story execution engine[/bold cyan]")
    console.print(f"Version: [green]{__version__}[/green]")
    console.print("Python: [dim]3.10+[/dim]")
    return 0


async def async_main(args: Optional[list[str]] = None) -> int:
    """Async main entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if parsed_args.version:
        return show_version()

    if parsed_args.next_run:
        return show_next_runs(parsed_args.next_run, parsed_args.timezone, parsed_args.count)

    if not parsed_args.suite and not parsed_args.worker:
        parser.print_help()
        return 1

    settings = get_settings()

    if parsed_args.debug:
        settings.log_level = "DEBUG"

    settings.log_format = "json" if parsed_args.verbose else "text"

    if parsed_args.headed:
        settings.browser_headless = False
    if parsed_args.retries is not None:
        settings.retry_count = parsed_args.retries
    if parsed_args.no_screenshots:
        settings.screenshot_on_failure = False

    setup_logging(
        log_level=settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
    )

    try:
        suite = load_suite(parsed_args.suite or parsed_args.worker)
    except QueuayError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        return 1

    if parsed_args.worker:
        return await serve(suite, settings, concurrency=parsed_args.concurrency)

    try:
        return await run_suite(
            suite,
            settings,
            environment=parsed_args.environment,
            journeys=parsed_args.journey,
            stories=parsed_args.story,
            output=parsed_args.output,
        )
    except (QueuayError, KeyError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1


def main(args: Optional[list[str]] = None) -> int:
    """
    Main entry point for Queuay.

    Args:
        args: Command line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        return asyncio.run(async_main(args))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        return 130
    except Exception as e:
        console.print(f"[red]Fatal error: {e}[/red]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
