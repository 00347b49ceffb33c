"""
Worker pool consuming run requests from the work queue.

Each worker processes one run at a time; stories inside a run stay
sequential. Runs whose orchestration raises are marked failed here.
"""

import asyncio
from typing import Dict, List, Optional

from queuay.browser.driver import BrowserManager
from queuay.core.interfaces import Repository, WorkQueue
from queuay.core.types import Run, RunProgress, RunRequest, RunStatus, utc_now
from queuay.monitoring.logger import get_logger, log_run_event
from queuay.orchestration.run_orchestrator import RunOrchestrator

logger = get_logger("orchestration.worker")


async def mark_run_failed(repository: Repository, run_id: str, error: Exception) -> None:
    """Mark a run failed after its orchestration raised; terminal runs are left alone."""
    try:
        run = await repository.get_run(run_id)
        if run is None or run.status.is_terminal:
            return
        await repository.update_run(
            run_id, status=RunStatus.FAILED, completed_at=utc_now()
        )
    except Exception:
        logger.exception("Failed to mark run failed", extra={"run_id": run_id})
        return
    log_run_event("run_failed", run_id, data={"error": str(error)})


class WorkerPool:
    """Bounded pool of asyncio workers draining a WorkQueue."""

    def __init__(
        self,
        queue: WorkQueue,
        orchestrator: RunOrchestrator,
        repository: Repository,
        concurrency: int = 3,
        browser_manager: Optional[BrowserManager] = None,
    ) -> None:
        """
        Initialize the worker pool.

        Args:
            queue: Source of run requests
            orchestrator: Executes each dequeued run
            repository: Used to mark runs failed when orchestration raises
            concurrency: Number of runs processed in parallel
            browser_manager: Browser process shut down when the pool stops
        """
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.queue = queue
        self.orchestrator = orchestrator
        self.repository = repository
        self.concurrency = concurrency
        self.browser_manager = browser_manager
        self.latest_progress: Dict[str, RunProgress] = {}
        self.logger = get_logger("orchestration.worker")
        self._workers: List[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._workers)

    def start(self) -> None:
        if self.is_running:
            self.logger.warning("Worker pool already running")
            return
        self._workers = [
            asyncio.create_task(self._worker_loop(index), name=f"queuay-worker-{index}")
            for index in range(self.concurrency)
        ]
        self.logger.info("Worker pool started", extra={"concurrency": self.concurrency})

    async def stop(self) -> None:
        """Cancel workers and release the browser process."""
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        if self.browser_manager is not None:
            await self.browser_manager.shutdown()

        self.logger.info("Worker pool stopped")

    async def _worker_loop(self, index: int) -> None:
        logger = get_logger("orchestration.worker", worker=index)
        while True:
            request = await self.queue.dequeue()
            try:
                logger.info("Processing run", extra={"run_id": request.run_id})
                await self.process(request)
            finally:
                self.queue.task_done()

    async def process(self, request: RunRequest) -> Optional[Run]:
        """
        Execute one run request, marking the run failed if it raises.

        Returns:
            The final run record, or None when the run could not be completed
        """
        try:
            return await self.orchestrator.execute(request, on_progress=self._on_progress)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.exception("Run failed", extra={"run_id": request.run_id})
            await mark_run_failed(self.repository, request.run_id, e)
            return None
        finally:
            self.latest_progress.pop(request.run_id, None)

    def _on_progress(self, progress: RunProgress) -> None:
        self.latest_progress[progress.run_id] = progress
        self.logger.info(
            "Run progress",
            extra={
                "run_id": progress.run_id,
                "completed": progress.completed,
                "total": progress.total,
                "passed": progress.passed,
                "failed": progress.failed,
                "current_story": progress.current_story_name,
            },
        )
