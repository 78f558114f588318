"""Drives one asynchronous research task per view to a terminal state.

Lifecycle of an :class:`AnalysisJob`::

    NOT_STARTED -> STARTING -> POLLING -> COMPLETED | FAILED
                       \\           \\
                        +-----------+--> CANCELLED

The orchestrator owns an ``asyncio.Task`` handle for its live job. Starting a
new job or closing the view cancels that handle first, and every state
mutation checks that the job is still live, so a response that resolves after
cancellation is dropped instead of overwriting newer state.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional

from .config import DEFAULT_MAX_FINISHED_VIEWS, DEFAULT_POLL_INTERVAL, ExtractionPolicy
from .errors import DomainAdvisorError, EmptyResult, UpstreamTaskFailed
from .extraction import extract_report_text
from .models import TERMINAL_STATES, JobState, ProjectDetails, RemoteStatus, Suggestion
from .providers import BaseJobAnalysisProvider

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]

TASK_FAILED_FALLBACK = "The research task failed without a specific error message."
NO_ANALYSIS_MESSAGE = "The research task completed but no analysis was returned."


@dataclass
class AnalysisJob:
    suggestion: Suggestion
    details: ProjectDetails
    job_id: Optional[str] = None
    state: JobState = JobState.NOT_STARTED
    last_remote_status: Optional[str] = None
    result: Optional[str] = None
    error_message: Optional[str] = None
    token: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


class AnalysisOrchestrator:
    def __init__(self, provider: BaseJobAnalysisProvider, *,
                 poll_interval: float = DEFAULT_POLL_INTERVAL,
                 extraction_policy: ExtractionPolicy = ExtractionPolicy.LAST_ASSISTANT,
                 sleep: SleepFunc = asyncio.sleep):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.provider = provider
        self.poll_interval = poll_interval
        self.extraction_policy = extraction_policy
        self._sleep = sleep
        self._job: Optional[AnalysisJob] = None
        self._handle: Optional[asyncio.Task] = None

    @property
    def job(self) -> Optional[AnalysisJob]:
        return self._job

    def start(self, suggestion: Suggestion, details: ProjectDetails) -> AnalysisJob:
        """Begin analysing ``suggestion``; any live job is cancelled first.

        Must be called from a running event loop. Returns immediately with the
        job in STARTING; the creation request and polling run in the background.
        """
        self.cancel()

        job = AnalysisJob(suggestion=suggestion, details=details)
        job.state = JobState.STARTING
        self._job = job
        self._handle = asyncio.get_running_loop().create_task(
            self._run(job), name=f"analysis-{suggestion.domain_name}-{job.token[:8]}"
        )
        logger.info(f"Starting analysis for {suggestion.domain_name}")
        return job

    def cancel(self) -> None:
        """Stop the live job, if any. Safe to call repeatedly."""
        job, handle = self._job, self._handle
        if job is not None and not job.is_terminal:
            job.state = JobState.CANCELLED
            logger.info(f"Cancelled analysis for {job.suggestion.domain_name} (task {job.job_id})")
        if handle is not None and not handle.done():
            handle.cancel()

    async def wait(self) -> Optional[AnalysisJob]:
        """Block until the live job's background work has finished."""
        handle = self._handle
        if handle is not None:
            await asyncio.wait({handle})
        return self._job

    def _is_live(self, job: AnalysisJob) -> bool:
        return self._job is job and not job.is_terminal

    def _fail(self, job: AnalysisJob, message: str) -> None:
        if not self._is_live(job):
            return
        job.state = JobState.FAILED
        job.error_message = message or TASK_FAILED_FALLBACK
        logger.warning(f"Analysis for {job.suggestion.domain_name} failed: {job.error_message}")

    async def _run(self, job: AnalysisJob) -> None:
        try:
            await self._drive(job)
        except DomainAdvisorError as e:
            self._fail(job, e.message)
        except Exception as e:
            logger.exception(f"Unexpected error while analysing {job.suggestion.domain_name}")
            self._fail(job, f"An error occurred while checking the task status: {e}")

    async def _drive(self, job: AnalysisJob) -> None:
        job_id = await self.provider.start_job(job.suggestion, job.details)
        if not self._is_live(job):
            return
        job.job_id = job_id
        job.last_remote_status = RemoteStatus.PENDING.value
        job.state = JobState.POLLING

        while True:
            task = await self.provider.fetch_job(job_id)
            if not self._is_live(job):
                return
            job.last_remote_status = task.status.value

            if task.status == RemoteStatus.FAILED:
                raise UpstreamTaskFailed(task.error or TASK_FAILED_FALLBACK)

            if task.status == RemoteStatus.COMPLETED:
                text = extract_report_text(task, self.extraction_policy)
                if not text:
                    raise EmptyResult(NO_ANALYSIS_MESSAGE)
                job.result = text
                job.state = JobState.COMPLETED
                logger.info(f"Analysis for {job.suggestion.domain_name} completed")
                return

            logger.debug(f"Task {job_id} is {task.status.value}; next poll in {self.poll_interval}s")
            await self._sleep(self.poll_interval)
            if not self._is_live(job):
                return


class AnalysisViewRegistry:
    """One orchestrator per open analysis view.

    Views the browser never closes are kept until more than
    ``max_finished_views`` of them hold a terminal job; the least recently
    opened finished views are dropped first. Views with a live job are never
    dropped.
    """

    def __init__(self, max_finished_views: int = DEFAULT_MAX_FINISHED_VIEWS):
        if max_finished_views < 0:
            raise ValueError("max_finished_views must not be negative")
        self.max_finished_views = max_finished_views
        self._views: Dict[str, AnalysisOrchestrator] = {}

    def get(self, view_id: str) -> Optional[AnalysisOrchestrator]:
        return self._views.get(view_id)

    def open(self, view_id: str, factory: Callable[[], AnalysisOrchestrator]) -> AnalysisOrchestrator:
        orchestrator = self._views.pop(view_id, None)
        if orchestrator is None:
            orchestrator = factory()
        self._views[view_id] = orchestrator
        self._evict_finished(keep=view_id)
        return orchestrator

    def _evict_finished(self, keep: str) -> None:
        finished = [
            view_id for view_id, orchestrator in self._views.items()
            if view_id != keep and orchestrator.job is not None and orchestrator.job.is_terminal
        ]
        excess = len(finished) - self.max_finished_views
        for view_id in finished[:max(excess, 0)]:
            del self._views[view_id]
        if excess > 0:
            logger.info(f"Dropped {excess} finished analysis views")

    def close(self, view_id: str) -> Optional[AnalysisJob]:
        orchestrator = self._views.pop(view_id, None)
        if orchestrator is None:
            return None
        orchestrator.cancel()
        return orchestrator.job

    def close_all(self) -> None:
        for view_id in list(self._views):
            self.close(view_id)

    async def aclose_all(self) -> None:
        """Close every view and wait for the cancelled jobs to unwind."""
        orchestrators = list(self._views.values())
        self.close_all()
        await asyncio.gather(*(orchestrator.wait() for orchestrator in orchestrators))

    def __len__(self) -> int:
        return len(self._views)
