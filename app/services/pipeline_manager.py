"""
In-memory registry of background analysis jobs.

Usage
-----
    from app.services.pipeline_manager import analysis_jobs

    status = analysis_jobs.start(pipeline, content, "Checkout PRD", context, owner="u-1")
    # ... later ...
    current = analysis_jobs.get_status(status.job_id)

Statuses outlive their tasks so clients can keep polling after completion;
the oldest finished entries are evicted once MAX_TRACKED_JOBS is exceeded.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from typing import Dict, List, Optional

from app.models.schemas import (
    AnalysisContext,
    AnalysisResult,
    ProcessingStage,
    ProcessingStatus,
)
from app.services.pipeline import AnalysisPipeline
from app.utils.helpers import generate_id

logger = logging.getLogger(__name__)


class JobState:
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Job status (mutable dataclass shared between task and poller)
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class AnalysisJobStatus:
    job_id: str
    document_name: str
    owner: Optional[str] = None
    state: str = JobState.RUNNING
    stage: ProcessingStage = ProcessingStage.PARSING
    progress: int = 0
    message: str = "Queued"
    result: Optional[AnalysisResult] = None
    errors: List[str] = dataclasses.field(default_factory=list)
    started_at: float = dataclasses.field(default_factory=time.monotonic)
    completed_at: Optional[float] = None

    @property
    def elapsed_seconds(self) -> float:
        end = self.completed_at if self.completed_at else time.monotonic()
        return round(end - self.started_at, 2)

    def update(self, status: ProcessingStatus) -> None:
        """Progress sink for AnalysisPipeline."""
        self.stage = status.stage
        self.progress = status.progress
        self.message = status.message


# ---------------------------------------------------------------------------
# Job manager (class-level state, acts as a singleton)
# ---------------------------------------------------------------------------

class AnalysisJobManager:
    """Runs AnalysisPipeline calls as asyncio.Tasks keyed by job id."""

    MAX_TRACKED_JOBS: int = 200

    _tasks: Dict[str, asyncio.Task] = {}
    _status: Dict[str, AnalysisJobStatus] = {}

    @classmethod
    def get_status(cls, job_id: str) -> Optional[AnalysisJobStatus]:
        return cls._status.get(job_id)

    @classmethod
    def start(
        cls,
        pipeline: AnalysisPipeline,
        content: str,
        document_name: str,
        context: Optional[AnalysisContext] = None,
        owner: Optional[str] = None,
    ) -> AnalysisJobStatus:
        """
        Launch *pipeline* on *content* in the background.

        Returns the AnalysisJobStatus object; it is shared with the running
        task so its fields update in real time.
        """
        status = AnalysisJobStatus(
            job_id=generate_id(), document_name=document_name, owner=owner
        )
        cls._evict_finished()
        cls._status[status.job_id] = status

        async def _wrapper() -> None:
            try:
                status.result = await pipeline.analyze(
                    content, document_name, context, on_progress=status.update
                )
                status.state = JobState.COMPLETED
            except Exception as exc:
                logger.error(
                    "Analysis job %s failed: %s", status.job_id, exc, exc_info=True
                )
                status.state = JobState.FAILED
                status.errors.append(f"analysis crash: {str(exc)[:200]}")
            finally:
                status.completed_at = time.monotonic()
                if status.state == JobState.RUNNING:
                    status.state = JobState.FAILED

        task = asyncio.create_task(_wrapper())
        cls._tasks[status.job_id] = task

        # Drop the task reference when done
        task.add_done_callback(lambda _t: cls._cleanup(status.job_id))

        logger.info("Analysis job %s started for %r", status.job_id, document_name)
        return status

    @classmethod
    def _cleanup(cls, job_id: str) -> None:
        """Remove the task reference (status is kept for polling)."""
        cls._tasks.pop(job_id, None)

    @classmethod
    def _evict_finished(cls) -> None:
        overflow = len(cls._status) - cls.MAX_TRACKED_JOBS + 1
        if overflow <= 0:
            return
        finished = sorted(
            (s for s in cls._status.values() if s.completed_at is not None),
            key=lambda s: s.completed_at,
        )
        for stale in finished[:overflow]:
            cls._status.pop(stale.job_id, None)


# Module-level singleton instance
analysis_jobs = AnalysisJobManager
