"""
Background analysis jobs.

POST /          — start an analysis in the background; returns 202 + job id.
GET  /{job_id}  — poll progress; the result is included once complete.

Jobs started with an X-User-Id header are only visible to that user.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from app.dependencies.auth import get_optional_user_id
from app.dependencies.llm import get_pipeline, get_validator
from app.models.schemas import AnalysisRequest, JobResponse
from app.routers.analysis import ensure_analyzable, run_gate
from app.services.pipeline import AnalysisPipeline
from app.services.pipeline_manager import AnalysisJobStatus, analysis_jobs
from app.services.prd_validator import PRDValidator

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(job: AnalysisJobStatus) -> JobResponse:
    return JobResponse(
        job_id=job.job_id,
        document_name=job.document_name,
        state=job.state,
        stage=job.stage,
        progress=job.progress,
        message=job.message,
        elapsed_seconds=job.elapsed_seconds,
        result=job.result,
        errors=list(job.errors),
    )


@router.post(
    "/",
    response_model=JobResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_job(
    body: AnalysisRequest,
    user_id: Optional[str] = Depends(get_optional_user_id),
    pipeline: AnalysisPipeline = Depends(get_pipeline),
    validator: PRDValidator = Depends(get_validator),
) -> JobResponse:
    """
    Start a background analysis.

    The validation gate runs synchronously, so a rejected document still
    fails fast with 422 and no job is created.
    """
    ensure_analyzable(body.content)
    if not body.skip_validation:
        await run_gate(validator, body.content)

    job = analysis_jobs.start(
        pipeline, body.content, body.document_name, body.context, owner=user_id
    )
    return _to_response(job)


@router.get("/{job_id}", response_model=JobResponse, response_model_by_alias=True)
async def get_job(
    job_id: str,
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> JobResponse:
    """Latest status of a job.  Unknown jobs and other users' jobs are 404."""
    job = analysis_jobs.get_status(job_id)
    if job is None or (job.owner is not None and job.owner != user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} not found.",
        )
    return _to_response(job)
