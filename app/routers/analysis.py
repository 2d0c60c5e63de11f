"""
PRD analysis endpoints.

POST /         — analyze PRD text (JSON body).
POST /upload   — parse an uploaded file, then analyze it.
POST /report   — export a finished AnalysisResult as Markdown, JSON or DOCX.

Both analysis routes run the validation gate first unless ``skipValidation``
is set: a document is rejected (422) only when the validator says it is not a
PRD *and* its confidence is below PRD_GATE_MIN_CONFIDENCE.
"""
from __future__ import annotations

import logging
import re
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import Response

from app.config import settings
from app.dependencies.llm import get_ingestor, get_pipeline, get_validator
from app.models.schemas import (
    AnalysisContext,
    AnalysisRequest,
    AnalysisResponse,
    AnalysisResult,
    ProcessingStatus,
    ReportFormat,
    ValidationResult,
)
from app.routers.documents import ingest_upload
from app.services import report_generator
from app.services.document_parser import DocumentIngestor
from app.services.pipeline import AnalysisPipeline, EmptyDocumentError
from app.services.prd_validator import PRDValidator

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def ensure_analyzable(content: str) -> None:
    if len(content.strip()) < settings.MIN_DOCUMENT_CHARS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                "Document is too short to analyze "
                f"(minimum {settings.MIN_DOCUMENT_CHARS} characters)."
            ),
        )


async def run_gate(validator: PRDValidator, content: str) -> ValidationResult:
    """Validate *content* and raise 422 when it is confidently not a PRD."""
    validation = await validator.validate(content)
    if not validation.is_prd and validation.confidence < settings.PRD_GATE_MIN_CONFIDENCE:
        logger.info(
            "Validation gate rejected document (confidence %d, method %s)",
            validation.confidence,
            validation.method,
        )
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "message": (
                    "This document does not appear to be a PRD. "
                    "Resubmit with skipValidation to analyze it anyway."
                ),
                "validation": validation.model_dump(by_alias=True),
            },
        )
    return validation


async def run_analysis(
    pipeline: AnalysisPipeline,
    validator: PRDValidator,
    content: str,
    document_name: str,
    context: AnalysisContext,
    skip_validation: bool,
) -> AnalysisResponse:
    ensure_analyzable(content)
    validation = None if skip_validation else await run_gate(validator, content)

    progress: List[ProcessingStatus] = []
    try:
        result = await pipeline.analyze(content, document_name, context, progress.append)
    except EmptyDocumentError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    return AnalysisResponse(result=result, progress=progress, validation=validation)


def _report_filename(document_name: str, fmt: ReportFormat) -> str:
    stem = re.sub(r"[^A-Za-z0-9._-]+", "-", document_name).strip("-.") or "prd"
    return f"{stem}-analysis.{report_generator.FILE_EXTENSIONS[fmt]}"


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.post("/", response_model=AnalysisResponse, response_model_by_alias=True)
async def analyze_text(
    body: AnalysisRequest,
    pipeline: AnalysisPipeline = Depends(get_pipeline),
    validator: PRDValidator = Depends(get_validator),
) -> AnalysisResponse:
    """
    Analyze PRD text end to end.

    Returns the result plus every progress event the pipeline emitted.  AI
    failures never surface as errors: the result is the demo fallback with
    ``isFallback: true``.
    """
    return await run_analysis(
        pipeline,
        validator,
        body.content,
        body.document_name,
        body.context,
        body.skip_validation,
    )


@router.post("/upload", response_model=AnalysisResponse, response_model_by_alias=True)
async def analyze_upload(
    file: UploadFile = File(...),
    company: Optional[str] = Form(None),
    problem_statement: Optional[str] = Form(None, alias="problemStatement"),
    skip_validation: bool = Form(False, alias="skipValidation"),
    ingestor: DocumentIngestor = Depends(get_ingestor),
    pipeline: AnalysisPipeline = Depends(get_pipeline),
    validator: PRDValidator = Depends(get_validator),
) -> AnalysisResponse:
    """Parse an uploaded PRD file and analyze it (same response as ``POST /``)."""
    document = await ingest_upload(file, ingestor)
    context = AnalysisContext(
        company=(company or "").strip() or None,
        problem_statement=(problem_statement or "").strip() or None,
    )
    return await run_analysis(
        pipeline,
        validator,
        document.content,
        document.name,
        context,
        skip_validation,
    )


@router.post("/report")
async def export_report(
    result: AnalysisResult,
    format: ReportFormat = Query(ReportFormat.MARKDOWN),
) -> Response:
    """Render *result* as a downloadable report."""
    body = report_generator.render(result, format)
    filename = _report_filename(result.document_name, format)
    return Response(
        content=body,
        media_type=report_generator.MEDIA_TYPES[format],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
