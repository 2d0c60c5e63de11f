"""
Document ingestion and PRD validation endpoints.

POST /parse     — extract text + metadata from an uploaded PDF, DOCX or text file.
POST /validate  — classify text as PRD / not-PRD with a confidence score.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from app.config import settings
from app.dependencies.llm import get_ingestor, get_validator
from app.models.schemas import PRDDocument, ValidateRequest, ValidationResult
from app.services.document_parser import (
    DocumentIngestionError,
    DocumentIngestor,
    UnsupportedFileTypeError,
)
from app.services.prd_validator import PRDValidator

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Shared upload handling
# ---------------------------------------------------------------------------

async def read_upload(file: UploadFile) -> bytes:
    """Read an upload in 1 MB slices, enforcing MAX_FILE_SIZE."""
    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Upload must include a filename.",
        )

    chunks = []
    file_size = 0
    while True:
        chunk = await file.read(1024 * 1024)
        if not chunk:
            break
        file_size += len(chunk)
        if file_size > settings.MAX_FILE_SIZE:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=(
                    f"File exceeds the {settings.MAX_FILE_SIZE // (1024 * 1024)} MB "
                    "size limit."
                ),
            )
        chunks.append(chunk)
    return b"".join(chunks)


async def ingest_upload(file: UploadFile, ingestor: DocumentIngestor) -> PRDDocument:
    """Read and parse an upload, translating ingestion errors to HTTP errors."""
    data = await read_upload(file)
    try:
        return await ingestor.ingest(file.filename, data, file.content_type)
    except UnsupportedFileTypeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except DocumentIngestionError as exc:
        logger.warning("Ingestion of %r failed: %s", file.filename, exc)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.post("/parse", response_model=PRDDocument, response_model_by_alias=True)
async def parse_document(
    file: UploadFile = File(...),
    ingestor: DocumentIngestor = Depends(get_ingestor),
) -> PRDDocument:
    """
    Parse a PDF, DOCX, TXT or Markdown upload into a PRDDocument.

    - Max file size: MAX_FILE_SIZE (10 MB by default)
    - Metadata: section headings, mentioned user types, word count
    - Nothing is stored; the parsed document is returned to the caller
    """
    return await ingest_upload(file, ingestor)


@router.post("/validate", response_model=ValidationResult, response_model_by_alias=True)
async def validate_document(
    body: ValidateRequest,
    validator: PRDValidator = Depends(get_validator),
) -> ValidationResult:
    """
    Decide whether the text looks like a product requirements document.

    Uses the LLM when available and falls back to the keyword heuristic
    (``method == "keywords"``) on any provider error.
    """
    result = await validator.validate(body.content)
    logger.info(
        "validate: isPRD=%s confidence=%d method=%s",
        result.is_prd,
        result.confidence,
        result.method,
    )
    return result
