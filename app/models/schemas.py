"""
Pydantic schemas for the analysis domain and request/response validation.

Field names are snake_case in Python and serialised with camelCase aliases
(``userType``, ``affectedJourneys``, ``isPRD`` …) so API payloads and exported
JSON reports keep the shape the frontend consumes.
"""
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


# Enums
class SourceType(str, Enum):
    """Coarse type of an ingested document."""

    PDF = "pdf"
    DOCX = "docx"
    TEXT = "text"


class Priority(str, Enum):
    """Journey priority."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Severity(str, Enum):
    """Edge case severity."""

    CRITICAL = "critical"
    MODERATE = "moderate"
    MINOR = "minor"


class EdgeCaseCategory(str, Enum):
    """Canonical edge case taxonomy."""

    MISSING_FLOW = "missing_flow"
    INCONSISTENCY = "inconsistency"
    UX_GAP = "ux_gap"
    LOGICAL_CONTRADICTION = "logical_contradiction"


class ProcessingStage(str, Enum):
    """Stages reported to progress sinks."""

    PARSING = "parsing"
    EXTRACTING = "extracting"
    ANALYZING = "analyzing"
    GENERATING = "generating"
    COMPLETE = "complete"


class ReportFormat(str, Enum):
    """Export formats for analysis reports."""

    MARKDOWN = "markdown"
    JSON = "json"
    DOCX = "docx"


class CamelModel(BaseModel):
    """Base model serialising field names as camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Domain models
# ---------------------------------------------------------------------------

class PRDDocument(CamelModel):
    """An ingested document. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    content: str
    source_type: SourceType = SourceType.TEXT
    size_bytes: int = 0
    uploaded_at: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AnalysisContext(CamelModel):
    """Optional free-text hints passed unchanged to every LLM stage."""

    company: Optional[str] = None
    problem_statement: Optional[str] = None


class JourneyStep(CamelModel):
    id: str
    action: str
    description: str
    expected_outcome: str
    dependencies: List[str] = Field(default_factory=list)
    timing_constraints: Optional[str] = None
    data_requirements: Optional[str] = None
    failure_scenarios: List[str] = Field(default_factory=list)
    monitoring_points: List[str] = Field(default_factory=list)


class UserJourney(CamelModel):
    id: str
    name: str
    description: str
    user_type: str
    priority: Priority = Priority.MEDIUM
    steps: List[JourneyStep] = Field(default_factory=list)
    business_impact: Optional[str] = None
    frequency: Optional[str] = None
    upstream_dependencies: List[str] = Field(default_factory=list)
    parallel_processes: List[str] = Field(default_factory=list)


class EdgeCase(CamelModel):
    id: str
    category: EdgeCaseCategory = EdgeCaseCategory.UX_GAP
    severity: Severity = Severity.MODERATE
    title: str
    description: str
    affected_journeys: List[str] = Field(default_factory=list)
    recommendation: str
    impact: str
    business_impact: Optional[str] = None
    example_scenario: Optional[str] = None
    operational_frequency: Optional[str] = None
    detection_method: Optional[str] = None
    questions_to_resolve: List[str] = Field(default_factory=list)


class AnalysisSummary(CamelModel):
    total_journeys: int
    total_edge_cases: int
    critical_issues: int
    coverage_score: int = Field(..., ge=0, le=100)


class AnalysisResult(CamelModel):
    """Outcome of one completed (or fallback) analysis."""

    id: str
    document_name: str
    analyzed_at: datetime
    context: AnalysisContext = Field(default_factory=AnalysisContext)
    journeys: List[UserJourney] = Field(default_factory=list)
    edge_cases: List[EdgeCase] = Field(default_factory=list)
    summary: AnalysisSummary
    is_fallback: bool = False


class ValidationResult(CamelModel):
    """PRD-likeness verdict."""

    is_prd: bool = Field(..., alias="isPRD")
    confidence: int = Field(..., ge=0, le=100)
    reasons: List[str] = Field(default_factory=list)
    method: str = "ai"  # "ai" or "keywords"


class ProcessingStatus(CamelModel):
    """A single progress event pushed to the caller's sink."""

    stage: ProcessingStage
    progress: int = Field(..., ge=0, le=100)
    message: str


# ---------------------------------------------------------------------------
# API request / response schemas
# ---------------------------------------------------------------------------

class ValidateRequest(CamelModel):
    """Request body for POST /api/documents/validate."""

    content: str = Field(..., min_length=1)


class AnalysisRequest(CamelModel):
    """Request body for POST /api/analysis and POST /api/jobs."""

    document_name: str = Field("Untitled PRD", min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    context: AnalysisContext = Field(default_factory=AnalysisContext)
    skip_validation: bool = False


class AnalysisResponse(CamelModel):
    """Response for POST /api/analysis."""

    result: AnalysisResult
    progress: List[ProcessingStatus] = Field(default_factory=list)
    validation: Optional[ValidationResult] = None


class JobResponse(CamelModel):
    """Response for POST /api/jobs and GET /api/jobs/{job_id}."""

    job_id: str
    document_name: str
    state: str  # "running", "completed" or "failed"
    stage: ProcessingStage
    progress: int
    message: str
    elapsed_seconds: float
    result: Optional[AnalysisResult] = None
    errors: List[str] = Field(default_factory=list)


class HealthCheckResponse(CamelModel):
    """Response for GET /api/health."""

    status: str
    llm_provider: str
    llm: str
    timestamp: datetime
