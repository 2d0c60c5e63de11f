"""Domain and schema models for FlowMender."""
from app.models.schemas import (
    AnalysisContext,
    AnalysisResult,
    AnalysisSummary,
    EdgeCase,
    EdgeCaseCategory,
    JourneyStep,
    PRDDocument,
    Priority,
    ProcessingStage,
    ProcessingStatus,
    Severity,
    SourceType,
    UserJourney,
    ValidationResult,
)

__all__ = [
    # Enums
    "EdgeCaseCategory",
    "Priority",
    "ProcessingStage",
    "Severity",
    "SourceType",
    # Domain models
    "AnalysisContext",
    "AnalysisResult",
    "AnalysisSummary",
    "EdgeCase",
    "JourneyStep",
    "PRDDocument",
    "ProcessingStatus",
    "UserJourney",
    "ValidationResult",
]
