"""
Analysis orchestrator for FlowMender.

Public API
----------
AnalysisPipeline.analyze(content, document_name, context, on_progress)
    → AnalysisResult
    Extract journeys → analyze edge cases → score readiness, pushing a
    ProcessingStatus to *on_progress* at every stage transition.

AnalysisPipeline.analyze_document(document, context, on_progress)
    → AnalysisResult
    Same, for an ingested PRDDocument.

build_fallback_result(document_name, context, kind)
    → AnalysisResult
    The canned result shown when the AI pipeline cannot complete.

Stages and progress
-------------------
    parsing 10 → extracting 30 → analyzing 60 → generating 90 → complete 100

Any exception raised by a stage (provider error, unparsable reply, anything
else) is caught here and replaced by the fallback result: the sink receives a
``generating``/95 event naming the problem, then ``complete``/100.  When the
scoring stage fails, ``generating``/90 has already been sent, so the 95 event
is skipped and the problem is named in the ``complete`` message instead.  The
sink is called 4 or 5 times per run.  Callers never see a failed run; only an
empty document is rejected up front.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Union

from app.config import settings
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
    UserJourney,
)
from app.services.edge_case_analyzer import EdgeCaseAnalyzer
from app.services.journey_extractor import JourneyExtractor
from app.services.llm_client import BaseLLMClient, ErrorKind, classify_error
from app.services.normalizer import to_edge_cases, to_journeys
from app.services.readiness_scorer import ReadinessScorer
from app.utils.helpers import generate_id

logger = logging.getLogger(__name__)


ProgressSink = Callable[[ProcessingStatus], Union[None, Awaitable[None]]]


class EmptyDocumentError(ValueError):
    """Raised before the pipeline starts when there is nothing to analyze."""


FALLBACK_MESSAGES = {
    ErrorKind.QUOTA_EXCEEDED: "API quota exceeded, showing demo analysis...",
    ErrorKind.INVALID_API_KEY: "API key issue, showing demo analysis...",
    ErrorKind.API_UNAVAILABLE: "AI service unavailable, showing demo analysis...",
    ErrorKind.GENERIC: "AI analysis could not be completed, showing demo analysis...",
}


# ---------------------------------------------------------------------------
# Result assembly
# ---------------------------------------------------------------------------

def summarize(
    journeys: List[UserJourney], edge_cases: List[EdgeCase], coverage_score: int
) -> AnalysisSummary:
    return AnalysisSummary(
        total_journeys=len(journeys),
        total_edge_cases=len(edge_cases),
        critical_issues=sum(1 for e in edge_cases if e.severity == Severity.CRITICAL),
        coverage_score=max(0, min(100, int(coverage_score))),
    )


def assemble_result(
    document_name: str,
    context: AnalysisContext,
    journeys: List[UserJourney],
    edge_cases: List[EdgeCase],
    coverage_score: int,
) -> AnalysisResult:
    """Run the coercion pass once more and build the final record."""
    journeys = to_journeys(journeys)
    edge_cases = to_edge_cases(edge_cases)
    return AnalysisResult(
        id=generate_id(),
        document_name=document_name,
        analyzed_at=datetime.now(timezone.utc),
        context=context,
        journeys=journeys,
        edge_cases=edge_cases,
        summary=summarize(journeys, edge_cases, coverage_score),
    )


def build_fallback_result(
    document_name: str,
    context: Optional[AnalysisContext] = None,
    kind: ErrorKind = ErrorKind.API_UNAVAILABLE,
) -> AnalysisResult:
    """Synthetic result: one demo journey, one critical issue, score 0."""
    journeys = [
        UserJourney(
            id="1",
            name="User Registration Flow",
            description="New user creates an account and completes onboarding",
            user_type="New User",
            priority=Priority.HIGH,
            steps=[
                JourneyStep(
                    id="1-1",
                    action="Visit registration page",
                    description="User navigates to sign-up form",
                    expected_outcome="Registration form loads successfully",
                ),
                JourneyStep(
                    id="1-2",
                    action="Fill registration form",
                    description="User enters email, password, and basic info",
                    expected_outcome="Form validates input in real-time",
                    dependencies=["1-1"],
                ),
            ],
        )
    ]
    edge_cases = [
        EdgeCase(
            id="1",
            category=EdgeCaseCategory.MISSING_FLOW,
            severity=Severity.CRITICAL,
            title="AI Analysis Unavailable",
            description=(
                "The AI service is currently unavailable "
                f"({kind.value}). This is demo data to show the report layout."
            ),
            affected_journeys=["1"],
            recommendation="Check your API key and internet connection, then try again.",
            impact="Cannot perform real analysis of your PRD document.",
        )
    ]
    return AnalysisResult(
        id=generate_id(),
        document_name=document_name,
        analyzed_at=datetime.now(timezone.utc),
        context=context or AnalysisContext(),
        journeys=journeys,
        edge_cases=edge_cases,
        summary=summarize(journeys, edge_cases, 0),
        is_fallback=True,
    )


# ---------------------------------------------------------------------------
# AnalysisPipeline
# ---------------------------------------------------------------------------

class AnalysisPipeline:
    """
    Sequences the three LLM stages for one document.

    Instances hold no per-run state, but the LLM client is per request, so
    build one pipeline per request rather than sharing it.
    """

    def __init__(
        self,
        llm: BaseLLMClient,
        extractor: Optional[JourneyExtractor] = None,
        analyzer: Optional[EdgeCaseAnalyzer] = None,
        scorer: Optional[ReadinessScorer] = None,
        stage_delay: Optional[float] = None,
    ) -> None:
        self._extractor = extractor or JourneyExtractor(llm)
        self._analyzer = analyzer or EdgeCaseAnalyzer(llm)
        self._scorer = scorer or ReadinessScorer(llm)
        self._stage_delay = settings.STAGE_DELAY_SECONDS if stage_delay is None else stage_delay

    async def analyze_document(
        self,
        document: PRDDocument,
        context: Optional[AnalysisContext] = None,
        on_progress: Optional[ProgressSink] = None,
    ) -> AnalysisResult:
        return await self.analyze(document.content, document.name, context, on_progress)

    async def analyze(
        self,
        content: str,
        document_name: str,
        context: Optional[AnalysisContext] = None,
        on_progress: Optional[ProgressSink] = None,
    ) -> AnalysisResult:
        """
        Run the full pipeline.  Always returns a populated AnalysisResult.

        Raises:
            EmptyDocumentError: *content* is blank (nothing is started).
        """
        if not content or not content.strip():
            raise EmptyDocumentError("Document has no text content to analyze.")

        context = context or AnalysisContext()
        t0 = time.monotonic()

        await self._emit(on_progress, ProcessingStage.PARSING, 10, "Initializing AI analysis...")
        await self._pause()

        try:
            stage = ProcessingStage.EXTRACTING
            await self._emit(
                on_progress,
                ProcessingStage.EXTRACTING,
                30,
                "AI is extracting user journeys and workflows...",
            )
            journeys = await self._extractor.extract(content, context)
            await self._pause()

            stage = ProcessingStage.ANALYZING
            await self._emit(
                on_progress,
                ProcessingStage.ANALYZING,
                60,
                "AI is identifying edge cases and inconsistencies...",
            )
            edge_cases = await self._analyzer.analyze(content, journeys, context)
            await self._pause()

            stage = ProcessingStage.GENERATING
            await self._emit(
                on_progress,
                ProcessingStage.GENERATING,
                90,
                "Generating comprehensive analysis report...",
            )
            coverage_score = await self._scorer.score(content, journeys, edge_cases, context)
            await self._pause()

        except Exception as exc:
            kind = classify_error(exc)
            logger.error(
                "Pipeline.analyze: %r failed (%s), substituting fallback result: %s",
                document_name,
                kind.value,
                exc,
            )
            # At most 5 events per run: no 95 event once generating/90 is out
            if stage != ProcessingStage.GENERATING:
                await self._emit(
                    on_progress, ProcessingStage.GENERATING, 95, FALLBACK_MESSAGES[kind]
                )
                done_message = "Analysis complete (demo data, AI analysis unavailable)."
            else:
                done_message = f"Analysis complete (demo data). {FALLBACK_MESSAGES[kind]}"
            result = build_fallback_result(document_name, context, kind)
            await self._emit(on_progress, ProcessingStage.COMPLETE, 100, done_message)
            return result

        result = assemble_result(document_name, context, journeys, edge_cases, coverage_score)
        elapsed = round(time.monotonic() - t0, 2)
        logger.info(
            "Pipeline.analyze: %r done in %ss: %d journeys, %d edge cases "
            "(%d critical), coverage %d",
            document_name,
            elapsed,
            result.summary.total_journeys,
            result.summary.total_edge_cases,
            result.summary.critical_issues,
            result.summary.coverage_score,
        )
        await self._emit(on_progress, ProcessingStage.COMPLETE, 100, "AI analysis complete!")
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _emit(
        self,
        sink: Optional[ProgressSink],
        stage: ProcessingStage,
        progress: int,
        message: str,
    ) -> None:
        status = ProcessingStatus(stage=stage, progress=progress, message=message)
        logger.debug("Pipeline: %s %d%% %s", stage.value, progress, message)
        if sink is None:
            return
        try:
            outcome = sink(status)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:
            logger.warning("Pipeline: progress sink raised on %s: %s", stage.value, exc)

    async def _pause(self) -> None:
        if self._stage_delay > 0:
            await asyncio.sleep(self._stage_delay)
