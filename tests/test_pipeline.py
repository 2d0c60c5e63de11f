"""Tests for the AnalysisPipeline orchestrator and its fallback result."""
import asyncio
from datetime import datetime

import pytest

from app.models.schemas import AnalysisContext, PRDDocument, ProcessingStage, Severity, SourceType
from app.services.document_parser import extract_metadata
from app.services.llm_client import ErrorKind, LLMServiceError
from app.services.pipeline import (
    FALLBACK_MESSAGES,
    AnalysisPipeline,
    EmptyDocumentError,
    build_fallback_result,
)
from app.services.readiness_scorer import ReadinessScorer
from tests.conftest import EDGE_CASES_REPLY, JOURNEYS_REPLY, StubLLMClient


def _assert_summary_consistent(result):
    assert result.summary.total_journeys == len(result.journeys)
    assert result.summary.total_edge_cases == len(result.edge_cases)
    assert result.summary.critical_issues == sum(
        1 for e in result.edge_cases if e.severity == Severity.CRITICAL
    )
    assert 0 <= result.summary.coverage_score <= 100


@pytest.mark.asyncio
async def test_successful_run(prd_text):
    llm = StubLLMClient().queue(JOURNEYS_REPLY, EDGE_CASES_REPLY, "84")
    events = []
    context = AnalysisContext(company="Acme")

    result = await AnalysisPipeline(llm).analyze(prd_text, "Checkout PRD", context, events.append)

    assert result.is_fallback is False
    assert result.document_name == "Checkout PRD"
    assert result.context == context
    assert len(result.journeys) == 2
    assert result.summary.critical_issues == 1
    assert result.summary.coverage_score == 84
    _assert_summary_consistent(result)

    assert [(e.stage, e.progress) for e in events] == [
        (ProcessingStage.PARSING, 10),
        (ProcessingStage.EXTRACTING, 30),
        (ProcessingStage.ANALYZING, 60),
        (ProcessingStage.GENERATING, 90),
        (ProcessingStage.COMPLETE, 100),
    ]
    assert len(llm.prompts) == 3


@pytest.mark.asyncio
async def test_quota_error_on_extraction_returns_fallback(prd_text):
    llm = StubLLMClient().queue(
        LLMServiceError("Gemini API request failed: 429 - quota", ErrorKind.QUOTA_EXCEEDED)
    )
    events = []

    result = await AnalysisPipeline(llm).analyze(prd_text, "Checkout PRD", None, events.append)

    assert result.is_fallback is True
    assert len(result.journeys) == 1
    assert result.edge_cases[0].severity == Severity.CRITICAL
    assert result.summary.coverage_score == 0
    _assert_summary_consistent(result)

    assert (events[-1].stage, events[-1].progress) == (ProcessingStage.COMPLETE, 100)
    assert events[-2].progress == 95
    assert events[-2].message == FALLBACK_MESSAGES[ErrorKind.QUOTA_EXCEEDED]
    # nothing after the failed stage ran
    assert len(llm.prompts) == 1


QUOTA_ERROR = LLMServiceError("Gemini API request failed: 429 - quota", ErrorKind.QUOTA_EXCEEDED)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "replies, expected_progress",
    [
        ([QUOTA_ERROR], [10, 30, 95, 100]),
        ([JOURNEYS_REPLY, QUOTA_ERROR], [10, 30, 60, 95, 100]),
        ([JOURNEYS_REPLY, EDGE_CASES_REPLY, QUOTA_ERROR], [10, 30, 60, 90, 100]),
    ],
    ids=["extract", "analyze", "score"],
)
async def test_provider_error_in_any_stage_returns_fallback(prd_text, replies, expected_progress):
    llm = StubLLMClient().queue(*replies)
    pipeline = AnalysisPipeline(llm, scorer=ReadinessScorer(llm, mode="llm"))
    events = []

    result = await pipeline.analyze(prd_text, "Checkout PRD", None, events.append)

    assert result.is_fallback is True
    assert len(result.journeys) == 1
    assert len(result.edge_cases) == 1
    assert result.edge_cases[0].severity == Severity.CRITICAL
    assert result.summary.coverage_score == 0
    _assert_summary_consistent(result)

    assert len(llm.prompts) == len(replies)
    assert [e.progress for e in events] == expected_progress
    assert 4 <= len(events) <= 5
    assert (events[-1].stage, events[-1].progress) == (ProcessingStage.COMPLETE, 100)
    assert any(FALLBACK_MESSAGES[ErrorKind.QUOTA_EXCEEDED] in e.message for e in events)


@pytest.mark.asyncio
async def test_unparsable_edge_cases_fall_back_with_generic_message(prd_text):
    llm = StubLLMClient().queue(JOURNEYS_REPLY, "no json at all")
    events = []

    result = await AnalysisPipeline(llm).analyze(prd_text, "Doc", None, events.append)

    assert result.is_fallback is True
    assert FALLBACK_MESSAGES[ErrorKind.GENERIC] in [e.message for e in events]


@pytest.mark.asyncio
async def test_unexpected_exception_is_contained(prd_text):
    llm = StubLLMClient().queue(RuntimeError("socket closed"))
    result = await AnalysisPipeline(llm).analyze(prd_text, "Doc")
    assert result.is_fallback is True


@pytest.mark.asyncio
async def test_empty_document_is_rejected_before_any_event():
    events = []
    with pytest.raises(EmptyDocumentError):
        await AnalysisPipeline(StubLLMClient()).analyze("   \n", "Doc", None, events.append)
    assert events == []


@pytest.mark.asyncio
async def test_async_sink_and_failing_sink(prd_text):
    llm = StubLLMClient().queue(JOURNEYS_REPLY, "[]", "50")
    seen = []

    async def async_sink(status):
        await asyncio.sleep(0)
        seen.append(status.stage)

    result = await AnalysisPipeline(llm).analyze(prd_text, "Doc", None, async_sink)
    assert seen[-1] == ProcessingStage.COMPLETE
    assert result.summary.total_edge_cases == 0

    def broken_sink(status):
        raise RuntimeError("ui went away")

    llm.queue(JOURNEYS_REPLY, "[]", "50")
    result = await AnalysisPipeline(llm).analyze(prd_text, "Doc", None, broken_sink)
    assert result.is_fallback is False


@pytest.mark.asyncio
async def test_formula_scorer_and_document_entry_point(prd_text):
    llm = StubLLMClient().queue(JOURNEYS_REPLY, EDGE_CASES_REPLY)
    document = PRDDocument(
        id="doc-1",
        name="checkout.md",
        content=prd_text,
        source_type=SourceType.TEXT,
        size_bytes=len(prd_text),
        uploaded_at=datetime.now(),
        metadata=extract_metadata(prd_text),
    )
    pipeline = AnalysisPipeline(
        llm, scorer=ReadinessScorer(mode="formula", min_journeys=3, max_journeys=5)
    )

    result = await pipeline.analyze_document(document)

    # 100 - 8 (critical) - 3 (moderate) - 12 (fewer than 3 journeys)
    assert result.summary.coverage_score == 77
    assert result.document_name == "checkout.md"
    assert len(llm.prompts) == 2


def test_fallback_result_shape():
    result = build_fallback_result("Doc", kind=ErrorKind.INVALID_API_KEY)

    assert result.is_fallback is True
    assert result.journeys[0].name == "User Registration Flow"
    assert result.edge_cases[0].title == "AI Analysis Unavailable"
    assert result.edge_cases[0].affected_journeys == [result.journeys[0].id]
    assert "invalid_api_key" in result.edge_cases[0].description
    _assert_summary_consistent(result)
