"""Tests for Markdown / JSON / DOCX report export."""
import io
import json
from datetime import datetime, timezone

from docx import Document

from app.models.schemas import AnalysisContext, ReportFormat
from app.services.llm_client import parse_json_response
from app.services import report_generator
from app.services.normalizer import to_edge_cases, to_journeys
from app.services.pipeline import assemble_result, build_fallback_result
from tests.conftest import EDGE_CASES_REPLY, JOURNEYS_REPLY


def _result():
    _, edges = parse_json_response(EDGE_CASES_REPLY)
    result = assemble_result(
        "Checkout PRD",
        AnalysisContext(company="Acme", problem_statement="Cart abandonment"),
        to_journeys(json.loads(JOURNEYS_REPLY)),
        to_edge_cases(edges),
        81,
    )
    return result.model_copy(update={"analyzed_at": datetime(2025, 3, 4, tzinfo=timezone.utc)})


def test_markdown_layout():
    md = report_generator.generate_markdown(_result())

    assert md.startswith("# PRD Edge Case Analysis Report")
    assert "**Document:** Checkout PRD" in md
    assert "**Analyzed:** 2025-03-04" in md
    assert "**Company:** Acme" in md
    assert "- **Coverage Score:** 81%" in md
    assert "### Guest Checkout" in md
    assert "2. **Pay:** Shopper pays by card" in md
    assert "### MISSING FLOW" in md
    assert "#### What happens when the card is declined? (CRITICAL)" in md
    assert "**Affected Journeys:** journey-checkout" in md
    assert md.index("### MISSING FLOW") < md.index("### INCONSISTENCY")


def test_markdown_flags_fallback():
    md = report_generator.generate_markdown(build_fallback_result("Doc"))
    assert "demo data" in md


def test_json_uses_camel_case():
    data = json.loads(report_generator.generate_json(_result()))
    assert data["documentName"] == "Checkout PRD"
    assert data["summary"]["criticalIssues"] == 1
    assert data["edgeCases"][0]["affectedJourneys"] == ["journey-checkout"]
    assert data["isFallback"] is False


def test_docx_is_readable():
    blob = report_generator.generate_docx(_result())
    doc = Document(io.BytesIO(blob))
    text = "\n".join(p.text for p in doc.paragraphs)

    assert "PRD Edge Case Analysis Report" in text
    assert "Guest Checkout" in text
    assert "MISSING FLOW" in text


def test_render_dispatch():
    result = _result()
    assert isinstance(report_generator.render(result, ReportFormat.DOCX), bytes)
    assert report_generator.render(result, ReportFormat.MARKDOWN).startswith("# ")
