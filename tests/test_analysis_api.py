"""Tests for the /api/analysis endpoints."""
import pytest
from httpx import AsyncClient

from app.services.llm_client import ErrorKind, LLMServiceError
from tests.conftest import EDGE_CASES_REPLY, JOURNEYS_REPLY, VALIDATION_REPLY


def _body(prd_text: str, **extra) -> dict:
    body = {
        "documentName": "Checkout PRD",
        "content": prd_text,
        "context": {"company": "Acme", "problemStatement": "Cart abandonment"},
    }
    body.update(extra)
    return body


@pytest.mark.asyncio
async def test_analyze_text_end_to_end(client: AsyncClient, stub_llm, prd_text):
    stub_llm.queue(VALIDATION_REPLY, JOURNEYS_REPLY, EDGE_CASES_REPLY, "80")

    resp = await client.post("/api/analysis/", json=_body(prd_text))

    assert resp.status_code == 200
    data = resp.json()
    result = data["result"]
    assert result["documentName"] == "Checkout PRD"
    assert result["context"]["company"] == "Acme"
    assert result["summary"] == {
        "totalJourneys": 2,
        "totalEdgeCases": 2,
        "criticalIssues": 1,
        "coverageScore": 80,
    }
    assert result["journeys"][0]["userType"] == "Shopper"
    assert data["validation"]["isPRD"] is True
    assert [e["progress"] for e in data["progress"]] == [10, 30, 60, 90, 100]
    assert data["progress"][-1]["stage"] == "complete"
    assert "Company Context: Acme" in stub_llm.prompts[1]


@pytest.mark.asyncio
async def test_gate_rejects_confident_non_prd(client: AsyncClient, stub_llm, prd_text):
    stub_llm.queue('{"isPRD": false, "confidence": 12, "reasons": ["Looks like a recipe"]}')

    resp = await client.post("/api/analysis/", json=_body(prd_text))

    assert resp.status_code == 422
    detail = resp.json()["detail"]
    assert detail["validation"]["confidence"] == 12
    assert len(stub_llm.prompts) == 1


@pytest.mark.asyncio
async def test_gate_lets_uncertain_documents_through(client: AsyncClient, stub_llm, prd_text):
    stub_llm.queue(
        '{"isPRD": false, "confidence": 60, "reasons": ["Partly a spec"]}',
        JOURNEYS_REPLY,
        "[]",
        "70",
    )
    resp = await client.post("/api/analysis/", json=_body(prd_text))
    assert resp.status_code == 200
    assert resp.json()["result"]["summary"]["coverageScore"] == 70


@pytest.mark.asyncio
async def test_skip_validation(client: AsyncClient, stub_llm, prd_text):
    stub_llm.queue(JOURNEYS_REPLY, EDGE_CASES_REPLY, "65")

    resp = await client.post("/api/analysis/", json=_body(prd_text, skipValidation=True))

    assert resp.status_code == 200
    assert resp.json()["validation"] is None
    assert len(stub_llm.prompts) == 3


@pytest.mark.asyncio
async def test_provider_failure_returns_fallback(client: AsyncClient, stub_llm, prd_text):
    stub_llm.queue(
        VALIDATION_REPLY,
        LLMServiceError("Gemini API request failed: 429 - quota", ErrorKind.QUOTA_EXCEEDED),
    )

    resp = await client.post("/api/analysis/", json=_body(prd_text))

    assert resp.status_code == 200
    data = resp.json()
    assert data["result"]["isFallback"] is True
    assert data["result"]["summary"]["coverageScore"] == 0
    assert data["progress"][-2]["message"].startswith("API quota exceeded")
    assert data["progress"][-1] == {
        "stage": "complete",
        "progress": 100,
        "message": data["progress"][-1]["message"],
    }


@pytest.mark.asyncio
async def test_too_short_content(client: AsyncClient, stub_llm):
    resp = await client.post("/api/analysis/", json={"content": "tiny"})
    assert resp.status_code == 400
    assert stub_llm.prompts == []


@pytest.mark.asyncio
async def test_missing_content_is_422(client: AsyncClient):
    resp = await client.post("/api/analysis/", json={"documentName": "x"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_upload_and_analyze(client: AsyncClient, stub_llm, prd_text):
    stub_llm.queue(JOURNEYS_REPLY, EDGE_CASES_REPLY, "90")

    resp = await client.post(
        "/api/analysis/upload",
        files={"file": ("checkout.md", prd_text.encode(), "text/markdown")},
        data={"company": "Acme", "problemStatement": "  ", "skipValidation": "true"},
    )

    assert resp.status_code == 200
    result = resp.json()["result"]
    assert result["documentName"] == "checkout.md"
    assert result["context"]["company"] == "Acme"
    assert result["context"]["problemStatement"] is None


@pytest.mark.asyncio
async def test_report_markdown_and_docx(client: AsyncClient, stub_llm, prd_text):
    stub_llm.queue(JOURNEYS_REPLY, EDGE_CASES_REPLY, "80")
    analysis = await client.post("/api/analysis/", json=_body(prd_text, skipValidation=True))
    result = analysis.json()["result"]

    md = await client.post("/api/analysis/report", params={"format": "markdown"}, json=result)
    assert md.status_code == 200
    assert md.headers["content-type"].startswith("text/markdown")
    assert 'filename="Checkout-PRD-analysis.md"' in md.headers["content-disposition"]
    assert "# PRD Edge Case Analysis Report" in md.text

    docx = await client.post("/api/analysis/report", params={"format": "docx"}, json=result)
    assert docx.status_code == 200
    assert docx.content[:2] == b"PK"


@pytest.mark.asyncio
async def test_report_rejects_unknown_format(client: AsyncClient):
    resp = await client.post("/api/analysis/report", params={"format": "pdf"}, json={})
    assert resp.status_code == 422
