"""Tests for background analysis jobs."""
import asyncio

import pytest
from httpx import AsyncClient

from tests.conftest import (
    AUTH_HEADERS,
    AUTH_HEADERS_USER2,
    EDGE_CASES_REPLY,
    JOURNEYS_REPLY,
)


async def _wait_for(client: AsyncClient, job_id: str, headers=None) -> dict:
    for _ in range(100):
        resp = await client.get(f"/api/jobs/{job_id}", headers=headers or {})
        assert resp.status_code == 200
        data = resp.json()
        if data["state"] != "running":
            return data
        await asyncio.sleep(0.01)
    raise AssertionError(f"job {job_id} did not finish")


@pytest.mark.asyncio
async def test_job_runs_to_completion(client: AsyncClient, stub_llm, prd_text):
    stub_llm.queue(JOURNEYS_REPLY, EDGE_CASES_REPLY, "77")

    resp = await client.post(
        "/api/jobs/",
        json={"documentName": "Checkout PRD", "content": prd_text, "skipValidation": True},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 202
    job_id = resp.json()["jobId"]

    data = await _wait_for(client, job_id, AUTH_HEADERS)
    assert data["state"] == "completed"
    assert data["stage"] == "complete"
    assert data["progress"] == 100
    assert data["result"]["summary"]["coverageScore"] == 77
    assert data["errors"] == []


@pytest.mark.asyncio
async def test_job_fallback_still_completes(client: AsyncClient, prd_text):
    # stub has nothing queued, so every stage call fails
    resp = await client.post(
        "/api/jobs/", json={"content": prd_text, "skipValidation": True}
    )
    data = await _wait_for(client, resp.json()["jobId"])

    assert data["state"] == "completed"
    assert data["result"]["isFallback"] is True


@pytest.mark.asyncio
async def test_jobs_are_scoped_to_their_owner(client: AsyncClient, stub_llm, prd_text):
    stub_llm.queue(JOURNEYS_REPLY, "[]", "50")
    resp = await client.post(
        "/api/jobs/",
        json={"content": prd_text, "skipValidation": True},
        headers=AUTH_HEADERS,
    )
    job_id = resp.json()["jobId"]
    await _wait_for(client, job_id, AUTH_HEADERS)

    other = await client.get(f"/api/jobs/{job_id}", headers=AUTH_HEADERS_USER2)
    assert other.status_code == 404
    anonymous = await client.get(f"/api/jobs/{job_id}")
    assert anonymous.status_code == 404


@pytest.mark.asyncio
async def test_gate_runs_before_job_is_created(client: AsyncClient, stub_llm, prd_text):
    stub_llm.queue('{"isPRD": false, "confidence": 5, "reasons": ["Invoice"]}')
    resp = await client.post("/api/jobs/", json={"content": prd_text})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_unknown_job_is_404(client: AsyncClient):
    resp = await client.get("/api/jobs/does-not-exist")
    assert resp.status_code == 404
