"""
Shared fixtures for FlowMender backend tests.

No network access is needed: the LLM client dependency is overridden with a
scripted StubLLMClient that replays queued replies (or raises queued
exceptions) and records every prompt it receives.
"""
from __future__ import annotations

import json
from typing import AsyncGenerator, List, Optional, Union

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.dependencies.llm import get_llm_client
from app.main import app
from app.services.llm_client import BaseLLMClient, ErrorKind, LLMServiceError
from app.services.pipeline_manager import AnalysisJobManager


# ---------------------------------------------------------------------------
# Scripted LLM client
# ---------------------------------------------------------------------------

class StubLLMClient(BaseLLMClient):
    """Replays queued replies in order; raises queued exceptions."""

    provider_name = "stub"

    def __init__(
        self,
        responses: Optional[List[Union[str, BaseException]]] = None,
        configured: bool = True,
    ) -> None:
        super().__init__(model="stub-model", timeout=1)
        self.responses: List[Union[str, BaseException]] = list(responses or [])
        self.prompts: List[str] = []
        self._configured = configured

    def is_configured(self) -> bool:
        return self._configured

    def queue(self, *items: Union[str, BaseException]) -> "StubLLMClient":
        self.responses.extend(items)
        return self

    async def generate(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        self.prompts.append(prompt)
        if not self.responses:
            raise LLMServiceError("stub has no reply queued", ErrorKind.API_UNAVAILABLE)
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


# ---------------------------------------------------------------------------
# Sample LLM replies
# ---------------------------------------------------------------------------

JOURNEYS_REPLY = json.dumps(
    [
        {
            "id": "journey-checkout",
            "name": "Guest Checkout",
            "description": "Shopper buys without creating an account",
            "userType": "Shopper",
            "priority": "high",
            "businessImpact": "Direct revenue",
            "steps": [
                {
                    "id": "step-1",
                    "action": "Add to cart",
                    "description": "Shopper adds an item",
                    "expectedOutcome": "Cart shows the item",
                },
                {
                    "id": "step-2",
                    "action": "Pay",
                    "description": "Shopper pays by card",
                    "expectedOutcome": "Order confirmed",
                    "dependencies": ["step-1"],
                },
            ],
        },
        {
            "id": "journey-refund",
            "name": "Refund Request",
            "description": "Support agent refunds an order",
            "userType": "Support Agent",
            "priority": "medium",
            "steps": [],
        },
    ]
)

EDGE_CASES_REPLY = (
    "Here is the analysis:\n```json\n"
    + json.dumps(
        [
            {
                "id": "edge-payment",
                "category": "missing_flow",
                "severity": "critical",
                "title": "What happens when the card is declined?",
                "description": "No retry or alternative payment path is defined.",
                "affectedJourneys": ["journey-checkout"],
                "recommendation": "Define a decline and retry flow.",
                "impact": "Lost orders",
                "questionsToResolve": ["How many retries are allowed?"],
            },
            {
                "id": "edge-refund",
                "category": "inconsistency",
                "severity": "moderate",
                "title": "Refund window conflicts",
                "description": "Section 2 says 14 days, section 5 says 30.",
                "affectedJourneys": ["journey-refund"],
                "recommendation": "Pick one refund window.",
                "impact": "Support escalations",
            },
        ]
    )
    + "\n```"
)

VALIDATION_REPLY = json.dumps(
    {"isPRD": True, "confidence": 88, "reasons": ["Contains user stories"]}
)

PRD_TEXT = """\
# Checkout Redesign PRD

## Overview
This product requirements document describes the checkout redesign for the
web store. The problem statement: too many shoppers abandon the cart.

## User Stories
As a shopper I want to check out as a guest so that I can buy quickly.
As a support agent I want to issue refunds so that customers stay happy.

## Functional Requirements
Guest checkout, saved cards, refund workflow and order confirmation email.

## Acceptance Criteria
Checkout completes in under three steps. Refunds are processed in 14 days.

## Success Metrics
Conversion rate and cart abandonment are the primary KPIs.
"""


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def stub_llm() -> StubLLMClient:
    return StubLLMClient()


@pytest.fixture
def prd_text() -> str:
    return PRD_TEXT


@pytest.fixture(autouse=True)
def _reset_jobs():
    AnalysisJobManager._status.clear()
    AnalysisJobManager._tasks.clear()
    yield
    AnalysisJobManager._status.clear()
    AnalysisJobManager._tasks.clear()


@pytest_asyncio.fixture
async def client(stub_llm: StubLLMClient) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the FastAPI app with the LLM client dependency
    overridden to return the per-test stub.
    """
    app.dependency_overrides[get_llm_client] = lambda: stub_llm

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

AUTH_HEADERS = {"X-User-Id": "test-user-1"}

AUTH_HEADERS_USER2 = {"X-User-Id": "test-user-2"}
