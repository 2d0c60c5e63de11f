"""
Edge case analysis — stage 2 of the analysis pipeline.

The prompt carries the document, the extracted journeys (so the model can
reference journey ids) and the optional context.  The reply must contain a
JSON array of issues, which is coerced exactly like the journeys are.

Issues are returned as emitted: no deduplication, no ordering, and
``affectedJourneys`` entries that name unknown journeys are kept as-is.
"""
from __future__ import annotations

import json
import logging
from collections import Counter
from typing import List, Optional

from app.models.schemas import AnalysisContext, EdgeCase, UserJourney
from app.services.llm_client import BaseLLMClient
from app.services.normalizer import to_edge_cases
from app.utils.helpers import format_context_lines

logger = logging.getLogger(__name__)


_EDGE_CASE_PROMPT = """\
Conduct a business logic gap analysis of this PRD and the user journeys \
extracted from it. Find the missing flows, inconsistencies, UX gaps and \
logical contradictions that could hurt revenue, compliance or operations.

{context_block}

PRD Document:
{content}

Extracted User Journeys:
{journeys_json}

Look for:
- Revenue gaps: payment failures, retries, refunds, subscription lifecycle
- Operational gaps: cross-flow failure cascades, approval deadlocks, missing admin tooling
- Compliance gaps: data retention, deletion requests, audit trails
- UX gaps: error messaging, empty and loading states, concurrent sessions
- Contradictions between different parts of the document

For each issue provide:
- id: a short unique identifier
- category: exactly one of "missing_flow", "inconsistency", "ux_gap", "logical_contradiction"
- severity: "critical" (revenue, compliance or operational failure), \
"moderate" (degraded experience or inefficiency) or "minor" (rare or cosmetic)
- title: a question-focused title ("What happens when …?")
- description: the concrete scenario and why it matters
- affectedJourneys: ids of the journeys above that are affected
- recommendation: how the PRD should address it
- impact: the measurable business impact
- exampleScenario, operationalFrequency, detectionMethod
- questionsToResolve: specific questions the PRD must answer

Return ONLY a JSON array, no additional text:
[{{"id": "edge-1", "category": "missing_flow", "severity": "critical", \
"title": "...", "description": "...", "affectedJourneys": ["journey-1"], \
"recommendation": "...", "impact": "...", "exampleScenario": "...", \
"operationalFrequency": "Daily|Weekly|Monthly|Rare", "detectionMethod": "...", \
"questionsToResolve": ["..."]}}]\
"""


class EdgeCaseAnalyzer:
    """Derives gaps and issues from a document and its journeys."""

    EDGE_CASE_PROMPT = _EDGE_CASE_PROMPT

    def __init__(self, llm: BaseLLMClient) -> None:
        self._llm = llm

    def build_prompt(
        self, content: str, journeys: List[UserJourney], context: AnalysisContext
    ) -> str:
        journeys_json = json.dumps(
            [j.model_dump(by_alias=True, mode="json", exclude_none=True) for j in journeys],
            indent=2,
        )
        return self.EDGE_CASE_PROMPT.format(
            context_block=format_context_lines(context.company, context.problem_statement),
            content=content,
            journeys_json=journeys_json,
        )

    async def analyze(
        self,
        content: str,
        journeys: List[UserJourney],
        context: Optional[AnalysisContext] = None,
    ) -> List[EdgeCase]:
        """
        Return the issues the model finds for *content* and *journeys*.

        Raises:
            LLMServiceError: provider failure or no JSON array in the reply.
        """
        context = context or AnalysisContext()
        raw = await self._llm.generate_json(
            self.build_prompt(content, journeys, context), expect=list
        )
        edge_cases = to_edge_cases(raw)

        severities = Counter(e.severity.value for e in edge_cases)
        logger.info(
            "analyze: %d edge cases (critical=%d moderate=%d minor=%d)",
            len(edge_cases),
            severities["critical"],
            severities["moderate"],
            severities["minor"],
        )
        return edge_cases
