"""
User journey extraction — stage 1 of the analysis pipeline.

One LLM call per document.  The reply must contain a JSON array of journey
objects; everything in it is passed through the coercion pass in
``app.services.normalizer`` before it is trusted.  There is no retry: any
provider or parse error propagates to the orchestrator as ``LLMServiceError``.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from app.config import settings
from app.models.schemas import AnalysisContext, UserJourney
from app.services.llm_client import BaseLLMClient
from app.services.normalizer import to_journeys
from app.utils.helpers import format_context_lines

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Prompt template
# ---------------------------------------------------------------------------

_JOURNEY_PROMPT = """\
Extract the core user journeys and business flows from this PRD. Identify \
between {min_journeys} and {max_journeys} distinct journeys, covering end users \
first and then the operational flows product teams usually miss (admin, \
support, integrations, error recovery).

{context_block}

PRD Document:
{content}

For each journey provide:
- id: a short unique identifier (e.g. "journey-onboarding")
- name: a descriptive flow name
- description: what the flow achieves and why it matters
- userType: the specific role performing it (End User, Admin, Support Agent, System …)
- priority: "high", "medium" or "low"
- businessImpact: revenue, compliance or operational effect
- frequency: Real-time | Daily | Weekly | Monthly | On-demand | Triggered
- upstreamDependencies: what triggers this flow
- parallelProcesses: what happens at the same time
- steps: ordered steps, each with id, action, description, expectedOutcome, \
dependencies (ids of earlier steps), timingConstraints, dataRequirements, \
failureScenarios and monitoringPoints

Return ONLY a JSON array, no additional text:
[{{"id": "journey-1", "name": "...", "description": "...", "userType": "...", \
"priority": "high|medium|low", "businessImpact": "...", "frequency": "...", \
"upstreamDependencies": ["..."], "parallelProcesses": ["..."], \
"steps": [{{"id": "step-1", "action": "...", "description": "...", \
"expectedOutcome": "...", "dependencies": [], "timingConstraints": "...", \
"dataRequirements": "...", "failureScenarios": ["..."], "monitoringPoints": ["..."]}}]}}]\
"""


class JourneyExtractor:
    """Asks the LLM for a bounded set of user journeys."""

    JOURNEY_PROMPT = _JOURNEY_PROMPT

    def __init__(
        self,
        llm: BaseLLMClient,
        min_journeys: Optional[int] = None,
        max_journeys: Optional[int] = None,
    ) -> None:
        self._llm = llm
        low = settings.MIN_JOURNEYS if min_journeys is None else min_journeys
        high = settings.MAX_JOURNEYS if max_journeys is None else max_journeys
        self.min_journeys, self.max_journeys = sorted((max(1, low), max(1, high)))

    def build_prompt(self, content: str, context: AnalysisContext) -> str:
        return self.JOURNEY_PROMPT.format(
            min_journeys=self.min_journeys,
            max_journeys=self.max_journeys,
            context_block=format_context_lines(context.company, context.problem_statement),
            content=content,
        )

    async def extract(
        self,
        content: str,
        context: Optional[AnalysisContext] = None,
    ) -> List[UserJourney]:
        """
        Extract user journeys from *content*.

        Raises:
            LLMServiceError: provider failure or no JSON array in the reply.
        """
        context = context or AnalysisContext()
        raw = await self._llm.generate_json(self.build_prompt(content, context), expect=list)
        journeys = to_journeys(raw)

        logger.info(
            "extract: %d journeys (%d raw items, target %d-%d)",
            len(journeys),
            len(raw),
            self.min_journeys,
            self.max_journeys,
        )
        return journeys
