"""
Readiness scoring — stage 3 of the analysis pipeline.

Two strategies, selected with SCORING_MODE:

``llm`` (default)
    The model receives the counts and the rubric and replies with a number.
    The first integer in the reply is clamped to [0, 100]; a reply without an
    integer yields DEFAULT_COVERAGE_SCORE.  Provider errors propagate.

``formula``
    The rubric applied locally, no network call:

        score = 100
              − 8 per critical issue
              − 3 per moderate issue
              − 1 per minor issue
              − 12 if fewer than MIN_JOURNEYS journeys were identified
              + 1 per journey beyond MAX_JOURNEYS (at most +5)

    clamped to [0, 100]; a document with no journeys scores 0.
"""
from __future__ import annotations

import logging
import re
from typing import List, Optional

from app.config import settings
from app.models.schemas import AnalysisContext, EdgeCase, Severity, UserJourney
from app.services.llm_client import BaseLLMClient
from app.utils.helpers import clamp_int, format_context_lines

logger = logging.getLogger(__name__)


_SCORE_PROMPT = """\
Provide a business readiness score for this PRD analysis.

{context_block}

Analysis Summary:
- Total User Journeys Identified: {journey_count}
- Total Issues Found: {issue_count}
- Critical Issues: {critical_count}
- Moderate Issues: {moderate_count}
- Minor Issues: {minor_count}

Evaluate readiness on:
1. Business logic completeness (40%): are core flows well defined?
2. Operational readiness (30%): monitoring, error handling, recovery
3. Cross-functional dependencies (20%): integrations, data flows, timing
4. Risk mitigation (10%): disruptions, rollback, failure scenarios

Scoring criteria:
- 90-100: production-ready, comprehensive business logic
- 80-89: strong foundation with minor gaps
- 70-79: good foundation but needs clarification
- 60-69: adequate but significant gaps
- below 60: requires major revision

Deduct 10-15 points if fewer than {min_journeys} distinct journeys were identified.
Deduct 5-10 points for each critical issue.

Return only a number between 0 and 100.\
"""

_FIRST_INTEGER = re.compile(r"-?\d+")


class ReadinessScorer:
    """Reduces journeys and issues to a single 0-100 readiness score."""

    SCORE_PROMPT = _SCORE_PROMPT

    BASE_SCORE: int = 100
    SEVERITY_DEDUCTIONS = {
        Severity.CRITICAL: 8,
        Severity.MODERATE: 3,
        Severity.MINOR: 1,
    }
    FEW_JOURNEYS_DEDUCTION: int = 12
    MAX_JOURNEY_BONUS: int = 5

    def __init__(
        self,
        llm: Optional[BaseLLMClient] = None,
        mode: Optional[str] = None,
        default_score: Optional[int] = None,
        min_journeys: Optional[int] = None,
        max_journeys: Optional[int] = None,
    ) -> None:
        self._llm = llm
        self.mode = (mode or settings.SCORING_MODE).lower()
        # The journey rules track the extraction target
        self.few_journeys_threshold = (
            settings.MIN_JOURNEYS if min_journeys is None else min_journeys
        )
        self.journey_bonus_start = max(
            self.few_journeys_threshold,
            settings.MAX_JOURNEYS if max_journeys is None else max_journeys,
        )
        self.default_score = clamp_int(
            settings.DEFAULT_COVERAGE_SCORE if default_score is None else default_score
        )

    async def score(
        self,
        content: str,
        journeys: List[UserJourney],
        edge_cases: List[EdgeCase],
        context: Optional[AnalysisContext] = None,
    ) -> int:
        """
        Return a readiness score in [0, 100].

        Raises:
            LLMServiceError: provider failure in ``llm`` mode.
        """
        if self.mode == "formula" or self._llm is None:
            value = self.compute_formula_score(journeys, edge_cases)
            logger.info("score: %d (formula)", value)
            return value

        context = context or AnalysisContext()
        reply = await self._llm.generate(self.build_prompt(journeys, edge_cases, context))
        value = self.parse_score(reply)
        logger.info("score: %d (llm)", value)
        return value

    def build_prompt(
        self,
        journeys: List[UserJourney],
        edge_cases: List[EdgeCase],
        context: AnalysisContext,
    ) -> str:
        return self.SCORE_PROMPT.format(
            context_block=format_context_lines(context.company, context.problem_statement),
            journey_count=len(journeys),
            issue_count=len(edge_cases),
            critical_count=_count(edge_cases, Severity.CRITICAL),
            moderate_count=_count(edge_cases, Severity.MODERATE),
            minor_count=_count(edge_cases, Severity.MINOR),
            min_journeys=self.few_journeys_threshold,
        )

    def parse_score(self, reply: str) -> int:
        """First integer in *reply*, clamped; the default when there is none."""
        match = _FIRST_INTEGER.search(reply or "")
        if match is None:
            logger.warning(
                "parse_score: no integer in reply, using default %d. Preview: %s",
                self.default_score,
                (reply or "")[:200],
            )
            return self.default_score
        return clamp_int(match.group(0), 0, 100, default=self.default_score)

    def compute_formula_score(
        self, journeys: List[UserJourney], edge_cases: List[EdgeCase]
    ) -> int:
        """Deterministic rubric score."""
        if not journeys:
            return 0

        score = self.BASE_SCORE
        for edge_case in edge_cases:
            score -= self.SEVERITY_DEDUCTIONS.get(edge_case.severity, 0)

        if len(journeys) < self.few_journeys_threshold:
            score -= self.FEW_JOURNEYS_DEDUCTION
        score += min(
            self.MAX_JOURNEY_BONUS, max(0, len(journeys) - self.journey_bonus_start)
        )
        return clamp_int(score, 0, 100)


def _count(edge_cases: List[EdgeCase], severity: Severity) -> int:
    return sum(1 for e in edge_cases if e.severity == severity)
