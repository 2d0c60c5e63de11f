"""
PRD validation — decides whether submitted text plausibly is a Product
Requirements Document before any analysis credits are spent on it.

Primary path asks the LLM to classify the first few thousand characters.
Whenever that fails for any reason (no key, quota, unparsable reply …) the
deterministic keyword heuristic below answers instead, so ``validate`` never
raises.

Keyword heuristic
-----------------
    score  = 2 × (PRD phrases found)
           + 1 × (structure phrases found)
           − 3 × (anti-pattern phrases found)
           − 10 if fewer than 100 words
           + 5  if more than 300 words   (+10 if more than 500)

    confidence = clamp(score / PRD_SCORE_CEILING × 100, 0, 100)
    isPRD      = confidence > PRD_CONFIDENCE_THRESHOLD

Phrases are matched on word boundaries against lower-cased, punctuation-free
text; each phrase counts once however often it appears.
"""
from __future__ import annotations

import logging
from typing import Any, List, Optional, Tuple

from app.config import settings
from app.models.schemas import ValidationResult
from app.services.llm_client import BaseLLMClient, classify_error
from app.utils.helpers import clamp_int, contains_phrase, normalize_for_matching

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Keyword tables
# ---------------------------------------------------------------------------

PRD_KEYWORDS: Tuple[str, ...] = (
    # Core PRD terms
    "product requirements", "product requirement", "prd", "requirements document",
    "functional requirements", "non functional requirements", "user stories",
    "user story", "acceptance criteria", "success metrics", "kpis", "kpi",
    # User-focused terms
    "user journey", "user journeys", "user flow", "persona", "personas",
    "target audience", "use case", "use cases", "end user",
    # Product terms
    "mvp", "minimum viable product", "roadmap", "milestone", "wireframe",
    "mockup", "prototype", "feature requirements",
    # Business terms
    "business requirements", "business rules", "business logic",
    "value proposition", "problem statement", "go to market",
)

STRUCTURE_KEYWORDS: Tuple[str, ...] = (
    "overview", "introduction", "scope", "out of scope", "assumptions",
    "constraints", "dependencies", "risks", "timeline", "deliverables",
    "appendix", "glossary", "revision", "stakeholders", "objectives",
    "requirements", "feature", "features", "workflow", "integration",
)

ANTI_PATTERNS: Tuple[str, ...] = (
    "recipe", "cooking", "ingredients", "oven", "tablespoon",
    "novel", "chapter", "protagonist", "plot",
    "poem", "verse", "rhyme", "stanza",
    "invoice", "receipt", "amount due", "bank statement",
    "diagnosis", "prescription", "dosage",
    "contract", "whereas", "hereinafter", "plaintiff",
)

SHORT_DOCUMENT_WORDS = 100
MEDIUM_DOCUMENT_WORDS = 300
LONG_DOCUMENT_WORDS = 500


# ---------------------------------------------------------------------------
# Prompt template
# ---------------------------------------------------------------------------

_VALIDATION_PROMPT = """\
Analyze this document to determine if it's a Product Requirements Document (PRD) \
or a closely related product specification.

Document Content:
{content}

STRONG PRD INDICATORS (confidence 70-95):
- Product requirements, specifications or feature definitions
- User stories, acceptance criteria or functional requirements
- User journeys, workflows or product features
- Business objectives, success metrics or KPIs

WEAK PRD INDICATORS (confidence 40-69):
- Business or technical documents with some product-related content
- Project plans that mention user needs

STRONG ANTI-PATTERNS (confidence 0-30):
- Recipes, personal stories, fiction or poetry
- Invoices, receipts, bank statements
- Contracts, agreements, terms of service
- Academic papers, news articles

Return ONLY this JSON object:
{{"isPRD": true, "confidence": 0, "reasons": ["Specific evidence-based reason", "..."]}}\
"""

_TRUNCATION_MARKER = "...[truncated]"


class PRDValidator:
    """
    Classifies text as PRD / not-PRD with a 0-100 confidence.

    Pass ``llm=None`` (or set VALIDATOR_MODE=keywords) to use the keyword
    heuristic only.
    """

    VALIDATION_PROMPT = _VALIDATION_PROMPT

    def __init__(
        self,
        llm: Optional[BaseLLMClient] = None,
        mode: Optional[str] = None,
        threshold: Optional[int] = None,
        score_ceiling: Optional[int] = None,
        prefix_chars: Optional[int] = None,
    ) -> None:
        self._llm = llm
        self.mode = (mode or settings.VALIDATOR_MODE).lower()
        self.threshold = settings.PRD_CONFIDENCE_THRESHOLD if threshold is None else threshold
        self.score_ceiling = max(1, score_ceiling or settings.PRD_SCORE_CEILING)
        self.prefix_chars = prefix_chars or settings.VALIDATION_PREFIX_CHARS

    async def validate(self, content: str) -> ValidationResult:
        """Return a verdict for *content*.  Never raises."""
        if self._llm is None or self.mode == "keywords":
            return self.fallback_validate(content)

        try:
            return await self._validate_with_llm(content)
        except Exception as exc:
            logger.warning(
                "PRD validation via AI failed (%s: %s), falling back to keywords",
                classify_error(exc).value,
                exc,
            )
            return self.fallback_validate(content)

    async def _validate_with_llm(self, content: str) -> ValidationResult:
        excerpt = content[: self.prefix_chars]
        if len(content) > self.prefix_chars:
            excerpt += _TRUNCATION_MARKER

        parsed = await self._llm.generate_json(
            self.VALIDATION_PROMPT.format(content=excerpt), expect=dict
        )

        reasons = parsed.get("reasons")
        reasons = (
            [str(r).strip() for r in reasons if str(r).strip()]
            if isinstance(reasons, list)
            else []
        )
        if not reasons:
            reasons = ["AI analysis completed"]

        result = ValidationResult(
            is_prd=_as_bool(parsed.get("isPRD", parsed.get("is_prd"))),
            confidence=clamp_int(parsed.get("confidence"), 0, 100, default=0),
            reasons=reasons,
            method="ai",
        )
        logger.info(
            "PRD validation (ai): isPRD=%s confidence=%d", result.is_prd, result.confidence
        )
        return result

    def fallback_validate(self, content: str) -> ValidationResult:
        """Deterministic keyword scoring; no network, no randomness."""
        normalized = normalize_for_matching(content)
        word_count = len(normalized.split()) if normalized else 0

        score = 0
        reasons: List[str] = []

        prd_matches = [k for k in PRD_KEYWORDS if contains_phrase(normalized, k)]
        score += len(prd_matches) * 2
        if prd_matches:
            reasons.append(
                f"Found {len(prd_matches)} PRD-related terms: "
                f"{', '.join(prd_matches[:3])}{'...' if len(prd_matches) > 3 else ''}"
            )

        structure_matches = [k for k in STRUCTURE_KEYWORDS if contains_phrase(normalized, k)]
        score += len(structure_matches)
        if structure_matches:
            reasons.append(
                f"Document structure indicators found: {', '.join(structure_matches[:3])}"
            )

        anti_matches = [k for k in ANTI_PATTERNS if contains_phrase(normalized, k)]
        score -= len(anti_matches) * 3
        if anti_matches:
            reasons.append(f"Non-PRD content detected: {', '.join(anti_matches[:2])}")

        if word_count < SHORT_DOCUMENT_WORDS:
            score -= 10
            reasons.append("Document seems too short for a comprehensive PRD")
        elif word_count > LONG_DOCUMENT_WORDS:
            score += 10
            reasons.append("Document length suggests comprehensive content")
        elif word_count > MEDIUM_DOCUMENT_WORDS:
            score += 5
            reasons.append("Document length suggests reasonably detailed content")

        confidence = clamp_int(score / self.score_ceiling * 100, 0, 100)
        is_prd = confidence > self.threshold

        if confidence > 70:
            reasons.insert(0, "High confidence: This appears to be a well-structured PRD")
        elif confidence > self.threshold:
            reasons.insert(0, "Moderate confidence: This may be a PRD or related product document")
        else:
            reasons.insert(0, "Low confidence: This does not appear to be a typical PRD document")

        return ValidationResult(
            is_prd=is_prd,
            confidence=confidence,
            reasons=reasons,
            method="keywords",
        )


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return False
