"""Tests for the PRD validator (LLM path and keyword fallback)."""
import pytest

from app.services.llm_client import ErrorKind, LLMServiceError
from app.services.prd_validator import PRDValidator
from tests.conftest import StubLLMClient


def _long_prd(words: int = 620) -> str:
    body = " ".join(["the checkout page lets people pay"] * (words // 6))
    return (
        "Product requirements for checkout. User stories follow. "
        "Acceptance criteria are listed. Success metrics are tracked. "
        + body
    )


def test_short_recipe_is_rejected():
    text = (
        "Grandma's apple pie recipe. Preheat the oven to 180 degrees. Mix the "
        "ingredients: two cups of flour, a tablespoon of sugar and four apples. "
        "Bake for forty minutes."
    )
    result = PRDValidator(mode="keywords").fallback_validate(text)

    assert result.is_prd is False
    assert result.confidence < 30
    assert result.method == "keywords"
    assert "Document seems too short for a comprehensive PRD" in result.reasons
    assert result.reasons[0].startswith("Low confidence")


def test_long_prd_is_accepted_with_high_confidence():
    result = PRDValidator(mode="keywords").fallback_validate(_long_prd())

    assert result.is_prd is True
    assert result.confidence > 70
    assert result.reasons[0].startswith("High confidence")
    assert any("PRD-related terms" in r for r in result.reasons)


def test_fallback_is_deterministic():
    validator = PRDValidator(mode="keywords")
    text = _long_prd(350)
    assert validator.fallback_validate(text) == validator.fallback_validate(text)


def test_confidence_stays_in_range():
    validator = PRDValidator(mode="keywords")
    for text in ("", "poem verse rhyme stanza plot novel", _long_prd(2000) * 3):
        result = validator.fallback_validate(text)
        assert 0 <= result.confidence <= 100


@pytest.mark.asyncio
async def test_llm_verdict_is_used():
    llm = StubLLMClient().queue(
        'Sure! {"isPRD": true, "confidence": 140, "reasons": ["Has user stories"]}'
    )
    result = await PRDValidator(llm, mode="llm").validate("Some PRD text")

    assert result.is_prd is True
    assert result.confidence == 100
    assert result.reasons == ["Has user stories"]
    assert result.method == "ai"


@pytest.mark.asyncio
async def test_llm_reply_without_reasons_gets_default():
    llm = StubLLMClient().queue('{"isPRD": "false", "confidence": "12", "reasons": "nope"}')
    result = await PRDValidator(llm, mode="llm").validate("Some text")

    assert result.is_prd is False
    assert result.confidence == 12
    assert result.reasons == ["AI analysis completed"]


@pytest.mark.asyncio
async def test_prompt_is_truncated_to_prefix():
    llm = StubLLMClient().queue('{"isPRD": true, "confidence": 80, "reasons": ["ok"]}')
    await PRDValidator(llm, mode="llm", prefix_chars=100).validate("x" * 500)

    assert "x" * 100 + "...[truncated]" in llm.prompts[0]
    assert "x" * 101 not in llm.prompts[0]


@pytest.mark.asyncio
async def test_provider_error_falls_back_to_keywords():
    llm = StubLLMClient().queue(LLMServiceError("429 Too Many Requests", ErrorKind.QUOTA_EXCEEDED))
    result = await PRDValidator(llm, mode="llm").validate(_long_prd())

    assert result.method == "keywords"
    assert result.is_prd is True


@pytest.mark.asyncio
async def test_unparsable_reply_falls_back_to_keywords():
    llm = StubLLMClient().queue("I think it is probably a PRD.")
    result = await PRDValidator(llm, mode="llm").validate("tiny")

    assert result.method == "keywords"
    assert result.is_prd is False


@pytest.mark.asyncio
async def test_keywords_mode_skips_llm():
    llm = StubLLMClient()
    result = await PRDValidator(llm, mode="keywords").validate(_long_prd())

    assert llm.prompts == []
    assert result.method == "keywords"


def test_requirements_vocabulary_over_600_words():
    filler = " ".join(["the team will ship the new dashboard soon"] * 70)
    text = (
        "Functional requirements and user stories. "
        + filler
        + " Acceptance criteria and KPIs close the document."
    )
    result = PRDValidator(mode="keywords").fallback_validate(text)

    assert result.is_prd is True
    assert result.confidence > 70


def test_forty_words_of_prose_is_too_short():
    text = " ".join(["the weather was mild and the river ran slowly past town"] * 4)
    result = PRDValidator(mode="keywords").fallback_validate(text)

    assert result.is_prd is False
    assert result.confidence <= 20
    assert "Document seems too short for a comprehensive PRD" in result.reasons
