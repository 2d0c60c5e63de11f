"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends
from datetime import datetime, timezone
import logging

from app.config import settings
from app.dependencies.llm import get_llm_client
from app.models.schemas import HealthCheckResponse
from app.services.llm_client import BaseLLMClient

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=HealthCheckResponse)
async def health_check(llm: BaseLLMClient = Depends(get_llm_client)):
    """
    Health check endpoint to verify system status.

    No request is sent to the provider; ``llm`` is "configured" when the
    client has what it needs to make calls (an API key for Gemini).
    Without it every analysis returns demo data, so status is "degraded".

    Returns:
        HealthCheckResponse with provider name and configuration state
    """
    llm_status = "configured" if llm.is_configured() else "missing_api_key"
    if llm_status != "configured":
        logger.warning("Health check: %s client is not configured", settings.LLM_PROVIDER)

    return HealthCheckResponse(
        status="healthy" if llm_status == "configured" else "degraded",
        llm_provider=llm.provider_name,
        llm=llm_status,
        timestamp=datetime.now(timezone.utc),
    )
