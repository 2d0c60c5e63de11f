"""
Service dependencies for FastAPI routes.

Every request gets its own LLM client; tests replace ``get_llm_client`` via
``app.dependency_overrides`` and everything downstream picks up the stub.
"""
from __future__ import annotations

from fastapi import Depends

from app.services import llm_client
from app.services.document_parser import DocumentIngestor
from app.services.llm_client import BaseLLMClient
from app.services.pipeline import AnalysisPipeline
from app.services.prd_validator import PRDValidator


def get_llm_client() -> BaseLLMClient:
    return llm_client.get_llm_client()


def get_validator(llm: BaseLLMClient = Depends(get_llm_client)) -> PRDValidator:
    return PRDValidator(llm)


def get_pipeline(llm: BaseLLMClient = Depends(get_llm_client)) -> AnalysisPipeline:
    return AnalysisPipeline(llm)


def get_ingestor() -> DocumentIngestor:
    return DocumentIngestor()
