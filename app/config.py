"""
Configuration settings for the FlowMender backend.
Loads environment variables and provides application-wide settings.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # LLM Provider Configuration
    LLM_PROVIDER: str = "gemini"  # "gemini" or "ollama"
    LLM_TIMEOUT: int = 60  # seconds per LLM request
    LLM_TEMPERATURE: float = 0.3  # low temperature for focused analysis
    LLM_TOP_P: float = 0.8
    LLM_TOP_K: int = 40
    LLM_MAX_OUTPUT_TOKENS: int = 8192

    # Gemini Configuration
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.0-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"

    # Ollama Configuration (local development)
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_LLM_MODEL: str = "qwen2.5:3b"

    # PRD Validation Configuration
    VALIDATOR_MODE: str = "llm"  # "llm" (keyword fallback on error) or "keywords"
    VALIDATION_PREFIX_CHARS: int = 4000
    PRD_CONFIDENCE_THRESHOLD: int = 30
    # Keyword score at which the fallback validator reports 100 % confidence
    PRD_SCORE_CEILING: int = 20
    # Upload gate: reject when the document is not a PRD AND confidence is below this
    PRD_GATE_MIN_CONFIDENCE: int = 50

    # Analysis Configuration
    MIN_JOURNEYS: int = 3
    MAX_JOURNEYS: int = 5
    SCORING_MODE: str = "llm"  # "llm" or "formula"
    DEFAULT_COVERAGE_SCORE: int = 75  # used when the model's score can't be parsed
    STAGE_DELAY_SECONDS: float = 0.0  # UI pacing between stages; 0 disables
    MIN_DOCUMENT_CHARS: int = 50

    # Upload Configuration
    MAX_FILE_SIZE: int = 10 * 1024 * 1024  # 10 MB
    SUPPORTED_FILE_TYPES: List[str] = [".pdf", ".docx", ".txt", ".md"]

    # OCR Configuration
    TESSERACT_CMD: str = "/usr/bin/tesseract"

    # Server Configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    def get_allowed_origins(self) -> List[str]:
        """Parse ALLOWED_ORIGINS string into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]


# Global settings instance
settings = Settings()
