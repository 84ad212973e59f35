"""Application settings using Pydantic BaseSettings for environment variable management."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Global application settings loaded from environment variables.

    Attributes:
        extraction_backend: Transport used to reach the extraction service
        extraction_api_url: Gateway endpoint receiving extraction requests
        extraction_api_key: Optional bearer credential for the gateway
        extraction_model: Model name forwarded to the extraction service
        extraction_temperature: Sampling temperature forwarded with each request
        extraction_max_tokens: Response token ceiling forwarded with each request
        extraction_timeout: HTTP timeout in seconds for one extraction request
        max_text_length: Character ceiling applied by the text minifier
        gemini_api_key: Google Gemini API key (only for the gemini backend)
        gemini_model: Gemini model to use with the gemini backend
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log output format (json for production, console for dev)
    """

    extraction_backend: Literal["http", "gemini"] = Field(
        default="http",
        description="Extraction transport: http gateway or direct gemini"
    )
    extraction_api_url: str = Field(
        default="http://localhost:3000/api/deepseek",
        description="Extraction gateway endpoint"
    )
    extraction_api_key: str | None = Field(
        default=None,
        description="Bearer credential for the extraction gateway"
    )
    extraction_model: str = Field(
        default="deepseek-chat",
        description="Model identifier forwarded to the extraction service"
    )
    extraction_temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=2.0,
        description="Low value for more deterministic extraction"
    )
    extraction_max_tokens: int = Field(
        default=10_000,
        gt=0,
        description="Token limit for the extraction response"
    )
    extraction_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Request timeout in seconds"
    )
    max_text_length: int = Field(
        default=4000,
        gt=100,
        description="Maximum characters of input text sent per request"
    )
    gemini_api_key: str | None = Field(
        default=None,
        description="Google Gemini API key"
    )
    gemini_model: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model identifier"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )
    log_format: str = Field(
        default="json",
        description="Log output format: json or console"
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


# Singleton instance - import this throughout the application
settings = Settings()
