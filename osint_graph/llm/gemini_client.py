"""Gemini API client with exponential backoff."""

import asyncio
import functools
import random
from typing import Any, Callable, Optional

import google.generativeai as genai
from google.generativeai.types.generation_types import BlockedPromptException
from loguru import logger

from osint_graph.config.settings import settings


def _exponential_backoff(func: Callable) -> Callable:
    """
    Decorator implementing exponential backoff with jitter for async API calls.

    Retries failed requests up to 5 times with exponentially increasing delays.
    Base delay: 1.0s, exponential factor: 2, jitter: 0-10% of delay.
    Blocked prompts are not retried.
    """
    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> Any:
        max_retries = 5
        base_delay = 1.0

        for retry in range(max_retries):
            try:
                return await func(*args, **kwargs)
            except BlockedPromptException:
                raise
            except Exception as e:
                if retry == max_retries - 1:
                    logger.error(f"Max retries exceeded for {func.__name__}", error=str(e))
                    raise

                delay = base_delay * (2 ** retry)
                total_delay = delay + random.uniform(0, delay * 0.1)

                logger.warning(
                    f"Retry {retry + 1}/{max_retries} for {func.__name__}",
                    delay=round(total_delay, 2),
                    error=str(e),
                )
                await asyncio.sleep(total_delay)

        raise RuntimeError(f"Unexpected retry loop exit in {func.__name__}")

    return wrapper


class GeminiClient:
    """
    Google Gemini API client with retry and error handling.

    Attributes:
        model: Configured Gemini generative model instance
        model_name: Gemini model identifier
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        system_instruction: Optional[str] = None,
    ):
        """
        Initialize Gemini client.

        Args:
            api_key: API key, defaults to GEMINI_API_KEY from settings
            model_name: Model identifier, defaults to settings.gemini_model
            system_instruction: Optional system prompt bound to the model

        Raises:
            ValueError: If API key is not configured
        """
        api_key = api_key or settings.gemini_api_key
        if not api_key:
            raise ValueError("GEMINI_API_KEY not configured in environment")

        genai.configure(api_key=api_key)

        self.model_name = model_name or settings.gemini_model
        self.model = genai.GenerativeModel(
            self.model_name,
            system_instruction=system_instruction,
        )
        self.logger = logger.bind(component="GeminiClient")

        self.logger.info(f"Gemini client initialized with model {self.model_name}")

    @_exponential_backoff
    async def generate_content(
        self,
        prompt: str,
        temperature: float = 0.2,
        max_output_tokens: Optional[int] = None,
        response_mime_type: Optional[str] = None,
    ) -> str:
        """
        Generate content from Gemini API.

        Args:
            prompt: Input prompt for content generation
            temperature: Sampling temperature. Lower = more deterministic
            max_output_tokens: Optional response token ceiling
            response_mime_type: e.g. "application/json" for JSON mode

        Returns:
            Generated text content

        Raises:
            BlockedPromptException: If prompt violates safety policies
            Exception: For other API errors after retries exhausted
        """
        try:
            response = await self.model.generate_content_async(
                prompt,
                generation_config=genai.types.GenerationConfig(
                    temperature=temperature,
                    max_output_tokens=max_output_tokens,
                    response_mime_type=response_mime_type,
                ),
            )
            return response.text
        except BlockedPromptException as e:
            self.logger.error("Prompt blocked by safety filters", error=str(e))
            raise
