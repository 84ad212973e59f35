"""Transports carrying one extraction request to the extraction service.

Every backend turns an ExtractionRequest into the raw JSON content string
produced by the language model. Parsing and normalization live in
extraction_client so backends stay interchangeable (and mockable).

- HttpExtractionBackend: POSTs to a gateway that owns the model credential
- GeminiExtractionBackend: renders the prompt and calls Gemini directly
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx
from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from osint_graph.config.prompts import ENTITY_EXTRACTION_SYSTEM_PROMPT, build_extraction_prompt
from osint_graph.config.settings import Settings, settings as default_settings
from osint_graph.llm.exceptions import BackendError, MalformedResponseError


@dataclass
class ExtractionRequest:
    """One extraction call: minified text plus projected prior context."""

    text: str
    previous_results: Dict[str, Any] = field(default_factory=dict)
    model_name: str = "deepseek-chat"
    temperature: float = 0.2
    max_tokens: int = 10_000

    def has_previous_results(self) -> bool:
        return bool(
            self.previous_results.get("entities")
            or self.previous_results.get("relationships")
        )

    def to_payload(self) -> Dict[str, Any]:
        """Gateway wire format."""
        return {
            "text": self.text,
            "previousResults": self.previous_results,
            "modelName": self.model_name,
            "temperature": self.temperature,
            "maxTokens": self.max_tokens,
        }


class ExtractionBackend(ABC):
    """Outbound seam to the extraction service."""

    @abstractmethod
    async def complete(self, request: ExtractionRequest) -> str:
        """
        Send the request and return the model's raw JSON content.

        Raises:
            BackendError: On network failure, non-2xx status or empty content
        """
        pass

    async def aclose(self) -> None:
        """Release transport resources."""
        return None


class HttpExtractionBackend(ExtractionBackend):
    """
    Gateway transport over HTTP.

    The gateway answers ``{"result": "<json string>"}`` on success and
    ``{"error": "..."}`` with a non-2xx status on failure. Transport errors
    (connect/read failures) are retried with exponential backoff; HTTP error
    statuses are not.

    Attributes:
        url: Gateway endpoint
        timeout: Request timeout in seconds
        max_attempts: Attempts per request for transport errors
    """

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: int = 3,
        backoff_multiplier: float = 1.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url or default_settings.extraction_api_url
        self.api_key = api_key if api_key is not None else default_settings.extraction_api_key
        self.timeout = timeout or default_settings.extraction_timeout
        self.max_attempts = max_attempts
        self.backoff_multiplier = backoff_multiplier
        self._client = client
        self._owns_client = client is None
        self.logger = logger.bind(component="HttpExtractionBackend")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers=headers,
            )
        return self._client

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        client = await self._get_client()
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_multiplier, max=10),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    self.logger.warning(
                        "Retrying extraction request",
                        attempt=attempt.retry_state.attempt_number,
                    )
                return await client.post(self.url, json=payload)
        raise RuntimeError("Unexpected retry loop exit")

    async def complete(self, request: ExtractionRequest) -> str:
        try:
            response = await self._post(request.to_payload())
        except httpx.HTTPError as e:
            raise BackendError(f"Extraction request failed: {e}") from e

        if response.is_error:
            raise BackendError(
                f"Extraction backend returned HTTP {response.status_code}: "
                f"{self._error_detail(response)}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise MalformedResponseError("Extraction backend returned a non-JSON body") from e

        if not isinstance(body, dict):
            raise MalformedResponseError("Extraction backend returned an unexpected body")
        if body.get("error"):
            raise BackendError(str(body["error"]))

        content = body.get("result")
        if not content:
            raise BackendError("No response received from extraction backend")
        if isinstance(content, (dict, list)):
            return json.dumps(content)
        return str(content)

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200] or response.reason_phrase
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return response.reason_phrase

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            self.logger.debug("HTTP client closed")


class GeminiExtractionBackend(ExtractionBackend):
    """Direct model transport: renders the prompt and calls Gemini in JSON mode."""

    def __init__(self, client: Optional[Any] = None, model_name: Optional[str] = None):
        """
        Args:
            client: Pre-configured GeminiClient; created lazily when None
            model_name: Gemini model, defaults to settings.gemini_model
        """
        self._client = client
        self.model_name = model_name
        self.logger = logger.bind(component="GeminiExtractionBackend")

    @property
    def client(self):
        """Lazy-load Gemini client on first access."""
        if self._client is None:
            from osint_graph.llm.gemini_client import GeminiClient

            self._client = GeminiClient(
                model_name=self.model_name,
                system_instruction=ENTITY_EXTRACTION_SYSTEM_PROMPT,
            )
        return self._client

    async def complete(self, request: ExtractionRequest) -> str:
        previous_context = (
            json.dumps(request.previous_results, ensure_ascii=False)
            if request.has_previous_results()
            else None
        )
        prompt = build_extraction_prompt(request.text, previous_context)

        try:
            content = await self.client.generate_content(
                prompt,
                temperature=request.temperature,
                max_output_tokens=request.max_tokens,
                response_mime_type="application/json",
            )
        except Exception as e:
            raise BackendError(f"Gemini request failed: {e}") from e

        if not content:
            raise BackendError("No response received from Gemini")
        return content


def create_backend(config: Optional[Settings] = None) -> ExtractionBackend:
    """Build the backend selected by ``extraction_backend``."""
    config = config or default_settings
    if config.extraction_backend == "gemini":
        return GeminiExtractionBackend(model_name=config.gemini_model)
    return HttpExtractionBackend(
        url=config.extraction_api_url,
        api_key=config.extraction_api_key,
        timeout=config.extraction_timeout,
    )
