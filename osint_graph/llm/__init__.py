"""Extraction backend boundary: transports, prompt-side minification and response parsing."""

from osint_graph.llm.exceptions import (
    OsintGraphError,
    InputValidationError,
    UnsupportedTaskTypeError,
    BackendError,
    MalformedResponseError,
)
from osint_graph.llm.extraction_backend import (
    ExtractionBackend,
    ExtractionRequest,
    HttpExtractionBackend,
    GeminiExtractionBackend,
    create_backend,
)
from osint_graph.llm.extraction_client import (
    EntityExtractionClient,
    ParsedExtraction,
    parse_extraction_response,
    project_previous_results,
)

__all__ = [
    "OsintGraphError",
    "InputValidationError",
    "UnsupportedTaskTypeError",
    "BackendError",
    "MalformedResponseError",
    "ExtractionBackend",
    "ExtractionRequest",
    "HttpExtractionBackend",
    "GeminiExtractionBackend",
    "create_backend",
    "EntityExtractionClient",
    "ParsedExtraction",
    "parse_extraction_response",
    "project_previous_results",
]
