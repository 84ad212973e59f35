"""Pipeline modules wiring the extraction client, type adapters and queue.

Pipelines handle:
- Component initialization and wiring
- Typed enqueueing of text, documents and images
- Status reporting
"""

from osint_graph.pipelines.analysis_adapters import (
    BaseAnalysisAdapter,
    TextAnalysisAdapter,
    DocumentAnalysisAdapter,
    ImageAnalysisAdapter,
)
from osint_graph.pipelines.analysis_pipeline import AnalysisPipeline

__all__ = [
    "AnalysisPipeline",
    "BaseAnalysisAdapter",
    "TextAnalysisAdapter",
    "DocumentAnalysisAdapter",
    "ImageAnalysisAdapter",
]
