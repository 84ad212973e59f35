"""Analysis pipeline wiring the extraction client, adapters and queue.

Flow per task:
1. queue_*_analysis enqueues typed content and returns the task id
2. The queue worker dequeues tasks one at a time, in order
3. The matching adapter calls the extraction client with the current
   cumulative context
4. The queue merges the result and notifies subscribers

Usage:
    async with AnalysisPipeline() as pipeline:
        pipeline.queue_text_analysis("Alice met Bob in Paris.")
        await pipeline.wait_until_idle()
        graph = pipeline.queue.get_previous_results()
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union

from loguru import logger

from osint_graph.data_management.result_merger import merge_results
from osint_graph.data_management.schemas import (
    DocumentContent,
    ImageContent,
    TaskType,
)
from osint_graph.llm.extraction_client import EntityExtractionClient
from osint_graph.orchestration.task_queue import AnalysisQueueService, ResultMerger
from osint_graph.pipelines.analysis_adapters import (
    DocumentAnalysisAdapter,
    ImageAnalysisAdapter,
    TextAnalysisAdapter,
)


class AnalysisPipeline:
    """
    Owns one queue and the adapters feeding it.

    Attributes:
        client: Extraction client shared by all adapters
        text_adapter: Adapter for text tasks
        document_adapter: Adapter for document tasks
        image_adapter: Adapter for image tasks
        queue: Sequential analysis queue
    """

    def __init__(
        self,
        client: Optional[EntityExtractionClient] = None,
        merger: ResultMerger = merge_results,
    ):
        """
        Initialize the pipeline.

        Args:
            client: Extraction client. Auto-creates from settings if None.
            merger: Merge function used by the queue
        """
        self.client = client or EntityExtractionClient()
        self.text_adapter = TextAnalysisAdapter(self.client)
        self.document_adapter = DocumentAnalysisAdapter(self.client)
        self.image_adapter = ImageAnalysisAdapter(self.client)

        self.queue = AnalysisQueueService(
            handlers={
                TaskType.TEXT: self.text_adapter.process_text_analysis,
                TaskType.DOCUMENT: self.document_adapter.process_document_analysis,
                TaskType.IMAGE: self.image_adapter.process_image_analysis,
            },
            merger=merger,
        )
        self.logger = logger.bind(component="AnalysisPipeline")

    def queue_text_analysis(self, text: str) -> str:
        """Enqueue raw text; returns the task id."""
        return self.queue.add_task(self.text_adapter.build_content(text))

    def queue_document_analysis(self, document: Union[DocumentContent, str, Path]) -> str:
        """Enqueue a document (content object or path); returns the task id."""
        return self.queue.add_task(self.document_adapter.build_content(document))

    def queue_image_analysis(self, image: Union[ImageContent, str, Path]) -> str:
        """Enqueue an image (content object or path); returns the task id."""
        return self.queue.add_task(self.image_adapter.build_content(image))

    async def wait_until_idle(self) -> None:
        """Wait for every queued task to reach a terminal status."""
        await self.queue.wait_until_idle()

    def get_pipeline_status(self) -> Dict[str, Any]:
        """
        Get current pipeline status.

        Returns:
            Dictionary with queue statistics and client configuration
        """
        return {
            "model": self.client.model_name,
            "backend": self.client.backend.__class__.__name__,
            "processing": self.queue.is_processing,
            "queue": self.queue.get_statistics(),
        }

    async def aclose(self) -> None:
        """Wait for in-flight work, then release the backend."""
        await self.queue.wait_until_idle()
        await self.client.aclose()

    async def __aenter__(self) -> "AnalysisPipeline":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
