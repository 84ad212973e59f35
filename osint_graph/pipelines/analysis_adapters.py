"""Per-type adapters turning a queued task into an extraction call.

Each adapter converts its raw input into text and hands it to the
extraction client together with the cumulative context the queue read at
dequeue time. Tasks therefore see results of every task that finished before
they started, not just those finished before they were enqueued.

Document and image adapters describe the upload by filename; text
extraction from files and OCR are not implemented.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Union

from loguru import logger

from osint_graph.data_management.schemas import (
    AnalysisTask,
    DocumentContent,
    ExtractionResult,
    ImageContent,
    TaskType,
    TextContent,
)
from osint_graph.llm.exceptions import UnsupportedTaskTypeError
from osint_graph.llm.extraction_client import EntityExtractionClient


class BaseAnalysisAdapter(ABC):
    """
    Shared pathway: input text -> extraction client -> task.result.

    Attributes:
        task_type: Task type this adapter accepts
        client: Extraction client used for every task
    """

    task_type: TaskType

    def __init__(self, client: EntityExtractionClient):
        self.client = client
        self.logger = logger.bind(component=self.__class__.__name__)

    def _check_type(self, task: AnalysisTask) -> None:
        if task.type != self.task_type:
            raise UnsupportedTaskTypeError(
                f"Unsupported task type: {task.type.value} "
                f"(expected {self.task_type.value})"
            )

    @abstractmethod
    def extract_text(self, task: AnalysisTask) -> str:
        """Text sent to the extraction service for this task."""
        pass

    async def process(
        self,
        task: AnalysisTask,
        previous_results: ExtractionResult,
    ) -> ExtractionResult:
        """
        Analyze one task against the given cumulative context.

        Writes only ``task.result``; lifecycle fields belong to the queue.

        Raises:
            UnsupportedTaskTypeError: If the task is of another type
        """
        self._check_type(task)
        text = self.extract_text(task)
        self.logger.debug(
            f"Analyzing task {task.id}",
            previous_entities=len(previous_results.entities),
        )
        result = await self.client.analyze_text(text, previous_results)
        task.result = result
        return result


class TextAnalysisAdapter(BaseAnalysisAdapter):
    """Direct text input."""

    task_type = TaskType.TEXT

    @staticmethod
    def build_content(text: str) -> TextContent:
        return TextContent(text=text)

    def extract_text(self, task: AnalysisTask) -> str:
        return task.content.text

    async def process_text_analysis(
        self,
        task: AnalysisTask,
        previous_results: ExtractionResult,
    ) -> ExtractionResult:
        return await self.process(task, previous_results)


class DocumentAnalysisAdapter(BaseAnalysisAdapter):
    """Uploaded documents, described by filename."""

    task_type = TaskType.DOCUMENT

    @staticmethod
    def build_content(document: Union[DocumentContent, str, Path]) -> DocumentContent:
        if isinstance(document, DocumentContent):
            return document
        return DocumentContent.from_path(document)

    def extract_text(self, task: AnalysisTask) -> str:
        return f"Analyzed document: {task.content.filename}"

    async def process_document_analysis(
        self,
        task: AnalysisTask,
        previous_results: ExtractionResult,
    ) -> ExtractionResult:
        return await self.process(task, previous_results)


class ImageAnalysisAdapter(BaseAnalysisAdapter):
    """Uploaded images, described by filename."""

    task_type = TaskType.IMAGE

    @staticmethod
    def build_content(image: Union[ImageContent, str, Path]) -> ImageContent:
        if isinstance(image, ImageContent):
            return image
        return ImageContent.from_path(image)

    def extract_text(self, task: AnalysisTask) -> str:
        return f"Analyzed image: {task.content.filename}"

    async def process_image_analysis(
        self,
        task: AnalysisTask,
        previous_results: ExtractionResult,
    ) -> ExtractionResult:
        return await self.process(task, previous_results)
