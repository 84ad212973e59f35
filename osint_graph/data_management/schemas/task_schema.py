"""Analysis task schema: one unit of queued extraction work.

Task content is a tagged union discriminated by ``kind``. The task type is
read from the content variant, so a task can never claim to be an image
while carrying raw text.
"""

import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, computed_field

from osint_graph.data_management.schemas.entity_schema import ExtractionResult


class TaskType(str, Enum):
    """Kind of raw input a task carries."""

    TEXT = "text"
    DOCUMENT = "document"
    IMAGE = "image"


class TaskStatus(str, Enum):
    """Task lifecycle.

    pending -> processing -> completed | failed, or pending -> cancelled.
    Terminal states never transition again.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in (TaskStatus.PENDING, TaskStatus.PROCESSING)

    @property
    def is_terminal(self) -> bool:
        return not self.is_active


class TextContent(BaseModel):
    """Raw text submitted directly."""

    kind: Literal["text"] = "text"
    text: str


class _FileContent(BaseModel):
    filename: str = Field(..., min_length=1)
    data: Optional[bytes] = None
    media_type: Optional[str] = None

    @classmethod
    def from_path(cls, path: Union[str, Path], media_type: Optional[str] = None):
        """Build content from a file on disk."""
        path = Path(path)
        return cls(filename=path.name, data=path.read_bytes(), media_type=media_type)


class DocumentContent(_FileContent):
    """Uploaded document (PDF, DOCX, ...)."""

    kind: Literal["document"] = "document"


class ImageContent(_FileContent):
    """Uploaded image."""

    kind: Literal["image"] = "image"


TaskContent = Annotated[
    Union[TextContent, DocumentContent, ImageContent],
    Field(discriminator="kind"),
]


def generate_task_id() -> str:
    """Process-unique id from the current time plus random suffix."""
    return f"task-{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}"


class AnalysisTask(BaseModel):
    """
    Unit of work owned by the analysis queue.

    Fields:
        id: Unique task identifier, stable for the task's life
        content: Raw input payload (immutable after creation)
        timestamp: Creation time (UTC)
        status: Lifecycle status, mutated only by the queue service
        result: Set on successful completion
        error: Human-readable cause, set on failure
        started_at: When processing began
        finished_at: When the task reached a terminal status
    """

    id: str = Field(default_factory=generate_task_id)
    content: TaskContent
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: TaskStatus = TaskStatus.PENDING
    result: Optional[ExtractionResult] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @computed_field
    @property
    def type(self) -> TaskType:
        return TaskType(self.content.kind)

    def describe(self, limit: int = 50) -> str:
        """Short label for logs and tables."""
        if isinstance(self.content, TextContent):
            text = " ".join(self.content.text.split())
            return text if len(text) <= limit else text[: limit - 3] + "..."
        return self.content.filename
