"""Orchestration: the sequential analysis queue."""

from osint_graph.orchestration.task_queue import (
    AnalysisQueueService,
    TaskHandler,
    TaskCompletionCallback,
    QueueChangedCallback,
)

__all__ = [
    "AnalysisQueueService",
    "TaskHandler",
    "TaskCompletionCallback",
    "QueueChangedCallback",
]
