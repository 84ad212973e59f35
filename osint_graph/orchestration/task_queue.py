"""Sequential analysis queue with cumulative context.

Tasks are processed one at a time, in insertion order, by a single asyncio
worker. After each success the task's result is merged into the cumulative
context, which the next task receives as prior knowledge. Because only one
task is ever in flight, task N's merge is visible before task N+1 starts.

All queue mutations happen between awaits, so the in-memory store needs no
lock under asyncio's cooperative scheduling. Running handlers on threads
would require explicit locking around the store and the worker slot.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from loguru import logger

from osint_graph.data_management.result_merger import MergeStats, merge_results
from osint_graph.data_management.schemas import (
    AnalysisTask,
    ExtractionResult,
    TaskContent,
    TaskStatus,
    TaskType,
)

TaskHandler = Callable[[AnalysisTask, ExtractionResult], Awaitable[ExtractionResult]]
TaskCompletionCallback = Callable[[AnalysisTask], None]
QueueChangedCallback = Callable[[], None]
ResultMerger = Callable[[ExtractionResult, ExtractionResult, MergeStats], ExtractionResult]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnalysisQueueService:
    """
    Single-flight queue of analysis tasks with a cumulative result context.

    Features:
    - One ordered store keyed by task id; active and history views derived
    - FIFO processing by insertion order, at most one task processing
    - Per-task failure isolation (a failed task never stops the queue)
    - Completion and queue-changed subscriptions with unsubscribe handles
    - Cancellation of pending tasks

    The service is constructed explicitly and lives as long as its owner;
    state is never persisted.

    Usage:
        queue = AnalysisQueueService(handlers={
            TaskType.TEXT: process_text,
            TaskType.DOCUMENT: process_document,
            TaskType.IMAGE: process_image,
        })
        task_id = queue.add_task(TextContent(text="Alice met Bob."))
        await queue.wait_until_idle()
        graph = queue.get_previous_results()
    """

    def __init__(
        self,
        handlers: Mapping[TaskType, TaskHandler],
        merger: ResultMerger = merge_results,
    ):
        """
        Initialize the queue.

        Args:
            handlers: Coroutine per task type, called as
                ``handler(task, previous_results)``. Every TaskType needs one.
            merger: Function folding a task result into the cumulative context,
                called as ``merger(previous, incoming, stats)``

        Raises:
            ValueError: If a task type has no handler
        """
        missing = [task_type.value for task_type in TaskType if task_type not in handlers]
        if missing:
            raise ValueError(f"No handler registered for task types: {', '.join(missing)}")

        self._handlers: Dict[TaskType, TaskHandler] = dict(handlers)
        self._merger = merger
        self._tasks: Dict[str, AnalysisTask] = {}  # insertion order is queue order
        self._current_task_id: Optional[str] = None
        self._worker: Optional[asyncio.Task] = None
        self._completed_callbacks: List[TaskCompletionCallback] = []
        self._changed_callbacks: List[QueueChangedCallback] = []
        self._previous_results = ExtractionResult()
        self.logger = logger.bind(component="AnalysisQueueService")

        self.logger.info("AnalysisQueueService initialized")

    @property
    def is_processing(self) -> bool:
        """True while a task is in the processing state."""
        return self._current_task_id is not None

    def add_task(self, content: TaskContent) -> str:
        """
        Enqueue a task and start the worker if it is idle.

        Returns immediately; the task is processed in the background.

        Args:
            content: Typed task payload (text, document or image)

        Returns:
            Task ID

        Raises:
            RuntimeError: If called outside a running event loop
        """
        # Fail before storing anything if there is nothing to run the worker
        asyncio.get_running_loop()

        task = AnalysisTask(content=content)
        while task.id in self._tasks:
            task = AnalysisTask(content=content)
        self._tasks[task.id] = task

        self.logger.info(
            f"Task added: {task.id}",
            task_type=task.type.value,
            queued=self._count(TaskStatus.PENDING),
        )

        self._notify_queue_changed()
        self._ensure_worker()
        return task.id

    def get_task(self, task_id: str) -> Optional[AnalysisTask]:
        """Return a copy of a task, or None if unknown."""
        task = self._tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    def get_tasks(self) -> List[AnalysisTask]:
        """
        Return every task for display.

        Active tasks (pending/processing) come first in queue order, then all
        resolved tasks newest first. Each id appears exactly once.

        Returns:
            List of task copies
        """
        active = [task for task in self._tasks.values() if task.status.is_active]
        history = [
            task for task in reversed(self._tasks.values())
            if not task.status.is_active
        ]
        return [task.model_copy(deep=True) for task in active + history]

    def cancel_task(self, task_id: str) -> bool:
        """
        Cancel a pending task.

        A processing task is not interrupted and terminal tasks cannot change.

        Args:
            task_id: Task identifier

        Returns:
            True if the task moved to cancelled, False otherwise
        """
        task = self._tasks.get(task_id)
        if task is None:
            self.logger.warning(f"Task not found for cancellation: {task_id}")
            return False
        if task.status != TaskStatus.PENDING:
            self.logger.debug(
                f"Task not cancellable: {task_id}", status=task.status.value
            )
            return False

        task.status = TaskStatus.CANCELLED
        task.finished_at = _utcnow()
        self.logger.info(f"Task cancelled: {task_id}")
        self._notify_queue_changed()
        return True

    def on_task_completed(self, callback: TaskCompletionCallback) -> Callable[[], None]:
        """
        Subscribe to successful completions, in completion order.

        Callbacks run before the task's result is folded into the cumulative
        context. If a callback resets the context, the result is merged into
        the reset (empty) context instead of the one read at dequeue time.

        Returns:
            Function removing this subscription (safe to call twice)
        """
        self._completed_callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._completed_callbacks:
                self._completed_callbacks.remove(callback)

        return unsubscribe

    def on_queue_changed(self, callback: QueueChangedCallback) -> Callable[[], None]:
        """
        Subscribe to every state change (enqueue, start, finish, cancel, reset).

        Callbacks take no arguments; subscribers re-read queue state.

        Returns:
            Function removing this subscription (safe to call twice)
        """
        self._changed_callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._changed_callbacks:
                self._changed_callbacks.remove(callback)

        return unsubscribe

    def get_previous_results(self) -> ExtractionResult:
        """Return a deep copy of the cumulative context."""
        return self._previous_results.model_copy(deep=True)

    def reset_previous_results(self) -> None:
        """Clear the cumulative context."""
        self._previous_results = ExtractionResult()
        self.logger.info("Cumulative results reset")
        self._notify_queue_changed()

    async def wait_until_idle(self) -> None:
        """
        Wait until no task is pending or processing.

        If the worker was cancelled while tasks were still pending, a new
        worker is started for them.
        """
        while True:
            if self._worker is not None and not self._worker.done():
                await asyncio.wait({self._worker})
                continue
            if self._next_pending() is None:
                return
            self.logger.warning("Restarting worker for pending tasks")
            self._ensure_worker()

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get queue statistics.

        Returns:
            Dictionary with task counts per status and cumulative graph size
        """
        return {
            "total_tasks": len(self._tasks),
            "pending_tasks": self._count(TaskStatus.PENDING),
            "processing_tasks": self._count(TaskStatus.PROCESSING),
            "completed_tasks": self._count(TaskStatus.COMPLETED),
            "failed_tasks": self._count(TaskStatus.FAILED),
            "cancelled_tasks": self._count(TaskStatus.CANCELLED),
            "entities": len(self._previous_results.entities),
            "relationships": len(self._previous_results.relationships),
        }

    def __len__(self) -> int:
        """Return the number of tasks ever enqueued."""
        return len(self._tasks)

    def _count(self, status: TaskStatus) -> int:
        return sum(1 for task in self._tasks.values() if task.status == status)

    def _next_pending(self) -> Optional[AnalysisTask]:
        for task in self._tasks.values():
            if task.status == TaskStatus.PENDING:
                return task
        return None

    def _ensure_worker(self) -> None:
        """Start the worker unless one is alive; never more than one."""
        if self._worker is not None and not self._worker.done():
            return
        if self._next_pending() is None:
            return
        self._worker = asyncio.get_running_loop().create_task(
            self._run(), name="analysis-queue-worker"
        )

    async def _run(self) -> None:
        """Process pending tasks until none remain."""
        while True:
            task = self._next_pending()
            if task is None:
                return
            await self._process_task(task)

    async def _process_task(self, task: AnalysisTask) -> None:
        self._current_task_id = task.id
        task.status = TaskStatus.PROCESSING
        task.started_at = _utcnow()
        self.logger.info(f"Task processing: {task.id}", task_type=task.type.value)
        self._notify_queue_changed()

        try:
            handler = self._handlers[task.type]
            result = await handler(task, self.get_previous_results())
            if result is None:
                result = task.result
            if not isinstance(result, ExtractionResult):
                raise TypeError(f"Handler for {task.type.value} tasks returned no ExtractionResult")
            base = self._previous_results
            stats = MergeStats()
            merged = self._merger(base, result, stats)
        except asyncio.CancelledError:
            task.status = TaskStatus.CANCELLED
            task.result = None
            task.error = "Processing interrupted"
            raise
        except Exception as e:
            task.status = TaskStatus.FAILED
            task.result = None
            task.error = str(e) or e.__class__.__name__
            self.logger.error(
                f"Task failed: {task.id}",
                error_type=e.__class__.__name__,
                error=task.error,
            )
        else:
            task.result = result
            task.status = TaskStatus.COMPLETED
            self.logger.info(
                f"Task completed: {task.id}",
                entities=len(result.entities),
                relationships=len(result.relationships),
                **stats.to_dict(),
            )
            self._notify_task_completed(task)
            self._store_merged(base, result, merged)
        finally:
            task.finished_at = _utcnow()
            self._current_task_id = None
            self._notify_queue_changed()

    def _store_merged(
        self,
        base: ExtractionResult,
        result: ExtractionResult,
        merged: ExtractionResult,
    ) -> None:
        """Publish ``merged`` unless a listener replaced the context meanwhile."""
        if self._previous_results is base:
            self._previous_results = merged
            return
        self.logger.info("Context reset during completion; merging into the reset context")
        try:
            self._previous_results = self._merger(self._previous_results, result, MergeStats())
        except Exception:
            self.logger.exception("Merge into reset context failed")

    def _notify_task_completed(self, task: AnalysisTask) -> None:
        for callback in list(self._completed_callbacks):
            try:
                callback(task.model_copy(deep=True))
            except Exception:
                self.logger.exception("Task completion listener failed")

    def _notify_queue_changed(self) -> None:
        for callback in list(self._changed_callbacks):
            try:
                callback()
            except Exception:
                self.logger.exception("Queue change listener failed")
