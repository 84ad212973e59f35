"""Tests for the sequential analysis queue.

Tests verify:
- Handler map validation at construction
- FIFO processing and single-flight discipline
- Context hand-off: each task sees every earlier merge
- Failure isolation and error capture
- Subscriptions (completion, queue-changed, unsubscribe)
- Defensive copies of tasks and cumulative results
- Cancellation of pending tasks
- Failed tasks carry no result
- Worker restart after cancellation
"""

import asyncio

import pytest

from osint_graph.data_management.result_merger import MergeStats, merge_results
from osint_graph.data_management.schemas import (
    DocumentContent,
    Entity,
    EntityType,
    ExtractionResult,
    ImageContent,
    Relationship,
    TaskStatus,
    TaskType,
    TextContent,
)
from osint_graph.orchestration.task_queue import AnalysisQueueService


def entity_result(*names, strength=None):
    """Result with one person per name, chaining consecutive names."""
    entities = [Entity(name=name, type=EntityType.PERSON) for name in names]
    relationships = []
    if strength is not None:
        relationships = [
            Relationship(source=a.id, target=b.id, strength=strength)
            for a, b in zip(entities, entities[1:])
        ]
    return ExtractionResult(entities=entities, relationships=relationships)


class RecordingHandler:
    """Handler returning a person named after the task text, recording calls."""

    def __init__(self, queue_ref=None, fail_on=(), gate=None):
        self.calls = []
        self.contexts = []
        self.fail_on = set(fail_on)
        self.gate = gate
        self.queue_ref = queue_ref
        self.max_processing_seen = 0

    async def __call__(self, task, previous_results):
        self.calls.append(task.id)
        self.contexts.append([e.id for e in previous_results.entities])
        if self.queue_ref is not None:
            processing = [
                t for t in self.queue_ref[0].get_tasks()
                if t.status == TaskStatus.PROCESSING
            ]
            self.max_processing_seen = max(self.max_processing_seen, len(processing))
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)
        text = task.content.text if task.type == TaskType.TEXT else task.content.filename
        if text in self.fail_on:
            raise RuntimeError(f"backend exploded on {text}")
        return entity_result(text)


def make_queue(handler):
    return AnalysisQueueService(
        handlers={
            TaskType.TEXT: handler,
            TaskType.DOCUMENT: handler,
            TaskType.IMAGE: handler,
        }
    )


class TestConstruction:
    """Tests for queue construction."""

    def test_missing_handler_rejected(self):
        async def handler(task, previous):
            return ExtractionResult()

        with pytest.raises(ValueError, match="image"):
            AnalysisQueueService(handlers={TaskType.TEXT: handler, TaskType.DOCUMENT: handler})

    def test_initial_state(self):
        queue = make_queue(RecordingHandler())
        assert len(queue) == 0
        assert queue.get_tasks() == []
        assert queue.get_previous_results().is_empty()
        assert not queue.is_processing

    def test_add_task_requires_running_loop(self):
        queue = make_queue(RecordingHandler())
        with pytest.raises(RuntimeError):
            queue.add_task(TextContent(text="Alice"))
        assert len(queue) == 0


class TestProcessing:
    """Tests for ordering, single-flight and context hand-off."""

    @pytest.mark.asyncio
    async def test_add_task_returns_immediately(self):
        gate = asyncio.Event()
        queue = make_queue(RecordingHandler(gate=gate))

        task_id = queue.add_task(TextContent(text="Alice"))

        assert task_id.startswith("task-")
        assert queue.get_task(task_id).status == TaskStatus.PENDING
        await asyncio.sleep(0)
        assert queue.get_task(task_id).status == TaskStatus.PROCESSING
        gate.set()
        await queue.wait_until_idle()
        assert queue.get_task(task_id).status == TaskStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_fifo_completion_order(self):
        queue_ref = []
        handler = RecordingHandler(queue_ref=queue_ref)
        queue = make_queue(handler)
        queue_ref.append(queue)
        completed = []
        queue.on_task_completed(lambda task: completed.append(task.id))

        ids = [queue.add_task(TextContent(text=name)) for name in ("Alice", "Bob", "Carol")]
        await queue.wait_until_idle()

        assert handler.calls == ids
        assert completed == ids
        assert handler.max_processing_seen == 1

    @pytest.mark.asyncio
    async def test_task_added_while_processing_runs_last(self):
        gate = asyncio.Event()
        handler = RecordingHandler(gate=gate)
        queue = make_queue(handler)

        first = queue.add_task(TextContent(text="Alice"))
        second = queue.add_task(TextContent(text="Bob"))
        await asyncio.sleep(0)
        third = queue.add_task(ImageContent(filename="Carol"))
        gate.set()
        await queue.wait_until_idle()

        assert handler.calls == [first, second, third]

    @pytest.mark.asyncio
    async def test_single_worker_for_concurrent_adds(self):
        queue = make_queue(RecordingHandler())
        queue.add_task(TextContent(text="Alice"))
        worker = queue._worker
        queue.add_task(TextContent(text="Bob"))

        assert queue._worker is worker
        await queue.wait_until_idle()

    @pytest.mark.asyncio
    async def test_each_task_sees_previous_merges(self):
        handler = RecordingHandler()
        queue = make_queue(handler)

        for name in ("Alice", "Bob", "Carol"):
            queue.add_task(TextContent(text=name))
        await queue.wait_until_idle()

        assert handler.contexts == [
            [],
            ["person-alice"],
            ["person-alice", "person-bob"],
        ]
        assert [e.id for e in queue.get_previous_results().entities] == [
            "person-alice",
            "person-bob",
            "person-carol",
        ]

    @pytest.mark.asyncio
    async def test_context_read_at_dequeue_time(self):
        """A task enqueued early still sees merges finished before it starts."""
        gate = asyncio.Event()
        handler = RecordingHandler(gate=gate)
        queue = make_queue(handler)

        queue.add_task(TextContent(text="Alice"))
        queue.add_task(TextContent(text="Bob"))
        gate.set()
        await queue.wait_until_idle()

        assert handler.contexts[1] == ["person-alice"]

    @pytest.mark.asyncio
    async def test_relationship_reinforced_across_tasks(self):
        async def handler(task, previous):
            return entity_result("Alice", "Bob", strength=4)

        queue = make_queue(handler)
        queue.add_task(TextContent(text="one"))
        queue.add_task(TextContent(text="two"))
        await queue.wait_until_idle()

        result = queue.get_previous_results()
        assert len(result.relationships) == 1
        assert result.relationships[0].strength == pytest.approx(6.0)

    @pytest.mark.asyncio
    async def test_worker_restarts_after_idle(self):
        handler = RecordingHandler()
        queue = make_queue(handler)

        queue.add_task(TextContent(text="Alice"))
        await queue.wait_until_idle()
        queue.add_task(DocumentContent(filename="Bob"))
        await queue.wait_until_idle()

        assert len(handler.calls) == 2
        assert queue.get_statistics()["completed_tasks"] == 2

    @pytest.mark.asyncio
    async def test_merger_receives_stats(self):
        recorded = []

        def recording_merger(previous, incoming, stats):
            merged = merge_results(previous, incoming, stats)
            recorded.append(stats)
            return merged

        async def handler(task, previous):
            return entity_result("Alice", "Bob", strength=4)

        queue = AnalysisQueueService(
            handlers={t: handler for t in TaskType},
            merger=recording_merger,
        )
        queue.add_task(TextContent(text="one"))
        queue.add_task(TextContent(text="two"))
        await queue.wait_until_idle()

        assert all(isinstance(stats, MergeStats) for stats in recorded)
        assert recorded[0].entities_added == 2
        assert recorded[1].entities_updated == 2
        assert recorded[1].relationships_reinforced == 1

    @pytest.mark.asyncio
    async def test_wait_until_idle_restarts_cancelled_worker(self):
        gate = asyncio.Event()
        handler = RecordingHandler(gate=gate)
        queue = make_queue(handler)

        first = queue.add_task(TextContent(text="Alice"))
        second = queue.add_task(TextContent(text="Bob"))
        await asyncio.sleep(0)
        queue._worker.cancel()
        gate.set()
        await queue.wait_until_idle()

        interrupted = queue.get_task(first)
        assert interrupted.status == TaskStatus.CANCELLED
        assert interrupted.error == "Processing interrupted"
        assert queue.get_task(second).status == TaskStatus.COMPLETED
        assert not queue.is_processing

    @pytest.mark.asyncio
    async def test_handler_receives_copy_of_context(self):
        async def mutating_handler(task, previous):
            previous.entities.append(Entity(name="Intruder", type=EntityType.PERSON))
            return entity_result(task.content.text)

        queue = make_queue(mutating_handler)
        queue.add_task(TextContent(text="Alice"))
        queue.add_task(TextContent(text="Bob"))
        await queue.wait_until_idle()

        ids = [e.id for e in queue.get_previous_results().entities]
        assert ids == ["person-alice", "person-bob"]

    @pytest.mark.asyncio
    async def test_result_written_by_handler_on_task(self):
        async def writing_handler(task, previous):
            task.result = entity_result("Alice")
            return None

        queue = make_queue(writing_handler)
        task_id = queue.add_task(TextContent(text="Alice"))
        await queue.wait_until_idle()

        task = queue.get_task(task_id)
        assert task.status == TaskStatus.COMPLETED
        assert task.result.entities[0].id == "person-alice"


class TestFailures:
    """Tests for per-task failure isolation."""

    @pytest.mark.asyncio
    async def test_failure_isolated(self):
        handler = RecordingHandler(fail_on={"Bob"})
        queue = make_queue(handler)
        completed = []
        queue.on_task_completed(lambda task: completed.append(task.id))

        alice = queue.add_task(TextContent(text="Alice"))
        bob = queue.add_task(TextContent(text="Bob"))
        carol = queue.add_task(TextContent(text="Carol"))
        await queue.wait_until_idle()

        failed = queue.get_task(bob)
        assert failed.status == TaskStatus.FAILED
        assert failed.error == "backend exploded on Bob"
        assert failed.result is None
        assert completed == [alice, carol]
        assert [e.id for e in queue.get_previous_results().entities] == [
            "person-alice",
            "person-carol",
        ]

    @pytest.mark.asyncio
    async def test_failed_task_not_retried(self):
        handler = RecordingHandler(fail_on={"Bob"})
        queue = make_queue(handler)

        queue.add_task(TextContent(text="Bob"))
        await queue.wait_until_idle()
        queue.add_task(TextContent(text="Alice"))
        await queue.wait_until_idle()

        assert len(handler.calls) == 2

    @pytest.mark.asyncio
    async def test_non_result_return_fails_task(self):
        async def broken_handler(task, previous):
            return {"entities": []}

        queue = make_queue(broken_handler)
        task_id = queue.add_task(TextContent(text="Alice"))
        await queue.wait_until_idle()

        task = queue.get_task(task_id)
        assert task.status == TaskStatus.FAILED
        assert "ExtractionResult" in task.error

    @pytest.mark.asyncio
    async def test_merger_failure_keeps_context(self):
        async def handler(task, previous):
            task.result = entity_result("Alice")
            return task.result

        def exploding_merger(previous, incoming, stats):
            raise ValueError("merge failed")

        queue = AnalysisQueueService(
            handlers={t: handler for t in TaskType},
            merger=exploding_merger,
        )
        task_id = queue.add_task(TextContent(text="Alice"))
        await queue.wait_until_idle()

        task = queue.get_task(task_id)
        assert task.status == TaskStatus.FAILED
        assert task.error == "merge failed"
        assert task.result is None
        assert queue.get_previous_results().is_empty()

    @pytest.mark.asyncio
    async def test_failed_handler_result_cleared(self):
        async def handler(task, previous):
            task.result = entity_result("Alice")
            raise RuntimeError("late failure")

        queue = make_queue(handler)
        task_id = queue.add_task(TextContent(text="Alice"))
        await queue.wait_until_idle()

        assert queue.get_task(task_id).result is None


    @pytest.mark.asyncio
    async def test_exception_without_message_uses_class_name(self):
        async def handler(task, previous):
            raise KeyError()

        queue = make_queue(handler)
        task_id = queue.add_task(TextContent(text="Alice"))
        await queue.wait_until_idle()

        assert queue.get_task(task_id).error == "KeyError"


class TestSubscriptions:
    """Tests for listeners."""

    @pytest.mark.asyncio
    async def test_queue_changed_fires_on_every_transition(self):
        queue = make_queue(RecordingHandler())
        changes = []
        queue.on_queue_changed(lambda: changes.append(queue.get_statistics()["pending_tasks"]))

        queue.add_task(TextContent(text="Alice"))
        await queue.wait_until_idle()

        # enqueue, start, finish
        assert len(changes) == 3

    @pytest.mark.asyncio
    async def test_failure_fires_queue_changed_only(self):
        queue = make_queue(RecordingHandler(fail_on={"Bob"}))
        completed = []
        changes = []
        queue.on_task_completed(completed.append)
        queue.on_queue_changed(lambda: changes.append(1))

        queue.add_task(TextContent(text="Bob"))
        await queue.wait_until_idle()

        assert completed == []
        assert len(changes) == 3

    @pytest.mark.asyncio
    async def test_multiple_subscribers_and_unsubscribe(self):
        queue = make_queue(RecordingHandler())
        first, second = [], []
        unsubscribe_first = queue.on_task_completed(lambda task: first.append(task.id))
        queue.on_task_completed(lambda task: second.append(task.id))

        queue.add_task(TextContent(text="Alice"))
        await queue.wait_until_idle()
        unsubscribe_first()
        unsubscribe_first()
        queue.add_task(TextContent(text="Bob"))
        await queue.wait_until_idle()

        assert len(first) == 1
        assert len(second) == 2

    @pytest.mark.asyncio
    async def test_reset_in_completion_listener_is_kept(self):
        queue = make_queue(RecordingHandler())
        resets = []

        def reset_after_bob(task):
            if task.content.text == "Bob":
                queue.reset_previous_results()
                resets.append(task.id)

        queue.on_task_completed(reset_after_bob)
        queue.add_task(TextContent(text="Alice"))
        queue.add_task(TextContent(text="Bob"))
        await queue.wait_until_idle()

        assert len(resets) == 1
        # Bob's result lands in the reset context; Alice's is gone
        assert [e.id for e in queue.get_previous_results().entities] == ["person-bob"]

    @pytest.mark.asyncio
    async def test_completion_fires_before_context_update(self):
        queue = make_queue(RecordingHandler())
        seen = []
        queue.on_task_completed(
            lambda task: seen.append(len(queue.get_previous_results().entities))
        )

        queue.add_task(TextContent(text="Alice"))
        await queue.wait_until_idle()

        assert seen == [0]
        assert len(queue.get_previous_results().entities) == 1

    @pytest.mark.asyncio
    async def test_listener_error_does_not_fail_task(self):
        queue = make_queue(RecordingHandler())

        def bad_listener(task):
            raise RuntimeError("listener bug")

        queue.on_task_completed(bad_listener)
        task_id = queue.add_task(TextContent(text="Alice"))
        await queue.wait_until_idle()

        assert queue.get_task(task_id).status == TaskStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_listener_can_enqueue(self):
        handler = RecordingHandler()
        queue = make_queue(handler)
        queue.on_task_completed(
            lambda task: queue.add_task(TextContent(text="Bob")) if len(handler.calls) == 1 else None
        )

        queue.add_task(TextContent(text="Alice"))
        await queue.wait_until_idle()

        assert len(handler.calls) == 2
        assert queue.get_statistics()["completed_tasks"] == 2


class TestViews:
    """Tests for task views, copies and reset."""

    @pytest.mark.asyncio
    async def test_get_tasks_active_first_then_history_newest_first(self):
        gate = asyncio.Event()
        queue = make_queue(RecordingHandler(gate=gate))

        first = queue.add_task(TextContent(text="Alice"))
        gate.set()
        await queue.wait_until_idle()
        second = queue.add_task(TextContent(text="Bob"))
        await queue.wait_until_idle()

        gate.clear()
        third = queue.add_task(TextContent(text="Carol"))
        fourth = queue.add_task(TextContent(text="Dave"))
        await asyncio.sleep(0)

        tasks = queue.get_tasks()
        assert [t.id for t in tasks] == [third, fourth, second, first]
        assert [t.status for t in tasks] == [
            TaskStatus.PROCESSING,
            TaskStatus.PENDING,
            TaskStatus.COMPLETED,
            TaskStatus.COMPLETED,
        ]
        assert len({t.id for t in tasks}) == 4

        gate.set()
        await queue.wait_until_idle()

    @pytest.mark.asyncio
    async def test_returned_tasks_are_copies(self):
        queue = make_queue(RecordingHandler())
        task_id = queue.add_task(TextContent(text="Alice"))
        await queue.wait_until_idle()

        queue.get_tasks()[0].status = TaskStatus.FAILED
        queue.get_task(task_id).result.entities.clear()

        task = queue.get_task(task_id)
        assert task.status == TaskStatus.COMPLETED
        assert len(task.result.entities) == 1

    @pytest.mark.asyncio
    async def test_previous_results_copy_isolation(self):
        async def handler(task, previous):
            return entity_result("Alice", "Bob", strength=4)

        queue = make_queue(handler)
        queue.add_task(TextContent(text="one"))
        await queue.wait_until_idle()

        snapshot = queue.get_previous_results()
        snapshot.entities.clear()
        snapshot.relationships[0].strength = 100

        queue.add_task(TextContent(text="two"))
        await queue.wait_until_idle()

        result = queue.get_previous_results()
        assert len(result.entities) == 2
        assert result.relationships[0].strength == pytest.approx(6.0)

    @pytest.mark.asyncio
    async def test_reset_previous_results(self):
        handler = RecordingHandler()
        queue = make_queue(handler)
        changes = []
        queue.on_queue_changed(lambda: changes.append(1))

        queue.add_task(TextContent(text="Alice"))
        await queue.wait_until_idle()
        before = len(changes)
        queue.reset_previous_results()

        assert queue.get_previous_results().is_empty()
        assert len(changes) == before + 1

        queue.add_task(TextContent(text="Bob"))
        await queue.wait_until_idle()
        assert handler.contexts[-1] == []

    @pytest.mark.asyncio
    async def test_statistics(self):
        queue = make_queue(RecordingHandler(fail_on={"Bob"}))
        queue.add_task(TextContent(text="Alice"))
        queue.add_task(TextContent(text="Bob"))
        await queue.wait_until_idle()

        stats = queue.get_statistics()
        assert stats["total_tasks"] == 2
        assert stats["completed_tasks"] == 1
        assert stats["failed_tasks"] == 1
        assert stats["pending_tasks"] == 0
        assert stats["entities"] == 1


class TestCancellation:
    """Tests for cancel_task."""

    @pytest.mark.asyncio
    async def test_cancel_pending_task_is_skipped(self):
        gate = asyncio.Event()
        handler = RecordingHandler(gate=gate)
        queue = make_queue(handler)

        first = queue.add_task(TextContent(text="Alice"))
        second = queue.add_task(TextContent(text="Bob"))
        third = queue.add_task(TextContent(text="Carol"))
        await asyncio.sleep(0)

        assert queue.cancel_task(second) is True
        assert queue.get_task(second).status == TaskStatus.CANCELLED
        assert second not in [t.id for t in queue.get_tasks() if t.status.is_active]

        gate.set()
        await queue.wait_until_idle()

        assert handler.calls == [first, third]
        assert queue.get_statistics()["cancelled_tasks"] == 1

    @pytest.mark.asyncio
    async def test_processing_task_not_cancellable(self):
        gate = asyncio.Event()
        queue = make_queue(RecordingHandler(gate=gate))

        task_id = queue.add_task(TextContent(text="Alice"))
        await asyncio.sleep(0)

        assert queue.cancel_task(task_id) is False
        gate.set()
        await queue.wait_until_idle()
        assert queue.get_task(task_id).status == TaskStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_terminal_and_unknown_not_cancellable(self):
        queue = make_queue(RecordingHandler())
        task_id = queue.add_task(TextContent(text="Alice"))
        await queue.wait_until_idle()

        assert queue.cancel_task(task_id) is False
        assert queue.cancel_task("task-0-missing") is False
