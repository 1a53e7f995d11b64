"""Tests for concurrent advancement of executions."""

import asyncio
from datetime import timedelta

import pytest

from pulse.backends.memory import MemoryExecutionStore
from pulse.core.engine import ExecutionEngine
from pulse.core.models import Execution, ExecutionLogEntry, ExecutionStatus, LogStatus, NodeKind
from pulse.transport.base import RecordingSender, SendResult
from pulse.utils.errors import ConcurrencyConflict

from conftest import NOW, create_automation, message


class SlowSender(RecordingSender):
    """Sender that yields to the event loop before recording."""

    def __init__(self, delay: float = 0.05):
        super().__init__()
        self.delay = delay

    async def send(self, recipient, payload) -> SendResult:
        await asyncio.sleep(self.delay)
        return await super().send(recipient, payload)


class FlakyClaimStore(MemoryExecutionStore):
    """Execution store whose first claim loses a race."""

    def __init__(self, failures: int = 1):
        super().__init__()
        self.failures = failures
        self.claims = 0

    async def claim_execution(self, execution_id, owner, lease_until, now):
        self.claims += 1
        if self.failures > 0:
            self.failures -= 1
            raise ConcurrencyConflict(execution_id, "lost the claim race")
        return await super().claim_execution(execution_id, owner, lease_until, now)


async def delayed_flow(graph_store):
    return await create_automation(
        graph_store,
        nodes=[
            ("t1", "trigger", "message_received", {}),
            ("d1", "delay", "wait", {"duration": 1, "unit": "minutes"}),
            ("a1", "action", "send_message", {"text": "Still there?"}),
        ],
        edges=[("t1", "d1"), ("d1", "a1")],
    )


def assert_no_duplicate_visits(logs):
    keys = [(entry.visit, entry.status) for entry in logs]
    assert len(keys) == len(set(keys))


class TestStoreGuards:
    """Tests for the store-level concurrency guards."""

    @pytest.mark.asyncio
    async def test_stale_version_is_rejected(self, execution_store):
        """Test compare-and-swap rejects an update from a stale copy."""
        execution = await execution_store.create_execution(Execution(automation_id="auto-1"))

        first = await execution_store.update_execution(execution.model_copy(update={"current_node_id": "a"}))
        assert first.version == execution.version + 1

        with pytest.raises(ConcurrencyConflict):
            await execution_store.update_execution(execution.model_copy(update={"current_node_id": "b"}))

        stored = await execution_store.get_execution(execution.id)
        assert stored.current_node_id == "a"

    @pytest.mark.asyncio
    async def test_claim_excludes_other_owners(self, execution_store):
        """Test a live lease blocks other owners until it expires."""
        execution = await execution_store.create_execution(Execution(automation_id="auto-1"))
        lease_until = NOW + timedelta(seconds=30)

        claimed = await execution_store.claim_execution(execution.id, "worker-a/1", lease_until, NOW)
        assert claimed.lease_owner == "worker-a/1"

        with pytest.raises(ConcurrencyConflict):
            await execution_store.claim_execution(execution.id, "worker-b/1", lease_until, NOW)

        later = NOW + timedelta(minutes=1)
        reclaimed = await execution_store.claim_execution(
            execution.id, "worker-b/1", later + timedelta(seconds=30), later
        )
        assert reclaimed.lease_owner == "worker-b/1"

    @pytest.mark.asyncio
    async def test_duplicate_visit_entry_is_rejected(self, execution_store):
        """Test a visit can have only one entry per status."""
        execution = await execution_store.create_execution(Execution(automation_id="auto-1"))
        entry = ExecutionLogEntry(
            execution_id=execution.id,
            visit=0,
            node_id="t1",
            node_type=NodeKind.TRIGGER,
            status=LogStatus.STARTED,
        )
        await execution_store.append_log(entry)

        with pytest.raises(ConcurrencyConflict):
            await execution_store.append_log(entry.model_copy(update={"id": "other"}))

        assert len(await execution_store.get_logs(execution.id)) == 1


class TestConcurrentAdvancement:
    """Tests for racing turns on the same execution."""

    @pytest.mark.asyncio
    async def test_two_workers_advance_once(self, graph_store, execution_store, config):
        """Test two workers racing on one due execution send exactly once."""
        sender = SlowSender()
        worker_a = ExecutionEngine(graph_store, execution_store, sender=sender, config=config, worker_id="worker-a")
        worker_b = ExecutionEngine(graph_store, execution_store, sender=sender, config=config, worker_id="worker-b")
        automation = await delayed_flow(graph_store)
        execution = await worker_a.start(automation.id, "t1", message(), now=NOW)

        due = NOW + timedelta(minutes=2)
        results = await asyncio.gather(
            worker_a.advance(execution.id, now=due),
            worker_b.advance(execution.id, now=due),
        )

        final = await execution_store.get_execution(execution.id)
        assert final.status == ExecutionStatus.COMPLETED
        assert final.execution_path == ["t1", "d1", "d1", "a1"]
        assert len(sender.sent) == 1
        assert ExecutionStatus.COMPLETED in [r.status for r in results]

        logs = await execution_store.get_logs(execution.id)
        assert_no_duplicate_visits(logs)
        assert len(logs) == 8

    @pytest.mark.asyncio
    async def test_same_engine_turns_exclude_each_other(self, graph_store, execution_store, config):
        """Test two turns of one engine do not both advance an execution."""
        sender = SlowSender()
        engine = ExecutionEngine(graph_store, execution_store, sender=sender, config=config, worker_id="worker-a")
        automation = await delayed_flow(graph_store)
        execution = await engine.start(automation.id, "t1", message(), now=NOW)

        due = NOW + timedelta(minutes=2)
        await asyncio.gather(engine.advance(execution.id, now=due), engine.advance(execution.id, now=due))

        final = await execution_store.get_execution(execution.id)
        assert final.status == ExecutionStatus.COMPLETED
        assert len(sender.sent) == 1
        assert_no_duplicate_visits(await execution_store.get_logs(execution.id))

    @pytest.mark.asyncio
    async def test_lost_claim_is_retried(self, graph_store, config, sender):
        """Test a lost claim reloads the execution and retries the step."""
        store = FlakyClaimStore(failures=1)
        engine = ExecutionEngine(graph_store, store, sender=sender, config=config, worker_id="worker-a")
        automation = await create_automation(
            graph_store,
            nodes=[
                ("t1", "trigger", "message_received", {}),
                ("a1", "action", "send_message", {"text": "Hi"}),
            ],
            edges=[("t1", "a1")],
        )

        execution = await engine.start(automation.id, "t1", message(), now=NOW)

        assert execution.status == ExecutionStatus.COMPLETED
        assert store.claims == 2
        assert len(sender.sent) == 1

    @pytest.mark.asyncio
    async def test_retries_are_bounded(self, graph_store, config, sender):
        """Test a claim that keeps failing surfaces ConcurrencyConflict."""
        store = FlakyClaimStore(failures=100)
        engine = ExecutionEngine(graph_store, store, sender=sender, config=config)
        automation = await create_automation(
            graph_store,
            nodes=[("t1", "trigger", "message_received", {})],
            edges=[],
        )

        with pytest.raises(ConcurrencyConflict):
            await engine.start(automation.id, "t1", message(), now=NOW)

        assert store.claims == config.conflict_retries + 1

    @pytest.mark.asyncio
    async def test_concurrent_sweeps_resume_each_execution_once(self, graph_store, execution_store, config):
        """Test overlapping resume sweeps claim every execution exactly once."""
        sender = SlowSender(delay=0.01)
        worker_a = ExecutionEngine(graph_store, execution_store, sender=sender, config=config, worker_id="worker-a")
        worker_b = ExecutionEngine(graph_store, execution_store, sender=sender, config=config, worker_id="worker-b")
        automation = await delayed_flow(graph_store)

        execution_ids = []
        for n in range(5):
            execution = await worker_a.start(
                automation.id, "t1", message(contact_id=f"contact-{n}"), now=NOW
            )
            execution_ids.append(execution.id)

        due = NOW + timedelta(minutes=2)
        resumed = await asyncio.gather(worker_a.resume_due(due), worker_b.resume_due(due))

        assert sum(resumed) == 5
        assert sorted(recipient for recipient, _ in sender.sent) == [f"contact-{n}" for n in range(5)]
        for execution_id in execution_ids:
            final = await execution_store.get_execution(execution_id)
            assert final.status == ExecutionStatus.COMPLETED
            assert_no_duplicate_visits(await execution_store.get_logs(execution_id))

    @pytest.mark.asyncio
    async def test_independent_runs_do_not_share_state(self, engine, graph_store, execution_store):
        """Test concurrent runs of one automation keep their own variables."""
        automation = await create_automation(
            graph_store,
            nodes=[
                ("t1", "trigger", "message_received", {}),
                ("v1", "action", "set_variable", {"name": "said", "value": "{{trigger.text}}"}),
            ],
            edges=[("t1", "v1")],
        )

        runs = await asyncio.gather(
            *(engine.start(automation.id, "t1", message(f"text-{n}", contact_id=f"c-{n}"), now=NOW) for n in range(3))
        )

        assert [run.variables["said"] for run in runs] == ["text-0", "text-1", "text-2"]
        assert len({run.id for run in runs}) == 3
