"""Tests for automation status changes while executions are in flight."""

from datetime import timedelta

import pytest

from pulse.core.engine import ExecutionEngine
from pulse.core.models import AutomationStatus, ExecutionStatus
from pulse.utils.config import EngineConfig
from pulse.utils.errors import NotFoundError

from conftest import NOW, create_automation, message

DUE = NOW + timedelta(minutes=10)


@pytest.fixture
async def waiting_run(engine, graph_store):
    automation = await create_automation(
        graph_store,
        nodes=[
            ("t1", "trigger", "message_received", {}),
            ("d1", "delay", "wait", {"duration": 5}),
            ("a1", "action", "send_message", {"text": "Reminder"}),
        ],
        edges=[("t1", "d1"), ("d1", "a1")],
    )
    execution = await engine.start(automation.id, "t1", message(), now=NOW)
    assert execution.status == ExecutionStatus.WAITING
    return automation, execution


@pytest.mark.asyncio
async def test_deactivation_cancels_waiting_runs(engine, execution_store, sender, waiting_run):
    """Test deactivating an automation fails its waiting executions."""
    automation, execution = waiting_run
    logs_before = await execution_store.get_logs(execution.id)

    updated = await engine.set_automation_status(automation.id, AutomationStatus.INACTIVE)

    assert updated.status == AutomationStatus.INACTIVE
    cancelled = await execution_store.get_execution(execution.id)
    assert cancelled.status == ExecutionStatus.FAILED
    assert "deactivated" in cancelled.error
    assert cancelled.resume_at is None
    assert cancelled.lease_owner is None

    assert await engine.resume_due(DUE) == 0
    assert sender.sent == []
    assert await execution_store.get_logs(execution.id) == logs_before


@pytest.mark.asyncio
async def test_cancel_automation_counts(engine, graph_store, execution_store, waiting_run):
    """Test cancel_automation only touches in-flight executions of that automation."""
    automation, execution = waiting_run
    other = await create_automation(
        graph_store,
        nodes=[("t1", "trigger", "message_received", {}), ("d1", "delay", "wait", {"duration": 5})],
        edges=[("t1", "d1")],
    )
    other_run = await engine.start(other.id, "t1", message(), now=NOW)

    assert await engine.cancel_automation(automation.id) == 1
    assert await engine.cancel_automation(automation.id) == 0

    untouched = await execution_store.get_execution(other_run.id)
    assert untouched.status == ExecutionStatus.WAITING


@pytest.mark.asyncio
async def test_pause_holds_then_resumes(engine, execution_store, sender, waiting_run):
    """Test a paused automation holds its waiting runs until reactivated."""
    automation, execution = waiting_run

    await engine.set_automation_status(automation.id, AutomationStatus.PAUSED)

    assert await engine.resume_due(DUE) == 0
    held = await engine.advance(execution.id, now=DUE)
    assert held.status == ExecutionStatus.WAITING
    assert held.lease_owner is None
    assert sender.sent == []

    await engine.set_automation_status(automation.id, AutomationStatus.ACTIVE)

    assert await engine.resume_due(DUE) == 1
    finished = await execution_store.get_execution(execution.id)
    assert finished.status == ExecutionStatus.COMPLETED
    assert len(sender.sent) == 1


@pytest.mark.asyncio
async def test_inactive_without_cancel_fails_on_resume(engine, graph_store, execution_store, waiting_run):
    """Test a waiting run of an automation deactivated behind the engine's back fails on resume."""
    automation, execution = waiting_run
    await graph_store.set_automation_status(automation.id, AutomationStatus.INACTIVE)

    assert await engine.resume_due(DUE) == 1

    failed = await execution_store.get_execution(execution.id)
    assert failed.status == ExecutionStatus.FAILED
    assert "inactive" in failed.error


@pytest.mark.asyncio
async def test_delete_cancels_and_keeps_history(engine, graph_store, queries, waiting_run):
    """Test deleting an automation cancels its runs but keeps their audit trail."""
    automation, execution = waiting_run

    await engine.delete_automation(automation.id)

    with pytest.raises(NotFoundError):
        await graph_store.get_automation(automation.id)

    cancelled = await queries.get_execution(execution.id)
    assert cancelled.status == ExecutionStatus.FAILED
    assert "deleted" in cancelled.error

    logs = await queries.get_execution_logs(execution.id)
    assert [entry.node_id for entry in logs] == ["t1", "t1", "d1", "d1"]


@pytest.mark.asyncio
async def test_vanished_automation_fails_on_resume(engine, graph_store, execution_store, waiting_run):
    """Test a waiting run whose automation was removed from the store fails on resume."""
    automation, execution = waiting_run
    await graph_store.delete_automation(automation.id)

    assert await engine.resume_due(DUE) == 1

    failed = await execution_store.get_execution(execution.id)
    assert failed.status == ExecutionStatus.FAILED
    assert "no longer exists" in failed.error


@pytest.mark.asyncio
async def test_paused_runs_do_not_starve_the_sweep(graph_store, execution_store, sender):
    """Test held runs never crowd active automations out of a sweep batch."""
    engine = ExecutionEngine(
        graph_store, execution_store, sender=sender, config=EngineConfig(resume_batch=2)
    )
    nodes = [
        ("t1", "trigger", "message_received", {}),
        ("d1", "delay", "wait", {"duration": 5}),
        ("a1", "action", "send_message", {"text": "Reminder"}),
    ]
    edges = [("t1", "d1"), ("d1", "a1")]
    paused = await create_automation(graph_store, nodes=nodes, edges=edges, name="Paused")
    active = await create_automation(graph_store, nodes=nodes, edges=edges, name="Active")

    for n in range(2):
        await engine.start(paused.id, "t1", message(contact_id=f"held-{n}"), now=NOW)
    await engine.set_automation_status(paused.id, AutomationStatus.PAUSED)
    execution = await engine.start(active.id, "t1", message(), now=NOW + timedelta(minutes=1))

    assert await engine.resume_due(NOW + timedelta(hours=1)) == 1

    finished = await execution_store.get_execution(execution.id)
    assert finished.status == ExecutionStatus.COMPLETED
    assert [recipient for recipient, _ in sender.sent] == ["contact-1"]
    held = await execution_store.list_executions(paused.id, ExecutionStatus.WAITING)
    assert len(held) == 2
