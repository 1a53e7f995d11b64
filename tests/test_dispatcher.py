"""Tests for trigger dispatch."""

import pytest

from pulse.core.dispatcher import TriggerDispatcher
from pulse.core.engine import ExecutionEngine
from pulse.core.events import InboundEvent
from pulse.core.models import AutomationStatus, ExecutionStatus

from conftest import NOW, create_automation, message


async def reply_flow(graph_store, trigger=("message_received", {}), **kwargs):
    subtype, config = trigger
    return await create_automation(
        graph_store,
        nodes=[
            ("t1", "trigger", subtype, config),
            ("a1", "action", "send_message", {"text": "Thanks!"}),
        ],
        edges=[("t1", "a1")],
        **kwargs,
    )


@pytest.mark.asyncio
async def test_each_matching_automation_gets_a_run(dispatcher, graph_store, sender):
    """Test one event starts an independent execution per matching automation."""
    first = await reply_flow(graph_store, name="First")
    second = await reply_flow(graph_store, name="Second")

    executions = await dispatcher.on_event(message("hello"), now=NOW)

    assert {e.automation_id for e in executions} == {first.id, second.id}
    assert all(e.status == ExecutionStatus.COMPLETED for e in executions)
    assert len({e.id for e in executions}) == 2
    assert len(sender.sent) == 2


@pytest.mark.asyncio
async def test_channel_scoping(dispatcher, graph_store):
    """Test automations only see events from their channel; channel-less ones see all."""
    scoped = await reply_flow(graph_store, channel_id="ch-1")
    other = await reply_flow(graph_store, channel_id="ch-2")
    anywhere = await reply_flow(graph_store, channel_id=None)

    executions = await dispatcher.on_event(message(channel_id="ch-1"), now=NOW)

    started = {e.automation_id for e in executions}
    assert started == {scoped.id, anywhere.id}
    assert other.id not in started


@pytest.mark.asyncio
async def test_only_active_automations_run(dispatcher, engine, graph_store):
    """Test inactive and paused automations are not started."""
    await reply_flow(graph_store, status=AutomationStatus.INACTIVE)
    await reply_flow(graph_store, status=AutomationStatus.PAUSED)
    deactivated = await reply_flow(graph_store)
    await engine.set_automation_status(deactivated.id, AutomationStatus.INACTIVE)

    assert await dispatcher.on_event(message(), now=NOW) == []


@pytest.mark.asyncio
async def test_keyword_mismatch_starts_nothing(dispatcher, graph_store):
    """Test a non-matching trigger starts no execution."""
    await reply_flow(graph_store, trigger=("keyword_match", {"keywords": ["menu"]}))

    assert await dispatcher.on_event(message("hello"), now=NOW) == []
    assert len(await dispatcher.on_event(message("MENU"), now=NOW)) == 1


@pytest.mark.asyncio
async def test_first_matching_trigger_wins(dispatcher, graph_store):
    """Test the first matching trigger node in authoring order starts the run."""
    automation = await create_automation(
        graph_store,
        nodes=[
            ("kw", "trigger", "keyword_match", {"keywords": ["hi"]}),
            ("any", "trigger", "message_received", {}),
            ("v1", "action", "set_variable", {"name": "done", "value": True}),
        ],
        edges=[("kw", "v1"), ("any", "v1")],
    )

    [keyword_run] = await dispatcher.on_event(message("hi"), now=NOW)
    [fallback_run] = await dispatcher.on_event(message("something else"), now=NOW)

    assert keyword_run.automation_id == automation.id
    assert keyword_run.execution_path == ["kw", "v1"]
    assert keyword_run.variables["matched_keyword"] == "hi"
    assert fallback_run.execution_path == ["any", "v1"]


@pytest.mark.asyncio
async def test_misconfigured_trigger_is_skipped(dispatcher, graph_store):
    """Test a broken trigger does not block other automations."""
    await reply_flow(graph_store, trigger=("keyword_match", {}))
    healthy = await reply_flow(graph_store)

    executions = await dispatcher.on_event(message(), now=NOW)

    assert [e.automation_id for e in executions] == [healthy.id]


@pytest.mark.asyncio
async def test_wrongly_typed_trigger_config_is_skipped(dispatcher, graph_store):
    """Test a trigger config of the wrong type does not abort dispatch."""
    await reply_flow(
        graph_store, trigger=("webhook", {"path": "orders", "required_fields": 5}), channel_id=None
    )
    healthy = await reply_flow(graph_store, trigger=("webhook", {"path": "orders"}), channel_id=None)

    executions = await dispatcher.on_event(InboundEvent.webhook("orders", {"id": 1}), now=NOW)

    assert [e.automation_id for e in executions] == [healthy.id]


class FailingStartEngine(ExecutionEngine):
    """Engine whose start fails for one automation."""

    def __init__(self, *args, broken_id=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.broken_id = broken_id

    async def start(self, automation_id, trigger_node_id, event, now=None):
        if automation_id == self.broken_id:
            raise RuntimeError("store unavailable")
        return await super().start(automation_id, trigger_node_id, event, now=now)


@pytest.mark.asyncio
async def test_failed_start_is_isolated_and_not_counted(graph_store, execution_store, sender):
    """Test a run that cannot start neither blocks others nor bumps the counter."""
    broken = await reply_flow(graph_store, name="Broken")
    healthy = await reply_flow(graph_store, name="Healthy")
    engine = FailingStartEngine(graph_store, execution_store, sender=sender, broken_id=broken.id)

    executions = await TriggerDispatcher(engine).on_event(message(), now=NOW)

    assert [e.automation_id for e in executions] == [healthy.id]
    assert (await graph_store.get_automation(broken.id)).execution_count == 0
    assert (await graph_store.get_automation(healthy.id)).execution_count == 1


@pytest.mark.asyncio
async def test_dispatch_records_run_statistics(dispatcher, graph_store):
    """Test dispatch bumps the automation's run counter."""
    automation = await reply_flow(graph_store)

    await dispatcher.on_event(message(), now=NOW)
    await dispatcher.on_event(message(), now=NOW)

    stored = await graph_store.get_automation(automation.id)
    assert stored.execution_count == 2
    assert stored.last_executed_at == NOW


@pytest.mark.asyncio
async def test_schedule_and_webhook_events(dispatcher, graph_store):
    """Test non-message triggers match their own event types only."""
    scheduled = await reply_flow(graph_store, trigger=("schedule", {"cron": "30 9 * * *"}), channel_id=None)
    hooked = await reply_flow(graph_store, trigger=("webhook", {"path": "orders"}), channel_id=None)
    await reply_flow(graph_store)

    tick_runs = await dispatcher.on_event(InboundEvent.schedule_tick(NOW), now=NOW)
    hook_runs = await dispatcher.on_event(InboundEvent.webhook("/orders", {"id": 9}), now=NOW)

    assert [e.automation_id for e in tick_runs] == [scheduled.id]
    assert [e.automation_id for e in hook_runs] == [hooked.id]
    assert hook_runs[0].variables["webhook"] == {"id": 9}


@pytest.mark.asyncio
async def test_webhook_runs_without_contact_fail_to_send(dispatcher, graph_store):
    """Test a send action with no recipient fails instead of guessing one."""
    await reply_flow(graph_store, trigger=("webhook", {"path": "orders"}), channel_id=None)

    [execution] = await dispatcher.on_event(InboundEvent.webhook("orders", {}), now=NOW)

    assert execution.status == ExecutionStatus.FAILED
    assert "no recipient" in execution.error
