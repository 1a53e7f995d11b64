"""Trigger dispatcher: turns inbound events into executions.

The set of active automations is fetched from the graph store for every
event rather than cached, so an automation activated or deactivated a
moment ago is seen immediately.
"""

from datetime import datetime
from typing import List, Optional

import structlog

from pulse.core.engine import ExecutionEngine
from pulse.core.events import InboundEvent
from pulse.core.graph import AutomationGraph
from pulse.core.models import Execution, NodeDefinition
from pulse.core.state import ExecutionContext
from pulse.utils.errors import NodeEvaluationError, NotFoundError

logger = structlog.get_logger(__name__)


class TriggerDispatcher:
    """Match events against active automations and start their runs.

    Every matching automation gets its own execution; automations never
    share run state. Within one automation the first matching trigger
    node (in authoring order) starts the run.

    Example:
        >>> dispatcher = TriggerDispatcher(engine)
        >>> executions = await dispatcher.on_event(InboundEvent.message("hi", channel_id="ch-1"))
    """

    def __init__(self, engine: ExecutionEngine):
        self.engine = engine
        self.graphs = engine.graphs
        self.registry = engine.registry

    async def on_event(self, event: InboundEvent, now: Optional[datetime] = None) -> List[Execution]:
        """Start one execution per active automation whose trigger matches.

        A failure while matching or starting one automation is logged and
        does not stop dispatch to the others.

        Args:
            event: Inbound message, schedule tick or webhook call
            now: Evaluation time for the first turns (current time by default)

        Returns:
            Started executions, each after its first turn. The full records
            are returned rather than bare identifiers so callers can see the
            first turn's status; ``[e.id for e in result]`` gives the ids.
        """
        automation_ids = await self.graphs.list_active_automation_ids(event.channel_id)
        logger.debug(
            "Dispatching event",
            event_id=event.id,
            event_type=event.type.value,
            candidates=len(automation_ids),
        )

        started: List[Execution] = []
        for automation_id in automation_ids:
            try:
                execution = await self._dispatch_one(automation_id, event, now)
            except NotFoundError:
                # Deleted between listing and starting
                continue
            except Exception as e:
                logger.exception(
                    "Dispatch to automation failed",
                    event_id=event.id,
                    automation_id=automation_id,
                    error=str(e),
                )
                continue
            if execution is not None:
                started.append(execution)

        logger.info(
            "Event dispatched",
            event_id=event.id,
            event_type=event.type.value,
            executions=[execution.id for execution in started],
        )
        return started

    async def _dispatch_one(
        self, automation_id: str, event: InboundEvent, now: Optional[datetime]
    ) -> Optional[Execution]:
        graph = await self.graphs.get_graph(automation_id)
        if not graph.automation.is_active:
            return None

        trigger = await self.match(graph, event)
        if trigger is None:
            return None

        execution = await self.engine.start(automation_id, trigger.node_id, event, now=now)
        try:
            await self.graphs.record_run(automation_id, event.occurred_at)
        except NotFoundError:
            logger.info("Automation deleted after its run started", automation_id=automation_id)
        return execution

    async def match(self, graph: AutomationGraph, event: InboundEvent) -> Optional[NodeDefinition]:
        """First trigger node of ``graph`` that matches ``event``.

        Misconfigured triggers are logged and treated as non-matching so
        one broken automation cannot block dispatch to the others.
        """
        context = ExecutionContext.for_event(graph.automation.id, event)
        for node in graph.trigger_nodes():
            try:
                evaluator = self.registry.for_node(node)
                matches = getattr(evaluator, "matches", None)
                if matches is None:
                    logger.warning(
                        "Trigger evaluator has no match mode",
                        automation_id=graph.automation.id,
                        node_id=node.node_id,
                        subtype=node.subtype,
                    )
                    continue
                if await matches(node, context):
                    return node
            except NodeEvaluationError as e:
                logger.warning(
                    "Skipping misconfigured trigger",
                    automation_id=graph.automation.id,
                    node_id=node.node_id,
                    subtype=node.subtype,
                    error=e.message,
                    error_code=e.code,
                )
            except Exception as e:
                logger.exception(
                    "Skipping trigger that failed to match",
                    automation_id=graph.automation.id,
                    node_id=node.node_id,
                    subtype=node.subtype,
                    error=str(e),
                )
        return None
