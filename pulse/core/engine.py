"""Execution engine: the per-execution state machine.

An execution moves through ``running -> waiting -> running -> ...`` and
ends in ``completed`` or ``failed``. Work happens in turns. A turn claims
the execution lease, loads the automation graph once, and then visits
nodes until the run completes, defers, fails or hits the step limit.

Every visit:

1. writes a ``started`` log entry and adds the node to the execution path
2. asks the node's evaluator for an outcome
3. writes exactly one ``completed`` or ``failed`` entry
4. persists the execution with a compare-and-swap on its version

Turns are independent, short and resumable, so many executions can be
advanced concurrently from one event loop or from several workers
sharing a store.
"""

import asyncio
import itertools
import socket
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import structlog

from pulse.backends.base import ExecutionStore, GraphStore
from pulse.core.events import InboundEvent
from pulse.core.graph import AutomationGraph
from pulse.core.logger import ExecutionLogger, VisitRecord
from pulse.core.models import (
    Automation,
    AutomationStatus,
    Execution,
    ExecutionStatus,
    LogStatus,
    NodeDefinition,
    NodeKind,
    new_id,
    utcnow,
)
from pulse.core.state import ExecutionContext
from pulse.nodes.base import Advance, Defer, Fail, Outcome
from pulse.transport.base import MessageSender
from pulse.utils.config import EngineConfig
from pulse.utils.errors import ConcurrencyConflict, InvalidNodeTypeError, NotFoundError
from pulse.utils.registry import EvaluatorRegistry

logger = structlog.get_logger(__name__)


class ExecutionEngine:
    """Advance automation executions node by node.

    Example:
        >>> engine = ExecutionEngine(graph_store, execution_store, sender=sender)
        >>> execution = await engine.start(automation.id, "trigger-1", event)
        >>> execution.status
        <ExecutionStatus.WAITING: 'waiting'>
        >>> await engine.resume_due()
        1
    """

    def __init__(
        self,
        graph_store: GraphStore,
        execution_store: ExecutionStore,
        registry: Optional[EvaluatorRegistry] = None,
        sender: Optional[MessageSender] = None,
        config: Optional[EngineConfig] = None,
        worker_id: Optional[str] = None,
    ):
        """Initialize engine.

        Args:
            graph_store: Store holding automations and their graphs
            execution_store: Store holding executions and their logs
            registry: Evaluator registry (built-in evaluators by default)
            sender: Message transport injected into action evaluators
            config: Engine settings (defaults when omitted)
            worker_id: Prefix of this engine's lease owner tokens
        """
        self.graphs = graph_store
        self.executions = execution_store
        self.registry = registry or EvaluatorRegistry()
        self.sender = sender
        self.config = config or EngineConfig()
        self.worker_id = worker_id or f"{socket.gethostname()}:{new_id()[:8]}"
        self.audit = ExecutionLogger(execution_store)
        self._turns = itertools.count(1)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def start(
        self,
        automation_id: str,
        trigger_node_id: str,
        event: InboundEvent,
        now: Optional[datetime] = None,
    ) -> Execution:
        """Create an execution for a matched trigger and run its first turn.

        Args:
            automation_id: Automation whose trigger matched
            trigger_node_id: The matching trigger node
            event: Event that matched

        Returns:
            The execution after its first turn

        Raises:
            NotFoundError: If the automation or trigger node does not exist
        """
        graph = await self.graphs.get_graph(automation_id)
        if not graph.has_node(trigger_node_id):
            raise NotFoundError("Node", trigger_node_id)

        execution = await self.executions.create_execution(
            Execution(
                automation_id=automation_id,
                channel_id=event.channel_id,
                contact_id=event.contact_id,
                conversation_id=event.conversation_id,
                trigger_data=event.snapshot(),
                status=ExecutionStatus.RUNNING,
                current_node_id=trigger_node_id,
                started_at=now or utcnow(),
            )
        )
        logger.info(
            "Execution started",
            execution_id=execution.id,
            automation_id=automation_id,
            trigger_node_id=trigger_node_id,
            event_type=event.type.value,
        )
        execution, _ = await self._run_turn(execution.id, graph=graph, now=now)
        return execution

    async def advance(self, execution_id: str, now: Optional[datetime] = None) -> Execution:
        """Run one turn of an execution.

        A turn on a terminal execution, on a waiting execution whose resume
        time has not arrived, or on an execution leased by another worker
        is a no-op that returns the stored record.

        Raises:
            NotFoundError: If the execution does not exist
            ConcurrencyConflict: If the execution kept changing underneath
                this worker after every retry
        """
        execution, _ = await self._run_turn(execution_id, now=now)
        return execution

    async def resume_due(self, now: Optional[datetime] = None) -> int:
        """Resume waiting executions whose resume time has passed.

        Running executions abandoned by a stopped worker (expired lease) are
        picked up too. Safe to run concurrently with itself: each execution
        is claimed by at most one resumer. Executions of paused automations
        are held.

        Returns:
            Number of executions that were advanced
        """
        now = now or utcnow()
        # Held runs must not fill the batch ahead of runnable ones
        paused = [a.id for a in await self.graphs.list_automations(AutomationStatus.PAUSED)]
        due = await self.executions.list_due_executions(
            now, limit=self.config.resume_batch, exclude_automation_ids=paused
        )
        if not due:
            return 0

        results = await asyncio.gather(*(self._resume_one(e, now) for e in due))
        resumed = sum(1 for advanced in results if advanced)
        logger.info("Resume sweep finished", due=len(due), resumed=resumed)
        return resumed

    async def cancel_automation(self, automation_id: str, reason: Optional[str] = None) -> int:
        """Fail every running or waiting execution of an automation.

        Executions currently leased by another worker are left to that
        worker; if they go on to wait, their resume fails them because the
        automation is no longer active.

        Returns:
            Number of executions cancelled
        """
        reason = reason or f"Automation {automation_id} was deactivated"
        cancelled = 0
        for status in (ExecutionStatus.RUNNING, ExecutionStatus.WAITING):
            for execution in await self.executions.list_executions(automation_id, status):
                if await self._cancel_one(execution.id, reason):
                    cancelled += 1
        logger.info("Automation executions cancelled", automation_id=automation_id, cancelled=cancelled)
        return cancelled

    async def set_automation_status(self, automation_id: str, status: AutomationStatus) -> Automation:
        """Change an automation's status; deactivation cancels its in-flight runs."""
        automation = await self.graphs.set_automation_status(automation_id, status)
        if automation.status == AutomationStatus.INACTIVE:
            await self.cancel_automation(automation_id)
        return automation

    async def delete_automation(self, automation_id: str) -> None:
        """Cancel in-flight runs and delete the automation. Run history is kept."""
        await self.cancel_automation(
            automation_id, reason=f"Automation {automation_id} was deleted"
        )
        await self.graphs.delete_automation(automation_id)

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def _run_turn(
        self,
        execution_id: str,
        graph: Optional[AutomationGraph] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[Execution, bool]:
        """Run a turn, reloading and retrying after concurrency conflicts.

        Returns:
            The stored execution and whether this worker advanced it
        """
        attempts = self.config.conflict_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await self._turn(execution_id, graph, now)
            except ConcurrencyConflict as e:
                logger.info(
                    "Concurrent advancement detected",
                    execution_id=execution_id,
                    attempt=attempt,
                    detail=str(e),
                )
                execution = await self.executions.get_execution(execution_id)
                if not self._has_work(execution, now or utcnow()):
                    return execution, False
                if attempt == attempts:
                    raise
                graph = None
        raise ConcurrencyConflict(execution_id)

    def _has_work(self, execution: Execution, now: datetime, owner: Optional[str] = None) -> bool:
        """Whether a turn by ``owner`` could make progress.

        With no owner, any live lease means another turn is in progress.
        """
        if execution.status.is_terminal:
            return False
        if execution.status == ExecutionStatus.WAITING:
            if execution.resume_at is None or execution.resume_at > now:
                return False
        return not execution.is_leased_by_other(owner, now)

    def _lease_token(self) -> str:
        # One token per turn, so two turns of this engine exclude each other
        return f"{self.worker_id}/{next(self._turns)}"

    async def _turn(
        self,
        execution_id: str,
        graph: Optional[AutomationGraph],
        now: Optional[datetime],
    ) -> Tuple[Execution, bool]:
        clock = now or utcnow()
        execution = await self.executions.get_execution(execution_id)
        if not self._has_work(execution, clock):
            return execution, False

        owner = self._lease_token()
        execution = await self.executions.claim_execution(
            execution_id, owner, self._lease_until(clock), clock
        )
        if not self._has_work(execution, clock, owner):
            return await self._release(execution), False

        if graph is None:
            try:
                graph = await self.graphs.get_graph(execution.automation_id)
            except NotFoundError:
                failed = await self._fail(
                    execution,
                    f"Automation {execution.automation_id} no longer exists",
                    code="not_found",
                )
                return failed, True

        if execution.status == ExecutionStatus.WAITING:
            automation_status = graph.automation.status
            if automation_status == AutomationStatus.PAUSED:
                logger.info("Holding execution of paused automation", execution_id=execution.id)
                return await self._release(execution), False
            if automation_status != AutomationStatus.ACTIVE:
                failed = await self._fail(
                    execution,
                    f"Automation {execution.automation_id} is {automation_status.value}; "
                    f"waiting execution cancelled",
                    code="automation_inactive",
                )
                return failed, True
            execution = execution.model_copy(update={"status": ExecutionStatus.RUNNING})

        steps = 0
        while execution.status == ExecutionStatus.RUNNING:
            if steps >= self.config.max_steps:
                failed = await self._fail(
                    execution,
                    f"Exceeded {self.config.max_steps} node visits in one turn; "
                    f"the graph likely contains a cycle",
                    code="step_limit_exceeded",
                )
                return failed, True
            steps += 1
            execution = await self._visit(execution, graph, now or utcnow())

        logger.info(
            "Execution turn finished",
            execution_id=execution.id,
            status=execution.status.value,
            steps=steps,
        )
        return execution, True

    async def _visit(self, execution: Execution, graph: AutomationGraph, now: datetime) -> Execution:
        node_id = execution.current_node_id
        if node_id is None or not graph.has_node(node_id):
            return await self._fail(
                execution,
                f"Node '{node_id}' not found in automation {execution.automation_id}",
                code="not_found",
            )

        node = graph.get_node(node_id)
        visit = len(execution.execution_path)
        path = list(execution.execution_path) + [node_id]

        record = await self._open_visit(execution, node, visit)
        if record is None:
            error = (
                f"Visit {visit} of node '{node_id}' was interrupted before its result "
                f"was saved; it is not re-run"
            )
            return await self._fail(execution, error, code="interrupted_visit", path=path)

        outcome = await self._evaluate(execution, graph, node, visit, now)
        if isinstance(outcome, Advance) and len(outcome.next_node_ids) > 1:
            outcome = Fail(
                error=f"Node '{node_id}' resolved to {len(outcome.next_node_ids)} successors; expected one",
                code="ambiguous_successor",
                output=outcome.output,
            )

        if isinstance(outcome, Fail):
            await self.audit.failed(record, outcome.error, outcome.code, outcome.output)
            return await self._fail(execution, outcome.error, code=outcome.code, path=path)

        await self.audit.completed(record, outcome.output)

        if isinstance(outcome, Defer):
            logger.info(
                "Execution waiting",
                execution_id=execution.id,
                node_id=node_id,
                resume_at=outcome.resume_at.isoformat(),
            )
            return await self._persist(
                execution,
                status=ExecutionStatus.WAITING,
                execution_path=path,
                resume_at=outcome.resume_at,
                lease_owner=None,
                lease_expires_at=None,
            )

        variables = {**execution.variables, **outcome.variables}
        if outcome.next_node_ids:
            return await self._persist(
                execution,
                current_node_id=outcome.next_node_ids[0],
                execution_path=path,
                variables=variables,
                resume_at=None,
                lease_expires_at=self._lease_until(now),
            )

        logger.info("Execution completed", execution_id=execution.id, node_id=node_id)
        return await self._persist(
            execution,
            status=ExecutionStatus.COMPLETED,
            execution_path=path,
            variables=variables,
            result=f"Completed at node '{node_id}'",
            resume_at=None,
            completed_at=utcnow(),
            lease_owner=None,
            lease_expires_at=None,
        )

    async def _evaluate(
        self,
        execution: Execution,
        graph: AutomationGraph,
        node: NodeDefinition,
        visit: int,
        now: datetime,
    ) -> Outcome:
        if node.kind == NodeKind.TRIGGER and visit > 0:
            return Fail(
                error=f"Trigger node '{node.node_id}' cannot be re-entered",
                code="trigger_reentry",
            )

        try:
            evaluator = self.registry.for_node(node)
        except InvalidNodeTypeError as e:
            return Fail.from_error(e)

        context = ExecutionContext.for_execution(execution, graph=graph, sender=self.sender, now=now)
        try:
            return await evaluator.evaluate(node, context)
        except Exception as e:
            logger.exception(
                "Evaluator raised unexpectedly",
                execution_id=execution.id,
                node_id=node.node_id,
                node_type=node.kind.value,
            )
            return Fail(error=f"{type(e).__name__}: {e}", code="unexpected_error")

    async def _open_visit(
        self, execution: Execution, node: NodeDefinition, visit: int
    ) -> Optional[VisitRecord]:
        """Write the started entry, or close an orphaned one.

        An orphaned entry is left by a worker that stopped after logging
        the start of a visit but before saving the step. Its side effects
        are unknown, so the visit is closed as failed instead of repeated.
        """
        snapshot: Dict[str, Any] = {"config": node.config, "variables": dict(execution.variables)}
        if node.kind == NodeKind.TRIGGER:
            snapshot["event"] = execution.trigger_data

        try:
            return await self.audit.started(execution.id, visit, node, snapshot)
        except ConcurrencyConflict:
            entries = [e for e in await self.audit.entries(execution.id) if e.visit == visit]
            logger.warning(
                "Found interrupted visit",
                execution_id=execution.id,
                visit=visit,
                node_id=node.node_id,
            )
            if not any(e.status != LogStatus.STARTED for e in entries):
                await self.audit.failed(
                    VisitRecord(execution_id=execution.id, visit=visit, node=node, input=snapshot),
                    "Visit interrupted before completion",
                    code="interrupted_visit",
                )
            return None

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def _lease_until(self, now: datetime) -> datetime:
        return now + timedelta(seconds=self.config.lease_seconds)

    async def _persist(self, execution: Execution, **changes: Any) -> Execution:
        return await self.executions.update_execution(execution.model_copy(update=changes))

    async def _release(self, execution: Execution) -> Execution:
        return await self._persist(execution, lease_owner=None, lease_expires_at=None)

    async def _fail(
        self,
        execution: Execution,
        error: str,
        code: str = "node_error",
        path: Optional[List[str]] = None,
    ) -> Execution:
        logger.warning(
            "Execution failed",
            execution_id=execution.id,
            automation_id=execution.automation_id,
            node_id=execution.current_node_id,
            error=error,
            error_code=code,
        )
        changes: Dict[str, Any] = {
            "status": ExecutionStatus.FAILED,
            "error": error,
            "resume_at": None,
            "completed_at": utcnow(),
            "lease_owner": None,
            "lease_expires_at": None,
        }
        if path is not None:
            changes["execution_path"] = path
        return await self._persist(execution, **changes)

    async def _resume_one(self, execution: Execution, now: datetime) -> bool:
        started = time.perf_counter()
        try:
            result, advanced = await self._run_turn(execution.id, now=now)
        except ConcurrencyConflict:
            logger.info("Execution resumed elsewhere", execution_id=execution.id)
            return False
        if advanced:
            logger.info(
                "Execution resumed",
                execution_id=execution.id,
                status=result.status.value,
                duration_ms=round((time.perf_counter() - started) * 1000, 3),
            )
        return advanced

    async def _cancel_one(self, execution_id: str, reason: str) -> bool:
        now = utcnow()
        try:
            execution = await self.executions.claim_execution(
                execution_id, self._lease_token(), self._lease_until(now), now
            )
        except ConcurrencyConflict:
            logger.info("Execution busy; left to its current worker", execution_id=execution_id)
            return False
        if execution.status.is_terminal:
            await self._release(execution)
            return False
        try:
            await self._fail(execution, reason, code="cancelled")
        except ConcurrencyConflict:
            return False
        return True

    def __repr__(self) -> str:
        return f"ExecutionEngine(worker_id='{self.worker_id}', max_steps={self.config.max_steps})"
