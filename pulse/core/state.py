"""Runtime context handed to node evaluators."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, TYPE_CHECKING

from pulse.core.models import Execution, utcnow

if TYPE_CHECKING:
    from pulse.core.events import InboundEvent
    from pulse.core.graph import AutomationGraph
    from pulse.transport.base import MessageSender


@dataclass
class ExecutionContext:
    """Everything an evaluator may read while deciding an outcome.

    Evaluators never mutate the execution record; variable changes are
    returned in the outcome and merged by the engine.

    Attributes:
        automation_id: Automation being run
        execution_id: Execution being advanced (None in match-only mode)
        variables: Copy of the execution's variables
        trigger_data: Snapshot of the event that started the run
        contact_id: Contact the run is about
        conversation_id: Conversation the run belongs to
        channel_id: Channel the trigger arrived on
        now: Evaluation time
        resume_at: Resume time of a deferred visit being re-entered
        graph: Graph loaded for this turn
        sender: Injected message transport capability
        event: Live event (match-only mode)
    """

    automation_id: str
    execution_id: Optional[str] = None
    variables: Dict[str, Any] = field(default_factory=dict)
    trigger_data: Dict[str, Any] = field(default_factory=dict)
    contact_id: Optional[str] = None
    conversation_id: Optional[str] = None
    channel_id: Optional[str] = None
    now: datetime = field(default_factory=utcnow)
    resume_at: Optional[datetime] = None
    graph: Optional["AutomationGraph"] = field(default=None, repr=False)
    sender: Optional["MessageSender"] = field(default=None, repr=False)
    event: Optional["InboundEvent"] = None

    @classmethod
    def for_execution(
        cls,
        execution: Execution,
        graph: Optional["AutomationGraph"] = None,
        sender: Optional["MessageSender"] = None,
        now: Optional[datetime] = None,
    ) -> "ExecutionContext":
        """Build a context from a stored execution."""
        return cls(
            automation_id=execution.automation_id,
            execution_id=execution.id,
            variables=dict(execution.variables),
            trigger_data=dict(execution.trigger_data),
            contact_id=execution.contact_id,
            conversation_id=execution.conversation_id,
            channel_id=execution.channel_id,
            now=now or utcnow(),
            resume_at=execution.resume_at,
            graph=graph,
            sender=sender,
        )

    @classmethod
    def for_event(cls, automation_id: str, event: "InboundEvent") -> "ExecutionContext":
        """Build a match-only context for trigger matching."""
        return cls(
            automation_id=automation_id,
            trigger_data=event.snapshot(),
            contact_id=event.contact_id,
            conversation_id=event.conversation_id,
            channel_id=event.channel_id,
            now=event.occurred_at,
            event=event,
        )

    @property
    def payload(self) -> Dict[str, Any]:
        """Payload of the triggering event."""
        if self.event is not None:
            return self.event.payload
        return self.trigger_data.get("payload", {})

    def get_variable(self, name: str, default: Any = None) -> Any:
        return self.variables.get(name, default)

    def as_scope(self) -> Dict[str, Any]:
        """Namespace used for {{template}} and condition field lookups.

        Example:
            >>> context.as_scope()["trigger"]["text"]
            'hello'
        """
        return {
            "variables": self.variables,
            "vars": self.variables,
            "trigger": self.payload,
            "event": self.trigger_data,
            "contact": {"id": self.contact_id},
            "conversation": {"id": self.conversation_id},
            "channel": {"id": self.channel_id},
            "execution": {"id": self.execution_id, "automation_id": self.automation_id},
        }
