"""Persisted record shapes for automations, their graphs and their runs.

Automations own their nodes and edges (deleting an automation removes
both). Executions only reference their automation; they own their log
entries, which are append-only and never change after being written.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class AutomationStatus(str, Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    PAUSED = "paused"


class NodeKind(str, Enum):
    TRIGGER = "trigger"
    ACTION = "action"
    CONDITION = "condition"
    DELAY = "delay"


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    WAITING = "waiting"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)


class LogStatus(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


class Automation(BaseModel):
    """An authored workflow plus its activation state."""

    id: str = Field(default_factory=new_id)
    channel_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    trigger: Optional[str] = None  # message_received, keyword, schedule, api_webhook
    trigger_config: Dict[str, Any] = Field(default_factory=dict)
    status: AutomationStatus = AutomationStatus.INACTIVE
    execution_count: int = 0
    last_executed_at: Optional[datetime] = None
    graph_version: int = 0
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == AutomationStatus.ACTIVE


class NodeDefinition(BaseModel):
    """One step of an automation graph.

    ``node_id`` is the authoring identifier and is unique within its
    automation. ``config`` is subtype specific. ``position`` and
    ``measured`` are layout hints only.
    """

    automation_id: str
    node_id: str
    kind: NodeKind
    subtype: str
    config: Dict[str, Any] = Field(default_factory=dict)
    position: Dict[str, float] = Field(default_factory=dict)
    measured: Dict[str, float] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class EdgeDefinition(BaseModel):
    """Directed transition between two nodes of the same automation.

    ``branch`` names the condition outcome that selects this edge; it is
    ignored for edges leaving non-condition nodes.
    """

    id: str = Field(default_factory=new_id)
    automation_id: str
    source: str
    target: str
    branch: Optional[str] = None
    animated: bool = False
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def key(self) -> tuple:
        return (self.automation_id, self.source, self.target, self.branch)


class Execution(BaseModel):
    """One run of an automation triggered by one event."""

    id: str = Field(default_factory=new_id)
    automation_id: str
    channel_id: Optional[str] = None
    contact_id: Optional[str] = None
    conversation_id: Optional[str] = None
    trigger_data: Dict[str, Any] = Field(default_factory=dict)
    status: ExecutionStatus = ExecutionStatus.RUNNING
    current_node_id: Optional[str] = None
    execution_path: List[str] = Field(default_factory=list)
    variables: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[str] = None
    error: Optional[str] = None
    resume_at: Optional[datetime] = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    # Concurrency control
    version: int = 0
    lease_owner: Optional[str] = None
    lease_expires_at: Optional[datetime] = None

    def is_leased_by_other(self, owner: str, now: datetime) -> bool:
        """Whether a different worker holds a live lease on this execution."""
        if self.lease_owner is None or self.lease_owner == owner:
            return False
        return self.lease_expires_at is not None and self.lease_expires_at > now


class ExecutionLogEntry(BaseModel):
    """Immutable audit record of one node visit transition."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    execution_id: str
    sequence: int = 0
    visit: int
    node_id: str
    node_type: NodeKind
    node_subtype: Optional[str] = None
    status: LogStatus
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    error_code: Optional[str] = None
    duration_ms: Optional[float] = None
    executed_at: datetime = Field(default_factory=utcnow)
