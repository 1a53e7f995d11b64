"""Inbound events handed to the trigger dispatcher.

Events come from the message intake layer (inbound messages), the
schedule ticker and the webhook intake.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from pulse.core.models import new_id, utcnow


class EventType(str, Enum):
    """Kinds of events that can start an automation."""

    MESSAGE_RECEIVED = "message_received"
    SCHEDULE = "schedule"
    WEBHOOK = "webhook"


class InboundEvent(BaseModel):
    """An event that may start one or more automations.

    Attributes:
        type: Event kind
        channel_id: Channel the event arrived on, when it has one
        contact_id: Contact the event concerns
        conversation_id: Conversation the event belongs to
        payload: Event body. Messages carry ``text``; schedule ticks carry
            ``scheduled_for``; webhooks carry ``path`` and ``body``.
        occurred_at: When the event happened
    """

    id: str = Field(default_factory=new_id)
    type: EventType
    channel_id: Optional[str] = None
    contact_id: Optional[str] = None
    conversation_id: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def message(
        cls,
        text: str,
        channel_id: Optional[str] = None,
        contact_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
        **extra: Any,
    ) -> "InboundEvent":
        """Shortcut for an inbound message event."""
        return cls(
            type=EventType.MESSAGE_RECEIVED,
            channel_id=channel_id,
            contact_id=contact_id,
            conversation_id=conversation_id,
            payload={"text": text, **extra},
        )

    @classmethod
    def schedule_tick(cls, scheduled_for: datetime) -> "InboundEvent":
        return cls(
            type=EventType.SCHEDULE,
            payload={"scheduled_for": scheduled_for.isoformat()},
            occurred_at=scheduled_for,
        )

    @classmethod
    def webhook(
        cls,
        path: str,
        body: Dict[str, Any],
        channel_id: Optional[str] = None,
        contact_id: Optional[str] = None,
    ) -> "InboundEvent":
        return cls(
            type=EventType.WEBHOOK,
            channel_id=channel_id,
            contact_id=contact_id,
            payload={"path": path, "body": body},
        )

    def snapshot(self) -> Dict[str, Any]:
        """JSON-safe copy stored as the execution's trigger data."""
        return self.model_dump(mode="json")
