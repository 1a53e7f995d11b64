"""Outbound message capability used by action nodes.

The engine never builds transport requests itself; it calls an injected
MessageSender. Implementations report failures through SendResult rather
than raising, so the action node can record the transport's own error
code and message verbatim.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable


@dataclass
class SendResult:
    """Result of one send call.

    Attributes:
        success: Whether the transport accepted the message
        external_message_id: Transport-side message identifier on success
        error_code: Transport error code on failure
        error_message: Transport error text on failure
    """

    success: bool
    external_message_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def ok(cls, external_message_id: str) -> "SendResult":
        return cls(success=True, external_message_id=external_message_id)

    @classmethod
    def failure(cls, error_code: str, error_message: Optional[str] = None) -> "SendResult":
        return cls(success=False, error_code=error_code, error_message=error_message)


@runtime_checkable
class MessageSender(Protocol):
    """Protocol for the messaging transport capability."""

    async def send(self, recipient: str, payload: Dict[str, Any]) -> SendResult:
        """Send ``payload`` to ``recipient``.

        Args:
            recipient: Contact identifier or address
            payload: Message body; ``type`` is "text" or "template"

        Returns:
            SendResult describing success or failure
        """
        ...


class RecordingSender:
    """In-memory sender that records every call.

    Useful for:
    - Testing
    - Dry runs of an automation

    Example:
        >>> sender = RecordingSender(fail_with=("131026", "Recipient unreachable"))
        >>> result = await sender.send("contact-1", {"type": "text", "text": "hi"})
        >>> result.success
        False
    """

    def __init__(self, fail_with: Optional[Tuple[str, str]] = None):
        self.sent: List[Tuple[str, Dict[str, Any]]] = []
        self.fail_with = fail_with
        self._counter = 0

    async def send(self, recipient: str, payload: Dict[str, Any]) -> SendResult:
        self.sent.append((recipient, dict(payload)))
        if self.fail_with:
            code, message = self.fail_with
            return SendResult.failure(code, message)
        self._counter += 1
        return SendResult.ok(f"msg-{self._counter}")

    def __repr__(self) -> str:
        return f"RecordingSender(sent={len(self.sent)})"
