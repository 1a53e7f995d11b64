"""Outbound message transports."""

from pulse.transport.base import MessageSender, RecordingSender, SendResult
from pulse.transport.http import HttpMessageSender

__all__ = [
    "MessageSender",
    "RecordingSender",
    "SendResult",
    "HttpMessageSender",
]
