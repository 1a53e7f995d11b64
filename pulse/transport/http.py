"""MessageSender backed by an HTTP messaging gateway.

The gateway accepts ``POST {base_url}{endpoint}`` with a JSON body of
``{"to": recipient, **payload}`` and answers with the message id. Error
responses of the form ``{"error": {"code": ..., "message": ...}}`` are
reported back verbatim.
"""

import json
from typing import Any, Dict, Optional

import httpx
import structlog

from pulse.transport.base import SendResult
from pulse.utils.config import EngineConfig

logger = structlog.get_logger(__name__)


class HttpMessageSender:
    """Send messages through an HTTP gateway with httpx.

    Example:
        >>> sender = HttpMessageSender("https://gateway.example.com", token="secret")
        >>> result = await sender.send("+15550100", {"type": "text", "text": "Hi"})
        >>> result.external_message_id
        'wamid.HBgL...'
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        endpoint: str = "/messages",
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize sender.

        Args:
            base_url: Gateway base URL
            token: Bearer token sent in the Authorization header
            endpoint: Path of the send endpoint
            timeout_seconds: Request timeout in seconds (default: 30)
            transport: Custom httpx transport (e.g. ``httpx.MockTransport`` in tests)
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    @classmethod
    def from_config(cls, config: EngineConfig) -> "HttpMessageSender":
        """Build a sender from PULSE_GATEWAY_URL / PULSE_GATEWAY_TOKEN."""
        return cls(config.ensure_gateway(), token=config.gateway_token)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def send(self, recipient: str, payload: Dict[str, Any]) -> SendResult:
        url = self.base_url + self.endpoint
        body = {"to": recipient, **payload}

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self.transport
            ) as client:
                response = await client.post(url, json=body, headers=self._headers())
        except httpx.TimeoutException:
            logger.warning("Gateway request timed out", url=url, recipient=recipient)
            return SendResult.failure(
                "timeout",
                f"Gateway request timed out after {self.timeout_seconds} seconds",
            )
        except httpx.HTTPError as e:
            logger.warning("Gateway request failed", url=url, recipient=recipient, error=str(e))
            return SendResult.failure("connection_error", f"{type(e).__name__}: {e}")

        data = self._parse(response)
        if response.is_success:
            message_id = None
            if isinstance(data, dict):
                message_id = data.get("id") or data.get("message_id")
                messages = data.get("messages")
                if not message_id and isinstance(messages, list) and messages:
                    message_id = messages[0].get("id")
            if not message_id:
                return SendResult.failure(
                    "invalid_response", "Gateway accepted the message but returned no id"
                )
            return SendResult.ok(str(message_id))

        code, message = f"http_{response.status_code}", response.text
        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            error = data["error"]
            code = str(error.get("code", code))
            message = error.get("message", message)
        logger.info(
            "Gateway rejected message",
            recipient=recipient,
            status_code=response.status_code,
            error_code=code,
        )
        return SendResult.failure(code, message)

    @staticmethod
    def _parse(response: httpx.Response) -> Any:
        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                return response.json()
            except (json.JSONDecodeError, ValueError):
                return response.text
        return response.text

    def __repr__(self) -> str:
        return f"HttpMessageSender(base_url='{self.base_url}')"
