"""Trigger node evaluators.

Triggers are evaluated twice in an automation's life: once in
match-only mode by the dispatcher (``matches``) to decide whether an
event starts a run, and once as the first visit of that run
(``evaluate``), which records what matched and advances. A trigger is
never re-entered later in a run.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from pulse.core.events import EventType
from pulse.core.models import NodeDefinition, NodeKind
from pulse.core.state import ExecutionContext
from pulse.nodes.base import Advance, BaseEvaluator, Outcome
from pulse.utils.errors import ConfigurationError, NodeEvaluationError


class TriggerEvaluator(BaseEvaluator):
    """Common behaviour for trigger subtypes.

    Subclasses set ``event_types`` and implement ``_matches`` and,
    optionally, ``capture``.
    """

    kind = NodeKind.TRIGGER
    event_types: tuple = ()

    async def matches(self, node: NodeDefinition, context: ExecutionContext) -> bool:
        """Match-only mode: does the event in ``context`` start this trigger?

        Raises:
            ConfigurationError: If the trigger configuration is malformed
        """
        if context.event is None or context.event.type not in self.event_types:
            return False
        return self._matches(node, context)

    def _matches(self, node: NodeDefinition, context: ExecutionContext) -> bool:
        return True

    def capture(self, node: NodeDefinition, context: ExecutionContext) -> Dict[str, Any]:
        """Variables recorded when the trigger fires."""
        return {}

    async def _evaluate_impl(self, node: NodeDefinition, context: ExecutionContext) -> Outcome:
        captured = self.capture(node, context)
        return Advance(
            next_node_ids=self.successors(node, context),
            output={"trigger": node.subtype, "matched": True, **captured},
            variables=captured,
        )


class MessageReceivedTrigger(TriggerEvaluator):
    """Fires on every inbound message."""

    subtypes = ("message_received",)
    event_types = (EventType.MESSAGE_RECEIVED,)

    def capture(self, node: NodeDefinition, context: ExecutionContext) -> Dict[str, Any]:
        return {"message_text": context.payload.get("text", "")}


class KeywordMatchTrigger(TriggerEvaluator):
    """Fires when an inbound message matches one of the configured keywords.

    Config:
        keywords: List of keywords (required)
        match_type: "exact" (default), "contains" or "starts_with"
        case_sensitive: Defaults to False
    """

    subtypes = ("keyword_match", "keyword")
    event_types = (EventType.MESSAGE_RECEIVED,)

    MATCH_TYPES = ("exact", "contains", "starts_with")

    def _keywords(self, node: NodeDefinition) -> List[str]:
        keywords = self.require(node, "keywords")
        if isinstance(keywords, str):
            keywords = [keywords]
        if not isinstance(keywords, list):
            raise ConfigurationError(
                f"keyword_match node '{node.node_id}': 'keywords' must be a list",
                code="invalid_config",
            )
        return [str(keyword) for keyword in keywords]

    def find_keyword(self, node: NodeDefinition, text: str) -> Optional[str]:
        """Return the first configured keyword that matches ``text``."""
        match_type = node.config.get("match_type", "exact")
        if match_type not in self.MATCH_TYPES:
            raise ConfigurationError(
                f"keyword_match node '{node.node_id}': unknown match_type '{match_type}'",
                code="invalid_config",
            )
        case_sensitive = bool(node.config.get("case_sensitive", False))

        candidate = text.strip() if case_sensitive else text.strip().lower()
        for keyword in self._keywords(node):
            wanted = keyword.strip() if case_sensitive else keyword.strip().lower()
            if not wanted:
                continue
            if match_type == "exact" and candidate == wanted:
                return keyword
            if match_type == "contains" and wanted in candidate:
                return keyword
            if match_type == "starts_with" and candidate.startswith(wanted):
                return keyword
        return None

    def _matches(self, node: NodeDefinition, context: ExecutionContext) -> bool:
        text = context.payload.get("text")
        if not isinstance(text, str):
            return False
        return self.find_keyword(node, text) is not None

    def capture(self, node: NodeDefinition, context: ExecutionContext) -> Dict[str, Any]:
        text = context.payload.get("text") or ""
        return {
            "message_text": text,
            "matched_keyword": self.find_keyword(node, text),
        }


class ScheduleTrigger(TriggerEvaluator):
    """Fires on schedule ticks whose time matches a cron expression.

    Config:
        cron: Five-field cron expression (required)
        timezone: IANA timezone the expression is written in (default UTC)
    """

    subtypes = ("schedule",)
    event_types = (EventType.SCHEDULE,)

    def _scheduled_for(self, node: NodeDefinition, context: ExecutionContext) -> datetime:
        raw = context.payload.get("scheduled_for")
        try:
            scheduled_for = datetime.fromisoformat(raw) if isinstance(raw, str) else context.now
        except ValueError:
            raise NodeEvaluationError(
                f"schedule node '{node.node_id}': malformed tick time '{raw}'",
                code="invalid_event",
            )

        tz_name = node.config.get("timezone")
        if not tz_name:
            return scheduled_for
        zone = None
        if isinstance(tz_name, str):
            try:
                zone = ZoneInfo(tz_name)
            except (ZoneInfoNotFoundError, ValueError):
                pass
        if zone is None:
            raise ConfigurationError(
                f"schedule node '{node.node_id}': unknown timezone '{tz_name}'",
                code="invalid_config",
            )
        return scheduled_for.astimezone(zone)

    def _matches(self, node: NodeDefinition, context: ExecutionContext) -> bool:
        cron = self.require(node, "cron")
        if not isinstance(cron, str) or not croniter.is_valid(cron):
            raise ConfigurationError(
                f"schedule node '{node.node_id}': invalid cron expression '{cron}'",
                code="invalid_config",
            )
        return croniter.match(cron, self._scheduled_for(node, context))

    def capture(self, node: NodeDefinition, context: ExecutionContext) -> Dict[str, Any]:
        return {"scheduled_for": context.payload.get("scheduled_for")}


class WebhookTrigger(TriggerEvaluator):
    """Fires on webhook calls to a configured path.

    Config:
        path: Webhook path (required), compared without surrounding slashes
        required_fields: Body fields that must be present
    """

    subtypes = ("webhook", "api_webhook")
    event_types = (EventType.WEBHOOK,)

    @staticmethod
    def _normalize(path: Any) -> str:
        return str(path or "").strip().strip("/")

    def _matches(self, node: NodeDefinition, context: ExecutionContext) -> bool:
        path = self._normalize(self.require(node, "path"))
        if self._normalize(context.payload.get("path")) != path:
            return False
        body = context.payload.get("body") or {}
        required = node.config.get("required_fields") or []
        if not isinstance(required, list):
            raise ConfigurationError(
                f"webhook node '{node.node_id}': 'required_fields' must be a list",
                code="invalid_config",
            )
        return isinstance(body, dict) and all(name in body for name in required)

    def capture(self, node: NodeDefinition, context: ExecutionContext) -> Dict[str, Any]:
        return {"webhook": dict(context.payload.get("body") or {})}
