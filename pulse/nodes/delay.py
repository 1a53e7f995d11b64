"""Delay node evaluators.

A delay node is visited twice. The first visit computes a resume time
strictly after the evaluation time and returns ``Defer``; the engine
parks the execution in ``waiting``. When the resume sweep re-enters the
node after that time, the evaluator sees ``context.resume_at`` and
advances.
"""

from abc import abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any

from croniter import croniter

from pulse.core.models import NodeDefinition, NodeKind
from pulse.core.state import ExecutionContext
from pulse.nodes.base import Advance, BaseEvaluator, Defer, Outcome
from pulse.utils.errors import ConfigurationError
from pulse.utils.variables import VariableResolver


UNIT_SECONDS = {
    "seconds": 1,
    "minutes": 60,
    "hours": 3600,
    "days": 86400,
}


class DelayEvaluator(BaseEvaluator):
    """Shared defer/resume handling; subclasses compute the resume time."""

    kind = NodeKind.DELAY

    @abstractmethod
    def compute_resume_at(self, node: NodeDefinition, context: ExecutionContext) -> datetime:
        pass

    async def _evaluate_impl(self, node: NodeDefinition, context: ExecutionContext) -> Outcome:
        if context.resume_at is not None:
            if context.now >= context.resume_at:
                return Advance(
                    next_node_ids=self.successors(node, context),
                    output={"resumed": True, "resume_at": context.resume_at.isoformat()},
                )
            return Defer(resume_at=context.resume_at, output={"resume_at": context.resume_at.isoformat()})

        resume_at = self.compute_resume_at(node, context)
        if resume_at <= context.now:
            raise ConfigurationError(
                f"Delay node '{node.node_id}' resolves to {resume_at.isoformat()}, "
                f"which is not after {context.now.isoformat()}",
                code="invalid_delay",
            )
        return Defer(
            resume_at=resume_at,
            output={"resume_at": resume_at.isoformat(), "subtype": node.subtype},
        )


class WaitDelay(DelayEvaluator):
    """Wait a fixed duration.

    Config:
        duration: Positive number (required)
        unit: seconds, minutes (default), hours or days
    """

    subtypes = ("wait",)

    def compute_resume_at(self, node: NodeDefinition, context: ExecutionContext) -> datetime:
        duration = self.require(node, "duration")
        unit = node.config.get("unit", "minutes")
        if unit not in UNIT_SECONDS:
            raise ConfigurationError(
                f"Delay node '{node.node_id}': unknown unit '{unit}'. "
                f"Available units: {', '.join(UNIT_SECONDS)}",
                code="invalid_config",
            )
        try:
            seconds = float(duration) * UNIT_SECONDS[unit]
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"Delay node '{node.node_id}': duration must be a number, got {duration!r}",
                code="invalid_config",
            )
        if seconds <= 0:
            raise ConfigurationError(
                f"Delay node '{node.node_id}': duration must be positive",
                code="invalid_delay",
            )
        return context.now + timedelta(seconds=seconds)


def _parse_timestamp(value: Any, node_id: str) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            raise ConfigurationError(
                f"Delay node '{node_id}': invalid timestamp {value!r}",
                code="invalid_config",
            )
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class WaitUntilDelay(DelayEvaluator):
    """Wait until an absolute time.

    Config:
        until: ISO-8601 timestamp, may be a {{template}} (required)
    """

    subtypes = ("wait_until",)

    def compute_resume_at(self, node: NodeDefinition, context: ExecutionContext) -> datetime:
        until = VariableResolver(context).resolve(self.require(node, "until"))
        if until in (None, ""):
            raise ConfigurationError(
                f"Delay node '{node.node_id}': 'until' resolved to an empty value",
                code="invalid_config",
            )
        return _parse_timestamp(until, node.node_id)


class WaitCronDelay(DelayEvaluator):
    """Wait until the next occurrence of a cron expression.

    Config:
        cron: Five-field cron expression (required)
    """

    subtypes = ("wait_cron",)

    def compute_resume_at(self, node: NodeDefinition, context: ExecutionContext) -> datetime:
        cron = self.require(node, "cron")
        if not croniter.is_valid(cron):
            raise ConfigurationError(
                f"Delay node '{node.node_id}': invalid cron expression '{cron}'",
                code="invalid_config",
            )
        return croniter(cron, context.now).get_next(datetime)
