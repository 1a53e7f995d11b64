"""Node evaluators for automation graphs."""

from pulse.nodes.base import Advance, BaseEvaluator, Defer, Evaluator, Fail, Outcome
from pulse.nodes.trigger import (
    KeywordMatchTrigger,
    MessageReceivedTrigger,
    ScheduleTrigger,
    TriggerEvaluator,
    WebhookTrigger,
)
from pulse.nodes.condition import BranchCondition, ConditionEvaluator, IfElseCondition
from pulse.nodes.action import SendMessageAction, SendTemplateAction, SetVariableAction
from pulse.nodes.delay import DelayEvaluator, WaitCronDelay, WaitDelay, WaitUntilDelay

__all__ = [
    "Advance",
    "BaseEvaluator",
    "Defer",
    "Evaluator",
    "Fail",
    "Outcome",
    "TriggerEvaluator",
    "MessageReceivedTrigger",
    "KeywordMatchTrigger",
    "ScheduleTrigger",
    "WebhookTrigger",
    "ConditionEvaluator",
    "BranchCondition",
    "IfElseCondition",
    "SendMessageAction",
    "SendTemplateAction",
    "SetVariableAction",
    "DelayEvaluator",
    "WaitDelay",
    "WaitUntilDelay",
    "WaitCronDelay",
]
