"""Action node evaluators.

Send actions call the injected MessageSender found on the execution
context. A transport failure fails the run with the transport's error
code and message recorded verbatim; there is no automatic retry.
"""

from abc import abstractmethod
from typing import Any, Dict

from pulse.core.models import NodeDefinition, NodeKind
from pulse.core.state import ExecutionContext
from pulse.nodes.base import Advance, BaseEvaluator, Outcome
from pulse.transport.base import SendResult
from pulse.utils.errors import CapabilityError, ConfigurationError
from pulse.utils.variables import VariableResolver


class SendActionEvaluator(BaseEvaluator):
    """Common send flow: build payload, resolve recipient, call the sender."""

    kind = NodeKind.ACTION

    @abstractmethod
    def build_payload(self, node: NodeDefinition, resolver: VariableResolver) -> Dict[str, Any]:
        pass

    def recipient(self, node: NodeDefinition, context: ExecutionContext, resolver: VariableResolver) -> str:
        recipient = resolver.resolve(node.config.get("recipient")) or context.contact_id
        if not recipient:
            raise ConfigurationError(
                f"Action node '{node.node_id}' has no recipient and the run has no contact",
                code="missing_recipient",
            )
        return str(recipient)

    async def _evaluate_impl(self, node: NodeDefinition, context: ExecutionContext) -> Outcome:
        if context.sender is None:
            raise ConfigurationError(
                f"Action node '{node.node_id}' requires a message sender but none was injected",
                code="missing_capability",
            )

        resolver = VariableResolver(context)
        payload = self.build_payload(node, resolver)
        recipient = self.recipient(node, context, resolver)
        next_node_ids = self.successors(node, context)

        result: SendResult = await context.sender.send(recipient, payload)
        if not result.success:
            message = result.error_message or "send failed"
            raise CapabilityError(
                f"[{result.error_code}] {message}",
                code=result.error_code or CapabilityError.code,
            )

        output = {
            "recipient": recipient,
            "payload": payload,
            "external_message_id": result.external_message_id,
        }
        updates = {}
        store_as = node.config.get("store_message_id_as")
        if store_as:
            updates[store_as] = result.external_message_id

        return Advance(next_node_ids=next_node_ids, output=output, variables=updates)


class SendMessageAction(SendActionEvaluator):
    """Send a free-form text message.

    Config:
        text: Message text; {{templates}} allowed (required)
        recipient: Override recipient (defaults to the run's contact)
        store_message_id_as: Variable to receive the transport message id
    """

    subtypes = ("send_message",)

    def build_payload(self, node: NodeDefinition, resolver: VariableResolver) -> Dict[str, Any]:
        text = resolver.resolve(self.require(node, "text"))
        return {"type": "text", "text": "" if text is None else str(text)}


class SendTemplateAction(SendActionEvaluator):
    """Send a pre-approved message template.

    Config:
        template_name: Template identifier (required)
        language: Template language code (default "en")
        parameters: Template parameters; values may be {{templates}}
    """

    subtypes = ("send_template",)

    def build_payload(self, node: NodeDefinition, resolver: VariableResolver) -> Dict[str, Any]:
        parameters = node.config.get("parameters", [])
        if not isinstance(parameters, (list, dict)):
            raise ConfigurationError(
                f"send_template node '{node.node_id}': 'parameters' must be a list or object",
                code="invalid_config",
            )
        return {
            "type": "template",
            "template_name": self.require(node, "template_name"),
            "language": node.config.get("language", "en"),
            "parameters": resolver.resolve_all(parameters),
        }


class SetVariableAction(BaseEvaluator):
    """Set an execution variable.

    Config:
        name: Variable name (required)
        value: Value; strings may contain {{templates}}
    """

    kind = NodeKind.ACTION
    subtypes = ("set_variable",)

    async def _evaluate_impl(self, node: NodeDefinition, context: ExecutionContext) -> Outcome:
        name = self.require(node, "name")
        value = VariableResolver(context).resolve_all(node.config.get("value"))
        return Advance(
            next_node_ids=self.successors(node, context),
            output={"name": name, "value": value},
            variables={name: value},
        )
