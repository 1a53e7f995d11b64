"""Variable resolution for template strings.

Templates use ``{{path}}`` syntax. Paths are looked up in the execution
context scope:

- ``{{variables.name}}`` or ``{{vars.name}}`` - execution variables
- ``{{trigger.text}}`` - payload of the triggering event
- ``{{contact.id}}``, ``{{conversation.id}}``, ``{{channel.id}}``
- ``{{name}}`` - bare names fall back to execution variables
"""

import re
from typing import Any, Dict

from jsonpath_ng import parse as jsonpath_parse
from jsonpath_ng.exceptions import JsonPathLexerError, JsonPathParserError

from pulse.core.state import ExecutionContext
from pulse.utils.errors import ConfigurationError


class VariableResolver:
    """Resolve {{variable}} references against an ExecutionContext.

    Example:
        >>> resolver = VariableResolver(context)
        >>> resolver.resolve("Hi {{variables.first_name}}, you said {{trigger.text}}")
        'Hi Ada, you said hello'
    """

    PATTERN = re.compile(r"\{\{([^{}]*)\}\}")

    def __init__(self, context: ExecutionContext):
        self.context = context
        self.scope = context.as_scope()

    def resolve(self, template: Any) -> Any:
        """Replace all {{variables}} with their values.

        A template consisting of exactly one reference resolves to the raw
        value, so numbers and lists survive. Missing references resolve to
        an empty string inside longer text and to None on their own.
        Non-string values are returned unchanged.
        """
        if not isinstance(template, str) or "{{" not in template:
            return template

        whole = self.PATTERN.fullmatch(template.strip())
        if whole:
            return self.lookup(whole.group(1).strip())

        def replacer(match):
            value = self.lookup(match.group(1).strip())
            return str(value) if value is not None else ""

        return self.PATTERN.sub(replacer, template)

    def resolve_all(self, data: Any) -> Any:
        """Resolve templates recursively inside dicts and lists."""
        if isinstance(data, dict):
            return {key: self.resolve_all(value) for key, value in data.items()}
        if isinstance(data, list):
            return [self.resolve_all(item) for item in data]
        return self.resolve(data)

    def lookup(self, path: str) -> Any:
        """Look up a dotted path in the scope.

        Raises:
            ConfigurationError: If the path is not a valid expression
        """
        if not path:
            return None

        root = path.split(".", 1)[0].split("[", 1)[0]
        scope: Dict[str, Any] = self.scope
        if root not in scope:
            # Bare names refer to execution variables
            scope = self.scope["variables"]

        try:
            expression = jsonpath_parse(path)
        except (JsonPathLexerError, JsonPathParserError) as e:
            raise ConfigurationError(f"Invalid variable reference '{path}': {e}")

        matches = expression.find(scope)
        if not matches:
            return None
        return matches[0].value
