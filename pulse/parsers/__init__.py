"""Parsers for converting builder JSON to automation graphs."""

from pulse.parsers.react_flow import ReactFlowJSON, ReactFlowParser, to_react_flow

__all__ = [
    "ReactFlowJSON",
    "ReactFlowParser",
    "to_react_flow",
]
