"""Persistence backends for graphs and executions."""

from pulse.backends.base import ExecutionStore, GraphStore
from pulse.backends.memory import MemoryExecutionStore, MemoryGraphStore
from pulse.backends.sqlite import SQLiteExecutionStore, SQLiteGraphStore

__all__ = [
    "ExecutionStore",
    "GraphStore",
    "MemoryExecutionStore",
    "MemoryGraphStore",
    "SQLiteExecutionStore",
    "SQLiteGraphStore",
]
