"""Read-only query surface over executions and their audit logs."""

from typing import List, Optional

from pulse.backends.base import ExecutionStore
from pulse.core.models import Execution, ExecutionLogEntry, ExecutionStatus


class ExecutionQueryService:
    """Look up executions and logs without touching run state.

    Results stay available after their automation is deleted.
    """

    def __init__(self, store: ExecutionStore):
        self.store = store

    async def get_execution(self, execution_id: str) -> Execution:
        """Raises NotFoundError if the execution does not exist."""
        return await self.store.get_execution(execution_id)

    async def list_executions(
        self,
        automation_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: Optional[int] = None,
    ) -> List[Execution]:
        """Executions newest first, optionally filtered.

        Args:
            automation_id: Only executions of this automation
            status: Only executions in this status
            limit: Maximum number of executions returned
        """
        executions = await self.store.list_executions(automation_id, status)
        if limit is not None:
            executions = executions[:limit]
        return executions

    async def get_execution_logs(self, execution_id: str) -> List[ExecutionLogEntry]:
        """Log entries in write order.

        Raises:
            NotFoundError: If the execution does not exist
        """
        await self.store.get_execution(execution_id)
        return await self.store.get_logs(execution_id)
