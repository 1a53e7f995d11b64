"""SQLite stores for durable persistence.

These stores use aiosqlite and survive process restarts. Both stores can
share one database file. Node and edge rows cascade from their
automation; executions hold no foreign key to their automation, so
deleting an automation never removes run history. Log rows cascade from
their execution only.

The database schema mirrors the records in ``pulse.core.models``;
dict/list columns are JSON-encoded TEXT and timestamps are ISO-8601 UTC.
"""

import json
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import aiosqlite

from pulse.backends.base import check_edge_endpoints, graph_from_rows
from pulse.core.graph import AutomationGraph
from pulse.core.models import (
    Automation,
    AutomationStatus,
    EdgeDefinition,
    Execution,
    ExecutionLogEntry,
    ExecutionStatus,
    NodeDefinition,
    NodeKind,
    utcnow,
)
from pulse.utils.errors import ConcurrencyConflict, NotFoundError, ValidationError


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS automations (
        id TEXT PRIMARY KEY,
        channel_id TEXT,
        name TEXT NOT NULL,
        description TEXT,
        trigger TEXT,
        trigger_config TEXT NOT NULL DEFAULT '{}',
        status TEXT NOT NULL DEFAULT 'inactive',
        execution_count INTEGER NOT NULL DEFAULT 0,
        last_executed_at TEXT,
        graph_version INTEGER NOT NULL DEFAULT 0,
        created_by TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS automations_status_idx ON automations(status)",
    "CREATE INDEX IF NOT EXISTS automations_channel_idx ON automations(channel_id)",
    """
    CREATE TABLE IF NOT EXISTS automation_nodes (
        automation_id TEXT NOT NULL REFERENCES automations(id) ON DELETE CASCADE,
        node_id TEXT NOT NULL,
        kind TEXT NOT NULL,
        subtype TEXT NOT NULL,
        config TEXT NOT NULL DEFAULT '{}',
        position TEXT NOT NULL DEFAULT '{}',
        measured TEXT NOT NULL DEFAULT '{}',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (automation_id, node_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS automation_edges (
        id TEXT PRIMARY KEY,
        automation_id TEXT NOT NULL REFERENCES automations(id) ON DELETE CASCADE,
        source TEXT NOT NULL,
        target TEXT NOT NULL,
        branch TEXT NOT NULL DEFAULT '',
        animated INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        UNIQUE (automation_id, source, target, branch),
        FOREIGN KEY (automation_id, source)
            REFERENCES automation_nodes(automation_id, node_id) ON DELETE CASCADE,
        FOREIGN KEY (automation_id, target)
            REFERENCES automation_nodes(automation_id, node_id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS automation_edges_automation_idx ON automation_edges(automation_id)",
    """
    CREATE TABLE IF NOT EXISTS automation_executions (
        id TEXT PRIMARY KEY,
        automation_id TEXT NOT NULL,
        channel_id TEXT,
        contact_id TEXT,
        conversation_id TEXT,
        trigger_data TEXT NOT NULL DEFAULT '{}',
        status TEXT NOT NULL,
        current_node_id TEXT,
        execution_path TEXT NOT NULL DEFAULT '[]',
        variables TEXT NOT NULL DEFAULT '{}',
        result TEXT,
        error TEXT,
        resume_at TEXT,
        started_at TEXT NOT NULL,
        completed_at TEXT,
        version INTEGER NOT NULL DEFAULT 0,
        lease_owner TEXT,
        lease_expires_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS automation_executions_automation_idx ON automation_executions(automation_id)",
    "CREATE INDEX IF NOT EXISTS automation_executions_status_idx ON automation_executions(status, resume_at)",
    """
    CREATE TABLE IF NOT EXISTS automation_execution_logs (
        id TEXT PRIMARY KEY,
        execution_id TEXT NOT NULL REFERENCES automation_executions(id) ON DELETE CASCADE,
        sequence INTEGER NOT NULL,
        visit INTEGER NOT NULL,
        node_id TEXT NOT NULL,
        node_type TEXT NOT NULL,
        node_subtype TEXT,
        status TEXT NOT NULL,
        input TEXT NOT NULL DEFAULT '{}',
        output TEXT NOT NULL DEFAULT '{}',
        error TEXT,
        error_code TEXT,
        duration_ms REAL,
        executed_at TEXT NOT NULL,
        UNIQUE (execution_id, sequence),
        UNIQUE (execution_id, visit, status)
    )
    """,
    "CREATE INDEX IF NOT EXISTS automation_execution_logs_execution_idx ON automation_execution_logs(execution_id)",
]


def _ts(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _json(value: Any) -> str:
    return json.dumps(value, default=str)


def _row_dict(row: aiosqlite.Row, json_fields: tuple = ()) -> Dict[str, Any]:
    data = dict(row)
    for name in json_fields:
        if data.get(name) is not None:
            data[name] = json.loads(data[name])
    return data


class SQLiteBase:
    """Connection handling and schema creation shared by both stores."""

    def __init__(self, db_path: str = "pulse.db"):
        """Initialize SQLite store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._initialized = False

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        await self._ensure_initialized()
        async with aiosqlite.connect(self.db_path, timeout=30) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON")
            yield db

    async def _ensure_initialized(self) -> None:
        """Ensure database and tables exist."""
        if self._initialized:
            return

        db_dir = Path(self.db_path).parent
        if db_dir and not db_dir.exists():
            db_dir.mkdir(parents=True, exist_ok=True)

        async with aiosqlite.connect(self.db_path, timeout=30) as db:
            await db.execute("PRAGMA journal_mode = WAL")
            for statement in SCHEMA:
                await db.execute(statement)
            await db.commit()

        self._initialized = True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(db_path='{self.db_path}')"


class SQLiteGraphStore(SQLiteBase):
    """SQLite-backed automation, node and edge storage."""

    @staticmethod
    def _automation(row: aiosqlite.Row) -> Automation:
        return Automation.model_validate(_row_dict(row, ("trigger_config",)))

    @staticmethod
    def _node(row: aiosqlite.Row) -> NodeDefinition:
        return NodeDefinition.model_validate(_row_dict(row, ("config", "position", "measured")))

    @staticmethod
    def _edge(row: aiosqlite.Row) -> EdgeDefinition:
        data = _row_dict(row)
        data["branch"] = data["branch"] or None
        data["animated"] = bool(data["animated"])
        return EdgeDefinition.model_validate(data)

    async def _fetch_automation(self, db: aiosqlite.Connection, automation_id: str) -> Automation:
        async with db.execute("SELECT * FROM automations WHERE id = ?", (automation_id,)) as cursor:
            row = await cursor.fetchone()
        if row is None:
            raise NotFoundError("Automation", automation_id)
        return self._automation(row)

    async def _fetch_nodes(self, db: aiosqlite.Connection, automation_id: str) -> List[NodeDefinition]:
        async with db.execute(
            "SELECT * FROM automation_nodes WHERE automation_id = ? ORDER BY rowid",
            (automation_id,),
        ) as cursor:
            return [self._node(row) for row in await cursor.fetchall()]

    async def _fetch_edges(self, db: aiosqlite.Connection, automation_id: str) -> List[EdgeDefinition]:
        async with db.execute(
            "SELECT * FROM automation_edges WHERE automation_id = ? ORDER BY rowid",
            (automation_id,),
        ) as cursor:
            return [self._edge(row) for row in await cursor.fetchall()]

    async def _touch(self, db: aiosqlite.Connection, automation_id: str) -> None:
        await db.execute(
            "UPDATE automations SET graph_version = graph_version + 1, updated_at = ? WHERE id = ?",
            (_ts(utcnow()), automation_id),
        )

    async def _insert_node(self, db: aiosqlite.Connection, node: NodeDefinition) -> None:
        await db.execute(
            """
            INSERT INTO automation_nodes
                (automation_id, node_id, kind, subtype, config, position, measured, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(automation_id, node_id) DO UPDATE SET
                kind = excluded.kind,
                subtype = excluded.subtype,
                config = excluded.config,
                position = excluded.position,
                measured = excluded.measured,
                updated_at = excluded.updated_at
            """,
            (
                node.automation_id,
                node.node_id,
                node.kind.value,
                node.subtype,
                _json(node.config),
                _json(node.position),
                _json(node.measured),
                _ts(node.created_at),
                _ts(utcnow()),
            ),
        )

    async def _insert_edge(self, db: aiosqlite.Connection, edge: EdgeDefinition) -> None:
        await db.execute(
            """
            INSERT INTO automation_edges
                (id, automation_id, source, target, branch, animated, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                source = excluded.source,
                target = excluded.target,
                branch = excluded.branch,
                animated = excluded.animated
            """,
            (
                edge.id,
                edge.automation_id,
                edge.source,
                edge.target,
                edge.branch or "",
                int(edge.animated),
                _ts(edge.created_at),
            ),
        )

    async def create_automation(self, automation: Automation) -> Automation:
        async with self._connect() as db:
            try:
                await db.execute(
                    """
                    INSERT INTO automations
                        (id, channel_id, name, description, trigger, trigger_config, status,
                         execution_count, last_executed_at, graph_version, created_by,
                         created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        automation.id,
                        automation.channel_id,
                        automation.name,
                        automation.description,
                        automation.trigger,
                        _json(automation.trigger_config),
                        automation.status.value,
                        automation.execution_count,
                        _ts(automation.last_executed_at),
                        automation.graph_version,
                        automation.created_by,
                        _ts(automation.created_at),
                        _ts(automation.updated_at),
                    ),
                )
            except sqlite3.IntegrityError:
                raise ValidationError(f"Automation already exists: {automation.id}")
            await db.commit()
        return automation

    async def get_automation(self, automation_id: str) -> Automation:
        async with self._connect() as db:
            return await self._fetch_automation(db, automation_id)

    async def list_automations(self, status: Optional[AutomationStatus] = None) -> List[Automation]:
        query = "SELECT * FROM automations"
        params: tuple = ()
        if status is not None:
            query += " WHERE status = ?"
            params = (AutomationStatus(status).value,)
        async with self._connect() as db:
            async with db.execute(query + " ORDER BY created_at", params) as cursor:
                return [self._automation(row) for row in await cursor.fetchall()]

    async def set_automation_status(self, automation_id: str, status: AutomationStatus) -> Automation:
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE automations SET status = ?, updated_at = ? WHERE id = ?",
                (AutomationStatus(status).value, _ts(utcnow()), automation_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Automation", automation_id)
            await db.commit()
            return await self._fetch_automation(db, automation_id)

    async def delete_automation(self, automation_id: str) -> None:
        async with self._connect() as db:
            cursor = await db.execute("DELETE FROM automations WHERE id = ?", (automation_id,))
            if cursor.rowcount == 0:
                raise NotFoundError("Automation", automation_id)
            await db.commit()

    async def upsert_node(self, node: NodeDefinition) -> NodeDefinition:
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE")
            await self._fetch_automation(db, node.automation_id)
            await self._insert_node(db, node)
            async with db.execute(
                "SELECT COUNT(*) FROM automation_nodes WHERE automation_id = ? AND kind = ?",
                (node.automation_id, NodeKind.TRIGGER.value),
            ) as cursor:
                (triggers,) = await cursor.fetchone()
            if triggers == 0:
                await db.rollback()
                raise ValidationError(
                    f"Automation {node.automation_id} must keep at least one trigger node"
                )
            await self._touch(db, node.automation_id)
            await db.commit()
        return node

    async def upsert_edge(self, edge: EdgeDefinition) -> EdgeDefinition:
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE")
            await self._fetch_automation(db, edge.automation_id)
            nodes = {n.node_id: n for n in await self._fetch_nodes(db, edge.automation_id)}
            try:
                check_edge_endpoints(edge, nodes)
                await self._insert_edge(db, edge)
            except sqlite3.IntegrityError:
                await db.rollback()
                raise ValidationError(f"Duplicate edge {edge.source} -> {edge.target}")
            except ValidationError:
                await db.rollback()
                raise
            await self._touch(db, edge.automation_id)
            await db.commit()
        return edge

    async def delete_node(self, automation_id: str, node_id: str) -> None:
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE")
            nodes = {n.node_id: n for n in await self._fetch_nodes(db, automation_id)}
            if node_id not in nodes:
                await db.rollback()
                raise NotFoundError("Node", node_id)
            remaining = [n for n in nodes.values() if n.node_id != node_id]
            if not any(n.kind == NodeKind.TRIGGER for n in remaining):
                await db.rollback()
                raise ValidationError(
                    f"Cannot delete '{node_id}': automation {automation_id} must keep a trigger node"
                )
            await db.execute(
                "DELETE FROM automation_nodes WHERE automation_id = ? AND node_id = ?",
                (automation_id, node_id),
            )
            await self._touch(db, automation_id)
            await db.commit()

    async def delete_edge(self, automation_id: str, edge_id: str) -> None:
        async with self._connect() as db:
            cursor = await db.execute(
                "DELETE FROM automation_edges WHERE automation_id = ? AND id = ?",
                (automation_id, edge_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Edge", edge_id)
            await self._touch(db, automation_id)
            await db.commit()

    async def replace_graph(
        self,
        automation_id: str,
        nodes: List[NodeDefinition],
        edges: List[EdgeDefinition],
    ) -> AutomationGraph:
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE")
            try:
                automation = await self._fetch_automation(db, automation_id)
                graph_from_rows(automation, nodes, edges).validate()
                await db.execute("DELETE FROM automation_nodes WHERE automation_id = ?", (automation_id,))
                for node in nodes:
                    await self._insert_node(db, node)
                for edge in edges:
                    await self._insert_edge(db, edge)
            except (ValidationError, NotFoundError):
                await db.rollback()
                raise
            except sqlite3.IntegrityError as e:
                await db.rollback()
                raise ValidationError(f"Graph for automation {automation_id} rejected: {e}")
            await self._touch(db, automation_id)
            await db.commit()
        return await self.get_graph(automation_id)

    async def get_graph(self, automation_id: str) -> AutomationGraph:
        async with self._connect() as db:
            automation = await self._fetch_automation(db, automation_id)
            nodes = await self._fetch_nodes(db, automation_id)
            edges = await self._fetch_edges(db, automation_id)
        return graph_from_rows(automation, nodes, edges)

    async def list_active_automation_ids(self, channel_id: Optional[str] = None) -> List[str]:
        query = "SELECT id FROM automations WHERE status = ?"
        params: tuple = (AutomationStatus.ACTIVE.value,)
        if channel_id is not None:
            query += " AND (channel_id IS NULL OR channel_id = ?)"
            params += (channel_id,)
        async with self._connect() as db:
            async with db.execute(query + " ORDER BY created_at", params) as cursor:
                return [row["id"] for row in await cursor.fetchall()]

    async def record_run(self, automation_id: str, at: datetime) -> None:
        async with self._connect() as db:
            cursor = await db.execute(
                """
                UPDATE automations
                SET execution_count = execution_count + 1, last_executed_at = ?
                WHERE id = ?
                """,
                (_ts(at), automation_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Automation", automation_id)
            await db.commit()


class SQLiteExecutionStore(SQLiteBase):
    """SQLite-backed execution and log storage."""

    JSON_FIELDS = ("trigger_data", "execution_path", "variables")

    def _execution(self, row: aiosqlite.Row) -> Execution:
        return Execution.model_validate(_row_dict(row, self.JSON_FIELDS))

    @staticmethod
    def _log(row: aiosqlite.Row) -> ExecutionLogEntry:
        return ExecutionLogEntry.model_validate(_row_dict(row, ("input", "output")))

    async def _fetch(self, db: aiosqlite.Connection, execution_id: str) -> Execution:
        async with db.execute(
            "SELECT * FROM automation_executions WHERE id = ?", (execution_id,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            raise NotFoundError("Execution", execution_id)
        return self._execution(row)

    async def create_execution(self, execution: Execution) -> Execution:
        async with self._connect() as db:
            try:
                await db.execute(
                    """
                    INSERT INTO automation_executions
                        (id, automation_id, channel_id, contact_id, conversation_id, trigger_data,
                         status, current_node_id, execution_path, variables, result, error,
                         resume_at, started_at, completed_at, version, lease_owner, lease_expires_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        execution.id,
                        execution.automation_id,
                        execution.channel_id,
                        execution.contact_id,
                        execution.conversation_id,
                        _json(execution.trigger_data),
                        execution.status.value,
                        execution.current_node_id,
                        _json(execution.execution_path),
                        _json(execution.variables),
                        execution.result,
                        execution.error,
                        _ts(execution.resume_at),
                        _ts(execution.started_at),
                        _ts(execution.completed_at),
                        execution.version,
                        execution.lease_owner,
                        _ts(execution.lease_expires_at),
                    ),
                )
            except sqlite3.IntegrityError:
                raise ValidationError(f"Execution already exists: {execution.id}")
            await db.commit()
        return execution

    async def get_execution(self, execution_id: str) -> Execution:
        async with self._connect() as db:
            return await self._fetch(db, execution_id)

    async def update_execution(self, execution: Execution) -> Execution:
        async with self._connect() as db:
            cursor = await db.execute(
                """
                UPDATE automation_executions SET
                    status = ?, current_node_id = ?, execution_path = ?, variables = ?,
                    result = ?, error = ?, resume_at = ?, completed_at = ?,
                    lease_owner = ?, lease_expires_at = ?, version = version + 1
                WHERE id = ? AND version = ?
                """,
                (
                    execution.status.value,
                    execution.current_node_id,
                    _json(execution.execution_path),
                    _json(execution.variables),
                    execution.result,
                    execution.error,
                    _ts(execution.resume_at),
                    _ts(execution.completed_at),
                    execution.lease_owner,
                    _ts(execution.lease_expires_at),
                    execution.id,
                    execution.version,
                ),
            )
            if cursor.rowcount == 0:
                stored = await self._fetch(db, execution.id)
                raise ConcurrencyConflict(
                    execution.id,
                    f"expected version {execution.version}, found {stored.version}",
                )
            await db.commit()
            return await self._fetch(db, execution.id)

    async def claim_execution(
        self, execution_id: str, owner: str, lease_until: datetime, now: datetime
    ) -> Execution:
        async with self._connect() as db:
            cursor = await db.execute(
                """
                UPDATE automation_executions
                SET lease_owner = ?, lease_expires_at = ?, version = version + 1
                WHERE id = ?
                  AND (lease_owner IS NULL OR lease_owner = ?
                       OR lease_expires_at IS NULL OR lease_expires_at <= ?)
                """,
                (owner, _ts(lease_until), execution_id, owner, _ts(now)),
            )
            if cursor.rowcount == 0:
                stored = await self._fetch(db, execution_id)
                raise ConcurrencyConflict(execution_id, f"leased by {stored.lease_owner}")
            await db.commit()
            return await self._fetch(db, execution_id)

    async def list_executions(
        self,
        automation_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
    ) -> List[Execution]:
        clauses, params = [], []
        if automation_id is not None:
            clauses.append("automation_id = ?")
            params.append(automation_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(ExecutionStatus(status).value)
        query = "SELECT * FROM automation_executions"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY started_at DESC"
        async with self._connect() as db:
            async with db.execute(query, params) as cursor:
                return [self._execution(row) for row in await cursor.fetchall()]

    async def list_due_executions(
        self,
        now: datetime,
        limit: int = 100,
        exclude_automation_ids: Optional[Sequence[str]] = None,
    ) -> List[Execution]:
        excluded = list(exclude_automation_ids or ())
        exclusion = ""
        if excluded:
            exclusion = f"AND automation_id NOT IN ({', '.join('?' for _ in excluded)})"
        async with self._connect() as db:
            async with db.execute(
                f"""
                SELECT * FROM automation_executions
                WHERE ((status = ? AND resume_at IS NOT NULL AND resume_at <= ?
                        AND (lease_expires_at IS NULL OR lease_expires_at <= ?))
                    OR (status = ? AND lease_expires_at IS NOT NULL AND lease_expires_at <= ?))
                  {exclusion}
                ORDER BY COALESCE(resume_at, lease_expires_at)
                LIMIT ?
                """,
                (
                    ExecutionStatus.WAITING.value,
                    _ts(now),
                    _ts(now),
                    ExecutionStatus.RUNNING.value,
                    _ts(now),
                    *excluded,
                    limit,
                ),
            ) as cursor:
                return [self._execution(row) for row in await cursor.fetchall()]

    async def append_log(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE")
            await self._fetch(db, entry.execution_id)
            async with db.execute(
                "SELECT COALESCE(MAX(sequence), 0) + 1 FROM automation_execution_logs WHERE execution_id = ?",
                (entry.execution_id,),
            ) as cursor:
                (sequence,) = await cursor.fetchone()
            stored = entry.model_copy(update={"sequence": sequence})
            try:
                await db.execute(
                    """
                    INSERT INTO automation_execution_logs
                        (id, execution_id, sequence, visit, node_id, node_type, node_subtype,
                         status, input, output, error, error_code, duration_ms, executed_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        stored.id,
                        stored.execution_id,
                        stored.sequence,
                        stored.visit,
                        stored.node_id,
                        stored.node_type.value,
                        stored.node_subtype,
                        stored.status.value,
                        _json(stored.input),
                        _json(stored.output),
                        stored.error,
                        stored.error_code,
                        stored.duration_ms,
                        _ts(stored.executed_at),
                    ),
                )
            except sqlite3.IntegrityError:
                await db.rollback()
                raise ConcurrencyConflict(
                    entry.execution_id,
                    f"visit {entry.visit} already has a '{entry.status.value}' entry",
                )
            await db.commit()
        return stored

    async def get_logs(self, execution_id: str) -> List[ExecutionLogEntry]:
        async with self._connect() as db:
            async with db.execute(
                "SELECT * FROM automation_execution_logs WHERE execution_id = ? ORDER BY sequence",
                (execution_id,),
            ) as cursor:
                return [self._log(row) for row in await cursor.fetchall()]

    async def delete_execution(self, execution_id: str) -> None:
        async with self._connect() as db:
            cursor = await db.execute(
                "DELETE FROM automation_executions WHERE id = ?", (execution_id,)
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Execution", execution_id)
            await db.commit()
