"""SQLite implementation of the persistence port."""

import asyncio
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from edubot.core.interfaces import PersistencePort
from edubot.core.parsing import parse_json_payload
from edubot.core.types import ActionType, ExecutionLogEntry, Record, SelectorDescription, Step, Workflow
from edubot.monitoring.logger import get_logger
from edubot.resolver.optimizer import optimize_selector
from edubot.resolver.parsing import parse_selector

logger = get_logger(__name__)

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS workflows (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        description TEXT,
        target_url TEXT,
        timeout INTEGER DEFAULT 30000,
        is_active INTEGER DEFAULT 1,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS steps (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        workflow_id INTEGER NOT NULL,
        step_order INTEGER NOT NULL,
        action_type TEXT NOT NULL,
        description TEXT,
        selector TEXT,
        config TEXT,
        value TEXT,
        wait_after INTEGER DEFAULT 0,
        retry_count INTEGER DEFAULT 0,
        is_optional INTEGER DEFAULT 0,
        FOREIGN KEY (workflow_id) REFERENCES workflows(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS data_sources (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        type TEXT NOT NULL DEFAULT 'json',
        content TEXT,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS execution_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        workflow_id INTEGER,
        step_id INTEGER,
        record_index INTEGER,
        status TEXT DEFAULT 'started',
        message TEXT,
        error_message TEXT,
        error_data TEXT,
        started_at TEXT,
        completed_at TEXT,
        records_processed INTEGER DEFAULT 0,
        success_count INTEGER DEFAULT 0,
        error_count INTEGER DEFAULT 0,
        FOREIGN KEY (workflow_id) REFERENCES workflows(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS processing_queue (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        record_id TEXT NOT NULL UNIQUE,
        workflow_id INTEGER,
        status TEXT DEFAULT 'pending',
        error_message TEXT,
        updated_at TEXT
    )
    """,
]

# Patch keys accepted by update_execution_log and their columns.
_LOG_PATCH_COLUMNS = {
    "status": "status",
    "message": "message",
    "error_message": "error_message",
    "processed_records": "records_processed",
    "success_count": "success_count",
    "error_count": "error_count",
}

_STEP_COLUMNS = {
    "action_type",
    "description",
    "selector",
    "config",
    "value",
    "wait_after",
    "retry_count",
    "is_optional",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def serialize_selector(
    selector: Union[str, Dict[str, Any], SelectorDescription, None]
) -> Optional[str]:
    """
    Prepare a selector for storage.

    Structured descriptions are optimized and stored as compact JSON. Plain
    selector strings are stored unchanged.
    """
    if selector is None:
        return None
    structured = isinstance(selector, (dict, SelectorDescription)) or isinstance(
        parse_json_payload(selector), dict
    )
    if not structured:
        return str(selector)
    return optimize_selector(parse_selector(selector)).to_json()


def serialize_config(config: Union[str, Dict[str, Any], None]) -> Optional[str]:
    """Dicts become JSON; stored strings are kept byte for byte."""
    if config is None:
        return None
    if isinstance(config, dict):
        return json.dumps(config, ensure_ascii=False)
    return config


class SQLiteStore(PersistencePort):
    """Persist workflows, data sources and run bookkeeping in SQLite."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        for statement in SCHEMA:
            cur.execute(statement)
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()
        return cur.lastrowid

    def _executemany(self, query: str, rows: List[tuple]) -> None:
        cur = self._conn.cursor()
        cur.executemany(query, rows)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> Optional[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> List[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    @staticmethod
    def _row_to_workflow(row: sqlite3.Row) -> Workflow:
        return Workflow(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            target_url=row["target_url"],
            timeout=row["timeout"] if row["timeout"] is not None else 30000,
            is_active=bool(row["is_active"]),
        )

    @staticmethod
    def _row_to_step(row: sqlite3.Row) -> Step:
        return Step(
            id=row["id"],
            workflow_id=row["workflow_id"],
            order=row["step_order"],
            action_type=ActionType(row["action_type"]),
            description=row["description"],
            selector=row["selector"],
            config=row["config"],
            value=row["value"],
            wait_after=row["wait_after"] or 0,
            retry_count=row["retry_count"] or 0,
            is_optional=bool(row["is_optional"]),
        )

    # ------------------------------------------------------------------
    # Workflows
    async def create_workflow(
        self,
        name: str,
        target_url: Optional[str] = None,
        description: Optional[str] = None,
        timeout: int = 30000,
    ) -> Workflow:
        workflow_id = await asyncio.to_thread(
            self._execute,
            "INSERT INTO workflows (name, description, target_url, timeout, is_active, created_at) VALUES (?, ?, ?, ?, 1, ?)",
            name,
            description,
            target_url,
            timeout,
            _now(),
        )
        logger.info("Workflow created", extra={"workflow_id": workflow_id})
        return Workflow(
            id=workflow_id,
            name=name,
            description=description,
            target_url=target_url,
            timeout=timeout,
        )

    async def get_workflow(self, workflow_id: int) -> Optional[Workflow]:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT * FROM workflows WHERE id = ?", workflow_id
        )
        return self._row_to_workflow(row) if row else None

    async def list_workflows(self) -> List[Workflow]:
        rows = await asyncio.to_thread(self._fetchall, "SELECT * FROM workflows ORDER BY id")
        return [self._row_to_workflow(row) for row in rows]

    async def delete_workflow(self, workflow_id: int) -> None:
        await asyncio.to_thread(self._execute, "DELETE FROM steps WHERE workflow_id = ?", workflow_id)
        await asyncio.to_thread(self._execute, "DELETE FROM workflows WHERE id = ?", workflow_id)

    # ------------------------------------------------------------------
    # Steps
    async def add_step(
        self,
        workflow_id: int,
        action_type: Union[ActionType, str],
        description: Optional[str] = None,
        selector: Union[str, Dict[str, Any], SelectorDescription, None] = None,
        config: Union[str, Dict[str, Any], None] = None,
        value: Optional[str] = None,
        wait_after: int = 0,
        retry_count: int = 0,
        is_optional: bool = False,
        order: Optional[int] = None,
    ) -> Step:
        """
        Add a step to a workflow.

        Args:
            order: 1-based position; the step is appended when omitted.
                Later steps move down by one.
        """
        action = ActionType(action_type)
        steps = await self.get_steps_by_workflow(workflow_id)
        position = len(steps) + 1 if order is None else max(1, min(order, len(steps) + 1))
        if position <= len(steps):
            await asyncio.to_thread(
                self._execute,
                "UPDATE steps SET step_order = step_order + 1 WHERE workflow_id = ? AND step_order >= ?",
                workflow_id,
                position,
            )

        step_id = await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO steps (workflow_id, step_order, action_type, description, selector,
                               config, value, wait_after, retry_count, is_optional)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            workflow_id,
            position,
            action.value,
            description,
            serialize_selector(selector),
            serialize_config(config),
            value,
            wait_after,
            retry_count,
            int(is_optional),
        )
        return await self.get_step(step_id)

    async def get_step(self, step_id: int) -> Optional[Step]:
        row = await asyncio.to_thread(self._fetchone, "SELECT * FROM steps WHERE id = ?", step_id)
        return self._row_to_step(row) if row else None

    async def update_step(self, step_id: int, **fields: Any) -> Optional[Step]:
        """Update step columns; selectors and configs are serialized as on insert."""
        unknown = set(fields) - _STEP_COLUMNS
        if unknown:
            raise ValueError(f"Unknown step fields: {sorted(unknown)}")

        values = dict(fields)
        if "selector" in values:
            values["selector"] = serialize_selector(values["selector"])
        if "config" in values:
            values["config"] = serialize_config(values["config"])
        if "action_type" in values:
            values["action_type"] = ActionType(values["action_type"]).value
        if "is_optional" in values:
            values["is_optional"] = int(bool(values["is_optional"]))

        if values:
            assignments = ", ".join(f"{column} = ?" for column in values)
            await asyncio.to_thread(
                self._execute,
                f"UPDATE steps SET {assignments} WHERE id = ?",
                *values.values(),
                step_id,
            )
        return await self.get_step(step_id)

    async def delete_step(self, step_id: int) -> None:
        step = await self.get_step(step_id)
        if step is None:
            return
        await asyncio.to_thread(self._execute, "DELETE FROM steps WHERE id = ?", step_id)
        await self.normalize_step_order(step.workflow_id)

    async def get_steps_by_workflow(self, workflow_id: int) -> List[Step]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM steps WHERE workflow_id = ? ORDER BY step_order, id",
            workflow_id,
        )
        return [self._row_to_step(row) for row in rows]

    async def normalize_step_order(self, workflow_id: int) -> int:
        """
        Renumber the steps of a workflow to 1..n, keeping their relative order.

        Returns:
            Number of steps
        """
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT id FROM steps WHERE workflow_id = ? ORDER BY step_order, id",
            workflow_id,
        )
        await asyncio.to_thread(
            self._executemany,
            "UPDATE steps SET step_order = ? WHERE id = ?",
            [(index, row["id"]) for index, row in enumerate(rows, start=1)],
        )
        return len(rows)

    async def reorder_steps(self, workflow_id: int, step_ids: List[int]) -> List[Step]:
        """
        Put the steps of a workflow into the given order.

        Raises:
            ValueError: ``step_ids`` is not a permutation of the workflow's steps
        """
        current = {step.id for step in await self.get_steps_by_workflow(workflow_id)}
        if len(step_ids) != len(current) or set(step_ids) != current:
            raise ValueError("step_ids must list every step of the workflow exactly once")

        await asyncio.to_thread(
            self._executemany,
            "UPDATE steps SET step_order = ? WHERE id = ?",
            [(index, step_id) for index, step_id in enumerate(step_ids, start=1)],
        )
        return await self.get_steps_by_workflow(workflow_id)

    # ------------------------------------------------------------------
    # Data sources
    async def create_data_source(
        self, name: str, records: List[Record], source_type: str = "json"
    ) -> int:
        return await asyncio.to_thread(
            self._execute,
            "INSERT INTO data_sources (name, type, content, created_at) VALUES (?, ?, ?, ?)",
            name,
            source_type,
            json.dumps(records, ensure_ascii=False),
            _now(),
        )

    async def get_data_source_records(self, data_source_id: int) -> Optional[List[Record]]:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT content FROM data_sources WHERE id = ?", data_source_id
        )
        if row is None:
            return None
        content = parse_json_payload(row["content"])
        if isinstance(content, dict):
            return [content]
        if not isinstance(content, list):
            logger.warning(
                "Data source content is not a JSON list",
                extra={"data_source_id": data_source_id},
            )
            return []
        return [item for item in content if isinstance(item, dict)]

    # ------------------------------------------------------------------
    # Execution logs
    async def create_execution_log(self, entry: ExecutionLogEntry) -> int:
        return await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO execution_logs (workflow_id, step_id, record_index, status, message, error_data, started_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            entry.workflow_id,
            entry.step_id,
            entry.record_index,
            entry.status.value,
            entry.message,
            json.dumps(entry.error_data) if entry.error_data else None,
            entry.timestamp.isoformat(),
        )

    async def update_execution_log(self, log_id: Any, patch: Dict[str, Any]) -> None:
        columns: Dict[str, Any] = {
            _LOG_PATCH_COLUMNS[key]: value
            for key, value in patch.items()
            if key in _LOG_PATCH_COLUMNS
        }
        if "error_message" in patch and not patch.get("message"):
            columns["message"] = patch["error_message"]
        if patch.get("status") in ("completed", "failed"):
            columns["completed_at"] = _now()
        if not columns:
            return

        assignments = ", ".join(f"{column} = ?" for column in columns)
        await asyncio.to_thread(
            self._execute,
            f"UPDATE execution_logs SET {assignments} WHERE id = ?",
            *columns.values(),
            log_id,
        )

    async def get_execution_log(self, log_id: Any) -> Optional[Dict[str, Any]]:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT * FROM execution_logs WHERE id = ?", log_id
        )
        return dict(row) if row else None

    async def list_execution_logs(self, limit: int = 50) -> List[Dict[str, Any]]:
        rows = await asyncio.to_thread(
            self._fetchall,
            """
            SELECT el.*, w.name AS workflow_name
            FROM execution_logs el
            LEFT JOIN workflows w ON el.workflow_id = w.id
            ORDER BY el.id DESC
            LIMIT ?
            """,
            limit,
        )
        return [dict(row) for row in rows]

    # ------------------------------------------------------------------
    # Processing queue
    async def add_to_queue(
        self, record_id: Any, workflow_id: Optional[int] = None, status: str = "pending"
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT OR REPLACE INTO processing_queue (record_id, workflow_id, status, updated_at) VALUES (?, ?, ?, ?)",
            str(record_id),
            workflow_id,
            status,
            _now(),
        )

    async def update_queue_status(
        self, record_id: Any, status: str, error: Optional[str] = None
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO processing_queue (record_id, status, error_message, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(record_id) DO UPDATE SET
                status = excluded.status,
                error_message = excluded.error_message,
                updated_at = excluded.updated_at
            """,
            str(record_id),
            status,
            error,
            _now(),
        )

    async def delete_from_queue(self, record_id: Any) -> None:
        await asyncio.to_thread(
            self._execute,
            "DELETE FROM processing_queue WHERE record_id = ?",
            str(record_id),
        )

    async def get_queue_status(self) -> List[Dict[str, Any]]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT * FROM processing_queue ORDER BY id"
        )
        return [dict(row) for row in rows]
