"""In-memory implementation of the persistence port."""

import copy
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from edubot.core.interfaces import PersistencePort
from edubot.core.types import ExecutionLogEntry, Record, Step, Workflow


class InMemoryStore(PersistencePort):
    """Keep workflows, records and run bookkeeping in local memory.

    Useful for tests or when no database is configured. Every log patch and
    queue call is kept so callers can inspect what a run wrote.
    """

    def __init__(self) -> None:
        self.workflows: Dict[int, Workflow] = {}
        self.steps: Dict[int, List[Step]] = {}
        self.data_sources: Dict[int, List[Record]] = {}
        self.execution_logs: Dict[int, Dict[str, Any]] = {}
        self.log_patches: List[Tuple[int, Dict[str, Any]]] = []
        self.queue: Dict[Any, Dict[str, Any]] = {}
        self.deleted_from_queue: List[Any] = []
        self.queue_updates: List[Tuple[Any, str, Optional[str]]] = []
        self._log_id = 0

    # ------------------------------------------------------------------
    # Fixture helpers
    def add_workflow(self, workflow: Workflow, steps: Optional[List[Step]] = None) -> Workflow:
        self.workflows[workflow.id] = workflow
        self.steps[workflow.id] = [
            step.model_copy(update={"workflow_id": workflow.id}) for step in steps or []
        ]
        return workflow

    def add_data_source(self, data_source_id: int, records: List[Record]) -> None:
        self.data_sources[data_source_id] = list(records)

    # ------------------------------------------------------------------
    # Persistence port
    async def get_workflow(self, workflow_id: int) -> Optional[Workflow]:
        return self.workflows.get(workflow_id)

    async def get_steps_by_workflow(self, workflow_id: int) -> List[Step]:
        return sorted(self.steps.get(workflow_id, []), key=lambda s: s.order)

    async def get_data_source_records(self, data_source_id: int) -> Optional[List[Record]]:
        records = self.data_sources.get(data_source_id)
        if records is None:
            return None
        return copy.deepcopy(records)

    async def create_execution_log(self, entry: ExecutionLogEntry) -> int:
        self._log_id += 1
        self.execution_logs[self._log_id] = {
            **entry.model_dump(mode="json"),
            "id": self._log_id,
            "records_processed": 0,
            "success_count": 0,
            "error_count": 0,
            "completed_at": None,
        }
        return self._log_id

    async def update_execution_log(self, log_id: Any, patch: Dict[str, Any]) -> None:
        self.log_patches.append((log_id, dict(patch)))
        log = self.execution_logs.get(log_id)
        if log is None:
            return
        for key, value in patch.items():
            if key == "processed_records":
                log["records_processed"] = value
            else:
                log[key] = value
        if "error_message" in patch and not patch.get("message"):
            log["message"] = patch["error_message"]
        if patch.get("status") in ("completed", "failed"):
            log["completed_at"] = datetime.now(timezone.utc).isoformat()

    async def delete_from_queue(self, record_id: Any) -> None:
        self.deleted_from_queue.append(record_id)
        self.queue.pop(record_id, None)

    async def update_queue_status(
        self, record_id: Any, status: str, error: Optional[str] = None
    ) -> None:
        self.queue_updates.append((record_id, status, error))
        self.queue[record_id] = {"record_id": record_id, "status": status, "error_message": error}

    # ------------------------------------------------------------------
    # Inspection
    def progress_patches(self) -> List[Dict[str, Any]]:
        """Log patches that carried a processed-record count."""
        return [patch for _, patch in self.log_patches if "processed_records" in patch]
