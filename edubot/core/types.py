"""
Core data models and types for EDUBot.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


Record = Dict[str, Any]


class ActionType(str, Enum):
    """Actions a workflow step can perform."""

    NAVIGATE = "navigate"
    CLICK = "click"
    TYPE = "type"
    SELECT = "select"
    WAIT = "wait"
    WAIT_FOR_ELEMENT = "wait_for_element"
    SCREENSHOT = "screenshot"
    EXECUTE_SCRIPT = "execute_script"
    WAIT_FOR_USER = "wait_for_user"


# Steps that only make sense once per session.
SESSION_ONLY_ACTIONS = frozenset({ActionType.NAVIGATE, ActionType.WAIT_FOR_USER})


class RunState(str, Enum):
    """Lifecycle state of a workflow run."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    WAITING_FOR_USER = "waiting_for_user"
    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_RUN_STATES = frozenset(
    {RunState.RUNNING, RunState.PAUSED, RunState.WAITING_FOR_USER}
)


class ExecutionStatus(str, Enum):
    """Status values written to the execution log."""

    STARTED = "started"
    PROGRESS = "progress"
    SUCCESS = "success"
    FAILED = "failed"
    STOPPED = "stopped"
    COMPLETED = "completed"


class RunEventType(str, Enum):
    """Lifecycle notifications emitted by the executor."""

    LOGIN_REQUIRED = "login_required"
    LOGIN_AUTO_RESUMED = "login_auto_resumed"
    WAITING_FOR_USER = "waiting_for_user"
    PROGRESS = "progress"
    COMPLETE = "complete"
    ERROR = "error"
    STATE_CHANGED = "state_changed"


class PositionSelector(BaseModel):
    """Child-index locator relative to a parent selector."""

    parent: str = Field(..., description="CSS selector of the parent element")
    index: int = Field(..., ge=0, description="Zero-based index among direct children")


class SelectorDescription(BaseModel):
    """Multi-strategy description of a target element."""

    model_config = ConfigDict(extra="ignore")

    primary: Optional[str] = None
    id: Optional[str] = None
    name: Optional[str] = None
    attributes: Dict[str, str] = Field(default_factory=dict)
    xpath: Optional[str] = None
    css: Optional[str] = None
    text: Optional[str] = None
    position: Optional[PositionSelector] = None
    alternatives: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        """Whether no strategy has anything to work with."""
        return not (
            self.primary
            or self.id
            or self.name
            or self.attributes
            or self.xpath
            or self.css
            or self.text
            or self.position
        )

    def to_json(self) -> str:
        """Compact JSON form used in error messages and storage."""
        return self.model_dump_json(exclude_none=True, exclude_defaults=True)


class Workflow(BaseModel):
    """A named sequence of steps bound to a target URL."""

    id: int
    name: str
    target_url: Optional[str] = None
    description: Optional[str] = None
    timeout: int = Field(30000, ge=0, description="Default timeout in milliseconds")
    is_active: bool = True


class Step(BaseModel):
    """A single stored action of a workflow."""

    id: Optional[int] = None
    workflow_id: Optional[int] = None
    order: int = Field(1, ge=1, description="1-based position within the workflow")
    action_type: ActionType
    description: Optional[str] = None
    selector: Optional[Union[str, Dict[str, Any]]] = None
    config: Optional[Union[str, Dict[str, Any]]] = None
    value: Optional[str] = None
    wait_after: int = Field(0, ge=0, description="Sleep after success (ms)")
    retry_count: int = Field(0, ge=0)
    is_optional: bool = False

    @property
    def label(self) -> str:
        """Short human-readable label for logs."""
        return self.description or f"{self.action_type.value} #{self.order}"


class ExecutionLogEntry(BaseModel):
    """Row written to the execution log."""

    workflow_id: int
    step_id: Optional[int] = None
    record_index: Optional[int] = None
    status: ExecutionStatus
    message: Optional[str] = None
    error_data: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RunOptions(BaseModel):
    """Per-run overrides of the configured defaults."""

    headless: Optional[bool] = None
    auto_resume_on_login: Optional[bool] = None
    login_timeout_ms: Optional[int] = Field(None, ge=0)
    delay_between_records_ms: Optional[int] = Field(None, ge=0)
    detect_login: bool = True


class RecordFailure(BaseModel):
    """A record that could not be processed."""

    record_index: int
    record_id: Any = None
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class RunSummary(BaseModel):
    """Outcome of a workflow run."""

    workflow_id: int
    total_records: int
    success_count: int = 0
    error_count: int = 0
    final_state: RunState
    execution_log_id: Optional[Any] = None
    failures: List[RecordFailure] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.final_state == RunState.COMPLETED


class RunEvent(BaseModel):
    """Notification published on the event bus."""

    event_type: RunEventType
    message: str = ""
    current_url: Optional[str] = None
    step_index: Optional[int] = None
    record_index: Optional[int] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RunStatus(BaseModel):
    """Snapshot returned by the executor status query."""

    state: RunState
    workflow_id: Optional[int] = None
    current_step_index: Optional[int] = None
    current_record_index: Optional[int] = None
    execution_log_id: Optional[Any] = None

    @property
    def is_running(self) -> bool:
        return self.state in ACTIVE_RUN_STATES

    @property
    def is_paused(self) -> bool:
        return self.state == RunState.PAUSED
