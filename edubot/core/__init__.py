"""Core types and interfaces for EDUBot."""

from edubot.core.interfaces import BrowserPort, ConfigProvider, PersistencePort
from edubot.core.types import (
    ACTIVE_RUN_STATES,
    SESSION_ONLY_ACTIONS,
    ActionType,
    ExecutionLogEntry,
    ExecutionStatus,
    PositionSelector,
    Record,
    RecordFailure,
    RunEvent,
    RunEventType,
    RunOptions,
    RunState,
    RunStatus,
    RunSummary,
    SelectorDescription,
    Step,
    Workflow,
)

__all__ = [
    "ACTIVE_RUN_STATES",
    "SESSION_ONLY_ACTIONS",
    "ActionType",
    "BrowserPort",
    "ConfigProvider",
    "ExecutionLogEntry",
    "ExecutionStatus",
    "PersistencePort",
    "PositionSelector",
    "Record",
    "RecordFailure",
    "RunEvent",
    "RunEventType",
    "RunOptions",
    "RunState",
    "RunStatus",
    "RunSummary",
    "SelectorDescription",
    "Step",
    "Workflow",
]
