"""Workflow execution for EDUBot."""

from edubot.execution.events import ALL_EVENTS, EventBus
from edubot.execution.executor import WorkflowExecutor
from edubot.execution.gate import ContinuationGate
from edubot.execution.interpreter import StepInterpreter, render_selector
from edubot.execution.login import (
    LOGIN_PROBE_SCRIPT,
    LoginDetector,
    LoginMarkers,
    assess_login_markers,
    url_indicates_login,
)
from edubot.execution.state_machine import (
    VALID_TRANSITIONS,
    RunStateMachine,
    RunTransition,
)
from edubot.execution.templates import lookup_variable, substitute

__all__ = [
    "ALL_EVENTS",
    "ContinuationGate",
    "EventBus",
    "LOGIN_PROBE_SCRIPT",
    "LoginDetector",
    "LoginMarkers",
    "RunStateMachine",
    "RunTransition",
    "StepInterpreter",
    "VALID_TRANSITIONS",
    "WorkflowExecutor",
    "assess_login_markers",
    "lookup_variable",
    "render_selector",
    "substitute",
    "url_indicates_login",
]
