"""
Custom exception hierarchy for EDUBot error handling.

Separates errors a step retry can fix (element lookups, timeouts, page script
failures) from errors that no amount of retrying will change (bad workflow
configuration, unusable script payloads, illegal run transitions).
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class EduBotError(Exception):
    """Base exception for all EDUBot errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None
        }


class RetryableError(EduBotError):
    """Base class for errors that can be retried."""

    def __init__(
        self,
        message: str,
        max_retries: int = 3,
        retry_delay_ms: int = 1000,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.max_retries = max_retries
        self.retry_delay_ms = retry_delay_ms
        self.retry_count = 0

    def increment_retry(self) -> None:
        """Increment retry counter."""
        self.retry_count += 1

    def can_retry(self) -> bool:
        """Check if error can be retried."""
        return self.retry_count < self.max_retries


class NonRetryableError(EduBotError):
    """Base class for errors that should not be retried."""
    pass


class BrowserError(RetryableError):
    """Error related to browser automation."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        selector: Optional[str] = None,
        action: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.url = url
        self.selector = selector
        self.action = action
        self.details.update({
            "url": url,
            "selector": selector,
            "action": action
        })


class ElementNotFoundError(BrowserError):
    """No resolution strategy located the described element."""

    def __init__(
        self,
        selector: str,
        strategies_tried: Optional[List[str]] = None,
        attempts: int = 0,
        **kwargs
    ):
        super().__init__(
            f"Element not found with any strategy: {selector}",
            selector=selector,
            **kwargs
        )
        self.strategies_tried = strategies_tried or []
        self.attempts = attempts
        self.details.update({
            "strategies_tried": self.strategies_tried,
            "attempts": attempts
        })


class TimeoutError(RetryableError):
    """Error raised when operations timeout."""

    def __init__(
        self,
        message: str,
        operation: str,
        timeout_ms: int,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.operation = operation
        self.timeout_ms = timeout_ms
        self.details.update({
            "operation": operation,
            "timeout_ms": timeout_ms
        })


class LoginTimeoutError(TimeoutError):
    """The login wait window elapsed without a login or continue signal."""

    def __init__(self, timeout_ms: int, current_url: Optional[str] = None, **kwargs):
        super().__init__(
            f"Login was not completed within {timeout_ms}ms",
            operation="login_wait",
            timeout_ms=timeout_ms,
            **kwargs
        )
        self.current_url = current_url
        self.details["current_url"] = current_url


class UserWaitTimeoutError(TimeoutError):
    """A wait_for_user step was not continued in time."""

    def __init__(self, timeout_ms: int, step_index: Optional[int] = None, **kwargs):
        super().__init__(
            f"No continue signal received within {timeout_ms}ms",
            operation="wait_for_user",
            timeout_ms=timeout_ms,
            **kwargs
        )
        self.step_index = step_index
        self.details["step_index"] = step_index


class ScriptExecutionError(RetryableError):
    """A page script raised or could not be compiled in the page."""

    def __init__(self, message: str, script_snippet: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.script_snippet = script_snippet
        self.details["script_snippet"] = script_snippet


class ConfigurationError(NonRetryableError):
    """Workflow, steps or data source are missing or unusable."""

    def __init__(self, message: str, missing: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.missing = missing
        self.details["missing"] = missing


class ScriptExtractionError(NonRetryableError):
    """No executable script could be recovered from a step payload."""

    def __init__(self, message: str, raw_snippet: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.raw_snippet = raw_snippet
        self.details["raw_snippet"] = raw_snippet


class InvalidTransitionError(NonRetryableError):
    """A run state transition was requested from a state that does not allow it."""

    def __init__(
        self,
        current_state: str,
        transition: str,
        message: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message or f"Invalid transition {transition} from state {current_state}",
            **kwargs
        )
        self.current_state = current_state
        self.transition = transition
        self.details.update({
            "current_state": current_state,
            "transition": transition
        })


class RunAlreadyActiveError(InvalidTransitionError):
    """A run was started while another run is still active."""

    def __init__(self, current_state: str, workflow_id: Optional[int] = None, **kwargs):
        super().__init__(
            current_state,
            "start",
            message="Another workflow is already running",
            **kwargs
        )
        self.workflow_id = workflow_id
        self.details["active_workflow_id"] = workflow_id


class StepExecutionError(EduBotError):
    """A step failed after exhausting its retries."""

    def __init__(
        self,
        message: str,
        step_order: int,
        action_type: str,
        attempts: int = 1,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.step_order = step_order
        self.action_type = action_type
        self.attempts = attempts
        self.details.update({
            "step_order": step_order,
            "action_type": action_type,
            "attempts": attempts
        })
        cause = kwargs.get("cause")
        if isinstance(cause, EduBotError):
            for key, value in cause.details.items():
                self.details.setdefault(key, value)


class RecoveryError(EduBotError):
    """Error raised when every retry attempt failed."""

    def __init__(
        self,
        message: str,
        recovery_strategy: str,
        attempts: int,
        original_error: Optional[Exception] = None,
        **kwargs
    ):
        super().__init__(message, cause=original_error, **kwargs)
        self.recovery_strategy = recovery_strategy
        self.attempts = attempts
        self.original_error = original_error
        self.details.update({
            "recovery_strategy": recovery_strategy,
            "attempts": attempts,
            "original_error": str(original_error) if original_error else None
        })


class RunStoppedError(EduBotError):
    """Raised inside a run once a stop was requested."""

    def __init__(self, message: str = "Workflow run was stopped", **kwargs):
        super().__init__(message, **kwargs)
