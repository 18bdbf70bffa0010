"""
Error handling and recovery mechanisms for EDUBot.
"""

from .exceptions import (
    EduBotError,
    RetryableError,
    NonRetryableError,
    BrowserError,
    ElementNotFoundError,
    TimeoutError,
    LoginTimeoutError,
    UserWaitTimeoutError,
    ScriptExecutionError,
    ConfigurationError,
    ScriptExtractionError,
    InvalidTransitionError,
    RunAlreadyActiveError,
    StepExecutionError,
    RecoveryError,
    RunStoppedError,
)

from .recovery import (
    RetryStrategy,
    FixedDelayStrategy,
    RecoveryManager,
    RecoveryContext,
    RecoveryAction
)

__all__ = [
    # Exceptions
    "EduBotError",
    "RetryableError",
    "NonRetryableError",
    "BrowserError",
    "ElementNotFoundError",
    "TimeoutError",
    "LoginTimeoutError",
    "UserWaitTimeoutError",
    "ScriptExecutionError",
    "ConfigurationError",
    "ScriptExtractionError",
    "InvalidTransitionError",
    "RunAlreadyActiveError",
    "StepExecutionError",
    "RecoveryError",
    "RunStoppedError",

    # Recovery
    "RetryStrategy",
    "FixedDelayStrategy",
    "RecoveryManager",
    "RecoveryContext",
    "RecoveryAction",
]
