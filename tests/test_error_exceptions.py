"""
Unit tests for the exception hierarchy.
"""

from edubot.error_handling.exceptions import (
    BrowserError,
    ConfigurationError,
    EduBotError,
    ElementNotFoundError,
    InvalidTransitionError,
    LoginTimeoutError,
    NonRetryableError,
    RetryableError,
    RunAlreadyActiveError,
    RunStoppedError,
    ScriptExecutionError,
    ScriptExtractionError,
    StepExecutionError,
    TimeoutError,
    UserWaitTimeoutError,
)


class TestEduBotError:
    """Test base exception class."""

    def test_basic_error(self):
        """Test basic error creation."""
        error = EduBotError("Something broke")

        assert str(error) == "Something broke"
        assert error.message == "Something broke"
        assert error.error_code == "EduBotError"
        assert error.details == {}
        assert error.cause is None

    def test_to_dict(self):
        """Test serialization."""
        cause = ValueError("bad value")
        error = EduBotError("Wrapped", error_code="E42", details={"key": "value"}, cause=cause)

        data = error.to_dict()

        assert data["error_type"] == "EduBotError"
        assert data["error_code"] == "E42"
        assert data["details"] == {"key": "value"}
        assert data["cause"] == "bad value"
        assert "timestamp" in data


class TestRetryableErrors:
    """Errors a step retry can fix."""

    def test_retry_counter(self):
        """Test retry bookkeeping."""
        error = RetryableError("flaky", max_retries=2)

        assert error.can_retry()
        error.increment_retry()
        error.increment_retry()
        assert not error.can_retry()

    def test_browser_error_details(self):
        """Test browser errors carry page context."""
        error = BrowserError("Click failed", url="https://obs.example.edu", selector="#save", action="click")

        assert isinstance(error, RetryableError)
        assert error.details == {
            "url": "https://obs.example.edu",
            "selector": "#save",
            "action": "click",
        }

    def test_element_not_found(self):
        """Test the not-found message names the selector."""
        error = ElementNotFoundError('{"id":"save"}', strategies_tried=["id"], attempts=4)

        assert str(error) == 'Element not found with any strategy: {"id":"save"}'
        assert isinstance(error, BrowserError)
        assert error.details["strategies_tried"] == ["id"]
        assert error.details["attempts"] == 4

    def test_timeouts(self):
        """Test timeout subclasses."""
        login = LoginTimeoutError(5000, current_url="https://obs.example.edu/login")
        wait = UserWaitTimeoutError(3000, step_index=2)

        assert isinstance(login, TimeoutError)
        assert login.details["operation"] == "login_wait"
        assert login.details["current_url"] == "https://obs.example.edu/login"
        assert "5000ms" in str(login)

        assert wait.details["operation"] == "wait_for_user"
        assert wait.step_index == 2
        assert str(wait) == "No continue signal received within 3000ms"

    def test_script_execution_error(self):
        """Test page script failures are retryable."""
        error = ScriptExecutionError("Script execution failed: boom", script_snippet="throw 1")

        assert isinstance(error, RetryableError)
        assert error.details["script_snippet"] == "throw 1"


class TestNonRetryableErrors:
    """Errors retrying cannot change."""

    def test_configuration_error(self):
        """Test configuration errors name what is missing."""
        error = ConfigurationError("Workflow not found: 3", missing="workflow")

        assert isinstance(error, NonRetryableError)
        assert error.details["missing"] == "workflow"

    def test_script_extraction_error(self):
        """Test extraction errors keep the raw snippet."""
        error = ScriptExtractionError("No script found", raw_snippet="{}")

        assert isinstance(error, NonRetryableError)
        assert error.raw_snippet == "{}"

    def test_invalid_transition(self):
        """Test the default transition message."""
        error = InvalidTransitionError("idle", "pause")

        assert str(error) == "Invalid transition pause from state idle"
        assert error.details == {"current_state": "idle", "transition": "pause"}

    def test_run_already_active(self):
        """Test the concurrent start message."""
        error = RunAlreadyActiveError("running", workflow_id=9)

        assert isinstance(error, InvalidTransitionError)
        assert str(error) == "Another workflow is already running"
        assert error.details["active_workflow_id"] == 9


class TestStepExecutionError:
    """Final step failure wrapping."""

    def test_merges_cause_details(self):
        """Test details of the underlying error are kept."""
        cause = ElementNotFoundError("#missing", attempts=2)
        error = StepExecutionError(
            "Step 3 failed after 1 retries: not found",
            step_order=3,
            action_type="click",
            attempts=2,
            cause=cause,
        )

        assert error.cause is cause
        assert error.details["step_order"] == 3
        assert error.details["action_type"] == "click"
        assert error.details["selector"] == "#missing"
        assert error.details["attempts"] == 2

    def test_plain_cause(self):
        """Test a non-EduBot cause adds no details."""
        error = StepExecutionError("failed", step_order=1, action_type="type", cause=RuntimeError("x"))

        assert set(error.details) == {"step_order", "action_type", "attempts"}


def test_run_stopped_default_message():
    assert str(RunStoppedError()) == "Workflow run was stopped"
