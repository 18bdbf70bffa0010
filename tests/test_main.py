"""Tests for main.py CLI interface."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from edubot.core.types import RecordFailure, RunEvent, RunEventType, RunOptions, RunState, RunSummary
from edubot.error_handling import ConfigurationError
from edubot.main import (
    InteractiveConsole,
    async_main,
    create_parser,
    main,
    print_optimized_selector,
    print_summary,
    run_workflow,
    show_version,
)


def summary(error_count=0, final_state=RunState.COMPLETED):
    failures = [
        RecordFailure(record_index=i, record_id=100 + i, message="Element not found")
        for i in range(error_count)
    ]
    return RunSummary(
        workflow_id=3,
        total_records=5,
        success_count=5 - error_count,
        error_count=error_count,
        final_state=final_state,
        execution_log_id=11,
        failures=failures,
    )


class TestCLIParser:
    """Test command line parser."""

    def test_parser_creation(self):
        """Test parser is created with all expected arguments."""
        parser = create_parser()

        assert "EDUBot" in parser.description
        actions = {action.dest for action in parser._actions}
        for dest in ("db", "workflow", "data_source", "optimize_selector", "version",
                     "headless", "auto_resume_login", "login_timeout",
                     "delay_between_records", "log_level", "log_format"):
            assert dest in actions

    def test_run_arguments(self):
        """Test run options parse into their types."""
        args = create_parser().parse_args([
            "-w", "3", "-d", "7", "--auto-resume-login", "--login-timeout", "60000",
            "--delay-between-records", "500", "--log-level", "debug",
        ])

        assert args.workflow == 3
        assert args.data_source == 7
        assert args.auto_resume_login is True
        assert args.login_timeout == 60000
        assert args.delay_between_records == 500
        assert args.log_level == "DEBUG"

    def test_headless_flags(self):
        """Test headless is tri-state and the flags are exclusive."""
        parser = create_parser()

        assert parser.parse_args([]).headless is None
        assert parser.parse_args(["--headless"]).headless is True
        assert parser.parse_args(["--headed"]).headless is False
        with pytest.raises(SystemExit):
            parser.parse_args(["--headless", "--headed"])

    def test_utility_commands_exclusive(self):
        """Test --version and --optimize-selector cannot be combined."""
        with pytest.raises(SystemExit):
            create_parser().parse_args(["--version", "--optimize-selector", "{}"])


class TestUtilityCommands:
    """Commands that do not start a run."""

    def test_show_version(self, capsys):
        """Test version output."""
        assert show_version() == 0
        assert "Version: 0.1.0" in capsys.readouterr().out

    def test_optimize_selector(self, capsys):
        """Test the optimized selector is printed as JSON."""
        code = print_optimized_selector('{"id": "ctl00_4711234", "name": "ogrNo", "css": "#f input"}')

        assert code == 0
        assert json.loads(capsys.readouterr().out) == {"name": "ogrNo"}

    def test_optimize_empty_selector(self, capsys):
        """Test an empty selector is an error."""
        assert print_optimized_selector("") == 1
        assert "Selector is empty" in capsys.readouterr().out


class TestAsyncMain:
    """Argument handling of the async entry point."""

    @pytest.fixture
    def patched(self, settings):
        with patch("edubot.main.get_settings", return_value=settings), \
                patch("edubot.main.setup_logging") as setup_logging, \
                patch("edubot.main.run_workflow", new_callable=AsyncMock, return_value=0) as run:
            yield setup_logging, run

    @pytest.mark.asyncio
    async def test_version(self, patched):
        """Test --version exits before logging is configured."""
        setup_logging, run = patched

        assert await async_main(["--version"]) == 0
        setup_logging.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_ids_print_help(self, patched, capsys):
        """Test a run needs both a workflow and a data source."""
        _, run = patched

        assert await async_main(["-w", "3"]) == 1
        run.assert_not_called()
        assert "usage:" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_run_options(self, patched, settings, tmp_path):
        """Test flags become run options."""
        setup_logging, run = patched
        db_path = tmp_path / "other.db"

        code = await async_main([
            "-w", "3", "-d", "7", "--db", str(db_path), "--headless",
            "--auto-resume-login", "--login-timeout", "5000", "--log-format", "json",
        ])

        assert code == 0
        kwargs = run.await_args.kwargs
        assert kwargs["db_path"] == db_path
        assert kwargs["workflow_id"] == 3
        assert kwargs["data_source_id"] == 7
        assert kwargs["options"] == RunOptions(
            headless=True, auto_resume_on_login=True, login_timeout_ms=5000
        )
        assert setup_logging.call_args.kwargs["log_format"] == "json"

    @pytest.mark.asyncio
    async def test_default_database(self, patched, settings):
        """Test the configured database is used without --db."""
        _, run = patched

        await async_main(["-w", "1", "-d", "2"])

        assert run.await_args.kwargs["db_path"] == settings.database_path
        assert run.await_args.kwargs["options"].headless is None

    @pytest.mark.asyncio
    async def test_optimize_selector_command(self, patched, capsys):
        """Test the selector command runs without a database."""
        _, run = patched

        assert await async_main(["--optimize-selector", "#btnKaydet"]) == 0
        run.assert_not_called()


class TestRunWorkflow:
    """Exit codes of a run."""

    @pytest.fixture
    def executor(self):
        executor = MagicMock()
        executor.start = AsyncMock()
        with patch("edubot.main.WorkflowExecutor", return_value=executor), \
                patch("edubot.main._install_stop_handler"):
            yield executor

    @pytest.mark.asyncio
    @pytest.mark.parametrize("result, expected", [
        (summary(), 0),
        (summary(error_count=2), 1),
        (summary(final_state=RunState.STOPPED), 1),
    ])
    async def test_exit_code(self, executor, tmp_path, result, expected):
        """Test only a clean completed run exits with 0."""
        executor.start.return_value = result

        code = await run_workflow(tmp_path / "edubot.db", 3, 7, RunOptions())

        assert code == expected
        executor.start.assert_awaited_once_with(3, 7, RunOptions())

    @pytest.mark.asyncio
    async def test_configuration_error(self, executor, tmp_path, capsys):
        """Test run errors are reported instead of raised."""
        executor.start.side_effect = ConfigurationError("Workflow not found: 3", missing="workflow")

        assert await run_workflow(tmp_path / "edubot.db", 3, 7, RunOptions()) == 1
        assert "Workflow not found: 3" in capsys.readouterr().out


class TestConsoleOutput:
    """Rendering of summaries and events."""

    def test_print_summary(self, capsys):
        """Test both tables are rendered."""
        print_summary(summary(error_count=1))

        out = capsys.readouterr().out
        assert "Run Summary" in out
        assert "Failed Records" in out
        assert "Element not found" in out

    def test_enter_continues_run(self, capsys):
        """Test an Enter press sends the continue signal."""
        executor = MagicMock()
        executor.continue_run.return_value = True

        InteractiveConsole(executor)._on_enter()

        executor.continue_run.assert_called_once_with()
        assert "Continuing" in capsys.readouterr().out

    def test_progress_line(self, capsys):
        """Test progress events show the counters."""
        InteractiveConsole(MagicMock()).on_progress(RunEvent(
            event_type=RunEventType.PROGRESS,
            message="Processed 2/5 records",
            data={"success_count": 1, "error_count": 1},
        ))

        out = capsys.readouterr().out
        assert "Processed 2/5 records" in out
        assert "1 failed" in out

    @pytest.mark.asyncio
    async def test_attach_subscribes(self):
        """Test the console listens to the interactive events."""
        events = MagicMock()

        InteractiveConsole(MagicMock()).attach(events)

        subscribed = {call.args[0] for call in events.subscribe.call_args_list}
        assert subscribed == {
            RunEventType.LOGIN_REQUIRED,
            RunEventType.LOGIN_AUTO_RESUMED,
            RunEventType.WAITING_FOR_USER,
            RunEventType.PROGRESS,
            RunEventType.ERROR,
        }


def test_main_version():
    assert main(["--version"]) == 0
