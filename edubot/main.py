"""
EDUBot - Workflow automation for academic records portals
Main entry point for the application.
"""

import argparse
import asyncio
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from edubot import __version__
from edubot.config.settings import get_settings
from edubot.core.types import RunEvent, RunEventType, RunOptions, RunState, RunSummary
from edubot.error_handling import EduBotError
from edubot.execution import EventBus, WorkflowExecutor
from edubot.monitoring.logger import get_logger, setup_logging
from edubot.persistence import SQLiteStore
from edubot.resolver import optimize_selector, parse_selector

console = Console()
logger = get_logger("main")


def create_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        description=f"EDUBot - Workflow automation for academic records portals v{__version__}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run workflow 3 over every record of data source 7
  python -m edubot.main --workflow 3 --data-source 7

  # Resume automatically once the operator has logged in
  python -m edubot.main -w 3 -d 7 --auto-resume-login --login-timeout 180000

  # Show what a recorded selector looks like after optimization
  python -m edubot.main --optimize-selector '{"id": "ctl00_4711234", "name": "ogrNo"}'
        """,
    )

    # Input options
    parser.add_argument(
        "--db",
        type=Path,
        help="Path to the SQLite database (default: DATABASE_PATH setting)",
    )
    parser.add_argument(
        "-w", "--workflow",
        type=int,
        help="Id of the workflow to run",
    )
    parser.add_argument(
        "-d", "--data-source",
        type=int,
        help="Id of the data source supplying the records",
    )

    # Utility commands
    utility_group = parser.add_mutually_exclusive_group()
    utility_group.add_argument(
        "--optimize-selector",
        metavar="JSON",
        help="Print the optimized form of a selector description and exit",
    )
    utility_group.add_argument(
        "--version",
        action="store_true",
        help="Show version information",
    )

    # Execution options
    browser_group = parser.add_mutually_exclusive_group()
    browser_group.add_argument(
        "--headless",
        dest="headless",
        action="store_true",
        default=None,
        help="Run browser in headless mode",
    )
    browser_group.add_argument(
        "--headed",
        dest="headless",
        action="store_false",
        help="Run browser with a visible window",
    )
    parser.add_argument(
        "--auto-resume-login",
        action="store_true",
        default=None,
        help="Continue automatically once a login is detected",
    )
    parser.add_argument(
        "--login-timeout",
        type=int,
        metavar="MS",
        help="Give up waiting for login after this many milliseconds",
    )
    parser.add_argument(
        "--delay-between-records",
        type=int,
        metavar="MS",
        help="Pause between records in milliseconds",
    )

    # Logging options
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        help="Logging level (default: LOG_LEVEL setting)",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        help="Log output format (default: LOG_FORMAT setting)",
    )

    return parser


def show_version() -> int:
    """Show version information."""
    console.print("\n[bold cyan]EDUBot - Workflow automation for academic records portals[/bold cyan]")
    console.print(f"Version: [green]{__version__}[/green]")
    return 0


def print_optimized_selector(raw: str) -> int:
    """Print the optimized form of a selector description."""
    description = parse_selector(raw)
    if description.is_empty():
        console.print("[red]Error: Selector is empty[/red]")
        return 1
    optimized = optimize_selector(description)
    console.print_json(optimized.to_json())
    return 0


class InteractiveConsole:
    """
    Renders run events and turns Enter presses into continue signals.

    stdin is read on a daemon thread so an unanswered prompt never keeps
    the process alive after the run ends.
    """

    def __init__(self, executor: WorkflowExecutor) -> None:
        self.executor = executor
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._reader: Optional[threading.Thread] = None

    def attach(self, events: EventBus) -> None:
        self._loop = asyncio.get_running_loop()
        events.subscribe(RunEventType.LOGIN_REQUIRED, self.on_login_required)
        events.subscribe(RunEventType.LOGIN_AUTO_RESUMED, self.on_login_auto_resumed)
        events.subscribe(RunEventType.WAITING_FOR_USER, self.on_waiting_for_user)
        events.subscribe(RunEventType.PROGRESS, self.on_progress)
        events.subscribe(RunEventType.ERROR, self.on_error)

    def on_login_required(self, event: RunEvent) -> None:
        auto = event.data.get("auto_resume")
        hint = (
            "The run continues by itself once the login is detected, or press [bold]Enter[/bold]."
            if auto
            else "Press [bold]Enter[/bold] here once you are logged in."
        )
        console.print(Panel.fit(
            f"{event.message}\n[dim]{event.current_url or ''}[/dim]\n\n{hint}",
            title="[yellow]Login required[/yellow]",
            border_style="yellow",
        ))
        self._listen_for_enter()

    def on_login_auto_resumed(self, event: RunEvent) -> None:
        console.print("[green]Login detected, continuing.[/green]")

    def on_waiting_for_user(self, event: RunEvent) -> None:
        console.print(Panel.fit(
            f"{event.message}\n\nPress [bold]Enter[/bold] to continue.",
            title="[cyan]Waiting for operator[/cyan]",
            border_style="cyan",
        ))
        self._listen_for_enter()

    def on_progress(self, event: RunEvent) -> None:
        data = event.data
        console.print(
            f"[cyan]{event.message}[/cyan] "
            f"([green]{data.get('success_count', 0)} ok[/green], "
            f"[red]{data.get('error_count', 0)} failed[/red])"
        )

    def on_error(self, event: RunEvent) -> None:
        console.print(f"[red]{event.message}[/red]")

    def _listen_for_enter(self) -> None:
        if self._reader is not None and self._reader.is_alive():
            return
        self._reader = threading.Thread(target=self._read_lines, daemon=True)
        self._reader.start()

    def _read_lines(self) -> None:
        while True:
            line = sys.stdin.readline()
            if not line:
                return
            loop = self._loop
            if loop is None or loop.is_closed():
                return
            loop.call_soon_threadsafe(self._on_enter)

    def _on_enter(self) -> None:
        if self.executor.continue_run():
            console.print("[green]Continuing...[/green]")


def print_summary(summary: RunSummary) -> None:
    """Render the run summary as tables."""
    status_color = {
        RunState.COMPLETED: "green",
        RunState.STOPPED: "yellow",
    }.get(summary.final_state, "red")

    table = Table(title="Run Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    table.add_row("Workflow", str(summary.workflow_id))
    table.add_row("Final state", f"[{status_color}]{summary.final_state.value}[/{status_color}]")
    table.add_row("Records", str(summary.total_records))
    table.add_row("Succeeded", f"[green]{summary.success_count}[/green]")
    table.add_row("Failed", f"[red]{summary.error_count}[/red]")
    table.add_row("Execution log", str(summary.execution_log_id))
    console.print(table)

    if summary.failures:
        failures = Table(title="Failed Records", show_lines=True)
        failures.add_column("#", style="cyan", width=6)
        failures.add_column("Record", style="yellow")
        failures.add_column("Error", style="white")
        for failure in summary.failures:
            failures.add_row(
                str(failure.record_index + 1),
                str(failure.record_id),
                failure.message,
            )
        console.print(failures)


def _install_stop_handler(executor: WorkflowExecutor) -> None:
    loop = asyncio.get_running_loop()

    def request_stop() -> None:
        if executor.state_machine.is_active:
            console.print("\n[yellow]Stopping after the current step...[/yellow]")
            loop.create_task(executor.stop())

    try:
        loop.add_signal_handler(signal.SIGINT, request_stop)
    except NotImplementedError:
        logger.debug("Signal handlers are not supported on this platform")


async def run_workflow(
    db_path: Path,
    workflow_id: int,
    data_source_id: int,
    options: RunOptions,
) -> int:
    """Run a stored workflow and print its summary."""
    store = SQLiteStore(db_path)
    executor = WorkflowExecutor(store)
    InteractiveConsole(executor).attach(executor.events)
    _install_stop_handler(executor)

    console.print(f"\n[cyan]Running workflow[/cyan] {workflow_id} [cyan]with data source[/cyan] {data_source_id}")
    try:
        summary = await executor.start(workflow_id, data_source_id, options)
    except EduBotError as e:
        console.print(f"\n[red]Error: {e.message}[/red]")
        logger.error("Workflow run failed", extra={"error": e.to_dict()})
        return 1
    finally:
        store.close()

    print_summary(summary)
    return 0 if summary.success and summary.error_count == 0 else 1


async def async_main(args: Optional[list] = None) -> int:
    """Async main entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if parsed_args.version:
        return show_version()

    settings = get_settings()
    if parsed_args.log_level:
        settings.log_level = parsed_args.log_level
    if parsed_args.log_format:
        settings.log_format = parsed_args.log_format

    setup_logging(
        log_level=settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
    )

    if parsed_args.optimize_selector is not None:
        return print_optimized_selector(parsed_args.optimize_selector)

    if parsed_args.workflow is None or parsed_args.data_source is None:
        parser.print_help()
        return 1

    settings.create_directories()
    options = RunOptions(
        headless=parsed_args.headless,
        auto_resume_on_login=parsed_args.auto_resume_login,
        login_timeout_ms=parsed_args.login_timeout,
        delay_between_records_ms=parsed_args.delay_between_records,
    )
    return await run_workflow(
        db_path=parsed_args.db or settings.database_path,
        workflow_id=parsed_args.workflow,
        data_source_id=parsed_args.data_source,
        options=options,
    )


def main(args: Optional[list] = None) -> int:
    """
    Main entry point for EDUBot.

    Args:
        args: Command line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        return asyncio.run(async_main(args))
    except Exception as e:
        console.print(f"[red]Fatal error: {e}[/red]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
