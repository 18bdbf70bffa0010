"""
Workflow executor.

Runs one workflow over every record of a data source inside a single
browser session. A failing record is recorded and the run moves on; only
configuration, session and browser failures abort the whole run.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

from edubot.browser.driver import PlaywrightDriver
from edubot.config.settings import Settings, get_settings
from edubot.core.interfaces import BrowserPort, PersistencePort
from edubot.core.types import (
    SESSION_ONLY_ACTIONS,
    ExecutionLogEntry,
    ExecutionStatus,
    Record,
    RecordFailure,
    RunEvent,
    RunEventType,
    RunOptions,
    RunState,
    RunStatus,
    RunSummary,
    Step,
    Workflow,
)
from edubot.error_handling import (
    ConfigurationError,
    EduBotError,
    LoginTimeoutError,
    RecoveryManager,
    RunAlreadyActiveError,
    RunStoppedError,
    UserWaitTimeoutError,
)
from edubot.execution.events import EventBus
from edubot.execution.gate import ContinuationGate
from edubot.execution.interpreter import StepInterpreter
from edubot.execution.login import LoginDetector
from edubot.execution.state_machine import RunStateMachine, RunTransition
from edubot.monitoring.logger import get_logger, log_run_event
from edubot.resolver import ElementResolver
from edubot.scripting import ScriptRunner

logger = get_logger(__name__)

BrowserFactory = Callable[[RunOptions], BrowserPort]


def _default_browser_factory(options: RunOptions) -> BrowserPort:
    return PlaywrightDriver(headless=options.headless)


class WorkflowExecutor:
    """
    Drives workflow runs and exposes their control surface.

    At most one run is active per executor. ``pause``, ``resume``, ``stop``
    and ``continue_run`` are meant to be called from other tasks while
    ``start`` is running.
    """

    def __init__(
        self,
        persistence: PersistencePort,
        browser_factory: Optional[BrowserFactory] = None,
        event_bus: Optional[EventBus] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the executor.

        Args:
            persistence: Storage for workflows, records and execution logs
            browser_factory: Creates the browser session of a run
            event_bus: Bus that receives run events
            settings: Application settings
        """
        self.persistence = persistence
        self.browser_factory = browser_factory or _default_browser_factory
        self.events = event_bus or EventBus()
        self.settings = settings or get_settings()
        self.state_machine = RunStateMachine()
        self.recovery = RecoveryManager()

        self._gate = ContinuationGate()
        self._resume_event = asyncio.Event()
        self._resume_event.set()
        self._stop_requested = False
        self._run_active = False

        self._browser: Optional[BrowserPort] = None
        self._workflow_id: Optional[int] = None
        self._current_step_index: Optional[int] = None
        self._current_record_index: Optional[int] = None
        self._execution_log_id: Optional[Any] = None
        self._context: Dict[str, Any] = {}

    @property
    def state(self) -> RunState:
        return self.state_machine.state

    @property
    def run_in_progress(self) -> bool:
        """Whether a run still holds the session, including one winding down after stop."""
        return self._run_active

    @property
    def awaiting_continue(self) -> bool:
        """Whether a continue signal would be consumed right now."""
        return self._gate.is_waiting

    def get_status(self) -> RunStatus:
        return RunStatus(
            state=self.state,
            workflow_id=self._workflow_id,
            current_step_index=self._current_step_index,
            current_record_index=self._current_record_index,
            execution_log_id=self._execution_log_id,
        )

    # Control surface

    async def start(
        self,
        workflow_id: int,
        data_source_id: int,
        options: Optional[RunOptions] = None,
    ) -> RunSummary:
        """
        Run a workflow over all records of a data source.

        Args:
            workflow_id: Workflow to run
            data_source_id: Data source supplying the records
            options: Per-run overrides of the configured defaults

        Returns:
            Summary of the run. A stopped run returns normally with
            ``final_state`` set to ``stopped``.

        Raises:
            RunAlreadyActiveError: Another run is active on this executor
            ConfigurationError: Workflow, steps or records are missing
            EduBotError: The session or browser failed and the run aborted
        """
        options = options or RunOptions()
        # A stopped run keeps the session until its current step returns
        if self._run_active or self.state_machine.is_active:
            raise RunAlreadyActiveError(self.state.value, self._workflow_id)

        self._run_active = True
        try:
            return await self._execute(workflow_id, data_source_id, options)
        finally:
            self._run_active = False

    async def _execute(
        self, workflow_id: int, data_source_id: int, options: RunOptions
    ) -> RunSummary:
        self.state_machine.apply(RunTransition.START, {"workflow_id": workflow_id})
        self._reset_run(workflow_id)
        await self._publish_state_change()

        try:
            workflow, steps, records = await self._load_run_inputs(workflow_id, data_source_id)
        except ConfigurationError as e:
            await self._fail(e)
            raise

        logger.info(
            f"Starting workflow: {workflow.name}",
            extra={
                "workflow_id": workflow_id,
                "total_steps": len(steps),
                "total_records": len(records),
            },
        )
        self._execution_log_id = await self.persistence.create_execution_log(
            ExecutionLogEntry(
                workflow_id=workflow_id,
                status=ExecutionStatus.STARTED,
                message=f"Workflow started with {len(records)} records",
            )
        )
        summary = RunSummary(
            workflow_id=workflow_id,
            total_records=len(records),
            final_state=RunState.RUNNING,
            execution_log_id=self._execution_log_id,
        )

        try:
            await self._run_session(workflow, steps, records, options, summary)
        except RunStoppedError:
            logger.info("Workflow stopped", extra={"workflow_id": workflow_id})
            await self._finish_log(ExecutionStatus.STOPPED, "Workflow stopped by user")
            summary.final_state = RunState.STOPPED
        except Exception as e:
            logger.error(
                f"Workflow aborted: {e}",
                extra={"workflow_id": workflow_id},
                exc_info=True,
            )
            await self._finish_log(ExecutionStatus.FAILED, f"Workflow aborted: {e}", error=e)
            await self._fail(e)
            raise
        else:
            self.state_machine.apply(RunTransition.COMPLETE)
            await self._publish_state_change()
            await self._finish_log(
                ExecutionStatus.COMPLETED,
                f"Completed: {summary.success_count} succeeded, {summary.error_count} failed",
            )
            summary.final_state = RunState.COMPLETED
        finally:
            await self._release_browser()
            self._context = {}

        await self.events.publish(RunEvent(
            event_type=RunEventType.COMPLETE,
            message=f"Workflow finished: {summary.final_state.value}",
            data=summary.model_dump(mode="json"),
        ))
        log_run_event(
            RunEventType.COMPLETE.value,
            workflow_id,
            data={
                "final_state": summary.final_state.value,
                "success_count": summary.success_count,
                "error_count": summary.error_count,
            },
        )
        return summary

    async def pause(self) -> None:
        """Suspend the run before its next step."""
        self.state_machine.apply(RunTransition.PAUSE)
        self._resume_event.clear()
        logger.info("Workflow paused", extra={"workflow_id": self._workflow_id})
        await self._publish_state_change()

    async def resume(self) -> None:
        self.state_machine.apply(RunTransition.RESUME)
        self._resume_event.set()
        logger.info("Workflow resumed", extra={"workflow_id": self._workflow_id})
        await self._publish_state_change()

    async def stop(self) -> None:
        """
        Request a cooperative stop.

        The run ends at its next checkpoint or wait and then releases the
        browser session.
        """
        self.state_machine.apply(RunTransition.STOP)
        self._stop_requested = True
        self._gate.cancel()
        self._resume_event.set()
        logger.info("Workflow stop requested", extra={"workflow_id": self._workflow_id})
        await self._publish_state_change()

    def continue_run(self) -> bool:
        """
        Deliver the continue signal to a run waiting for the user.

        Returns:
            True when a waiting run consumed the signal
        """
        if self.state != RunState.WAITING_FOR_USER:
            logger.warning(
                "Continue ignored, run is not waiting for the user",
                extra={"state": self.state.value},
            )
            return False
        return self._gate.signal()

    # Run internals

    def _reset_run(self, workflow_id: int) -> None:
        self._workflow_id = workflow_id
        self._current_step_index = None
        self._current_record_index = None
        self._execution_log_id = None
        self._context = {}
        self._stop_requested = False
        self._resume_event.set()
        self._gate.disarm()

    async def _load_run_inputs(
        self, workflow_id: int, data_source_id: int
    ) -> Tuple[Workflow, List[Step], List[Record]]:
        workflow = await self.persistence.get_workflow(workflow_id)
        if workflow is None:
            raise ConfigurationError(f"Workflow not found: {workflow_id}", missing="workflow")

        steps = sorted(
            await self.persistence.get_steps_by_workflow(workflow_id),
            key=lambda s: s.order,
        )
        if not steps:
            raise ConfigurationError("No steps found in workflow", missing="steps")

        records = await self.persistence.get_data_source_records(data_source_id)
        if records is None:
            raise ConfigurationError(
                f"Data source not found: {data_source_id}", missing="data_source"
            )
        if not records:
            raise ConfigurationError("No data found in data source", missing="records")

        return workflow, steps, records

    async def _run_session(
        self,
        workflow: Workflow,
        steps: List[Step],
        records: List[Record],
        options: RunOptions,
        summary: RunSummary,
    ) -> None:
        browser = self.browser_factory(options)
        self._browser = browser
        await browser.launch(headless=options.headless)

        interpreter = StepInterpreter(
            browser,
            self._context,
            resolver=ElementResolver(browser, settings=self.settings),
            script_runner=ScriptRunner(browser),
            recovery=self.recovery,
            wait_for_user=self._wait_for_user,
            settings=self.settings,
        )
        interpreter.prepare(steps)

        if workflow.target_url:
            await browser.navigate(workflow.target_url)
            if self.settings.initial_page_settle_ms:
                await browser.wait(self.settings.initial_page_settle_ms)
            if options.detect_login:
                await self._ensure_logged_in(browser, workflow, options)

        delay_ms = (
            options.delay_between_records_ms
            if options.delay_between_records_ms is not None
            else self.settings.delay_between_records_ms
        )
        repeatable_steps = [s for s in steps if s.action_type not in SESSION_ONLY_ACTIONS]

        for index, record in enumerate(records):
            await self._checkpoint()
            self._current_record_index = index
            self._current_step_index = None
            record_steps = steps if index == 0 else repeatable_steps
            await self._process_record(interpreter, index, record, record_steps, summary)

            await self.persistence.update_execution_log(self._execution_log_id, {
                "status": ExecutionStatus.PROGRESS.value,
                "processed_records": index + 1,
                "success_count": summary.success_count,
                "error_count": summary.error_count,
            })
            await self.events.publish(RunEvent(
                event_type=RunEventType.PROGRESS,
                message=f"Processed {index + 1}/{len(records)} records",
                record_index=index,
                data={
                    "processed": index + 1,
                    "total": len(records),
                    "success_count": summary.success_count,
                    "error_count": summary.error_count,
                },
            ))

            if delay_ms and index < len(records) - 1:
                await asyncio.sleep(delay_ms / 1000)

        await self._checkpoint()

    async def _process_record(
        self,
        interpreter: StepInterpreter,
        index: int,
        record: Record,
        steps: List[Step],
        summary: RunSummary,
    ) -> None:
        record_id = record.get("id", index + 1)
        try:
            await interpreter.execute_steps(
                steps, record, checkpoint=self._checkpoint, on_step=self._on_step
            )
        except RunStoppedError:
            raise
        except Exception as e:
            details = e.details if isinstance(e, EduBotError) else {}
            summary.error_count += 1
            summary.failures.append(RecordFailure(
                record_index=index,
                record_id=record_id,
                message=str(e),
                details=details,
            ))
            logger.error(
                f"Record {index + 1} failed: {e}",
                extra={"record_index": index, "record_id": record_id},
            )
            await self.persistence.update_queue_status(record_id, "failed", str(e))
            await self.events.publish(RunEvent(
                event_type=RunEventType.ERROR,
                message=f"Record {index + 1} failed: {e}",
                current_url=await self._current_url(),
                step_index=self._current_step_index,
                record_index=index,
                data=details,
            ))
            log_run_event(
                RunEventType.ERROR.value,
                self._workflow_id,
                record_index=index,
                step_index=self._current_step_index,
                data={"error": str(e)},
            )
        else:
            summary.success_count += 1
            await self.persistence.delete_from_queue(record_id)
            logger.info(
                f"Record {index + 1} processed",
                extra={"record_index": index, "record_id": record_id},
            )

    def _on_step(self, index: int, step: Step) -> None:
        self._current_step_index = index
        logger.debug(
            f"Executing step: {step.label}",
            extra={
                "step_index": index,
                "action_type": step.action_type.value,
                "record_index": self._current_record_index,
            },
        )

    async def _checkpoint(self) -> None:
        if self._stop_requested:
            raise RunStoppedError()
        if not self._resume_event.is_set():
            await self._resume_event.wait()
            if self._stop_requested:
                raise RunStoppedError()

    async def _wait_for_user(
        self, message: str, step_index: int, timeout_ms: Optional[int]
    ) -> None:
        # A pause requested during the step's retry delay holds here first
        await self._checkpoint()
        self.state_machine.apply(RunTransition.AWAIT_USER, {"step_index": step_index})
        self._gate.arm()
        await self._publish_state_change()
        await self.events.publish(RunEvent(
            event_type=RunEventType.WAITING_FOR_USER,
            message=message,
            current_url=await self._current_url(),
            step_index=step_index,
            record_index=self._current_record_index,
        ))

        signalled = await self._gate.wait(timeout_ms)
        self.state_machine.apply(RunTransition.USER_CONTINUED)
        await self._publish_state_change()
        if not signalled:
            raise UserWaitTimeoutError(timeout_ms, step_index)
        logger.info("User continued the run", extra={"step_index": step_index})

    async def _ensure_logged_in(
        self, browser: BrowserPort, workflow: Workflow, options: RunOptions
    ) -> None:
        detector = LoginDetector(browser, self.settings.login_markers)
        required, url = await detector.requires_login()
        if not required:
            logger.info("Session is already logged in", extra={"url": url})
            return

        auto_resume = (
            options.auto_resume_on_login
            if options.auto_resume_on_login is not None
            else self.settings.auto_resume_on_login
        )
        timeout_ms = options.login_timeout_ms
        if timeout_ms is None and auto_resume:
            timeout_ms = self.settings.login_wait_timeout_ms

        await self._checkpoint()
        self.state_machine.apply(RunTransition.AWAIT_USER, {"reason": "login"})
        self._gate.arm()
        await self._publish_state_change()
        await self.events.publish(RunEvent(
            event_type=RunEventType.LOGIN_REQUIRED,
            message="Login required. Log in in the browser window, then continue.",
            current_url=url,
            data={"target_url": workflow.target_url, "auto_resume": auto_resume},
        ))
        log_run_event(
            RunEventType.LOGIN_REQUIRED.value,
            self._workflow_id,
            data={"url": url, "auto_resume": auto_resume},
        )

        resumed_by = await self._await_login(detector, auto_resume, timeout_ms, url)

        self.state_machine.apply(RunTransition.USER_CONTINUED)
        await self._publish_state_change()
        if resumed_by == "auto":
            logger.info("Login detected, returning to target page")
            await browser.navigate(workflow.target_url)
            await self.events.publish(RunEvent(
                event_type=RunEventType.LOGIN_AUTO_RESUMED,
                message="Login detected, run resumed automatically",
                current_url=await self._current_url(),
            ))
        else:
            logger.info("User confirmed login")

    async def _await_login(
        self,
        detector: LoginDetector,
        auto_resume: bool,
        timeout_ms: Optional[int],
        url: Optional[str],
    ) -> str:
        """
        Wait for the continue signal, racing it against login polling.

        Returns:
            "user" or "auto", whichever resumed the run

        Raises:
            LoginTimeoutError: Neither happened within ``timeout_ms``
            RunStoppedError: The run was stopped while waiting
        """
        gate_task = asyncio.ensure_future(self._gate.wait())
        tasks = {gate_task}
        poll_task = None
        if auto_resume:
            poll_task = asyncio.ensure_future(self._poll_until_logged_in(detector))
            tasks.add(poll_task)

        try:
            done, pending = await asyncio.wait(
                tasks,
                timeout=timeout_ms / 1000 if timeout_ms else None,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self._gate.disarm()

        if gate_task in done:
            gate_task.result()
            return "user"
        if poll_task is not None and poll_task in done:
            poll_task.result()
            return "auto"
        raise LoginTimeoutError(timeout_ms or 0, url)

    async def _poll_until_logged_in(self, detector: LoginDetector) -> None:
        interval = self.settings.login_poll_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            if await detector.is_logged_in():
                return

    async def _current_url(self) -> Optional[str]:
        if self._browser is None or not self._browser.is_open:
            return None
        return await self._browser.get_current_url()

    async def _finish_log(
        self,
        status: ExecutionStatus,
        message: str,
        error: Optional[Exception] = None,
    ) -> None:
        if self._execution_log_id is None:
            return
        patch: Dict[str, Any] = {"status": status.value, "message": message}
        if error is not None:
            patch["error_message"] = str(error)
        await self.persistence.update_execution_log(self._execution_log_id, patch)

    async def _fail(self, error: Exception) -> None:
        if self.state_machine.can(RunTransition.FAIL):
            self.state_machine.apply(RunTransition.FAIL, {"error": str(error)})
            await self._publish_state_change()
        details = error.details if isinstance(error, EduBotError) else {}
        await self.events.publish(RunEvent(
            event_type=RunEventType.ERROR,
            message=str(error),
            current_url=await self._current_url(),
            step_index=self._current_step_index,
            record_index=self._current_record_index,
            data=details,
        ))
        log_run_event(
            RunEventType.ERROR.value,
            self._workflow_id,
            record_index=self._current_record_index,
            data={"error": str(error), "fatal": True},
        )

    async def _release_browser(self) -> None:
        browser, self._browser = self._browser, None
        if browser is None:
            return
        try:
            await browser.close()
        except Exception as e:
            logger.warning(f"Error closing browser session: {e}")

    async def _publish_state_change(self) -> None:
        await self.events.publish(RunEvent(
            event_type=RunEventType.STATE_CHANGED,
            message=self.state.value,
            data={"state": self.state.value, "workflow_id": self._workflow_id},
        ))
