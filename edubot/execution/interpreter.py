"""
Step interpreter.

Turns stored workflow steps into browser actions for one data record. Each
step is retried according to its ``retry_count``; optional steps that still
fail are logged and skipped.
"""

import asyncio
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, MutableMapping, Optional, Tuple

from edubot.config.settings import Settings, get_settings
from edubot.core.interfaces import BrowserPort
from edubot.core.parsing import parse_step_config
from edubot.core.types import ActionType, PositionSelector, Record, SelectorDescription, Step
from edubot.error_handling import (
    ConfigurationError,
    FixedDelayStrategy,
    RecoveryError,
    RecoveryManager,
    StepExecutionError,
)
from edubot.execution.templates import substitute
from edubot.monitoring.logger import get_logger
from edubot.resolver import ElementResolver, parse_selector
from edubot.scripting import ScriptPayload, ScriptRunner, classify_payload

logger = get_logger(__name__)

# (message, step index, timeout in ms or None)
WaitForUserHook = Callable[[str, int, Optional[int]], Awaitable[None]]
Checkpoint = Callable[[], Awaitable[None]]
StepCallback = Callable[[int, Step], None]


def render_selector(
    description: SelectorDescription,
    record: Optional[Record],
    context: Optional[MutableMapping[str, Any]],
) -> SelectorDescription:
    """Substitute ``{{name}}`` placeholders in every string field of a selector."""

    def render(value: Optional[str]) -> Optional[str]:
        if not value:
            return value
        return substitute(value, record, context) or None

    position = None
    if description.position is not None:
        position = PositionSelector(
            parent=render(description.position.parent) or description.position.parent,
            index=description.position.index,
        )

    return SelectorDescription(
        primary=render(description.primary),
        id=render(description.id),
        name=render(description.name),
        attributes={
            key: substitute(value, record, context)
            for key, value in description.attributes.items()
        },
        xpath=render(description.xpath),
        css=render(description.css),
        text=render(description.text),
        position=position,
        alternatives=[
            rendered
            for rendered in (render(alt) for alt in description.alternatives)
            if rendered
        ],
    )


def _int_option(config: Dict[str, Any], key: str, default: int) -> int:
    value = config.get(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(
            f"Ignoring non-numeric step option {key}",
            extra={"option": key, "value": str(value)},
        )
        return default


class StepInterpreter:
    """
    Executes workflow steps against a browser session.

    One interpreter lives for one run. The execution context it shares with
    the script runner persists across records of that run.
    """

    def __init__(
        self,
        browser: BrowserPort,
        context: Optional[MutableMapping[str, Any]] = None,
        resolver: Optional[ElementResolver] = None,
        script_runner: Optional[ScriptRunner] = None,
        recovery: Optional[RecoveryManager] = None,
        wait_for_user: Optional[WaitForUserHook] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.browser = browser
        self.context = context if context is not None else {}
        self.settings = settings or get_settings()
        self.resolver = resolver or ElementResolver(browser, settings=self.settings)
        self.script_runner = script_runner or ScriptRunner(browser)
        self.recovery = recovery or RecoveryManager()
        self.wait_for_user = wait_for_user

        self._script_payloads: Dict[Tuple[Optional[int], int], ScriptPayload] = {}
        self._handlers = {
            ActionType.NAVIGATE: self._navigate,
            ActionType.CLICK: self._click,
            ActionType.TYPE: self._type,
            ActionType.SELECT: self._select,
            ActionType.WAIT: self._wait,
            ActionType.WAIT_FOR_ELEMENT: self._wait_for_element,
            ActionType.SCREENSHOT: self._screenshot,
            ActionType.EXECUTE_SCRIPT: self._execute_script,
            ActionType.WAIT_FOR_USER: self._wait_for_user,
        }

    def prepare(self, steps: List[Step]) -> None:
        """Classify the script payload of every ``execute_script`` step once."""
        for step in steps:
            if step.action_type == ActionType.EXECUTE_SCRIPT:
                self._payload_for(step)

    def _payload_for(self, step: Step) -> ScriptPayload:
        key = (step.id, step.order)
        payload = self._script_payloads.get(key)
        if payload is None:
            payload = classify_payload(
                parse_step_config(step.config),
                raw_config=step.config if isinstance(step.config, str) else None,
                value=step.value,
            )
            self._script_payloads[key] = payload
            logger.debug(
                "Script payload classified",
                extra={"step_order": step.order, "payload_kind": payload.kind},
            )
        return payload

    async def execute_steps(
        self,
        steps: List[Step],
        record: Record,
        checkpoint: Optional[Checkpoint] = None,
        on_step: Optional[StepCallback] = None,
    ) -> None:
        """
        Run ``steps`` in order for one record.

        Args:
            steps: Steps to run, already in execution order
            record: Current data record
            checkpoint: Awaited before every step (pause and stop handling)
            on_step: Called with the step index before the step runs

        Raises:
            StepExecutionError: A non-optional step failed
            RunStoppedError: The run was stopped at a checkpoint or wait
        """
        for index, step in enumerate(steps):
            if checkpoint is not None:
                await checkpoint()
            if on_step is not None:
                on_step(index, step)
            await self.run_step(step, record, index)

    async def run_step(self, step: Step, record: Record, step_index: int = 0) -> Any:
        """
        Run one step with its retry budget.

        Returns:
            The action's result, or None for a skipped optional step
        """
        attempts = step.retry_count + 1
        strategy = FixedDelayStrategy(self.settings.step_retry_delay_ms, attempts)
        started = time.monotonic()

        try:
            result = await self.recovery.execute_with_recovery(
                self.execute_step,
                f"step_{step.order}_{step.action_type.value}",
                step,
                record,
                step_index,
                retry_strategy=strategy,
            )
        except RecoveryError as e:
            error = e.original_error or e
            if step.is_optional:
                logger.warning(
                    f"Optional step failed, continuing: {step.label}",
                    extra={
                        "step_order": step.order,
                        "action_type": step.action_type.value,
                        "error": str(error),
                    },
                )
                return None
            raise StepExecutionError(
                f"Step {step.order} failed after {step.retry_count} retries: {error}",
                step_order=step.order,
                action_type=step.action_type.value,
                attempts=e.attempts,
                cause=error,
            ) from error

        logger.info(
            f"Step completed: {step.label}",
            extra={
                "step_order": step.order,
                "action_type": step.action_type.value,
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        )
        if step.wait_after > 0:
            await asyncio.sleep(step.wait_after / 1000)
        return result

    async def execute_step(self, step: Step, record: Record, step_index: int = 0) -> Any:
        """Single attempt of one step, without retries."""
        handler = self._handlers.get(step.action_type)
        if handler is None:
            raise ConfigurationError(
                f"Unsupported action type: {step.action_type}", missing="handler"
            )
        config = parse_step_config(step.config)
        return await handler(step, config, record, step_index)

    def _render(self, text: Optional[str], record: Record) -> str:
        return substitute(text, record, self.context)

    async def _resolve(
        self,
        step: Step,
        config: Dict[str, Any],
        record: Record,
        minimum_timeout_ms: int = 0,
    ) -> Any:
        description = render_selector(parse_selector(step.selector), record, self.context)
        if description.is_empty():
            raise ConfigurationError(
                f"Step {step.order} has no selector", missing="selector"
            )
        timeout_ms = _int_option(config, "timeout", self.settings.resolver_timeout_ms)
        resolution = await self.resolver.resolve(
            description, timeout_ms=max(timeout_ms, minimum_timeout_ms)
        )
        return resolution.element

    async def _navigate(self, step: Step, config: Dict[str, Any], record: Record, step_index: int) -> None:
        url = self._render(step.value or config.get("url") or config.get("value"), record)
        if not url:
            raise ConfigurationError(f"Navigate step {step.order} has no URL", missing="url")
        await self.browser.navigate(url, config.get("waitUntil"))

    async def _click(self, step: Step, config: Dict[str, Any], record: Record, step_index: int) -> None:
        element = await self._resolve(step, config, record)
        await self.browser.click_element(element)

    async def _type(self, step: Step, config: Dict[str, Any], record: Record, step_index: int) -> None:
        text = self._render(step.value or config.get("value"), record)
        element = await self._resolve(
            step, config, record, minimum_timeout_ms=self.settings.min_type_timeout_ms
        )
        delay_ms = _int_option(config, "typeDelay", self.settings.type_delay_ms)
        await self.browser.type_into(element, text, delay_ms=delay_ms)

    async def _select(self, step: Step, config: Dict[str, Any], record: Record, step_index: int) -> None:
        value = self._render(config.get("value") or step.value, record)
        data_field = config.get("dataField")
        if data_field and record.get(data_field) is not None:
            value = str(record[data_field])
        element = await self._resolve(step, config, record)
        await self.browser.select_value(element, value)

    async def _wait(self, step: Step, config: Dict[str, Any], record: Record, step_index: int) -> None:
        duration = _int_option(config, "duration", self.settings.default_wait_ms)
        await self.browser.wait(duration)

    async def _wait_for_element(self, step: Step, config: Dict[str, Any], record: Record, step_index: int) -> None:
        await self._resolve(step, config, record)

    async def _screenshot(self, step: Step, config: Dict[str, Any], record: Record, step_index: int) -> str:
        directory = Path(self._render(config.get("directory"), record) or self.settings.screenshots_dir)
        filename = self._render(config.get("filename"), record) or (
            f"screenshot_{int(time.time() * 1000)}.png"
        )
        path = directory / filename
        path.parent.mkdir(parents=True, exist_ok=True)

        options = config.get("options") if isinstance(config.get("options"), dict) else {}
        await self.browser.screenshot(path, full_page=bool(options.get("fullPage", True)))
        logger.info("Screenshot saved", extra={"path": str(path)})
        return str(path)

    async def _execute_script(self, step: Step, config: Dict[str, Any], record: Record, step_index: int) -> Any:
        return await self.script_runner.run(self._payload_for(step), record, self.context)

    async def _wait_for_user(self, step: Step, config: Dict[str, Any], record: Record, step_index: int) -> None:
        if self.wait_for_user is None:
            raise ConfigurationError(
                "wait_for_user step needs a continuation handler", missing="wait_for_user"
            )
        message = (
            self._render(config.get("waitMessage"), record)
            or step.description
            or "Waiting for user to continue"
        )
        timeout_ms = _int_option(config, "timeout", 0) or None
        await self.wait_for_user(message, step_index, timeout_ms)
