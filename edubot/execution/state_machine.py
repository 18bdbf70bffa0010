"""
Run lifecycle state machine.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from edubot.core.types import ACTIVE_RUN_STATES, RunState
from edubot.error_handling.exceptions import InvalidTransitionError
from edubot.monitoring.logger import get_logger

logger = get_logger(__name__)


class RunTransition(str, Enum):
    """Transitions between run states."""

    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    AWAIT_USER = "await_user"
    USER_CONTINUED = "user_continued"
    STOP = "stop"
    COMPLETE = "complete"
    FAIL = "fail"


VALID_TRANSITIONS: Dict[RunState, Dict[RunTransition, RunState]] = {
    RunState.IDLE: {
        RunTransition.START: RunState.RUNNING,
    },
    RunState.RUNNING: {
        RunTransition.PAUSE: RunState.PAUSED,
        RunTransition.AWAIT_USER: RunState.WAITING_FOR_USER,
        RunTransition.STOP: RunState.STOPPED,
        RunTransition.COMPLETE: RunState.COMPLETED,
        RunTransition.FAIL: RunState.FAILED,
    },
    RunState.PAUSED: {
        RunTransition.RESUME: RunState.RUNNING,
        RunTransition.STOP: RunState.STOPPED,
        RunTransition.FAIL: RunState.FAILED,
    },
    RunState.WAITING_FOR_USER: {
        RunTransition.USER_CONTINUED: RunState.RUNNING,
        RunTransition.STOP: RunState.STOPPED,
        RunTransition.FAIL: RunState.FAILED,
    },
    RunState.STOPPED: {
        RunTransition.START: RunState.RUNNING,
    },
    RunState.COMPLETED: {
        RunTransition.START: RunState.RUNNING,
    },
    RunState.FAILED: {
        RunTransition.START: RunState.RUNNING,
    },
}

StateCallback = Callable[[RunState, RunState, RunTransition], None]


class RunStateMachine:
    """
    Holds the state of the current run and validates every transition.

    Transitions are applied synchronously so that a check and the state
    change it guards can never be interleaved with another coroutine.
    """

    def __init__(self, history_limit: int = 1000) -> None:
        self._state = RunState.IDLE
        self._history: List[Dict[str, Any]] = []
        self._history_limit = history_limit
        self._callbacks: List[StateCallback] = []

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state in ACTIVE_RUN_STATES

    def can(self, transition: RunTransition) -> bool:
        return transition in VALID_TRANSITIONS.get(self._state, {})

    def apply(
        self,
        transition: RunTransition,
        data: Optional[Dict[str, Any]] = None,
    ) -> RunState:
        """
        Apply a transition.

        Raises:
            InvalidTransitionError: The transition is not allowed from the current state
        """
        target = VALID_TRANSITIONS.get(self._state, {}).get(transition)
        if target is None:
            raise InvalidTransitionError(self._state.value, transition.value)

        previous = self._state
        self._state = target
        self._record(previous, target, transition, data)
        logger.debug(
            "Run state changed",
            extra={
                "from_state": previous.value,
                "to_state": target.value,
                "transition": transition.value,
            },
        )

        for callback in list(self._callbacks):
            try:
                callback(previous, target, transition)
            except Exception as e:
                logger.error(f"Error in state change callback: {e}")
        return target

    def _record(
        self,
        previous: RunState,
        target: RunState,
        transition: RunTransition,
        data: Optional[Dict[str, Any]],
    ) -> None:
        self._history.append({
            "from_state": previous.value,
            "to_state": target.value,
            "transition": transition.value,
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
        if len(self._history) > self._history_limit:
            self._history = self._history[-self._history_limit:]

    def register_state_callback(self, callback: StateCallback) -> None:
        self._callbacks.append(callback)

    def unregister_state_callback(self, callback: StateCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def get_history(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Get state change history, oldest first."""
        return self._history[-limit:]
