"""
Tests for the run lifecycle state machine.
"""

import pytest

from edubot.core.types import RunState
from edubot.error_handling import InvalidTransitionError
from edubot.execution import VALID_TRANSITIONS, RunStateMachine, RunTransition


@pytest.fixture
def machine():
    return RunStateMachine()


class TestTransitions:
    """Allowed and rejected transitions."""

    def test_initial_state(self, machine):
        """Test a new machine is idle and inactive."""
        assert machine.state == RunState.IDLE
        assert machine.is_active is False

    def test_full_lifecycle(self, machine):
        """Test a run through pause, user wait and completion."""
        machine.apply(RunTransition.START)
        machine.apply(RunTransition.PAUSE)
        assert machine.is_active
        machine.apply(RunTransition.RESUME)
        machine.apply(RunTransition.AWAIT_USER)
        assert machine.state == RunState.WAITING_FOR_USER
        machine.apply(RunTransition.USER_CONTINUED)
        final = machine.apply(RunTransition.COMPLETE)

        assert final == RunState.COMPLETED
        assert machine.is_active is False

    @pytest.mark.parametrize("state", [RunState.RUNNING, RunState.PAUSED, RunState.WAITING_FOR_USER])
    def test_stop_from_every_active_state(self, state):
        """Test stop is accepted wherever a run is active."""
        assert VALID_TRANSITIONS[state][RunTransition.STOP] == RunState.STOPPED
        assert VALID_TRANSITIONS[state][RunTransition.FAIL] == RunState.FAILED

    @pytest.mark.parametrize("state", [RunState.IDLE, RunState.STOPPED, RunState.COMPLETED, RunState.FAILED])
    def test_start_from_every_final_state(self, state):
        """Test a new run can begin once the last one ended."""
        assert VALID_TRANSITIONS[state] == {RunTransition.START: RunState.RUNNING}

    @pytest.mark.parametrize("transition", [
        RunTransition.PAUSE,
        RunTransition.RESUME,
        RunTransition.STOP,
        RunTransition.USER_CONTINUED,
    ])
    def test_invalid_from_idle(self, machine, transition):
        """Test control transitions need an active run."""
        assert machine.can(transition) is False

        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.apply(transition)

        assert exc_info.value.details["current_state"] == "idle"
        assert machine.state == RunState.IDLE

    def test_start_while_running_rejected(self, machine):
        """Test a second start is refused."""
        machine.apply(RunTransition.START)

        with pytest.raises(InvalidTransitionError):
            machine.apply(RunTransition.START)

    def test_pause_only_while_running(self, machine):
        """Test pause is refused while waiting for the user."""
        machine.apply(RunTransition.START)
        machine.apply(RunTransition.AWAIT_USER)

        assert machine.can(RunTransition.PAUSE) is False
        assert machine.can(RunTransition.STOP) is True


class TestHistoryAndCallbacks:
    """Bookkeeping around transitions."""

    def test_history(self, machine):
        """Test every transition is recorded with its data."""
        machine.apply(RunTransition.START, {"workflow_id": 3})
        machine.apply(RunTransition.STOP)

        history = machine.get_history()
        assert [(h["from_state"], h["to_state"]) for h in history] == [
            ("idle", "running"),
            ("running", "stopped"),
        ]
        assert history[0]["data"] == {"workflow_id": 3}
        assert history[1]["transition"] == "stop"
        assert machine.get_history(limit=1) == history[-1:]

    def test_history_limit(self):
        """Test old entries are dropped past the limit."""
        machine = RunStateMachine(history_limit=3)
        for _ in range(3):
            machine.apply(RunTransition.START)
            machine.apply(RunTransition.COMPLETE)

        history = machine.get_history()
        assert len(history) == 3
        assert history[-1]["to_state"] == "completed"

    def test_callbacks(self, machine):
        """Test callbacks receive each change and can be removed."""
        changes = []

        def callback(previous, target, transition):
            changes.append((previous, target, transition))

        machine.register_state_callback(callback)
        machine.apply(RunTransition.START)
        machine.unregister_state_callback(callback)
        machine.apply(RunTransition.PAUSE)

        assert changes == [(RunState.IDLE, RunState.RUNNING, RunTransition.START)]

    def test_failing_callback_does_not_block(self, machine):
        """Test an exception in a callback is logged and the change stands."""
        def broken(previous, target, transition):
            raise RuntimeError("ui gone")

        machine.register_state_callback(broken)

        assert machine.apply(RunTransition.START) == RunState.RUNNING
        assert machine.state == RunState.RUNNING
