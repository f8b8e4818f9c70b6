"""
Tests for booking_engine/engine/state_machine.py
"""
import pytest

from booking_engine.engine.state_machine import StateMachine, StateMachineConfig, StateTransition


def _make_config():
    return StateMachineConfig(
        name="Door",
        states=["open", "closed", "locked", "broken"],
        transitions=[
            StateTransition("open", "closed", "close"),
            StateTransition("closed", "open", "open"),
            StateTransition("closed", "locked", "lock"),
            StateTransition("locked", "closed", "unlock"),
            StateTransition("closed", "broken", "kick"),
        ],
        initial_state="open",
        terminal_states=["broken"],
    )


class TestStateMachine:

    def test_initial_state(self):
        assert StateMachine(_make_config()).current_state == "open"

    def test_unknown_state_rejected(self):
        with pytest.raises(ValueError):
            StateMachine(_make_config(), current_state="ajar")

    def test_fire_records_history(self):
        machine = StateMachine(_make_config())
        assert machine.fire("close") == "closed"
        assert machine.fire("lock") == "locked"
        assert [(h.previous_state, h.current_state, h.trigger) for h in machine.history] == [
            ("open", "closed", "close"),
            ("closed", "locked", "lock"),
        ]

    def test_invalid_trigger(self):
        machine = StateMachine(_make_config())
        with pytest.raises(ValueError):
            machine.fire("lock")
        assert machine.current_state == "open"
        assert machine.history == []

    def test_allowed_triggers_and_targets(self):
        machine = StateMachine(_make_config(), current_state="closed")
        assert set(machine.allowed_triggers()) == {"open", "lock", "kick"}
        assert machine.target_of("lock") == "locked"
        assert machine.target_of("close") is None
        assert machine.can_transition_to("broken", "kick")
        assert not machine.can_transition_to("open", "kick")

    def test_terminal(self):
        machine = StateMachine(_make_config(), current_state="closed")
        machine.fire("kick")
        assert machine.is_terminal()
        assert not machine.can_fire("open")

    def test_terminal_state_with_outgoing_transition_rejected(self):
        config = _make_config()
        config.transitions.append(StateTransition("broken", "open", "repair"))
        with pytest.raises(ValueError):
            StateMachine(config)
