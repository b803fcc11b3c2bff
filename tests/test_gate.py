"""
Actuation Gate Tests

This module contains tests for the controller state and debounce gate.
"""

import dataclasses
import pytest
from curvefan.control.gate import ControllerState, should_actuate

def test_initial_state():
    """Test state starts at zero"""
    state = ControllerState()
    assert state.last_actuated_temperature == 0
    assert state.last_actuated_duty_cycle == 0
    assert state.current_duty_cycle == 0

def test_state_is_immutable():
    """Test state values cannot be mutated in place"""
    state = ControllerState()
    with pytest.raises(dataclasses.FrozenInstanceError):
        state.current_duty_cycle = 50

def test_state_transitions():
    """Test computed and actuated return new state values"""
    state = ControllerState()

    computed = state.computed(40)
    assert computed.current_duty_cycle == 40
    assert computed.last_actuated_duty_cycle == 0
    assert state.current_duty_cycle == 0

    actuated = computed.actuated(52.0, 45)
    assert actuated == ControllerState(
        last_actuated_temperature=52.0,
        last_actuated_duty_cycle=45,
        current_duty_cycle=45
    )

def test_zero_threshold():
    """Test threshold 0 actuates on any change but not on an exact repeat"""
    state = ControllerState()
    assert should_actuate(5, 10, state, 0)

    state = state.actuated(5, 10)
    assert not should_actuate(5, 10, state, 0)
    assert should_actuate(5.1, 10, state, 0)

def test_threshold_is_strict():
    """Test the delta must exceed the threshold"""
    state = ControllerState().actuated(40, 25)
    assert not should_actuate(42, 30, state, 3)
    assert not should_actuate(43, 30, state, 3)
    assert not should_actuate(37, 20, state, 3)
    assert should_actuate(43.5, 30, state, 3)
    assert should_actuate(36.9, 20, state, 3)

def test_identical_temperature_never_actuates():
    """Test repeated identical temperatures with unchanged state"""
    state = ControllerState().actuated(60, 70)
    assert not should_actuate(60, 70, state, 2)
    assert not should_actuate(60, 70, state, 2)

def test_cumulative_drift():
    """Test slow drift actuates once it exceeds the threshold in total"""
    state = ControllerState().actuated(40, 25)
    results = [should_actuate(t, 0, state, 3) for t in (41, 42, 43, 44)]
    assert results == [False, False, False, True]

def test_gate_ignores_duty_cycle():
    """Test a large duty change alone does not actuate"""
    state = ControllerState().actuated(50, 10)
    assert not should_actuate(51, 90, state, 3)
