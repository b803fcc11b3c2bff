"""
Tests for the temperature sensor and fan actuator modules
"""

import math
import pytest
import time
from unittest.mock import Mock

from curvefan.errors import ActuationError, SamplingError
from curvefan.ipmi.actuator import DryRunActuator, IPMIFanActuator
from curvefan.ipmi.commander import IPMICommander, IPMIError
from curvefan.ipmi.sensors import IPMITemperatureSource, SensorReading, compile_patterns

# Test Data
MOCK_READINGS = [
    {"name": "CPU1 Temp", "value": 45.0, "state": "ok", "response_id": None},
    {"name": "CPU2 Temp", "value": 47.0, "state": "ok", "response_id": None},
    {"name": "System Temp", "value": 52.0, "state": "ok", "response_id": None},
    {"name": "PCH Temp", "value": None, "state": "ns", "response_id": None},
    {"name": "FAN1", "value": 1680.0, "state": "ok", "response_id": None},
    {"name": "CPU1 Temp Backup", "value": 99.0, "state": "ok", "response_id": None},
]

@pytest.fixture
def commander():
    """Create a mock IPMI commander"""
    commander = Mock(spec=IPMICommander)
    commander.get_sensor_readings.return_value = list(MOCK_READINGS)
    return commander

# Sensor Tests

def test_sample_highest_matching(commander):
    """Test the hottest matching sensor wins"""
    source = IPMITemperatureSource(commander, ["CPU* Temp"])
    assert source.sample() == 47.0
    assert set(source.last_readings) == {"CPU1 Temp", "CPU2 Temp"}

def test_sample_all_temperature_sensors(commander):
    """Test every temperature sensor is used when no patterns are given"""
    source = IPMITemperatureSource(commander)
    assert source.sample() == 99.0
    assert "FAN1" not in source.last_readings
    assert "PCH Temp" in source.last_readings

def test_patterns_are_anchored():
    """Test glob patterns match whole names, case-insensitively"""
    pattern = compile_patterns(["CPU? Temp"])[0]
    assert pattern.match("CPU1 Temp")
    assert pattern.match("cpu2 temp")
    assert not pattern.match("CPU1 Temp Backup")
    assert not pattern.match("CPU10 Temp")

def test_sample_no_valid_readings(commander):
    """Test only unusable readings is a sampling error"""
    commander.get_sensor_readings.return_value = [
        {"name": "CPU1 Temp", "value": None, "state": "ns", "response_id": None},
        {"name": "CPU2 Temp", "value": float("nan"), "state": "ok", "response_id": None},
    ]
    source = IPMITemperatureSource(commander, ["CPU* Temp"])
    with pytest.raises(SamplingError, match="No valid temperature readings"):
        source.sample()

def test_sample_no_matching_sensors(commander):
    """Test patterns that match nothing is a sampling error"""
    source = IPMITemperatureSource(commander, ["GPU* Temp"])
    with pytest.raises(SamplingError):
        source.sample()

def test_sample_ignores_non_finite(commander):
    """Test NaN and infinite readings never win the maximum"""
    commander.get_sensor_readings.return_value = [
        {"name": "CPU1 Temp", "value": 45.0, "state": "ok", "response_id": None},
        {"name": "CPU2 Temp", "value": float("inf"), "state": "ok", "response_id": None},
        {"name": "CPU3 Temp", "value": float("nan"), "state": "ok", "response_id": None},
    ]
    source = IPMITemperatureSource(commander, ["CPU* Temp"])
    assert source.sample() == 45.0

def test_sample_ipmi_failure(commander):
    """Test IPMI failures surface as sampling errors"""
    commander.get_sensor_readings.side_effect = IPMIError("Error in open session")
    source = IPMITemperatureSource(commander, ["CPU* Temp"])
    with pytest.raises(SamplingError, match="Failed to read IPMI sensors"):
        source.sample()

def test_critical_reading_still_used(commander):
    """Test critical sensors are logged but still count"""
    commander.get_sensor_readings.return_value = [
        {"name": "CPU1 Temp", "value": 45.0, "state": "ok", "response_id": None},
        {"name": "CPU2 Temp", "value": 91.0, "state": "cr", "response_id": None},
    ]
    source = IPMITemperatureSource(commander, ["CPU* Temp"])
    assert source.sample() == 91.0
    assert source.last_readings["CPU2 Temp"].is_critical

def test_sensor_reading_properties():
    """Test SensorReading helpers"""
    reading = SensorReading("CPU1 Temp", 45.0, time.time() - 2, "ok")
    assert reading.is_valid
    assert not reading.is_critical
    assert reading.age >= 2

    assert not SensorReading("CPU1 Temp", None, time.time(), "ns").is_valid
    assert not SensorReading("CPU1 Temp", 45.0, time.time(), "ns").is_valid
    assert not SensorReading("CPU1 Temp", math.nan, time.time(), "ok").is_valid
    assert SensorReading("CPU1 Temp", 95.0, time.time(), "cr").is_critical

# Actuator Tests

def test_actuator_sets_fan_speed(commander):
    """Test duty cycles are forwarded per bank"""
    actuator = IPMIFanActuator(commander)
    actuator.set_duty_cycle(1, 38)
    commander.set_fan_speed.assert_called_once_with(1, 38)

def test_actuator_wraps_errors(commander):
    """Test IPMI and range failures become actuation errors for the bank"""
    actuator = IPMIFanActuator(commander)

    commander.set_fan_speed.side_effect = IPMIError("Device or resource busy")
    with pytest.raises(ActuationError) as exc_info:
        actuator.set_duty_cycle(0, 50)
    assert exc_info.value.bank == 0

    commander.set_fan_speed.side_effect = ValueError("Duty cycle must be between 0 and 255, got 400")
    with pytest.raises(ActuationError) as exc_info:
        actuator.set_duty_cycle(1, 400)
    assert exc_info.value.bank == 1

def test_actuator_mode_changes(commander):
    """Test manual and automatic mode delegation"""
    actuator = IPMIFanActuator(commander)
    actuator.enable_manual_control()
    actuator.restore_automatic_control()
    commander.set_manual_mode.assert_called_once()
    commander.set_auto_mode.assert_called_once()

    commander.set_auto_mode.side_effect = IPMIError("timeout")
    with pytest.raises(ActuationError, match="restore automatic"):
        actuator.restore_automatic_control()

def test_dry_run_actuator():
    """Test dry run records commands without IPMI"""
    actuator = DryRunActuator()
    actuator.enable_manual_control()
    actuator.set_duty_cycle(0, 38)
    actuator.set_duty_cycle(1, 38)
    actuator.restore_automatic_control()
    assert list(actuator.commands) == [(0, 38), (1, 38)]

def test_dry_run_history_is_bounded():
    """Test a long dry run only keeps the latest commands"""
    actuator = DryRunActuator()
    for duty in range(250):
        actuator.set_duty_cycle(0, duty)
    assert len(actuator.commands) == DryRunActuator.HISTORY_SIZE
    assert actuator.commands[0] == (0, 150)
    assert actuator.commands[-1] == (0, 249)
