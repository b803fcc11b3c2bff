"""
IPMI Communication Package for Curvefan

This package adapts ipmitool to the control loop's collaborator interfaces.

Key Components:
- IPMICommander: ipmitool execution, fan mode switching and raw duty commands
- IPMITemperatureSource: hottest matching temperature from the sensor repository
- IPMIFanActuator: per-bank duty cycle commands
- DryRunActuator: logs commands without touching the hardware

Example Usage:
    >>> from curvefan.ipmi import IPMICommander, IPMITemperatureSource, IPMIFanActuator
    >>>
    >>> commander = IPMICommander()
    >>> source = IPMITemperatureSource(commander, ["CPU* Temp"])
    >>> source.sample()
    47.0
    >>> IPMIFanActuator(commander).set_duty_cycle(0, 38)

Note:
    This package requires ipmitool and root/sudo access for local operation.
"""

from .commander import IPMICommander, IPMIError, IPMIConnectionError, IPMICommandError, FanMode
from .sensors import IPMITemperatureSource, SensorReading
from .actuator import IPMIFanActuator, DryRunActuator

__all__ = [
    'IPMICommander',
    'IPMIError',
    'IPMIConnectionError',
    'IPMICommandError',
    'FanMode',
    'IPMITemperatureSource',
    'SensorReading',
    'IPMIFanActuator',
    'DryRunActuator'
]
