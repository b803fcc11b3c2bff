"""
Control package for Curvefan

This package provides the fan curve, the actuation gate and the control
loop, plus the collaborator interfaces the loop drives.
"""

from .curve import ControlPoint, Segment, FanCurve, compile_curve, evaluate
from .gate import ControllerState, should_actuate
from .interfaces import Actuator, TelemetryEmitter, TemperatureSource
from .manager import ControlLoop, LoopState

__all__ = [
    'ControlPoint',
    'Segment',
    'FanCurve',
    'compile_curve',
    'evaluate',
    'ControllerState',
    'should_actuate',
    'Actuator',
    'TelemetryEmitter',
    'TemperatureSource',
    'ControlLoop',
    'LoopState'
]
