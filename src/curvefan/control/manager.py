"""
Fan Control Manager Module

This module provides the main control loop: sample the temperature,
evaluate the fan curve, publish the desired duty cycle, and send it to
every fan bank when the temperature has moved past the debounce threshold.
"""

import logging
import threading
from enum import Enum
from typing import Any, Dict, Optional

from ..config import Config
from ..errors import ActuationError, SamplingError, TelemetryError
from .curve import FanCurve
from .gate import ControllerState, should_actuate
from .interfaces import Actuator, TelemetryEmitter, TemperatureSource

logger = logging.getLogger(__name__)


class LoopState(Enum):
    """Control loop states"""
    IDLE = "idle"          # Waiting for the next tick
    UPDATING = "updating"  # Inside one sample-evaluate-gate-actuate cycle


class ControlLoop:
    """Runs the sample/evaluate/gate/actuate cycle on a fixed interval"""

    def __init__(self, curve: FanCurve, source: TemperatureSource, actuator: Actuator,
                 telemetry: Optional[TelemetryEmitter] = None, banks: int = 1,
                 threshold: float = 0.0, polling_interval: float = 5.0,
                 restore_on_exit: bool = True):
        """Initialize control loop

        Args:
            curve: Compiled fan curve
            source: Temperature source sampled once per tick
            actuator: Fan command sink
            telemetry: Receives the evaluated duty cycle every tick
            banks: Number of fan banks, addressed as 0..banks-1
            threshold: Temperature change (°C) required to re-actuate
            polling_interval: Seconds between ticks
            restore_on_exit: Return fan control to the BMC on stop()
        """
        self.curve = curve
        self.source = source
        self.actuator = actuator
        self.telemetry = telemetry
        self.banks = banks
        self.threshold = threshold
        self.polling_interval = polling_interval
        self.restore_on_exit = restore_on_exit

        self.state = ControllerState()
        self.loop_state = LoopState.IDLE
        self.last_temperature: Optional[float] = None
        self.ticks = 0
        self.actuations = 0
        self.errors: Dict[str, int] = {
            "sampling": 0,
            "actuation": 0,
            "telemetry": 0,
            "unexpected": 0,
        }

        # Control loop thread state
        self._running = False
        self._control_thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._stop_event = threading.Event()

    @classmethod
    def from_config(cls, config: Config, source: TemperatureSource, actuator: Actuator,
                    telemetry: Optional[TelemetryEmitter] = None) -> "ControlLoop":
        """Build a control loop from a validated configuration"""
        curve = FanCurve(config.curve, min_duty=config.min_duty, max_duty=config.max_duty)
        return cls(
            curve=curve,
            source=source,
            actuator=actuator,
            telemetry=telemetry,
            banks=config.banks,
            threshold=config.hysteresis,
            polling_interval=config.polling_interval,
            restore_on_exit=config.restore_on_exit,
        )

    def _publish(self, duty: int) -> None:
        if self.telemetry is None:
            return
        try:
            self.telemetry.publish(duty)
        except TelemetryError as e:
            self.errors["telemetry"] += 1
            logger.warning(f"Telemetry publish failed: {e}")

    def _actuate(self, duty: int) -> bool:
        """Send duty to every bank; True if at least one bank accepted it."""
        accepted = 0
        for bank in range(self.banks):
            try:
                self.actuator.set_duty_cycle(bank, duty)
                accepted += 1
            except ActuationError as e:
                self.errors["actuation"] += 1
                logger.error(f"Actuation failed for bank {bank}: {e}")
        return accepted > 0

    def _tick(self, state: ControllerState) -> ControllerState:
        try:
            temperature = self.source.sample()
            duty = self.curve.get_speed(temperature)
        except SamplingError as e:
            self.errors["sampling"] += 1
            logger.warning(f"Skipping tick, no usable temperature: {e}")
            return state

        temperature = float(temperature)
        self.last_temperature = temperature
        logger.debug(f"{temperature:.1f}°C -> duty {duty}")

        self._publish(duty)
        state = state.computed(duty)

        if not should_actuate(temperature, duty, state, self.threshold):
            logger.debug(
                f"Within hysteresis: {temperature:.1f}°C vs last actuated "
                f"{state.last_actuated_temperature:.1f}°C, keeping duty {state.last_actuated_duty_cycle}"
            )
            return state

        if not self._actuate(duty):
            logger.error(f"No fan bank accepted duty {duty}, retrying next tick")
            return state

        self.actuations += 1
        logger.info(f"Fan duty set to {duty} on {self.banks} bank(s) at {temperature:.1f}°C")
        return state.actuated(temperature, duty)

    def run_once(self) -> ControllerState:
        """Run exactly one control tick and return the new controller state"""
        self.loop_state = LoopState.UPDATING
        try:
            self.ticks += 1
            self.state = self._tick(self.state)
        finally:
            self.loop_state = LoopState.IDLE
        return self.state

    def _control_loop(self) -> None:
        """Main control loop"""
        while self._running:
            try:
                self.run_once()
            except Exception:
                self.errors["unexpected"] += 1
                logger.exception("Control loop error")

            # Wait for next iteration, returning early on stop()
            self._stop_event.wait(self.polling_interval)

    def start(self) -> None:
        """Take manual fan control and start the control loop"""
        with self._lock:
            if self._running:
                return

            try:
                self.actuator.enable_manual_control()
            except ActuationError as e:
                self.errors["actuation"] += 1
                logger.error(f"Failed to enable manual fan control: {e}")

            self._running = True
            self._stop_event.clear()
            self._control_thread = threading.Thread(target=self._control_loop, name="curvefan-control")
            self._control_thread.daemon = True
            self._control_thread.start()

            logger.info(f"Control loop started ({self.banks} bank(s), every {self.polling_interval}s)")

    def stop(self) -> None:
        """Stop the control loop after the current tick"""
        with self._lock:
            if not self._running:
                return

            self._running = False
            self._stop_event.set()
            if self._control_thread:
                self._control_thread.join()
                self._control_thread = None

            if self.restore_on_exit:
                try:
                    self.actuator.restore_automatic_control()
                    logger.info("Restored automatic fan control")
                except ActuationError as e:
                    logger.error(f"Failed to restore automatic control: {e}")

            logger.info("Control loop stopped")

    @property
    def running(self) -> bool:
        return self._running

    def get_status(self) -> Dict[str, Any]:
        """Get current control status

        Returns:
            Dictionary with loop state, last temperature, controller state
            and counters
        """
        return {
            "running": self._running,
            "loop_state": self.loop_state.value,
            "temperature": self.last_temperature,
            "current_duty_cycle": self.state.current_duty_cycle,
            "last_actuated_duty_cycle": self.state.last_actuated_duty_cycle,
            "last_actuated_temperature": self.state.last_actuated_temperature,
            "ticks": self.ticks,
            "actuations": self.actuations,
            "errors": dict(self.errors),
        }
