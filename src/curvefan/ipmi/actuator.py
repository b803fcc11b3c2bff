"""Fan actuators: IPMI raw commands and a logging dry run."""

import logging
from collections import deque

from ..control.interfaces import Actuator
from ..errors import ActuationError
from .commander import IPMICommander, IPMIError

logger = logging.getLogger(__name__)


class IPMIFanActuator(Actuator):
    """Sends duty cycles to fan banks through IPMICommander"""

    def __init__(self, commander: IPMICommander):
        self.commander = commander

    def set_duty_cycle(self, bank: int, duty_cycle: int) -> None:
        try:
            self.commander.set_fan_speed(bank, duty_cycle)
        except (IPMIError, ValueError) as e:
            raise ActuationError(f"Bank {bank} rejected duty cycle {duty_cycle}: {e}", bank=bank)

    def enable_manual_control(self) -> None:
        try:
            self.commander.set_manual_mode()
        except IPMIError as e:
            raise ActuationError(f"Failed to enable manual fan control: {e}")

    def restore_automatic_control(self) -> None:
        try:
            self.commander.set_auto_mode()
        except IPMIError as e:
            raise ActuationError(f"Failed to restore automatic fan control: {e}")


class DryRunActuator(Actuator):
    """Logs fan commands instead of sending them"""

    HISTORY_SIZE = 100

    def __init__(self):
        # Most recent (bank, duty_cycle) pairs only
        self.commands = deque(maxlen=self.HISTORY_SIZE)

    def set_duty_cycle(self, bank: int, duty_cycle: int) -> None:
        self.commands.append((bank, duty_cycle))
        logger.info(f"[DRY-RUN] bank {bank} -> {duty_cycle} ({hex(duty_cycle)})")
