"""
ipmitool Wrapper

This module provides a wrapper around ipmitool for executing IPMI commands,
switching the BMC between manual and automatic fan control, sending raw
duty cycle commands and reading the sensor data repository.
"""

import subprocess
import logging
import time
from typing import Optional, List, Dict, Union
from enum import Enum

from ..config import IPMIConfig

logger = logging.getLogger(__name__)

class FanMode(Enum):
    """Supermicro BMC fan modes (raw 0x30 0x45 0x01 <mode>)"""
    STANDARD = 0x00  # BMC managed
    FULL = 0x01      # Required before zone duty commands stick
    OPTIMAL = 0x02
    HEAVY_IO = 0x04

class IPMIError(Exception):
    """Any ipmitool failure"""
    pass

class IPMIConnectionError(IPMIError):
    """ipmitool could not be run or could not reach the BMC"""
    pass

class IPMICommandError(IPMIError):
    """The BMC kept rejecting a command"""
    pass

class IPMICommander:
    """Runs ipmitool for fan mode, duty cycle and sensor commands"""

    # netfn/cmd pairs never sent to the BMC
    BLACKLISTED_COMMANDS = {
        (0x06, 0x01),  # fans drop speed
        (0x06, 0x02),  # corrupts sensor readings
    }

    MODE_COMMAND = "raw 0x30 0x45 0x01"

    def __init__(self, config: Optional[IPMIConfig] = None):
        """Initialize commander

        Args:
            config: Connection settings (defaults to local ipmitool)
        """
        self.config = config or IPMIConfig()
        self.host = self.config.host
        self.fan_command = self.config.fan_command

    def _validate_raw_command(self, command: str) -> None:
        """Reject unsafe or malformed raw commands before they reach the BMC.

        Args:
            command: Raw IPMI command string (e.g., "raw 0x30 0x45 0x01 0x01")

        Raises:
            IPMIError: If command is blacklisted, malformed, or carries a
                byte outside 0x00-0xFF

        Examples:
            >>> commander._validate_raw_command("raw 0x30 0x45 0x01 0x01")  # Valid mode change
            >>> commander._validate_raw_command("raw 0x06 0x01")  # Raises IPMIError (blacklisted)
        """
        parts = command.split()
        if len(parts) < 3 or parts[0] != "raw":
            return  # Not a raw command, skip validation

        values = []
        for p in parts[1:]:
            hex_val = p[2:] if p.lower().startswith('0x') else p
            if not hex_val or not all(c in '0123456789abcdefABCDEF' for c in hex_val):
                raise IPMIError(f"Invalid command format: malformed hex value {p!r}")
            value = int(hex_val, 16)
            if value > 0xFF:
                raise IPMIError(f"Invalid command format: byte {p} out of range")
            values.append(value)

        netfn, cmd = values[0], values[1]
        if (netfn, cmd) in self.BLACKLISTED_COMMANDS:
            raise IPMIError(f"Command {hex(netfn)} {hex(cmd)} is blacklisted for safety")

        if netfn == 0x30 and cmd == 0x45 and len(values) >= 4 and values[2] == 0x01:
            valid_modes = [m.value for m in FanMode]
            if values[3] not in valid_modes:
                raise IPMIError(f"Invalid fan mode: {hex(values[3])}")

    def _base_command(self) -> List[str]:
        if self.host == "localhost":
            return ["sudo", "ipmitool"]
        return [
            "ipmitool", "-I", self.config.interface,
            "-H", self.host,
            "-U", self.config.username,
            "-P", self.config.password
        ]

    def _execute_ipmi_command(self, command: str) -> str:
        """Run one ipmitool command with retries

        Args:
            command: IPMI command to execute, without the ipmitool prefix

        Returns:
            Command output as string

        Raises:
            IPMIConnectionError: If ipmitool cannot run or open a session
            IPMICommandError: If the BMC rejects the command on every attempt
            IPMIError: If the command is unsafe, or every attempt timed out
        """
        self._validate_raw_command(command)

        retries = self.config.retries
        full_cmd = self._base_command() + command.split()
        last_error = None
        for attempt in range(retries):
            if attempt > 0:
                time.sleep(self.config.retry_delay)
                logger.debug(f"ipmitool attempt {attempt + 1}/{retries}: {command}")

            try:
                result = subprocess.run(
                    full_cmd,
                    capture_output=True,
                    text=True,
                    check=True,
                    timeout=self.config.timeout
                )
                return result.stdout.strip()
            except subprocess.CalledProcessError as e:
                last_error = e
                stderr = e.stderr or ""
                if "Device or resource busy" in stderr:
                    logger.debug(f"BMC busy on attempt {attempt + 1}/{retries}")
                    continue
                if "Error in open session" in stderr:
                    raise IPMIConnectionError(f"Failed to connect to IPMI: {stderr.strip()}")
                if attempt == retries - 1:
                    raise IPMICommandError(f"Command failed after {retries} attempts: {stderr.strip()}")
            except subprocess.TimeoutExpired as e:
                last_error = e
                logger.warning(f"IPMI command timed out after {self.config.timeout}s: {command}")
            except OSError as e:
                raise IPMIConnectionError(f"Cannot run ipmitool: {e}")

        raise IPMIError(f"Command failed after {retries} attempts: {last_error}")

    def set_fan_mode(self, mode: FanMode) -> None:
        """Switch the BMC fan mode.

        Args:
            mode: Target mode

        Raises:
            IPMIError: If mode cannot be set
        """
        self._execute_ipmi_command(f"{self.MODE_COMMAND} {hex(mode.value)}")
        logger.info(f"BMC fan mode set to {mode.name}")

    def set_manual_mode(self) -> None:
        """Set fan control to manual mode for direct duty cycle control."""
        self.set_fan_mode(FanMode.FULL)

    def set_auto_mode(self) -> None:
        """Restore automatic fan control by returning control to BMC."""
        self.set_fan_mode(FanMode.STANDARD)

    def set_fan_speed(self, bank: int, duty: int) -> None:
        """Send a raw duty cycle to one fan bank.

        The command is the configured fan command followed by the bank id
        and the duty cycle, each as one hex byte, e.g.
        "raw 0x30 0x70 0x66 0x01 0x00 0x26" for bank 0 at 0x26.

        Args:
            bank: Fan bank (zone) identifier, 0-255
            duty: Duty cycle in hardware units, 0-255

        Raises:
            ValueError: If bank or duty do not fit in one byte
            IPMIError: If the command fails
        """
        if not 0 <= bank <= 0xFF:
            raise ValueError(f"Fan bank must be between 0 and 255, got {bank}")
        if not 0 <= duty <= 0xFF:
            raise ValueError(f"Duty cycle must be between 0 and 255, got {duty}")

        command = f"{self.fan_command} 0x{bank:02x} 0x{duty:02x}"
        self._execute_ipmi_command(command)
        logger.debug(f"Bank {bank} duty cycle set to {duty} (0x{duty:02x})")

    def get_sensor_readings(self) -> List[Dict[str, Union[str, float, int, None]]]:
        """Parse `ipmitool sdr list` into one dict per sensor.

        Values that cannot be parsed are reported as None with state "ns".

        Returns:
            List of sensor readings, each containing:
                - name: e.g. "CPU1 Temp" or "FAN1"
                - value: float, int for hex values, or None
                - state: "ok", "cr" or "ns"
                - response_id: ID from an "unexpected ID" line, or None

        Examples:
            >>> readings = commander.get_sensor_readings()
            >>> [r["name"] for r in readings if r["value"] is not None]
            ['CPU1 Temp', 'CPU2 Temp', 'FAN1']
        """
        output = self._execute_ipmi_command("sdr list")
        readings = []
        current_reading = None

        for line in output.splitlines():
            # Belongs to the reading on the previous line
            if "Received a response with unexpected ID" in line and current_reading:
                try:
                    response_id = int(line.split()[-1])
                    current_reading["response_id"] = response_id
                    logger.warning(f"Unexpected IPMI response ID {response_id} for sensor {current_reading['name']}")
                except (ValueError, IndexError):
                    pass
                continue

            parts = line.split('|')
            if len(parts) < 3:  # We need at least name, value, and state
                continue

            name = parts[0].strip()
            value_str = parts[1].strip()
            state = parts[2].strip().lower()

            value = None
            if state != 'ns' and value_str:
                try:
                    # "45.000 degrees C", "1680 RPM", "0x01"
                    num_str = value_str.split()[0].replace('°', '')
                    if num_str.lower().startswith('0x'):
                        value = int(num_str, 16)
                    else:
                        value = float(num_str)
                except (ValueError, IndexError):
                    logger.debug(f"Could not parse value from: {value_str}")
                    state = 'ns'

            reading = {
                "name": name,
                "value": value,
                "state": state,
                "response_id": None
            }
            readings.append(reading)
            current_reading = reading

        return readings
