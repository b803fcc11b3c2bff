"""
Temperature Sensor Module

This module turns IPMI sensor data repository readings into the single
aggregated temperature the control loop consumes: the hottest of the
configured temperature channels.
"""

import logging
import math
import re
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Pattern, Sequence

from ..control.interfaces import TemperatureSource
from ..errors import SamplingError
from .commander import IPMICommander, IPMIError

logger = logging.getLogger(__name__)

@dataclass
class SensorReading:
    """Represents a temperature sensor reading.

    Attributes:
        name: Sensor identifier (e.g., "CPU1 Temp")
        value: Temperature in °C, or None when the sensor has no reading
        timestamp: Unix timestamp when reading was taken
        state: Sensor state ("ok", "cr" for critical, "ns" for no reading)
        response_id: Optional IPMI response ID for tracking communication

    Examples:
        >>> reading = SensorReading("CPU1 Temp", 45.0, time.time(), "ok")
        >>> reading.is_valid
        True
    """
    name: str
    value: Optional[float]
    timestamp: float
    state: str  # 'ok', 'cr' (critical), or 'ns' (no reading)
    response_id: Optional[int] = None

    @property
    def age(self) -> float:
        """Get age of reading in seconds."""
        return time.time() - self.timestamp

    @property
    def is_critical(self) -> bool:
        """Check if sensor is in critical state."""
        return self.state == 'cr'

    @property
    def is_valid(self) -> bool:
        """Check if reading carries a usable finite temperature."""
        return (
            self.state != 'ns'
            and isinstance(self.value, (int, float))
            and not isinstance(self.value, bool)
            and math.isfinite(self.value)
        )


def compile_patterns(patterns: Sequence[str]) -> List[Pattern]:
    """Convert glob-style sensor name patterns to case-insensitive regexes."""
    compiled = []
    for pattern in patterns:
        regex = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
        compiled.append(re.compile(f"^{regex}$", re.IGNORECASE))
    return compiled


class IPMITemperatureSource(TemperatureSource):
    """Samples the hottest matching IPMI temperature sensor"""

    def __init__(self, commander: IPMICommander, sensor_patterns: Optional[Sequence[str]] = None):
        """Initialize temperature source

        Args:
            commander: IPMICommander instance for IPMI communication
            sensor_patterns: Glob patterns of sensor names to aggregate
                (None or empty for all temperature sensors)
        """
        self.commander = commander
        self.sensor_patterns = compile_patterns(sensor_patterns or [])
        self.last_readings: Dict[str, SensorReading] = {}

    def _is_temperature_sensor(self, name: str) -> bool:
        return "temp" in name.lower()

    def _matches(self, name: str) -> bool:
        if not self.sensor_patterns:
            return self._is_temperature_sensor(name)
        return any(pattern.match(name) for pattern in self.sensor_patterns)

    def read_sensors(self) -> List[SensorReading]:
        """Read every matching temperature sensor.

        Returns:
            Matching readings, valid or not

        Raises:
            SamplingError: If the sensor repository cannot be read
        """
        try:
            raw_readings = self.commander.get_sensor_readings()
        except IPMIError as e:
            raise SamplingError(f"Failed to read IPMI sensors: {e}")

        now = time.time()
        readings = []
        for raw in raw_readings:
            name = str(raw.get("name", ""))
            if not self._matches(name):
                continue
            reading = SensorReading(
                name=name,
                value=raw.get("value"),
                timestamp=now,
                state=str(raw.get("state", "ns")),
                response_id=raw.get("response_id")
            )
            if reading.is_critical:
                logger.error(f"Critical state reported by {name}: {reading.value}°C")
            readings.append(reading)

        self.last_readings = {r.name: r for r in readings}
        return readings

    def sample(self) -> float:
        """Get the highest valid temperature across matching sensors.

        Raises:
            SamplingError: If no matching sensor has a usable reading
        """
        readings = self.read_sensors()
        valid = [r for r in readings if r.is_valid]

        for reading in readings:
            if not reading.is_valid:
                logger.debug(f"Ignoring {reading.name}: value={reading.value!r} state={reading.state}")

        if not valid:
            raise SamplingError(
                f"No valid temperature readings from {len(readings)} matching sensors"
            )

        hottest = max(valid, key=lambda r: r.value)
        logger.debug(f"Highest temperature {hottest.value}°C from {hottest.name}")
        return float(hottest.value)
