"""
Telemetry Module

Publishes the evaluated duty cycle for monitoring. The file emitter writes a
single InfluxDB line-protocol record, keyed by hostname, that a collector
such as Telegraf can tail:

    fan_speed,host=server01 duty_cycle=38.0,raw="0x26" 1700000000000000000
"""

import logging
import os
import socket
import tempfile
import time
from typing import Callable, Optional

from .control.interfaces import TelemetryEmitter
from .errors import TelemetryError

logger = logging.getLogger(__name__)


def _escape_tag(value: str) -> str:
    return value.replace("\\", "\\\\").replace(",", "\\,").replace("=", "\\=").replace(" ", "\\ ")


def _format_raw(duty_cycle: int) -> str:
    sign = "-" if duty_cycle < 0 else ""
    return f"{sign}0x{abs(duty_cycle):02x}"


def format_record(measurement: str, host: str, duty_cycle: int, max_duty: Optional[int],
                  timestamp_ns: int) -> str:
    """Format one line-protocol record.

    Args:
        measurement: Measurement name
        host: Value of the host tag
        duty_cycle: Duty cycle in hardware units
        max_duty: Hardware value that means 100% (None if units are percent)
        timestamp_ns: Record timestamp in nanoseconds

    Returns:
        Record without trailing newline
    """
    if max_duty:
        percent = duty_cycle * 100.0 / max_duty
    else:
        percent = float(duty_cycle)
    return (
        f"{measurement},host={_escape_tag(host)} "
        f"duty_cycle={percent:.1f},raw=\"{_format_raw(duty_cycle)}\" {timestamp_ns}"
    )


class NullEmitter(TelemetryEmitter):
    """Discards every value"""

    def publish(self, duty_cycle: int) -> None:
        pass


class LineProtocolFileEmitter(TelemetryEmitter):
    """Writes the latest duty cycle to a line-protocol file"""

    def __init__(self, path: str, measurement: str = "fan_speed", max_duty: Optional[int] = 100,
                 hostname: Optional[str] = None, clock: Callable[[], int] = time.time_ns):
        """Initialize emitter

        Args:
            path: File replaced with the latest record on every publish
            measurement: Measurement name
            max_duty: Hardware value that means 100%
            hostname: Host tag (defaults to this machine's hostname)
            clock: Nanosecond clock used for record timestamps
        """
        self.path = path
        self.measurement = measurement
        self.max_duty = max_duty
        self.hostname = hostname or socket.gethostname()
        self.clock = clock

    def publish(self, duty_cycle: int) -> None:
        record = format_record(self.measurement, self.hostname, duty_cycle, self.max_duty, self.clock())
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".curvefan-")
            try:
                with os.fdopen(fd, "w") as f:
                    f.write(record + "\n")
                os.replace(tmp_path, self.path)
            except OSError:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except OSError as e:
            raise TelemetryError(f"Failed to write telemetry to {self.path}: {e}")
        logger.debug(f"Telemetry: {record}")
