"""
Configuration Module

Loads the YAML configuration file once at startup into immutable
dataclasses. Every validation failure raises ConfigurationError so the
process never starts the control loop with a bad curve.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/etc/curvefan/config.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "ipmi": {
        "host": "localhost",
        "username": "ADMIN",
        "password": "ADMIN",
        "interface": "lanplus",
        "retries": 3,
        "retry_delay": 1.0,
        "timeout": 10,
        "fan_command": "raw 0x30 0x70 0x66 0x01",
    },
    "temperature": {
        "sensors": ["CPU* Temp"],
        "hysteresis": 3,
    },
    "fans": {
        "polling_interval": 5,
        "banks": 2,
        "min_duty": 0,
        "max_duty": 100,
        "curve": [[10, 5], [40, 25], [55, 50], [70, 80], [80, 100]],
    },
    "telemetry": {
        "enabled": False,
        "path": "/var/lib/curvefan/fan_speed.influx",
        "measurement": "fan_speed",
    },
    "safety": {
        "restore_on_exit": True,
    },
    "logging": {
        "level": "INFO",
    },
}

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True)
class IPMIConfig:
    """Connection settings for ipmitool"""
    host: str = "localhost"
    username: str = "ADMIN"
    password: str = "ADMIN"
    interface: str = "lanplus"
    retries: int = 3
    retry_delay: float = 1.0
    timeout: float = 10
    fan_command: str = "raw 0x30 0x70 0x66 0x01"

    def __post_init__(self) -> None:
        if self.retries < 1:
            raise ConfigurationError(f"ipmi.retries must be at least 1, got {self.retries}")
        if self.timeout <= 0:
            raise ConfigurationError(f"ipmi.timeout must be positive, got {self.timeout}")
        if not isinstance(self.fan_command, str) or not self.fan_command.split():
            raise ConfigurationError(f"ipmi.fan_command must be a non-empty string, got {self.fan_command!r}")


@dataclass(frozen=True)
class TelemetryConfig:
    """Line-protocol telemetry file settings"""
    enabled: bool = False
    path: str = "/var/lib/curvefan/fan_speed.influx"
    measurement: str = "fan_speed"

    def __post_init__(self) -> None:
        if self.enabled and not self.path:
            raise ConfigurationError("telemetry.path is required when telemetry is enabled")
        if not self.measurement or any(c in self.measurement for c in " ,"):
            raise ConfigurationError(f"Invalid telemetry measurement name {self.measurement!r}")


@dataclass(frozen=True)
class Config:
    """Complete controller configuration, immutable for the process lifetime"""
    curve: Tuple[Tuple[float, float], ...]
    polling_interval: float = 5.0
    banks: int = 2
    hysteresis: float = 3.0
    min_duty: Optional[int] = 0
    max_duty: Optional[int] = 100
    sensors: Tuple[str, ...] = ("CPU* Temp",)
    restore_on_exit: bool = True
    log_level: str = "INFO"
    ipmi: IPMIConfig = field(default_factory=IPMIConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)

    def __post_init__(self) -> None:
        if not self.curve:
            raise ConfigurationError("fans.curve must contain at least one control point")
        if not _is_number(self.polling_interval) or self.polling_interval <= 0:
            raise ConfigurationError(f"fans.polling_interval must be positive, got {self.polling_interval}")
        if isinstance(self.banks, bool) or not isinstance(self.banks, int) or self.banks < 1:
            raise ConfigurationError(f"fans.banks must be a positive integer, got {self.banks}")
        if not _is_number(self.hysteresis) or self.hysteresis < 0:
            raise ConfigurationError(f"temperature.hysteresis must be >= 0, got {self.hysteresis}")
        for name in ("min_duty", "max_duty"):
            value = getattr(self, name)
            if value is not None and (not _is_number(value) or not 0 <= value <= 0xFF):
                raise ConfigurationError(f"fans.{name} must be between 0 and 255, got {value}")
        if self.min_duty is not None and self.max_duty is not None and self.min_duty > self.max_duty:
            raise ConfigurationError(
                f"fans.min_duty ({self.min_duty}) cannot be greater than fans.max_duty ({self.max_duty})"
            )
        if self.log_level not in VALID_LOG_LEVELS:
            raise ConfigurationError(
                f"Invalid log level {self.log_level!r}, must be one of: {', '.join(VALID_LOG_LEVELS)}"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Build a Config from a parsed YAML document.

        Missing sections fall back to DEFAULT_CONFIG, except the fan curve,
        which is required.
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration must be a YAML mapping")

        ipmi = _section(data, "ipmi")
        temperature = _section(data, "temperature")
        fans = _section(data, "fans")
        telemetry = _section(data, "telemetry")
        safety = _section(data, "safety")
        log_config = _section(data, "logging")

        if "curve" not in fans:
            raise ConfigurationError("fans.curve is required")

        sensors = temperature.get("sensors", DEFAULT_CONFIG["temperature"]["sensors"]) or []
        if not isinstance(sensors, list) or not all(isinstance(s, str) for s in sensors):
            raise ConfigurationError("temperature.sensors must be a list of sensor name patterns")

        try:
            return cls(
                curve=_parse_curve(fans["curve"]),
                polling_interval=fans.get("polling_interval", DEFAULT_CONFIG["fans"]["polling_interval"]),
                banks=fans.get("banks", DEFAULT_CONFIG["fans"]["banks"]),
                hysteresis=temperature.get("hysteresis", DEFAULT_CONFIG["temperature"]["hysteresis"]),
                min_duty=fans.get("min_duty", DEFAULT_CONFIG["fans"]["min_duty"]),
                max_duty=fans.get("max_duty", DEFAULT_CONFIG["fans"]["max_duty"]),
                sensors=tuple(sensors),
                restore_on_exit=bool(safety.get("restore_on_exit", True)),
                log_level=str(log_config.get("level", "INFO")).upper(),
                ipmi=IPMIConfig(**ipmi),
                telemetry=TelemetryConfig(**telemetry),
            )
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Section '{name}' must be a mapping")
    return section


def _parse_curve(raw: Any) -> Tuple[Tuple[float, float], ...]:
    """Parse [[temp, duty], ...] or {temp: duty} into a tuple of pairs."""
    if isinstance(raw, dict):
        raw = list(raw.items())
    if not isinstance(raw, list):
        raise ConfigurationError("fans.curve must be a list of [temperature, duty_cycle] pairs")

    points = []
    for item in raw:
        if not isinstance(item, (list, tuple)) or len(item) != 2:
            raise ConfigurationError(f"Invalid curve point {item!r}, expected [temperature, duty_cycle]")
        temp, duty = item
        if not (_is_number(temp) and _is_number(duty)):
            raise ConfigurationError(f"Curve point {item!r} must contain finite numbers")
        points.append((float(temp), float(duty)))
    return tuple(points)


def load_config(path: str) -> Config:
    """Load and validate a YAML configuration file.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated Config

    Raises:
        ConfigurationError: If the file cannot be read or is invalid
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration {path}: {e}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}")

    config = Config.from_dict(data or {})
    logger.info(f"Loaded configuration from {path}: {len(config.curve)} curve points, {config.banks} fan banks")
    return config
