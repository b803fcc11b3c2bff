"""
Command Line Interface Module

This module provides the command-line interface for running the fan
controller, applying a fixed duty cycle, or inspecting the compiled curve.
"""

import argparse
import logging
import os
import signal
import sys
import threading
from typing import List, Optional

import yaml

from ..config import DEFAULT_CONFIG, DEFAULT_CONFIG_PATH, Config, load_config
from ..control import ControlLoop, FanCurve
from ..control.interfaces import Actuator, TelemetryEmitter
from ..errors import ActuationError, ConfigurationError
from ..ipmi import DryRunActuator, IPMICommander, IPMIFanActuator, IPMITemperatureSource
from ..telemetry import LineProtocolFileEmitter, NullEmitter

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class CLI:
    """Command-line interface handler"""

    def __init__(self):
        """Initialize CLI handler"""
        self.parser = self._create_parser()
        self.loop: Optional[ControlLoop] = None
        self._shutdown = threading.Event()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create command-line argument parser

        Returns:
            Configured argument parser
        """
        parser = argparse.ArgumentParser(
            prog="curvefan",
            description="Curvefan - piecewise-linear fan curve control over IPMI"
        )

        parser.add_argument(
            "-c", "--config",
            help="Path to configuration file",
            default=DEFAULT_CONFIG_PATH
        )

        parser.add_argument(
            "--debug",
            action="store_true",
            help="Enable debug logging"
        )

        parser.add_argument(
            "--once",
            action="store_true",
            help="Run a single control tick and exit"
        )

        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Log fan commands instead of sending them"
        )

        parser.add_argument(
            "--manual",
            type=int,
            choices=range(0, 256),
            metavar="DUTY",
            help="Set every fan bank to a fixed duty cycle (0-255) and exit"
        )

        parser.add_argument(
            "--show-curve",
            action="store_true",
            help="Print the compiled fan curve and exit"
        )

        return parser

    def _setup_config(self, config_path: str) -> str:
        """Create a default configuration file if none exists

        Args:
            config_path: Path to configuration file

        Returns:
            Path to active configuration file
        """
        if not os.path.exists(config_path):
            directory = os.path.dirname(config_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(config_path, "w") as f:
                yaml.safe_dump(DEFAULT_CONFIG, f, sort_keys=False)
            logger.info(f"Created default configuration at {config_path}")
        return config_path

    def _setup_logging(self, config: Config, debug: bool) -> None:
        level = logging.DEBUG if debug else getattr(logging, config.log_level)
        logging.getLogger('curvefan').setLevel(level)

    def _create_actuator(self, commander: IPMICommander, dry_run: bool) -> Actuator:
        if dry_run:
            return DryRunActuator()
        return IPMIFanActuator(commander)

    def _create_telemetry(self, config: Config) -> TelemetryEmitter:
        if not config.telemetry.enabled:
            return NullEmitter()
        return LineProtocolFileEmitter(
            path=config.telemetry.path,
            measurement=config.telemetry.measurement,
            max_duty=config.max_duty
        )

    def _set_manual(self, actuator: Actuator, config: Config, duty: int) -> int:
        """Apply a fixed duty cycle to every bank; returns exit status"""
        try:
            actuator.enable_manual_control()
        except ActuationError as e:
            logger.error(f"Error: {e}")
            return 1

        failed = 0
        for bank in range(config.banks):
            try:
                actuator.set_duty_cycle(bank, duty)
            except ActuationError as e:
                failed += 1
                logger.error(f"Bank {bank}: {e}")
        if failed == config.banks:
            return 1
        print(f"Fan duty set to {duty} on {config.banks - failed}/{config.banks} bank(s)")
        return 0

    def _handle_signal(self, signum, frame) -> None:
        logger.info(f"Received {signal.Signals(signum).name}, shutting down")
        self._shutdown.set()

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Run the CLI interface

        Returns:
            Process exit status
        """
        args = self.parser.parse_args(argv)

        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        if args.debug:
            logging.getLogger('curvefan').setLevel(logging.DEBUG)

        try:
            config = load_config(self._setup_config(args.config))
            self._setup_logging(config, args.debug)

            if args.show_curve:
                curve = FanCurve(config.curve, min_duty=config.min_duty, max_duty=config.max_duty)
                for line in curve.describe():
                    print(line)
                return 0

            commander = IPMICommander(config.ipmi)
            actuator = self._create_actuator(commander, args.dry_run)

            if args.manual is not None:
                return self._set_manual(actuator, config, args.manual)

            self.loop = ControlLoop.from_config(
                config,
                source=IPMITemperatureSource(commander, config.sensors),
                actuator=actuator,
                telemetry=self._create_telemetry(config)
            )

            if args.once:
                try:
                    actuator.enable_manual_control()
                except ActuationError as e:
                    logger.warning(f"Manual fan control not enabled: {e}")
                self.loop.run_once()
                status = self.loop.get_status()
                print(f"Temperature: {status['temperature']}°C, duty cycle: {status['current_duty_cycle']}")
                return 0 if status["temperature"] is not None else 1

            signal.signal(signal.SIGINT, self._handle_signal)
            signal.signal(signal.SIGTERM, self._handle_signal)

            self.loop.start()
            print("Control loop started. Press Ctrl+C to exit.")
            while not self._shutdown.wait(1.0):
                pass
            return 0

        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            return 1

        except Exception as e:
            logger.error(f"Error: {e}")
            return 1

        finally:
            if self.loop:
                self.loop.stop()


def main() -> None:
    """Main entry point"""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
